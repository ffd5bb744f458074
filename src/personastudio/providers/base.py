"""Base LLM provider interface."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from personastudio.errors import GatewayError

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def extract_json_object(response: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of an LLM response.

    Tries the raw text, then a fenced code block, then the outermost braces.

    Raises:
        ValueError: if no JSON object can be recovered
    """
    candidates = [response.strip()]
    match = _FENCED_JSON.search(response)
    if match:
        candidates.append(match.group(1))
    start = response.find("{")
    end = response.rfind("}") + 1
    if start >= 0 and end > start:
        candidates.append(response[start:end])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    raise ValueError(f"No JSON object in response: {response[:200]!r}")


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Providers implement plain text, structured JSON and multi-turn chat.
    Web-search-grounded generation is optional; providers that cannot
    search raise GatewayError from `search_text`.

    Chat messages are dicts with "role" ("user" or "assistant") and "content".
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name."""
        ...

    @abstractmethod
    def generate_text(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        """
        Generate text from a prompt.

        Args:
            prompt: The input prompt
            model: Model name override (uses default if None)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            Generated text
        """
        ...

    @abstractmethod
    def generate_json(
        self,
        prompt: str,
        schema: Dict[str, Any],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ) -> Dict[str, Any]:
        """
        Generate structured JSON output.

        Args:
            prompt: The input prompt
            schema: JSON schema describing the expected object
            model: Model name override (uses default if None)
            temperature: Sampling temperature (lower for deterministic output)
            max_tokens: Maximum tokens to generate

        Returns:
            Parsed JSON dict
        """
        ...

    @abstractmethod
    def generate_chat(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        json_mode: bool = False,
        model: Optional[str] = None,
        temperature: float = 0.8,
        max_tokens: int = 1024,
    ) -> str:
        """
        Continue a conversation.

        Args:
            messages: Prior turns, oldest first; the last one is answered
            system: System instruction
            json_mode: Ask the model for a single JSON object
            model: Model name override (uses default if None)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            The assistant's reply text
        """
        ...

    def search_text(
        self,
        prompt: str,
        model: Optional[str] = None,
    ) -> Tuple[str, List[Dict[str, str]]]:
        """
        Generate text grounded in a web search.

        Returns:
            (text, citations) where each citation has "title" and "uri"
        """
        raise GatewayError(f"Provider '{self.name}' does not support web search")
