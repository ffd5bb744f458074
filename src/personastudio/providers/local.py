"""Local LLM provider (Ollama-compatible HTTP interface)."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from personastudio.providers.base import LLMProvider, extract_json_object


class LocalProvider(LLMProvider):
    """
    Local LLM provider using Ollama-compatible HTTP API.

    Compatible with:
    - Ollama (http://localhost:11434)
    - LM Studio
    - Any OpenAI-compatible local server

    Transport and HTTP errors propagate to the caller; the gateway turns
    them into GatewayError.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:11434",
        default_model: str = "llama3",
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self._client = client or httpx.Client(
            timeout=120.0,  # Local models can be slow
        )

    @property
    def name(self) -> str:
        return "local"

    def _is_ollama(self) -> bool:
        """Check if the endpoint is Ollama (uses /api/chat)."""
        return "11434" in self.base_url

    def generate_text(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        """Generate text using local LLM."""
        return self.generate_chat(
            [{"role": "user", "content": prompt}],
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    def generate_json(
        self,
        prompt: str,
        schema: Dict[str, Any],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ) -> Dict[str, Any]:
        """
        Generate structured JSON using local LLM.

        Note: Most local models don't support structured output natively,
        so we request JSON in the prompt and parse defensively.
        """
        json_prompt = f"""You must respond with valid JSON only. No other text or explanation.

{prompt}

Respond with JSON only:"""

        response = self.generate_chat(
            [{"role": "user", "content": json_prompt}],
            json_mode=True,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return extract_json_object(response)

    def generate_chat(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        json_mode: bool = False,
        model: Optional[str] = None,
        temperature: float = 0.8,
        max_tokens: int = 1024,
    ) -> str:
        """Continue a conversation using the local server."""
        model = model or self.default_model

        payload_messages = [{"role": m["role"], "content": m["content"]} for m in messages]
        if system:
            payload_messages.insert(0, {"role": "system", "content": system})

        if self._is_ollama():
            return self._ollama_chat(payload_messages, model, temperature, max_tokens, json_mode)
        return self._openai_compatible_chat(payload_messages, model, temperature, max_tokens)

    def _ollama_chat(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> str:
        """Generate using Ollama chat API."""
        url = f"{self.base_url}/api/chat"

        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }
        if json_mode:
            payload["format"] = "json"

        response = self._client.post(url, json=payload)
        response.raise_for_status()
        data = response.json()
        return data.get("message", {}).get("content", "")

    def _openai_compatible_chat(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Generate using OpenAI-compatible API (LM Studio, etc.)."""
        url = f"{self.base_url}/v1/chat/completions"

        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        response = self._client.post(url, json=payload)
        response.raise_for_status()
        data = response.json()
        return data["choices"][0]["message"]["content"]

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "LocalProvider":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
