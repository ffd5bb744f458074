"""OpenAI LLM provider implementation using official OpenAI SDK."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

from openai import OpenAI

from personastudio.errors import GatewayError
from personastudio.providers.base import LLMProvider


class OpenAIProvider(LLMProvider):
    """
    OpenAI API provider using official OpenAI Python SDK.

    Supports text, structured JSON, chat and web-search-grounded output.
    Without an API key it answers with canned stub data so the studio can
    be explored offline.
    """

    # Models that don't support custom temperature (only default=1)
    NO_TEMPERATURE_MODELS = ("gpt-5", "o1", "o3")

    def __init__(self, api_key: str, default_model: str = "gpt-4o-mini"):
        self.api_key = api_key
        self.default_model = default_model
        self._client: Optional[OpenAI] = None

        # Initialize client only if we have a valid API key
        if api_key and api_key != "stub":
            self._client = OpenAI(
                api_key=api_key,
                timeout=60.0,
            )

    @property
    def name(self) -> str:
        return "openai"

    def _supports_temperature(self, model: str) -> bool:
        """Check if model supports custom temperature values."""
        model_lower = model.lower()
        return not any(model_lower.startswith(prefix) for prefix in self.NO_TEMPERATURE_MODELS)

    def _complete(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        if self._client is None:
            raise GatewayError("OpenAI client is not configured")

        # Build kwargs - only include temperature if model supports it
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_completion_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        if self._supports_temperature(model):
            kwargs["temperature"] = temperature

        response = self._client.chat.completions.create(**kwargs)
        return response.choices[0].message.content or ""

    def generate_text(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        """Generate text using OpenAI chat completion."""
        model = model or self.default_model

        if self._client is None:
            return self._stub_text_response(prompt)

        return self._complete(
            [{"role": "user", "content": prompt}], model, temperature, max_tokens
        )

    def generate_json(
        self,
        prompt: str,
        schema: Dict[str, Any],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ) -> Dict[str, Any]:
        """Generate structured JSON using OpenAI with response_format."""
        model = model or self.default_model

        if self._client is None:
            return self._stub_json_response(prompt, schema)

        content = self._complete(
            [
                {
                    "role": "system",
                    "content": "You must respond with valid JSON only. No other text.",
                },
                {"role": "user", "content": prompt},
            ],
            model,
            temperature,
            max_tokens,
            json_mode=True,
        )
        return json.loads(content or "{}")

    def generate_chat(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        json_mode: bool = False,
        model: Optional[str] = None,
        temperature: float = 0.8,
        max_tokens: int = 1024,
    ) -> str:
        """Continue a conversation using OpenAI chat completion."""
        model = model or self.default_model

        if self._client is None:
            return self._stub_chat_response(messages, json_mode)

        payload = [{"role": m["role"], "content": m["content"]} for m in messages]
        if system:
            payload.insert(0, {"role": "system", "content": system})
        return self._complete(payload, model, temperature, max_tokens, json_mode=json_mode)

    def search_text(
        self,
        prompt: str,
        model: Optional[str] = None,
    ) -> Tuple[str, List[Dict[str, str]]]:
        """Generate text with the Responses API web search tool and collect citations."""
        model = model or self.default_model

        if self._client is None:
            return self._stub_text_response(prompt), [
                {"title": "Stub Source", "uri": "https://example.com/stub"},
            ]

        response = self._client.responses.create(
            model=model,
            tools=[{"type": "web_search_preview"}],
            input=prompt,
        )

        citations: List[Dict[str, str]] = []
        for item in response.output:
            if getattr(item, "type", None) != "message":
                continue
            for part in getattr(item, "content", None) or []:
                for annotation in getattr(part, "annotations", None) or []:
                    if getattr(annotation, "type", None) == "url_citation":
                        citations.append({
                            "title": getattr(annotation, "title", "") or "Unknown Source",
                            "uri": getattr(annotation, "url", "") or "#",
                        })

        return response.output_text or "", citations

    def _stub_text_response(self, prompt: str) -> str:
        """Return a stub response for testing without API credentials."""
        if "one short sentence" in prompt.lower():
            return "Parameters were updated (stub)."
        return "This is a stub response. Set OPENAI_API_KEY to enable real generation."

    def _stub_json_response(self, prompt: str, schema: Dict[str, Any]) -> Dict[str, Any]:
        """Return a stub JSON response matching the expected schema."""
        properties = schema.get("properties", {})

        # Personality analysis request
        if "scores" in properties:
            return {
                "type": "INFJ",
                "typeName": "Advocate",
                "description": "A stub personality profile.",
                "scores": {"mind": 30, "energy": 70, "nature": 65, "tactics": 40},
            }

        # Parameter extraction request
        if "personality" in properties:
            return {
                "name": "Stub Persona",
                "role": "Placeholder character",
                "tone": "Calm and plain",
                "personality": "Patient",
                "worldview": "An offline development sandbox",
                "experience": "Created without an API key",
                "other": "",
            }

        # Default stub response
        return {"status": "stub", "message": "Set API key for real responses"}

    def _stub_chat_response(self, messages: List[Dict[str, str]], json_mode: bool) -> str:
        last = messages[-1]["content"] if messages else ""
        if json_mode:
            return json.dumps({
                "responseText": f"(stub) Noted: {last[:80]}",
                "updatedParameters": {},
            })
        return f"(stub) You said: {last[:200]}"

    def close(self) -> None:
        """Close the OpenAI client."""
        if self._client is not None:
            self._client.close()

    def __enter__(self) -> "OpenAIProvider":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
