"""LLM provider implementations."""

from personastudio.providers.base import LLMProvider, extract_json_object
from personastudio.providers.local import LocalProvider
from personastudio.providers.openai import OpenAIProvider

__all__ = ["LLMProvider", "OpenAIProvider", "LocalProvider", "extract_json_object"]
