"""Factory for creating LLM providers based on configuration."""

from personastudio.config import Config
from personastudio.providers.base import LLMProvider
from personastudio.providers.local import LocalProvider
from personastudio.providers.openai import OpenAIProvider


def get_provider(config: Config, role: str = "text") -> LLMProvider:
    """
    Create an LLM provider based on configuration.

    Args:
        config: Application configuration
        role: One of "text", "json", or "chat" to select the appropriate model

    Returns:
        Configured LLM provider instance
    """
    # Select model based on role
    model_map = {
        "text": config.llm_model_text,
        "json": config.llm_model_json,
        "chat": config.llm_model_chat,
    }
    model = model_map.get(role, config.llm_model_text)

    if config.llm_provider == "local":
        return LocalProvider(
            base_url=config.local_llm_base_url,
            default_model=config.local_llm_model,
        )

    # OpenAI, falling back to stub mode without a key
    api_key = config.openai_api_key or "stub"
    return OpenAIProvider(api_key=api_key, default_model=model)
