"""Configuration management for Persona Studio."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


class Config(BaseModel):
    """Application configuration loaded from environment variables."""

    # Core paths
    db_path: Path = Path(os.getenv("PERSONASTUDIO_DB_PATH", "./data/personastudio.sqlite"))
    storage_key: str = os.getenv("PERSONASTUDIO_STORAGE_KEY", "personas")
    log_level: str = os.getenv("PERSONASTUDIO_LOG_LEVEL", "INFO")

    # Editor behaviour
    language: str = os.getenv("PERSONASTUDIO_LANGUAGE", "English")
    debounce_seconds: float = float(os.getenv("PERSONASTUDIO_DEBOUNCE_SECONDS", "1.5"))
    history_limit: int = int(os.getenv("PERSONASTUDIO_HISTORY_LIMIT", "10"))

    # API editor sessions
    max_sessions: int = int(os.getenv("PERSONASTUDIO_MAX_SESSIONS", "32"))
    session_idle_seconds: float = float(os.getenv("PERSONASTUDIO_SESSION_IDLE_SECONDS", "3600"))

    # LLM provider settings
    llm_provider: Literal["openai", "local"] = os.getenv("LLM_PROVIDER", "openai")  # type: ignore
    llm_model_text: str = os.getenv("LLM_MODEL_TEXT", "gpt-4o-mini")
    llm_model_json: str = os.getenv("LLM_MODEL_JSON", "gpt-4o-mini")
    llm_model_chat: str = os.getenv("LLM_MODEL_CHAT", "gpt-4o-mini")

    # OpenAI
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")

    # Local LLM (Ollama)
    local_llm_base_url: str = os.getenv("LOCAL_LLM_BASE_URL", "http://127.0.0.1:11434")
    local_llm_model: str = os.getenv("LOCAL_LLM_MODEL", "llama3")


def get_config() -> Config:
    """Get the application configuration."""
    return Config()
