"""Pydantic schemas for Persona Studio."""

from personastudio.schemas.chat import ChatMessage, ChatRole, RefinementReply
from personastudio.schemas.persona import (
    PARAMETER_FIELDS,
    ExtractedParameters,
    MbtiProfile,
    MbtiScores,
    Persona,
    PersonaDraft,
    PersonaHistoryEntry,
    PersonaState,
    WebSource,
    dedupe_sources,
)

__all__ = [
    "PARAMETER_FIELDS",
    "PersonaState",
    "PersonaDraft",
    "Persona",
    "PersonaHistoryEntry",
    "WebSource",
    "MbtiProfile",
    "MbtiScores",
    "ExtractedParameters",
    "dedupe_sources",
    # Chat
    "ChatMessage",
    "ChatRole",
    "RefinementReply",
]
