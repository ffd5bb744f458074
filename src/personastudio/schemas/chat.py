"""Chat and conversational-refinement schema definitions."""

from __future__ import annotations

from typing import Dict, Literal

from pydantic import Field

from personastudio.schemas.persona import StudioModel

ChatRole = Literal["user", "model"]


class ChatMessage(StudioModel):
    """A single turn in a test or refinement chat."""

    role: ChatRole
    text: str


class RefinementReply(StudioModel):
    """Assistant reply during conversational refinement."""

    response_text: str
    # Only the fields the user asked to change; string values only
    updated_parameters: Dict[str, str] = Field(default_factory=dict)
