"""Prompt templates for Persona Studio."""

from personastudio.prompts.templates import (
    # Prompt builders
    build_change_summary_prompt,
    build_chat_system_prompt,
    build_condense_prompt,
    build_extraction_prompt,
    build_filename_prompt,
    build_personality_prompt,
    build_refine_system_prompt,
    build_research_prompt,
    build_summary_prompt,
    build_welcome_prompt,
    history_to_messages,
    # Structured output schemas
    PARAMETERS_SCHEMA,
    PERSONALITY_SCHEMA,
)

__all__ = [
    # Prompt builders
    "build_summary_prompt",
    "build_extraction_prompt",
    "build_condense_prompt",
    "build_change_summary_prompt",
    "build_personality_prompt",
    "build_research_prompt",
    "build_refine_system_prompt",
    "build_welcome_prompt",
    "build_chat_system_prompt",
    "build_filename_prompt",
    "history_to_messages",
    # Structured output schemas
    "PARAMETERS_SCHEMA",
    "PERSONALITY_SCHEMA",
]
