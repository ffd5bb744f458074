"""Prompt templates for summary, extraction, history and chat calls."""

from __future__ import annotations

import json
from typing import Any, Dict, List

from personastudio.schemas import PersonaState

# Structured output contract for parameter extraction. The first six fields
# are required; `other` is optional.
PARAMETERS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "The character's name"},
        "role": {"type": "string", "description": "The character's role or occupation"},
        "tone": {"type": "string", "description": "The character's tone and manner of speaking"},
        "personality": {"type": "string", "description": "The character's personality"},
        "worldview": {"type": "string", "description": "The background setting or world the character lives in"},
        "experience": {"type": "string", "description": "The character's past experiences and background"},
        "other": {"type": "string", "description": "Other free-form settings or notes"},
    },
    "required": ["name", "role", "tone", "personality", "worldview", "experience"],
}

PERSONALITY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "type": {"type": "string", "description": "The 4-letter MBTI type code, e.g. INFJ"},
        "typeName": {"type": "string", "description": "Descriptive name for the type, e.g. Advocate"},
        "description": {"type": "string", "description": "One paragraph, written from the character's perspective"},
        "scores": {
            "type": "object",
            "properties": {
                "mind": {"type": "number", "description": "0 (Introverted) to 100 (Extraverted)"},
                "energy": {"type": "number", "description": "0 (Sensing) to 100 (Intuitive)"},
                "nature": {"type": "number", "description": "0 (Thinking) to 100 (Feeling)"},
                "tactics": {"type": "number", "description": "0 (Judging) to 100 (Perceiving)"},
            },
            "required": ["mind", "energy", "nature", "tactics"],
        },
    },
    "required": ["type", "typeName", "description", "scores"],
}

PARAMETERS_SCHEMA_HINT = """
Output must be a valid JSON object matching this structure:
{
  "name": "string",
  "role": "string",
  "tone": "string",
  "personality": "string",
  "worldview": "string",
  "experience": "string",
  "other": "string (optional)"
}
"""

PERSONALITY_SCHEMA_HINT = """
Output must be a valid JSON object matching this structure:
{
  "type": "4-letter code",
  "typeName": "string",
  "description": "string",
  "scores": {"mind": 0-100, "energy": 0-100, "nature": 0-100, "tactics": 0-100}
}
"""

# Derived artifacts never go into prompts describing the character
_PROMPT_EXCLUDE = {"summary", "short_summary", "short_tone", "sources", "mbti_profile"}


def _state_json(state: PersonaState, include_summary: bool = False) -> str:
    exclude = set(_PROMPT_EXCLUDE)
    if include_summary:
        exclude.discard("summary")
    return json.dumps(state.model_dump(exclude=exclude), indent=2, ensure_ascii=False)


def build_summary_prompt(state: PersonaState, language: str = "English") -> str:
    """
    Build the summary generation prompt.

    The caller blanks the existing summary first so the new text is written
    from the structured fields alone.
    """
    return f"""Write an engaging, story-like introduction of the character defined by the JSON below,
told as if from the character's own point of view. If the "other" field carries extra
notes, weave them in as well.

CHARACTER:
{_state_json(state)}

Write in {language}. Return the text only."""


def build_extraction_prompt(text: str, source: str = "document", language: str = "English") -> str:
    """
    Build the parameter extraction prompt.

    Args:
        text: Free text to extract from
        source: "summary" when re-syncing from the summary field,
            "document" for uploaded reference text or web research notes
        language: Language to write the field values in
    """
    if source == "summary":
        task = "Update each field of the character profile based on the summary text below."
    else:
        task = "Extract the character's information from the text below."

    return f"""{task}

TEXT:
---
{text}
---

{PARAMETERS_SCHEMA_HINT}

Write every value in {language}. Output JSON only:"""


def build_condense_prompt(text: str, kind: str = "summary", language: str = "English") -> str:
    """Build a prompt compressing a summary or a tone description to ~50 characters."""
    if kind == "tone":
        subject = "the following description of a speaking style, keeping its distinctive features"
    else:
        subject = "the following text"

    return f"""Condense {subject} to about 50 characters in {language}.

---
{text}
---

Return the condensed text only."""


def build_change_summary_prompt(old: PersonaState, new: PersonaState, language: str = "English") -> str:
    """Build the prompt describing what changed between two saved versions."""
    return f"""Compare the two character profiles below and describe the change from the old
version to the new version in one short sentence, in {language}.

OLD VERSION:
{_state_json(old, include_summary=True)}

NEW VERSION:
{_state_json(new, include_summary=True)}

Summary:"""


def build_personality_prompt(state: PersonaState, language: str = "English") -> str:
    """Build the MBTI analysis prompt."""
    return f"""Analyze the character profile below and produce a Myers-Briggs (MBTI) personality
profile. Write the description in {language}, from the character's perspective.

CHARACTER:
{_state_json(state)}

{PERSONALITY_SCHEMA_HINT}

Follow the structure strictly. Output JSON only:"""


def build_research_prompt(topic: str, language: str = "English") -> str:
    """Build the web-research prompt used before extraction."""
    return f"""Search the web for information about "{topic}". Combine what you find into a
detailed description suitable for building a character profile: likely background,
personality, way of speaking and notable experiences. Write in {language}."""


def build_refine_system_prompt(current: Dict[str, str], language: str = "English") -> str:
    """Build the system instruction for conversational refinement."""
    return f"""You are a creative assistant helping the user build a character (persona).
Interpret the user's loose instructions and turn them into concrete character parameters.

RULES:
1. Respond with a single JSON object of this shape:
   {{
     "responseText": "your reply to the user",
     "updatedParameters": {{
       "name": "...", "role": "...", "tone": "...", "personality": "...",
       "worldview": "...", "experience": "...", "other": "..."
     }}
   }}
2. responseText: a friendly confirmation or a creative suggestion, in {language}.
3. updatedParameters: include ONLY the parameters changed by this instruction. Omit the rest.
4. Build on the current parameters below.

CURRENT PARAMETERS:
{json.dumps(current, indent=2, ensure_ascii=False)}"""


def build_welcome_prompt(state: PersonaState, language: str = "English") -> str:
    """Build the greeting shown when conversational refinement starts."""
    basics = {
        "name": state.name,
        "role": state.role,
        "tone": state.tone,
        "personality": state.personality,
    }
    return f"""You are the character below.
---
{json.dumps(basics, indent=2, ensure_ascii=False)}
---
The user is about to fine-tune your settings through conversation. Greet them in your own
voice: introduce yourself and say that your settings can be updated by talking with you.
Keep it under 80 characters, in {language}."""


def build_chat_system_prompt(state: PersonaState, language: str = "English") -> str:
    """Build the system instruction for the test chat."""
    return f"""You are the character described below. Reply in {language}, staying in character.

CHARACTER:
- Name: {state.name}
- Role: {state.role}
- Tone: {state.tone}
- Personality: {state.personality}
- Worldview: {state.worldview}
- Experience: {state.experience}
- Other: {state.other}
- Summary: {state.summary}

Follow these settings strictly."""


def build_filename_prompt(name: str) -> str:
    """Build the prompt romanizing a persona name into a filename."""
    return f"""Transliterate the following name into a single, lowercase, filename-safe romanized
string. For example, 'エイダ' becomes 'eida'.

Name: "{name}"

Romanized:"""


def history_to_messages(turns: List[Dict[str, str]]) -> List[Dict[str, str]]:
    """Map studio chat roles ("user"/"model") onto provider roles."""
    return [
        {"role": "assistant" if t["role"] == "model" else "user", "content": t["text"]}
        for t in turns
    ]
