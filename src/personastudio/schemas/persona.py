"""Persona schema definitions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Structured fields edited through the form (everything except the derived artifacts)
PARAMETER_FIELDS = ("name", "role", "tone", "personality", "worldview", "experience", "other")


class StudioModel(BaseModel):
    """Base model accepting both snake_case and camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class WebSource(StudioModel):
    """A web citation produced by search-backed generation."""

    title: str = "Unknown Source"
    uri: str


class MbtiScores(StudioModel):
    """Four personality axes, each 0-100."""

    mind: float = Field(ge=0.0, le=100.0)      # 0 introverted, 100 extraverted
    energy: float = Field(ge=0.0, le=100.0)    # 0 sensing, 100 intuitive
    nature: float = Field(ge=0.0, le=100.0)    # 0 thinking, 100 feeling
    tactics: float = Field(ge=0.0, le=100.0)   # 0 judging, 100 perceiving

    @field_validator("mind", "energy", "nature", "tactics", mode="before")
    @classmethod
    def _clamp(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return min(100.0, max(0.0, float(value)))
        return value


class MbtiProfile(StudioModel):
    """Personality classification attached to a persona by AI analysis."""

    type: str
    type_name: str = ""
    description: str = ""
    scores: MbtiScores

    @field_validator("type")
    @classmethod
    def _four_letter_code(cls, value: str) -> str:
        code = value.strip().upper()
        if len(code) != 4 or not code.isalpha():
            raise ValueError(f"expected a 4-letter type code, got {value!r}")
        return code


class PersonaState(StudioModel):
    """The editable field set of a persona, excluding identity and history."""

    name: str = ""
    role: str = ""
    tone: str = ""
    personality: str = ""
    worldview: str = ""
    experience: str = ""
    other: str = ""
    summary: str = ""
    short_summary: str = ""
    short_tone: str = ""
    sources: List[WebSource] = Field(default_factory=list)
    mbti_profile: Optional[MbtiProfile] = None

    def parameters(self) -> Dict[str, str]:
        """Return the structured form fields only."""
        return {key: getattr(self, key) for key in PARAMETER_FIELDS}

    def without_summary(self) -> "PersonaState":
        """Copy with the summary blanked, so it cannot anchor a regeneration."""
        return self.model_copy(update={"summary": ""}, deep=True)

    def merge_fields(self, updates: Mapping[str, Optional[str]]) -> "PersonaState":
        """
        Merge extracted or refined field values over this state.

        Keys that are missing or None leave the current value untouched.
        A blank `other` never replaces a non-empty one; every other
        structured field takes the incoming value.
        """
        merged: Dict[str, str] = {}
        for key in PARAMETER_FIELDS:
            value = updates.get(key)
            if value is None:
                continue
            if key == "other" and not value.strip() and self.other.strip():
                continue
            merged[key] = value
        return self.model_copy(update=merged, deep=True)

    def snapshot(self) -> "PersonaState":
        """Deep copy of just the state fields."""
        return PersonaState.model_validate(
            self.model_dump(include=set(PersonaState.model_fields))
        )


class PersonaHistoryEntry(StudioModel):
    """One saved revision: the state *before* an update plus a description."""

    model_config = ConfigDict(frozen=True)

    state: PersonaState
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    change_summary: str


class Persona(PersonaState):
    """A stored persona with stable identity and bounded edit history."""

    id: str
    history: List[PersonaHistoryEntry] = Field(default_factory=list)


class PersonaDraft(PersonaState):
    """State submitted for saving; `id` is set when editing an existing persona."""

    id: Optional[str] = None


class ExtractedParameters(StudioModel):
    """Structured fields returned by an extraction call."""

    name: str
    role: str
    tone: str
    personality: str
    worldview: str
    experience: str
    other: Optional[str] = None

    def as_updates(self) -> Dict[str, Optional[str]]:
        return self.model_dump()


def dedupe_sources(sources: Iterable[WebSource]) -> List[WebSource]:
    """Drop placeholder URIs and keep the first citation for each URI."""
    seen = set()
    unique: List[WebSource] = []
    for source in sources:
        if not source.uri or source.uri == "#" or source.uri in seen:
            continue
        seen.add(source.uri)
        unique.append(source)
    return unique
