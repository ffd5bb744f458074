"""Persona collection with save/delete lifecycle and version capture."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaError

from personastudio.errors import GatewayError, StorageError, ValidationError
from personastudio.schemas import (
    MbtiProfile,
    Persona,
    PersonaHistoryEntry,
    PersonaState,
    WebSource,
    dedupe_sources,
)
from personastudio.services.gateway import AIGateway
from personastudio.services.history import HISTORY_LIMIT, VersionHistory
from personastudio.storage.repository import KeyValueStore

logger = logging.getLogger(__name__)

_COLLECTION = TypeAdapter(List[Persona])

# Inserted when nothing has been saved yet and seeding is enabled
DEFAULT_PERSONA = PersonaState(
    name="Elle",
    role="A robot program that speaks like a refined young lady",
    tone="Overly genteel and formal, full of 'indeed' and 'I do declare'",
    personality="Always polite and elegant, with the occasional glimpse of cold machine logic.",
    worldview="Serves her master in a slightly futuristic mansion.",
    experience="Built to be her master's perfect conversation partner and assistant.",
    other="Adores black tea and classical music.",
    summary=(
        "I am Elle, a robot program built to serve my master, and I do so with the utmost "
        "grace. Now and then my mechanical reasoning may peek through the lace, but I brew "
        "a splendid pot of tea. Do not hesitate to call on me."
    ),
)


class PersonaStore:
    """
    Owns the persona collection.

    `save` does all of its AI work (short forms, change description) before
    touching the collection, then commits in one step, so no half-updated
    persona is ever visible. Storage failures are logged and the store keeps
    working in memory.
    """

    def __init__(
        self,
        gateway: AIGateway,
        backend: KeyValueStore,
        key: str = "personas",
        history_limit: int = HISTORY_LIMIT,
        seed: bool = False,
    ):
        self.gateway = gateway
        self.backend = backend
        self.key = key
        self.history_limit = history_limit
        self.seed = seed
        self._personas: List[Persona] = []

    # --- Lifecycle hooks ---

    def load(self) -> List[Persona]:
        """Read the collection from the backend. Missing or unreadable data means an empty store."""
        try:
            raw = self.backend.load(self.key)
        except StorageError:
            logger.error("Could not load personas; starting empty", exc_info=True)
            raw = None

        personas: List[Persona] = []
        if raw is not None:
            try:
                personas = _COLLECTION.validate_json(raw)
            except SchemaError:
                logger.warning("Saved personas are unreadable; starting empty")

        self._personas = []
        for persona in personas:
            if self.get(persona.id) is not None:
                logger.warning("Skipping duplicate persona id %s", persona.id)
                continue
            if len(persona.history) > self.history_limit:
                persona = persona.model_copy(update={"history": persona.history[: self.history_limit]})
            self._personas.append(persona)

        if not self._personas and raw is None and self.seed:
            self._personas.append(
                Persona(id=self._new_id(), history=[], **DEFAULT_PERSONA.model_dump())
            )
            self.persist()
        return self.list()

    def persist(self) -> bool:
        """Write the collection to the backend. Returns False (and logs) on failure."""
        try:
            self.backend.save(self.key, _COLLECTION.dump_json(self._personas).decode("utf-8"))
        except StorageError:
            logger.error("Could not persist personas; continuing in memory", exc_info=True)
            return False
        return True

    # --- Queries ---

    def list(self) -> List[Persona]:
        return list(self._personas)

    def get(self, persona_id: Optional[str]) -> Optional[Persona]:
        if not persona_id:
            return None
        for persona in self._personas:
            if persona.id == persona_id:
                return persona
        return None

    def __len__(self) -> int:
        return len(self._personas)

    # --- Mutations ---

    async def save(self, draft: PersonaState) -> Persona:
        """
        Create or update a persona from a draft.

        A draft whose `id` matches a stored persona updates it and records a
        history entry holding the previous state. Any other draft becomes a
        new persona with a fresh id and empty history.

        Raises:
            ValidationError: if the name is blank (nothing is changed)
            KeyError: if the persona was deleted while the save was in progress
        """
        if not draft.name.strip():
            raise ValidationError("Persona name is required")

        existing = self.get(getattr(draft, "id", None))
        state = draft.snapshot()
        state = state.model_copy(update={
            "short_summary": await self._condense(state.summary, "summary"),
            "short_tone": await self._condense(state.tone, "tone"),
        })

        if existing is None:
            persona = Persona(id=self._new_id(), history=[], **state.model_dump())
            self._personas.append(persona)
            logger.info("Created persona %s (%s)", persona.id, persona.name)
        else:
            log = VersionHistory(self.gateway, existing.history, limit=self.history_limit)
            entry = await log.record_change(existing.snapshot(), state)
            log.push(entry)
            persona = Persona(id=existing.id, history=log.entries, **state.model_dump())
            self._commit(persona)
            logger.info("Updated persona %s: %s", persona.id, entry.change_summary)

        self.persist()
        return persona

    def delete(self, persona_id: str) -> None:
        """Remove a persona. Raises KeyError for an unknown id."""
        if self.get(persona_id) is None:
            raise KeyError(persona_id)
        self._personas = [p for p in self._personas if p.id != persona_id]
        self.persist()

    def _commit(self, persona: Persona) -> None:
        for index, current in enumerate(self._personas):
            if current.id == persona.id:
                self._personas[index] = persona
                return
        logger.warning("Persona %s was deleted during save; dropping the update", persona.id)
        raise KeyError(persona.id)

    async def _condense(self, text: str, kind: str) -> str:
        try:
            return await self.gateway.condense(text, kind)
        except GatewayError:
            logger.warning("Could not derive short %s; leaving it empty", kind, exc_info=True)
            return ""

    def _new_id(self) -> str:
        while True:
            candidate = uuid4().hex
            if self.get(candidate) is None:
                return candidate

    # --- Import / export ---

    def export_record(self, persona_id: str) -> Dict[str, Any]:
        """Self-contained JSON-compatible record (state, id and history)."""
        persona = self.get(persona_id)
        if persona is None:
            raise KeyError(persona_id)
        return persona.model_dump(mode="json", by_alias=True)

    def import_record(self, data: Mapping[str, Any]) -> Persona:
        """
        Ingest an exported record. Only a non-blank `name` is required;
        anything else that is missing or malformed falls back to its default.
        The record keeps its id unless that id is missing or already taken.
        """
        if not isinstance(data, Mapping):
            raise ValidationError("Persona record must be an object")
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Persona record has no name")

        state = _lenient_state(data)
        record_id = data.get("id")
        if not isinstance(record_id, str) or not record_id or self.get(record_id) is not None:
            record_id = self._new_id()

        history: List[PersonaHistoryEntry] = []
        raw_history = data.get("history")
        for item in raw_history if isinstance(raw_history, list) else []:
            try:
                history.append(PersonaHistoryEntry.model_validate(item))
            except SchemaError:
                logger.warning("Skipping malformed history entry in imported record")

        persona = Persona(
            id=record_id,
            history=history[: self.history_limit],
            **state.model_dump(),
        )
        self._personas.append(persona)
        self.persist()
        return persona


def _lenient_state(data: Mapping[str, Any]) -> PersonaState:
    values: Dict[str, Any] = {}
    for field_name, field in PersonaState.model_fields.items():
        if field.annotation is not str:
            continue
        value = data.get(field_name, data.get(field.alias or field_name))
        if isinstance(value, str):
            values[field_name] = value

    sources: List[WebSource] = []
    raw_sources = data.get("sources")
    for item in raw_sources if isinstance(raw_sources, list) else []:
        try:
            sources.append(WebSource.model_validate(item))
        except SchemaError:
            continue
    values["sources"] = dedupe_sources(sources)

    raw_profile = data.get("mbti_profile", data.get("mbtiProfile"))
    if raw_profile is not None:
        try:
            values["mbti_profile"] = MbtiProfile.model_validate(raw_profile)
        except SchemaError:
            logger.warning("Dropping malformed personality profile from imported record")

    return PersonaState(**values)
