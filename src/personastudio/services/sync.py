"""
Editor-session synchronization between structured parameters and the summary.

The SyncEngine owns one open editor session: the draft state, its undo
slot, a view over the persona's saved history, and the active tab. It keeps
parameters and summary in correspondence without fighting the user:

- parameter edits schedule a trailing-edge debounced summary refresh
  (passive, failures only logged);
- "Refresh Summary", "Sync from Summary", "From Doc", web research and
  personality analysis are explicit actions whose failures are raised and
  shown in the error banner;
- every open/close bumps a session token, and results that come back for
  an older token are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Mapping, Optional

from personastudio.errors import EmptyInputError, GatewayError, PersonaStudioError
from personastudio.schemas import (
    PARAMETER_FIELDS,
    MbtiProfile,
    Persona,
    PersonaDraft,
    PersonaHistoryEntry,
    PersonaState,
)
from personastudio.services.gateway import AIGateway
from personastudio.services.history import HISTORY_LIMIT, VersionHistory
from personastudio.services.undo import UndoBuffer

if TYPE_CHECKING:
    from personastudio.storage.store import PersonaStore

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.5


class EditorMode(str, Enum):
    """Which tab of the editor is active. Passive sync only runs in EDITOR."""

    EDITOR = "editor"
    AI_TOOLS = "ai_tools"
    CHAT = "chat"


class SyncTrigger(str, Enum):
    PASSIVE = "passive"    # debounced background refresh
    EXPLICIT = "explicit"  # user pressed a button


class SyncEngine:
    """Keeps one editor session's parameters and summary in sync."""

    def __init__(
        self,
        gateway: AIGateway,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        history_limit: int = HISTORY_LIMIT,
    ):
        self.gateway = gateway
        self.debounce_seconds = debounce_seconds
        self.history_limit = history_limit

        self.undo = UndoBuffer()
        self.history = VersionHistory(gateway, limit=history_limit, undo=self.undo)
        self.state = PersonaState()
        self.persona_id: Optional[str] = None
        self.mode = EditorMode.EDITOR
        self.error: Optional[str] = None
        self.is_open = False

        self._token = 0
        self._revision = 0
        self._debounce_task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self._pending = False
        self._stale_summary = False

    @property
    def token(self) -> int:
        """Current session token; incremented on every open and close."""
        return self._token

    @property
    def regeneration_pending(self) -> bool:
        debouncing = self._debounce_task is not None and not self._debounce_task.done()
        return debouncing or self._pending or self._refresh_owed()

    # --- Session lifecycle ---

    def open(self, persona: Optional[Persona] = None) -> None:
        """
        Start editing a persona (or a blank draft when None).

        Opening never schedules a summary refresh.
        """
        self._reset_session()
        self.state = persona.snapshot() if persona else PersonaState()
        self.persona_id = persona.id if persona else None
        self.history = VersionHistory(
            self.gateway,
            persona.history if persona else [],
            limit=self.history_limit,
            undo=self.undo,
        )
        self.is_open = True

    def close(self) -> None:
        """End the session; anything still in flight is discarded when it returns."""
        self._reset_session()
        self.is_open = False

    def _reset_session(self) -> None:
        self._cancel_debounce()
        self._token += 1
        self._pending = False
        self._stale_summary = False
        self._inflight = None
        self.undo.disarm()
        self.error = None
        self.mode = EditorMode.EDITOR

    def set_mode(self, mode: EditorMode) -> None:
        """
        Switch tabs. Leaving the editor postpones any queued refresh; coming
        back to it schedules one if parameters changed in the meantime.
        """
        self.mode = EditorMode(mode)
        if self.mode is not EditorMode.EDITOR:
            if self._debounce_task is not None:
                self._cancel_debounce()
                self._stale_summary = True
        elif self._refresh_owed():
            self._resume_refresh()

    def dismiss_error(self) -> None:
        self.error = None

    def draft(self) -> PersonaDraft:
        """The current state plus the id being edited, ready for PersonaStore.save."""
        return PersonaDraft(id=self.persona_id, **self.state.model_dump())

    # --- Direct edits ---

    def edit_field(self, name: str, value: str) -> None:
        """Edit one form field. Structured fields schedule a passive summary refresh."""
        if name == "summary":
            self.edit_summary(value)
            return
        if name not in PARAMETER_FIELDS:
            raise ValueError(f"Unknown persona field: {name}")
        if getattr(self.state, name) == value:
            return
        self.state = self.state.model_copy(update={name: value})
        self._parameters_changed(schedule=True)

    def edit_summary(self, text: str) -> None:
        """
        Edit the summary by hand. Never triggers extraction on its own, and a
        background refresh already in flight will not overwrite the edit.
        """
        self.state = self.state.model_copy(update={"summary": text})
        self._revision += 1

    def apply_parameter_updates(self, updates: Mapping[str, object]) -> PersonaState:
        """Merge partial string updates (e.g. from conversational refinement)."""
        clean = {
            key: value
            for key, value in updates.items()
            if key in PARAMETER_FIELDS and isinstance(value, str)
        }
        merged = self.state.merge_fields(clean)
        if merged.parameters() != self.state.parameters():
            self.state = merged
            self._parameters_changed(schedule=True)
        return self.state

    # --- Undo / revert ---

    def undo_last(self) -> bool:
        """Restore the state from before the last AI bulk edit. Returns False if nothing to undo."""
        snapshot = self.undo.consume()
        if snapshot is None:
            return False
        self.state = snapshot
        self._parameters_changed(schedule=False)
        return True

    def revert(self, entry: PersonaHistoryEntry) -> PersonaState:
        """Apply a saved revision; clears any pending undo."""
        self.state = self.history.revert(entry)
        self._parameters_changed(schedule=False)
        return self.state

    # --- Summary regeneration ---

    async def request_summary_regeneration(
        self, trigger: SyncTrigger = SyncTrigger.EXPLICIT
    ) -> Optional[str]:
        """
        Regenerate the summary from the structured fields.

        Returns the applied summary, or None when the request was skipped,
        failed passively, or its result went stale.

        Raises:
            EmptyInputError: explicit trigger with no name (no request sent)
            GatewayError: explicit trigger and the AI call failed
        """
        state = self.state
        if not state.name.strip():
            if trigger is SyncTrigger.EXPLICIT:
                raise self._surface(EmptyInputError("A name is required to generate a summary"))
            return None

        token, revision = self._token, self._revision
        if trigger is SyncTrigger.EXPLICIT:
            self.error = None

        try:
            summary = await self.gateway.generate_summary(state)
        except GatewayError as e:
            if trigger is SyncTrigger.PASSIVE:
                logger.warning("Background summary refresh failed: %s", e)
                return None
            if token == self._token:
                self._surface(e)
            raise

        if token != self._token:
            logger.debug("Dropping summary for a closed editor session")
            return None
        if trigger is SyncTrigger.PASSIVE and revision != self._revision:
            logger.debug("Dropping summary computed before later edits")
            return None

        self.state = self.state.model_copy(update={"summary": summary})
        return summary

    def _parameters_changed(self, schedule: bool) -> None:
        self._revision += 1
        if schedule:
            self._schedule_regeneration()
        else:
            # The summary now matches the parameters; drop any queued refresh
            self._cancel_debounce()
            self._pending = False
            self._stale_summary = False

    def _schedule_regeneration(self) -> None:
        if not self.is_open:
            return
        if self.mode is not EditorMode.EDITOR:
            # Picked up again by set_mode(EDITOR)
            self._stale_summary = True
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; passive summary refresh deferred")
            self._stale_summary = True
            return
        self._stale_summary = False
        self._cancel_debounce()
        self._debounce_task = loop.create_task(self._debounce(self._token))

    def _refresh_owed(self) -> bool:
        if self._stale_summary:
            return True
        # Tasks cancelled with a closed event loop before they could finish
        debounce, inflight = self._debounce_task, self._inflight
        return (debounce is not None and debounce.done()) or (
            inflight is not None and inflight.cancelled()
        )

    def _resume_refresh(self) -> None:
        if self._inflight is not None and self._inflight.cancelled():
            self._inflight = None
            self._pending = False
        self._schedule_regeneration()

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None

    async def _debounce(self, token: int) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._debounce_task = None
        if token != self._token:
            return
        if self.mode is not EditorMode.EDITOR:
            self._stale_summary = True
            return
        if self._inflight is not None and not self._inflight.done():
            # Coalesce: one request in flight, at most one pending behind it
            self._pending = True
            return
        self._inflight = asyncio.get_running_loop().create_task(self._run_passive(token))

    async def _run_passive(self, token: int) -> None:
        await self.request_summary_regeneration(SyncTrigger.PASSIVE)
        if token == self._token and self._pending:
            self._pending = False
            if self.mode is EditorMode.EDITOR:
                self._inflight = asyncio.get_running_loop().create_task(
                    self._run_passive(token)
                )
            else:
                self._stale_summary = True

    async def wait_idle(self) -> None:
        """
        Wait until no passive refresh is scheduled or running.

        A refresh owed from an earlier event loop is started first when the
        editor tab is active.
        """
        if self._refresh_owed() and self.mode is EditorMode.EDITOR:
            self._resume_refresh()
        while True:
            tasks = [
                task
                for task in (self._debounce_task, self._inflight)
                if task is not None and not task.done()
            ]
            if not tasks:
                return
            await asyncio.wait(tasks)

    # --- Bulk AI overwrites (undoable) ---

    async def request_extraction_from_summary(self) -> PersonaState:
        """
        Re-derive the structured fields from the summary text.

        Does not schedule a summary refresh afterwards, so the summary the
        user just wrote is left as is.
        """
        summary = self.state.summary
        if not summary.strip():
            raise self._surface(EmptyInputError("Summary is empty"))

        token = self._arm_undo()
        try:
            params = await self.gateway.extract_parameters(summary, source="summary")
        except GatewayError as e:
            raise self._disarm_after_failure(token, e)

        if token == self._token:
            self.state = self.state.merge_fields(params.as_updates())
            self._parameters_changed(schedule=False)
        return self.state

    async def request_extraction_from_document(self, document_text: str) -> PersonaState:
        """Fill the structured fields from an uploaded reference document."""
        if not document_text.strip():
            raise self._surface(EmptyInputError("Reference document is empty"))

        token = self._arm_undo()
        try:
            params = await self.gateway.extract_parameters(document_text, source="document")
        except GatewayError as e:
            raise self._disarm_after_failure(token, e)

        if token == self._token:
            self.state = self.state.merge_fields(params.as_updates())
            self._parameters_changed(schedule=True)
        return self.state

    async def request_web_generation(self, topic: str) -> PersonaState:
        """Research a topic on the web and fill the fields; sources are replaced wholesale."""
        if not topic.strip():
            raise self._surface(EmptyInputError("Topic is empty"))

        token = self._arm_undo()
        try:
            params, sources = await self.gateway.research_topic(topic)
        except GatewayError as e:
            raise self._disarm_after_failure(token, e)

        if token == self._token:
            merged = self.state.merge_fields(params.as_updates())
            self.state = merged.model_copy(update={"sources": sources})
            self._parameters_changed(schedule=True)
        return self.state

    async def request_personality_analysis(self) -> MbtiProfile:
        """Analyze the persona's MBTI profile; the result replaces any previous one."""
        if not self.state.name.strip():
            raise self._surface(EmptyInputError("A name is required for personality analysis"))

        token = self._token
        self.error = None
        try:
            profile = await self.gateway.analyze_personality(self.state)
        except GatewayError as e:
            if token == self._token:
                self._surface(e)
            raise

        if token == self._token:
            self.state = self.state.model_copy(update={"mbti_profile": profile})
        return profile

    def _arm_undo(self) -> int:
        self.error = None
        self.undo.arm(self.state)
        return self._token

    def _disarm_after_failure(self, token: int, error: GatewayError) -> GatewayError:
        # A failed overwrite leaves nothing to undo
        if token == self._token:
            self.undo.disarm()
            self._surface(error)
        return error

    def _surface(self, error: PersonaStudioError) -> PersonaStudioError:
        self.error = str(error)
        return error

    # --- Save ---

    async def save(self, store: "PersonaStore") -> Persona:
        """
        Save the draft through the store and continue editing the saved persona.

        Validation errors are shown in the banner and leave the draft untouched.
        """
        token = self._token
        try:
            persona = await store.save(self.draft())
        except PersonaStudioError as e:
            raise self._surface(e)
        if token == self._token:
            self.open(persona)
        return persona
