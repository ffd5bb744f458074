"""Bounded version history with AI-written change descriptions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from personastudio.errors import GatewayError
from personastudio.schemas import PersonaHistoryEntry, PersonaState
from personastudio.services.gateway import AIGateway
from personastudio.services.undo import UndoBuffer

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 10
FALLBACK_CHANGE_SUMMARY = "Parameters were updated."


class VersionHistory:
    """
    Most-recent-first log of saved revisions, capped at `limit` entries.

    Each entry stores the state *before* the save, so reverting to it
    restores the previous version.
    """

    def __init__(
        self,
        gateway: AIGateway,
        entries: Optional[Iterable[PersonaHistoryEntry]] = None,
        limit: int = HISTORY_LIMIT,
        undo: Optional[UndoBuffer] = None,
    ):
        self.gateway = gateway
        self.limit = limit
        self.undo = undo
        self._entries: List[PersonaHistoryEntry] = list(entries or [])[:limit]

    @property
    def entries(self) -> List[PersonaHistoryEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    async def record_change(self, old: PersonaState, new: PersonaState) -> PersonaHistoryEntry:
        """
        Build an entry for a save. Never raises: when the gateway fails or
        returns nothing, a fixed description is used instead.
        """
        try:
            change_summary = await self.gateway.describe_change(old, new)
        except GatewayError:
            logger.warning("Change description failed; using fallback", exc_info=True)
            change_summary = ""

        return PersonaHistoryEntry(
            state=old.snapshot(),
            timestamp=datetime.now(timezone.utc),
            change_summary=change_summary.strip() or FALLBACK_CHANGE_SUMMARY,
        )

    def push(self, entry: PersonaHistoryEntry) -> None:
        """Prepend an entry, dropping the oldest beyond the limit."""
        self._entries = [entry, *self._entries][: self.limit]

    def revert(self, entry: PersonaHistoryEntry) -> PersonaState:
        """Return the entry's snapshot to apply; any pending undo is discarded."""
        if self.undo is not None:
            self.undo.disarm()
        return entry.state.snapshot()
