"""Single-slot undo for AI actions that overwrite several fields at once."""

from __future__ import annotations

from typing import Optional

from personastudio.schemas import PersonaState


class UndoBuffer:
    """
    Holds at most one "last known good" snapshot.

    Arming twice without consuming keeps only the second snapshot. There is
    no redo: consuming always empties the buffer.
    """

    def __init__(self) -> None:
        self._snapshot: Optional[PersonaState] = None

    @property
    def armed(self) -> bool:
        return self._snapshot is not None

    def arm(self, snapshot: PersonaState) -> None:
        """Store a copy of the snapshot, replacing any previous one."""
        self._snapshot = snapshot.snapshot()

    def disarm(self) -> None:
        self._snapshot = None

    def consume(self) -> Optional[PersonaState]:
        """Return the stored snapshot (or None) and clear the buffer."""
        snapshot, self._snapshot = self._snapshot, None
        return snapshot
