"""Tests for the undo slot and the bounded version history."""

from conftest import run

from personastudio.schemas import PersonaHistoryEntry, PersonaState
from personastudio.services import FALLBACK_CHANGE_SUMMARY, UndoBuffer, VersionHistory


class TestUndoBuffer:
    """Single-slot undo semantics."""

    def test_consume_returns_snapshot_once(self):
        buffer = UndoBuffer()
        buffer.arm(PersonaState(name="Ada"))

        assert buffer.armed
        assert buffer.consume() == PersonaState(name="Ada")
        assert buffer.consume() is None
        assert not buffer.armed

    def test_second_arm_replaces_first(self):
        buffer = UndoBuffer()
        buffer.arm(PersonaState(name="first"))
        buffer.arm(PersonaState(name="second"))

        assert buffer.consume().name == "second"
        assert buffer.consume() is None

    def test_disarm_clears(self):
        buffer = UndoBuffer()
        buffer.arm(PersonaState(name="Ada"))
        buffer.disarm()
        assert buffer.consume() is None

    def test_snapshot_is_a_copy(self):
        buffer = UndoBuffer()
        state = PersonaState(name="Ada")
        buffer.arm(state)

        restored = buffer.consume()
        assert restored == state
        assert restored is not state


class TestVersionHistory:
    """Change recording, capping and revert."""

    def test_record_change_stores_old_state(self, fake_gateway):
        history = VersionHistory(fake_gateway)
        old = PersonaState(name="Ada")
        new = PersonaState(name="Ada", role="Detective")

        entry = run(history.record_change(old, new))

        assert entry.state == old
        assert entry.state.role == ""
        assert entry.change_summary == "Changed the role."
        assert entry.timestamp.tzinfo is not None

    def test_gateway_failure_uses_fallback(self, fake_gateway, gateway_error):
        fake_gateway.change_error = gateway_error
        history = VersionHistory(fake_gateway)

        entry = run(history.record_change(PersonaState(name="a"), PersonaState(name="b")))

        assert entry.change_summary == FALLBACK_CHANGE_SUMMARY

    def test_blank_description_uses_fallback(self, fake_gateway):
        fake_gateway.change_summary = "   "
        history = VersionHistory(fake_gateway)

        entry = run(history.record_change(PersonaState(name="a"), PersonaState(name="b")))

        assert entry.change_summary == FALLBACK_CHANGE_SUMMARY

    def test_push_keeps_newest_ten(self, fake_gateway):
        history = VersionHistory(fake_gateway)
        for i in range(11):
            history.push(PersonaHistoryEntry(state=PersonaState(name=f"v{i}"), change_summary=f"save {i}"))

        assert len(history) == 10
        assert history.entries[0].change_summary == "save 10"
        assert history.entries[-1].change_summary == "save 1"

    def test_initial_entries_are_truncated(self, fake_gateway):
        entries = [
            PersonaHistoryEntry(state=PersonaState(name=str(i)), change_summary=str(i))
            for i in range(15)
        ]
        history = VersionHistory(fake_gateway, entries, limit=10)
        assert len(history) == 10
        assert history.entries[0].change_summary == "0"

    def test_revert_returns_snapshot_and_clears_undo(self, fake_gateway):
        undo = UndoBuffer()
        undo.arm(PersonaState(name="pending"))
        history = VersionHistory(fake_gateway, undo=undo)
        entry = PersonaHistoryEntry(state=PersonaState(name="Ada", role="Clerk"), change_summary="x")

        restored = history.revert(entry)

        assert restored == entry.state
        assert restored is not entry.state
        assert not undo.armed
