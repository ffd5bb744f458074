"""Core services for Persona Studio operations."""

from personastudio.services.chat import RefinementChat, TestChat
from personastudio.services.gateway import AIGateway
from personastudio.services.history import FALLBACK_CHANGE_SUMMARY, HISTORY_LIMIT, VersionHistory
from personastudio.services.sync import EditorMode, SyncEngine, SyncTrigger
from personastudio.services.undo import UndoBuffer

__all__ = [
    "AIGateway",
    "SyncEngine",
    "SyncTrigger",
    "EditorMode",
    "VersionHistory",
    "UndoBuffer",
    "HISTORY_LIMIT",
    "FALLBACK_CHANGE_SUMMARY",
    "TestChat",
    "RefinementChat",
]
