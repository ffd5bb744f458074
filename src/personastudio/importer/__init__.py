"""Persona record import/export."""

from personastudio.importer.records import PersonaRecordImporter, RecordImportError

__all__ = ["PersonaRecordImporter", "RecordImportError"]
