"""Import and export persona records as JSON or JSONL files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Tuple

from personastudio.errors import ValidationError
from personastudio.schemas import Persona
from personastudio.storage import PersonaStore


class RecordImportError(Exception):
    """Exception raised for persona record file errors."""
    pass


class PersonaRecordImporter:
    """
    Move persona records between files and the store.

    Supports JSONL (one record per line) and JSON (a single record, an array
    of records, or an object wrapping them under "personas"). A record only
    needs a non-blank "name"; every other field is optional.
    """

    def __init__(self, store: PersonaStore):
        self.store = store

    def import_file(self, path: Path) -> Tuple[List[Persona], int]:
        """
        Import records from a file.

        Args:
            path: Path to JSONL or JSON file

        Returns:
            Tuple of (imported personas, skipped_invalid count)
        """
        if not path.exists():
            raise RecordImportError(f"File not found: {path}")

        records = self._read_records(path)

        imported: List[Persona] = []
        skipped = 0
        for record in records:
            try:
                imported.append(self.store.import_record(record))
            except ValidationError:
                skipped += 1
        return imported, skipped

    def export_file(self, persona_ids: Iterable[str], path: Path) -> int:
        """Write records to `path` (JSONL when the suffix is .jsonl). Returns the count."""
        records = [self.store.export_record(pid) for pid in persona_ids]
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            if path.suffix.lower() == ".jsonl":
                for record in records:
                    f.write(json.dumps(record, ensure_ascii=False) + "\n")
            elif len(records) == 1:
                json.dump(records[0], f, ensure_ascii=False, indent=2)
            else:
                json.dump(records, f, ensure_ascii=False, indent=2)
        return len(records)

    def _read_records(self, path: Path) -> List[Dict[str, Any]]:
        suffix = path.suffix.lower()

        if suffix == ".jsonl":
            return list(self._read_jsonl(path))
        if suffix == ".json":
            return self._read_json(path)
        # Try JSONL first, then JSON
        try:
            return list(self._read_jsonl(path))
        except RecordImportError:
            return self._read_json(path)

    def _read_jsonl(self, path: Path) -> Iterator[Dict[str, Any]]:
        """Read JSONL file (one JSON object per line)."""
        with open(path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    obj = json.loads(line)
                except json.JSONDecodeError as e:
                    raise RecordImportError(f"Invalid JSON on line {line_num}: {e}")
                if isinstance(obj, dict):
                    yield obj

    def _read_json(self, path: Path) -> List[Dict[str, Any]]:
        """Read JSON file (array of records or single record)."""
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise RecordImportError(f"Invalid JSON file: {e}")

        if isinstance(data, list):
            return [obj for obj in data if isinstance(obj, dict)]
        if isinstance(data, dict):
            if isinstance(data.get("personas"), list):
                return [obj for obj in data["personas"] if isinstance(obj, dict)]
            return [data]
        raise RecordImportError("JSON must be an array or object")

    def validate_file(self, path: Path) -> Tuple[bool, str]:
        """
        Validate a record file without importing.

        Returns (is_valid, message).
        """
        try:
            if not path.exists():
                return False, f"File not found: {path}"

            records = self._read_records(path)
            count = len(records)
            valid_count = sum(1 for r in records if self._is_valid_record(r))

            if count == 0:
                return False, "File contains no persona records"

            if valid_count == 0:
                return False, f"Found {count} records but none has a name"

            return True, f"Valid: {valid_count}/{count} records have a name"

        except RecordImportError as e:
            return False, str(e)
        except OSError as e:
            return False, f"Error reading file: {e}"

    def _is_valid_record(self, record: Dict[str, Any]) -> bool:
        name = record.get("name")
        return isinstance(name, str) and bool(name.strip())
