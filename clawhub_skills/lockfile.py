"""Persisted record of installed skill versions (``.clawhub/lock.json``)."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from clawhub_skills.exceptions import LocalIOError
from clawhub_skills.logging import get_logger
from clawhub_skills.models import LockEntry, validate_slug

log = get_logger(__name__)

LOCK_FILENAME = "lock.json"


class LockRecord:
    """Map of slug -> ``{version, installedAt}`` stored as one JSON file.

    A missing or unreadable file reads as an empty record.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read_raw(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.warning("Ignoring unreadable lock file", path=str(self.path), error=str(e))
            return {}
        if not isinstance(payload, dict):
            return {}
        return payload

    def entries(self) -> dict[str, LockEntry]:
        result: dict[str, LockEntry] = {}
        for slug, raw in self._read_raw().items():
            entry = LockEntry.from_dict(raw) if isinstance(raw, dict) else None
            if entry is not None:
                result[str(slug)] = entry
        return result

    def get(self, slug: str) -> LockEntry | None:
        return self.entries().get(validate_slug(slug))

    def version_of(self, slug: str) -> str | None:
        entry = self.get(slug)
        return entry.version if entry else None

    def record(self, slug: str, version: str) -> LockEntry:
        """Insert or overwrite the entry for ``slug``."""
        safe_slug = validate_slug(slug)
        payload = self._read_raw()
        entry = LockEntry(version=version, installed_at=datetime.now(UTC).isoformat())
        payload[safe_slug] = entry.to_dict()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            raise LocalIOError(self.path, f"could not write lock file: {e}") from e
        return entry
