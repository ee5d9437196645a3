"""
Audit ledger — append-only log of installs, verifications and livechecks.

Every operation on a formula appends one JSON line to
``.state/audit.ndjson``. Entries are never rewritten; ``read_entries``
returns the tail of the file for the ``history`` command.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """A single audit log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation: str = ""            # install, verify, livecheck
    formula: str = ""
    version: str | None = None

    status: str = ""               # ok, failed, skipped
    step: str = ""                 # pipeline step that decided the status
    error: str | None = None
    duration_ms: int = 0

    context: dict[str, Any] = Field(default_factory=dict)


class AuditWriter:
    """Append-only audit ledger writer. Safe to share between threads."""

    def __init__(self, path: Path | None = None, state_dir: Path | None = None):
        if path is not None:
            self._path = path
        elif state_dir is not None:
            self._path = state_dir / DEFAULT_AUDIT_FILE
        else:
            self._path = Path(".state") / DEFAULT_AUDIT_FILE
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append an audit entry to the ledger."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False)
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        logger.debug(
            "Audit: %s %s %s → %s", entry.operation, entry.formula, entry.version, entry.status,
        )

    def read_entries(self, limit: int = 50) -> list[AuditEntry]:
        """The most recent ``limit`` entries, oldest first.

        Lines that are not valid entries are skipped.
        """
        if not self._path.is_file():
            return []

        tail: deque[str] = deque(maxlen=limit)
        with open(self._path, encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    tail.append(line)

        entries: list[AuditEntry] = []
        for line in tail:
            try:
                entries.append(AuditEntry.model_validate_json(line))
            except ValidationError as e:
                logger.warning("Skipping corrupt audit line in %s: %s", self._path, e)
        return entries
