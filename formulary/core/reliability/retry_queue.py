"""
Livecheck retry queue — formulas whose upstream could not be reached.

Only ``UpstreamUnavailable`` failures land here; they are the one
transient error class. Each formula is retried with exponential backoff
plus jitter until it succeeds or runs out of attempts.

Items are persisted to a JSON file so a scheduled ``livecheck --retry``
picks up where the last run left off.
"""

from __future__ import annotations

import json
import logging
import random
import threading
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_FILE = "livecheck-retry.json"


@dataclass
class RetryItem:
    """One formula waiting for another livecheck attempt."""

    name: str
    version: str
    attempt: int = 0
    max_attempts: int = 3
    next_retry_at: float = 0.0
    created_at: float = field(default_factory=time.time)
    last_error: str = ""

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts

    @property
    def ready(self) -> bool:
        return time.time() >= self.next_retry_at

    def schedule_retry(self, base_delay: float, max_delay: float) -> None:
        """Schedule the next attempt with exponential backoff + jitter."""
        self.attempt += 1
        delay = min(base_delay * (2 ** (self.attempt - 1)), max_delay)
        jitter = random.uniform(0, delay * 0.3)
        self.next_retry_at = time.time() + delay + jitter
        logger.debug(
            "Livecheck retry for '%s': attempt %d/%d in %.1fs",
            self.name, self.attempt, self.max_attempts, delay + jitter,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryItem:
        return cls(**data)


class RetryQueue:
    """Persistent, formula-keyed retry queue."""

    def __init__(
        self,
        path: Path | None = None,
        max_attempts: int = 3,
        base_delay: float = 30.0,
        max_delay: float = 3600.0,
    ):
        self._path = path
        self._items: dict[str, RetryItem] = {}
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._lock = threading.Lock()

        if path and path.is_file():
            self._load()

    @property
    def size(self) -> int:
        return len(self._items)

    def get(self, name: str) -> RetryItem | None:
        return self._items.get(name)

    def enqueue(self, name: str, version: str, error: str = "") -> RetryItem:
        """Queue ``name`` for another attempt (or bump its attempt count)."""
        with self._lock:
            item = self._items.get(name)
            if item is None:
                item = RetryItem(name=name, version=version, max_attempts=self._max_attempts)
                self._items[name] = item
            item.version = version
            item.last_error = error
            item.schedule_retry(self._base_delay, self._max_delay)
            if item.exhausted:
                logger.warning(
                    "Livecheck for '%s' exhausted after %d attempts: %s",
                    name, item.attempt, error,
                )
            self._save()
            return item

    def dequeue_ready(self) -> list[RetryItem]:
        """Items due for another attempt, soonest first."""
        with self._lock:
            ready = [i for i in self._items.values() if i.ready and not i.exhausted]
        return sorted(ready, key=lambda i: i.next_retry_at)

    def complete(self, name: str) -> None:
        """Drop ``name`` after a successful check."""
        with self._lock:
            if self._items.pop(name, None) is not None:
                self._save()

    def remove_exhausted(self) -> list[RetryItem]:
        with self._lock:
            exhausted = [i for i in self._items.values() if i.exhausted]
            for item in exhausted:
                del self._items[item.name]
            if exhausted:
                self._save()
        return exhausted

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._save()

    def get_status(self) -> dict[str, Any]:
        with self._lock:
            items = list(self._items.values())
        return {
            "total": len(items),
            "ready": sum(1 for i in items if i.ready and not i.exhausted),
            "exhausted": sum(1 for i in items if i.exhausted),
            "items": [i.to_dict() for i in items],
        }

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = [item.to_dict() for item in self._items.values()]
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp.replace(self._path)

    def _load(self) -> None:
        if self._path is None or not self._path.is_file():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            for item_data in data:
                item = RetryItem.from_dict(item_data)
                self._items[item.name] = item
            logger.info("Loaded %d livecheck retry item(s) from %s", len(self._items), self._path)
        except (json.JSONDecodeError, OSError, TypeError) as e:
            logger.warning("Failed to load retry queue: %s", e)
