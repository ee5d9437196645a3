"""
Formula store — every known formula record, keyed by name.

The store is the only component holding cross-record state, so it is
where naming and integrity conflicts are caught:

    same (name, version), different checksum        → IntegrityConflict
    same (source_url, version), different checksum  → IntegrityConflict
    name equal to a registered one except for case  → NameConflict

A rejected registration leaves the store exactly as it was; the record
registered first stays authoritative. Different names that share a
checksum or a source URL are aliases: both are kept, and the
relationship is recorded for reporting.

Registration is serialized by a lock so the conflict check and the
insert are one atomic step.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Iterable, Iterator

from formulary.core.errors import FormulaNotFound, IntegrityConflict, NameConflict
from formulary.core.models.formula import FormulaRecord
from formulary.core.models.version import Version

logger = logging.getLogger(__name__)


class FormulaStore:
    """Thread-safe registry of formula records."""

    def __init__(self, records: Iterable[FormulaRecord] = ()):
        self._lock = threading.Lock()
        # name → version → record
        self._records: dict[str, dict[str, FormulaRecord]] = {}
        # casefolded name → registered spelling
        self._folded: dict[str, str] = {}
        # (source_url, version) → record
        self._by_source: dict[tuple[str, str], FormulaRecord] = {}
        # checksum → names / source_url → names
        self._by_checksum: dict[str, set[str]] = defaultdict(set)
        self._by_url: dict[str, set[str]] = defaultdict(set)

        for record in records:
            self.register(record)

    # ── Registration ────────────────────────────────────────────

    def register(self, record: FormulaRecord) -> FormulaRecord:
        """Add a record to the store.

        Returns the stored record (the existing one when an identical
        record was already registered).

        Raises:
            IntegrityConflict: The release is already registered with a
                different checksum.
            NameConflict: The name differs only by case from a
                registered name.
        """
        with self._lock:
            existing_name = self._folded.get(record.name.casefold())
            if existing_name is not None and existing_name != record.name:
                raise NameConflict(record.name, existing_name)

            existing = self._records.get(record.name, {}).get(record.version)
            if existing is not None:
                if existing.checksum != record.checksum:
                    raise IntegrityConflict(
                        record.name,
                        record.version,
                        existing.checksum,
                        record.checksum,
                    )
                logger.debug("Formula %s already registered, skipping", record)
                return existing

            same_source = self._by_source.get((record.source_url, record.version))
            if same_source is not None and same_source.checksum != record.checksum:
                raise IntegrityConflict(
                    record.name,
                    record.version,
                    same_source.checksum,
                    record.checksum,
                    source_url=record.source_url,
                )

            # ── Commit ──
            self._records.setdefault(record.name, {})[record.version] = record
            self._folded[record.name.casefold()] = record.name
            self._by_source.setdefault((record.source_url, record.version), record)
            self._by_checksum[record.checksum].add(record.name)
            self._by_url[record.source_url].add(record.name)

            aliases = self._aliases_locked(record.name)
            if aliases:
                logger.info(
                    "Registered %s (alias of %s)", record, ", ".join(sorted(aliases)),
                )
            else:
                logger.debug("Registered %s", record)
            return record

    # ── Lookup ──────────────────────────────────────────────────

    def resolve(self, name: str, version: str | None = None) -> FormulaRecord:
        """Return the highest version of ``name``, or exactly ``version``.

        Raises:
            FormulaNotFound: Nothing is registered under that name/version.
        """
        with self._lock:
            versions = self._records.get(name)
            if not versions:
                raise FormulaNotFound(name, version)
            if version is not None:
                record = versions.get(version)
                if record is None:
                    # Accept "v1.4.6" or "1.4"-style spellings of the same version
                    record = _match_version(versions.values(), version)
                if record is None:
                    raise FormulaNotFound(name, version)
                return record
            return max(versions.values(), key=lambda r: r.parsed_version)

    def aliases_of(self, name: str) -> set[str]:
        """Other names whose records share a checksum or source URL with ``name``."""
        with self._lock:
            if name not in self._records:
                raise FormulaNotFound(name)
            return self._aliases_locked(name)

    def versions(self, name: str) -> list[str]:
        """Registered versions of ``name``, lowest first."""
        with self._lock:
            versions = self._records.get(name)
            if not versions:
                raise FormulaNotFound(name)
            return [r.version for r in sorted(versions.values(), key=lambda r: r.parsed_version)]

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._records)

    def records(self) -> list[FormulaRecord]:
        """Every record, grouped by name, lowest version first."""
        with self._lock:
            return [
                record
                for name in sorted(self._records)
                for record in sorted(
                    self._records[name].values(), key=lambda r: r.parsed_version,
                )
            ]

    def latest(self) -> list[FormulaRecord]:
        """The highest-version record of every name."""
        return [self.resolve(name) for name in self.names()]

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._records

    def __len__(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._records.values())

    def __iter__(self) -> Iterator[FormulaRecord]:
        return iter(self.records())

    # ── Internals ───────────────────────────────────────────────

    def _aliases_locked(self, name: str) -> set[str]:
        aliases: set[str] = set()
        for record in self._records.get(name, {}).values():
            aliases |= self._by_checksum.get(record.checksum, set())
            aliases |= self._by_url.get(record.source_url, set())
        aliases.discard(name)
        return aliases


def _match_version(records: Iterable[FormulaRecord], version: str) -> FormulaRecord | None:
    wanted = Version.try_parse(version)
    if wanted is None:
        return None
    for record in records:
        if record.parsed_version == wanted:
            return record
    return None
