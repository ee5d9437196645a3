"""
Formula loader — loads formula records from YAML files.

Formulas live in Formula/<name>.yml, one file per package name per
version lineage. A file is either a single flat record::

    name: zipcmt
    description: Zip Comment, the file comment viewer and extractor
    source_url: https://github.com/.../v1.4.6.tar.gz
    checksum: d5558c...
    version: 1.4.6
    ...

or a set of shared fields plus a ``versions`` list, where each entry
adds the per-release fields and may override shared ones::

    name: zipcmt
    description: ...
    versions:
      - version: 1.4.5
        source_url: ...
        checksum: ...
      - version: 1.4.6
        ...

Loading never stops at the first bad file: ``load_store`` registers
everything it can and reports the rest as issues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from formulary.core.errors import FormulaError, FormulaLoadError
from formulary.core.models.formula import FormulaRecord
from formulary.core.services.formula_store import FormulaStore

logger = logging.getLogger(__name__)

FORMULA_SUFFIXES = (".yml", ".yaml")


@dataclass
class LoadIssue:
    """A formula file or record that did not make it into the store."""

    path: Path
    error: str
    name: str = ""
    version: str = ""
    kind: str = "load"          # load, conflict

    def to_dict(self) -> dict[str, str]:
        return {
            "path": str(self.path),
            "name": self.name,
            "version": self.version,
            "kind": self.kind,
            "error": self.error,
        }


@dataclass
class LoadResult:
    store: FormulaStore
    files: list[Path] = field(default_factory=list)
    issues: list[LoadIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


def load_formula_file(path: Path) -> list[FormulaRecord]:
    """Load every record declared in one formula file.

    Raises:
        FormulaLoadError: The file is unreadable, not YAML, or a record
            fails validation.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise FormulaLoadError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise FormulaLoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise FormulaLoadError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    versions = data.pop("versions", None)
    if versions is None:
        entries = [data]
    elif isinstance(versions, list) and versions:
        entries = []
        for i, entry in enumerate(versions):
            if not isinstance(entry, dict):
                raise FormulaLoadError(f"{path}: versions[{i}] is not a mapping")
            entries.append({**data, **entry})
    else:
        raise FormulaLoadError(f"{path}: 'versions' must be a non-empty list")

    records: list[FormulaRecord] = []
    for entry in entries:
        try:
            records.append(FormulaRecord.model_validate(_normalize(entry)))
        except ValidationError as e:
            label = entry.get("name", path.stem)
            if entry.get("version") is not None:
                label = f"{label} {entry['version']}"
            raise FormulaLoadError(f"{path}: invalid formula {label}: {e}") from e

    logger.debug("Loaded %d record(s) from %s", len(records), path)
    return records


def discover_formula_files(formula_dir: Path) -> list[Path]:
    """All formula files in ``formula_dir``, sorted by name."""
    if not formula_dir.is_dir():
        logger.debug("Formula directory not found: %s", formula_dir)
        return []
    return sorted(
        p for p in formula_dir.iterdir()
        if p.is_file() and p.suffix in FORMULA_SUFFIXES
    )


def load_store(formula_dir: Path, store: FormulaStore | None = None) -> LoadResult:
    """Load every formula file in ``formula_dir`` into a store.

    Invalid files and rejected registrations are collected as issues;
    the records that did register stay resolvable.
    """
    result = LoadResult(store=store if store is not None else FormulaStore())
    result.files = discover_formula_files(formula_dir)

    for path in result.files:
        try:
            records = load_formula_file(path)
        except FormulaLoadError as e:
            logger.warning("Skipping %s: %s", path.name, e)
            result.issues.append(LoadIssue(path=path, error=str(e), name=path.stem))
            continue

        for record in records:
            try:
                result.store.register(record)
            except FormulaError as e:
                logger.warning("Rejected %s from %s: %s", record, path.name, e)
                result.issues.append(LoadIssue(
                    path=path,
                    error=str(e),
                    name=record.name,
                    version=record.version,
                    kind="conflict",
                ))

    logger.info(
        "Loaded %d formula record(s) from %d file(s), %d issue(s)",
        len(result.store), len(result.files), len(result.issues),
    )
    return result


def _normalize(entry: dict[str, Any]) -> dict[str, Any]:
    """Accept the shorthand spellings formula authors tend to write."""
    entry = dict(entry)

    deps = entry.get("dependencies")
    if isinstance(deps, list):
        entry["dependencies"] = [
            {"name": d} if isinstance(d, str) else d for d in deps
        ]

    verification = entry.get("verification")
    if isinstance(verification, dict) and isinstance(verification.get("args"), str):
        verification = dict(verification)
        verification["args"] = verification["args"].split()
        entry["verification"] = verification

    return entry
