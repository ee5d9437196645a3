"""
Build orchestrator — fetch, verify, extract, compile, install.

Each step is a checkpoint that fails on its own, with its own error:

    fetch      source_url → bytes                       FetchError
    checksum   sha256(bytes) == record.checksum         IntegrityError
    extract    bytes → source tree                      ExtractionError
    toolchain  source tree → binary (ldflags injected)  ToolchainError
    install    binary → <destination>/<name>            InstallError

The toolchain is never invoked before the checksum step passes.

All intermediate files live in a private staging directory inside the
destination; the finished binary is moved over ``<destination>/<name>``
with a single rename, so readers see either the old binary or the new
one, never a partial file. The staging directory is removed on every
exit path, including cancellation.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import stat
import tempfile
import threading
import time
from datetime import UTC, datetime
from pathlib import Path

from formulary.adapters.base import SourceExtractor, SourceHost, Toolchain
from formulary.core.errors import (
    BuildCancelled,
    ExtractionError,
    FetchError,
    InstallError,
    IntegrityError,
    ToolchainError,
)
from formulary.core.models.formula import FormulaRecord
from formulary.core.models.results import Artifact

logger = logging.getLogger(__name__)

# Go package whose string variables receive the injected values
LDFLAGS_PACKAGE = "main"

# Value the upstream program prints when a constant was not injected
UNSET = "unset"

_STAGING_PREFIX = ".formulary-build-"


def build_flags(record: FormulaRecord, *, now: datetime | None = None) -> list[str]:
    """Link flags for one record. Pure: same record, same flags.

    ``-s -w`` strip the symbol table and DWARF info; three ``-X`` flags
    inject version, commit and build date as string constants. A record
    without a pinned ``build_date`` gets the current time, which makes
    its builds differ only in that constant.
    """
    date = record.build_date or (now or datetime.now(UTC)).replace(microsecond=0).isoformat()
    return [
        "-s", "-w",
        "-X", f"{LDFLAGS_PACKAGE}.version={record.version}",
        "-X", f"{LDFLAGS_PACKAGE}.commit={record.build_commit or UNSET}",
        "-X", f"{LDFLAGS_PACKAGE}.date={date}",
    ]


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def file_sha256(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


class BuildOrchestrator:
    """Turns a formula record into an installed binary."""

    def __init__(
        self,
        source_host: SourceHost,
        extractor: SourceExtractor,
        toolchain: Toolchain,
        *,
        fetch_timeout: float = 120.0,
        build_timeout: float = 900.0,
    ):
        self.source_host = source_host
        self.extractor = extractor
        self.toolchain = toolchain
        self.fetch_timeout = fetch_timeout
        self.build_timeout = build_timeout

    def build(
        self,
        record: FormulaRecord,
        destination: Path,
        *,
        cancel: threading.Event | None = None,
    ) -> Artifact:
        """Build ``record`` and install the binary into ``destination``.

        Returns:
            The installed Artifact.

        Raises:
            BuildError: A subclass naming the step that failed. Nothing
                is left in ``destination`` in that case.
        """
        start = time.monotonic()
        target = destination / record.name
        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallError(record.name, f"cannot create {destination}: {e}") from e

        logger.info("Building %s into %s", record, destination)

        # ── 1. Fetch ──
        _check_cancel(record, cancel, "fetch")
        try:
            data = self.source_host.fetch(record.source_url, self.fetch_timeout)
        except FetchError as e:
            raise FetchError(record.name, e.reason) from e

        # ── 2. Checksum ──
        actual = sha256_hex(data)
        if actual != record.checksum:
            logger.error(
                "Checksum mismatch for %s: expected %s, got %s",
                record, record.checksum, actual,
            )
            raise IntegrityError(record.name, record.checksum, actual)
        logger.debug("Checksum OK for %s (%d bytes)", record, len(data))

        try:
            staging = Path(tempfile.mkdtemp(prefix=_STAGING_PREFIX, dir=destination))
        except OSError as e:
            raise InstallError(record.name, f"cannot stage build in {destination}: {e}") from e
        try:
            # ── 3. Extract ──
            _check_cancel(record, cancel, "extract")
            try:
                source_dir = self.extractor.extract(data, staging / "src")
            except ExtractionError as e:
                raise ExtractionError(record.name, e.reason) from e

            # ── 4. Toolchain ──
            _check_cancel(record, cancel, "toolchain")
            output = staging / "out" / record.name
            output.parent.mkdir(parents=True)
            result = self.toolchain.build(
                source_dir,
                output,
                build_flags(record),
                timeout=self.build_timeout,
                cancel=cancel,
            )
            if result.cancelled:
                raise BuildCancelled(record.name, "toolchain")
            if result.timed_out:
                raise ToolchainError(
                    record.name, f"{self.toolchain.name} timed out after {self.build_timeout}s",
                )
            if not result.ok:
                raise ToolchainError(
                    record.name, result.error or result.stderr, result.returncode,
                )
            if not output.is_file():
                raise ToolchainError(
                    record.name, f"{self.toolchain.name} exited 0 but produced no binary",
                )

            # ── 5. Install ──
            _check_cancel(record, cancel, "install")
            try:
                output.chmod(output.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
                os.replace(output, target)
            except OSError as e:
                raise InstallError(record.name, f"cannot install to {target}: {e}") from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        try:
            digest, size = file_sha256(target), target.stat().st_size
        except OSError as e:
            raise InstallError(record.name, f"cannot read installed {target}: {e}") from e

        artifact = Artifact(
            name=record.name,
            version=record.version,
            path=str(target),
            sha256=digest,
            size_bytes=size,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        logger.info("Installed %s → %s (%d bytes)", record, target, artifact.size_bytes)
        return artifact


def _check_cancel(record: FormulaRecord, cancel: threading.Event | None, step: str) -> None:
    if cancel is not None and cancel.is_set():
        raise BuildCancelled(record.name, step)
