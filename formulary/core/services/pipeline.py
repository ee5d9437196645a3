"""
Install pipeline — resolve → build → verify, once per formula.

Within one formula the steps run strictly in order. Different formulas
share nothing but the store (read-only here), so ``install_many`` runs
them side by side on a thread pool; a failure in one never touches
another.

A binary that fails verification is not left behind as if it were
installed: it is removed, or kept as ``<name>.unverified`` when asked.
Every outcome is written to the audit ledger.
"""

from __future__ import annotations

import concurrent.futures
import logging
import os
import threading
import time
from collections.abc import Iterable
from pathlib import Path

from formulary.core.errors import BuildError, StoreError, VerificationError
from formulary.core.models.results import Artifact, InstallReport
from formulary.core.persistence.audit import AuditEntry, AuditWriter
from formulary.core.services.build import BuildOrchestrator
from formulary.core.services.formula_store import FormulaStore
from formulary.core.services.verify import InstallVerifier

logger = logging.getLogger(__name__)

UNVERIFIED_SUFFIX = ".unverified"


class Installer:
    """Drives the full pipeline for records in a store."""

    def __init__(
        self,
        store: FormulaStore,
        builder: BuildOrchestrator,
        verifier: InstallVerifier,
        prefix: Path,
        *,
        audit: AuditWriter | None = None,
        keep_unverified: bool = False,
    ):
        self.store = store
        self.builder = builder
        self.verifier = verifier
        self.prefix = prefix
        self.audit = audit
        self.keep_unverified = keep_unverified

    def install(
        self,
        name: str,
        version: str | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> InstallReport:
        """Install one formula. Never raises for per-formula failures."""
        start = time.monotonic()
        report = self._install(name, version, cancel)
        report.duration_ms = int((time.monotonic() - start) * 1000)

        if report.ok:
            logger.info("Installed %s %s", name, report.version)
        else:
            logger.error("Install of %s stopped at %s: %s", name, report.step, report.error)
        self._audit(report)
        return report

    def install_many(
        self,
        names: Iterable[str],
        *,
        version: str | None = None,
        jobs: int = 4,
        cancel: threading.Event | None = None,
    ) -> list[InstallReport]:
        """Install several formulas in parallel. Reports keep input order."""
        names = list(dict.fromkeys(names))
        if not names:
            return []
        if len(names) == 1 or jobs <= 1:
            return [self.install(n, version, cancel=cancel) for n in names]

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=min(jobs, len(names)),
            thread_name_prefix="install",
        ) as pool:
            futures = [pool.submit(self.install, n, version, cancel=cancel) for n in names]
            return [f.result() for f in futures]

    def reverify(self, name: str, version: str | None = None) -> InstallReport:
        """Run the verification step against an already-installed binary."""
        start = time.monotonic()
        try:
            record = self.store.resolve(name, version)
        except StoreError as e:
            report = InstallReport.failure(name, "resolve", str(e), version=version)
        else:
            path = self.prefix / record.name
            if not path.is_file():
                report = InstallReport.failure(
                    name, "verify", f"{path} is not installed", version=record.version,
                )
            else:
                try:
                    self.verifier.verify(path, record.expected_output, record.verification.args)
                    report = InstallReport(
                        name=name, version=record.version, status="ok", step="verify",
                    )
                except VerificationError as e:
                    report = InstallReport.failure(name, e.step, str(e), version=record.version)
        report.duration_ms = int((time.monotonic() - start) * 1000)
        self._audit(report, operation="verify")
        return report

    # ── Internals ───────────────────────────────────────────────

    def _install(
        self,
        name: str,
        version: str | None,
        cancel: threading.Event | None,
    ) -> InstallReport:
        try:
            record = self.store.resolve(name, version)
        except StoreError as e:
            return InstallReport.failure(name, "resolve", str(e), version=version)

        try:
            artifact = self.builder.build(record, self.prefix, cancel=cancel)
        except BuildError as e:
            return InstallReport.failure(name, e.step, str(e), version=record.version)

        try:
            self.verifier.verify(
                Path(artifact.path), record.expected_output, record.verification.args,
            )
        except VerificationError as e:
            self._quarantine(artifact)
            return InstallReport.failure(name, e.step, str(e), version=record.version)

        return InstallReport.success(name, artifact)

    def _quarantine(self, artifact: Artifact) -> None:
        path = Path(artifact.path)
        try:
            if self.keep_unverified:
                os.replace(path, path.with_name(path.name + UNVERIFIED_SUFFIX))
                logger.warning("Kept unverified binary as %s%s", path, UNVERIFIED_SUFFIX)
            else:
                path.unlink(missing_ok=True)
                logger.warning("Removed unverified binary %s", path)
        except OSError as e:
            logger.error("Cannot remove unverified binary %s: %s", path, e)

    def _audit(self, report: InstallReport, operation: str = "install") -> None:
        if self.audit is None:
            return
        context = {}
        if report.artifact is not None:
            context = {"path": report.artifact.path, "sha256": report.artifact.sha256}
        self.audit.write(AuditEntry(
            operation=operation,
            formula=report.name,
            version=report.version,
            status=report.status,
            step=report.step,
            error=report.error,
            duration_ms=report.duration_ms,
            context=context,
        ))
