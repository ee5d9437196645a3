"""
Result models — what the pipeline steps hand back to callers.

``UpdateCheck`` and ``Artifact`` are the success values of livecheck
and build. ``LivecheckResult`` and ``InstallReport`` wrap one record's
outcome when many records are processed at once, so a failure is
captured per record instead of aborting the batch.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class UpdateCheck(BaseModel):
    """Declared version vs the newest upstream release. Advisory only."""

    name: str
    current: str
    upstream: str | None = None
    is_stale: bool = False
    skipped: bool = False


class LivecheckResult(BaseModel):
    name: str
    version: str
    check: UpdateCheck | None = None
    error: str | None = None
    checked_at: str = Field(default_factory=_now_iso)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "version": self.version}
        if self.check is not None:
            data.update(
                upstream=self.check.upstream,
                is_stale=self.check.is_stale,
                skipped=self.check.skipped,
            )
        if self.error:
            data["error"] = self.error
        return data


class Artifact(BaseModel):
    """An installed binary produced by a build."""

    name: str
    version: str
    path: str
    sha256: str
    size_bytes: int = 0
    duration_ms: int = 0


class InstallReport(BaseModel):
    """Outcome of resolve → build → verify for one record.

    Like an adapter receipt, a report is returned for failures too:
    ``step`` names where the pipeline stopped and ``error`` says why.
    """

    name: str
    version: str | None = None
    status: Literal["ok", "failed"] = "ok"
    step: str = ""
    error: str | None = None
    artifact: Artifact | None = None
    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def success(cls, name: str, artifact: Artifact, **kwargs: Any) -> InstallReport:
        return cls(
            name=name,
            version=artifact.version,
            status="ok",
            step="done",
            artifact=artifact,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        name: str,
        step: str,
        error: str,
        **kwargs: Any,
    ) -> InstallReport:
        return cls(name=name, status="failed", step=step, error=error, **kwargs)
