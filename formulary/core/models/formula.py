"""
Formula record — the declarative description of one package release.

A record says where the source lives, what it must hash to, how the
build stamps version metadata into the binary, how upstream is polled
for new releases, and how the installed binary is smoke-tested.

Records are plain immutable data. Anything that looks like behavior
(the build flags, the upstream repo) is derived by pure functions from
the fields below.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from formulary.core.models.version import Version

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9@._+-]*$")
_SHA256_RE = re.compile(r"^[0-9a-f]{64}$")
_COMMIT_RE = re.compile(r"^[0-9a-f]{7,40}$")

# Path fragments that point at a moving branch rather than a release
_MOVING_REFS = ("main", "master", "head", "trunk", "develop")
_BRANCH_PATH_RE = re.compile(
    r"/(?:archive|tarball|zipball)/(?:refs/heads/[^/]+|(?:%s)(?:\.tar\.gz|\.tgz|\.zip)?)(?:/|$)"
    % "|".join(_MOVING_REFS),
    re.IGNORECASE,
)

_GITHUB_HOSTS = ("github.com", "www.github.com")


class LivecheckStrategy(StrEnum):
    """How the upstream host is polled for new releases."""

    LATEST_RELEASE_TAG = "latest-release-tag"
    HIGHEST_TAG = "highest-tag"
    SKIP = "skip"


class DependencyStage(StrEnum):
    BUILD = "build"
    RUN = "run"


class Dependency(BaseModel):
    """Another formula needed at build time or at run time."""

    model_config = ConfigDict(frozen=True)

    name: str
    stage: DependencyStage = DependencyStage.RUN


class VerificationCommand(BaseModel):
    """Post-install smoke test: run the binary, expect a substring."""

    model_config = ConfigDict(frozen=True)

    args: tuple[str, ...] = ("--version",)
    expect: str = ""   # empty = the formula's own name


class FormulaRecord(BaseModel):
    """One release of one formula.

    ``(name, version)`` identifies a record inside a store. Two names
    may describe the same upstream artifact (aliases); they remain
    separate records.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    description: str
    homepage: str
    source_url: str
    checksum: str                       # sha256 hex digest of source_url
    version: str
    license: str = ""                   # SPDX identifier, informational

    # Embedded into the binary at link time, never verified
    build_commit: str | None = None
    build_date: str | None = None

    livecheck_strategy: LivecheckStrategy = LivecheckStrategy.LATEST_RELEASE_TAG
    dependencies: frozenset[Dependency] = Field(default_factory=frozenset)
    verification: VerificationCommand = Field(default_factory=VerificationCommand)

    # ── Field validation ─────────────────────────────────────────

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        if not _NAME_RE.match(v):
            raise ValueError(f"invalid formula name: {v!r}")
        return v

    @field_validator("description")
    @classmethod
    def _check_description(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("description must not be empty")
        return v

    @field_validator("homepage", "source_url")
    @classmethod
    def _check_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"not a well-formed http(s) URL: {v!r}")
        return v

    @field_validator("checksum", mode="before")
    @classmethod
    def _check_checksum(cls, v: str) -> str:
        if not isinstance(v, str):
            raise ValueError("checksum must be a string")
        v = v.strip().lower().removeprefix("sha256:")
        if not _SHA256_RE.match(v):
            raise ValueError(f"checksum must be a 64-character sha256 hex digest: {v!r}")
        return v

    @field_validator("version", mode="before")
    @classmethod
    def _check_version(cls, v: object) -> str:
        # YAML reads 1.4 as a float
        v = str(v).strip()
        Version.parse(v)
        return v

    @field_validator("build_commit")
    @classmethod
    def _check_commit(cls, v: str | None) -> str | None:
        if v is not None and not _COMMIT_RE.match(v):
            raise ValueError(f"build_commit must be a hex commit hash: {v!r}")
        return v

    @field_validator("build_date", mode="before")
    @classmethod
    def _check_build_date(cls, v: object) -> str | None:
        if v is None:
            return None
        # YAML may already have turned the timestamp into a datetime
        if isinstance(v, datetime):
            return v.isoformat()
        try:
            parsed = datetime.fromisoformat(str(v))
        except ValueError as e:
            raise ValueError(f"build_date must be ISO-8601: {v!r}") from e
        # Canonical form has no spaces; go splits -ldflags on whitespace
        return parsed.isoformat()

    @model_validator(mode="after")
    def _check_tag_pinned(self) -> FormulaRecord:
        path = urlparse(self.source_url).path
        if _BRANCH_PATH_RE.search(path):
            raise ValueError(
                f"source_url points at a moving branch, not a release: {self.source_url}"
            )
        if not _version_in_path(self.version, path):
            raise ValueError(
                f"source_url is not pinned to version {self.version}: {self.source_url}"
            )
        return self

    # ── Derived values ───────────────────────────────────────────

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.version)

    @property
    def parsed_version(self) -> Version:
        return Version.parse(self.version)

    @property
    def expected_output(self) -> str:
        """Substring the verification run must print."""
        return self.verification.expect or self.name

    @property
    def build_dependencies(self) -> list[str]:
        return sorted(d.name for d in self.dependencies if d.stage == DependencyStage.BUILD)

    @property
    def runtime_dependencies(self) -> list[str]:
        return sorted(d.name for d in self.dependencies if d.stage == DependencyStage.RUN)

    @property
    def upstream_repo(self) -> str | None:
        """``owner/repo`` on GitHub, from the stable URL or the homepage."""
        return github_repo(self.source_url) or github_repo(self.homepage)

    def __str__(self) -> str:
        return f"{self.name} {self.version}"


def _version_in_path(version: str, path: str) -> bool:
    """True if ``version`` appears in ``path`` as a whole version.

    ``1.4.6`` matches ``v1.4.6.tar.gz`` and ``zipcmt-1.4.6/`` but not
    ``v1.4.60`` or ``v11.4.6``; ``1.4`` does not match ``v1.4.6``.
    """
    pattern = rf"(?<![0-9.]){re.escape(version)}(?![0-9]|\.[0-9])"
    return re.search(pattern, path) is not None


def github_repo(url: str) -> str | None:
    """Extract ``owner/repo`` from a github.com URL, or None."""
    parsed = urlparse(url)
    if parsed.netloc.lower() not in _GITHUB_HOSTS:
        return None
    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        return None
    repo = parts[1].removesuffix(".git")
    return f"{parts[0]}/{repo}"
