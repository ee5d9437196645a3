"""
Error taxonomy — every failure a formula can hit, per pipeline step.

All errors are per-record: they carry the formula name (and, for
build errors, the step that failed) so a caller processing many
formulas can report precisely which one broke and where, then move on.

Only ``UpstreamUnavailable`` is transient. Integrity and conflict
errors are deterministic and are never retried.
"""

from __future__ import annotations


class FormulaError(Exception):
    """Base class for all formulary errors."""


class ConfigError(FormulaError):
    """Raised when formulary.yml is invalid or unreadable."""


class FormulaLoadError(FormulaError):
    """Raised when a formula file cannot be parsed or validated."""


# ── Store ───────────────────────────────────────────────────────


class StoreError(FormulaError):
    """Base class for registration and lookup failures."""


class IntegrityConflict(StoreError):
    """Two records disagree on the checksum of the same release."""

    def __init__(
        self,
        name: str,
        version: str,
        existing_checksum: str,
        incoming_checksum: str,
        *,
        source_url: str | None = None,
    ):
        self.name = name
        self.version = version
        self.existing_checksum = existing_checksum
        self.incoming_checksum = incoming_checksum
        self.source_url = source_url
        where = f" (source {source_url})" if source_url else ""
        super().__init__(
            f"Integrity conflict for {name} {version}{where}: "
            f"registered checksum {existing_checksum}, "
            f"incoming checksum {incoming_checksum}"
        )


class NameConflict(StoreError):
    """A name collides with an existing name that differs only by case."""

    def __init__(self, name: str, existing_name: str):
        self.name = name
        self.existing_name = existing_name
        super().__init__(
            f"Formula name '{name}' conflicts with registered name '{existing_name}'"
        )


class FormulaNotFound(StoreError):
    def __init__(self, name: str, version: str | None = None):
        self.name = name
        self.version = version
        label = f"{name} {version}" if version else name
        super().__init__(f"No formula registered for {label}")


# ── Livecheck ───────────────────────────────────────────────────


class UpstreamUnavailable(FormulaError):
    """The upstream host could not answer a release query.

    Advisory only: it never blocks a build and callers may retry it
    with backoff.
    """

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Upstream unavailable for {name}: {reason}")


# ── Build ───────────────────────────────────────────────────────


class BuildError(FormulaError):
    """A build step failed. Nothing was installed."""

    step = "build"

    def __init__(self, name: str, message: str):
        self.name = name
        self.reason = message
        super().__init__(f"{name}: {self.step} failed: {message}")


class FetchError(BuildError):
    step = "fetch"


class IntegrityError(BuildError):
    """Fetched bytes do not match the declared checksum."""

    step = "checksum"

    def __init__(self, name: str, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(name, f"expected sha256 {expected}, got {actual}")


class ExtractionError(BuildError):
    step = "extract"


class ToolchainError(BuildError):
    step = "toolchain"

    def __init__(self, name: str, stderr: str, returncode: int | None = None):
        self.stderr = stderr
        self.returncode = returncode
        detail = stderr.strip() or f"exit code {returncode}"
        super().__init__(name, detail)


class InstallError(BuildError):
    step = "install"


class BuildCancelled(BuildError):
    step = "cancelled"

    def __init__(self, name: str, during: str):
        self.during = during
        super().__init__(name, f"cancelled during {during}")


# ── Verification ────────────────────────────────────────────────


class VerificationError(FormulaError):
    """The installed artifact did not print what was expected."""

    step = "verify"

    def __init__(
        self,
        got: str,
        expected: str = "",
        path: str = "",
        *,
        message: str | None = None,
    ):
        self.got = got
        self.expected = expected
        self.path = path
        super().__init__(
            message
            or f"verify failed for {path or 'artifact'}: "
            f"expected {expected!r} in output, got {got.strip()!r}"
        )


class VerificationTimeout(VerificationError):
    def __init__(self, timeout: float, path: str = ""):
        self.timeout = timeout
        super().__init__(
            got="",
            path=path,
            message=f"verify timed out for {path or 'artifact'} after {timeout}s",
        )
