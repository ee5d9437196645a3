"""
Version model — semantic version parsing and ordering.

Ordering is major, then minor, then patch, then pre-release: a version
with a pre-release tag sorts before the same version without one.
Build metadata (``+build.5``) is kept for display but never compared.

Release tags usually carry a ``v`` prefix (``v1.4.6``); it is accepted
and dropped.
"""

from __future__ import annotations

import re
from functools import total_ordering

_VERSION_RE = re.compile(
    r"""^[vV]?
    (?P<major>0|[1-9]\d*)
    (?:\.(?P<minor>0|[1-9]\d*))?
    (?:\.(?P<patch>0|[1-9]\d*))?
    (?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    (?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    $""",
    re.VERBOSE,
)


class InvalidVersion(ValueError):
    """Raised when a string is not a semantic version."""


@total_ordering
class Version:
    """A parsed semantic version. Immutable and hashable."""

    __slots__ = ("major", "minor", "patch", "prerelease", "build")

    def __init__(
        self,
        major: int,
        minor: int = 0,
        patch: int = 0,
        prerelease: tuple[str, ...] = (),
        build: str = "",
    ):
        object.__setattr__(self, "major", major)
        object.__setattr__(self, "minor", minor)
        object.__setattr__(self, "patch", patch)
        object.__setattr__(self, "prerelease", tuple(prerelease))
        object.__setattr__(self, "build", build)

    def __setattr__(self, name, value):
        raise AttributeError("Version is immutable")

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse ``text`` or raise ``InvalidVersion``."""
        m = _VERSION_RE.match(text.strip()) if isinstance(text, str) else None
        if not m:
            raise InvalidVersion(f"Not a semantic version: {text!r}")
        pre = m.group("pre")
        return cls(
            int(m.group("major")),
            int(m.group("minor") or 0),
            int(m.group("patch") or 0),
            tuple(pre.split(".")) if pre else (),
            m.group("build") or "",
        )

    @classmethod
    def try_parse(cls, text: str) -> Version | None:
        """Parse ``text``, returning None when it is malformed."""
        try:
            return cls.parse(text)
        except InvalidVersion:
            return None

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def _key(self) -> tuple:
        # A release (no pre-release) outranks any of its pre-releases.
        if self.prerelease:
            pre = (0, tuple(_identifier_key(p) for p in self.prerelease))
        else:
            pre = (1, ())
        return (self.major, self.minor, self.patch, pre)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + self.build
        return text

    def __repr__(self) -> str:
        return f"Version('{self}')"


def _identifier_key(identifier: str) -> tuple[int, int | str]:
    """Numeric identifiers sort before alphanumeric ones."""
    if identifier.isdigit():
        return (0, int(identifier))
    return (1, identifier)
