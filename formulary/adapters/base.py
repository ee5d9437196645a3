"""
Adapter base — the contracts between the pipeline and the outside world.

The build and livecheck services never talk to a network, a compiler
or an archive format directly. They go through the three collaborator
interfaces defined here:

    SourceHost       fetch release tarballs, list releases and tags
    SourceExtractor  unpack fetched bytes into a source tree
    Toolchain        compile a source tree into one binary

Implementations live next to this module; ``mock.py`` holds in-memory
doubles for tests.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Release:
    """One release as listed by the source host."""

    tag: str
    draft: bool = False
    prerelease: bool = False


@dataclass
class ProcessResult:
    """Outcome of one external process run.

    Process runners never raise for a failing command; the caller
    decides what a non-zero exit, a timeout or a cancellation means.
    """

    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    elapsed_ms: int = 0
    timed_out: bool = False
    cancelled: bool = False
    error: str | None = None    # spawn failure (missing binary, permissions)

    @property
    def ok(self) -> bool:
        return (
            self.returncode == 0
            and not self.timed_out
            and not self.cancelled
            and self.error is None
        )


class SourceHost(ABC):
    """The code forge hosting release tarballs."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Host identifier (e.g. 'github')."""

    @abstractmethod
    def fetch(self, url: str, timeout: float) -> bytes:
        """Download ``url`` and return its bytes.

        Raises:
            FetchError: The download failed.
        """

    @abstractmethod
    def list_releases(self, repo: str, timeout: float) -> list[Release]:
        """List published releases of ``owner/repo``.

        Raises:
            UpstreamUnavailable: The host could not be queried.
        """

    @abstractmethod
    def list_tags(self, repo: str, timeout: float) -> list[str]:
        """List tag names of ``owner/repo``.

        Raises:
            UpstreamUnavailable: The host could not be queried.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class SourceExtractor(ABC):
    @abstractmethod
    def extract(self, data: bytes, dest: Path) -> Path:
        """Unpack an archive into ``dest`` and return the source root.

        Raises:
            ExtractionError: The archive is corrupt or unsafe.
        """


class Toolchain(ABC):
    """An external compiler producing exactly one binary per build."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Toolchain identifier (e.g. 'go')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the compiler is on PATH. Fast, never raises."""

    @abstractmethod
    def build(
        self,
        source_dir: Path,
        output: Path,
        ldflags: list[str],
        *,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> ProcessResult:
        """Compile ``source_dir`` into ``output`` with the given link flags."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
