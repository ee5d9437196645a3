"""
Mock adapters — in-memory doubles for the source host, extractor and toolchain.

Used by tests (and dry runs) to drive the pipeline without a network or
a compiler. Every double records its calls so tests can assert on what
was (or was not) invoked.
"""

from __future__ import annotations

import threading
from pathlib import Path

from formulary.adapters.base import (
    ProcessResult,
    Release,
    SourceExtractor,
    SourceHost,
    Toolchain,
)
from formulary.core.errors import FetchError, UpstreamUnavailable


class MockSourceHost(SourceHost):
    """Serves canned tarballs and release listings.

    Configure with ``add_file``, ``add_releases``, ``add_tags``;
    ``set_unavailable`` makes every listing for a repo fail.
    """

    def __init__(self, host_name: str = "mock"):
        self._name = host_name
        self._files: dict[str, bytes] = {}
        self._releases: dict[str, list[Release]] = {}
        self._tags: dict[str, list[str]] = {}
        self._unavailable: dict[str, str] = {}
        self._lock = threading.Lock()
        self.fetch_log: list[str] = []
        self.listing_log: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def fetch_count(self) -> int:
        return len(self.fetch_log)

    def add_file(self, url: str, data: bytes) -> None:
        self._files[url] = data

    def add_releases(self, repo: str, *releases: Release | str) -> None:
        self._releases.setdefault(repo, []).extend(
            r if isinstance(r, Release) else Release(tag=r) for r in releases
        )

    def add_tags(self, repo: str, *tags: str) -> None:
        self._tags.setdefault(repo, []).extend(tags)

    def set_unavailable(self, repo: str, reason: str = "mock outage") -> None:
        self._unavailable[repo] = reason

    def set_available(self, repo: str) -> None:
        self._unavailable.pop(repo, None)

    def fetch(self, url: str, timeout: float) -> bytes:
        with self._lock:
            self.fetch_log.append(url)
        if url not in self._files:
            raise FetchError(url, "404 Not Found")
        return self._files[url]

    def list_releases(self, repo: str, timeout: float) -> list[Release]:
        self._record_listing(repo)
        return list(self._releases.get(repo, []))

    def list_tags(self, repo: str, timeout: float) -> list[str]:
        self._record_listing(repo)
        return list(self._tags.get(repo, []))

    def _record_listing(self, repo: str) -> None:
        with self._lock:
            self.listing_log.append(repo)
        if repo in self._unavailable:
            raise UpstreamUnavailable(repo, self._unavailable[repo])


class MockExtractor(SourceExtractor):
    """Writes the fetched bytes to ``<dest>/src/source.bin``."""

    def __init__(self):
        self.call_count = 0

    def extract(self, data: bytes, dest: Path) -> Path:
        self.call_count += 1
        root = dest / "src"
        root.mkdir(parents=True, exist_ok=True)
        (root / "source.bin").write_bytes(data)
        return root


class MockToolchain(Toolchain):
    """Produces a shell-script "binary" that prints a fixed line.

    The script prints ``output_line`` (``{name} version {version}`` is
    filled in from the ``-X main.version=`` flag when present), which is
    enough for the install verifier to run against.
    """

    def __init__(
        self,
        output_line: str = "{name} version {version}",
        *,
        returncode: int = 0,
        stderr: str = "",
        produce_output: bool = True,
        available: bool = True,
    ):
        self._output_line = output_line
        self._returncode = returncode
        self._stderr = stderr
        self._produce_output = produce_output
        self._available = available
        self._lock = threading.Lock()
        self.call_log: list[dict] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_count(self) -> int:
        return len(self.call_log)

    def is_available(self) -> bool:
        return self._available

    def build(
        self,
        source_dir: Path,
        output: Path,
        ldflags: list[str],
        *,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> ProcessResult:
        with self._lock:
            self.call_log.append({
                "source_dir": source_dir,
                "output": output,
                "ldflags": list(ldflags),
                "timeout": timeout,
            })

        if cancel is not None and cancel.is_set():
            return ProcessResult(returncode=None, cancelled=True)
        if self._returncode != 0:
            return ProcessResult(returncode=self._returncode, stderr=self._stderr)

        if self._produce_output:
            line = self._output_line.format(
                name=output.name,
                version=_injected(ldflags, "main.version"),
                commit=_injected(ldflags, "main.commit"),
                date=_injected(ldflags, "main.date"),
            )
            output.write_text(f"#!/bin/sh\necho '{line}'\n", encoding="utf-8")
        return ProcessResult(returncode=0, stderr=self._stderr)


def _injected(ldflags: list[str], key: str) -> str:
    prefix = f"{key}="
    for flag in ldflags:
        if flag.startswith(prefix):
            return flag[len(prefix):]
    return ""
