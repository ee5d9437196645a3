"""
Go toolchain — ``go build`` with link-time flags.

Renders the standard release invocation::

    go build -trimpath -o=<output> -ldflags=<flags joined by spaces>

``-trimpath`` keeps local build paths out of the binary so two builds
of the same source in different directories compare equal.
"""

from __future__ import annotations

import logging
import shutil
import threading
from pathlib import Path

from formulary.adapters.base import ProcessResult, Toolchain
from formulary.adapters.shell.process import run_process

logger = logging.getLogger(__name__)


def go_build_command(ldflags: list[str], output: Path, go: str = "go") -> list[str]:
    """The argument list for one ``go build`` run. Pure."""
    return [
        go, "build",
        "-trimpath",
        f"-o={output}",
        f"-ldflags={' '.join(ldflags)}",
    ]


class GoToolchain(Toolchain):
    """Builds Go modules with the ``go`` binary found on PATH."""

    def __init__(self, go: str = "go", env_overrides: dict[str, str] | None = None):
        self._go = go
        self._env = dict(env_overrides or {})

    @property
    def name(self) -> str:
        return "go"

    def is_available(self) -> bool:
        return shutil.which(self._go) is not None

    def build(
        self,
        source_dir: Path,
        output: Path,
        ldflags: list[str],
        *,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> ProcessResult:
        cmd = go_build_command(ldflags, output, go=self._go)
        logger.info("Building %s in %s", output.name, source_dir)
        return run_process(
            cmd,
            cwd=source_dir,
            timeout=timeout,
            env_overrides=self._env,
            cancel=cancel,
        )
