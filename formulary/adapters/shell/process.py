"""
Process runner — the single place external processes are spawned.

Both the toolchain and the install verifier go through here, so
timeouts, cancellation and output capture behave the same for both.

A run is bounded by ``timeout`` and can be cut short by setting a
``threading.Event``; either way the child's whole process group is
killed and reaped before the result is returned, so helpers it spawned
(compilers, shell pipelines) cannot keep the run alive.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from pathlib import Path

from formulary.adapters.base import ProcessResult

logger = logging.getLogger(__name__)

# How often a running child is checked for cancellation
_POLL_INTERVAL = 0.1

# Output kept per stream (head and tail) unless the caller asks for all of it
OUTPUT_LIMIT = 8000

_ELISION = "\n…\n"


def run_process(
    cmd: list[str],
    *,
    cwd: Path | str | None = None,
    timeout: float = 120,
    env_overrides: dict[str, str] | None = None,
    merge_stderr: bool = False,
    cancel: threading.Event | None = None,
    output_limit: int | None = OUTPUT_LIMIT,
) -> ProcessResult:
    """Run ``cmd`` and capture its output.

    Args:
        cmd: Command list, no shell.
        cwd: Working directory.
        timeout: Seconds before the child is killed.
        env_overrides: Extra environment variables.
        merge_stderr: Capture stderr into stdout (one combined stream).
        cancel: Event that kills the child when set.
        output_limit: Characters kept per stream, split between the
            start and the end of the output. None keeps everything.

    Returns:
        ProcessResult. Never raises for command failures.
    """
    env = os.environ.copy()
    if env_overrides:
        env.update(env_overrides)

    logger.debug("Running: %s (cwd=%s, timeout=%ss)", " ".join(cmd), cwd, timeout)
    start = time.monotonic()

    try:
        proc = subprocess.Popen(
            cmd,
            cwd=str(cwd) if cwd else None,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
            text=True,
            errors="replace",
            start_new_session=True,
        )
    except OSError as e:
        return ProcessResult(returncode=None, error=f"Cannot run {cmd[0]}: {e}")

    deadline = start + timeout
    timed_out = cancelled = False
    stdout = stderr = ""

    while True:
        wait = min(_POLL_INTERVAL, max(deadline - time.monotonic(), 0))
        try:
            stdout, stderr = proc.communicate(timeout=wait)
            break
        except subprocess.TimeoutExpired:
            pass
        if cancel is not None and cancel.is_set():
            cancelled = True
        elif time.monotonic() >= deadline:
            timed_out = True
        else:
            continue
        _kill_group(proc)
        stdout, stderr = proc.communicate()
        break

    elapsed_ms = int((time.monotonic() - start) * 1000)
    if timed_out:
        logger.warning("Command timed out after %ss: %s", timeout, cmd[0])
    elif cancelled:
        logger.info("Command cancelled: %s", cmd[0])

    return ProcessResult(
        returncode=proc.returncode,
        stdout=clip_output(stdout or "", output_limit),
        stderr=clip_output(stderr or "", output_limit),
        elapsed_ms=elapsed_ms,
        timed_out=timed_out,
        cancelled=cancelled,
    )


def _kill_group(proc: subprocess.Popen) -> None:
    """SIGKILL the child's session, grandchildren included."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        # Group already gone; make sure the direct child is
        proc.kill()


def clip_output(text: str, limit: int | None = OUTPUT_LIMIT) -> str:
    """Keep the start and the end of ``text`` within ``limit`` characters."""
    if limit is None or len(text) <= limit:
        return text
    head = limit // 2
    return text[:head] + _ELISION + text[-(limit - head):]
