"""
Install verifier — run the fresh binary and look for its identity string.

The check passes iff the expected substring appears anywhere in the
combined stdout/stderr of ``<artifact> <args>``. A timeout is reported
as ``VerificationTimeout`` so callers can tell a hung binary from one
that answered with the wrong thing.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from formulary.adapters.shell.process import clip_output, run_process
from formulary.core.errors import VerificationError, VerificationTimeout

logger = logging.getLogger(__name__)

DEFAULT_ARGS = ("--version",)


class InstallVerifier:
    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    def verify(
        self,
        artifact_path: Path,
        expected_substring: str,
        args: Sequence[str] = DEFAULT_ARGS,
        *,
        timeout: float | None = None,
    ) -> str:
        """Run the artifact and check its output.

        Returns:
            The captured output.

        Raises:
            VerificationTimeout: The run exceeded the timeout.
            VerificationError: The output lacks ``expected_substring``
                or the artifact could not be started.
        """
        timeout = self.timeout if timeout is None else timeout
        cmd = [str(artifact_path), *args]

        # The whole output is searched; only error messages are clipped
        result = run_process(cmd, timeout=timeout, merge_stderr=True, output_limit=None)
        if result.timed_out:
            raise VerificationTimeout(timeout, path=str(artifact_path))
        if result.error:
            raise VerificationError(result.error, expected_substring, str(artifact_path))

        output = result.stdout
        if expected_substring not in output:
            raise VerificationError(clip_output(output), expected_substring, str(artifact_path))

        if result.returncode != 0:
            logger.warning(
                "%s printed %r but exited %s",
                artifact_path.name, expected_substring, result.returncode,
            )
        logger.info("Verified %s (%r found)", artifact_path, expected_substring)
        return output
