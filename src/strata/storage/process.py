"""OS process execution for the git backend.

The git provider depends on the ``ProcessExecutor`` protocol rather than
on ``subprocess`` directly, so tests can substitute a scripted executor.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from strata.storage.errors import StorageBackendError

logger = logging.getLogger(__name__)

# Stable, non-interactive git output regardless of the host locale.
_BASE_ENV = {
    "LC_ALL": "C",
    "LANG": "C",
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_CONFIG_NOSYSTEM": "1",
}


@dataclass(frozen=True)
class CommandResult:
    """Captured result of one process invocation.

    Attributes:
        args: Command line that was executed.
        returncode: Process exit code.
        stdout: Raw standard output bytes.
        stderr: Raw standard error bytes.
    """

    args: tuple[str, ...]
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def ok(self) -> bool:
        """True when the process exited with status 0."""
        return self.returncode == 0

    @property
    def stdout_text(self) -> str:
        """Standard output decoded as UTF-8 (lossy)."""
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def output_text(self) -> str:
        """Standard output and standard error combined, decoded."""
        combined = self.stdout + (b"\n" if self.stdout and self.stderr else b"") + self.stderr
        return combined.decode("utf-8", errors="replace").strip()


@runtime_checkable
class ProcessExecutor(Protocol):
    """Protocol for running external commands.

    Implementations return a ``CommandResult`` for any exit status and
    raise ``StorageBackendError`` only when the process could not be run
    or exceeded its time budget.
    """

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        input_data: bytes | None = None,
    ) -> CommandResult:
        """Run a command in ``cwd`` and capture its output."""
        ...


class SubprocessExecutor:
    """Runs commands with ``subprocess.run`` and a bounded timeout."""

    def __init__(
        self,
        timeout_seconds: float = 30,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            timeout_seconds: Upper bound for each command.
            env: Extra environment variables layered over the process
                environment and the fixed non-interactive settings.
        """
        self._timeout = timeout_seconds
        self._env = {**os.environ, **_BASE_ENV, **(env or {})}

    @property
    def timeout_seconds(self) -> float:
        """Return the per-command timeout."""
        return self._timeout

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        input_data: bytes | None = None,
    ) -> CommandResult:
        """Run a command and capture stdout/stderr as bytes.

        Raises:
            StorageBackendError: If the executable is missing, the working
                directory is unusable, or the command times out.
        """
        argv = tuple(args)
        logger.debug("Running command: %s (cwd=%s)", " ".join(argv), cwd)
        try:
            completed = subprocess.run(
                argv,
                cwd=cwd,
                input=input_data,
                capture_output=True,
                timeout=self._timeout,
                env=self._env,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise StorageBackendError(
                message=f"Command timed out after {self._timeout}s: {' '.join(argv[:2])}",
                cause=e,
            ) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to run {argv[0]}: {e}",
                cause=e,
            ) from e

        return CommandResult(
            args=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or b"",
            stderr=completed.stderr or b"",
        )
