"""Command capture primitive.

``invoke`` runs one command with stdout and stderr merged into a single
pipe and returns a ``RunResult``.  A non-zero status is data, never an
exception: callers decide what counts as a failure.

Status conventions follow the shell: 127 when the command does not exist,
126 when it cannot be executed, and 128+N when the child was killed by
signal N.  ``RunResult.killed`` separates signal deaths (including timeouts)
from ordinary exits that happen to use the same numbers.
"""

from __future__ import annotations

import functools
import logging
import os
import signal
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from bashtap.errors import SchedulerError

log = logging.getLogger(__name__)

STATUS_NOT_EXECUTABLE = 126
STATUS_NOT_FOUND = 127
SIGNAL_STATUS_BASE = 128


@dataclass(frozen=True)
class RunResult:
    """Exit status and merged output of one command."""

    status: int
    raw: bytes = b""
    signal: int | None = None
    timed_out: bool = False
    not_found: bool = False

    @property
    def killed(self) -> bool:
        """True if the child was terminated by a signal."""
        return self.signal is not None

    @property
    def output(self) -> str:
        """Decoded output with trailing newlines removed."""
        return self.raw.decode("utf-8", errors="replace").rstrip("\n")

    @functools.cached_property
    def lines(self) -> list[str]:
        """Output split on newlines, without a trailing empty line."""
        text = self.output
        if not text:
            return []
        return text.split("\n")

    def describe(self) -> str:
        """Short human-readable description of how the command ended."""
        if self.timed_out:
            return "timed out"
        if self.not_found:
            return "command not found"
        if self.signal is not None:
            try:
                name = signal.Signals(self.signal).name
            except ValueError:
                name = f"signal {self.signal}"
            return f"terminated by {name}"
        return f"exited with status {self.status}"


def _kill_group(proc: subprocess.Popen) -> None:
    """Kill the child's whole process group."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except PermissionError:
        proc.kill()


def invoke(
    command: str | Sequence[str],
    environment: Mapping[str, str] | None = None,
    cwd: Path | str | None = None,
    timeout: float | None = None,
    shell: str = "bash",
) -> RunResult:
    """Run a command and capture its merged output.

    Args:
        command: A shell command line (run with ``<shell> -c``) or an argv
            sequence (run directly).
        environment: Full environment for the child; ``None`` inherits the
            current process environment.
        cwd: Working directory for the child.
        timeout: Seconds before the child's process group is killed.
        shell: Shell program for string commands.

    Returns:
        RunResult for the finished command.

    Raises:
        SchedulerError: If the process cannot be spawned for a reason other
            than a missing or non-executable command.
    """
    if isinstance(command, str):
        argv = [shell, "-c", command]
    else:
        argv = list(command)
    if not argv:
        raise ValueError("empty command")

    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=dict(environment) if environment is not None else None,
            cwd=cwd,
            start_new_session=True,
        )
    except FileNotFoundError:
        log.debug("command not found: %s", argv[0])
        return RunResult(status=STATUS_NOT_FOUND, not_found=True)
    except PermissionError:
        log.debug("command not executable: %s", argv[0])
        return RunResult(status=STATUS_NOT_EXECUTABLE)
    except OSError as e:
        raise SchedulerError(f"cannot spawn {argv[0]}: {e}") from e

    timed_out = False
    try:
        output, _ = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        log.debug("timeout after %ss, killing process group %d", timeout, proc.pid)
        timed_out = True
        _kill_group(proc)
        output, _ = proc.communicate()

    returncode = proc.returncode
    if returncode < 0:
        signum = -returncode
        return RunResult(
            status=SIGNAL_STATUS_BASE + signum,
            raw=output,
            signal=signum,
            timed_out=timed_out,
        )
    return RunResult(status=returncode, raw=output, timed_out=timed_out)
