"""Per-invocation execution context.

A ``Context`` carries everything one test (or one file-level hook) may
touch: its declaration index, a private environment, a private temp
directory, the working directory, and the last ``RunResult``.  The
scheduler creates contexts and throws them away; nothing in a context is
visible to another test.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from bashtap.errors import AssertionFailure, SkipSignal, TestTimeoutError
from bashtap.execution.capture import RunResult, invoke


@dataclass
class Context:
    """Mutable state threaded through one hook or test execution."""

    file: Path
    index: int
    environment: dict[str, str]
    cwd: Path
    tmpdir: Path
    description: str = ""
    script: Path | None = None
    driver: Path | None = None
    timeout: float | None = None
    shell: str = "bash"
    result: RunResult | None = None
    deadline: float | None = field(default=None, repr=False)

    def arm(self) -> None:
        """Start the timeout clock."""
        self.deadline = time.monotonic() + self.timeout if self.timeout else None

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` when unbounded.

        Raises:
            TestTimeoutError: If the deadline already passed.
        """
        if self.deadline is None:
            return None
        left = self.deadline - time.monotonic()
        if left <= 0:
            raise TestTimeoutError(f"test timed out after {self.timeout}s")
        return left

    def run(self, command: str | Sequence[str]) -> RunResult:
        """Run a command with this context's environment, directory and shell.

        The result replaces any earlier ``result``.  A non-zero status does
        not raise; a timeout does.
        """
        result = invoke(
            command,
            environment=self.environment,
            cwd=self.cwd,
            timeout=self.remaining(),
            shell=self.shell,
        )
        self.result = result
        if result.timed_out:
            raise TestTimeoutError(f"test timed out after {self.timeout}s")
        return result

    def skip(self, reason: str = "") -> None:
        raise SkipSignal(reason)

    def fail(self, message: str) -> None:
        raise AssertionFailure(message)
