"""Exception taxonomy for the test runner.

File- and test-scoped errors (``ParseError``, ``AssertionFailure``,
``SkipSignal``, ``TestTimeoutError``) are contained by the engine and end up
as outcomes or file errors.  ``SchedulerError`` is fatal and aborts the run.
"""

from __future__ import annotations

from pathlib import Path


class BashtapError(Exception):
    """Base class for all runner errors."""


class ParseError(BashtapError):
    """A test file contains a malformed declaration."""

    def __init__(self, message: str, path: Path | str | None = None, line: int | None = None) -> None:
        self.message = message
        self.path = Path(path) if path is not None else None
        self.line = line
        location = ""
        if self.path is not None:
            location = f"{self.path}"
            if line is not None:
                location += f":{line}"
            location += ": "
        super().__init__(f"{location}{message}")


class AssertionFailure(BashtapError, AssertionError):
    """An explicit check inside a test body failed."""


class SkipSignal(BashtapError):
    """Raised by ``Context.skip`` to abandon the rest of a Python body."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason)
        self.reason = reason


class TestTimeoutError(BashtapError, TimeoutError):
    """A test ran past its configured timeout."""

    __test__ = False


class SchedulerError(BashtapError, RuntimeError):
    """The run cannot continue (no worker, no shell, spawn failure)."""
