"""Core data structures shared by the parser, engine, scheduler and reporters.

Outcomes use the five-status model: pending, running, passed, failed,
skipped.  A ``TestCase`` only ever moves forward through
pending -> running -> terminal.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from bashtap.execution.executable import Executable


# Valid outcome values in the five-status model
OUTCOMES = ("pending", "running", "passed", "failed", "skipped")

TERMINAL_OUTCOMES = frozenset({"passed", "failed", "skipped"})

HOOK_SCOPES = ("setup", "teardown", "setup_file", "teardown_file")


@dataclass(frozen=True)
class Diagnostic:
    """A human-readable failure description with optional source location."""

    kind: str
    message: str
    file: str | None = None
    line: int | None = None

    @property
    def location(self) -> str:
        if self.file is None:
            return ""
        if self.line is None:
            return f"(in {self.file})"
        return f"(in {self.file}, line {self.line})"

    def render(self) -> list[str]:
        """Render the diagnostic as a list of lines (no trailing newlines)."""
        lines = []
        if self.location:
            lines.append(self.location)
        lines.extend(f"  {line}" for line in self.message.splitlines() or [""])
        return lines


@dataclass(frozen=True)
class ExecutionSignal:
    """Result of invoking an executable: continue, skip or fail."""

    kind: str  # continue, skip, fail
    reason: str = ""
    diagnostic: Diagnostic | None = None
    output: str = ""

    @classmethod
    def proceed(cls, output: str = "") -> ExecutionSignal:
        return cls(kind="continue", output=output)

    @classmethod
    def skip(cls, reason: str = "", output: str = "") -> ExecutionSignal:
        return cls(kind="skip", reason=reason, output=output)

    @classmethod
    def fail(cls, diagnostic: Diagnostic, output: str = "") -> ExecutionSignal:
        return cls(kind="fail", diagnostic=diagnostic, output=output)

    @property
    def failed(self) -> bool:
        return self.kind == "fail"

    @property
    def skipped(self) -> bool:
        return self.kind == "skip"


@dataclass
class TestCase:
    """A single ``@test`` declaration and its execution state."""

    __test__ = False

    description: str
    index: int
    body: Executable
    line: int | None = None
    outcome: str = "pending"
    diagnostic: Diagnostic | None = None
    notes: list[str] = field(default_factory=list)
    skip_reason: str = ""
    output: str = ""
    duration: float = 0.0

    @property
    def done(self) -> bool:
        return self.outcome in TERMINAL_OUTCOMES

    def start(self) -> None:
        """Move from pending to running."""
        if self.outcome != "pending":
            raise RuntimeError(
                f"test {self.index} cannot start from outcome {self.outcome!r}"
            )
        self.outcome = "running"

    def finish(
        self,
        outcome: str,
        diagnostic: Diagnostic | None = None,
        skip_reason: str = "",
        duration: float = 0.0,
    ) -> None:
        """Move from running to a terminal outcome.

        Raises:
            RuntimeError: If the case is not running or the outcome is not
                terminal.
        """
        if outcome not in TERMINAL_OUTCOMES:
            raise RuntimeError(f"{outcome!r} is not a terminal outcome")
        if self.outcome != "running":
            raise RuntimeError(
                f"test {self.index} cannot finish from outcome {self.outcome!r}"
            )
        self.outcome = outcome
        self.diagnostic = diagnostic
        self.skip_reason = skip_reason
        self.duration = duration

    def reset(self) -> TestCase:
        """Return a pending copy of this case."""
        return dataclasses.replace(
            self,
            outcome="pending",
            diagnostic=None,
            notes=[],
            skip_reason="",
            output="",
            duration=0.0,
        )


@dataclass(frozen=True)
class Hook:
    """A setup/teardown body bound to per-test or per-file scope."""

    scope: str
    body: Executable
    line: int | None = None


@dataclass(frozen=True)
class TestFile:
    """A parsed test file: ordered test cases plus optional hooks."""

    __test__ = False

    path: Path
    tests: tuple[TestCase, ...] = ()
    setup: Hook | None = None
    teardown: Hook | None = None
    setup_file: Hook | None = None
    teardown_file: Hook | None = None
    source: str = ""

    def fresh(self) -> TestFile:
        """Return a copy whose test cases are all pending."""
        return dataclasses.replace(self, tests=tuple(t.reset() for t in self.tests))

    def select(self, predicate: Callable[[TestCase], bool]) -> TestFile:
        """Return a copy holding only the cases matching ``predicate``."""
        return dataclasses.replace(
            self, tests=tuple(t for t in self.tests if predicate(t))
        )


@dataclass(frozen=True)
class ExecutionPlan:
    """Resolved scheduling parameters for one run."""

    jobs: int = 1
    parallelize_across_files: bool = True
    parallelize_within_files: bool = True
    timeout: float | None = None
    shell: str = "bash"

    def __post_init__(self) -> None:
        if self.jobs < 1:
            raise ValueError(f"job count must be at least 1, got {self.jobs}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")

    @property
    def file_slots(self) -> int:
        return self.jobs if self.parallelize_across_files else 1

    @property
    def test_slots(self) -> int:
        return self.jobs if self.parallelize_within_files else 1


@dataclass(frozen=True)
class FormatterChoice:
    """Resolved output selection for one run."""

    formatter: str = "tap"
    report_formatter: str | None = None
    output_dir: Path | None = None
    verbose_run: bool = False


@dataclass(frozen=True)
class FileError:
    """An error scoped to a whole file (parse failure, teardown_file failure)."""

    path: Path
    diagnostic: Diagnostic


@dataclass
class Summary:
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: int = 0


@dataclass
class Report:
    """Finalized results of a run, in declaration order."""

    tests: list[tuple[TestFile, TestCase]] = field(default_factory=list)
    file_errors: list[FileError] = field(default_factory=list)
    summary: Summary = field(default_factory=Summary)
    fatal: str | None = None
    duration: float = 0.0

    @property
    def exit_code(self) -> int:
        from bashtap.execution.exit_code import compute_exit_code

        return compute_exit_code(self.summary, fatal=self.fatal is not None)
