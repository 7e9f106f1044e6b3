"""Result aggregation.

Collects terminal test outcomes as they arrive from the scheduler (in any
order), releases them to the formatters in declaration order as soon as a
contiguous prefix is known, and builds the final ``Report``.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

from bashtap.model import Diagnostic, FileError, Report, Summary, TestCase, TestFile
from bashtap.reporting.base import Formatter

log = logging.getLogger(__name__)


class Aggregator:
    """Buffers outcomes and streams them in declaration order.

    ``record`` and ``record_file_error`` may be called from any thread.
    """

    def __init__(self, formatters: list[Formatter] | None = None) -> None:
        self.formatters: list[Formatter] = list(formatters or [])
        self._lock = threading.Lock()
        self._slots: list[tuple[TestFile, TestCase | None]] = []
        self._positions: dict[tuple[Path, int], int] = {}
        self._next = 0
        self._file_errors: list[FileError] = []
        self._started = 0.0

    def begin(self, files: list[TestFile]) -> None:
        """Number every test of ``files`` and announce the plan."""
        with self._lock:
            self._slots = []
            self._positions = {}
            self._next = 0
            for test_file in files:
                for case in test_file.tests:
                    self._positions[(test_file.path, case.index)] = len(self._slots)
                    self._slots.append((test_file, None))
            self._started = time.monotonic()
            for formatter in self.formatters:
                formatter.begin(len(self._slots))

    def record(self, test_file: TestFile, case: TestCase) -> None:
        """Accept one finished test.

        Raises:
            ValueError: If the case is not terminal or was not announced.
        """
        if not case.done:
            raise ValueError(
                f"test {case.index} of {test_file.path} is not finished ({case.outcome})"
            )
        with self._lock:
            key = (test_file.path, case.index)
            if key not in self._positions:
                raise ValueError(f"unknown test {case.index} of {test_file.path}")
            self._slots[self._positions[key]] = (test_file, case)
            self._flush()

    def _flush(self) -> None:
        while self._next < len(self._slots):
            test_file, case = self._slots[self._next]
            if case is None:
                return
            self._next += 1
            for formatter in self.formatters:
                formatter.test_finished(self._next, test_file, case)

    def record_file_error(self, path: Path, diagnostic: Diagnostic) -> None:
        with self._lock:
            log.debug("file error in %s: %s", path, diagnostic.message)
            self._file_errors.append(FileError(path=path, diagnostic=diagnostic))
            for formatter in self.formatters:
                formatter.file_error(path, diagnostic)

    def finish(self, fatal: str | None = None) -> Report:
        """Build the final report and hand it to every formatter."""
        with self._lock:
            tests = [(f, c) for f, c in self._slots if c is not None]
            summary = Summary(
                total=len(tests),
                passed=sum(1 for _, c in tests if c.outcome == "passed"),
                failed=sum(1 for _, c in tests if c.outcome == "failed"),
                skipped=sum(1 for _, c in tests if c.outcome == "skipped"),
                errors=len(self._file_errors),
            )
            report = Report(
                tests=tests,
                file_errors=list(self._file_errors),
                summary=summary,
                fatal=fatal,
                duration=time.monotonic() - self._started if self._started else 0.0,
            )
        for formatter in self.formatters:
            formatter.finish(report)
        return report
