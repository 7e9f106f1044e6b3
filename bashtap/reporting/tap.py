"""TAP (Test Anything Protocol) output.

::

    1..3
    ok 1 addition works
    not ok 2 subtraction works
    # (in test file test/math.bats, line 7)
    #   `[ "$output" -eq 1 ]' failed
    ok 3 division by zero # skip not implemented

Diagnostics and captured output are ``# `` comment lines under the failing
test.  With ``verbose_run`` the output of passing tests is shown as well.
A ``#`` inside a description is written as ``\\#``.  ``extended`` adds a
``suite <path>`` line whenever a new file starts, which is the stream fed
to external formatter programs.
"""

from __future__ import annotations

from pathlib import Path
from typing import TextIO

from bashtap.model import Diagnostic, Report, TestCase, TestFile
from bashtap.reporting.base import Formatter


def _comment(line: str) -> str:
    return f"# {line}" if line else "#"


def _escape(description: str) -> str:
    """Keep a description on one line and its "#" from starting a directive."""
    return description.replace("\n", " ").replace("#", "\\#")


class TapFormatter(Formatter):
    """Streams a TAP document in declaration order."""

    def __init__(self, stream: TextIO, verbose_run: bool = False, extended: bool = False) -> None:
        super().__init__(stream, verbose_run)
        self.extended = extended
        self._current_file: Path | None = None

    def begin(self, total: int) -> None:
        self._write(f"1..{total}")

    def test_finished(self, number: int, test_file: TestFile, case: TestCase) -> None:
        if self.extended and test_file.path != self._current_file:
            self._current_file = test_file.path
            self._write(f"suite {test_file.path}")

        description = _escape(case.description)
        if case.outcome == "skipped":
            line = f"ok {number} {description} # skip"
            if case.skip_reason:
                line += f" {case.skip_reason}"
            self._write(line)
        elif case.outcome == "passed":
            self._write(f"ok {number} {description}")
        else:
            self._write(f"not ok {number} {description}")
            if case.diagnostic is not None:
                for text in case.diagnostic.render():
                    self._write(_comment(text))

        for note in case.notes:
            self._write(_comment(note))
        if case.output and (case.outcome == "failed" or self.verbose_run):
            for text in case.output.splitlines():
                self._write(_comment(text))

    def file_error(self, path: Path, diagnostic: Diagnostic) -> None:
        self._write(_comment(f"bashtap: error in {path}: {diagnostic.message}"))
        if diagnostic.location:
            self._write(_comment(diagnostic.location))

    def finish(self, report: Report) -> None:
        if report.fatal is not None:
            self._write(f"Bail out! {report.fatal}")


REPORT_FILENAME = "report.tap"


def write_tap_report(report: Report, output_dir: Path, verbose_run: bool = False) -> Path:
    """Write ``report.tap`` into ``output_dir`` and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / REPORT_FILENAME
    with open(path, "w") as f:
        formatter = TapFormatter(f, verbose_run=verbose_run)
        formatter.begin(len(report.tests))
        for number, (test_file, case) in enumerate(report.tests, start=1):
            formatter.test_finished(number, test_file, case)
        for file_error in report.file_errors:
            formatter.file_error(file_error.path, file_error.diagnostic)
        formatter.finish(report)
    return path
