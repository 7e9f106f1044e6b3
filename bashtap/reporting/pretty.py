"""Human-oriented terminal output."""

from __future__ import annotations

from pathlib import Path
from typing import TextIO

from bashtap.model import Diagnostic, Report, TestCase, TestFile
from bashtap.reporting.base import Formatter

_RED = "\033[31;1m"
_GREEN = "\033[32;1m"
_YELLOW = "\033[33;1m"
_RESET = "\033[0m"


class PrettyFormatter(Formatter):
    """One line per test grouped under file headers, summary at the end."""

    def __init__(self, stream: TextIO, verbose_run: bool = False, color: bool | None = None) -> None:
        super().__init__(stream, verbose_run)
        if color is None:
            isatty = getattr(stream, "isatty", None)
            color = bool(isatty and isatty())
        self.color = color
        self._current_file: Path | None = None

    def _paint(self, text: str, code: str) -> str:
        return f"{code}{text}{_RESET}" if self.color else text

    def test_finished(self, number: int, test_file: TestFile, case: TestCase) -> None:
        if test_file.path != self._current_file:
            self._current_file = test_file.path
            self._write(str(test_file.path))

        if case.outcome == "passed":
            self._write(self._paint(f" ✓ {case.description}", _GREEN))
        elif case.outcome == "skipped":
            reason = f": {case.skip_reason}" if case.skip_reason else ""
            self._write(self._paint(f" - {case.description} (skipped{reason})", _YELLOW))
        else:
            self._write(self._paint(f" ✗ {case.description}", _RED))
            if case.diagnostic is not None:
                for text in case.diagnostic.render():
                    self._write(self._paint(f"   {text}", _RED))

        for note in case.notes:
            self._write(f"   {note}")
        if case.output and (case.outcome == "failed" or self.verbose_run):
            for text in case.output.splitlines():
                self._write(f"   {text}")

    def file_error(self, path: Path, diagnostic: Diagnostic) -> None:
        self._write(self._paint(f"{path}: {diagnostic.message}", _RED))
        if diagnostic.location:
            self._write(self._paint(f"   {diagnostic.location}", _RED))

    def finish(self, report: Report) -> None:
        summary = report.summary
        self._write("")
        if report.fatal is not None:
            self._write(self._paint(f"Aborted: {report.fatal}", _RED))

        noun = "test" if summary.total == 1 else "tests"
        parts = [f"{summary.total} {noun}", f"{summary.failed} failure" + ("" if summary.failed == 1 else "s")]
        if summary.skipped:
            parts.append(f"{summary.skipped} skipped")
        if summary.errors:
            parts.append(f"{summary.errors} file error" + ("" if summary.errors == 1 else "s"))
        line = ", ".join(parts) + f" in {report.duration:.2f}s"
        ok = summary.failed == 0 and summary.errors == 0 and report.fatal is None
        self._write(self._paint(line, _GREEN if ok else _RED))
