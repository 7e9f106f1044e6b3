"""Formatter interface shared by all report formats."""

from __future__ import annotations

from pathlib import Path
from typing import TextIO

from bashtap.model import Diagnostic, Report, TestCase, TestFile


class Formatter:
    """Consumer of finalized outcomes.

    Streaming formatters write in ``test_finished``; batch formatters keep
    nothing until ``finish``.  Tests always arrive in declaration order with
    1-based run-wide numbers.
    """

    def __init__(self, stream: TextIO, verbose_run: bool = False) -> None:
        self.stream = stream
        self.verbose_run = verbose_run

    def begin(self, total: int) -> None:
        pass

    def test_finished(self, number: int, test_file: TestFile, case: TestCase) -> None:
        pass

    def file_error(self, path: Path, diagnostic: Diagnostic) -> None:
        pass

    def finish(self, report: Report) -> None:
        pass

    def _write(self, text: str) -> None:
        self.stream.write(text + "\n")
        self.stream.flush()
