"""Formatting through an external program.

The program is started once per run and receives the extended TAP stream
(TAP plus ``suite <path>`` lines) on its stdin.  Its own stdout and stderr
go straight to the terminal.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path

from bashtap.model import Diagnostic, Report, TestCase, TestFile
from bashtap.reporting.base import Formatter
from bashtap.reporting.tap import TapFormatter

log = logging.getLogger(__name__)


class ExternalFormatter(Formatter):
    """Pipes extended TAP into a user-supplied formatter program.

    Raises:
        OSError: From the constructor, if the program cannot be started.
    """

    def __init__(self, command: str, verbose_run: bool = False) -> None:
        argv = shlex.split(command)
        if not argv:
            raise ValueError("empty formatter command")
        self.process = subprocess.Popen(argv, stdin=subprocess.PIPE, text=True)
        assert self.process.stdin is not None
        super().__init__(self.process.stdin, verbose_run)
        self._tap = TapFormatter(self.process.stdin, verbose_run=verbose_run, extended=True)
        self.returncode: int | None = None

    def begin(self, total: int) -> None:
        self._guard(self._tap.begin, total)

    def test_finished(self, number: int, test_file: TestFile, case: TestCase) -> None:
        self._guard(self._tap.test_finished, number, test_file, case)

    def file_error(self, path: Path, diagnostic: Diagnostic) -> None:
        self._guard(self._tap.file_error, path, diagnostic)

    def finish(self, report: Report) -> None:
        self._guard(self._tap.finish, report)
        try:
            self.stream.close()
        except BrokenPipeError:
            pass
        self.returncode = self.process.wait()
        if self.returncode != 0:
            log.warning("formatter program exited with status %d", self.returncode)

    def _guard(self, method, *args) -> None:
        try:
            method(*args)
        except BrokenPipeError:
            log.warning("formatter program closed its input early")
