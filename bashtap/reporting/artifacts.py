"""Batch report artifacts written to an output directory."""

from __future__ import annotations

import logging
from pathlib import Path

from bashtap.model import Report
from bashtap.reporting.base import Formatter
from bashtap.reporting.junit import write_junit_report
from bashtap.reporting.tap import write_tap_report

log = logging.getLogger(__name__)

REPORT_FORMATTERS = ("junit", "tap")


class ReportFileFormatter(Formatter):
    """Writes ``report.xml`` or ``report.tap`` when the run finishes."""

    def __init__(self, name: str, output_dir: Path, verbose_run: bool = False) -> None:
        if name not in REPORT_FORMATTERS:
            raise ValueError(f"unknown report formatter: {name}")
        super().__init__(stream=None, verbose_run=verbose_run)  # type: ignore[arg-type]
        self.name = name
        self.output_dir = output_dir
        self.path: Path | None = None

    def finish(self, report: Report) -> None:
        if self.name == "junit":
            self.path = write_junit_report(report, self.output_dir)
        else:
            self.path = write_tap_report(report, self.output_dir, verbose_run=self.verbose_run)
        log.info("report written to %s", self.path)
