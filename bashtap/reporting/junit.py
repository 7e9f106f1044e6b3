"""JUnit XML report generation.

Produces one ``<testsuites>`` document holding a single ``<testsuite>``
with one ``<testcase>`` per test, in declaration order.  File-level errors
become ``<testcase>`` elements carrying an ``<error>`` child.
"""

from __future__ import annotations

import datetime
import socket
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import TextIO

from bashtap.model import Report
from bashtap.reporting.base import Formatter

REPORT_FILENAME = "report.xml"


def _strip_control(text: str) -> str:
    """Drop characters XML 1.0 cannot carry."""
    return "".join(c for c in text if c in "\t\n\r" or ord(c) >= 0x20)


def build_junit_tree(report: Report, suite_name: str = "bashtap") -> ET.ElementTree:
    """Build the JUnit document for a finished report."""
    summary = report.summary
    root = ET.Element("testsuites", {
        "name": suite_name,
        "tests": str(summary.total + summary.errors),
        "failures": str(summary.failed),
        "errors": str(summary.errors),
        "skipped": str(summary.skipped),
        "time": f"{report.duration:.3f}",
    })
    suite = ET.SubElement(root, "testsuite", {
        "name": suite_name,
        "tests": str(summary.total + summary.errors),
        "failures": str(summary.failed),
        "errors": str(summary.errors),
        "skipped": str(summary.skipped),
        "time": f"{report.duration:.3f}",
        "timestamp": datetime.datetime.now().replace(microsecond=0).isoformat(),
        "hostname": socket.gethostname(),
    })

    for test_file, case in report.tests:
        element = ET.SubElement(suite, "testcase", {
            "classname": str(test_file.path),
            "name": case.description,
            "time": f"{case.duration:.3f}",
        })
        if case.outcome == "failed":
            message = case.diagnostic.message if case.diagnostic else "failed"
            lines = case.diagnostic.render() if case.diagnostic else []
            lines.extend(case.notes)
            if case.output:
                lines.extend(case.output.splitlines())
            failure = ET.SubElement(element, "failure", {
                "type": case.diagnostic.kind if case.diagnostic else "failure",
                "message": _strip_control(message.splitlines()[0] if message else ""),
            })
            failure.text = _strip_control("\n".join(lines))
        elif case.outcome == "skipped":
            skipped = ET.SubElement(element, "skipped")
            if case.skip_reason:
                skipped.set("message", _strip_control(case.skip_reason))
        if case.output and case.outcome != "failed":
            system_out = ET.SubElement(element, "system-out")
            system_out.text = _strip_control(case.output)

    for file_error in report.file_errors:
        element = ET.SubElement(suite, "testcase", {
            "classname": str(file_error.path),
            "name": file_error.diagnostic.kind,
            "time": "0.000",
        })
        error = ET.SubElement(element, "error", {
            "type": file_error.diagnostic.kind,
            "message": _strip_control(file_error.diagnostic.message),
        })
        error.text = _strip_control("\n".join(file_error.diagnostic.render()))

    ET.indent(root)
    return ET.ElementTree(root)


def write_junit_report(report: Report, output_dir: Path) -> Path:
    """Write ``report.xml`` into ``output_dir`` and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / REPORT_FILENAME
    build_junit_tree(report).write(path, encoding="utf-8", xml_declaration=True)
    return path


class JUnitFormatter(Formatter):
    """Batch formatter: writes the whole document once the run is over."""

    def finish(self, report: Report) -> None:
        tree = build_junit_tree(report)
        self.stream.write('<?xml version="1.0" encoding="UTF-8"?>\n')
        self.stream.write(ET.tostring(tree.getroot(), encoding="unicode"))
        self.stream.write("\n")
        self.stream.flush()
