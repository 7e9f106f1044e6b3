"""Unit tests for the TAP formatter."""

from __future__ import annotations

import io
import tempfile
from pathlib import Path

from bashtap.model import Diagnostic, Report, Summary, TestCase, TestFile
from bashtap.reporting.tap import REPORT_FILENAME, TapFormatter, write_tap_report

TEST_FILE = TestFile(path=Path("test/math.bats"))
OTHER_FILE = TestFile(path=Path("test/other.bats"))


def _finished(index, description, outcome, **kwargs):
    notes = kwargs.pop("notes", [])
    output = kwargs.pop("output", "")
    case = TestCase(description=description, index=index, body=None, output=output, notes=notes)
    case.start()
    case.finish(outcome, **kwargs)
    return case


def _emit(*cases, verbose_run=False, extended=False, files=None):
    out = io.StringIO()
    formatter = TapFormatter(out, verbose_run=verbose_run, extended=extended)
    formatter.begin(len(cases))
    for number, case in enumerate(cases, start=1):
        formatter.test_finished(number, (files or {}).get(number, TEST_FILE), case)
    return out.getvalue().splitlines()


class TestTapLines:
    """Tests for the per-test lines."""

    def test_plan_and_results(self):
        lines = _emit(
            _finished(1, "addition works", "passed"),
            _finished(2, "division by zero", "skipped", skip_reason="not implemented"),
            _finished(3, "bare skip", "skipped"),
        )
        assert lines == [
            "1..3",
            "ok 1 addition works",
            "ok 2 division by zero # skip not implemented",
            "ok 3 bare skip # skip",
        ]

    def test_hash_in_description_escaped(self):
        """A "#" in a description does not read as a directive."""
        lines = _emit(
            _finished(1, "counts # of items", "passed"),
            _finished(2, "#skip is not a skip", "failed"),
        )
        assert lines == [
            "1..2",
            "ok 1 counts \\# of items",
            "not ok 2 \\#skip is not a skip",
        ]

    def test_failure_diagnostic(self):
        """Failures carry the location and message as comments."""
        diag = Diagnostic(
            kind="AssertionFailure",
            message="`[ \"$output\" -eq 1 ]' failed",
            file="test/math.bats",
            line=7,
        )
        lines = _emit(_finished(1, "subtraction works", "failed", diagnostic=diag, output="got 2"))
        assert lines == [
            "1..1",
            "not ok 1 subtraction works",
            "# (in test/math.bats, line 7)",
            "#   `[ \"$output\" -eq 1 ]' failed",
            "# got 2",
        ]

    def test_passing_output_hidden_unless_verbose(self):
        case = _finished(1, "chatty", "passed", output="noise")
        assert _emit(case) == ["1..1", "ok 1 chatty"]
        case = _finished(1, "chatty", "passed", output="noise")
        assert _emit(case, verbose_run=True) == ["1..1", "ok 1 chatty", "# noise"]

    def test_notes(self):
        case = _finished(1, "t", "failed", notes=["teardown failed: x"])
        assert _emit(case) == ["1..1", "not ok 1 t", "# teardown failed: x"]

    def test_blank_output_lines(self):
        case = _finished(1, "t", "failed", output="a\n\nb")
        assert _emit(case)[2:] == ["# a", "#", "# b"]

    def test_extended_suite_lines(self):
        """Extended TAP announces each file before its first test."""
        lines = _emit(
            _finished(1, "a", "passed"),
            _finished(2, "b", "passed"),
            _finished(3, "c", "passed"),
            extended=True,
            files={3: OTHER_FILE},
        )
        assert lines == [
            "1..3",
            "suite test/math.bats",
            "ok 1 a",
            "ok 2 b",
            "suite test/other.bats",
            "ok 3 c",
        ]


class TestTapRunLevel:
    """Tests for file errors, bail out and the report file."""

    def test_file_error(self):
        out = io.StringIO()
        formatter = TapFormatter(out)
        formatter.file_error(
            Path("bad.bats"),
            Diagnostic(kind="ParseError", message="missing test description",
                       file="bad.bats", line=3),
        )
        assert out.getvalue().splitlines() == [
            "# bashtap: error in bad.bats: missing test description",
            "# (in bad.bats, line 3)",
        ]

    def test_bail_out(self):
        out = io.StringIO()
        TapFormatter(out).finish(Report(fatal="shell not found: bash"))
        assert out.getvalue() == "Bail out! shell not found: bash\n"

    def test_write_report_file(self):
        case = _finished(1, "works", "passed")
        report = Report(tests=[(TEST_FILE, case)], summary=Summary(total=1, passed=1))
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_tap_report(report, Path(tmpdir) / "out")
            assert path.name == REPORT_FILENAME
            assert path.read_text() == "1..1\nok 1 works\n"
