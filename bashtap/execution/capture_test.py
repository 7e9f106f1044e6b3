"""Unit tests for the command capture primitive."""

from __future__ import annotations

import os
import signal
import stat
import time

from bashtap.execution.capture import (
    SIGNAL_STATUS_BASE,
    STATUS_NOT_EXECUTABLE,
    STATUS_NOT_FOUND,
    RunResult,
    invoke,
)


def _make_script(path, content):
    """Create an executable shell script."""
    path.write_text(f"#!/bin/bash\n{content}\n")
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return path


class TestInvoke:
    """Tests for invoke()."""

    def test_success(self):
        """A successful command reports status 0 and its output."""
        result = invoke("echo hi")
        assert result.status == 0
        assert result.output == "hi"
        assert result.lines == ["hi"]
        assert not result.killed

    def test_nonzero_status_is_data(self):
        """A failing command returns its status instead of raising."""
        result = invoke("echo out; exit 3")
        assert result.status == 3
        assert result.output == "out"

    def test_stderr_merged_in_order(self):
        """stderr and stdout share one stream."""
        result = invoke("echo one; echo two >&2; echo three")
        assert result.lines == ["one", "two", "three"]

    def test_empty_output_has_no_lines(self):
        """No output means an empty lines list."""
        result = invoke("true")
        assert result.output == ""
        assert result.lines == []

    def test_only_trailing_newlines_stripped(self):
        """Inner blank lines are kept; trailing newlines are not."""
        result = invoke("printf 'a\\n\\nb\\n\\n'")
        assert result.lines == ["a", "", "b"]

    def test_argv_sequence(self, tmp_path):
        """A sequence runs directly without a shell."""
        script = _make_script(tmp_path / "s.sh", 'echo "args: $*"')
        result = invoke([str(script), "x", "y z"])
        assert result.output == "args: x y z"

    def test_environment_and_cwd(self, tmp_path):
        """The given environment and directory are used."""
        env = dict(os.environ, BASHTAP_SAMPLE="value")
        result = invoke('echo "$BASHTAP_SAMPLE"; pwd', environment=env, cwd=tmp_path)
        assert result.lines == ["value", str(tmp_path.resolve())]

    def test_not_found(self, tmp_path):
        """A missing program reports 127."""
        result = invoke([str(tmp_path / "does-not-exist")])
        assert result.status == STATUS_NOT_FOUND
        assert result.not_found
        assert result.describe() == "command not found"

    def test_string_command_uses_given_shell(self):
        """A command line runs under the requested shell program."""
        assert invoke("true", shell="sh").status == 0
        result = invoke("true", shell="bashtap-no-such-shell")
        assert result.not_found

    def test_not_executable(self, tmp_path):
        """A file without the execute bit reports 126."""
        path = tmp_path / "plain.sh"
        path.write_text("echo nope\n")
        path.chmod(0o644)
        result = invoke([str(path)])
        assert result.status == STATUS_NOT_EXECUTABLE

    def test_killed_by_signal(self):
        """Signal death maps to 128 + the signal number."""
        result = invoke("kill -TERM $$")
        assert result.killed
        assert result.signal == signal.SIGTERM
        assert result.status == SIGNAL_STATUS_BASE + signal.SIGTERM
        assert result.describe() == "terminated by SIGTERM"

    def test_timeout_kills_process_group(self):
        """On timeout the whole group dies, background children included."""
        start = time.monotonic()
        result = invoke("sleep 30 & sleep 30; echo never", timeout=0.5)
        assert time.monotonic() - start < 10
        assert result.timed_out
        assert result.killed
        assert "never" not in result.output


class TestRunResult:
    """Tests for RunResult properties."""

    def test_describe_exit(self):
        assert RunResult(status=2).describe() == "exited with status 2"

    def test_describe_timeout(self):
        assert RunResult(status=137, signal=9, timed_out=True).describe() == "timed out"

    def test_invalid_utf8_replaced(self):
        """Undecodable bytes do not raise."""
        result = RunResult(status=0, raw=b"ok \xff\n")
        assert result.output.startswith("ok ")
