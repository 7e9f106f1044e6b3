"""Unit tests for the per-test and per-file state machines."""

from __future__ import annotations

from pathlib import Path

import pytest

from bashtap.execution.engine import Engine, hook_failure
from bashtap.execution.executable import CallableExecutable
from bashtap.execution.workspace import Workspace
from bashtap.model import Diagnostic, ExecutionPlan, Hook, TestCase, TestFile
from bashtap.parsing.spec_parser import parse_text


@pytest.fixture
def engine():
    with Workspace(ExecutionPlan()) as ws:
        yield Engine(ws)


def _case(func, index=1, description=None):
    return TestCase(
        description=description or f"test {index}",
        index=index,
        body=CallableExecutable(func),
    )


def _hook(scope, func):
    return Hook(scope=scope, body=CallableExecutable(func))


def _noop(ctx):
    pass


def _boom(ctx):
    raise AssertionError("boom")


def _file(*tests, **hooks):
    return TestFile(path=Path("engine.bats"), tests=tuple(tests), **hooks)


class TestRunTest:
    """Tests for Engine.run_test()."""

    def test_passing(self, engine):
        tf = _file(_case(_noop))
        case = engine.run_test(tf, tf.tests[0], engine.open_file(tf))
        assert case.outcome == "passed"
        assert case.diagnostic is None
        assert case.duration >= 0

    def test_skip_as_first_statement(self, engine):
        """A body that skips immediately is skipped with its reason."""
        tf = _file(_case(lambda ctx: ctx.skip("not yet")))
        case = engine.run_test(tf, tf.tests[0], engine.open_file(tf))
        assert case.outcome == "skipped"
        assert case.skip_reason == "not yet"

    def test_teardown_runs_once_after_assertion_failure(self, engine):
        """Teardown runs exactly once and the body failure is reported."""
        calls = []
        tf = _file(
            _case(_boom),
            teardown=_hook("teardown", lambda ctx: calls.append(ctx.index)),
        )
        case = engine.run_test(tf, tf.tests[0], engine.open_file(tf))
        assert case.outcome == "failed"
        assert case.diagnostic.kind == "AssertionFailure"
        assert case.diagnostic.message == "boom"
        assert calls == [1]

    def test_teardown_runs_after_skip(self, engine):
        calls = []
        tf = _file(
            _case(lambda ctx: ctx.skip()),
            teardown=_hook("teardown", lambda ctx: calls.append("teardown")),
        )
        case = engine.run_test(tf, tf.tests[0], engine.open_file(tf))
        assert case.outcome == "skipped"
        assert calls == ["teardown"]

    def test_setup_failure_skips_body(self, engine):
        """A failing setup fails the test without running the body."""
        calls = []
        tf = _file(
            _case(lambda ctx: calls.append("body")),
            setup=_hook("setup", _boom),
            teardown=_hook("teardown", lambda ctx: calls.append("teardown")),
        )
        case = engine.run_test(tf, tf.tests[0], engine.open_file(tf))
        assert case.outcome == "failed"
        assert case.diagnostic.kind == "SetupError"
        assert case.diagnostic.message == "setup failed: boom"
        assert calls == ["teardown"]

    def test_setup_skip_skips_test(self, engine):
        calls = []
        tf = _file(
            _case(lambda ctx: calls.append("body")),
            setup=_hook("setup", lambda ctx: ctx.skip("no tool")),
        )
        case = engine.run_test(tf, tf.tests[0], engine.open_file(tf))
        assert case.outcome == "skipped"
        assert case.skip_reason == "no tool"
        assert calls == []

    def test_teardown_failure_fails_passing_test(self, engine):
        """A failing teardown turns a pass into a failure."""
        tf = _file(_case(_noop), teardown=_hook("teardown", _boom))
        case = engine.run_test(tf, tf.tests[0], engine.open_file(tf))
        assert case.outcome == "failed"
        assert case.diagnostic.kind == "TeardownError"

    def test_teardown_failure_noted_on_failed_test(self, engine):
        """The body failure stays primary; the teardown failure is a note."""
        def body(ctx):
            raise AssertionError("body broke")

        tf = _file(_case(body), teardown=_hook("teardown", _boom))
        case = engine.run_test(tf, tf.tests[0], engine.open_file(tf))
        assert case.outcome == "failed"
        assert case.diagnostic.message == "body broke"
        assert case.notes == ["teardown failed: boom"]

    def test_state_shared_from_setup_to_body(self, engine):
        """Environment changes made by setup are visible to the body."""
        seen = []

        def setup(ctx):
            ctx.environment["SHARED"] = "from setup"

        tf = _file(
            _case(lambda ctx: seen.append(ctx.environment.get("SHARED"))),
            setup=_hook("setup", setup),
        )
        engine.run_test(tf, tf.tests[0], engine.open_file(tf))
        assert seen == ["from setup"]

    def test_tests_do_not_share_state(self, engine):
        """Each test starts from the file context, not a sibling's state."""
        seen = []

        def first(ctx):
            ctx.environment["LEAK"] = "1"

        tf = _file(_case(first, 1), _case(lambda ctx: seen.append(ctx.environment.get("LEAK")), 2))
        fctx = engine.open_file(tf)
        for case in tf.tests:
            engine.run_test(tf, case, fctx)
        assert seen == [None]

    def test_setup_and_body_share_the_timeout(self, engine):
        """Setup and body draw on one deadline; teardown gets its own."""
        calls = []

        def teardown(ctx):
            calls.append(ctx.run("true").status)

        tf = _file(
            _case(lambda ctx: ctx.run("sleep 0.6")),
            setup=_hook("setup", lambda ctx: ctx.run("sleep 0.6")),
            teardown=_hook("teardown", teardown),
        )
        fctx = engine.open_file(tf)
        fctx.timeout = 1.0
        case = engine.run_test(tf, tf.tests[0], fctx)
        assert case.outcome == "failed"
        assert case.diagnostic.kind == "TimeoutError"
        assert case.duration < 5
        assert calls == [0]
        assert case.notes == []

    def test_teardown_sees_state_of_failing_body(self, engine, tmp_path):
        """Exports made before a shell body fails reach teardown."""
        cleaned = tmp_path / "cleaned"
        text = (
            'teardown() {\n'
            '  [ "$RES" = allocated ]\n'
            f'  touch "{cleaned}"\n'
            '}\n'
            '\n'
            '@test "allocates then fails" {\n'
            '  export RES=allocated\n'
            '  false\n'
            '}\n'
        )
        tf = parse_text(text, tmp_path / "env.bats")
        case = engine.run_test(tf, tf.tests[0], engine.open_file(tf))
        assert case.outcome == "failed"
        assert case.diagnostic.line == 8
        assert case.notes == []
        assert cleaned.exists()

    def test_teardown_sees_state_of_skipped_body(self, engine, tmp_path):
        text = (
            'teardown() {\n  [ "$RES" = allocated ]\n}\n\n'
            '@test "allocates then skips" {\n  export RES=allocated\n  skip "later"\n}\n'
        )
        tf = parse_text(text, tmp_path / "env.bats")
        case = engine.run_test(tf, tf.tests[0], engine.open_file(tf))
        assert case.outcome == "skipped"
        assert case.skip_reason == "later"
        assert case.notes == []

    def test_cannot_run_twice(self, engine):
        tf = _file(_case(_noop))
        fctx = engine.open_file(tf)
        engine.run_test(tf, tf.tests[0], fctx)
        with pytest.raises(RuntimeError):
            tf.tests[0].start()


class TestFileHooks:
    """Tests for setup_file/teardown_file handling."""

    def test_file_setup_failure_fails_all(self, engine):
        """Every test fails with the setup_file diagnostic."""
        tf = _file(_case(_noop, 1), _case(_noop, 2), setup_file=_hook("setup_file", _boom))
        fctx = engine.open_file(tf)
        signal = engine.run_file_setup(tf, fctx)
        assert signal.failed
        cases = engine.abort_file(tf, signal)
        assert [c.outcome for c in cases] == ["failed", "failed"]
        assert cases[0].diagnostic.message == "setup_file failed: boom"

    def test_file_setup_skip_skips_all(self, engine):
        tf = _file(_case(_noop, 1), setup_file=_hook("setup_file", lambda ctx: ctx.skip("later")))
        fctx = engine.open_file(tf)
        cases = engine.abort_file(tf, engine.run_file_setup(tf, fctx))
        assert cases[0].outcome == "skipped"
        assert cases[0].skip_reason == "later"

    def test_file_setup_environment_reaches_tests(self, engine):
        seen = []

        def setup_file(ctx):
            ctx.environment["FIXTURE"] = "ready"

        tf = _file(
            _case(lambda ctx: seen.append(ctx.environment.get("FIXTURE"))),
            setup_file=_hook("setup_file", setup_file),
        )
        fctx = engine.open_file(tf)
        assert not engine.run_file_setup(tf, fctx).failed
        engine.run_test(tf, tf.tests[0], fctx)
        assert seen == ["ready"]

    def test_file_teardown_failure(self, engine):
        tf = _file(_case(_noop), teardown_file=_hook("teardown_file", _boom))
        diagnostic = engine.run_file_teardown(tf, engine.open_file(tf))
        assert diagnostic.kind == "TeardownError"
        assert diagnostic.message == "teardown_file failed: boom"

    def test_no_file_hooks(self, engine):
        tf = _file(_case(_noop))
        fctx = engine.open_file(tf)
        assert engine.run_file_setup(tf, fctx).kind == "continue"
        assert engine.run_file_teardown(tf, fctx) is None

    def test_parallel_opt_out(self, engine):
        def setup_file(ctx):
            ctx.environment["BASHTAP_NO_PARALLELIZE_WITHIN_FILE"] = "true"

        tf = _file(_case(_noop), setup_file=_hook("setup_file", setup_file))
        fctx = engine.open_file(tf)
        assert engine.allows_parallel_tests(fctx)
        engine.run_file_setup(tf, fctx)
        assert not engine.allows_parallel_tests(fctx)


class TestHookFailure:
    """Tests for hook_failure()."""

    def test_timeout_keeps_kind(self):
        diag = Diagnostic(kind="TimeoutError", message="test timed out after 1.0s")
        result = hook_failure(Hook(scope="setup", body=None), diag)
        assert result.kind == "TimeoutError"
        assert result.message == "setup: test timed out after 1.0s"

    def test_missing_diagnostic(self):
        result = hook_failure(Hook(scope="teardown", body=None), None)
        assert result.kind == "TeardownError"
