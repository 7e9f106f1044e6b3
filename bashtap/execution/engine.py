"""Per-test and per-file state machines.

Per test::

    INIT -> SETUP -> BODY ----> TEARDOWN -> DONE
              |        |           ^
              |        +-> SKIPPED-+
              +--(fail/skip)-------+

Teardown runs on every path.  A failing setup pins the outcome to failed
and skips the body.  A failing teardown turns a passed test into a failed
one; on a test that already failed or skipped it is kept as a note.

Per file: FILE_SETUP runs once before any test starts, FILE_TEARDOWN once
after every test is DONE.  When FILE_SETUP fails (or skips) every test is
finished without running any of its hooks or body, and FILE_TEARDOWN still
runs.

The timeout clock starts once at SETUP entry and covers setup and body
together; TEARDOWN gets a fresh budget so it still runs after a timeout.
File hooks each get their own budget.  The engine is synchronous; the
schedulers decide what runs concurrently.
"""

from __future__ import annotations

import dataclasses
import logging
import time

from bashtap.execution.context import Context
from bashtap.execution.workspace import Workspace
from bashtap.model import Diagnostic, ExecutionSignal, Hook, TestCase, TestFile

log = logging.getLogger(__name__)

# Hook scope -> diagnostic kind for failures raised by that hook
_HOOK_FAILURE_KINDS = {
    "setup": "SetupError",
    "setup_file": "SetupError",
    "teardown": "TeardownError",
    "teardown_file": "TeardownError",
}

# setup_file can set this to keep the file's tests sequential
NO_PARALLEL_WITHIN_FILE = "BASHTAP_NO_PARALLELIZE_WITHIN_FILE"


def hook_failure(hook: Hook, diagnostic: Diagnostic | None) -> Diagnostic:
    """Relabel a body diagnostic as the failure of ``hook``."""
    if diagnostic is None:
        diagnostic = Diagnostic(kind="Error", message="failed without a diagnostic")
    if diagnostic.kind == "TimeoutError":
        return dataclasses.replace(diagnostic, message=f"{hook.scope}: {diagnostic.message}")
    return dataclasses.replace(
        diagnostic,
        kind=_HOOK_FAILURE_KINDS[hook.scope],
        message=f"{hook.scope} failed: {diagnostic.message}",
    )


class Engine:
    """Runs tests and file-level hooks inside a workspace."""

    def __init__(self, workspace: Workspace) -> None:
        self.workspace = workspace

    def open_file(self, test_file: TestFile) -> Context:
        """Create the file-level context for ``test_file``."""
        return self.workspace.file_context(test_file)

    def allows_parallel_tests(self, file_context: Context) -> bool:
        return file_context.environment.get(NO_PARALLEL_WITHIN_FILE, "") != "true"

    def _invoke(self, hook: Hook, context: Context, arm: bool = True) -> ExecutionSignal:
        if arm:
            context.arm()
        return hook.body.invoke(context)

    def run_file_setup(self, test_file: TestFile, file_context: Context) -> ExecutionSignal:
        """Run setup_file; the returned signal gates the file's tests."""
        if test_file.setup_file is None:
            return ExecutionSignal.proceed()
        log.debug("%s: FILE_SETUP", test_file.path)
        signal = self._invoke(test_file.setup_file, file_context)
        if signal.failed:
            return ExecutionSignal.fail(
                hook_failure(test_file.setup_file, signal.diagnostic), output=signal.output
            )
        return signal

    def run_file_teardown(self, test_file: TestFile, file_context: Context) -> Diagnostic | None:
        """Run teardown_file and return its failure, if any."""
        if test_file.teardown_file is None:
            return None
        log.debug("%s: FILE_TEARDOWN", test_file.path)
        signal = self._invoke(test_file.teardown_file, file_context)
        if signal.failed:
            return hook_failure(test_file.teardown_file, signal.diagnostic)
        return None

    def abort_file(self, test_file: TestFile, signal: ExecutionSignal) -> list[TestCase]:
        """Finish every test of a file whose setup_file failed or skipped."""
        for case in test_file.tests:
            case.start()
            if signal.skipped:
                case.finish("skipped", skip_reason=signal.reason)
            else:
                case.output = signal.output
                case.finish("failed", diagnostic=signal.diagnostic)
        return list(test_file.tests)

    def run_test(self, test_file: TestFile, case: TestCase, file_context: Context) -> TestCase:
        """Drive one test from INIT to DONE and return it finished."""
        context = self.workspace.test_context(file_context, case)
        case.start()
        start = time.monotonic()
        context.arm()

        outcome = "passed"
        diagnostic: Diagnostic | None = None
        skip_reason = ""
        outputs: list[str] = []

        if test_file.setup is not None:
            self._trace(test_file, case, "SETUP")
            signal = self._invoke(test_file.setup, context, arm=False)
            outputs.append(signal.output)
            if signal.failed:
                outcome = "failed"
                diagnostic = hook_failure(test_file.setup, signal.diagnostic)
            elif signal.skipped:
                outcome = "skipped"
                skip_reason = signal.reason

        if outcome == "passed":
            self._trace(test_file, case, "BODY")
            signal = case.body.invoke(context)
            outputs.append(signal.output)
            if signal.failed:
                outcome = "failed"
                diagnostic = signal.diagnostic
            elif signal.skipped:
                self._trace(test_file, case, "SKIPPED")
                outcome = "skipped"
                skip_reason = signal.reason

        if test_file.teardown is not None:
            self._trace(test_file, case, "TEARDOWN")
            signal = self._invoke(test_file.teardown, context)
            outputs.append(signal.output)
            if signal.failed:
                failure = hook_failure(test_file.teardown, signal.diagnostic)
                if outcome == "passed":
                    outcome = "failed"
                    diagnostic = failure
                else:
                    case.notes.append(failure.message)

        self._trace(test_file, case, "DONE")
        case.output = "\n".join(o for o in outputs if o)
        case.finish(
            outcome,
            diagnostic=diagnostic,
            skip_reason=skip_reason,
            duration=time.monotonic() - start,
        )
        return case

    def _trace(self, test_file: TestFile, case: TestCase, state: str) -> None:
        log.debug("%s #%d %s: %s", test_file.path, case.index, case.description, state)
