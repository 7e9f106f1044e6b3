"""Executable units: the opaque bodies of tests and hooks.

The engine only knows the ``Executable`` protocol.  ``ShellExecutable``
runs one function of a translated test file through the workspace driver;
``CallableExecutable`` runs a Python callable against the ``Context``.
"""

from __future__ import annotations

import logging
import tempfile
import traceback
from pathlib import Path
from typing import Callable, Protocol

from bashtap.errors import SchedulerError, SkipSignal, TestTimeoutError
from bashtap.execution.capture import invoke
from bashtap.execution.context import Context
from bashtap.model import Diagnostic, ExecutionSignal

log = logging.getLogger(__name__)

# Variables that describe one shell process rather than test state.
_VOLATILE_VARIABLES = frozenset({
    "_",
    "SHLVL",
    "OLDPWD",
    "BASHTAP_SKIP_FILE",
    "BASHTAP_DIAG_FILE",
    "BASHTAP_ENV_FILE",
})


class Executable(Protocol):
    """Anything the engine can run as a test body or hook."""

    def invoke(self, context: Context) -> ExecutionSignal:
        ...


def _timeout_diagnostic(context: Context, line: int | None) -> Diagnostic:
    return Diagnostic(
        kind="TimeoutError",
        message=f"test timed out after {context.timeout}s",
        file=str(context.file),
        line=line,
    )


class ShellExecutable:
    """Runs one shell function of a translated test file.

    The function runs under ``set -eET`` with an ERR trap, so the first
    failing command ends it and is reported with its line.  ``skip`` writes
    a control file and exits.  Unless the process was killed, an EXIT trap
    leaves the shell's final environment behind, and it is copied back into
    the context together with the working directory, so teardown sees what
    a failing or skipped body set up.
    """

    def __init__(self, function: str, line: int | None = None) -> None:
        self.function = function
        self.line = line

    def __repr__(self) -> str:
        return f"ShellExecutable({self.function!r}, line={self.line})"

    def invoke(self, context: Context) -> ExecutionSignal:
        if context.script is None or context.driver is None:
            raise SchedulerError(f"no translated script for {self.function}")

        with tempfile.TemporaryDirectory(prefix="ctl-", dir=context.tmpdir.parent) as tmp:
            control = Path(tmp)
            environment = dict(context.environment)
            environment.update({
                "BASHTAP_SKIP_FILE": str(control / "skip"),
                "BASHTAP_DIAG_FILE": str(control / "diag"),
                "BASHTAP_ENV_FILE": str(control / "env"),
            })
            try:
                timeout = context.remaining()
            except TestTimeoutError:
                return ExecutionSignal.fail(_timeout_diagnostic(context, self.line))

            log.debug("running %s from %s", self.function, context.file)
            result = invoke(
                [context.shell, str(context.driver), str(context.script), self.function],
                environment=environment,
                cwd=context.cwd,
                timeout=timeout,
            )
            if result.not_found:
                raise SchedulerError(f"shell not found: {context.shell}")

            output = result.output
            skip_file = control / "skip"
            if skip_file.exists():
                self._absorb_environment(context, control / "env")
                return ExecutionSignal.skip(skip_file.read_text(), output=output)
            if result.timed_out:
                return ExecutionSignal.fail(
                    _timeout_diagnostic(context, self.line), output=output
                )
            if result.status == 0:
                self._absorb_environment(context, control / "env")
                return ExecutionSignal.proceed(output=output)
            self._absorb_environment(context, control / "env")
            return ExecutionSignal.fail(
                self._diagnose(context, result.describe(), control / "diag"),
                output=output,
            )

    def _diagnose(self, context: Context, ending: str, diag_file: Path) -> Diagnostic:
        """Build a diagnostic from the ERR trap record, if there is one."""
        fallback = Diagnostic(
            kind="AssertionFailure",
            message=f"{self.function} {ending}",
            file=str(context.file),
            line=self.line,
        )
        if not diag_file.exists():
            return fallback
        record = diag_file.read_text()
        parts = record.split("\t", 3)
        if len(parts) != 4:
            return fallback
        status, source, line, command = parts

        if source == str(context.script):
            file = str(context.file)
        elif not source or source == str(context.driver):
            return Diagnostic(
                kind="AssertionFailure",
                message=f"{self.function} returned status {status}",
                file=str(context.file),
                line=self.line,
            )
        else:
            file = source

        message = f"`{command}' failed"
        if status != "1":
            message += f" with status {status}"
        return Diagnostic(
            kind="AssertionFailure",
            message=message,
            file=file,
            line=int(line) if line.isdigit() else self.line,
        )

    def _absorb_environment(self, context: Context, env_file: Path) -> None:
        """Replace the context environment with the shell's final one."""
        if not env_file.exists():
            return
        environment: dict[str, str] = {}
        for entry in env_file.read_bytes().split(b"\0"):
            if not entry:
                continue
            key, sep, value = entry.decode("utf-8", errors="surrogateescape").partition("=")
            if not sep or key in _VOLATILE_VARIABLES or key.startswith("BASH_FUNC_"):
                continue
            environment[key] = value

        pwd = environment.pop("PWD", None)
        if pwd and Path(pwd).is_dir():
            context.cwd = Path(pwd)
        context.environment.clear()
        context.environment.update(environment)


class CallableExecutable:
    """Runs a Python callable taking the ``Context``.

    ``SkipSignal`` and ``AssertionFailure`` raised by the callable become
    skip and fail signals; any other exception fails with its traceback.
    ``SchedulerError`` propagates.
    """

    def __init__(self, func: Callable[[Context], object], line: int | None = None) -> None:
        self.func = func
        self.line = line

    def __repr__(self) -> str:
        name = getattr(self.func, "__name__", repr(self.func))
        return f"CallableExecutable({name})"

    def invoke(self, context: Context) -> ExecutionSignal:
        try:
            context.remaining()
            self.func(context)
        except SkipSignal as e:
            return ExecutionSignal.skip(e.reason)
        except TestTimeoutError:
            return ExecutionSignal.fail(_timeout_diagnostic(context, self.line))
        except SchedulerError:
            raise
        except AssertionError as e:
            return ExecutionSignal.fail(Diagnostic(
                kind="AssertionFailure",
                message=str(e) or "assertion failed",
                file=str(context.file),
                line=self.line,
            ))
        except Exception as e:
            return ExecutionSignal.fail(Diagnostic(
                kind="Error",
                message=f"{type(e).__name__}: {e}\n{traceback.format_exc().rstrip()}",
                file=str(context.file),
                line=self.line,
            ))
        return ExecutionSignal.proceed()
