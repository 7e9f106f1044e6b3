"""Test execution: capture primitive, engine state machines and schedulers."""

from bashtap.execution.capture import RunResult, invoke
from bashtap.execution.context import Context
from bashtap.execution.engine import Engine
from bashtap.execution.executable import CallableExecutable, Executable, ShellExecutable
from bashtap.execution.scheduler import AsyncScheduler, SequentialScheduler, create_scheduler
from bashtap.execution.workspace import Workspace

__all__ = [
    "AsyncScheduler",
    "CallableExecutable",
    "Context",
    "Engine",
    "Executable",
    "RunResult",
    "SequentialScheduler",
    "ShellExecutable",
    "Workspace",
    "create_scheduler",
    "invoke",
]
