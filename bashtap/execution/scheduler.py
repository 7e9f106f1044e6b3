"""Test schedulers.

Provides SequentialScheduler for single-job runs and AsyncScheduler for
parallel runs.  AsyncScheduler uses asyncio with a thread pool: one job
semaphore of size N gates every hook and test, a file semaphore bounds how
many files are in flight, and a per-file semaphore bounds how many of a
file's tests run at once.  Each file joins all of its test tasks before
FILE_TEARDOWN.

Both return a Report in declaration order, whatever order tests finished in.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from bashtap.errors import SchedulerError
from bashtap.execution.engine import Engine
from bashtap.execution.workspace import Workspace
from bashtap.model import ExecutionPlan, Report, TestCase, TestFile
from bashtap.reporting.aggregator import Aggregator

log = logging.getLogger(__name__)


class _Scheduler:
    """Shared run lifecycle: fresh copies, workspace, fatal error handling."""

    def __init__(self, plan: ExecutionPlan, keep_workspace: bool = False) -> None:
        self.plan = plan
        self.keep_workspace = keep_workspace

    def run(self, files: list[TestFile], aggregator: Aggregator) -> Report:
        """Execute every file and return the final report.

        Args:
            files: Parsed test files; they are not modified.
            aggregator: Receives every finished test.

        Returns:
            Report in declaration order.  A ``SchedulerError`` aborts the
            run and is reported through ``Report.fatal``.
        """
        files = [f.fresh() for f in files]
        aggregator.begin(files)
        try:
            with Workspace(self.plan, keep=self.keep_workspace) as workspace:
                self._execute(Engine(workspace), files, aggregator)
        except SchedulerError as e:
            log.error("run aborted: %s", e)
            return aggregator.finish(fatal=str(e))
        except OSError as e:
            log.error("run aborted: %s", e)
            return aggregator.finish(fatal=f"workspace error: {e}")
        return aggregator.finish()

    def _execute(self, engine: Engine, files: list[TestFile], aggregator: Aggregator) -> None:
        raise NotImplementedError


class SequentialScheduler(_Scheduler):
    """Runs files and their tests one at a time, in declaration order."""

    def _execute(self, engine: Engine, files: list[TestFile], aggregator: Aggregator) -> None:
        for test_file in files:
            if not test_file.tests:
                continue
            file_context = engine.open_file(test_file)
            signal = engine.run_file_setup(test_file, file_context)
            if signal.kind == "continue":
                for case in test_file.tests:
                    aggregator.record(test_file, engine.run_test(test_file, case, file_context))
            else:
                for case in engine.abort_file(test_file, signal):
                    aggregator.record(test_file, case)
            error = engine.run_file_teardown(test_file, file_context)
            if error is not None:
                aggregator.record_file_error(test_file.path, error)


class AsyncScheduler(_Scheduler):
    """Runs up to N hooks/tests at once across and within files."""

    def _execute(self, engine: Engine, files: list[TestFile], aggregator: Aggregator) -> None:
        asyncio.run(self._execute_async(engine, files, aggregator))

    async def _execute_async(
        self, engine: Engine, files: list[TestFile], aggregator: Aggregator
    ) -> None:
        loop = asyncio.get_running_loop()
        jobs = asyncio.Semaphore(self.plan.jobs)
        file_slots = asyncio.Semaphore(self.plan.file_slots)

        with ThreadPoolExecutor(
            max_workers=self.plan.jobs, thread_name_prefix="bashtap-job"
        ) as pool:

            async def work(fn: Callable[..., Any], *args: Any) -> Any:
                """Run one blocking unit on a job slot."""
                async with jobs:
                    return await loop.run_in_executor(pool, fn, *args)

            async def run_test(test_file: TestFile, case: TestCase, file_context, slots) -> None:
                async with slots:
                    finished = await work(engine.run_test, test_file, case, file_context)
                aggregator.record(test_file, finished)

            async def run_file(test_file: TestFile) -> None:
                async with file_slots:
                    if not test_file.tests:
                        return
                    file_context = engine.open_file(test_file)
                    signal = await work(engine.run_file_setup, test_file, file_context)
                    if signal.kind == "continue":
                        width = self.plan.test_slots
                        if not engine.allows_parallel_tests(file_context):
                            width = 1
                        log.debug("%s: running %d tests, %d at a time",
                                  test_file.path, len(test_file.tests), width)
                        slots = asyncio.Semaphore(width)
                        # barrier: FILE_TEARDOWN waits for every test task
                        await asyncio.gather(*(
                            run_test(test_file, case, file_context, slots)
                            for case in test_file.tests
                        ))
                    else:
                        for case in engine.abort_file(test_file, signal):
                            aggregator.record(test_file, case)
                    error = await work(engine.run_file_teardown, test_file, file_context)
                    if error is not None:
                        aggregator.record_file_error(test_file.path, error)

            tasks = [asyncio.create_task(run_file(f)) for f in files]
            try:
                await asyncio.gather(*tasks)
            except BaseException:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise


def create_scheduler(plan: ExecutionPlan, keep_workspace: bool = False) -> _Scheduler:
    """Pick the scheduler for a plan: sequential for one job."""
    if plan.jobs == 1:
        return SequentialScheduler(plan, keep_workspace=keep_workspace)
    return AsyncScheduler(plan, keep_workspace=keep_workspace)
