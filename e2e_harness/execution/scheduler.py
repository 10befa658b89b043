"""
Execution scheduler.

Expands test units across targets, dispatches the resulting work items to a
bounded pool of asyncio workers, applies the retry and timeout policy, and
hands every finished (unit, target) outcome to the reporter.
"""

import asyncio
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional, Sequence
from urllib.parse import urljoin

from ..core.config import RunConfiguration, Target
from ..core.exceptions import StepTimeoutError
from ..core.logging_config import get_logger, log_performance
from ..drivers.base import DriverAdapter, LaunchOptions
from .artifacts import ArtifactPlanner, AttemptPlan
from .models import (
    ArtifactKind,
    ArtifactRef,
    ExecutionError,
    RunInstance,
    RunResult,
    RunStatus,
    Step,
    StepKind,
    TestUnit,
)

DriverFactory = Callable[[Target], DriverAdapter]


def _default_driver_factory(target: Target) -> DriverAdapter:
    from ..drivers import create_driver

    return create_driver(target)


@dataclass
class WorkItem:
    """One (unit, target) pair, numbered in declaration order."""

    index: int
    unit: TestUnit
    target: Target


@dataclass
class _AttemptState:
    step: Optional[Step] = None
    launched: bool = False
    tracing: bool = False
    artifacts: List[ArtifactRef] = field(default_factory=list)


class ExecutionScheduler:
    """
    Runs test units against targets with parallelism, retry and timeout.

    Every attempt gets a new driver from ``driver_factory`` and therefore a
    fresh browser context. Errors raised while driving an attempt are
    converted into a failed status with an ``ExecutionError`` detail and
    never abort sibling attempts or the run.
    """

    def __init__(
        self,
        config: RunConfiguration,
        driver_factory: Optional[DriverFactory] = None,
        reporter=None,
        run_id: Optional[str] = None,
        cpu_count: Optional[int] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            config: Run configuration
            driver_factory: Builds a driver for a target; Playwright by default
            reporter: Optional ResultReporter receiving each finished result
            run_id: Run identifier for log correlation
            cpu_count: Host parallelism used to resolve ``workers: auto``
        """
        self.config = config
        self.driver_factory = driver_factory or _default_driver_factory
        self.reporter = reporter
        self.run_id = run_id
        self.cpu_count = cpu_count
        self.planner = ArtifactPlanner(
            config.artifact_policy,
            config.output_dir,
            protected=[config.test_dir, Path.cwd()],
        )
        self.logger = get_logger(__name__, run_id=run_id)

    @staticmethod
    def expand(units: Sequence[TestUnit], targets: Sequence[Target]) -> List[WorkItem]:
        """Expand units across targets, unit-major in declaration order."""
        items = []
        for unit in units:
            for target in targets:
                items.append(WorkItem(index=len(items), unit=unit, target=target))
        return items

    def worker_count(self, item_count: int) -> int:
        workers = self.config.resolve_workers(self.cpu_count)
        return max(1, min(workers, item_count))

    async def schedule(
        self, units: Sequence[TestUnit], targets: Sequence[Target]
    ) -> AsyncIterator[RunResult]:
        """
        Execute every unit on every target.

        Yields:
            One RunResult per (unit, target) pair, in completion order
        """
        items = self.expand(units, targets)
        if not items:
            return

        workers = self.worker_count(len(items))
        self.planner.prepare_output_dir()
        if self.reporter is not None:
            self.reporter.begin(len(items), workers)

        self.logger.info(
            f"Scheduling {len(items)} run(s) on {workers} worker(s)",
            extra={
                "metadata": {
                    "units": len(units),
                    "targets": [t.name for t in targets],
                    "workers": workers,
                    "retries": self.config.retries,
                }
            },
        )

        pending: asyncio.Queue = asyncio.Queue()
        for item in items:
            pending.put_nowait(item)
        finished: asyncio.Queue = asyncio.Queue()

        async def worker(worker_index: int) -> None:
            while True:
                try:
                    item = pending.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    result = await self.execute_item(item, worker_index)
                except Exception as e:
                    await finished.put(e)
                    return
                await finished.put(result)

        tasks = [asyncio.create_task(worker(i)) for i in range(workers)]
        try:
            for _ in range(len(items)):
                outcome = await finished.get()
                if isinstance(outcome, Exception):
                    raise outcome
                yield outcome
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def run(
        self, units: Sequence[TestUnit], targets: Sequence[Target]
    ) -> List[RunResult]:
        """Execute everything and return results sorted by (unit, target)."""
        start_time = time.time()
        results = [result async for result in self.schedule(units, targets)]
        results.sort(key=lambda r: r.sort_key)

        log_performance(
            self.logger,
            "run",
            time.time() - start_time,
            total=len(results),
            passed=sum(1 for r in results if r.passed),
            failed=sum(1 for r in results if not r.passed),
        )
        return results

    async def execute_item(self, item: WorkItem, worker_index: int = 0) -> RunResult:
        """Run one (unit, target) pair through its attempt chain."""
        max_attempts = self.config.retries + 1
        attempts: List[RunInstance] = []

        for attempt in range(1, max_attempts + 1):
            instance = RunInstance(
                unit=item.unit.title, target=item.target.name, attempt=attempt
            )
            attempts.append(instance)
            log = get_logger(
                __name__,
                run_id=self.run_id,
                unit=item.unit.title,
                target=item.target.name,
                attempt=attempt,
                worker=worker_index,
            )
            error = await self._run_attempt(item, instance, log)

            if error is None:
                instance.status = RunStatus.PASSED
                log.debug(
                    f"Attempt {attempt}/{max_attempts} passed",
                    extra={"status": instance.status.value},
                )
                break
            instance.error = error
            instance.status = RunStatus.RETRYING if attempt < max_attempts else RunStatus.FAILED

            log.info(
                f"Attempt {attempt}/{max_attempts} failed: {item.unit.title}",
                extra={
                    "status": instance.status.value,
                    "metadata": {
                        "error_type": error.error_type,
                        "error": error.message,
                        "will_retry": attempt < max_attempts,
                    },
                },
            )

        result = RunResult(
            unit=item.unit.title,
            target=item.target.name,
            file=item.unit.file,
            attempts=attempts,
        )

        if result.passed and len(attempts) > 1 and not self.config.artifact_policy.retain_retried:
            for earlier in attempts[:-1]:
                self.planner.discard(earlier.artifacts)
                shutil.rmtree(
                    self.planner.attempt_dir(earlier.unit, earlier.target, earlier.attempt),
                    ignore_errors=True,
                )
                earlier.artifacts = []

        if self.reporter is not None:
            self.reporter.record(result)
        return result

    async def _run_attempt(
        self, item: WorkItem, instance: RunInstance, log
    ) -> Optional[ExecutionError]:
        plan = self.planner.plan(item.unit.title, item.target.name, instance.attempt)
        driver: Optional[DriverAdapter] = None
        state = _AttemptState()

        instance.status = RunStatus.RUNNING
        instance.started_at = datetime.now(timezone.utc)
        started = time.monotonic()

        error: Optional[ExecutionError] = None
        try:
            driver = self.driver_factory(item.target)
            await asyncio.wait_for(
                self._drive(driver, item, plan, state),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            timeout_error = StepTimeoutError(
                f"Test timeout of {self.config.timeout}ms exceeded",
                step=state.step.describe() if state.step else None,
                selector=state.step.selector if state.step else None,
                timeout=self.config.timeout_seconds,
            )
            error = ExecutionError.from_exception(timeout_error, step=state.step)
        except Exception as e:
            # Driver failures of any kind end this attempt only
            error = ExecutionError.from_exception(e, step=state.step)

        if driver is not None:
            await self._finish_attempt(driver, instance, plan, state, error is not None, log)
        instance.artifacts = state.artifacts
        instance.duration = time.monotonic() - started
        return error

    async def _drive(
        self, driver: DriverAdapter, item: WorkItem, plan: AttemptPlan, state: _AttemptState
    ) -> None:
        options = LaunchOptions(
            headless=self.config.headless,
            base_url=self.config.base_url,
            expect_timeout=self.config.expect_timeout_seconds,
            navigation_timeout=self.config.timeout_seconds,
            video_dir=plan.directory if plan.record_video else None,
        )
        await driver.launch(item.target, options)
        state.launched = True

        if plan.record_trace:
            await driver.start_trace()
            state.tracing = True

        for step in item.unit.steps:
            state.step = step
            await self._perform(driver, step)
        state.step = None

    async def _perform(self, driver: DriverAdapter, step: Step) -> None:
        if step.kind == StepKind.GOTO:
            await driver.navigate(urljoin(self.config.base_url, step.argument))
        elif step.kind == StepKind.EXPECT_TITLE:
            await driver.assert_title(step.argument)
        else:
            handle = await driver.locate(step.argument)
            if step.kind == StepKind.EXPECT_VISIBLE:
                await driver.assert_visible(handle)
            elif step.kind == StepKind.FILL:
                await driver.fill(handle, step.value)
            elif step.kind == StepKind.CLICK:
                await driver.click(handle)

    async def _finish_attempt(
        self,
        driver: DriverAdapter,
        instance: RunInstance,
        plan: AttemptPlan,
        state: _AttemptState,
        failed: bool,
        log,
    ) -> None:
        unit, target, attempt = instance.unit, instance.target, instance.attempt

        if state.launched and self.planner.should_screenshot(failed):
            try:
                path = await driver.screenshot(plan.screenshot_path(failed))
                state.artifacts.append(
                    self.planner.ref(ArtifactKind.SCREENSHOT, path, unit, target, attempt)
                )
            except Exception as e:
                log.warning(f"Screenshot capture failed: {e}")

        if state.tracing:
            try:
                path = await driver.stop_trace(plan.trace_path)
                state.artifacts.append(
                    self.planner.ref(ArtifactKind.TRACE, path, unit, target, attempt)
                )
            except Exception as e:
                log.warning(f"Trace capture failed: {e}")

        video = None
        try:
            video = await asyncio.wait_for(driver.close(), timeout=self.config.timeout_seconds)
        except Exception as e:
            log.warning(f"Closing driver failed: {e}")

        if video is None or not video.exists():
            return
        try:
            if self.planner.keep_video(failed):
                plan.directory.mkdir(parents=True, exist_ok=True)
                if video != plan.video_path:
                    shutil.move(str(video), str(plan.video_path))
                state.artifacts.append(
                    self.planner.ref(ArtifactKind.VIDEO, plan.video_path, unit, target, attempt)
                )
            else:
                video.unlink()
        except OSError as e:
            log.warning(f"Video handling failed for {video}: {e}")
