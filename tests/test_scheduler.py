"""
Unit tests for the execution scheduler.

Tests unit × target expansion, retry chains, timeouts, artifact capture
decisions and deterministic result ordering, using the in-memory driver.
"""

from unittest.mock import MagicMock, patch

import pytest

from e2e_harness.core.config import ArtifactPolicy, Target
from e2e_harness.core.exceptions import ConfigError
from e2e_harness.execution.models import ArtifactKind, RunStatus, Step, TestUnit
from e2e_harness.execution.scheduler import ExecutionScheduler

from conftest import BASE_URL, FakeSite


def _files(directory):
    if not directory.exists():
        return []
    return sorted(p for p in directory.rglob("*") if p.is_file())


class TestExpansion:
    """Test cases for work item expansion and worker sizing."""

    def test_expand_is_unit_major(self, make_config, targets, login_unit):
        """Test every unit is paired with every target in declaration order."""
        second = login_unit.model_copy(update={"name": "second"})
        items = ExecutionScheduler.expand([login_unit, second], targets)

        assert [(i.unit.name, i.target.name) for i in items] == [
            (login_unit.name, "chromium"),
            (login_unit.name, "firefox"),
            (login_unit.name, "webkit"),
            ("second", "chromium"),
            ("second", "firefox"),
            ("second", "webkit"),
        ]
        assert [i.index for i in items] == list(range(6))

    def test_worker_count_bounded_by_items(self, make_config):
        """Test workers never exceed the number of work items."""
        scheduler = ExecutionScheduler(make_config(workers=8))
        assert scheduler.worker_count(3) == 3
        assert scheduler.worker_count(20) == 8

    def test_worker_count_serial_when_not_parallel(self, make_config):
        """Test non-parallel runs use a single worker."""
        scheduler = ExecutionScheduler(make_config(workers=4, parallel=False))
        assert scheduler.worker_count(10) == 1

    def test_worker_count_auto(self, make_config):
        """Test auto workers follow the host parallelism."""
        scheduler = ExecutionScheduler(make_config(workers="auto"), cpu_count=3)
        assert scheduler.worker_count(10) == 3


class TestPassingRuns:
    """Test cases for runs where every step succeeds."""

    @pytest.mark.asyncio
    async def test_all_targets_pass_without_artifacts(self, make_config, fake_site, login_unit, targets):
        """Test a passing unit on three targets yields three passed results and no files."""
        config = make_config(workers=2)
        scheduler = ExecutionScheduler(config, driver_factory=fake_site.driver_factory)

        results = await scheduler.run([login_unit], targets)

        assert [r.target for r in results] == ["chromium", "firefox", "webkit"]
        assert all(r.status == RunStatus.PASSED for r in results)
        assert all(len(r.attempts) == 1 for r in results)
        assert all(r.artifacts == [] for r in results)
        assert _files(config.output_dir) == []

    @pytest.mark.asyncio
    async def test_each_attempt_gets_a_fresh_driver(self, make_config, fake_site, login_unit, targets):
        """Test drivers are created and closed once per attempt."""
        scheduler = ExecutionScheduler(make_config(), driver_factory=fake_site.driver_factory)

        await scheduler.run([login_unit], targets)

        assert len(fake_site.drivers) == 3
        assert all(driver.closed for driver in fake_site.drivers)

    @pytest.mark.asyncio
    async def test_goto_resolves_against_base_url(self, make_config, fake_site, targets):
        """Test relative navigation targets are joined with the base URL."""
        unit = TestUnit(
            name="navigate",
            steps=[Step(kind="goto", argument="/"), Step(kind="goto", argument="logged-in-successfully/")],
        )
        scheduler = ExecutionScheduler(make_config(), driver_factory=fake_site.driver_factory)

        await scheduler.run([unit], targets[:1])

        assert fake_site.drivers[0].visited == [
            "https://practicetestautomation.com/",
            BASE_URL + "logged-in-successfully/",
        ]

    @pytest.mark.asyncio
    async def test_fill_and_click_are_forwarded(self, make_config, fake_site, targets):
        """Test action steps reach the driver with their values."""
        unit = TestUnit(
            name="login",
            steps=[
                Step(kind="goto", argument="/"),
                Step(kind="fill", argument="#username", value="student"),
                Step(kind="fill", argument="#password", value="Password123"),
                Step(kind="click", argument="#submit"),
            ],
        )
        scheduler = ExecutionScheduler(make_config(), driver_factory=fake_site.driver_factory)

        results = await scheduler.run([unit], targets[:1])

        assert results[0].passed
        assert fake_site.drivers[0].actions == [
            ("fill", "#username", "student"),
            ("fill", "#password", "Password123"),
            ("click", "#submit"),
        ]

    @pytest.mark.asyncio
    async def test_screenshot_on_captures_passing_attempts(self, make_config, fake_site, login_unit, targets):
        """Test screenshot mode on captures a finished screenshot for passes."""
        config = make_config(artifact_policy=ArtifactPolicy(screenshot="on"))
        scheduler = ExecutionScheduler(config, driver_factory=fake_site.driver_factory)

        results = await scheduler.run([login_unit], targets[:1])

        shots = results[0].final.artifacts_of(ArtifactKind.SCREENSHOT)
        assert len(shots) == 1
        assert shots[0].file_name == "test-finished-1.png"
        assert shots[0].exists


class TestFailingRuns:
    """Test cases for failures, retries and timeouts."""

    @pytest.mark.asyncio
    async def test_missing_submit_fails_every_target(self, make_config, login_unit, targets):
        """Test a missing element fails each target with an assertion on that selector."""
        site = FakeSite(visible=("#username", "#password"))
        scheduler = ExecutionScheduler(make_config(), driver_factory=site.driver_factory)

        results = await scheduler.run([login_unit], targets)

        assert len(results) == 3
        for result in results:
            assert result.status == RunStatus.FAILED
            error = result.final.error
            assert error.error_type == "AssertionFailedError"
            assert error.selector == "#submit"
            assert error.step == "expect_visible #submit"

    @pytest.mark.asyncio
    async def test_failed_attempt_keeps_screenshot_and_video(self, make_config, login_unit, targets):
        """Test only-on-failure screenshots and retain-on-failure videos survive failures."""
        site = FakeSite(visible=())
        config = make_config()
        scheduler = ExecutionScheduler(config, driver_factory=site.driver_factory)

        results = await scheduler.run([login_unit], targets[:1])

        final = results[0].final
        shots = final.artifacts_of(ArtifactKind.SCREENSHOT)
        videos = final.artifacts_of(ArtifactKind.VIDEO)
        assert len(shots) == 1 and shots[0].file_name == "test-failed-1.png"
        assert len(videos) == 1 and videos[0].file_name == "video.webm"
        assert final.artifacts_of(ArtifactKind.TRACE) == []
        assert all(a.exists for a in final.artifacts)

    @pytest.mark.asyncio
    async def test_retries_run_exactly_n_plus_one_attempts(self, make_config, login_unit, targets):
        """Test an always-failing unit is attempted retries + 1 times."""
        site = FakeSite(visible=())
        scheduler = ExecutionScheduler(make_config(retries=3), driver_factory=site.driver_factory)

        results = await scheduler.run([login_unit], targets[:1])

        result = results[0]
        assert len(result.attempts) == 4
        assert site.launch_count("chromium") == 4
        assert [a.status for a in result.attempts] == [
            RunStatus.RETRYING,
            RunStatus.RETRYING,
            RunStatus.RETRYING,
            RunStatus.FAILED,
        ]
        assert [a.attempt for a in result.attempts] == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_retry_stops_after_pass(self, make_config, login_unit, targets):
        """Test a unit that passes on its second attempt is not retried further."""
        site = FakeSite(failing_attempts={"chromium": 1})
        scheduler = ExecutionScheduler(make_config(retries=2), driver_factory=site.driver_factory)

        results = await scheduler.run([login_unit], targets[:1])

        result = results[0]
        assert len(result.attempts) == 2
        assert result.status == RunStatus.PASSED
        assert result.flaky
        assert result.attempts[0].status == RunStatus.RETRYING

    @pytest.mark.asyncio
    async def test_trace_recorded_on_first_retry_only(self, make_config, login_unit, targets):
        """Test on-first-retry records a trace for attempt two and no other."""
        site = FakeSite(visible=())
        scheduler = ExecutionScheduler(make_config(retries=2), driver_factory=site.driver_factory)

        results = await scheduler.run([login_unit], targets[:1])

        traces = [a.artifacts_of(ArtifactKind.TRACE) for a in results[0].attempts]
        assert [len(t) for t in traces] == [0, 1, 0]
        assert traces[1][0].file_name == "trace.zip"
        assert traces[1][0].attempt == 2

    @pytest.mark.asyncio
    async def test_failed_attempt_artifacts_kept_when_retry_passes(self, make_config, login_unit, targets):
        """Test earlier failure artifacts are retained by default after a passing retry."""
        site = FakeSite(failing_attempts={"chromium": 1})
        scheduler = ExecutionScheduler(make_config(retries=1), driver_factory=site.driver_factory)

        results = await scheduler.run([login_unit], targets[:1])

        first, second = results[0].attempts
        assert len(first.artifacts_of(ArtifactKind.SCREENSHOT)) == 1
        assert all(a.exists for a in first.artifacts)
        assert second.artifacts_of(ArtifactKind.SCREENSHOT) == []

    @pytest.mark.asyncio
    async def test_failed_attempt_artifacts_discarded_when_not_retained(
        self, make_config, login_unit, targets
    ):
        """Test retain_retried false deletes earlier attempts' files after a passing retry."""
        site = FakeSite(failing_attempts={"chromium": 1})
        policy = ArtifactPolicy(
            screenshot="only-on-failure", video="retain-on-failure", retain_retried=False
        )
        config = make_config(retries=1, artifact_policy=policy)
        scheduler = ExecutionScheduler(config, driver_factory=site.driver_factory)

        results = await scheduler.run([login_unit], targets[:1])

        assert results[0].passed
        assert results[0].attempts[0].artifacts == []
        assert _files(config.output_dir) == []

    @pytest.mark.asyncio
    async def test_timeout_fails_attempt(self, make_config, login_unit, targets):
        """Test a hanging step is cut off by the run instance timeout."""
        site = FakeSite(hang_selectors=("#password",))
        scheduler = ExecutionScheduler(make_config(timeout=200), driver_factory=site.driver_factory)

        results = await scheduler.run([login_unit], targets[:1])

        error = results[0].final.error
        assert results[0].status == RunStatus.FAILED
        assert error.error_type == "StepTimeoutError"
        assert "200ms" in error.message
        assert error.selector == "#password"
        assert site.drivers[0].closed

    @pytest.mark.asyncio
    async def test_navigation_error_is_recorded(self, make_config, fake_site, targets):
        """Test navigation failures surface as NavigationError details."""
        unit = TestUnit(name="broken link", steps=[Step(kind="goto", argument="https://unreachable.invalid/")])
        scheduler = ExecutionScheduler(make_config(), driver_factory=fake_site.driver_factory)

        results = await scheduler.run([unit], targets[:1])

        error = results[0].final.error
        assert error.error_type == "NavigationError"
        assert error.step == "goto https://unreachable.invalid/"
        assert error.selector is None

    @pytest.mark.asyncio
    async def test_launch_failure_does_not_abort_siblings(self, make_config, login_unit, targets):
        """Test an unexpected driver exception fails only its own run instances."""
        site = FakeSite(launch_error=RuntimeError("browser crashed"))
        scheduler = ExecutionScheduler(make_config(), driver_factory=site.driver_factory)

        results = await scheduler.run([login_unit], targets)

        assert len(results) == 3
        for result in results:
            assert result.status == RunStatus.FAILED
            assert result.final.error.error_type == "RuntimeError"
            assert result.final.error.message == "browser crashed"
            assert result.artifacts == []


    @pytest.mark.asyncio
    async def test_driver_factory_error_fails_only_its_target(self, make_config, fake_site, login_unit, targets):
        """Test a driver that cannot be created fails its own run and no other."""

        def factory(target):
            if target.name == "firefox":
                raise OSError("browser binary missing")
            return fake_site.driver_factory(target)

        scheduler = ExecutionScheduler(make_config(), driver_factory=factory)

        results = await scheduler.run([login_unit], targets)

        assert {r.target: r.status for r in results} == {
            "chromium": RunStatus.PASSED,
            "firefox": RunStatus.FAILED,
            "webkit": RunStatus.PASSED,
        }
        firefox = next(r for r in results if r.target == "firefox")
        assert firefox.final.error.error_type == "OSError"
        assert firefox.final.error.message == "browser binary missing"

    @pytest.mark.asyncio
    async def test_video_move_error_keeps_result(self, make_config, login_unit, targets):
        """Test a failure to store the video leaves the attempt's outcome intact."""
        site = FakeSite(visible=())
        scheduler = ExecutionScheduler(make_config(), driver_factory=site.driver_factory)

        with patch("e2e_harness.execution.scheduler.shutil.move", side_effect=OSError("disk full")):
            results = await scheduler.run([login_unit], targets[:1])

        final = results[0].final
        assert final.status == RunStatus.FAILED
        assert final.error.error_type == "AssertionFailedError"
        assert final.artifacts_of(ArtifactKind.VIDEO) == []
        assert len(final.artifacts_of(ArtifactKind.SCREENSHOT)) == 1

class TestOrderingAndReporting:
    """Test cases for result ordering and reporter hand-off."""

    @pytest.mark.asyncio
    async def test_results_sorted_by_unit_then_target(self, make_config, fake_site, targets):
        """Test results come back in (unit, target) order regardless of completion order."""
        units = [
            TestUnit(name=name, steps=[Step(kind="goto", argument="/")])
            for name in ("zeta", "alpha", "mid")
        ]
        reversed_targets = list(reversed(targets))
        scheduler = ExecutionScheduler(make_config(workers=4), driver_factory=fake_site.driver_factory)

        first = await scheduler.run(units, reversed_targets)
        second = await scheduler.run(units, reversed_targets)

        keys = [(r.unit, r.target) for r in first]
        assert keys == sorted(keys)
        assert keys == [(r.unit, r.target) for r in second]
        assert len(keys) == 9

    @pytest.mark.asyncio
    async def test_reporter_receives_begin_and_each_result(self, make_config, fake_site, login_unit, targets):
        """Test the scheduler announces the run and records every result."""
        reporter = MagicMock()
        scheduler = ExecutionScheduler(
            make_config(workers=2), driver_factory=fake_site.driver_factory, reporter=reporter
        )

        await scheduler.run([login_unit], targets)

        reporter.begin.assert_called_once_with(3, 2)
        assert reporter.record.call_count == 3

    @pytest.mark.asyncio
    async def test_no_work_yields_nothing(self, make_config, fake_site, targets):
        """Test an empty unit list produces no results."""
        reporter = MagicMock()
        scheduler = ExecutionScheduler(make_config(), driver_factory=fake_site.driver_factory, reporter=reporter)

        assert await scheduler.run([], targets) == []
        reporter.begin.assert_not_called()

    @pytest.mark.asyncio
    async def test_previous_run_artifacts_are_cleared(self, make_config, fake_site, login_unit, targets):
        """Test the output directory is emptied before a run."""
        config = make_config()
        stale = config.output_dir / "old" / "test-failed-1.png"
        stale.parent.mkdir(parents=True)
        stale.write_bytes(b"old")
        scheduler = ExecutionScheduler(config, driver_factory=fake_site.driver_factory)

        await scheduler.run([login_unit], targets[:1])

        assert not stale.exists()

    @pytest.mark.asyncio
    async def test_output_dir_holding_suites_is_refused(self, make_config, fake_site, login_unit, targets, tmp_path):
        """Test an output directory that contains the suites stops the run before any launch."""
        suite = tmp_path / "e2e" / "example.spec.yaml"
        suite.parent.mkdir()
        suite.write_text("tests: []\n", encoding="utf-8")
        scheduler = ExecutionScheduler(make_config(output_dir=tmp_path), driver_factory=fake_site.driver_factory)

        with pytest.raises(ConfigError, match="Refusing to clear"):
            await scheduler.run([login_unit], targets)

        assert suite.exists()
        assert fake_site.launches == {}

    @pytest.mark.asyncio
    async def test_single_target_single_worker(self, make_config, fake_site, login_unit):
        """Test a run restricted to one target still produces one result."""
        scheduler = ExecutionScheduler(make_config(workers=1), driver_factory=fake_site.driver_factory)

        results = await scheduler.run([login_unit], [Target(name="webkit")])

        assert len(results) == 1
        assert results[0].target == "webkit"
