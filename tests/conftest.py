"""
Pytest configuration and shared fixtures for E2E harness tests.

Provides an in-memory fake browser driver, run configuration builders and
result factories used across the test modules.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from e2e_harness.core.config import (
    ArtifactPolicy,
    ReporterConfig,
    ReporterKind,
    RunConfiguration,
    Target,
)
from e2e_harness.core.exceptions import AssertionFailedError, NavigationError
from e2e_harness.drivers.base import DriverAdapter, ElementHandle, LaunchOptions
from e2e_harness.execution.models import (
    ArtifactKind,
    ArtifactRef,
    ExecutionError,
    RunInstance,
    RunResult,
    RunStatus,
    Step,
    TestUnit,
)

BASE_URL = "https://practicetestautomation.com/practice-test-login/"
LOGIN_SELECTORS = ("#username", "#password", "#submit")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep host CI and harness variables out of every test."""
    for name in (
        "CI",
        "E2E_HARNESS_RETRIES",
        "E2E_HARNESS_WORKERS",
        "E2E_HARNESS_HEADLESS",
        "E2E_HARNESS_LOG_LEVEL",
        "E2E_HARNESS_LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo handler changes made by setup_logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class FakeSite:
    """
    In-memory stand-in for the site under test.

    ``failing_attempts`` makes the first N launches per target see a page
    where nothing is visible, which turns a passing unit flaky.
    """

    def __init__(
        self,
        title: str = "Practice Test Login | Practice Test Automation",
        visible=LOGIN_SELECTORS,
        hang_selectors=(),
        failing_attempts: Optional[Dict[str, int]] = None,
        launch_error: Optional[Exception] = None,
    ):
        self.title = title
        self.visible = set(visible)
        self.hang_selectors = set(hang_selectors)
        self.failing_attempts = failing_attempts or {}
        self.launch_error = launch_error
        self.drivers: List["FakeDriver"] = []
        self.launches: Dict[str, int] = {}

    def driver_factory(self, target: Target) -> "FakeDriver":
        driver = FakeDriver(self)
        self.drivers.append(driver)
        return driver

    def launch_count(self, target_name: str) -> int:
        return self.launches.get(target_name, 0)


class FakeDriver(DriverAdapter):
    """DriverAdapter that answers from a FakeSite and writes stub artifact files."""

    def __init__(self, site: FakeSite):
        super().__init__()
        self.site = site
        self.visited: List[str] = []
        self.actions: List[tuple] = []
        self.launch_number = 0
        self.tracing = False
        self.closed = False

    async def launch(self, target: Target, options: LaunchOptions) -> None:
        if self.site.launch_error is not None:
            raise self.site.launch_error
        self.target = target
        self.options = options
        self.site.launches[target.name] = self.site.launches.get(target.name, 0) + 1
        self.launch_number = self.site.launches[target.name]
        if options.video_dir is not None:
            options.video_dir.mkdir(parents=True, exist_ok=True)

    def _broken(self) -> bool:
        return self.launch_number <= self.site.failing_attempts.get(self.target.name, 0)

    async def navigate(self, url: str) -> None:
        if "unreachable" in url:
            raise NavigationError(f"Failed to navigate to {url}: net::ERR_NAME_NOT_RESOLVED", url=url)
        self.visited.append(url)

    async def locate(self, selector: str) -> ElementHandle:
        return ElementHandle(selector=selector)

    async def assert_visible(self, handle: ElementHandle) -> None:
        if handle.selector in self.site.hang_selectors:
            await asyncio.sleep(3600)
        if self._broken() or handle.selector not in self.site.visible:
            raise AssertionFailedError(
                f"Expected {handle.selector} to be visible",
                step=f"expect_visible {handle.selector}",
                selector=handle.selector,
                expected="visible",
                actual="not found",
            )

    async def assert_title(self, pattern: str) -> None:
        if not re.search(pattern, self.site.title):
            raise AssertionFailedError(
                f"Expected page title to match /{pattern}/, got '{self.site.title}'",
                step=f"expect_title {pattern}",
                expected=pattern,
                actual=self.site.title,
            )

    async def fill(self, handle: ElementHandle, value: str) -> None:
        self.actions.append(("fill", handle.selector, value))

    async def click(self, handle: ElementHandle) -> None:
        self.actions.append(("click", handle.selector))

    async def screenshot(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x89PNG fake")
        return path

    async def start_trace(self) -> None:
        self.tracing = True

    async def stop_trace(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"PK fake trace")
        self.tracing = False
        return path

    async def close(self) -> Optional[Path]:
        self.closed = True
        if self.options is not None and self.options.video_dir is not None:
            video = self.options.video_dir / f"raw-{id(self)}.webm"
            video.write_bytes(b"fake video")
            return video
        return None


@pytest.fixture
def fake_site():
    """Site where the login page renders fully."""
    return FakeSite()


@pytest.fixture
def targets():
    """The three desktop targets."""
    return [
        Target(name="chromium", launch_options={"args": ["--no-sandbox"]}),
        Target(name="firefox"),
        Target(name="webkit"),
    ]


@pytest.fixture
def make_config(tmp_path, targets):
    """Build a RunConfiguration writing under a temporary directory."""

    def _make(**overrides) -> RunConfiguration:
        data = {
            "base_url": BASE_URL,
            "test_dir": tmp_path / "e2e",
            "output_dir": tmp_path / "test-results",
            "retries": 0,
            "workers": 2,
            "timeout": 5000,
            "targets": targets,
            "artifact_policy": ArtifactPolicy(
                screenshot="only-on-failure",
                video="retain-on-failure",
                trace="on-first-retry",
            ),
            "reporters": [ReporterConfig(kind=ReporterKind.LIST)],
        }
        data.update(overrides)
        return RunConfiguration(**data)

    return _make


@pytest.fixture
def login_unit():
    """The login page smoke test."""
    return TestUnit(
        name="should load the practice test login page",
        suite="Example Test Suite",
        file="example.spec.yaml",
        steps=[
            Step(kind="goto", argument="/"),
            Step(kind="expect_title", argument="Practice Test Login"),
            Step(kind="expect_visible", argument="#username"),
            Step(kind="expect_visible", argument="#password"),
            Step(kind="expect_visible", argument="#submit"),
        ],
    )


def make_result(
    unit: str,
    target: str,
    statuses: List[RunStatus],
    artifacts: Optional[List[ArtifactRef]] = None,
    duration: float = 0.5,
    file: Optional[str] = "example.spec.yaml",
) -> RunResult:
    """Build a RunResult with one attempt per status."""
    attempts = []
    for number, status in enumerate(statuses, start=1):
        error = None
        if status != RunStatus.PASSED:
            error = ExecutionError(
                error_type="AssertionFailedError",
                message="Expected #submit to be visible",
                step="expect_visible #submit",
                selector="#submit",
            )
        attempts.append(
            RunInstance(
                unit=unit,
                target=target,
                attempt=number,
                status=status,
                error=error,
                duration=duration,
                artifacts=[a for a in (artifacts or []) if a.attempt == number],
            )
        )
    return RunResult(unit=unit, target=target, file=file, attempts=attempts)


@pytest.fixture
def screenshot_artifact(tmp_path):
    """A screenshot file on disk for attempt 1 of a failing chromium run."""
    path = tmp_path / "test-results" / "login-chromium" / "test-failed-1.png"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x89PNG fake")
    return ArtifactRef(
        kind=ArtifactKind.SCREENSHOT,
        path=path,
        unit="Example Test Suite › login",
        target="chromium",
        attempt=1,
    )


SUITE_YAML = """\
describe: Example Test Suite
tests:
  - name: should load the practice test login page
    steps:
      - goto: /
      - expect_title: Practice Test Login
      - expect_visible: "#username"
      - expect_visible: "#password"
      - expect_visible: "#submit"
"""

CONFIG_YAML = """\
testDir: ./e2e
fullyParallel: true
retries: 0
workers: 2
reporter:
  - - html
    - outputFolder: e2e-report
      open: never
      host: 0.0.0.0
      port: 9323
  - - list
use:
  baseURL: https://practicetestautomation.com/practice-test-login/
  trace: on-first-retry
  screenshot: only-on-failure
  video: retain-on-failure
  headless: true
projects:
  - name: chromium
    use:
      device: Desktop Chrome
      launchOptions:
        args:
          - --no-sandbox
          - --disable-setuid-sandbox
  - name: firefox
    use:
      device: Desktop Firefox
  - name: webkit
    use:
      device: Desktop Safari
"""


@pytest.fixture
def project_dir(tmp_path):
    """A project directory holding a config file and one suite."""
    (tmp_path / "e2e").mkdir()
    (tmp_path / "e2e" / "example.spec.yaml").write_text(SUITE_YAML, encoding="utf-8")
    (tmp_path / "harness.config.yaml").write_text(CONFIG_YAML, encoding="utf-8")
    return tmp_path
