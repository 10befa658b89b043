"""
Playwright driver adapters.

Drives Chromium, Firefox and WebKit through ``playwright.async_api``,
translating Playwright errors into the harness error taxonomy.
"""

import re
from pathlib import Path
from typing import Optional

from playwright.async_api import (
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
    expect,
)

from ..core.config import BrowserEngine, Target
from ..core.exceptions import (
    AssertionFailedError,
    DriverError,
    NavigationError,
    StepTimeoutError,
)
from ..core.logging_config import get_logger
from .base import DriverAdapter, ElementHandle, LaunchOptions


class PlaywrightDriver(DriverAdapter):
    """Driver adapter backed by a Playwright browser, context and page."""

    def __init__(self):
        super().__init__()
        self.logger = get_logger(__name__, engine=self.engine.value if self.engine else None)
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        self._tracing = False

    @property
    def page(self):
        if self._page is None:
            raise DriverError("Driver has not been launched", "DRIVER_NOT_LAUNCHED")
        return self._page

    def _launch_kwargs(self, target: Target, options: LaunchOptions) -> dict:
        kwargs = {"headless": options.headless}
        if target.args:
            kwargs["args"] = target.args
        return kwargs

    async def launch(self, target: Target, options: LaunchOptions) -> None:
        self.target = target
        self.options = options
        self.logger.debug(
            f"Launching {self.engine.value} for target {target.name}",
            extra={"metadata": {"headless": options.headless, "args": target.args}},
        )

        self._playwright = await async_playwright().start()
        browser_type = getattr(self._playwright, self.engine.value)
        try:
            self._browser = await browser_type.launch(**self._launch_kwargs(target, options))
        except PlaywrightError as e:
            await self._playwright.stop()
            self._playwright = None
            raise DriverError(
                f"Failed to launch {self.engine.value}: {e.message}", "LAUNCH_FAILED"
            ) from e

        context_kwargs = dict(target.use)
        if options.base_url:
            context_kwargs["base_url"] = options.base_url
        if options.video_dir is not None:
            options.video_dir.mkdir(parents=True, exist_ok=True)
            context_kwargs["record_video_dir"] = str(options.video_dir)

        self._context = await self._browser.new_context(**context_kwargs)
        self._context.set_default_timeout(options.expect_timeout * 1000)
        self._context.set_default_navigation_timeout(options.navigation_timeout * 1000)
        self._page = await self._context.new_page()

    async def navigate(self, url: str) -> None:
        self.logger.debug(f"Navigating to: {url}")
        try:
            await self.page.goto(url)
        except PlaywrightTimeoutError as e:
            raise StepTimeoutError(
                f"Navigation to {url} timed out",
                step=f"goto {url}",
                timeout=self.options.navigation_timeout if self.options else None,
            ) from e
        except PlaywrightError as e:
            raise NavigationError(f"Failed to navigate to {url}: {e.message}", url=url) from e

    async def locate(self, selector: str) -> ElementHandle:
        return ElementHandle(selector=selector, native=self.page.locator(selector))

    async def assert_visible(self, handle: ElementHandle) -> None:
        try:
            await expect(handle.native).to_be_visible(
                timeout=self.options.expect_timeout * 1000
            )
        except AssertionError as e:
            raise AssertionFailedError(
                f"Expected {handle.selector} to be visible",
                step=f"expect_visible {handle.selector}",
                selector=handle.selector,
                expected="visible",
                actual=str(e).splitlines()[0] if str(e) else None,
            ) from e

    async def assert_title(self, pattern: str) -> None:
        try:
            await expect(self.page).to_have_title(
                re.compile(pattern), timeout=self.options.expect_timeout * 1000
            )
        except AssertionError as e:
            actual = await self.page.title()
            raise AssertionFailedError(
                f"Expected page title to match /{pattern}/, got '{actual}'",
                step=f"expect_title {pattern}",
                expected=pattern,
                actual=actual,
            ) from e

    async def _act(self, action: str, handle: ElementHandle, coro) -> None:
        try:
            await coro
        except PlaywrightTimeoutError as e:
            raise StepTimeoutError(
                f"{action} on {handle.selector} timed out",
                step=f"{action} {handle.selector}",
                selector=handle.selector,
                timeout=self.options.expect_timeout if self.options else None,
            ) from e
        except PlaywrightError as e:
            raise DriverError(
                f"{action} on {handle.selector} failed: {e.message}",
                "ACTION_FAILED",
                step=f"{action} {handle.selector}",
                selector=handle.selector,
            ) from e

    async def fill(self, handle: ElementHandle, value: str) -> None:
        await self._act("fill", handle, handle.native.fill(value))

    async def click(self, handle: ElementHandle) -> None:
        await self._act("click", handle, handle.native.click())

    async def screenshot(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        await self.page.screenshot(path=str(path))
        return path

    async def start_trace(self) -> None:
        await self._context.tracing.start(screenshots=True, snapshots=True)
        self._tracing = True

    async def stop_trace(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        await self._context.tracing.stop(path=str(path))
        self._tracing = False
        return path

    async def close(self) -> Optional[Path]:
        video_path = None
        try:
            if self._context is not None:
                video = self._page.video if self._page is not None else None
                await self._context.close()
                if video is not None:
                    video_path = Path(await video.path())
            if self._browser is not None:
                await self._browser.close()
        finally:
            if self._playwright is not None:
                await self._playwright.stop()
            self._playwright = None
            self._browser = None
            self._context = None
            self._page = None
        return video_path


class ChromiumDriver(PlaywrightDriver):
    engine = BrowserEngine.CHROMIUM


class FirefoxDriver(PlaywrightDriver):
    engine = BrowserEngine.FIREFOX


class WebKitDriver(PlaywrightDriver):
    engine = BrowserEngine.WEBKIT
