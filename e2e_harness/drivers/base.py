"""
Driver adapter contract.

The scheduler and test units depend only on this interface; each browser
engine supplies a variant with engine-specific launch semantics behind the
same external contract.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ..core.config import BrowserEngine, Target


@dataclass
class LaunchOptions:
    """Per-attempt launch settings derived from the run configuration."""

    headless: bool = True
    base_url: Optional[str] = None
    expect_timeout: float = 5.0
    navigation_timeout: float = 30.0
    video_dir: Optional[Path] = None


@dataclass
class ElementHandle:
    """A located element; ``native`` is the engine's own handle or locator."""

    selector: str
    native: Any = None


class DriverAdapter(ABC):
    """
    Capability set every browser driver provides.

    One instance drives one isolated browser context for exactly one
    attempt: ``launch`` allocates it, ``close`` discards it. Failures are
    raised as ``NavigationError``, ``AssertionFailedError`` or
    ``StepTimeoutError``.
    """

    engine: Optional[BrowserEngine] = None

    def __init__(self):
        self.target: Optional[Target] = None
        self.options: Optional[LaunchOptions] = None

    @abstractmethod
    async def launch(self, target: Target, options: LaunchOptions) -> None:
        """Start the browser and open a fresh context and page."""

    @abstractmethod
    async def navigate(self, url: str) -> None:
        """Load a URL in the page."""

    @abstractmethod
    async def locate(self, selector: str) -> ElementHandle:
        """Resolve a selector to an element handle."""

    @abstractmethod
    async def assert_visible(self, handle: ElementHandle) -> None:
        """Wait until the element is visible or fail."""

    @abstractmethod
    async def assert_title(self, pattern: str) -> None:
        """Wait until the page title matches a regular expression or fail."""

    @abstractmethod
    async def fill(self, handle: ElementHandle, value: str) -> None:
        """Type a value into an input element."""

    @abstractmethod
    async def click(self, handle: ElementHandle) -> None:
        """Click an element."""

    @abstractmethod
    async def screenshot(self, path: Path) -> Path:
        """Capture the page to an image file."""

    @abstractmethod
    async def start_trace(self) -> None:
        """Begin recording a trace."""

    @abstractmethod
    async def stop_trace(self, path: Path) -> Path:
        """Stop recording and write the trace archive."""

    @abstractmethod
    async def close(self) -> Optional[Path]:
        """
        Tear down the context and browser.

        Returns:
            Path of the recorded video, if one was recorded
        """
