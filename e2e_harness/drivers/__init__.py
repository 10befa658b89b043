"""
Browser driver adapters for the E2E harness.

Maps each target to the driver variant for its browser engine.
"""

from typing import Dict, Type

from ..core.config import BrowserEngine, Target
from .base import DriverAdapter, ElementHandle, LaunchOptions
from .playwright_driver import (
    ChromiumDriver,
    FirefoxDriver,
    PlaywrightDriver,
    WebKitDriver,
)

DRIVERS: Dict[BrowserEngine, Type[DriverAdapter]] = {
    BrowserEngine.CHROMIUM: ChromiumDriver,
    BrowserEngine.FIREFOX: FirefoxDriver,
    BrowserEngine.WEBKIT: WebKitDriver,
}


def create_driver(target: Target) -> DriverAdapter:
    """Create a fresh driver instance for a target's engine."""
    return DRIVERS[target.browser]()


__all__ = [
    "DRIVERS",
    "ChromiumDriver",
    "DriverAdapter",
    "ElementHandle",
    "FirefoxDriver",
    "LaunchOptions",
    "PlaywrightDriver",
    "WebKitDriver",
    "create_driver",
]
