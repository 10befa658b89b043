"""Core components for the E2E harness."""

from .config import (
    ArtifactPolicy,
    BrowserEngine,
    ReporterConfig,
    ReporterKind,
    RunConfiguration,
    Target,
    load_run_configuration,
)
from .exceptions import (
    HarnessError,
    ConfigError,
    DriverError,
    NavigationError,
    AssertionFailedError,
    StepTimeoutError,
    ReportWriteError,
)
from .logging_config import setup_logging, get_logger
from .run_context import RunContext
from .settings import Settings

__all__ = [
    "ArtifactPolicy",
    "BrowserEngine",
    "ReporterConfig",
    "ReporterKind",
    "RunConfiguration",
    "Target",
    "load_run_configuration",
    "HarnessError",
    "ConfigError",
    "DriverError",
    "NavigationError",
    "AssertionFailedError",
    "StepTimeoutError",
    "ReportWriteError",
    "setup_logging",
    "get_logger",
    "RunContext",
    "Settings",
]
