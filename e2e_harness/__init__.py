"""
E2E Harness - cross-browser end-to-end test runner

Loads a run configuration and declarative test suites, executes every test
against every configured browser target with retry and artifact capture,
and reports the outcome as a console list and a browsable HTML report.
"""

__version__ = "0.1.0"

from .core.config import RunConfiguration, load_run_configuration
from .core.exceptions import HarnessError
from .core.logging_config import setup_logging
from .execution.scheduler import ExecutionScheduler
from .reporting.reporter import ResultReporter

__all__ = [
    "RunConfiguration",
    "load_run_configuration",
    "HarnessError",
    "setup_logging",
    "ExecutionScheduler",
    "ResultReporter",
]
