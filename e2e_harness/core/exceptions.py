"""
Base exception classes for the E2E harness.

Provides a hierarchy of exceptions for the error types that can occur
while loading configuration, driving browsers and writing reports.
"""

from typing import Optional, Dict, Any


class HarnessError(Exception):
    """Base exception class for all harness errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class ConfigError(HarnessError):
    """Raised when the run configuration or a suite file is absent or malformed."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        violations: Optional[list] = None,
    ):
        super().__init__(message, "CONFIG_INVALID")
        self.source = source
        self.violations = violations or []
        self.context.update(
            {
                "source": source,
                "violations": violations,
            }
        )


class DriverError(HarnessError):
    """Base class for errors raised by a driver adapter during a run."""

    def __init__(
        self,
        message: str,
        error_code: str = "DRIVER_ERROR",
        step: Optional[str] = None,
        selector: Optional[str] = None,
    ):
        super().__init__(message, error_code)
        self.step = step
        self.selector = selector
        self.context.update(
            {
                "step": step,
                "selector": selector,
            }
        )


class NavigationError(DriverError):
    """Raised when a page cannot be loaded."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message, "NAVIGATION_FAILED", step="goto")
        self.url = url
        self.context["url"] = url


class AssertionFailedError(DriverError):
    """Raised when an expectation about the page does not hold."""

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        selector: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
    ):
        super().__init__(message, "ASSERTION_FAILED", step=step, selector=selector)
        self.expected = expected
        self.actual = actual
        self.context.update(
            {
                "expected": expected,
                "actual": actual,
            }
        )


class StepTimeoutError(DriverError):
    """Raised when a step or a whole run instance exceeds its time budget."""

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        selector: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(message, "TIMEOUT", step=step, selector=selector)
        self.timeout = timeout
        self.context["timeout"] = timeout


class ReportWriteError(HarnessError):
    """Raised when a report cannot be written to its output location."""

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        reporter: Optional[str] = None,
    ):
        super().__init__(message, "REPORT_WRITE_FAILED")
        self.file_path = file_path
        self.reporter = reporter
        self.context.update(
            {
                "file_path": file_path,
                "reporter": reporter,
            }
        )
