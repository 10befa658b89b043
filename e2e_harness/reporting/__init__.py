"""
Reporting components for the E2E harness.

This module provides the result reporter, the console/HTML/JSON/JUnit
writers and the local HTML report server.
"""

from .models import FinalizeResult, RunReport, RunSummary
from .reporter import ResultReporter
from .server import create_app, serve_report
from .writers import (
    HtmlReportWriter,
    JsonReportWriter,
    JUnitReportWriter,
    ListWriter,
    create_file_writer,
)

__all__ = [
    "FinalizeResult",
    "HtmlReportWriter",
    "JUnitReportWriter",
    "JsonReportWriter",
    "ListWriter",
    "ResultReporter",
    "RunReport",
    "RunSummary",
    "create_app",
    "create_file_writer",
    "serve_report",
]
