"""
Result and artifact reporter.

Collects run results as workers finish them and renders the configured
reports on finalize. The reporter's outputs are the only state shared
between concurrently executing run instances, so every write goes through
a single lock.
"""

import sys
import threading
from datetime import datetime, timezone
from typing import List, Optional, TextIO

from ..core.config import ReporterKind, RunConfiguration
from ..core.logging_config import get_logger
from ..core.run_context import RunContext
from ..execution.models import RunResult
from .models import FinalizeResult, RunReport, RunSummary
from .writers import ListWriter, create_file_writer


class ResultReporter:
    """
    Append-only sink for run results.

    ``record`` may be called from any worker; ``finalize`` sorts the
    results by (unit, target), writes the reports and computes the exit
    code.
    """

    def __init__(
        self,
        config: RunConfiguration,
        stream: Optional[TextIO] = None,
        run_context: Optional[RunContext] = None,
        overwrite: bool = False,
    ):
        """
        Initialize the reporter.

        Args:
            config: Run configuration holding the reporter list
            stream: Console stream for the list reporter
            run_context: Run identification; a fresh one when omitted
            overwrite: Replace existing non-empty report folders
        """
        self.config = config
        self.run_context = run_context or RunContext()
        self.logger = get_logger(__name__, run_id=self.run_context.run_id)

        self._lock = threading.Lock()
        self._results: List[RunResult] = []
        self._finalized = False
        self._started_at = datetime.now(timezone.utc)

        self.list_writer = None
        if config.reporter(ReporterKind.LIST) is not None:
            self.list_writer = ListWriter(stream or sys.stdout)

        self.file_writers = []
        for reporter_config in config.reporters:
            writer = create_file_writer(reporter_config, overwrite=overwrite)
            if writer is not None:
                self.file_writers.append(writer)

    @property
    def results(self) -> List[RunResult]:
        """Recorded results in deterministic (unit, target) order."""
        with self._lock:
            return sorted(self._results, key=lambda r: r.sort_key)

    def begin(self, total_runs: int, workers: int) -> None:
        with self._lock:
            self._started_at = datetime.now(timezone.utc)
            if self.list_writer is not None:
                self.list_writer.write_begin(total_runs, workers)

    def record(self, result: RunResult) -> None:
        """Append a finished result and echo its attempts to the console."""
        with self._lock:
            if self._finalized:
                raise RuntimeError("Cannot record results after finalize")
            self._results.append(result)
            if self.list_writer is not None:
                self.list_writer.write_result(result)

        self.logger.debug(
            f"Recorded result: {result.unit} [{result.target}] - {result.status.value}",
            extra={"metadata": result.to_summary()},
        )

    def build_report(self, results: List[RunResult]) -> RunReport:
        return RunReport(
            run_id=self.run_context.run_id,
            started_at=self._started_at,
            completed_at=datetime.now(timezone.utc),
            ci_mode=self.config.ci_mode,
            configuration={
                "base_url": self.config.base_url,
                "retries": self.config.retries,
                "workers": self.config.workers,
                "parallel": self.config.parallel,
                "targets": [t.name for t in self.config.targets],
            },
            summary=RunSummary.from_results(results),
            results=results,
        )

    def finalize(self) -> FinalizeResult:
        """
        Write all reports and compute the exit code.

        Returns:
            Exit code (non-zero when any final attempt failed) and report paths

        Raises:
            ReportWriteError: If a report cannot be written
        """
        with self._lock:
            self._finalized = True
            results = sorted(self._results, key=lambda r: r.sort_key)
            report = self.build_report(results)

            report_paths = {}
            for writer in self.file_writers:
                report_paths[writer.kind.value] = writer.write(report)

            if self.list_writer is not None:
                self.list_writer.write_summary(results, report.summary)

        exit_code = 0 if report.summary.success else 1
        self.logger.info(
            f"Run finished: {report.summary.passed} passed, {report.summary.flaky} flaky, "
            f"{report.summary.failed} failed",
            extra={
                "metadata": {
                    **report.summary.model_dump(),
                    "exit_code": exit_code,
                    "reports": {k: str(v) for k, v in report_paths.items()},
                }
            },
        )
        return FinalizeResult(
            exit_code=exit_code,
            report_paths=report_paths,
            summary=report.summary,
            html_report=report_paths.get(ReporterKind.HTML.value),
        )
