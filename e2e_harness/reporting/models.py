"""
Pydantic models for run reports.

Data models for the run summary and the document that file reporters
render.
"""

from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..execution.models import RunResult, RunStatus


class RunSummary(BaseModel):
    """Summary of final outcomes across all (unit, target) pairs."""

    model_config = ConfigDict(extra="forbid")

    total: int = Field(..., ge=0, description="Number of (unit, target) pairs")
    passed: int = Field(..., ge=0, description="Passed on the first attempt")
    flaky: int = Field(..., ge=0, description="Passed after at least one retry")
    failed: int = Field(..., ge=0, description="Failed on the final attempt")
    attempts: int = Field(..., ge=0, description="Total attempts executed")
    duration: float = Field(..., ge=0, description="Summed attempt time in seconds")

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return (self.passed + self.flaky) / self.total * 100

    @classmethod
    def from_results(cls, results: List[RunResult]) -> "RunSummary":
        failed = sum(1 for r in results if r.status == RunStatus.FAILED)
        flaky = sum(1 for r in results if r.flaky)
        passed = sum(1 for r in results if r.passed) - flaky
        return cls(
            total=len(results),
            passed=passed,
            flaky=flaky,
            failed=failed,
            attempts=sum(len(r.attempts) for r in results),
            duration=sum(r.duration for r in results),
        )


class RunReport(BaseModel):
    """Everything a file reporter needs to render one run."""

    model_config = ConfigDict(extra="forbid")

    run_id: str = Field(..., description="Run identifier")
    started_at: datetime = Field(..., description="Run start time")
    completed_at: datetime = Field(..., description="Run completion time")
    ci_mode: bool = Field(False, description="Whether the run executed in CI")
    configuration: Dict[str, Any] = Field(default_factory=dict)
    summary: RunSummary = Field(..., description="Outcome summary")
    results: List[RunResult] = Field(default_factory=list, description="Sorted results")

    @property
    def failures(self) -> List[RunResult]:
        return [r for r in self.results if r.status == RunStatus.FAILED]


class FinalizeResult(BaseModel):
    """What finalize hands back to the process boundary."""

    model_config = ConfigDict(extra="forbid")

    exit_code: int = Field(..., description="0 when every final attempt passed")
    report_paths: Dict[str, Path] = Field(default_factory=dict)
    summary: RunSummary = Field(..., description="Outcome summary")
    html_report: Optional[Path] = Field(None, description="HTML report folder, if written")
