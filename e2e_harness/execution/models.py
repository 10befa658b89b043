"""
Data models for test units, run instances and artifacts.

Defines Pydantic models for the declarative steps of a test unit, the
per-attempt run instances the scheduler produces, and the artifacts they
capture.
"""

import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..core.exceptions import DriverError


class StepKind(Enum):
    """Actions and assertions a test unit can perform."""

    GOTO = "goto"
    FILL = "fill"
    CLICK = "click"
    EXPECT_VISIBLE = "expect_visible"
    EXPECT_TITLE = "expect_title"


class Step(BaseModel):
    """
    One step of a test unit.

    Suite files write steps as single-key mappings, e.g. ``{"goto": "/"}``,
    ``{"expect_visible": "#username"}`` or
    ``{"fill": {"selector": "#username", "value": "student"}}``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: StepKind = Field(..., description="Step kind")
    argument: str = Field(..., min_length=1, description="URL, selector or title pattern")
    value: Optional[str] = Field(None, description="Value for fill steps")

    @model_validator(mode="before")
    @classmethod
    def parse_shorthand(cls, data):
        """Expand the single-key mapping form."""
        if not isinstance(data, dict) or "kind" in data:
            return data
        if len(data) != 1:
            raise ValueError(f"Step must have exactly one action key, got {sorted(data)}")

        kind, payload = next(iter(data.items()))
        if isinstance(payload, dict):
            return {
                "kind": kind,
                "argument": payload.get("selector") or payload.get("url") or payload.get("pattern"),
                "value": payload.get("value"),
            }
        if isinstance(payload, (list, tuple)):
            if len(payload) != 2:
                raise ValueError(f"Step '{kind}' list form needs [selector, value]")
            return {"kind": kind, "argument": payload[0], "value": payload[1]}
        return {"kind": kind, "argument": payload}

    @model_validator(mode="after")
    def validate_value(self):
        """Validate fill steps carry a value and title patterns compile."""
        if self.kind == StepKind.FILL and self.value is None:
            raise ValueError("Fill step requires a value")
        if self.kind == StepKind.EXPECT_TITLE:
            try:
                re.compile(self.argument)
            except re.error as e:
                raise ValueError(f"Invalid title pattern '{self.argument}': {e}") from e
        return self

    @property
    def selector(self) -> Optional[str]:
        if self.kind in (StepKind.FILL, StepKind.CLICK, StepKind.EXPECT_VISIBLE):
            return self.argument
        return None

    def describe(self) -> str:
        return f"{self.kind.value} {self.argument}"


class TestUnit(BaseModel):
    """A named, independently executable sequence of steps."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    # Not a pytest test class
    __test__ = False

    name: str = Field(..., min_length=1, description="Test name")
    suite: Optional[str] = Field(None, description="Enclosing describe title")
    file: Optional[str] = Field(None, description="Suite file the unit came from")
    steps: List[Step] = Field(..., min_length=1, description="Ordered steps")
    only: bool = Field(False, description="Focus this unit")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("Test name cannot be empty")
        return v.strip()

    @property
    def title(self) -> str:
        """Full title used for reporting and ordering."""
        if self.suite:
            return f"{self.suite} › {self.name}"
        return self.name


class ArtifactKind(Enum):
    """Types of captured artifacts."""

    SCREENSHOT = "screenshot"
    VIDEO = "video"
    TRACE = "trace"


class ArtifactRef(BaseModel):
    """A diagnostic capture produced by one run instance."""

    model_config = ConfigDict(extra="forbid")

    kind: ArtifactKind = Field(..., description="Type of artifact")
    path: Path = Field(..., description="Path to the artifact file")
    unit: str = Field(..., description="Title of the producing test unit")
    target: str = Field(..., description="Name of the producing target")
    attempt: int = Field(..., ge=1, description="Producing attempt number")

    @property
    def file_name(self) -> str:
        return self.path.name

    @property
    def exists(self) -> bool:
        return self.path.exists()


class ExecutionError(BaseModel):
    """Error detail attached to a failed run instance."""

    model_config = ConfigDict(extra="forbid")

    error_type: str = Field(..., description="Error class name")
    message: str = Field(..., description="Error message")
    step: Optional[str] = Field(None, description="Step that failed")
    selector: Optional[str] = Field(None, description="Selector involved, if any")

    @classmethod
    def from_exception(cls, error: BaseException, step: Optional[Step] = None) -> "ExecutionError":
        """Build an error detail from a raised exception."""
        selector = None
        step_name = step.describe() if step else None
        if isinstance(error, DriverError):
            selector = error.selector
            if step is None and error.step:
                step_name = error.step
        if selector is None and step is not None:
            selector = step.selector
        message = getattr(error, "message", None) or str(error) or error.__class__.__name__
        return cls(
            error_type=error.__class__.__name__,
            message=message,
            step=step_name,
            selector=selector,
        )


class RunStatus(Enum):
    """Status of one run instance."""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    RETRYING = "retrying"


class RunInstance(BaseModel):
    """One execution attempt of a test unit against a target."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    unit: str = Field(..., description="Test unit title")
    target: str = Field(..., description="Target name")
    attempt: int = Field(..., ge=1, description="1-based attempt number")
    status: RunStatus = Field(RunStatus.PENDING, description="Attempt status")
    artifacts: List[ArtifactRef] = Field(default_factory=list)
    error: Optional[ExecutionError] = Field(None, description="Failure detail")
    started_at: Optional[datetime] = Field(None, description="Attempt start time")
    duration: float = Field(0.0, ge=0, description="Duration in seconds")

    @property
    def retry(self) -> int:
        """Retry index, 0 for the first attempt."""
        return self.attempt - 1

    def artifacts_of(self, kind: ArtifactKind) -> List[ArtifactRef]:
        return [a for a in self.artifacts if a.kind == kind]


class RunResult(BaseModel):
    """Outcome of a (test unit, target) pair across its attempts."""

    model_config = ConfigDict(extra="forbid")

    unit: str = Field(..., description="Test unit title")
    target: str = Field(..., description="Target name")
    file: Optional[str] = Field(None, description="Suite file")
    attempts: List[RunInstance] = Field(..., min_length=1)

    @property
    def final(self) -> RunInstance:
        return self.attempts[-1]

    @property
    def status(self) -> RunStatus:
        """Status of the final attempt; this is the reported outcome."""
        return self.final.status

    @property
    def passed(self) -> bool:
        return self.status == RunStatus.PASSED

    @property
    def flaky(self) -> bool:
        """Passed, but only after a retry."""
        return self.passed and len(self.attempts) > 1

    @property
    def duration(self) -> float:
        return sum(a.duration for a in self.attempts)

    @property
    def artifacts(self) -> List[ArtifactRef]:
        return [artifact for attempt in self.attempts for artifact in attempt.artifacts]

    @property
    def sort_key(self):
        return (self.unit, self.target)

    def to_summary(self) -> Dict[str, Any]:
        """Create a summary dictionary for logging."""
        return {
            "unit": self.unit,
            "target": self.target,
            "status": self.status.value,
            "attempts": len(self.attempts),
            "flaky": self.flaky,
            "duration": self.duration,
            "artifacts_count": len(self.artifacts),
        }
