"""
Test execution components for the E2E harness.

This module provides suite loading, the target registry, artifact policy
and the scheduler that runs test units across browser targets.
"""

from .artifacts import ArtifactPlanner
from .models import (
    ArtifactKind,
    ArtifactRef,
    ExecutionError,
    RunInstance,
    RunResult,
    RunStatus,
    Step,
    StepKind,
    TestUnit,
)
from .scheduler import ExecutionScheduler
from .targets import TargetRegistry
from .units import filter_units, load_suites

__all__ = [
    "ArtifactPlanner",
    "ArtifactKind",
    "ArtifactRef",
    "ExecutionError",
    "RunInstance",
    "RunResult",
    "RunStatus",
    "Step",
    "StepKind",
    "TestUnit",
    "ExecutionScheduler",
    "TargetRegistry",
    "filter_units",
    "load_suites",
]
