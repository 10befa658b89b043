"""
Run identification for the E2E harness.

Generates the run id that correlates log lines, artifacts and reports
belonging to one invocation.
"""

import uuid
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from dataclasses import dataclass, field


def generate_run_id() -> str:
    """
    Generate a unique run ID.

    Returns:
        Identifier of the form ``YYYYMMDD-<16 hex chars>``
    """
    run_id = uuid.uuid4().hex[:16]
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"{timestamp}-{run_id}"


@dataclass
class RunContext:
    """Context information for one harness invocation."""

    run_id: str = field(default_factory=generate_run_id)
    start_time: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)
    end_time: Optional[float] = None

    @property
    def duration(self) -> float:
        """Get run duration in seconds, up to now if still running."""
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time

    @property
    def start_timestamp(self) -> str:
        """Get formatted start timestamp."""
        return datetime.fromtimestamp(self.start_time).isoformat()

    def finish(self) -> None:
        self.end_time = time.time()

    def to_dict(self) -> Dict[str, Any]:
        """Convert run context to dictionary."""
        return {
            "run_id": self.run_id,
            "start_time": self.start_timestamp,
            "duration": self.duration,
            "metadata": self.metadata,
        }
