"""
Artifact capture policy and storage layout.

Decides, per attempt, which captures to record and which to keep, and lays
them out under the run's output directory as
``<output_dir>/<unit-slug>-<target>[-retryN]/``.
"""

import hashlib
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from ..core.config import ArtifactPolicy, ScreenshotMode, TraceMode, VideoMode
from ..core.exceptions import ConfigError
from ..core.logging_config import get_logger
from .models import ArtifactKind, ArtifactRef


def slugify(title: str, max_length: int = 60) -> str:
    """Turn a test title into a filesystem-safe, collision-resistant slug."""
    slug = re.sub(r"[^A-Za-z0-9]+", "-", title).strip("-").lower()[:max_length].rstrip("-")
    digest = hashlib.sha1(title.encode("utf-8")).hexdigest()[:5]
    return f"{slug}-{digest}" if slug else digest


@dataclass
class AttemptPlan:
    """Capture decisions and file locations for one attempt."""

    directory: Path
    record_video: bool
    record_trace: bool

    @property
    def trace_path(self) -> Path:
        return self.directory / "trace.zip"

    @property
    def video_path(self) -> Path:
        return self.directory / "video.webm"

    def screenshot_path(self, failed: bool) -> Path:
        return self.directory / ("test-failed-1.png" if failed else "test-finished-1.png")


class ArtifactPlanner:
    """Applies an ArtifactPolicy to individual attempts."""

    def __init__(self, policy: ArtifactPolicy, output_dir: Path, protected: Iterable[Path] = ()):
        """
        Args:
            policy: Capture policy of the run
            output_dir: Directory artifacts are written to
            protected: Paths that clearing the output directory must never remove
        """
        self.policy = policy
        self.output_dir = Path(output_dir)
        self.protected = [Path(p) for p in protected]
        self.logger = get_logger(__name__)

    def attempt_dir(self, unit_title: str, target_name: str, attempt: int) -> Path:
        target_slug = re.sub(r"[^A-Za-z0-9]+", "-", target_name).strip("-").lower() or "target"
        name = f"{slugify(unit_title)}-{target_slug}"
        if attempt > 1:
            name += f"-retry{attempt - 1}"
        return self.output_dir / name

    def plan(self, unit_title: str, target_name: str, attempt: int) -> AttemptPlan:
        """Decide what to record before an attempt starts."""
        record_video = self.policy.video in (VideoMode.ON, VideoMode.RETAIN_ON_FAILURE)
        record_trace = self.policy.trace == TraceMode.ON or (
            self.policy.trace == TraceMode.ON_FIRST_RETRY and attempt == 2
        )
        return AttemptPlan(
            directory=self.attempt_dir(unit_title, target_name, attempt),
            record_video=record_video,
            record_trace=record_trace,
        )

    def should_screenshot(self, failed: bool) -> bool:
        """Decide whether to capture a screenshot once an attempt ends."""
        if self.policy.screenshot == ScreenshotMode.ON:
            return True
        return self.policy.screenshot == ScreenshotMode.ONLY_ON_FAILURE and failed

    def keep_video(self, failed: bool) -> bool:
        """Decide whether a recorded video survives the attempt."""
        if self.policy.video == VideoMode.ON:
            return True
        return self.policy.video == VideoMode.RETAIN_ON_FAILURE and failed

    def prepare_output_dir(self) -> None:
        """
        Clear artifacts left by a previous run.

        Raises:
            ConfigError: If the output directory is or contains a protected path
        """
        output_dir = self.output_dir.resolve()
        for path in self.protected:
            resolved = path.resolve()
            if resolved == output_dir or output_dir in resolved.parents:
                raise ConfigError(
                    f"Refusing to clear output directory {self.output_dir}: it contains {path}",
                    violations=[f"output_dir: must not contain {path}"],
                )

        if self.output_dir.exists():
            shutil.rmtree(self.output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logger.debug(f"Prepared output directory: {self.output_dir}")

    def discard(self, artifacts: Iterable[ArtifactRef]) -> List[ArtifactRef]:
        """Delete artifact files; returns the refs that were removed."""
        removed = []
        for artifact in artifacts:
            try:
                if artifact.path.exists():
                    artifact.path.unlink()
                removed.append(artifact)
            except OSError as e:
                self.logger.warning(f"Failed to delete artifact {artifact.path}: {e}")
        return removed

    @staticmethod
    def ref(kind: ArtifactKind, path: Path, unit: str, target: str, attempt: int) -> ArtifactRef:
        return ArtifactRef(kind=kind, path=path, unit=unit, target=target, attempt=attempt)
