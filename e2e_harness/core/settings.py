"""
Environment settings for the E2E harness.

Handles environment variables and defaults for the ambient concerns of a
run: CI detection, logging, and command-line style overrides of the run
configuration.
"""

import os
from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from pathlib import Path

# Minimum retry count enforced when running under CI
CI_MIN_RETRIES = 2


def _env_flag(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value.lower() in ("1", "true", "yes", "on")


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass
class Settings:
    """Process-level settings with environment variable support."""

    # Environment detection
    ci_mode: bool = field(default=False)

    # Overrides applied on top of the run configuration
    retries_override: Optional[int] = field(default=None)
    workers_override: Optional[int] = field(default=None)
    headless_override: Optional[bool] = field(default=None)

    # Logging configuration
    log_level: Optional[str] = field(default=None)
    log_format: str = field(default="text")

    # Directory paths
    project_root: Path = field(default_factory=lambda: Path.cwd())
    logs_dir: Path = field(default_factory=lambda: Path.cwd() / "logs")

    def __post_init__(self):
        """Post-initialization environment overrides and normalization."""
        # Any non-empty CI value turns CI mode on
        if not self.ci_mode and os.getenv("CI"):
            self.ci_mode = True

        if self.retries_override is None:
            self.retries_override = _env_int("E2E_HARNESS_RETRIES")
        if self.workers_override is None:
            self.workers_override = _env_int("E2E_HARNESS_WORKERS")
        if self.headless_override is None:
            self.headless_override = _env_flag("E2E_HARNESS_HEADLESS")

        # Explicit level wins; otherwise the environment, then INFO
        if self.log_level is None:
            self.log_level = os.getenv("E2E_HARNESS_LOG_LEVEL") or "INFO"
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        level = self.log_level.upper()
        if level == "WARN":
            level = "WARNING"
        self.log_level = level if level in valid_log_levels else "INFO"

        format_env = os.getenv("E2E_HARNESS_LOG_FORMAT")
        if format_env in ("text", "json"):
            self.log_format = format_env
        elif self.ci_mode and self.log_format == "text":
            self.log_format = "json"

    @property
    def is_ci_mode(self) -> bool:
        """Check if running in CI environment."""
        return self.ci_mode

    @property
    def debug_enabled(self) -> bool:
        """Check if debug logging is enabled."""
        return self.log_level == "DEBUG"

    @property
    def min_retries(self) -> int:
        """Lowest retry count allowed in this environment."""
        return CI_MIN_RETRIES if self.ci_mode else 0

    def get_log_file_path(self) -> Path:
        """Get the main log file path."""
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        return self.logs_dir / "e2e-harness.log"

    def get_debug_log_dir(self) -> Path:
        """Get the debug log directory path."""
        debug_dir = self.logs_dir / "debug"
        debug_dir.mkdir(parents=True, exist_ok=True)
        return debug_dir

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary for logging."""
        return {
            "ci_mode": self.ci_mode,
            "retries_override": self.retries_override,
            "workers_override": self.workers_override,
            "headless_override": self.headless_override,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "project_root": str(self.project_root),
            "logs_dir": str(self.logs_dir),
        }
