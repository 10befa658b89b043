"""
Run configuration for the E2E harness.

Defines the Pydantic models describing a run (base URL, parallelism,
retries, workers, timeouts, artifact policy, reporters and browser
targets) and the loader that reads them from a YAML or JSON file.
"""

import json
import os
import re
from enum import Enum
from pathlib import Path
from typing import Dict, Any, List, Optional, Union, Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ConfigError
from .logging_config import get_logger
from .settings import Settings

logger = get_logger(__name__)

DEFAULT_CONFIG_FILES = (
    "harness.config.yaml",
    "harness.config.yml",
    "harness.config.json",
)


class ScreenshotMode(Enum):
    """When to take a screenshot at the end of an attempt."""

    ON = "on"
    OFF = "off"
    ONLY_ON_FAILURE = "only-on-failure"


class VideoMode(Enum):
    """When to record and keep a video of an attempt."""

    ON = "on"
    OFF = "off"
    RETAIN_ON_FAILURE = "retain-on-failure"


class TraceMode(Enum):
    """When to record a trace of an attempt."""

    ON = "on"
    OFF = "off"
    ON_FIRST_RETRY = "on-first-retry"


class ReporterKind(Enum):
    """Available result reporters."""

    LIST = "list"
    HTML = "html"
    JSON = "json"
    JUNIT = "junit"


class OpenPolicy(Enum):
    """When the HTML reporter serves the report after a run."""

    NEVER = "never"
    ALWAYS = "always"
    ON_FAILURE = "on-failure"


class BrowserEngine(Enum):
    """Browser engines a target can run on."""

    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


# Alternative spellings accepted for the artifact policy values
_POLICY_ALIASES = {
    "always": "on",
    "never": "off",
    "onFailure": "only-on-failure",
    "on-failure": "only-on-failure",
    "retainOnFailure": "retain-on-failure",
    "onFirstRetry": "on-first-retry",
    True: "on",
    False: "off",
}

# Desktop device profiles that a target can reference by name
DEVICE_PROFILES: Dict[str, Dict[str, Any]] = {
    "Desktop Chrome": {
        "browser": "chromium",
        "use": {
            "viewport": {"width": 1280, "height": 720},
            "device_scale_factor": 1,
            "is_mobile": False,
            "has_touch": False,
        },
    },
    "Desktop Firefox": {
        "browser": "firefox",
        "use": {
            "viewport": {"width": 1280, "height": 720},
            "device_scale_factor": 1,
            "is_mobile": False,
            "has_touch": False,
        },
    },
    "Desktop Safari": {
        "browser": "webkit",
        "use": {
            "viewport": {"width": 1280, "height": 720},
            "device_scale_factor": 1,
            "is_mobile": False,
            "has_touch": False,
        },
    },
}


class ArtifactPolicy(BaseModel):
    """Capture policy for screenshots, videos and traces."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    screenshot: ScreenshotMode = Field(ScreenshotMode.OFF, description="Screenshot mode")
    video: VideoMode = Field(VideoMode.OFF, description="Video mode")
    trace: TraceMode = Field(TraceMode.OFF, description="Trace mode")
    retain_retried: bool = Field(
        True,
        description="Keep artifacts of failed attempts when a retry later passes",
    )

    @field_validator("screenshot", "video", "trace", mode="before")
    @classmethod
    def normalize_mode(cls, v):
        """Accept the long-form aliases for each mode."""
        if isinstance(v, (str, bool)) and v in _POLICY_ALIASES:
            return _POLICY_ALIASES[v]
        return v


class ReporterConfig(BaseModel):
    """Configuration of one reporter."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: ReporterKind = Field(..., description="Reporter kind")
    output_folder: Optional[Path] = Field(None, description="HTML report folder")
    output_file: Optional[Path] = Field(None, description="JSON/JUnit report file")
    open: OpenPolicy = Field(OpenPolicy.NEVER, description="When to serve the HTML report")
    host: str = Field("localhost", description="Host the report server binds to")
    port: int = Field(9323, ge=0, le=65535, description="Report server port")
    overwrite: bool = Field(False, description="Replace an existing non-empty output")

    @property
    def output_path(self) -> Optional[Path]:
        """Where this reporter writes, with the per-kind default applied."""
        if self.kind == ReporterKind.HTML:
            return self.output_folder or Path("e2e-report")
        if self.kind == ReporterKind.JSON:
            return self.output_file or Path("e2e-report.json")
        if self.kind == ReporterKind.JUNIT:
            return self.output_file or Path("e2e-junit.xml")
        return None


class Target(BaseModel):
    """A named browser engine/profile that every test unit runs against."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., min_length=1, description="Target name")
    browser: BrowserEngine = Field(..., description="Browser engine")
    launch_options: Dict[str, List[str]] = Field(
        default_factory=dict, description="Browser launch options, e.g. args"
    )
    use: Dict[str, Any] = Field(
        default_factory=dict, description="Browser context options"
    )

    @model_validator(mode="before")
    @classmethod
    def default_browser_from_name(cls, data):
        """Use the target name as engine when no browser is given."""
        if isinstance(data, dict) and not data.get("browser"):
            name = str(data.get("name", "")).lower()
            if name in {engine.value for engine in BrowserEngine}:
                data = {**data, "browser": name}
        return data

    @property
    def args(self) -> List[str]:
        return list(self.launch_options.get("args", []))


class RunConfiguration(BaseModel):
    """Global policy for one run. Immutable after load."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = Field(..., description="Base URL relative navigations resolve against")
    test_dir: Path = Field(Path("e2e"), description="Directory holding suite files")
    output_dir: Path = Field(Path("test-results"), description="Artifact output directory")

    parallel: bool = Field(True, description="Distribute runs across workers")
    forbid_only: bool = Field(False, description="Reject units marked only")
    retries: int = Field(0, ge=0, description="Extra attempts for a failing run")
    workers: Union[int, Literal["auto"]] = Field("auto", description="Worker count")
    timeout: int = Field(30000, gt=0, description="Run instance timeout in milliseconds")
    expect_timeout: int = Field(5000, gt=0, description="Assertion wait in milliseconds")
    headless: bool = Field(True, description="Run browsers headless")
    ci_mode: bool = Field(False, description="Running inside CI")

    reporters: List[ReporterConfig] = Field(
        default_factory=lambda: [ReporterConfig(kind=ReporterKind.LIST)],
        description="Reporters in output order",
    )
    artifact_policy: ArtifactPolicy = Field(
        default_factory=ArtifactPolicy, description="Artifact capture policy"
    )
    targets: List[Target] = Field(..., min_length=1, description="Execution targets")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v):
        """Validate base URL is non-empty."""
        if not v or not v.strip():
            raise ValueError("Base URL cannot be empty")
        return v.strip()

    @field_validator("workers")
    @classmethod
    def validate_workers(cls, v):
        """Validate an explicit worker count is positive."""
        if isinstance(v, int) and v < 1:
            raise ValueError("Worker count must be at least 1")
        return v

    @field_validator("targets")
    @classmethod
    def validate_unique_targets(cls, v):
        """Validate target names are unique."""
        seen = set()
        duplicates = []
        for target in v:
            if target.name in seen:
                duplicates.append(target.name)
            seen.add(target.name)
        if duplicates:
            raise ValueError(f"Duplicate target names: {sorted(set(duplicates))}")
        return v

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000

    @property
    def expect_timeout_seconds(self) -> float:
        return self.expect_timeout / 1000

    def resolve_workers(self, cpu_count: Optional[int] = None) -> int:
        """
        Get the effective worker count.

        Args:
            cpu_count: Host parallelism, detected when not given

        Returns:
            1 when not parallel or in CI, else the configured or detected count
        """
        if not self.parallel or self.ci_mode:
            return 1
        if self.workers == "auto":
            if cpu_count is None:
                cpu_count = _available_parallelism()
            return max(1, cpu_count)
        return self.workers

    def reporter(self, kind: ReporterKind) -> Optional[ReporterConfig]:
        """Get the first reporter of a kind, if configured."""
        for reporter in self.reporters:
            if reporter.kind == kind:
                return reporter
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for logging."""
        return self.model_dump(mode="json")


def _available_parallelism() -> int:
    if hasattr(os, "sched_getaffinity"):
        return len(os.sched_getaffinity(0))
    return os.cpu_count() or 1


# Option values that are user data; their keys are kept as written
_VERBATIM_OPTIONS = frozenset({"extra_http_headers", "env", "firefox_user_prefs"})


def _snake(key: str) -> str:
    key = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", key)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", key).lower()


def _snake_keys(data: Any) -> Any:
    if isinstance(data, dict):
        converted = {}
        for key, value in data.items():
            name = _snake(str(key))
            converted[name] = value if name in _VERBATIM_OPTIONS else _snake_keys(value)
        return converted
    if isinstance(data, list):
        return [_snake_keys(item) for item in data]
    return data


_TOP_LEVEL_ALIASES = {
    "fully_parallel": "parallel",
    "reporter": "reporters",
    "projects": "targets",
}


def _normalize_reporter(entry: Any) -> Any:
    # Accepts "list", ["html", {...}] and {"kind": "html", ...}
    if isinstance(entry, str):
        return {"kind": entry}
    if isinstance(entry, (list, tuple)) and entry:
        options = entry[1] if len(entry) > 1 and isinstance(entry[1], dict) else {}
        return {"kind": entry[0], **_snake_keys(options)}
    if isinstance(entry, dict):
        return _snake_keys(entry)
    return entry


def _normalize_target(entry: Any) -> Any:
    if not isinstance(entry, dict):
        return entry
    target = _snake_keys(entry)
    use = dict(target.pop("use", None) or {})

    device_name = use.pop("device", None) or target.pop("device", None)
    if device_name is not None:
        profile = DEVICE_PROFILES.get(device_name)
        if profile is None:
            raise ConfigError(
                f"Unknown device profile: {device_name}",
                violations=[f"targets.{target.get('name')}.device: {device_name}"],
            )
        use = {**profile["use"], **use}
        target.setdefault("browser", profile["browser"])

    if "browser_name" in use:
        target.setdefault("browser", use.pop("browser_name"))
    if "launch_options" in use:
        target.setdefault("launch_options", use.pop("launch_options"))
    if use:
        target["use"] = use
    return target


def normalize_raw_config(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize a raw configuration mapping to RunConfiguration field names.

    Accepts the camelCase layout (``baseURL``, ``fullyParallel``,
    ``projects``, a ``use`` block holding base URL and artifact modes,
    ``reporter`` tuples) as well as plain snake_case keys.
    """
    data: Dict[str, Any] = {}
    for key, value in raw.items():
        snake = _snake(str(key))
        data[_TOP_LEVEL_ALIASES.get(snake, snake)] = value

    use = data.pop("use", None) or {}
    if isinstance(use, dict):
        use = _snake_keys(use)
        policy = dict(data.get("artifact_policy") or {})
        for mode in ("screenshot", "video", "trace"):
            if mode in use:
                policy.setdefault(mode, use.pop(mode))
        if policy:
            data["artifact_policy"] = policy
        for key in ("base_url", "headless"):
            if key in use:
                data.setdefault(key, use.pop(key))
        if use:
            logger.debug(
                "Ignoring unsupported global 'use' options",
                extra={"metadata": {"options": sorted(use)}},
            )

    expect = data.pop("expect", None)
    if isinstance(expect, dict) and "timeout" in expect:
        data.setdefault("expect_timeout", expect["timeout"])

    if isinstance(data.get("artifact_policy"), dict):
        data["artifact_policy"] = _snake_keys(data["artifact_policy"])
    if isinstance(data.get("reporters"), (list, tuple)):
        data["reporters"] = [_normalize_reporter(r) for r in data["reporters"]]
    elif isinstance(data.get("reporters"), str):
        data["reporters"] = [_normalize_reporter(data["reporters"])]
    if isinstance(data.get("targets"), list):
        data["targets"] = [_normalize_target(t) for t in data["targets"]]

    return data


def apply_environment(data: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    """Apply environment and command-line overrides to normalized data."""
    data = dict(data)
    if settings.retries_override is not None:
        data["retries"] = settings.retries_override
    if settings.workers_override is not None:
        data["workers"] = settings.workers_override
    if settings.headless_override is not None:
        data["headless"] = settings.headless_override

    if settings.is_ci_mode:
        data["ci_mode"] = True
        data["forbid_only"] = True
        retries = data.get("retries", 0)
        if isinstance(retries, int) and retries < settings.min_retries:
            data["retries"] = settings.min_retries
    return data


def _format_violations(error: ValidationError) -> List[str]:
    violations = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        violations.append(f"{location}: {item['msg']}")
    return violations


def build_run_configuration(
    raw: Dict[str, Any],
    settings: Optional[Settings] = None,
    source: Optional[str] = None,
) -> RunConfiguration:
    """
    Build and validate a RunConfiguration from a raw mapping.

    Raises:
        ConfigError: If any field is absent or malformed
    """
    if not isinstance(raw, dict):
        raise ConfigError(
            "Configuration must be a mapping",
            source=source,
            violations=["<root>: expected a mapping"],
        )
    settings = settings or Settings()
    data = apply_environment(normalize_raw_config(raw), settings)

    try:
        return RunConfiguration(**data)
    except ValidationError as e:
        violations = _format_violations(e)
        raise ConfigError(
            "Configuration validation failed: " + "; ".join(violations),
            source=source,
            violations=violations,
        ) from e
    except TypeError as e:
        raise ConfigError(
            f"Configuration validation failed: {e}",
            source=source,
            violations=[str(e)],
        ) from e


def find_config_file(start: Optional[Path] = None) -> Optional[Path]:
    """Find a default configuration file in a directory."""
    directory = Path(start or Path.cwd())
    for name in DEFAULT_CONFIG_FILES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_run_configuration(
    path: Optional[Union[str, Path]] = None,
    settings: Optional[Settings] = None,
) -> RunConfiguration:
    """
    Load the run configuration once at process start.

    Relative ``test_dir`` and ``output_dir`` paths are resolved against the
    configuration file's directory.

    Args:
        path: Configuration file; the default names are searched when omitted
        settings: Environment settings supplying overrides

    Returns:
        Validated, immutable run configuration

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    settings = settings or Settings()
    config_path = Path(path) if path else find_config_file(settings.project_root)
    if config_path is None:
        raise ConfigError(
            "No configuration file found",
            violations=[f"expected one of {list(DEFAULT_CONFIG_FILES)}"],
        )
    if not config_path.is_file():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            source=str(config_path),
        )

    try:
        text = config_path.read_text(encoding="utf-8")
        if config_path.suffix.lower() == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(
            f"Failed to read configuration file {config_path}: {e}",
            source=str(config_path),
        ) from e

    config = build_run_configuration(raw or {}, settings, source=str(config_path))

    base_dir = config_path.parent
    updates = {}
    if not config.test_dir.is_absolute():
        updates["test_dir"] = base_dir / config.test_dir
    if not config.output_dir.is_absolute():
        updates["output_dir"] = base_dir / config.output_dir

    reporters = []
    for reporter in config.reporters:
        output = reporter.output_path
        if output is not None and not output.is_absolute():
            field_name = "output_folder" if reporter.kind == ReporterKind.HTML else "output_file"
            reporter = reporter.model_copy(update={field_name: base_dir / output})
        reporters.append(reporter)
    updates["reporters"] = reporters

    if updates:
        config = config.model_copy(update=updates)

    logger.info(
        f"Loaded run configuration from {config_path}",
        extra={
            "metadata": {
                "targets": [t.name for t in config.targets],
                "retries": config.retries,
                "parallel": config.parallel,
                "workers": config.workers,
                "ci_mode": config.ci_mode,
            }
        },
    )
    return config
