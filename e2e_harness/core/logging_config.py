"""
Logging configuration for the E2E harness.

Log records are correlated by run id and, inside the scheduler, by the
test unit, target and attempt they belong to. CI gets one JSON object per
line; local runs get aligned text lines.
"""

import logging
import logging.handlers
import json
import sys
from datetime import datetime, timezone

from .settings import Settings

# Record attributes bound through get_logger() and copied into log output
CONTEXT_FIELDS = ("target", "unit", "attempt", "worker", "status")


def _record_context(record: logging.LogRecord) -> dict:
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for CI log collectors."""

    def __init__(self, run_id: str):
        super().__init__()
        self.run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "run_id": getattr(record, "run_id", None) or self.run_id,
            "message": record.getMessage(),
        }
        entry.update(_record_context(record))

        metadata = getattr(record, "metadata", None)
        if metadata:
            entry["metadata"] = metadata
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Aligned text lines for local runs."""

    def __init__(self, run_id: str):
        super().__init__()
        self.run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{timestamp} {record.levelname:8} [{self.run_id[:8]}] {record.name}"

        context = _record_context(record)
        if "target" in context:
            line += f" [{context['target']}]"
        if "attempt" in context:
            line += f" #{context['attempt']}"
        line += f": {record.getMessage()}"

        metadata = getattr(record, "metadata", None)
        if metadata:
            line += " (" + ", ".join(f"{k}={v}" for k, v in metadata.items()) + ")"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(settings: Settings, run_id: str) -> logging.Logger:
    """
    Set up logging configuration based on environment and settings.

    Args:
        settings: Settings object with logging options
        run_id: Unique run identifier for log correlation

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, settings.log_level)
    root_logger.setLevel(log_level)

    if settings.log_format == "json":
        formatter = StructuredFormatter(run_id)
    else:
        formatter = TextFormatter(run_id)

    # Console handler goes to stderr; stdout belongs to the list reporter
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if not settings.is_ci_mode:
        file_handler = logging.handlers.RotatingFileHandler(
            settings.get_log_file_path(),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

        if settings.debug_enabled:
            debug_handler = logging.handlers.RotatingFileHandler(
                settings.get_debug_log_dir() / f"debug-{run_id[:8]}.log",
                maxBytes=50 * 1024 * 1024,  # 50MB
                backupCount=3,
                encoding="utf-8",
            )
            debug_handler.setFormatter(formatter)
            debug_handler.setLevel(logging.DEBUG)
            root_logger.addHandler(debug_handler)

    logger = logging.getLogger("e2e_harness.logging")
    logger.debug(
        "Logging configured",
        extra={
            "metadata": {
                "run_id": run_id,
                "log_level": settings.log_level,
                "log_format": settings.log_format,
                "ci_mode": settings.is_ci_mode,
            }
        },
    )

    return root_logger


class ContextAdapter(logging.LoggerAdapter):
    """Logger adapter that merges bound context into each record's extras."""

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        for key, value in self.extra.items():
            extra.setdefault(key, value)
        return msg, kwargs


def get_logger(name: str, **context):
    """
    Get a logger with optional context.

    Args:
        name: Logger name (typically module name)
        **context: Additional context to include in log records

    Returns:
        Logger, or a ContextAdapter when context is given
    """
    logger = logging.getLogger(name)
    if context:
        return ContextAdapter(logger, context)
    return logger


def log_performance(logger, operation: str, duration: float, **metadata):
    """
    Log performance metrics for operations.

    Args:
        logger: Logger instance
        operation: Name of the operation
        duration: Duration in seconds
        **metadata: Additional metadata to include
    """
    logger.info(
        f"Performance: {operation} completed in {duration:.2f}s",
        extra={"metadata": {"operation": operation, "duration": duration, **metadata}},
    )
