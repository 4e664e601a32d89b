"""
Logging configuration for the POS QA harness.

Scenarios run on parallel worker threads, so every line carries the thread
name and, when logged through a context adapter, the scenario, execution
context and platform it belongs to. CI gets one JSON line per record on
stdout; local runs get readable text plus rotating files under ``logs/``.
"""

import functools
import logging
import logging.handlers
import json
import sys
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .config import Config


CONTEXT_FIELDS = ["scenario", "context_id", "platform", "attempt", "duration", "status"]

MB = 1024 * 1024

# Vendor loggers that flood DEBUG output
QUIET_LOGGERS = ("urllib3", "asyncio", "selenium.webdriver.remote")


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    return {attr: getattr(record, attr) for attr in CONTEXT_FIELDS if hasattr(record, attr)}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for CI log collectors."""

    def __init__(self, run_id: str):
        super().__init__()
        self.run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "component": record.name,
            "run_id": self.run_id,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        entry.update(_record_context(record))

        metadata = getattr(record, "metadata", None)
        if metadata is not None:
            entry["metadata"] = metadata
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Single-line text with the scenario and a short run id appended."""

    def __init__(self, run_id: str):
        super().__init__()
        self.run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            f"[{datetime.now():%Y-%m-%d %H:%M:%S}] {record.levelname:8} "
            f"{record.threadName:12} {record.name:28} | {record.getMessage()}"
        ]
        scenario = getattr(record, "scenario", None)
        if scenario is not None:
            parts.append(f" (scenario: {scenario})")
        parts.append(f" (run: {self.run_id[:8]})")

        metadata = getattr(record, "metadata", None)
        if metadata:
            parts.append(" | " + " | ".join(f"{k}={v}" for k, v in metadata.items()))

        text = "".join(parts)
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


def _rotating_handler(
    path: Path, formatter: logging.Formatter, level: int, max_mb: int, backups: int
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_mb * MB, backupCount=backups, encoding="utf-8"
    )
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def setup_logging(config: Config, run_id: str) -> logging.Logger:
    """
    Configure the root logger for a suite run.

    Handlers: stdout always; ``logs/posqa.log`` (10MB x 5) outside CI; a
    per-run debug file (50MB x 3) when the level is DEBUG.

    Args:
        config: Harness configuration
        run_id: Suite run identifier stamped on every record

    Returns:
        The root logger
    """
    level = getattr(logging, config.log_level)
    formatter = (
        StructuredFormatter(run_id) if config.log_format == "json" else TextFormatter(run_id)
    )

    stdout = logging.StreamHandler(sys.stdout)
    stdout.setFormatter(formatter)
    stdout.setLevel(level)
    handlers = [stdout]

    if not config.is_ci_mode:
        handlers.append(_rotating_handler(config.get_log_file_path(), formatter, level, 10, 5))
        if config.debug_enabled:
            debug_path = config.get_debug_log_dir() / f"debug-{run_id[:8]}.log"
            handlers.append(_rotating_handler(debug_path, formatter, logging.DEBUG, 50, 3))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    logging.getLogger("posqa.logging").info(
        f"Logging ready ({config.log_format}, {config.log_level}, {len(handlers)} handler(s))",
        extra={
            "metadata": {
                "run_id": run_id,
                "ci_mode": config.is_ci_mode,
                "debug_enabled": config.debug_enabled,
            }
        },
    )
    return root


class ContextAdapter(logging.LoggerAdapter):
    """Adds fixed context fields to records; per-call ``extra`` values win."""

    def process(self, msg, kwargs):
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str, **context):
    """
    Return ``logging.getLogger(name)``, wrapped in a ContextAdapter when
    context fields such as ``scenario`` or ``context_id`` are given.
    """
    logger = logging.getLogger(name)
    return ContextAdapter(logger, context) if context else logger


def log_performance(logger: logging.Logger, operation: str, duration: float, **metadata):
    """Log how long ``operation`` took, with ``metadata`` attached to the record."""
    logger.info(
        f"Performance: {operation} completed in {duration:.2f}s",
        extra={"metadata": {"operation": operation, "duration": duration, **metadata}},
    )


def timed(operation_name: str, logger: Optional[logging.Logger] = None):
    """
    Decorator recording duration and outcome of each call.

    Success is logged at DEBUG, failure at ERROR before re-raising.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            log = logger or get_logger(f"{func.__module__}.{func.__name__}")
            started = time.monotonic()

            def outcome(success: bool, **fields) -> Dict[str, Any]:
                return {
                    "metadata": {
                        "operation": operation_name,
                        "duration": time.monotonic() - started,
                        "thread": threading.current_thread().name,
                        "success": success,
                        **fields,
                    }
                }

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log.error(f"{operation_name} raised {type(e).__name__}", extra=outcome(False, error=str(e)))
                raise
            log.debug(f"{operation_name} finished", extra=outcome(True))
            return result

        return wrapper

    return decorator
