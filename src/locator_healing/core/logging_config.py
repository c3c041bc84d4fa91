"""
Structured JSON logging for element resolution and self-healing.

The package logger and the ``healing.`` component loggers write to
``healing_operations.log`` and ``healing_errors.log``; everything also lands
in ``healing_all.log`` through the root logger.
"""

import json
import logging
import logging.handlers
import os
import sys
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict

from .config import settings


CONTEXT_FIELDS = (
    "scenario_id", "step_text", "page_name", "operation", "phase",
    "duration", "success", "error_code", "progress", "metadata",
)

# Module loggers sit under the package logger; adapters from
# get_healing_logger sit under healing.<component>
PACKAGE_LOGGER = "locator_healing"
COMPONENTS = ("orchestrator",)

MB = 1024 * 1024


def _to_json(obj: Any) -> Any:
    if is_dataclass(obj):
        return asdict(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """Render each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        payload.update({name: getattr(record, name) for name in CONTEXT_FIELDS if hasattr(record, name)})

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(payload, default=_to_json)


class HealingLoggerAdapter(logging.LoggerAdapter):
    """Adds scenario context and operation phases to healing log records."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs.setdefault("extra", {}).update(self.extra)
        return msg, kwargs

    def _operation(self, level: int, message: str, operation: str, phase: str, metadata: Dict[str, Any], **fields):
        self.log(level, message, extra={"operation": operation, "phase": phase, "metadata": metadata, **fields})

    def log_operation_start(self, operation: str, **metadata):
        self._operation(logging.INFO, f"Starting {operation}", operation, "start", metadata)

    def log_operation_success(self, operation: str, duration: float, **metadata):
        self._operation(logging.INFO, f"Completed {operation} successfully", operation, "complete", metadata,
                        success=True, duration=duration)

    def log_operation_failure(self, operation: str, duration: float, error: str, error_code: str = None, **metadata):
        self._operation(logging.WARNING, f"Failed {operation}: {error}", operation, "complete", metadata,
                        success=False, duration=duration, error_code=error_code)

    def log_progress(self, operation: str, progress: float, message: str, **metadata):
        self._operation(logging.INFO, f"{operation} progress: {message}", operation, "progress", metadata,
                        progress=progress)


def _rotating(path: Path, level: int, max_mb: int, backups: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=max_mb * MB, backupCount=backups)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def _env_level(name: str) -> int:
    return getattr(logging, os.getenv(name, "WARNING").upper())


def setup_healing_logging(log_level: str = None, log_dir: str = "logs") -> Dict[str, logging.Logger]:
    """
    Configure console and file logging for the healing subsystem.

    Args:
        log_level: Root level name; defaults to the LOG_LEVEL setting
        log_dir: Directory for the rotating JSON log files

    Returns:
        Configured loggers keyed by component name, plus the package
        logger and the requests, urllib3 and selenium library loggers
    """
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper())
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    structured = StructuredFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    console.setLevel(level)
    root_logger.addHandler(console)
    root_logger.addHandler(_rotating(log_path / "healing_all.log", logging.DEBUG, 10, 5, structured))

    operations = _rotating(log_path / "healing_operations.log", logging.INFO, 10, 10, structured)
    errors = _rotating(log_path / "healing_errors.log", logging.ERROR, 5, 10, structured)

    loggers = {}
    targets = [(component, f"healing.{component}") for component in COMPONENTS]
    for key, name in targets + [(PACKAGE_LOGGER, PACKAGE_LOGGER)]:
        target_logger = logging.getLogger(name)
        target_logger.addHandler(operations)
        target_logger.addHandler(errors)
        loggers[key] = target_logger

    # Third-party noise is capped separately
    for name, env_var in (("requests", "REQUESTS_LOG_LEVEL"), ("urllib3", "REQUESTS_LOG_LEVEL"),
                          ("selenium", "SELENIUM_LOG_LEVEL")):
        library_logger = logging.getLogger(name)
        library_logger.setLevel(_env_level(env_var))
        loggers[name] = library_logger

    return loggers


def get_healing_logger(component: str, scenario_id: str = None, step_text: str = None) -> HealingLoggerAdapter:
    """Adapter for ``healing.<component>`` carrying scenario and step context."""
    extra = {}
    if scenario_id:
        extra["scenario_id"] = scenario_id
    if step_text:
        extra["step_text"] = step_text
    return HealingLoggerAdapter(logging.getLogger(f"healing.{component}"), extra)
