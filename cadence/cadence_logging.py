"""Logging and observability utilities for Cadence.

Records go to stderr in a readable form and, when a log file is configured,
to that file as one JSON object per line. Check-in events (period closes,
cycle edits, lifecycle changes, imports) are emitted through
``observability_hooks`` so callers can subscribe to them.
"""

from __future__ import annotations

import json
import time
import logging as std_logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
from functools import wraps

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_level: Union[str, int] = std_logging.INFO, log_file: Optional[Path] = None) -> None:
    """Configure the ``cadence`` logger tree.

    The console handler writes to stderr; stdout belongs to the stdio
    transport. The optional file handler records everything down to DEBUG.
    """
    logger = std_logging.getLogger("cadence")
    logger.setLevel(log_level)
    logger.handlers.clear()

    console_handler = std_logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(std_logging.Formatter(CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = std_logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(std_logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)

    logger.info(f"Cadence logging initialized at {std_logging.getLevelName(logger.level)}")


class JsonFormatter(std_logging.Formatter):
    """One JSON object per record; ``extra_fields`` are merged in."""

    def format(self, record: std_logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "extra_fields", {}))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        # Dates and paths in event payloads serialize as text
        return json.dumps(entry, default=str)


@contextmanager
def log_operation(
    operation_name: str,
    *,
    level: int = std_logging.INFO,
    logger_name: str = "cadence.operations",
    **extra_fields,
):
    """Log the start, completion and duration of an operation.

    A failure is logged with its traceback and re-raised.
    """
    logger = std_logging.getLogger(logger_name)
    fields = {"operation": operation_name, **extra_fields}
    logger.log(level, f"Starting operation: {operation_name}", extra={"extra_fields": {**fields, "status": "started"}})
    start_time = time.perf_counter()

    try:
        yield
    except Exception as e:
        duration = time.perf_counter() - start_time
        logger.error(
            f"Failed operation: {operation_name} after {duration:.3f}s - {e}",
            extra={"extra_fields": {
                **fields,
                "status": "failed",
                "duration": duration,
                "error_type": type(e).__name__,
            }},
            exc_info=True,
        )
        raise

    duration = time.perf_counter() - start_time
    logger.log(
        level,
        f"Completed operation: {operation_name} in {duration:.3f}s",
        extra={"extra_fields": {**fields, "status": "completed", "duration": duration}},
    )


def log_performance(operation_name: str):
    """Decorator timing each call of the wrapped function at DEBUG level."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            with log_operation(operation_name, level=std_logging.DEBUG, logger_name="cadence.performance"):
                return func(*args, **kwargs)
        return wrapper
    return decorator


class ObservabilityHooks:
    """Registry of callbacks for check-in events."""

    def __init__(self):
        self.hooks: Dict[str, List[Callable[..., Any]]] = {}
        self.logger = std_logging.getLogger("cadence.observability")

    def register_hook(self, event_type: str, callback: Callable[..., Any]) -> None:
        self.hooks.setdefault(event_type, []).append(callback)

    def unregister_hook(self, event_type: str, callback: Callable[..., Any]) -> None:
        callbacks = self.hooks.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def trigger_hooks(self, event_type: str, **data) -> None:
        """Call every callback for ``event_type``; a failing callback is logged and skipped."""
        for hook in list(self.hooks.get(event_type, [])):
            try:
                hook(**data)
            except Exception as e:
                self.logger.error(f"Hook failed for event {event_type}: {e}")

    def emit(self, event_type: str, **data) -> None:
        """Log a check-in event, then hand its payload to the hooks."""
        payload = {"timestamp": datetime.utcnow().isoformat(), **data}
        self.logger.info(f"Event: {event_type}", extra={"extra_fields": {"event_type": event_type, **payload}})
        self.trigger_hooks(event_type, **payload)


observability_hooks = ObservabilityHooks()


def log_error_with_context(error: Exception, context: Dict[str, Any], **extra_fields):
    """Log an error with the operation context it happened in."""
    logger = std_logging.getLogger("cadence.errors")
    logger.error(
        f"Error in {context.get('operation', 'unknown operation')}: {error}",
        extra={"extra_fields": {
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context,
            **extra_fields
        }},
        exc_info=True
    )


def log_period_closed(workstream_id: str, closed_index: int, task_count: int):
    observability_hooks.emit(
        "period_closed",
        workstream_id=workstream_id,
        closed_index=closed_index,
        opened_index=closed_index + 1,
        task_count=task_count,
    )


def log_cycle_updated(task_id: str, cycle_index: int, fields: List[str]):
    observability_hooks.emit("cycle_updated", task_id=task_id, cycle_index=cycle_index, fields=fields)


def log_lifecycle_change(entity_type: str, entity_id: str, lifecycle: str):
    """Emit ``<entity_type>_<lifecycle>``, e.g. ``task_inactive``."""
    observability_hooks.emit(f"{entity_type}_{lifecycle}", entity_id=entity_id, lifecycle=lifecycle)


def log_import_completed(project_count: int, workstream_count: int, task_count: int):
    observability_hooks.emit(
        "import_completed",
        project_count=project_count,
        workstream_count=workstream_count,
        task_count=task_count,
    )
