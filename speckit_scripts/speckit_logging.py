"""Logging and observability utilities for the Speck-It scripts.

Every module logs under the ``speckit`` logger hierarchy. The console gets a
detailed human-readable format; an optional file handler receives one JSON
object per record so runs can be inspected after the fact.

Structured data travels on records as ``extra={"extra_fields": {...}}`` and
is merged into the JSON output by :class:`JsonFormatter`.
"""

from __future__ import annotations

import json
import os
import time
import logging as std_logging
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

LOG_LEVEL_ENV = "SPECKIT_LOG_LEVEL"
LOG_FILE_ENV = "SPECKIT_LOG_FILE"
ROOT_LOGGER = "speckit"

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s"
CONSOLE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _extra(**fields: Any) -> Dict[str, Dict[str, Any]]:
    return {"extra_fields": fields}


def setup_logging(log_level: Union[str, int] = std_logging.INFO, log_file: Optional[Path] = None) -> None:
    """Configure the ``speckit`` logger with console and optional JSON file output.

    Calling it again replaces the handlers installed by the previous call.
    """

    if isinstance(log_level, str):
        log_level = log_level.upper()

    logger = std_logging.getLogger(ROOT_LOGGER)
    logger.setLevel(log_level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # stderr keeps stdout clean for --json output
    console = std_logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(std_logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=CONSOLE_DATEFMT))
    logger.addHandler(console)

    if log_file:
        json_file = std_logging.FileHandler(log_file, encoding="utf-8")
        json_file.setLevel(std_logging.DEBUG)
        json_file.setFormatter(JsonFormatter())
        logger.addHandler(json_file)

    logger.debug("Speck-It logging initialized")


def setup_logging_from_env(default_level: Union[str, int] = std_logging.WARNING) -> None:
    """Configure logging from ``SPECKIT_LOG_LEVEL`` and ``SPECKIT_LOG_FILE``."""

    level = os.getenv(LOG_LEVEL_ENV) or default_level
    log_file = os.getenv(LOG_FILE_ENV)
    setup_logging(level, Path(log_file) if log_file else None)


class JsonFormatter(std_logging.Formatter):
    """One JSON object per record, with ``extra_fields`` merged in."""

    def format(self, record: std_logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(getattr(record, "extra_fields", {}))
        return json.dumps(entry, default=str, ensure_ascii=False)


class PerformanceMonitor:
    """In-process store of timing samples, keyed by metric name."""

    def __init__(self):
        self.metrics: Dict[str, List[Dict[str, Any]]] = {}
        self.logger = std_logging.getLogger("speckit.performance")

    def record_metric(self, name: str, value: Any, tags: Optional[Dict[str, str]] = None) -> None:
        sample = {"timestamp": _utcnow(), "name": name, "value": value, "tags": tags or {}}
        self.metrics.setdefault(name, []).append(sample)
        self.logger.debug(f"Metric recorded: {name}={value}", extra=_extra(**sample))

    def get_metrics(self, name: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        if name:
            return {name: self.metrics.get(name, [])}
        return dict(self.metrics)

    def clear(self) -> None:
        self.metrics.clear()


performance_monitor = PerformanceMonitor()


def log_performance(operation_name: str):
    """Decorator timing each call and recording ``<operation>_duration``."""

    metric = f"{operation_name}_duration"

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = std_logging.getLogger("speckit.performance")
            started = time.perf_counter()
            tags: Dict[str, str] = {"status": "success"}
            try:
                return func(*args, **kwargs)
            except Exception as e:
                tags = {"status": "error", "error_type": type(e).__name__}
                raise
            finally:
                duration = time.perf_counter() - started
                performance_monitor.record_metric(metric, duration, tags)
                logger.debug(
                    f"{operation_name} finished with status {tags['status']} in {duration:.3f}s",
                    extra=_extra(operation=operation_name, duration=duration, **tags),
                )

        return wrapper

    return decorator


@contextmanager
def log_operation(operation_name: str, **extra_fields):
    """Log the start and the outcome of the enclosed block."""

    logger = std_logging.getLogger("speckit.operations")
    started = time.perf_counter()
    logger.info(
        f"Starting operation: {operation_name}",
        extra=_extra(operation=operation_name, status="started", **extra_fields),
    )

    try:
        yield
    except Exception as e:
        duration = time.perf_counter() - started
        logger.error(
            f"Failed operation: {operation_name} after {duration:.3f}s - {e}",
            extra=_extra(
                operation=operation_name,
                status="failed",
                duration=duration,
                error_type=type(e).__name__,
                error_message=str(e),
                **extra_fields,
            ),
        )
        raise

    duration = time.perf_counter() - started
    logger.info(
        f"Completed operation: {operation_name} in {duration:.3f}s",
        extra=_extra(operation=operation_name, status="completed", duration=duration, **extra_fields),
    )


class ObservabilityHooks:
    """Callbacks fired on workflow events (feature created, agent file synced, ...)."""

    def __init__(self):
        self.hooks: Dict[str, List[Callable[..., None]]] = {}
        self.logger = std_logging.getLogger("speckit.observability")

    def register_hook(self, event_type: str, callback: Callable[..., None]) -> None:
        self.hooks.setdefault(event_type, []).append(callback)
        self.logger.debug(f"Registered hook for event: {event_type}")

    def clear_hooks(self, event_type: Optional[str] = None) -> None:
        if event_type is None:
            self.hooks.clear()
        else:
            self.hooks.pop(event_type, None)

    def trigger_hooks(self, event_type: str, **data) -> None:
        for hook in self.hooks.get(event_type, []):
            try:
                hook(**data)
            except Exception as e:
                self.logger.error(f"Hook failed for event {event_type}: {e}")

    def log_workflow_event(self, event_type: str, feature_id: Optional[str] = None, **data) -> None:
        payload = {"timestamp": _utcnow(), "feature_id": feature_id, **data}
        self.logger.info(f"Workflow event: {event_type}", extra=_extra(event_type=event_type, **payload))
        self.trigger_hooks(event_type, **payload)


observability_hooks = ObservabilityHooks()


def log_workflow_step(step_name: str, feature_id: Optional[str] = None, **extra_fields):
    observability_hooks.log_workflow_event(
        f"workflow_step_{step_name.lower()}",
        feature_id=feature_id,
        step_name=step_name,
        **extra_fields,
    )


def log_artifact_event(event_type: str, artifact_type: str, feature_id: Optional[str], **extra_fields):
    observability_hooks.log_workflow_event(
        f"artifact_{event_type.lower()}",
        feature_id=feature_id,
        artifact_type=artifact_type,
        **extra_fields,
    )


def log_error_with_context(error: Exception, context: Dict[str, Any], **extra_fields):
    """Log an error together with the operation context it happened in."""

    logger = std_logging.getLogger("speckit.errors")
    operation = context.get("operation", "unknown operation")
    logger.error(
        f"Error in {operation}: {error}",
        extra=_extra(
            timestamp=_utcnow(),
            error_type=type(error).__name__,
            error_message=str(error),
            context=context,
            **extra_fields,
        ),
    )


def log_feature_created(feature_id: str, spec_path: str, **extra_fields):
    log_artifact_event("created", "spec", feature_id, spec_path=spec_path, **extra_fields)


def log_plan_setup(feature_id: str, plan_path: str, **extra_fields):
    log_artifact_event("created", "plan", feature_id, plan_path=plan_path, **extra_fields)


def log_agent_file_synced(feature_id: Optional[str], agent_key: str, action: str, **extra_fields):
    log_artifact_event("synced", "agent_context", feature_id, agent_key=agent_key, action=action, **extra_fields)
