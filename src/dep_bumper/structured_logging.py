"""
Structured logging configuration for dep-bumper.

Emits machine-readable JSON events on stderr so that stdout stays reserved
for the update table or the JSON report.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_RESERVED_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
        "taskName",
    ]
)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class EventLogger:
    """Structured logger for checker events."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(f"dep_bumper.{name}")
        self._setup_logger()
        self.run_context: Dict[str, Any] = {}

    def _setup_logger(self) -> None:
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.WARNING)
            self.logger.propagate = False

    def set_run_context(
        self,
        run_id: Optional[str] = None,
        manifest_path: Optional[str] = None,
        total_dependencies: Optional[int] = None,
    ) -> None:
        """Set run context attached to every event."""
        self.run_context = {}
        if run_id:
            self.run_context["run_id"] = run_id
        if manifest_path:
            self.run_context["manifest_path"] = manifest_path
        if total_dependencies is not None:
            self.run_context["total_dependencies"] = total_dependencies

    def clear_run_context(self) -> None:
        self.run_context.clear()

    def _log(self, level: str, event_type: str, **kwargs) -> None:
        log_data = {"event_type": event_type, **self.run_context, **kwargs}
        getattr(self.logger, level)(event_type, extra=log_data)

    def info(self, event_type: str, **kwargs) -> None:
        self._log("info", event_type, **kwargs)

    def warning(self, event_type: str, **kwargs) -> None:
        self._log("warning", event_type, **kwargs)

    def error(self, event_type: str, **kwargs) -> None:
        self._log("error", event_type, **kwargs)

    def debug(self, event_type: str, **kwargs) -> None:
        self._log("debug", event_type, **kwargs)


_checker_logger = EventLogger("checker")
_registry_logger = EventLogger("registry")
_resolver_logger = EventLogger("resolver")
_manifest_logger = EventLogger("manifest")

_ALL_LOGGERS = [_checker_logger, _registry_logger, _resolver_logger, _manifest_logger]


def get_checker_logger() -> EventLogger:
    """Get orchestrator logger."""
    return _checker_logger


def get_registry_logger() -> EventLogger:
    """Get registry operations logger."""
    return _registry_logger


def get_resolver_logger() -> EventLogger:
    """Get version resolution logger."""
    return _resolver_logger


def get_manifest_logger() -> EventLogger:
    """Get manifest operations logger."""
    return _manifest_logger


def log_run_start(run_id: str, manifest_path: str, total_dependencies: int) -> None:
    """Log the start of a check run and attach its context to all loggers."""
    set_run_context(run_id, manifest_path, total_dependencies)
    _checker_logger.info("run_started")


def log_run_complete(
    run_id: str,
    duration_ms: int,
    updates_count: int,
    dropped_count: int = 0,
    error_stats: Optional[Dict[str, int]] = None,
    cache_stats: Optional[Dict[str, Any]] = None,
) -> None:
    """Log run completion event with handled-error counts and lookup cache stats."""
    _checker_logger.info(
        "run_completed",
        duration_ms=duration_ms,
        updates=updates_count,
        dropped=dropped_count,
        errors=error_stats or {},
        cache=cache_stats or {},
    )
    clear_run_context()


def log_registry_fetch(
    package_name: str,
    registry: str,
    ok: bool,
    status_code: Optional[int] = None,
    response_time_ms: Optional[float] = None,
) -> None:
    """Log the outcome of a single catalog request."""
    log_data: Dict[str, Any] = {"package_name": package_name, "registry": registry}
    if status_code is not None:
        log_data["status_code"] = status_code
    if response_time_ms is not None:
        log_data["response_time_ms"] = response_time_ms

    if ok:
        _registry_logger.debug("catalog_fetched", **log_data)
    else:
        _registry_logger.warning("catalog_fetch_failed", **log_data)


def log_resolution(
    package_name: str, section: str, old: str, new: Optional[str], mode: str
) -> None:
    """Log the outcome of resolving one dependency."""
    _resolver_logger.debug(
        "dependency_resolved" if new else "dependency_unchanged",
        package_name=package_name,
        section=section,
        old=old,
        new=new,
        mode=mode,
    )


def set_run_context(
    run_id: Optional[str] = None,
    manifest_path: Optional[str] = None,
    total_dependencies: Optional[int] = None,
) -> None:
    """Set run context for all loggers."""
    for logger in _ALL_LOGGERS:
        logger.set_run_context(run_id, manifest_path, total_dependencies)


def clear_run_context() -> None:
    for logger in _ALL_LOGGERS:
        logger.clear_run_context()


def configure_logging(log_level: str = "WARNING", log_file: Optional[str] = None) -> None:
    """Configure level and optional file output for all dep-bumper loggers."""
    level = getattr(logging, log_level.upper(), logging.WARNING)

    for logger in _ALL_LOGGERS:
        logger.logger.setLevel(level)
        if log_file and not any(
            isinstance(h, logging.FileHandler) for h in logger.logger.handlers
        ):
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(StructuredFormatter())
            logger.logger.addHandler(file_handler)
