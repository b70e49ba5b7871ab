"""
keycache Observability

Structured logging for cache entries, the observer registry and the CLI.
Every event carries the emitting component and an operation name, and can be
rendered either as JSON lines or as plain text.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │         CachedEntry / ObserverRegistry / CLI            │
    │  logger.debug("Entry loaded", key=k, duration_ms=d)     │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                    KeyCacheLogger                        │
    │     component, operation, structured context             │
    └───────────────────────┬─────────────────────────────────┘
                            │  logging "keycache.<component>.<name>"
    ┌───────────────────────▼─────────────────────────────────┐
    │        StructuredHandler (json) │ TextHandler (text)     │
    └─────────────────────────────────────────────────────────┘

Library code never installs handlers on its own; applications (and the CLI)
call configure_logging() once.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
import logging
import sys
import time
import traceback
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Optional, TypeVar

ROOT_LOGGER_NAME = "keycache"


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Component(Enum):
    """keycache components for categorization."""
    ENTRY = "entry"
    REGISTRY = "registry"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    component: str = ""
    operation: str = ""
    thread: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def to_text(self) -> str:
        parts = [self.timestamp, self.level.upper(), self.logger, self.message]
        if self.duration_ms is not None:
            parts.append(f"duration_ms={self.duration_ms:.2f}")
        parts.extend(f"{k}={v!r}" for k, v in self.context.items())
        line = " ".join(parts)
        if self.exception:
            line = f"{line}\n{self.exception}"
        return line

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> "LogEvent":
        event = cls(
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            level=record.levelname.lower(),
            logger=record.name,
            message=record.getMessage(),
            component=getattr(record, "component", ""),
            operation=getattr(record, "operation", ""),
            thread=record.threadName or "",
            duration_ms=getattr(record, "duration_ms", None),
            error_code=getattr(record, "error_code", ""),
            context=getattr(record, "context", {}),
        )
        if record.exc_info:
            event.exception = "".join(traceback.format_exception(*record.exc_info))
        return event


class StructuredHandler(logging.Handler):
    """Logging handler that outputs structured JSON."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def format_event(self, event: LogEvent) -> str:
        return event.to_json()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent.from_record(record)
            self.stream.write(self.format_event(event) + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class TextHandler(StructuredHandler):
    """Same events as StructuredHandler, one human-readable line each."""

    def format_event(self, event: LogEvent) -> str:
        return event.to_text()


def configure_logging(
    level: str = "info",
    fmt: str = "json",
    stream: Any = None,
) -> logging.Handler:
    """
    Install a single handler on the "keycache" logger.

    Replaces any handler installed by a previous call, so it is safe to
    call repeatedly (the CLI does so after parsing options).
    """
    numeric_level = getattr(logging, LogLevel(level).value.upper())
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for existing in list(root.handlers):
        if isinstance(existing, StructuredHandler):
            root.removeHandler(existing)

    handler: StructuredHandler = TextHandler(stream) if fmt == "text" else StructuredHandler(stream)
    root.addHandler(handler)
    root.setLevel(numeric_level)
    root.propagate = False
    return handler


def configure_logging_from_config() -> logging.Handler:
    """Configure logging from the observability section of the active config."""
    from keycache.config import get_config

    observability = get_config().observability
    return configure_logging(
        level=observability.log_level.get(),
        fmt=observability.log_format.get(),
    )


class KeyCacheLogger:
    """
    Structured logger for keycache components.

    Thin wrapper around a stdlib logger that attaches the component,
    operation and keyword context to every record.
    """

    def __init__(self, name: str, component: Component):
        self.name = name
        self.component = component
        self._logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component.value}.{name}")

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        """Internal log method."""
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "component": self.component.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        """Log info message."""
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        """Log warning message."""
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        """Log error message."""
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.DEBUG if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=duration_ms,
            **context,
        )


def get_logger(name: str, component: Component) -> KeyCacheLogger:
    """Get a logger for a keycache component."""
    return KeyCacheLogger(name, component)


T = TypeVar("T")


def timed_operation(
    logger: KeyCacheLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, success)
        return wrapper
    return decorator


__all__ = [
    "LogLevel",
    "Component",
    "LogEvent",
    "StructuredHandler",
    "TextHandler",
    "KeyCacheLogger",
    "configure_logging",
    "configure_logging_from_config",
    "get_logger",
    "timed_operation",
]
