"""
agriverify Observability

Structured logging and audit trail for the verification engine.

Every record is rendered as one JSON line (or a compact text line) carrying
the layer, the operation, the contract error code and a context dict.
Correlation IDs propagate through a context variable so all records of one
scenario run or CLI invocation can be grouped.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │        VerificationRegistry / ScenarioRunner / CLI       │
    │  logger.warning("rejected", error_code=..., id=x)        │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │              EngineLogger / AuditLogger                  │
    │  correlation IDs, layer, structured context, hash chain  │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                  StructuredHandler                       │
    │                 json lines │ text lines                  │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import hashlib
import json
import logging
import sys
import threading
import time
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, TypeVar

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

ROOT_LOGGER_NAME = "agriverify"


class Layer(Enum):
    """Engine layers for categorization."""
    REGISTRY = "registry"
    CHAIN = "chain"
    EVENTS = "events"
    SCENARIO = "scenario"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
    operation: str = ""
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
        parts = [self.timestamp, self.level.upper(), self.logger]
        if self.operation:
            parts.append(f"[{self.operation}]")
        parts.append(self.message)
        if self.error_code:
            parts.append(f"error_code={self.error_code}")
        parts.extend(f"{k}={v}" for k, v in self.context.items())
        return " ".join(parts)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs structured JSON (or text) lines."""

    def __init__(self, stream: Any = None, fmt: str = "json"):
        super().__init__()
        self.stream = stream or sys.stderr
        self.fmt = fmt

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            line = event.to_json() if self.fmt == "json" else event.to_text()
            self.stream.write(line + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


def configure_logging(
    level: Optional[str] = None,
    fmt: Optional[str] = None,
    stream: Any = None,
) -> logging.Logger:
    """
    Install a StructuredHandler on the package root logger.

    Level and format default to the observability config section. Calling
    again replaces the previously installed handler.
    """
    if level is None or fmt is None:
        from agriverify.config import get_config
        obs = get_config().observability
        level = level or obs.log_level.get()
        fmt = fmt or obs.log_format.get()

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        if isinstance(handler, StructuredHandler):
            root.removeHandler(handler)
    root.addHandler(StructuredHandler(stream=stream, fmt=fmt))
    root.setLevel(getattr(logging, level.upper()))
    return root


class EngineLogger:
    """
    Structured logger for engine components.

    Records go to ``agriverify.<layer>.<name>`` and carry correlation ID,
    layer and context. Handlers are installed once on the package root by
    configure_logging(); records propagate there.
    """

    def __init__(self, name: str, layer: Layer):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{layer.value}.{name}")

    @property
    def logger(self) -> logging.Logger:
        return self._logger

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
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.INFO if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=round(duration_ms, 3),
            **context,
        )


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID, creating one if unset."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, layer: Layer) -> EngineLogger:
    """Get a logger for an engine component."""
    return EngineLogger(name, layer)


T = TypeVar("T")


def timed_operation(
    logger: EngineLogger,
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


# =============================================================================
# AUDIT TRAIL
# =============================================================================

@dataclass
class AuditEvent:
    """Audit entry for a committed contract call."""
    event_id: str
    timestamp: str
    block_height: int
    actor: str
    action: str
    resource_type: str
    resource_id: str
    outcome: str  # success, failure
    correlation_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    event_hash: str = ""
    previous_hash: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuditLogger:
    """
    Append-only audit trail with hash chaining.

    Each entry's hash covers the entry and the previous hash, starting from
    ``genesis``; verify_chain() recomputes the chain.
    """

    GENESIS = "genesis"

    def __init__(self, logger: Optional[EngineLogger] = None):
        self._logger = logger or get_logger("audit", Layer.REGISTRY)
        self._last_hash: str = self.GENESIS
        self._entries: List[AuditEvent] = []
        self._lock = threading.Lock()

    @staticmethod
    def _compute_hash(event: AuditEvent, previous_hash: str) -> str:
        body = event.to_dict()
        body.pop("event_hash", None)
        body.pop("previous_hash", None)
        data = json.dumps(body, sort_keys=True, default=str) + previous_hash
        return hashlib.sha256(data.encode()).hexdigest()

    def log(
        self,
        actor: str,
        action: str,
        resource_type: str,
        resource_id: str,
        outcome: str,
        block_height: int = 0,
        **details: Any,
    ) -> AuditEvent:
        """Append an audit entry."""
        event = AuditEvent(
            event_id=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc).isoformat(),
            block_height=block_height,
            actor=actor,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            outcome=outcome,
            correlation_id=get_correlation_id(),
            details=details,
        )

        with self._lock:
            event.previous_hash = self._last_hash
            event.event_hash = self._compute_hash(event, self._last_hash)
            self._last_hash = event.event_hash
            self._entries.append(event)

        self._logger.info(
            f"AUDIT: {action} on {resource_type}/{resource_id}",
            operation="audit",
            actor=actor,
            outcome=outcome,
            event_hash=event.event_hash,
        )
        return event

    @property
    def entries(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._entries)

    @property
    def head(self) -> str:
        return self._last_hash

    def verify_chain(self) -> bool:
        """Recompute every hash; False if any entry was altered or reordered."""
        previous = self.GENESIS
        for entry in self.entries:
            if entry.previous_hash != previous:
                return False
            if self._compute_hash(entry, previous) != entry.event_hash:
                return False
            previous = entry.event_hash
        return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._last_hash = self.GENESIS
