"""
Verification Engine Events

Typed domain events and a synchronous in-memory event bus. The registry
publishes one or more events after every successful mutation, once all of
the call's writes are in place; failed calls publish nothing. The fee
transfer side effect of a verification request is observable as a discrete
FeeTransferred event.

Usage
─────

    bus = EventBus()

    @bus.subscribe(PracticeApproved)
    def on_approval(event: PracticeApproved):
        print(f"verification {event.verification_id} scored {event.score}")

    registry = VerificationRegistry(event_bus=bus)

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Type

from agriverify.core import canonical_json_bytes, sha256_bytes
from agriverify.observability import Layer, get_logger

logger = get_logger("bus", Layer.EVENTS)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all events.

    Events are facts about a committed contract call. Each carries a unique
    ID, a wall-clock timestamp and the block height of the call.
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    block_height: int = 0
    correlation_id: Optional[str] = None

    @property
    def event_type(self) -> str:
        """Get the event type name."""
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    def digest(self) -> str:
        """Deterministic SHA-256 of the event's canonical JSON."""
        return sha256_bytes(canonical_json_bytes(self.to_dict()))


# ════════════════════════════════════════════════════════════════════════════
# DOMAIN EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class AuthorityContractSet(Event):
    """Emitted when the authority principal is configured."""
    authority: str = ""


@dataclass
class VerificationFeeChanged(Event):
    """Emitted when the verification fee changes."""
    old_fee: int = 0
    new_fee: int = 0


@dataclass
class ScoreBoundsChanged(Event):
    """Emitted when either score bound changes."""
    min_score: int = 0
    max_score: int = 0


@dataclass
class VerificationRequested(Event):
    """Emitted when a verification record is created."""
    verification_id: int = 0
    practice_id: int = 0
    verifier: str = ""
    farmer: str = ""
    practice_type: str = ""
    impact_level: int = 0


@dataclass
class FeeTransferred(Event):
    """Emitted for the fee paid by a verification request."""
    amount: int = 0
    sender: str = ""
    recipient: str = ""
    verification_id: int = 0


@dataclass
class PracticeApproved(Event):
    """Emitted when a pending verification is approved."""
    verification_id: int = 0
    verifier: str = ""
    score: int = 0
    reason: Optional[str] = None


@dataclass
class PracticeRejected(Event):
    """Emitted when a pending verification is rejected."""
    verification_id: int = 0
    verifier: str = ""
    reason: str = ""


@dataclass
class VerificationUpdated(Event):
    """Emitted when a decided verification is amended."""
    verification_id: int = 0
    updater: str = ""
    status: str = ""
    old_score: int = 0
    new_score: int = 0
    reason: Optional[str] = None


@dataclass
class VerifierRatingChanged(Event):
    """Emitted when a verifier's rating moves."""
    verifier: str = ""
    old_rating: int = 0
    new_rating: int = 0


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    """Registration for an event handler."""
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        name = getattr(handler, "__name__", repr(handler))
        super().__init__(f"Handler {name} failed for {event.event_type}: {cause}")


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


class EventBus:
    """
    In-memory event bus for pub/sub communication.

    Handlers run synchronously in priority order (higher first). A failing
    handler is logged and counted; it never propagates into the publisher,
    so a committed contract call cannot be undone by a subscriber.

    Example:
        bus = EventBus()

        @bus.subscribe(VerificationRequested, FeeTransferred)
        def handle_request(event):
            print(event.event_type)
    """

    def __init__(
        self,
        on_error: Optional[Callable[[EventHandlerError], None]] = None,
        history_limit: int = 1000,
    ):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._history: List[Event] = []
        self._history_limit = history_limit
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """
        Decorator to subscribe a handler to event types.

        With no types the handler receives every event.
        """
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
                filter_func=filter_func,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        """Unsubscribe a handler."""
        with self._lock:
            before = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < before

    def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers."""
        with self._lock:
            self._published_count += 1
            self._history.append(event)
            if len(self._history) > self._history_limit:
                del self._history[: len(self._history) - self._history_limit]

            handlers_to_call = [
                r for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
                and (r.filter_func is None or r.filter_func(event))
            ]

        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        """Call a handler with error handling."""
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            logger.error(str(error), exc_info=True, event_type=event.event_type)
            if self._on_error:
                self._on_error(error)

    def history(self, event_type: Optional[Type[Event]] = None) -> List[Event]:
        """Recently published events, optionally filtered by type."""
        with self._lock:
            if event_type is None:
                return list(self._history)
            return [e for e in self._history if isinstance(e, event_type)]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    @property
    def metrics(self) -> Dict[str, int]:
        """Get event bus metrics."""
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }


# ════════════════════════════════════════════════════════════════════════════
# GLOBAL INSTANCE
# ════════════════════════════════════════════════════════════════════════════


_event_bus: Optional[EventBus] = None
_event_bus_lock = threading.Lock()


def get_event_bus() -> EventBus:
    """Get the process-wide event bus (registries default to their own)."""
    global _event_bus
    if _event_bus is None:
        with _event_bus_lock:
            if _event_bus is None:
                _event_bus = EventBus()
    return _event_bus


def event_handler(
    *event_types: Type[Event],
    priority: int = 0,
    filter_func: Optional[Callable[[Event], bool]] = None,
):
    """Decorator registering a function on the process-wide event bus."""
    return get_event_bus().subscribe(
        *event_types,
        priority=priority,
        filter_func=filter_func,
    )


__all__ = [
    "Event",
    "EventHandler",
    "EventHandlerRegistration",
    "EventHandlerError",
    "AuthorityContractSet",
    "VerificationFeeChanged",
    "ScoreBoundsChanged",
    "VerificationRequested",
    "FeeTransferred",
    "PracticeApproved",
    "PracticeRejected",
    "VerificationUpdated",
    "VerifierRatingChanged",
    "EventBus",
    "get_event_bus",
    "event_handler",
]
