"""Event emitter for payroll notifications.

The emitter provides:
- Handler registration with type filtering
- Category-based routing
- Error isolation (handler failures don't break other handlers)
- Event batching for transactions

Delivery is best-effort: a failing handler is logged and reported in the
return value, never raised to the service that emitted the event.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar, Token
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

from payroll_execution.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)


@runtime_checkable
class EventHandler(Protocol):
    """Protocol for event handlers."""

    def __call__(self, event: DomainEvent) -> None:
        """Handle a domain event."""
        ...


@dataclass
class HandlerRegistration:
    """Registration of an event handler."""

    handler: EventHandler
    event_types: set[str] | None  # None = all events
    categories: set[EventCategory] | None  # None = all categories


class EventEmitter:
    """Synchronous event emitter.

    Usage:
        emitter = EventEmitter()
        emitter.on(PayrollRunRejected, notify_specialist)
        emitter.on_category(EventCategory.BENEFIT, notify_hr)
        emitter.emit(event)

        with emitter.batch():
            emitter.emit(event1)
            emitter.emit(event2)
        # Both emitted when the context exits without error
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []
        self._pending: ContextVar[list[DomainEvent] | None] = ContextVar(
            f"pending_events_{id(self)}", default=None
        )

    def on(self, event_type: type[T] | list[type[T]], handler: EventHandler) -> None:
        """Register handler for specific event type(s)."""
        if isinstance(event_type, list):
            types = {t.__name__ for t in event_type}
        else:
            types = {event_type.__name__}
        self._handlers.append(HandlerRegistration(handler, types, None))

    def on_category(
        self,
        category: EventCategory | list[EventCategory],
        handler: EventHandler,
    ) -> None:
        """Register handler for event category(ies)."""
        cats = set(category) if isinstance(category, list) else {category}
        self._handlers.append(HandlerRegistration(handler, None, cats))

    def on_all(self, handler: EventHandler) -> None:
        """Register handler for all events."""
        self._handlers.append(HandlerRegistration(handler, None, None))

    def off(self, handler: EventHandler) -> None:
        """Unregister a handler."""
        self._handlers = [reg for reg in self._handlers if reg.handler is not handler]

    def emit(self, event: DomainEvent) -> list[Exception]:
        """Emit an event to all matching handlers.

        Inside a batch the event is held instead. Returns list of any
        exceptions raised by handlers.
        """
        pending = self._pending.get()
        if pending is not None:
            pending.append(event)
            return []
        return self._dispatch(event)

    def emit_now(self, event: DomainEvent) -> list[Exception]:
        """Dispatch immediately, even inside a batch.

        For events describing state that is already committed.
        """
        return self._dispatch(event)

    def _dispatch(self, event: DomainEvent) -> list[Exception]:
        errors: list[Exception] = []
        event_type = event.event_type
        event_category = event.category

        for reg in self._handlers:
            if reg.event_types and event_type not in reg.event_types:
                continue
            if reg.categories and event_category not in reg.categories:
                continue

            try:
                reg.handler(event)
            except Exception as e:
                logger.exception("Handler %s failed for event %s", reg.handler, event_type)
                errors.append(e)

        return errors

    def batch(self) -> EventBatch:
        """Hold events until the context exits, then emit them together.

        The held events belong to the current task, so concurrent requests
        sharing one emitter keep separate batches.
        """
        return EventBatch(self)


class EventBatch:
    """Context manager for batching events."""

    def __init__(self, emitter: EventEmitter) -> None:
        self._emitter = emitter
        self._events: list[DomainEvent] = []
        self._token: Token[list[DomainEvent] | None] | None = None
        self._errors: list[Exception] = []

    def __enter__(self) -> EventBatch:
        self._token = self._emitter._pending.set(self._events)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self._emitter._pending.reset(self._token)
        events, self._events = self._events, []
        if exc_type is not None:
            # Discard events of a failed operation
            if events:
                logger.debug("Discarded %d event(s) of a failed operation", len(events))
            return
        for event in events:
            self._errors.extend(self._emitter.emit(event))

    @property
    def errors(self) -> list[Exception]:
        """Errors from handler execution (available after context exits)."""
        return self._errors


def log_event(event: DomainEvent) -> None:
    """Default notification sink: write the event to the log."""
    logger.info("%s %s", event.event_type, event.to_json())


_default_emitter: EventEmitter | None = None


def get_emitter() -> EventEmitter:
    """Process-wide emitter with the logging sink registered."""
    global _default_emitter
    if _default_emitter is None:
        _default_emitter = EventEmitter()
        _default_emitter.on_all(log_event)
    return _default_emitter
