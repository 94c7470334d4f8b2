"""Operation signals.

Facades that accept an ``EventBus`` publish an ``Event`` when an operation
starts, completes or fails. Subscribers are plain or async callables; a
subscriber that raises is logged and skipped so it cannot affect the
operation that emitted the event.
"""

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class Signal(Enum):
    """Lifecycle signals for CRUD operations."""
    GET_STARTED = "portastore.get.started"
    GET_COMPLETED = "portastore.get.completed"
    GET_FAILED = "portastore.get.failed"
    SET_STARTED = "portastore.set.started"
    SET_COMPLETED = "portastore.set.completed"
    SET_FAILED = "portastore.set.failed"
    DELETE_STARTED = "portastore.delete.started"
    DELETE_COMPLETED = "portastore.delete.completed"
    DELETE_FAILED = "portastore.delete.failed"
    EXISTS_COMPLETED = "portastore.exists.completed"
    LIST_COMPLETED = "portastore.list.completed"
    COUNT_COMPLETED = "portastore.count.completed"


@dataclass
class Event:
    """A single emitted signal.

    Attributes:
        signal: What happened.
        record_type: Qualified name of the record type involved.
        key: Record key, when the operation has one.
        duration_ms: Elapsed time for completed/failed signals.
        error: The exception for failed signals.
        fields: Signal-specific extras (exists, count, cursor, keys...).
    """
    signal: Signal
    record_type: str = ""
    key: Optional[str] = None
    duration_ms: Optional[float] = None
    error: Optional[BaseException] = None
    fields: dict[str, Any] = field(default_factory=dict)


Handler = Callable[[Event], Any]


class EventBus:
    """Dispatches events to per-signal subscribers."""

    def __init__(self):
        self._handlers: dict[Signal, list[Handler]] = {}

    def subscribe(self, signal: Signal, handler: Handler) -> None:
        self._handlers.setdefault(signal, []).append(handler)

    def unsubscribe(self, signal: Signal, handler: Handler) -> None:
        handlers = self._handlers.get(signal, [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: Event) -> None:
        logger.debug(
            f"{event.signal.value} type={event.record_type} key={event.key} "
            f"duration_ms={event.duration_ms} error={event.error!r}"
        )
        for handler in list(self._handlers.get(event.signal, [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Event handler for {event.signal.value} failed: {e}")
