"""
Event handler registry for managing event subscriptions and handlers.
"""
import inspect
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..core.logging_config import get_logger
from .event_types import EventType

logger = get_logger(__name__)


@dataclass
class HandlerInfo:
    """Information about an event handler."""
    id: str
    function: Callable
    name: str
    module: str
    is_async: bool
    registered_at: datetime
    call_count: int = 0
    error_count: int = 0
    last_called_at: Optional[datetime] = None
    last_error_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class EventHandlerRegistry:
    """
    Registry for managing event handlers and their subscriptions.

    Maps event types to their handlers and keeps per-handler call and
    error counts.
    """

    def __init__(self):
        self._handlers: Dict[EventType, Dict[str, HandlerInfo]] = defaultdict(dict)
        self._handler_to_events: Dict[str, Set[EventType]] = defaultdict(set)

    def register(self, event_type: EventType, handler: Callable, **metadata) -> str:
        """
        Register a handler for an event type.

        Args:
            event_type: Event type to register handler for
            handler: Callable function (async or sync) to handle the event
            **metadata: Additional metadata to attach to the handler

        Returns:
            Handler ID for future reference

        Raises:
            ValueError: If handler is not callable
        """
        if not callable(handler):
            raise ValueError(f"Handler must be callable, got {type(handler)}")

        handler_id = str(uuid.uuid4())
        handler_info = HandlerInfo(
            id=handler_id,
            function=handler,
            name=getattr(handler, "__name__", repr(handler)),
            module=getattr(handler, "__module__", ""),
            is_async=inspect.iscoroutinefunction(handler),
            registered_at=datetime.now(timezone.utc),
            metadata=metadata
        )

        self._handlers[event_type][handler_id] = handler_info
        self._handler_to_events[handler_id].add(event_type)

        logger.debug(
            f"Registered handler {handler_info.name} (ID: {handler_id}) "
            f"for event type {event_type}"
        )

        return handler_id

    def unregister(self, event_type: EventType, handler_id: str) -> bool:
        """
        Unregister a handler from an event type.

        Returns:
            True if handler was unregistered, False if not found
        """
        if event_type not in self._handlers or handler_id not in self._handlers[event_type]:
            return False

        del self._handlers[event_type][handler_id]
        if not self._handlers[event_type]:
            del self._handlers[event_type]

        if handler_id in self._handler_to_events:
            self._handler_to_events[handler_id].discard(event_type)
            if not self._handler_to_events[handler_id]:
                del self._handler_to_events[handler_id]

        logger.debug(f"Unregistered handler {handler_id} from event type {event_type}")
        return True

    def get_handlers(self, event_type: EventType) -> List[Tuple[str, Callable]]:
        """
        Get all handlers for an event type.

        Returns:
            List of (handler_id, handler_function) tuples
        """
        handlers = self._handlers.get(event_type, {})
        return [(handler_id, handler_info.function)
                for handler_id, handler_info in handlers.items()]

    def get_handler_info(self, event_type: EventType, handler_id: str) -> Optional[HandlerInfo]:
        return self._handlers.get(event_type, {}).get(handler_id)

    def record_call(self, event_type: EventType, handler_id: str, error: bool = False) -> None:
        info = self.get_handler_info(event_type, handler_id)
        if info is None:
            return
        now = datetime.now(timezone.utc)
        info.call_count += 1
        info.last_called_at = now
        if error:
            info.error_count += 1
            info.last_error_at = now

    def count_handlers(self, event_type: Optional[EventType] = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, {}))
        return sum(len(handlers) for handlers in self._handlers.values())

    def clear(self) -> None:
        """Remove every registered handler."""
        self._handlers.clear()
        self._handler_to_events.clear()
