"""
Event bus implementation for publish-subscribe pattern with async support.

Until ``initialize`` starts the worker tasks, ``publish`` delivers events
inline, so scripts and tests observe handlers having run when ``publish``
returns. Handler failures never propagate to the publisher; they are
logged and kept in the dead-letter buffer.
"""
import asyncio
import inspect
import uuid
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from ..core.logging_config import get_logger
from .event_handlers import EventHandlerRegistry
from .event_types import Event, EventType

logger = get_logger(__name__)


class EventBus:
    """
    Event bus for publish-subscribe pattern with async support.
    """

    _correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

    def __init__(self, max_queue_size: int = 10_000, dead_letter_size: int = 1_000) -> None:
        self.registry = EventHandlerRegistry()
        self._max_queue_size = max_queue_size
        self._event_queue: Optional[asyncio.Queue] = None
        self._dead_letters: Deque[Dict[str, Any]] = deque(maxlen=dead_letter_size)

        self._is_running = False
        self._worker_tasks: List[asyncio.Task] = []
        self._pending_tasks: Set[asyncio.Task] = set()

        self._executor = ThreadPoolExecutor(
            max_workers=4,
            thread_name_prefix="event_bus",
        )

        self._metrics = {
            "events_published": 0,
            "events_processed": 0,
            "events_failed": 0,
            "dead_letter_events": 0,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def initialize(self, num_workers: int = 2) -> None:
        if self._is_running:
            return

        self._event_queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._is_running = True

        for i in range(num_workers):
            task = asyncio.create_task(
                self._process_events(),
                name=f"event_worker_{i}",
            )
            self._worker_tasks.append(task)

        logger.info(f"EventBus initialized with {num_workers} workers")

    async def shutdown(self, timeout: int = 30) -> None:
        if not self._is_running:
            return

        logger.info("Shutting down EventBus")

        # Drain what was already accepted before stopping the workers
        try:
            await asyncio.wait_for(self._event_queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("EventBus shutdown timed out with events still queued")

        self._is_running = False
        for task in self._worker_tasks:
            task.cancel()
        await asyncio.gather(*self._worker_tasks, return_exceptions=True)
        self._worker_tasks.clear()

        for task in list(self._pending_tasks):
            task.cancel()

        logger.info(f"EventBus shutdown complete: {self._metrics}")

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, event_type: EventType, handler: Callable) -> str:
        handler_id = self.registry.register(event_type, handler)
        logger.debug(f"Subscribed handler {handler_id} to {event_type}")
        return handler_id

    def unsubscribe(self, event_type: EventType, handler_id: str) -> bool:
        return self.registry.unregister(event_type, handler_id)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def publish(
        self,
        event_type: EventType,
        data: Dict[str, Any],
        correlation_id: Optional[str] = None,
    ) -> str:
        event_id = str(uuid.uuid4())
        correlation_id = correlation_id or self._correlation_id.get() or event_id

        event = Event(
            id=event_id,
            type=event_type,
            data=data,
            correlation_id=correlation_id,
        )
        self._metrics["events_published"] += 1

        if not self._is_running:
            await self._dispatch(event)
            return event_id

        if self._event_queue.full():
            raise ValueError("Event queue is full")

        await self._event_queue.put(event)
        return event_id

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _process_events(self) -> None:
        worker_name = asyncio.current_task().get_name()
        logger.debug(f"{worker_name} started")

        while self._is_running:
            try:
                event = await asyncio.wait_for(self._event_queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

            try:
                await self._dispatch(event)
            finally:
                self._event_queue.task_done()

        logger.debug(f"{worker_name} stopped")

    async def _dispatch(self, event: Event) -> None:
        token = self._correlation_id.set(event.correlation_id)
        try:
            handlers = self.registry.get_handlers(event.type)
            tasks: List[asyncio.Task] = []
            for handler_id, handler in handlers:
                task = asyncio.create_task(
                    self._execute_handler(handler_id, handler, event),
                    name=f"handler_{handler_id[:8]}_{event.id[:8]}",
                )
                self._pending_tasks.add(task)
                tasks.append(task)
            if tasks:
                await asyncio.gather(*tasks)
            self._metrics["events_processed"] += 1
        finally:
            self._correlation_id.reset(token)

    async def _execute_handler(
        self,
        handler_id: str,
        handler: Callable,
        event: Event,
    ) -> None:
        try:
            if inspect.iscoroutinefunction(handler):
                await handler(event.data, event)
            else:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(
                    self._executor,
                    handler,
                    event.data,
                    event,
                )
            self.registry.record_call(event.type, handler_id)
        except Exception as exc:
            self.registry.record_call(event.type, handler_id, error=True)
            self._metrics["events_failed"] += 1
            self._add_to_dead_letter(event, handler_id, str(exc))
        finally:
            self._pending_tasks.discard(asyncio.current_task())

    # ------------------------------------------------------------------
    # Dead Letter Buffer
    # ------------------------------------------------------------------

    def _add_to_dead_letter(self, event: Event, handler_id: str, error: str) -> None:
        self._dead_letters.append({
            "event": event.model_dump(mode="json"),
            "handler_id": handler_id,
            "error": error,
            "failed_at": datetime.now(timezone.utc).isoformat(),
        })
        self._metrics["dead_letter_events"] += 1
        logger.error(f"Handler {handler_id} failed on {event.type} event {event.id}: {error}")

    def dead_letters(self) -> List[Dict[str, Any]]:
        return list(self._dead_letters)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, int]:
        return dict(self._metrics)

    def get_correlation_id(self) -> Optional[str]:
        return self._correlation_id.get()
