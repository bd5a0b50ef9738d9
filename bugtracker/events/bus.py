"""Event emitter and subscriber system.

Async pub/sub for SystemEvents. Events are queued and drained by a
background worker, so emitters never wait on slow subscribers. Every
handler runs isolated: a failing subscriber is logged and never reaches
the emitter.

Usage:
    bus = EventBus()
    bus.subscribe(my_handler)  # async def my_handler(event: SystemEvent) -> None
    await bus.start()

    await bus.emit(SystemEvent(event_type=EventType.REPORT_CREATED, report_id=1))

    await bus.stop()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from bugtracker.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

# Type alias for event handler functions
EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]


class EventBus:
    """Queue-backed dispatcher owned by one application instance."""

    def __init__(self) -> None:
        self._subscribers: list[EventHandler] = []
        self._type_subscribers: dict[EventType, list[EventHandler]] = {}
        self._queue: asyncio.Queue[SystemEvent] | None = None
        self._worker_task: asyncio.Task[None] | None = None

    # ── Subscriptions ────────────────────────────────────────────────

    def subscribe(self, handler: EventHandler, event_types: list[EventType] | None = None) -> None:
        """Register an event handler.

        Args:
            handler: Async function that accepts a SystemEvent.
            event_types: If provided, handler only receives these event types.
                         If None, handler receives ALL events.
        """
        if event_types is None:
            self._subscribers.append(handler)
            logger.info("Registered global event subscriber: %s", handler.__name__)
        else:
            for et in event_types:
                self._type_subscribers.setdefault(et, []).append(handler)
            logger.info(
                "Registered event subscriber %s for types: %s",
                handler.__name__,
                [t.value for t in event_types],
            )

    def unsubscribe(self, handler: EventHandler) -> None:
        """Remove a previously registered handler."""
        if handler in self._subscribers:
            self._subscribers.remove(handler)
        for handlers in self._type_subscribers.values():
            if handler in handlers:
                handlers.remove(handler)

    # ── Publishing ───────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    async def emit(self, event: SystemEvent) -> None:
        """Publish an event. Never raises.

        With the worker running the event is queued; otherwise it is
        dispatched inline (handlers are still isolated).
        """
        try:
            if self._queue is not None and self.running:
                self._queue.put_nowait(event)
            else:
                await self._dispatch(event)
            logger.debug("Event emitted: %s (report=%s)", event.event_type.value, event.report_id)
        except Exception:
            logger.exception("Failed to emit event %s", event.event_type.value)

    async def join(self) -> None:
        """Wait until every queued event has been dispatched."""
        if self._queue is not None:
            await self._queue.join()

    # ── Background worker ────────────────────────────────────────────

    async def _event_worker(self) -> None:
        """Drain the queue and dispatch to subscribers."""
        queue = self._queue
        if queue is None:
            return

        while True:
            event = await queue.get()
            try:
                await self._dispatch(event)
            except Exception:
                logger.exception("Error in event worker")
            finally:
                queue.task_done()

    async def _dispatch(self, event: SystemEvent) -> None:
        """Dispatch a single event to all matching subscribers."""
        handlers: list[EventHandler] = list(self._subscribers)
        handlers.extend(self._type_subscribers.get(event.event_type, []))
        if not handlers:
            return

        results = await asyncio.gather(
            *[self._safe_call(handler, event) for handler in handlers],
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error("Event handler failed for %s: %s", event.event_type.value, result)

    @staticmethod
    async def _safe_call(handler: EventHandler, event: SystemEvent) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception("Handler %s failed for event %s", handler.__name__, event.event_type.value)
            raise

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        """Create the queue and start the worker. Call during FastAPI lifespan startup."""
        self._queue = asyncio.Queue()
        self._worker_task = asyncio.create_task(self._event_worker())
        logger.info(
            "Event system started with %d global + %d typed subscribers",
            len(self._subscribers),
            sum(len(v) for v in self._type_subscribers.values()),
        )

    async def stop(self) -> None:
        """Drain pending events and stop the worker. Call during FastAPI lifespan shutdown."""
        if self._queue is not None and self.running:
            await self._queue.join()

        if self._worker_task is not None and not self._worker_task.done():
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass

        self._worker_task = None
        self._queue = None
        logger.info("Event system stopped")
