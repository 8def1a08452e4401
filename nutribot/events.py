"""Event bus — async pub/sub for SystemEvents.

Every action in NutriBot emits events that are consumed by the audit logger.
One EventBus is created per application and passed to the components that
emit.

Usage:
    bus = EventBus()
    bus.subscribe(audit_logger.on_event)
    await bus.start()

    await bus.emit(SystemEvent(
        event_type=EventType.ASSESSMENT_STARTED,
        assessment_id=assessment.id,
        owner_id=owner_id,
    ))

Before `start()` (and after `stop()`) events are dispatched inline; once
started they go through a queue drained by a background worker so emitters are
never blocked by slow subscribers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from nutribot.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

# Type alias for event handler functions
EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]


class EventBus:
    """In-process event bus with global and per-type subscribers."""

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
            logger.info("Registered global event subscriber: %s", getattr(handler, "__name__", handler))
        else:
            for et in event_types:
                self._type_subscribers.setdefault(et, []).append(handler)
            logger.info(
                "Registered event subscriber %s for types: %s",
                getattr(handler, "__name__", handler),
                [t.value for t in event_types],
            )

    def unsubscribe(self, handler: EventHandler) -> None:
        """Remove a previously registered handler."""
        if handler in self._subscribers:
            self._subscribers.remove(handler)
        for handlers in self._type_subscribers.values():
            if handler in handlers:
                handlers.remove(handler)

    # ── Emission ─────────────────────────────────────────────────────

    async def emit(self, event: SystemEvent) -> None:
        """Publish a SystemEvent to all subscribers."""
        if self._queue is None:
            await self._dispatch(event)
        else:
            await self._queue.put(event)
        logger.debug("Event emitted: %s (assessment=%s)", event.event_type.value, event.assessment_id)

    @property
    def running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        """Switch to queued dispatch. Call during application startup."""
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._worker_task = asyncio.create_task(self._worker())
        logger.info(
            "Event bus started with %d global + %d typed subscribers",
            len(self._subscribers),
            sum(len(v) for v in self._type_subscribers.values()),
        )

    async def stop(self) -> None:
        """Drain pending events and stop the worker. Call during shutdown."""
        if self._queue is not None:
            await self._queue.join()

        if self._worker_task is not None and not self._worker_task.done():
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass

        self._worker_task = None
        self._queue = None
        logger.info("Event bus stopped")

    # ── Internals ────────────────────────────────────────────────────

    async def _worker(self) -> None:
        """Drain the queue and dispatch to subscribers."""
        assert self._queue is not None
        queue = self._queue
        while True:
            try:
                event = await queue.get()
            except asyncio.CancelledError:
                logger.info("Event worker shutting down")
                break
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

        # Run all handlers concurrently; isolate failures
        results = await asyncio.gather(
            *[self._safe_call(handler, event) for handler in handlers],
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error("Event handler failed for %s: %s", event.event_type.value, result)

    @staticmethod
    async def _safe_call(handler: EventHandler, event: SystemEvent) -> None:
        """Call a handler with error isolation."""
        try:
            await handler(event)
        except Exception:
            logger.exception(
                "Handler %s failed for event %s",
                getattr(handler, "__name__", handler),
                event.event_type.value,
            )
            raise
