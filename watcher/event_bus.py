"""
Event fan-out for detected changes.

This module provides:
- Fire-and-forget emission of domain events to every registered sink
- Log-based delivery as the built-in sink
- Draining of in-flight deliveries on shutdown
"""

import asyncio
from typing import List, Optional, Set

import structlog

from watcher.models import DomainEvent
from watcher.ports import EventSink

logger = structlog.get_logger(__name__)


class LogEventSink:
    """Sink that records each event in the structured log."""

    def __init__(self):
        self.logger = logger.bind(component="log_event_sink")

    async def deliver(self, event: DomainEvent) -> None:
        self.logger.info(
            "Change detection event",
            event_type=event.event_type.value,
            item_id=event.item_id,
            user_id=event.user_id,
            course_id=event.course_id,
            course_code=event.course_code,
            detected_at=event.detected_at.isoformat()
        )


class EventBus:
    """Dispatches domain events to delivery sinks without blocking the caller."""

    def __init__(self, sinks: Optional[List[EventSink]] = None):
        """
        Initialize event bus.

        Args:
            sinks: Delivery collaborators; events go to each of them
        """
        self.sinks: List[EventSink] = list(sinks or [])
        self.logger = logger.bind(component="event_bus")
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, sink: EventSink) -> None:
        self.sinks.append(sink)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def emit(self, event: DomainEvent) -> None:
        """
        Schedule delivery of `event` to all sinks and return immediately.

        Must be called from within a running event loop.
        """
        if not self.sinks:
            self.logger.debug("No sinks registered, dropping event", event_type=event.event_type.value)
            return

        for sink in self.sinks:
            task = asyncio.ensure_future(self._deliver(sink, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, sink: EventSink, event: DomainEvent) -> None:
        try:
            await sink.deliver(event)
        except Exception as e:
            self.logger.error(
                "Failed to deliver event",
                sink=type(sink).__name__,
                event_type=event.event_type.value,
                item_id=event.item_id,
                error=str(e)
            )

    async def drain(self) -> None:
        """Wait for every in-flight delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
