"""SSE Event Bus for real-time execution updates.

The graph engine publishes through ``EventBusBroadcaster``; clients
subscribe per execution id via ``EventBus.subscribe()``, an async generator
of SSE-formatted strings.

Events pushed before any client connects are buffered (bounded by count and
age), so a client that subscribes right after starting an execution still
sees its first events.

Event Envelope:
  event: <event_type>
  data: {"type": "<event_type>", "timestamp": "<ISO 8601>", ...payload}
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import AsyncGenerator, Optional

from workflow.engine.events import STREAM_END_EVENTS, ExecutionEvent
from workflow.logging_config import get_api_logger
from workflow.settings import SSE_BUFFER_SIZE, SSE_BUFFER_TTL, SSE_KEEPALIVE_INTERVAL

logger = get_api_logger()

# Stop signals: events that tell the SSE generator to close the connection
STOP_EVENTS = frozenset(e.value for e in STREAM_END_EVENTS)


class EventBus:
    """Central event bus for SSE event management.

    Manages active SSE connections (queues) and pre-connection event
    buffering for every execution.
    """

    def __init__(
        self,
        buffer_max_events: int = SSE_BUFFER_SIZE,
        buffer_max_age_secs: float = SSE_BUFFER_TTL,
    ):
        self._streams: dict[str, asyncio.Queue] = {}
        self._buffers: dict[str, dict] = {}
        self._buffer_max_events = buffer_max_events
        self._buffer_max_age_secs = buffer_max_age_secs
        self._lock = asyncio.Lock()

    def push(self, execution_id: str, event_type: str, data: dict) -> None:
        """Push an event to a connected client or buffer it.

        Synchronous: in a single-threaded event loop the dict access has no
        yield points. The lock only guards subscribe/cleanup.
        """
        event = {"event": event_type, "data": data}
        queue = self._streams.get(execution_id)
        if queue:
            queue.put_nowait(event)
            logger.debug(f"Event sent: {event_type} for {execution_id}")
        else:
            self._buffer_event(execution_id, event, event_type)

    def close(self, execution_id: str) -> None:
        """Ends an active subscription without an event."""
        queue = self._streams.get(execution_id)
        if queue:
            queue.put_nowait(None)

    def has_subscriber(self, execution_id: str) -> bool:
        return execution_id in self._streams

    async def subscribe(
        self,
        execution_id: str,
        stop_events: Optional[frozenset] = None,
        keepalive_interval: float = SSE_KEEPALIVE_INTERVAL,
    ) -> AsyncGenerator[str, None]:
        """Subscribe to events for an execution, yielding SSE-formatted strings.

        Args:
            execution_id: Execution to follow
            stop_events: Event types that signal end of stream.
                         Defaults to STOP_EVENTS.
            keepalive_interval: Seconds between keepalive comments.
        """
        if stop_events is None:
            stop_events = STOP_EVENTS

        logger.info(f"Client subscribed: {execution_id}")
        queue: asyncio.Queue = asyncio.Queue()

        # Atomically register stream and flush buffered events
        async with self._lock:
            self._streams[execution_id] = queue
            buf = self._buffers.pop(execution_id, None)

        buffered = buf["events"] if buf else []
        if buffered:
            logger.info(f"Flushing {len(buffered)} buffered events for {execution_id}")

        try:
            for event in buffered:
                yield _format_sse(event)
                if event["event"] in stop_events:
                    return

            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=keepalive_interval)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if event is None:
                    break
                yield _format_sse(event)
                if event["event"] in stop_events:
                    break
        finally:
            async with self._lock:
                if self._streams.get(execution_id) is queue:
                    self._streams.pop(execution_id, None)

    def _buffer_event(self, execution_id: str, event: dict, event_type: str) -> None:
        """Buffer an event for an execution that has no subscriber yet."""
        if execution_id not in self._buffers:
            self._cleanup_stale_buffers()
            self._buffers[execution_id] = {
                "events": [],
                "created_at": time.monotonic(),
            }

        buf = self._buffers[execution_id]
        if len(buf["events"]) < self._buffer_max_events:
            buf["events"].append(event)
        else:
            logger.warning(
                f"Buffer full ({self._buffer_max_events}), "
                f"dropping: {event_type} for {execution_id}"
            )

    def _cleanup_stale_buffers(self) -> None:
        """Remove event buffers that are too old."""
        now = time.monotonic()
        stale = [
            eid
            for eid, buf in self._buffers.items()
            if now - buf["created_at"] > self._buffer_max_age_secs
        ]
        for eid in stale:
            removed = self._buffers.pop(eid, None)
            if removed:
                logger.info(
                    f"Cleaned up stale buffer for {eid} ({len(removed['events'])} events)"
                )


class EventBusBroadcaster:
    """Engine broadcaster that relays execution events onto the bus."""

    def __init__(self, bus: EventBus):
        self.bus = bus

    async def broadcast(self, execution_id: str, event: ExecutionEvent) -> None:
        self.bus.push(execution_id, event.type.value, event.to_dict())


def _format_sse(event: dict) -> str:
    """Format an event dict as an SSE string."""
    return f"event: {event['event']}\ndata: {json.dumps(event['data'], default=str)}\n\n"
