"""trendpilot.coordinator.events

Ordered progress-event channel.

`emit()` persists the event through the EventStore (which assigns the
per-(thread, stream type) sequence) and then publishes it to in-process
subscribers. Each subscriber receives events in emission order.
"""

from __future__ import annotations

import queue
import threading
from typing import Any, Dict, List, Optional

from ..core.models import StreamEvent, StreamEventType, StreamType
from ..logging import get_logger
from ..storage.base import EventStore

logger = get_logger(__name__)

NODE_START_MESSAGES: Dict[str, str] = {
    "plan": "Planning research strategy...",
    "search": "Searching for trends...",
    "synthesize": "Analyzing and synthesizing results...",
    "await_approval": "Research complete! Please review the trends.",
    "generate_ideas": "Generating content ideas...",
}


def node_start_message(node: str) -> str:
    return NODE_START_MESSAGES.get(node, f"Processing {node}...")


class Subscription:
    """A subscriber's view of the channel, optionally filtered by thread."""

    def __init__(self, channel: "EventChannel", thread_id: Optional[str] = None):
        self._channel = channel
        self.thread_id = thread_id
        self._queue: "queue.Queue[StreamEvent]" = queue.Queue()

    def _offer(self, event: StreamEvent) -> None:
        if self.thread_id is None or event.thread_id == self.thread_id:
            self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> StreamEvent:
        """Next event; raises `queue.Empty` after *timeout*."""
        return self._queue.get(timeout=timeout)

    def drain(self) -> List[StreamEvent]:
        out: List[StreamEvent] = []
        while True:
            try:
                out.append(self._queue.get_nowait())
            except queue.Empty:
                return out

    def close(self) -> None:
        self._channel.unsubscribe(self)


class EventChannel:
    def __init__(self, store: EventStore):
        self._store = store
        self._lock = threading.Lock()
        self._subscribers: List[Subscription] = []

    @property
    def store(self) -> EventStore:
        return self._store

    def emit(
        self,
        thread_id: str,
        stream_type: StreamType,
        event_type: StreamEventType,
        *,
        node: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> StreamEvent:
        event = StreamEvent(
            thread_id=thread_id,
            stream_type=StreamType(stream_type),
            event_type=StreamEventType(event_type),
            node=node,
            data=dict(data or {}),
        )
        # Persist and publish under one lock so subscribers see sequence order.
        with self._lock:
            stored = self._store.append(event)
            for sub in self._subscribers:
                sub._offer(stored)
        return stored

    def subscribe(self, thread_id: Optional[str] = None) -> Subscription:
        sub = Subscription(self, thread_id)
        with self._lock:
            self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    def clear(self, thread_id: str, stream_type: StreamType) -> None:
        self._store.clear(thread_id, stream_type)

    def history(self, thread_id: str, stream_type: StreamType, *, after: Optional[int] = None) -> List[StreamEvent]:
        return self._store.list(thread_id, stream_type, after=after)
