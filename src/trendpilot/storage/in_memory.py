"""trendpilot.storage.in_memory

In-memory durability backends (testing/dev).

Values are stored in their serialized form so that callers never share
mutable objects with the store.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from . import serde
from .base import (
    MISSING,
    CheckpointStore,
    CheckpointTuple,
    EventStore,
    IdeaStore,
    MessageStore,
    PendingWrite,
    ThreadStore,
    TrendStore,
    validate_key,
)
from ..core.errors import CheckpointConflictError, ThreadNotFoundError
from ..core.models import (
    IdeaRecord,
    MessageRecord,
    StreamEvent,
    StreamType,
    Thread,
    ThreadStatus,
    TrendRecord,
    utc_now_iso,
)


@dataclass
class _CheckpointRow:
    seq: int
    checkpoint_id: str
    parent_checkpoint_id: Optional[str]
    checkpoint: str
    metadata: str
    created_at: str
    writes: Dict[Tuple[str, int], Tuple[str, str, str]] = field(default_factory=dict)


class InMemoryCheckpointStore(CheckpointStore):
    def __init__(self):
        self._lock = threading.RLock()
        self._seq = 0
        # (thread_id, ns) -> checkpoint_id -> row
        self._rows: Dict[Tuple[str, str], Dict[str, _CheckpointRow]] = {}

    def _to_tuple(self, thread_id: str, ns: str, row: _CheckpointRow) -> CheckpointTuple:
        writes = [
            PendingWrite(task_id=task_id, idx=idx, channel=channel, value=serde.loads(value), created_at=created_at)
            for (task_id, idx), (channel, value, created_at) in sorted(row.writes.items())
        ]
        return CheckpointTuple(
            thread_id=thread_id,
            checkpoint_ns=ns,
            checkpoint_id=row.checkpoint_id,
            checkpoint=serde.loads(row.checkpoint),
            metadata=serde.loads(row.metadata),
            parent_checkpoint_id=row.parent_checkpoint_id,
            pending_writes=writes,
            created_at=row.created_at,
        )

    def _latest_row(self, key: Tuple[str, str]) -> Optional[_CheckpointRow]:
        rows = self._rows.get(key)
        if not rows:
            return None
        return max(rows.values(), key=lambda r: r.seq)

    def get(
        self, thread_id: str, checkpoint_ns: str = "", checkpoint_id: Optional[str] = None
    ) -> Optional[CheckpointTuple]:
        key = (thread_id, checkpoint_ns)
        with self._lock:
            if checkpoint_id is not None:
                row = self._rows.get(key, {}).get(checkpoint_id)
            else:
                row = self._latest_row(key)
            return self._to_tuple(thread_id, checkpoint_ns, row) if row is not None else None

    def list(
        self,
        thread_id: str,
        checkpoint_ns: str = "",
        *,
        limit: int = 100,
        before: Optional[str] = None,
    ) -> List[CheckpointTuple]:
        key = (thread_id, checkpoint_ns)
        with self._lock:
            rows = sorted(self._rows.get(key, {}).values(), key=lambda r: r.seq, reverse=True)
            if before is not None:
                anchor = self._rows.get(key, {}).get(before)
                # Unknown anchor: nothing is known to precede it.
                rows = [r for r in rows if r.seq < anchor.seq] if anchor is not None else []
            if limit is not None and limit >= 0:
                rows = rows[:limit]
            return [self._to_tuple(thread_id, checkpoint_ns, r) for r in rows]

    def put(
        self,
        thread_id: str,
        checkpoint_ns: str,
        checkpoint: Dict[str, Any],
        metadata: Dict[str, Any],
        *,
        parent_checkpoint_id: Optional[str] = None,
        expected_latest: Any = MISSING,
    ) -> str:
        checkpoint_id = str(checkpoint.get("id") or "")
        validate_key(thread_id=thread_id, checkpoint_id=checkpoint_id, require_checkpoint=True)
        blob = serde.dumps(checkpoint)
        meta = serde.dumps(metadata or {})
        key = (thread_id, checkpoint_ns)
        with self._lock:
            rows = self._rows.setdefault(key, {})
            existing = rows.get(checkpoint_id)
            if existing is not None:
                existing.checkpoint = blob
                existing.metadata = meta
                existing.parent_checkpoint_id = parent_checkpoint_id
                return checkpoint_id

            if expected_latest is not MISSING:
                latest = self._latest_row(key)
                actual = latest.checkpoint_id if latest is not None else None
                if actual != expected_latest:
                    raise CheckpointConflictError(thread_id=thread_id, expected=expected_latest, actual=actual)

            self._seq += 1
            rows[checkpoint_id] = _CheckpointRow(
                seq=self._seq,
                checkpoint_id=checkpoint_id,
                parent_checkpoint_id=parent_checkpoint_id,
                checkpoint=blob,
                metadata=meta,
                created_at=utc_now_iso(),
            )
            return checkpoint_id

    def put_writes(
        self,
        thread_id: str,
        checkpoint_ns: str,
        checkpoint_id: str,
        writes: Sequence[PendingWrite],
    ) -> int:
        validate_key(thread_id=thread_id, checkpoint_id=checkpoint_id, require_checkpoint=True)
        encoded = [(w.task_id, int(w.idx), w.channel, serde.dumps(w.value)) for w in writes]
        inserted = 0
        with self._lock:
            row = self._rows.get((thread_id, checkpoint_ns), {}).get(checkpoint_id)
            if row is None:
                raise KeyError(f"Unknown checkpoint '{checkpoint_id}' for thread '{thread_id}'")
            now = utc_now_iso()
            for task_id, idx, channel, value in encoded:
                if (task_id, idx) in row.writes:
                    continue
                row.writes[(task_id, idx)] = (channel, value, now)
                inserted += 1
        return inserted

    def delete_thread(self, thread_id: str) -> None:
        with self._lock:
            for key in [k for k in self._rows if k[0] == thread_id]:
                del self._rows[key]


class InMemoryThreadStore(ThreadStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._threads: Dict[str, Dict[str, Any]] = {}

    def create(self, thread: Thread) -> Thread:
        with self._lock:
            self._threads[thread.thread_id] = thread.to_json()
        return thread

    def get(self, thread_id: str) -> Optional[Thread]:
        with self._lock:
            data = self._threads.get(thread_id)
        return Thread.from_json(data) if data is not None else None

    def list(self, *, limit: int = 20) -> List[Thread]:
        with self._lock:
            rows = list(self._threads.values())
        rows.sort(key=lambda d: d.get("created_at") or "", reverse=True)
        return [Thread.from_json(d) for d in rows[:limit]]

    def _patch(self, thread_id: str, **fields: Any) -> None:
        with self._lock:
            data = self._threads.get(thread_id)
            if data is None:
                raise ThreadNotFoundError(thread_id)
            data.update(fields)
            data["updated_at"] = utc_now_iso()

    def update_status(self, thread_id: str, status: ThreadStatus) -> None:
        self._patch(thread_id, status=ThreadStatus(status).value)

    def set_refinement_feedback(self, thread_id: str, feedback: Optional[str]) -> None:
        self._patch(thread_id, refinement_feedback=feedback)


class InMemoryTrendStore(TrendStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._trends: Dict[str, List[TrendRecord]] = {}

    def create_batch(self, thread_id: str, trends: List[Dict[str, Any]]) -> List[TrendRecord]:
        with self._lock:
            existing = self._trends.setdefault(thread_id, [])
            start = len(existing)
            records = [TrendRecord.from_state(thread_id=thread_id, order=start + i, trend=t) for i, t in enumerate(trends)]
            existing.extend(records)
        return [replace(r) for r in records]

    def list_by_thread(self, thread_id: str) -> List[TrendRecord]:
        with self._lock:
            records = list(self._trends.get(thread_id, []))
        return sorted((replace(r) for r in records), key=lambda r: r.order)

    def delete_by_thread(self, thread_id: str) -> int:
        with self._lock:
            return len(self._trends.pop(thread_id, []))


class InMemoryIdeaStore(IdeaStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._ideas: Dict[str, List[IdeaRecord]] = {}

    def create(self, idea: IdeaRecord) -> IdeaRecord:
        if not idea.idea_id:
            idea = replace(idea, idea_id=uuid.uuid4().hex)
        with self._lock:
            self._ideas.setdefault(idea.thread_id, []).append(replace(idea))
        return idea

    def list_by_thread(self, thread_id: str, *, platform: Optional[str] = None) -> List[IdeaRecord]:
        with self._lock:
            ideas = list(self._ideas.get(thread_id, []))
        return [replace(i) for i in ideas if platform is None or i.platform == platform]

    def delete_by_thread(self, thread_id: str) -> int:
        with self._lock:
            return len(self._ideas.pop(thread_id, []))


class InMemoryMessageStore(MessageStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._messages: Dict[str, List[MessageRecord]] = {}

    def append(self, message: MessageRecord) -> None:
        with self._lock:
            self._messages.setdefault(message.thread_id, []).append(replace(message))

    def list_by_thread(self, thread_id: str) -> List[MessageRecord]:
        with self._lock:
            return [replace(m) for m in self._messages.get(thread_id, [])]


class InMemoryEventStore(EventStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._events: Dict[Tuple[str, str], List[StreamEvent]] = {}

    def append(self, event: StreamEvent) -> StreamEvent:
        key = (event.thread_id, StreamType(event.stream_type).value)
        with self._lock:
            events = self._events.setdefault(key, [])
            seq = events[-1].sequence + 1 if events else 0
            stored = replace(event, sequence=seq, data=dict(event.data or {}))
            events.append(stored)
        return replace(stored)

    def list(self, thread_id: str, stream_type: StreamType, *, after: Optional[int] = None) -> List[StreamEvent]:
        key = (thread_id, StreamType(stream_type).value)
        with self._lock:
            events = list(self._events.get(key, []))
        return [replace(e) for e in events if after is None or e.sequence > after]

    def latest_sequence(self, thread_id: str, stream_type: StreamType) -> int:
        key = (thread_id, StreamType(stream_type).value)
        with self._lock:
            events = self._events.get(key) or []
            return events[-1].sequence if events else -1

    def clear(self, thread_id: str, stream_type: StreamType) -> None:
        with self._lock:
            self._events.pop((thread_id, StreamType(stream_type).value), None)
