"""trendpilot.storage.base

Storage interfaces (durability backends).

The checkpoint store is the only mutable resource shared by concurrent
executions. Its writes are keyed so that retries are safe:

- checkpoints:    (thread, ns, checkpoint_id)          upsert, last write wins
- pending writes: (thread, ns, checkpoint_id, task, idx) insert-if-new, first write wins

The remaining stores hold Coordinator-owned records (threads, trends, ideas,
messages, stream events).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..core.errors import CheckpointValidationError
from ..core.models import (
    IdeaRecord,
    MessageRecord,
    StreamEvent,
    StreamType,
    Thread,
    ThreadStatus,
    TrendRecord,
)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


# Sentinel for "no optimistic check requested" (None is a valid expected latest).
MISSING: Any = _Missing()


@dataclass(frozen=True)
class PendingWrite:
    """A single channel write proposed by a task, not yet folded into a checkpoint."""

    task_id: str
    idx: int
    channel: str
    value: Any
    created_at: Optional[str] = None


@dataclass(frozen=True)
class CheckpointTuple:
    thread_id: str
    checkpoint_ns: str
    checkpoint_id: str
    checkpoint: Dict[str, Any]
    metadata: Dict[str, Any]
    parent_checkpoint_id: Optional[str] = None
    pending_writes: List[PendingWrite] = field(default_factory=list)
    created_at: Optional[str] = None

    def writes_for(self, channel: str) -> List[PendingWrite]:
        return [w for w in self.pending_writes if w.channel == channel]


def validate_key(*, thread_id: str, checkpoint_id: Optional[str] = None, require_checkpoint: bool = False) -> None:
    if not str(thread_id or "").strip():
        raise CheckpointValidationError("thread_id is required")
    if require_checkpoint and not str(checkpoint_id or "").strip():
        raise CheckpointValidationError("checkpoint_id is required")


class CheckpointStore(ABC):
    @abstractmethod
    def get(
        self, thread_id: str, checkpoint_ns: str = "", checkpoint_id: Optional[str] = None
    ) -> Optional[CheckpointTuple]:
        """Exact lookup when *checkpoint_id* is given, else the latest by creation order."""

    @abstractmethod
    def list(
        self,
        thread_id: str,
        checkpoint_ns: str = "",
        *,
        limit: int = 100,
        before: Optional[str] = None,
    ) -> List[CheckpointTuple]:
        """Newest first; with *before*, only checkpoints created strictly before it."""

    @abstractmethod
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
        """Upsert `checkpoint["id"]`; returns the id.

        With *expected_latest*, a new row is only inserted while the current
        latest id equals it (CheckpointConflictError otherwise).
        """

    @abstractmethod
    def put_writes(
        self,
        thread_id: str,
        checkpoint_ns: str,
        checkpoint_id: str,
        writes: Sequence[PendingWrite],
    ) -> int:
        """Insert writes whose (task_id, idx) is new; returns how many were inserted."""

    @abstractmethod
    def delete_thread(self, thread_id: str) -> None: ...


class ThreadStore(ABC):
    @abstractmethod
    def create(self, thread: Thread) -> Thread: ...

    @abstractmethod
    def get(self, thread_id: str) -> Optional[Thread]: ...

    @abstractmethod
    def list(self, *, limit: int = 20) -> List[Thread]:
        """Newest first."""

    @abstractmethod
    def update_status(self, thread_id: str, status: ThreadStatus) -> None: ...

    @abstractmethod
    def set_refinement_feedback(self, thread_id: str, feedback: Optional[str]) -> None: ...


class TrendStore(ABC):
    @abstractmethod
    def create_batch(self, thread_id: str, trends: List[Dict[str, Any]]) -> List[TrendRecord]:
        """Append trends in order after any existing ones."""

    @abstractmethod
    def list_by_thread(self, thread_id: str) -> List[TrendRecord]:
        """Ordered by `order` ascending."""

    @abstractmethod
    def delete_by_thread(self, thread_id: str) -> int: ...


class IdeaStore(ABC):
    @abstractmethod
    def create(self, idea: IdeaRecord) -> IdeaRecord: ...

    @abstractmethod
    def list_by_thread(self, thread_id: str, *, platform: Optional[str] = None) -> List[IdeaRecord]: ...

    @abstractmethod
    def delete_by_thread(self, thread_id: str) -> int: ...


class MessageStore(ABC):
    @abstractmethod
    def append(self, message: MessageRecord) -> None: ...

    @abstractmethod
    def list_by_thread(self, thread_id: str) -> List[MessageRecord]: ...


class EventStore(ABC):
    """Stream events with a per-(thread, stream type) sequence starting at 0."""

    @abstractmethod
    def append(self, event: StreamEvent) -> StreamEvent:
        """Assign the next sequence number and store; returns the stored event."""

    @abstractmethod
    def list(self, thread_id: str, stream_type: StreamType, *, after: Optional[int] = None) -> List[StreamEvent]:
        """Ordered by sequence; with *after*, only events with a greater sequence."""

    @abstractmethod
    def latest_sequence(self, thread_id: str, stream_type: StreamType) -> int:
        """-1 when the stream is empty."""

    @abstractmethod
    def clear(self, thread_id: str, stream_type: StreamType) -> None: ...
