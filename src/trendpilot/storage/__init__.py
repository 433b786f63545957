"""trendpilot.storage

Durability backends and the `Stores` bundle handed to the coordinator.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

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
)
from .in_memory import (
    InMemoryCheckpointStore,
    InMemoryEventStore,
    InMemoryIdeaStore,
    InMemoryMessageStore,
    InMemoryThreadStore,
    InMemoryTrendStore,
)
from .sqlite import (
    SqliteCheckpointStore,
    SqliteDatabase,
    SqliteEventStore,
    SqliteIdeaStore,
    SqliteMessageStore,
    SqliteThreadStore,
    SqliteTrendStore,
)


@dataclass(frozen=True)
class Stores:
    checkpoints: CheckpointStore
    threads: ThreadStore
    trends: TrendStore
    ideas: IdeaStore
    messages: MessageStore
    events: EventStore

    @classmethod
    def in_memory(cls) -> "Stores":
        return cls(
            checkpoints=InMemoryCheckpointStore(),
            threads=InMemoryThreadStore(),
            trends=InMemoryTrendStore(),
            ideas=InMemoryIdeaStore(),
            messages=InMemoryMessageStore(),
            events=InMemoryEventStore(),
        )

    @classmethod
    def sqlite(cls, path: Union[str, Path]) -> "Stores":
        db = SqliteDatabase(path)
        return cls(
            checkpoints=SqliteCheckpointStore(db),
            threads=SqliteThreadStore(db),
            trends=SqliteTrendStore(db),
            ideas=SqliteIdeaStore(db),
            messages=SqliteMessageStore(db),
            events=SqliteEventStore(db),
        )


__all__ = [
    "MISSING",
    "Stores",
    "CheckpointStore",
    "CheckpointTuple",
    "PendingWrite",
    "ThreadStore",
    "TrendStore",
    "IdeaStore",
    "MessageStore",
    "EventStore",
    "InMemoryCheckpointStore",
    "InMemoryThreadStore",
    "InMemoryTrendStore",
    "InMemoryIdeaStore",
    "InMemoryMessageStore",
    "InMemoryEventStore",
    "SqliteDatabase",
    "SqliteCheckpointStore",
    "SqliteThreadStore",
    "SqliteTrendStore",
    "SqliteIdeaStore",
    "SqliteMessageStore",
    "SqliteEventStore",
]
