"""trendpilot.storage.sqlite

SQLite-backed durability stores for single-host deployments.

Design goals:
- Keep the durable substrate dependency-light (stdlib `sqlite3`).
- Restart-safe storage with real indexing.
- Same store interfaces as the in-memory backend so hosts can switch backends
  without touching the engine or the coordinator.

Ordering:
Checkpoints carry a store-assigned `seq` (AUTOINCREMENT). An upsert of an
existing checkpoint id keeps its original `seq`, so "latest" is always the
checkpoint created last.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

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
    MessageRole,
    MessageType,
    StreamEvent,
    StreamEventType,
    StreamType,
    Thread,
    ThreadStatus,
    TrendRecord,
    utc_now_iso,
)


class SqliteDatabase:
    """Small helper around a SQLite file with per-thread connections."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._init_lock = threading.Lock()
        self._initialized = False
        self._ensure_schema()

    @property
    def path(self) -> Path:
        return self._path

    def connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(str(self._path), timeout=30.0)
            conn.row_factory = sqlite3.Row
            self._apply_pragmas(conn)
            self._local.conn = conn
        return conn

    @contextmanager
    def write_transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialize a read-check-write sequence against other writers (BEGIN IMMEDIATE)."""
        conn = self.connection()
        conn.execute("BEGIN IMMEDIATE;")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    def _apply_pragmas(self, conn: sqlite3.Connection) -> None:
        # WAL improves writer/reader concurrency between triggers and task workers.
        for pragma in (
            "PRAGMA journal_mode=WAL;",
            "PRAGMA synchronous=NORMAL;",
            "PRAGMA foreign_keys=ON;",
            "PRAGMA busy_timeout=5000;",
        ):
            try:
                conn.execute(pragma)
            except sqlite3.DatabaseError:
                pass

    def _ensure_schema(self) -> None:
        with self._init_lock:
            if self._initialized:
                return
            conn = sqlite3.connect(str(self._path), timeout=30.0)
            try:
                conn.row_factory = sqlite3.Row
                self._apply_pragmas(conn)

                # --- Checkpoints ---
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS checkpoints (
                      seq INTEGER PRIMARY KEY AUTOINCREMENT,
                      thread_id TEXT NOT NULL,
                      checkpoint_ns TEXT NOT NULL DEFAULT '',
                      checkpoint_id TEXT NOT NULL,
                      parent_checkpoint_id TEXT,
                      checkpoint_json TEXT NOT NULL,
                      metadata_json TEXT NOT NULL,
                      created_at TEXT NOT NULL,
                      UNIQUE (thread_id, checkpoint_ns, checkpoint_id)
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_checkpoints_thread_seq ON checkpoints(thread_id, checkpoint_ns, seq DESC);")

                # --- Pending writes ---
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS checkpoint_writes (
                      thread_id TEXT NOT NULL,
                      checkpoint_ns TEXT NOT NULL DEFAULT '',
                      checkpoint_id TEXT NOT NULL,
                      task_id TEXT NOT NULL,
                      idx INTEGER NOT NULL,
                      channel TEXT NOT NULL,
                      value_json TEXT NOT NULL,
                      created_at TEXT NOT NULL,
                      PRIMARY KEY (thread_id, checkpoint_ns, checkpoint_id, task_id, idx)
                    );
                    """
                )

                # --- Threads ---
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS threads (
                      thread_id TEXT PRIMARY KEY,
                      title TEXT NOT NULL,
                      user_prompt TEXT NOT NULL,
                      status TEXT NOT NULL,
                      refinement_feedback TEXT,
                      created_at TEXT NOT NULL,
                      updated_at TEXT NOT NULL
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_threads_created ON threads(created_at DESC);")

                # --- Trends / ideas / messages ---
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS trends (
                      trend_id TEXT PRIMARY KEY,
                      thread_id TEXT NOT NULL,
                      ord INTEGER NOT NULL,
                      trend_json TEXT NOT NULL
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_trends_thread_ord ON trends(thread_id, ord);")
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ideas (
                      seq INTEGER PRIMARY KEY AUTOINCREMENT,
                      idea_id TEXT NOT NULL UNIQUE,
                      thread_id TEXT NOT NULL,
                      platform TEXT NOT NULL,
                      idea_json TEXT NOT NULL
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_ideas_thread_platform ON ideas(thread_id, platform);")
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS messages (
                      seq INTEGER PRIMARY KEY AUTOINCREMENT,
                      thread_id TEXT NOT NULL,
                      message_json TEXT NOT NULL
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_messages_thread ON messages(thread_id, seq);")

                # --- Stream events ---
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS stream_events (
                      thread_id TEXT NOT NULL,
                      stream_type TEXT NOT NULL,
                      sequence INTEGER NOT NULL,
                      event_type TEXT NOT NULL,
                      node TEXT,
                      data_json TEXT NOT NULL,
                      created_at TEXT NOT NULL,
                      PRIMARY KEY (thread_id, stream_type, sequence)
                    );
                    """
                )

                conn.commit()
                self._initialized = True
            finally:
                conn.close()


class SqliteCheckpointStore(CheckpointStore):
    def __init__(self, db: SqliteDatabase) -> None:
        self._db = db

    def _writes_for(self, conn: sqlite3.Connection, thread_id: str, ns: str, checkpoint_id: str) -> List[PendingWrite]:
        rows = conn.execute(
            """
            SELECT task_id, idx, channel, value_json, created_at
            FROM checkpoint_writes
            WHERE thread_id = ? AND checkpoint_ns = ? AND checkpoint_id = ?
            ORDER BY task_id ASC, idx ASC;
            """,
            (thread_id, ns, checkpoint_id),
        ).fetchall()
        return [
            PendingWrite(
                task_id=str(r["task_id"]),
                idx=int(r["idx"]),
                channel=str(r["channel"]),
                value=serde.loads(str(r["value_json"])),
                created_at=str(r["created_at"] or "") or None,
            )
            for r in rows or []
        ]

    def _to_tuple(self, conn: sqlite3.Connection, row: sqlite3.Row) -> CheckpointTuple:
        thread_id = str(row["thread_id"])
        ns = str(row["checkpoint_ns"] or "")
        checkpoint_id = str(row["checkpoint_id"])
        return CheckpointTuple(
            thread_id=thread_id,
            checkpoint_ns=ns,
            checkpoint_id=checkpoint_id,
            checkpoint=serde.loads(str(row["checkpoint_json"])),
            metadata=serde.loads(str(row["metadata_json"])),
            parent_checkpoint_id=str(row["parent_checkpoint_id"] or "") or None,
            pending_writes=self._writes_for(conn, thread_id, ns, checkpoint_id),
            created_at=str(row["created_at"] or "") or None,
        )

    def get(
        self, thread_id: str, checkpoint_ns: str = "", checkpoint_id: Optional[str] = None
    ) -> Optional[CheckpointTuple]:
        conn = self._db.connection()
        if checkpoint_id is not None:
            row = conn.execute(
                "SELECT * FROM checkpoints WHERE thread_id = ? AND checkpoint_ns = ? AND checkpoint_id = ?;",
                (str(thread_id), str(checkpoint_ns), str(checkpoint_id)),
            ).fetchone()
        else:
            row = conn.execute(
                "SELECT * FROM checkpoints WHERE thread_id = ? AND checkpoint_ns = ? ORDER BY seq DESC LIMIT 1;",
                (str(thread_id), str(checkpoint_ns)),
            ).fetchone()
        return self._to_tuple(conn, row) if row is not None else None

    def list(
        self,
        thread_id: str,
        checkpoint_ns: str = "",
        *,
        limit: int = 100,
        before: Optional[str] = None,
    ) -> List[CheckpointTuple]:
        conn = self._db.connection()
        params: list[Any] = [str(thread_id), str(checkpoint_ns)]
        where = "thread_id = ? AND checkpoint_ns = ?"
        if before is not None:
            where += " AND seq < (SELECT seq FROM checkpoints WHERE thread_id = ? AND checkpoint_ns = ? AND checkpoint_id = ?)"
            params.extend([str(thread_id), str(checkpoint_ns), str(before)])
        lim = int(limit) if limit is not None and limit >= 0 else -1
        rows = conn.execute(
            f"SELECT * FROM checkpoints WHERE {where} ORDER BY seq DESC LIMIT ?;",
            (*params, lim),
        ).fetchall()
        return [self._to_tuple(conn, r) for r in rows or []]

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

        with self._db.write_transaction() as conn:
            existing = conn.execute(
                "SELECT 1 FROM checkpoints WHERE thread_id = ? AND checkpoint_ns = ? AND checkpoint_id = ?;",
                (thread_id, checkpoint_ns, checkpoint_id),
            ).fetchone()
            if existing is None and expected_latest is not MISSING:
                row = conn.execute(
                    "SELECT checkpoint_id FROM checkpoints WHERE thread_id = ? AND checkpoint_ns = ? ORDER BY seq DESC LIMIT 1;",
                    (thread_id, checkpoint_ns),
                ).fetchone()
                actual = str(row["checkpoint_id"]) if row is not None else None
                if actual != expected_latest:
                    raise CheckpointConflictError(thread_id=thread_id, expected=expected_latest, actual=actual)

            conn.execute(
                """
                INSERT INTO checkpoints (
                  thread_id, checkpoint_ns, checkpoint_id, parent_checkpoint_id,
                  checkpoint_json, metadata_json, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(thread_id, checkpoint_ns, checkpoint_id) DO UPDATE SET
                  parent_checkpoint_id=excluded.parent_checkpoint_id,
                  checkpoint_json=excluded.checkpoint_json,
                  metadata_json=excluded.metadata_json;
                """,
                (thread_id, checkpoint_ns, checkpoint_id, parent_checkpoint_id, blob, meta, utc_now_iso()),
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
        now = utc_now_iso()
        inserted = 0
        with self._db.write_transaction() as conn:
            row = conn.execute(
                "SELECT 1 FROM checkpoints WHERE thread_id = ? AND checkpoint_ns = ? AND checkpoint_id = ?;",
                (thread_id, checkpoint_ns, checkpoint_id),
            ).fetchone()
            if row is None:
                raise KeyError(f"Unknown checkpoint '{checkpoint_id}' for thread '{thread_id}'")
            for task_id, idx, channel, value in encoded:
                cur = conn.execute(
                    """
                    INSERT OR IGNORE INTO checkpoint_writes (
                      thread_id, checkpoint_ns, checkpoint_id, task_id, idx, channel, value_json, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (thread_id, checkpoint_ns, checkpoint_id, task_id, idx, channel, value, now),
                )
                inserted += int(cur.rowcount or 0)
        return inserted

    def delete_thread(self, thread_id: str) -> None:
        conn = self._db.connection()
        with conn:
            conn.execute("DELETE FROM checkpoint_writes WHERE thread_id = ?;", (str(thread_id),))
            conn.execute("DELETE FROM checkpoints WHERE thread_id = ?;", (str(thread_id),))


class SqliteThreadStore(ThreadStore):
    def __init__(self, db: SqliteDatabase) -> None:
        self._db = db

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Thread:
        return Thread.from_json(dict(row))

    def create(self, thread: Thread) -> Thread:
        conn = self._db.connection()
        with conn:
            conn.execute(
                """
                INSERT INTO threads (thread_id, title, user_prompt, status, refinement_feedback, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    thread.thread_id,
                    thread.title,
                    thread.user_prompt,
                    thread.status.value,
                    thread.refinement_feedback,
                    thread.created_at,
                    thread.updated_at,
                ),
            )
        return thread

    def get(self, thread_id: str) -> Optional[Thread]:
        row = self._db.connection().execute("SELECT * FROM threads WHERE thread_id = ?;", (str(thread_id),)).fetchone()
        return self._from_row(row) if row is not None else None

    def list(self, *, limit: int = 20) -> List[Thread]:
        rows = self._db.connection().execute(
            "SELECT * FROM threads ORDER BY created_at DESC LIMIT ?;", (max(1, int(limit or 20)),)
        ).fetchall()
        return [self._from_row(r) for r in rows or []]

    def _patch(self, thread_id: str, column: str, value: Any) -> None:
        conn = self._db.connection()
        with conn:
            cur = conn.execute(
                f"UPDATE threads SET {column} = ?, updated_at = ? WHERE thread_id = ?;",
                (value, utc_now_iso(), str(thread_id)),
            )
        if not cur.rowcount:
            raise ThreadNotFoundError(thread_id)

    def update_status(self, thread_id: str, status: ThreadStatus) -> None:
        self._patch(thread_id, "status", ThreadStatus(status).value)

    def set_refinement_feedback(self, thread_id: str, feedback: Optional[str]) -> None:
        self._patch(thread_id, "refinement_feedback", feedback)


class SqliteTrendStore(TrendStore):
    def __init__(self, db: SqliteDatabase) -> None:
        self._db = db

    def create_batch(self, thread_id: str, trends: List[Dict[str, Any]]) -> List[TrendRecord]:
        with self._db.write_transaction() as conn:
            row = conn.execute("SELECT MAX(ord) AS last_ord FROM trends WHERE thread_id = ?;", (thread_id,)).fetchone()
            start = int(row["last_ord"]) + 1 if row is not None and row["last_ord"] is not None else 0
            records = [TrendRecord.from_state(thread_id=thread_id, order=start + i, trend=t) for i, t in enumerate(trends)]
            for r in records:
                conn.execute(
                    "INSERT INTO trends (trend_id, thread_id, ord, trend_json) VALUES (?, ?, ?, ?);",
                    (r.trend_id, thread_id, r.order, json.dumps(r.to_json(), ensure_ascii=False)),
                )
        return records

    def list_by_thread(self, thread_id: str) -> List[TrendRecord]:
        rows = self._db.connection().execute(
            "SELECT trend_json FROM trends WHERE thread_id = ? ORDER BY ord ASC;", (str(thread_id),)
        ).fetchall()
        return [TrendRecord(**json.loads(str(r["trend_json"]))) for r in rows or []]

    def delete_by_thread(self, thread_id: str) -> int:
        conn = self._db.connection()
        with conn:
            cur = conn.execute("DELETE FROM trends WHERE thread_id = ?;", (str(thread_id),))
        return int(cur.rowcount or 0)


class SqliteIdeaStore(IdeaStore):
    def __init__(self, db: SqliteDatabase) -> None:
        self._db = db

    def create(self, idea: IdeaRecord) -> IdeaRecord:
        if not idea.idea_id:
            idea = IdeaRecord(**{**idea.to_json(), "idea_id": uuid.uuid4().hex})
        conn = self._db.connection()
        with conn:
            conn.execute(
                "INSERT INTO ideas (idea_id, thread_id, platform, idea_json) VALUES (?, ?, ?, ?);",
                (idea.idea_id, idea.thread_id, idea.platform, json.dumps(idea.to_json(), ensure_ascii=False)),
            )
        return idea

    def list_by_thread(self, thread_id: str, *, platform: Optional[str] = None) -> List[IdeaRecord]:
        sql = "SELECT idea_json FROM ideas WHERE thread_id = ?"
        params: list[Any] = [str(thread_id)]
        if platform is not None:
            sql += " AND platform = ?"
            params.append(str(platform))
        rows = self._db.connection().execute(sql + " ORDER BY seq ASC;", tuple(params)).fetchall()
        return [IdeaRecord(**json.loads(str(r["idea_json"]))) for r in rows or []]

    def delete_by_thread(self, thread_id: str) -> int:
        conn = self._db.connection()
        with conn:
            cur = conn.execute("DELETE FROM ideas WHERE thread_id = ?;", (str(thread_id),))
        return int(cur.rowcount or 0)


class SqliteMessageStore(MessageStore):
    def __init__(self, db: SqliteDatabase) -> None:
        self._db = db

    def append(self, message: MessageRecord) -> None:
        conn = self._db.connection()
        with conn:
            conn.execute(
                "INSERT INTO messages (thread_id, message_json) VALUES (?, ?);",
                (message.thread_id, json.dumps(message.to_json(), ensure_ascii=False)),
            )

    def list_by_thread(self, thread_id: str) -> List[MessageRecord]:
        rows = self._db.connection().execute(
            "SELECT message_json FROM messages WHERE thread_id = ? ORDER BY seq ASC;", (str(thread_id),)
        ).fetchall()
        out: List[MessageRecord] = []
        for r in rows or []:
            data = json.loads(str(r["message_json"]))
            data["role"] = MessageRole(data["role"])
            data["message_type"] = MessageType(data["message_type"])
            out.append(MessageRecord(**data))
        return out


class SqliteEventStore(EventStore):
    def __init__(self, db: SqliteDatabase) -> None:
        self._db = db

    @staticmethod
    def _from_row(row: sqlite3.Row) -> StreamEvent:
        return StreamEvent(
            thread_id=str(row["thread_id"]),
            stream_type=StreamType(str(row["stream_type"])),
            event_type=StreamEventType(str(row["event_type"])),
            node=str(row["node"]) if row["node"] is not None else None,
            data=json.loads(str(row["data_json"] or "{}")),
            sequence=int(row["sequence"]),
            created_at=str(row["created_at"] or ""),
        )

    def append(self, event: StreamEvent) -> StreamEvent:
        stream_type = StreamType(event.stream_type).value
        with self._db.write_transaction() as conn:
            row = conn.execute(
                "SELECT MAX(sequence) AS last_seq FROM stream_events WHERE thread_id = ? AND stream_type = ?;",
                (event.thread_id, stream_type),
            ).fetchone()
            seq = int(row["last_seq"]) + 1 if row is not None and row["last_seq"] is not None else 0
            conn.execute(
                """
                INSERT INTO stream_events (thread_id, stream_type, sequence, event_type, node, data_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    event.thread_id,
                    stream_type,
                    seq,
                    StreamEventType(event.event_type).value,
                    event.node,
                    json.dumps(event.data or {}, ensure_ascii=False),
                    event.created_at,
                ),
            )
        return StreamEvent(
            thread_id=event.thread_id,
            stream_type=StreamType(stream_type),
            event_type=StreamEventType(event.event_type),
            node=event.node,
            data=dict(event.data or {}),
            sequence=seq,
            created_at=event.created_at,
        )

    def list(self, thread_id: str, stream_type: StreamType, *, after: Optional[int] = None) -> List[StreamEvent]:
        sql = "SELECT * FROM stream_events WHERE thread_id = ? AND stream_type = ?"
        params: list[Any] = [str(thread_id), StreamType(stream_type).value]
        if after is not None:
            sql += " AND sequence > ?"
            params.append(int(after))
        rows = self._db.connection().execute(sql + " ORDER BY sequence ASC;", tuple(params)).fetchall()
        return [self._from_row(r) for r in rows or []]

    def latest_sequence(self, thread_id: str, stream_type: StreamType) -> int:
        row = self._db.connection().execute(
            "SELECT MAX(sequence) AS last_seq FROM stream_events WHERE thread_id = ? AND stream_type = ?;",
            (str(thread_id), StreamType(stream_type).value),
        ).fetchone()
        return int(row["last_seq"]) if row is not None and row["last_seq"] is not None else -1

    def clear(self, thread_id: str, stream_type: StreamType) -> None:
        conn = self._db.connection()
        with conn:
            conn.execute(
                "DELETE FROM stream_events WHERE thread_id = ? AND stream_type = ?;",
                (str(thread_id), StreamType(stream_type).value),
            )
