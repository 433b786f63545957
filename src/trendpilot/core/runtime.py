"""trendpilot.core.runtime

Resumable step-function engine (interrupt → checkpoint → resume).

Key semantics:
- `stream()` runs a thread's graph node by node and yields progress events.
- After every node the merged state is written as a new checkpoint whose
  parent is the previous one; the latest checkpoint is the resumable point.
- A node blocks by calling `ctx.interrupt(payload)`. The payload is recorded as
  a pending write on the current checkpoint and the run stops.
- `stream(resume=value)` re-enters the pending node; this time
  `ctx.interrupt()` returns the value instead of raising.

Replay contract:
On resume the pending node is executed again from its beginning. Work done
before the interrupt call runs twice, so nodes must be idempotent up to their
first `interrupt()`.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from .errors import GraphInterrupt, NotResumableError, ValidationError
from .models import ThreadStatus, utc_now_iso
from .spec import END, SUSPEND, GraphSpec
from .state import Channel, apply_update, initial_state
from ..logging import get_logger
from ..storage.base import MISSING, CheckpointStore, CheckpointTuple, PendingWrite, validate_key

logger = get_logger(__name__)

CHECKPOINT_VERSION = 1
INTERRUPT_CHANNEL = "__interrupt__"
RESUME_CHANNEL = "__resume__"
INTERRUPT_IDX = 0
RESUME_IDX = 1


def task_id_for(checkpoint_id: str, node: str) -> str:
    """Deterministic task id of *node* running on top of *checkpoint_id*."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"trendpilot:{checkpoint_id}:{node}"))


class ExecutionStatus(str, Enum):
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    SUSPENDED = "suspended"
    ERROR = "error"


class EventKind(str, Enum):
    NODE_START = "node_start"
    NODE_END = "node_end"
    INTERRUPT = "interrupt"
    SUSPENDED = "suspended"
    ERROR = "error"
    END = "end"


@dataclass(frozen=True)
class GraphEvent:
    kind: EventKind
    node: Optional[str] = None
    data: Any = None
    checkpoint_id: Optional[str] = None


@dataclass(frozen=True)
class ExecutionResult:
    state: Dict[str, Any]
    interrupt: Any
    checkpoint_id: Optional[str]
    status: ExecutionStatus


@dataclass(frozen=True)
class StateSnapshot:
    values: Dict[str, Any]
    next: Optional[str]
    checkpoint_id: str
    parent_checkpoint_id: Optional[str]
    metadata: Dict[str, Any] = field(default_factory=dict)
    interrupt: Any = None
    created_at: Optional[str] = None


class StepContext:
    """Per-node execution context handed to node functions."""

    def __init__(
        self,
        *,
        thread_id: str,
        checkpoint_ns: str,
        checkpoint_id: str,
        node: str,
        resume_value: Any = MISSING,
    ):
        self.thread_id = thread_id
        self.checkpoint_ns = checkpoint_ns
        self.checkpoint_id = checkpoint_id
        self.node = node
        self.task_id = task_id_for(checkpoint_id, node)
        self._resume_value = resume_value

    @property
    def is_resuming(self) -> bool:
        return self._resume_value is not MISSING

    def interrupt(self, payload: Any) -> Any:
        """Block for an external value, or return it when the node is being resumed."""
        if self._resume_value is MISSING:
            raise GraphInterrupt(payload)
        return self._resume_value


def _new_checkpoint(*, state: Dict[str, Any], step: int, next_node: Optional[str]) -> Dict[str, Any]:
    return {
        "v": CHECKPOINT_VERSION,
        "id": uuid.uuid4().hex,
        "ts": utc_now_iso(),
        "step": int(step),
        "state": state,
        "next": next_node,
    }


def _pending_interrupt(tup: CheckpointTuple) -> Any:
    next_node = tup.checkpoint.get("next")
    if not next_node:
        return None
    task_id = task_id_for(tup.checkpoint_id, next_node)
    for w in tup.writes_for(INTERRUPT_CHANNEL):
        if w.task_id == task_id:
            return w.value
    return None


def _awaits_input(tup: CheckpointTuple, node: str) -> bool:
    """True when *node* blocked in `interrupt()` here, or a router suspended on it."""
    if (tup.metadata or {}).get("source") == "suspend":
        return True
    task_id = task_id_for(tup.checkpoint_id, node)
    return any(w.task_id == task_id for w in tup.writes_for(INTERRUPT_CHANNEL))


def _recorded_resume(tup: CheckpointTuple, node: str) -> Any:
    task_id = task_id_for(tup.checkpoint_id, node)
    for w in tup.writes_for(RESUME_CHANNEL):
        if w.task_id == task_id:
            return w.value
    return MISSING


def to_snapshot(tup: CheckpointTuple) -> StateSnapshot:
    return StateSnapshot(
        values=copy.deepcopy(tup.checkpoint.get("state") or {}),
        next=tup.checkpoint.get("next"),
        checkpoint_id=tup.checkpoint_id,
        parent_checkpoint_id=tup.parent_checkpoint_id,
        metadata=dict(tup.metadata or {}),
        interrupt=_pending_interrupt(tup),
        created_at=tup.created_at,
    )


@dataclass
class _Cursor:
    checkpoint_id: str
    state: Dict[str, Any]
    step: int
    node: Optional[str]
    resume_value: Any = MISSING


class GraphRuntime:
    """Checkpoint-backed executor for a `GraphSpec`."""

    def __init__(
        self,
        *,
        graph: GraphSpec,
        checkpoint_store: CheckpointStore,
        channels: Optional[Dict[str, Channel]] = None,
    ):
        self._graph = graph
        self._store = checkpoint_store
        self._channels = channels

    @property
    def graph(self) -> GraphSpec:
        return self._graph

    @property
    def checkpoint_store(self) -> CheckpointStore:
        return self._store

    # ---------------------------------------------------------------------
    # Execution
    # ---------------------------------------------------------------------

    def stream(
        self,
        thread_id: str,
        *,
        input: Optional[Dict[str, Any]] = None,
        resume: Any = MISSING,
        checkpoint_ns: str = "",
    ) -> Iterator[GraphEvent]:
        """Run the graph for *thread_id* and return an iterator of events.

        Exactly one mode applies:
        - `input`: start (or restart from the entry node) with the update applied
        - `resume`: re-enter the pending node with a resume value
        - neither: continue from the latest checkpoint's pending node

        Validation (unknown thread, nothing to resume) happens before the
        iterator is returned; node execution happens while it is consumed.
        """
        validate_key(thread_id=thread_id)
        if input is not None and resume is not MISSING:
            raise ValidationError("input and resume are mutually exclusive")

        latest = self._store.get(thread_id, checkpoint_ns)
        if resume is not MISSING:
            cursor = self._prepare_resume(thread_id, checkpoint_ns, latest, resume)
        elif input is not None:
            cursor = self._prepare_input(thread_id, checkpoint_ns, latest, input)
        else:
            cursor = self._prepare_continue(thread_id, checkpoint_ns, latest)
        return self._run(thread_id, checkpoint_ns, cursor)

    def invoke(
        self,
        thread_id: str,
        *,
        input: Optional[Dict[str, Any]] = None,
        resume: Any = MISSING,
        checkpoint_ns: str = "",
    ) -> ExecutionResult:
        status = ExecutionStatus.COMPLETED
        interrupt: Any = None
        last_checkpoint_id: Optional[str] = None
        for event in self.stream(thread_id, input=input, resume=resume, checkpoint_ns=checkpoint_ns):
            if event.checkpoint_id:
                last_checkpoint_id = event.checkpoint_id
            if event.kind == EventKind.INTERRUPT:
                status = ExecutionStatus.INTERRUPTED
                interrupt = event.data
            elif event.kind == EventKind.SUSPENDED:
                status = ExecutionStatus.SUSPENDED
            elif event.kind == EventKind.ERROR:
                status = ExecutionStatus.ERROR

        snap = self.get_state(thread_id, checkpoint_ns=checkpoint_ns)
        return ExecutionResult(
            state=snap.values if snap is not None else {},
            interrupt=interrupt,
            checkpoint_id=last_checkpoint_id or (snap.checkpoint_id if snap is not None else None),
            status=status,
        )

    def _prepare_input(
        self,
        thread_id: str,
        ns: str,
        latest: Optional[CheckpointTuple],
        input: Dict[str, Any],
    ) -> _Cursor:
        base = latest.checkpoint.get("state") if latest is not None else None
        state = apply_update(base or initial_state(self._channels), input, self._channels)
        step = int(latest.checkpoint.get("step", -1)) + 1 if latest is not None else 0
        cp = _new_checkpoint(state=state, step=step, next_node=self._graph.entry_node)
        latest_id = latest.checkpoint_id if latest is not None else None
        self._store.put(
            thread_id,
            ns,
            cp,
            {"source": "input", "step": step, "node": None, "writes": {"__input__": input}, "route": cp["next"]},
            parent_checkpoint_id=latest_id,
            expected_latest=latest_id,
        )
        logger.info("graph_started", thread_id=thread_id, graph_id=self._graph.graph_id, checkpoint_id=cp["id"])
        return _Cursor(checkpoint_id=cp["id"], state=state, step=step, node=cp["next"])

    def _prepare_resume(
        self,
        thread_id: str,
        ns: str,
        latest: Optional[CheckpointTuple],
        resume: Any,
    ) -> _Cursor:
        node = latest.checkpoint.get("next") if latest is not None else None
        if latest is None or not node:
            raise NotResumableError(f"Thread '{thread_id}' has no pending node to resume")
        if not _awaits_input(latest, node):
            raise NotResumableError(f"Thread '{thread_id}' is not waiting for input at '{node}'")

        value = _recorded_resume(latest, node)
        if value is MISSING:
            write = PendingWrite(task_id=task_id_for(latest.checkpoint_id, node), idx=RESUME_IDX, channel=RESUME_CHANNEL, value=resume)
            inserted = self._store.put_writes(thread_id, ns, latest.checkpoint_id, [write])
            if inserted:
                value = resume
            else:
                # Lost the race to a concurrent resume: replay the accepted value.
                refreshed = self._store.get(thread_id, ns, latest.checkpoint_id)
                value = _recorded_resume(refreshed, node) if refreshed is not None else resume
        else:
            logger.info("resume_replayed", thread_id=thread_id, node=node, checkpoint_id=latest.checkpoint_id)

        return _Cursor(
            checkpoint_id=latest.checkpoint_id,
            state=copy.deepcopy(latest.checkpoint.get("state") or {}),
            step=int(latest.checkpoint.get("step", 0)),
            node=node,
            resume_value=value,
        )

    def _prepare_continue(self, thread_id: str, ns: str, latest: Optional[CheckpointTuple]) -> _Cursor:
        if latest is None:
            raise NotResumableError(f"Thread '{thread_id}' has no checkpoint")
        node = latest.checkpoint.get("next")
        return _Cursor(
            checkpoint_id=latest.checkpoint_id,
            state=copy.deepcopy(latest.checkpoint.get("state") or {}),
            step=int(latest.checkpoint.get("step", 0)),
            node=node,
            resume_value=_recorded_resume(latest, node) if node else MISSING,
        )

    def _run(self, thread_id: str, ns: str, cursor: _Cursor) -> Iterator[GraphEvent]:
        while cursor.node and cursor.node != END:
            node = cursor.node
            fn = self._graph.get_node(node)
            ctx = StepContext(
                thread_id=thread_id,
                checkpoint_ns=ns,
                checkpoint_id=cursor.checkpoint_id,
                node=node,
                resume_value=cursor.resume_value,
            )
            yield GraphEvent(EventKind.NODE_START, node, {}, cursor.checkpoint_id)

            try:
                update = fn(copy.deepcopy(cursor.state), ctx) or {}
                new_state = apply_update(cursor.state, update, self._channels)
            except GraphInterrupt as gi:
                write = PendingWrite(task_id=ctx.task_id, idx=INTERRUPT_IDX, channel=INTERRUPT_CHANNEL, value=gi.value)
                self._store.put_writes(thread_id, ns, cursor.checkpoint_id, [write])
                logger.info("graph_interrupted", thread_id=thread_id, node=node, checkpoint_id=cursor.checkpoint_id)
                yield GraphEvent(EventKind.INTERRUPT, node, gi.value, cursor.checkpoint_id)
                return
            except Exception as e:
                message = f"{node} failed: {e}"
                logger.error("node_failed", thread_id=thread_id, node=node, error=str(e))
                failed_state = apply_update(
                    cursor.state,
                    {"error": message, "current_step": ThreadStatus.ERROR.value},
                    self._channels,
                )
                cp_id = self._commit(
                    thread_id, ns, cursor, state=failed_state, next_node=None, source="error", node=node, writes={}, route=None
                )
                yield GraphEvent(EventKind.ERROR, node, {"error": message}, cp_id)
                return

            target = self._graph.next_node(node, new_state)
            yield GraphEvent(EventKind.NODE_END, node, update, cursor.checkpoint_id)

            if target == SUSPEND:
                cp_id = self._commit(
                    thread_id, ns, cursor, state=new_state, next_node=node, source="suspend", node=node, writes={node: update}, route=SUSPEND
                )
                logger.info("graph_suspended", thread_id=thread_id, node=node, checkpoint_id=cp_id)
                yield GraphEvent(EventKind.SUSPENDED, node, {"next": node}, cp_id)
                return

            next_node = None if target == END else target
            cp_id = self._commit(
                thread_id, ns, cursor, state=new_state, next_node=next_node, source="loop", node=node, writes={node: update}, route=target
            )
            logger.debug("node_completed", thread_id=thread_id, node=node, next=target, checkpoint_id=cp_id)
            cursor = _Cursor(checkpoint_id=cp_id, state=new_state, step=cursor.step + 1, node=next_node)

        logger.info("graph_completed", thread_id=thread_id, checkpoint_id=cursor.checkpoint_id)
        yield GraphEvent(EventKind.END, None, copy.deepcopy(cursor.state), cursor.checkpoint_id)

    def _commit(
        self,
        thread_id: str,
        ns: str,
        cursor: _Cursor,
        *,
        state: Dict[str, Any],
        next_node: Optional[str],
        source: str,
        node: str,
        writes: Dict[str, Any],
        route: Optional[str],
    ) -> str:
        step = cursor.step + 1
        cp = _new_checkpoint(state=state, step=step, next_node=next_node)
        return self._store.put(
            thread_id,
            ns,
            cp,
            {"source": source, "step": step, "node": node, "writes": writes, "route": route},
            parent_checkpoint_id=cursor.checkpoint_id,
            expected_latest=cursor.checkpoint_id,
        )

    # ---------------------------------------------------------------------
    # Read API
    # ---------------------------------------------------------------------

    def get_state(
        self, thread_id: str, *, checkpoint_ns: str = "", checkpoint_id: Optional[str] = None
    ) -> Optional[StateSnapshot]:
        """Latest (or a specific) snapshot; None when the thread has no checkpoint."""
        tup = self._store.get(thread_id, checkpoint_ns, checkpoint_id)
        return to_snapshot(tup) if tup is not None else None

    def get_state_history(
        self,
        thread_id: str,
        *,
        checkpoint_ns: str = "",
        limit: int = 100,
        before: Optional[str] = None,
    ) -> List[StateSnapshot]:
        return [to_snapshot(t) for t in self._store.list(thread_id, checkpoint_ns, limit=limit, before=before)]
