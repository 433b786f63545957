from __future__ import annotations

from typing import Any, Dict, List

import pytest

from trendpilot.core.errors import CheckpointConflictError, NotResumableError, StepFailed, ValidationError
from trendpilot.core.runtime import EventKind, ExecutionStatus, GraphRuntime, StepContext
from trendpilot.core.spec import END, SUSPEND, GraphSpec
from trendpilot.core.state import Channel, Reducer
from trendpilot.storage import InMemoryCheckpointStore

CHANNELS: Dict[str, Channel] = {
    "count": Channel(Reducer.REPLACE, lambda: 0),
    "log": Channel(Reducer.APPEND, list),
    "answer": Channel(Reducer.REPLACE, lambda: None),
    "error": Channel(Reducer.REPLACE, lambda: None),
    "current_step": Channel(Reducer.REPLACE, lambda: "idle"),
}


class Calls:
    def __init__(self):
        self.seen: List[str] = []


def _graph(calls: Calls, *, fail_in_b: bool = False, suspend_unless_answer: bool = False) -> GraphSpec:
    def a(state: Dict[str, Any], ctx: StepContext) -> Dict[str, Any]:
        calls.seen.append("a")
        return {"count": state["count"] + 1, "log": ["a"]}

    def ask(state: Dict[str, Any], ctx: StepContext) -> Dict[str, Any]:
        calls.seen.append("ask")
        value = ctx.interrupt({"question": "continue?", "count": state["count"]})
        return {"answer": value, "log": ["ask"]}

    def b(state: Dict[str, Any], ctx: StepContext) -> Dict[str, Any]:
        calls.seen.append("b")
        if fail_in_b:
            raise StepFailed("boom")
        return {"log": ["b"]}

    def route(state: Dict[str, Any]) -> str:
        if suspend_unless_answer and state.get("answer") != "yes":
            return SUSPEND
        return "b"

    return GraphSpec(
        graph_id="test",
        entry_node="a",
        nodes={"a": a, "ask": ask, "b": b},
        edges={"a": "ask", "b": END},
        routers={"ask": route},
    )


def _runtime(calls: Calls, **kw: Any) -> GraphRuntime:
    return GraphRuntime(graph=_graph(calls, **kw), checkpoint_store=InMemoryCheckpointStore(), channels=CHANNELS)


def test_interrupt_then_resume_completes() -> None:
    calls = Calls()
    rt = _runtime(calls)

    first = rt.invoke("t1", input={"count": 10})
    assert first.status == ExecutionStatus.INTERRUPTED
    assert first.interrupt == {"question": "continue?", "count": 11}

    snap = rt.get_state("t1")
    assert snap is not None
    assert snap.next == "ask"
    assert snap.interrupt == {"question": "continue?", "count": 11}

    second = rt.invoke("t1", resume="yes")
    assert second.status == ExecutionStatus.COMPLETED
    assert second.state["answer"] == "yes"
    assert second.state["log"] == ["a", "ask", "b"]

    final = rt.get_state("t1")
    assert final.next is None
    assert final.interrupt is None

    # The interrupted node is replayed from its beginning on resume.
    assert calls.seen == ["a", "ask", "ask", "b"]


def test_stream_yields_events_in_order() -> None:
    rt = _runtime(Calls())
    kinds = [(e.kind, e.node) for e in rt.stream("t1", input={})]
    assert kinds == [
        (EventKind.NODE_START, "a"),
        (EventKind.NODE_END, "a"),
        (EventKind.NODE_START, "ask"),
        (EventKind.INTERRUPT, "ask"),
    ]

    kinds = [(e.kind, e.node) for e in rt.stream("t1", resume="ok")]
    assert kinds == [
        (EventKind.NODE_START, "ask"),
        (EventKind.NODE_END, "ask"),
        (EventKind.NODE_START, "b"),
        (EventKind.NODE_END, "b"),
        (EventKind.END, None),
    ]


def test_history_links_checkpoints_to_parents() -> None:
    rt = _runtime(Calls())
    rt.invoke("t1", input={})
    rt.invoke("t1", resume="yes")

    history = rt.get_state_history("t1")
    assert [h.metadata.get("source") for h in history] == ["loop", "loop", "loop", "input"]
    for newer, older in zip(history, history[1:]):
        assert newer.parent_checkpoint_id == older.checkpoint_id
    assert history[-1].parent_checkpoint_id is None

    page = rt.get_state_history("t1", limit=1, before=history[1].checkpoint_id)
    assert [p.checkpoint_id for p in page] == [history[2].checkpoint_id]


def test_continue_after_abandoned_stream_replays_unfinished_node() -> None:
    calls = Calls()
    rt = _runtime(calls)

    events = rt.stream("t1", input={"count": 0})
    assert next(events).kind == EventKind.NODE_START
    assert next(events).kind == EventKind.NODE_END
    # Consumer dies before the node's checkpoint is committed.
    events.close()

    assert rt.get_state("t1").next == "a"

    result = rt.invoke("t1")
    assert result.status == ExecutionStatus.INTERRUPTED
    assert result.state["count"] == 1
    assert calls.seen == ["a", "a", "ask"]


def test_recorded_resume_value_is_replayed_after_crash() -> None:
    calls = Calls()
    rt = _runtime(calls)
    rt.invoke("t1", input={})

    events = rt.stream("t1", resume="yes")
    next(events)
    events.close()

    # A later resume with another value replays the accepted one.
    result = rt.invoke("t1", resume="no")
    assert result.status == ExecutionStatus.COMPLETED
    assert result.state["answer"] == "yes"


def test_concurrent_resume_loses_with_conflict() -> None:
    rt = _runtime(Calls())
    rt.invoke("t1", input={})

    winner = rt.stream("t1", resume="first")
    loser = rt.stream("t1", resume="second")

    list(winner)
    with pytest.raises(CheckpointConflictError):
        list(loser)

    assert rt.get_state("t1").values["answer"] == "first"


def test_router_suspend_keeps_node_pending() -> None:
    calls = Calls()
    rt = _runtime(calls, suspend_unless_answer=True)
    rt.invoke("t1", input={})

    result = rt.invoke("t1", resume="maybe")
    assert result.status == ExecutionStatus.SUSPENDED
    snap = rt.get_state("t1")
    assert snap.next == "ask"
    assert snap.values["answer"] == "maybe"
    assert snap.metadata["source"] == "suspend"

    # A fresh checkpoint has no recorded resume: the node blocks again.
    again = rt.invoke("t1")
    assert again.status == ExecutionStatus.INTERRUPTED

    done = rt.invoke("t1", resume="yes")
    assert done.status == ExecutionStatus.COMPLETED


def test_step_failure_is_captured_into_state() -> None:
    rt = _runtime(Calls(), fail_in_b=True)
    rt.invoke("t1", input={})

    events = list(rt.stream("t1", resume="yes"))
    assert events[-1].kind == EventKind.ERROR
    assert events[-1].data == {"error": "b failed: boom"}

    snap = rt.get_state("t1")
    assert snap.values["error"] == "b failed: boom"
    assert snap.values["current_step"] == "error"
    assert snap.next is None
    assert snap.metadata["source"] == "error"

    with pytest.raises(NotResumableError):
        rt.stream("t1", resume="yes")


def test_invalid_invocations_raise_before_running() -> None:
    calls = Calls()
    rt = _runtime(calls)

    with pytest.raises(NotResumableError):
        rt.stream("unknown", resume="x")
    with pytest.raises(NotResumableError):
        rt.stream("unknown")
    with pytest.raises(ValidationError):
        rt.stream("t1", input={}, resume="x")
    with pytest.raises(ValidationError):
        rt.stream("", input={})

    assert calls.seen == []
    assert rt.get_state("t1") is None


def test_resume_is_rejected_when_no_node_is_waiting_for_input() -> None:
    calls = Calls()
    rt = _runtime(calls)

    events = rt.stream("t1", input={})
    assert next(events).node == "a"
    events.close()

    pending = rt.get_state("t1")
    assert pending.next == "a"
    assert pending.interrupt is None

    with pytest.raises(NotResumableError):
        rt.stream("t1", resume="yes")

    # Nothing was recorded: the checkpoint carries no writes and continuing still blocks at "ask".
    assert rt.checkpoint_store.get("t1", "", pending.checkpoint_id).pending_writes == []
    result = rt.invoke("t1")
    assert result.status == ExecutionStatus.INTERRUPTED
    assert result.state["answer"] is None

    assert rt.invoke("t1", resume="yes").state["answer"] == "yes"


def test_new_input_restarts_from_entry_on_existing_thread() -> None:
    calls = Calls()
    rt = _runtime(calls)
    rt.invoke("t1", input={"count": 1})
    rt.invoke("t1", resume="yes")

    result = rt.invoke("t1", input={"count": 100})
    assert result.status == ExecutionStatus.INTERRUPTED
    assert result.state["count"] == 101
    assert result.state["log"] == ["a", "ask", "b", "a"]


def test_graph_spec_validates_its_table() -> None:
    noop = lambda state, ctx: {}  # noqa: E731
    with pytest.raises(ValueError):
        GraphSpec(graph_id="g", entry_node="missing", nodes={"a": noop})
    with pytest.raises(ValueError):
        GraphSpec(graph_id="g", entry_node="a", nodes={"a": noop}, edges={"a": "nowhere"})
    with pytest.raises(ValueError):
        GraphSpec(graph_id="g", entry_node="a", nodes={"a": noop}, edges={"a": END}, routers={"a": lambda s: END})

    spec = GraphSpec(graph_id="g", entry_node="a", nodes={"a": noop})
    assert spec.next_node("a", {}) == END
    with pytest.raises(KeyError):
        spec.get_node("b")
