from __future__ import annotations

import queue
import threading

import pytest

from trendpilot.coordinator import EventChannel
from trendpilot.core.models import StreamEventType, StreamType
from trendpilot.storage import Stores


@pytest.mark.basic
def test_sequences_are_per_thread_and_stream(stores: Stores) -> None:
    channel = EventChannel(stores.events)

    a0 = channel.emit("t1", StreamType.RESEARCH, StreamEventType.NODE_START, node="plan")
    a1 = channel.emit("t1", StreamType.RESEARCH, StreamEventType.NODE_END, node="plan")
    b0 = channel.emit("t1", StreamType.IDEAS, StreamEventType.TOKEN, data={"message": "x"})
    c0 = channel.emit("t2", StreamType.RESEARCH, StreamEventType.NODE_START, node="plan")

    assert (a0.sequence, a1.sequence, b0.sequence, c0.sequence) == (0, 1, 0, 0)
    assert stores.events.latest_sequence("t1", StreamType.RESEARCH) == 1
    assert stores.events.latest_sequence("t3", StreamType.RESEARCH) == -1

    assert [e.sequence for e in channel.history("t1", StreamType.RESEARCH, after=0)] == [1]
    assert channel.history("t1", StreamType.IDEAS)[0].data == {"message": "x"}


@pytest.mark.basic
def test_clear_restarts_sequence(stores: Stores) -> None:
    channel = EventChannel(stores.events)
    channel.emit("t1", StreamType.RESEARCH, StreamEventType.NODE_START)
    channel.emit("t1", StreamType.RESEARCH, StreamEventType.NODE_END)
    channel.emit("t1", StreamType.IDEAS, StreamEventType.TOKEN)

    channel.clear("t1", StreamType.RESEARCH)

    assert channel.history("t1", StreamType.RESEARCH) == []
    assert len(channel.history("t1", StreamType.IDEAS)) == 1
    assert channel.emit("t1", StreamType.RESEARCH, StreamEventType.PLAN).sequence == 0


@pytest.mark.basic
def test_subscribers_receive_events_in_emission_order() -> None:
    channel = EventChannel(Stores.in_memory().events)
    everything = channel.subscribe()
    only_t1 = channel.subscribe("t1")

    def emit_many(thread_id: str) -> None:
        for _ in range(50):
            channel.emit(thread_id, StreamType.RESEARCH, StreamEventType.TOKEN)

    workers = [threading.Thread(target=emit_many, args=(tid,)) for tid in ("t1", "t2", "t1")]
    for w in workers:
        w.start()
    for w in workers:
        w.join()

    t1_events = only_t1.drain()
    assert [e.sequence for e in t1_events] == list(range(100))
    assert {e.thread_id for e in t1_events} == {"t1"}
    assert len(everything.drain()) == 150

    everything.close()
    channel.emit("t1", StreamType.RESEARCH, StreamEventType.TOKEN)
    assert everything.drain() == []
    assert only_t1.get(timeout=1).sequence == 100
    with pytest.raises(queue.Empty):
        only_t1.get(timeout=0.01)


@pytest.mark.basic
def test_sse_rendering() -> None:
    event = EventChannel(Stores.in_memory().events).emit(
        "t1", StreamType.RESEARCH, StreamEventType.PLAN, node="plan", data={"keywords": ["a"], "timeframe": "past_week"}
    )
    assert event.to_sse() == (
        'data: {"type": "plan", "node": "plan", "sequence": 0, "keywords": ["a"], "timeframe": "past_week"}\n\n'
    )
