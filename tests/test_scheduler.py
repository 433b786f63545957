from __future__ import annotations

import threading
from typing import Any, List

import pytest

from trendpilot.scheduler import InlineScheduler, TaskRegistry, ThreadedScheduler


@pytest.mark.basic
def test_registry_lookup() -> None:
    registry = TaskRegistry()
    registry.register("a", lambda: 1)

    assert "a" in registry
    assert registry.names() == ["a"]
    assert registry.get("a")() == 1
    with pytest.raises(KeyError):
        registry.get("b")
    with pytest.raises(ValueError):
        registry.register(" ", lambda: None)


@pytest.mark.basic
def test_inline_scheduler_queues_nested_tasks_fifo() -> None:
    scheduler = InlineScheduler()
    order: List[str] = []

    def parent(*, n: int) -> str:
        order.append(f"parent:{n}")
        scheduler.run_after(0, "child", label="x")
        scheduler.run_after(5, "child", label="y")
        order.append("parent:end")
        return "p"

    def child(*, label: str) -> str:
        order.append(f"child:{label}")
        return label

    scheduler.register("parent", parent)
    scheduler.register("child", child)

    scheduler.run_after(0, "parent", n=1)

    assert order == ["parent:1", "parent:end", "child:x", "child:y"]
    assert scheduler.results == [("parent", "p"), ("child", "x"), ("child", "y")]
    assert scheduler.stats.tasks_scheduled == 3
    assert scheduler.stats.tasks_completed == 3


@pytest.mark.basic
def test_inline_scheduler_propagates_task_errors() -> None:
    scheduler = InlineScheduler()
    ran: List[str] = []

    def failing() -> None:
        scheduler.run_after(0, "later")
        raise RuntimeError("nope")

    scheduler.register("failing", failing)
    scheduler.register("later", lambda: ran.append("later"))

    with pytest.raises(RuntimeError, match="nope"):
        scheduler.run_after(0, "failing")

    assert ran == []
    assert scheduler.stats.tasks_failed == 1
    assert scheduler.stats.errors == ["failing: nope"]

    # The scheduler is usable again afterwards.
    scheduler.run_after(0, "later")
    assert ran == ["later"]


@pytest.mark.basic
def test_unknown_task_is_rejected_at_schedule_time() -> None:
    with pytest.raises(KeyError):
        InlineScheduler().run_after(0, "missing")


def test_threaded_scheduler_runs_tasks_and_reports_failures() -> None:
    failures: List[Any] = []
    scheduler = ThreadedScheduler(workers=3, on_task_failed=lambda name, e: failures.append((name, str(e))))
    done = []
    lock = threading.Lock()

    def work(*, i: int) -> None:
        with lock:
            done.append(i)

    def bad() -> None:
        raise ValueError("bad input")

    scheduler.register("work", work)
    scheduler.register("bad", bad)
    scheduler.start()
    try:
        assert scheduler.is_running
        for i in range(10):
            scheduler.run_after(0, "work", i=i)
        scheduler.run_after(0.05, "work", i=10)
        scheduler.run_after(0, "bad")
        assert scheduler.wait_idle(timeout=5)
    finally:
        scheduler.stop()

    assert sorted(done) == list(range(11))
    assert failures == [("bad", "bad input")]
    assert scheduler.stats.tasks_completed == 11
    assert scheduler.stats.tasks_failed == 1
    assert not scheduler.is_running


def test_threaded_scheduler_stop_cancels_pending_timers() -> None:
    scheduler = ThreadedScheduler(workers=1)
    ran: List[int] = []
    scheduler.register("late", lambda: ran.append(1))
    scheduler.start()

    scheduler.run_after(60, "late")
    scheduler.stop()

    assert scheduler.wait_idle(timeout=1)
    assert ran == []
