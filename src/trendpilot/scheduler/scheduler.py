"""trendpilot.scheduler.scheduler

Deferred-task schedulers.

Triggers never run pipeline work themselves: they validate, then hand a task
name plus keyword arguments to a `TaskScheduler` and return immediately.

- `InlineScheduler` runs tasks in the caller's thread, FIFO. Tasks scheduled
  from inside a running task are queued and run after it (no recursion), so a
  whole chain (research -> resume -> fan-out) drains deterministically.
- `ThreadedScheduler` runs tasks on worker threads; delays use timers.
"""

from __future__ import annotations

import queue
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, Tuple

from .registry import TaskFn, TaskRegistry
from ..logging import get_logger

logger = get_logger(__name__)

_STOP = object()


class TaskScheduler(Protocol):
    def register(self, name: str, fn: TaskFn) -> None: ...

    def run_after(self, delay_s: float, task_name: str, **kwargs: Any) -> str:
        """Schedule *task_name* with *kwargs*; returns a task id."""


@dataclass
class SchedulerStats:
    """Counters for observability and tests."""

    tasks_scheduled: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class _Task:
    task_id: str
    name: str
    kwargs: Dict[str, Any]


class InlineScheduler:
    """Runs tasks synchronously in the caller's thread.

    Delays are not slept: tasks run in scheduling order as soon as the current
    task returns. Exceptions escaping a task body propagate to the caller that
    started the drain (after being counted).
    """

    def __init__(self, registry: Optional[TaskRegistry] = None):
        self._registry = registry or TaskRegistry()
        self._queue: Deque[_Task] = deque()
        self._draining = False
        self._lock = threading.Lock()
        self._stats = SchedulerStats()
        self.results: List[Tuple[str, Any]] = []

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    @property
    def stats(self) -> SchedulerStats:
        return self._stats

    def register(self, name: str, fn: TaskFn) -> None:
        self._registry.register(name, fn)

    def run_after(self, delay_s: float, task_name: str, **kwargs: Any) -> str:
        self._registry.get(task_name)
        task = _Task(task_id=uuid.uuid4().hex, name=task_name, kwargs=dict(kwargs))
        with self._lock:
            self._queue.append(task)
            self._stats.tasks_scheduled += 1
            if self._draining:
                return task.task_id
            self._draining = True
        try:
            self._drain()
        finally:
            with self._lock:
                self._draining = False
        return task.task_id

    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._queue:
                    return
                task = self._queue.popleft()
            fn = self._registry.get(task.name)
            try:
                result = fn(**task.kwargs)
            except Exception as e:
                self._stats.tasks_failed += 1
                self._stats.errors.append(f"{task.name}: {e}")
                logger.error("task_failed", task=task.name, task_id=task.task_id, error=str(e))
                with self._lock:
                    self._queue.clear()
                raise
            self._stats.tasks_completed += 1
            self.results.append((task.name, result))


class ThreadedScheduler:
    """Runs tasks on a pool of worker threads.

    Example:
        scheduler = ThreadedScheduler(workers=3)
        coordinator = Coordinator(stores=..., llm=..., search=..., scheduler=scheduler)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        registry: Optional[TaskRegistry] = None,
        *,
        workers: int = 4,
        on_task_failed: Optional[Callable[[str, Exception], None]] = None,
    ):
        self._registry = registry or TaskRegistry()
        self._workers = max(1, int(workers))
        self._on_task_failed = on_task_failed
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._threads: List[threading.Thread] = []
        self._timers: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()
        self._stats = SchedulerStats()
        self._running = False
        self._pending = 0
        self._idle = threading.Condition(self._lock)

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    @property
    def stats(self) -> SchedulerStats:
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._running

    def register(self, name: str, fn: TaskFn) -> None:
        self._registry.register(name, fn)

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            for i in range(self._workers):
                t = threading.Thread(target=self._worker, name=f"trendpilot-task-{i}", daemon=True)
                t.start()
                self._threads.append(t)
        logger.info("scheduler_started", workers=self._workers)

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            timers = list(self._timers.values())
            self._timers.clear()
            self._pending -= len(timers)
            self._idle.notify_all()
            threads = list(self._threads)
            self._threads.clear()
        for timer in timers:
            timer.cancel()
        for _ in threads:
            self._queue.put(_STOP)
        for t in threads:
            t.join(timeout=timeout)
        logger.info("scheduler_stopped")

    def run_after(self, delay_s: float, task_name: str, **kwargs: Any) -> str:
        self._registry.get(task_name)
        task = _Task(task_id=uuid.uuid4().hex, name=task_name, kwargs=dict(kwargs))
        with self._lock:
            self._stats.tasks_scheduled += 1
            self._pending += 1
            if delay_s and delay_s > 0:
                timer = threading.Timer(float(delay_s), self._enqueue_delayed, args=(task,))
                timer.daemon = True
                self._timers[task.task_id] = timer
                timer.start()
                return task.task_id
        self._queue.put(task)
        return task.task_id

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every scheduled task has finished; False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def _enqueue_delayed(self, task: _Task) -> None:
        with self._lock:
            self._timers.pop(task.task_id, None)
        self._queue.put(task)

    def _worker(self) -> None:
        while True:
            task = self._queue.get()
            if task is _STOP:
                return
            try:
                self._registry.get(task.name)(**task.kwargs)
            except Exception as e:
                with self._lock:
                    self._stats.tasks_failed += 1
                    self._stats.errors.append(f"{task.name}: {e}")
                logger.error("task_failed", task=task.name, task_id=task.task_id, error=str(e))
                if self._on_task_failed is not None:
                    self._on_task_failed(task.name, e)
            else:
                with self._lock:
                    self._stats.tasks_completed += 1
            finally:
                with self._idle:
                    self._pending -= 1
                    self._idle.notify_all()
