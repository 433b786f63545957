"""trendpilot.scheduler.registry

Name -> callable registry for deferred tasks.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List

TaskFn = Callable[..., Any]


class TaskRegistry:
    """Thread-safe registry of task bodies addressable by name."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tasks: Dict[str, TaskFn] = {}

    def register(self, name: str, fn: TaskFn) -> None:
        key = str(name or "").strip()
        if not key:
            raise ValueError("Task name must be non-empty")
        with self._lock:
            self._tasks[key] = fn

    def get(self, name: str) -> TaskFn:
        with self._lock:
            fn = self._tasks.get(name)
        if fn is None:
            raise KeyError(f"Unknown task '{name}'")
        return fn

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._tasks)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._tasks
