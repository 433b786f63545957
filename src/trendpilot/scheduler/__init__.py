"""Deferred-task scheduling."""

from .registry import TaskRegistry
from .scheduler import InlineScheduler, SchedulerStats, TaskScheduler, ThreadedScheduler

__all__ = [
    "TaskRegistry",
    "TaskScheduler",
    "InlineScheduler",
    "ThreadedScheduler",
    "SchedulerStats",
]
