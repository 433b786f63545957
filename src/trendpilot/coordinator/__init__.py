"""Orchestration: triggers, deferred task bodies and progress events."""

from .coordinator import (
    TASK_IDEAS_COORDINATOR,
    TASK_IDEAS_FOR_PLATFORM,
    TASK_RESUME_AFTER_APPROVAL,
    TASK_RUN_RESEARCH,
    Coordinator,
)
from .events import EventChannel, Subscription

__all__ = [
    "Coordinator",
    "EventChannel",
    "Subscription",
    "TASK_RUN_RESEARCH",
    "TASK_RESUME_AFTER_APPROVAL",
    "TASK_IDEAS_COORDINATOR",
    "TASK_IDEAS_FOR_PLATFORM",
]
