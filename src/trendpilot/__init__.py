"""
trendpilot

Resumable trend-research and content-ideation pipeline
(plan → search → synthesize → human approval → ideas).

This package provides:
- a checkpoint-backed step-function engine with interrupt / resume
- durable stores (in-memory and SQLite) for checkpoints and domain records
- a coordinator that drives the pipeline from deferred tasks and streams
  ordered progress events
"""

from .core.config import PipelineConfig
from .core.errors import (
    CheckpointConflictError,
    GraphInterrupt,
    InvalidDecisionError,
    InvalidStatusError,
    LLMResponseError,
    NotResumableError,
    StepFailed,
    ThreadNotFoundError,
    TrendpilotError,
    ValidationError,
)
from .core.models import (
    IdeaRecord,
    MessageRecord,
    ResumeAction,
    ResumeDecision,
    StreamEvent,
    StreamEventType,
    StreamType,
    Thread,
    ThreadStatus,
    TrendRecord,
)
from .core.runtime import EventKind, ExecutionResult, ExecutionStatus, GraphEvent, GraphRuntime, StateSnapshot, StepContext
from .core.spec import END, SUSPEND, GraphSpec
from .coordinator import Coordinator, EventChannel
from .pipeline import build_research_graph
from .scheduler import InlineScheduler, SchedulerStats, TaskRegistry, ThreadedScheduler
from .storage import Stores

__all__ = [
    # Config + errors
    "PipelineConfig",
    "TrendpilotError",
    "ValidationError",
    "ThreadNotFoundError",
    "InvalidStatusError",
    "InvalidDecisionError",
    "NotResumableError",
    "CheckpointConflictError",
    "StepFailed",
    "LLMResponseError",
    "GraphInterrupt",
    # Records
    "Thread",
    "ThreadStatus",
    "TrendRecord",
    "IdeaRecord",
    "MessageRecord",
    "ResumeAction",
    "ResumeDecision",
    "StreamEvent",
    "StreamEventType",
    "StreamType",
    # Engine
    "GraphSpec",
    "GraphRuntime",
    "StepContext",
    "StateSnapshot",
    "GraphEvent",
    "EventKind",
    "ExecutionResult",
    "ExecutionStatus",
    "END",
    "SUSPEND",
    # Pipeline + orchestration
    "build_research_graph",
    "Coordinator",
    "EventChannel",
    "TaskRegistry",
    "InlineScheduler",
    "ThreadedScheduler",
    "SchedulerStats",
    # Storage
    "Stores",
]
