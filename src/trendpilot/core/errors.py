"""trendpilot.core.errors

Exception hierarchy.

Validation errors are raised synchronously to callers before any state is
mutated. Step failures never cross the engine boundary; they are captured into
the workflow state instead (see `core.runtime`).
"""

from __future__ import annotations

from typing import Any, Optional


class TrendpilotError(Exception):
    """Base class for all trendpilot errors."""


class ValidationError(TrendpilotError):
    """Malformed input or a request that is not valid for the current state."""


class ThreadNotFoundError(ValidationError, KeyError):
    def __init__(self, thread_id: str):
        super().__init__(f"Thread not found: {thread_id}")
        self.thread_id = thread_id

    def __str__(self) -> str:
        return str(self.args[0])


class InvalidStatusError(ValidationError):
    def __init__(self, operation: str, status: Any):
        status_value = getattr(status, "value", status)
        super().__init__(f"Cannot {operation} thread in status: {status_value}")
        self.operation = operation
        self.status = status


class InvalidDecisionError(ValidationError):
    """Resume decision outside the closed set of actions."""


class NotResumableError(ValidationError):
    """The latest checkpoint has nothing to resume."""


class CheckpointValidationError(ValidationError):
    """Write to the checkpoint store with a missing/empty key."""


class CheckpointConflictError(TrendpilotError):
    """Another writer advanced the checkpoint lineage first (optimistic check failed)."""

    def __init__(self, *, thread_id: str, expected: Optional[str], actual: Optional[str]):
        super().__init__(
            f"Checkpoint conflict on thread '{thread_id}': expected latest '{expected}', found '{actual}'"
        )
        self.thread_id = thread_id
        self.expected = expected
        self.actual = actual


class StepFailed(TrendpilotError):
    """Raised by a node when its preconditions are not met."""


class LLMResponseError(TrendpilotError):
    """The LLM answered, but not with the structured output that was asked for."""


class GraphInterrupt(Exception):
    """Control-flow signal raised by the interrupt primitive.

    Not a TrendpilotError: it must never be reported to callers as a failure.
    """

    def __init__(self, value: Any):
        super().__init__("graph interrupted")
        self.value = value
