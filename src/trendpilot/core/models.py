"""trendpilot.core.models

Persisted records and wire values.

Workflow state itself is a JSON-safe dict (see `core.state`); the dataclasses
here describe the rows owned by the Coordinator (threads, trends, ideas,
messages, stream events) and the HITL wire payloads.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import InvalidDecisionError


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ThreadStatus(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    SEARCHING = "searching"
    SYNTHESIZING = "synthesizing"
    AWAITING_APPROVAL = "awaiting_approval"
    GENERATING_IDEAS = "generating_ideas"
    COMPLETED = "completed"
    ERROR = "error"


class HitlStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REFINE = "refine"
    RESTART = "restart"


class ResumeAction(str, Enum):
    APPROVED = "approved"
    REFINE = "refine"
    RESTART = "restart"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageType(str, Enum):
    USER_INPUT = "user_input"
    STATUS_UPDATE = "status_update"
    RESEARCH_RESULT = "research_result"
    ERROR = "error"


class StreamType(str, Enum):
    RESEARCH = "research"
    IDEAS = "ideas"


class StreamEventType(str, Enum):
    NODE_START = "node_start"
    NODE_END = "node_end"
    TOKEN = "token"
    PLAN = "plan"
    SEARCH_RESULTS = "search_results"
    TREND = "trend"
    IDEA = "idea"
    COMPLETE = "complete"
    ERROR = "error"


APPROVAL_OPTIONS: List[str] = [a.value for a in ResumeAction]


@dataclass
class Thread:
    thread_id: str
    title: str
    user_prompt: str
    status: ThreadStatus = ThreadStatus.IDLE
    refinement_feedback: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def new(cls, user_prompt: str) -> "Thread":
        prompt = str(user_prompt or "")
        title = prompt[:60] + ("..." if len(prompt) > 60 else "")
        return cls(thread_id=uuid.uuid4().hex, title=title, user_prompt=prompt)

    def to_json(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Thread":
        return cls(
            thread_id=str(data["thread_id"]),
            title=str(data.get("title") or ""),
            user_prompt=str(data.get("user_prompt") or ""),
            status=ThreadStatus(str(data.get("status") or ThreadStatus.IDLE.value)),
            refinement_feedback=data.get("refinement_feedback"),
            created_at=str(data.get("created_at") or ""),
            updated_at=str(data.get("updated_at") or ""),
        )


@dataclass(frozen=True)
class ResumeDecision:
    """A human decision that unblocks the approval step.

    Wire form: `{"action": "approved" | "refine" | "restart", "feedback"?: str}`.
    """

    action: ResumeAction
    feedback: Optional[str] = None

    @classmethod
    def from_wire(cls, data: Any) -> "ResumeDecision":
        if not isinstance(data, dict):
            raise InvalidDecisionError("Resume decision must be an object")
        raw_action = data.get("action")
        try:
            action = ResumeAction(str(raw_action))
        except ValueError:
            raise InvalidDecisionError(f"Unknown HITL action: {raw_action}") from None
        feedback = data.get("feedback")
        if feedback is not None and not isinstance(feedback, str):
            raise InvalidDecisionError("Resume decision feedback must be a string")
        return cls(action=action, feedback=feedback)

    def to_wire(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"action": self.action.value}
        if self.feedback is not None:
            out["feedback"] = self.feedback
        return out


def trend_to_wire(trend: Dict[str, Any]) -> Dict[str, Any]:
    """Project a state trend onto the interrupt-payload shape."""
    sources = trend.get("sources") or []
    return {
        "title": str(trend.get("title") or ""),
        "summary": str(trend.get("summary") or ""),
        "whyItMatters": str(trend.get("why_it_matters") or ""),
        "confidence": str(trend.get("confidence") or Confidence.MEDIUM.value),
        "sources": [
            {"url": str(s.get("url") or ""), "title": str(s.get("title") or "")}
            for s in sources
            if isinstance(s, dict)
        ],
    }


@dataclass
class TrendRecord:
    trend_id: str
    thread_id: str
    order: int
    title: str
    summary: str
    why_it_matters: str
    confidence: str
    sources: List[Dict[str, Any]] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_state(cls, *, thread_id: str, order: int, trend: Dict[str, Any]) -> "TrendRecord":
        return cls(
            trend_id=uuid.uuid4().hex,
            thread_id=thread_id,
            order=int(order),
            title=str(trend.get("title") or ""),
            summary=str(trend.get("summary") or ""),
            why_it_matters=str(trend.get("why_it_matters") or ""),
            confidence=str(trend.get("confidence") or Confidence.MEDIUM.value),
            sources=[dict(s) for s in (trend.get("sources") or []) if isinstance(s, dict)],
        )

    def to_state(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "summary": self.summary,
            "why_it_matters": self.why_it_matters,
            "confidence": self.confidence,
            "sources": [dict(s) for s in self.sources],
        }

    def to_json(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class IdeaRecord:
    idea_id: str
    thread_id: str
    trend_ids: List[str]
    platform: str
    hook: str
    format: str
    angle: str
    description: str
    created_at: str = field(default_factory=utc_now_iso)

    def to_json(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MessageRecord:
    thread_id: str
    role: MessageRole
    content: str
    message_type: MessageType
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now_iso)

    def to_json(self) -> Dict[str, Any]:
        data = asdict(self)
        data["role"] = self.role.value
        data["message_type"] = self.message_type.value
        return data


@dataclass
class StreamEvent:
    """A progress event; `sequence` is assigned by the EventStore (-1 until stored)."""

    thread_id: str
    stream_type: StreamType
    event_type: StreamEventType
    node: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    sequence: int = -1
    created_at: str = field(default_factory=utc_now_iso)

    def to_json(self) -> Dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "stream_type": self.stream_type.value,
            "event_type": self.event_type.value,
            "node": self.node,
            "data": dict(self.data or {}),
            "sequence": int(self.sequence),
            "created_at": self.created_at,
        }

    def to_sse(self) -> str:
        body = {"type": self.event_type.value, "node": self.node, "sequence": self.sequence, **(self.data or {})}
        return f"data: {json.dumps(body, ensure_ascii=False)}\n\n"
