"""trendpilot.coordinator.coordinator

Orchestration coordinator.

Triggers (`create_thread`, `start_research`, `approve`, `refine`, `restart`,
`start_ideas_generation`, `regenerate_ideas`) validate synchronously, schedule
a deferred task and return immediately.

Task bodies (`run_research`, `resume_after_approval`,
`generate_ideas_coordinator`, `generate_ideas_for_platform`) drive the engine
and translate its events into durable side effects: thread status, trend and
idea rows, messages and stream events. They never raise; they return
`{"success": bool, ...}`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from .events import EventChannel, node_start_message
from ..core.config import PipelineConfig
from ..core.errors import (
    InvalidStatusError,
    NotResumableError,
    StepFailed,
    ThreadNotFoundError,
    ValidationError,
)
from ..core.models import (
    IdeaRecord,
    MessageRecord,
    MessageRole,
    MessageType,
    ResumeAction,
    ResumeDecision,
    StreamEventType,
    StreamType,
    Thread,
    ThreadStatus,
    TrendRecord,
)
from ..core.runtime import EventKind, ExecutionStatus, GraphEvent, GraphRuntime, StateSnapshot
from ..core.state import DEFAULT_BRAND_CONTEXT
from ..integrations.llm_client import LLMClient
from ..integrations.search_client import SearchClient
from ..logging import get_logger
from ..pipeline import nodes as pipeline_nodes
from ..pipeline.ideas import generate_ideas_for_platform as platform_idea_stream
from ..scheduler.scheduler import TaskScheduler
from ..storage import Stores
from ..storage.base import MISSING

logger = get_logger(__name__)

TASK_RUN_RESEARCH = "run_research"
TASK_RESUME_AFTER_APPROVAL = "resume_after_approval"
TASK_IDEAS_COORDINATOR = "generate_ideas_coordinator"
TASK_IDEAS_FOR_PLATFORM = "generate_ideas_for_platform"

NODE_STATUS: Dict[str, ThreadStatus] = {
    pipeline_nodes.PLAN: ThreadStatus.PLANNING,
    pipeline_nodes.SEARCH: ThreadStatus.SEARCHING,
    pipeline_nodes.SYNTHESIZE: ThreadStatus.SYNTHESIZING,
    pipeline_nodes.AWAIT_APPROVAL: ThreadStatus.AWAITING_APPROVAL,
    pipeline_nodes.GENERATE_IDEAS: ThreadStatus.GENERATING_IDEAS,
}

IDEAS_ALLOWED_STATUSES = (
    ThreadStatus.GENERATING_IDEAS,
    ThreadStatus.AWAITING_APPROVAL,
    ThreadStatus.COMPLETED,
)


@dataclass
class _DriveOutcome:
    status: ExecutionStatus = ExecutionStatus.COMPLETED
    interrupt: Any = None
    error: Optional[str] = None
    trends: int = 0
    ideas: int = 0
    last_status: Optional[ThreadStatus] = None


class Coordinator:
    def __init__(
        self,
        *,
        stores: Stores,
        llm: LLMClient,
        search: SearchClient,
        scheduler: TaskScheduler,
        config: Optional[PipelineConfig] = None,
        events: Optional[EventChannel] = None,
    ):
        self._stores = stores
        self._llm = llm
        self._config = config or PipelineConfig()
        self._scheduler = scheduler
        self._events = events or EventChannel(stores.events)
        self._runtime = GraphRuntime(
            graph=pipeline_nodes.build_research_graph(llm=llm, search=search, config=self._config),
            checkpoint_store=stores.checkpoints,
        )

        scheduler.register(TASK_RUN_RESEARCH, self.run_research)
        scheduler.register(TASK_RESUME_AFTER_APPROVAL, self.resume_after_approval)
        scheduler.register(TASK_IDEAS_COORDINATOR, self.generate_ideas_coordinator)
        scheduler.register(TASK_IDEAS_FOR_PLATFORM, self.generate_ideas_for_platform)

    @property
    def runtime(self) -> GraphRuntime:
        return self._runtime

    @property
    def events(self) -> EventChannel:
        return self._events

    @property
    def stores(self) -> Stores:
        return self._stores

    @property
    def config(self) -> PipelineConfig:
        return self._config

    # ---------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------

    def get_thread(self, thread_id: str) -> Thread:
        thread = self._stores.threads.get(thread_id)
        if thread is None:
            raise ThreadNotFoundError(thread_id)
        return thread

    def list_threads(self, *, limit: int = 20) -> List[Thread]:
        return self._stores.threads.list(limit=limit)

    def list_trends(self, thread_id: str) -> List[TrendRecord]:
        return self._stores.trends.list_by_thread(thread_id)

    def list_ideas(self, thread_id: str, *, platform: Optional[str] = None) -> List[IdeaRecord]:
        return self._stores.ideas.list_by_thread(thread_id, platform=platform)

    def list_messages(self, thread_id: str) -> List[MessageRecord]:
        return self._stores.messages.list_by_thread(thread_id)

    def get_state(self, thread_id: str) -> Optional[StateSnapshot]:
        return self._runtime.get_state(thread_id, checkpoint_ns=self._config.checkpoint_ns)

    def get_history(self, thread_id: str, *, limit: Optional[int] = None) -> List[StateSnapshot]:
        return self._runtime.get_state_history(
            thread_id,
            checkpoint_ns=self._config.checkpoint_ns,
            limit=limit if limit is not None else self._config.history_limit,
        )

    # ---------------------------------------------------------------------
    # Triggers
    # ---------------------------------------------------------------------

    def create_thread(self, user_prompt: str) -> Thread:
        prompt = str(user_prompt or "").strip()
        if not prompt:
            raise ValidationError("user_prompt is required")
        thread = self._stores.threads.create(Thread.new(prompt))
        self._message(thread.thread_id, MessageRole.USER, prompt, MessageType.USER_INPUT)
        logger.info("thread_created", thread_id=thread.thread_id)
        return thread

    def start_research(self, thread_id: str) -> Dict[str, Any]:
        self.get_thread(thread_id)
        self._scheduler.run_after(0, TASK_RUN_RESEARCH, thread_id=thread_id)
        return {"started": True, "message": "Research started"}

    def approve(self, thread_id: str) -> Dict[str, Any]:
        self._require_status(thread_id, "approve", (ThreadStatus.AWAITING_APPROVAL,))
        checkpoint_id = self._pending_checkpoint_id(thread_id)
        decision = ResumeDecision(action=ResumeAction.APPROVED)
        self._scheduler.run_after(
            0, TASK_RESUME_AFTER_APPROVAL, thread_id=thread_id, decision=decision.to_wire(), checkpoint_id=checkpoint_id
        )
        return {"started": True, "message": "Ideas generation started"}

    def refine(self, thread_id: str, feedback: str) -> Dict[str, Any]:
        if not isinstance(feedback, str):
            raise ValidationError("feedback must be a string")
        self._require_status(thread_id, "refine", (ThreadStatus.AWAITING_APPROVAL,))
        checkpoint_id = self._pending_checkpoint_id(thread_id)
        decision = ResumeDecision(action=ResumeAction.REFINE, feedback=feedback)
        self._scheduler.run_after(
            0, TASK_RESUME_AFTER_APPROVAL, thread_id=thread_id, decision=decision.to_wire(), checkpoint_id=checkpoint_id
        )
        return {"started": True, "message": "Research refinement started"}

    def restart(self, thread_id: str) -> Dict[str, Any]:
        self.get_thread(thread_id)
        snap = self.get_state(thread_id)
        decision = ResumeDecision(action=ResumeAction.RESTART)
        self._scheduler.run_after(
            0,
            TASK_RESUME_AFTER_APPROVAL,
            thread_id=thread_id,
            decision=decision.to_wire(),
            checkpoint_id=snap.checkpoint_id if snap is not None else None,
        )
        return {"started": True, "message": "Thread restart initiated"}

    def start_ideas_generation(self, thread_id: str) -> Dict[str, Any]:
        self._require_status(thread_id, "generate ideas for", IDEAS_ALLOWED_STATUSES)
        trends = self._stores.trends.list_by_thread(thread_id)
        if not trends:
            raise ValidationError("No trends found. Run research first.")
        self._scheduler.run_after(0, TASK_IDEAS_COORDINATOR, thread_id=thread_id)
        return {"started": True, "message": "Ideas generation started (parallel)", "trends_count": len(trends)}

    def regenerate_ideas(self, thread_id: str) -> Dict[str, Any]:
        self._require_status(thread_id, "regenerate ideas for", (ThreadStatus.COMPLETED,))
        self._scheduler.run_after(0, TASK_IDEAS_COORDINATOR, thread_id=thread_id)
        return {"started": True, "message": "Ideas regeneration started (parallel)"}

    def _require_status(self, thread_id: str, operation: str, allowed: tuple) -> Thread:
        thread = self.get_thread(thread_id)
        if thread.status not in allowed:
            raise InvalidStatusError(operation, thread.status)
        return thread

    def _pending_checkpoint_id(self, thread_id: str) -> str:
        snap = self.get_state(thread_id)
        if snap is None or not snap.next:
            raise NotResumableError(f"Thread '{thread_id}' has no pending node to resume")
        return snap.checkpoint_id

    # ---------------------------------------------------------------------
    # Task bodies
    # ---------------------------------------------------------------------

    def run_research(self, *, thread_id: str) -> Dict[str, Any]:
        try:
            thread = self.get_thread(thread_id)
            self._events.clear(thread_id, StreamType.RESEARCH)
            self._stores.trends.delete_by_thread(thread_id)
            self._set_status(thread_id, ThreadStatus.PLANNING)
            self._message(
                thread_id,
                MessageRole.ASSISTANT,
                "Planning research strategy...",
                MessageType.STATUS_UPDATE,
                {"step": ThreadStatus.PLANNING.value},
            )

            stream = self._runtime.stream(
                thread_id,
                input={
                    "user_prompt": thread.user_prompt,
                    "thread_id": thread_id,
                    "refinement_feedback": thread.refinement_feedback,
                },
                checkpoint_ns=self._config.checkpoint_ns,
            )
            outcome = self._drive(thread_id, stream, StreamType.RESEARCH, last_status=ThreadStatus.PLANNING)
            return self._finish_research(thread_id, outcome)
        except Exception as e:
            return self._fail(thread_id, StreamType.RESEARCH, e, label="Research")

    def resume_after_approval(
        self, *, thread_id: str, decision: Dict[str, Any], checkpoint_id: Any = MISSING
    ) -> Dict[str, Any]:
        """Apply a HITL decision to the checkpoint it was made against.

        `checkpoint_id` pins the decision to the interrupted checkpoint (or, for
        restart, to the checkpoint that was latest when restart was requested).
        A redelivered task whose checkpoint has been superseded is a no-op.
        """
        action = decision.get("action") if isinstance(decision, dict) else None
        try:
            self.get_thread(thread_id)
            parsed = ResumeDecision.from_wire(decision)

            if self._decision_applied(thread_id, parsed.action, checkpoint_id):
                logger.info("resume_skipped", thread_id=thread_id, action=parsed.action.value, checkpoint_id=checkpoint_id)
                return {
                    "success": True,
                    "action": parsed.action.value,
                    "skipped": True,
                    "message": "Decision already applied",
                }

            if parsed.action == ResumeAction.RESTART:
                self._reset_thread(thread_id)
                return {"success": True, "action": "restart", "message": "Thread reset. Ready for new research."}

            stream = self._runtime.stream(thread_id, resume=parsed.to_wire(), checkpoint_ns=self._config.checkpoint_ns)

            if parsed.action == ResumeAction.APPROVED:
                self._set_status(thread_id, ThreadStatus.GENERATING_IDEAS)
                self._events.clear(thread_id, StreamType.IDEAS)
                stream_type = StreamType.IDEAS
                last_status = ThreadStatus.GENERATING_IDEAS
            else:
                feedback = parsed.feedback or ""
                self._set_status(thread_id, ThreadStatus.PLANNING)
                self._stores.threads.set_refinement_feedback(thread_id, feedback)
                self._message(thread_id, MessageRole.USER, feedback, MessageType.USER_INPUT, {"step": "refinement"})
                self._stores.trends.delete_by_thread(thread_id)
                self._events.clear(thread_id, StreamType.RESEARCH)
                stream_type = StreamType.RESEARCH
                last_status = ThreadStatus.PLANNING

            outcome = self._drive(thread_id, stream, stream_type, last_status=last_status, replaying=True)

            if outcome.status == ExecutionStatus.ERROR:
                return {"success": False, "action": parsed.action.value, "error": outcome.error}

            if parsed.action == ResumeAction.APPROVED and outcome.status == ExecutionStatus.COMPLETED:
                self._set_status(thread_id, ThreadStatus.COMPLETED)
                self._events.emit(
                    thread_id,
                    StreamType.IDEAS,
                    StreamEventType.COMPLETE,
                    data={"message": "Ideas generation complete", "ideas_count": outcome.ideas},
                )
            else:
                self._finish_research(thread_id, outcome)

            logger.info("thread_resumed", thread_id=thread_id, action=parsed.action.value, status=outcome.status.value)
            return {
                "success": True,
                "action": parsed.action.value,
                "message": f"Graph resumed with action: {parsed.action.value}",
            }
        except NotResumableError as e:
            logger.warning("resume_rejected", thread_id=thread_id, action=action, error=str(e))
            return {"success": False, "action": action, "error": str(e)}
        except Exception as e:
            stream_type = StreamType.IDEAS if action == ResumeAction.APPROVED.value else StreamType.RESEARCH
            return self._fail(thread_id, stream_type, e, label="Resume")

    def _decision_applied(self, thread_id: str, action: ResumeAction, checkpoint_id: Any) -> bool:
        if checkpoint_id is MISSING:
            return False
        ns = self._config.checkpoint_ns
        if action == ResumeAction.RESTART:
            if checkpoint_id is None:
                # Restart was requested before any checkpoint existed; a run has started since.
                return self._stores.checkpoints.get(thread_id, ns) is not None
            # Reset deletes every checkpoint of the thread.
            return self._stores.checkpoints.get(thread_id, ns, checkpoint_id) is None
        latest = self._stores.checkpoints.get(thread_id, ns)
        return latest is None or latest.checkpoint_id != checkpoint_id

    def generate_ideas_coordinator(self, *, thread_id: str) -> Dict[str, Any]:
        try:
            trends = self._stores.trends.list_by_thread(thread_id)
            if not trends:
                raise StepFailed("No trends found for this thread")

            self._stores.ideas.delete_by_thread(thread_id)
            self._events.clear(thread_id, StreamType.IDEAS)
            self._set_status(thread_id, ThreadStatus.GENERATING_IDEAS)

            platforms = list(self._config.platforms)
            self._events.emit(
                thread_id,
                StreamType.IDEAS,
                StreamEventType.NODE_START,
                node=TASK_IDEAS_COORDINATOR,
                data={
                    "message": "Starting parallel ideas generation...",
                    "trends_count": len(trends),
                    "platforms": platforms,
                    "total_platforms": len(platforms),
                },
            )
            for platform in platforms:
                self._scheduler.run_after(0, TASK_IDEAS_FOR_PLATFORM, thread_id=thread_id, platform=platform)

            logger.info("platform_workers_scheduled", thread_id=thread_id, platforms=platforms)
            return {"success": True, "platforms": platforms}
        except Exception as e:
            return self._fail(thread_id, StreamType.IDEAS, e, label="Ideas generation", node=TASK_IDEAS_COORDINATOR)

    def generate_ideas_for_platform(self, *, thread_id: str, platform: str) -> Dict[str, Any]:
        node = f"generate_ideas_{platform}"
        try:
            trends = self._stores.trends.list_by_thread(thread_id)
            if not trends:
                raise StepFailed("No trends found")

            count = 0
            for record in platform_idea_stream(
                self._llm,
                platform,
                [t.to_state() for t in trends],
                self._brand_context(thread_id),
                temperature=self._config.ideas_temperature,
            ):
                kind = record.get("type")
                if kind == "status":
                    self._events.emit(
                        thread_id,
                        StreamType.IDEAS,
                        StreamEventType.TOKEN,
                        node=node,
                        data={"message": record.get("message"), "platform": platform},
                    )
                elif kind == "idea":
                    count += 1
                    self._save_idea(thread_id, trends, record["idea"], node=node, extra={"platform_ideas_count": count})
                elif kind == "error":
                    raise StepFailed(str(record.get("message") or "Unknown error"))

            self._events.emit(
                thread_id,
                StreamType.IDEAS,
                StreamEventType.COMPLETE,
                node=node,
                data={"platform": platform, "ideas_count": count, "message": f"{platform} complete: {count} ideas"},
            )
            logger.info("platform_ideas_completed", thread_id=thread_id, platform=platform, count=count)

            completed = self._completed_platforms(thread_id)
            if len(completed) >= len(self._config.platforms):
                self._set_status(thread_id, ThreadStatus.COMPLETED)
                logger.info("ideas_phase_completed", thread_id=thread_id, platforms=sorted(completed))
            return {"success": True, "platform": platform, "ideas_count": count}
        except Exception as e:
            return self._fail(thread_id, StreamType.IDEAS, e, label=f"{platform} ideas", node=node, extra={"platform": platform})

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------

    def _drive(
        self,
        thread_id: str,
        stream: Iterator[GraphEvent],
        stream_type: StreamType,
        *,
        last_status: Optional[ThreadStatus] = None,
        replaying: bool = False,
    ) -> _DriveOutcome:
        """Consume engine events, persisting their side effects."""
        outcome = _DriveOutcome(last_status=last_status)
        first = True
        for event in stream:
            if event.kind == EventKind.NODE_START:
                node = str(event.node)
                self._events.emit(
                    thread_id, stream_type, StreamEventType.NODE_START, node=node, data={"message": node_start_message(node)}
                )
                # The pending node re-entered on resume does not move the status back.
                status = NODE_STATUS.get(node)
                if status is not None and status != outcome.last_status and not (replaying and first):
                    outcome.last_status = status
                    self._set_status(thread_id, status)
                first = False
            elif event.kind == EventKind.NODE_END:
                self._on_node_end(thread_id, str(event.node), dict(event.data or {}), outcome)
                self._events.emit(thread_id, stream_type, StreamEventType.NODE_END, node=event.node)
            elif event.kind == EventKind.INTERRUPT:
                outcome.status = ExecutionStatus.INTERRUPTED
                outcome.interrupt = event.data
            elif event.kind == EventKind.SUSPENDED:
                outcome.status = ExecutionStatus.SUSPENDED
            elif event.kind == EventKind.ERROR:
                outcome.status = ExecutionStatus.ERROR
                outcome.error = str((event.data or {}).get("error") or "Unknown error")
                outcome.last_status = ThreadStatus.ERROR
                self._set_status(thread_id, ThreadStatus.ERROR)
                self._events.emit(
                    thread_id, stream_type, StreamEventType.ERROR, node=event.node, data={"message": outcome.error}
                )
                self._message(thread_id, MessageRole.ASSISTANT, outcome.error, MessageType.ERROR, {"node": event.node})
        return outcome

    def _on_node_end(self, thread_id: str, node: str, update: Dict[str, Any], outcome: _DriveOutcome) -> None:
        if node == pipeline_nodes.PLAN and update.get("research_plan"):
            plan = update["research_plan"]
            self._events.emit(
                thread_id,
                StreamType.RESEARCH,
                StreamEventType.PLAN,
                node=node,
                data={"keywords": list(plan.get("keywords") or []), "timeframe": plan.get("timeframe") or ""},
            )
        elif node == pipeline_nodes.SEARCH and "search_results" in update:
            self._events.emit(
                thread_id,
                StreamType.RESEARCH,
                StreamEventType.SEARCH_RESULTS,
                node=node,
                data={"count": len(update.get("search_results") or [])},
            )
        elif node == pipeline_nodes.SYNTHESIZE and "trends" in update:
            trends = list(update.get("trends") or [])
            self._stores.trends.create_batch(thread_id, trends)
            for trend in trends:
                self._events.emit(thread_id, StreamType.RESEARCH, StreamEventType.TREND, node=node, data={"trend": trend})
            outcome.trends = len(trends)
        elif node == pipeline_nodes.GENERATE_IDEAS and update.get("ideas"):
            trends = self._stores.trends.list_by_thread(thread_id)
            for idea in update["ideas"]:
                if self._save_idea(thread_id, trends, idea, node=node) is not None:
                    outcome.ideas += 1

    def _save_idea(
        self,
        thread_id: str,
        trends: List[TrendRecord],
        idea: Dict[str, Any],
        *,
        node: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Optional[IdeaRecord]:
        idx = int(idea.get("trend_index", -1))
        if not 0 <= idx < len(trends):
            logger.warning("idea_without_trend", thread_id=thread_id, trend_index=idx)
            return None
        trend = trends[idx]
        record = self._stores.ideas.create(
            IdeaRecord(
                idea_id="",
                thread_id=thread_id,
                trend_ids=[trend.trend_id],
                platform=str(idea.get("platform") or ""),
                hook=str(idea.get("hook") or ""),
                format=str(idea.get("format") or ""),
                angle=str(idea.get("angle") or ""),
                description=str(idea.get("description") or ""),
            )
        )
        self._events.emit(
            thread_id,
            StreamType.IDEAS,
            StreamEventType.IDEA,
            node=node,
            data={
                "idea_id": record.idea_id,
                "platform": record.platform,
                "trend_title": trend.title,
                "hook": record.hook,
                "format": record.format,
                "angle": record.angle,
                "description": record.description,
                **(extra or {}),
            },
        )
        return record

    def _finish_research(self, thread_id: str, outcome: _DriveOutcome) -> Dict[str, Any]:
        if outcome.status == ExecutionStatus.ERROR:
            return {"success": False, "error": outcome.error}

        if outcome.status == ExecutionStatus.COMPLETED:
            self._set_status(thread_id, ThreadStatus.COMPLETED)
            return {"success": True, "trends_count": outcome.trends}

        if outcome.last_status != ThreadStatus.AWAITING_APPROVAL:
            self._set_status(thread_id, ThreadStatus.AWAITING_APPROVAL)
        self._events.emit(
            thread_id,
            StreamType.RESEARCH,
            StreamEventType.COMPLETE,
            data={"trends_count": outcome.trends, "message": "Research complete"},
        )
        self._message(
            thread_id,
            MessageRole.ASSISTANT,
            f"Research complete! Found {outcome.trends} trends. Please review and approve.",
            MessageType.RESEARCH_RESULT,
            {"step": ThreadStatus.AWAITING_APPROVAL.value},
        )
        return {"success": True, "trends_count": outcome.trends, "interrupt": outcome.interrupt}

    def _completed_platforms(self, thread_id: str) -> set:
        done = set()
        for e in self._events.history(thread_id, StreamType.IDEAS):
            platform = (e.data or {}).get("platform")
            if e.event_type == StreamEventType.COMPLETE and platform:
                done.add(platform)
        return done

    def _brand_context(self, thread_id: str) -> Dict[str, Any]:
        snap = self.get_state(thread_id)
        brand = snap.values.get("brand_context") if snap is not None else None
        return dict(brand or DEFAULT_BRAND_CONTEXT)

    def _reset_thread(self, thread_id: str) -> None:
        self._stores.checkpoints.delete_thread(thread_id)
        self._stores.trends.delete_by_thread(thread_id)
        self._stores.ideas.delete_by_thread(thread_id)
        self._stores.threads.set_refinement_feedback(thread_id, None)
        self._set_status(thread_id, ThreadStatus.IDLE)
        self._events.clear(thread_id, StreamType.RESEARCH)
        self._events.clear(thread_id, StreamType.IDEAS)
        logger.info("thread_reset", thread_id=thread_id)

    def _set_status(self, thread_id: str, status: ThreadStatus) -> None:
        self._stores.threads.update_status(thread_id, status)

    def _message(
        self,
        thread_id: str,
        role: MessageRole,
        content: str,
        message_type: MessageType,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._stores.messages.append(
            MessageRecord(thread_id=thread_id, role=role, content=content, message_type=message_type, metadata=dict(metadata or {}))
        )

    def _fail(
        self,
        thread_id: str,
        stream_type: StreamType,
        error: Exception,
        *,
        label: str,
        node: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        message = str(error) or type(error).__name__
        logger.error("task_failed", thread_id=thread_id, label=label, error=message)
        if isinstance(error, ThreadNotFoundError):
            return {"success": False, "error": message}
        self._set_status(thread_id, ThreadStatus.ERROR)
        self._events.emit(thread_id, stream_type, StreamEventType.ERROR, node=node, data={"message": message, **(extra or {})})
        self._message(thread_id, MessageRole.ASSISTANT, f"{label} failed: {message}", MessageType.ERROR)
        return {"success": False, "error": message}
