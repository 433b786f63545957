"""trendpilot.pipeline.nodes

Research pipeline nodes and the graph table wiring them together:

    plan -> search -> synthesize -> await_approval -> {router}
                                                      approved       -> generate_ideas -> END
                                                      refine/restart -> plan
                                                      pending        -> SUSPEND

Nodes are built by `make_*_node(...)` factories that close over their client
handles, so the engine only ever sees `(state, ctx) -> update` functions.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from . import prompts
from .ideas import generate_ideas
from .schemas import ResearchPlan, Synthesis
from ..core.config import PipelineConfig
from ..core.errors import InvalidDecisionError, StepFailed
from ..core.models import (
    APPROVAL_OPTIONS,
    HitlStatus,
    ResumeAction,
    ResumeDecision,
    ThreadStatus,
    trend_to_wire,
)
from ..core.runtime import StepContext
from ..core.spec import END, SUSPEND, GraphSpec, NodeFn
from ..integrations.llm_client import LLMClient, generate_structured
from ..integrations.search_client import SearchClient
from ..logging import get_logger

logger = get_logger(__name__)

GRAPH_ID = "trend_research"

PLAN = "plan"
SEARCH = "search"
SYNTHESIZE = "synthesize"
AWAIT_APPROVAL = "await_approval"
GENERATE_IDEAS = "generate_ideas"

APPROVAL_MESSAGE = "Research complete! Please review the trends and decide how to proceed."


def make_plan_node(*, llm: LLMClient, config: PipelineConfig) -> NodeFn:
    def _plan(state: Dict[str, Any], ctx: StepContext) -> Dict[str, Any]:
        user_prompt = str(state.get("user_prompt") or "")
        feedback = state.get("refinement_feedback")
        previous = state.get("research_plan") or None

        system_prompt = prompts.PLAN_RESEARCH_PROMPT
        user_message = prompts.plan_user_message(user_prompt)
        if feedback and previous:
            system_prompt = prompts.refinement_prompt(
                previous_keywords=list(previous.get("keywords") or []), feedback=str(feedback)
            )
            user_message = prompts.plan_user_message(user_prompt, str(feedback))

        plan = generate_structured(
            llm,
            prompt=user_message,
            system_prompt=system_prompt,
            response_model=ResearchPlan,
            params={"temperature": config.plan_temperature},
        )
        logger.info("research_planned", thread_id=ctx.thread_id, keywords=plan.keywords, refined=bool(feedback and previous))
        return {
            "research_plan": plan.model_dump(),
            "current_step": ThreadStatus.PLANNING.value,
            "error": None,
        }

    return _plan


def make_search_node(*, search: SearchClient, config: PipelineConfig) -> NodeFn:
    def _search(state: Dict[str, Any], ctx: StepContext) -> Dict[str, Any]:
        plan = state.get("research_plan")
        if not plan:
            raise StepFailed("No research plan available")

        results: List[Dict[str, Any]] = []
        seen_urls = set()
        for keyword in plan.get("keywords") or []:
            for r in search.search(keyword, max_results=config.search_max_results, search_depth="advanced"):
                url = r.get("url")
                if not url or url in seen_urls:
                    continue
                seen_urls.add(url)
                results.append(r)

        results.sort(key=lambda r: float(r.get("score") or 0.0), reverse=True)
        top = results[: config.search_top_k]
        logger.info("search_completed", thread_id=ctx.thread_id, found=len(results), kept=len(top))
        return {
            "search_results": top,
            "current_step": ThreadStatus.SEARCHING.value,
            "error": None,
        }

    return _search


def make_synthesize_node(*, llm: LLMClient, config: PipelineConfig) -> NodeFn:
    def _synthesize(state: Dict[str, Any], ctx: StepContext) -> Dict[str, Any]:
        search_results = list(state.get("search_results") or [])
        if not search_results:
            raise StepFailed("No search results to synthesize")

        synthesis = generate_structured(
            llm,
            prompt=prompts.synthesize_user_message(search_results, str(state.get("user_prompt") or "")),
            system_prompt=prompts.SYNTHESIZE_PROMPT,
            response_model=Synthesis,
            params={"temperature": config.synthesize_temperature},
        )

        trends: List[Dict[str, Any]] = []
        for t in synthesis.trends:
            sources = [
                {
                    "url": search_results[i].get("url"),
                    "title": search_results[i].get("title"),
                    "snippet": str(search_results[i].get("content") or "")[:200],
                    "published_at": search_results[i].get("published_date"),
                }
                for i in t.source_indices
                if 0 <= i < len(search_results)
            ]
            trends.append(
                {
                    "title": t.title,
                    "summary": t.summary,
                    "why_it_matters": t.why_it_matters,
                    "confidence": t.confidence.value,
                    "sources": sources,
                }
            )

        logger.info("trends_synthesized", thread_id=ctx.thread_id, count=len(trends))
        return {
            "trends": trends,
            "current_step": ThreadStatus.SYNTHESIZING.value,
            "hitl_status": None,
            "error": None,
        }

    return _synthesize


def await_approval(state: Dict[str, Any], ctx: StepContext) -> Dict[str, Any]:
    """Block until a human decides; translate the decision into a state update.

    Nothing here may have side effects before `ctx.interrupt()`: the node is
    replayed from the top when resumed.
    """
    payload = {
        "trends": [trend_to_wire(t) for t in state.get("trends") or []],
        "message": APPROVAL_MESSAGE,
        "options": list(APPROVAL_OPTIONS),
    }
    raw = ctx.interrupt(payload)

    try:
        decision = ResumeDecision.from_wire(raw)
    except InvalidDecisionError:
        action = raw.get("action") if isinstance(raw, dict) else raw
        logger.warning("unknown_hitl_action", thread_id=ctx.thread_id, action=str(action))
        return {"hitl_status": HitlStatus.PENDING.value, "error": f"Unknown HITL action: {action}"}

    logger.info("hitl_decision", thread_id=ctx.thread_id, action=decision.action.value)
    step = ThreadStatus.AWAITING_APPROVAL.value
    if decision.action == ResumeAction.APPROVED:
        return {"hitl_status": HitlStatus.APPROVED.value, "current_step": step, "error": None}
    if decision.action == ResumeAction.REFINE:
        return {
            "hitl_status": HitlStatus.REFINE.value,
            "refinement_feedback": decision.feedback or "",
            "current_step": step,
            "error": None,
            "trends": [],
            "search_results": [],
        }
    return {
        "hitl_status": HitlStatus.RESTART.value,
        "current_step": step,
        "error": None,
        "trends": [],
        "search_results": [],
        "research_plan": None,
        "refinement_feedback": None,
    }


def route_after_approval(state: Dict[str, Any]) -> str:
    status = state.get("hitl_status")
    if status == HitlStatus.APPROVED.value:
        return GENERATE_IDEAS
    if status in (HitlStatus.REFINE.value, HitlStatus.RESTART.value):
        return PLAN
    return SUSPEND


def make_generate_ideas_node(*, llm: LLMClient, config: PipelineConfig) -> NodeFn:
    def _generate_ideas(state: Dict[str, Any], ctx: StepContext) -> Dict[str, Any]:
        trends = list(state.get("trends") or [])
        if not trends:
            raise StepFailed("No trends available for idea generation")

        ideas = generate_ideas(
            llm,
            trends,
            dict(state.get("brand_context") or {}),
            list(config.platforms),
            temperature=config.ideas_temperature,
        )
        logger.info("ideas_generated", thread_id=ctx.thread_id, count=len(ideas))
        return {
            "ideas": ideas,
            "current_step": ThreadStatus.GENERATING_IDEAS.value,
            "error": None,
        }

    return _generate_ideas


def build_research_graph(
    *,
    llm: LLMClient,
    search: SearchClient,
    config: Optional[PipelineConfig] = None,
) -> GraphSpec:
    cfg = config or PipelineConfig()
    return GraphSpec(
        graph_id=GRAPH_ID,
        entry_node=PLAN,
        nodes={
            PLAN: make_plan_node(llm=llm, config=cfg),
            SEARCH: make_search_node(search=search, config=cfg),
            SYNTHESIZE: make_synthesize_node(llm=llm, config=cfg),
            AWAIT_APPROVAL: await_approval,
            GENERATE_IDEAS: make_generate_ideas_node(llm=llm, config=cfg),
        },
        edges={
            PLAN: SEARCH,
            SEARCH: SYNTHESIZE,
            SYNTHESIZE: AWAIT_APPROVAL,
            GENERATE_IDEAS: END,
        },
        routers={AWAIT_APPROVAL: route_after_approval},
    )
