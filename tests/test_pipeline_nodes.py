from __future__ import annotations

from typing import Any, Dict

import pytest
from pydantic import ValidationError as PydanticValidationError

from trendpilot.core.config import PipelineConfig
from trendpilot.core.errors import LLMResponseError, StepFailed
from trendpilot.core.runtime import StepContext
from trendpilot.core.state import apply_update, initial_state
from trendpilot.pipeline import generate_ideas, generate_ideas_for_platform
from trendpilot.pipeline.nodes import make_plan_node, make_search_node, make_synthesize_node
from trendpilot.pipeline.schemas import ResearchPlan

from conftest import FakeLLM, FakeSearch


def _ctx(node: str) -> StepContext:
    return StepContext(thread_id="t1", checkpoint_ns="", checkpoint_id="cp", node=node)


def _state(**update: Any) -> Dict[str, Any]:
    return apply_update(initial_state(), update)


def test_plan_uses_refinement_prompt_when_feedback_and_previous_plan_exist() -> None:
    llm = FakeLLM()
    plan = make_plan_node(llm=llm, config=PipelineConfig())

    out = plan(_state(user_prompt="AI in marketing"), _ctx("plan"))
    assert out["research_plan"]["keywords"] == ["ai agents marketing", "agentic workflows"]
    assert out["current_step"] == "planning"
    assert "Feedback" not in llm.calls[-1]["prompt"]

    plan(
        _state(user_prompt="AI in marketing", refinement_feedback="only B2B", research_plan=out["research_plan"]),
        _ctx("plan"),
    )
    last = llm.calls[-1]
    assert "only B2B" in last["system_prompt"]
    assert "ai agents marketing" in last["system_prompt"]
    assert last["prompt"] == "Original request: AI in marketing\nFeedback: only B2B"
    assert last["params"]["temperature"] == PipelineConfig().plan_temperature


def test_plan_rejects_unparsable_output() -> None:
    llm = FakeLLM({"ResearchPlan": "I cannot help with that."})
    plan = make_plan_node(llm=llm, config=PipelineConfig())
    with pytest.raises(LLMResponseError):
        plan(_state(user_prompt="x"), _ctx("plan"))


def test_plan_accepts_fenced_json_content() -> None:
    llm = FakeLLM({"ResearchPlan": 'Here you go:\n```json\n{"keywords": [" a ", "", "b"]}\n```'})
    out = make_plan_node(llm=llm, config=PipelineConfig())(_state(user_prompt="x"), _ctx("plan"))
    assert out["research_plan"]["keywords"] == ["a", "b"]
    assert out["research_plan"]["timeframe"] == "past_week"


def test_search_deduplicates_ranks_and_truncates() -> None:
    search = FakeSearch()
    node = make_search_node(search=search, config=PipelineConfig(search_top_k=2, search_max_results=7))

    out = node(_state(research_plan={"keywords": ["ai agents marketing", "agentic workflows"]}), _ctx("search"))

    assert [r["url"] for r in out["search_results"]] == [
        "https://example.com/ai-agents-marketing",
        "https://example.com/agentic-workflows",
    ]
    assert search.queries == [("ai agents marketing", 7, "advanced"), ("agentic workflows", 7, "advanced")]


def test_search_requires_plan() -> None:
    node = make_search_node(search=FakeSearch(), config=PipelineConfig())
    with pytest.raises(StepFailed, match="No research plan available"):
        node(_state(), _ctx("search"))


def test_synthesize_maps_sources_and_drops_bad_indices() -> None:
    node = make_synthesize_node(llm=FakeLLM(), config=PipelineConfig())
    results = [
        {"url": f"https://example.com/{i}", "title": f"R{i}", "content": "x" * 300, "published_date": "2026-10-0%d" % (i + 1)}
        for i in range(3)
    ]

    out = node(_state(search_results=results, hitl_status="refine"), _ctx("synthesize"))

    first, second = out["trends"]
    assert first["confidence"] == "high"
    assert first["why_it_matters"] == "Small teams ship more experiments."
    assert [s["url"] for s in first["sources"]] == ["https://example.com/0", "https://example.com/1"]
    assert len(first["sources"][0]["snippet"]) == 200
    assert first["sources"][0]["published_at"] == "2026-10-01"
    assert [s["url"] for s in second["sources"]] == ["https://example.com/2"]
    assert out["hitl_status"] is None


def test_synthesize_requires_results() -> None:
    node = make_synthesize_node(llm=FakeLLM(), config=PipelineConfig())
    with pytest.raises(StepFailed, match="No search results to synthesize"):
        node(_state(), _ctx("synthesize"))


def test_research_plan_needs_a_keyword() -> None:
    with pytest.raises(PydanticValidationError):
        ResearchPlan.model_validate({"keywords": ["  "]})


def test_generate_ideas_skips_unparsable_platform() -> None:
    def answer(prompt: str, system_prompt: str) -> Any:
        if "twitter" in prompt:
            return "not json"
        return {"ideas": [{"hook": "h", "format": "post", "angle": "a", "description": "d"}]}

    llm = FakeLLM({"IdeaBatch": answer})
    trends = [{"title": "T1"}, {"title": "T2"}]

    ideas = generate_ideas(llm, trends, {"name": "Brand"}, ["linkedin", "twitter"])

    assert [(i["trend_index"], i["platform"]) for i in ideas] == [(0, "linkedin"), (1, "linkedin")]


def test_platform_generator_yields_status_idea_and_complete() -> None:
    records = list(generate_ideas_for_platform(FakeLLM(), "tiktok", [{"title": "T1"}], {"name": "Brand"}))

    assert [r["type"] for r in records] == ["status", "idea", "idea", "complete"]
    assert records[1]["idea"]["hook"] == "tiktok hook A"
    assert records[-1]["total_ideas"] == 2


def test_platform_generator_reports_unexpected_failures() -> None:
    def boom(prompt: str, system_prompt: str) -> Any:
        raise RuntimeError("provider down")

    records = list(generate_ideas_for_platform(FakeLLM({"IdeaBatch": boom}), "linkedin", [{"title": "T1"}], {}))

    assert [r["type"] for r in records] == ["status", "error"]
    assert records[-1]["message"] == "provider down"
