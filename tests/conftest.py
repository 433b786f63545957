from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from trendpilot.coordinator import Coordinator
from trendpilot.core.config import PipelineConfig
from trendpilot.scheduler import InlineScheduler, TaskRegistry
from trendpilot.storage import Stores

_PLATFORM_RE = re.compile(r"Generate 2-3 (\w+) content ideas")


def default_plan() -> Dict[str, Any]:
    return {"keywords": ["ai agents marketing", "agentic workflows"], "timeframe": "past_week", "domain": "marketing"}


def default_synthesis() -> Dict[str, Any]:
    return {
        "trends": [
            {
                "title": "Agents replace campaign ops",
                "summary": "Teams hand repetitive campaign work to agents.",
                "whyItMatters": "Small teams ship more experiments.",
                "confidence": "HIGH",
                "sourceIndices": [0, 1],
            },
            {
                "title": "Brand voice guardrails",
                "summary": "Companies codify tone for generated copy.",
                "whyItMatters": "Consistency at scale.",
                "confidence": "medium",
                "sourceIndices": [2, 99],
            },
        ]
    }


def ideas_for(platform: str) -> Dict[str, Any]:
    return {
        "ideas": [
            {"hook": f"{platform} hook A", "format": "post", "angle": "contrarian", "description": "First idea"},
            {"hook": f"{platform} hook B", "format": "thread", "angle": "how-to", "description": "Second idea"},
        ]
    }


class FakeLLM:
    """Answers structured-output calls by response model name.

    `responses[name]` may be a dict (returned as `data`), a string (returned as
    `content`) or a callable `(prompt, system_prompt) -> dict | str`.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses: Dict[str, Any] = {
            "ResearchPlan": default_plan(),
            "Synthesis": default_synthesis(),
            "IdeaBatch": lambda prompt, system_prompt: ideas_for(_platform_of(prompt)),
        }
        self.responses.update(responses or {})
        self.calls: List[Dict[str, Any]] = []

    def generate(
        self,
        *,
        prompt: str,
        system_prompt: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        params = dict(params or {})
        model = params.get("response_model")
        name = getattr(model, "__name__", "")
        self.calls.append({"model": name, "prompt": prompt, "system_prompt": system_prompt, "params": params})

        answer = self.responses.get(name)
        if callable(answer):
            answer = answer(prompt, system_prompt)
        if isinstance(answer, str):
            return {"content": answer, "data": None}
        return {"content": None, "data": answer}

    def calls_for(self, name: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["model"] == name]


def _platform_of(prompt: str) -> str:
    m = _PLATFORM_RE.search(prompt or "")
    return m.group(1) if m else "unknown"


class FakeSearch:
    def __init__(self, results: Optional[Callable[[str], List[Dict[str, Any]]]] = None):
        self._results = results or self._default
        self.queries: List[Tuple[str, int, str]] = []

    @staticmethod
    def _default(query: str) -> List[Dict[str, Any]]:
        slug = query.replace(" ", "-")
        return [
            {
                "url": "https://example.com/shared",
                "title": "Shared coverage",
                "content": "Both keywords hit this page. " * 20,
                "score": 0.5,
                "published_date": "2026-10-01",
            },
            {
                "url": f"https://example.com/{slug}",
                "title": f"About {query}",
                "content": f"Details on {query}",
                "score": 0.9 if "agents" in query else 0.7,
                "published_date": None,
            },
        ]

    def search(self, query: str, *, max_results: int = 10, search_depth: str = "advanced") -> List[Dict[str, Any]]:
        self.queries.append((query, max_results, search_depth))
        return list(self._results(query))


class RecordingScheduler:
    """Records scheduled tasks without running them."""

    def __init__(self):
        self.registry = TaskRegistry()
        self.scheduled: List[Tuple[str, Dict[str, Any]]] = []

    def register(self, name: str, fn: Any) -> None:
        self.registry.register(name, fn)

    def run_after(self, delay_s: float, task_name: str, **kwargs: Any) -> str:
        self.registry.get(task_name)
        self.scheduled.append((task_name, dict(kwargs)))
        return f"task-{len(self.scheduled)}"


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig(platforms=("linkedin", "twitter", "tiktok"))


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_search() -> FakeSearch:
    return FakeSearch()


@pytest.fixture(params=["memory", "sqlite"])
def stores(request: pytest.FixtureRequest, tmp_path: Path) -> Stores:
    if request.param == "sqlite":
        return Stores.sqlite(tmp_path / "trendpilot.sqlite3")
    return Stores.in_memory()


@pytest.fixture
def coordinator(stores: Stores, fake_llm: FakeLLM, fake_search: FakeSearch, config: PipelineConfig) -> Coordinator:
    return Coordinator(stores=stores, llm=fake_llm, search=fake_search, scheduler=InlineScheduler(), config=config)
