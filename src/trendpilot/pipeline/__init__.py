"""Trend research pipeline: prompts, structured-output schemas, nodes and graph."""

from .ideas import generate_ideas, generate_ideas_for_platform
from .nodes import (
    AWAIT_APPROVAL,
    GENERATE_IDEAS,
    PLAN,
    SEARCH,
    SYNTHESIZE,
    await_approval,
    build_research_graph,
    route_after_approval,
)

__all__ = [
    "PLAN",
    "SEARCH",
    "SYNTHESIZE",
    "AWAIT_APPROVAL",
    "GENERATE_IDEAS",
    "await_approval",
    "route_after_approval",
    "build_research_graph",
    "generate_ideas",
    "generate_ideas_for_platform",
]
