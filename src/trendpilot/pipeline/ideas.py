"""trendpilot.pipeline.ideas

Content-idea generation shared by the `generate_ideas` node and the
per-platform fan-out workers.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List

from . import prompts
from .schemas import IdeaBatch
from ..core.errors import LLMResponseError
from ..integrations.llm_client import LLMClient, generate_structured
from ..logging import get_logger

logger = get_logger(__name__)


def ideas_for_trend(
    llm: LLMClient,
    *,
    trend: Dict[str, Any],
    trend_index: int,
    platform: str,
    brand: Dict[str, Any],
    temperature: float = 0.7,
) -> List[Dict[str, Any]]:
    """Ask for 2-3 ideas for one (trend, platform) pair. Raises LLMResponseError on unparsable output."""
    batch = generate_structured(
        llm,
        prompt=prompts.ideas_user_message(trend, platform),
        system_prompt=prompts.ideas_prompt(brand, platform),
        response_model=IdeaBatch,
        params={"temperature": temperature},
    )
    return [
        {
            "trend_index": int(trend_index),
            "platform": platform,
            "hook": d.hook,
            "format": d.format,
            "angle": d.angle,
            "description": d.description,
        }
        for d in batch.ideas
    ]


def generate_ideas_for_platform(
    llm: LLMClient,
    platform: str,
    trends: List[Dict[str, Any]],
    brand: Dict[str, Any],
    *,
    temperature: float = 0.7,
) -> Iterator[Dict[str, Any]]:
    """Yield progress records for one platform.

    Record types:
    - `{"type": "status", "message", "platform", "trend_index"}`
    - `{"type": "idea", "platform", "trend_index", "idea"}`
    - `{"type": "complete", "platform", "total_ideas", "message"}`
    - `{"type": "error", "platform", "message"}` (last record; no `complete` follows)
    """
    total = 0
    try:
        for trend_index, trend in enumerate(trends):
            yield {
                "type": "status",
                "message": f"Creating {platform} content for: {trend.get('title', '')}",
                "platform": platform,
                "trend_index": trend_index,
            }
            try:
                ideas = ideas_for_trend(
                    llm, trend=trend, trend_index=trend_index, platform=platform, brand=brand, temperature=temperature
                )
            except LLMResponseError as e:
                logger.warning("ideas_unparsable", platform=platform, trend_index=trend_index, error=str(e))
                continue
            for idea in ideas:
                total += 1
                yield {"type": "idea", "platform": platform, "trend_index": trend_index, "idea": idea}
    except Exception as e:
        logger.error("platform_ideas_failed", platform=platform, error=str(e))
        yield {"type": "error", "platform": platform, "message": str(e)}
        return

    yield {
        "type": "complete",
        "platform": platform,
        "total_ideas": total,
        "message": f"Generated {total} {platform} ideas across {len(trends)} trends",
    }


def generate_ideas(
    llm: LLMClient,
    trends: List[Dict[str, Any]],
    brand: Dict[str, Any],
    platforms: List[str],
    *,
    temperature: float = 0.7,
) -> List[Dict[str, Any]]:
    """All ideas for every trend x platform; unparsable responses are skipped with a warning."""
    out: List[Dict[str, Any]] = []
    for trend_index, trend in enumerate(trends):
        for platform in platforms:
            try:
                ideas = ideas_for_trend(
                    llm, trend=trend, trend_index=trend_index, platform=platform, brand=brand, temperature=temperature
                )
            except LLMResponseError as e:
                logger.warning("ideas_unparsable", platform=platform, trend_index=trend_index, error=str(e))
                continue
            out.extend(ideas)
    return out
