"""trendpilot.pipeline.schemas

Pydantic models for the structured LLM outputs of the pipeline nodes.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.models import Confidence


class ResearchPlan(BaseModel):
    model_config = ConfigDict(extra="ignore")

    keywords: List[str] = Field(min_length=1)
    timeframe: str = "past_week"
    domain: Optional[str] = None
    region: Optional[str] = None

    @field_validator("keywords")
    @classmethod
    def _strip_keywords(cls, value: List[str]) -> List[str]:
        keywords = [k.strip() for k in value if isinstance(k, str) and k.strip()]
        if not keywords:
            raise ValueError("at least one non-empty keyword is required")
        return keywords


class SynthesizedTrend(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str
    summary: str
    why_it_matters: str = Field(default="", alias="whyItMatters")
    confidence: Confidence = Confidence.MEDIUM
    source_indices: List[int] = Field(default_factory=list, alias="sourceIndices")

    @field_validator("confidence", mode="before")
    @classmethod
    def _lower_confidence(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value


class Synthesis(BaseModel):
    model_config = ConfigDict(extra="ignore")

    trends: List[SynthesizedTrend]


class IdeaDraft(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hook: str
    format: str = "post"
    angle: str = ""
    description: str = ""


class IdeaBatch(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ideas: List[IdeaDraft]
