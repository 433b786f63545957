"""trendpilot.core.config

Pipeline configuration.

`PipelineConfig` centralizes everything a host needs to wire the pipeline:
LLM / search endpoints and credentials, search sizing, idea platforms, and
persistence location. Values are read from the environment by `from_env()`;
explicit constructor arguments always win.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Tuple

DEFAULT_PLATFORMS: Tuple[str, ...] = ("linkedin", "twitter", "tiktok")
DEFAULT_LLM_BASE_URL = "https://api.openai.com"
DEFAULT_LLM_MODEL = "gpt-4o"
DEFAULT_TAVILY_BASE_URL = "https://api.tavily.com"
DEFAULT_DB_PATH = "~/.trendpilot/trendpilot.sqlite3"


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = raw.strip()
    return raw or default


def _env_int(name: str, default: int) -> int:
    raw = str(os.getenv(name, "")).strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = str(os.getenv(name, "")).strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_csv(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = str(os.getenv(name, "")).strip()
    if not raw:
        return default
    items = tuple(p.strip().lower() for p in raw.split(",") if p.strip())
    return items or default


@dataclass(frozen=True)
class PipelineConfig:
    """Configuration for the research pipeline.

    Attributes:
        llm_base_url: OpenAI-compatible server root (without `/v1`).
        llm_model: Model id sent with every request.
        llm_api_key: Bearer token for the LLM server (optional for local servers).
        llm_timeout_s: Per-request timeout.
        plan_temperature / synthesize_temperature / ideas_temperature: sampling per node.
        tavily_api_key: Search provider key.
        tavily_base_url: Search provider root.
        search_max_results: Results requested per keyword.
        search_top_k: Results kept after de-duplication and ranking.
        platforms: Idea categories; also the fan-out barrier size.
        db_path: SQLite file used by the CLI and `Stores.sqlite()`.
        checkpoint_ns: Namespace used for the main graph.
        history_limit: Default page size when listing checkpoints.
    """

    llm_base_url: str = DEFAULT_LLM_BASE_URL
    llm_model: str = DEFAULT_LLM_MODEL
    llm_api_key: Optional[str] = field(default=None, repr=False)
    llm_timeout_s: float = 60.0
    plan_temperature: float = 0.3
    synthesize_temperature: float = 0.4
    ideas_temperature: float = 0.7

    tavily_api_key: Optional[str] = field(default=None, repr=False)
    tavily_base_url: str = DEFAULT_TAVILY_BASE_URL
    search_max_results: int = 10
    search_top_k: int = 20

    platforms: Tuple[str, ...] = DEFAULT_PLATFORMS

    db_path: str = DEFAULT_DB_PATH
    checkpoint_ns: str = ""
    history_limit: int = 100

    @classmethod
    def from_env(cls, **overrides: Any) -> "PipelineConfig":
        cfg = cls(
            llm_base_url=_env_str("TRENDPILOT_LLM_BASE_URL", DEFAULT_LLM_BASE_URL) or DEFAULT_LLM_BASE_URL,
            llm_model=_env_str("TRENDPILOT_LLM_MODEL", DEFAULT_LLM_MODEL) or DEFAULT_LLM_MODEL,
            llm_api_key=_env_str("TRENDPILOT_LLM_API_KEY") or _env_str("OPENAI_API_KEY"),
            llm_timeout_s=_env_float("TRENDPILOT_LLM_TIMEOUT_S", 60.0),
            tavily_api_key=_env_str("TAVILY_API_KEY"),
            tavily_base_url=_env_str("TRENDPILOT_TAVILY_BASE_URL", DEFAULT_TAVILY_BASE_URL) or DEFAULT_TAVILY_BASE_URL,
            search_max_results=_env_int("TRENDPILOT_SEARCH_MAX_RESULTS", 10),
            search_top_k=_env_int("TRENDPILOT_SEARCH_TOP_K", 20),
            platforms=_env_csv("TRENDPILOT_PLATFORMS", DEFAULT_PLATFORMS),
            db_path=_env_str("TRENDPILOT_DB_PATH", DEFAULT_DB_PATH) or DEFAULT_DB_PATH,
            checkpoint_ns=_env_str("TRENDPILOT_CHECKPOINT_NS", "") or "",
            history_limit=_env_int("TRENDPILOT_HISTORY_LIMIT", 100),
        )
        return cfg.with_overrides(**overrides) if overrides else cfg

    def with_overrides(self, **overrides: Any) -> "PipelineConfig":
        if "platforms" in overrides and overrides["platforms"] is not None:
            overrides["platforms"] = tuple(str(p).strip().lower() for p in overrides["platforms"])
        return replace(self, **overrides)
