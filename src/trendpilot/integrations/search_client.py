"""trendpilot.integrations.search_client

Web search client used by the `search` node.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from .llm_client import HttpxRequestSender, RequestSender, _unwrap_http_response
from ..logging import get_logger

logger = get_logger(__name__)


class SearchClient(Protocol):
    def search(
        self,
        query: str,
        *,
        max_results: int = 10,
        search_depth: str = "advanced",
    ) -> List[Dict[str, Any]]:
        """Return result dicts with `url`, `title`, `content`, `score` and `published_date`."""


def normalize_result(raw: Dict[str, Any]) -> Dict[str, Any]:
    try:
        score = float(raw.get("score") or 0.0)
    except (TypeError, ValueError):
        score = 0.0
    return {
        "url": str(raw.get("url") or ""),
        "title": str(raw.get("title") or ""),
        "content": str(raw.get("content") or ""),
        "score": score,
        "published_date": raw.get("published_date") or None,
    }


class TavilySearchClient:
    """Tavily `/search` API client."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.tavily.com",
        timeout_s: float = 30.0,
        request_sender: Optional[RequestSender] = None,
    ):
        if not api_key:
            raise ValueError("TavilySearchClient requires an api_key")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._sender = request_sender or HttpxRequestSender()

    def search(
        self,
        query: str,
        *,
        max_results: int = 10,
        search_depth: str = "advanced",
    ) -> List[Dict[str, Any]]:
        body = {
            "api_key": self._api_key,
            "query": query,
            "search_depth": search_depth,
            "max_results": int(max_results),
        }
        raw = self._sender.post(
            f"{self._base_url}/search",
            headers={"Content-Type": "application/json"},
            json=body,
            timeout=self._timeout_s,
        )
        resp, _headers = _unwrap_http_response(raw)
        results = resp.get("results")
        if not isinstance(results, list):
            logger.warning("search_response_without_results", query=query)
            return []
        return [normalize_result(r) for r in results if isinstance(r, dict)]
