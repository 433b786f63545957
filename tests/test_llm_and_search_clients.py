from __future__ import annotations

from typing import Any, Dict, List

import pytest

from trendpilot.core.errors import LLMResponseError
from trendpilot.integrations import RemoteLLMClient, TavilySearchClient, extract_json_object, generate_structured
from trendpilot.integrations.llm_client import HttpResponse
from trendpilot.pipeline.schemas import IdeaBatch, ResearchPlan


class _Sender:
    def __init__(self, response: Any):
        self.response = response
        self.calls: List[Dict[str, Any]] = []

    def post(self, url: str, *, headers: Dict[str, str], json: Dict[str, Any], timeout: float) -> Any:
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        return self.response


@pytest.mark.basic
def test_extract_json_object_variants() -> None:
    assert extract_json_object('{"a": 1}') == {"a": 1}
    assert extract_json_object('```json\n{"a": 2}\n```') == {"a": 2}
    assert extract_json_object('Sure! {"a": {"b": 3}} Hope that helps.') == {"a": {"b": 3}}
    assert extract_json_object("[1, 2]") is None
    assert extract_json_object("no json") is None
    assert extract_json_object(None) is None


@pytest.mark.basic
def test_remote_client_posts_openai_chat_request() -> None:
    sender = _Sender(
        HttpResponse(
            body={
                "model": "gpt-test",
                "choices": [{"message": {"content": '{"keywords": ["x"]}'}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 3},
            },
            headers={},
        )
    )
    client = RemoteLLMClient(base_url="http://llm.local/", model="gpt-test", api_key="k", timeout_s=5, request_sender=sender)

    plan = generate_structured(
        client,
        prompt="AI",
        system_prompt="plan it",
        response_model=ResearchPlan,
        params={"temperature": 0.2, "max_tokens": None},
    )

    assert plan.keywords == ["x"]
    call = sender.calls[0]
    assert call["url"] == "http://llm.local/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer k"
    assert call["timeout"] == 5
    body = call["json"]
    assert body["model"] == "gpt-test"
    assert body["messages"] == [{"role": "system", "content": "plan it"}, {"role": "user", "content": "AI"}]
    assert body["temperature"] == 0.2
    assert "max_tokens" not in body
    assert body["response_format"] == {"type": "json_object"}


@pytest.mark.basic
def test_remote_client_result_shape() -> None:
    sender = _Sender({"model": "m", "choices": [{"message": {"content": "hi"}, "finish_reason": "stop"}]})
    result = RemoteLLMClient(base_url="http://llm.local", model="m", request_sender=sender).generate(prompt="hello")

    assert result == {"content": "hi", "data": None, "usage": None, "model": "m", "finish_reason": "stop"}
    assert "Authorization" not in sender.calls[0]["headers"]
    assert sender.calls[0]["json"]["messages"] == [{"role": "user", "content": "hello"}]


@pytest.mark.basic
def test_generate_structured_rejects_invalid_payload() -> None:
    class _LLM:
        def generate(self, *, prompt: str, system_prompt: Any = None, params: Any = None) -> Dict[str, Any]:
            return {"content": None, "data": {"ideas": [{"format": "post"}]}}

    with pytest.raises(LLMResponseError, match="Invalid IdeaBatch"):
        generate_structured(_LLM(), prompt="p", response_model=IdeaBatch)


@pytest.mark.basic
def test_tavily_client_posts_search_and_normalizes() -> None:
    sender = _Sender(
        {
            "results": [
                {"url": "https://a", "title": "A", "content": "c", "score": "0.8", "published_date": ""},
                {"url": "https://b", "title": None, "score": None},
                "garbage",
            ]
        }
    )
    client = TavilySearchClient(api_key="tv-key", base_url="https://api.tavily.test/", request_sender=sender)

    results = client.search("ai agents", max_results=5)

    assert results == [
        {"url": "https://a", "title": "A", "content": "c", "score": 0.8, "published_date": None},
        {"url": "https://b", "title": "", "content": "", "score": 0.0, "published_date": None},
    ]
    call = sender.calls[0]
    assert call["url"] == "https://api.tavily.test/search"
    assert call["json"] == {"api_key": "tv-key", "query": "ai agents", "search_depth": "advanced", "max_results": 5}


@pytest.mark.basic
def test_tavily_client_handles_missing_results_and_key() -> None:
    assert TavilySearchClient(api_key="k", request_sender=_Sender({"error": "quota"})).search("q") == []
    with pytest.raises(ValueError):
        TavilySearchClient(api_key="")
