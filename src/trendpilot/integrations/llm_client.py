"""trendpilot.integrations.llm_client

LLM clients used by the pipeline nodes.

Design intent:
- Node code only sees the `LLMClient` protocol and JSON-safe dict results.
- Support both execution topologies:
  - remote: any OpenAI-compatible `/v1/chat/completions` endpoint (httpx)
  - local/in-process: AbstractCore's `create_llm(...).generate(...)` (optional extra)
- Structured outputs are validated with pydantic models (`generate_structured`).
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..core.errors import LLMResponseError
from ..logging import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class HttpResponse:
    body: Dict[str, Any]
    headers: Dict[str, str]


class RequestSender(Protocol):
    def post(
        self,
        url: str,
        *,
        headers: Dict[str, str],
        json: Dict[str, Any],
        timeout: float,
    ) -> Any: ...


class LLMClient(Protocol):
    def generate(
        self,
        *,
        prompt: str,
        system_prompt: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Return a JSON-safe dict with at least `content` (and optionally `data`)."""


def _jsonable(value: Any) -> Any:
    """Best-effort conversion to JSON-safe objects; unknown values become `str(value)`."""
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if is_dataclass(value) and not isinstance(value, type):
        return _jsonable(asdict(value))
    model_dump = getattr(value, "model_dump", None)
    if callable(model_dump):
        return _jsonable(model_dump())
    return str(value)


_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse the first JSON object found in *text*.

    Accepts bare JSON, ```json fenced blocks and objects embedded in prose.
    Returns None when nothing parses to a dict.
    """
    if not text:
        return None
    candidates: List[str] = []
    fenced = _FENCE_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    candidates.append(text.strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            obj = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(obj, dict):
            return obj
    return None


def generate_structured(
    llm: LLMClient,
    *,
    prompt: str,
    response_model: Type[M],
    system_prompt: Optional[str] = None,
    params: Optional[Dict[str, Any]] = None,
) -> M:
    """Ask for JSON and validate it against *response_model*.

    Clients that support native structured output return the object in `data`;
    otherwise the JSON object is extracted from `content`.
    """
    call_params = dict(params or {})
    call_params["response_model"] = response_model
    result = llm.generate(prompt=prompt, system_prompt=system_prompt, params=call_params)

    data = result.get("data") if isinstance(result, dict) else None
    if not isinstance(data, dict):
        content = result.get("content") if isinstance(result, dict) else None
        data = extract_json_object(content if isinstance(content, str) else None)
    if data is None:
        raise LLMResponseError(f"Failed to parse {response_model.__name__} from LLM response")
    try:
        return response_model.model_validate(data)
    except PydanticValidationError as e:
        raise LLMResponseError(f"Invalid {response_model.__name__}: {e.error_count()} validation error(s)") from e


class HttpxRequestSender:
    """Default request sender based on httpx (sync)."""

    def __init__(self):
        import httpx

        self._httpx = httpx

    def post(
        self,
        url: str,
        *,
        headers: Dict[str, str],
        json: Dict[str, Any],
        timeout: float,
    ) -> HttpResponse:
        resp = self._httpx.post(url, headers=headers, json=json, timeout=timeout)
        resp.raise_for_status()
        return HttpResponse(body=resp.json(), headers=dict(resp.headers))


def _unwrap_http_response(value: Any) -> Tuple[Dict[str, Any], Dict[str, str]]:
    if isinstance(value, dict):
        return value, {}
    body = getattr(value, "body", None)
    headers = getattr(value, "headers", None)
    if isinstance(body, dict) and isinstance(headers, dict):
        return body, headers
    return {"data": _jsonable(value)}, {}


class RemoteLLMClient:
    """LLM client for an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        api_key: Optional[str] = None,
        timeout_s: float = 60.0,
        headers: Optional[Dict[str, str]] = None,
        request_sender: Optional[RequestSender] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout_s = timeout_s
        self._headers = dict(headers or {})
        if api_key:
            self._headers.setdefault("Authorization", f"Bearer {api_key}")
        self._sender = request_sender or HttpxRequestSender()

    @property
    def model(self) -> str:
        return self._model

    def generate(
        self,
        *,
        prompt: str,
        system_prompt: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        params = dict(params or {})

        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        body: Dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "stream": False,
        }
        for key in ("temperature", "max_tokens", "stop", "seed"):
            if key in params and params[key] is not None:
                body[key] = params[key]
        # A pydantic class cannot travel over the wire; ask for JSON mode instead.
        if params.get("response_model") is not None:
            body["response_format"] = {"type": "json_object"}

        url = f"{self._base_url}/v1/chat/completions"
        raw = self._sender.post(url, headers=dict(self._headers), json=body, timeout=self._timeout_s)
        resp, _headers = _unwrap_http_response(raw)

        try:
            choice0 = (resp.get("choices") or [])[0]
            msg = choice0.get("message") or {}
            return {
                "content": msg.get("content"),
                "data": None,
                "usage": _jsonable(resp.get("usage")) if resp.get("usage") is not None else None,
                "model": resp.get("model"),
                "finish_reason": choice0.get("finish_reason"),
            }
        except (IndexError, AttributeError, TypeError):
            logger.warning("llm_response_unparsed", model=self._model)
            return {
                "content": None,
                "data": _jsonable(resp),
                "usage": None,
                "model": resp.get("model") if isinstance(resp, dict) else None,
                "finish_reason": None,
            }


class LocalAbstractCoreLLMClient:
    """In-process LLM client using AbstractCore's provider stack (`pip install trendpilot[abstractcore]`)."""

    def __init__(
        self,
        *,
        provider: str,
        model: str,
        llm_kwargs: Optional[Dict[str, Any]] = None,
    ):
        from abstractcore import create_llm

        self._provider = provider
        self._model = model
        self._llm = create_llm(provider, model=model, **dict(llm_kwargs or {}))

    def generate(
        self,
        *,
        prompt: str,
        system_prompt: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        params = dict(params or {})
        resp = self._llm.generate(prompt=str(prompt or ""), system_prompt=system_prompt, stream=False, **params)

        # Structured output (response_model) comes back as a pydantic instance.
        if hasattr(resp, "model_dump"):
            return {"content": None, "data": _jsonable(resp), "usage": None, "model": self._model, "finish_reason": None}

        return {
            "content": getattr(resp, "content", None),
            "data": None,
            "usage": _jsonable(getattr(resp, "usage", None)),
            "model": getattr(resp, "model", None) or self._model,
            "finish_reason": getattr(resp, "finish_reason", None),
        }
