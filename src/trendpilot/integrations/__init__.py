"""External capabilities (LLM, web search) consumed through injected client handles."""

from .llm_client import (
    HttpxRequestSender,
    LLMClient,
    LocalAbstractCoreLLMClient,
    RemoteLLMClient,
    extract_json_object,
    generate_structured,
)
from .search_client import SearchClient, TavilySearchClient

__all__ = [
    "LLMClient",
    "RemoteLLMClient",
    "LocalAbstractCoreLLMClient",
    "HttpxRequestSender",
    "extract_json_object",
    "generate_structured",
    "SearchClient",
    "TavilySearchClient",
]
