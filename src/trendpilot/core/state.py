"""trendpilot.core.state

Workflow state and per-field reducers.

The state threaded through the graph is a plain JSON-safe dict. Nodes return
*partial* updates; `apply_update()` folds an update into the current state
using the reducer registered for each field:

- REPLACE: last write wins (also how list fields are cleared, by writing `[]`)
- APPEND:  the update's items are appended to the current list

Every field has a default, produced fresh by `initial_state()`.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional

from .models import ThreadStatus


class Reducer(str, Enum):
    REPLACE = "replace"
    APPEND = "append"


@dataclass(frozen=True)
class Channel:
    reducer: Reducer
    default: Callable[[], Any]


DEFAULT_BRAND_CONTEXT: Dict[str, Any] = {
    "name": "Gallium",
    "voice": "Clear, sharp, slightly edgy, technical but human. No corporate fluff.",
    "target_audience": "Founders, growth leads, and small marketing teams who want to move faster with AI",
    "values": ["Speed", "Leverage", "Rigor", "Systems thinking", "Modern taste"],
    "do_list": [
        "Concrete takeaways",
        "Strong opinions backed by evidence",
        "Punchy hooks",
        "'This actually works' energy",
        "Show don't tell",
    ],
    "dont_list": [
        "Corporate speak",
        "Vague platitudes",
        "Excessive emojis",
        "Clickbait without substance",
        "Being preachy",
    ],
}


CHANNELS: Dict[str, Channel] = {
    "user_prompt": Channel(Reducer.REPLACE, lambda: ""),
    "thread_id": Channel(Reducer.REPLACE, lambda: ""),
    "refinement_feedback": Channel(Reducer.REPLACE, lambda: None),
    "research_plan": Channel(Reducer.REPLACE, lambda: None),
    "search_results": Channel(Reducer.REPLACE, list),
    "trends": Channel(Reducer.REPLACE, list),
    "ideas": Channel(Reducer.APPEND, list),
    "messages": Channel(Reducer.APPEND, list),
    "brand_context": Channel(Reducer.REPLACE, lambda: copy.deepcopy(DEFAULT_BRAND_CONTEXT)),
    "current_step": Channel(Reducer.REPLACE, lambda: ThreadStatus.IDLE.value),
    "error": Channel(Reducer.REPLACE, lambda: None),
    "hitl_status": Channel(Reducer.REPLACE, lambda: None),
}


def initial_state(channels: Optional[Dict[str, Channel]] = None) -> Dict[str, Any]:
    chans = channels if channels is not None else CHANNELS
    return {name: ch.default() for name, ch in chans.items()}


def _jsonable_enum(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def apply_update(
    state: Dict[str, Any],
    update: Optional[Dict[str, Any]],
    channels: Optional[Dict[str, Channel]] = None,
) -> Dict[str, Any]:
    """Return a new state with *update* folded in. *state* is not mutated."""
    chans = channels if channels is not None else CHANNELS
    out = copy.deepcopy(state)
    for name in chans:
        if name not in out:
            out[name] = chans[name].default()
    if not update:
        return out

    unknown = [k for k in update if k not in chans]
    if unknown:
        raise ValueError(f"Unknown state field(s): {', '.join(sorted(unknown))}")

    for name, value in update.items():
        channel = chans[name]
        value = copy.deepcopy(_jsonable_enum(value))
        if channel.reducer == Reducer.APPEND:
            if value is None:
                continue
            items: Iterable[Any] = value if isinstance(value, list) else [value]
            current = out.get(name)
            out[name] = list(current or []) + list(items)
        else:
            out[name] = value
    return out
