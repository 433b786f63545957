from __future__ import annotations

import pytest

from trendpilot.core.models import ThreadStatus
from trendpilot.core.state import DEFAULT_BRAND_CONTEXT, apply_update, initial_state


def test_initial_state_has_fresh_defaults() -> None:
    a = initial_state()
    b = initial_state()

    assert a["current_step"] == "idle"
    assert a["trends"] == [] and a["ideas"] == []
    assert a["hitl_status"] is None
    assert a["brand_context"] == DEFAULT_BRAND_CONTEXT

    a["trends"].append({"title": "x"})
    a["brand_context"]["name"] = "Other"
    assert b["trends"] == []
    assert b["brand_context"]["name"] == DEFAULT_BRAND_CONTEXT["name"]


def test_append_fields_accumulate_and_replace_fields_overwrite() -> None:
    state = initial_state()
    state = apply_update(state, {"ideas": [{"hook": "a"}], "trends": [{"title": "t1"}]})
    state = apply_update(state, {"ideas": [{"hook": "b"}], "trends": [{"title": "t2"}]})

    assert [i["hook"] for i in state["ideas"]] == ["a", "b"]
    assert [t["title"] for t in state["trends"]] == ["t2"]


def test_replace_with_empty_list_clears_field() -> None:
    state = apply_update(initial_state(), {"search_results": [{"url": "u"}]})
    state = apply_update(state, {"search_results": []})
    assert state["search_results"] == []


def test_apply_update_does_not_mutate_input() -> None:
    before = initial_state()
    after = apply_update(before, {"messages": [{"role": "user"}], "user_prompt": "hi"})

    assert before["messages"] == []
    assert before["user_prompt"] == ""
    assert after["user_prompt"] == "hi"


def test_enum_values_are_stored_as_plain_strings() -> None:
    state = apply_update(initial_state(), {"current_step": ThreadStatus.SEARCHING})
    assert state["current_step"] == "searching"
    assert type(state["current_step"]) is str


def test_unknown_fields_are_rejected() -> None:
    with pytest.raises(ValueError, match="bogus"):
        apply_update(initial_state(), {"bogus": 1})
