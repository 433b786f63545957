from __future__ import annotations

from pathlib import Path

import pytest

from trendpilot.core.errors import ThreadNotFoundError
from trendpilot.core.models import IdeaRecord, MessageRecord, MessageRole, MessageType, Thread, ThreadStatus
from trendpilot.storage import Stores


@pytest.mark.basic
def test_thread_store_updates(stores: Stores) -> None:
    thread = stores.threads.create(Thread.new("AI in marketing"))

    stores.threads.update_status(thread.thread_id, ThreadStatus.SEARCHING)
    stores.threads.set_refinement_feedback(thread.thread_id, "more B2B")

    got = stores.threads.get(thread.thread_id)
    assert got is not None
    assert got.status == ThreadStatus.SEARCHING
    assert got.refinement_feedback == "more B2B"
    assert got.user_prompt == "AI in marketing"

    with pytest.raises(ThreadNotFoundError):
        stores.threads.update_status("missing", ThreadStatus.ERROR)
    assert stores.threads.get("missing") is None


@pytest.mark.basic
def test_trend_store_keeps_order(stores: Stores) -> None:
    created = stores.trends.create_batch(
        "t1",
        [
            {"title": "B", "summary": "s", "why_it_matters": "w", "confidence": "low", "sources": [{"url": "u"}]},
            {"title": "A", "summary": "s", "why_it_matters": "w"},
        ],
    )
    assert [t.order for t in created] == [0, 1]
    assert created[1].confidence == "medium"

    listed = stores.trends.list_by_thread("t1")
    assert [t.title for t in listed] == ["B", "A"]
    assert listed[0].sources == [{"url": "u"}]
    assert listed[0].to_state()["why_it_matters"] == "w"

    assert stores.trends.delete_by_thread("t1") == 2
    assert stores.trends.list_by_thread("t1") == []


@pytest.mark.basic
def test_idea_store_filters_by_platform(stores: Stores) -> None:
    for platform in ("linkedin", "twitter", "linkedin"):
        stores.ideas.create(
            IdeaRecord(
                idea_id="",
                thread_id="t1",
                trend_ids=["tr1"],
                platform=platform,
                hook="h",
                format="post",
                angle="a",
                description="d",
            )
        )

    ideas = stores.ideas.list_by_thread("t1")
    assert [i.platform for i in ideas] == ["linkedin", "twitter", "linkedin"]
    assert all(i.idea_id for i in ideas)
    assert len(stores.ideas.list_by_thread("t1", platform="linkedin")) == 2
    assert stores.ideas.delete_by_thread("t1") == 3


@pytest.mark.basic
def test_message_store_appends_in_order(stores: Stores) -> None:
    stores.messages.append(MessageRecord("t1", MessageRole.USER, "hi", MessageType.USER_INPUT))
    stores.messages.append(
        MessageRecord("t1", MessageRole.ASSISTANT, "working", MessageType.STATUS_UPDATE, {"step": "planning"})
    )

    messages = stores.messages.list_by_thread("t1")
    assert [m.content for m in messages] == ["hi", "working"]
    assert messages[1].role == MessageRole.ASSISTANT
    assert messages[1].metadata == {"step": "planning"}


def test_sqlite_records_survive_reopen(tmp_path: Path) -> None:
    path = tmp_path / "records.sqlite3"
    first = Stores.sqlite(path)
    thread = first.threads.create(Thread.new("persist me"))
    first.trends.create_batch(thread.thread_id, [{"title": "T", "summary": "s"}])

    second = Stores.sqlite(path)
    assert second.threads.get(thread.thread_id).user_prompt == "persist me"
    assert [t.title for t in second.trends.list_by_thread(thread.thread_id)] == ["T"]
