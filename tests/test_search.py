# tests/test_search.py

from __future__ import annotations

import pytest

from taskdesk.tasks.search import fuzzy_search, score_task
from taskdesk.tasks.task_models import Task, TaskStatus, TaskView


def _view(task_id: int, title: str, description: str = "No description") -> TaskView:
    task = Task(
        id=task_id,
        title=title,
        description=description,
        due_at=None,
        status=TaskStatus.PENDING,
        created_by="a",
        created_at=0.0,
        assigned_to=["@a:test"],
    )
    return TaskView(task=task, user_id="@a:test")


def test_score_components() -> None:
    # "ab": exact + substring + 2 distinct chars
    assert score_task(_view(1, "AB"), "ab") == 100 + 50 + 2
    # substring in description only; "x" not in title
    assert score_task(_view(2, "title", "find x here"), "x") == 20
    # single matching char
    assert score_task(_view(3, "zeta"), "q z") == 1
    assert score_task(_view(4, "anything"), "   ") == 0


def test_results_sorted_by_score_and_limited() -> None:
    views = [
        _view(1, "quarterly report draft"),
        _view(2, "report"),
        _view(3, "unrelated", "see the report"),
        _view(4, "zzz"),
    ]

    hits = fuzzy_search(views, "report", limit=10)
    assert [v.task.id for v in hits][:3] == [2, 1, 3]
    assert 4 not in [v.task.id for v in hits]

    assert [v.task.id for v in fuzzy_search(views, "report", limit=1)] == [2]


def test_ties_keep_scan_order() -> None:
    views = [_view(10, "alpha task"), _view(11, "beta task"), _view(12, "gamma task")]
    assert [v.task.id for v in fuzzy_search(views, "task")] == [10, 11, 12]


@pytest.mark.asyncio
async def test_store_search_respects_scope(store) -> None:
    await store.create(creator_id="@a:test", creator_name="a", title="deploy api")
    await store.create(creator_id="@b:test", creator_name="b", title="deploy web")

    everyone = store.fuzzy_search("deploy")
    assert len(everyone) == 2

    mine = store.fuzzy_search("deploy", principal_id="@a:test", privileged=False)
    assert [v.task.title for v in mine] == ["deploy api"]
