# src/taskdesk/tasks/search.py

from __future__ import annotations

from collections.abc import Iterable

from .task_models import TaskView

EXACT_TITLE = 100
TITLE_SUBSTRING = 50
DESCRIPTION_SUBSTRING = 20


def score_task(view: TaskView, query: str) -> int:
    """
    Case-insensitive relevance score:
    +100 exact title, +50 title substring, +20 description substring,
    +1 per distinct query character present in the title.
    """
    q = query.strip().lower()
    if not q:
        return 0
    title = view.task.title.lower()
    description = (view.task.description or "").lower()

    score = 0
    if title == q:
        score += EXACT_TITLE
    if q in title:
        score += TITLE_SUBSTRING
    if q in description:
        score += DESCRIPTION_SUBSTRING
    score += sum(1 for ch in set(q) if ch in title)
    return score


def fuzzy_search(views: Iterable[TaskView], query: str, *, limit: int = 10) -> list[TaskView]:
    scored = [(score_task(v, query), v) for v in views]
    scored = [(s, v) for s, v in scored if s > 0]
    # sorted() is stable: equal scores keep scan order.
    scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
    return [v for _, v in scored[: max(0, int(limit))]]
