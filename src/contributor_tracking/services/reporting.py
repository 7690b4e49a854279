from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Iterable

import pandas as pd

from contributor_tracking.domain.models import (
    ROLE_CONTRIBUTOR,
    STATUS_MISSED,
    STATUS_SUBMITTED,
    Submission,
    Task,
    User,
)

LEADERBOARD_COLUMNS = ["rank", "user_id", "name", "total_score"]
PERFORMANCE_COLUMNS = [
    "user_id",
    "name",
    "total_tasks",
    "submitted_tasks",
    "missed_tasks",
    "late_submissions",
    "total_score",
    "avg_score",
    "last_submission",
]


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _stamp(submission: Submission) -> datetime:
    return submission.submitted_at or _EPOCH


def latest_submission_per_task(submissions: Iterable[Submission]) -> list[Submission]:
    """Keep one submission per (user, task): the one with the latest ``submitted_at``.

    On equal timestamps the submission seen first (stored earlier) is kept.
    Order of first appearance is preserved.
    """
    latest: dict[tuple[str, str], Submission] = {}
    for submission in submissions:
        key = (submission.user_id, submission.task_id)
        existing = latest.get(key)
        if existing is None or _stamp(submission) > _stamp(existing):
            latest[key] = submission
    return list(latest.values())


def sum_all_submissions(submissions: Iterable[Submission]) -> dict[str, int]:
    totals: dict[str, int] = defaultdict(int)
    for submission in submissions:
        if not submission.user_id:
            continue
        totals[submission.user_id] += int(submission.score_delta)
    return dict(totals)


def sum_latest_per_task(submissions: Iterable[Submission]) -> dict[str, int]:
    return sum_all_submissions(latest_submission_per_task(submissions))


def build_leaderboard(users: Iterable[User], submissions: Iterable[Submission]) -> pd.DataFrame:
    totals = sum_latest_per_task(submissions)
    rows = [
        {"user_id": user.id, "name": user.name, "total_score": totals.get(user.id, 0)}
        for user in users
        if user.role == ROLE_CONTRIBUTOR
    ]
    if not rows:
        return pd.DataFrame(columns=LEADERBOARD_COLUMNS)
    df = pd.DataFrame(rows)
    df = df.sort_values("total_score", ascending=False, kind="stable").reset_index(drop=True)
    df.insert(0, "rank", range(1, len(df) + 1))
    return df[LEADERBOARD_COLUMNS]


def build_performance(
    users: Iterable[User],
    tasks: Iterable[Task],
    submissions: Iterable[Submission],
) -> pd.DataFrame:
    tasks_by_user: dict[str, list[Task]] = defaultdict(list)
    for task in tasks:
        tasks_by_user[task.assigned_to].append(task)
    subs_by_user: dict[str, list[Submission]] = defaultdict(list)
    for submission in submissions:
        subs_by_user[submission.user_id].append(submission)

    rows = []
    for user in users:
        if user.role != ROLE_CONTRIBUTOR:
            continue
        user_tasks = tasks_by_user.get(user.id, [])
        user_subs = subs_by_user.get(user.id, [])
        avg_score = 0.0
        if user_subs:
            avg_score = round(sum(s.score_delta for s in user_subs) / len(user_subs), 2)
        stamps = [s.submitted_at for s in user_subs if s.submitted_at is not None]
        rows.append(
            {
                "user_id": user.id,
                "name": user.name,
                "total_tasks": len(user_tasks),
                "submitted_tasks": sum(1 for t in user_tasks if t.status == STATUS_SUBMITTED),
                "missed_tasks": sum(1 for t in user_tasks if t.status == STATUS_MISSED),
                "late_submissions": sum(1 for s in user_subs if s.is_late),
                "total_score": user.score,
                "avg_score": avg_score,
                "last_submission": max(stamps) if stamps else None,
            }
        )
    if not rows:
        return pd.DataFrame(columns=PERFORMANCE_COLUMNS)
    return pd.DataFrame(rows, columns=PERFORMANCE_COLUMNS)
