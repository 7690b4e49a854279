"""Recompute ``users.score`` from the submission history.

Two totalling rules exist. ``sum_all`` adds every submission's delta,
retries included; ``latest_per_task`` counts only the latest submission of
each task, as the leaderboard does. Neither rule knows about missed-task
penalties, so a rebuild drops them from the stored aggregate.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field

from contributor_tracking.data.db import transaction
from contributor_tracking.data.repositories import SubmissionRepository, UserRepository
from contributor_tracking.errors import DependencyError
from contributor_tracking.services.reporting import sum_all_submissions, sum_latest_per_task
from contributor_tracking.services.score_ledger import KIND_REBUILD, ScoreLedger

LOGGER = logging.getLogger(__name__)

POLICY_SUM_ALL = "sum_all"
POLICY_LATEST_PER_TASK = "latest_per_task"

POLICIES = {
    POLICY_SUM_ALL: sum_all_submissions,
    POLICY_LATEST_PER_TASK: sum_latest_per_task,
}


@dataclass
class RebuildSummary:
    policy: str
    totals: dict[str, int] = field(default_factory=dict)
    changed: dict[str, tuple[int, int]] = field(default_factory=dict)
    unknown_users: list[str] = field(default_factory=list)
    dry_run: bool = False


def compute_user_totals(
    con: sqlite3.Connection, policy: str = POLICY_SUM_ALL
) -> dict[str, int]:
    try:
        totaller = POLICIES[policy]
    except KeyError:
        raise ValueError(f"Unknown rebuild policy: {policy!r}") from None
    try:
        submissions = SubmissionRepository(con).list_submissions()
    except sqlite3.Error as exc:
        raise DependencyError(f"Could not load submissions: {exc}") from exc
    return totaller(submissions)


def rebuild_user_scores(
    con: sqlite3.Connection,
    policy: str = POLICY_SUM_ALL,
    dry_run: bool = False,
) -> RebuildSummary:
    totals = compute_user_totals(con, policy)
    summary = RebuildSummary(policy=policy, totals=totals, dry_run=dry_run)
    users = UserRepository(con)
    ledger = ScoreLedger(con)

    try:
        if dry_run:
            for user_id, total in totals.items():
                current = users.get_score(user_id)
                if current is None:
                    summary.unknown_users.append(user_id)
                elif current != total:
                    summary.changed[user_id] = (current, total)
            return summary

        with transaction(con):
            for user_id, total in totals.items():
                current = users.get_score(user_id)
                if current is None:
                    summary.unknown_users.append(user_id)
                    continue
                ledger.overwrite(user_id, total, KIND_REBUILD, details={"policy": policy})
                if current != total:
                    summary.changed[user_id] = (current, total)
    except sqlite3.Error as exc:
        raise DependencyError(f"Could not rebuild scores: {exc}") from exc

    for user_id in summary.unknown_users:
        LOGGER.warning("Submissions reference unknown user %s; skipped.", user_id)
    if summary.changed:
        LOGGER.warning(
            "Rebuild (%s) changed %d score(s); missed-task penalties are not included.",
            policy,
            len(summary.changed),
        )
    LOGGER.info("User scores rebuilt for %d user(s).", len(totals))
    return summary
