"""Missed-task sweep.

A pending task is missed once 17:00 on the first working day after its
assignment has passed. ``due_at`` plays no part in the cutoff. Each task is
flagged and penalised in its own write transaction, guarded by a
conditional update on ``status``/``missed_penalty_applied``, so overlapping
sweeps penalise a task at most once.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone

from contributor_tracking.data.db import transaction
from contributor_tracking.data.repositories import TaskRepository
from contributor_tracking.domain.models import MISSED_TASK_PENALTY, Task
from contributor_tracking.errors import DependencyError
from contributor_tracking.services.score_ledger import KIND_MISSED_PENALTY, ScoreLedger
from contributor_tracking.services.working_time import WorkingCalendar, default_calendar

LOGGER = logging.getLogger(__name__)


@dataclass
class SweepSummary:
    checked: int = 0
    penalized: int = 0
    not_due: int = 0
    skipped: int = 0
    penalized_task_ids: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, int]:
        return {
            "checked": self.checked,
            "penalized": self.penalized,
            "not_due": self.not_due,
            "skipped": self.skipped,
        }


class MissedTaskDetector:
    def __init__(
        self,
        con: sqlite3.Connection,
        calendar: WorkingCalendar | None = None,
        penalty: int = MISSED_TASK_PENALTY,
    ) -> None:
        self.con = con
        self.calendar = calendar or default_calendar()
        self.penalty = penalty
        self.tasks = TaskRepository(con, tz=self.calendar.tz)
        self.ledger = ScoreLedger(con)

    def find_candidates(self) -> list[Task]:
        try:
            return self.tasks.list_penalty_candidates()
        except sqlite3.Error as exc:
            raise DependencyError(f"Could not load pending tasks: {exc}") from exc

    def is_overdue(self, task: Task, now: datetime) -> bool:
        if task.assigned_at is None:
            return False
        return self.calendar.localize(now) > self.calendar.missed_cutoff(task.assigned_at)

    def apply_penalty(self, task: Task, now: datetime) -> bool:
        """Flag ``task`` as missed and charge the penalty.

        Returns False when the guard update matched no row, i.e. the task was
        submitted or already penalised since it was read.
        """
        try:
            with transaction(self.con):
                if not self.tasks.mark_missed(task.id, now):
                    return False
                self.ledger.apply_delta(
                    task.assigned_to,
                    -self.penalty,
                    KIND_MISSED_PENALTY,
                    task_id=task.id,
                )
        except sqlite3.Error as exc:
            raise DependencyError(f"Could not apply penalty to task {task.id}: {exc}") from exc
        return True

    def sweep(self, now: datetime | None = None) -> SweepSummary:
        now = self.calendar.localize(now or datetime.now(timezone.utc))
        summary = SweepSummary()
        for task in self.find_candidates():
            summary.checked += 1
            if task.assigned_at is None:
                LOGGER.warning("Task %s has no assignment time; skipped.", task.id)
                summary.skipped += 1
                continue
            if not self.is_overdue(task, now):
                summary.not_due += 1
                continue
            if self.apply_penalty(task, now):
                summary.penalized += 1
                summary.penalized_task_ids.append(task.id)
                LOGGER.info(
                    "Task %s missed by %s: -%s", task.id, task.assigned_to, self.penalty
                )
            else:
                summary.skipped += 1
        return summary


def check_and_apply_missed_penalties(
    con: sqlite3.Connection,
    now: datetime | None = None,
    calendar: WorkingCalendar | None = None,
) -> SweepSummary:
    return MissedTaskDetector(con, calendar=calendar).sweep(now=now)
