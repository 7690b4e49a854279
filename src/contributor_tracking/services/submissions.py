from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from uuid import uuid4

from contributor_tracking.data.db import transaction
from contributor_tracking.data.repositories import SubmissionRepository, TaskRepository
from contributor_tracking.domain.models import STATUS_PENDING, Submission, Task
from contributor_tracking.errors import DependencyError, ValidationError
from contributor_tracking.services.score_ledger import KIND_SUBMISSION, ScoreLedger
from contributor_tracking.services.scoring import resolve_score
from contributor_tracking.services.working_time import WorkingCalendar, default_calendar

LOGGER = logging.getLogger(__name__)


def _validate(task: Task | None, link: str, acting_user_id: str) -> str:
    if task is None:
        raise ValidationError("Task does not exist.", code="task_not_found")
    if task.status != STATUS_PENDING:
        raise ValidationError(
            f"Task is already {task.status}; only pending tasks accept answers.",
            code="task_not_pending",
        )
    clean_link = (link or "").strip()
    if not clean_link:
        raise ValidationError("Paste the answer link before submitting.", code="empty_link")
    if task.assigned_at is None:
        raise ValidationError("Task has no assignment time.", code="missing_assigned_at")
    if task.assigned_to != acting_user_id:
        raise ValidationError("Task is assigned to another user.", code="not_assignee")
    return clean_link


class SubmissionService:
    def __init__(self, con: sqlite3.Connection, calendar: WorkingCalendar | None = None) -> None:
        self.con = con
        self.calendar = calendar or default_calendar()
        self.tasks = TaskRepository(con, tz=self.calendar.tz)
        self.submissions = SubmissionRepository(con, tz=self.calendar.tz)
        self.ledger = ScoreLedger(con)

    def submit_answer(
        self,
        task: Task,
        link: str,
        acting_user_id: str,
        now: datetime | None = None,
    ) -> Submission:
        """Record an answer link for a pending task and credit the score delta.

        The submission insert, the ``pending -> submitted`` transition and the
        score increment commit together. The task row is re-read inside the
        write transaction, so a task that was submitted or flagged missed by
        another writer is rejected instead of being scored twice.
        """
        clean_link = _validate(task, link, acting_user_id)
        submitted_at = self.calendar.localize(now or datetime.now(timezone.utc))

        try:
            with transaction(self.con):
                current = self.tasks.get_task(task.id)
                _validate(current, clean_link, acting_user_id)

                working_minutes = self.calendar.working_minutes_between(
                    current.assigned_at, submitted_at
                )
                submission = Submission(
                    id=str(uuid4()),
                    task_id=current.id,
                    user_id=acting_user_id,
                    answer_link=clean_link,
                    submitted_at=submitted_at,
                    working_minutes=working_minutes,
                    score_delta=resolve_score(working_minutes),
                    is_late=current.due_at is not None and submitted_at > current.due_at,
                )
                self.submissions.insert_submission(submission)
                if not self.tasks.mark_submitted(current.id):
                    raise ValidationError(
                        "Task is no longer pending.", code="task_not_pending"
                    )
                self.ledger.apply_delta(
                    acting_user_id,
                    submission.score_delta,
                    KIND_SUBMISSION,
                    task_id=current.id,
                    submission_id=submission.id,
                )
        except sqlite3.Error as exc:
            LOGGER.error("Submission for task %s failed: %s", task.id, exc)
            raise DependencyError(f"Could not record submission: {exc}") from exc

        LOGGER.info(
            "Task %s submitted by %s: %s working minutes, delta %+d",
            submission.task_id,
            acting_user_id,
            submission.working_minutes,
            submission.score_delta,
        )
        return submission


def submit_answer(
    con: sqlite3.Connection,
    task: Task,
    link: str,
    acting_user_id: str,
    now: datetime | None = None,
    calendar: WorkingCalendar | None = None,
) -> Submission:
    return SubmissionService(con, calendar=calendar).submit_answer(
        task, link, acting_user_id, now=now
    )
