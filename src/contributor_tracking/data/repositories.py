from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone, tzinfo
from typing import Any
from uuid import uuid4

from contributor_tracking.config import load_settings
from contributor_tracking.domain.models import (
    ROLES,
    STATUS_MISSED,
    STATUS_PENDING,
    STATUS_SUBMITTED,
    ScoreEvent,
    Submission,
    Task,
    User,
)
from contributor_tracking.errors import ValidationError


def localize_instant(value: datetime | None, tz: tzinfo) -> datetime | None:
    """Read naive values as wall-clock time in ``tz``; aware values pass through."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=tz)


def format_instant(value: datetime | None, tz: tzinfo) -> str | None:
    value = localize_instant(value, tz)
    return value.isoformat() if value is not None else None


def parse_instant(value: Any, tz: tzinfo) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError:
            return None
    return localize_instant(parsed, tz)


def _user_from_row(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        role=row["role"],
        score=int(row["score"] or 0),
    )


def _task_from_row(row: sqlite3.Row, tz: tzinfo) -> Task:
    return Task(
        id=row["id"],
        question_link=row["question_link"],
        assigned_to=row["assigned_to"],
        assigned_at=parse_instant(row["assigned_at"], tz),
        due_at=parse_instant(row["due_at"], tz),
        status=row["status"],
        topic=row["topic"],
        answer_text=row["answer_text"],
        missed_penalty_applied=bool(row["missed_penalty_applied"]),
        missed_at=parse_instant(row["missed_at"], tz),
    )


def _submission_from_row(row: sqlite3.Row, tz: tzinfo) -> Submission:
    return Submission(
        id=row["id"],
        task_id=row["task_id"],
        user_id=row["user_id"],
        answer_link=row["answer_link"],
        submitted_at=parse_instant(row["submitted_at"], tz),
        working_minutes=int(row["working_minutes"]),
        score_delta=int(row["score_delta"]),
        is_late=bool(row["is_late"]),
    )


_TASK_COLUMNS = """
    id, question_link, topic, answer_text, assigned_to, assigned_at,
    due_at, status, missed_penalty_applied, missed_at
"""

_SUBMISSION_COLUMNS = """
    id, task_id, user_id, answer_link, submitted_at, working_minutes, score_delta,
    is_late
"""


class UserRepository:
    def __init__(self, con: sqlite3.Connection) -> None:
        self.con = con

    def create_user(self, name: str, role: str, user_id: str | None = None) -> User:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("User name is required.", code="missing_name")
        if role not in ROLES:
            raise ValidationError(f"Unknown role: {role!r}.", code="invalid_role")
        new_id = (user_id or "").strip() or str(uuid4())
        self.con.execute(
            """
            INSERT INTO users (id, name, role, score, created_at)
            VALUES (?, ?, ?, 0, ?)
            """,
            (new_id, clean_name, role, datetime.now(timezone.utc).isoformat()),
        )
        self.con.commit()
        return User(id=new_id, name=clean_name, role=role, score=0)

    def get_user(self, user_id: str) -> User | None:
        row = self.con.execute(
            "SELECT id, name, role, score FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()
        return _user_from_row(row) if row else None

    def list_users(self, role: str | None = None) -> list[User]:
        query = "SELECT id, name, role, score FROM users"
        params: list[Any] = []
        if role:
            query += " WHERE role = ?"
            params.append(role)
        query += " ORDER BY name ASC, id ASC"
        return [_user_from_row(row) for row in self.con.execute(query, params).fetchall()]

    def get_score(self, user_id: str) -> int | None:
        row = self.con.execute("SELECT score FROM users WHERE id = ?", (user_id,)).fetchone()
        return int(row["score"]) if row else None


class TaskRepository:
    def __init__(self, con: sqlite3.Connection, tz: tzinfo | None = None) -> None:
        self.con = con
        self.tz = tz or load_settings().timezone

    def create_task(
        self,
        question_link: str,
        assigned_to: str,
        due_at: datetime | None,
        topic: str | None = None,
        answer_text: str | None = None,
        assigned_at: datetime | None = None,
    ) -> Task:
        clean_link = (question_link or "").strip()
        if not clean_link:
            raise ValidationError("Question link is required.", code="missing_question_link")
        if not (assigned_to or "").strip():
            raise ValidationError("Task must be assigned to a user.", code="missing_assignee")
        if due_at is None:
            raise ValidationError("Due date is required.", code="missing_due_at")
        if UserRepository(self.con).get_user(assigned_to) is None:
            raise ValidationError(f"Unknown user: {assigned_to}.", code="unknown_assignee")

        task = Task(
            id=str(uuid4()),
            question_link=clean_link,
            assigned_to=assigned_to,
            assigned_at=localize_instant(assigned_at, self.tz) or datetime.now(timezone.utc),
            due_at=localize_instant(due_at, self.tz),
            status=STATUS_PENDING,
            topic=(topic or "").strip() or None,
            answer_text=answer_text or None,
        )
        self.con.execute(
            """
            INSERT INTO tasks (
                id, question_link, topic, answer_text, assigned_to,
                assigned_at, due_at, status, missed_penalty_applied
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0)
            """,
            (
                task.id,
                task.question_link,
                task.topic,
                task.answer_text,
                task.assigned_to,
                format_instant(task.assigned_at, self.tz),
                format_instant(task.due_at, self.tz),
                task.status,
            ),
        )
        self.con.commit()
        return task

    def get_task(self, task_id: str) -> Task | None:
        row = self.con.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ?",
            (task_id,),
        ).fetchone()
        return _task_from_row(row, self.tz) if row else None

    def list_tasks(self, status: str | None = None) -> list[Task]:
        query = f"SELECT {_TASK_COLUMNS} FROM tasks"
        params: list[Any] = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY assigned_at ASC, id ASC"
        return [_task_from_row(row, self.tz) for row in self.con.execute(query, params).fetchall()]

    def list_tasks_for_user(self, user_id: str) -> list[Task]:
        cur = self.con.execute(
            f"""
            SELECT {_TASK_COLUMNS}
            FROM tasks
            WHERE assigned_to = ?
            ORDER BY assigned_at DESC, id ASC
            """,
            (user_id,),
        )
        return [_task_from_row(row, self.tz) for row in cur.fetchall()]

    def list_penalty_candidates(self) -> list[Task]:
        cur = self.con.execute(
            f"""
            SELECT {_TASK_COLUMNS}
            FROM tasks
            WHERE status = ? AND missed_penalty_applied = 0
            ORDER BY assigned_at ASC, id ASC
            """,
            (STATUS_PENDING,),
        )
        return [_task_from_row(row, self.tz) for row in cur.fetchall()]

    # The two transitions below are conditional updates. They return False
    # when another writer already moved the task out of ``pending``. They do
    # not commit: the caller owns the transaction.

    def mark_submitted(self, task_id: str) -> bool:
        cur = self.con.execute(
            """
            UPDATE tasks
            SET status = ?
            WHERE id = ? AND status = ?
            """,
            (STATUS_SUBMITTED, task_id, STATUS_PENDING),
        )
        return cur.rowcount == 1

    def mark_missed(self, task_id: str, missed_at: datetime) -> bool:
        cur = self.con.execute(
            """
            UPDATE tasks
            SET status = ?, missed_penalty_applied = 1, missed_at = ?
            WHERE id = ? AND status = ? AND missed_penalty_applied = 0
            """,
            (STATUS_MISSED, format_instant(missed_at, self.tz), task_id, STATUS_PENDING),
        )
        return cur.rowcount == 1


class SubmissionRepository:
    def __init__(self, con: sqlite3.Connection, tz: tzinfo | None = None) -> None:
        self.con = con
        self.tz = tz or load_settings().timezone

    def insert_submission(self, submission: Submission) -> None:
        """Insert without committing; the caller owns the transaction."""
        self.con.execute(
            f"""
            INSERT INTO submissions ({_SUBMISSION_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                submission.id,
                submission.task_id,
                submission.user_id,
                submission.answer_link,
                format_instant(submission.submitted_at, self.tz),
                int(submission.working_minutes),
                int(submission.score_delta),
                1 if submission.is_late else 0,
            ),
        )

    def list_submissions(self) -> list[Submission]:
        cur = self.con.execute(
            f"SELECT {_SUBMISSION_COLUMNS} FROM submissions ORDER BY rowid ASC"
        )
        return [_submission_from_row(row, self.tz) for row in cur.fetchall()]

    def list_for_user(self, user_id: str) -> list[Submission]:
        cur = self.con.execute(
            f"""
            SELECT {_SUBMISSION_COLUMNS}
            FROM submissions
            WHERE user_id = ?
            ORDER BY rowid ASC
            """,
            (user_id,),
        )
        return [_submission_from_row(row, self.tz) for row in cur.fetchall()]

    def list_for_task(self, task_id: str) -> list[Submission]:
        cur = self.con.execute(
            f"""
            SELECT {_SUBMISSION_COLUMNS}
            FROM submissions
            WHERE task_id = ?
            ORDER BY rowid ASC
            """,
            (task_id,),
        )
        return [_submission_from_row(row, self.tz) for row in cur.fetchall()]


class ScoreEventRepository:
    def __init__(self, con: sqlite3.Connection) -> None:
        self.con = con

    def log_event(
        self,
        user_id: str,
        kind: str,
        delta: int,
        previous_score: int | None,
        new_score: int | None,
        task_id: str | None = None,
        submission_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> str:
        event_id = str(uuid4())
        self.con.execute(
            """
            INSERT INTO score_events (
                id, user_id, kind, delta, previous_score, new_score,
                task_id, submission_id, created_at, details_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event_id,
                user_id,
                kind,
                int(delta),
                previous_score,
                new_score,
                task_id,
                submission_id,
                datetime.now(timezone.utc).isoformat(),
                json.dumps(details, ensure_ascii=False) if details else None,
            ),
        )
        return event_id

    def list_events(self, user_id: str | None = None, limit: int = 50) -> list[ScoreEvent]:
        query = """
            SELECT id, user_id, kind, delta, previous_score, new_score,
                   task_id, submission_id, created_at, details_json
            FROM score_events
        """
        params: list[Any] = []
        if user_id:
            query += " WHERE user_id = ?"
            params.append(user_id)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(int(limit))
        events = []
        for row in self.con.execute(query, params).fetchall():
            events.append(
                ScoreEvent(
                    id=row["id"],
                    user_id=row["user_id"],
                    kind=row["kind"],
                    delta=int(row["delta"]),
                    previous_score=row["previous_score"],
                    new_score=row["new_score"],
                    task_id=row["task_id"],
                    submission_id=row["submission_id"],
                    created_at=parse_instant(row["created_at"], timezone.utc),
                    details=json.loads(row["details_json"]) if row["details_json"] else None,
                )
            )
        return events
