from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

ROLE_ADMIN = "admin"
ROLE_CONTRIBUTOR = "contributor"
ROLES = (ROLE_ADMIN, ROLE_CONTRIBUTOR)

STATUS_PENDING = "pending"
STATUS_SUBMITTED = "submitted"
STATUS_MISSED = "missed"
TASK_STATUSES = (STATUS_PENDING, STATUS_SUBMITTED, STATUS_MISSED)

MISSED_TASK_PENALTY = 5


@dataclass(frozen=True)
class User:
    id: str
    name: str
    role: str
    score: int = 0

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class Task:
    id: str
    question_link: str
    assigned_to: str
    assigned_at: datetime | None
    due_at: datetime | None = None
    status: str = STATUS_PENDING
    topic: str | None = None
    answer_text: str | None = None
    missed_penalty_applied: bool = False
    missed_at: datetime | None = None


@dataclass(frozen=True)
class Submission:
    id: str
    task_id: str
    user_id: str
    answer_link: str
    submitted_at: datetime
    working_minutes: int
    score_delta: int
    is_late: bool = False


@dataclass(frozen=True)
class ScoreEvent:
    id: str
    user_id: str
    kind: str
    delta: int
    previous_score: int | None
    new_score: int | None
    task_id: str | None
    submission_id: str | None
    created_at: datetime
    details: dict | None = None
