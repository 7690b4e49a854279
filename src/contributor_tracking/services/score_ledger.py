"""Single write path for ``users.score``.

Every change goes through :class:`ScoreLedger`, which applies it as an
atomic in-database increment (or, for the rebuilder, a deliberate
overwrite) and records a ``score_events`` row next to it. Ledger calls do
not commit; run them inside :func:`contributor_tracking.data.db.transaction`.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Any

from contributor_tracking.data.repositories import ScoreEventRepository, UserRepository
from contributor_tracking.domain.models import ScoreEvent
from contributor_tracking.errors import DependencyError

LOGGER = logging.getLogger(__name__)

KIND_SUBMISSION = "submission"
KIND_MISSED_PENALTY = "missed_penalty"
KIND_REBUILD = "rebuild"


class ScoreLedger:
    def __init__(self, con: sqlite3.Connection) -> None:
        self.con = con
        self.users = UserRepository(con)
        self.events = ScoreEventRepository(con)

    def apply_delta(
        self,
        user_id: str,
        delta: int,
        kind: str,
        task_id: str | None = None,
        submission_id: str | None = None,
    ) -> int:
        cur = self.con.execute(
            "UPDATE users SET score = score + ? WHERE id = ?",
            (int(delta), user_id),
        )
        if cur.rowcount != 1:
            raise DependencyError(f"User not found: {user_id}", code="user_not_found")
        new_score = self.users.get_score(user_id)
        self.events.log_event(
            user_id,
            kind,
            delta,
            previous_score=new_score - int(delta),
            new_score=new_score,
            task_id=task_id,
            submission_id=submission_id,
        )
        LOGGER.info("Score %+d for user %s (%s) -> %s", delta, user_id, kind, new_score)
        return new_score

    def overwrite(
        self,
        user_id: str,
        score: int,
        kind: str = KIND_REBUILD,
        details: dict[str, Any] | None = None,
    ) -> int:
        previous = self.users.get_score(user_id)
        if previous is None:
            raise DependencyError(f"User not found: {user_id}", code="user_not_found")
        self.con.execute("UPDATE users SET score = ? WHERE id = ?", (int(score), user_id))
        self.events.log_event(
            user_id,
            kind,
            int(score) - previous,
            previous_score=previous,
            new_score=int(score),
            details=details,
        )
        if previous != score:
            LOGGER.info("Score for user %s overwritten: %s -> %s", user_id, previous, score)
        return previous

    def history(self, user_id: str | None = None, limit: int = 50) -> list[ScoreEvent]:
        return self.events.list_events(user_id=user_id, limit=limit)
