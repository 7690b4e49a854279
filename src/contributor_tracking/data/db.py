from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import sqlite3
from typing import Iterator

SCHEMA_SQL = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS users (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  role TEXT NOT NULL DEFAULT 'contributor',
  score INTEGER NOT NULL DEFAULT 0,
  created_at TEXT
);

CREATE TABLE IF NOT EXISTS tasks (
  id TEXT PRIMARY KEY,
  question_link TEXT NOT NULL,
  topic TEXT,
  answer_text TEXT,
  assigned_to TEXT NOT NULL,
  assigned_at TEXT,
  due_at TEXT,
  status TEXT NOT NULL DEFAULT 'pending',
  missed_penalty_applied INTEGER NOT NULL DEFAULT 0,
  missed_at TEXT,
  FOREIGN KEY(assigned_to) REFERENCES users(id)
);

CREATE TABLE IF NOT EXISTS submissions (
  id TEXT PRIMARY KEY,
  task_id TEXT NOT NULL,
  user_id TEXT NOT NULL,
  answer_link TEXT NOT NULL,
  submitted_at TEXT NOT NULL,
  working_minutes INTEGER NOT NULL,
  score_delta INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tasks_assigned_to
  ON tasks (assigned_to);
CREATE INDEX IF NOT EXISTS idx_submissions_user
  ON submissions (user_id);
CREATE INDEX IF NOT EXISTS idx_submissions_task
  ON submissions (task_id);
"""

def connect(db_path: Path, timeout: float = 5.0) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(db_path.as_posix(), timeout=timeout, check_same_thread=False)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys=ON;")
    return con


@contextmanager
def transaction(con: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the block inside one write transaction.

    ``BEGIN IMMEDIATE`` takes the database write lock up front, so two
    connections running the same guarded read-modify-write are serialised.
    Nothing inside the block may call ``commit()``.
    """
    con.execute("BEGIN IMMEDIATE;")
    try:
        yield con
    except BaseException:
        con.rollback()
        raise
    con.commit()


def _get_user_version(con: sqlite3.Connection) -> int:
    row = con.execute("PRAGMA user_version;").fetchone()
    return int(row[0]) if row else 0


def _set_user_version(con: sqlite3.Connection, version: int) -> None:
    con.execute(f"PRAGMA user_version = {version};")


def _column_exists(con: sqlite3.Connection, table: str, column: str) -> bool:
    cur = con.execute(f"PRAGMA table_info({table});")
    return any(row["name"] == column for row in cur.fetchall())


def _migrate_to_v2(con: sqlite3.Connection) -> None:
    # v1 databases predate the penalty guard and the score audit trail.
    if not _column_exists(con, "tasks", "missed_penalty_applied"):
        con.execute(
            "ALTER TABLE tasks ADD COLUMN missed_penalty_applied INTEGER NOT NULL DEFAULT 0;"
        )
    if not _column_exists(con, "tasks", "missed_at"):
        con.execute("ALTER TABLE tasks ADD COLUMN missed_at TEXT;")
    con.execute(
        """
        UPDATE tasks
        SET missed_penalty_applied = 1
        WHERE status = 'missed'
        """
    )
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS score_events (
          id TEXT PRIMARY KEY,
          user_id TEXT NOT NULL,
          kind TEXT NOT NULL,
          delta INTEGER NOT NULL,
          previous_score INTEGER,
          new_score INTEGER,
          task_id TEXT,
          submission_id TEXT,
          created_at TEXT NOT NULL,
          details_json TEXT
        );
        """
    )
    con.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_tasks_status
          ON tasks (status, missed_penalty_applied);
        """
    )
    con.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_score_events_user
          ON score_events (user_id, created_at);
        """
    )
    _set_user_version(con, 2)


def _migrate_to_v3(con: sqlite3.Connection) -> None:
    # Late flag recorded at submission time; older rows are backfilled from due_at.
    if not _column_exists(con, "submissions", "is_late"):
        con.execute("ALTER TABLE submissions ADD COLUMN is_late INTEGER NOT NULL DEFAULT 0;")
        con.execute(
            """
            UPDATE submissions
            SET is_late = 1
            WHERE EXISTS (
              SELECT 1 FROM tasks t
              WHERE t.id = submissions.task_id
                AND t.due_at IS NOT NULL
                AND julianday(submissions.submitted_at) > julianday(t.due_at)
            )
            """
        )
    _set_user_version(con, 3)


def init_db(con: sqlite3.Connection) -> None:
    con.executescript(SCHEMA_SQL)
    current_version = _get_user_version(con)
    if current_version < 2:
        _migrate_to_v2(con)
    if current_version < 3:
        _migrate_to_v3(con)
    con.commit()


def table_count(con: sqlite3.Connection, table: str) -> int:
    cur = con.execute(f"SELECT COUNT(1) AS n FROM {table}")
    return int(cur.fetchone()["n"])
