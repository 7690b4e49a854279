import sys
import unittest
from datetime import timedelta, timezone
from pathlib import Path

import pandas as pd

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from contributor_tracking.domain.models import Submission, Task, User
from contributor_tracking.services import reporting

from tracker_fixtures import at


def _sub(sub_id, task_id, user_id, delta, submitted_at, is_late=False):
    return Submission(
        id=sub_id,
        task_id=task_id,
        user_id=user_id,
        answer_link="https://x",
        submitted_at=submitted_at,
        working_minutes=0,
        score_delta=delta,
        is_late=is_late,
    )


def _task(task_id, user_id, status):
    return Task(
        id=task_id,
        question_link="https://q",
        assigned_to=user_id,
        assigned_at=at(2024, 3, 4, 9),
        status=status,
    )


class LatestSubmissionPerTaskTests(unittest.TestCase):
    def test_latest_wins_regardless_of_order(self) -> None:
        newer = _sub("s2", "A", "u1", 3, at(2024, 3, 4, 15))
        older = _sub("s1", "A", "u1", 5, at(2024, 3, 4, 10))
        other = _sub("s3", "B", "u1", 1, at(2024, 3, 4, 11))
        kept = reporting.latest_submission_per_task([newer, older, other])
        self.assertEqual([s.id for s in kept], ["s2", "s3"])

    def test_offsets_compare_as_instants(self) -> None:
        ist = timezone(timedelta(hours=5, minutes=30))
        utc_first = _sub("s1", "A", "u1", 5, at(2024, 3, 4, 10))
        # 14:00 at UTC+05:30 is 08:30 UTC, i.e. earlier.
        local_later_wall_clock = _sub("s2", "A", "u1", 3, at(2024, 3, 4, 14).replace(tzinfo=ist))
        kept = reporting.latest_submission_per_task([utc_first, local_later_wall_clock])
        self.assertEqual([s.id for s in kept], ["s1"])

    def test_equal_timestamps_keep_the_first_stored(self) -> None:
        first = _sub("s1", "A", "u1", 5, at(2024, 3, 4, 10))
        second = _sub("s2", "A", "u1", -3, at(2024, 3, 4, 10))
        kept = reporting.latest_submission_per_task([first, second])
        self.assertEqual([s.id for s in kept], ["s1"])
        self.assertEqual(reporting.sum_latest_per_task([first, second]), {"u1": 5})

    def test_totals_by_rule(self) -> None:
        subs = [
            _sub("s1", "A", "u1", 5, at(2024, 3, 4, 10)),
            _sub("s2", "A", "u1", 3, at(2024, 3, 4, 15)),
            _sub("s3", "B", "u2", -3, at(2024, 3, 4, 16)),
        ]
        self.assertEqual(reporting.sum_all_submissions(subs), {"u1": 8, "u2": -3})
        self.assertEqual(reporting.sum_latest_per_task(subs), {"u1": 3, "u2": -3})


class LeaderboardTests(unittest.TestCase):
    def test_contributors_ranked_by_deduplicated_total(self) -> None:
        users = [
            User(id="admin", name="Root", role="admin"),
            User(id="u1", name="Asha", role="contributor", score=8),
            User(id="u2", name="Bo", role="contributor"),
            User(id="u3", name="Cy", role="contributor"),
        ]
        subs = [
            _sub("s1", "A", "u1", 5, at(2024, 3, 4, 10)),
            _sub("s2", "A", "u1", 3, at(2024, 3, 4, 15)),
            _sub("s3", "B", "u2", 5, at(2024, 3, 4, 11)),
            _sub("s4", "C", "admin", 5, at(2024, 3, 4, 11)),
        ]
        df = reporting.build_leaderboard(users, subs)
        self.assertEqual(list(df.columns), reporting.LEADERBOARD_COLUMNS)
        self.assertEqual(df["user_id"].tolist(), ["u2", "u1", "u3"])
        self.assertEqual(df["total_score"].tolist(), [5, 3, 0])
        self.assertEqual(df["rank"].tolist(), [1, 2, 3])

    def test_empty_leaderboard(self) -> None:
        df = reporting.build_leaderboard([User(id="admin", name="Root", role="admin")], [])
        self.assertTrue(df.empty)
        self.assertEqual(list(df.columns), reporting.LEADERBOARD_COLUMNS)


class PerformanceTests(unittest.TestCase):
    def test_per_contributor_figures(self) -> None:
        users = [
            User(id="u1", name="Asha", role="contributor", score=-2),
            User(id="u2", name="Bo", role="contributor"),
        ]
        tasks = [
            _task("A", "u1", "submitted"),
            _task("B", "u1", "missed"),
            _task("C", "u1", "pending"),
        ]
        subs = [
            _sub("s1", "A", "u1", 5, at(2024, 3, 4, 10)),
            _sub("s2", "A", "u1", -3, at(2024, 3, 5, 10), is_late=True),
            _sub("s3", "D", "u1", 1, at(2024, 3, 4, 12)),
        ]
        df = reporting.build_performance(users, tasks, subs).set_index("user_id")

        self.assertEqual(df.loc["u1", "total_tasks"], 3)
        self.assertEqual(df.loc["u1", "submitted_tasks"], 1)
        self.assertEqual(df.loc["u1", "missed_tasks"], 1)
        self.assertEqual(df.loc["u1", "late_submissions"], 1)
        self.assertEqual(df.loc["u1", "total_score"], -2)
        self.assertAlmostEqual(df.loc["u1", "avg_score"], 1.0)
        self.assertEqual(df.loc["u1", "last_submission"], at(2024, 3, 5, 10))

        self.assertEqual(df.loc["u2", "total_tasks"], 0)
        self.assertEqual(df.loc["u2", "late_submissions"], 0)
        self.assertAlmostEqual(df.loc["u2", "avg_score"], 0.0)
        self.assertTrue(pd.isna(df.loc["u2", "last_submission"]))


if __name__ == "__main__":
    unittest.main()
