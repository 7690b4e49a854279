import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from contributor_tracking.data.db import transaction
from contributor_tracking.data.repositories import SubmissionRepository, UserRepository
from contributor_tracking.services.missed_tasks import MissedTaskDetector
from contributor_tracking.services.reporting import sum_latest_per_task
from contributor_tracking.services.score_ledger import ScoreLedger
from contributor_tracking.services.score_rebuild import compute_user_totals, rebuild_user_scores

from tracker_fixtures import UTC_CALENDAR, add_contributor, add_submission, add_task, at, memory_db


class RebuildUserScoresTests(unittest.TestCase):
    def setUp(self) -> None:
        self.con = memory_db()
        add_contributor(self.con, "u1", "Asha")
        add_contributor(self.con, "u2", "Bo")
        self.users = UserRepository(self.con)

    def tearDown(self) -> None:
        self.con.close()

    def _retried_task(self) -> None:
        add_submission(self.con, "A", "u1", 5, at(2024, 3, 4, 10), submission_id="s1")
        add_submission(self.con, "A", "u1", 3, at(2024, 3, 4, 15), submission_id="s2")

    def test_default_rule_sums_retries(self) -> None:
        # Retries are summed here even though the leaderboard keeps only the
        # latest submission per task (3 for this user).
        self._retried_task()

        summary = rebuild_user_scores(self.con)

        self.assertEqual(summary.policy, "sum_all")
        self.assertEqual(self.users.get_score("u1"), 8)
        self.assertEqual(summary.changed, {"u1": (0, 8)})
        self.assertNotEqual(
            self.users.get_score("u1"),
            sum_latest_per_task(SubmissionRepository(self.con).list_submissions())["u1"],
        )

    def test_latest_per_task_rule(self) -> None:
        self._retried_task()
        rebuild_user_scores(self.con, policy="latest_per_task")
        self.assertEqual(self.users.get_score("u1"), 3)

    def test_users_without_submissions_keep_their_score(self) -> None:
        add_submission(self.con, "A", "u1", 5, at(2024, 3, 4, 10))
        with transaction(self.con):
            ScoreLedger(self.con).apply_delta("u2", 7, "submission")

        summary = rebuild_user_scores(self.con)

        self.assertEqual(self.users.get_score("u2"), 7)
        self.assertNotIn("u2", summary.totals)

    def test_rebuild_drops_missed_penalties(self) -> None:
        add_task(self.con, assigned_to="u1", assigned_at=at(2024, 3, 4, 10))
        MissedTaskDetector(self.con, calendar=UTC_CALENDAR).sweep(now=at(2024, 3, 6, 9))
        add_submission(self.con, "B", "u1", 5, at(2024, 3, 7, 10))
        self.assertEqual(self.users.get_score("u1"), -5)

        rebuild_user_scores(self.con)

        self.assertEqual(self.users.get_score("u1"), 5)

    def test_dry_run_reports_without_writing(self) -> None:
        self._retried_task()
        summary = rebuild_user_scores(self.con, dry_run=True)
        self.assertEqual(summary.changed, {"u1": (0, 8)})
        self.assertEqual(self.users.get_score("u1"), 0)
        self.assertEqual(ScoreLedger(self.con).history(), [])

    def test_unknown_users_are_reported_and_skipped(self) -> None:
        add_submission(self.con, "A", "ghost", 5, at(2024, 3, 4, 10))
        summary = rebuild_user_scores(self.con)
        self.assertEqual(summary.unknown_users, ["ghost"])
        self.assertIsNone(self.users.get_score("ghost"))

    def test_overwrites_are_audited(self) -> None:
        self._retried_task()
        rebuild_user_scores(self.con)
        [event] = ScoreLedger(self.con).history("u1")
        self.assertEqual(event.kind, "rebuild")
        self.assertEqual((event.previous_score, event.new_score, event.delta), (0, 8, 8))
        self.assertEqual(event.details, {"policy": "sum_all"})

    def test_rebuild_is_idempotent(self) -> None:
        self._retried_task()
        rebuild_user_scores(self.con)
        second = rebuild_user_scores(self.con)
        self.assertEqual(second.changed, {})
        self.assertEqual(self.users.get_score("u1"), 8)

    def test_unknown_policy_rejected(self) -> None:
        with self.assertRaises(ValueError):
            compute_user_totals(self.con, policy="best_of")


if __name__ == "__main__":
    unittest.main()
