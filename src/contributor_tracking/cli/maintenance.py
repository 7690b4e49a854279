from __future__ import annotations

import argparse
from datetime import datetime
import logging
import sys

from contributor_tracking.config import load_settings
from contributor_tracking.data.db import connect, init_db
from contributor_tracking.errors import TrackerError
from contributor_tracking.services.missed_tasks import MissedTaskDetector
from contributor_tracking.services.score_rebuild import POLICIES, POLICY_SUM_ALL, rebuild_user_scores
from contributor_tracking.services.working_time import WorkingCalendar

LOGGER = logging.getLogger(__name__)


def _parse_now(value: str | None, calendar: WorkingCalendar) -> datetime | None:
    if not value:
        return None
    try:
        return calendar.localize(datetime.fromisoformat(value))
    except ValueError as exc:
        raise ValueError("Invalid --now value (ISO 8601, e.g. 2024-03-04T17:30).") from exc


def _run_sweep(con, calendar: WorkingCalendar, now: datetime | None) -> int:
    summary = MissedTaskDetector(con, calendar=calendar).sweep(now=now)
    LOGGER.info("Summary: %s", summary.as_dict())
    return 0


def _run_rebuild(con, policy: str, dry_run: bool) -> int:
    summary = rebuild_user_scores(con, policy=policy, dry_run=dry_run)
    for user_id, (before, after) in sorted(summary.changed.items()):
        LOGGER.info("%s: %s -> %s", user_id, before, after)
    LOGGER.info(
        "Summary: policy=%s users=%d changed=%d unknown=%d dry_run=%s",
        summary.policy,
        len(summary.totals),
        len(summary.changed),
        len(summary.unknown_users),
        summary.dry_run,
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Score maintenance for the contributor tracker.")
    subparsers = parser.add_subparsers(dest="mode", required=True)

    sweep_parser = subparsers.add_parser("sweep", help="Flag and penalise missed tasks.")
    sweep_parser.add_argument("--now", help="Override the current instant (ISO 8601).")

    rebuild_parser = subparsers.add_parser("rebuild", help="Recompute user scores from submissions.")
    rebuild_parser.add_argument(
        "--policy",
        choices=sorted(POLICIES),
        default=POLICY_SUM_ALL,
        help="How submissions are totalled per user.",
    )
    rebuild_parser.add_argument("--dry-run", action="store_true", help="Report changes without writing.")

    args = parser.parse_args(argv)

    settings = load_settings()
    calendar = WorkingCalendar(tz=settings.timezone)
    con = connect(settings.db_path)
    init_db(con)

    try:
        if args.mode == "sweep":
            return _run_sweep(con, calendar, _parse_now(args.now, calendar))
        return _run_rebuild(con, args.policy, args.dry_run)
    except (TrackerError, ValueError) as exc:
        LOGGER.error("%s failed: %s", args.mode, exc)
        return 1
    finally:
        con.close()


if __name__ == "__main__":
    sys.exit(main())
