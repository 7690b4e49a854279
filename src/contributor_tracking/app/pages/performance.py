from __future__ import annotations

import sqlite3

import pandas as pd
import streamlit as st

from contributor_tracking.data.repositories import (
    SubmissionRepository,
    TaskRepository,
    UserRepository,
)
from contributor_tracking.errors import TrackerError
from contributor_tracking.services.reporting import build_performance
from contributor_tracking.services.score_ledger import ScoreLedger
from contributor_tracking.services.score_rebuild import POLICIES, POLICY_SUM_ALL, rebuild_user_scores

POLICY_LABELS = {
    "sum_all": "Sum every submission (retries included)",
    "latest_per_task": "Latest submission per task",
}


def render(con: sqlite3.Connection) -> None:
    st.header("Performance")

    user_repo = UserRepository(con)
    users = user_repo.list_users()
    df = build_performance(
        users,
        TaskRepository(con).list_tasks(),
        SubmissionRepository(con).list_submissions(),
    )
    if df.empty:
        st.info("No contributor data available.")
    else:
        st.dataframe(
            df.drop(columns=["user_id"]).rename(
                columns={
                    "name": "Name",
                    "total_tasks": "Total tasks",
                    "submitted_tasks": "Submitted",
                    "missed_tasks": "Missed",
                    "late_submissions": "Late",
                    "total_score": "Total score",
                    "avg_score": "Avg score",
                    "last_submission": "Last submission",
                }
            ),
            use_container_width=True,
            hide_index=True,
        )

    st.divider()
    st.subheader("Rebuild scores")
    st.caption(
        "Overwrites stored scores with totals computed from submissions. "
        "Missed-task penalties are not part of the totals and will be dropped."
    )
    policy = st.radio(
        "Totalling rule",
        list(POLICIES),
        index=list(POLICIES).index(POLICY_SUM_ALL),
        format_func=lambda p: POLICY_LABELS.get(p, p),
        horizontal=True,
    )
    c1, c2 = st.columns(2)
    preview = c1.button("Preview")
    apply = c2.button("Rebuild", type="primary")
    if preview or apply:
        try:
            summary = rebuild_user_scores(con, policy=policy, dry_run=preview)
        except TrackerError as exc:
            st.error(str(exc))
        else:
            names = {u.id: u.name for u in users}
            if summary.changed:
                st.dataframe(
                    pd.DataFrame(
                        [
                            {"Name": names.get(uid, uid), "Stored": before, "Rebuilt": after}
                            for uid, (before, after) in summary.changed.items()
                        ]
                    ),
                    use_container_width=True,
                    hide_index=True,
                )
            else:
                st.caption("No score changes.")
            if apply:
                st.success("Scores rebuilt.")

    st.subheader("Score history")
    events = ScoreLedger(con).history(limit=100)
    if not events:
        st.caption("No score changes recorded.")
        return
    names = {u.id: u.name for u in users}
    st.dataframe(
        pd.DataFrame(
            [
                {
                    "When": e.created_at,
                    "User": names.get(e.user_id, e.user_id),
                    "Kind": e.kind,
                    "Delta": e.delta,
                    "Before": e.previous_score,
                    "After": e.new_score,
                    "Task": e.task_id or "—",
                }
                for e in events
            ]
        ),
        use_container_width=True,
        hide_index=True,
    )
