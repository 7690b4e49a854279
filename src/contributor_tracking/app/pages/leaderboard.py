from __future__ import annotations

import sqlite3

import altair as alt
import streamlit as st

from contributor_tracking.data.repositories import SubmissionRepository, UserRepository
from contributor_tracking.services.reporting import build_leaderboard

RANK_ICONS = {1: "🥇", 2: "🥈", 3: "🥉"}


def render(con: sqlite3.Connection, current_user_id: str | None = None) -> None:
    st.header("🏆 Team leaderboard")
    st.caption("Totals count the latest submission of each task.")

    df = build_leaderboard(
        UserRepository(con).list_users(),
        SubmissionRepository(con).list_submissions(),
    )
    if df.empty:
        st.info("No contributors found.")
        return

    table = df.copy()
    table["rank"] = table["rank"].map(lambda r: RANK_ICONS.get(r, str(r)))
    table["you"] = table["user_id"].eq(current_user_id).map({True: "←", False: ""})
    table = table.drop(columns=["user_id"]).rename(
        columns={"rank": "Rank", "name": "Name", "total_score": "Total score", "you": ""}
    )
    st.dataframe(table, use_container_width=True, hide_index=True)

    chart = (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("name:N", sort=df["name"].tolist(), title=None),
            y=alt.Y("total_score:Q", title="Total score"),
            color=alt.condition(
                alt.datum.total_score < 0,
                alt.value("#E45756"),
                alt.value("#4C78A8"),
            ),
            tooltip=[
                alt.Tooltip("rank:Q", title="Rank"),
                alt.Tooltip("name:N", title="Name"),
                alt.Tooltip("total_score:Q", title="Total score"),
            ],
        )
    )
    st.altair_chart(chart, use_container_width=True)
