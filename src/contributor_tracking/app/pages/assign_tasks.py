from __future__ import annotations

from datetime import datetime, time, timedelta
import sqlite3

import pandas as pd
import streamlit as st

from contributor_tracking.data.repositories import TaskRepository, UserRepository
from contributor_tracking.domain.models import ROLE_CONTRIBUTOR, ROLES
from contributor_tracking.errors import ValidationError
from contributor_tracking.services.working_time import WorkingCalendar


def render(con: sqlite3.Connection, calendar: WorkingCalendar) -> None:
    st.header("Assign tasks")

    user_repo = UserRepository(con)
    task_repo = TaskRepository(con, tz=calendar.tz)

    contributors = user_repo.list_users(role=ROLE_CONTRIBUTOR)
    names = {u.id: u.name for u in contributors}

    if contributors:
        with st.form("assign_task", clear_on_submit=True):
            question_link = st.text_input("Question link")
            topic = st.text_input("Topic (optional)")
            answer_text = st.text_area("Answer draft (optional)", height=160)
            assigned_to = st.selectbox(
                "Assign to",
                [u.id for u in contributors],
                format_func=lambda uid: names.get(uid, uid),
            )
            c1, c2 = st.columns(2)
            due_date = c1.date_input("Due date", value=datetime.now(calendar.tz).date() + timedelta(days=1))
            due_time = c2.time_input("Due time", value=time(17, 0))
            submitted = st.form_submit_button("Assign")
        if submitted:
            due_at = datetime.combine(due_date, due_time, tzinfo=calendar.tz) if due_date else None
            try:
                task = task_repo.create_task(
                    question_link,
                    assigned_to,
                    due_at,
                    topic=topic,
                    answer_text=answer_text,
                )
            except ValidationError as exc:
                st.warning(str(exc))
            else:
                st.success(f"Task assigned to {names.get(task.assigned_to, task.assigned_to)}.")
    else:
        st.info("No contributors yet. Add one below.")

    st.divider()
    st.subheader("Users")
    with st.form("add_user", clear_on_submit=True):
        c1, c2, c3 = st.columns([1.4, 1.2, 0.8])
        name = c1.text_input("Name")
        user_id = c2.text_input("User id token (optional)")
        role = c3.selectbox("Role", list(ROLES), index=list(ROLES).index(ROLE_CONTRIBUTOR))
        add_clicked = st.form_submit_button("Add user")
    if add_clicked:
        try:
            user = user_repo.create_user(name, role, user_id=user_id)
        except ValidationError as exc:
            st.warning(str(exc))
        except sqlite3.IntegrityError:
            st.warning("A user with this id already exists.")
        else:
            st.success(f"User {user.name} added (id: {user.id}).")

    st.subheader("All tasks")
    tasks = task_repo.list_tasks()
    if not tasks:
        st.caption("No tasks yet.")
        return
    all_names = {u.id: u.name for u in user_repo.list_users()}
    df = pd.DataFrame(
        [
            {
                "Question": t.question_link,
                "Topic": t.topic or "—",
                "Assigned to": all_names.get(t.assigned_to, t.assigned_to),
                "Assigned at": calendar.localize(t.assigned_at) if t.assigned_at else None,
                "Due": calendar.localize(t.due_at) if t.due_at else None,
                "Status": t.status,
            }
            for t in tasks
        ]
    )
    st.dataframe(df, use_container_width=True, hide_index=True)
