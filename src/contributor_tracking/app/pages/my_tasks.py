from __future__ import annotations

import sqlite3

import streamlit as st

from contributor_tracking.data.repositories import SubmissionRepository, TaskRepository
from contributor_tracking.domain.models import STATUS_MISSED, STATUS_PENDING, User
from contributor_tracking.errors import DependencyError, ValidationError
from contributor_tracking.services.reporting import latest_submission_per_task
from contributor_tracking.services.submissions import SubmissionService
from contributor_tracking.services.working_time import WorkingCalendar

STATUS_LABELS = {
    "pending": "🕒 Pending",
    "submitted": "✅ Submitted",
    "missed": "❌ Missed",
}


def render(con: sqlite3.Connection, user: User, calendar: WorkingCalendar) -> None:
    st.header("My tasks")

    task_repo = TaskRepository(con, tz=calendar.tz)
    submission_repo = SubmissionRepository(con, tz=calendar.tz)
    service = SubmissionService(con, calendar=calendar)

    tasks = task_repo.list_tasks_for_user(user.id)
    if not tasks:
        st.info("No tasks assigned.")
        return

    latest = {
        sub.task_id: sub
        for sub in latest_submission_per_task(submission_repo.list_for_user(user.id))
    }

    for task in tasks:
        with st.container(border=True):
            st.markdown(f"**Question:** [{task.question_link}]({task.question_link})")
            if task.topic:
                st.caption(f"Topic: {task.topic}")
            st.write(f"Status: {STATUS_LABELS.get(task.status, task.status)}")
            if task.assigned_at:
                cutoff = calendar.missed_cutoff(task.assigned_at)
                st.caption(
                    f"Assigned: {calendar.localize(task.assigned_at):%Y-%m-%d %H:%M}"
                    f" | Cutoff: {cutoff:%Y-%m-%d %H:%M}"
                )
            if task.answer_text:
                with st.expander("View assigned answer"):
                    st.code(task.answer_text, language=None)

            submission = latest.get(task.id)
            if submission:
                st.success(
                    f"Answer submitted {calendar.localize(submission.submitted_at):%Y-%m-%d %H:%M}"
                    f" ({submission.working_minutes} working min, {submission.score_delta:+d})"
                )
                if submission.is_late:
                    st.warning("Submitted after the due time.")
                st.markdown(f"[View posted answer]({submission.answer_link})")

            if task.status == STATUS_MISSED:
                st.error("Missed: the cutoff passed before an answer was submitted.")

            if task.status != STATUS_PENDING:
                continue

            with st.form(f"submit_{task.id}", clear_on_submit=True):
                link = st.text_input("Answer link", placeholder="Paste the posted answer link")
                submitted = st.form_submit_button("Submit")
            if not submitted:
                continue
            try:
                result = service.submit_answer(task, link, user.id)
            except ValidationError as exc:
                st.warning(str(exc))
            except DependencyError as exc:
                st.error(f"Could not save the submission: {exc}")
            else:
                st.success(f"Answer submitted ({result.score_delta:+d} points).")
                st.rerun()
