from __future__ import annotations

from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import streamlit as st

import contributor_tracking
from contributor_tracking.config import load_settings
from contributor_tracking.data.db import connect, init_db
from contributor_tracking.data.repositories import UserRepository
from contributor_tracking.errors import TrackerError
from contributor_tracking.services.missed_tasks import MissedTaskDetector
from contributor_tracking.services.working_time import WorkingCalendar
from contributor_tracking.app.pages import (
    assign_tasks,
    leaderboard,
    my_tasks,
    performance,
)

st.set_page_config(page_title="Contributor tracker", layout="wide")

# --- DB init (globally, once per script run) ---
settings = load_settings()
calendar = WorkingCalendar(tz=settings.timezone)

con = connect(settings.db_path)
init_db(con)

# --- Sidebar: caller identity (opaque user id token) ---
st.sidebar.title("Contributor tracker")

params = st.query_params
default_token = st.session_state.get("user_id") or params.get("user") or ""
user_id = st.sidebar.text_input("User id", value=default_token).strip()
st.session_state["user_id"] = user_id

user = UserRepository(con).get_user(user_id) if user_id else None

st.sidebar.markdown(
    f"""
    <style>
    [data-testid="stSidebar"] .build-info {{
        position: fixed;
        bottom: 0.5rem;
        left: 1rem;
        color: #6c757d;
        font-size: 0.75rem;
    }}
    </style>
    <div class="build-info">Build: {contributor_tracking.__version__} · TZ: {settings.timezone.key}</div>
    """,
    unsafe_allow_html=True,
)

# --- Missed-task sweep on every dashboard load ---
if settings.sweep_on_load:
    try:
        sweep = MissedTaskDetector(con, calendar=calendar).sweep()
    except TrackerError as exc:
        st.sidebar.error(f"Missed-task check failed: {exc}")
    else:
        if sweep.penalized:
            st.sidebar.warning(f"{sweep.penalized} task(s) marked as missed.")

if user is None:
    if user_id:
        st.sidebar.error("Unknown user id.")
    st.header("Welcome")
    st.write("Enter your user id in the sidebar to continue.")
    leaderboard.render(con)
    st.stop()

st.sidebar.write(f"Signed in as **{user.name}** ({user.role})")
st.sidebar.metric("Score", user.score)

if user.is_admin:
    PAGES = {
        "Assign tasks": lambda: assign_tasks.render(con, calendar),
        "Performance": lambda: performance.render(con),
        "Leaderboard": lambda: leaderboard.render(con, user.id),
    }
else:
    PAGES = {
        "My tasks": lambda: my_tasks.render(con, user, calendar),
        "Leaderboard": lambda: leaderboard.render(con, user.id),
    }

selected = st.sidebar.radio("Pages", list(PAGES.keys()), key="sidebar_page")

# --- Render selected page ---
PAGES[selected]()
