# pages/99_Admin_Logs.py
from __future__ import annotations

from datetime import date, datetime, time as dtime, timedelta
from typing import Optional, Tuple

import pandas as pd
import streamlit as st
from pymongo.errors import PyMongoError

from ost_audit import LOG_COLUMNS, read_logs
from ost_db import APP_TZ, today_local
from ost_ui import require_admin, require_login, setup_page

# =========================
# Page config
# =========================
setup_page("Admin – User Activity Logs", "🛡️")

actor = require_login("99_Admin_Logs")
require_admin(actor)


# =========================
# Helpers
# =========================
def _daterange_to_local_dt(d1: date, d2: date) -> Tuple[datetime, datetime]:
    start_dt = datetime.combine(d1, dtime.min).replace(tzinfo=APP_TZ)
    end_dt = datetime.combine(d2, dtime.max).replace(tzinfo=APP_TZ)
    return start_dt, end_dt


# =========================
# Filters (with quick ranges)
# =========================
today = today_local()
pr1, pr2, pr3, pr4 = st.columns([1.2, 1.2, 1.8, 1.2])

with pr1:
    preset = st.selectbox("Quick range", ["Last 24h", "Last 7 days", "This month", "Last month", "Custom"], index=1)

if preset == "Last 24h":
    start_d, end_d = today - timedelta(days=1), today
elif preset == "This month":
    start_d, end_d = today.replace(day=1), today
elif preset == "Last month":
    last_prev = today.replace(day=1) - timedelta(days=1)
    start_d, end_d = last_prev.replace(day=1), last_prev
else:
    start_d, end_d = today - timedelta(days=7), today

with pr2:
    start_d = st.date_input("From", value=start_d, key="logs_from")
with pr3:
    end_d = st.date_input("To (inclusive)", value=end_d, key="logs_to")
    if end_d < start_d:
        end_d = start_d
with pr4:
    limit = st.number_input("Max rows", min_value=100, max_value=50000, value=5000, step=500)

f1, f2, f3 = st.columns([1.2, 1.2, 2.2])
with f1:
    action_f = st.multiselect("Action", ["login", "logout", "page_view", "record_create", "record_update"], default=[])
with f2:
    user_f = st.text_input("Filter by user (optional)")
with f3:
    page_search = st.text_input("Search in page / extra (optional)")

start_dt, end_dt = _daterange_to_local_dt(start_d, end_d)


# =========================
# Cached fetch
# =========================
@st.cache_data(ttl=90, show_spinner=False)
def load_logs(start_dt: datetime, end_dt: datetime, user: Optional[str],
              actions: Tuple[str, ...], limit: int) -> pd.DataFrame:
    return read_logs(start_dt, end_dt, user=user, action=(list(actions) or None), limit=limit)


try:
    df = load_logs(start_dt, end_dt, user_f.strip() or None, tuple(action_f), int(limit)).copy()
except (PyMongoError, RuntimeError) as e:
    st.error(f"❌ Could not read logs: {e}")
    st.stop()

for c in LOG_COLUMNS:
    if c not in df.columns:
        df[c] = ""

if (page_search or "").strip() and not df.empty:
    s = page_search.strip().lower()
    df = df[
        df["page"].astype(str).str.lower().str.contains(s, regex=False) |
        df["extra"].astype(str).str.lower().str.contains(s, regex=False)
    ]

# =========================
# KPIs
# =========================
c1, c2, c3, c4 = st.columns(4)
c1.metric("Total rows", len(df))
c2.metric("Logins", int((df["action"] == "login").sum()))
c3.metric("Page views", int((df["action"] == "page_view").sum()))
c4.metric("Record changes", int(df["action"].isin(["record_create", "record_update"]).sum()))

st.caption(f"Range: **{start_d} → {end_d} ({APP_TZ.key})**  •  Rows limited to **{int(limit)}**.")
st.divider()

if df.empty:
    st.info("No logs for the selected filters.")
    st.stop()

# =========================
# Summaries
# =========================
last_login = (
    df[df["action"] == "login"]
    .groupby("user")["ts_local_str"].max()
    .reset_index()
    .rename(columns={"ts_local_str": "Last login", "user": "User"})
    .sort_values("Last login", ascending=False)
)
by_user = (
    df.groupby("user", dropna=False)["action"].count()
    .rename("Events").reset_index()
    .sort_values("Events", ascending=False)
)

s1, s2 = st.columns(2)
with s1:
    st.subheader("Last login per user")
    st.dataframe(last_login, use_container_width=True, hide_index=True)
with s2:
    st.subheader("Events by user")
    st.dataframe(by_user, use_container_width=True, hide_index=True)

st.divider()

# =========================
# All events (newest first, as read)
# =========================
st.subheader("All events")
events = df[LOG_COLUMNS].astype({"extra": str})
st.dataframe(events, use_container_width=True, hide_index=True)

csv = events.to_csv(index=False).encode("utf-8")
st.download_button("⬇️ Download CSV", csv, f"user_logs_{start_d}_to_{end_d}.csv", "text/csv", use_container_width=True)
