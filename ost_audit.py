# ost_audit.py
from __future__ import annotations
import logging
import uuid
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo
from typing import Optional, Dict, Any, MutableMapping

import pandas as pd
from pymongo.errors import PyMongoError

from ost_db import APP_TZ, COL_AUDIT, get_db

logger = logging.getLogger(__name__)

LOG_COLUMNS = ["ts_local_str", "action", "user", "page", "session_id", "extra"]


def _session_state() -> MutableMapping:
    import streamlit as st
    return st.session_state


def _session_id(state: MutableMapping) -> str:
    # one per browser session
    if "audit_sid" not in state:
        state["audit_sid"] = uuid.uuid4().hex
    return state["audit_sid"]


def audit_log(action: str, user: str, page: Optional[str] = None,
              extra: Optional[Dict[str, Any]] = None, db=None,
              state: Optional[MutableMapping] = None) -> None:
    """
    action: "login", "page_view", "record_create", "record_update", ...
    user:   the signed-in user name
    page:   a short page name like "02_My_Visa_Records"
    extra:  optional dict with metadata (record id, collection, ...)
    """
    now = datetime.now(timezone.utc)
    local = now.astimezone(APP_TZ)
    try:
        db = db if db is not None else get_db()
        db[COL_AUDIT].insert_one({
            "action": str(action),
            "user": str(user or "Unknown"),
            "page": str(page or ""),
            "ts_utc": now,
            "ts_local": local,
            "ts_local_str": local.strftime("%Y-%m-%d %H:%M:%S %Z"),
            "session_id": _session_id(state if state is not None else _session_state()),
            "extra": dict(extra or {}),
        })
    except (PyMongoError, RuntimeError) as e:
        # the audit trail never breaks the page
        logger.warning("audit_log(%s) not written: %s", action, e)


def audit_login(user: str, **kw) -> None:
    audit_log("login", user, page="LOGIN", **kw)


def audit_pageview(user: str, page: str, db=None, state: Optional[MutableMapping] = None) -> None:
    """Debounced: one entry per page per session every 5 minutes."""
    state = state if state is not None else _session_state()
    key = f"_audit_last_{page}"
    last: Optional[datetime] = state.get(key)
    now = datetime.now(tz=APP_TZ)
    if not last or (now - last) > timedelta(minutes=5):
        audit_log("page_view", user, page=page, db=db, state=state)
        state[key] = now


def read_logs(start_local: Optional[datetime] = None, end_local: Optional[datetime] = None,
              user: Optional[str] = None, action=None, limit: int = 2000, db=None) -> pd.DataFrame:
    db = db if db is not None else get_db()
    q: Dict[str, Any] = {}
    if start_local or end_local:
        q["ts_utc"] = {}
        if start_local:
            q["ts_utc"]["$gte"] = start_local.astimezone(ZoneInfo("UTC"))
        if end_local:
            q["ts_utc"]["$lte"] = end_local.astimezone(ZoneInfo("UTC"))
    if user:
        q["user"] = user
    if action:
        q["action"] = {"$in": list(action)} if isinstance(action, (list, tuple)) else action

    rows = list(db[COL_AUDIT].find(q).sort("ts_utc", -1).limit(int(limit)))
    if not rows:
        return pd.DataFrame(columns=LOG_COLUMNS)
    for r in rows:
        r.pop("_id", None)
        r["extra"] = r.get("extra", {})
        r["ts_local_str"] = r.get("ts_local_str") or r.get("ts_local")
    return pd.DataFrame(rows)
