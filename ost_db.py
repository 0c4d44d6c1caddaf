# ost_db.py
from __future__ import annotations
import os
from datetime import date, datetime
from zoneinfo import ZoneInfo
from typing import Any, Optional

from pymongo import MongoClient
from pymongo.collection import Collection

CAND_KEYS = ["mongo_uri", "MONGO_URI", "mongodb_uri", "MONGODB_URI"]

# --------- collections ----------
COL_VISAS = "bookings"
COL_UMRAH = "ummrahBookings"
COL_HOTELS = "HotelBookings"
COL_AUDIT = "audit_logs"


def secret(key: str, default: Any = None) -> Any:
    """Streamlit secrets first, then the environment (as-is, then upper-cased)."""
    try:
        import streamlit as st
        v = st.secrets.get(key)
        if v is not None:
            return v
    except Exception:
        # no secrets.toml / not running under streamlit
        pass
    for k in (key, key.upper()):
        v = os.getenv(k)
        if v:
            return v
    return default


def _find_uri() -> Optional[str]:
    for k in CAND_KEYS:
        v = secret(k)
        if v:
            return str(v)
    return None


APP_TZ = ZoneInfo(str(secret("app_tz", "Asia/Karachi")))


def now_local() -> datetime:
    return datetime.now(tz=APP_TZ)


def today_local() -> date:
    return now_local().date()


_client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    global _client
    if _client is None:
        uri = _find_uri()
        if not uri:
            raise RuntimeError("Mongo URI not configured. Add mongo_uri in Secrets.")
        client = MongoClient(
            uri,
            appName="OST_Backoffice",
            maxPoolSize=50,
            serverSelectionTimeoutMS=6000,
            connectTimeoutMS=6000,
            retryWrites=True,
            tz_aware=True,
        )
        client.admin.command("ping")
        _client = client
    return _client


def get_db():
    return get_client()[str(secret("mongo_db", "OS_TRAVELS"))]


def collection(name: str) -> Collection:
    return get_db()[name]
