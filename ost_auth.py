# ost_auth.py
"""
PIN login against the configured users, plus the two session guards the
front office relies on: a login throttle and an inactivity timeout.
"""
from __future__ import annotations
import hmac
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ost_db import secret

MAX_LOGIN_ATTEMPTS = 5
LOGIN_WINDOW = timedelta(minutes=15)
INACTIVITY_LIMIT = timedelta(minutes=15)


@dataclass(frozen=True)
class Actor:
    uid: str
    name: str
    email: str = ""
    is_admin: bool = False


def load_users() -> Dict[str, str]:
    # 1) Streamlit secrets / env
    raw = secret("users", None)
    if isinstance(raw, Mapping) and raw:
        return {str(k): str(v) for k, v in raw.items()}
    # 2) Fallback to local .streamlit/secrets.toml (dev)
    try:
        try:
            import tomllib  # py311+
        except ImportError:
            import tomli as tomllib
        with open(".streamlit/secrets.toml", "rb") as f:
            data = tomllib.load(f)
    except (OSError, ValueError):
        return {}
    u = data.get("users", {})
    return {str(k): str(v) for k, v in u.items()} if isinstance(u, Mapping) else {}


def admin_names() -> List[str]:
    raw = secret("admins", [])
    if isinstance(raw, str):
        raw = [x for x in raw.split(",")]
    return [str(x).strip() for x in (raw or []) if str(x).strip()]


def user_emails() -> Dict[str, str]:
    raw = secret("emails", {})
    return {str(k): str(v) for k, v in raw.items()} if isinstance(raw, Mapping) else {}


def verify_pin(users: Mapping[str, str], name: str, pin: str) -> bool:
    expected = str(users.get(name, "")).strip()
    if not expected:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), str(pin or "").strip().encode("utf-8"))


def make_actor(name: str, admins: Optional[List[str]] = None,
               emails: Optional[Mapping[str, str]] = None) -> Actor:
    admins = admin_names() if admins is None else admins
    emails = user_emails() if emails is None else emails
    return Actor(uid=name, name=name, email=str(emails.get(name, "")), is_admin=name in admins)


@dataclass
class LoginThrottle:
    """At most MAX_LOGIN_ATTEMPTS failures per LOGIN_WINDOW."""
    attempts: int = 0
    window_start: Optional[datetime] = None
    max_attempts: int = MAX_LOGIN_ATTEMPTS
    window: timedelta = field(default=LOGIN_WINDOW)

    def _roll(self, now: datetime) -> None:
        if self.window_start is None or now - self.window_start > self.window:
            self.attempts = 0
            self.window_start = now

    def blocked_for(self, now: datetime) -> Optional[timedelta]:
        self._roll(now)
        if self.attempts >= self.max_attempts:
            return self.window - (now - self.window_start)
        return None

    def record_failure(self, now: datetime) -> None:
        self._roll(now)
        self.attempts += 1

    def reset(self) -> None:
        self.attempts = 0
        self.window_start = None


def session_expired(last_activity: Optional[datetime], now: datetime,
                    limit: timedelta = INACTIVITY_LIMIT) -> bool:
    return last_activity is not None and (now - last_activity) >= limit
