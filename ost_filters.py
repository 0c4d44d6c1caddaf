# ost_filters.py
"""
View filter pipeline: status -> category -> date window -> text search.

Pure functions of (records, filter, now). Nothing here touches the store or
mutates the cached list, so reapplying the same filter is a no-op.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ost_db import APP_TZ, now_local
from ost_derived import to_date, to_number
from ost_models import ALL, RecordSchema


class DateWindow(str, Enum):
    ALL_TIME = "All Time"
    TODAY = "Today"
    YESTERDAY = "Yesterday"
    LAST_7_DAYS = "Last 7 Days"
    LAST_30_DAYS = "Last 30 Days"
    THIS_WEEK = "This Week"
    THIS_MONTH = "This Month"
    THIS_YEAR = "This Year"


VISA_WINDOWS = (DateWindow.ALL_TIME, DateWindow.TODAY, DateWindow.YESTERDAY,
                DateWindow.LAST_7_DAYS, DateWindow.LAST_30_DAYS)
SEARCH_WINDOWS = (DateWindow.ALL_TIME, DateWindow.TODAY, DateWindow.YESTERDAY,
                  DateWindow.THIS_WEEK, DateWindow.THIS_MONTH)
VIEW_ALL_WINDOWS = (DateWindow.ALL_TIME, DateWindow.TODAY, DateWindow.YESTERDAY,
                    DateWindow.THIS_WEEK, DateWindow.THIS_MONTH, DateWindow.THIS_YEAR)


@dataclass(frozen=True)
class ViewFilter:
    status: str = ALL
    window: DateWindow = DateWindow.ALL_TIME
    search: str = ""
    categories: Tuple[Tuple[str, str], ...] = ()


def window_bounds(window: DateWindow, now: datetime) -> Optional[Tuple[date, date]]:
    """[start, end) in local calendar days; None for ALL_TIME."""
    today = now.date()
    tomorrow = today + timedelta(days=1)
    if window == DateWindow.ALL_TIME:
        return None
    if window == DateWindow.TODAY:
        return today, tomorrow
    if window == DateWindow.YESTERDAY:
        return today - timedelta(days=1), today
    if window == DateWindow.LAST_7_DAYS:
        return today - timedelta(days=7), tomorrow
    if window == DateWindow.LAST_30_DAYS:
        return today - timedelta(days=30), tomorrow
    if window == DateWindow.THIS_WEEK:
        # weeks start on Sunday
        return today - timedelta(days=(today.weekday() + 1) % 7), tomorrow
    if window == DateWindow.THIS_MONTH:
        return today.replace(day=1), tomorrow
    if window == DateWindow.THIS_YEAR:
        return today.replace(month=1, day=1), tomorrow
    raise ValueError(f"unknown date window: {window!r}")


def record_day(value: Any) -> Optional[date]:
    """Local calendar day of a record's date field (timestamps are converted to APP_TZ)."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(APP_TZ).date()
    return to_date(value)


def _matches_search(record: Mapping[str, Any], term: str, fields: Sequence[str]) -> bool:
    if fields:
        values: Iterable[Any] = (record.get(f) for f in fields)
    else:
        values = record.values()
    for v in values:
        if isinstance(v, str) and term in v.lower():
            return True
    return False


def filter_records(records: Sequence[Mapping[str, Any]], vf: ViewFilter, schema: RecordSchema,
                   now: Optional[datetime] = None) -> List[Mapping[str, Any]]:
    out = list(records)

    if vf.status and vf.status != ALL and schema.status_field:
        out = [r for r in out if r.get(schema.status_field) == vf.status]

    for fname, value in vf.categories:
        if value and value != ALL:
            out = [r for r in out if r.get(fname) == value]

    bounds = window_bounds(vf.window, now or now_local())
    if bounds:
        start, end = bounds
        kept = []
        for r in out:
            d = record_day(r.get(schema.date_field))
            if d is not None and start <= d < end:
                kept.append(r)
        out = kept

    term = (vf.search or "").strip().lower()
    if term:
        out = [r for r in out if _matches_search(r, term, schema.search_fields)]

    return out


def search_all_values(records: Sequence[Mapping[str, Any]], term: str) -> List[Mapping[str, Any]]:
    """Quick search: any value of the record, stringified, contains `term`."""
    t = (term or "").strip().lower()
    if not t:
        return []
    return [r for r in records if t in " ".join(str(v) for v in r.values()).lower()]


def distinct_values(records: Sequence[Mapping[str, Any]], field: str) -> List[str]:
    return sorted({str(r.get(field)).strip() for r in records if str(r.get(field) or "").strip()})


# ---------- totals ----------
def totals(records: Sequence[Mapping[str, Any]], schema: RecordSchema) -> Dict[str, Any]:
    received = sum(to_number(r.get(schema.received_field)) for r in records)
    payable = sum(to_number(r.get(schema.payable_field)) for r in records)
    profit = sum(to_number(r.get("profit")) for r in records)
    return {"received": received, "payable": payable, "profit": profit, "count": len(records)}


def format_money(n: Any, currency: str = "PKR") -> str:
    v = to_number(n)
    if isinstance(v, float) and not v.is_integer():
        return f"{currency} {v:,.2f}"
    return f"{currency} {int(v):,}"


def total_label(schema: RecordSchema, field: str) -> str:
    label = schema.label_for(field)
    return label if label.lower().startswith("total") else f"Total {label}"
