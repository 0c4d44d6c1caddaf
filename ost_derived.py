# ost_derived.py
"""
Derived-field calculator.

Every derived value shown or stored (profit, nights) is recomputed from the
source fields through these functions: on cache materialization, on live
form entry and on every edit-draft change.
"""
from __future__ import annotations
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

Number = Union[int, float]


def _blank(x: Any) -> bool:
    if x is None:
        return True
    if isinstance(x, float) and math.isnan(x):
        return True
    return isinstance(x, str) and not x.strip()


def to_number(x: Any) -> Number:
    """Missing, blank or non-numeric input counts as 0."""
    if _blank(x) or isinstance(x, bool):
        return 0
    if isinstance(x, (int, float)):
        return x if math.isfinite(x) else 0
    try:
        v = float(str(x).replace(",", "").strip())
    except ValueError:
        return 0
    if not math.isfinite(v):
        return 0
    return int(v) if v.is_integer() else v


def _tidy(n: Number) -> Number:
    if isinstance(n, float) and n.is_integer():
        return int(n)
    return n


def profit(received: Any, payable: Any) -> Number:
    return _tidy(to_number(received) - to_number(payable))


def to_date(x: Any) -> Optional[date]:
    if _blank(x):
        return None
    if isinstance(x, datetime):
        return x.date()
    if isinstance(x, date):
        return x
    s = str(x).strip()
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        return None


def nights(check_in: Any, check_out: Any) -> Union[int, str]:
    """
    "" when either date is missing (not computed), otherwise the whole-day
    difference when positive, else 0. Present-but-unparseable dates give 0.
    """
    if _blank(check_in) or _blank(check_out):
        return ""
    d_in, d_out = to_date(check_in), to_date(check_out)
    if d_in is None or d_out is None:
        return 0
    diff = (d_out - d_in).days
    return diff if diff > 0 else 0


@dataclass(frozen=True)
class DerivedRule:
    target: str
    sources: Tuple[str, ...]
    compute: Callable[..., Any]

    def evaluate(self, record: Mapping[str, Any]) -> Any:
        return self.compute(*(record.get(s) for s in self.sources))


def profit_rule(plus: str, minus: str, target: str = "profit") -> DerivedRule:
    return DerivedRule(target, (plus, minus), profit)


def nights_rule(check_in: str, check_out: str, target: str) -> DerivedRule:
    return DerivedRule(target, (check_in, check_out), nights)


def apply_derived(record: Mapping[str, Any], rules) -> Dict[str, Any]:
    """Return a copy of `record` with every rule's target recomputed."""
    out = dict(record)
    for rule in rules:
        out[rule.target] = rule.evaluate(out)
    return out
