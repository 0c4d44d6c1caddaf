# ost_ui.py
"""
Streamlit glue shared by the pages: login gate, live caches kept in
session_state, filter controls, the edit panel and the create form.

Anything that talks to the user goes through here. The other ost_* modules
only touch streamlit for secrets (ost_db) and the session id (ost_audit).
"""
from __future__ import annotations
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence, Tuple

import streamlit as st
from pymongo.errors import PyMongoError
from streamlit_autorefresh import st_autorefresh

from ost_audit import audit_log, audit_login, audit_pageview
from ost_auth import Actor, LoginThrottle, load_users, make_actor, session_expired, verify_pin
from ost_db import collection, now_local, secret, today_local
from ost_derived import apply_derived, to_date, to_number
from ost_editor import RecordEditor, create_record
from ost_filters import DateWindow, ViewFilter, filter_records, format_money, total_label, totals
from ost_live import LiveRecordCache
from ost_models import ALL, FieldSpec, RecordSchema, RecordType
from ost_reports import (build_list_pdf, build_record_pdf, list_report_filename,
                         record_report_filename, records_to_csv_bytes, records_to_frame)

logger = logging.getLogger(__name__)

_NAME_FIELD = {RecordType.VISA: "fullName", RecordType.UMRAH: "fullName", RecordType.HOTEL: "clientName"}
_ICONS = {"success": "✅", "warning": "⚠️", "error": "❌", "info": "ℹ️"}
_CACHES = "_live_caches"


# =========================================================
# Page / notifications
# =========================================================
def configure_logging() -> None:
    logging.basicConfig(
        level=str(secret("log_level", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def setup_page(title: str, icon: str = "") -> None:
    configure_logging()
    st.set_page_config(page_title=title, layout="wide")
    st.title(f"{icon} {title}".strip())


def notify(level: str, message: str) -> None:
    st.toast(message, icon=_ICONS.get(level, "ℹ️"))


# =========================================================
# Login
# =========================================================
def _sign_out() -> None:
    for k in ("user", "actor", "last_activity", "_last_tick"):
        st.session_state.pop(k, None)
    close_live_caches()


def is_timer_rerun(state: MutableMapping[str, Any], page: str, count: int) -> bool:
    """
    True if the refresh counter moved while staying on `page`.

    The counter restarts on every page, so a page change is a user action
    even though the count differs from the last one seen.
    """
    last = state.get("_last_tick")
    state["_last_tick"] = (page, count)
    return last is not None and last[0] == page and count != last[1]


def _auto_refresh(page: str) -> bool:
    """Schedule the next live rerun. True if this run was started by the timer."""
    count = st_autorefresh(interval=int(secret("refresh_ms", 15000)), key="live_tick")
    return is_timer_rerun(st.session_state, page, count)


def require_login(page: str, live: bool = False) -> Actor:
    state = st.session_state
    now = now_local()

    actor: Optional[Actor] = state.get("actor")
    if actor and session_expired(state.get("last_activity"), now):
        audit_log("logout", actor.name, page=page, extra={"reason": "inactivity"})
        _sign_out()
        actor = None
        st.sidebar.warning("Signed out after 15 minutes of inactivity.")

    if actor:
        if live:
            ticked = _auto_refresh(page)
        else:
            # no live list here: release whatever the previous page subscribed to
            ticked = False
            close_live_caches()
            state.pop("_last_tick", None)
        if not ticked:
            state["last_activity"] = now
        with st.sidebar:
            st.markdown(f"**Signed in as:** {actor.name}")
            if st.button("Log out"):
                audit_log("logout", actor.name, page=page)
                _sign_out()
                st.rerun()
        audit_pageview(actor.name, page)
        return actor

    users = load_users()
    if not users:
        st.sidebar.error("⚠️ Login is not configured in Secrets.")
        st.stop()

    throttle: LoginThrottle = state.setdefault("login_throttle", LoginThrottle())
    st.sidebar.markdown("### 🔐 Login")
    wait = throttle.blocked_for(now)
    if wait:
        st.sidebar.error(f"Too many failed attempts. Try again in {int(wait.total_seconds() // 60) + 1} min.")
        st.stop()

    name = st.sidebar.selectbox("User", sorted(users), key="login_user")
    pin = st.sidebar.text_input("PIN", type="password", key="login_pin")
    if st.sidebar.button("Sign in"):
        if verify_pin(users, name, pin):
            throttle.reset()
            state["actor"] = make_actor(name)
            state["user"] = name
            state["last_activity"] = now
            audit_login(name)
            st.rerun()
        throttle.record_failure(now)
        st.sidebar.error("Invalid PIN")
    st.stop()


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        close_live_caches()
        st.error("🚫 This page is for admins only.")
        st.stop()


# =========================================================
# Store + live caches
# =========================================================
def get_collection(schema: RecordSchema):
    try:
        return collection(schema.collection)
    except (RuntimeError, PyMongoError) as e:
        logger.error("store unavailable: %s", e)
        st.error(f"❌ Could not connect to MongoDB. {e}")
        st.stop()


def owner_query(schema: RecordSchema, actor: Actor) -> Dict[str, Any]:
    return {schema.owner_field: actor.uid}


def close_live_caches(keep: Optional[str] = None) -> None:
    """Close every page cache except `keep` (the page being shown)."""
    caches: Dict[str, LiveRecordCache] = st.session_state.setdefault(_CACHES, {})
    for k in [k for k in caches if k != keep]:
        caches.pop(k).close()


def live_records(cache_key: str, schema: RecordSchema, query: Optional[Mapping[str, Any]] = None,
                 sort: Optional[Sequence[Tuple[str, int]]] = None) -> LiveRecordCache:
    close_live_caches(keep=cache_key)
    caches: Dict[str, LiveRecordCache] = st.session_state[_CACHES]

    with st.sidebar:
        if st.button("🔄 Refresh", key=f"refresh_{cache_key}"):
            stale = caches.pop(cache_key, None)
            if stale is not None:
                stale.close()

    cache = caches.get(cache_key)
    if cache is None or cache.closed:
        cache = LiveRecordCache(get_collection(schema), schema, query, sort, notify=notify).open()
        caches[cache_key] = cache

    cache.sync()
    if cache.loading:
        st.info("Loading bookings…")
    elif cache.error:
        st.warning("Live updates stopped. Use 🔄 Refresh to reconnect.")
    return cache


# =========================================================
# Filters / totals / tables
# =========================================================
def filter_controls(page_key: str, schema: RecordSchema, windows: Sequence[DateWindow],
                    categories: Sequence[Tuple[str, Sequence[str]]] = (), status: bool = True) -> ViewFilter:
    use_status = status and bool(schema.status_field)
    cols = iter(st.columns(2 + int(use_status) + len(categories)))

    status_val = ALL
    if use_status:
        with next(cols):
            status_val = st.selectbox(schema.label_for(schema.status_field), [ALL, *schema.status_options],
                                      key=f"{page_key}_status")
    cats: List[Tuple[str, str]] = []
    for fname, options in categories:
        with next(cols):
            cats.append((fname, st.selectbox(schema.label_for(fname), [ALL, *options], key=f"{page_key}_cat_{fname}")))
    with next(cols):
        window = st.selectbox("Date range", list(windows), format_func=lambda w: w.value, key=f"{page_key}_window")
    with next(cols):
        hint = ", ".join(schema.label_for(f).lower() for f in schema.search_fields) or "any field"
        search = st.text_input("Search", placeholder=f"Search by {hint}", key=f"{page_key}_search")

    return ViewFilter(status=status_val, window=window, search=search, categories=tuple(cats))


def show_totals(records: Sequence[Mapping[str, Any]], schema: RecordSchema) -> None:
    t = totals(records, schema)
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Bookings", t["count"])
    c2.metric(total_label(schema, schema.received_field), format_money(t["received"]))
    c3.metric(total_label(schema, schema.payable_field), format_money(t["payable"]))
    c4.metric("Total Profit", format_money(t["profit"]))


def show_table(records: Sequence[Mapping[str, Any]], schema: RecordSchema,
               empty_msg: str = "No bookings match the selected filters.") -> None:
    if not records:
        st.info(empty_msg)
        return
    df = records_to_frame(records, schema).drop(columns=["id"])
    st.dataframe(df, use_container_width=True, hide_index=True)


def record_label(record: Mapping[str, Any], schema: RecordSchema) -> str:
    p, s = schema.identifier_fields
    name = record.get(_NAME_FIELD[schema.type]) or "-"
    return f"{name} | {record.get(p) or '-'} | {record.get(s) or '-'}"


def pick_record(page_key: str, records: Sequence[Mapping[str, Any]], schema: RecordSchema,
                label: str = "Select booking") -> Optional[Mapping[str, Any]]:
    if not records:
        return None
    by_id = {r["id"]: r for r in records}
    rid = st.selectbox(label, list(by_id), index=None, placeholder="Choose a booking",
                       format_func=lambda i: record_label(by_id[i], schema), key=f"{page_key}_pick")
    return by_id.get(rid)


def list_downloads(page_key: str, records: Sequence[Mapping[str, Any]], schema: RecordSchema, title: str) -> None:
    if not records:
        return
    stem = title.replace(" ", "_")
    c1, c2 = st.columns(2)
    c1.download_button("⬇️ Download CSV", records_to_csv_bytes(records, schema),
                       f"{stem}_{today_local().isoformat()}.csv", "text/csv",
                       key=f"{page_key}_csv", use_container_width=True)
    c2.download_button("📄 Download list PDF", build_list_pdf(records, schema, title),
                       list_report_filename(schema), "application/pdf",
                       key=f"{page_key}_listpdf", use_container_width=True)


def pdf_download(page_key: str, record: Mapping[str, Any], schema: RecordSchema) -> None:
    st.download_button("📄 Download PDF", build_record_pdf(record, schema),
                       record_report_filename(record, schema), "application/pdf",
                       key=f"{page_key}_pdf_{record['id']}", use_container_width=True)


# =========================================================
# Inputs
# =========================================================
def _input(spec: FieldSpec, key: str, value: Any = None, **kw) -> Any:
    label = spec.label
    if spec.kind == "number":
        v = None if value in (None, "") else float(to_number(value))
        return st.number_input(label, value=v, step=1.0, key=key, **kw)
    if spec.kind == "date":
        return st.date_input(label, value=to_date(value), format="YYYY-MM-DD", key=key, **kw)
    if spec.kind == "choice":
        options = list(spec.options)
        index = options.index(value) if value in options else None
        return st.selectbox(label, options, index=index, placeholder=f"Select {label.lower()}", key=key, **kw)
    if spec.kind == "textarea":
        return st.text_area(label, value=str(value or ""), key=key, **kw)
    return st.text_input(label, value=str(value or ""), key=key, **kw)


def _stored(v: Any) -> Any:
    """Widget value -> document value (dates as YYYY-MM-DD strings)."""
    if v is None:
        return ""
    if isinstance(v, (date, datetime)):
        return v.isoformat()[:10]
    if isinstance(v, float) and v.is_integer():
        return int(v)
    return v


def _derived_preview(values: Mapping[str, Any], schema: RecordSchema) -> None:
    if not schema.derived:
        return
    derived = apply_derived(values, schema.derived)
    cols = st.columns(len(schema.derived))
    for col, rule in zip(cols, schema.derived):
        v = derived[rule.target]
        shown = format_money(v) if rule.target == "profit" else ("-" if v == "" else v)
        col.metric(schema.label_for(rule.target), shown)


# =========================================================
# Editor
# =========================================================
def get_editor(page_key: str, schema: RecordSchema, actor: Actor) -> RecordEditor:
    key = f"_editor_{page_key}"
    ed: Optional[RecordEditor] = st.session_state.get(key)
    if ed is None or ed.actor != actor:
        def _audit(action: str, extra: Mapping[str, Any]) -> None:
            audit_log(action, actor.name, page=page_key, extra=dict(extra))
        ed = RecordEditor(get_collection(schema), schema, actor, notify=notify, audit=_audit)
        st.session_state[key] = ed
    return ed


def _begin_edit(page_key: str, editor: RecordEditor, record: Mapping[str, Any]) -> None:
    if editor.begin(record):
        gen_key = f"_edit_gen_{page_key}"
        st.session_state[gen_key] = st.session_state.get(gen_key, 0) + 1


def _edit_changed(editor: RecordEditor, name: str, key: str) -> None:
    editor.set_field(name, _stored(st.session_state.get(key)))


def edit_button(page_key: str, editor: RecordEditor, record: Mapping[str, Any]) -> None:
    st.button("✏️ Edit", key=f"{page_key}_edit_{record['id']}", on_click=_begin_edit,
              args=(page_key, editor, record), disabled=editor.is_editing(), use_container_width=True)


def edit_panel(page_key: str, editor: RecordEditor) -> None:
    if not editor.is_editing():
        return
    s = editor.schema
    gen = st.session_state.get(f"_edit_gen_{page_key}", 0)

    st.divider()
    st.subheader(f"✏️ Editing: {record_label(editor.draft, s)}")
    cols = st.columns(3)
    for i, storage in enumerate(s.writable_fields(editor.draft)):
        name = s.aliases.get(storage, storage)
        spec = s.spec_for(storage) or FieldSpec(name, name)
        key = f"{page_key}_e{gen}_{name}"
        with cols[i % 3]:
            _input(spec, key, editor.draft.get(name), on_change=_edit_changed,
                   args=(editor, name, key), disabled=editor.saving)

    _derived_preview(editor.draft, s)

    b1, b2 = st.columns(2)
    b1.button("💾 Save changes", on_click=editor.save, disabled=editor.saving, type="primary",
              key=f"{page_key}_save", use_container_width=True)
    b2.button("Cancel", on_click=editor.cancel, disabled=editor.saving,
              key=f"{page_key}_cancel", use_container_width=True)


# =========================================================
# Create form
# =========================================================
def _submit_new(prefix: str, coll, schema: RecordSchema, actor: Actor) -> None:
    gen_key = f"{prefix}_gen"
    gen = st.session_state.get(gen_key, 0)
    form = {f.name: _stored(st.session_state.get(f"{prefix}{gen}_{f.name}")) for f in schema.fields}

    def _audit(action: str, extra: Mapping[str, Any]) -> None:
        audit_log(action, actor.name, page=prefix, extra=dict(extra))

    if create_record(coll, schema, form, actor, notify=notify, audit=_audit):
        # fresh widget keys clear the form
        st.session_state[gen_key] = gen + 1


def create_form(page_key: str, schema: RecordSchema, actor: Actor) -> None:
    prefix = f"{page_key}_new"
    gen = st.session_state.get(f"{prefix}_gen", 0)
    coll = get_collection(schema)
    conditional = {name: cond for cond in schema.conditional for name in cond.fields}

    values: Dict[str, Any] = {}
    cols = st.columns(3)
    n = 0
    for f in schema.fields:
        if f.name in schema.derived_fields:
            continue
        cond = conditional.get(f.name)
        if cond is not None and not cond.active(values):
            continue
        # the record's own date starts at today
        start = today_local() if f.name == schema.date_field and f.kind == "date" else None
        with cols[n % 3]:
            values[f.name] = _stored(_input(f, f"{prefix}{gen}_{f.name}", start))
        n += 1

    st.markdown("**Calculated**")
    _derived_preview(values, schema)

    st.button(f"💾 Save {schema.label.lower()} booking", on_click=_submit_new,
              args=(prefix, coll, schema, actor), type="primary",
              key=f"{prefix}_submit", use_container_width=True)


# =========================================================
# Filtered list page (my visas / my Umrah / all hotels)
# =========================================================
def records_page(page_key: str, schema: RecordSchema, actor: Actor, query: Optional[Mapping[str, Any]],
                 windows: Sequence[DateWindow], title: str,
                 categories: Sequence[Tuple[str, Sequence[str]]] = (),
                 with_totals: bool = False, with_exports: bool = False) -> None:
    cache_key = f"{page_key}:{actor.uid}"
    cache = live_records(cache_key, schema, query, sort=[(schema.date_field, -1)])
    editor = get_editor(page_key, schema, actor)

    vf = filter_controls(page_key, schema, windows, categories)
    shown = filter_records(cache.records, vf, schema)

    if with_totals:
        show_totals(shown, schema)
    st.caption(f"Showing **{len(shown)}** of **{len(cache.records)}** bookings.")
    show_table(shown, schema)
    if with_exports:
        list_downloads(page_key, shown, schema, title)

    st.divider()
    rec = pick_record(page_key, shown, schema)
    if rec is not None:
        c1, c2 = st.columns(2)
        with c1:
            edit_button(page_key, editor, rec)
        with c2:
            pdf_download(page_key, rec, schema)

    edit_panel(page_key, editor)
