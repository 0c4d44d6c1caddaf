from datetime import date
from pathlib import Path

import pytest
from bson import ObjectId
from streamlit.testing.v1 import AppTest

import ost_audit
import ost_ui
from ost_auth import Actor
from ost_db import COL_HOTELS, COL_UMRAH, COL_VISAS, now_local, today_local
from ost_ui import is_timer_rerun

ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def store(monkeypatch, fake_db):
    monkeypatch.setattr(ost_ui, "collection", lambda name: fake_db[name])
    monkeypatch.setattr(ost_audit, "get_db", lambda: fake_db)
    return fake_db


def _app(script: str, who: Actor) -> AppTest:
    at = AppTest.from_file(str(ROOT / script), default_timeout=30)
    at.secrets["refresh_ms"] = 15000
    at.session_state["actor"] = who
    at.session_state["user"] = who.name
    at.session_state["last_activity"] = now_local()
    return at


def _visa(owner, passport, **kw):
    doc = {"_id": ObjectId(), "passport": passport, "fullName": "Ali Khan", "visaType": "Business",
           "country": "Germany", "date": "2024-01-10", "totalFee": 1000, "receivedFee": 400,
           "paymentStatus": "Partially Paid", "visaStatus": "Processing", "userId": owner}
    doc.update(kw)
    return doc


def _umrah(owner, name, **kw):
    doc = {"_id": ObjectId(), "fullName": name, "passportNumber": f"P-{name[:3]}", "phone": "03001234567",
           "makkahCheckIn": "2024-02-01", "makkahCheckOut": "2024-02-05",
           "payable": 4000, "received": 5000, "createdByUid": owner,
           "createdAt": now_local()}
    doc.update(kw)
    return doc


# ---------- live cache lifetime ----------
def test_leaving_a_live_page_closes_its_subscription(store, make_collection, actor):
    store[COL_VISAS] = make_collection([_visa("agent-1", "AB1")], name=COL_VISAS)

    at = _app("app.py", actor)
    at.run()
    assert not at.exception

    at.switch_page("pages/02_My_Visa_Records.py").run()
    assert not at.exception
    cache = at.session_state["_live_caches"]["my_visas:agent-1"]
    assert not cache.closed and len(cache.records) == 1

    at.switch_page("pages/01_Visa_Bookings.py").run()
    assert not at.exception
    assert cache.closed
    assert at.session_state["_live_caches"] == {}
    assert all(s.closed for s in store[COL_VISAS].streams)


def test_umrah_page_keeps_its_own_cache_only(store, make_collection, actor):
    store[COL_VISAS] = make_collection([_visa("agent-1", "AB1")], name=COL_VISAS)
    at = _app("pages/02_My_Visa_Records.py", actor)
    at.run()
    visa_cache = at.session_state["_live_caches"]["my_visas:agent-1"]

    at.switch_page("pages/03_Umrah_Bookings.py").run()
    assert not at.exception
    assert visa_cache.closed
    assert list(at.session_state["_live_caches"]) == ["umrah_search:agent-1"]


def test_page_change_is_not_a_timer_tick():
    state = {}
    assert not is_timer_rerun(state, "02_My_Visa_Records", 0)
    assert is_timer_rerun(state, "02_My_Visa_Records", 1)
    # a click reruns with the counter unchanged
    assert not is_timer_rerun(state, "02_My_Visa_Records", 1)
    # the counter restarts on the next page
    assert not is_timer_rerun(state, "04_My_Umrah_Bookings", 0)
    assert not is_timer_rerun(state, "02_My_Visa_Records", 0)
    assert is_timer_rerun(state, "02_My_Visa_Records", 1)


# ---------- create form ----------
def test_visa_form_starts_with_todays_application_date(store, actor):
    at = _app("pages/01_Visa_Bookings.py", actor)
    at.run()
    assert not at.exception
    assert at.date_input(key="visa_new0_date").value == today_local()


# ---------- Umrah quick search ----------
@pytest.fixture
def umrah_page(store, make_collection, actor):
    docs = [_umrah("agent-1", "Sara Ahmed"), _umrah("agent-2", "Sara Bibi"),
            _umrah("agent-2", "Omar Farooq")]
    store[COL_UMRAH] = make_collection(docs, name=COL_UMRAH)
    at = _app("pages/03_Umrah_Bookings.py", actor)
    at.run()
    assert not at.exception
    return at


def test_empty_search_shows_error_toast(umrah_page):
    at = umrah_page
    at.button(key="umrah_q_search").click().run()
    toasts = [(t.value, t.icon) for t in at.toast]
    assert ("Enter a name, passport or phone", "❌") in toasts
    assert not at.dataframe


def test_search_covers_every_agents_bookings(umrah_page):
    at = umrah_page
    at.text_input(key="umrah_q").input("sara")
    at.button(key="umrah_q_search").click().run()
    assert not at.exception
    shown = at.dataframe[0].value
    assert sorted(shown["Full Name"]) == ["Sara Ahmed", "Sara Bibi"]


def test_show_all_lists_every_booking(umrah_page):
    at = umrah_page
    at.button(key="umrah_q_show_all").click().run()
    assert not at.exception
    assert len(at.dataframe[0].value) == 3


def test_search_hit_can_be_edited(umrah_page, store):
    at = umrah_page
    at.text_input(key="umrah_q").input("omar")
    at.button(key="umrah_q_search").click().run()
    at.selectbox(key="umrah_q_pick").select_index(0).run()

    doc = next(d for d in store[COL_UMRAH].docs if d["fullName"] == "Omar Farooq")
    at.button(key=f"umrah_q_edit_{doc['_id']}").click().run()
    assert not at.exception

    at.number_input(key="umrah_q_e1_received").set_value(4500.0)
    at.date_input(key="umrah_q_e1_makkahCheckOut").set_value(date(2024, 2, 8))
    at.run()
    at.button(key="umrah_q_save").click().run()
    assert not at.exception

    saved = next(d for d in store[COL_UMRAH].docs if d["_id"] == doc["_id"])
    assert saved["received"] == 4500
    assert saved["profit"] == 500
    assert saved["makkahNights"] == 7
    assert saved["createdByUid"] == "agent-2"


# ---------- admin views ----------
def test_admin_sees_every_agents_visas(store, make_collection):
    store[COL_VISAS] = make_collection([_visa("agent-1", "AB1"), _visa("agent-2", "CD2")], name=COL_VISAS)
    admin = Actor(uid="boss", name="Boss", email="boss@ostravels.example", is_admin=True)
    at = _app("pages/98_Admin_All_Bookings.py", admin)
    at.run()
    assert not at.exception
    assert sorted(at.dataframe[0].value["Passport No"]) == ["AB1", "CD2"]

    at.radio(key="admin_kind").set_value("Hotel").run()
    assert not at.exception
    assert list(at.session_state["_live_caches"]) == ["admin_hotels:boss"]
    assert at.session_state["_live_caches"]["admin_hotels:boss"].schema.collection == COL_HOTELS


def test_admin_bookings_page_is_closed_to_agents(store, actor):
    at = _app("pages/98_Admin_All_Bookings.py", actor)
    at.run()
    assert "🚫 This page is for admins only." in [e.value for e in at.error]
    assert not at.dataframe
