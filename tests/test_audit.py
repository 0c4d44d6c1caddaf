from datetime import datetime, timedelta

import pandas as pd
from pymongo.errors import PyMongoError

from ost_audit import LOG_COLUMNS, audit_log, audit_login, audit_pageview, read_logs
from ost_db import APP_TZ, COL_AUDIT


def test_audit_log_writes_entry_with_session(fake_db):
    state = {}
    audit_log("record_create", "Agent One", page="01_Visa_Bookings",
              extra={"id": "abc"}, db=fake_db, state=state)
    audit_login("Agent One", db=fake_db, state=state)
    first, second = fake_db[COL_AUDIT].docs
    assert first["action"] == "record_create" and first["extra"] == {"id": "abc"}
    assert second["action"] == "login" and second["page"] == "LOGIN"
    assert first["session_id"] == second["session_id"] == state["audit_sid"]
    assert first["ts_local"].tzinfo is not None


def test_audit_failures_do_not_raise(fake_db):
    fake_db[COL_AUDIT].fail("insert_one", PyMongoError("down"))
    audit_log("login", "Agent One", db=fake_db, state={})


def test_pageview_is_debounced(fake_db):
    state = {}
    audit_pageview("Agent One", "02_My_Visa_Records", db=fake_db, state=state)
    audit_pageview("Agent One", "02_My_Visa_Records", db=fake_db, state=state)
    assert len(fake_db[COL_AUDIT].docs) == 1

    state["_audit_last_02_My_Visa_Records"] -= timedelta(minutes=6)
    audit_pageview("Agent One", "02_My_Visa_Records", db=fake_db, state=state)
    assert len(fake_db[COL_AUDIT].docs) == 2


def test_read_logs_filters_and_orders(fake_db):
    state = {}
    for action in ("login", "page_view", "record_update"):
        audit_log(action, "Agent One", db=fake_db, state=state)
    audit_log("login", "Agent Two", db=fake_db, state=state)
    docs = fake_db[COL_AUDIT].docs
    for i, d in enumerate(docs):
        d["ts_utc"] = d["ts_utc"] + timedelta(seconds=i)

    df = read_logs(action=["login", "record_update"], user="Agent One", db=fake_db)
    assert list(df["action"]) == ["record_update", "login"]

    start = datetime.now(tz=APP_TZ) - timedelta(hours=1)
    assert len(read_logs(start_local=start, db=fake_db)) == 4


def test_read_logs_empty(fake_db):
    df = read_logs(user="nobody", db=fake_db)
    assert isinstance(df, pd.DataFrame) and df.empty
    assert list(df.columns) == LOG_COLUMNS
