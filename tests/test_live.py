import pytest
from pymongo.errors import PyMongoError

from ost_live import LiveRecordCache, Subscription, SubscriptionClosed
from ost_models import UMRAH, VISA


def _visa(i, day, passport=None, owner="agent-1"):
    return {"passport": passport or f"P{i}", "country": "Germany", "fullName": f"Client {i}",
            "date": day, "totalFee": 1000, "receivedFee": 250, "userId": owner}


def test_first_sync_delivers_ordered_materialized_snapshot(make_collection, notes):
    coll = make_collection([_visa(1, "2024-01-01"), _visa(2, "2024-03-01"), _visa(3, "2024-02-01")])
    cache = LiveRecordCache(coll, VISA, {"userId": "agent-1"}, sort=[("date", -1)], notify=notes).open()
    assert cache.loading
    assert cache.sync() is True
    assert not cache.loading
    assert [r["passport"] for r in cache.records] == ["P2", "P3", "P1"]
    assert all(r["profit"] == 750 and "id" in r for r in cache.records)


def test_query_scopes_to_owner(make_collection, notes):
    coll = make_collection([_visa(1, "2024-01-01"), _visa(2, "2024-01-02", owner="agent-2")])
    cache = LiveRecordCache(coll, VISA, {"userId": "agent-1"}, notify=notes).open()
    cache.sync()
    assert [r["passport"] for r in cache.records] == ["P1"]


def test_no_requery_without_changes(make_collection, notes):
    coll = make_collection([_visa(1, "2024-01-01")])
    cache = LiveRecordCache(coll, VISA, notify=notes).open()
    cache.sync()
    assert cache.sync() is False
    assert coll.find_calls == 1


def test_burst_of_changes_is_one_snapshot(make_collection, notes):
    coll = make_collection([])
    cache = LiveRecordCache(coll, VISA, notify=notes).open()
    cache.sync()
    for i in range(3):
        coll.insert_one(_visa(i, f"2024-01-0{i + 1}"))
    assert cache.sync() is True
    assert len(cache.records) == 3
    assert coll.find_calls == 2
    assert cache.snapshots == 2


def test_snapshot_replaces_records_and_dedupes(make_collection, notes):
    coll = make_collection([_visa(1, "2024-01-01", passport="X")])
    cache = LiveRecordCache(coll, VISA, notify=notes).open()
    cache.sync()
    first = cache.records
    coll.insert_one(_visa(2, "2024-05-01", passport="X"))
    cache.sync()
    assert cache.records is not first
    assert len(cache.records) == 1 and cache.records[0]["date"] == "2024-05-01"


def test_error_notifies_once_and_does_not_retry(make_collection, notes):
    coll = make_collection([_visa(1, "2024-01-01")])
    cache = LiveRecordCache(coll, VISA, notify=notes).open()
    cache.sync()
    coll.fail("try_next", PyMongoError("connection reset"))
    assert cache.sync() is False
    assert cache.error == "connection reset"
    assert cache.loading is False
    assert notes.of("error") == ["Error loading visa bookings: connection reset"]
    # stays stopped
    calls = coll.find_calls
    assert cache.sync() is False
    assert coll.find_calls == calls
    assert len(notes.of("error")) == 1
    # last good snapshot is kept
    assert len(cache.records) == 1


def test_error_before_first_snapshot_clears_loading(make_collection, notes):
    coll = make_collection([])
    coll.fail("find", PyMongoError("no primary"))
    cache = LiveRecordCache(coll, UMRAH, notify=notes).open()
    cache.sync()
    assert cache.loading is False
    assert cache.records == []
    assert notes.of("error") == ["Error loading umrah bookings: no primary"]


def test_close_releases_stream_and_stops_delivery(make_collection, notes):
    coll = make_collection([_visa(1, "2024-01-01")])
    with LiveRecordCache(coll, VISA, notify=notes) as cache:
        cache.sync()
        stream = coll.streams[0]
    assert stream.closed
    assert cache.closed
    coll.insert_one(_visa(2, "2024-01-02"))
    assert cache.sync() is False
    assert len(cache.records) == 1
    cache.close()  # idempotent


def test_poll_after_close_raises(make_collection):
    sub = Subscription(make_collection([])).open()
    sub.close()
    with pytest.raises(SubscriptionClosed):
        sub.poll()


def test_falls_back_to_polling_without_change_streams(make_collection, notes):
    coll = make_collection([_visa(1, "2024-01-01")], watch_supported=False)
    cache = LiveRecordCache(coll, VISA, notify=notes).open()
    assert cache.sync() is True
    coll.docs.append({"_id": "direct", **_visa(2, "2024-01-02")})
    assert cache.sync() is True
    assert len(cache.records) == 2
    assert notes.messages == []
