# tests/conftest.py
from __future__ import annotations
from types import SimpleNamespace
from typing import Any, Dict, List, Mapping, Optional

import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure

from ost_auth import Actor


def _sortable(v: Any) -> str:
    if v is None:
        return ""
    if hasattr(v, "isoformat"):
        return v.isoformat()
    return str(v)


def _match(doc: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    for k, cond in query.items():
        v = doc.get(k)
        if isinstance(cond, dict) and any(str(op).startswith("$") for op in cond):
            if "$gte" in cond and not (v is not None and v >= cond["$gte"]):
                return False
            if "$lte" in cond and not (v is not None and v <= cond["$lte"]):
                return False
            if "$in" in cond and v not in cond["$in"]:
                return False
        elif v != cond:
            return False
    return True


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self.docs = docs

    def sort(self, key, direction: Optional[int] = None):
        keys = key if isinstance(key, list) else [(key, direction or 1)]
        for k, d in reversed(keys):
            self.docs.sort(key=lambda doc: _sortable(doc.get(k)), reverse=d < 0)
        return self

    def limit(self, n: int):
        if n:
            self.docs = self.docs[:n]
        return self

    def __iter__(self):
        return iter(self.docs)


class FakeChangeStream:
    def __init__(self, coll: "FakeCollection"):
        self.coll = coll
        self.events: List[Dict[str, Any]] = []
        self.closed = False

    def try_next(self):
        self.coll._check("try_next")
        return self.events.pop(0) if self.events else None

    def close(self):
        self.closed = True


class FakeCollection:
    """Just enough of pymongo.collection.Collection for the tests."""

    def __init__(self, docs=(), name: str = "bookings", watch_supported: bool = True):
        self.name = name
        self.docs: List[Dict[str, Any]] = []
        for d in docs:
            d = dict(d)
            d.setdefault("_id", ObjectId())
            self.docs.append(d)
        self.streams: List[FakeChangeStream] = []
        self.failures: Dict[str, Exception] = {}
        self.find_calls = 0
        self.update_calls: List[tuple] = []
        self.watch_supported = watch_supported

    def fail(self, op: str, exc: Exception) -> None:
        self.failures[op] = exc

    def _check(self, op: str) -> None:
        if op in self.failures:
            raise self.failures[op]

    def _emit(self, op: str) -> None:
        for s in self.streams:
            if not s.closed:
                s.events.append({"operationType": op})

    def watch(self, **kwargs):
        self._check("watch")
        if not self.watch_supported:
            raise OperationFailure("The $changeStream stage is only supported on replica sets", code=40573)
        s = FakeChangeStream(self)
        self.streams.append(s)
        return s

    def find(self, query=None):
        self._check("find")
        self.find_calls += 1
        return FakeCursor([dict(d) for d in self.docs if _match(d, query or {})])

    def find_one(self, query):
        self._check("find_one")
        for d in self.docs:
            if _match(d, query):
                return dict(d)
        return None

    def insert_one(self, doc):
        self._check("insert_one")
        doc.setdefault("_id", ObjectId())
        self.docs.append(dict(doc))
        self._emit("insert")
        return SimpleNamespace(inserted_id=doc["_id"])

    def update_one(self, query, update):
        self._check("update_one")
        self.update_calls.append((query, update))
        for d in self.docs:
            if _match(d, query):
                d.update(update.get("$set", {}))
                self._emit("update")
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)


class FakeDB(dict):
    def __missing__(self, name):
        coll = self[name] = FakeCollection(name=name)
        return coll


class Recorder:
    """Collects (level, message) notifications."""

    def __init__(self):
        self.messages: List[tuple] = []

    def __call__(self, level: str, message: str) -> None:
        self.messages.append((level, message))

    def of(self, level: str) -> List[str]:
        return [m for lv, m in self.messages if lv == level]


@pytest.fixture
def actor():
    return Actor(uid="agent-1", name="Agent One", email="agent1@ostravels.example")


@pytest.fixture
def other_actor():
    return Actor(uid="agent-2", name="Agent Two", email="agent2@ostravels.example")


@pytest.fixture
def notes():
    return Recorder()


@pytest.fixture
def fake_db():
    return FakeDB()


@pytest.fixture
def make_collection():
    return FakeCollection
