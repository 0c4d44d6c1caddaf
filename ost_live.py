# ost_live.py
"""
Live record cache over a MongoDB query.

`Subscription` turns a collection change stream into a stream of full
snapshots: each `poll()` drains whatever change events are pending and, if
anything changed (or nothing has been delivered yet), re-runs the query and
returns the complete ordered result. Nothing blocks; a Streamlit rerun polls
once. Without change streams (standalone server) every poll re-queries.

`LiveRecordCache` owns one subscription and the materialized record list
for one page.
"""
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from pymongo.errors import OperationFailure, PyMongoError

from ost_models import RecordSchema, materialize_snapshot

logger = logging.getLogger(__name__)

Notify = Callable[[str, str], None]
SortSpec = Sequence[Tuple[str, int]]

# upper bound on how long one try_next() may wait on the server
MAX_AWAIT_MS = 200


def log_notify(level: str, message: str) -> None:
    logger.log(logging.ERROR if level == "error" else logging.INFO, "%s", message)


class SubscriptionClosed(RuntimeError):
    pass


class Subscription:
    def __init__(self, collection, query: Optional[Mapping[str, Any]] = None,
                 sort: Optional[SortSpec] = None, watch: bool = True):
        self._collection = collection
        self._query = dict(query or {})
        self._sort = list(sort or [])
        self._watch = watch
        self._stream = None
        self._primed = False
        self.closed = False

    def open(self) -> "Subscription":
        if self._watch and self._stream is None:
            try:
                self._stream = self._collection.watch(max_await_time_ms=MAX_AWAIT_MS)
            except OperationFailure as e:
                # standalone server: no change streams, re-query on every poll
                logger.warning("change stream unavailable on %s, polling instead: %s",
                               getattr(self._collection, "name", "?"), e)
                self._watch = False
        return self

    @property
    def polling(self) -> bool:
        return not self._watch

    def _drain(self) -> int:
        if self._stream is None:
            return 0
        n = 0
        while True:
            change = self._stream.try_next()
            if change is None:
                break
            n += 1
        return n

    def snapshot(self) -> List[Dict[str, Any]]:
        cur = self._collection.find(self._query)
        if self._sort:
            cur = cur.sort(self._sort)
        return list(cur)

    def poll(self) -> Optional[List[Dict[str, Any]]]:
        """Full snapshot if one is due, else None."""
        if self.closed:
            raise SubscriptionClosed("subscription already closed")
        changed = self._drain()
        if self._primed and not changed and not self.polling:
            return None
        self._primed = True
        return self.snapshot()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._stream is not None:
            try:
                self._stream.close()
            except PyMongoError as e:
                logger.warning("closing change stream failed: %s", e)
            self._stream = None

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()
        return False


class LiveRecordCache:
    """
    Local, ordered, derived-field-complete copy of one query's result.

    Every snapshot replaces `records` wholesale. On any store error the cache
    reports once through `notify`, stops loading and stays stopped; recovery
    is a new cache.
    """

    def __init__(self, collection, schema: RecordSchema, query: Optional[Mapping[str, Any]] = None,
                 sort: Optional[SortSpec] = None, notify: Optional[Notify] = None, watch: bool = True):
        self.schema = schema
        self.records: List[Dict[str, Any]] = []
        self.loading = True
        self.error: Optional[str] = None
        self.snapshots = 0
        self._notify = notify or log_notify
        self._sub = Subscription(collection, query, sort, watch=watch)

    @property
    def closed(self) -> bool:
        return self._sub.closed

    def _fail(self, err: Exception) -> None:
        logger.error("live %s subscription failed: %s", self.schema.collection, err)
        self.error = str(err)
        self.loading = False
        self._notify("error", f"Error loading {self.schema.label.lower()} bookings: {err}")

    def open(self) -> "LiveRecordCache":
        try:
            self._sub.open()
        except PyMongoError as e:
            self._fail(e)
        return self

    def sync(self) -> bool:
        """Apply at most one pending snapshot. True if `records` was replaced."""
        if self.error is not None or self.closed:
            return False
        try:
            docs = self._sub.poll()
        except PyMongoError as e:
            self._fail(e)
            return False
        if docs is None:
            return False
        self.records = materialize_snapshot(docs, self.schema)
        self.loading = False
        self.snapshots += 1
        return True

    def close(self) -> None:
        self._sub.close()

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()
        return False
