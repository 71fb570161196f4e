"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap for import paths used by backend and root-level
    tool module tests, plus an in-memory stand-in for the Motor database,
    client and session API used by the tip repository.
"""

from __future__ import annotations

import copy
import re
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from bson import ObjectId
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]
_REPO_ROOT = _THIS_FILE.parents[2]

for candidate in (str(_THIS_FILE.parent), str(_BACKEND_DIR), str(_REPO_ROOT)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)


class _Result:
    def __init__(self, **kwargs):
        self.__dict__.update(kwargs)


class FakeCursor:
    def __init__(self, docs):
        self._docs = [copy.deepcopy(d) for d in docs]
        self._skip = 0
        self._limit = 0

    def sort(self, key_or_list, direction=None):
        keys = key_or_list if isinstance(key_or_list, list) else [(key_or_list, direction or 1)]
        # Stable sorts applied from the least significant key
        for key, dirn in reversed(keys):
            self._docs.sort(key=lambda d: _sort_key(d.get(key)), reverse=int(dirn) < 0)
        return self

    def skip(self, count):
        self._skip = count
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _window(self):
        docs = self._docs[self._skip:]
        return docs[: self._limit] if self._limit else docs

    async def to_list(self, length=None):
        docs = self._window()
        return docs[:length] if length else docs

    def __aiter__(self):
        self._iter = iter(self._window())
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration from None


def _sort_key(value):
    return (value is None, value if value is not None else 0)


def _values(doc, path):
    cur = doc
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return None, False
        cur = cur[part]
    return cur, True


def _candidates(value):
    return value if isinstance(value, list) else [value]


def _match_operator(value, exists, op, arg):
    if op == "$in":
        return any(v in arg for v in _candidates(value))
    if op == "$nin":
        return not any(v in arg for v in _candidates(value))
    if op == "$ne":
        return value != arg
    if op == "$exists":
        return bool(arg) == exists
    if op == "$regex":
        return False  # handled with $options by the caller
    if op == "$options":
        return True
    if not exists or value is None:
        return False
    comparisons = {
        "$gte": lambda v: v >= arg,
        "$gt": lambda v: v > arg,
        "$lte": lambda v: v <= arg,
        "$lt": lambda v: v < arg,
    }
    if op in comparisons:
        return any(comparisons[op](v) for v in _candidates(value))
    raise NotImplementedError(f"Fake collection does not support {op}")


def matches(doc, query) -> bool:
    for key, expected in query.items():
        value, exists = _values(doc, key)
        if isinstance(expected, dict) and any(k.startswith("$") for k in expected):
            if "$regex" in expected:
                flags = re.IGNORECASE if "i" in expected.get("$options", "") else 0
                pattern = re.compile(expected["$regex"], flags)
                if not any(isinstance(v, str) and pattern.search(v) for v in _candidates(value)):
                    return False
            for op, arg in expected.items():
                if op in ("$regex", "$options"):
                    continue
                if not _match_operator(value, exists, op, arg):
                    return False
            continue
        if not exists or expected not in _candidates(value) and value != expected:
            return False
    return True


def _as_stored(value):
    """Copy of ``value`` as the server returns it: BSON dates are naive UTC with millisecond precision."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.replace(microsecond=value.microsecond // 1000 * 1000)
    if isinstance(value, dict):
        return {k: _as_stored(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_as_stored(v) for v in value]
    return copy.deepcopy(value)


class FakeCollection:
    """Subset of the Motor collection API. ``session`` is accepted and ignored."""

    def __init__(self, name, docs=None):
        self.name = name
        self.docs = list(docs or [])
        self.fail_ops: set[str] = set()
        self.indexes: list = []

    def _maybe_fail(self, op):
        if op in self.fail_ops:
            raise PyMongoError(f"injected {op} failure on {self.name}")

    def find(self, query=None, projection=None, session=None):
        self._maybe_fail("find")
        return FakeCursor([d for d in self.docs if matches(d, query or {})])

    async def find_one(self, query=None, projection=None, sort=None, session=None):
        self._maybe_fail("find_one")
        cursor = self.find(query, projection)
        if sort:
            cursor.sort(sort)
        docs = await cursor.to_list(length=1)
        return docs[0] if docs else None

    async def count_documents(self, query, limit=0, session=None):
        self._maybe_fail("count_documents")
        hits = sum(1 for d in self.docs if matches(d, query))
        return min(hits, limit) if limit else hits

    async def insert_one(self, doc, session=None):
        self._maybe_fail("insert_one")
        doc.setdefault("_id", ObjectId())
        if any(d["_id"] == doc["_id"] for d in self.docs):
            raise DuplicateKeyError(f"duplicate _id {doc['_id']!r} in {self.name}")
        self.docs.append(_as_stored(doc))
        return _Result(inserted_id=doc["_id"])

    async def insert_many(self, docs, ordered=True, session=None):
        self._maybe_fail("insert_many")
        ids = []
        for index, doc in enumerate(docs):
            try:
                result = await self.insert_one(doc)
            except DuplicateKeyError as exc:
                raise BulkWriteError({
                    "nInserted": len(ids),
                    "writeErrors": [{"index": index, "code": 11000, "errmsg": str(exc)}],
                }) from exc
            ids.append(result.inserted_id)
        return _Result(inserted_ids=ids)

    def _apply(self, doc, update):
        for key, value in (update.get("$set") or {}).items():
            doc[key] = _as_stored(value)

    async def update_one(self, query, update, upsert=False, session=None):
        self._maybe_fail("update_one")
        for doc in self.docs:
            if matches(doc, query):
                self._apply(doc, update)
                return _Result(matched_count=1, modified_count=1)
        return _Result(matched_count=0, modified_count=0)

    async def find_one_and_update(self, query, update, projection=None, return_document=False, session=None):
        self._maybe_fail("find_one_and_update")
        for doc in self.docs:
            if matches(doc, query):
                before = copy.deepcopy(doc)
                self._apply(doc, update)
                return copy.deepcopy(doc) if return_document else before
        return None

    async def delete_one(self, query, session=None):
        self._maybe_fail("delete_one")
        for index, doc in enumerate(self.docs):
            if matches(doc, query):
                del self.docs[index]
                return _Result(deleted_count=1)
        return _Result(deleted_count=0)

    async def delete_many(self, query, session=None):
        self._maybe_fail("delete_many")
        kept = [d for d in self.docs if not matches(d, query)]
        deleted = len(self.docs) - len(kept)
        self.docs = kept
        return _Result(deleted_count=deleted)

    async def create_index(self, keys, **kwargs):
        self.indexes.append(keys)
        return str(keys)


class FakeDB:
    def __init__(self):
        self._collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    def __getattr__(self, name) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def snapshot(self):
        return {name: copy.deepcopy(c.docs) for name, c in self._collections.items()}

    def restore(self, snap):
        for name, coll in self._collections.items():
            coll.docs = copy.deepcopy(snap.get(name, []))

    async def command(self, name):
        return {"ok": 1.0}


class _FakeTransaction:
    def __init__(self, db, client):
        self._db = db
        self._client = client

    async def __aenter__(self):
        self._snap = self._db.snapshot()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            self._client.commits += 1
        else:
            self._db.restore(self._snap)
            self._client.aborts += 1
        return False


class FakeSession:
    def __init__(self, db, client):
        self._db = db
        self._client = client

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def start_transaction(self):
        return _FakeTransaction(self._db, self._client)


class FakeClient:
    def __init__(self, db):
        self._db = db
        self.commits = 0
        self.aborts = 0

    async def start_session(self):
        return FakeSession(self._db, self)


@pytest.fixture
def fake_db():
    return FakeDB()


@pytest.fixture
def fake_client(fake_db):
    return FakeClient(fake_db)


@pytest.fixture
def repository(fake_db, fake_client):
    from app.services.tip_repository import TipRepository

    return TipRepository(fake_db, fake_client, use_transactions=True, timezone="Europe/Lisbon")


@pytest.fixture
def plain_repository(fake_db):
    from app.services.tip_repository import TipRepository

    return TipRepository(fake_db, None, use_transactions=False, timezone="Europe/Lisbon")
