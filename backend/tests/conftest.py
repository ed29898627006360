import os

os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017/desamart_test")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ENV", "test")

import copy
from collections import Counter

import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError
from pymongo.results import DeleteResult, InsertManyResult, InsertOneResult, UpdateResult

from utils.cod_security import CODSettingsCache

_MISSING = object()


# =====================================================
# IN-MEMORY MONGO
# =====================================================

def _get_path(doc, path):
    cur = doc
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return _MISSING
        cur = cur[part]
    return cur


def _set_path(doc, path, value):
    parts = path.split(".")
    cur = doc
    for part in parts[:-1]:
        cur = cur.setdefault(part, {})
    cur[parts[-1]] = value


def _matches_condition(value, cond):
    if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
        present = value is not _MISSING and value is not None
        for op, arg in cond.items():
            if op == "$gte":
                ok = present and value >= arg
            elif op == "$gt":
                ok = present and value > arg
            elif op == "$lte":
                ok = present and value <= arg
            elif op == "$lt":
                ok = present and value < arg
            elif op == "$ne":
                ok = (None if value is _MISSING else value) != arg
            elif op == "$in":
                ok = (None if value is _MISSING else value) in arg
            else:
                raise NotImplementedError(op)
            if not ok:
                return False
        return True

    if value is _MISSING:
        return cond is None
    if isinstance(value, list) and not isinstance(cond, list):
        return cond in value
    return value == cond


def _matches(doc, query):
    return all(_matches_condition(_get_path(doc, k), v) for k, v in (query or {}).items())


def _apply_update(doc, update, inserting=False):
    for path, value in update.get("$set", {}).items():
        _set_path(doc, path, copy.deepcopy(value))
    for path, value in update.get("$inc", {}).items():
        current = _get_path(doc, path)
        _set_path(doc, path, (0 if current is _MISSING else current) + value)
    if inserting:
        for path, value in update.get("$setOnInsert", {}).items():
            _set_path(doc, path, copy.deepcopy(value))


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=1):
        self._docs.sort(key=lambda d: d.get(key, 0), reverse=direction == -1)
        return self

    async def to_list(self, length=None):
        return self._docs if length is None else self._docs[:length]

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self._docs:
            yield doc


class FakeCollection:
    def __init__(self, name):
        self.name = name
        self.docs = []
        self.calls = Counter()
        self.fail_on = set()

    def _enter(self, op):
        self.calls[op] += 1
        if op in self.fail_on:
            raise PyMongoError(f"{self.name}.{op} failed")

    def _find_all(self, query):
        return [d for d in self.docs if _matches(d, query)]

    def find(self, query=None, projection=None):
        self._enter("find")
        return FakeCursor([copy.deepcopy(d) for d in self._find_all(query)])

    async def find_one(self, query=None, projection=None):
        self._enter("find_one")
        found = self._find_all(query)
        return copy.deepcopy(found[0]) if found else None

    async def count_documents(self, query):
        self._enter("count_documents")
        return len(self._find_all(query))

    async def insert_one(self, doc):
        self._enter("insert_one")
        doc.setdefault("_id", ObjectId())
        self.docs.append(copy.deepcopy(doc))
        return InsertOneResult(doc["_id"], True)

    async def insert_many(self, docs):
        self._enter("insert_many")
        ids = []
        for doc in docs:
            doc.setdefault("_id", ObjectId())
            self.docs.append(copy.deepcopy(doc))
            ids.append(doc["_id"])
        return InsertManyResult(ids, True)

    async def update_one(self, query, update, upsert=False):
        self._enter("update_one")
        found = self._find_all(query)
        if found:
            _apply_update(found[0], update)
            return UpdateResult({"n": 1, "nModified": 1}, True)

        if upsert:
            doc = {
                k: v for k, v in query.items()
                if not k.startswith("$") and not isinstance(v, dict)
            }
            doc["_id"] = doc.get("_id", ObjectId())
            _apply_update(doc, update, inserting=True)
            self.docs.append(doc)
            return UpdateResult({"n": 1, "nModified": 0, "upserted": doc["_id"]}, True)

        return UpdateResult({"n": 0, "nModified": 0}, True)

    async def delete_many(self, query):
        self._enter("delete_many")
        keep = [d for d in self.docs if not _matches(d, query)]
        deleted = len(self.docs) - len(keep)
        self.docs = keep
        return DeleteResult({"n": deleted}, True)

    async def create_index(self, keys, **kwargs):
        return kwargs.get("name")


class FakeDB:
    def __init__(self):
        self._collections = {}

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self._collections.setdefault(name, FakeCollection(name))

    async def command(self, *args, **kwargs):
        return {"ok": 1}


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# =====================================================
# FIXTURES
# =====================================================

@pytest.fixture
def db():
    return FakeDB()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CODSettingsCache(ttl_seconds=300, clock=clock)


@pytest.fixture
def app(db, cache):
    from database import get_db
    from main import app
    from utils.cod_security import get_cod_settings_cache

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_cod_settings_cache] = lambda: cache
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


@pytest.fixture
def make_user(db):
    from utils.jwt import create_access_token

    def _make(*roles, **fields):
        user = {"_id": ObjectId(), "roles": list(roles), **fields}
        db.users.docs.append(user)
        token = create_access_token(str(user["_id"]), list(roles))
        return user, {"Authorization": f"Bearer {token}"}

    return _make
