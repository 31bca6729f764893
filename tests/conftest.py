import copy
from datetime import datetime, timezone

import mongomock
from bson import ObjectId
import pytest
from fastapi.testclient import TestClient

from main import app, get_db, get_unit_of_work
from security import issue_token_pair


class SnapshotUnitOfWork:
    """
    mongomock has no sessions, so transactions are emulated: every
    collection is copied on entry and put back on abort.
    """

    def __init__(self, db):
        self.db = db
        self.session = None
        self._snapshot = None

    def __enter__(self):
        self._snapshot = {
            name: copy.deepcopy(list(self.db[name].find()))
            for name in self.db.list_collection_names()
        }
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.commit()
        else:
            self.abort()
        return False

    def commit(self):
        self._snapshot = None

    def abort(self):
        for name in self.db.list_collection_names():
            self.db.drop_collection(name)
        for name, docs in self._snapshot.items():
            if docs:
                self.db[name].insert_many(copy.deepcopy(docs))
        self._snapshot = None


@pytest.fixture
def db():
    return mongomock.MongoClient()["store_review_test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_unit_of_work] = lambda: SnapshotUnitOfWork
    yield TestClient(app)
    app.dependency_overrides.clear()


def insert(db, collection, **fields):
    fields.setdefault("created_at", datetime.now(timezone.utc))
    res = db[collection].insert_one(fields)
    return str(res.inserted_id)


@pytest.fixture
def make_user(db):
    def _make(nickname="tester", **fields):
        fields.setdefault("role", "user")
        fields.setdefault("oauth", "local")
        return insert(db, "user", nickname=nickname, **fields)
    return _make


@pytest.fixture
def auth_headers(db):
    def _headers(user_id):
        user = db["user"].find_one({"_id": ObjectId(user_id)})
        token = issue_token_pair(user)["access_token"]
        return {"Authorization": f"Bearer {token}"}
    return _headers


def snapshot(db):
    return {
        name: sorted(db[name].find(), key=lambda d: str(d["_id"]))
        for name in ("user", "store", "comment", "bookmark", "notification")
    }
