import mongomock
import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure

import account_service
from conftest import SnapshotUnitOfWork, insert, snapshot
from errors import AppError, ErrorKind


@pytest.fixture
def world(db, make_user):
    """
    owner owns a store with comments from two visitors, bookmarks two stores,
    and receives notifications from another store. The owner also reviewed
    that other store.
    """
    owner = make_user("owner", email="owner@example.com")
    visitor = make_user("visitor", email="visitor@example.com")
    other_owner = make_user("other", email="other@example.com")

    store = insert(db, "store", owner_id=owner, name="Fish Bread", category="snack")
    other_store = insert(db, "store", owner_id=other_owner, name="Tteokbokki", category="snack")

    for i in range(3):
        insert(db, "comment", store_id=store, author_id=visitor, content=f"review {i}")
    insert(db, "comment", store_id=store, author_id=other_owner, content="nice")
    insert(db, "comment", store_id=other_store, author_id=owner, content="owner review")
    insert(db, "comment", store_id=other_store, author_id=visitor, content="visitor review")

    insert(db, "bookmark", user_id=owner, store_id=other_store)
    insert(db, "bookmark", user_id=owner, store_id=store)
    insert(db, "bookmark", user_id=visitor, store_id=store)

    insert(db, "notification", sender=store, recipients=[visitor, other_owner], message="open")
    insert(db, "notification", sender=other_store, recipients=[owner, visitor], message="sale")
    insert(db, "notification", sender=other_store, recipients=[owner], message="closed")

    return {
        "owner": owner,
        "visitor": visitor,
        "other_owner": other_owner,
        "store": store,
        "other_store": other_store,
    }


def test_delete_user_cascades(db, world):
    owner, store = world["owner"], world["store"]

    account_service.delete_user(db, owner, SnapshotUnitOfWork)

    assert db["user"].find_one({"_id": ObjectId(owner)}) is None
    assert db["store"].find_one({"_id": ObjectId(store)}) is None
    assert db["comment"].count_documents({"store_id": store}) == 0
    assert db["comment"].count_documents({"author_id": owner}) == 0
    assert db["bookmark"].count_documents({"user_id": owner}) == 0
    assert db["bookmark"].count_documents({"store_id": store}) == 0
    assert db["notification"].count_documents({"sender": store}) == 0
    assert db["notification"].count_documents({"recipients": owner}) == 0


def test_delete_user_keeps_unrelated_records(db, world):
    account_service.delete_user(db, world["owner"], SnapshotUnitOfWork)

    assert db["user"].count_documents({}) == 2
    assert db["store"].find_one({"_id": ObjectId(world["other_store"])}) is not None
    assert db["comment"].count_documents({"store_id": world["other_store"]}) == 1
    # the visitor's bookmark pointed at the deleted store
    assert db["bookmark"].count_documents({"user_id": world["visitor"]}) == 0
    assert db["bookmark"].count_documents({}) == 0

    # notifications the owner merely received survive without them
    received = list(db["notification"].find({"sender": world["other_store"]}))
    assert len(received) == 2
    recipients = {n["message"]: n["recipients"] for n in received}
    assert recipients == {"sale": [world["visitor"]], "closed": []}


def test_delete_user_without_store(db, world):
    visitor = world["visitor"]

    account_service.delete_user(db, visitor, SnapshotUnitOfWork)

    assert db["user"].find_one({"_id": ObjectId(visitor)}) is None
    assert db["store"].count_documents({}) == 2
    assert db["comment"].count_documents({"author_id": visitor}) == 0
    assert db["comment"].count_documents({"store_id": world["store"]}) == 1
    assert db["notification"].count_documents({"recipients": visitor}) == 0
    assert db["notification"].count_documents({}) == 3


def test_delete_unknown_user_is_not_found(db, world):
    before = snapshot(db)

    with pytest.raises(AppError) as exc_info:
        account_service.delete_user(db, str(ObjectId()), SnapshotUnitOfWork)

    assert exc_info.value.kind is ErrorKind.NOT_FOUND
    assert snapshot(db) == before


def test_delete_user_rolls_back_on_write_failure(db, world, monkeypatch):
    before = snapshot(db)
    original_delete_many = mongomock.Collection.delete_many

    def failing_delete_many(self, filter, *args, **kwargs):
        if self.name == "bookmark":
            raise OperationFailure("simulated write failure")
        return original_delete_many(self, filter, *args, **kwargs)

    monkeypatch.setattr(mongomock.Collection, "delete_many", failing_delete_many)

    with pytest.raises(AppError) as exc_info:
        account_service.delete_user(db, world["owner"], SnapshotUnitOfWork)

    assert exc_info.value.kind is ErrorKind.INTERNAL
    assert exc_info.value.message == account_service.DELETE_FAILED
    assert isinstance(exc_info.value.__cause__, OperationFailure)
    assert snapshot(db) == before


def test_delete_user_rolls_back_on_failure_after_store_removal(db, world, monkeypatch):
    before = snapshot(db)

    def failing_update_many(self, *args, **kwargs):
        raise OperationFailure("simulated write failure")

    monkeypatch.setattr(mongomock.Collection, "update_many", failing_update_many)

    with pytest.raises(AppError) as exc_info:
        account_service.delete_user(db, world["owner"], SnapshotUnitOfWork)

    assert exc_info.value.status_code == 500
    assert snapshot(db) == before
