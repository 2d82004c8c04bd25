"""Tests for the store implementations and id helpers."""

from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from config import Settings
from database import MemoryStore, MongoStore, UpdateOutcome, connect, parse_id, serialize
from errors import ValidationError


class TestParseId:
    def test_valid_hex(self) -> None:
        oid = ObjectId()
        assert parse_id(str(oid)) == oid

    @pytest.mark.parametrize("value", ["", "123", "zzzzzzzzzzzzzzzzzzzzzzzz", None])
    def test_invalid(self, value) -> None:
        with pytest.raises(ValidationError):
            parse_id(value)


class TestSerialize:
    def test_nested_object_ids(self) -> None:
        a, b = ObjectId(), ObjectId()
        doc = {"_id": a, "refs": [b, "x"], "meta": {"by": a}, "n": 1}
        assert serialize(doc) == {"_id": str(a), "refs": [str(b), "x"], "meta": {"by": str(a)}, "n": 1}


class TestMemoryStore:
    """MemoryStore mirrors the pymongo results the handlers rely on."""

    @pytest.fixture
    def store(self) -> MemoryStore:
        return MemoryStore()

    def test_insert_assigns_object_id(self, store) -> None:
        doc = {"name": "a"}
        new_id = store.insert_one("things", doc)
        assert "_id" not in doc
        assert store.find_one("things", {"_id": ObjectId(new_id)})["name"] == "a"

    def test_insert_many_and_count(self, store) -> None:
        ids = store.insert_many("things", [{"k": 1}, {"k": 2}, {"k": 2}])
        assert len(set(ids)) == 3
        assert store.count_documents("things") == 3
        assert store.count_documents("things", {"k": 2}) == 2
        assert store.count_documents("other") == 0

    def test_filter_requires_every_field(self, store) -> None:
        store.insert_one("users", {"email": "a@x", "password": "p"})
        assert store.find_one("users", {"email": "a@x", "password": "p"}) is not None
        assert store.find_one("users", {"email": "a@x", "password": "q"}) is None
        assert store.find_one("users", {"email": "a@x", "role": "driver"}) is None

    def test_returned_documents_are_copies(self, store) -> None:
        new_id = store.insert_one("things", {"tags": ["a"]})
        store.find_one("things", {})["tags"].append("b")
        assert store.find_one("things", {"_id": ObjectId(new_id)})["tags"] == ["a"]

    def test_update_counts(self, store) -> None:
        new_id = ObjectId(store.insert_one("rides", {"status": "pending"}))
        assert store.update_one("rides", {"_id": new_id}, {"status": "accepted"}) == UpdateOutcome(1, 1)
        assert store.update_one("rides", {"_id": new_id}, {"status": "accepted"}) == UpdateOutcome(1, 0)
        assert store.update_one("rides", {"_id": ObjectId()}, {"status": "x"}) == UpdateOutcome(0, 0)

    def test_update_compares_bson_types(self, store) -> None:
        new_id = ObjectId(store.insert_one("rides", {"status": 1}))
        assert store.update_one("rides", {"_id": new_id}, {"status": True}) == UpdateOutcome(1, 1)
        assert store.update_one("rides", {"_id": new_id}, {"status": 1.0}) == UpdateOutcome(1, 1)
        assert store.update_one("rides", {"_id": new_id}, {"status": 1.0}) == UpdateOutcome(1, 0)

    def test_replace_with_same_document_modifies_nothing(self, store) -> None:
        new_id = ObjectId(store.insert_one("rides", {"status": "pending"}))
        assert store.replace_one("rides", {"_id": new_id}, {"status": "pending"}) == UpdateOutcome(1, 0)

    def test_duplicate_id_rejected(self, store) -> None:
        oid = ObjectId()
        store.insert_one("rides", {"_id": oid, "status": "pending"})
        with pytest.raises(DuplicateKeyError):
            store.insert_one("rides", {"_id": oid, "status": "other"})
        assert store.find_one("rides", {"_id": oid})["status"] == "pending"

    def test_unencodable_document_rejected(self, store) -> None:
        with pytest.raises(OverflowError):
            store.insert_one("rides", {"fare": 2**70})
        assert store.count_documents("rides") == 0

    def test_replace_keeps_id(self, store) -> None:
        new_id = ObjectId(store.insert_one("rides", {"status": "pending", "pickup": "A"}))
        assert store.replace_one("rides", {"_id": new_id}, {"status": "done"}) == UpdateOutcome(1, 1)
        assert store.find_one("rides", {"_id": new_id}) == {"_id": new_id, "status": "done"}
        assert store.replace_one("rides", {"_id": ObjectId()}, {}) == UpdateOutcome(0, 0)

    def test_delete(self, store) -> None:
        new_id = ObjectId(store.insert_one("rides", {}))
        assert store.delete_one("rides", {"_id": new_id}) == 1
        assert store.delete_one("rides", {"_id": new_id}) == 0

    def test_list_collection_names(self, store) -> None:
        store.insert_one("users", {})
        store.insert_one("rides", {})
        assert sorted(store.list_collection_names()) == ["rides", "users"]


class TestMongoStore:
    """MongoStore translates calls onto pymongo collections."""

    @pytest.fixture
    def db(self) -> MagicMock:
        return MagicMock()

    def test_insert_one_copies_document(self, db) -> None:
        oid = ObjectId()
        db["rides"].insert_one.return_value.inserted_id = oid
        doc = {"pickup": "A"}
        assert MongoStore(db).insert_one("rides", doc) == str(oid)
        assert doc == {"pickup": "A"}
        db["rides"].insert_one.assert_called_once_with({"pickup": "A"})

    def test_insert_many(self, db) -> None:
        ids = [ObjectId(), ObjectId()]
        db["users"].insert_many.return_value.inserted_ids = ids
        assert MongoStore(db).insert_many("users", [{}, {}]) == [str(i) for i in ids]

    def test_update_uses_set(self, db) -> None:
        db["users"].update_one.return_value.matched_count = 1
        db["users"].update_one.return_value.modified_count = 0
        result = MongoStore(db).update_one("users", {"role": "driver"}, {"available": False})
        assert result == UpdateOutcome(1, 0)
        db["users"].update_one.assert_called_once_with(
            {"role": "driver"}, {"$set": {"available": False}}
        )

    def test_find_defaults_to_all(self, db) -> None:
        db["rides"].find.return_value = iter([{"a": 1}])
        assert MongoStore(db).find("rides") == [{"a": 1}]
        db["rides"].find.assert_called_once_with({})

    def test_delete_returns_count(self, db) -> None:
        db["rides"].delete_one.return_value.deleted_count = 1
        assert MongoStore(db).delete_one("rides", {"_id": 1}) == 1

    def test_close_closes_owned_client(self, db) -> None:
        client = MagicMock()
        MongoStore(db, client).close()
        client.close.assert_called_once()


class TestConnect:
    def test_memory_url(self, monkeypatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "memory://")
        assert isinstance(connect(Settings()), MemoryStore)

    def test_mongo_url(self, monkeypatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "mongodb://db.invalid:27017")
        monkeypatch.setenv("DATABASE_NAME", "rides_test")
        store = connect(Settings())
        try:
            assert isinstance(store, MongoStore)
            assert store.db.name == "rides_test"
        finally:
            store.close()
