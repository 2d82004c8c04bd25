"""
Document store used by the API.

Two implementations share one interface:
- MongoStore wraps a pymongo database (production)
- MemoryStore keeps collections in process memory (tests, `memory://` URL)

Filters are plain equality dicts, the only kind the handlers issue.
"""

import copy
import logging
import threading
from typing import Any, Dict, List, NamedTuple, Optional, Protocol

import bson
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError
from pymongo.database import Database

from config import Settings
from errors import ValidationError

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class UpdateOutcome(NamedTuple):
    matched_count: int
    modified_count: int


class Store(Protocol):
    def insert_one(self, collection: str, doc: Document) -> str: ...

    def insert_many(self, collection: str, docs: List[Document]) -> List[str]: ...

    def find_one(self, collection: str, filter: Document) -> Optional[Document]: ...

    def find(self, collection: str, filter: Optional[Document] = None) -> List[Document]: ...

    def count_documents(self, collection: str, filter: Optional[Document] = None) -> int: ...

    def update_one(self, collection: str, filter: Document, fields: Document) -> UpdateOutcome: ...

    def replace_one(self, collection: str, filter: Document, doc: Document) -> UpdateOutcome: ...

    def delete_one(self, collection: str, filter: Document) -> int: ...

    def list_collection_names(self) -> List[str]: ...

    def close(self) -> None: ...


def parse_id(value: Any) -> ObjectId:
    """Convert a path id to an ObjectId, or raise ValidationError."""
    # ObjectId(None) would generate a fresh id
    if not isinstance(value, str):
        raise ValidationError("Invalid ID")
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid ID")


def serialize(value: Any) -> Any:
    """Render ObjectIds as hex strings so documents can be returned as JSON."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value


class MongoStore:
    def __init__(self, db: Database, client: Optional[MongoClient] = None):
        self.db = db
        self._client = client

    @classmethod
    def from_url(cls, url: str, name: str) -> "MongoStore":
        client = MongoClient(url)
        logger.info("Connected to MongoDB database %s", name)
        return cls(client[name], client)

    def insert_one(self, collection, doc):
        # pymongo writes the generated _id back into the dict it is given
        result = self.db[collection].insert_one(dict(doc))
        return str(result.inserted_id)

    def insert_many(self, collection, docs):
        result = self.db[collection].insert_many([dict(d) for d in docs])
        return [str(i) for i in result.inserted_ids]

    def find_one(self, collection, filter):
        return self.db[collection].find_one(filter)

    def find(self, collection, filter=None):
        return list(self.db[collection].find(filter or {}))

    def count_documents(self, collection, filter=None):
        return self.db[collection].count_documents(filter or {})

    def update_one(self, collection, filter, fields):
        result = self.db[collection].update_one(filter, {"$set": fields})
        return UpdateOutcome(result.matched_count, result.modified_count)

    def replace_one(self, collection, filter, doc):
        result = self.db[collection].replace_one(filter, doc)
        return UpdateOutcome(result.matched_count, result.modified_count)

    def delete_one(self, collection, filter):
        return self.db[collection].delete_one(filter).deleted_count

    def list_collection_names(self):
        return self.db.list_collection_names()

    def close(self):
        if self._client is not None:
            self._client.close()


class MemoryStore:
    """In-memory store - suitable for tests and single-process demos."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[ObjectId, Document]] = {}
        self._lock = threading.Lock()

    def _docs(self, collection: str) -> Dict[ObjectId, Document]:
        return self._collections.get(collection, {})

    @staticmethod
    def _same(a: Document, b: Document) -> bool:
        # BSON bytes, so True and 1 or 1.0 and 1 count as different values
        return bson.encode(a) == bson.encode(b)

    @staticmethod
    def _matches(doc: Document, filter: Optional[Document]) -> bool:
        if not filter:
            return True
        return all(k in doc and doc[k] == v for k, v in filter.items())

    def _first(self, collection: str, filter: Document) -> Optional[Document]:
        for doc in self._docs(collection).values():
            if self._matches(doc, filter):
                return doc
        return None

    def insert_one(self, collection, doc):
        doc = copy.deepcopy(doc)
        oid = doc.pop("_id", None)
        doc = {"_id": ObjectId() if oid is None else oid, **doc}
        bson.encode(doc)
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            if doc["_id"] in docs:
                raise DuplicateKeyError("E11000 duplicate key error", code=11000)
            docs[doc["_id"]] = doc
        return str(doc["_id"])

    def insert_many(self, collection, docs):
        return [self.insert_one(collection, d) for d in docs]

    def find_one(self, collection, filter):
        with self._lock:
            return copy.deepcopy(self._first(collection, filter))

    def find(self, collection, filter=None):
        with self._lock:
            return [copy.deepcopy(d) for d in self._docs(collection).values() if self._matches(d, filter)]

    def count_documents(self, collection, filter=None):
        return len(self.find(collection, filter))

    def update_one(self, collection, filter, fields):
        with self._lock:
            doc = self._first(collection, filter)
            if doc is None:
                return UpdateOutcome(0, 0)
            updated = {**doc, **copy.deepcopy(fields)}
            modified = not self._same(doc, updated)
            doc.update(updated)
            return UpdateOutcome(1, int(modified))

    def replace_one(self, collection, filter, doc):
        with self._lock:
            current = self._first(collection, filter)
            if current is None:
                return UpdateOutcome(0, 0)
            replacement = copy.deepcopy(doc)
            replacement.pop("_id", None)
            replacement = {"_id": current["_id"], **replacement}
            modified = not self._same(current, replacement)
            self._docs(collection)[current["_id"]] = replacement
            return UpdateOutcome(1, int(modified))

    def delete_one(self, collection, filter):
        with self._lock:
            doc = self._first(collection, filter)
            if doc is None:
                return 0
            del self._docs(collection)[doc["_id"]]
            return 1

    def list_collection_names(self):
        with self._lock:
            return list(self._collections)

    def close(self):
        pass


def connect(settings: Settings) -> Store:
    if settings.database_url.startswith("memory://"):
        logger.info("Using in-memory store")
        return MemoryStore()
    return MongoStore.from_url(settings.database_url, settings.database_name)
