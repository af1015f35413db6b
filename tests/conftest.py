"""Pytest configuration and in-memory MongoDB fakes."""

from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import bson
import pytest
import pytest_asyncio
from bson import ObjectId
from bson.codec_options import CodecOptions
from pymongo import errors as mongo_errors

from mcp_mongo.config import Settings
from mcp_mongo.connection import ConnectionManager
from mcp_mongo.context import ServerContext
from mcp_mongo.store import UserStore


BSON_OPTIONS = CodecOptions(tz_aware=True)


def bson_round_trip(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Store a document the way the server would: BSON keeps milliseconds only."""
    return bson.decode(bson.encode(doc), codec_options=BSON_OPTIONS)


class FakeCursor:
    """Minimal async cursor supporting sort/limit/to_list."""

    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs
        self._limit = 0

    def sort(self, key: str, direction: int):
        self._docs = sorted(self._docs, key=lambda d: d[key], reverse=direction < 0)
        return self

    def limit(self, limit: int):
        self._limit = limit
        return self

    async def to_list(self, length: Optional[int] = None) -> List[Dict[str, Any]]:
        docs = self._docs[: self._limit] if self._limit else self._docs
        return [dict(d) for d in docs]


class FakeCollection:
    """In-memory stand-in for an AsyncCollection."""

    def __init__(self):
        self.docs: List[Dict[str, Any]] = []
        self.unique_fields: List[str] = []
        self.fail_with: Optional[Exception] = None
        self.calls: List[str] = []

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if self.fail_with is not None:
            raise self.fail_with

    async def create_index(self, keys, unique: bool = False):
        self._check("create_index")
        if unique:
            self.unique_fields.extend(field for field, _ in keys)
        return "_".join(f"{field}_{direction}" for field, direction in keys)

    async def insert_one(self, doc: Dict[str, Any]):
        self._check("insert_one")
        for field in self.unique_fields:
            if any(d.get(field) == doc.get(field) for d in self.docs):
                raise mongo_errors.DuplicateKeyError(
                    f"E11000 duplicate key error collection: mcp-mongo.users index: "
                    f"{field}_1 dup key: {{ {field}: \"{doc.get(field)}\" }}",
                    11000,
                )
        stored = bson_round_trip(dict(doc, _id=ObjectId()))
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def find_one(self, query: Dict[str, Any]):
        self._check("find_one")
        for doc in self.docs:
            if all(doc.get(k) == v for k, v in query.items()):
                return dict(doc)
        return None

    def find(self, query: Optional[Dict[str, Any]] = None):
        self._check("find")
        return FakeCursor(list(self.docs))


class FakeAdmin:
    def __init__(self, client: "FakeClient"):
        self._client = client

    async def command(self, name: str):
        if self._client.ping_error is not None:
            raise self._client.ping_error
        return {"ok": 1.0}


class FakeClient:
    """Stand-in for AsyncMongoClient."""

    def __init__(self, collection: Optional[FakeCollection] = None):
        self.collection = collection or FakeCollection()
        self.ping_error: Optional[Exception] = None
        self.close_error: Optional[Exception] = None
        self.closed = False
        self.init_kwargs: Dict[str, Any] = {}
        self.uri: Optional[str] = None
        self.admin = FakeAdmin(self)
        self.database_name: Optional[str] = None

    def __call__(self, uri: str, **kwargs):
        # Acts as its own factory so tests can inspect constructor arguments.
        self.uri = uri
        self.init_kwargs = kwargs
        return self

    def get_database(self, name: str):
        self.database_name = name
        return {"users": self.collection}

    async def close(self):
        if self.close_error is not None:
            raise self.close_error
        self.closed = True


@pytest.fixture
def settings():
    return Settings(shutdown_drain_timeout=0.5)


@pytest.fixture
def collection():
    return FakeCollection()


@pytest_asyncio.fixture
async def store(collection):
    store = UserStore(collection)
    await store.ensure_indexes()
    return store


@pytest.fixture
def client(collection):
    return FakeClient(collection)


@pytest.fixture
def connection(settings, client):
    return ConnectionManager(settings, client_factory=client)


@pytest_asyncio.fixture
async def context(connection):
    await connection.connect()
    return ServerContext(connection)
