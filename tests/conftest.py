"""
Shared fixtures for keystore tests.
"""

import copy
import re
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from prometheus_client import CollectorRegistry
from pymongo.errors import DuplicateKeyError

from keystore.adapters.impl.memory_keystore import InMemoryKeyStore
from keystore.adapters.impl.mongodb_keystore import MongoKeyStore
from keystore.observability.metrics import KeyStoreMetrics


class FakeDeleteResult:
    def __init__(self, deleted_count: int):
        self.deleted_count = deleted_count


class FakeCursor:
    """Async cursor over a list of documents that records whether it was closed."""

    def __init__(self, documents, error=None, fail_after=None):
        self.documents = documents
        self.error = error
        self.fail_after = fail_after
        self.position = 0
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.error is not None and self.position >= self.fail_after:
            raise self.error
        if self.position >= len(self.documents):
            raise StopAsyncIteration
        document = self.documents[self.position]
        self.position += 1
        return document

    async def close(self):
        self.closed = True


class FakeCollection:
    """
    In-memory stand-in for an AsyncCollection.

    Supports the subset of the driver API the MongoDB key store uses:
    insert_one with a unique ``_id``, find_one and delete_one by ``_id`` and
    find with an optional ``$regex`` on ``_id``, a projection and a limit.
    """

    def __init__(self):
        self.documents = {}
        self.cursors = []
        self.find_calls = []
        self.cursor_error = None
        self.cursor_fail_after = 0
        client = SimpleNamespace(
            admin=SimpleNamespace(command=AsyncMock(return_value={"ok": 1.0})),
            close=AsyncMock(),
        )
        self.database = SimpleNamespace(client=client)

    async def insert_one(self, document):
        if document["_id"] in self.documents:
            raise DuplicateKeyError(
                f"E11000 duplicate key error dup key: {{ _id: \"{document['_id']}\" }}",
                code=11000,
            )
        self.documents[document["_id"]] = copy.deepcopy(document)

    async def find_one(self, query):
        document = self.documents.get(query["_id"])
        return copy.deepcopy(document) if document is not None else None

    async def delete_one(self, query):
        if self.documents.pop(query["_id"], None) is None:
            return FakeDeleteResult(0)
        return FakeDeleteResult(1)

    def find(self, query, projection=None, limit=0):
        self.find_calls.append({"query": query, "projection": projection, "limit": limit})

        matches = list(self.documents.values())
        if "_id" in query:
            pattern = query["_id"]["$regex"]
            matches = [d for d in matches if re.match(pattern, d["_id"])]
        if projection:
            matches = [{k: v for k, v in d.items() if projection.get(k)} for d in matches]
        if limit:
            matches = matches[:limit]

        cursor = FakeCursor(matches, self.cursor_error, self.cursor_fail_after)
        self.cursors.append(cursor)
        return cursor


@pytest.fixture
def registry():
    """Private Prometheus registry so tests don't share counters."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    """Metrics collector bound to the private registry."""
    return KeyStoreMetrics(registry)


@pytest.fixture
def collection():
    """Fake MongoDB collection."""
    return FakeCollection()


@pytest.fixture
def mongo_store(collection, metrics):
    """MongoDB key store over the fake collection."""
    return MongoKeyStore(collection, metrics=metrics)


@pytest.fixture
def memory_store(metrics):
    """In-memory key store."""
    return InMemoryKeyStore(metrics=metrics)


@pytest.fixture(params=["memory", "mongodb"])
def store(request, memory_store, mongo_store):
    """Every key store backend, for contract tests."""
    if request.param == "memory":
        return memory_store
    return mongo_store
