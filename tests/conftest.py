"""
Pytest fixtures for the notes store tests.

Provides:
- an in-memory stand-in for the motor `notes` collection
- a FastAPI test client wired to it
- a mocked pymongo client for the seeder
"""

from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import notes_service
from seed_data import DEFAULT_CONFIG


class FakeCursor:
    def __init__(self, docs):
        self.docs = list(docs)

    def sort(self, key, direction):
        self.docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def __aiter__(self):
        self._it = iter(self.docs)
        return self

    async def __anext__(self):
        try:
            return next(self._it)
        except StopIteration:
            raise StopAsyncIteration


class FakeNotesCollection:
    """Async collection double supporting the equality queries the service issues."""

    def __init__(self):
        self.docs = []

    def _match(self, query):
        return [d for d in self.docs if all(d.get(k) == v for k, v in query.items())]

    def find(self, query):
        return FakeCursor(dict(d) for d in self._match(query))

    async def find_one(self, query):
        found = self._match(query)
        return dict(found[0]) if found else None

    async def insert_one(self, doc):
        doc = dict(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def update_one(self, query, update):
        found = self._match(query)
        if found:
            found[0].update(update["$set"])
        return SimpleNamespace(matched_count=len(found[:1]))

    async def delete_one(self, query):
        found = self._match(query)
        if found:
            self.docs.remove(found[0])
        return SimpleNamespace(deleted_count=len(found[:1]))


class FakeMongoClient:
    def __init__(self, reachable=True):
        self.reachable = reachable

    async def server_info(self):
        if not self.reachable:
            raise ConnectionError("no server")
        return {"version": "7.0.0"}


@pytest.fixture
def notes_coll():
    return FakeNotesCollection()


@pytest.fixture
def api(monkeypatch, notes_coll):
    monkeypatch.setattr(notes_service, "db", SimpleNamespace(notes=notes_coll))
    monkeypatch.setattr(notes_service, "mongo_client", FakeMongoClient())
    monkeypatch.setattr(notes_service, "AUTH_USERNAME", None)
    monkeypatch.setattr(notes_service, "AUTH_PASSWORD", None)
    return TestClient(notes_service.app)


@pytest.fixture
def seeded_coll(notes_coll):
    """Notes collection pre-filled with the seeder's sample notes, oldest first."""
    base = datetime(2024, 1, 1)
    for i, n in enumerate(DEFAULT_CONFIG.notes):
        notes_coll.docs.append(dict(n, _id=ObjectId(), createdDate=base + timedelta(minutes=i)))
    return notes_coll


@pytest.fixture
def mongo():
    """Mocked pymongo client whose every database is the same mock."""
    client = MagicMock(name="MongoClient")
    db = client.__getitem__.return_value
    db.name = DEFAULT_CONFIG.database
    coll = db.__getitem__.return_value
    coll.insert_many.side_effect = lambda docs: SimpleNamespace(inserted_ids=[ObjectId() for _ in docs])
    coll.create_index.side_effect = lambda keys: f"{keys[0][0]}_{keys[0][1]}"
    coll.count_documents.return_value = len(DEFAULT_CONFIG.notes)
    return client
