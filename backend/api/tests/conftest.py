"""
Fixtures compartilhadas: banco Mongo em memória no lugar do motor e credenciais
de Basic Auth em arquivo temporário.
"""
from datetime import datetime
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
from pymongo.errors import DuplicateKeyError

from backend.mongo import db

AUTH = ("admin", "admin123")
VALID_CPFS = ["22442001403", "09702414458", "52998224725", "11144477735"]


def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, expected in query.items():
        value = doc.get(key)
        if isinstance(expected, dict):
            if "$ne" in expected and value == expected["$ne"]:
                return False
        elif value != expected:
            return False
    return True


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs

    def sort(self, key: str, direction: int = 1) -> "FakeCursor":
        self._docs.sort(key=lambda d: d[key], reverse=direction < 0)
        return self

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """Subconjunto da API do AsyncIOMotorCollection usado pelo serviço."""

    def __init__(self):
        self.docs: List[Dict[str, Any]] = []

    def find(self, query: Dict[str, Any]) -> FakeCursor:
        return FakeCursor([dict(d) for d in self.docs if _matches(d, query)])

    async def find_one(self, query: Dict[str, Any]):
        for doc in self.docs:
            if _matches(doc, query):
                return dict(doc)
        return None

    async def insert_one(self, doc: Dict[str, Any]):
        for existing in self.docs:
            if existing["_id"] == doc["_id"]:
                raise DuplicateKeyError("_id duplicado", 11000, {"keyPattern": {"_id": 1}})
            if doc.get("active") and existing.get("active") and existing.get("cpf") == doc.get("cpf"):
                raise DuplicateKeyError("cpf duplicado", 11000, {"keyPattern": {"cpf": 1}})
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    async def update_one(self, query: Dict[str, Any], update: Dict[str, Any]):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update.get("$set", {}))
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def find_one_and_update(self, query, update, upsert=False, return_document=None):
        doc = await self.find_one(query)
        if doc is None:
            doc = dict(query)
            self.docs.append(doc)
        else:
            doc = next(d for d in self.docs if _matches(d, query))
        for key, inc in update.get("$inc", {}).items():
            doc[key] = doc.get(key, 0) + inc
        return dict(doc)

    async def create_index(self, keys, **kwargs) -> str:
        return kwargs.get("name", "index")


class FakeDatabase:
    def __init__(self):
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection())


def make_person(_id: int, name: str, cpf: str, email: str = None, active: bool = True,
                birth_date: datetime = datetime(1990, 5, 17)) -> Dict[str, Any]:
    now = datetime(2024, 1, 1, 12, 0, 0)
    return {
        "_id": _id,
        "name": name,
        "sex": None,
        "email": email,
        "birth_date": birth_date,
        "birthplace": None,
        "nationality": None,
        "cpf": cpf,
        "created_at": now,
        "updated_at": now,
        "active": active,
    }


def seed_persons(database: FakeDatabase, docs: List[Dict[str, Any]]) -> None:
    """Insere documentos direto na coleção e avança a sequência de ids."""
    database[db.PERSONS_COLLECTION].docs.extend(docs)
    last_id = max(d["_id"] for d in database[db.PERSONS_COLLECTION].docs)
    database[db.COUNTERS_COLLECTION].docs = [{"_id": db.PERSONS_COLLECTION, "seq": last_id}]


@pytest.fixture
def fake_db(monkeypatch) -> FakeDatabase:
    database = FakeDatabase()
    monkeypatch.setattr(db, "_mongo_db", database)
    return database


@pytest.fixture
def persons(fake_db) -> FakeCollection:
    return fake_db[db.PERSONS_COLLECTION]


@pytest.fixture
def credentials_file(tmp_path, monkeypatch):
    path = tmp_path / "basic_auth.txt"
    path.write_text("# test\nadmin:admin123\n", encoding="utf-8")
    monkeypatch.setenv("BASIC_AUTH_CREDENTIALS_FILE", str(path))
    return path
