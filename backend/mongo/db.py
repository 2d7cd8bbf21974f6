from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo import ASCENDING, ReturnDocument
import logging
import os


logger = logging.getLogger(__name__)

# ====== Conexão MongoDB (motor) ======
_mongo_client: Optional[AsyncIOMotorClient] = None
_mongo_db: Optional[AsyncIOMotorDatabase] = None

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "persons_db")

PERSONS_COLLECTION = "persons"
COUNTERS_COLLECTION = "counters"

async def connect_to_mongo() -> None:
	global _mongo_client, _mongo_db
	if _mongo_client is None:
		_mongo_client = AsyncIOMotorClient(MONGO_URI)
		_mongo_db = _mongo_client[MONGO_DB_NAME]
		logger.info(f"Cliente MongoDB criado: db={MONGO_DB_NAME}")
		await ensure_indexes()

async def close_mongo_connection() -> None:
	global _mongo_client, _mongo_db
	if _mongo_client is not None:
		_mongo_client.close()
		_mongo_client = None
		_mongo_db = None

def get_db() -> AsyncIOMotorDatabase:
	if _mongo_db is None:
		raise RuntimeError("MongoDB nao inicializado. Chame connect_to_mongo no startup da API.")
	return _mongo_db

def get_collection(name: str) -> AsyncIOMotorCollection:
	return get_db()[name]

async def ensure_indexes() -> None:
	# CPF único apenas entre registros ativos (soft delete libera o CPF)
	persons = get_collection(PERSONS_COLLECTION)
	await persons.create_index(
		[("cpf", ASCENDING)],
		name="cpf_active_unique",
		unique=True,
		partialFilterExpression={"active": True},
	)
	await persons.create_index([("active", ASCENDING), ("_id", ASCENDING)], name="active_id")
	logger.info("Índices da coleção persons garantidos")

async def next_sequence(name: str) -> int:
	"""Retorna o próximo valor inteiro da sequência `name` (ids incrementais)."""
	counters = get_collection(COUNTERS_COLLECTION)
	doc = await counters.find_one_and_update(
		{"_id": name},
		{"$inc": {"seq": 1}},
		upsert=True,
		return_document=ReturnDocument.AFTER,
	)
	return doc["seq"]
