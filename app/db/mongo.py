from __future__ import annotations

import logging
from functools import lru_cache

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING

from app.core.config import get_settings

logger = logging.getLogger(__name__)

USERS = "users"
PICKUP_REQUESTS = "pickup_requests"
INCENTIVES = "incentives"
AUDIT_LOGS = "audit_logs"


@lru_cache
def get_client() -> AsyncIOMotorClient:
    settings = get_settings()
    return AsyncIOMotorClient(settings.mongo_uri)


def get_database() -> AsyncIOMotorDatabase:
    return get_client()[get_settings().mongo_db]


async def ensure_indexes(db) -> None:
    """
    incentives.user_id must be unique: the ledger's upsert relies on it so
    concurrent first credits for a citizen collapse onto one balance row.
    """
    await db[INCENTIVES].create_index([("user_id", ASCENDING)], unique=True)

    pickups = db[PICKUP_REQUESTS]
    await pickups.create_index([("user_id", ASCENDING)])
    await pickups.create_index([("ward_number", ASCENDING), ("status", ASCENDING)])
    await pickups.create_index([("assigned_to", ASCENDING)])

    await db[USERS].create_index([("ward_number", ASCENDING)])
    logger.info("mongo indexes ensured")
