"""
backend/app/database.py

Purpose:
    MongoDB connection bootstrap and index management for the tip collections
    (daily_metadata, tips, tip_legs, bookmaker_odds).

Dependencies:
    - motor.motor_asyncio
    - app.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("dailytips.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=1,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()
    logger.info("Connected to MongoDB database %s", settings.MONGO_DB)


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent."""
    from app.services.tip_repository import TipRepository

    await TipRepository(db, client).ensure_indexes()
