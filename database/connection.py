"""MongoDB and Redis clients for the extraction service."""
import logging
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
import redis.asyncio as redis
from shared.config import Settings, settings

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """Process-wide clients, opened once during application start-up."""

    _mongo_client: Optional[AsyncIOMotorClient] = None
    _redis_client: Optional[redis.Redis] = None
    _db: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    async def init_mongo(cls, config: Settings = None) -> AsyncIOMotorDatabase:
        """Connect to MongoDB and make sure the extraction indexes exist."""
        if cls._db is not None:
            return cls._db

        config = config or settings
        # tz_aware so stored UTC datetimes compare with get_utc_now()
        client = AsyncIOMotorClient(config.mongo_url, tz_aware=True)
        db = client[config.mongo_db_name]
        await db.command("ping")

        # History lookups and interrupted-job recovery
        await db.extractions.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        await db.extractions.create_index("status")

        cls._mongo_client, cls._db = client, db
        logger.info(f"Connected to MongoDB database {config.mongo_db_name}")
        return db

    @classmethod
    async def init_redis(cls, config: Settings = None) -> redis.Redis:
        """Connect to the Redis instance carrying progress updates."""
        if cls._redis_client is not None:
            return cls._redis_client

        config = config or settings
        client = redis.from_url(config.redis_url, decode_responses=True)
        await client.ping()

        cls._redis_client = client
        logger.info("Connected to Redis")
        return client

    @classmethod
    async def close_connections(cls):
        """Close both clients if they were opened."""
        if cls._mongo_client is not None:
            cls._mongo_client.close()
            cls._mongo_client = None
            cls._db = None
        if cls._redis_client is not None:
            await cls._redis_client.aclose()
            cls._redis_client = None
