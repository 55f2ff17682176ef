import logging
import os
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient


logger = logging.getLogger(__name__)

DEFAULT_MONGO_URI = "mongodb://localhost:27017"


class MongoDatabase:
    client: Optional[AsyncIOMotorClient] = None
    db_name: str = "app_builder"

    @classmethod
    async def connect(cls):
        mongo_uri = os.getenv("MONGODB_URI") or os.getenv("MONGO_URI") or DEFAULT_MONGO_URI
        cls.db_name = (os.getenv("MONGODB_DB_NAME") or cls.db_name).strip()
        cls.client = AsyncIOMotorClient(mongo_uri)
        logger.info("Connected to MongoDB database %s", cls.db_name)

    @classmethod
    async def close(cls):
        if cls.client:
            cls.client.close()
            cls.client = None
            logger.info("Closed MongoDB connection")

    @classmethod
    def get_db(cls):
        if cls.client is None:
            raise RuntimeError("Database not initialized. Call connect() first.")
        return cls.client[cls.db_name]

    @classmethod
    def get_collection(cls, collection_name: str):
        return cls.get_db()[collection_name]
