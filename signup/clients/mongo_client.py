import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from signup.base.exception import DatabaseConnectionError

logger = logging.getLogger(__name__)


class MongoClient:
    def __init__(self, mongo_uri: str, db_name: str):
        self.client = AsyncIOMotorClient(mongo_uri)
        self.db_name = db_name

    async def ping(self) -> AsyncIOMotorDatabase:
        """Ping the configured database and return it if no exceptions."""
        db = self.client.get_database(self.db_name)
        try:
            ping_response = await db.command("ping")
        except Exception as e:
            raise DatabaseConnectionError(details=str(e)) from e
        if int(ping_response["ok"]) != 1:
            raise DatabaseConnectionError(f"Problem connecting to cluster: {self.db_name}")
        logger.info("Database [%s] connected successfully", self.db_name)
        return db

    async def close(self):
        """Close MongoDB client"""
        self.client.close()
        logger.info("MongoDB client closed")
