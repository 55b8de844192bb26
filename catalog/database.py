"""
MongoDB connection management for the catalog.
Owns the motor client and builds the storage backends on top of it.
"""

from typing import Dict, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket
from pymongo.errors import ConnectionFailure

from .storage import GridFSBlobStore, MongoKVStore

logger = structlog.get_logger(__name__)


class MongoDBManager:
    """
    Async MongoDB manager for catalog storage.
    Handles connection, indexing and storage backend construction.
    """

    def __init__(
        self,
        connection_url: str,
        database_name: str,
        kv_collection: str = "kv_store",
        identity_collection: str = "auth_users",
        blob_bucket: str = "books"
    ):
        """
        Initialize MongoDB manager.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
            kv_collection: Collection holding catalog records
            identity_collection: Collection holding identity accounts
            blob_bucket: GridFS bucket holding uploaded assets
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.kv_collection = kv_collection
        self.identity_collection = identity_collection
        self.blob_bucket = blob_bucket
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> None:
        """Establish connection to MongoDB."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url)
            self.database = self.client[self.database_name]

            await self.client.admin.command("ping")
            logger.info("Successfully connected to MongoDB", database=self.database_name)

            await self._create_indexes()

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def _create_indexes(self) -> None:
        """Create indexes used by the storage backends."""
        try:
            # Version lookups for optimistic concurrency
            await self.database[self.kv_collection].create_index([("_id", 1), ("version", 1)])

            # GridFS lookups by blob name
            await self.database[f"{self.blob_bucket}.files"].create_index("filename")

            logger.info("Successfully created MongoDB indexes")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    async def health_check(self) -> Dict[str, str]:
        """Ping the server and report its status."""
        try:
            await self.client.admin.command("ping")
            return {"status": "healthy"}
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {"status": "unhealthy"}

    def kv_store(self) -> MongoKVStore:
        return MongoKVStore(self.database[self.kv_collection])

    def identity_store(self) -> MongoKVStore:
        return MongoKVStore(self.database[self.identity_collection])

    def blob_store(self) -> GridFSBlobStore:
        bucket = AsyncIOMotorGridFSBucket(self.database, bucket_name=self.blob_bucket)
        return GridFSBlobStore(bucket)
