"""
Key-value and blob storage backends.

The catalog keeps every record in a generic key-value store and every
uploaded asset in a blob store. Both are described by small abstract
interfaces with MongoDB-backed implementations built on motor: a plain
collection for key-value entries and a GridFS bucket for blobs. Blob
downloads are authorized by signed, time-limited URLs.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import structlog
from gridfs.errors import NoFile
from jose import ExpiredSignatureError, JWTError, jwt
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorGridFSBucket
from pymongo.errors import DuplicateKeyError

from .errors import NotFound, Unauthorized

logger = structlog.get_logger(__name__)


@dataclass
class KVEntry:
    """Stored value together with its write version."""
    value: Dict[str, Any]
    version: int


@dataclass
class Blob:
    """Downloaded blob contents."""
    data: bytes
    content_type: str


class KVStore(ABC):
    """Generic key-value store for JSON-like records."""

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = await self.get_entry(key)
        return entry.value if entry else None

    @abstractmethod
    async def get_entry(self, key: str) -> Optional[KVEntry]:
        """Return the value and version stored at ``key``."""

    @abstractmethod
    async def set(self, key: str, value: Dict[str, Any]) -> None:
        """Create or overwrite ``key``."""

    @abstractmethod
    async def insert(self, key: str, value: Dict[str, Any]) -> bool:
        """Create ``key``; return False if it already exists."""

    @abstractmethod
    async def compare_and_set(self, key: str, value: Dict[str, Any], version: int) -> bool:
        """Overwrite ``key`` only if its stored version still equals ``version``."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""

    @abstractmethod
    async def get_by_prefix(self, prefix: str) -> List[Dict[str, Any]]:
        """Return all values whose key starts with ``prefix``."""


class MongoKVStore(KVStore):
    """
    Key-value store over a MongoDB collection.

    Documents have the shape ``{_id: key, value: {...}, version: int}``.
    """

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def get_entry(self, key: str) -> Optional[KVEntry]:
        doc = await self.collection.find_one({"_id": key})
        if not doc:
            return None
        return KVEntry(value=doc["value"], version=doc.get("version", 0))

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        await self.collection.update_one(
            {"_id": key},
            {"$set": {"value": value}, "$inc": {"version": 1}},
            upsert=True
        )
        logger.debug("KV entry written", key=key)

    async def insert(self, key: str, value: Dict[str, Any]) -> bool:
        try:
            await self.collection.insert_one({"_id": key, "value": value, "version": 1})
            return True
        except DuplicateKeyError:
            logger.debug("KV entry already exists", key=key)
            return False

    async def compare_and_set(self, key: str, value: Dict[str, Any], version: int) -> bool:
        query: Dict[str, Any] = {"_id": key}
        if version:
            query["version"] = version
        else:
            query["version"] = {"$exists": False}

        result = await self.collection.update_one(
            query,
            {"$set": {"value": value}, "$inc": {"version": 1}}
        )
        if result.matched_count != 1:
            logger.info("KV version conflict", key=key, version=version)
            return False
        return True

    async def delete(self, key: str) -> None:
        await self.collection.delete_one({"_id": key})

    async def get_by_prefix(self, prefix: str) -> List[Dict[str, Any]]:
        cursor = self.collection.find({"_id": {"$regex": f"^{re.escape(prefix)}"}})
        docs = await cursor.to_list(length=None)
        return [doc["value"] for doc in docs]


class BlobStore(ABC):
    """Object store for uploaded book assets."""

    @abstractmethod
    async def upload(self, name: str, data: bytes, content_type: str, upsert: bool = True) -> None:
        """Store ``data`` under ``name``."""

    @abstractmethod
    async def download(self, name: str) -> Blob:
        """Fetch the blob stored under ``name``; raise NotFound if absent."""

    @abstractmethod
    async def remove(self, names: Iterable[str]) -> None:
        """Delete the named blobs; missing names are ignored."""

    @abstractmethod
    async def exists(self, name: str) -> bool:
        """Whether a blob is stored under ``name``."""


class GridFSBlobStore(BlobStore):
    """Blob store over a GridFS bucket."""

    def __init__(self, bucket: AsyncIOMotorGridFSBucket):
        self.bucket = bucket

    async def _file_ids(self, name: str) -> List[Any]:
        cursor = self.bucket.find({"filename": name})
        files = await cursor.to_list(length=None)
        return [grid_out._id for grid_out in files]

    async def upload(self, name: str, data: bytes, content_type: str, upsert: bool = True) -> None:
        if upsert:
            for file_id in await self._file_ids(name):
                await self.bucket.delete(file_id)

        await self.bucket.upload_from_stream(
            name,
            data,
            metadata={"contentType": content_type}
        )
        logger.info("Blob uploaded", blob=name, size=len(data), content_type=content_type)

    async def download(self, name: str) -> Blob:
        try:
            grid_out = await self.bucket.open_download_stream_by_name(name)
        except NoFile:
            raise NotFound(f"File '{name}' not found")

        data = await grid_out.read()
        metadata = grid_out.metadata or {}
        return Blob(data=data, content_type=metadata.get("contentType", "application/octet-stream"))

    async def remove(self, names: Iterable[str]) -> None:
        for name in names:
            for file_id in await self._file_ids(name):
                await self.bucket.delete(file_id)
            logger.info("Blob removed", blob=name)

    async def exists(self, name: str) -> bool:
        return bool(await self._file_ids(name))


class UrlSigner:
    """Issues and verifies time-limited download URLs for blobs."""

    def __init__(self, secret_key: str, algorithm: str, base_url: str):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.base_url = base_url.rstrip("/")

    def create_signed_url(self, name: str, expires_in: int) -> str:
        """
        Create a download URL for ``name`` valid for ``expires_in`` seconds.

        Args:
            name: Blob name
            expires_in: Lifetime of the URL in seconds

        Returns:
            Absolute URL carrying the signed token as a query parameter
        """
        claims = {
            "blob": name,
            "exp": datetime.utcnow() + timedelta(seconds=expires_in),
        }
        token = jwt.encode(claims, self.secret_key, algorithm=self.algorithm)
        return f"{self.base_url}/storage/{quote(name)}?token={token}"

    def verify(self, name: str, token: str) -> None:
        """Raise Unauthorized unless ``token`` grants access to ``name``."""
        try:
            claims = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise Unauthorized("Download link has expired")
        except JWTError:
            raise Unauthorized("Invalid download link")

        if claims.get("blob") != name:
            logger.warning("Signed URL used for another blob", blob=name)
            raise Unauthorized("Invalid download link")
