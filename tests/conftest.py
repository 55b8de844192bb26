"""
Pytest configuration and shared fixtures.
"""

import copy
import itertools
from typing import Any, Dict, Iterable, List, Optional

import pytest

from catalog.errors import NotFound
from catalog.identity import IdentityProvider
from catalog.service import CatalogService
from catalog.storage import Blob, BlobStore, KVEntry, KVStore, UrlSigner


TEST_SECRET = "test-secret-key"
TEST_BASE_URL = "http://testserver"

# Smallest valid PDF-looking payload, as the admin panel sends it
PDF_DATA_URL = "data:application/pdf;base64,JVBERi0xLjQKJcfs"
PNG_DATA_URL = "data:image/png;base64,iVBORw0KGgo="


class InMemoryKVStore(KVStore):
    """Dictionary-backed key-value store with per-key versions."""

    def __init__(self):
        self.entries: Dict[str, KVEntry] = {}

    async def get_entry(self, key: str) -> Optional[KVEntry]:
        entry = self.entries.get(key)
        if entry is None:
            return None
        return KVEntry(value=copy.deepcopy(entry.value), version=entry.version)

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        version = self.entries[key].version + 1 if key in self.entries else 1
        self.entries[key] = KVEntry(value=copy.deepcopy(value), version=version)

    async def insert(self, key: str, value: Dict[str, Any]) -> bool:
        if key in self.entries:
            return False
        self.entries[key] = KVEntry(value=copy.deepcopy(value), version=1)
        return True

    async def compare_and_set(self, key: str, value: Dict[str, Any], version: int) -> bool:
        entry = self.entries.get(key)
        if entry is None or entry.version != version:
            return False
        self.entries[key] = KVEntry(value=copy.deepcopy(value), version=version + 1)
        return True

    async def delete(self, key: str) -> None:
        self.entries.pop(key, None)

    async def get_by_prefix(self, prefix: str) -> List[Dict[str, Any]]:
        return [
            copy.deepcopy(entry.value)
            for key, entry in self.entries.items()
            if key.startswith(prefix)
        ]


class InMemoryBlobStore(BlobStore):
    """Dictionary-backed blob store; names in ``fail_uploads`` raise on upload."""

    def __init__(self):
        self.blobs: Dict[str, Blob] = {}
        self.fail_uploads = set()

    async def upload(self, name: str, data: bytes, content_type: str, upsert: bool = True) -> None:
        if name in self.fail_uploads:
            raise IOError(f"storage unavailable for {name}")
        if not upsert and name in self.blobs:
            raise IOError(f"{name} already exists")
        self.blobs[name] = Blob(data=data, content_type=content_type)

    async def download(self, name: str) -> Blob:
        if name not in self.blobs:
            raise NotFound(f"File '{name}' not found")
        return self.blobs[name]

    async def remove(self, names: Iterable[str]) -> None:
        for name in names:
            self.blobs.pop(name, None)

    async def exists(self, name: str) -> bool:
        return name in self.blobs


@pytest.fixture
def kv_store():
    return InMemoryKVStore()


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def identity_provider():
    return IdentityProvider(
        accounts=InMemoryKVStore(),
        secret_key=TEST_SECRET,
        algorithm="HS256",
        access_token_expire_minutes=60,
        min_password_length=6
    )


@pytest.fixture
def url_signer():
    return UrlSigner(TEST_SECRET, "HS256", TEST_BASE_URL)


@pytest.fixture
def catalog_service(kv_store, identity_provider, blob_store, url_signer):
    """Catalog service wired to in-memory stores."""
    return CatalogService(
        kv=kv_store,
        identity=identity_provider,
        blobs=blob_store,
        signer=url_signer,
        admin_password="7777"
    )


@pytest.fixture
def sign_up_and_in(catalog_service):
    """Coroutine factory registering a fresh user and returning its access token."""
    counter = itertools.count(1)

    async def _sign_up_and_in(password: str = "secret123") -> str:
        first_name = f"Reader{next(counter)}"
        result = await catalog_service.signup(
            first_name, "Ivanova", "1990-05-17", "Russia", "Kazan", "Loves detective stories", password
        )
        session = await catalog_service.signin(result["login"], password)
        return session["accessToken"]

    return _sign_up_and_in


@pytest.fixture
def sample_book_fields():
    return {
        "title": "Мастер и Маргарита",
        "author": "Михаил Булгаков",
        "description": "Роман о визите дьявола в Москву",
        "summary": "Воланд и его свита",
        "category": "Роман",
    }
