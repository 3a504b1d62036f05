"""
Storage backends for session blobs and identity records.

Two namespaces exist (see models.identity.StorageScope):
- durable:   survives restarts (FileStorage or SupabaseStorage)
- ephemeral: lives as long as the process (MemoryStorage)

Backends only move strings; serialization belongs to the callers.
"""

import asyncio
import os
import re
from pathlib import Path
from typing import Protocol

import structlog
from pydantic import ValidationError
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from condoscout.constants import IDENTITY_KEY_PREFIX
from condoscout.models.identity import AuthenticatedIdentity, StorageNamespace, StorageScope
from condoscout.services import supabase_client as db

logger = structlog.get_logger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class KeyValueStorage(Protocol):
    """Async string key/value store."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryStorage:
    """In-process storage. Contents vanish with the process."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class FileStorage:
    """One JSON file per key under a directory. Writes are atomic per key."""

    def __init__(self, directory: str | Path) -> None:
        self._root = Path(directory)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        return self._root / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, self.path_for(key))

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, self.path_for(key), value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self.path_for(key).unlink, missing_ok=True)

    @staticmethod
    def _read(path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _write(self, path: Path, value: str) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f"{path.name}.tmp")
        tmp_path.write_text(value, encoding="utf-8")
        os.replace(tmp_path, path)


class SupabaseStorage:
    """Rows in a Supabase key/value table."""

    def __init__(self, client: AsyncSupabaseClient, table: str) -> None:
        self._client = client
        self._table = table

    async def get(self, key: str) -> str | None:
        return await db.get_storage_value(self._client, self._table, key)

    async def set(self, key: str, value: str) -> None:
        await db.upsert_storage_value(self._client, self._table, key, value)

    async def delete(self, key: str) -> None:
        await db.delete_storage_value(self._client, self._table, key)


class SessionStorage:
    """Routes a storage namespace to the backend for its scope."""

    def __init__(self, durable: KeyValueStorage, ephemeral: KeyValueStorage) -> None:
        self._backends: dict[StorageScope, KeyValueStorage] = {
            StorageScope.DURABLE: durable,
            StorageScope.EPHEMERAL: ephemeral,
        }

    def backend_for(self, scope: StorageScope) -> KeyValueStorage:
        return self._backends[scope]

    async def read(self, namespace: StorageNamespace) -> str | None:
        return await self.backend_for(namespace.scope).get(namespace.key)

    async def write(self, namespace: StorageNamespace, blob: str) -> None:
        await self.backend_for(namespace.scope).set(namespace.key, blob)


class IdentityRecordStore:
    """The signed-in identity record, one serialized JSON object per user."""

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage

    @staticmethod
    def key_for(identity_id: str) -> str:
        return f"{IDENTITY_KEY_PREFIX}{identity_id}"

    async def get(self, identity_id: str) -> AuthenticatedIdentity | None:
        raw = await self._storage.get(self.key_for(identity_id))
        if raw is None:
            return None
        try:
            return AuthenticatedIdentity.model_validate_json(raw)
        except ValidationError:
            logger.warning("identity_record_unreadable", identity_id=identity_id)
            return None

    async def save(self, identity: AuthenticatedIdentity) -> None:
        await self._storage.set(
            self.key_for(identity.id),
            identity.model_dump_json(by_alias=True),
        )

    async def clear(self, identity_id: str) -> None:
        await self._storage.delete(self.key_for(identity_id))
