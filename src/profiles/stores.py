"""Storage tiers behind the profile managers: local cache and remote profile store."""

from __future__ import annotations

import json
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, Dict, Mapping, Optional, Protocol

from db import crud
from db.database import connect
from profiles.errors import DocumentNotFoundError, ProfileStoreError
from utils.logger import get_logger
from utils.pure import deep_merge, set_path

_logger = get_logger(__name__)


class LocalCache(Protocol):
    """Browser-scoped key-value storage; values are strings (JSON for profiles)."""

    async def get_item(self, key: str) -> Optional[str]: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...


class RemoteProfileStore(Protocol):
    """Authoritative document store, one document per profile id."""

    async def get(self, doc_id: str) -> Optional[Dict[str, Any]]: ...

    async def set(self, doc_id: str, doc: Mapping[str, Any], merge: bool = False) -> None: ...

    async def update(self, doc_id: str, paths: Mapping[str, Any]) -> None: ...

    async def delete(self, doc_id: str) -> None: ...

    async def ping(self) -> None: ...


class SqliteLocalCache:
    """LocalCache on the `local_cache` table of a sqlite file."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path

    async def get_item(self, key: str) -> Optional[str]:
        return await crud.cache_get(key, self.db_path)

    async def set_item(self, key: str, value: str) -> None:
        await crud.cache_set(key, value, self.db_path)

    async def remove_item(self, key: str) -> None:
        await crud.cache_remove(key, self.db_path)


@asynccontextmanager
async def _store_errors(action: str, doc_id: str):
    try:
        yield
    except (sqlite3.Error, OSError) as exc:
        raise ProfileStoreError(f"{action} {doc_id} failed: {exc}") from exc


class SqliteProfileStore:
    """
    RemoteProfileStore on the `profile_documents` table.

    `set(merge=True)` deep-merges nested mappings into the stored document;
    `update` assigns dotted paths and requires the document to exist.
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path

    async def ping(self) -> None:
        async with _store_errors("ping", "<store>"):
            async with connect(self.db_path) as conn:
                cur = await conn.execute("SELECT 1;")
                await cur.fetchone()
                await cur.close()

    async def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        async with _store_errors("get", doc_id):
            stored = await crud.get_document(doc_id, self.db_path)
        if stored is None:
            return None
        return json.loads(stored.body)

    async def set(self, doc_id: str, doc: Mapping[str, Any], merge: bool = False) -> None:
        body = dict(doc)
        async with _store_errors("set", doc_id):
            if merge:
                existing = await self.get(doc_id)
                if existing is not None:
                    body = deep_merge(existing, body)
            await crud.put_document(doc_id, json.dumps(body), self.db_path)
        _logger.debug(f"Stored profile document {doc_id} (merge={merge})")

    async def update(self, doc_id: str, paths: Mapping[str, Any]) -> None:
        existing = await self.get(doc_id)
        if existing is None:
            raise DocumentNotFoundError(f"No profile document {doc_id}")
        for dotted, value in paths.items():
            set_path(existing, dotted, value)
        async with _store_errors("update", doc_id):
            await crud.put_document(doc_id, json.dumps(existing), self.db_path)

    async def delete(self, doc_id: str) -> None:
        async with _store_errors("delete", doc_id):
            await crud.delete_document(doc_id, self.db_path)
