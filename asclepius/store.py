from __future__ import annotations

import asyncio
import inspect
from typing import Any, Dict, List, Optional, Tuple

import structlog

from .config import Settings

log = structlog.get_logger()

Document = Dict[str, Any]


class DocumentStore:
    """Keyed collections of JSON-like documents."""

    name = "abstract"

    async def put(self, collection: str, doc_id: str, record: Document) -> None:
        raise NotImplementedError

    async def get_all(self, collection: str) -> List[Tuple[str, Document]]:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class MemoryStore(DocumentStore):
    name = "memory"

    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._lock = asyncio.Lock()

    async def put(self, collection: str, doc_id: str, record: Document) -> None:
        async with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = dict(record)

    async def get_all(self, collection: str) -> List[Tuple[str, Document]]:
        async with self._lock:
            docs = self._collections.get(collection, {})
            return [(doc_id, dict(doc)) for doc_id, doc in docs.items()]


class FirestoreStore(DocumentStore):
    name = "firestore"

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirestoreStore":
        from google.cloud import firestore

        credentials = None
        if settings.firestore_credentials:
            from google.oauth2.service_account import Credentials
            credentials = Credentials.from_service_account_file(settings.firestore_credentials)

        client = firestore.AsyncClient(
            project=settings.firestore_project or getattr(credentials, "project_id", None),
            credentials=credentials,
        )
        log.info("firestore_connected", project=client.project)
        return cls(client)

    async def put(self, collection: str, doc_id: str, record: Document) -> None:
        await self.client.collection(collection).document(doc_id).set(record)

    async def get_all(self, collection: str) -> List[Tuple[str, Document]]:
        docs = []
        async for snapshot in self.client.collection(collection).stream():
            docs.append((snapshot.id, snapshot.to_dict() or {}))
        return docs

    async def close(self) -> None:
        result = self.client.close()
        if inspect.isawaitable(result):
            await result


def build_store(settings: Settings) -> Optional[DocumentStore]:
    if settings.store_backend == "none":
        return None
    if settings.store_backend == "memory":
        return MemoryStore()
    return FirestoreStore.from_settings(settings)
