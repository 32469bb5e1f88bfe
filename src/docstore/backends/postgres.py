"""Collection backend over the single `kv_store` table (see persistence.store)."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from ..persistence.store import KVStore
from .base import CollectionBackend, Document


def _document(id: str, data: Mapping[str, Any]) -> Document:
    return {"id": id, **data}


class PostgresBackend(CollectionBackend):
    name = "postgres"

    def __init__(self, store: KVStore):
        self.store = store

    def create(self, id: str, fields: Mapping[str, Any], collection: str) -> Document:
        stored = self.store.insert(collection, id, fields)
        return _document(id, stored.data)

    def read(self, id: str, collection: str) -> Optional[Document]:
        data = self.store.find(collection, id)
        return None if data is None else _document(id, data)

    def read_all(self, collection: str) -> List[Document]:
        return [_document(r["id"], r["data"]) for r in self.store.fetch_all(collection)]

    def find(
        self, key: str, value: Any, collection: str, limit: Optional[int] = None
    ) -> List[Document]:
        rows = self.store.find_by_query(collection, {key: value}, limit=limit)
        return [_document(r["id"], r["data"]) for r in rows]

    def update(self, id: str, fields: Mapping[str, Any], collection: str) -> Document:
        return _document(id, self.store.update(collection, id, fields))

    def delete(self, id: str, collection: str) -> bool:
        return self.store.delete(collection, id) is not None

    def delete_all(self, collection: str) -> int:
        return self.store.delete_all(collection)

    def ping(self) -> bool:
        return self.store.ping()

    def close(self) -> None:
        self.store.engine.dispose()
