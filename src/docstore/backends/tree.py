"""
Collection backend over a realtime tree database.

A collection is the node ``/<collection>``; its children are documents keyed
by id. The tree hands back children as an ``{id: item}`` map (or, for
integer-like keys, a sparse list); both become the canonical document list
here, so callers never see the native shape.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from ..core.normalize import entries_to_items, same_value, sort_newest_first
from ..errors import NotFoundError, StorageError
from ..persistence.tree import RealtimeTreeClient
from .base import CollectionBackend, Document

logger = logging.getLogger(__name__)


def _children(value: Any) -> List[Document]:
    if isinstance(value, list):
        entries = [(str(i), item) for i, item in enumerate(value)]
    elif isinstance(value, Mapping):
        entries = list(value.items())
    else:
        return []
    # generated keys sort chronologically; newest first, then by createdAt
    entries.sort(key=lambda kv: kv[0], reverse=True)
    return sort_newest_first(entries_to_items(entries))


class RealtimeTreeBackend(CollectionBackend):
    name = "tree"

    def __init__(self, client: RealtimeTreeClient):
        self.client = client

    @staticmethod
    def _path(collection: str, id: Optional[str] = None) -> str:
        return collection if id is None else f"{collection}/{id}"

    def create(self, id: str, fields: Mapping[str, Any], collection: str) -> Document:
        self.client.set(self._path(collection, id), dict(fields))
        return {"id": id, **fields}

    def read(self, id: str, collection: str) -> Optional[Document]:
        value = self.client.get(self._path(collection, id))
        if value is None:
            return None
        docs = entries_to_items([(id, value)])
        return docs[0]

    def read_all(self, collection: str) -> List[Document]:
        return _children(self.client.get(self._path(collection)))

    def find(
        self, key: str, value: Any, collection: str, limit: Optional[int] = None
    ) -> List[Document]:
        # equalTo matches 1 against true; keep the typed rule of the other backends
        found = [
            doc
            for doc in _children(
                self.client.query(self._path(collection), order_by=key, equal_to=value)
            )
            if key in doc and same_value(doc[key], value)
        ]
        return found if limit is None else found[:limit]

    def update(self, id: str, fields: Mapping[str, Any], collection: str) -> Document:
        path = self._path(collection, id)
        existing = self.client.get(path)
        if existing is None:
            raise NotFoundError(f"Record not found for key: {collection}:{id}", key=f"{collection}:{id}")
        # PATCH replaces each named child wholesale: a shallow merge
        self.client.update(path, dict(fields))
        base = existing if isinstance(existing, Mapping) else {}
        return {"id": id, **base, **fields}

    def delete(self, id: str, collection: str) -> bool:
        path = self._path(collection, id)
        if self.client.get(path, shallow=True) is None:
            return False
        self.client.remove(path)
        return True

    def delete_all(self, collection: str) -> int:
        children = self.client.get(self._path(collection), shallow=True)
        count = len(_children(children))
        self.client.remove(self._path(collection))
        return count

    def ping(self) -> bool:
        try:
            self.client.get("", shallow=True)
            return True
        except StorageError as exc:
            logger.warning("tree database ping failed: %s", exc)
            return False

    def close(self) -> None:
        self.client.close()
