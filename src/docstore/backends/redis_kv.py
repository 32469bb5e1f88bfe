"""
Collection backend over Redis string keys.

Same key layout as the `kv_store` table: the document ``id`` of collection
``table`` is a JSON string stored under ``"table:id"``. Collections are found
with ``SCAN MATCH table:*``; lookups by field read the collection and filter
here.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional

import redis

from ..core.normalize import entries_to_items, same_value, sort_newest_first
from ..errors import NotFoundError, StorageError
from .base import CollectionBackend, Document

logger = logging.getLogger(__name__)

SCAN_COUNT = 500
_GLOB_SPECIAL = "\\*?[]"


def _escape_glob(text: str) -> str:
    return "".join("\\" + c if c in _GLOB_SPECIAL else c for c in text)


@contextmanager
def _wrapped(operation: str, key: str) -> Iterator[None]:
    try:
        yield
    except redis.RedisError as exc:
        logger.error("%s failed for %s: %s", operation, key, exc)
        raise StorageError(
            f"{operation} failed for {key}: {exc}", operation=operation, key=key
        ) from exc


class RedisBackend(CollectionBackend):
    name = "redis"

    def __init__(self, client: redis.Redis):
        # decode_responses=True is expected: values come back as str
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisBackend":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    @staticmethod
    def _key(collection: str, id: str) -> str:
        return f"{collection}:{id}"

    def _keys(self, collection: str) -> List[str]:
        pattern = _escape_glob(collection) + ":*"
        return list(self.client.scan_iter(match=pattern, count=SCAN_COUNT))

    def _load_all(self, collection: str) -> List[Document]:
        with _wrapped("read_all", f"{collection}:*"):
            keys = self._keys(collection)
            values = self.client.mget(keys) if keys else []
        prefix = len(collection) + 1
        entries = [
            (key[prefix:], json.loads(raw))
            for key, raw in zip(keys, values)
            if raw is not None
        ]
        entries.sort(key=lambda kv: kv[0], reverse=True)
        return sort_newest_first(entries_to_items(entries))

    def create(self, id: str, fields: Mapping[str, Any], collection: str) -> Document:
        key = self._key(collection, id)
        with _wrapped("create", key):
            self.client.set(key, json.dumps(dict(fields)))
        return {"id": id, **fields}

    def read(self, id: str, collection: str) -> Optional[Document]:
        key = self._key(collection, id)
        with _wrapped("read", key):
            raw = self.client.get(key)
        if raw is None:
            return None
        return entries_to_items([(id, json.loads(raw))])[0]

    def read_all(self, collection: str) -> List[Document]:
        return self._load_all(collection)

    def find(
        self, key: str, value: Any, collection: str, limit: Optional[int] = None
    ) -> List[Document]:
        found = [
            doc
            for doc in self._load_all(collection)
            if key in doc and same_value(doc[key], value)
        ]
        return found if limit is None else found[:limit]

    def update(self, id: str, fields: Mapping[str, Any], collection: str) -> Document:
        key = self._key(collection, id)

        def merge(pipe: redis.client.Pipeline) -> dict:
            raw = pipe.get(key)
            if raw is None:
                raise NotFoundError(f"Record not found for key: {key}", key=key)
            merged = {**json.loads(raw), **fields}
            pipe.multi()
            pipe.set(key, json.dumps(merged))
            return merged

        # WATCH/MULTI: retried when the key changes between read and write
        with _wrapped("update", key):
            merged = self.client.transaction(merge, key, value_from_callable=True)
        return {"id": id, **merged}

    def delete(self, id: str, collection: str) -> bool:
        key = self._key(collection, id)
        with _wrapped("delete", key):
            return self.client.delete(key) > 0

    def delete_all(self, collection: str) -> int:
        with _wrapped("delete_all", f"{collection}:*"):
            keys = self._keys(collection)
            return self.client.delete(*keys) if keys else 0

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as exc:
            logger.warning("redis ping failed: %s", exc)
            return False

    def close(self) -> None:
        self.client.close()
