"""
Backend-agnostic collection facade.

`CollectionService` is what route handlers talk to. It owns everything that
must behave the same whatever the backend is:

* id generation and ``createdAt`` / ``updatedAt`` stamps
* per-collection schema validation (docstore.core.schemas)
* lifecycle hooks (docstore.events)
* uploads to object storage, with metadata kept in ``file_metadata``

Backends are injected (see docstore.bootstrap) and already return the
canonical ``{id, **fields}`` shape, so nothing here inspects shapes.
"""

from __future__ import annotations

import datetime as dt
import logging
import time
import uuid
from typing import Any, BinaryIO, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel

from .backends.base import CollectionBackend, Document
from .core.normalize import DEFAULT_LIMIT, Page, build_page
from .core.schemas import SchemaRegistry
from .core.schemas import schemas as default_schemas
from .errors import NotFoundError, UploadError, ValidationError
from .events import EventRegistry
from .events import registry as default_events
from .storage.objects import ObjectStorage

logger = logging.getLogger(__name__)

FILE_METADATA = "file_metadata"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

# not allowed in realtime-tree keys; "/" would also nest paths
RESERVED_KEY_CHARS = frozenset("/.#$[]")


def generate_id() -> str:
    """``<epoch-ms>_<9 random chars>``; sorts roughly by creation time."""
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def utc_now_iso() -> str:
    now = dt.datetime.now(tz=dt.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class UploadResult(BaseModel):
    url: str
    path: str
    size: int
    metadata: Dict[str, Any]

    model_config = {"frozen": True}


def _invalid(field: str, message: str) -> ValidationError:
    return ValidationError(f"Invalid {field}: {message}", [{"field": field, "message": message}])


def _quoted(chars: set) -> str:
    return " ".join(f"'{c}'" for c in sorted(chars))


class CollectionService:
    def __init__(
        self,
        backend: CollectionBackend,
        *,
        object_storage: Optional[ObjectStorage] = None,
        schemas: SchemaRegistry = default_schemas,
        events: EventRegistry = default_events,
    ):
        self.backend = backend
        self.object_storage = object_storage
        self.schemas = schemas
        self.events = events

    @property
    def provider(self) -> str:
        return self.backend.name

    # ---- argument checks --------------------------------------------------
    @staticmethod
    def _collection(collection: Any) -> str:
        if not isinstance(collection, str) or not collection.strip():
            raise _invalid("collection", "collection name is required")
        bad = set(collection) & (RESERVED_KEY_CHARS | {":"})
        if bad:
            raise _invalid("collection", f"must not contain {_quoted(bad)}")
        return collection

    @staticmethod
    def _id(id: Any) -> str:
        if id is None or str(id).strip() == "":
            raise _invalid("id", "id is required")
        id = str(id)
        bad = set(id) & RESERVED_KEY_CHARS
        if bad:
            raise _invalid("id", f"must not contain {_quoted(bad)}")
        return id

    @staticmethod
    def _field(key: Any) -> str:
        if not isinstance(key, str) or not key:
            raise _invalid("key", "field name is required")
        return key

    @staticmethod
    def _fields(data: Any) -> Dict[str, Any]:
        if not isinstance(data, Mapping):
            raise _invalid("data", "must be a JSON object")
        return {k: v for k, v in data.items() if k != "id"}

    # ---- CRUD -------------------------------------------------------------
    def create(self, data: Mapping[str, Any], collection: str) -> Document:
        """Store a new document; ``data["id"]`` is used when present."""
        collection = self._collection(collection)
        fields = self._fields(data)
        raw_id = data.get("id")
        id = self._id(raw_id) if raw_id not in (None, "") else generate_id()

        now = utc_now_iso()
        if not fields.get("createdAt"):
            fields["createdAt"] = now
        fields["updatedAt"] = now
        fields = self.schemas.validate(collection, fields)

        doc = self.backend.create(id, fields, collection)
        logger.debug("created %s:%s", collection, id)
        self.events.emit("create", collection, doc)
        return doc

    def read(self, id: Any, collection: str) -> Optional[Document]:
        return self.backend.read(self._id(id), self._collection(collection))

    def read_all(self, collection: str) -> List[Document]:
        return self.backend.read_all(self._collection(collection))

    def read_by(self, key: str, value: Any, collection: str) -> Optional[Document]:
        found = self.backend.find(
            self._field(key), value, self._collection(collection), limit=1
        )
        return found[0] if found else None

    def get_items_by_key_value(
        self, key: str, value: Any, collection: str
    ) -> List[Document]:
        return self.backend.find(self._field(key), value, self._collection(collection))

    def get_item_key(self, key: str, value: Any, collection: str) -> Optional[str]:
        doc = self.read_by(key, value, collection)
        return doc["id"] if doc else None

    def update(self, id: Any, data: Mapping[str, Any], collection: str) -> Document:
        """
        Shallow-merge ``data`` into a document: top-level fields are
        replaced, nested objects are not merged. Raises NotFoundError when
        the document does not exist.
        """
        id = self._id(id)
        collection = self._collection(collection)
        patch = self._fields(data)
        patch["updatedAt"] = utc_now_iso()

        if collection in self.schemas:
            existing = self.backend.read(id, collection)
            if existing is None:
                raise NotFoundError(
                    f"Item with id {id} not found in table {collection}",
                    key=f"{collection}:{id}",
                )
            existing.pop("id", None)
            validated = self.schemas.validate(collection, {**existing, **patch})
            patch = {k: validated.get(k, v) for k, v in patch.items()}

        doc = self.backend.update(id, patch, collection)
        logger.debug("updated %s:%s (%s)", collection, id, ", ".join(sorted(patch)))
        self.events.emit("update", collection, doc)
        return doc

    def delete(self, id: Any, collection: str) -> bool:
        id = self._id(id)
        collection = self._collection(collection)
        deleted = self.backend.delete(id, collection)
        if deleted:
            logger.debug("deleted %s:%s", collection, id)
            self.events.emit("delete", collection, {"id": id})
        return deleted

    def delete_all(self, collection: str) -> int:
        collection = self._collection(collection)
        count = self.backend.delete_all(collection)
        logger.info("deleted %d documents from %s", count, collection)
        return count

    # ---- listing ----------------------------------------------------------
    def page(
        self,
        collection: str,
        *,
        page: int = 1,
        limit: int = DEFAULT_LIMIT,
        search: Optional[str] = None,
        key: Optional[str] = None,
        value: Any = None,
    ) -> Page:
        if key is not None:
            items = self.get_items_by_key_value(key, value, collection)
        else:
            items = self.read_all(collection)
        return build_page(items, page=page, limit=limit, search=search)

    # ---- uploads ----------------------------------------------------------
    def upload(
        self,
        file: Union[bytes, bytearray, BinaryIO],
        path: str,
        *,
        content_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> UploadResult:
        if self.object_storage is None:
            raise UploadError(
                "File upload requires object storage; set S3_BUCKET",
                operation="upload",
                key=path,
            )
        clean_path = (path or "").lstrip("/")
        if not clean_path:
            raise _invalid("path", "upload path is required")

        data = file if isinstance(file, (bytes, bytearray)) else file.read()
        if not isinstance(data, (bytes, bytearray)):
            raise _invalid("file", "upload expects bytes or a binary file object")
        content_type = content_type or DEFAULT_CONTENT_TYPE

        url = self.object_storage.put(bytes(data), clean_path, content_type)
        metadata = {
            "originalPath": path,
            "blobUrl": url,
            "fileName": clean_path,
            "size": len(data),
            "uploadedAt": utc_now_iso(),
            "contentType": content_type,
            "originalName": filename or clean_path,
        }
        self.create(metadata, FILE_METADATA)
        logger.info("uploaded %s (%d bytes)", clean_path, len(data))
        return UploadResult(url=url, path=clean_path, size=len(data), metadata=metadata)

    # ---- lifecycle --------------------------------------------------------
    def ping(self) -> bool:
        return self.backend.ping()

    def close(self) -> None:
        self.backend.close()
