"""
Abstract collection backend.

Every backend speaks the same canonical shape:

    document  → {"id": "<id>", **fields}
    listing   → [document, ...], newest first, [] when the collection is absent

Backends know nothing about schemas, timestamps or hooks; that stays in
the facade (docstore.service).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

Document = Dict[str, Any]


class CollectionBackend(ABC):
    name: str = "abstract"

    @abstractmethod
    def create(self, id: str, fields: Mapping[str, Any], collection: str) -> Document:
        """Store ``fields`` under ``id`` (overwriting) and return the document."""
        ...

    @abstractmethod
    def read(self, id: str, collection: str) -> Optional[Document]: ...

    @abstractmethod
    def read_all(self, collection: str) -> List[Document]: ...

    @abstractmethod
    def find(
        self, key: str, value: Any, collection: str, limit: Optional[int] = None
    ) -> List[Document]:
        """Documents whose top-level ``key`` equals ``value``."""
        ...

    @abstractmethod
    def update(self, id: str, fields: Mapping[str, Any], collection: str) -> Document:
        """
        Shallow-merge ``fields`` into an existing document.

        Raises NotFoundError when the document does not exist.
        """
        ...

    @abstractmethod
    def delete(self, id: str, collection: str) -> bool: ...

    @abstractmethod
    def delete_all(self, collection: str) -> int: ...

    @abstractmethod
    def ping(self) -> bool:
        """Must not raise."""
        ...

    def close(self) -> None:
        pass
