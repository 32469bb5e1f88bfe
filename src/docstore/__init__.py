"""
Public surface for docstore.
Importing this module does **not** touch the database; build a facade with
`docstore.init_docstore(settings)` or `Docstore.init()` during start-up.
"""

from .bootstrap import init_docstore
from .config import Settings
from .core.normalize import Page, build_page, normalize_items, paginate
from .errors import (
    DocstoreError,
    InsertError,
    NotFoundError,
    OperationTimeoutError,
    StorageError,
    UploadError,
    ValidationError,
)
from .events import on
from .runtime import Docstore
from .service import CollectionService

__all__ = [
    "CollectionService",
    "Docstore",
    "DocstoreError",
    "InsertError",
    "NotFoundError",
    "OperationTimeoutError",
    "Page",
    "Settings",
    "StorageError",
    "UploadError",
    "ValidationError",
    "build_page",
    "init_docstore",
    "normalize_items",
    "on",
    "paginate",
]
