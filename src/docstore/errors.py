"""
Error taxonomy shared by the adapter, the facade and the HTTP surface.

    NotFoundError          → 404
    ValidationError        → 400 (with field-level ``details``)
    OperationTimeoutError  → 504
    everything else        → 500
"""

from __future__ import annotations

from typing import Any


class DocstoreError(Exception):
    """Base class for every error raised by docstore."""


class ConfigurationError(DocstoreError):
    """Invalid or missing configuration (unknown provider, bad env value)."""


class NotFoundError(DocstoreError):
    def __init__(self, message: str, *, key: str | None = None):
        super().__init__(message)
        self.key = key


class ValidationError(DocstoreError):
    """Malformed input. ``details`` is a list of ``{field, message}`` dicts."""

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.details = details or []


class StorageError(DocstoreError):
    """Driver / network failure, always carrying the attempted operation."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        key: str | None = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.key = key


class InsertError(StorageError):
    pass


class UploadError(StorageError):
    pass


class OperationTimeoutError(DocstoreError, TimeoutError):
    def __init__(self, seconds: float):
        super().__init__(f"Operation timed out after {seconds:g}s")
        self.seconds = seconds
