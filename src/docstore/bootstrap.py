"""
Single entry-point that wires a backend, object storage and the facade.
Call once, e.g. in FastAPI startup or a CLI `main()`.
"""

from typing import Callable, Dict, Optional

from sqlalchemy import create_engine

from .backends.base import CollectionBackend
from .backends.postgres import PostgresBackend
from .backends.redis_kv import RedisBackend
from .backends.tree import RealtimeTreeBackend
from .config import Settings
from .errors import ConfigurationError
from .persistence.store import KVStore
from .persistence.tree import RealtimeTreeClient
from .service import CollectionService
from .storage.objects import ObjectStorage, S3ObjectStorage


def _postgres_backend(settings: Settings) -> CollectionBackend:
    if not settings.database_url:
        raise ConfigurationError("postgres provider requires POSTGRES_URL")
    engine = create_engine(settings.database_url, pool_pre_ping=True, future=True)
    return PostgresBackend(KVStore(engine))


def _tree_backend(settings: Settings) -> CollectionBackend:
    if not settings.tree_url:
        raise ConfigurationError("tree provider requires FIREBASE_DATABASE_URL")
    client = RealtimeTreeClient(
        settings.tree_url,
        auth_token=settings.tree_auth_token,
        timeout=settings.request_timeout,
    )
    return RealtimeTreeBackend(client)


def _redis_backend(settings: Settings) -> CollectionBackend:
    if not settings.redis_url:
        raise ConfigurationError("redis provider requires REDIS_URL")
    return RedisBackend.from_url(settings.redis_url)


# Database providers registry
PROVIDERS: Dict[str, Callable[[Settings], CollectionBackend]] = {
    "postgres": _postgres_backend,
    "tree": _tree_backend,
    "redis": _redis_backend,
}


def build_backend(settings: Settings) -> CollectionBackend:
    try:
        factory = PROVIDERS[settings.database_provider]
    except KeyError:
        raise ConfigurationError(
            f"Unknown database provider: {settings.database_provider}. "
            f"Available: {', '.join(PROVIDERS)}"
        ) from None
    return factory(settings)


def build_object_storage(settings: Settings) -> Optional[ObjectStorage]:
    if not settings.storage_bucket:
        return None
    return S3ObjectStorage(
        settings.storage_bucket,
        region=settings.storage_region,
        endpoint_url=settings.storage_endpoint_url,
        public_url=settings.storage_public_url,
    )


def init_docstore(settings: Settings) -> CollectionService:
    """Build the configured backend and return the facade over it."""
    return CollectionService(
        build_backend(settings), object_storage=build_object_storage(settings)
    )
