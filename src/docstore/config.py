"""
Environment-driven settings.

`.env` files are honoured through python-dotenv; call `Settings.from_env()`
once at start-up and pass the result around.
"""

from __future__ import annotations

import logging
import os
from typing import Literal, Mapping

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class Settings(BaseModel):
    database_provider: Literal["postgres", "tree", "redis"] = "postgres"
    database_url: str | None = None

    redis_url: str | None = None

    tree_url: str | None = None
    tree_auth_token: str | None = None

    storage_bucket: str | None = None
    storage_region: str | None = None
    storage_endpoint_url: str | None = None
    storage_public_url: str | None = None

    settings_cache_ttl: float = Field(default=300.0, ge=0)
    request_timeout: float = Field(default=15.0, ge=10, le=30)
    max_page_size: int = Field(default=100, ge=1)

    environment: str = "production"
    log_level: str = "INFO"

    model_config = {"frozen": True}

    @property
    def debug(self) -> bool:
        return self.environment == "development"

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, *, dotenv: bool = True
    ) -> "Settings":
        """Build settings from ``environ`` (defaults to ``os.environ``)."""
        if environ is None:
            if dotenv:
                load_dotenv()
            environ = os.environ

        raw = {
            "database_provider": environ.get("DATABASE_PROVIDER", "postgres").lower(),
            "database_url": environ.get("POSTGRES_URL") or _postgres_url(environ),
            "redis_url": environ.get("REDIS_URL"),
            "tree_url": environ.get("FIREBASE_DATABASE_URL"),
            "tree_auth_token": environ.get("FIREBASE_AUTH_TOKEN"),
            "storage_bucket": environ.get("S3_BUCKET"),
            "storage_region": environ.get("S3_REGION"),
            "storage_endpoint_url": environ.get("S3_ENDPOINT_URL"),
            "storage_public_url": environ.get("S3_PUBLIC_URL"),
            "settings_cache_ttl": environ.get("SETTINGS_CACHE_TTL"),
            "request_timeout": environ.get("REQUEST_TIMEOUT"),
            "max_page_size": environ.get("MAX_PAGE_SIZE"),
            "environment": environ.get("APP_ENV"),
            "log_level": environ.get("LOG_LEVEL"),
        }
        try:
            return cls(**{k: v for k, v in raw.items() if v not in (None, "")})
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def _postgres_url(environ: Mapping[str, str]) -> str | None:
    """Assemble a URL from POSTGRES_USER/PASSWORD/HOST/DB when no URL is given."""
    db = environ.get("POSTGRES_DB")
    user = environ.get("POSTGRES_USER")
    if not (db and user):
        return None
    password = environ.get("POSTGRES_PASSWORD", "")
    host = environ.get("POSTGRES_HOST", "localhost")
    return "postgresql://" + user + ":" + password + "@" + host + "/" + db


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
