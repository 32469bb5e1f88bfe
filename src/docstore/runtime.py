"""
docstore.runtime  ──  FastAPI application over the collection facade.

Usage pattern in user code
--------------------------
    from docstore.runtime import Docstore

    app = Docstore.create_app("shop-api")          # settings from env / .env

    service = Docstore.instance()                   # same facade elsewhere
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .bootstrap import init_docstore
from .config import Settings
from .errors import (
    DocstoreError,
    NotFoundError,
    OperationTimeoutError,
    ValidationError,
)
from .routes import router
from .service import CollectionService
from .settings_cache import SettingsCache

logger = logging.getLogger(__name__)


def _error(
    request: Request, status_code: int, error: str, exc: Exception, **extra: Any
) -> JSONResponse:
    body = {"success": False, "error": error, **extra}
    if request.app.state.settings.debug:
        body["message"] = str(exc)
    return JSONResponse(body, status_code=status_code)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            {"success": False, "error": str(exc), "details": exc.details},
            status_code=400,
        )

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse({"success": False, "error": str(exc)}, status_code=404)

    @app.exception_handler(OperationTimeoutError)
    async def timed_out(request: Request, exc: OperationTimeoutError) -> JSONResponse:
        logger.error("%s %s: %s", request.method, request.url.path, exc)
        return _error(request, 504, "Operation timed out", exc)

    @app.exception_handler(DocstoreError)
    async def storage_failed(request: Request, exc: DocstoreError) -> JSONResponse:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _error(request, 500, "Internal server error", exc)

    @app.exception_handler(Exception)
    async def unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("%s %s crashed", request.method, request.url.path)
        return _error(request, 500, "Internal server error", exc)


def build_app(
    settings: Settings,
    service: CollectionService,
    **fastapi_kwargs: Any,
) -> FastAPI:
    app = FastAPI(**fastapi_kwargs)
    app.state.settings = settings
    app.state.service = service
    app.state.settings_cache = SettingsCache(service, ttl_seconds=settings.settings_cache_ttl)
    install_error_handlers(app)
    app.include_router(router)
    return app


class Docstore:
    """
    Process-wide holder for the facade, so modules that are not request
    handlers can reach the same service.
    """

    _service: ClassVar[Optional[CollectionService]] = None
    _settings: ClassVar[Optional[Settings]] = None

    # ---------- one-shot initialiser ----------
    @classmethod
    def init(
        cls,
        settings: Optional[Settings] = None,
        *,
        service: Optional[CollectionService] = None,
    ) -> CollectionService:
        if cls._service is None:
            cls._settings = settings or Settings.from_env()
            cls._service = service or init_docstore(cls._settings)
            logger.info("docstore initialised with %s provider", cls._service.provider)
        return cls._service

    # ---------- convenience helpers ----------
    @classmethod
    def instance(cls) -> CollectionService:
        if cls._service is None:
            raise RuntimeError("Docstore.init() has not been called")
        return cls._service

    @classmethod
    def reset(cls) -> None:
        if cls._service is not None:
            cls._service.close()
        cls._service = None
        cls._settings = None

    @classmethod
    def create_app(
        cls,
        name: str = "docstore",
        *,
        settings: Optional[Settings] = None,
        service: Optional[CollectionService] = None,
        **fastapi_kwargs: Any,
    ) -> FastAPI:
        """
        One-liner for web apps:
            app = Docstore.create_app("svc-name")
        """
        service = cls.init(settings, service=service)
        return build_app(cls._settings, service, title=name, **fastapi_kwargs)
