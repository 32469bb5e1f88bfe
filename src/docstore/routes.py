"""
HTTP routes over the collection facade.

Handlers only parse input and shape output; errors are raised as docstore
exceptions and turned into status codes by the handlers in docstore.runtime.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, File, Form, Request, UploadFile

from .core.normalize import DEFAULT_LIMIT, build_page
from .errors import NotFoundError, ValidationError
from .service import CollectionService, generate_id
from .settings_cache import STORE_SETTINGS, SettingsCache, public_store_settings
from .timeouts import with_timeout

router = APIRouter()


def _service(request: Request) -> CollectionService:
    return request.app.state.service


async def _call(request: Request, func, *args: Any, **kwargs: Any) -> Any:
    seconds = request.app.state.settings.request_timeout
    return await with_timeout(func, *args, seconds=seconds, **kwargs)


def _positive_int(raw: Optional[str], default: int) -> int:
    try:
        value = int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return value if value >= 1 else default


def _lookup_values(raw: str) -> list[Any]:
    """
    Query strings carry no type: ``value=3`` is tried as the number 3, then
    as the string "3". Only JSON scalars are parsed.
    """
    try:
        parsed = json.loads(raw)
    except ValueError:
        return [raw]
    if isinstance(parsed, (dict, list, str)) or parsed is None:
        return [raw]
    return [parsed, raw]


async def _json_object(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None
    if not isinstance(body, dict):
        raise ValidationError(
            "Request body is required",
            [{"field": "body", "message": "expected a JSON object"}],
        )
    return body


@router.get("/health")
async def health(request: Request) -> Dict[str, Any]:
    service = _service(request)
    ok = await _call(request, service.ping)
    return {
        "status": "running" if ok else "degraded",
        "provider": service.provider,
        "database": ok,
    }


# ---- /query/{collection} ----------------------------------------------------
@router.get("/query/{collection}")
async def read_collection(
    request: Request,
    collection: str,
    id: Optional[str] = None,
    key: Optional[str] = None,
    value: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
) -> Dict[str, Any]:
    """Single document by ``id``, else a page of the collection."""
    service = _service(request)

    if id:
        doc = await _call(request, service.read, id, collection)
        if doc is None:
            raise NotFoundError("Record not found", key=f"{collection}:{id}")
        return {"success": True, "data": doc}

    max_size = request.app.state.settings.max_page_size
    page_no = _positive_int(page, 1)
    size = min(_positive_int(limit, DEFAULT_LIMIT), max_size)

    if key and value is not None:
        items = []
        for candidate in _lookup_values(value):
            items = await _call(
                request, service.get_items_by_key_value, key, candidate, collection
            )
            if items:
                break
        if not items:
            raise NotFoundError("No records found", key=f"{collection}:*")
    else:
        items = await _call(request, service.read_all, collection)

    result = build_page(items, page=page_no, limit=size, search=search)
    return {"success": True, **result.to_response()}


@router.post("/query/{collection}", status_code=201)
async def create_document(request: Request, collection: str) -> Dict[str, Any]:
    data = await _json_object(request)
    doc = await _call(request, _service(request).create, data, collection)
    return {"success": True, "data": doc, "message": "Record created successfully!"}


@router.put("/query/{collection}")
async def update_document(
    request: Request, collection: str, id: Optional[str] = None
) -> Dict[str, Any]:
    data = await _json_object(request)
    target = id or data.get("id")
    if not target:
        raise ValidationError("ID is required", [{"field": "id", "message": "id is required"}])
    doc = await _call(request, _service(request).update, target, data, collection)
    return {"success": True, "data": doc, "message": "Record updated successfully!"}


@router.delete("/query/{collection}")
async def delete_document(
    request: Request, collection: str, id: Optional[str] = None
) -> Dict[str, Any]:
    if not id:
        raise ValidationError("ID is required", [{"field": "id", "message": "id is required"}])
    deleted = await _call(request, _service(request).delete, id, collection)
    if not deleted:
        raise NotFoundError("Record not found", key=f"{collection}:{id}")
    return {"success": True, "message": "Record deleted successfully!"}


# ---- /store/settings --------------------------------------------------------
def _save_store_settings(service: CollectionService, data: Dict[str, Any]) -> Dict[str, Any]:
    existing = service.read_all(STORE_SETTINGS)
    if existing:
        return service.update(existing[0]["id"], data, STORE_SETTINGS)
    return service.create(data, STORE_SETTINGS)


@router.get("/store/settings")
async def get_store_settings(request: Request) -> Dict[str, Any]:
    cache: SettingsCache = request.app.state.settings_cache
    settings = await _call(request, cache.store_settings)
    return {"success": True, "data": public_store_settings(settings)}


@router.put("/store/settings")
async def put_store_settings(request: Request) -> Dict[str, Any]:
    data = await _json_object(request)
    saved = await _call(request, _save_store_settings, _service(request), data)
    request.app.state.settings_cache.clear(STORE_SETTINGS)
    return {"success": True, "data": public_store_settings(saved)}


# ---- /upload ----------------------------------------------------------------
@router.post("/upload", status_code=201)
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    path: Optional[str] = Form(None),
) -> Dict[str, Any]:
    data = await file.read()
    target = path or f"uploads/{generate_id()}_{file.filename or 'file'}"
    result = await _call(
        request,
        _service(request).upload,
        data,
        target,
        content_type=file.content_type,
        filename=file.filename,
    )
    return {"success": True, "data": result.model_dump()}
