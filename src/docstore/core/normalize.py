"""
Response normalizer + pager.

Collapses the shapes a collection read can come back in

    [ {...}, ... ]                 plain list
    {"success": ..., "data": [..]} envelope around a list
    {"<id>": {...}, ...}           id → item map (tree databases)
    {"data": {"<id>": {...}}}      envelope around a map

into one list of ``{id, **fields}`` items, then searches, sorts newest
first and slices a 1-indexed page.
"""

from __future__ import annotations

import datetime as dt
import math
from typing import Any, Iterable, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..errors import ValidationError

SEARCH_FIELDS = ("name", "description", "category")
DEFAULT_LIMIT = 10

# keys of a response envelope (`{"success": true, "data": ...}`)
ENVELOPE_KEYS = frozenset({"success", "data", "pagination", "message", "error"})

_EPOCH = 0.0


class Pagination(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    current_page: int
    total_items: int
    total_pages: int
    has_next: bool
    has_prev: bool


class Page(BaseModel):
    data: list[dict[str, Any]] = Field(default_factory=list)
    pagination: Pagination

    def to_response(self) -> dict[str, Any]:
        """camelCase dict for JSON responses."""
        return self.model_dump(mode="json", by_alias=True)


# ---- shape detection ------------------------------------------------------
def entries_to_items(entries: Iterable[tuple[Any, Any]]) -> list[dict[str, Any]]:
    """``(id, item)`` pairs → ``[{id, **item}]``; scalars land under ``value``."""
    items = []
    for id_, item in entries:
        if item is None:
            continue
        if isinstance(item, Mapping):
            items.append({"id": str(id_), **item})
        else:
            items.append({"id": str(id_), "value": item})
    return items


def _is_envelope(value: Mapping[str, Any]) -> bool:
    # an id map may hold a document whose id is "data"
    return isinstance(value.get("data"), (list, Mapping)) and set(value) <= ENVELOPE_KEYS


def normalize_items(value: Any) -> list[Mapping[str, Any]]:
    if isinstance(value, Mapping) and _is_envelope(value):
        value = value["data"]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, Mapping)]
    if isinstance(value, Mapping):
        return entries_to_items(value.items())
    return []


def same_value(stored: Any, wanted: Any) -> bool:
    """
    JSON equality used by field lookups: ``3 == 3.0``, but ``"3" != 3`` and
    ``true != 1``.
    """
    if isinstance(stored, bool) or isinstance(wanted, bool):
        return isinstance(stored, bool) and isinstance(wanted, bool) and stored == wanted
    if isinstance(stored, str) != isinstance(wanted, str):
        return False
    return stored == wanted


# ---- search / sort --------------------------------------------------------
def search_items(
    items: Iterable[Mapping[str, Any]],
    term: str | None,
    fields: Sequence[str] = SEARCH_FIELDS,
) -> list[Mapping[str, Any]]:
    """Case-insensitive substring match on any of ``fields``."""
    items = [item for item in items if isinstance(item, Mapping)]
    if not term:
        return items
    needle = term.lower()
    return [
        item
        for item in items
        if any(
            isinstance(item.get(f), str) and needle in item[f].lower() for f in fields
        )
    ]


def created_timestamp(value: Any) -> float:
    """
    Seconds since the epoch for a ``createdAt`` value.

    Accepts ISO-8601 strings, epoch milliseconds and datetimes; anything
    else sorts as the epoch.
    """
    if isinstance(value, bool):
        return _EPOCH
    if isinstance(value, (int, float)):
        return value / 1000.0
    if isinstance(value, str):
        try:
            value = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return _EPOCH
    if isinstance(value, dt.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=dt.timezone.utc)
        return value.timestamp()
    return _EPOCH


def sort_newest_first(items: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    return sorted(
        items, key=lambda item: created_timestamp(item.get("createdAt")), reverse=True
    )


# ---- paging ---------------------------------------------------------------
def paginate(
    items: Sequence[Mapping[str, Any]], page: int = 1, limit: int = DEFAULT_LIMIT
) -> Page:
    if page < 1:
        raise ValidationError(
            "page must be >= 1", [{"field": "page", "message": "must be >= 1"}]
        )
    if limit < 1:
        raise ValidationError(
            "limit must be >= 1", [{"field": "limit", "message": "must be >= 1"}]
        )

    total = len(items)
    start = (page - 1) * limit
    end = start + limit
    return Page(
        data=[dict(item) for item in items[start:end]],
        pagination=Pagination(
            current_page=page,
            total_items=total,
            total_pages=math.ceil(total / limit),
            has_next=end < total,
            has_prev=page > 1,
        ),
    )


def build_page(
    value: Any,
    *,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    search: str | None = None,
    fields: Sequence[str] = SEARCH_FIELDS,
) -> Page:
    """normalize → search → sort → paginate."""
    items = search_items(normalize_items(value), search, fields)
    return paginate(sort_newest_first(items), page=page, limit=limit)
