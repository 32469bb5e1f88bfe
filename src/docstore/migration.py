"""
Copy collections between two facades (e.g. realtime tree → Postgres).

    preview = preview_migration(tree, pg, ["catalog", "orders"])
    result = migrate(tree, pg, ["catalog", "orders"])
    diff = compare_collections(tree, pg, "catalog")
    save_report(result)
    rollback_migration(pg, result)          # deletes what was copied

Documents keep their ids and timestamps. Writes go straight to the target
backend, so schemas and lifecycle hooks are not applied twice.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, Field

from .errors import DocstoreError, ValidationError
from .service import RESERVED_KEY_CHARS, CollectionService, utc_now_iso

logger = logging.getLogger(__name__)

Transform = Callable[[Dict[str, Any]], Dict[str, Any]]

CONNECTION_CHECK_COLLECTION = "migration_test"
_TREE_FIELD_CHARS = re.compile("[" + re.escape("".join(sorted(RESERVED_KEY_CHARS))) + "]")


# ---- transformations --------------------------------------------------------
def sanitize_tree_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Replace characters a realtime tree refuses in keys with ``_``."""
    return {_TREE_FIELD_CHARS.sub("_", k): v for k, v in fields.items()}


TRANSFORMS: Dict[str, Transform] = {"tree": sanitize_tree_fields}


def recommended_transform(provider: str) -> Optional[Transform]:
    return TRANSFORMS.get(provider)


# ---- results ----------------------------------------------------------------
class CollectionMigration(BaseModel):
    collection: str
    total: int = 0
    ids: List[str] = Field(default_factory=list)
    errors: List[Dict[str, str]] = Field(default_factory=list)
    dry_run: bool = False
    started_at: str
    finished_at: Optional[str] = None

    @property
    def copied(self) -> int:
        return len(self.ids)

    @property
    def status(self) -> str:
        if self.errors and not self.ids:
            return "failed"
        if self.errors:
            return "partial"
        return "success" if self.total else "empty"


class MigrationResult(BaseModel):
    source: str
    target: str
    dry_run: bool = False
    started_at: str
    finished_at: Optional[str] = None
    collections: Dict[str, CollectionMigration] = Field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(c.total for c in self.collections.values())

    @property
    def copied(self) -> int:
        return sum(c.copied for c in self.collections.values())

    def counts(self) -> Dict[str, int]:
        return {name: c.copied for name, c in self.collections.items()}

    def to_report(self) -> str:
        """Markdown summary, one section per collection."""
        rate = (self.copied / self.total * 100) if self.total else 0.0
        ok = sum(1 for c in self.collections.values() if c.status in ("success", "empty"))
        lines = [
            f"# Migration report: {self.source} → {self.target}",
            "",
            f"- **Started:** {self.started_at}",
            f"- **Finished:** {self.finished_at}",
            f"- **Dry run:** {'yes' if self.dry_run else 'no'}",
            "",
            "## Summary",
            f"- **Collections:** {ok}/{len(self.collections)} successful",
            f"- **Documents:** {self.copied}/{self.total} migrated",
            f"- **Success rate:** {rate:.2f}%",
            "",
            "## Collections",
        ]
        for name, c in self.collections.items():
            lines += [
                f"### {name}",
                f"- **Status:** {c.status}",
                f"- **Documents:** {c.copied}/{c.total}",
            ]
            if c.errors:
                lines.append(f"- **Errors:** {len(c.errors)}")
                lines += [f"  - {e['id']}: {e['error']}" for e in c.errors[:5]]
                if len(c.errors) > 5:
                    lines.append(f"  - ... and {len(c.errors) - 5} more")
            lines.append("")
        return "\n".join(lines)


class CollectionPreview(BaseModel):
    collection: str
    record_count: int = 0
    fields: Dict[str, int] = Field(default_factory=dict)
    sample: List[Dict[str, Any]] = Field(default_factory=list)
    existing_in_target: int = 0
    warnings: List[str] = Field(default_factory=list)


class CollectionDiff(BaseModel):
    collection: str
    only_in_source: List[str] = Field(default_factory=list)
    only_in_target: List[str] = Field(default_factory=list)
    different: List[str] = Field(default_factory=list)
    common: int = 0

    @property
    def consistent(self) -> bool:
        return not (self.only_in_source or self.only_in_target or self.different)


class ConnectionCheck(BaseModel):
    provider: str
    connected: bool = False
    operations: Dict[str, bool] = Field(default_factory=dict)
    preserves_types: bool = False
    error: Optional[str] = None


# ---- operations -------------------------------------------------------------
def _fields(doc: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in doc.items() if k != "id"}


def copy_collection(
    source: CollectionService,
    target: CollectionService,
    collection: str,
    *,
    transform: Optional[Transform] = None,
    dry_run: bool = False,
) -> CollectionMigration:
    """Copy every document of ``collection``; per-document failures are recorded."""
    result = CollectionMigration(
        collection=collection, dry_run=dry_run, started_at=utc_now_iso()
    )
    try:
        docs = source.read_all(collection)
    except DocstoreError as exc:
        logger.error("reading %s from %s failed: %s", collection, source.provider, exc)
        result.errors.append({"id": "*", "error": str(exc)})
        result.finished_at = utc_now_iso()
        return result

    result.total = len(docs)
    # oldest first so the target's own created_at ordering matches
    for doc in reversed(docs):
        fields = _fields(doc)
        try:
            if transform is not None:
                fields = transform(fields)
            if not dry_run:
                target.backend.create(doc["id"], fields, collection)
        except DocstoreError as exc:
            logger.warning("copying %s:%s failed: %s", collection, doc["id"], exc)
            result.errors.append({"id": doc["id"], "error": str(exc)})
            continue
        result.ids.append(doc["id"])

    result.finished_at = utc_now_iso()
    logger.info(
        "%s %d/%d documents of %s from %s to %s",
        "checked" if dry_run else "copied",
        result.copied,
        result.total,
        collection,
        source.provider,
        target.provider,
    )
    return result


def migrate(
    source: CollectionService,
    target: CollectionService,
    collections: Iterable[str],
    *,
    transform: Optional[Transform] = None,
    dry_run: bool = False,
) -> MigrationResult:
    """Copy several collections; the target's recommended transform applies by default."""
    transform = transform or recommended_transform(target.provider)
    result = MigrationResult(
        source=source.provider,
        target=target.provider,
        dry_run=dry_run,
        started_at=utc_now_iso(),
    )
    for collection in collections:
        result.collections[collection] = copy_collection(
            source, target, collection, transform=transform, dry_run=dry_run
        )
    result.finished_at = utc_now_iso()
    return result


def preview_migration(
    source: CollectionService,
    target: CollectionService,
    collections: Iterable[str],
    *,
    sample_size: int = 5,
) -> Dict[str, CollectionPreview]:
    """What `migrate` would do, without writing anything."""
    previews = {}
    for collection in collections:
        docs = source.read_all(collection)
        preview = CollectionPreview(collection=collection, record_count=len(docs))
        if not docs:
            preview.warnings.append("collection is empty")
            previews[collection] = preview
            continue

        for doc in docs:
            for field in _fields(doc):
                preview.fields[field] = preview.fields.get(field, 0) + 1
        preview.sample = [dict(doc) for doc in docs[:sample_size]]

        target_ids = {doc["id"] for doc in target.read_all(collection)}
        preview.existing_in_target = sum(1 for doc in docs if doc["id"] in target_ids)
        if preview.existing_in_target:
            preview.warnings.append(
                f"{preview.existing_in_target} documents already exist in "
                f"{target.provider} and will be overwritten"
            )

        if target.provider == "tree":
            renamed = sorted(f for f in preview.fields if _TREE_FIELD_CHARS.search(f))
            if renamed:
                preview.warnings.append(
                    "field names will be sanitized: " + ", ".join(renamed)
                )
        previews[collection] = preview
    return previews


def compare_collections(
    source: CollectionService, target: CollectionService, collection: str
) -> CollectionDiff:
    left = {doc["id"]: _fields(doc) for doc in source.read_all(collection)}
    right = {doc["id"]: _fields(doc) for doc in target.read_all(collection)}
    common = left.keys() & right.keys()
    return CollectionDiff(
        collection=collection,
        only_in_source=sorted(left.keys() - right.keys()),
        only_in_target=sorted(right.keys() - left.keys()),
        different=sorted(id for id in common if left[id] != right[id]),
        common=len(common),
    )


def rollback_migration(target: CollectionService, result: MigrationResult) -> Dict[str, int]:
    """Delete from ``target`` every document a migration copied into it."""
    if result.dry_run:
        raise ValidationError(
            "A dry run wrote nothing to roll back",
            [{"field": "result", "message": "dry run"}],
        )
    if result.target != target.provider:
        raise ValidationError(
            f"Migration targeted {result.target}, not {target.provider}",
            [{"field": "target", "message": "provider mismatch"}],
        )

    deleted = {}
    for name, copied in result.collections.items():
        deleted[name] = sum(1 for id in copied.ids if target.backend.delete(id, name))
        logger.info("rolled back %d documents of %s", deleted[name], name)
    return deleted


def save_report(result: MigrationResult, path: Optional[Path | str] = None) -> Path:
    if path is None:
        stamp = dt.datetime.now(tz=dt.timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        path = f"migration-report-{result.source}-to-{result.target}-{stamp}.md"
    path = Path(path)
    path.write_text(result.to_report(), encoding="utf-8")
    logger.info("migration report saved to %s", path)
    return path


def check_connections(
    services: Mapping[str, CollectionService],
    *,
    collection: str = CONNECTION_CHECK_COLLECTION,
) -> Dict[str, ConnectionCheck]:
    """
    Round-trip a sample document through every service (create, read, update,
    delete) and report whether JSON types survive.
    """
    sample = {
        "testField": "testValue",
        "number": 123,
        "array": [1, 2, 3],
        "nested": {"inner": "value"},
    }
    checks = {}
    for name, service in services.items():
        check = ConnectionCheck(provider=service.provider)
        try:
            check.connected = service.ping()
            created = service.create(dict(sample), collection)
            read = service.read(created["id"], collection) or {}
            updated = service.update(created["id"], {"updated": True}, collection)
            check.operations = {
                "create": bool(created),
                "read": bool(read),
                "update": updated.get("updated") is True,
                "delete": service.delete(created["id"], collection),
            }
            check.preserves_types = all(read.get(k) == v for k, v in sample.items())
        except DocstoreError as exc:
            logger.warning("connection check for %s failed: %s", name, exc)
            check.error = str(exc)
        checks[name] = check
    return checks
