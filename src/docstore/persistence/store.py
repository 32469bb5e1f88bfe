"""
Thin data-access layer around the `kv_store` table.

Collections are key prefixes: a document ``id`` in collection ``table`` is
stored under ``"table:id"``. Nothing here retries; every driver error is
wrapped with the operation and key and re-raised.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import (
    Text,
    cast,
    delete,
    inspect,
    literal,
    select,
    text,
    type_coerce,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.schema import CreateTable

from ..core.normalize import same_value
from ..errors import InsertError, NotFoundError, StorageError
from .models import KVRow, StoredRecord

logger = logging.getLogger(__name__)

# dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _matches(data: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    return all(field in data and same_value(data[field], v) for field, v in query.items())


class KVStore:
    """Thin data‑access layer around the `kv_store` table."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self.initialized = False  # process-local; the DDL itself is idempotent

    def _new_session(self) -> Session:
        return Session(bind=self.engine, future=True)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    # ---- keys -----------------------------------------------------------
    @staticmethod
    def build_key(table: str, id: str) -> str:
        return f"{table}:{id}"

    @staticmethod
    def _id_from_key(key: str, table: str) -> str:
        return key[len(table) + 1 :]

    def _in_table(self, table: str):
        return KVRow.key.startswith(f"{table}:", autoescape=True)

    def _rows_to_items(self, rows, table: str) -> List[Dict[str, Any]]:
        # LIKE is case-insensitive on some backends; keep the prefix exact
        prefix = f"{table}:"
        return [
            {"id": self._id_from_key(r.key, table), "data": r.data}
            for r in rows
            if r.key.startswith(prefix)
        ]

    # ---- schema ---------------------------------------------------------
    def ensure_table(self) -> None:
        """Create the table if needed, once per process."""
        if self.initialized:
            return

        start = time.perf_counter()
        try:
            with self.engine.begin() as conn:
                conn.execute(CreateTable(KVRow.__table__, if_not_exists=True))
        except SQLAlchemyError as exc:
            # a concurrent cold start may have won the race
            if not self._table_exists():
                logger.error("failed to create %s: %s", KVRow.__tablename__, exc)
                raise StorageError(
                    f"Ensure table failed for {KVRow.__tablename__}: {exc}",
                    operation="ensure_table",
                ) from exc
            logger.debug("%s created concurrently: %s", KVRow.__tablename__, exc)

        self.initialized = True
        logger.debug("%s ensured in %.1fms", KVRow.__tablename__, _elapsed_ms(start))

    def _table_exists(self) -> bool:
        try:
            return inspect(self.engine).has_table(KVRow.__tablename__)
        except SQLAlchemyError:
            return False

    def ping(self) -> bool:
        """Connectivity check; never raises."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            logger.warning("database ping failed: %s", exc)
            return False

    # ---- writes ---------------------------------------------------------
    def insert(self, table: str, id: str, value: Mapping[str, Any]) -> StoredRecord:
        """Upsert ``value`` under ``table:id`` and return the stored row."""
        self.ensure_table()
        key = self.build_key(table, id)

        make_insert = _UPSERTS.get(self.dialect)
        if make_insert is None:
            raise InsertError(
                f"Insert failed for {key}: upsert unsupported on {self.dialect}",
                operation="insert",
                key=key,
            )

        start = time.perf_counter()
        stmt = make_insert(KVRow).values(key=key, data=dict(value))
        stmt = stmt.on_conflict_do_update(
            index_elements=[KVRow.key], set_={"data": stmt.excluded.data}
        ).returning(KVRow.key, KVRow.data, KVRow.created_at)
        try:
            with self.engine.begin() as conn:
                row = conn.execute(stmt).one()
        except SQLAlchemyError as exc:
            logger.error("insert failed for %s after %.1fms: %s", key, _elapsed_ms(start), exc)
            raise InsertError(
                f"Insert failed for {key}: {exc}", operation="insert", key=key
            ) from exc

        return StoredRecord(key=row.key, data=row.data, created_at=row.created_at)

    def update(self, table: str, id: str, value: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Shallow-merge ``value`` into the stored document (``data || value``).

        Unlike `insert` this never creates a row: a missing key raises
        `NotFoundError`.
        """
        self.ensure_table()
        key = self.build_key(table, id)
        value = dict(value)

        start = time.perf_counter()
        try:
            with self.engine.begin() as conn:
                if self.dialect == "postgresql":
                    patch = cast(literal(json.dumps(value), Text), JSONB)
                    stmt = (
                        update(KVRow)
                        .where(KVRow.key == key)
                        .values(data=KVRow.data.op("||", return_type=JSONB)(patch))
                        .returning(KVRow.data)
                    )
                    row = conn.execute(stmt).first()
                    merged = row.data if row else None
                else:
                    row = conn.execute(
                        select(KVRow.data).where(KVRow.key == key)
                    ).first()
                    merged = None
                    if row is not None:
                        merged = {**row.data, **value}
                        conn.execute(
                            update(KVRow).where(KVRow.key == key).values(data=merged)
                        )
        except SQLAlchemyError as exc:
            logger.error("update failed for %s after %.1fms: %s", key, _elapsed_ms(start), exc)
            raise StorageError(
                f"Update failed for {key}: {exc}", operation="update", key=key
            ) from exc

        if merged is None:
            raise NotFoundError(f"Record not found for key: {key}", key=key)
        return merged

    def delete(self, table: str, id: str) -> Optional[StoredRecord]:
        """Delete ``table:id``; returns the removed row or None."""
        self.ensure_table()
        key = self.build_key(table, id)

        start = time.perf_counter()
        stmt = (
            delete(KVRow)
            .where(KVRow.key == key)
            .returning(KVRow.key, KVRow.data, KVRow.created_at)
        )
        try:
            with self.engine.begin() as conn:
                row = conn.execute(stmt).first()
        except SQLAlchemyError as exc:
            logger.error("delete failed for %s after %.1fms: %s", key, _elapsed_ms(start), exc)
            raise StorageError(
                f"Delete failed for {key}: {exc}", operation="delete", key=key
            ) from exc

        if row is None:
            return None
        return StoredRecord(key=row.key, data=row.data, created_at=row.created_at)

    def delete_all(self, table: str) -> int:
        """Remove every row of a collection; returns the row count."""
        self.ensure_table()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(delete(KVRow).where(self._in_table(table)))
        except SQLAlchemyError as exc:
            logger.error("delete all failed for table %s: %s", table, exc)
            raise StorageError(
                f"Delete all failed for table {table}: {exc}",
                operation="delete_all",
                key=f"{table}:*",
            ) from exc
        return result.rowcount

    # ---- reads ----------------------------------------------------------
    def find(self, table: str, id: str) -> Optional[Dict[str, Any]]:
        """Return the stored ``data`` for ``table:id`` or None."""
        self.ensure_table()
        key = self.build_key(table, id)

        start = time.perf_counter()
        try:
            with self._new_session() as s:
                row = s.execute(select(KVRow.data).where(KVRow.key == key)).first()
        except SQLAlchemyError as exc:
            logger.error("find failed for %s after %.1fms: %s", key, _elapsed_ms(start), exc)
            raise StorageError(
                f"Find failed for {key}: {exc}", operation="find", key=key
            ) from exc
        return row.data if row else None

    def fetch_all(self, table: str) -> List[Dict[str, Any]]:
        """Every ``{id, data}`` of a collection, newest first."""
        self.ensure_table()
        return self._select(table, {}, None, operation="fetch_all")

    def find_by_query(
        self,
        table: str,
        query: Mapping[str, Any],
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        ``{id, data}`` rows whose top-level fields equal every ``query`` item.

        Equality is typed JSON equality (``data->'field' = value::jsonb``):
        the string ``"3"`` does not match the number ``3``. There is no OR,
        no range and no nested-field matching.
        """
        self.ensure_table()
        return self._select(table, query, limit, operation="find_by_query")

    def _select(
        self,
        table: str,
        query: Mapping[str, Any],
        limit: Optional[int],
        *,
        operation: str,
    ) -> List[Dict[str, Any]]:
        # only Postgres can compare JSON values typed in SQL; elsewhere the
        # field filter (and so the limit) is applied to the fetched rows
        in_sql = self.dialect == "postgresql"

        q = select(KVRow.key, KVRow.data).where(self._in_table(table))
        if in_sql:
            doc = type_coerce(KVRow.data, JSONB)
            for field, value in query.items():
                q = q.where(doc[field] == cast(literal(json.dumps(value), Text), JSONB))
        q = q.order_by(KVRow.created_at.desc(), KVRow.key.desc())
        if limit is not None and (in_sql or not query):
            q = q.limit(limit)

        start = time.perf_counter()
        try:
            with self._new_session() as s:
                rows = s.execute(q).all()
        except SQLAlchemyError as exc:
            logger.error(
                "%s failed for table %s after %.1fms: %s",
                operation,
                table,
                _elapsed_ms(start),
                exc,
            )
            raise StorageError(
                f"Query failed for table {table}: {exc}",
                operation=operation,
                key=f"{table}:*",
            ) from exc

        items = self._rows_to_items(rows, table)
        if not in_sql and query:
            items = [item for item in items if _matches(item["data"], query)]
            if limit is not None:
                items = items[:limit]
        return items
