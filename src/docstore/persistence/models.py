"""
Single-table schema: every document of every collection lives here,
keyed by ``"<collection>:<id>"``.
"""

import datetime as dt
from typing import Any, Dict

from pydantic import BaseModel
from sqlalchemy import JSON, Column, DateTime, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# JSONB on Postgres (needed for `||` merges), plain JSON elsewhere
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


def now_utc() -> dt.datetime:  # compact timezone‑aware timestamp
    return dt.datetime.now(tz=dt.timezone.utc)


class KVRow(Base):
    """The one physical table; collections are key prefixes."""

    __tablename__ = "kv_store"

    key = Column(Text, primary_key=True)
    data = Column(JSONDocument, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        default=now_utc,
        server_default=func.now(),
        nullable=False,
    )


class StoredRecord(BaseModel):
    """A row as returned by writes: ``{key, data, created_at}``."""

    key: str
    data: Dict[str, Any]
    created_at: dt.datetime | None = None

    model_config = {"frozen": True}
