from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, TIMESTAMP, String, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Settings are keyed by ``key`` instead of ``id``.
STORE_KEY_FIELDS = {"settings": "key"}


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class StoreRecord(Base):
    """One JSON document in a named store."""

    __tablename__ = "store_records"

    store_name: Mapped[str] = mapped_column(String, primary_key=True)
    record_id: Mapped[str] = mapped_column(String, primary_key=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )


def record_key(store_name: str, record: Mapping[str, Any]) -> str | None:
    """Identifier of ``record`` within ``store_name``, or None if it has none."""
    value = record.get(STORE_KEY_FIELDS.get(store_name, "id"))
    if value is None or isinstance(value, bool):
        return None
    key = str(value).strip()
    return key or None
