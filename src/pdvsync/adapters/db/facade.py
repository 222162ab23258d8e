from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pdvsync.adapters.db.models import Base, StoreRecord, record_key

Record = dict[str, Any]


class LocalStoreError(Exception):
    """Raised when a record cannot be written to the local store."""


class DB:
    """Database service layer over the ``store_records`` table."""

    def __init__(self, url: str) -> None:
        """Initialize database connection.

        Args:
            url: Database URL (e.g., "sqlite:///pdvsync.db")
        """
        self._url = url
        engine_kwargs: dict[str, Any] = {"echo": False}
        if url.startswith("sqlite"):
            # Store calls run on worker threads.
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url or url.rstrip("/") == "sqlite:":
                engine_kwargs["poolclass"] = StaticPool
        self._engine = create_engine(url, **engine_kwargs)
        self._session_factory = sessionmaker(bind=self._engine, class_=Session)

    @property
    def url(self) -> str:
        return self._url

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager for database sessions."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_schema(self) -> None:
        """Create tables that do not exist yet."""
        Base.metadata.create_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()

    def get_all(self, store_name: str) -> list[Record]:
        """Return every record of a store, oldest first. Empty store -> []."""
        with self.session() as session:
            rows = session.scalars(
                select(StoreRecord)
                .where(StoreRecord.store_name == store_name)
                .order_by(StoreRecord.created_at, StoreRecord.record_id)
            ).all()
            return [dict(row.payload) for row in rows]

    def get(self, store_name: str, record_id: str) -> Record | None:
        with self.session() as session:
            row = session.get(StoreRecord, (store_name, str(record_id)))
            return dict(row.payload) if row is not None else None

    def save(self, store_name: str, record: Mapping[str, Any]) -> Record:
        """Insert ``record`` or replace the one stored under the same id.

        Raises:
            LocalStoreError: If the record carries no identifier.
        """
        key = record_key(store_name, record)
        if key is None:
            raise LocalStoreError(f"Record for store {store_name!r} has no identifier")
        payload = dict(record)
        now = datetime.now(UTC).replace(tzinfo=None)
        with self.session() as session:
            row = session.get(StoreRecord, (store_name, key))
            if row is None:
                session.add(
                    StoreRecord(
                        store_name=store_name,
                        record_id=key,
                        payload=payload,
                        created_at=now,
                        updated_at=now,
                    )
                )
            else:
                row.payload = payload
                row.updated_at = now
        return payload

    def update(self, store_name: str, record: Mapping[str, Any]) -> Record:
        """Replace a stored record; a missing one is inserted."""
        return self.save(store_name, record)

    def remove(self, store_name: str, record_id: str) -> bool:
        """Delete a record. Returns False when nothing was stored under the id."""
        with self.session() as session:
            row = session.get(StoreRecord, (store_name, str(record_id)))
            if row is None:
                return False
            session.delete(row)
            return True

    def count(self, store_name: str) -> int:
        """Number of records in a store."""
        with self.session() as session:
            return int(
                session.scalar(
                    select(func.count())
                    .select_from(StoreRecord)
                    .where(StoreRecord.store_name == store_name)
                )
                or 0
            )
