"""Local persistent store backed by SQLAlchemy."""

from __future__ import annotations

from pdvsync.adapters.db.facade import DB, LocalStoreError
from pdvsync.adapters.db.models import (
    Base,
    StoreRecord,
    record_key,
)
from pdvsync.adapters.db.store import DBLocalStore, LocalStore

__all__ = [
    "DB",
    "Base",
    "DBLocalStore",
    "LocalStore",
    "LocalStoreError",
    "StoreRecord",
    "record_key",
]
