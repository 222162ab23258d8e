"""Read-through cache over the remote and local data sources."""

from __future__ import annotations

from pdvsync.cache.logger import CacheLogger
from pdvsync.cache.read_through import (
    DEFAULT_TTLS,
    ESSENTIAL_KEYS,
    CacheEntryStats,
    ReadThroughCache,
    WriteOp,
)
from pdvsync.cache.sources import (
    DataSource,
    FallbackSource,
    LocalStoreSource,
    RoutedSource,
    coerce_records,
)

__all__ = [
    "DEFAULT_TTLS",
    "ESSENTIAL_KEYS",
    "CacheEntryStats",
    "CacheLogger",
    "DataSource",
    "FallbackSource",
    "LocalStoreSource",
    "ReadThroughCache",
    "RoutedSource",
    "WriteOp",
    "coerce_records",
]
