"""Decide whether a newly delivered online order should be imported."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import timedelta
import enum
from typing import Any

from pdvsync.adapters.db.store import LocalStore
from pdvsync.core.clock import Clock, utc_now
from pdvsync.sync.dates import resolve_order_instant

DEFAULT_STALENESS_WINDOW = timedelta(hours=2)
DEFAULT_MAX_ADMISSIONS = 100


class ProcessedSet:
    """Event identifiers already dealt with during this process lifetime."""

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def add(self, key: str) -> None:
        self._keys.add(key)

    def discard(self, key: str) -> None:
        self._keys.discard(key)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._keys))


class AdmissionDecision(enum.Enum):
    ADMIT = "admit"
    DUPLICATE = "duplicate"
    STALE = "stale"
    EXISTS = "exists"
    OVER_LIMIT = "over_limit"


@dataclass(frozen=True, slots=True)
class AdmissionResult:
    decision: AdmissionDecision
    age: timedelta | None = None

    @property
    def admitted(self) -> bool:
        return self.decision is AdmissionDecision.ADMIT


class AdmissionPolicy:
    """Applies the admission checks in a fixed order, stopping at the first hit.

    1. Already processed -> DUPLICATE.
    2. Created at least ``staleness_window`` ago -> STALE (marked processed).
    3. Already in the local store -> EXISTS (marked processed).
    4. Session admission limit reached -> OVER_LIMIT (not marked).
    5. Otherwise ADMIT: counted and marked processed before any import work.
    """

    def __init__(
        self,
        processed: ProcessedSet,
        store: LocalStore,
        *,
        staleness_window: timedelta = DEFAULT_STALENESS_WINDOW,
        max_admissions: int = DEFAULT_MAX_ADMISSIONS,
        clock: Clock = utc_now,
        store_name: str = "orders",
    ) -> None:
        self._processed = processed
        self._store = store
        self._staleness_window = staleness_window
        self._max_admissions = max_admissions
        self._clock = clock
        self._store_name = store_name
        self._admitted = 0

    @property
    def admitted_count(self) -> int:
        return self._admitted

    @property
    def max_admissions(self) -> int:
        return self._max_admissions

    async def evaluate(self, key: str, payload: Mapping[str, Any]) -> AdmissionResult:
        if key in self._processed:
            return AdmissionResult(AdmissionDecision.DUPLICATE)

        now = self._clock()
        age = now - resolve_order_instant(payload, key, now).instant
        if age >= self._staleness_window:
            self._processed.add(key)
            return AdmissionResult(AdmissionDecision.STALE, age)

        existing = await self._store.get(self._store_name, key)
        # Another delivery of the same key may have been admitted while we
        # were waiting on the store.
        if key in self._processed:
            return AdmissionResult(AdmissionDecision.DUPLICATE, age)
        if existing is not None:
            self._processed.add(key)
            return AdmissionResult(AdmissionDecision.EXISTS, age)

        if self._admitted >= self._max_admissions:
            return AdmissionResult(AdmissionDecision.OVER_LIMIT, age)

        self._admitted += 1
        self._processed.add(key)
        return AdmissionResult(AdmissionDecision.ADMIT, age)
