from __future__ import annotations

from dataclasses import dataclass
import enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pdvsync.adapters.remote.channel import Subscription


class RemoteSourceError(Exception):
    """Raised when the remote order source cannot be reached or refuses a call."""


class ChangeKind(enum.Enum):
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """One child-level change of the remote order collection."""

    kind: ChangeKind
    key: str
    value: dict[str, Any] | None = None


@runtime_checkable
class RemoteOrderSource(Protocol):
    """Push-based source of online orders."""

    async def subscribe(self) -> Subscription:
        """Start delivering change events; existing children arrive as ADDED."""
        ...

    async def snapshot(self) -> dict[str, dict[str, Any]]:
        """Read the whole collection once, keyed by child identifier."""
        ...

    async def update(self, key: str, fields: dict[str, Any]) -> None:
        """Merge ``fields`` into the child stored under ``key``."""
        ...
