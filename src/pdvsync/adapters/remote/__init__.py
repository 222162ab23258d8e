"""Remote order sources: the realtime collection online orders arrive on."""

from __future__ import annotations

from pdvsync.adapters.remote.channel import Subscription
from pdvsync.adapters.remote.firebase import (
    FirebaseClient,
    FirebaseClientError,
    FirebaseCollectionSource,
    FirebaseOrderSource,
    StreamEvent,
    StreamMirror,
)
from pdvsync.adapters.remote.memory import InMemoryOrderSource
from pdvsync.adapters.remote.protocol import (
    ChangeEvent,
    ChangeKind,
    RemoteOrderSource,
    RemoteSourceError,
)

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "FirebaseClient",
    "FirebaseClientError",
    "FirebaseCollectionSource",
    "FirebaseOrderSource",
    "InMemoryOrderSource",
    "RemoteOrderSource",
    "RemoteSourceError",
    "StreamEvent",
    "StreamMirror",
    "Subscription",
]
