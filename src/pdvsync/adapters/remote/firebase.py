"""Firebase Realtime Database over its REST interface.

Reads use ``GET <path>.json``, writes ``PATCH <path>/<key>.json`` and live
changes come from the server-sent event stream of the collection. The stream
reports ``put``/``patch`` operations at arbitrary paths; ``StreamMirror``
keeps a copy of the collection and turns them into child-level
added/changed/removed events.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Mapping
import copy
import http.client
import json
import threading
from typing import Any, Self, cast
import urllib.error
import urllib.parse
import urllib.request

from pydantic import BaseModel, ConfigDict

from pdvsync.adapters.remote.channel import Subscription
from pdvsync.adapters.remote.logger import RemoteSourceLogger
from pdvsync.adapters.remote.protocol import (
    ChangeEvent,
    ChangeKind,
    RemoteSourceError,
)
from pdvsync.core.config import SyncConfig

Record = dict[str, Any]


class FirebaseClientError(RemoteSourceError):
    """Base error for Firebase client failures."""


class StreamEvent(BaseModel):
    """Body of a ``put``/``patch`` stream event."""

    model_config = ConfigDict(extra="ignore")

    path: str = "/"
    data: Any = None

    @classmethod
    def parse(cls, data: Any) -> Self:
        return cls.model_validate(data)


class FirebaseClient:
    """Minimal Realtime Database REST client."""

    def __init__(
        self,
        *,
        database_url: str,
        auth_token: str | None = None,
        timeout: float = 15.0,
    ) -> None:
        if not database_url:
            raise FirebaseClientError("Firebase database URL is required")
        self._database_url = database_url.rstrip("/")
        self._auth_token = auth_token
        self._timeout = timeout

    @classmethod
    def from_config(cls, config: SyncConfig) -> FirebaseClient:
        if not config.firebase_url:
            raise FirebaseClientError("PDVSYNC_FIREBASE_URL is not configured")
        return cls(
            database_url=config.firebase_url,
            auth_token=config.firebase_auth,
            timeout=config.fetch_timeout_seconds,
        )

    def url_for(self, path: str) -> str:
        url = f"{self._database_url}/{path.strip('/')}.json"
        if self._auth_token:
            url += "?" + urllib.parse.urlencode({"auth": self._auth_token})
        return url

    def _parse_json_response(self, body: str) -> Any:
        try:
            return json.loads(body) if body else None
        except json.JSONDecodeError as e:
            raise FirebaseClientError(
                f"Failed to parse Firebase response as JSON: {e}: {body[:200]}"
            ) from e

    def _request(
        self, method: str, path: str, payload: Mapping[str, Any] | None = None
    ) -> Any:
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = urllib.request.Request(  # noqa: S310
            self.url_for(path),
            data=data,
            headers={"Content-Type": "application/json"},
            method=method,
        )
        try:
            with urllib.request.urlopen(  # noqa: S310 - external HTTPS
                req, timeout=self._timeout
            ) as resp:
                body = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:  # pragma: no cover - network-dependent
            err_body = e.read().decode("utf-8", "ignore")
            raise FirebaseClientError(
                f"Firebase error ({e.code}) on {method} {path}: {err_body}"
            ) from e
        except (urllib.error.URLError, TimeoutError) as e:  # pragma: no cover
            raise FirebaseClientError(f"Network error calling Firebase: {e}") from e
        return self._parse_json_response(body)

    def get(self, path: str) -> Any:
        return self._request("GET", path)

    def patch(self, path: str, fields: Mapping[str, Any]) -> Any:
        return self._request("PATCH", path, fields)

    def stream(
        self, path: str, stop: threading.Event
    ) -> Iterator[tuple[str, str]]:  # pragma: no cover - network-dependent
        """Yield ``(event_type, data)`` pairs from the server-sent event stream."""
        req = urllib.request.Request(  # noqa: S310
            self.url_for(path), headers={"Accept": "text/event-stream"}
        )
        try:
            resp = urllib.request.urlopen(req)  # noqa: S310 - external HTTPS
        except urllib.error.HTTPError as e:
            err_body = e.read().decode("utf-8", "ignore")
            raise FirebaseClientError(
                f"Firebase stream error ({e.code}) on {path}: {err_body}"
            ) from e
        except urllib.error.URLError as e:
            raise FirebaseClientError(f"Network error opening stream: {e}") from e

        with resp:
            yield from parse_event_stream(
                line.decode("utf-8") for line in resp if not stop.is_set()
            )


def parse_event_stream(lines: Iterator[str]) -> Iterator[tuple[str, str]]:
    """Group raw SSE lines into ``(event_type, data)`` pairs."""
    event_type = ""
    data_lines: list[str] = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            if event_type:
                yield event_type, "\n".join(data_lines)
            event_type, data_lines = "", []
        elif line.startswith("event:"):
            event_type = line[len("event:") :].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:") :].strip())
    if event_type:
        yield event_type, "\n".join(data_lines)


def _split_path(path: str) -> list[str]:
    return [part for part in path.split("/") if part]


def _set_at(target: dict[str, Any], parts: list[str], value: Any) -> None:
    node = target
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    if value is None:
        node.pop(parts[-1], None)
    else:
        node[parts[-1]] = copy.deepcopy(value)


class StreamMirror:
    """Keeps a copy of a collection and derives child-level change events."""

    def __init__(self) -> None:
        self._children: dict[str, dict[str, Any]] = {}

    @property
    def children(self) -> dict[str, dict[str, Any]]:
        return self._children

    def apply(self, event_type: str, event: StreamEvent) -> list[ChangeEvent]:
        parts = _split_path(event.path)
        if event_type == "put":
            if not parts:
                data = event.data if isinstance(event.data, dict) else {}
                return self._replace_all(data)
            return self._write(parts[0], parts[1:], event.data)
        if event_type == "patch":
            if not isinstance(event.data, dict):
                return []
            changes: list[ChangeEvent] = []
            if not parts:
                for key, value in event.data.items():
                    changes.extend(self._write(key, [], value))
                return changes
            for field_name, value in event.data.items():
                changes.extend(
                    self._write(
                        parts[0], [*parts[1:], *_split_path(field_name)], value
                    )
                )
            return _collapse(changes)
        return []

    def _replace_all(self, data: dict[str, Any]) -> list[ChangeEvent]:
        changes = [
            ChangeEvent(kind=ChangeKind.REMOVED, key=key)
            for key in list(self._children)
            if key not in data or not isinstance(data[key], dict)
        ]
        for change in changes:
            del self._children[change.key]
        for key, value in data.items():
            if isinstance(value, dict):
                changes.extend(self._write(key, [], value))
        return changes

    def _write(
        self, key: str, sub_path: list[str], value: Any
    ) -> list[ChangeEvent]:
        existing = self._children.get(key)
        if not sub_path:
            if not isinstance(value, dict):
                if existing is None:
                    return []
                del self._children[key]
                return [ChangeEvent(kind=ChangeKind.REMOVED, key=key)]
            updated = copy.deepcopy(value)
        else:
            updated = copy.deepcopy(existing) if existing is not None else {}
            _set_at(updated, sub_path, value)

        if existing == updated or (existing is None and not updated):
            return []
        self._children[key] = updated
        kind = ChangeKind.ADDED if existing is None else ChangeKind.CHANGED
        return [ChangeEvent(kind=kind, key=key, value=copy.deepcopy(updated))]


def _collapse(changes: list[ChangeEvent]) -> list[ChangeEvent]:
    """Keep only the last event per key, preserving ADDED if it came first."""
    collapsed: dict[str, ChangeEvent] = {}
    for change in changes:
        previous = collapsed.get(change.key)
        if (
            previous is not None
            and previous.kind is ChangeKind.ADDED
            and change.kind is ChangeKind.CHANGED
        ):
            change = ChangeEvent(
                kind=ChangeKind.ADDED, key=change.key, value=change.value
            )
        collapsed[change.key] = change
    return list(collapsed.values())


class FirebaseOrderSource:
    """RemoteOrderSource over one Realtime Database collection.

    The change stream is reopened whenever it drops, waiting 1s, 2s, 4s, ...
    (capped at ``max_reconnect_delay``) between attempts. The mirror survives
    reconnects, so the full ``put /`` the server resends after reopening only
    yields events for what changed while the stream was down.
    """

    def __init__(
        self,
        client: FirebaseClient,
        *,
        path: str = "online-orders",
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 60.0,
        logger: RemoteSourceLogger | None = None,
    ) -> None:
        self._client = client
        self._path = path.strip("/")
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._logger = logger or RemoteSourceLogger()

    async def snapshot(self) -> dict[str, dict[str, Any]]:
        data = await asyncio.to_thread(self._client.get, self._path)
        if not isinstance(data, dict):
            return {}
        return {key: value for key, value in data.items() if isinstance(value, dict)}

    async def update(self, key: str, fields: dict[str, Any]) -> None:
        await asyncio.to_thread(self._client.patch, f"{self._path}/{key}", fields)

    async def subscribe(self) -> Subscription:
        loop = asyncio.get_running_loop()
        stop = threading.Event()
        subscription = Subscription(on_cancel=stop.set)
        thread = threading.Thread(
            target=self._pump,
            args=(loop, subscription, stop),
            name=f"firebase-stream-{self._path}",
            daemon=True,
        )
        thread.start()
        return subscription

    def _pump(
        self,
        loop: asyncio.AbstractEventLoop,
        subscription: Subscription,
        stop: threading.Event,
    ) -> None:
        mirror = StreamMirror()
        attempt = 0
        while not stop.is_set():
            self._logger.stream_opened(self._path)
            try:
                delivered = self._drain(loop, subscription, stop, mirror)
            except (FirebaseClientError, OSError, http.client.HTTPException) as e:
                self._logger.stream_failed(self._path, e)
                delivered = False
            except RuntimeError:
                # The event loop closed under us.
                break
            if stop.is_set() or loop.is_closed():
                break
            if delivered:
                attempt = 0
            delay = min(self._reconnect_delay * 2**attempt, self._max_reconnect_delay)
            attempt += 1
            self._logger.stream_reconnecting(self._path, delay)
            stop.wait(delay)
        self._logger.stream_closed(self._path)

    def _drain(
        self,
        loop: asyncio.AbstractEventLoop,
        subscription: Subscription,
        stop: threading.Event,
        mirror: StreamMirror,
    ) -> bool:
        """Forward one stream's events until it ends; True if any arrived."""
        delivered = False
        for event_type, data in self._client.stream(self._path, stop):
            if stop.is_set():
                break
            if event_type in {"cancel", "auth_revoked"}:
                self._logger.stream_revoked(self._path, event_type)
                break
            if event_type not in {"put", "patch"}:
                continue
            try:
                event = StreamEvent.parse(json.loads(data))
            except ValueError:
                self._logger.malformed_event(event_type, data)
                continue
            delivered = True
            for change in mirror.apply(event_type, event):
                loop.call_soon_threadsafe(subscription.publish, change)
        return delivered


class FirebaseCollectionSource:
    """Cache data source reading whole collections (``products``, ...).

    A collection that does not exist upstream (``null``) raises, so a
    fallback source gets a chance to answer instead.
    """

    def __init__(self, client: FirebaseClient) -> None:
        self._client = client

    async def fetch(self, key: str) -> list[Record]:
        data = await asyncio.to_thread(self._client.get, key)
        if data is None:
            raise FirebaseClientError(f"Collection {key} does not exist upstream")
        return collection_to_records(data)


def collection_to_records(data: Any) -> list[Record]:
    """Flatten a collection into records, injecting the child key as ``id``."""
    if isinstance(data, list):
        return [dict(item) for item in data if isinstance(item, dict)]
    if not isinstance(data, dict):
        return []
    records: list[Record] = []
    for key, value in data.items():
        if isinstance(value, dict):
            records.append({"id": key, **cast(Record, value)})
    return records
