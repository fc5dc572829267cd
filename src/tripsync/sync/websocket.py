"""WebSocket client backend speaking the tripsync relay protocol.

Messages are JSON objects keyed by ``op``:

client -> relay
    ``{"op": "write", "id": n, "document_id": ..., "data": {...}}``
    ``{"op": "remove", "id": n, "document_id": ...}``
    ``{"op": "listen", "document_id": ...}``
    ``{"op": "unlisten", "document_id": ...}``

relay -> client
    ``{"op": "ack", "id": n}``
    ``{"op": "error", "id": n, "message": ...}``
    ``{"op": "snapshot", "document_id": ..., "data": {...} | null}``
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from tripsync.sync.backend import Detach, SnapshotCallback
from tripsync.sync.errors import BackendError

logger = logging.getLogger(__name__)

DEFAULT_ACK_TIMEOUT = 10.0


class WebSocketBackend:
    """Realtime backend over a single WebSocket connection.

    Outgoing messages go through one queue so they reach the relay in the
    order they were issued.  Use as an async context manager, or call
    :meth:`connect` / :meth:`close` explicitly.
    """

    def __init__(self, url: str, *, ack_timeout: float = DEFAULT_ACK_TIMEOUT) -> None:
        self.url = url
        self.ack_timeout = ack_timeout
        self._ws: Any = None
        self._ids = itertools.count(1)
        self._acks: dict[int, asyncio.Future] = {}
        self._listeners: dict[str, list[SnapshotCallback]] = {}
        self._outbox: asyncio.Queue[dict] | None = None
        self._tasks: list[asyncio.Task] = []

    async def __aenter__(self) -> WebSocketBackend:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        try:
            self._ws = await websockets.connect(self.url)
        except (OSError, InvalidURI, InvalidHandshake) as exc:
            raise BackendError(f"Cannot connect to {self.url}: {exc}") from exc
        self._outbox = asyncio.Queue()
        self._tasks = [
            asyncio.create_task(self._read_loop(self._ws)),
            asyncio.create_task(self._write_loop(self._ws, self._outbox)),
        ]
        logger.info("connected to %s", self.url)

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        if ws is not None:
            await ws.close()
        self._fail_pending("connection closed")

    # ------------------------------------------------------------------
    # RealtimeBackend
    # ------------------------------------------------------------------

    async def write(self, document_id: str, data: dict) -> None:
        await self._request({"op": "write", "document_id": document_id, "data": data})

    async def remove(self, document_id: str) -> None:
        await self._request({"op": "remove", "document_id": document_id})

    def listen(self, document_id: str, on_snapshot: SnapshotCallback) -> Detach:
        self._require_connected()
        listeners = self._listeners.setdefault(document_id, [])
        if not listeners:
            self._enqueue({"op": "listen", "document_id": document_id})
        listeners.append(on_snapshot)

        def detach() -> None:
            try:
                listeners.remove(on_snapshot)
            except ValueError:
                return
            if not listeners and self._ws is not None:
                self._enqueue({"op": "unlisten", "document_id": document_id})

        return detach

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _request(self, message: dict) -> None:
        self._require_connected()
        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._acks[request_id] = future
        self._enqueue({**message, "id": request_id})
        try:
            await asyncio.wait_for(future, self.ack_timeout)
        except asyncio.TimeoutError:
            raise BackendError(
                f"No acknowledgement for {message['op']} within {self.ack_timeout}s"
            ) from None
        finally:
            self._acks.pop(request_id, None)

    def _require_connected(self) -> None:
        if self._ws is None or self._outbox is None:
            raise BackendError("Not connected")

    def _enqueue(self, message: dict) -> None:
        self._require_connected()
        self._outbox.put_nowait(message)

    async def _write_loop(self, ws: Any, outbox: asyncio.Queue[dict]) -> None:
        while True:
            message = await outbox.get()
            try:
                await ws.send(json.dumps(message))
            except ConnectionClosed as exc:
                self._drop(ws, f"connection lost: {exc}")
                return

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self._handle_message(raw)
        except ConnectionClosed as exc:
            logger.warning("connection to %s lost: %s", self.url, exc)
        self._drop(ws, "connection closed")

    def _drop(self, ws: Any, reason: str) -> None:
        if self._ws is ws:
            self._ws = None
        self._fail_pending(reason)

    def _handle_message(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
            op = message["op"]
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            logger.warning("bad message from relay: %s", exc)
            return

        if op == "ack":
            future = self._acks.get(message.get("id"))
            if future is not None and not future.done():
                future.set_result(None)
        elif op == "error":
            future = self._acks.get(message.get("id"))
            if future is not None and not future.done():
                future.set_exception(BackendError(message.get("message") or "write rejected"))
        elif op == "snapshot":
            document_id = message.get("document_id")
            for callback in list(self._listeners.get(document_id, [])):
                try:
                    callback(message.get("data"))
                except Exception:
                    logger.exception("snapshot listener failed for %s", document_id)
        else:
            logger.warning("unknown relay op: %r", op)

    def _fail_pending(self, reason: str) -> None:
        for future in self._acks.values():
            if not future.done():
                future.set_exception(BackendError(reason))
