"""Development relay for the WebSocket backend protocol.

Keeps the latest snapshot of each document in memory and broadcasts every
committed write to the document's listeners.  No persistence, no auth.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from tripsync.core.config import DEFAULT_RELAY_HOST, DEFAULT_RELAY_PORT

logger = logging.getLogger(__name__)


class SyncRelay:
    """WebSocket server that stores snapshots and fans out notifications."""

    def __init__(self, host: str = DEFAULT_RELAY_HOST, port: int = DEFAULT_RELAY_PORT) -> None:
        self.host = host
        self.port = port
        self.documents: dict[str, dict] = {}
        self._listeners: dict[str, set[Any]] = {}
        self._server: Any = None

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    async def start(self) -> None:
        """Start listening.  With ``port=0`` the bound port is read back."""
        self._server = await websockets.serve(self._handle_client, self.host, self.port)
        if self.port == 0:
            self.port = self._server.sockets[0].getsockname()[1]
        logger.info("relay listening on %s", self.url)

    async def run_forever(self) -> None:
        await self.start()
        await asyncio.Future()  # block forever

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def _handle_client(self, websocket: Any, path: Any = None) -> None:  # noqa: ARG002
        try:
            async for raw in websocket:
                await self._handle_message(websocket, raw)
        except ConnectionClosed:
            pass
        finally:
            for listeners in self._listeners.values():
                listeners.discard(websocket)

    async def _handle_message(self, websocket: Any, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
            op = message["op"]
            document_id = message["document_id"]
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            logger.warning("relay: bad message: %s", exc)
            return

        if op == "listen":
            self._listeners.setdefault(document_id, set()).add(websocket)
            current = self.documents.get(document_id)
            if current is not None:
                await websocket.send(_snapshot(document_id, current))
        elif op == "unlisten":
            self._listeners.get(document_id, set()).discard(websocket)
        elif op == "write":
            data = message.get("data")
            if not isinstance(data, dict):
                error = {"op": "error", "id": message.get("id"), "message": "data must be a dict"}
                await websocket.send(json.dumps(error))
                return
            self.documents[document_id] = data
            await websocket.send(json.dumps({"op": "ack", "id": message.get("id")}))
            await self._broadcast(document_id, data)
        elif op == "remove":
            self.documents.pop(document_id, None)
            await websocket.send(json.dumps({"op": "ack", "id": message.get("id")}))
            await self._broadcast(document_id, None)
        else:
            logger.warning("relay: unknown op %r", op)

    async def _broadcast(self, document_id: str, data: dict | None) -> None:
        listeners = list(self._listeners.get(document_id, ()))
        if listeners:
            payload = _snapshot(document_id, data)
            await asyncio.gather(
                *(c.send(payload) for c in listeners),
                return_exceptions=True,
            )


def _snapshot(document_id: str, data: dict | None) -> str:
    return json.dumps({"op": "snapshot", "document_id": document_id, "data": data})
