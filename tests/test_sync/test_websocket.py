"""WebSocketBackend against a live SyncRelay on an ephemeral port."""

from __future__ import annotations

import asyncio

import pytest

from tests.conftest import make_plan
from tripsync.sync.errors import BackendError
from tripsync.sync.gateway import SyncGateway
from tripsync.sync.relay import SyncRelay
from tripsync.sync.websocket import WebSocketBackend


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestRelayRoundTrip:
    def test_write_is_acked_and_stored(self) -> None:
        async def scenario() -> dict:
            relay = SyncRelay("127.0.0.1", 0)
            await relay.start()
            try:
                async with WebSocketBackend(relay.url) as backend:
                    await backend.write("plan_1", {"id": "plan_1", "title": "a"})
                return relay.documents
            finally:
                await relay.stop()

        assert asyncio.run(scenario()) == {"plan_1": {"id": "plan_1", "title": "a"}}

    def test_echo_suppressed_and_foreign_change_delivered(self) -> None:
        async def scenario() -> tuple[list, list]:
            relay = SyncRelay("127.0.0.1", 0)
            await relay.start()
            alice_seen: list = []
            bob_seen: list = []
            try:
                async with WebSocketBackend(relay.url) as a, WebSocketBackend(relay.url) as b:
                    alice = SyncGateway(a, actor_id="alice")
                    bob = SyncGateway(b, actor_id="bob")
                    alice.subscribe("plan_1", alice_seen.append)
                    bob.subscribe("plan_1", bob_seen.append)
                    await asyncio.sleep(0.05)

                    await alice.push(make_plan(title="from alice"), "document_update")
                    await _wait_for(lambda: len(bob_seen) == 1)
                    await bob.push(make_plan(title="from bob"), "document_update")
                    await _wait_for(lambda: len(alice_seen) == 1)
                    await asyncio.sleep(0.05)
                    alice.close()
                    bob.close()
            finally:
                await relay.stop()
            return alice_seen, bob_seen

        alice_seen, bob_seen = asyncio.run(scenario())
        assert [p.title for p in alice_seen] == ["from bob"]
        assert [p.title for p in bob_seen] == ["from alice"]

    def test_late_listener_gets_current_snapshot(self) -> None:
        async def scenario() -> list:
            relay = SyncRelay("127.0.0.1", 0)
            await relay.start()
            seen: list = []
            try:
                async with WebSocketBackend(relay.url) as backend:
                    await backend.write("plan_1", {"id": "plan_1"})
                    backend.listen("plan_1", seen.append)
                    await _wait_for(lambda: len(seen) == 1)
            finally:
                await relay.stop()
            return seen

        assert asyncio.run(scenario()) == [{"id": "plan_1"}]

    def test_remove_broadcasts_none(self) -> None:
        async def scenario() -> list:
            relay = SyncRelay("127.0.0.1", 0)
            await relay.start()
            seen: list = []
            try:
                async with WebSocketBackend(relay.url) as backend:
                    backend.listen("plan_1", seen.append)
                    await asyncio.sleep(0.05)
                    await backend.write("plan_1", {"id": "plan_1"})
                    await backend.remove("plan_1")
                    await _wait_for(lambda: len(seen) == 2)
            finally:
                await relay.stop()
            return seen

        assert asyncio.run(scenario()) == [{"id": "plan_1"}, None]


class TestConnectionErrors:
    def test_connect_refused(self) -> None:
        async def scenario() -> None:
            relay = SyncRelay("127.0.0.1", 0)
            await relay.start()
            url = relay.url
            await relay.stop()
            await WebSocketBackend(url).connect()

        with pytest.raises(BackendError, match="Cannot connect"):
            asyncio.run(scenario())

    def test_write_before_connect(self) -> None:
        with pytest.raises(BackendError, match="Not connected"):
            asyncio.run(WebSocketBackend("ws://127.0.0.1:1").write("plan_1", {}))

    def test_dropped_connection_fails_writes_at_once(self) -> None:
        async def scenario() -> None:
            relay = SyncRelay("127.0.0.1", 0)
            await relay.start()
            backend = WebSocketBackend(relay.url, ack_timeout=30.0)
            await backend.connect()
            try:
                await relay.stop()
                await _wait_for(lambda: not backend.connected)
                await asyncio.wait_for(backend.write("plan_1", {}), 1.0)
            finally:
                await backend.close()

        with pytest.raises(BackendError, match="Not connected"):
            asyncio.run(scenario())

    def test_listen_after_drop_raises(self) -> None:
        async def scenario() -> None:
            relay = SyncRelay("127.0.0.1", 0)
            await relay.start()
            async with WebSocketBackend(relay.url) as backend:
                await relay.stop()
                await _wait_for(lambda: not backend.connected)
                backend.listen("plan_1", lambda snapshot: None)

        with pytest.raises(BackendError, match="Not connected"):
            asyncio.run(scenario())
