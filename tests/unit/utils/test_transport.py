"""
Unit tests for utils.transport module.

Tests:
- RelayConnection.connect() memoization and failure mapping
- publish() acknowledgement handling (accepted, rejected, silent, closed)
- publish_unsigned()
- close() idempotence and teardown on relay disconnect
- Frame handler dispatch
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from nostrlivery.core.config import RelayConfig
from nostrlivery.core.exceptions import ConnectivityError, PublishRejected, RelayUnreachable
from nostrlivery.nips.nip01 import NoticeFrame, OkFrame, UnknownFrame, build_unsigned
from nostrlivery.utils.transport import RelayConnection


# =============================================================================
# connect() Tests
# =============================================================================


class TestConnect:
    async def test_connect_twice_single_handshake(self, relay, connection):
        await connection.connect()
        await connection.connect()
        assert relay.connect_attempts == 1
        assert connection.handshakes == 1
        assert connection.is_connected

    async def test_concurrent_connects_share_handshake(self, relay, connection):
        await asyncio.gather(*(connection.connect() for _ in range(5)))
        assert relay.connect_attempts == 1

    async def test_connect_returns_self(self, relay, connection):
        assert await connection.connect() is connection

    async def test_unreachable(self, relay, connection):
        relay.unreachable = True
        with pytest.raises(RelayUnreachable) as exc_info:
            await connection.connect()
        assert exc_info.value.url == connection.url
        assert not connection.is_connected

    async def test_retry_after_failure(self, relay, connection):
        relay.unreachable = True
        with pytest.raises(RelayUnreachable):
            await connection.connect()
        relay.unreachable = False
        await connection.connect()
        assert connection.is_connected
        assert relay.connect_attempts == 2

    async def test_session_closed_on_failure(self):
        session = MagicMock()
        session.ws_connect = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        session.close = AsyncMock()
        with patch("aiohttp.ClientSession", return_value=session):
            conn = RelayConnection("ws://relay.test:7000", timeout=1.0)
            with pytest.raises(RelayUnreachable, match="refused"):
                await conn.connect()
        session.close.assert_awaited_once()

    async def test_handshake_timeout(self):
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        session = MagicMock()
        session.ws_connect = hang
        session.close = AsyncMock()
        with patch("aiohttp.ClientSession", return_value=session):
            conn = RelayConnection("ws://relay.test:7000", timeout=0.05)
            with pytest.raises(RelayUnreachable, match="TimeoutError"):
                await conn.connect()

    async def test_from_config(self):
        conn = RelayConnection.from_config(RelayConfig(url="wss://relay.example.com", timeout=3, ok_timeout=1))
        assert conn.url == "wss://relay.example.com"
        assert not conn.is_connected
        assert "closed" in repr(conn)


# =============================================================================
# publish() Tests
# =============================================================================


class TestPublish:
    async def test_accepted(self, relay, connection, make_event):
        event = make_event(content="hello")
        await connection.connect()
        await connection.publish(event)
        assert relay.stored == [event.to_dict()]

    async def test_rejected(self, relay, connection, make_event):
        relay.reject_reason = "blocked: not allowed"
        event = make_event()
        await connection.connect()
        with pytest.raises(PublishRejected) as exc_info:
            await connection.publish(event)
        assert exc_info.value.reason == "blocked: not allowed"
        assert exc_info.value.event_id == event.id

    async def test_silence_counts_as_accepted(self, relay, connection, make_event):
        relay.acknowledge = False
        await connection.connect()
        await connection.publish(make_event())
        assert len(relay.stored) == 1

    async def test_not_connected(self, relay, connection, make_event):
        with pytest.raises(PublishRejected, match="socket not open"):
            await connection.publish(make_event())
        assert relay.connect_attempts == 0

    async def test_close_fails_pending_ack(self, relay, make_event):
        relay.acknowledge = False
        conn = RelayConnection("ws://relay.test:7000", ok_timeout=5.0)
        await conn.connect()
        task = asyncio.create_task(conn.publish(make_event()))
        await asyncio.sleep(0.01)
        await conn.close()
        with pytest.raises(PublishRejected, match="connection closed"):
            await task

    async def test_publish_unsigned(self, relay, connection):
        await connection.connect()
        unsigned = build_unsigned(20000, [], {"type": "X"}, created_at=1)
        await connection.publish_unsigned(unsigned)
        assert relay.unsigned == [unsigned.to_dict()]

    async def test_publish_unsigned_not_connected(self, relay, connection):
        with pytest.raises(PublishRejected):
            await connection.publish_unsigned(build_unsigned(1, created_at=1))


# =============================================================================
# Lifecycle Tests
# =============================================================================


class TestLifecycle:
    async def test_close_is_idempotent(self, relay, connection):
        listener = MagicMock()
        connection.add_close_listener(listener)
        await connection.connect()
        await connection.close()
        await connection.close()
        listener.assert_called_once_with()
        assert not connection.is_connected

    async def test_close_without_connect(self, relay, connection):
        await connection.close()
        assert not connection.is_connected

    async def test_relay_disconnect_tears_down(self, relay, connection, settle):
        listener = MagicMock()
        connection.add_close_listener(listener)
        await connection.connect()
        relay.drop_connections()
        await settle()
        assert not connection.is_connected
        listener.assert_called_once_with()

    async def test_reconnect_after_disconnect(self, relay, connection, settle):
        await connection.connect()
        relay.drop_connections()
        await settle()
        await connection.connect()
        assert connection.handshakes == 2

    async def test_context_manager(self, relay):
        async with RelayConnection("ws://relay.test:7000") as conn:
            assert conn.is_connected
        assert not conn.is_connected

    async def test_remove_close_listener(self, relay, connection):
        listener = MagicMock()
        remove = connection.add_close_listener(listener)
        remove()
        remove()
        await connection.connect()
        await connection.close()
        listener.assert_not_called()

    async def test_failing_listener_does_not_block_teardown(self, relay, connection):
        second = MagicMock()
        connection.add_close_listener(MagicMock(side_effect=RuntimeError("boom")))
        connection.add_close_listener(second)
        await connection.connect()
        await connection.close()
        second.assert_called_once_with()

    async def test_send_when_closed(self, relay, connection):
        with pytest.raises(ConnectivityError, match="Not connected"):
            await connection.send('["CLOSE","x"]')


# =============================================================================
# Dispatch Tests
# =============================================================================


class TestDispatch:
    async def test_frames_delivered_in_order(self, relay, connection, settle):
        frames = []
        connection.add_frame_handler(frames.append)
        await connection.connect()
        relay.broadcast(["NOTICE", "first"])
        relay.broadcast("garbage")
        relay.broadcast(["NOTICE", "second"])
        await settle()
        assert frames[0] == NoticeFrame(message="first")
        assert isinstance(frames[1], UnknownFrame)
        assert frames[2] == NoticeFrame(message="second")

    async def test_handler_error_does_not_stop_reader(self, relay, connection, settle):
        seen = []
        connection.add_frame_handler(MagicMock(side_effect=ValueError("bad handler")))
        connection.add_frame_handler(seen.append)
        await connection.connect()
        relay.broadcast(["NOTICE", "a"])
        relay.broadcast(["NOTICE", "b"])
        await settle()
        assert len(seen) == 2
        assert connection.is_connected

    async def test_ok_frames_reach_handlers(self, relay, connection, make_event, settle):
        frames = []
        connection.add_frame_handler(frames.append)
        await connection.connect()
        event = make_event()
        await connection.publish(event)
        await settle()
        assert OkFrame(event_id=event.id, accepted=True, message="") in frames

    async def test_removed_handler_not_called(self, relay, connection, settle):
        handler = MagicMock()
        remove = connection.add_frame_handler(handler)
        remove()
        await connection.connect()
        relay.broadcast(["NOTICE", "x"])
        await settle()
        handler.assert_not_called()
