"""Relay WebSocket transport.

[RelayConnection][nostrlivery.utils.transport.RelayConnection] owns exactly
one persistent aiohttp WebSocket to one relay. The connection is established
lazily and memoized: concurrent and repeated
[connect()][nostrlivery.utils.transport.RelayConnection.connect] calls share a
single handshake until [close()][nostrlivery.utils.transport.RelayConnection.close]
tears it down.

A single reader task per connection parses every inbound text frame with
[parse_inbound()][nostrlivery.nips.nip01.parse_inbound] and hands it, in
arrival order, to the registered frame handlers. Handlers run on the event
loop one at a time, so per-subscription ordering is whatever the relay sent.

Note:
    No automatic reconnect is performed. When the relay drops the socket
    the connection tears itself down exactly as an explicit ``close()``
    would (close listeners fire, pending acknowledgements fail) and the next
    ``connect()`` performs a fresh handshake.

See Also:
    [SubscriptionManager][nostrlivery.utils.subscriptions.SubscriptionManager]:
        Registers a frame handler and a close listener on this connection.
    [nostrlivery.nips.nip01][]: Frame encoding and parsing.

Examples:
    ```python
    async with RelayConnection("wss://relay.example.com") as conn:
        await conn.publish(signed_event)
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Final, Self

import aiohttp

from nostrlivery.core.exceptions import ConnectivityError, PublishRejected, RelayUnreachable
from nostrlivery.nips.nip01 import (
    InboundFrame,
    OkFrame,
    encode_event,
    encode_unsigned_event,
    parse_inbound,
)


if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from nostrlivery.core.config import RelayConfig
    from nostrlivery.models.event import SignedEvent, UnsignedEvent


DEFAULT_TIMEOUT: Final[float] = 10.0
DEFAULT_OK_TIMEOUT: Final[float] = 5.0
_WS_CLOSE_TIMEOUT: Final[float] = 5.0
_WS_HEARTBEAT: Final[float] = 30.0

_TERMINAL_MESSAGES = frozenset(
    {aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR}
)

logger = logging.getLogger(__name__)


class RelayConnection:
    """Single persistent connection to one relay.

    Args:
        url: Relay WebSocket URL (``ws://`` or ``wss://``).
        timeout: Seconds allowed for the WebSocket handshake.
        ok_timeout: Seconds to wait for an ``OK`` frame after publishing.
            A relay that never acknowledges is treated as having accepted.

    Attributes:
        handshakes: Number of WebSocket handshakes performed so far.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,  # noqa: ASYNC109
        ok_timeout: float = DEFAULT_OK_TIMEOUT,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._ok_timeout = ok_timeout
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._connect_lock = asyncio.Lock()
        self._frame_handlers: list[Callable[[InboundFrame], None]] = []
        self._close_listeners: list[Callable[[], None]] = []
        self._pending_ok: dict[str, asyncio.Future[OkFrame]] = {}
        self.handshakes = 0

    @classmethod
    def from_config(cls, config: RelayConfig) -> Self:
        return cls(config.url, timeout=config.timeout, ok_timeout=config.ok_timeout)

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    def __repr__(self) -> str:
        state = "connected" if self.is_connected else "closed"
        return f"RelayConnection(url={self._url!r}, {state})"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> Self:
        """Open the WebSocket if it is not already open.

        Returns:
            This connection, for chaining.

        Raises:
            RelayUnreachable: If the handshake fails or times out.
        """
        if self.is_connected:
            return self

        async with self._connect_lock:
            if self.is_connected:
                return self

            logger.debug("relay_connecting url=%s", self._url)
            session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self._timeout))
            try:
                ws = await asyncio.wait_for(
                    session.ws_connect(self._url, heartbeat=_WS_HEARTBEAT),
                    timeout=self._timeout,
                )
            except asyncio.CancelledError:
                await session.close()
                raise
            except (aiohttp.ClientError, OSError, TimeoutError) as e:
                await session.close()
                reason = str(e) or type(e).__name__
                logger.debug("relay_connect_failed url=%s error=%s", self._url, reason)
                raise RelayUnreachable(self._url, reason) from e

            self._session = session
            self._ws = ws
            self.handshakes += 1
            self._reader = asyncio.create_task(self._read_loop(ws), name=f"relay-reader:{self._url}")
            logger.info("relay_connected url=%s", self._url)

        return self

    async def close(self) -> None:
        """Close the socket and forget it. Calling ``close()`` again is a no-op.

        Close listeners fire before any I/O so every subscription is marked
        closed by the time this coroutine first yields.
        """
        ws, session, reader = self._ws, self._session, self._reader
        if ws is None and session is None:
            return
        self._ws = None
        self._session = None
        self._reader = None

        self._fail_pending_acks("connection closed")
        for listener in list(self._close_listeners):
            try:
                listener()
            except Exception:  # Intentionally broad: one listener must not block teardown
                logger.exception("close_listener_failed url=%s", self._url)

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

        # aiohttp can raise ClientError, ServerDisconnectedError, etc. during close;
        # broad suppression is intentional for teardown.
        if ws is not None:
            with contextlib.suppress(Exception):
                await asyncio.wait_for(ws.close(), timeout=_WS_CLOSE_TIMEOUT)
        if session is not None:
            with contextlib.suppress(Exception):
                await asyncio.wait_for(session.close(), timeout=_WS_CLOSE_TIMEOUT)

        logger.info("relay_closed url=%s", self._url)

    async def __aenter__(self) -> Self:
        return await self.connect()

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def add_frame_handler(self, handler: Callable[[InboundFrame], None]) -> Callable[[], None]:
        """Register *handler* for every inbound frame. Returns a function that unregisters it."""
        self._frame_handlers.append(handler)

        def remove() -> None:
            with contextlib.suppress(ValueError):
                self._frame_handlers.remove(handler)

        return remove

    def add_close_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register *listener* to run on every teardown. Returns a function that unregisters it."""
        self._close_listeners.append(listener)

        def remove() -> None:
            with contextlib.suppress(ValueError):
                self._close_listeners.remove(listener)

        return remove

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    async def send(self, frame: str) -> None:
        """Send one text frame.

        Raises:
            ConnectivityError: If the socket is not open or the write fails.
        """
        ws = self._ws
        if ws is None:
            raise ConnectivityError(f"Not connected: {self._url}")
        try:
            await ws.send_str(frame)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise ConnectivityError(f"Send failed on {self._url}: {e}") from e

    async def publish(self, event: SignedEvent) -> None:
        """Publish a signed event and wait for the relay's acknowledgement.

        Raises:
            PublishRejected: If the socket is not open, the write fails, the
                connection closes before the acknowledgement, or the relay
                answers ``["OK", id, false, reason]``.
        """
        if not self.is_connected:
            raise PublishRejected("socket not open", event.id)

        ack: asyncio.Future[OkFrame] = asyncio.get_running_loop().create_future()
        self._pending_ok[event.id] = ack
        try:
            try:
                await self.send(encode_event(event))
            except ConnectivityError as e:
                raise PublishRejected(str(e), event.id) from e

            try:
                ok = await asyncio.wait_for(ack, timeout=self._ok_timeout)
            except TimeoutError:
                logger.debug("publish_unacknowledged url=%s event=%s", self._url, event.id)
                return
        finally:
            self._pending_ok.pop(event.id, None)

        if not ok.accepted:
            logger.warning(
                "publish_rejected url=%s event=%s reason=%s", self._url, event.id, ok.message
            )
            raise PublishRejected(ok.message or "rejected by relay", event.id)
        logger.debug("publish_accepted url=%s event=%s kind=%s", self._url, event.id, event.kind)

    async def publish_unsigned(self, event: UnsignedEvent) -> None:
        """Send an unsigned payload without waiting for an acknowledgement.

        Raises:
            PublishRejected: If the socket is not open or the write fails.
        """
        try:
            await self.send(encode_unsigned_event(event))
        except ConnectivityError as e:
            raise PublishRejected(str(e)) from e
        logger.debug("publish_unsigned url=%s kind=%s", self._url, event.kind)

    # -------------------------------------------------------------------------
    # Receiving
    # -------------------------------------------------------------------------

    def _fail_pending_acks(self, reason: str) -> None:
        for event_id, ack in list(self._pending_ok.items()):
            if not ack.done():
                ack.set_exception(PublishRejected(reason, event_id))
        self._pending_ok.clear()

    def _dispatch(self, frame: InboundFrame) -> None:
        if isinstance(frame, OkFrame):
            ack = self._pending_ok.get(frame.event_id)
            if ack is not None and not ack.done():
                ack.set_result(frame)
        for handler in list(self._frame_handlers):
            try:
                handler(frame)
            except Exception:  # Intentionally broad: a failing handler must not kill the reader
                logger.exception("frame_handler_failed url=%s", self._url)

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            while True:
                msg = await ws.receive()
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    self._dispatch(parse_inbound(msg.data))
                elif msg.type in _TERMINAL_MESSAGES:
                    break
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            logger.warning("relay_read_failed url=%s error=%s", self._url, e)

        logger.info("relay_disconnected url=%s", self._url)
        if self._ws is ws:
            await self.close()
