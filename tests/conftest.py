"""
Pytest configuration and shared fixtures for Nostrlivery tests.

Provides:
- Test secret keys (two parties) and an event factory
- FakeRelay: an in-memory relay speaking NIP-01 (EVENT/REQ/CLOSE in,
  EVENT/EOSE/OK/NOTICE/CLOSED out) behind a patched ``aiohttp.ClientSession``
- Connection and subscription manager fixtures wired to the fake relay
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable, Iterator
from typing import Any, NamedTuple
from unittest.mock import patch

import aiohttp
import pytest

from nostrlivery.models.event import SignedEvent
from nostrlivery.nips.nip01 import build_unsigned
from nostrlivery.utils.keys import derive_public_key, sign
from nostrlivery.utils.subscriptions import SubscriptionManager
from nostrlivery.utils.transport import RelayConnection


# ============================================================================
# Test Keys (DO NOT USE IN PRODUCTION)
# ============================================================================

VALID_HEX_KEY = (
    "67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa"  # pragma: allowlist secret
)
VALID_NSEC_KEY = (
    "nsec1vl029mgpspedva04g90vltkh6fvh240zqtv9k0t9af8935ke9laqsnlfe5"  # pragma: allowlist secret
)
COMPANY_KEY = "11" * 32  # pragma: allowlist secret
DRIVER_KEY = "22" * 32  # pragma: allowlist secret

RELAY_URL = "ws://relay.test:7000"


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Key and Event Fixtures
# ============================================================================


@pytest.fixture
def company_key() -> str:
    return COMPANY_KEY


@pytest.fixture
def driver_key() -> str:
    return DRIVER_KEY


@pytest.fixture
def company_pubkey() -> str:
    return derive_public_key(COMPANY_KEY)


@pytest.fixture
def driver_pubkey() -> str:
    return derive_public_key(DRIVER_KEY)


@pytest.fixture
def make_event() -> Callable[..., SignedEvent]:
    """Factory that signs an event with the given key."""

    def factory(
        secret: str = COMPANY_KEY,
        kind: int = 1,
        content: Any = "",
        tags: list[list[str]] | None = None,
        created_at: int | None = None,
    ) -> SignedEvent:
        return sign(secret, build_unsigned(kind, tags or [], content, created_at))

    return factory


# ============================================================================
# Fake Relay
# ============================================================================


class FakeMessage(NamedTuple):
    type: aiohttp.WSMsgType
    data: Any


def _filter_matches(flt: dict[str, Any], event: dict[str, Any]) -> bool:
    if "kinds" in flt and event.get("kind") not in flt["kinds"]:
        return False
    if "authors" in flt and event.get("pubkey") not in flt["authors"]:
        return False
    if "since" in flt and event.get("created_at", 0) < flt["since"]:
        return False
    if "until" in flt and event.get("created_at", 0) > flt["until"]:
        return False
    for key, values in flt.items():
        if key.startswith("#"):
            name = key[1:]
            tag_values = {t[1] for t in event.get("tags", []) if len(t) > 1 and t[0] == name}
            if not tag_values.intersection(values):
                return False
    return True


class FakeWebSocket:
    """Client side of one socket to the fake relay."""

    def __init__(self, relay: FakeRelay) -> None:
        self.relay = relay
        self.closed = False
        self.sent: list[list[Any]] = []
        self._inbox: asyncio.Queue[FakeMessage] = asyncio.Queue()

    def push(self, message: list[Any] | str) -> None:
        text = message if isinstance(message, str) else json.dumps(message)
        self._inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.TEXT, text))

    def disconnect(self) -> None:
        self._inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.CLOSED, None))

    async def receive(self) -> FakeMessage:
        return await self._inbox.get()

    async def send_str(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("socket closed")
        message = json.loads(data)
        self.sent.append(message)
        self.relay.handle(self, message)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.relay.sockets.remove(self)
            for key in [k for k in self.relay.subscriptions if k[0] == id(self)]:
                del self.relay.subscriptions[key]
            self.disconnect()


class FakeSession:
    def __init__(self, relay: FakeRelay) -> None:
        self.relay = relay
        self.closed = False

    async def ws_connect(self, url: str, **_: Any) -> FakeWebSocket:
        self.relay.connect_attempts += 1
        if self.relay.unreachable:
            raise aiohttp.ClientConnectionError(f"Cannot connect to host {url}")
        ws = FakeWebSocket(self.relay)
        self.relay.sockets.append(ws)
        return ws

    async def close(self) -> None:
        self.closed = True


class FakeRelay:
    """In-memory NIP-01 relay.

    Attributes:
        stored: Accepted events, oldest first.
        unsigned: Payloads received without an id or signature.
        requests: Every (subscription id, filter) pair received in a REQ.
        closed_subscriptions: Ids of subscriptions the client closed.
        reject_reason: When set, every signed EVENT is answered with OK false.
        acknowledge: When False, no OK is sent.
        send_eose: When False, REQ never receives EOSE.
        unreachable: When True, ``ws_connect`` fails.
        on_event: Optional hook called with each accepted event dict.
    """

    def __init__(self) -> None:
        self.stored: list[dict[str, Any]] = []
        self.unsigned: list[dict[str, Any]] = []
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.closed_subscriptions: list[str] = []
        self.sockets: list[FakeWebSocket] = []
        self.subscriptions: dict[tuple[int, str], tuple[FakeWebSocket, dict[str, Any]]] = {}
        self.reject_reason: str | None = None
        self.acknowledge = True
        self.send_eose = True
        self.unreachable = False
        self.connect_attempts = 0
        self.on_event: Callable[[dict[str, Any]], None] | None = None

    def add(self, event: SignedEvent) -> None:
        """Store *event* as if it had been published earlier."""
        self.stored.append(event.to_dict())

    def handle(self, ws: FakeWebSocket, message: list[Any]) -> None:
        verb = message[0]
        if verb == "EVENT":
            self._on_event(ws, message[1])
        elif verb == "REQ":
            self._on_req(ws, message[1], message[2] if len(message) > 2 else {})
        elif verb == "CLOSE":
            self.subscriptions.pop((id(ws), message[1]), None)
            self.closed_subscriptions.append(message[1])

    def _on_event(self, ws: FakeWebSocket, event: dict[str, Any]) -> None:
        if "id" not in event or "sig" not in event:
            self.unsigned.append(event)
            return
        if self.reject_reason is not None:
            ws.push(["OK", event["id"], False, self.reject_reason])
            return
        self.stored.append(event)
        if self.acknowledge:
            ws.push(["OK", event["id"], True, ""])
        for (_, sub_id), (target, flt) in list(self.subscriptions.items()):
            if _filter_matches(flt, event):
                target.push(["EVENT", sub_id, event])
        if self.on_event is not None:
            self.on_event(event)

    def _on_req(self, ws: FakeWebSocket, sub_id: str, flt: dict[str, Any]) -> None:
        self.requests.append((sub_id, flt))
        self.subscriptions[(id(ws), sub_id)] = (ws, flt)
        matching = [e for e in self.stored if _filter_matches(flt, e)]
        matching.sort(key=lambda e: e["created_at"], reverse=True)
        if "limit" in flt:
            matching = matching[: flt["limit"]]
        for event in matching:
            ws.push(["EVENT", sub_id, event])
        if self.send_eose:
            ws.push(["EOSE", sub_id])

    def active_subscription_ids(self) -> list[str]:
        return [sub_id for (_, sub_id) in self.subscriptions]

    def broadcast(self, message: list[Any] | str) -> None:
        for ws in list(self.sockets):
            ws.push(message)

    def drop_connections(self) -> None:
        """Simulate the relay closing every socket."""
        for ws in list(self.sockets):
            ws.disconnect()


@pytest.fixture
def relay() -> Iterator[FakeRelay]:
    """A fake relay; every ``aiohttp.ClientSession`` created during the test talks to it."""
    fake = FakeRelay()
    with patch("aiohttp.ClientSession", side_effect=lambda *args, **kwargs: FakeSession(fake)):
        yield fake


@pytest.fixture
async def connection(relay: FakeRelay) -> AsyncIterator[RelayConnection]:
    conn = RelayConnection(RELAY_URL, timeout=1.0, ok_timeout=0.5)
    yield conn
    await conn.close()


@pytest.fixture
def subscriptions(connection: RelayConnection) -> SubscriptionManager:
    return SubscriptionManager(connection, prefix="test", default_timeout=1.0)


@pytest.fixture
def settle() -> Callable[[], Any]:
    """Coroutine function that lets the reader task drain queued frames."""

    async def wait() -> None:
        for _ in range(5):
            await asyncio.sleep(0.01)

    return wait
