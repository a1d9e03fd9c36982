"""Subscription lifecycle over a [RelayConnection][nostrlivery.utils.transport.RelayConnection].

Three ways to consume a filter:

* [query()][nostrlivery.utils.subscriptions.SubscriptionManager.query]:
  bounded; collects stored events until ``EOSE`` and closes itself.
* [listen()][nostrlivery.utils.subscriptions.SubscriptionManager.listen]:
  long-lived; invokes a callback per event and returns a cancel function.
* [stream()][nostrlivery.utils.subscriptions.SubscriptionManager.stream]:
  long-lived; the returned
  [Subscription][nostrlivery.utils.subscriptions.Subscription] is an async
  iterator of events.

Every subscription owns a reentrant lock. Event delivery checks the
subscription state under that lock and cancellation flips it under the same
lock, so once ``cancel()`` returns no callback for that subscription runs,
whichever task or thread called it.

Note:
    A query that does not see ``EOSE`` within its timeout discards whatever
    it collected and returns an empty list. The timeout is logged as a
    warning.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import secrets
import threading
from typing import TYPE_CHECKING, Any, Final, Self

from nostrlivery.core.exceptions import ConnectivityError, InvalidKeyEncoding, QueryTimeout, RelayUnreachable
from nostrlivery.models.constants import SubscriptionState
from nostrlivery.models.filter import Filter
from nostrlivery.nips.nip01 import (
    ClosedFrame,
    EoseFrame,
    EventFrame,
    InboundFrame,
    NoticeFrame,
    UnknownFrame,
    encode_close,
    encode_req,
)
from nostrlivery.utils.keys import normalize_public_key


if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from nostrlivery.models.event import SignedEvent
    from nostrlivery.utils.transport import RelayConnection


DEFAULT_QUERY_TIMEOUT: Final[float] = 10.0
DEFAULT_PREFIX: Final[str] = "sub"

_END: Final[Any] = object()

logger = logging.getLogger(__name__)


class Subscription:
    """One active ``REQ`` on the relay.

    Created by [SubscriptionManager][nostrlivery.utils.subscriptions.SubscriptionManager];
    not meant to be instantiated directly. Callback subscriptions deliver to
    ``on_event``; the others buffer events for async iteration.

    Attributes:
        id: Subscription id sent in the ``REQ`` frame.
        filter: The filter this subscription was opened with.
    """

    def __init__(
        self,
        manager: SubscriptionManager,
        subscription_id: str,
        event_filter: Filter,
        on_event: Callable[[SignedEvent], None] | None = None,
        on_end_of_stored: Callable[[], None] | None = None,
    ) -> None:
        self.id = subscription_id
        self.filter = event_filter
        self._manager = manager
        self._on_event = on_event
        self._on_end_of_stored = on_end_of_stored
        self._state = SubscriptionState.OPEN
        self._lock = threading.RLock()
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[Any] | None = asyncio.Queue() if on_event is None else None
        self._eose_received = False
        self._settled = asyncio.Event()

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is SubscriptionState.OPEN

    @property
    def eose_received(self) -> bool:
        return self._eose_received

    def __repr__(self) -> str:
        return f"Subscription(id={self.id!r}, state={self._state.value})"

    def cancel(self) -> None:
        """Close this subscription. Idempotent and safe from any thread."""
        self._manager._cancel(self)

    async def wait_for_eose(self, timeout: float | None = None) -> bool:  # noqa: ASYNC109
        """Wait until the relay signals the end of stored events.

        Returns:
            True if ``EOSE`` arrived, False if the subscription closed first.

        Raises:
            QueryTimeout: If neither happens within *timeout* seconds.
        """
        try:
            await asyncio.wait_for(self._settled.wait(), timeout=timeout)
        except TimeoutError:
            raise QueryTimeout(self.id, timeout or 0.0) from None
        return self._eose_received

    # -------------------------------------------------------------------------
    # Async iteration
    # -------------------------------------------------------------------------

    def __aiter__(self) -> Self:
        if self._queue is None:
            raise TypeError("callback subscriptions cannot be iterated")
        return self

    async def __anext__(self) -> SignedEvent:
        if self._queue is None:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            # Keep the sentinel so later iterations also stop.
            self._queue.put_nowait(_END)
            raise StopAsyncIteration
        event: SignedEvent = item
        return event

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        self.cancel()

    # -------------------------------------------------------------------------
    # Frame delivery (event loop only)
    # -------------------------------------------------------------------------

    def _deliver(self, event: SignedEvent) -> None:
        with self._lock:
            if self._state is not SubscriptionState.OPEN:
                return
            if self._on_event is not None:
                self._on_event(event)
            elif self._queue is not None:
                self._queue.put_nowait(event)

    def _end_of_stored(self) -> None:
        with self._lock:
            if self._state is not SubscriptionState.OPEN or self._eose_received:
                return
            self._eose_received = True
            self._settled.set()
            if self._on_end_of_stored is not None:
                self._on_end_of_stored()

    def _close(self) -> bool:
        """Mark closed. Returns False if it already was."""
        with self._lock:
            if self._state is SubscriptionState.CLOSED:
                return False
            self._state = SubscriptionState.CLOSED
        _call_in_loop(self._loop, self._wake)
        return True

    def _wake(self) -> None:
        self._settled.set()
        if self._queue is not None:
            self._queue.put_nowait(_END)


def _call_in_loop(loop: asyncio.AbstractEventLoop, callback: Callable[[], None]) -> None:
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if running is loop:
        callback()
    elif not loop.is_closed():
        loop.call_soon_threadsafe(callback)


def _hex_author(author: str) -> str:
    try:
        return normalize_public_key(author)
    except InvalidKeyEncoding:
        logger.debug("author_not_decodable author=%.80s", author)
        return author


def _with_hex_authors(event_filter: Filter) -> Filter:
    """Return *event_filter* with ``npub1...`` authors rewritten as hex."""
    if event_filter.authors is None:
        return event_filter
    return Filter(
        kinds=event_filter.kinds,
        authors=[_hex_author(author) for author in event_filter.authors],
        limit=event_filter.limit,
        since=event_filter.since,
        until=event_filter.until,
        tags=dict(event_filter.tags),
    )


class SubscriptionManager:
    """Opens, routes, and closes subscriptions on one relay connection.

    Args:
        connection: The relay connection; connected on first use.
        prefix: Leading part of every subscription id.
        default_timeout: Timeout used by
            [query()][nostrlivery.utils.subscriptions.SubscriptionManager.query]
            when none is given.

    Examples:
        ```python
        manager = SubscriptionManager(conn, prefix="company")
        events = await manager.query(Filter(kinds=[20000], limit=50), timeout=10)

        cancel = await manager.listen(Filter(kinds=[20000]), print)
        ...
        cancel()
        ```
    """

    def __init__(
        self,
        connection: RelayConnection,
        prefix: str = DEFAULT_PREFIX,
        *,
        default_timeout: float = DEFAULT_QUERY_TIMEOUT,
    ) -> None:
        self._connection = connection
        self._prefix = prefix
        self._default_timeout = default_timeout
        self._counter = itertools.count(1)
        self._table: dict[str, Subscription] = {}
        self._table_lock = threading.Lock()
        self._background: set[asyncio.Task[None]] = set()
        connection.add_frame_handler(self._on_frame)
        connection.add_close_listener(self._on_connection_closed)

    @property
    def connection(self) -> RelayConnection:
        return self._connection

    @property
    def active(self) -> list[Subscription]:
        with self._table_lock:
            return list(self._table.values())

    def _next_id(self) -> str:
        return f"{self._prefix}-{next(self._counter)}-{secrets.token_hex(4)}"

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def query(self, event_filter: Filter, timeout: float | None = None) -> list[SignedEvent]:  # noqa: ASYNC109
        """Fetch stored events matching *event_filter*.

        Returns:
            Events in relay order, deduplicated by id. Empty if the relay does
            not send ``EOSE`` within *timeout* or closes the subscription first.

        Raises:
            RelayUnreachable: If the connection cannot be established.
        """
        timeout = self._default_timeout if timeout is None else timeout
        collected: dict[str, SignedEvent] = {}

        def collect(event: SignedEvent) -> None:
            collected.setdefault(event.id, event)

        sub = await self._open(event_filter, on_event=collect)
        try:
            completed = await sub.wait_for_eose(timeout)
        except QueryTimeout as e:
            logger.warning(
                "query_timeout sub=%s timeout=%s discarded=%s", e.subscription_id, e.timeout, len(collected)
            )
            return []
        finally:
            sub.cancel()

        if not completed:
            logger.warning("query_closed_before_eose sub=%s discarded=%s", sub.id, len(collected))
            return []
        logger.debug("query_completed sub=%s events=%s", sub.id, len(collected))
        return list(collected.values())

    async def listen(
        self,
        event_filter: Filter,
        on_event: Callable[[SignedEvent], None],
        on_end_of_stored: Callable[[], None] | None = None,
    ) -> Callable[[], None]:
        """Subscribe until cancelled.

        Returns:
            An idempotent cancel function, callable from any task or thread.

        Raises:
            RelayUnreachable: If the connection cannot be established.
        """
        sub = await self._open(event_filter, on_event=on_event, on_end_of_stored=on_end_of_stored)
        return sub.cancel

    async def stream(self, event_filter: Filter) -> Subscription:
        """Subscribe and return the subscription as an async iterator of events.

        Raises:
            RelayUnreachable: If the connection cannot be established.
        """
        return await self._open(event_filter)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _open(
        self,
        event_filter: Filter,
        on_event: Callable[[SignedEvent], None] | None = None,
        on_end_of_stored: Callable[[], None] | None = None,
    ) -> Subscription:
        await self._connection.connect()

        event_filter = _with_hex_authors(event_filter)
        sub = Subscription(self, self._next_id(), event_filter, on_event, on_end_of_stored)
        with self._table_lock:
            self._table[sub.id] = sub

        try:
            await self._connection.send(encode_req(sub.id, event_filter))
        except ConnectivityError as e:
            with self._table_lock:
                self._table.pop(sub.id, None)
            sub._close()
            raise RelayUnreachable(self._connection.url, str(e)) from e

        logger.debug("subscription_opened sub=%s filter=%s", sub.id, event_filter.to_dict())
        return sub

    def _cancel(self, sub: Subscription) -> None:
        with self._table_lock:
            self._table.pop(sub.id, None)
        if not sub._close():
            return
        logger.debug("subscription_cancelled sub=%s", sub.id)
        _call_in_loop(sub._loop, lambda: self._schedule_close_frame(sub.id))

    def _schedule_close_frame(self, subscription_id: str) -> None:
        if not self._connection.is_connected:
            return
        task = asyncio.create_task(self._send_close_frame(subscription_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_close_frame(self, subscription_id: str) -> None:
        try:
            await self._connection.send(encode_close(subscription_id))
        except ConnectivityError as e:
            logger.debug("close_frame_failed sub=%s error=%s", subscription_id, e)

    def _lookup(self, subscription_id: str) -> Subscription | None:
        with self._table_lock:
            return self._table.get(subscription_id)

    def _on_frame(self, frame: InboundFrame) -> None:
        if isinstance(frame, EventFrame):
            sub = self._lookup(frame.subscription_id)
            if sub is None:
                return
            if sub.filter.matches(frame.event):
                sub._deliver(frame.event)
            else:
                logger.debug("event_filter_mismatch sub=%s id=%s", sub.id, frame.event.id)
        elif isinstance(frame, EoseFrame):
            sub = self._lookup(frame.subscription_id)
            if sub is not None:
                sub._end_of_stored()
        elif isinstance(frame, ClosedFrame):
            with self._table_lock:
                sub = self._table.pop(frame.subscription_id, None)
            if sub is not None and sub._close():
                logger.info("subscription_closed_by_relay sub=%s message=%s", sub.id, frame.message)
        elif isinstance(frame, NoticeFrame):
            logger.warning("relay_notice url=%s message=%s", self._connection.url, frame.message)
        elif isinstance(frame, UnknownFrame):
            logger.debug("unknown_frame reason=%s raw=%.200s", frame.reason, frame.raw)

    def _on_connection_closed(self) -> None:
        with self._table_lock:
            subs = list(self._table.values())
            self._table.clear()
        for sub in subs:
            sub._close()
        if subs:
            logger.debug("subscriptions_torn_down count=%s", len(subs))
