"""Profile and menu documents.

Profiles (kind 0) and menus (kind 30000, ``["d", "menu"]``) are replaceable:
the newest event per author wins. Fetches therefore query with a small limit
and keep the event with the highest ``created_at``.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from nostrlivery.core.logger import Logger
from nostrlivery.models.constants import EventKind
from nostrlivery.models.filter import Filter
from nostrlivery.models.profile import MenuItem, Profile
from nostrlivery.nips.event_builders import MENU_IDENTIFIER, build_menu, build_profile
from nostrlivery.nips.nip01 import UnparseableContent, decode_content
from nostrlivery.utils.keys import normalize_public_key, sign


if TYPE_CHECKING:
    from collections.abc import Iterable

    from nostrlivery.models.event import SignedEvent
    from nostrlivery.utils.subscriptions import SubscriptionManager


def _newest(events: list[SignedEvent]) -> SignedEvent | None:
    return max(events, key=lambda e: e.created_at, default=None)


class Directory:
    """Fetch and publish profile and menu documents through one relay."""

    SERVICE_NAME = "directory"

    def __init__(self, subscriptions: SubscriptionManager, *, timeout: float | None = None) -> None:  # noqa: ASYNC109
        self._subscriptions = subscriptions
        self._connection = subscriptions.connection
        self._timeout = timeout
        self._logger = Logger(self.SERVICE_NAME)

    async def fetch_profile(self, identity: str) -> Profile:
        """Return the newest profile of *identity*, or the placeholder if none is found.

        Raises:
            InvalidKeyEncoding: If *identity* is not a valid public key.
            RelayUnreachable: If the relay cannot be reached.
        """
        pubkey = normalize_public_key(identity)
        events = await self._subscriptions.query(
            Filter(kinds=[EventKind.PROFILE], authors=[pubkey], limit=1), self._timeout
        )
        event = _newest(events)
        if event is None:
            self._logger.debug("profile_not_found", pubkey=pubkey)
            return Profile.placeholder()

        data = decode_content(event.content)
        if isinstance(data, UnparseableContent):
            self._logger.warning("profile_unparseable", pubkey=pubkey, reason=data.reason)
            return Profile.placeholder()
        return Profile.from_content(data)

    async def publish_profile(self, signer_key: str, profile: Profile) -> SignedEvent:
        event = sign(signer_key, build_profile(profile))
        await self._connection.connect()
        await self._connection.publish(event)
        self._logger.info("profile_published", event_id=event.id)
        return event

    async def fetch_menu(self, identity: str) -> list[MenuItem]:
        """Return the newest menu of *identity*; empty if none is published.

        Malformed entries are skipped.

        Raises:
            InvalidKeyEncoding: If *identity* is not a valid public key.
            RelayUnreachable: If the relay cannot be reached.
        """
        pubkey = normalize_public_key(identity)
        events = await self._subscriptions.query(
            Filter(kinds=[EventKind.MENU], authors=[pubkey], tags={"d": [MENU_IDENTIFIER]}, limit=1),
            self._timeout,
        )
        event = _newest(events)
        if event is None:
            return []

        # Menu content is a JSON array; decode_content only accepts objects.
        items: list[MenuItem] = []
        for entry in _menu_entries(event.content):
            try:
                items.append(MenuItem.from_content(entry))
            except (TypeError, ValueError) as e:
                self._logger.debug("menu_item_skipped", pubkey=pubkey, error=str(e))
        return items

    async def publish_menu(self, signer_key: str, items: Iterable[MenuItem]) -> SignedEvent:
        menu = list(items)
        event = sign(signer_key, build_menu(menu))
        await self._connection.connect()
        await self._connection.publish(event)
        self._logger.info("menu_published", event_id=event.id, items=len(menu))
        return event


def _menu_entries(content: str) -> list[dict[str, Any]]:
    try:
        data = json.loads(content)
    except ValueError:
        return []
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            return []
    if not isinstance(data, list):
        return []
    return [entry for entry in data if isinstance(entry, dict)]
