"""Key management, relay transport, and subscriptions.

Attributes:
    keys: Secret key decoding (``nsec1`` bech32 or hex) and event signing
        through ``nostr_sdk``. Keys are used per call and never stored.
    transport: One persistent aiohttp WebSocket per relay with memoized
        connect, a single reader task, and ``OK``-aware publishing.
    subscriptions: Bounded queries, callback listeners, and async streams
        multiplexed over one connection.

Examples:
    ```python
    from nostrlivery.utils import RelayConnection, SubscriptionManager

    conn = RelayConnection("wss://relay.example.com")
    events = await SubscriptionManager(conn).query(Filter(kinds=[0], limit=10))
    ```
"""

from .keys import KeysConfig, derive_public_key, normalize_public_key, same_identity, sign, to_npub
from .subscriptions import Subscription, SubscriptionManager
from .transport import RelayConnection


__all__ = [
    "KeysConfig",
    "RelayConnection",
    "Subscription",
    "SubscriptionManager",
    "derive_public_key",
    "normalize_public_key",
    "same_identity",
    "sign",
    "to_npub",
]
