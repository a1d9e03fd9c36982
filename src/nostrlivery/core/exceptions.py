"""Nostrlivery exception hierarchy.

Provides typed exceptions for every error category so callers can tell
fatal errors (bad key material) from transient ones (relay unreachable) and
let ``CancelledError`` propagate untouched.

Exception hierarchy:

```text
NostrliveryError (base -- never raised directly)
├── ConfigurationError       -- invalid config file, env override, or flag
├── InvalidKeyEncoding       -- secret/public key cannot be decoded (fatal)
├── SigningFailure           -- signature computation failed or no key material
├── ConnectivityError        -- relay/network failures
│   └── RelayUnreachable     -- connect failed or timed out (caller may retry)
├── PublishRejected          -- relay NACK or socket not open (no auto retry)
└── QueryTimeout             -- no EOSE before the deadline (converted to empty result)
```

Note:
    Unparseable peer content is deliberately *not* an exception: it is
    returned as [UnparseableContent][nostrlivery.nips.nip01.UnparseableContent]
    so that long-lived listeners never crash on malformed input.

See Also:
    [RelayConnection][nostrlivery.utils.transport.RelayConnection]: Raises
        [RelayUnreachable][nostrlivery.core.exceptions.RelayUnreachable] and
        [PublishRejected][nostrlivery.core.exceptions.PublishRejected].
    [sign()][nostrlivery.utils.keys.sign]: Raises
        [InvalidKeyEncoding][nostrlivery.core.exceptions.InvalidKeyEncoding] and
        [SigningFailure][nostrlivery.core.exceptions.SigningFailure].
"""

from __future__ import annotations


class NostrliveryError(Exception):
    """Base exception for all nostrlivery errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(NostrliveryError):
    """Invalid or missing configuration (YAML, env vars, CLI flags)."""


# ---------------------------------------------------------------------------
# Keys and signing
# ---------------------------------------------------------------------------


class InvalidKeyEncoding(NostrliveryError):  # noqa: N818
    """A key string is neither valid bech32 (``nsec1``/``npub1``) nor 64-char hex.

    Fatal to the calling operation; retrying with the same input cannot succeed.
    The UI shows an explicit failure notice for this error.
    """


class SigningFailure(NostrliveryError):  # noqa: N818
    """Signature computation failed, or no key material was available to sign."""


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(NostrliveryError):
    """Base for all relay/network connectivity errors."""


class RelayUnreachable(ConnectivityError):  # noqa: N818
    """The relay connection could not be established.

    No automatic reconnect is performed; the caller decides whether to retry.

    Attributes:
        url: The relay URL that could not be reached.
    """

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Relay unreachable: {url} ({reason})")
        self.url = url
        self.reason = reason


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


class PublishRejected(NostrliveryError):  # noqa: N818
    """The relay refused an event, or the socket was not open.

    Attributes:
        event_id: Id of the rejected event, when known.
        reason: Relay message from the ``OK`` frame or a local reason.
    """

    def __init__(self, reason: str, event_id: str | None = None) -> None:
        prefix = f"Event {event_id[:16]}... rejected" if event_id else "Publish rejected"
        super().__init__(f"{prefix}: {reason}")
        self.event_id = event_id
        self.reason = reason


# ---------------------------------------------------------------------------
# Querying
# ---------------------------------------------------------------------------


class QueryTimeout(NostrliveryError):  # noqa: N818
    """End-of-stored-events did not arrive before the deadline.

    "No data yet" is a valid outcome on a pub/sub bus, so
    [SubscriptionManager.query()][nostrlivery.utils.subscriptions.SubscriptionManager.query]
    turns this into an empty result instead of propagating it.
    """

    def __init__(self, subscription_id: str, timeout: float) -> None:
        super().__init__(f"Subscription {subscription_id} timed out after {timeout}s")
        self.subscription_id = subscription_id
        self.timeout = timeout
