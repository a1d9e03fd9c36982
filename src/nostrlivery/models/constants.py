"""Shared constants for the models layer.

Defines the well-known event kinds, handshake message types, and association
statuses used across the codebase. Placing them here avoids circular
dependencies between the models, nips, and services layers.

See Also:
    [nostrlivery.models.association][]: Uses
        [HandshakeType][nostrlivery.models.constants.HandshakeType] to tag
        the handshake message union.
    [nostrlivery.nips.event_builders][]: Builds events of every
        [EventKind][nostrlivery.models.constants.EventKind].
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class EventKind(IntEnum):
    """Well-known Nostr event kinds used by the driver and company apps.

    Attributes:
        PROFILE: Kind 0 -- replaceable profile document (NIP-01).
        COMMAND: Kind 1 -- application command event whose content carries
            ``{eventType, params}``. Also used for association revocation.
        ASSOCIATION: Kind 20000 -- ephemeral association handshake events.
        MENU: Kind 30000 -- parameterized replaceable menu document.

    See Also:
        ``EVENT_KIND_MAX``: Maximum valid event kind value (65535).
    """

    PROFILE = 0
    COMMAND = 1
    ASSOCIATION = 20_000
    MENU = 30_000


EVENT_KIND_MAX = 65_535

EPHEMERAL_KIND_MIN = 20_000
EPHEMERAL_KIND_MAX = 29_999


def is_ephemeral(kind: int) -> bool:
    """Return True if relays are not expected to persist events of *kind*."""
    return EPHEMERAL_KIND_MIN <= kind <= EPHEMERAL_KIND_MAX


class HandshakeType(StrEnum):
    """Value of the ``type`` field of association event content.

    The first three members form the request/accept/reject handshake.
    ``DRIVER_ASSOCIATION_REMOVED`` belongs to the separate revocation
    lifecycle and is never produced by the handshake itself.
    """

    REQUEST = "DRIVER_ASSOCIATION_REQUEST"
    ACCEPTED = "DRIVER_ASSOCIATION_ACCEPTED"
    REJECTED = "DRIVER_ASSOCIATION_REJECTED"
    REMOVED = "DRIVER_ASSOCIATION_REMOVED"


class AssociationStatus(StrEnum):
    """Lifecycle state of an [EntityAssociation][nostrlivery.models.association.EntityAssociation].

    ``ACCEPTED`` and ``REJECTED`` are terminal within the handshake.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not AssociationStatus.PENDING


class Decision(StrEnum):
    """Answer given by the target of an association request."""

    ACCEPT = "accept"
    REJECT = "reject"


class SubscriptionState(StrEnum):
    """Lifecycle state of a relay subscription."""

    OPEN = "open"
    CLOSED = "closed"
