"""Pure frozen dataclasses with zero I/O for events, filters, and association state.

The models layer is the foundation of the package. It has **no dependencies**
on any other nostrlivery package -- only the Python standard library. Every
model uses ``@dataclass(frozen=True, slots=True)`` and validates in
``__post_init__`` so invalid instances never escape the constructor.

Attributes:
    UnsignedEvent: Event draft (kind, created_at, tags, content).
    SignedEvent: Event with computed id, author pubkey, and signature.
    Filter: Relay subscription predicate (kinds, authors, limit, tags).
    AssociationRequest: Inbound association request awaiting a decision.
    EntityAssociation: Relationship with a counterparty and its status.
    HandshakeMessage: Closed union of the association message variants.
    Profile: Kind 0 profile document.
    MenuItem: Menu entry with a stable identifier.
"""

from .association import (
    AssociationAcceptedMessage,
    AssociationRejectedMessage,
    AssociationRemovedMessage,
    AssociationRequest,
    AssociationRequestMessage,
    EntityAssociation,
    HandshakeMessage,
    UnknownMessage,
    parse_handshake_message,
)
from .constants import (
    EVENT_KIND_MAX,
    AssociationStatus,
    Decision,
    EventKind,
    HandshakeType,
    SubscriptionState,
    is_ephemeral,
)
from .event import SignedEvent, UnsignedEvent
from .filter import Filter
from .profile import MenuItem, Profile, group_by_category


__all__ = [
    "EVENT_KIND_MAX",
    "AssociationAcceptedMessage",
    "AssociationRejectedMessage",
    "AssociationRemovedMessage",
    "AssociationRequest",
    "AssociationRequestMessage",
    "AssociationStatus",
    "Decision",
    "EntityAssociation",
    "EventKind",
    "Filter",
    "HandshakeMessage",
    "HandshakeType",
    "MenuItem",
    "Profile",
    "SignedEvent",
    "SubscriptionState",
    "UnknownMessage",
    "UnsignedEvent",
    "group_by_category",
    "is_ephemeral",
    "parse_handshake_message",
]
