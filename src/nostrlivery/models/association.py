"""
Association handshake models.

Holds the closed tagged union of handshake messages carried in kind 20000
event content, plus the bookkeeping records each side keeps:
[AssociationRequest][nostrlivery.models.association.AssociationRequest]
(a request waiting for the target's decision) and
[EntityAssociation][nostrlivery.models.association.EntityAssociation]
(the relationship with a counterparty).

Wire content of a handshake message:

```json
{"type": "DRIVER_ASSOCIATION_ACCEPTED",
 "driverNpub": "npub1...",
 "companyPubkey": "ab12...",
 "originalRequestId": "cd34..."}
```

See Also:
    [nostrlivery.services.association][]: The state machine that consumes
        and produces these models.
    [parse_handshake_message()][nostrlivery.models.association.parse_handshake_message]:
        Maps decoded content onto the union.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from typing import Any

from ._validation import validate_str_no_null, validate_str_not_empty, validate_timestamp
from .constants import AssociationStatus, HandshakeType


# =============================================================================
# Handshake Messages
# =============================================================================


@dataclass(frozen=True, slots=True)
class AssociationRequestMessage:
    """A requester asks the holder of ``driver_npub`` to associate."""

    driver_npub: str
    type: HandshakeType = HandshakeType.REQUEST

    def to_content(self) -> dict[str, Any]:
        return {"type": self.type.value, "driverNpub": self.driver_npub}


@dataclass(frozen=True, slots=True)
class AssociationAcceptedMessage:
    """The target accepted the request ``original_request_id``."""

    driver_npub: str
    company_pubkey: str
    original_request_id: str
    type: HandshakeType = HandshakeType.ACCEPTED

    def to_content(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "companyPubkey": self.company_pubkey,
            "driverNpub": self.driver_npub,
            "originalRequestId": self.original_request_id,
        }


@dataclass(frozen=True, slots=True)
class AssociationRejectedMessage:
    """The target rejected the request ``original_request_id``."""

    driver_npub: str
    company_pubkey: str
    original_request_id: str
    type: HandshakeType = HandshakeType.REJECTED

    def to_content(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "companyPubkey": self.company_pubkey,
            "driverNpub": self.driver_npub,
            "originalRequestId": self.original_request_id,
        }


@dataclass(frozen=True, slots=True)
class AssociationRemovedMessage:
    """An established association was revoked by one of the parties."""

    driver_npub: str
    company_pubkey: str
    type: HandshakeType = HandshakeType.REMOVED

    def to_content(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "companyPubkey": self.company_pubkey,
            "driverNpub": self.driver_npub,
        }


@dataclass(frozen=True, slots=True)
class UnknownMessage:
    """Content that is not one of the known handshake messages.

    Attributes:
        raw: The original content string.
        type: The declared ``type`` field, if any.
    """

    raw: str
    type: str | None = None


HandshakeMessage = (
    AssociationRequestMessage
    | AssociationAcceptedMessage
    | AssociationRejectedMessage
    | AssociationRemovedMessage
    | UnknownMessage
)


def _field(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) and value else None


def parse_handshake_message(data: dict[str, Any], raw: str | None = None) -> HandshakeMessage:
    """Map decoded event content onto the handshake message union.

    Missing required fields or an unrecognized ``type`` produce an
    [UnknownMessage][nostrlivery.models.association.UnknownMessage]; this
    function never raises on peer-supplied data.

    Args:
        data: Decoded JSON object from the event content.
        raw: Original content string, kept on unknown messages.
    """
    if raw is None:
        raw = json.dumps(data)
    declared = data.get("type")
    declared_type = declared if isinstance(declared, str) else None

    driver = _field(data, "driverNpub")
    company = _field(data, "companyPubkey")
    original = _field(data, "originalRequestId")

    if declared_type == HandshakeType.REQUEST and driver:
        return AssociationRequestMessage(driver_npub=driver)
    if declared_type == HandshakeType.ACCEPTED and driver and original:
        return AssociationAcceptedMessage(
            driver_npub=driver, company_pubkey=company or "", original_request_id=original
        )
    if declared_type == HandshakeType.REJECTED and driver and original:
        return AssociationRejectedMessage(
            driver_npub=driver, company_pubkey=company or "", original_request_id=original
        )
    if declared_type == HandshakeType.REMOVED and driver and company:
        return AssociationRemovedMessage(driver_npub=driver, company_pubkey=company)
    return UnknownMessage(raw=raw, type=declared_type)


# =============================================================================
# Bookkeeping Records
# =============================================================================


@dataclass(frozen=True, slots=True)
class AssociationRequest:
    """An inbound association request awaiting the target's decision.

    Attributes:
        request_id: Id of the signed request event (the correlation id).
        from_pubkey: Public key of the requester (event author).
        driver_npub: Identity the request is addressed to.
        received_at: ``created_at`` of the request event.
    """

    request_id: str
    from_pubkey: str
    driver_npub: str
    received_at: int

    def __post_init__(self) -> None:
        validate_str_not_empty(self.request_id, "request_id")
        validate_str_not_empty(self.from_pubkey, "from_pubkey")
        validate_str_no_null(self.driver_npub, "driver_npub")
        validate_timestamp(self.received_at, "received_at")


@dataclass(frozen=True, slots=True)
class EntityAssociation:
    """A relationship with a counterparty (a company for drivers, a driver for companies).

    Instances are immutable; a status change yields a new instance via
    [with_status()][nostrlivery.models.association.EntityAssociation.with_status],
    which refuses to leave a terminal state.
    """

    entity_npub: str
    entity_name: str
    status: AssociationStatus = AssociationStatus.PENDING

    def __post_init__(self) -> None:
        validate_str_not_empty(self.entity_npub, "entity_npub")
        validate_str_no_null(self.entity_name, "entity_name")
        object.__setattr__(self, "status", AssociationStatus(self.status))

    def with_status(self, status: AssociationStatus) -> EntityAssociation:
        """Return a copy in *status*.

        Raises:
            ValueError: If this association is already in a terminal state.
        """
        if self.status.is_terminal and status is not self.status:
            raise ValueError(
                f"association with {self.entity_npub} is already {self.status.value}"
            )
        return replace(self, status=status)
