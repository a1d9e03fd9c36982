"""Unsigned event drafts for every event this package publishes.

Each builder returns an [UnsignedEvent][nostrlivery.models.event.UnsignedEvent]
ready for [sign()][nostrlivery.utils.keys.sign]. Builders are pure: they never
touch keys or the network.

See Also:
    [build_unsigned()][nostrlivery.nips.nip01.build_unsigned]: Shared payload
        constructor used by every builder here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Final

from nostrlivery.models.association import (
    AssociationAcceptedMessage,
    AssociationRejectedMessage,
    AssociationRequestMessage,
)
from nostrlivery.models.constants import Decision, EventKind

from .nip01 import build_unsigned


if TYPE_CHECKING:
    from collections.abc import Iterable

    from nostrlivery.models.event import SignedEvent, UnsignedEvent
    from nostrlivery.models.profile import MenuItem, Profile


MENU_IDENTIFIER: Final[str] = "menu"
REVOCATION_TAG: Final[tuple[str, str]] = ("type", "DRIVER_ASSOCIATION")
PUBLISH_EVENT_COMMAND: Final[str] = "PUBLISH_EVENT"


def build_association_request(
    driver_npub: str, kind: int = EventKind.ASSOCIATION, created_at: int | None = None
) -> UnsignedEvent:
    """Request sent by a company to the holder of *driver_npub*."""
    message = AssociationRequestMessage(driver_npub=driver_npub)
    return build_unsigned(kind, (), message.to_content(), created_at)


def build_association_response(
    decision: Decision,
    *,
    driver_npub: str,
    company_pubkey: str,
    original_request_id: str,
    kind: int = EventKind.ASSOCIATION,
    created_at: int | None = None,
) -> UnsignedEvent:
    """Accept or reject a request, echoing its id as ``originalRequestId``."""
    message: AssociationAcceptedMessage | AssociationRejectedMessage
    if Decision(decision) is Decision.ACCEPT:
        message = AssociationAcceptedMessage(
            driver_npub=driver_npub,
            company_pubkey=company_pubkey,
            original_request_id=original_request_id,
        )
    else:
        message = AssociationRejectedMessage(
            driver_npub=driver_npub,
            company_pubkey=company_pubkey,
            original_request_id=original_request_id,
        )
    return build_unsigned(kind, (), message.to_content(), created_at)


def build_association_removal(
    company_npub: str, recipient_pubkey: str | None = None, created_at: int | None = None
) -> UnsignedEvent:
    """Regular kind 1 revocation of an established association.

    *recipient_pubkey* (hex) adds a ``["p", ...]`` tag so the counterparty can
    subscribe with a ``#p`` filter instead of reading every kind 1 note.
    """
    tags: list[tuple[str, ...]] = [REVOCATION_TAG]
    if recipient_pubkey:
        tags.append(("p", recipient_pubkey))
    return build_unsigned(
        EventKind.COMMAND,
        tags,
        {"companyNpub": company_npub, "removed": True},
        created_at,
    )


def build_profile(profile: Profile, created_at: int | None = None) -> UnsignedEvent:
    return build_unsigned(EventKind.PROFILE, (), profile.to_content(), created_at)


def build_menu(items: Iterable[MenuItem], created_at: int | None = None) -> UnsignedEvent:
    """Addressable kind 30000 menu document, one per author (``["d", "menu"]``)."""
    return build_unsigned(
        EventKind.MENU,
        [("d", MENU_IDENTIFIER)],
        [item.to_content() for item in items],
        created_at,
    )


def build_command_event(
    event_type: str, params: dict[str, Any], created_at: int | None = None
) -> UnsignedEvent:
    """Application command: kind 1 with content ``{"eventType": ..., "params": ...}``."""
    return build_unsigned(
        EventKind.COMMAND, (), {"eventType": event_type, "params": params}, created_at
    )


def build_publish_command(event: SignedEvent, created_at: int | None = None) -> UnsignedEvent:
    """Wrap an already signed event in a ``PUBLISH_EVENT`` command."""
    return build_command_event(PUBLISH_EVENT_COMMAND, {"event": event.to_dict()}, created_at)
