"""NIP-01 wire codec: event payloads, relay frames, and content decoding.

Outbound, this module builds unsigned event payloads and the three client
frames (``EVENT``, ``REQ``, ``CLOSE``). Inbound, it turns every text frame
received from the relay into exactly one typed frame object and never
raises: anything it cannot interpret becomes an
[UnknownFrame][nostrlivery.nips.nip01.UnknownFrame] carrying the raw text.

Event content that holds a JSON object is decoded by
[decode_content()][nostrlivery.nips.nip01.decode_content], which tolerates
the double encoding produced by clients that JSON-serialize an already
serialized payload (``"\\"{...}\\""``) by unwrapping the outer string once.

See Also:
    [RelayConnection][nostrlivery.utils.transport.RelayConnection]: Sends the
        encoded frames and feeds received text to
        [parse_inbound()][nostrlivery.nips.nip01.parse_inbound].
    [SignedEvent][nostrlivery.models.event.SignedEvent]: Payload of inbound
        ``EVENT`` frames.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from nostrlivery.models.event import SignedEvent, UnsignedEvent


if TYPE_CHECKING:
    from collections.abc import Sequence

    from nostrlivery.models.filter import Filter


logger = logging.getLogger(__name__)


# =============================================================================
# Inbound Frames
# =============================================================================


@dataclass(frozen=True, slots=True)
class EventFrame:
    """``["EVENT", <subscription_id>, <event>]``"""

    subscription_id: str
    event: SignedEvent


@dataclass(frozen=True, slots=True)
class EoseFrame:
    """``["EOSE", <subscription_id>]`` -- end of stored events."""

    subscription_id: str


@dataclass(frozen=True, slots=True)
class NoticeFrame:
    """``["NOTICE", <message>]``"""

    message: str


@dataclass(frozen=True, slots=True)
class OkFrame:
    """``["OK", <event_id>, <accepted>, <message>]`` -- publish acknowledgement."""

    event_id: str
    accepted: bool
    message: str = ""


@dataclass(frozen=True, slots=True)
class ClosedFrame:
    """``["CLOSED", <subscription_id>, <message>]`` -- relay ended a subscription."""

    subscription_id: str
    message: str = ""


@dataclass(frozen=True, slots=True)
class UnknownFrame:
    """Any frame that could not be interpreted.

    Attributes:
        raw: The frame text as received.
        reason: Short description of why parsing failed.
    """

    raw: str
    reason: str


InboundFrame = EventFrame | EoseFrame | NoticeFrame | OkFrame | ClosedFrame | UnknownFrame


def parse_inbound(frame: str | bytes) -> InboundFrame:
    """Parse one relay-to-client text frame.

    Args:
        frame: The frame as received from the socket.

    Returns:
        A typed frame. Malformed JSON, an unknown verb, wrong arity, or an
        invalid event payload yield an
        [UnknownFrame][nostrlivery.nips.nip01.UnknownFrame].
    """
    raw = frame.decode("utf-8", errors="replace") if isinstance(frame, bytes) else frame
    try:
        message = json.loads(raw)
    except ValueError as e:
        return UnknownFrame(raw=raw, reason=f"invalid json: {e}")

    if not isinstance(message, list) or not message or not isinstance(message[0], str):
        return UnknownFrame(raw=raw, reason="not a verb array")

    verb, args = message[0], message[1:]

    if verb == "EVENT":
        if len(args) != 2 or not isinstance(args[0], str) or not isinstance(args[1], dict):  # noqa: PLR2004
            return UnknownFrame(raw=raw, reason="malformed EVENT")
        try:
            event = SignedEvent.from_dict(args[1])
        except (KeyError, TypeError, ValueError) as e:
            return UnknownFrame(raw=raw, reason=f"invalid event: {e}")
        return EventFrame(subscription_id=args[0], event=event)

    if verb == "EOSE":
        if len(args) != 1 or not isinstance(args[0], str):
            return UnknownFrame(raw=raw, reason="malformed EOSE")
        return EoseFrame(subscription_id=args[0])

    if verb == "NOTICE":
        if len(args) != 1:
            return UnknownFrame(raw=raw, reason="malformed NOTICE")
        return NoticeFrame(message=str(args[0]))

    if verb == "OK":
        if len(args) < 2 or not isinstance(args[0], str) or not isinstance(args[1], bool):  # noqa: PLR2004
            return UnknownFrame(raw=raw, reason="malformed OK")
        text = args[2] if len(args) > 2 and isinstance(args[2], str) else ""  # noqa: PLR2004
        return OkFrame(event_id=args[0], accepted=args[1], message=text)

    if verb == "CLOSED":
        if not args or not isinstance(args[0], str):
            return UnknownFrame(raw=raw, reason="malformed CLOSED")
        text = args[1] if len(args) > 1 and isinstance(args[1], str) else ""
        return ClosedFrame(subscription_id=args[0], message=text)

    return UnknownFrame(raw=raw, reason=f"unknown verb {verb!r}")


# =============================================================================
# Outbound Frames
# =============================================================================


def _dumps(message: list[Any]) -> str:
    return json.dumps(message, ensure_ascii=False, separators=(",", ":"))


def encode_event(event: SignedEvent) -> str:
    """``["EVENT", <event>]``"""
    return _dumps(["EVENT", event.to_dict()])


def encode_unsigned_event(event: UnsignedEvent) -> str:
    """``["EVENT", <unsigned payload>]`` for the diagnostic unsigned fallback.

    Relays that verify signatures will refuse it; it exists so the payload is
    still visible on permissive development relays.
    """
    return _dumps(["EVENT", event.to_dict()])


def encode_req(subscription_id: str, event_filter: Filter) -> str:
    """``["REQ", <subscription_id>, <filter>]``"""
    return _dumps(["REQ", subscription_id, event_filter.to_dict()])


def encode_close(subscription_id: str) -> str:
    """``["CLOSE", <subscription_id>]``"""
    return _dumps(["CLOSE", subscription_id])


# =============================================================================
# Event Payloads
# =============================================================================


def serialize_content(content_object: Any) -> str:
    """Serialize *content_object* to event content.

    Strings are used verbatim; anything else is JSON-encoded, so a payload
    is never encoded twice by this function.
    """
    if isinstance(content_object, str):
        return content_object
    return json.dumps(content_object, ensure_ascii=False, separators=(",", ":"))


def build_unsigned(
    kind: int,
    tags: Sequence[Sequence[str]] = (),
    content_object: Any = "",
    created_at: int | None = None,
) -> UnsignedEvent:
    """Build an [UnsignedEvent][nostrlivery.models.event.UnsignedEvent].

    Args:
        kind: Event kind.
        tags: Ordered tag arrays.
        content_object: String content, or an object serialized to JSON.
        created_at: Unix seconds; defaults to the current second.
    """
    return UnsignedEvent(
        kind=int(kind),
        created_at=int(time.time()) if created_at is None else created_at,
        tags=tuple(tuple(tag) for tag in tags),
        content=serialize_content(content_object),
    )


# =============================================================================
# Content Decoding
# =============================================================================


@dataclass(frozen=True, slots=True)
class UnparseableContent:
    """Event content that is not a JSON object.

    Returned instead of raising so long-lived listeners can log and skip it.
    """

    raw: str
    reason: str


def decode_content(content: str) -> dict[str, Any] | UnparseableContent:
    """Decode event content into a JSON object.

    A content string that starts and ends with a double quote is treated as
    a JSON string holding the real payload and is unwrapped exactly once
    before the final parse.

    Returns:
        The decoded object, or
        [UnparseableContent][nostrlivery.nips.nip01.UnparseableContent]
        when the content is not a JSON object.
    """
    text = content.strip()
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):  # noqa: PLR2004
        try:
            inner = json.loads(text)
        except ValueError as e:
            return UnparseableContent(raw=content, reason=f"invalid outer string: {e}")
        if not isinstance(inner, str):
            return UnparseableContent(raw=content, reason="outer value is not a string")
        text = inner

    try:
        data = json.loads(text)
    except ValueError as e:
        return UnparseableContent(raw=content, reason=f"invalid json: {e}")

    if not isinstance(data, dict):
        return UnparseableContent(raw=content, reason=f"expected object, got {type(data).__name__}")
    return data
