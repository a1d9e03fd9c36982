"""Nostr protocol layer.

Attributes:
    nip01: Wire codec for event payloads and relay frames, plus tolerant
        decoding of JSON event content.
    event_builders: Unsigned drafts for handshake, revocation, profile,
        menu, and command events.

See Also:
    [nostrlivery.utils.transport][]: Sends what this layer encodes.
"""

from .event_builders import (
    build_association_removal,
    build_association_request,
    build_association_response,
    build_command_event,
    build_menu,
    build_profile,
    build_publish_command,
)
from .nip01 import (
    ClosedFrame,
    EoseFrame,
    EventFrame,
    InboundFrame,
    NoticeFrame,
    OkFrame,
    UnknownFrame,
    UnparseableContent,
    build_unsigned,
    decode_content,
    parse_inbound,
)


__all__ = [
    "ClosedFrame",
    "EoseFrame",
    "EventFrame",
    "InboundFrame",
    "NoticeFrame",
    "OkFrame",
    "UnknownFrame",
    "UnparseableContent",
    "build_association_removal",
    "build_association_request",
    "build_association_response",
    "build_command_event",
    "build_menu",
    "build_profile",
    "build_publish_command",
    "build_unsigned",
    "decode_content",
    "parse_inbound",
]
