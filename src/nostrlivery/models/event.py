"""
Immutable Nostr event payloads: unsigned drafts and signed events.

[UnsignedEvent][nostrlivery.models.event.UnsignedEvent] is what callers build
(kind, timestamp, tags, content). [SignedEvent][nostrlivery.models.event.SignedEvent]
adds the computed ``id``, the author ``pubkey`` and the Schnorr ``sig``. Signed
events are only ever produced by
[sign()][nostrlivery.utils.keys.sign] or parsed from relay frames; this module
never computes hashes or signatures itself.

See Also:
    [nostrlivery.nips.nip01][]: Builds unsigned events and parses signed ones
        from inbound wire frames.
    [nostrlivery.utils.keys][]: The signer that turns an
        [UnsignedEvent][nostrlivery.models.event.UnsignedEvent] into a
        [SignedEvent][nostrlivery.models.event.SignedEvent].
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from ._validation import (
    freeze_tags,
    validate_hex64,
    validate_kind,
    validate_signature,
    validate_str_no_null,
    validate_timestamp,
)


@dataclass(frozen=True, slots=True)
class UnsignedEvent:
    """Event draft before signing.

    Tags are stored as nested tuples so the instance stays hashable and
    immutable; ``content`` is an opaque string once built.

    Attributes:
        kind: Integer event kind (0..65535).
        created_at: Unix timestamp in seconds.
        tags: Ordered sequence of ordered string sequences.
        content: Event content (JSON text for structured payloads).

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If ``kind`` is out of range, ``created_at`` is negative,
            or content/tags contain null bytes.
    """

    kind: int
    created_at: int
    tags: tuple[tuple[str, ...], ...] = ()
    content: str = ""

    def __post_init__(self) -> None:
        validate_kind(self.kind)
        validate_timestamp(self.created_at, "created_at")
        validate_str_no_null(self.content, "content")
        object.__setattr__(self, "tags", freeze_tags(self.tags))

    def tags_as_lists(self) -> list[list[str]]:
        """Return tags as mutable lists, the shape used on the wire."""
        return [list(tag) for tag in self.tags]

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag named *name*."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "created_at": self.created_at,
            "tags": self.tags_as_lists(),
            "content": self.content,
        }


@dataclass(frozen=True, slots=True)
class SignedEvent:
    """Author-authenticated, tamper-evident Nostr event.

    ``id`` and ``sig`` are never supplied by application code: they come
    from the signer or from a relay frame. Equality and hashing use ``id``
    only, so sets of events deduplicate naturally.

    Attributes:
        id: SHA-256 of the NIP-01 serialization, 64 hex chars.
        pubkey: Author public key, 64 hex chars.
        created_at: Unix timestamp in seconds.
        kind: Integer event kind.
        tags: Ordered sequence of ordered string sequences.
        content: Event content.
        sig: Schnorr signature over ``id``, 128 hex chars.

    Examples:
        ```python
        event = SignedEvent.from_json(raw)
        event.to_json() == SignedEvent.from_json(event.to_json()).to_json()
        ```
    """

    id: str
    pubkey: str = field(compare=False)
    created_at: int = field(compare=False)
    kind: int = field(compare=False)
    tags: tuple[tuple[str, ...], ...] = field(compare=False)
    content: str = field(compare=False)
    sig: str = field(compare=False)

    def __post_init__(self) -> None:
        validate_hex64(self.id, "id")
        validate_hex64(self.pubkey, "pubkey")
        validate_kind(self.kind)
        validate_timestamp(self.created_at, "created_at")
        validate_str_no_null(self.content, "content")
        validate_signature(self.sig)
        object.__setattr__(self, "tags", freeze_tags(self.tags))

    @property
    def unsigned(self) -> UnsignedEvent:
        """The unsigned fields of this event."""
        return UnsignedEvent(
            kind=self.kind, created_at=self.created_at, tags=self.tags, content=self.content
        )

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag named *name*."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignedEvent:
        """Build a [SignedEvent][nostrlivery.models.event.SignedEvent] from a wire object.

        Raises:
            KeyError: If a required field is missing.
            TypeError: If a field has the wrong type.
            ValueError: If a field fails validation.
        """
        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            created_at=data["created_at"],
            kind=data["kind"],
            tags=data.get("tags", []),
            content=data.get("content", ""),
            sig=data["sig"],
        )

    @classmethod
    def from_json(cls, raw: str) -> SignedEvent:
        return cls.from_dict(json.loads(raw))
