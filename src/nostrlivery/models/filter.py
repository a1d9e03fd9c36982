"""
Subscription filter model.

A [Filter][nostrlivery.models.filter.Filter] selects which events a relay
subscription receives. It serializes to the NIP-01 filter object sent in
``["REQ", <id>, <filter>]`` frames and can evaluate itself locally against a
[SignedEvent][nostrlivery.models.event.SignedEvent].

Note:
    Authors are kept exactly as given; the models layer has no key
    decoding.
    [SubscriptionManager][nostrlivery.utils.subscriptions.SubscriptionManager]
    rewrites ``npub1...`` authors as hex before sending the filter.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ._validation import validate_kind, validate_str_not_empty, validate_timestamp


if TYPE_CHECKING:
    from collections.abc import Iterable

    from .event import SignedEvent


@dataclass(frozen=True, slots=True, init=False)
class Filter:
    """Immutable relay query predicate.

    Attributes:
        kinds: Event kinds to match (empty means any kind).
        authors: Author public keys to match, or ``None`` for any author.
        limit: Maximum number of stored events the relay should return.
        since: Only events with ``created_at >= since``.
        until: Only events with ``created_at <= until``.
        tags: Single-letter tag filters, e.g. ``{"d": ("menu",)}``.

    Examples:
        ```python
        Filter(kinds=[0], authors=["ab" * 32], limit=1).to_dict()
        # {'kinds': [0], 'authors': ['abab...'], 'limit': 1}
        ```
    """

    kinds: frozenset[int]
    authors: frozenset[str] | None
    limit: int | None
    since: int | None
    until: int | None
    tags: tuple[tuple[str, tuple[str, ...]], ...]

    def __init__(
        self,
        kinds: Iterable[int] = (),
        authors: Iterable[str] | None = None,
        limit: int | None = None,
        since: int | None = None,
        until: int | None = None,
        tags: dict[str, Iterable[str]] | None = None,
    ) -> None:
        kind_set = frozenset(kinds)
        for kind in kind_set:
            validate_kind(kind)
        author_set = None
        if authors is not None:
            author_set = frozenset(authors)
            for author in author_set:
                validate_str_not_empty(author, "author")
        for name, value in (("limit", limit), ("since", since), ("until", until)):
            if value is not None:
                validate_timestamp(value, name)
        tag_items: list[tuple[str, tuple[str, ...]]] = []
        for name, values in sorted((tags or {}).items()):
            if len(name) != 1:
                raise ValueError(f"tag filter names must be a single letter, got {name!r}")
            tag_items.append((name, tuple(values)))

        object.__setattr__(self, "kinds", kind_set)
        object.__setattr__(self, "authors", author_set)
        object.__setattr__(self, "limit", limit)
        object.__setattr__(self, "since", since)
        object.__setattr__(self, "until", until)
        object.__setattr__(self, "tags", tuple(tag_items))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the NIP-01 filter object (sorted for stable output)."""
        data: dict[str, Any] = {}
        if self.kinds:
            data["kinds"] = sorted(self.kinds)
        if self.authors is not None:
            data["authors"] = sorted(self.authors)
        for name, values in self.tags:
            data[f"#{name}"] = list(values)
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        return data

    def matches(self, event: SignedEvent) -> bool:
        """Return True if *event* satisfies every constraint except ``limit``."""
        if self.kinds and event.kind not in self.kinds:
            return False
        if self.authors is not None and event.pubkey not in self.authors:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        for name, values in self.tags:
            if not set(values).intersection(event.tag_values(name)):
                return False
        return True
