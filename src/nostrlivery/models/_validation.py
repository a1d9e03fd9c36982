"""Shared validation helpers for frozen dataclass models.

Private module, not part of the public API. Used exclusively by
``__post_init__`` methods in sibling model modules to enforce runtime
type constraints and null-byte safety.
"""

from __future__ import annotations

import re
from typing import Any

from .constants import EVENT_KIND_MAX


_HEX64 = re.compile(r"^[0-9a-f]{64}$")
_HEX128 = re.compile(r"^[0-9a-f]{128}$")


def validate_timestamp(value: Any, name: str) -> None:
    """Raise if *value* is not a non-negative ``int`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


def validate_kind(value: Any, name: str = "kind") -> None:
    """Raise if *value* is not an event kind in ``0..65535``."""
    validate_timestamp(value, name)
    if value > EVENT_KIND_MAX:
        raise ValueError(f"{name} must be <= {EVENT_KIND_MAX}, got {value}")


def validate_str_no_null(value: Any, name: str) -> None:
    """Raise if *value* is not a ``str`` or contains null bytes."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if "\x00" in value:
        raise ValueError(f"{name} contains null bytes")


def validate_str_not_empty(value: Any, name: str) -> None:
    """Raise if *value* is not a non-empty ``str`` without null bytes."""
    validate_str_no_null(value, name)
    if not value:
        raise ValueError(f"{name} must not be empty")


def validate_hex64(value: Any, name: str) -> None:
    """Raise if *value* is not 64 lowercase hex characters (ids, pubkeys)."""
    validate_str_no_null(value, name)
    if not _HEX64.match(value):
        raise ValueError(f"{name} must be 64 lowercase hex characters")


def validate_signature(value: Any, name: str = "sig") -> None:
    """Raise if *value* is not a 128-char lowercase hex Schnorr signature."""
    validate_str_no_null(value, name)
    if not _HEX128.match(value):
        raise ValueError(f"{name} must be 128 lowercase hex characters")


def freeze_tags(tags: Any, name: str = "tags") -> tuple[tuple[str, ...], ...]:
    """Validate a sequence of string sequences and return it as nested tuples."""
    if isinstance(tags, (str, bytes)):
        raise TypeError(f"{name} must be a sequence of sequences, got {type(tags).__name__}")
    frozen: list[tuple[str, ...]] = []
    for tag in tags:
        if isinstance(tag, (str, bytes)):
            raise TypeError(f"{name} entries must be sequences of str")
        values = tuple(tag)
        for value in values:
            validate_str_no_null(value, f"{name} value")
        frozen.append(values)
    return tuple(frozen)
