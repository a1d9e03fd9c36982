"""Tests for nostrlivery.models._validation shared helpers."""

from __future__ import annotations

import pytest

from nostrlivery.models._validation import (
    freeze_tags,
    validate_hex64,
    validate_kind,
    validate_signature,
    validate_str_no_null,
    validate_str_not_empty,
    validate_timestamp,
)


class TestValidateTimestamp:
    def test_zero_passes(self) -> None:
        validate_timestamp(0, "ts")

    def test_bool_rejected(self) -> None:
        with pytest.raises(TypeError, match="ts must be an int, got bool"):
            validate_timestamp(False, "ts")

    def test_float_rejected(self) -> None:
        with pytest.raises(TypeError):
            validate_timestamp(1.5, "ts")

    def test_negative_rejected(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            validate_timestamp(-1, "ts")


class TestValidateKind:
    def test_max_passes(self) -> None:
        validate_kind(65_535)

    def test_above_max(self) -> None:
        with pytest.raises(ValueError, match="65535"):
            validate_kind(65_536)


class TestValidateStrings:
    def test_null_byte(self) -> None:
        with pytest.raises(ValueError, match="null bytes"):
            validate_str_no_null("a\x00", "field")

    def test_non_string(self) -> None:
        with pytest.raises(TypeError, match="field must be a str, got int"):
            validate_str_no_null(1, "field")

    def test_empty_allowed_by_no_null(self) -> None:
        validate_str_no_null("", "field")

    def test_empty_rejected_by_not_empty(self) -> None:
        with pytest.raises(ValueError, match="must not be empty"):
            validate_str_not_empty("", "field")


class TestValidateHex:
    def test_hex64(self) -> None:
        validate_hex64("0123456789abcdef" * 4, "id")

    def test_hex64_uppercase_rejected(self) -> None:
        with pytest.raises(ValueError, match="lowercase hex"):
            validate_hex64("A" * 64, "id")

    def test_signature_length(self) -> None:
        validate_signature("f" * 128)
        with pytest.raises(ValueError):
            validate_signature("f" * 64)


class TestFreezeTags:
    def test_nested_lists_become_tuples(self) -> None:
        assert freeze_tags([["e", "x"], ["p"]]) == (("e", "x"), ("p",))

    def test_string_rejected(self) -> None:
        with pytest.raises(TypeError):
            freeze_tags("e")

    def test_string_entry_rejected(self) -> None:
        with pytest.raises(TypeError):
            freeze_tags(["e", "x"])

    def test_non_string_value_rejected(self) -> None:
        with pytest.raises(TypeError):
            freeze_tags([["e", 1]])
