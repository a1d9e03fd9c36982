"""
Unit tests for nips.nip01 module.

Tests:
- parse_inbound() for every relay frame and malformed input
- Outbound frame encoders
- build_unsigned() and serialize_content()
- decode_content() including the double-encoded form
"""

import json

import pytest

from nostrlivery.models.event import SignedEvent, UnsignedEvent
from nostrlivery.models.filter import Filter
from nostrlivery.nips.nip01 import (
    ClosedFrame,
    EoseFrame,
    EventFrame,
    NoticeFrame,
    OkFrame,
    UnknownFrame,
    UnparseableContent,
    build_unsigned,
    decode_content,
    encode_close,
    encode_event,
    encode_req,
    encode_unsigned_event,
    parse_inbound,
    serialize_content,
)


EVENT = {
    "id": "a" * 64,
    "pubkey": "b" * 64,
    "created_at": 1_700_000_000,
    "kind": 1,
    "tags": [],
    "content": "hello",
    "sig": "c" * 128,
}


# =============================================================================
# parse_inbound() Tests
# =============================================================================


class TestParseInbound:
    def test_event(self):
        frame = parse_inbound(json.dumps(["EVENT", "sub-1", EVENT]))
        assert isinstance(frame, EventFrame)
        assert frame.subscription_id == "sub-1"
        assert frame.event == SignedEvent.from_dict(EVENT)

    def test_bytes_accepted(self):
        frame = parse_inbound(json.dumps(["EOSE", "sub-1"]).encode())
        assert frame == EoseFrame(subscription_id="sub-1")

    def test_eose(self):
        assert parse_inbound('["EOSE","s"]') == EoseFrame(subscription_id="s")

    def test_notice(self):
        assert parse_inbound('["NOTICE","rate limited"]') == NoticeFrame(message="rate limited")

    def test_ok_accepted(self):
        frame = parse_inbound(json.dumps(["OK", "a" * 64, True, ""]))
        assert frame == OkFrame(event_id="a" * 64, accepted=True, message="")

    def test_ok_rejected_with_message(self):
        frame = parse_inbound(json.dumps(["OK", "a" * 64, False, "blocked: spam"]))
        assert frame == OkFrame(event_id="a" * 64, accepted=False, message="blocked: spam")

    def test_ok_without_message(self):
        assert parse_inbound(json.dumps(["OK", "x", True])) == OkFrame(event_id="x", accepted=True)

    def test_closed(self):
        frame = parse_inbound('["CLOSED","s","error: shutting down"]')
        assert frame == ClosedFrame(subscription_id="s", message="error: shutting down")

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "{}",
            "[]",
            "[1, 2]",
            '["AUTH","challenge"]',
            '["EVENT","s"]',
            '["EVENT","s",{"id":"nope"}]',
            '["EOSE"]',
            '["OK","x","yes"]',
            '["CLOSED"]',
        ],
    )
    def test_malformed_becomes_unknown(self, raw):
        frame = parse_inbound(raw)
        assert isinstance(frame, UnknownFrame)
        assert frame.raw == raw
        assert frame.reason

    def test_invalid_event_payload_reason(self):
        bad = dict(EVENT, sig="short")
        frame = parse_inbound(json.dumps(["EVENT", "s", bad]))
        assert isinstance(frame, UnknownFrame)
        assert "invalid event" in frame.reason


# =============================================================================
# Outbound Frames
# =============================================================================


class TestEncoders:
    def test_encode_event(self):
        event = SignedEvent.from_dict(EVENT)
        assert json.loads(encode_event(event)) == ["EVENT", EVENT]

    def test_encode_unsigned_event(self):
        unsigned = UnsignedEvent(kind=20000, created_at=1, content="{}")
        assert json.loads(encode_unsigned_event(unsigned)) == [
            "EVENT",
            {"kind": 20000, "created_at": 1, "tags": [], "content": "{}"},
        ]

    def test_encode_req(self):
        frame = encode_req("sub-1-ab", Filter(kinds=[20000], limit=50))
        assert json.loads(frame) == ["REQ", "sub-1-ab", {"kinds": [20000], "limit": 50}]

    def test_encode_close(self):
        assert encode_close("sub-1-ab") == '["CLOSE","sub-1-ab"]'

    def test_compact_and_utf8(self):
        event = SignedEvent.from_dict(dict(EVENT, content="olá"))
        text = encode_event(event)
        assert "olá" in text
        assert ", " not in text


# =============================================================================
# Event Payloads
# =============================================================================


class TestBuildUnsigned:
    def test_string_content_verbatim(self):
        event = build_unsigned(1, content_object="plain text", created_at=10)
        assert event.content == "plain text"
        assert event.created_at == 10

    def test_object_content_serialized_once(self):
        event = build_unsigned(20000, content_object={"type": "X", "n": 1}, created_at=10)
        assert event.content == '{"type":"X","n":1}'
        assert json.loads(event.content) == {"type": "X", "n": 1}

    def test_created_at_defaults_to_now(self, monkeypatch):
        monkeypatch.setattr("nostrlivery.nips.nip01.time.time", lambda: 1234.9)
        assert build_unsigned(1).created_at == 1234

    def test_tags_frozen(self):
        event = build_unsigned(30000, [["d", "menu"]], [], created_at=0)
        assert event.tags == (("d", "menu"),)
        assert event.content == "[]"

    def test_enum_kind_is_plain_int(self):
        from nostrlivery.models.constants import EventKind

        event = build_unsigned(EventKind.MENU, created_at=0)
        assert type(event.kind) is int

    def test_serialize_content(self):
        assert serialize_content("x") == "x"
        assert serialize_content([1, 2]) == "[1,2]"


# =============================================================================
# decode_content() Tests
# =============================================================================


class TestDecodeContent:
    PAYLOAD = {"type": "DRIVER_ASSOCIATION_REQUEST", "driverNpub": "npub1xyz"}

    def test_plain_object(self):
        assert decode_content(json.dumps(self.PAYLOAD)) == self.PAYLOAD

    def test_double_encoded_equivalent(self):
        once = json.dumps(self.PAYLOAD)
        twice = json.dumps(once)
        assert decode_content(twice) == decode_content(once) == self.PAYLOAD

    def test_only_unwrapped_once(self):
        thrice = json.dumps(json.dumps(json.dumps(self.PAYLOAD)))
        assert isinstance(decode_content(thrice), UnparseableContent)

    def test_surrounding_whitespace(self):
        assert decode_content("  " + json.dumps(self.PAYLOAD) + "\n") == self.PAYLOAD

    @pytest.mark.parametrize("content", ["", "hello", "[1,2]", "42", '"just a string"', '"\\"x'])
    def test_unparseable(self, content):
        result = decode_content(content)
        assert isinstance(result, UnparseableContent)
        assert result.raw == content
        assert result.reason
