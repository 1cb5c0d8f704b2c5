"""Unit tests for the transaction note codec."""

import json
from datetime import datetime, timezone

import pytest

import record_codec
from errors import PayloadTooLarge
from record_codec import Decoded, Undecodable

FIXED_NOW = datetime(2024, 3, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)


COMPLETE_PAYLOADS = {
    "attendance": {"sessionId": "sess-1", "studentId": "stu-1"},
    "vote": {"electionId": "e1", "anonymousToken": "tok"},
    "complaint": {"hash": "abc"},
    "certificate": {"title": "Hackathon", "recipientId": "u1"},
}

VALID_PAIRS = [
    ("attendance", {"sessionId": "sess-1", "studentId": "stu-1"}),
    ("attendance", {"sessionId": "sess-1", "studentHash": "h", "faceHash": "f", "deviceHash": "d"}),
    ("vote", {"electionId": "e1", "anonymousToken": "tok"}),
    ("vote", {"electionId": "e1", "choiceHash": "c", "anonymousToken": "tok"}),
    ("vote", {"electionId": "e1", "choiceHash": "c"}),
    ("complaint", {"hash": "abc", "category": "Hostel", "priority": "high"}),
    ("certificate", {"title": "Hackathon", "recipientId": "u1"}),
    ("certificate", {"student": "Asha", "event": "Hackathon", "role": "Winner", "recipientId": "u1"}),
]

SINGLE_OMISSIONS = [
    (record_type, rule) for record_type, rules in record_codec.REQUIRED_FIELDS.items() for rule in rules
]


class TestEncode:
    """Tests for building note bytes."""

    def test_encodes_compact_sorted_json(self):
        note = record_codec.encode("complaint", {"hash": "abc", "category": "Hostel"}, now=FIXED_NOW)
        assert note == (
            b'{"app":"TrustSphere","data":{"category":"Hostel","hash":"abc"},'
            b'"timestamp":"2024-03-01T12:30:45.123Z","type":"complaint"}'
        )

    def test_timestamp_has_millisecond_precision_and_z_suffix(self):
        assert record_codec.utc_timestamp(FIXED_NOW) == "2024-03-01T12:30:45.123Z"

    def test_payload_at_limit_is_accepted(self):
        base = len(record_codec.encode("complaint", {"hash": ""}, now=FIXED_NOW))
        filler = "x" * (record_codec.MAX_NOTE_BYTES - base)
        note = record_codec.encode("complaint", {"hash": filler}, now=FIXED_NOW)
        assert len(note) == record_codec.MAX_NOTE_BYTES

    def test_payload_over_limit_is_rejected(self):
        with pytest.raises(PayloadTooLarge) as exc_info:
            record_codec.encode("complaint", {"hash": "x" * 2000}, now=FIXED_NOW)
        assert exc_info.value.code == "note_payload_too_large"
        assert "1024" in exc_info.value.message

    def test_non_ascii_counts_bytes_not_characters(self):
        base = len(record_codec.encode("complaint", {"hash": ""}, now=FIXED_NOW))
        # each "é" is two bytes in UTF-8
        text = "é" * ((record_codec.MAX_NOTE_BYTES - base) // 2 + 1)
        with pytest.raises(PayloadTooLarge):
            record_codec.encode("complaint", {"hash": text}, now=FIXED_NOW)


class TestDecode:
    """Tests for reading note bytes back."""

    def test_decodes_encoded_record(self):
        note = record_codec.encode("vote", {"electionId": "e1", "choiceHash": "h"}, now=FIXED_NOW)
        result = record_codec.decode(note)
        assert isinstance(result, Decoded)
        assert result.record.app == "TrustSphere"
        assert result.record.record_type == "vote"
        assert result.record.data == {"electionId": "e1", "choiceHash": "h"}
        assert result.record.timestamp == "2024-03-01T12:30:45.123Z"

    @pytest.mark.parametrize("record_type, payload", VALID_PAIRS)
    def test_round_trip_for_every_record_type(self, record_type, payload):
        result = record_codec.decode(record_codec.encode(record_type, payload, now=FIXED_NOW))
        assert isinstance(result, Decoded)
        assert result.record.app == record_codec.APP_TAG
        assert result.record.record_type == record_type
        assert result.record.data == payload
        assert record_codec.validate_payload(record_type, result.record.data) == []

    @pytest.mark.parametrize("raw", [b"not json", b"\xff\xfe\x00", b"[1, 2, 3]", b'"just a string"'])
    def test_undecodable_notes_keep_raw_bytes(self, raw):
        result = record_codec.decode(raw)
        assert isinstance(result, Undecodable)
        assert result.raw == raw

    def test_foreign_json_object_still_decodes(self):
        result = record_codec.decode(json.dumps({"app": "Other", "type": "x"}).encode())
        assert isinstance(result, Decoded)
        assert result.record.app == "Other"
        assert result.record.data == {}


class TestValidatePayload:
    """Tests for type-specific required fields."""

    def test_unknown_type(self):
        errors = record_codec.validate_payload("ballot", {"x": 1})
        assert errors == ['Invalid type "ballot". Must be one of: attendance, vote, complaint, certificate']

    def test_null_payload(self):
        errors = record_codec.validate_payload("vote", None)
        assert errors == ["data must be a non-null object"]

    def test_empty_vote_lists_every_missing_field(self):
        errors = record_codec.validate_payload("vote", {})
        assert errors == ["vote requires data.electionId", "vote requires data.anonymousToken"]

    @pytest.mark.parametrize("record_type, rule", SINGLE_OMISSIONS, ids=lambda v: getattr(v, "name", v))
    def test_each_omitted_field_is_reported(self, record_type, rule):
        payload = dict(COMPLETE_PAYLOADS[record_type])
        for alternative in rule.alternatives:
            for name in alternative:
                payload.pop(name, None)
        assert record_codec.missing_fields(record_type, payload) == [rule.name]
        assert record_codec.validate_payload(record_type, payload) == [f"{record_type} requires data.{rule.name}"]

    @pytest.mark.parametrize("record_type", sorted(COMPLETE_PAYLOADS))
    def test_complete_payloads_pass(self, record_type):
        assert record_codec.validate_payload(record_type, COMPLETE_PAYLOADS[record_type]) == []

    @pytest.mark.parametrize(
        "record_type, expected",
        [("attendance", ["sessionId", "studentId"]), ("certificate", ["title", "recipientId"])],
    )
    def test_two_omitted_fields_are_both_reported(self, record_type, expected):
        assert record_codec.missing_fields(record_type, {}) == expected

    def test_vote_accepts_choice_hash_instead_of_token(self):
        assert record_codec.validate_payload("vote", {"electionId": "e", "choiceHash": "h"}) == []

    def test_attendance_accepts_student_hash(self):
        assert record_codec.missing_fields("attendance", {"sessionId": "s", "studentHash": "h"}) == []

    def test_certificate_alternative_needs_all_three_fields(self):
        payload = {"student": "Asha", "event": "Hackathon", "recipientId": "u1"}
        assert record_codec.missing_fields("certificate", payload) == ["title"]
        payload["role"] = "Winner"
        assert record_codec.missing_fields("certificate", payload) == []

    @pytest.mark.parametrize("blank", [None, "", "   ", [], {}])
    def test_blank_values_count_as_missing(self, blank):
        assert record_codec.missing_fields("complaint", {"hash": blank}) == ["hash"]

    def test_zero_and_false_are_present(self):
        assert record_codec.missing_fields("complaint", {"hash": 0}) == []
        assert record_codec.missing_fields("complaint", {"hash": False}) == []


def test_sha256_hex_matches_known_digest():
    assert record_codec.sha256_hex("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
