"""Unit tests for on-chain record verification."""

import json

import pytest

import record_codec
from errors import NotFoundError
from verification import VerificationEngine, cross_check


@pytest.fixture
def engine(chain):
    return VerificationEngine(chain)


def note(app="TrustSphere", record_type="complaint", data=None):
    return json.dumps(
        {"app": app, "type": record_type, "data": data or {}, "timestamp": "2024-01-01T00:00:00.000Z"}
    ).encode()


class TestVerify:
    """Tests for VerificationEngine.verify."""

    def test_valid_record(self, engine, network):
        network.add_confirmed("TX", "SENDER", note(data={"hash": "abc"}))
        result = engine.verify("TX", "complaint")
        assert result.valid is True
        assert result.errors == []
        assert result.sender == "SENDER"
        assert result.record.data == {"hash": "abc"}

    def test_unknown_type_skips_lookup(self, engine, network):
        result = engine.verify("TX", "ballot")
        assert result.valid is False
        assert result.errors[0].startswith('Invalid type "ballot"')
        assert network.indexer.calls == []

    def test_unconfirmed_transaction(self, engine, network):
        network.record("TX", "SENDER", note(data={"hash": "abc"}), confirmed_round=0)
        result = engine.verify("TX", "complaint")
        assert result.valid is False
        assert "Transaction is not confirmed" in result.errors

    def test_non_json_note(self, engine, network):
        network.add_confirmed("TX", "SENDER", b"\x01\x02binary")
        result = engine.verify("TX", "complaint")
        assert result.valid is False
        assert result.errors == ["Transaction has no decodable JSON note"]
        assert result.record is None

    def test_missing_note(self, engine, network):
        network.add_confirmed("TX", "SENDER", None)
        assert engine.verify("TX", "complaint").errors == ["Transaction has no decodable JSON note"]

    def test_accumulates_every_mismatch(self, engine, network):
        network.add_confirmed("TX", "SENDER", note(app="Other", record_type="vote", data={}))
        result = engine.verify("TX", "complaint")
        assert result.valid is False
        assert result.errors == [
            'Note app tag is "Other", expected "TrustSphere"',
            'Note type is "vote", expected "complaint"',
            "Missing data.hash",
        ]

    @pytest.mark.parametrize(
        "defective_note, expected_error",
        [
            (note(app="Other", data={"hash": "abc"}), 'Note app tag is "Other", expected "TrustSphere"'),
            (note(record_type="vote", data={"hash": "abc"}), 'Note type is "vote", expected "complaint"'),
            (note(data={"category": "Hostel"}), "Missing data.hash"),
        ],
        ids=["app-tag", "type", "missing-field"],
    )
    def test_single_defect_is_reported_alone(self, engine, network, defective_note, expected_error):
        network.add_confirmed("TX", "SENDER", defective_note)
        result = engine.verify("TX", "complaint")
        assert result.valid is False
        assert result.errors == [expected_error]

    def test_unknown_transaction_propagates(self, engine):
        with pytest.raises(NotFoundError):
            engine.verify("NOPE", "complaint")


class TestRead:
    def test_read_undecodable_note_as_raw(self, engine, network):
        network.add_confirmed("TX", "SENDER", b"\xff\x00")
        view = engine.read("TX")
        assert view["note"] == {"raw": "/wA="}
        assert view["source"] == "indexer"

    def test_read_decoded_note(self, engine, network):
        network.add_confirmed("TX", "SENDER", record_codec.encode("complaint", {"hash": "h"}))
        view = engine.read("TX")
        assert view["note"]["type"] == "complaint"
        assert view["txId"] == "TX"


class TestCrossCheck:
    """Tests for off-chain integrity comparison."""

    def test_matching_hash(self, engine, network):
        network.add_confirmed("TX", "SENDER", note(data={"hash": "abc"}))
        result = engine.verify("TX", "complaint")
        assert cross_check(result, "abc") is True
        assert result.to_dict()["integrityMatch"] is True

    def test_mismatching_hash(self, engine, network):
        network.add_confirmed("TX", "SENDER", note(data={"hash": "abc"}))
        result = engine.verify("TX", "complaint")
        assert cross_check(result, "def") is False
        assert result.integrity_match is False

    def test_tampered_on_chain_hash_breaks_integrity(self, engine, network):
        network.add_confirmed("TX", "SENDER", note(data={"hash": "abc"}))
        assert cross_check(engine.verify("TX", "complaint"), "abc") is True

        network.transactions["TX"]["note"] = note(data={"hash": "tampered"})
        result = engine.verify("TX", "complaint")
        assert result.valid is True
        assert cross_check(result, "abc") is False
        assert result.to_dict()["integrityMatch"] is False

    def test_invalid_record_never_matches(self, engine, network):
        network.add_confirmed("TX", "SENDER", note(app="Other", data={"hash": "abc"}))
        result = engine.verify("TX", "complaint")
        assert cross_check(result, "abc") is False

    def test_empty_hashes_never_match(self, engine, network):
        network.add_confirmed("TX", "SENDER", note(record_type="attendance", data={"sessionId": "s", "studentId": "x"}))
        result = engine.verify("TX", "attendance")
        assert result.valid is True
        assert cross_check(result, None, "studentHash") is False
