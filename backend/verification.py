import base64
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

import record_codec
from algorand_client import AlgorandChainClient, ChainTransaction


@dataclass
class VerificationResult:
    valid: bool
    transaction_id: str
    sender: str | None = None
    round: int | None = None
    timestamp: str | None = None
    record: record_codec.Record | None = None
    errors: list[str] = field(default_factory=list)
    integrity_match: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "valid": self.valid,
            "transactionId": self.transaction_id,
            "sender": self.sender,
            "round": self.round,
            "timestamp": self.timestamp,
            "record": self.record.to_dict() if self.record else None,
            "errors": self.errors,
        }
        if self.integrity_match is not None:
            body["integrityMatch"] = self.integrity_match
        return body


def _note_view(note: record_codec.DecodeResult | None) -> dict[str, Any] | None:
    if isinstance(note, record_codec.Decoded):
        return note.record.to_dict()
    if isinstance(note, record_codec.Undecodable):
        return {"raw": base64.b64encode(note.raw).decode("ascii")}
    return None


class VerificationEngine:
    def __init__(self, chain: AlgorandChainClient) -> None:
        self.chain = chain

    def read(self, tx_id: str) -> dict[str, Any]:
        tx = self.chain.lookup_transaction(tx_id)
        note = record_codec.decode(tx.note) if tx.note else None
        return {
            "txId": tx.tx_id,
            "sender": tx.sender,
            "round": tx.round,
            "timestamp": tx.timestamp,
            "note": _note_view(note),
            "source": tx.source,
            "raw": tx.raw,
        }

    def verify(self, tx_id: str, expected_type: str) -> VerificationResult:
        if expected_type not in record_codec.RECORD_TYPES:
            return VerificationResult(
                valid=False,
                transaction_id=tx_id,
                errors=[
                    f'Invalid type "{expected_type}". Must be one of: {", ".join(record_codec.RECORD_TYPES)}'
                ],
            )

        tx = self.chain.lookup_transaction(tx_id)
        result = self._check(tx, expected_type)
        logger.info(
            "Verified {} as {}: valid={} errors={}", tx_id, expected_type, result.valid, len(result.errors)
        )
        return result

    def _check(self, tx: ChainTransaction, expected_type: str) -> VerificationResult:
        errors: list[str] = []
        result = VerificationResult(
            valid=False,
            transaction_id=tx.tx_id,
            sender=tx.sender,
            round=tx.round,
            timestamp=tx.timestamp,
            errors=errors,
        )
        if not tx.round:
            errors.append("Transaction is not confirmed")

        decoded = record_codec.decode(tx.note) if tx.note else None
        if not isinstance(decoded, record_codec.Decoded):
            errors.append("Transaction has no decodable JSON note")
            return result

        record = decoded.record
        result.record = record
        if record.app != record_codec.APP_TAG:
            errors.append(f'Note app tag is "{record.app}", expected "{record_codec.APP_TAG}"')
        if record.record_type != expected_type:
            errors.append(f'Note type is "{record.record_type}", expected "{expected_type}"')
        errors.extend(f"Missing data.{name}" for name in record_codec.missing_fields(expected_type, record.data))

        result.valid = not errors
        return result


def cross_check(result: VerificationResult, off_chain_hash: str | None, field_name: str = "hash") -> bool:
    """Compare the hash committed on-chain with the one kept in the off-chain mirror."""
    on_chain_hash = result.record.data.get(field_name) if result.record else None
    match = bool(result.valid and on_chain_hash and off_chain_hash and on_chain_hash == off_chain_hash)
    result.integrity_match = match
    if not match:
        logger.warning("Integrity mismatch for {} on field {}", result.transaction_id, field_name)
    return match
