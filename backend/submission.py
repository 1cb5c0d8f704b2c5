import base64
import binascii
from dataclasses import dataclass
from typing import Any

from algosdk import encoding, transaction
from loguru import logger

import record_codec
from algorand_client import AlgorandChainClient
from errors import BroadcastRejected, ConfirmationTimeout, DecodeError, UpstreamError

SIGNED_TYPES = (transaction.SignedTransaction, transaction.MultisigTransaction, transaction.LogicSigTransaction)


@dataclass
class SubmissionResult:
    transaction_id: str
    confirmed: bool
    round: int | None

    @property
    def status(self) -> str:
        return "confirmed" if self.confirmed else "pending"

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactionId": self.transaction_id,
            "confirmed": self.confirmed,
            "round": self.round,
            "status": self.status,
        }


@dataclass
class SignedEnvelope:
    transaction_id: str
    sender: str
    note: record_codec.DecodeResult | None

    @property
    def record(self) -> record_codec.Record | None:
        if isinstance(self.note, record_codec.Decoded):
            return self.note.record
        return None


def decode_blob(signed_blob: Any) -> bytes:
    if not signed_blob or not isinstance(signed_blob, str):
        raise DecodeError("signedTxn must be a non-empty base64 string")
    try:
        signed_bytes = base64.b64decode(signed_blob, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError("Invalid base64 encoding") from exc
    if not signed_bytes:
        raise DecodeError("Signed transaction blob is empty")
    return signed_bytes


class SubmissionPipeline:
    def __init__(self, chain: AlgorandChainClient, confirmation_rounds: int = 4) -> None:
        self.chain = chain
        self.confirmation_rounds = confirmation_rounds

    def inspect(self, signed_blob: Any) -> SignedEnvelope:
        """Decode a signed blob locally to learn who signed it and what it carries."""
        decode_blob(signed_blob)
        try:
            stxn = encoding.msgpack_decode(signed_blob)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise DecodeError("Signed transaction could not be decoded") from exc
        if not isinstance(stxn, SIGNED_TYPES):
            raise DecodeError("Blob is not a signed transaction")
        txn = stxn.transaction
        note = record_codec.decode(txn.note) if txn.note else None
        return SignedEnvelope(transaction_id=stxn.get_txid(), sender=txn.sender, note=note)

    def broadcast(self, signed_blob: Any) -> str:
        decode_blob(signed_blob)
        tx_id = self.chain.send_raw_transaction(signed_blob)
        logger.info("Broadcast transaction {}", tx_id)
        return tx_id

    def confirm(self, tx_id: str) -> SubmissionResult:
        """Wait for an accepted transaction. Only a pool error is a hard failure from here on."""
        try:
            confirmed = self.chain.wait_for_confirmation(tx_id, self.confirmation_rounds)
        except ConfirmationTimeout as exc:
            logger.warning("{}; reporting as pending", exc.message)
            return SubmissionResult(transaction_id=tx_id, confirmed=False, round=None)
        except BroadcastRejected:
            raise
        except UpstreamError as exc:
            # The node already holds the transaction, so it may still confirm.
            logger.error("Confirmation check for {} failed: {}; reporting as pending", tx_id, exc.message)
            return SubmissionResult(transaction_id=tx_id, confirmed=False, round=None)
        confirmed_round = int(confirmed.get("confirmed-round", 0))
        logger.info("Transaction {} confirmed in round {}", tx_id, confirmed_round)
        return SubmissionResult(transaction_id=tx_id, confirmed=True, round=confirmed_round)

    def submit(self, signed_blob: Any) -> SubmissionResult:
        return self.confirm(self.broadcast(signed_blob))
