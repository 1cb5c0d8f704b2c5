from typing import Any, Mapping

from algosdk import encoding, transaction
from loguru import logger

import record_codec
from algorand_client import AlgorandChainClient
from errors import InvalidAddress, InvalidPayload
from rate_limiter import RateLimiter

ADDRESS_LENGTH = 58


def address_error(address: Any) -> str | None:
    if not isinstance(address, str) or len(address) != ADDRESS_LENGTH:
        return f"Invalid Algorand address: must be a {ADDRESS_LENGTH}-character string"
    if not encoding.is_valid_address(address):
        return "Invalid Algorand address: checksum mismatch"
    return None


class TransactionBuilder:
    """Builds zero-value self-transfers carrying a record note.

    The server never sees a private key: the result is handed back to the caller
    for signing.
    """

    def __init__(self, chain: AlgorandChainClient, rate_limiter: RateLimiter | None = None) -> None:
        self.chain = chain
        self.rate_limiter = rate_limiter

    def build(self, sender_address: str, record_type: str, payload: Mapping[str, Any]) -> str:
        addr_error = address_error(sender_address)
        payload_errors = record_codec.validate_payload(record_type, payload)
        if payload_errors:
            errors = ([addr_error] if addr_error else []) + payload_errors
            raise InvalidPayload("Invalid transaction payload", errors=errors)
        if addr_error:
            raise InvalidAddress(addr_error, errors=[addr_error])

        if self.rate_limiter is not None:
            self.rate_limiter.admit(sender_address)

        note_bytes = record_codec.encode(record_type, payload)
        sp = self.chain.suggested_params()
        txn = transaction.PaymentTxn(
            sender=sender_address,
            sp=sp,
            receiver=sender_address,
            amt=0,
            note=note_bytes,
        )
        logger.info("Built unsigned {} transaction for {} ({} byte note)", record_type, sender_address, len(note_bytes))
        return encoding.msgpack_encode(txn)
