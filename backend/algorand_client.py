import base64
from concurrent import futures
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from algosdk import transaction
from algosdk.error import AlgodHTTPError, IndexerHTTPError
from algosdk.v2client import algod, indexer
from loguru import logger

from config import Settings
from errors import BroadcastRejected, ConfirmationTimeout, NetworkUnavailable, NotFoundError, UpstreamError


@dataclass
class ChainTransaction:
    tx_id: str
    sender: str | None
    round: int | None
    timestamp: str | None
    note: bytes | None
    raw: dict[str, Any] = field(default_factory=dict)
    source: str = "indexer"


def _b64_note(value: Any) -> bytes | None:
    if not value:
        return None
    return base64.b64decode(value)


def _round_time_iso(round_time: Any) -> str | None:
    if not round_time:
        return None
    ts = datetime.fromtimestamp(int(round_time), tz=timezone.utc)
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AlgorandChainClient:
    """Algod + indexer access with a per-call deadline.

    The underlying SDK clients are blocking, so every call runs on a thread pool and
    is abandoned once ``request_timeout`` seconds have passed. An abandoned call keeps
    its worker until the SDK returns, so the pool is sized from ``request_workers``.
    """

    def __init__(
        self,
        algod_client: Any,
        indexer_client: Any | None = None,
        request_timeout: float = 10.0,
        max_workers: int = 16,
    ) -> None:
        self.algod = algod_client
        self.indexer = indexer_client
        self.request_timeout = request_timeout
        self._executor = futures.ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="algorand")

    @classmethod
    def from_settings(cls, settings: Settings) -> "AlgorandChainClient":
        algod_headers = {"X-API-Key": settings.algod_token} if settings.algod_token else {}
        algod_client = algod.AlgodClient(settings.algod_token, settings.algod_address, headers=algod_headers)
        indexer_client = None
        if settings.indexer_address:
            indexer_headers = {"X-API-Key": settings.indexer_token} if settings.indexer_token else {}
            indexer_client = indexer.IndexerClient(
                settings.indexer_token, settings.indexer_address, headers=indexer_headers
            )
        return cls(
            algod_client,
            indexer_client,
            request_timeout=settings.request_timeout,
            max_workers=settings.request_workers,
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def _call(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self.request_timeout)
        except futures.TimeoutError as exc:
            future.cancel()
            logger.error("{} timed out after {}s", operation, self.request_timeout)
            raise NetworkUnavailable(
                f"{operation} timed out after {self.request_timeout}s", status_code=504
            ) from exc
        except (AlgodHTTPError, IndexerHTTPError):
            raise
        except OSError as exc:
            logger.error("{} failed: {}", operation, exc)
            raise NetworkUnavailable(f"{operation} failed: {exc}") from exc

    def suggested_params(self) -> transaction.SuggestedParams:
        try:
            return self._call("suggested_params", self.algod.suggested_params)
        except AlgodHTTPError as exc:
            raise NetworkUnavailable(f"Could not fetch network parameters: {exc}") from exc

    def send_raw_transaction(self, signed_b64: str) -> str:
        try:
            return self._call("send_raw_transaction", self.algod.send_raw_transaction, signed_b64)
        except AlgodHTTPError as exc:
            logger.warning("Node rejected transaction: {}", exc)
            raise BroadcastRejected(str(exc)) from exc

    def pending_transaction_info(self, tx_id: str) -> dict[str, Any]:
        return self._call("pending_transaction_info", self.algod.pending_transaction_info, tx_id)

    def wait_for_confirmation(self, tx_id: str, max_rounds: int) -> dict[str, Any]:
        try:
            start_round = self._call("status", self.algod.status)["last-round"] + 1
            current_round = start_round
            while current_round < start_round + max_rounds:
                pending_txn = self.pending_transaction_info(tx_id)
                confirmed_round = pending_txn.get("confirmed-round", 0)
                if confirmed_round and confirmed_round > 0:
                    return pending_txn
                pool_error = pending_txn.get("pool-error")
                if pool_error:
                    raise BroadcastRejected(f"Transaction rejected: {pool_error}")
                self._call("status_after_block", self.algod.status_after_block, current_round)
                current_round += 1
        except AlgodHTTPError as exc:
            raise UpstreamError(f"Confirmation check failed: {exc}") from exc
        raise ConfirmationTimeout(tx_id, max_rounds)

    def lookup_transaction(self, tx_id: str) -> ChainTransaction:
        """Confirmed lookup through the indexer, then the node's pending pool."""
        if self.indexer is not None:
            try:
                response = self._call("indexer transaction", self.indexer.transaction, tx_id)
                tx = response.get("transaction") or {}
                if tx:
                    return ChainTransaction(
                        tx_id=tx.get("id", tx_id),
                        sender=tx.get("sender"),
                        round=tx.get("confirmed-round") or None,
                        timestamp=_round_time_iso(tx.get("round-time")),
                        note=_b64_note(tx.get("note")),
                        raw=tx,
                        source="indexer",
                    )
            except (IndexerHTTPError, UpstreamError) as exc:
                logger.warning("Indexer lookup for {} failed, falling back to algod: {}", tx_id, exc)

        try:
            pending = self.pending_transaction_info(tx_id)
        except AlgodHTTPError as exc:
            raise NotFoundError(f"Transaction {tx_id} not found on Algorand") from exc

        txn_node = (pending.get("txn") or {}).get("txn") or {}
        return ChainTransaction(
            tx_id=tx_id,
            sender=txn_node.get("snd"),
            round=pending.get("confirmed-round") or None,
            timestamp=None,
            note=_b64_note(txn_node.get("note")),
            raw=pending,
            source="algod",
        )
