"""Pytest configuration and shared fixtures for all tests."""

import base64
import os
import sys
from pathlib import Path

os.environ.setdefault("SESSION_SECRET", "test_session_secret_for_testing_only")
os.environ.setdefault("MIRROR_BACKEND", "memory")

backend_root = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_root))

import pytest
from algosdk import account, encoding, transaction
from algosdk.error import AlgodHTTPError, IndexerHTTPError

from algorand_client import AlgorandChainClient
from app import create_app
from config import Settings
from repositories import Mirror
from services import build_services
from session_utils import create_session_token

TESTNET_GENESIS_HASH = "SGO1GKSzyE7IEPItTxCByw9x8FmnrCDexi9/cOUJOiI="
ROUND_TIME = 1_700_000_000


class FakeAlgod:
    """In-process stand-in for an algod node.

    Accepts real signed msgpack blobs and confirms them in the next round unless
    ``confirm`` is switched off.
    """

    def __init__(self, network: "FakeAlgorandNetwork") -> None:
        self.network = network
        self.last_round = 1000
        self.confirm = True
        self.reject_message: str | None = None
        self.pool_error = ""
        self.pending_info_error: Exception | None = None
        self.calls: list[str] = []

    def suggested_params(self):
        self.calls.append("suggested_params")
        return transaction.SuggestedParams(
            fee=1000,
            first=self.last_round,
            last=self.last_round + 1000,
            gh=TESTNET_GENESIS_HASH,
            gen="testnet-v1.0",
            flat_fee=True,
        )

    def send_raw_transaction(self, txn, **kwargs):
        self.calls.append("send_raw_transaction")
        if self.reject_message:
            raise AlgodHTTPError(self.reject_message, 400)
        stxn = encoding.msgpack_decode(txn)
        tx_id = stxn.get_txid()
        confirmed_round = self.last_round + 1 if self.confirm and not self.pool_error else 0
        self.network.record(tx_id, stxn.transaction.sender, stxn.transaction.note, confirmed_round, self.pool_error)
        return tx_id

    def status(self, **kwargs):
        self.calls.append("status")
        return {"last-round": self.last_round}

    def status_after_block(self, block_num, **kwargs):
        self.calls.append("status_after_block")
        self.last_round = block_num + 1
        return {"last-round": self.last_round}

    def pending_transaction_info(self, transaction_id, **kwargs):
        self.calls.append("pending_transaction_info")
        if self.pending_info_error is not None:
            raise self.pending_info_error
        entry = self.network.transactions.get(transaction_id)
        if entry is None:
            raise AlgodHTTPError("txn does not exist", 404)
        txn_node = {"snd": entry["sender"], "amt": 0}
        if entry["note"]:
            txn_node["note"] = base64.b64encode(entry["note"]).decode("ascii")
        return {
            "txn": {"txn": txn_node},
            "confirmed-round": entry["round"],
            "pool-error": entry["pool_error"],
        }


class FakeIndexer:
    def __init__(self, network: "FakeAlgorandNetwork") -> None:
        self.network = network
        self.calls: list[str] = []

    def transaction(self, txid, **kwargs):
        self.calls.append("transaction")
        entry = self.network.transactions.get(txid)
        if entry is None or not entry["round"]:
            raise IndexerHTTPError(f"no transaction found for transaction id: {txid}", 404)
        tx = {
            "id": txid,
            "sender": entry["sender"],
            "confirmed-round": entry["round"],
            "round-time": ROUND_TIME,
            "tx-type": "pay",
        }
        if entry["note"]:
            tx["note"] = base64.b64encode(entry["note"]).decode("ascii")
        return {"current-round": self.network.algod.last_round, "transaction": tx}


class FakeAlgorandNetwork:
    def __init__(self) -> None:
        self.transactions: dict[str, dict] = {}
        self.algod = FakeAlgod(self)
        self.indexer = FakeIndexer(self)

    def record(self, tx_id, sender, note, confirmed_round, pool_error=""):
        self.transactions[tx_id] = {
            "sender": sender,
            "note": note,
            "round": confirmed_round,
            "pool_error": pool_error,
        }

    def add_confirmed(self, tx_id: str, sender: str, note: bytes | None, confirmed_round: int = 999) -> str:
        self.record(tx_id, sender, note, confirmed_round)
        return tx_id


class Wallet:
    """A throwaway Algorand account that signs what the server hands back."""

    def __init__(self) -> None:
        self.private_key, self.address = account.generate_account()

    def sign(self, unsigned_txn: str) -> str:
        txn = encoding.msgpack_decode(unsigned_txn)
        return encoding.msgpack_encode(txn.sign(self.private_key))


@pytest.fixture
def network():
    return FakeAlgorandNetwork()


@pytest.fixture
def chain(network):
    client = AlgorandChainClient(network.algod, network.indexer, request_timeout=2.0)
    yield client
    client.close()


@pytest.fixture
def settings():
    return Settings(confirmation_rounds=4, rate_limit_max=100)


@pytest.fixture
def services(settings, chain):
    return build_services(settings, chain=chain, mirror=Mirror.in_memory())


@pytest.fixture
def app(services):
    flask_app = create_app(services)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def wallet():
    return Wallet()


@pytest.fixture
def other_wallet():
    return Wallet()


def bearer(user_id: str, role: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token(user_id, role)}"}


@pytest.fixture
def student_headers():
    return bearer("student-1", "student")


@pytest.fixture
def teacher_headers():
    return bearer("teacher-1", "teacher")


@pytest.fixture
def admin_headers():
    return bearer("admin-1", "admin")


@pytest.fixture
def make_headers():
    return bearer
