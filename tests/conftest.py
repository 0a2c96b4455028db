import asyncio
import os
import sys
import tempfile
from pathlib import Path
from types import SimpleNamespace

# Settings are read at import time, so the environment has to be ready first
sys.path.insert(0, str(Path(__file__).parent.parent))
_TMP_DIR = tempfile.mkdtemp(prefix="double-or-nothing-tests-")
os.environ["DB_PATH"] = str(Path(_TMP_DIR) / "stats.db")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("BANK_PRIVATE_KEY", None)

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.signature import Signature

from double_or_nothing.core.custodian import Custodian
from double_or_nothing.core.database import Database
from double_or_nothing.core.rpc import RpcPool
from double_or_nothing.core.settlement import SettlementService

VALID_SIGNATURE = str(Signature.default())


class FakeResp:
    def __init__(self, value):
        self.value = value


class FakeStatus:
    """Shape of a solders TransactionStatus as far as settlement reads it."""

    def __init__(self, err=None, confirmation_status="confirmed"):
        self.err = err
        self.confirmation_status = confirmation_status


class FakeRpcClient:
    """In-memory stand-in for solana.rpc.async_api.AsyncClient."""

    def __init__(
        self,
        url="http://fake-rpc",
        slot_ok=True,
        slot_delay=0.0,
        status=None,
        status_error=None,
        send_error=None,
        send_delay=0.0,
        balance_lamports=0,
    ):
        self.url = url
        self.slot_ok = slot_ok
        self.slot_delay = slot_delay
        self.status = status
        self.status_error = status_error
        self.send_error = send_error
        self.send_delay = send_delay
        self.balance_lamports = balance_lamports
        self.slot_calls = 0
        self.status_calls = 0
        self.sent = []
        self.closed = False

    async def get_slot(self):
        self.slot_calls += 1
        if self.slot_delay:
            await asyncio.sleep(self.slot_delay)
        if not self.slot_ok:
            raise ConnectionError(f"{self.url} unreachable")
        return FakeResp(1)

    async def get_signature_statuses(self, signatures):
        self.status_calls += 1
        if self.status_error:
            raise self.status_error
        return FakeResp([self.status])

    async def get_latest_blockhash(self, commitment=None):
        return FakeResp(SimpleNamespace(blockhash=Hash.default(), last_valid_block_height=1))

    async def send_raw_transaction(self, raw, opts=None):
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.send_error:
            raise self.send_error
        self.sent.append(raw)
        return FakeResp(Signature.default())

    async def get_balance(self, pubkey, commitment=None):
        return FakeResp(self.balance_lamports)

    async def close(self):
        self.closed = True


class FixedRNG:
    """Always returns the same draw."""

    def __init__(self, value):
        self.value = value

    def random_float(self):
        return self.value


WIN_RNG = FixedRNG(0.1)
LOSS_RNG = FixedRNG(0.9)


@pytest.fixture
def fake_client():
    return FakeRpcClient()


@pytest.fixture
def custodian():
    return Custodian(Keypair())


@pytest.fixture
def player_wallet():
    return str(Keypair().pubkey())


@pytest.fixture
def temp_db(tmp_path):
    db = Database(tmp_path / "stats.db")
    yield db
    db.close()


@pytest.fixture
def make_service():
    """Build a SettlementService around a single fake RPC client."""
    from double_or_nothing.core.games.coinflip import DoubleOrNothingGame

    def _make(
        client=None, custodian=None, rng=None, guard=None, call_timeout=5.0, connect_timeout=5.0
    ):
        client = client or FakeRpcClient()
        pool = RpcPool([client.url], client_factory=lambda url: client)
        return SettlementService(
            pool=pool,
            custodian=custodian,
            game=DoubleOrNothingGame(source=rng, multiplier=2.0, threshold=0.5),
            guard=guard,
            bank_wallet="BankWallet1111111111111111111111111111111111",
            call_timeout=call_timeout,
            connect_timeout=connect_timeout,
        )

    return _make
