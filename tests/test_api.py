import sqlite3
import unittest
from pathlib import Path
import shutil
import tempfile
from unittest.mock import patch

from fastapi.testclient import TestClient
from solders.keypair import Keypair

from conftest import LOSS_RNG, VALID_SIGNATURE, WIN_RNG, FakeRpcClient, FakeStatus
from double_or_nothing.core.custodian import Custodian
from double_or_nothing.core.database import Database
from double_or_nothing.core.games.coinflip import DoubleOrNothingGame
from double_or_nothing.core.idempotency import SignatureGuard
from double_or_nothing.core.rpc import RpcPool
from double_or_nothing.core.settlement import SettlementService
from double_or_nothing.core.stats import StatsAccessor
from double_or_nothing.main import create_app
from double_or_nothing.routers.api import get_settlement_service, get_stats_accessor


class ApiTestCase(unittest.TestCase):
    rng = LOSS_RNG
    use_guard = False

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.db = Database(Path(self.tmp_dir) / "stats.db")
        self.rpc = FakeRpcClient(balance_lamports=2_000_000_000)
        self.custodian = Custodian(Keypair())
        self.player = str(Keypair().pubkey())

        pool = RpcPool([self.rpc.url], client_factory=lambda url: self.rpc)
        self.service = SettlementService(
            pool=pool,
            custodian=self.custodian,
            game=DoubleOrNothingGame(source=self.rng, multiplier=2.0, threshold=0.5),
            guard=SignatureGuard(self.db) if self.use_guard else None,
            call_timeout=5.0,
        )
        self.accessor = StatsAccessor(self.db)

        self.app = create_app()
        self.app.dependency_overrides[get_settlement_service] = lambda: self.service
        self.app.dependency_overrides[get_stats_accessor] = lambda: self.accessor
        self.client = TestClient(self.app)

    def tearDown(self):
        self.app.dependency_overrides.clear()
        self.db.close()
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def play(self, **overrides):
        body = {"signature": VALID_SIGNATURE, "playerWallet": self.player, "betAmount": 0.1}
        body.update(overrides)
        return self.client.post("/api/play", json=body)


class TestPlayEndpoint(ApiTestCase):
    def test_missing_signature(self):
        response = self.play(signature=None)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Missing transaction signature"})

    def test_missing_wallet(self):
        response = self.play(playerWallet="")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Missing player wallet address"})

    def test_invalid_amount(self):
        for amount in (0, -1, None):
            response = self.play(betAmount=amount)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {"error": "Invalid bet amount"})
        self.assertEqual(self.rpc.status_calls, 0)

    def test_non_finite_bet_rejected(self):
        for literal in ("NaN", "Infinity"):
            response = self.client.post(
                "/api/play",
                content='{"signature": "%s", "playerWallet": "%s", "betAmount": %s}'
                % (VALID_SIGNATURE, self.player, literal),
                headers={"Content-Type": "application/json"},
            )
            self.assertEqual(response.status_code, 400, literal)
            self.assertEqual(response.json(), {"error": "Invalid bet amount"})
        self.assertEqual(self.rpc.status_calls, 0)

    def test_malformed_body(self):
        response = self.client.post(
            "/api/play", content="not json", headers={"Content-Type": "application/json"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.json())

    def test_failed_transfer(self):
        self.rpc.status = FakeStatus(err={"InstructionError": [0, "Custom"]})
        response = self.play()
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Transaction failed on-chain"})

    def test_loss(self):
        response = self.play(betAmount=0.3)
        self.assertEqual(response.status_code, 200)

        data = response.json()
        self.assertTrue(data["success"])
        self.assertEqual(data["result"], "loss")
        self.assertEqual(data["betAmount"], 0.3)
        self.assertEqual(data["potentialWin"], 0)
        self.assertIn("processingTime", data)

    def test_security_headers(self):
        response = self.client.get("/api/play")
        self.assertEqual(response.headers["X-Frame-Options"], "DENY")
        self.assertEqual(response.headers["X-Content-Type-Options"], "nosniff")

    def test_info(self):
        response = self.client.get("/api/play")
        self.assertEqual(response.status_code, 200)

        data = response.json()
        self.assertEqual(data["status"], "ok")
        self.assertEqual(data["bankWallet"], self.custodian.address)
        self.assertEqual(data["rpcEndpoints"], 1)
        self.assertTrue(data["payoutEnabled"])
        self.assertEqual(data["multiplier"], "2x")

    def test_liquidity(self):
        data = self.client.get("/api/liquidity").json()
        self.assertEqual(data["bankWallet"], self.custodian.address)
        self.assertEqual(data["balance"], 2.0)
        self.assertAlmostEqual(data["maxBet"], 0.2)


class TestWinningPlay(ApiTestCase):
    rng = WIN_RNG

    def test_win_sends_payout(self):
        response = self.play(betAmount=0.5)
        self.assertEqual(response.status_code, 200)

        data = response.json()
        self.assertEqual(data["result"], "win")
        self.assertEqual(data["potentialWin"], 1.0)
        self.assertEqual(data["payoutStatus"], "sent")
        self.assertTrue(data["payoutSignature"])
        self.assertEqual(len(self.rpc.sent), 1)

    def test_payout_failure_is_still_success(self):
        self.rpc.send_error = RuntimeError("insufficient funds for rent")
        response = self.play(betAmount=0.5)

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data["success"])
        self.assertEqual(data["payoutStatus"], "error")
        self.assertEqual(data["payoutError"], "insufficient funds for rent")


class TestDuplicateGuard(ApiTestCase):
    use_guard = True

    def test_second_settlement_conflicts(self):
        self.assertEqual(self.play().status_code, 200)

        response = self.play()
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json(), {"error": "Transaction already settled"})


class TestStatsEndpoint(ApiTestCase):
    def test_defaults(self):
        response = self.client.get("/api/stats")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {"totalBets": 0, "totalWagered": 0, "wins": 0, "losses": 0, "gameHistory": []},
        )

    def test_record_win(self):
        response = self.client.post(
            "/api/stats", json={"result": "win", "amount": 0.2, "playerWallet": self.player}
        )
        self.assertEqual(response.status_code, 200)

        data = response.json()
        self.assertTrue(data["success"])
        self.assertEqual(data["stats"]["totalBets"], 1)
        self.assertEqual(data["stats"]["wins"], 1)
        self.assertEqual(data["stats"]["gameHistory"][0]["playerWallet"], self.player)

        stats = self.client.get("/api/stats").json()
        self.assertEqual(stats["totalBets"], 1)
        self.assertAlmostEqual(stats["totalWagered"], 0.2)

    def test_invalid_request(self):
        for body in ({"result": "draw", "amount": 0.1}, {"result": "win"}, {"amount": 0.1}):
            response = self.client.post("/api/stats", json=body)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {"error": "Invalid request data"})

    def test_non_finite_literals_rejected(self):
        self.client.post("/api/stats", json={"result": "loss", "amount": 0.5})

        for literal in ("NaN", "Infinity", "-Infinity"):
            response = self.client.post(
                "/api/stats",
                content='{"result": "win", "amount": %s}' % literal,
                headers={"Content-Type": "application/json"},
            )
            self.assertEqual(response.status_code, 400, literal)
            self.assertEqual(response.json(), {"error": "Invalid request data"})

        self.client.post("/api/stats", json={"result": "loss", "amount": 0.2})
        stats = self.client.get("/api/stats")
        self.assertEqual(stats.status_code, 200)
        self.assertEqual(stats.json()["totalBets"], 2)
        self.assertAlmostEqual(stats.json()["totalWagered"], 0.7)

    def test_display_limit(self):
        for _ in range(25):
            self.accessor.record("loss", 0.01)
        history = self.client.get("/api/stats").json()["gameHistory"]
        self.assertEqual(len(history), 20)

    def test_write_failure_is_500(self):
        with patch.object(
            self.db, "increment_global_stats", side_effect=sqlite3.OperationalError("database is locked")
        ):
            response = self.client.post("/api/stats", json={"result": "loss", "amount": 0.1})

        self.assertEqual(response.status_code, 500)
        self.assertIn("error", response.json())


if __name__ == "__main__":
    unittest.main()
