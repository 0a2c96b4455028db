"""
Wager settlement: verify the player's transfer, flip, and pay out winners.

Round lifecycle:
1. Reject malformed input before touching the network
2. Pick an RPC endpoint from the ranked pool
3. Check the transfer signature (fail-open, see chain.verify_transfer)
4. Draw the 50/50 result
5. On a win, broadcast 2x the wager from the bank wallet without waiting
   for confirmation

A declared win is always reported as a success. Payout problems show up in
`payoutStatus` ("sent", "pending", "error", "unknown") instead of an HTTP error.
"""

import asyncio
import math
import time
from datetime import datetime
from typing import Dict, Optional

from double_or_nothing.config import settings
from double_or_nothing.core.chain import (
    LAMPORTS_PER_SOL,
    get_balance_sol,
    payout_lamports,
    send_payout,
    verify_transfer,
)
from double_or_nothing.core.custodian import Custodian
from double_or_nothing.core.exceptions import InvalidRequest, TransferRejected
from double_or_nothing.core.games.coinflip import DoubleOrNothingGame
from double_or_nothing.core.idempotency import SignatureGuard
from double_or_nothing.core.logger import get_logger
from double_or_nothing.core.rpc import RpcPool, close_quietly

logger = get_logger("settlement")

PAYOUT_NONE = "none"
PAYOUT_SENT = "sent"
PAYOUT_PENDING = "pending"
PAYOUT_ERROR = "error"
PAYOUT_UNKNOWN = "unknown"


def validate_wager(signature: Optional[str], player_wallet: Optional[str], bet_amount) -> float:
    if not signature:
        raise InvalidRequest("Missing transaction signature")
    if not player_wallet:
        raise InvalidRequest("Missing player wallet address")
    if (
        not isinstance(bet_amount, (int, float))
        or isinstance(bet_amount, bool)
        or not math.isfinite(bet_amount)
        or bet_amount <= 0
    ):
        raise InvalidRequest("Invalid bet amount")
    return float(bet_amount)


class SettlementService:
    def __init__(
        self,
        pool: RpcPool,
        custodian: Optional[Custodian],
        game: DoubleOrNothingGame = None,
        guard: Optional[SignatureGuard] = None,
        bank_wallet: str = "",
        call_timeout: float = None,
        connect_timeout: float = None,
    ):
        self.pool = pool
        self.custodian = custodian
        self.game = game or DoubleOrNothingGame()
        self.guard = guard
        self.bank_wallet = bank_wallet or (custodian.address if custodian else "")
        self.call_timeout = (
            call_timeout if call_timeout is not None else settings.solana.payout_timeout_seconds
        )
        self.connect_timeout = (
            connect_timeout if connect_timeout is not None else settings.solana.rpc_timeout_seconds
        )

    async def settle(self, signature: str, player_wallet: str, bet_amount: float) -> Dict:
        """
        Settle one round.

        Raises:
            InvalidRequest: missing signature/wallet or non-positive amount.
            DuplicateSettlement: the signature was already settled (guard enabled only).
            TransferRejected: the wager transfer failed on-chain.
        """
        start = time.perf_counter()
        bet_amount = validate_wager(signature, player_wallet, bet_amount)

        if self.guard is not None:
            self.guard.claim(signature, player_wallet)

        client = await self._connect()
        try:
            logger.info(f"Verifying transaction: {signature}")
            try:
                verification = await asyncio.wait_for(
                    verify_transfer(client, signature), self.call_timeout
                )
            except asyncio.TimeoutError:
                logger.warning("Verification timed out, proceeding with trust")
                verification = None

            if verification is not None and not verification.valid:
                logger.error(f"Transaction verification failed: {verification.error}")
                raise TransferRejected(verification.error or "Transaction verification failed")

            trusted = verification is None or verification.trusted
            if trusted:
                logger.warning(f"No on-chain status for {signature}; settling on trust")

            flip = self.game.flip(bet_amount)
            result = flip["result"]
            potential_win = self.game.payout_for(bet_amount)

            logger.info(
                "Game result",
                extra={
                    "signature": signature,
                    "player_wallet": player_wallet,
                    "bet_amount": bet_amount,
                    "result": result,
                    "potential_win": potential_win,
                    "trusted": trusted,
                    "at": datetime.now().isoformat(),
                },
            )

            response = {
                "success": True,
                "result": result,
                "betAmount": bet_amount,
                "potentialWin": flip["payout"],
                "payoutStatus": PAYOUT_NONE,
            }

            if result == "win":
                response.update(
                    await self._pay_winner(
                        client,
                        player_wallet,
                        payout_lamports(bet_amount, self.game.multiplier),
                    )
                )

            response["processingTime"] = int((time.perf_counter() - start) * 1000)
            return response
        finally:
            await close_quietly(client)

    async def _connect(self):
        """Best pool client within `connect_timeout`, else the first endpoint unprobed."""
        try:
            return await asyncio.wait_for(self.pool.connect(), self.connect_timeout)
        except asyncio.TimeoutError:
            logger.warning("RPC selection timed out, using the first endpoint unprobed")
            return self.pool.fallback()

    async def _pay_winner(self, client, player_wallet: str, lamports: int) -> Dict:
        if self.custodian is None:
            logger.error("Bank keypair not available for payout")
            return {
                "payoutStatus": PAYOUT_PENDING,
                "payoutPending": True,
                "message": "Payout will be processed manually",
            }

        logger.info(f"Sending payout: {lamports / LAMPORTS_PER_SOL} SOL to {player_wallet}")
        try:
            payout = await asyncio.wait_for(
                send_payout(client, self.custodian, player_wallet, lamports), self.call_timeout
            )
        except asyncio.TimeoutError:
            # The transaction may still have been broadcast; never resend
            logger.error(f"Payout to {player_wallet} timed out; outcome unknown")
            return {
                "payoutStatus": PAYOUT_UNKNOWN,
                "message": "Payout submission timed out - check your wallet before contacting support.",
            }

        if not payout.success:
            logger.error(f"Payout failed: {payout.error}")
            return {
                "payoutStatus": PAYOUT_ERROR,
                "payoutError": payout.error,
                "message": "You won! Payout will be processed manually.",
            }

        logger.info(f"Payout successful: {payout.signature}")
        return {"payoutStatus": PAYOUT_SENT, "payoutSignature": payout.signature}

    def info(self) -> Dict:
        """Operational info; performs no settlement."""
        return {
            "status": "ok",
            "bankWallet": self.bank_wallet,
            "rpcEndpoints": len(self.pool),
            "rpcHealth": self.pool.snapshot(),
            "payoutEnabled": self.custodian is not None,
            "fairness": "50/50 - Open source verifiable",
            "fee": f"{settings.game.fee_percent:g}%",
            "multiplier": f"{self.game.multiplier:g}x",
        }

    async def liquidity(self) -> Dict:
        """Bank balance and the max bet offered to players."""
        info = {"bankWallet": self.bank_wallet, "balance": 0.0, "maxBet": 0.0}
        if not self.bank_wallet:
            return info

        client = await self._connect()
        try:
            balance = await asyncio.wait_for(
                get_balance_sol(client, self.bank_wallet), self.call_timeout
            )
        except Exception as e:
            logger.error(f"Failed to fetch bank liquidity: {e}")
            return info
        finally:
            await close_quietly(client)

        info["balance"] = balance
        info["maxBet"] = balance * settings.game.max_bet_fraction
        return info


def build_settlement_service(db=None, config=None) -> SettlementService:
    """Wire a service from configuration."""
    config = config or settings
    solana = config.solana
    secret = solana.bank_private_key.get_secret_value() if solana.bank_private_key else None

    guard = None
    if config.settlement.reject_duplicate_signatures:
        if db is None:
            from double_or_nothing.core.database import get_db

            db = get_db()
        guard = SignatureGuard(db)

    return SettlementService(
        pool=RpcPool(
            solana.candidate_endpoints(),
            commitment=solana.commitment,
            timeout=solana.rpc_timeout_seconds,
            health_ttl=solana.health_ttl_seconds,
        ),
        custodian=Custodian.from_secret(secret),
        game=DoubleOrNothingGame(
            multiplier=config.game.payout_multiplier,
            threshold=config.game.win_threshold,
        ),
        guard=guard,
        bank_wallet=solana.bank_wallet_address,
        call_timeout=solana.payout_timeout_seconds,
        connect_timeout=solana.rpc_timeout_seconds,
    )
