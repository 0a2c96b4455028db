"""
On-chain operations used by settlement: transfer status lookup, native SOL
transfers and balance reads.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from double_or_nothing.core.custodian import Custodian
from double_or_nothing.core.logger import get_logger

logger = get_logger("chain")

LAMPORTS_PER_SOL = 1_000_000_000


def sol_to_lamports(amount: float) -> int:
    # Through the decimal repr so 1.001 SOL is 1001000000 lamports, not one less
    return math.floor(Decimal(str(amount)) * LAMPORTS_PER_SOL)


def payout_lamports(bet_amount: float, multiplier: float) -> int:
    """Winnings in lamports: the wager is converted first, then scaled."""
    return math.floor(sol_to_lamports(bet_amount) * Decimal(str(multiplier)))


@dataclass
class Verification:
    valid: bool
    error: Optional[str] = None
    trusted: bool = False  # True when no on-chain evidence was available


@dataclass
class PayoutResult:
    success: bool
    signature: Optional[str] = None
    error: Optional[str] = None


def build_transfer(sender: Keypair, recipient: Pubkey, lamports: int, blockhash: Hash) -> Transaction:
    """A signed single-instruction system transfer, sender pays the fee."""
    instruction = transfer(
        TransferParams(from_pubkey=sender.pubkey(), to_pubkey=recipient, lamports=lamports)
    )
    message = Message([instruction], sender.pubkey())
    return Transaction([sender], message, blockhash)


async def verify_transfer(client: AsyncClient, signature: str) -> Verification:
    """
    Quick signature status check.

    Only a status that reports an error rejects the transfer. A missing status
    (not indexed yet) or a failing lookup is trusted, and the amount claimed
    by the caller is never compared with the on-chain transfer.
    """
    try:
        resp = await client.get_signature_statuses([Signature.from_string(signature)])
        status = resp.value[0] if resp.value else None

        if status is None:
            logger.info("Transaction not indexed yet, proceeding with trust")
            return Verification(valid=True, trusted=True)

        if status.err is not None:
            return Verification(valid=False, error="Transaction failed on-chain")

        confirmation = str(status.confirmation_status) if status.confirmation_status else None
        logger.info(
            "Transaction verified",
            extra={"signature": signature[:20] + "...", "confirmation_status": confirmation},
        )
        return Verification(valid=True)

    except Exception as e:
        logger.error(f"Transaction verification error: {e}")
        logger.info("Verification error but proceeding with trust")
        return Verification(valid=True, trusted=True)


async def send_payout(
    client: AsyncClient, custodian: Custodian, winner_address: str, lamports: int
) -> PayoutResult:
    """
    Sign and broadcast a payout without waiting for confirmation.
    Success means the node accepted the transaction, not that it finalized.
    """
    try:
        winner = Pubkey.from_string(winner_address)

        latest = await client.get_latest_blockhash(Confirmed)
        tx = build_transfer(custodian.keypair, winner, lamports, latest.value.blockhash)

        resp = await client.send_raw_transaction(
            bytes(tx), opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed)
        )
        signature = str(resp.value)

        logger.info(
            "Payout sent (not waiting for confirmation)",
            extra={"winner": winner_address, "lamports": lamports, "signature": signature},
        )
        return PayoutResult(success=True, signature=signature)

    except Exception as e:
        logger.error(f"Payout error: {e}")
        return PayoutResult(success=False, error=str(e) or "Payout failed")


async def get_balance_sol(client: AsyncClient, address: str) -> float:
    resp = await client.get_balance(Pubkey.from_string(address))
    return resp.value / LAMPORTS_PER_SOL
