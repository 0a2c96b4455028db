"""
Player-side wager client.

Sends SOL from the player's keypair to the bank wallet, waits for the
transfer to confirm, asks the server to settle it, then reports the outcome
to the stats endpoint.

Usage:
    python -m double_or_nothing.client --keypair ~/.config/solana/id.json --amount 0.1 \\
        --server http://127.0.0.1:8000 --bank <BANK_WALLET_ADDRESS>
"""

import argparse
import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import httpx
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from double_or_nothing.config import settings
from double_or_nothing.core.chain import build_transfer, sol_to_lamports
from double_or_nothing.core.custodian import keypair_from_secret
from double_or_nothing.core.logger import get_logger

logger = get_logger("client")

# How long to wait for the settlement response before giving up
SETTLEMENT_TIMEOUT = 25.0


class WagerError(Exception):
    """The wager could not be placed or the server rejected it."""


@dataclass
class WagerReceipt:
    signature: str
    amount: float
    status: str  # "settled" or "timeout"
    result: Optional[str] = None
    payout: float = 0.0
    payout_status: Optional[str] = None
    payout_signature: Optional[str] = None
    message: Optional[str] = None
    raw: Dict = field(default_factory=dict)


class WagerClient:
    def __init__(
        self,
        keypair: Keypair,
        bank_address: str,
        server_url: str,
        rpc_url: str,
        settlement_timeout: float = SETTLEMENT_TIMEOUT,
        http: httpx.AsyncClient = None,
        rpc: AsyncClient = None,
    ):
        self.keypair = keypair
        self.bank_address = bank_address
        self.server_url = server_url.rstrip("/")
        self.settlement_timeout = settlement_timeout
        self.http = http or httpx.AsyncClient(base_url=self.server_url, timeout=10.0)
        self.rpc = rpc or AsyncClient(rpc_url, commitment=Confirmed)

    async def close(self):
        await self.http.aclose()
        await self.rpc.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def max_bet(self) -> float:
        """Max bet the server offers (a share of bank liquidity); 0 when unknown."""
        try:
            response = await self.http.get("/api/liquidity")
            response.raise_for_status()
            return float(response.json().get("maxBet", 0))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to fetch bank liquidity: {e}")
            return 0.0

    async def send_wager(self, amount: float) -> str:
        """Transfer the wager to the bank and wait for it to confirm."""
        latest = await self.rpc.get_latest_blockhash(Confirmed)
        tx = build_transfer(
            self.keypair,
            Pubkey.from_string(self.bank_address),
            sol_to_lamports(amount),
            latest.value.blockhash,
        )
        sent = await self.rpc.send_raw_transaction(bytes(tx))
        signature = sent.value
        logger.info(f"Transaction sent, confirming: {signature}")

        confirmation = await self.rpc.confirm_transaction(signature, Confirmed)
        statuses = confirmation.value
        if statuses and statuses[0] is not None and statuses[0].err is not None:
            raise WagerError("Transaction failed")
        return str(signature)

    async def settle(self, signature: str, amount: float) -> WagerReceipt:
        """
        Ask the server for the result. A timeout is not an error: the transfer
        already went through, so the outcome is reported as unknown.
        """
        payload = {
            "signature": signature,
            "playerWallet": str(self.keypair.pubkey()),
            "betAmount": amount,
        }
        try:
            response = await self.http.post(
                "/api/play", json=payload, timeout=self.settlement_timeout
            )
        except httpx.TimeoutException:
            logger.warning("Response timeout - check your wallet for result")
            return WagerReceipt(
                signature=signature,
                amount=amount,
                status="timeout",
                message="Response timeout - check your wallet for result",
            )

        data = response.json()
        if response.status_code != 200:
            raise WagerError(data.get("error") or "Failed to determine result")

        return WagerReceipt(
            signature=signature,
            amount=amount,
            status="settled",
            result=data.get("result"),
            payout=data.get("potentialWin", 0),
            payout_status=data.get("payoutStatus"),
            payout_signature=data.get("payoutSignature"),
            message=data.get("message"),
            raw=data,
        )

    async def report(self, receipt: WagerReceipt):
        """Post the outcome to the stats endpoint; failures are only logged."""
        try:
            await self.http.post(
                "/api/stats",
                json={
                    "result": receipt.result,
                    "amount": receipt.amount,
                    "playerWallet": str(self.keypair.pubkey()),
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to save game result: {e}")

    async def play(self, amount: float) -> WagerReceipt:
        if amount <= 0:
            raise WagerError("Invalid bet amount")

        max_bet = await self.max_bet()
        if max_bet > 0 and amount > max_bet:
            raise WagerError(f"Max bet is {max_bet:.4f} SOL (10% of bank liquidity)")

        signature = await self.send_wager(amount)
        receipt = await self.settle(signature, amount)
        if receipt.status == "settled":
            await self.report(receipt)
        return receipt


def load_keypair(value: str) -> Keypair:
    """A keypair from a solana-keygen JSON file path or a base58 secret."""
    path = Path(value).expanduser()
    if path.is_file():
        return keypair_from_secret(path.read_text())
    return keypair_from_secret(value)


async def _main(args):
    keypair = load_keypair(args.keypair)
    async with WagerClient(
        keypair=keypair,
        bank_address=args.bank,
        server_url=args.server,
        rpc_url=args.rpc,
    ) as client:
        receipt = await client.play(args.amount)

    if receipt.status == "timeout":
        print(receipt.message)
    elif receipt.result == "win":
        print(f"DOUBLE! Won {receipt.payout:.4f} SOL ({receipt.payout_status})")
        if receipt.message:
            print(receipt.message)
    else:
        print(f"NOTHING. Lost {receipt.amount:.4f} SOL")


def main(argv=None):
    endpoints = settings.solana.candidate_endpoints()
    parser = argparse.ArgumentParser(description="Place a Double or Nothing wager")
    parser.add_argument("--keypair", required=True, help="Keypair JSON file or base58 secret")
    parser.add_argument("--amount", type=float, required=True, help="Wager in SOL")
    parser.add_argument("--server", default=f"http://{settings.server.host}:{settings.server.port}")
    parser.add_argument("--bank", default=settings.solana.bank_wallet_address)
    parser.add_argument("--rpc", default=endpoints[0])
    args = parser.parse_args(argv)

    if not args.bank:
        parser.error("--bank is required when BANK_WALLET_ADDRESS is not set")

    try:
        asyncio.run(_main(args))
    except WagerError as e:
        logger.error(str(e))
        raise SystemExit(1)


if __name__ == "__main__":
    main()
