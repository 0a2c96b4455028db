"""
Custodial (bank) wallet credential.

The signing key is held by a `Custodian` object that is handed to whatever
needs to sign, so tests can pass a throwaway keypair instead of patching
process-wide state.
"""

import json
from dataclasses import dataclass
from typing import Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from double_or_nothing.core.logger import get_logger

logger = get_logger("custodian")


def keypair_from_secret(secret: str) -> Keypair:
    """
    Parse a secret key in base58 (Phantom export, 64-byte secret or 32-byte
    seed) or as a JSON byte array (solana-keygen file contents).

    Raises:
        ValueError: the value is in neither format.
    """
    secret = secret.strip()
    if secret.startswith("["):
        raw = bytes(json.loads(secret))
    else:
        raw = base58.b58decode(secret)

    if len(raw) == 64:
        return Keypair.from_bytes(raw)
    if len(raw) == 32:
        return Keypair.from_seed(raw)
    raise ValueError("Unsupported private key length; expected 32 or 64 bytes")


@dataclass(frozen=True)
class Custodian:
    keypair: Keypair

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())

    @classmethod
    def from_secret(cls, secret: Optional[str]) -> Optional["Custodian"]:
        """Build a custodian, or None when the key is missing or unreadable."""
        if not secret:
            logger.error("BANK_PRIVATE_KEY not set; payouts will be manual")
            return None
        try:
            return cls(keypair_from_secret(secret))
        except (ValueError, TypeError) as e:
            logger.error(f"Failed to parse BANK_PRIVATE_KEY: {e}")
            return None
