"""
Duplicate-settlement guard keyed on the wager transfer signature.
"""

from double_or_nothing.core.database import Database
from double_or_nothing.core.exceptions import DuplicateSettlement
from double_or_nothing.core.logger import get_logger

logger = get_logger("idempotency")


class SignatureGuard:
    """
    Ensures a transfer signature is settled only once.

    The signature is claimed BEFORE the round is processed, so a crash mid-round
    leaves it claimed rather than open to a second settlement.
    """

    def __init__(self, db: Database):
        self.db = db

    def claim(self, signature: str, player_wallet: str = None):
        """
        Raises:
            DuplicateSettlement: the signature was claimed by an earlier request.
        """
        if not self.db.claim_signature(signature, player_wallet):
            logger.warning(
                "Duplicate settlement attempt",
                extra={"signature": signature, "player_wallet": player_wallet},
            )
            raise DuplicateSettlement("Transaction already settled")
