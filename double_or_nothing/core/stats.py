"""
Global statistics: running totals plus the recent game history.

Reads never fail towards the caller; writes append a history row and then
upsert the aggregate row. The two writes are not wrapped in one transaction.
"""

import math
from datetime import datetime
from typing import Dict, List, Optional

from double_or_nothing.config import settings
from double_or_nothing.core.database import Database, get_db
from double_or_nothing.core.exceptions import InvalidRequest, StatsWriteError
from double_or_nothing.core.logger import get_logger

logger = get_logger("stats")

VALID_RESULTS = ("win", "loss")


def default_stats() -> Dict:
    return {
        "totalBets": 0,
        "totalWagered": 0,
        "wins": 0,
        "losses": 0,
        "gameHistory": [],
    }


def _to_epoch_ms(timestamp: str) -> int:
    return int(datetime.fromisoformat(timestamp).timestamp() * 1000)


def _history_item(row: Dict) -> Dict:
    return {
        "result": row["result"],
        "amount": row["amount"],
        "timestamp": _to_epoch_ms(row["timestamp"]),
        "playerWallet": row.get("player_wallet"),
    }


class StatsAccessor:
    """Reads and writes the aggregate statistics and history."""

    def __init__(self, db: Database = None):
        self._db = db

    @property
    def db(self) -> Database:
        # Resolved on first use so a broken store surfaces inside read/record
        if self._db is None:
            self._db = get_db()
        return self._db

    def read(self, limit: int = None) -> Dict:
        """
        Current totals with the newest `limit` history rows.
        Returns zero-valued defaults on any store error.
        """
        limit = limit or settings.stats.fetch_limit
        try:
            row = self.db.get_global_stats()
        except Exception as e:
            logger.error(f"Error reading stats: {e}")
            return default_stats()

        history: List[Dict] = []
        try:
            history = [_history_item(r) for r in self.db.get_game_history(limit)]
        except Exception as e:
            logger.error(f"Error reading history: {e}")

        stats = default_stats()
        stats["gameHistory"] = history
        if row:
            stats.update(
                totalBets=row["total_bets"] or 0,
                totalWagered=row["total_wagered"] or 0,
                wins=row["wins"] or 0,
                losses=row["losses"] or 0,
            )
        return stats

    def record(self, result: str, amount, player_wallet: Optional[str] = None) -> Dict:
        """
        Record one finished round and return the refreshed snapshot.

        Raises:
            InvalidRequest: result is not win/loss or amount is missing, non-finite
                or non-positive.
            StatsWriteError: the aggregate row could not be updated. The history
                row may already have been written at that point.
        """
        if result not in VALID_RESULTS or not amount:
            raise InvalidRequest("Invalid request data")
        try:
            amount = float(amount)
        except (TypeError, ValueError):
            raise InvalidRequest("Invalid request data")
        if not math.isfinite(amount) or amount <= 0:
            raise InvalidRequest("Invalid request data")

        try:
            self.db.insert_game_history(result, amount, player_wallet or None)
        except Exception as e:
            # Totals matter more than the history row; keep going
            logger.error(f"Error inserting game history: {e}")

        try:
            self.db.increment_global_stats(result, amount)
        except Exception as e:
            logger.error(f"Error writing stats: {e}")
            raise StatsWriteError(str(e) or "Failed to update stats") from e

        logger.info(
            "Round recorded",
            extra={"result": result, "amount": amount, "player_wallet": player_wallet},
        )
        return self.read(settings.stats.fetch_limit)
