"""
Database module for persistent storage.
Uses SQLite for the aggregate game statistics, the append-only game history
and the optional ledger of settled transfer signatures.
"""

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from double_or_nothing.config import settings
from double_or_nothing.core.logger import get_logger

logger = get_logger("database")

# Fixed key of the singleton aggregate row
GLOBAL_STATS_ID = 1


class Database:
    """Thread-safe SQLite database wrapper (one connection per thread)."""

    def __init__(self, db_path: Path = None):
        self.db_path = Path(db_path) if db_path else settings.paths.get_db_path()
        self._local = threading.local()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initializing database at {self.db_path}")
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        if getattr(self._local, "connection", None) is None:
            self._local.connection = sqlite3.connect(
                str(self.db_path), check_same_thread=False, timeout=30
            )
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    def _init_db(self):
        conn = self._get_connection()
        cursor = conn.cursor()

        # Global stats - a single row pinned to id 1
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS global_stats (
                id INTEGER PRIMARY KEY DEFAULT 1,
                total_bets INTEGER DEFAULT 0,
                total_wagered REAL DEFAULT 0,
                wins INTEGER DEFAULT 0,
                losses INTEGER DEFAULT 0,
                updated_at TEXT,
                CONSTRAINT single_row CHECK (id = 1)
            )
        """
        )

        # Game history - append only
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS game_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                result TEXT NOT NULL CHECK (result IN ('win', 'loss')),
                amount REAL NOT NULL,
                player_wallet TEXT,
                timestamp TEXT NOT NULL
            )
        """
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_game_history_timestamp ON game_history(timestamp DESC)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_game_history_result ON game_history(result)"
        )

        # Settled transfer signatures, only written when duplicate rejection is on
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS settled_signatures (
                signature TEXT PRIMARY KEY,
                player_wallet TEXT,
                settled_at TEXT NOT NULL
            )
        """
        )

        conn.commit()

    # ==================== Global Stats ====================

    def get_global_stats(self) -> Optional[Dict]:
        """Return the aggregate row, or None if nothing was ever recorded."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("SELECT * FROM global_stats WHERE id = ?", (GLOBAL_STATS_ID,))
        row = cursor.fetchone()
        return dict(row) if row else None

    def increment_global_stats(self, result: str, amount: float):
        """
        Count one finished round in the aggregate row.
        Single upsert statement, so concurrent writers never lose an increment.
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        is_win = 1 if result == "win" else 0
        cursor.execute(
            """
            INSERT INTO global_stats (id, total_bets, total_wagered, wins, losses, updated_at)
            VALUES (?, 1, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                total_bets = total_bets + 1,
                total_wagered = total_wagered + excluded.total_wagered,
                wins = wins + excluded.wins,
                losses = losses + excluded.losses,
                updated_at = excluded.updated_at
        """,
            (
                GLOBAL_STATS_ID,
                amount,
                is_win,
                1 - is_win,
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        conn.commit()

    # ==================== Game History ====================

    def insert_game_history(
        self, result: str, amount: float, player_wallet: str = None
    ) -> int:
        """Append one round to the history table."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            """
            INSERT INTO game_history (result, amount, player_wallet, timestamp)
            VALUES (?, ?, ?, ?)
        """,
            (result, amount, player_wallet, datetime.now(timezone.utc).isoformat()),
        )
        conn.commit()
        return cursor.lastrowid

    def get_game_history(self, limit: int = 100) -> List[Dict]:
        """Get the most recent rounds, newest first."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            """
            SELECT * FROM game_history
            ORDER BY timestamp DESC, id DESC LIMIT ?
        """,
            (limit,),
        )
        return [dict(row) for row in cursor.fetchall()]

    # ==================== Settled Signatures ====================

    def claim_signature(self, signature: str, player_wallet: str = None) -> bool:
        """
        Record a transfer signature as settled.
        Returns False if it was already claimed.
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            """
            INSERT OR IGNORE INTO settled_signatures (signature, player_wallet, settled_at)
            VALUES (?, ?, ?)
        """,
            (signature, player_wallet, datetime.now(timezone.utc).isoformat()),
        )
        conn.commit()
        return cursor.rowcount == 1

    def is_signature_settled(self, signature: str) -> bool:
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT 1 FROM settled_signatures WHERE signature = ?", (signature,)
        )
        return cursor.fetchone() is not None

    def close(self):
        """Close this thread's connection."""
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            conn.close()
            self._local.connection = None


_db: Optional[Database] = None


def get_db() -> Database:
    """Shared database instance, created on first use."""
    global _db
    if _db is None:
        _db = Database()
    return _db
