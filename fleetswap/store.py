"""
SQLite-backed audit log for swap attempts and detected copy-trade events.
Writes are serialized with a lock and run in the default executor.
"""

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Union
import structlog

from .models import TransactionRecord, DetectedTrade, Direction, TxStatus, BotMode

logger = structlog.get_logger(__name__)

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id TEXT PRIMARY KEY,
        signature TEXT NOT NULL DEFAULT '',
        wallet_id TEXT NOT NULL,
        wallet_public_key TEXT NOT NULL,
        token_mint TEXT NOT NULL,
        direction TEXT NOT NULL,
        amount_sol REAL NOT NULL,
        amount_token INTEGER,
        dex TEXT NOT NULL,
        status TEXT NOT NULL,
        error TEXT,
        bot_mode TEXT NOT NULL,
        round INTEGER NOT NULL DEFAULT 0,
        created_at INTEGER NOT NULL
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_transactions_created
        ON transactions(created_at);
    """,
    """
    CREATE TABLE IF NOT EXISTS detected_trades (
        id TEXT PRIMARY KEY,
        signature TEXT NOT NULL UNIQUE,
        target_wallet TEXT NOT NULL,
        token_mint TEXT NOT NULL,
        direction TEXT NOT NULL,
        amount_sol REAL NOT NULL,
        dex TEXT NOT NULL,
        replicated INTEGER NOT NULL DEFAULT 0,
        detected_at INTEGER NOT NULL
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_detected_trades_time
        ON detected_trades(detected_at);
    """,
]


def _row_to_transaction(row: sqlite3.Row) -> TransactionRecord:
    return TransactionRecord(
        id=row["id"],
        signature=row["signature"],
        wallet_id=row["wallet_id"],
        wallet_public_key=row["wallet_public_key"],
        token_mint=row["token_mint"],
        direction=Direction(row["direction"]),
        amount_sol=row["amount_sol"],
        amount_token=row["amount_token"],
        dex=row["dex"],
        status=TxStatus(row["status"]),
        error=row["error"],
        bot_mode=BotMode(row["bot_mode"]),
        round=row["round"],
        created_at=row["created_at"],
    )


def _row_to_detected(row: sqlite3.Row) -> DetectedTrade:
    return DetectedTrade(
        id=row["id"],
        signature=row["signature"],
        target_wallet=row["target_wallet"],
        token_mint=row["token_mint"],
        direction=Direction(row["direction"]),
        amount_sol=row["amount_sol"],
        dex=row["dex"],
        replicated=bool(row["replicated"]),
        detected_at=row["detected_at"],
    )


class TransactionStore:
    """Append/update-once store for TransactionRecord and DetectedTrade."""

    def __init__(self, db_path: Union[Path, str] = Path("data/fleetswap.db")):
        self.db_path = Path(db_path)
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._configure()
        self._create_schema()

    def _configure(self) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL;")
            except sqlite3.DatabaseError as e:
                logger.debug("sqlite_wal_unavailable", error=str(e))
            cursor.close()

    def _create_schema(self) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            for statement in SCHEMA:
                cursor.execute(statement)
            self._connection.commit()
            cursor.close()

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _execute(self, sql: str, params: tuple = ()) -> int:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(sql, params)
            self._connection.commit()
            rowcount = cursor.rowcount
            cursor.close()
        return rowcount

    def _fetch(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(sql, params)
            rows = cursor.fetchall()
            cursor.close()
        return rows

    # Transactions

    async def insert_transaction(self, record: TransactionRecord) -> None:
        await self._run(
            self._execute,
            """
            INSERT INTO transactions (
                id, signature, wallet_id, wallet_public_key, token_mint, direction,
                amount_sol, amount_token, dex, status, error, bot_mode, round, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id, record.signature, record.wallet_id, record.wallet_public_key,
                record.token_mint, record.direction.value, record.amount_sol, record.amount_token,
                record.dex, record.status.value, record.error, record.bot_mode.value,
                record.round, record.created_at,
            ),
        )

    async def update_transaction(self, record: TransactionRecord) -> None:
        """Persist the terminal fields of a record."""
        await self._run(
            self._execute,
            """
            UPDATE transactions
               SET status = ?, signature = ?, amount_token = ?, error = ?
             WHERE id = ?
            """,
            (record.status.value, record.signature, record.amount_token, record.error, record.id),
        )

    async def get_transaction(self, record_id: str) -> Optional[TransactionRecord]:
        rows = await self._run(self._fetch, "SELECT * FROM transactions WHERE id = ?", (record_id,))
        return _row_to_transaction(rows[0]) if rows else None

    async def list_transactions(self, limit: int = 100, offset: int = 0) -> List[TransactionRecord]:
        """Most recent first."""
        rows = await self._run(
            self._fetch,
            "SELECT * FROM transactions ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )
        return [_row_to_transaction(row) for row in rows]

    async def clear_transactions(self) -> int:
        count = await self._run(self._execute, "DELETE FROM transactions")
        logger.info("transactions_cleared", count=count)
        return count

    # Detected trades

    async def insert_detected_trade(self, trade: DetectedTrade) -> bool:
        """Insert once per signature. Returns False when the signature already exists."""
        inserted = await self._run(
            self._execute,
            """
            INSERT OR IGNORE INTO detected_trades (
                id, signature, target_wallet, token_mint, direction,
                amount_sol, dex, replicated, detected_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                trade.id, trade.signature, trade.target_wallet, trade.token_mint,
                trade.direction.value, trade.amount_sol, trade.dex,
                int(trade.replicated), trade.detected_at,
            ),
        )
        if not inserted:
            logger.debug("detected_trade_duplicate", signature=trade.signature[:16])
        return bool(inserted)

    async def mark_trade_replicated(self, signature: str, replicated: bool = True) -> None:
        await self._run(
            self._execute,
            "UPDATE detected_trades SET replicated = ? WHERE signature = ?",
            (int(replicated), signature),
        )

    async def get_detected_trade(self, signature: str) -> Optional[DetectedTrade]:
        rows = await self._run(
            self._fetch, "SELECT * FROM detected_trades WHERE signature = ?", (signature,)
        )
        return _row_to_detected(rows[0]) if rows else None

    async def list_detected_trades(self, limit: int = 50, offset: int = 0) -> List[DetectedTrade]:
        """Most recent first."""
        rows = await self._run(
            self._fetch,
            "SELECT * FROM detected_trades ORDER BY detected_at DESC, rowid DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )
        return [_row_to_detected(row) for row in rows]

    async def count_detected_trades(self) -> int:
        rows = await self._run(self._fetch, "SELECT COUNT(*) AS n FROM detected_trades")
        return rows[0]["n"]

    def close(self) -> None:
        with self._lock:
            self._connection.close()


def create_store(db_path: Union[Path, str]) -> TransactionStore:
    """Factory function to open the SQLite store."""
    return TransactionStore(db_path)
