"""Append-only ledger persistence: JSON Lines files and SQLite."""

import asyncio
import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from ..core.interfaces import LedgerSink, SnapshotSink
from ..core.types import MarketSnapshot, TradeLogEntry, WalletLogEntry

logger = structlog.get_logger(__name__)

_SNAPSHOT_COLUMNS = (
    "timestamp",
    "pair_address",
    "base_token_address",
    "base_token_symbol",
    "quote_token_address",
    "quote_token_symbol",
    "price_native",
    "price_usd",
    "liquidity_usd",
    "volume_m5",
    "volume_h1",
    "volume_h6",
    "volume_h24",
    "price_change_m5",
    "price_change_h1",
    "price_change_h6",
    "price_change_h24",
    "txns_m5_buys",
    "txns_m5_sells",
    "txns_h1_buys",
    "txns_h1_sells",
    "pair_created_at",
)


def snapshot_row(snap: MarketSnapshot) -> tuple[Any, ...]:
    """Flatten a snapshot into a ``pair_snapshots`` row."""
    return (
        snap.observed_at.isoformat(),
        snap.pair_address,
        snap.base.address,
        snap.base.symbol,
        snap.quote.address,
        snap.quote.symbol,
        snap.price_native,
        snap.price_usd,
        snap.liquidity_usd,
        snap.volume.m5,
        snap.volume.h1,
        snap.volume.h6,
        snap.volume.h24,
        snap.price_change.m5,
        snap.price_change.h1,
        snap.price_change.h6,
        snap.price_change.h24,
        snap.txns.m5.buys,
        snap.txns.m5.sells,
        snap.txns.h1.buys,
        snap.txns.h1.sells,
        snap.pair_created_at.isoformat() if snap.pair_created_at else None,
    )


class JsonlLedger(LedgerSink):
    """Appends one JSON object per line to the trade and wallet log files."""

    def __init__(self, trades_path: str, wallet_path: str) -> None:
        """Initialize JSON Lines ledger.

        Args:
            trades_path: Trade log file
            wallet_path: Wallet log file
        """
        self.trades_path = Path(trades_path)
        self.wallet_path = Path(wallet_path)

    @staticmethod
    def _append(path: Path, line: str) -> None:
        if path.parent != Path("."):
            path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    async def record_trade(self, entry: TradeLogEntry) -> None:
        """Append a trade record; the file write runs in a worker thread."""
        await asyncio.to_thread(
            self._append, self.trades_path, entry.model_dump_json(exclude_none=True)
        )

    async def record_wallet(self, entry: WalletLogEntry) -> None:
        """Append a wallet record; the file write runs in a worker thread."""
        await asyncio.to_thread(
            self._append, self.wallet_path, entry.model_dump_json(exclude_none=True)
        )


class SQLiteStorage(LedgerSink, SnapshotSink):
    """SQLite-based ledger and snapshot storage."""

    def __init__(self, db_path: str = "paperbot.sqlite") -> None:
        """Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        logger.info("SQLite storage initialized", db_path=db_path)

    async def initialize(self) -> None:
        """Initialize database tables."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS pair_snapshots (
                    timestamp TEXT NOT NULL,
                    pair_address TEXT NOT NULL,
                    base_token_address TEXT NOT NULL,
                    base_token_symbol TEXT,
                    quote_token_address TEXT NOT NULL,
                    quote_token_symbol TEXT,
                    price_native REAL,
                    price_usd REAL,
                    liquidity_usd REAL,
                    volume_m5 REAL,
                    volume_h1 REAL,
                    volume_h6 REAL,
                    volume_h24 REAL,
                    price_change_m5 REAL,
                    price_change_h1 REAL,
                    price_change_h6 REAL,
                    price_change_h24 REAL,
                    txns_m5_buys INTEGER,
                    txns_m5_sells INTEGER,
                    txns_h1_buys INTEGER,
                    txns_h1_sells INTEGER,
                    pair_created_at TEXT,
                    PRIMARY KEY (timestamp, pair_address)
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_pair_snapshots_pair_timestamp
                ON pair_snapshots(pair_address, timestamp DESC)
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS trades (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    action TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    pair_address TEXT NOT NULL,
                    sol_amount REAL NOT NULL,
                    token_amount REAL NOT NULL,
                    price_native REAL NOT NULL,
                    fee_sol REAL NOT NULL,
                    profit_loss_sol REAL,
                    reason TEXT
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS wallet_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    sol_balance REAL NOT NULL,
                    holding TEXT NOT NULL,
                    trades_made INTEGER NOT NULL,
                    fees_paid REAL NOT NULL
                )
            """)

            await db.commit()

        logger.info("Database tables initialized")

    async def insert_snapshot_batch(self, snapshots: Sequence[MarketSnapshot]) -> int:
        """Bulk insert snapshots, ignoring (timestamp, pair) duplicates.

        Returns:
            Number of rows inserted
        """
        if not snapshots:
            return 0

        placeholders = ", ".join("?" for _ in _SNAPSHOT_COLUMNS)
        sql = (
            f"INSERT OR IGNORE INTO pair_snapshots ({', '.join(_SNAPSHOT_COLUMNS)}) "
            f"VALUES ({placeholders})"
        )

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.executemany(sql, [snapshot_row(s) for s in snapshots])
            inserted = cursor.rowcount
            await db.commit()

        if inserted != len(snapshots):
            logger.warning(
                "Snapshot batch partially inserted",
                expected=len(snapshots),
                inserted=inserted,
            )
        return inserted

    async def record_trade(self, entry: TradeLogEntry) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO trades (
                    timestamp, action, symbol, pair_address, sol_amount,
                    token_amount, price_native, fee_sol, profit_loss_sol, reason
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    entry.timestamp.isoformat(),
                    entry.action.value,
                    entry.symbol,
                    entry.pair_address,
                    entry.sol_amount,
                    entry.token_amount,
                    entry.price_native,
                    entry.fee_sol,
                    entry.profit_loss_sol,
                    entry.reason,
                ),
            )
            await db.commit()

        logger.debug("Trade recorded", action=entry.action.value, symbol=entry.symbol)

    async def record_wallet(self, entry: WalletLogEntry) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO wallet_log (timestamp, sol_balance, holding, trades_made, fees_paid)
                VALUES (?, ?, ?, ?, ?)
            """,
                (
                    entry.timestamp.isoformat(),
                    entry.sol_balance,
                    entry.holding.model_dump_json(exclude_none=True),
                    entry.trades_made,
                    entry.fees_paid,
                ),
            )
            await db.commit()

    async def load_trades(self, limit: int = 100) -> list[dict[str, Any]]:
        """Load the most recent trades, newest first."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM trades ORDER BY id DESC LIMIT ?", (limit,)
            ) as cursor:
                rows = await cursor.fetchall()

        return [dict(row) for row in rows]

    async def load_wallet_log(self, limit: int = 100) -> list[dict[str, Any]]:
        """Load the most recent wallet records, newest first, with holding decoded."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM wallet_log ORDER BY id DESC LIMIT ?", (limit,)
            ) as cursor:
                rows = await cursor.fetchall()

        records = []
        for row in rows:
            record = dict(row)
            record["holding"] = json.loads(record["holding"])
            records.append(record)
        return records

    async def count_snapshots(self) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT COUNT(*) FROM pair_snapshots") as cursor:
                row = await cursor.fetchone()
        return row[0] if row else 0

    async def close(self) -> None:
        """Close storage (cleanup if needed)."""
        logger.info("Storage closed")

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()


class CompositeLedger(LedgerSink):
    """Fans records out to several sinks; a failing sink never blocks the others."""

    def __init__(self, sinks: Sequence[LedgerSink]) -> None:
        self.sinks = list(sinks)

    async def record_trade(self, entry: TradeLogEntry) -> None:
        for sink in self.sinks:
            try:
                await sink.record_trade(entry)
            except (OSError, aiosqlite.Error) as e:
                logger.error(
                    "Failed to persist trade",
                    sink=type(sink).__name__,
                    action=entry.action.value,
                    symbol=entry.symbol,
                    error=str(e),
                )

    async def record_wallet(self, entry: WalletLogEntry) -> None:
        for sink in self.sinks:
            try:
                await sink.record_wallet(entry)
            except (OSError, aiosqlite.Error) as e:
                logger.error(
                    "Failed to persist wallet state",
                    sink=type(sink).__name__,
                    error=str(e),
                )
