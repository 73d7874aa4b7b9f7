"""Core interfaces for the paper trading engine."""

from datetime import datetime
from typing import Protocol, runtime_checkable

from .types import FilterDecision, MarketSnapshot, TradeLogEntry, WalletLogEntry


class MarketDataSource(Protocol):
    """Market data source protocol."""

    async def poll(self) -> list[MarketSnapshot]:
        """Poll for the current batch of pair snapshots.

        Raises:
            MarketDataError: When the batch could not be fetched
        """
        ...


class Filter(Protocol):
    """Snapshot eligibility filter protocol."""

    def evaluate(
        self, snap: MarketSnapshot, now: datetime | None = None
    ) -> FilterDecision:
        """Evaluate a snapshot at time `now` and return the filter decision."""
        ...


@runtime_checkable
class LedgerSink(Protocol):
    """Append-only sink for trade and wallet records."""

    async def record_trade(self, entry: TradeLogEntry) -> None:
        """Append a trade record."""
        ...

    async def record_wallet(self, entry: WalletLogEntry) -> None:
        """Append a wallet record."""
        ...


class SnapshotSink(Protocol):
    """Bulk sink for raw pair snapshots."""

    async def insert_snapshot_batch(self, snapshots: list[MarketSnapshot]) -> int:
        """Insert snapshots and return the number of stored rows."""
        ...
