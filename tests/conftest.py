"""Shared fixtures for the paper trading tests."""

from datetime import UTC, datetime, timedelta

import pytest

from paperbot.core.types import (
    MarketSnapshot,
    TokenRef,
    WindowCounts,
    WindowTxns,
    WindowValues,
)

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

SOL_MINT = "So11111111111111111111111111111111111111112"


@pytest.fixture
def now() -> datetime:
    """Fixed decision time used across tests."""
    return NOW


@pytest.fixture
def make_snapshot():
    """Factory for eligible-by-default pair snapshots."""

    def _make(
        pair_address: str = "PAIR1",
        symbol: str = "TKN",
        price_native: float = 1.0,
        liquidity_usd: float = 10000.0,
        volume_m5: float = 1000.0,
        change_m5: float = 1.0,
        change_h1: float = 2.0,
        buys_m5: int = 10,
        sells_m5: int = 10,
        quote_symbol: str = "SOL",
        created_at: datetime | None = NOW - timedelta(hours=2),
        observed_at: datetime = NOW,
    ) -> MarketSnapshot:
        return MarketSnapshot(
            pair_address=pair_address,
            dex_id="raydium",
            base=TokenRef(address=f"{pair_address}-mint", symbol=symbol),
            quote=TokenRef(address=SOL_MINT, symbol=quote_symbol),
            price_native=price_native,
            price_usd=price_native * 100,
            liquidity_usd=liquidity_usd,
            volume=WindowValues(m5=volume_m5, h1=volume_m5 * 12),
            price_change=WindowValues(m5=change_m5, h1=change_h1),
            txns=WindowCounts(m5=WindowTxns(buys=buys_m5, sells=sells_m5)),
            pair_created_at=created_at,
            observed_at=observed_at,
        )

    return _make
