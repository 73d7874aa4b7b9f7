"""Eligibility filter applied before scoring."""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime

import structlog

from ..core.interfaces import Filter
from ..core.types import FilterDecision, MarketSnapshot

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EligibilityFilter(Filter):
    """Quote allow-set, liquidity, 5m volume, pair age and price checks."""

    def __init__(
        self,
        quote_symbols: Iterable[str] = ("SOL",),
        min_liquidity_usd: float = 2000.0,
        min_volume_m5_usd: float = 500.0,
        min_age_seconds: float = 3600.0,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize eligibility filter.

        Args:
            quote_symbols: Quote token symbols a pair may trade against
            min_liquidity_usd: Minimum pool liquidity in USD
            min_volume_m5_usd: Minimum 5-minute volume in USD
            min_age_seconds: Minimum pair age in seconds
            now_fn: Optional function returning the current UTC time (for testing)
        """
        self.quote_symbols = frozenset(quote_symbols)
        self.min_liquidity_usd = min_liquidity_usd
        self.min_volume_m5_usd = min_volume_m5_usd
        self.min_age_seconds = min_age_seconds
        self._now_fn = now_fn or _utcnow

    def evaluate(
        self, snap: MarketSnapshot, now: datetime | None = None
    ) -> FilterDecision:
        """Evaluate a snapshot against the eligibility criteria.

        Args:
            snap: Snapshot to check
            now: Time the pair age is measured at; defaults to the filter clock
        """
        reasons = []

        if snap.quote.symbol not in self.quote_symbols:
            reasons.append(f"Quote {snap.quote.symbol!r} not allowed")

        if snap.liquidity_usd < self.min_liquidity_usd:
            reasons.append(
                f"Liquidity too low: ${snap.liquidity_usd:.2f} < ${self.min_liquidity_usd:.2f}"
            )

        if snap.volume.m5 < self.min_volume_m5_usd:
            reasons.append(
                f"5m volume too low: ${snap.volume.m5:.2f} < ${self.min_volume_m5_usd:.2f}"
            )

        age = snap.age_seconds(now or self._now_fn())
        if age is None:
            reasons.append("Pair creation time unknown")
        elif age < self.min_age_seconds:
            reasons.append(f"Pair too new: {age:.0f}s < {self.min_age_seconds:.0f}s")

        if snap.price_native <= 0:
            reasons.append("Invalid native price")

        return FilterDecision(accepted=not reasons, reasons=reasons)

    def filter_batch(
        self, snapshots: Iterable[MarketSnapshot], now: datetime | None = None
    ) -> list[MarketSnapshot]:
        """Return the eligible snapshots, preserving input order."""
        now = now or self._now_fn()
        eligible = []
        rejected = 0
        for snap in snapshots:
            decision = self.evaluate(snap, now)
            if decision.accepted:
                eligible.append(snap)
            else:
                rejected += 1

        logger.debug("Eligibility filter applied", eligible=len(eligible), rejected=rejected)
        return eligible
