"""Per-cycle min-max normalization of snapshot metrics into composite scores."""

from collections.abc import Callable, Sequence

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..core.types import MarketSnapshot, ScoredCandidate

logger = structlog.get_logger(__name__)

WEIGHT_TOLERANCE = 1e-9


class ScoringWeights(BaseModel):
    """Composite score weights. Must be non-negative and sum to 1.0."""

    model_config = ConfigDict(frozen=True)

    m5_change: float = Field(default=0.30, ge=0)
    h1_change: float = Field(default=0.15, ge=0)
    m5_volume: float = Field(default=0.20, ge=0)
    buy_sell_ratio: float = Field(default=0.25, ge=0)
    liquidity: float = Field(default=0.10, ge=0)

    @model_validator(mode="after")
    def _check_sum(self) -> "ScoringWeights":
        total = (
            self.m5_change
            + self.h1_change
            + self.m5_volume
            + self.buy_sell_ratio
            + self.liquidity
        )
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.6f}")
        return self


def normalize(value: float, lo: float, hi: float) -> float:
    """Min-max normalize a value, 0.0 for a single-valued range."""
    if hi == lo:
        return 0.0
    return (value - lo) / (hi - lo)


def _bounds(
    snapshots: Sequence[MarketSnapshot], metric: Callable[[MarketSnapshot], float]
) -> tuple[float, float]:
    values = [metric(s) for s in snapshots]
    return min(values), max(values)


def _m5_change(s: MarketSnapshot) -> float:
    return s.price_change.m5


def _h1_change(s: MarketSnapshot) -> float:
    return s.price_change.h1


def _m5_volume(s: MarketSnapshot) -> float:
    return s.volume.m5


def _buy_sell_ratio(s: MarketSnapshot) -> float:
    return s.m5_buy_sell_ratio


def _liquidity(s: MarketSnapshot) -> float:
    return s.liquidity_usd


class SnapshotNormalizer:
    """Turns a batch of eligible snapshots into scored candidates.

    Normalization is relative to the batch, so scores only compare within
    one decision cycle.
    """

    def __init__(self, weights: ScoringWeights | None = None) -> None:
        self.weights = weights or ScoringWeights()

    def score(self, snapshots: Sequence[MarketSnapshot]) -> list[ScoredCandidate]:
        """Score a batch, returning one candidate per snapshot in input order.

        Args:
            snapshots: Eligible snapshots for this cycle

        Returns:
            Scored candidates; all scores are 0 for batches smaller than two
        """
        if len(snapshots) < 2:
            return [
                ScoredCandidate(snapshot=s, buy_sell_ratio=s.m5_buy_sell_ratio)
                for s in snapshots
            ]

        m5_lo, m5_hi = _bounds(snapshots, _m5_change)
        h1_lo, h1_hi = _bounds(snapshots, _h1_change)
        vol_lo, vol_hi = _bounds(snapshots, _m5_volume)
        ratio_lo, ratio_hi = _bounds(snapshots, _buy_sell_ratio)
        liq_lo, liq_hi = _bounds(snapshots, _liquidity)

        w = self.weights
        candidates = []
        for s in snapshots:
            ratio = s.m5_buy_sell_ratio
            norm_m5 = normalize(s.price_change.m5, m5_lo, m5_hi)
            norm_h1 = normalize(s.price_change.h1, h1_lo, h1_hi)
            norm_vol = normalize(s.volume.m5, vol_lo, vol_hi)
            norm_ratio = normalize(ratio, ratio_lo, ratio_hi)
            norm_liq = normalize(s.liquidity_usd, liq_lo, liq_hi)

            candidates.append(
                ScoredCandidate(
                    snapshot=s,
                    buy_sell_ratio=ratio,
                    norm_m5_change=norm_m5,
                    norm_h1_change=norm_h1,
                    norm_m5_volume=norm_vol,
                    norm_buy_sell_ratio=norm_ratio,
                    norm_liquidity=norm_liq,
                    score=(
                        norm_m5 * w.m5_change
                        + norm_h1 * w.h1_change
                        + norm_vol * w.m5_volume
                        + norm_ratio * w.buy_sell_ratio
                        + norm_liq * w.liquidity
                    ),
                )
            )

        logger.debug("Scored candidates", count=len(candidates))
        return candidates
