"""Candidate ranking by composite score."""

from collections.abc import Iterable

from ..core.types import ScoredCandidate


def rank_candidates(candidates: Iterable[ScoredCandidate]) -> list[ScoredCandidate]:
    """Order candidates by score, highest first.

    The sort is stable, so equal scores keep their input order.
    """
    return sorted(candidates, key=lambda c: c.score, reverse=True)


def top_candidate(ranked: list[ScoredCandidate]) -> ScoredCandidate | None:
    """Return the first ranked candidate, or None for an empty list."""
    return ranked[0] if ranked else None


def format_top_scorers(ranked: list[ScoredCandidate], count: int = 10) -> list[str]:
    """Render the leading candidates as log lines with raw and normalized values."""
    lines = []
    for i, c in enumerate(ranked[:count], start=1):
        s = c.snapshot
        lines.append(
            f"{i:2d}. {c.symbol:<10} | Score: {c.score:.4f} "
            f"[m5:{s.price_change.m5:.2f}({c.norm_m5_change:.2f}) "
            f"h1:{s.price_change.h1:.2f}({c.norm_h1_change:.2f}) "
            f"vol:{s.volume.m5:.0f}({c.norm_m5_volume:.2f}) "
            f"b/s:{c.buy_sell_ratio:.2f}({c.norm_buy_sell_ratio:.2f}) "
            f"liq:{s.liquidity_usd:.0f}({c.norm_liquidity:.2f})] "
            f"| Pair: {c.pair_address}"
        )
    return lines
