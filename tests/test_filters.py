"""Tests for the eligibility filter."""

from datetime import timedelta

import pytest

from paperbot.filters.basic import EligibilityFilter


@pytest.fixture
def eligibility(now):
    """Filter with the default thresholds and a fixed clock."""
    return EligibilityFilter(now_fn=lambda: now)


class TestEligibilityFilter:
    """Test eligibility criteria."""

    def test_accepts_healthy_pair(self, eligibility, make_snapshot):
        """Test that a pair meeting every criterion is accepted."""
        decision = eligibility.evaluate(make_snapshot())

        assert decision.accepted
        assert decision.reasons == []

    def test_rejects_non_sol_quote(self, eligibility, make_snapshot):
        """Test the quote allow-set."""
        decision = eligibility.evaluate(make_snapshot(quote_symbol="USDC"))

        assert not decision.accepted
        assert any("Quote" in r for r in decision.reasons)

    def test_rejects_low_liquidity(self, eligibility, make_snapshot):
        """Test the liquidity floor."""
        decision = eligibility.evaluate(make_snapshot(liquidity_usd=1999.0))

        assert not decision.accepted
        assert any("Liquidity too low" in r for r in decision.reasons)

    def test_liquidity_at_threshold_accepted(self, eligibility, make_snapshot):
        """Test that thresholds are inclusive."""
        decision = eligibility.evaluate(
            make_snapshot(liquidity_usd=2000.0, volume_m5=500.0)
        )
        assert decision.accepted

    def test_rejects_low_volume(self, eligibility, make_snapshot):
        """Test the 5-minute volume floor."""
        decision = eligibility.evaluate(make_snapshot(volume_m5=100.0))

        assert not decision.accepted
        assert any("5m volume too low" in r for r in decision.reasons)

    def test_rejects_young_pair(self, eligibility, make_snapshot, now):
        """Test the minimum pair age."""
        decision = eligibility.evaluate(
            make_snapshot(created_at=now - timedelta(minutes=30))
        )

        assert not decision.accepted
        assert any("Pair too new" in r for r in decision.reasons)

    def test_rejects_unknown_creation_time(self, eligibility, make_snapshot):
        """Test that pairs without a creation time are not eligible."""
        decision = eligibility.evaluate(make_snapshot(created_at=None))

        assert not decision.accepted
        assert "Pair creation time unknown" in decision.reasons

    def test_collects_all_reasons(self, eligibility, make_snapshot):
        """Test that every failing criterion is reported."""
        decision = eligibility.evaluate(
            make_snapshot(quote_symbol="USDC", liquidity_usd=10.0, volume_m5=1.0)
        )
        assert len(decision.reasons) == 3

    def test_filter_batch_preserves_order(self, eligibility, make_snapshot):
        """Test that batch filtering keeps input order."""
        batch = [
            make_snapshot(pair_address="A"),
            make_snapshot(pair_address="B", liquidity_usd=10.0),
            make_snapshot(pair_address="C"),
        ]

        eligible = eligibility.filter_batch(batch)

        assert [s.pair_address for s in eligible] == ["A", "C"]

    def test_custom_quote_symbols(self, now, make_snapshot):
        """Test a configured quote allow-set."""
        eligibility = EligibilityFilter(quote_symbols=["SOL", "USDC"], now_fn=lambda: now)
        assert eligibility.evaluate(make_snapshot(quote_symbol="USDC")).accepted

    def test_explicit_time_overrides_clock(self, eligibility, make_snapshot, now):
        """Test that pair age is measured at the time passed in."""
        snap = make_snapshot(created_at=now - timedelta(minutes=90))

        assert eligibility.evaluate(snap).accepted
        assert not eligibility.evaluate(snap, now - timedelta(hours=1)).accepted
        assert eligibility.filter_batch([snap], now - timedelta(hours=1)) == []
