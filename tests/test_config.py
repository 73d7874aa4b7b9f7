"""Tests for configuration management."""

import tempfile
from datetime import timedelta
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from paperbot.config.settings import AppSettings, configure_logging, load_settings


class TestAppSettings:
    """Test AppSettings model."""

    def test_default_settings(self):
        """Test default settings values."""
        settings = AppSettings(env="paper")

        assert settings.env == "paper"
        assert settings.trade_size_sol == 1.0
        assert settings.fee_rate == 0.003
        assert settings.min_score_to_enter == 0.65
        assert settings.take_profit_multiplier == 1.05
        assert settings.trailing_stop_fraction == 0.03
        assert settings.liquidity_drop_fraction == 0.30
        assert settings.starting_balance_sol == 10.0
        assert settings.poll_interval_seconds == 30.0
        assert settings.quote_symbols == ["SOL"]
        assert settings.max_missing_cycles == 0

    def test_weights_must_sum_to_one(self):
        """Test that scoring weights are validated."""
        with pytest.raises(ValidationError):
            AppSettings(env="paper", weight_m5_change=0.5)

    def test_rebalanced_weights_accepted(self):
        """Test that custom weights summing to one are accepted."""
        settings = AppSettings(
            env="paper",
            weight_m5_change=0.2,
            weight_h1_change=0.2,
            weight_m5_volume=0.2,
            weight_buy_sell_ratio=0.2,
            weight_liquidity=0.2,
        )
        assert settings.scoring_weights().liquidity == 0.2

    def test_invalid_take_profit(self):
        """Test that a take profit multiplier of one or less is rejected."""
        with pytest.raises(ValidationError):
            AppSettings(env="paper", take_profit_multiplier=1.0)

    def test_invalid_env(self):
        """Test that unknown environments are rejected."""
        with pytest.raises(ValidationError):
            AppSettings(env="live")

    def test_environment_override(self, monkeypatch):
        """Test that prefixed environment variables override defaults."""
        monkeypatch.setenv("PAPERBOT_TRADE_SIZE_SOL", "0.5")
        settings = AppSettings(env="paper")
        assert settings.trade_size_sol == 0.5

    def test_component_builders(self):
        """Test building strategy config and filter from settings."""
        settings = AppSettings(
            env="paper", min_pair_age_hours=2.0, max_missing_cycles=3
        )

        config = settings.strategy_config()
        assert config.max_missing_cycles == 3
        assert config.fee_rate == settings.fee_rate

        eligibility = settings.eligibility_filter()
        assert eligibility.min_age_seconds == 7200
        assert eligibility.quote_symbols == frozenset({"SOL"})


class TestLoadSettings:
    """Test settings loading from YAML."""

    def test_load_valid_config(self):
        """Test loading a valid configuration file."""
        config = {"trade_size_sol": 2.0, "min_score_to_enter": 0.7}

        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump(config, f)
            config_path = f.name

        try:
            settings = load_settings("dev", config_path)
            assert settings.env == "dev"
            assert settings.trade_size_sol == 2.0
            assert settings.min_score_to_enter == 0.7
        finally:
            Path(config_path).unlink()

    def test_load_empty_config(self):
        """Test that an empty file yields defaults."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            config_path = f.name

        try:
            settings = load_settings("paper", config_path)
            assert settings.trade_size_sol == 1.0
        finally:
            Path(config_path).unlink()

    def test_invalid_profile(self):
        """Test error for invalid profile."""
        with pytest.raises(ValueError, match="Invalid profile"):
            load_settings("live", "configs/paper.yaml")

    def test_missing_config_file(self):
        """Test error for missing configuration file."""
        with pytest.raises(FileNotFoundError):
            load_settings("paper", "nonexistent.yaml")

    def test_invalid_yaml(self):
        """Test that malformed YAML is reported as ValueError."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("trade_size_sol: [1.0\n")
            config_path = f.name

        try:
            with pytest.raises(ValueError, match="Invalid YAML"):
                load_settings("paper", config_path)
        finally:
            Path(config_path).unlink()

    def test_invalid_values(self):
        """Test that out-of-range values fail validation."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump({"fee_rate": 1.5}, f)
            config_path = f.name

        try:
            with pytest.raises(ValidationError):
                load_settings("paper", config_path)
        finally:
            Path(config_path).unlink()

    def test_shipped_profiles_load(self):
        """Test that the bundled profiles are valid."""
        root = Path(__file__).resolve().parent.parent / "configs"
        paper = load_settings("paper", str(root / "paper.yaml"))
        dev = load_settings("dev", str(root / "dev.yaml"))

        assert paper.database_path == "paperbot.sqlite"
        assert dev.database_path is None
        assert dev.max_missing_cycles == 5


def test_configure_logging_accepts_json_and_console():
    """Test that both renderers can be configured."""
    configure_logging("DEBUG", json_logs=True)
    configure_logging("INFO", json_logs=False)


class TestFetchSettings:
    """Test market data fetch settings."""

    def test_attempts_must_fit_fetch_budget(self):
        """Test that per-request timeouts cannot exceed the fetch bound."""
        with pytest.raises(ValidationError):
            AppSettings(
                env="paper",
                fetch_timeout_seconds=10.0,
                request_timeout_seconds=5.0,
                fetch_max_attempts=3,
            )

    def test_market_data_source_uses_request_timeout(self):
        """Test that each HTTP attempt gets the per-request timeout."""
        settings = AppSettings(env="paper")

        source = settings.market_data_source()

        assert source.timeout == 2.5
        assert source.max_attempts == 3
        assert source.timeout * source.max_attempts <= settings.fetch_timeout_seconds

    def test_held_lookup_default_and_choices(self):
        """Test the held pair lookup mode."""
        assert AppSettings(env="paper").held_lookup == "eligible"
        assert AppSettings(env="paper", held_lookup="all").held_lookup == "all"
        with pytest.raises(ValidationError):
            AppSettings(env="paper", held_lookup="sometimes")

    def test_eligibility_filter_uses_given_clock(self, make_snapshot, now):
        """Test that the built filter measures age with the injected clock."""
        eligibility = AppSettings(env="paper").eligibility_filter(lambda: now)
        young = make_snapshot(created_at=now - timedelta(minutes=5))

        assert not eligibility.evaluate(young).accepted
