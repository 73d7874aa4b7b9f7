"""Application settings and configuration management."""

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings

from ..data.dexscreener import DexScreenerSearch
from ..exec.strategy import StrategyConfig
from ..filters.basic import EligibilityFilter
from ..scoring.normalizer import WEIGHT_TOLERANCE, ScoringWeights

logger = structlog.get_logger(__name__)


class AppSettings(BaseSettings):
    """Application settings with environment variable support."""

    # Environment
    env: Literal["dev", "paper"] = Field(description="Environment: dev, paper")

    # Market data
    dexscreener_base: str = Field(
        default="https://api.dexscreener.com/latest/dex",
        description="DexScreener API base URL",
    )
    search_query: str = Field(default="SOL", description="DexScreener search query")
    chain_id: str = Field(default="solana", description="Chain to keep pairs from")
    fetch_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for one market data fetch, retries included",
    )
    request_timeout_seconds: float = Field(
        default=2.5, gt=0, description="Timeout of a single HTTP attempt"
    )
    fetch_max_attempts: int = Field(
        default=3, ge=1, description="HTTP attempts for network errors and 5xx"
    )
    poll_interval_seconds: float = Field(
        default=30.0, gt=0, description="Decision cycle interval in seconds"
    )

    # Trading
    trade_size_sol: float = Field(default=1.0, gt=0, description="SOL per trade")
    fee_rate: float = Field(
        default=0.003, ge=0, lt=1, description="Simulated fee per side"
    )
    min_score_to_enter: float = Field(
        default=0.65, ge=0, le=1, description="Composite score entry threshold"
    )
    starting_balance_sol: float = Field(
        default=10.0, ge=0, description="Initial paper wallet balance"
    )

    # Scoring weights
    weight_m5_change: float = Field(default=0.30, ge=0)
    weight_h1_change: float = Field(default=0.15, ge=0)
    weight_m5_volume: float = Field(default=0.20, ge=0)
    weight_buy_sell_ratio: float = Field(default=0.25, ge=0)
    weight_liquidity: float = Field(default=0.10, ge=0)

    # Exits
    take_profit_multiplier: float = Field(default=1.05, gt=1)
    trailing_stop_fraction: float = Field(default=0.03, gt=0, lt=1)
    liquidity_drop_fraction: float = Field(default=0.30, gt=0, lt=1)
    momentum_fade_floor_pct: float = Field(
        default=0.001, description="Exit when the 5m change percentage drops below"
    )
    momentum_min_hold_seconds: float = Field(
        default=300.0, ge=0, description="Minimum hold before a momentum fade exit"
    )
    max_missing_cycles: int = Field(
        default=0,
        ge=0,
        description="Force an exit after this many cycles without pair data (0=never)",
    )
    held_lookup: Literal["eligible", "all"] = Field(
        default="eligible",
        description="Find the held pair among eligible pairs only, or the whole batch",
    )

    # Eligibility
    quote_symbols: list[str] = Field(
        default_factory=lambda: ["SOL"], description="Allowed quote token symbols"
    )
    min_liquidity_usd: float = Field(default=2000.0, ge=0)
    min_volume_m5_usd: float = Field(default=500.0, ge=0)
    min_pair_age_hours: float = Field(default=1.0, ge=0)

    # Persistence
    trades_log_path: str = Field(default="trades.jsonl")
    wallet_log_path: str = Field(default="wallet_log.jsonl")
    database_path: str | None = Field(
        default="paperbot.sqlite", description="SQLite ledger/snapshot database"
    )

    # Logging
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)
    top_scorers_count: int = Field(default=10, ge=0)

    model_config = {
        "env_prefix": "PAPERBOT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _check_weights(self) -> "AppSettings":
        total = (
            self.weight_m5_change
            + self.weight_h1_change
            + self.weight_m5_volume
            + self.weight_buy_sell_ratio
            + self.weight_liquidity
        )
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.6f}")
        return self

    @model_validator(mode="after")
    def _check_fetch_budget(self) -> "AppSettings":
        # attempts must fit the outer bound; backoff waits use the remainder
        if self.request_timeout_seconds * self.fetch_max_attempts > self.fetch_timeout_seconds:
            raise ValueError(
                "request_timeout_seconds * fetch_max_attempts must not exceed "
                f"fetch_timeout_seconds ({self.fetch_timeout_seconds})"
            )
        return self

    def scoring_weights(self) -> ScoringWeights:
        return ScoringWeights(
            m5_change=self.weight_m5_change,
            h1_change=self.weight_h1_change,
            m5_volume=self.weight_m5_volume,
            buy_sell_ratio=self.weight_buy_sell_ratio,
            liquidity=self.weight_liquidity,
        )

    def strategy_config(self) -> StrategyConfig:
        return StrategyConfig(
            trade_size_sol=self.trade_size_sol,
            fee_rate=self.fee_rate,
            min_score_to_enter=self.min_score_to_enter,
            take_profit_multiplier=self.take_profit_multiplier,
            trailing_stop_fraction=self.trailing_stop_fraction,
            liquidity_drop_fraction=self.liquidity_drop_fraction,
            momentum_fade_floor_pct=self.momentum_fade_floor_pct,
            momentum_min_hold_seconds=self.momentum_min_hold_seconds,
            max_missing_cycles=self.max_missing_cycles,
        )

    def eligibility_filter(
        self, now_fn: Callable[[], datetime] | None = None
    ) -> EligibilityFilter:
        return EligibilityFilter(
            quote_symbols=self.quote_symbols,
            min_liquidity_usd=self.min_liquidity_usd,
            min_volume_m5_usd=self.min_volume_m5_usd,
            min_age_seconds=self.min_pair_age_hours * 3600,
            now_fn=now_fn,
        )

    def market_data_source(self) -> DexScreenerSearch:
        return DexScreenerSearch(
            base_url=self.dexscreener_base,
            query=self.search_query,
            chain_id=self.chain_id,
            timeout=self.request_timeout_seconds,
            max_attempts=self.fetch_max_attempts,
        )


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structlog for console or JSON output."""
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=True,
    )


def load_settings(profile: str, yaml_path: str) -> AppSettings:
    """Load settings from YAML file and environment variables.

    Args:
        profile: Configuration profile name (dev, paper)
        yaml_path: Path to YAML configuration file

    Returns:
        AppSettings instance with loaded configuration

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValidationError: If configuration is invalid
        ValueError: If profile is invalid
    """
    if profile not in ["dev", "paper"]:
        raise ValueError(f"Invalid profile: {profile}. Must be one of: dev, paper")

    yaml_file = Path(yaml_path)
    if not yaml_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    try:
        with open(yaml_file, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        yaml_config["env"] = profile

        logger.info("Loading configuration", profile=profile, yaml_path=yaml_path)

        settings = AppSettings(**yaml_config)

        logger.info(
            "Configuration loaded successfully",
            profile=profile,
            trade_size_sol=settings.trade_size_sol,
            poll_interval_seconds=settings.poll_interval_seconds,
        )

        return settings

    except yaml.YAMLError as e:
        logger.error("Failed to parse YAML configuration", error=str(e))
        raise ValueError(f"Invalid YAML configuration: {e}") from e
    except ValidationError as e:
        logger.error("Configuration validation failed", error=str(e))
        raise
