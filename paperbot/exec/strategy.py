"""Single-position entry/exit state machine."""

from collections.abc import Sequence
from datetime import datetime
from enum import Enum

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..core.types import (
    ExitReason,
    MarketSnapshot,
    Position,
    ScoredCandidate,
    TokenRef,
    TradeLogEntry,
    WalletAccount,
    WalletLogEntry,
)
from ..scoring.ranker import top_candidate
from .paper import WalletAccountant

logger = structlog.get_logger(__name__)


class StrategyConfig(BaseModel):
    """Entry and exit parameters of the state machine."""

    model_config = ConfigDict(frozen=True)

    trade_size_sol: float = Field(default=1.0, gt=0)
    fee_rate: float = Field(default=0.003, ge=0, lt=1)
    min_score_to_enter: float = Field(default=0.65, ge=0, le=1)
    take_profit_multiplier: float = Field(default=1.05, gt=1)
    trailing_stop_fraction: float = Field(default=0.03, gt=0, lt=1)
    liquidity_drop_fraction: float = Field(default=0.30, gt=0, lt=1)
    momentum_fade_floor_pct: float = 0.001
    momentum_min_hold_seconds: float = Field(default=300.0, ge=0)
    max_missing_cycles: int = Field(default=0, ge=0)


class CycleAction(str, Enum):
    """What the state machine did in one cycle."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"
    NONE = "NONE"


class CycleOutcome(BaseModel):
    """Result of one decision cycle."""

    action: CycleAction = CycleAction.NONE
    trade: TradeLogEntry | None = None
    wallet: WalletLogEntry | None = None
    exit_reason: ExitReason | None = None
    rejection: str | None = None
    warnings: list[str] = Field(default_factory=list)


class PositionStateMachine:
    """Owns the paper position and wallet; performs at most one transition per cycle.

    States are Idle (``position.active`` is False) and Held. While held,
    exits are checked in priority order: liquidity drop, trailing stop,
    take profit, momentum fade. While idle, the top ranked candidate is
    bought when its score clears the threshold and the wallet can pay.
    """

    def __init__(
        self,
        config: StrategyConfig | None = None,
        starting_balance_sol: float = 10.0,
    ) -> None:
        """Initialize the state machine in the Idle state.

        Args:
            config: Strategy parameters
            starting_balance_sol: Initial paper wallet balance
        """
        self.config = config or StrategyConfig()
        self.accountant = WalletAccountant(
            starting_balance_sol=starting_balance_sol,
            trade_size_sol=self.config.trade_size_sol,
            fee_rate=self.config.fee_rate,
        )
        self._position = Position()

        logger.info(
            "Position state machine initialized",
            trade_size_sol=self.config.trade_size_sol,
            min_score_to_enter=self.config.min_score_to_enter,
            take_profit_multiplier=self.config.take_profit_multiplier,
            trailing_stop_fraction=self.config.trailing_stop_fraction,
            max_missing_cycles=self.config.max_missing_cycles,
        )

    @property
    def position(self) -> Position:
        """A copy of the current position."""
        return self._position.model_copy()

    @property
    def is_holding(self) -> bool:
        return self._position.active

    @property
    def wallet(self) -> WalletAccount:
        return self.accountant.wallet.model_copy()

    def step(
        self,
        snapshots: Sequence[MarketSnapshot],
        ranked: Sequence[ScoredCandidate],
        now: datetime,
    ) -> CycleOutcome:
        """Run one decision cycle.

        Args:
            snapshots: Snapshots the held pair is looked up in
            ranked: Scored candidates ordered by score descending
            now: Decision time

        Returns:
            Outcome describing the (single) transition taken, if any
        """
        if self._position.active:
            current = next(
                (s for s in snapshots if s.pair_address == self._position.pair_address),
                None,
            )
            return self._evaluate_exit(current, now)

        return self._evaluate_entry(list(ranked), now)

    def _evaluate_entry(
        self, ranked: list[ScoredCandidate], now: datetime
    ) -> CycleOutcome:
        top = top_candidate(ranked)
        if top is None:
            logger.info("No suitable candidates after filtering and scoring")
            return CycleOutcome(rejection="no_candidates")

        if top.score < self.config.min_score_to_enter:
            logger.info(
                "Top candidate below entry threshold",
                symbol=top.symbol,
                score=top.score,
                threshold=self.config.min_score_to_enter,
            )
            return CycleOutcome(rejection="score_below_threshold")

        if not self.accountant.can_afford_entry():
            logger.info(
                "Insufficient SOL for trade plus fee, skipping BUY",
                symbol=top.symbol,
                sol_balance=self.accountant.wallet.sol_balance,
                required_sol=self.accountant.entry_cost_sol,
            )
            return CycleOutcome(rejection="insufficient_funds")

        snap = top.snapshot
        entry_price = snap.price_native
        position = Position(
            active=True,
            base=TokenRef(address=snap.base.address, symbol=snap.base.symbol),
            quote=TokenRef(address=snap.quote.address, symbol=snap.quote.symbol),
            pair_address=snap.pair_address,
            amount_token=self.config.trade_size_sol / entry_price,
            entry_price_native=entry_price,
            entry_time=now,
            entry_liquidity_usd=snap.liquidity_usd,
            peak_price_native=entry_price,
            last_price_native=entry_price,
        )

        logger.info(
            "BUY signal",
            symbol=top.symbol,
            score=top.score,
            threshold=self.config.min_score_to_enter,
        )

        trade = self.accountant.record_buy(position, now)
        self._position = position

        return CycleOutcome(
            action=CycleAction.BUY,
            trade=trade,
            wallet=self.accountant.wallet_entry(self._position, now),
        )

    def _evaluate_exit(
        self, current: MarketSnapshot | None, now: datetime
    ) -> CycleOutcome:
        position = self._position

        if current is None:
            position.missing_cycles += 1
            logger.warning(
                "Held pair data not found in current scan, holding position",
                symbol=position.symbol,
                pair_address=position.pair_address,
                missing_cycles=position.missing_cycles,
            )
            limit = self.config.max_missing_cycles
            if limit and position.missing_cycles >= limit:
                return self._close(
                    position.last_price_native,
                    ExitReason.DATA_MISSING,
                    f"Data Missing ({position.missing_cycles} cycles)",
                    now,
                    warnings=["pair_data_missing"],
                )
            return CycleOutcome(action=CycleAction.HOLD, warnings=["pair_data_missing"])

        position.missing_cycles = 0
        price = current.price_native
        position.last_price_native = price
        position.peak_price_native = max(position.peak_price_native, price)

        exit_check = self.check_exit(position, current, now)
        if exit_check is not None:
            reason, reason_text = exit_check
            return self._close(price, reason, reason_text, now)

        logger.info(
            "Holding position",
            symbol=position.symbol,
            amount_token=position.amount_token,
            entry_price=position.entry_price_native,
            current_price=price,
            pnl_pct=calculate_pnl_percentage(position.entry_price_native, price),
            peak_price=position.peak_price_native,
            trailing_stop=position.peak_price_native
            * (1.0 - self.config.trailing_stop_fraction),
            liquidity_usd=current.liquidity_usd,
        )
        return CycleOutcome(action=CycleAction.HOLD)

    def check_exit(
        self, position: Position, current: MarketSnapshot, now: datetime
    ) -> tuple[ExitReason, str] | None:
        """Return the first matching exit trigger, or None to keep holding.

        The position's peak price must already include the current price.
        """
        cfg = self.config
        price = current.price_native

        liquidity_floor = position.entry_liquidity_usd * (1.0 - cfg.liquidity_drop_fraction)
        if current.liquidity_usd < liquidity_floor:
            return ExitReason.LIQUIDITY_DROP, f"Liquidity Drop (< {liquidity_floor:.0f} USD)"

        stop_price = calculate_trailing_stop_price(
            position.peak_price_native, cfg.trailing_stop_fraction
        )
        if price <= stop_price:
            return ExitReason.TRAILING_STOP, f"Trailing Stop (<= {stop_price:.8f} SOL)"

        if price >= position.entry_price_native * cfg.take_profit_multiplier:
            return ExitReason.TAKE_PROFIT, "Take Profit"

        if (
            current.price_change.m5 < cfg.momentum_fade_floor_pct
            and position.held_seconds(now) > cfg.momentum_min_hold_seconds
        ):
            return (
                ExitReason.MOMENTUM_FADE,
                f"Momentum Fade (m5 < {cfg.momentum_fade_floor_pct:.3f}%)",
            )

        return None

    def _close(
        self,
        price: float,
        reason: ExitReason,
        reason_text: str,
        now: datetime,
        warnings: list[str] | None = None,
    ) -> CycleOutcome:
        logger.info(
            "SELL signal",
            symbol=self._position.symbol,
            reason=reason.value,
            price_native=price,
        )
        trade = self.accountant.record_sell(self._position, price, reason_text, now)
        self._position = Position()

        return CycleOutcome(
            action=CycleAction.SELL,
            trade=trade,
            wallet=self.accountant.wallet_entry(self._position, now),
            exit_reason=reason,
            warnings=warnings or [],
        )


def calculate_trailing_stop_price(peak_price: float, stop_fraction: float) -> float:
    """Calculate trailing stop price.

    Args:
        peak_price: Highest price observed since entry
        stop_fraction: Stop distance (e.g., 0.03 for 3%)

    Returns:
        Trailing stop price
    """
    return peak_price * (1 - stop_fraction)


def calculate_pnl_percentage(entry_price: float, current_price: float) -> float:
    """Percentage P&L of a price move, 0.0 for a zero entry price."""
    if entry_price == 0:
        return 0.0
    return ((current_price - entry_price) / entry_price) * 100.0
