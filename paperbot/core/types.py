"""Core data types for the paper trading engine."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PaperBotError(Exception):
    """Base error for the paper trading engine."""


class SnapshotParseError(PaperBotError):
    """Raised when an upstream pair payload cannot become a MarketSnapshot."""


class MarketDataError(PaperBotError):
    """Raised when a market data fetch fails and the cycle must be skipped."""


class RateLimitedError(MarketDataError):
    """Raised when the market data provider answers with HTTP 429."""


class InsufficientFundsError(PaperBotError):
    """Raised when the wallet cannot cover a trade plus its fee."""


class TradeAction(str, Enum):
    """Ledger action recorded for an executed trade."""

    BUY = "BUY"
    SELL = "SELL"


class ExitReason(str, Enum):
    """Exit triggers, declared in evaluation priority order."""

    LIQUIDITY_DROP = "liquidity_drop"
    TRAILING_STOP = "trailing_stop"
    TAKE_PROFIT = "take_profit"
    MOMENTUM_FADE = "momentum_fade"
    DATA_MISSING = "data_missing"


class TokenRef(BaseModel):
    """Token address with its ticker symbol."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(description="Token mint address")
    symbol: str = Field(default="", description="Token symbol")


class WindowTxns(BaseModel):
    """Buy and sell transaction counts for one rolling window."""

    model_config = ConfigDict(frozen=True)

    buys: int = Field(default=0, ge=0)
    sells: int = Field(default=0, ge=0)

    @property
    def buy_sell_ratio(self) -> float:
        """Share of buys among all transactions, 0.5 when there were none."""
        total = self.buys + self.sells
        if total == 0:
            return 0.5
        return self.buys / total


class WindowValues(BaseModel):
    """A metric sampled over the 5m/1h/6h/24h rolling windows."""

    model_config = ConfigDict(frozen=True)

    m5: float = 0.0
    h1: float = 0.0
    h6: float = 0.0
    h24: float = 0.0


class WindowCounts(BaseModel):
    """Transaction counts over the 5m/1h/6h/24h rolling windows."""

    model_config = ConfigDict(frozen=True)

    m5: WindowTxns = Field(default_factory=WindowTxns)
    h1: WindowTxns = Field(default_factory=WindowTxns)
    h6: WindowTxns = Field(default_factory=WindowTxns)
    h24: WindowTxns = Field(default_factory=WindowTxns)


class MarketSnapshot(BaseModel):
    """One observation of a trading pair."""

    model_config = ConfigDict(frozen=True)

    pair_address: str = Field(description="Liquidity pool address")
    dex_id: str = Field(default="", description="DEX identifier")
    url: str = Field(default="", description="Pair page URL")
    base: TokenRef = Field(description="Base token")
    quote: TokenRef = Field(description="Quote token")
    price_native: float = Field(gt=0, description="Base price in quote units")
    price_usd: float = Field(default=0.0, description="Base price in USD")
    liquidity_usd: float = Field(default=0.0, description="Pool liquidity in USD")
    volume: WindowValues = Field(default_factory=WindowValues)
    price_change: WindowValues = Field(
        default_factory=WindowValues, description="Price change percentages"
    )
    txns: WindowCounts = Field(default_factory=WindowCounts)
    pair_created_at: datetime | None = Field(
        default=None, description="Pair creation time (UTC)"
    )
    observed_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Snapshot timestamp"
    )

    @property
    def symbol(self) -> str:
        return self.base.symbol

    @property
    def m5_buy_sell_ratio(self) -> float:
        return self.txns.m5.buy_sell_ratio

    def age_seconds(self, now: datetime) -> float | None:
        """Seconds since pair creation, or None when the creation time is unknown."""
        if self.pair_created_at is None:
            return None
        return (now - self.pair_created_at).total_seconds()


class ScoredCandidate(BaseModel):
    """A snapshot with its per-cycle normalized components and composite score."""

    model_config = ConfigDict(frozen=True)

    snapshot: MarketSnapshot
    buy_sell_ratio: float
    norm_m5_change: float = 0.0
    norm_h1_change: float = 0.0
    norm_m5_volume: float = 0.0
    norm_buy_sell_ratio: float = 0.0
    norm_liquidity: float = 0.0
    score: float = 0.0

    @property
    def pair_address(self) -> str:
        return self.snapshot.pair_address

    @property
    def symbol(self) -> str:
        return self.snapshot.base.symbol


class Position(BaseModel):
    """The single paper position. Inactive when the engine is idle."""

    active: bool = False
    base: TokenRef | None = None
    quote: TokenRef | None = None
    pair_address: str = ""
    amount_token: float = 0.0
    entry_price_native: float = 0.0
    entry_time: datetime | None = None
    entry_liquidity_usd: float = 0.0
    peak_price_native: float = 0.0
    last_price_native: float = 0.0
    missing_cycles: int = 0

    @property
    def symbol(self) -> str:
        return self.base.symbol if self.base else ""

    def held_seconds(self, now: datetime) -> float:
        if self.entry_time is None:
            return 0.0
        return (now - self.entry_time).total_seconds()


class WalletAccount(BaseModel):
    """SOL-denominated paper wallet."""

    sol_balance: float
    initial_sol: float
    trades_made: int = 0
    profitable_trades: int = 0
    total_fees_paid: float = 0.0

    @property
    def profitability_pct(self) -> float:
        if self.trades_made == 0:
            return 0.0
        return self.profitable_trades / self.trades_made * 100.0


class TradeLogEntry(BaseModel):
    """Immutable record of one executed paper trade."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    action: TradeAction
    symbol: str
    pair_address: str
    sol_amount: float = Field(description="SOL committed (BUY) or gross received (SELL)")
    token_amount: float
    price_native: float
    fee_sol: float
    profit_loss_sol: float | None = None
    reason: str | None = None


class WalletLogEntry(BaseModel):
    """Immutable record of the wallet after a state change."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    sol_balance: float
    holding: Position
    trades_made: int
    fees_paid: float


class FilterDecision(BaseModel):
    """Filter evaluation decision."""

    accepted: bool = Field(description="Whether the snapshot passed the filter")
    reasons: list[str] = Field(default_factory=list, description="Rejection reasons")
