"""DexScreener search source and pair payload parsing."""

import asyncio
import math
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..core.interfaces import MarketDataSource
from ..core.types import (
    MarketDataError,
    MarketSnapshot,
    RateLimitedError,
    SnapshotParseError,
    TokenRef,
    WindowCounts,
    WindowTxns,
    WindowValues,
)

logger = structlog.get_logger(__name__)

_WINDOWS = ("m5", "h1", "h6", "h24")


class TokenBucket:
    """Simple in-memory token bucket rate limiter."""

    def __init__(self, capacity: int, refill_rate: float) -> None:
        """Initialize token bucket.

        Args:
            capacity: Maximum tokens in bucket
            refill_rate: Tokens per second refill rate
        """
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.tokens = capacity
        self.last_refill = time.monotonic()

    async def acquire(self) -> bool:
        """Try to acquire a token, return True if successful."""
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

        if self.tokens >= 1:
            self.tokens -= 1
            return True
        return False


def parse_float(value: Any, default: float) -> float:
    """Parse a number that may arrive as a string, falling back to default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if math.isfinite(parsed) else default


def parse_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def _windows(data: Any) -> WindowValues:
    data = data if isinstance(data, dict) else {}
    return WindowValues(**{w: parse_float(data.get(w), 0.0) for w in _WINDOWS})


def _txns(data: Any) -> WindowCounts:
    data = data if isinstance(data, dict) else {}
    counts = {}
    for w in _WINDOWS:
        window = data.get(w) if isinstance(data.get(w), dict) else {}
        counts[w] = WindowTxns(
            buys=max(0, parse_int(window.get("buys"))),
            sells=max(0, parse_int(window.get("sells"))),
        )
    return WindowCounts(**counts)


def _token(data: Any, role: str) -> TokenRef:
    if not isinstance(data, dict) or not data.get("address"):
        raise SnapshotParseError(f"Missing {role} token address")
    return TokenRef(address=str(data["address"]), symbol=str(data.get("symbol") or ""))


def parse_pair_snapshot(
    pair: dict[str, Any], observed_at: datetime | None = None
) -> MarketSnapshot:
    """Map one DexScreener pair object to a MarketSnapshot.

    Optional numeric fields fall back to zero. The native price is required.

    Args:
        pair: Raw pair object from the API
        observed_at: Snapshot time; defaults to now (UTC)

    Returns:
        Parsed snapshot

    Raises:
        SnapshotParseError: On missing identifiers or a non-positive/unparsable price
    """
    if not isinstance(pair, dict):
        raise SnapshotParseError("Pair payload is not an object")

    pair_address = pair.get("pairAddress")
    if not pair_address:
        raise SnapshotParseError("Missing pair address")

    base = _token(pair.get("baseToken"), "base")
    quote = _token(pair.get("quoteToken"), "quote")

    price_native = parse_float(pair.get("priceNative"), -1.0)
    if price_native <= 0:
        raise SnapshotParseError(
            f"Invalid native price {pair.get('priceNative')!r} for {pair_address}"
        )

    liquidity = pair.get("liquidity") if isinstance(pair.get("liquidity"), dict) else {}

    created_ms = parse_int(pair.get("pairCreatedAt"))
    try:
        pair_created_at = (
            datetime.fromtimestamp(created_ms / 1000, tz=UTC) if created_ms > 0 else None
        )
    except (OverflowError, OSError, ValueError):
        pair_created_at = None

    return MarketSnapshot(
        pair_address=str(pair_address),
        dex_id=str(pair.get("dexId") or ""),
        url=str(pair.get("url") or ""),
        base=base,
        quote=quote,
        price_native=price_native,
        price_usd=parse_float(pair.get("priceUsd"), 0.0),
        liquidity_usd=parse_float(liquidity.get("usd"), 0.0),
        volume=_windows(pair.get("volume")),
        price_change=_windows(pair.get("priceChange")),
        txns=_txns(pair.get("txns")),
        pair_created_at=pair_created_at,
        observed_at=observed_at or datetime.now(UTC),
    )


def parse_pairs(
    pairs: list[Any], chain_id: str | None = "solana", observed_at: datetime | None = None
) -> list[MarketSnapshot]:
    """Parse a batch of pair objects, dropping malformed ones.

    Args:
        pairs: Raw pair objects
        chain_id: Keep only pairs on this chain (None keeps all)
        observed_at: Shared timestamp for the batch

    Returns:
        Snapshots for the well-formed pairs, in input order
    """
    observed_at = observed_at or datetime.now(UTC)
    snapshots = []
    dropped = 0

    for pair in pairs:
        if chain_id and isinstance(pair, dict) and pair.get("chainId") != chain_id:
            continue
        try:
            snapshots.append(parse_pair_snapshot(pair, observed_at))
        except SnapshotParseError as e:
            dropped += 1
            logger.debug("Dropped malformed pair", error=str(e))

    if dropped:
        logger.info("Dropped malformed pairs", dropped=dropped, kept=len(snapshots))
    return snapshots


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.NetworkError, httpx.TimeoutException)):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code >= 500


class DexScreenerSearch(MarketDataSource):
    """Polls the DexScreener search endpoint for pairs on one chain."""

    def __init__(
        self,
        base_url: str = "https://api.dexscreener.com/latest/dex",
        query: str = "SOL",
        chain_id: str = "solana",
        session: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize DexScreener search source.

        Args:
            base_url: DexScreener API base URL
            query: Search query string
            chain_id: Chain to keep pairs from
            session: Optional httpx client session
            timeout: Per-request timeout in seconds
            max_attempts: Attempts for network errors and 5xx responses
            now_fn: Optional function returning the current UTC time (for testing)
        """
        self.base_url = base_url.rstrip("/")
        self.query = query
        self.chain_id = chain_id
        self.session = session or httpx.AsyncClient()
        self.timeout = timeout
        self.max_attempts = max_attempts
        self._now_fn = now_fn or (lambda: datetime.now(UTC))

        # 60 requests per minute
        self.rate_limiter = TokenBucket(capacity=60, refill_rate=1.0)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )

    async def _fetch_pairs(self) -> list[Any]:
        while not await self.rate_limiter.acquire():
            await asyncio.sleep(0.1)

        url = f"{self.base_url}/search"

        async for attempt in self._retrying():
            with attempt:
                response = await self.session.get(
                    url, params={"q": self.query}, timeout=self.timeout
                )
                if response.status_code == 429:
                    raise RateLimitedError("DexScreener rate limit hit (HTTP 429)")
                response.raise_for_status()
                if not response.content:
                    return []
                data = response.json()
                pairs = data.get("pairs") if isinstance(data, dict) else None
                return pairs or []

        return []

    async def poll(self) -> list[MarketSnapshot]:
        """Fetch and parse the current pair batch.

        Returns:
            Parsed snapshots for the configured chain

        Raises:
            MarketDataError: On network failure, bad status, rate limiting or bad JSON
        """
        try:
            pairs = await self._fetch_pairs()
        except MarketDataError:
            logger.warning("DexScreener rate limited", query=self.query)
            raise
        except httpx.HTTPStatusError as e:
            raise MarketDataError(
                f"DexScreener returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise MarketDataError(f"DexScreener request failed: {e}") from e
        except ValueError as e:
            raise MarketDataError(f"Invalid DexScreener JSON: {e}") from e

        snapshots = parse_pairs(pairs, self.chain_id, self._now_fn())
        logger.debug("Polled DexScreener", pairs=len(pairs), snapshots=len(snapshots))
        return snapshots

    async def close(self) -> None:
        await self.session.aclose()
