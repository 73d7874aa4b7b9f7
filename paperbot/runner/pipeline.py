"""Paper trading decision loop."""

import argparse
import asyncio
import signal
import sys
import time
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from ..config.settings import AppSettings, configure_logging, load_settings
from ..core.interfaces import LedgerSink, MarketDataSource
from ..core.types import MarketDataError, WalletLogEntry
from ..exec.strategy import CycleOutcome, PositionStateMachine
from ..persist.storage import CompositeLedger, JsonlLedger, SQLiteStorage
from ..scoring.normalizer import SnapshotNormalizer
from ..scoring.ranker import format_top_scorers, rank_candidates

logger = structlog.get_logger(__name__)


class TradingPipeline:
    """Runs fetch → filter → score → rank → decide → record, one cycle at a time."""

    def __init__(
        self,
        settings: AppSettings,
        source: MarketDataSource | None = None,
        ledger: LedgerSink | None = None,
        machine: PositionStateMachine | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the pipeline, assembling any component not supplied.

        Args:
            settings: Application settings
            source: Market data source (defaults to DexScreener search)
            ledger: Trade/wallet sink (defaults to JSONL files plus SQLite)
            machine: Position state machine (defaults to one built from settings)
            now_fn: Optional function returning the current UTC time (for testing)
        """
        self.settings = settings
        self.running = False
        self._stop_event = asyncio.Event()
        self._now_fn = now_fn or (lambda: datetime.now(UTC))
        self.cycles = 0
        self.skipped_cycles = 0

        self.storage: SQLiteStorage | None = None
        if ledger is None:
            sinks: list[LedgerSink] = [
                JsonlLedger(settings.trades_log_path, settings.wallet_log_path)
            ]
            if settings.database_path:
                self.storage = SQLiteStorage(settings.database_path)
                sinks.append(self.storage)
            ledger = CompositeLedger(sinks)
        self.ledger = ledger

        self.source = source or settings.market_data_source()
        self.eligibility = settings.eligibility_filter(self._now_fn)
        self.normalizer = SnapshotNormalizer(settings.scoring_weights())
        self.machine = machine or PositionStateMachine(
            settings.strategy_config(),
            starting_balance_sol=settings.starting_balance_sol,
        )

        logger.info(
            "Trading pipeline initialized",
            source=type(self.source).__name__,
            poll_interval_seconds=settings.poll_interval_seconds,
        )

    async def start(self) -> None:
        """Prepare storage and record the initial wallet state."""
        if self.storage is not None:
            await self.storage.initialize()
        await self._record_wallet_state(
            self.machine.accountant.wallet_entry(self.machine.position, self._now_fn())
        )

    async def run_once(self) -> CycleOutcome | None:
        """Execute one decision cycle.

        Returns:
            The cycle outcome, or None when the market data fetch failed and the
            cycle was skipped without any state change
        """
        try:
            snapshots = await asyncio.wait_for(
                self.source.poll(), timeout=self.settings.fetch_timeout_seconds
            )
        except TimeoutError:
            self.skipped_cycles += 1
            logger.warning(
                "Market data fetch timed out, skipping cycle",
                timeout_seconds=self.settings.fetch_timeout_seconds,
            )
            return None
        except MarketDataError as e:
            self.skipped_cycles += 1
            logger.warning("Market data fetch failed, skipping cycle", error=str(e))
            return None

        now = self._now_fn()
        eligible = self.eligibility.filter_batch(snapshots, now)
        ranked = rank_candidates(self.normalizer.score(eligible))

        logger.debug(
            "Cycle candidates",
            snapshots=len(snapshots),
            eligible=len(eligible),
        )

        if not self.machine.is_holding and ranked and self.settings.top_scorers_count:
            for line in format_top_scorers(ranked, self.settings.top_scorers_count):
                logger.info("Top scorer", line=line)

        # "all" keeps exits live after the held pair falls below the entry filters
        lookup = snapshots if self.settings.held_lookup == "all" else eligible
        outcome = self.machine.step(lookup, ranked, now)
        self.cycles += 1

        if outcome.trade is not None:
            await self.ledger.record_trade(outcome.trade)
        if outcome.wallet is not None:
            await self._record_wallet_state(outcome.wallet)

        return outcome

    async def _record_wallet_state(self, entry: WalletLogEntry) -> None:
        wallet = self.machine.accountant.wallet
        logger.info(
            "Wallet state",
            sol_balance=wallet.sol_balance,
            trades_made=wallet.trades_made,
            profitable_pct=wallet.profitability_pct,
            fees_paid=wallet.total_fees_paid,
            holding=entry.holding.active,
        )
        await self.ledger.record_wallet(entry)

    async def run_forever(self) -> None:
        """Run cycles on a fixed interval until stopped.

        A cycle that overruns the interval delays the next one; ticks never queue.
        """
        logger.info("Starting trading pipeline")
        self.running = True
        start_time = time.monotonic()
        ticks = 0

        try:
            await self.start()
            while self.running:
                cycle_start = time.monotonic()
                try:
                    await self.run_once()
                except Exception as e:
                    logger.error("Error in trading cycle", error=str(e), exc_info=True)

                ticks += 1
                if ticks % 10 == 0:
                    logger.info(
                        "Pipeline metrics",
                        cycles=self.cycles,
                        skipped_cycles=self.skipped_cycles,
                        uptime_seconds=time.monotonic() - start_time,
                        **self.machine.accountant.summary(),
                    )

                elapsed = time.monotonic() - cycle_start
                delay = max(0.0, self.settings.poll_interval_seconds - elapsed)
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                except TimeoutError:
                    pass

        except asyncio.CancelledError:
            logger.info("Pipeline cancelled")
        finally:
            await self.stop()

    def request_stop(self) -> None:
        """Ask the loop to exit after the current cycle."""
        self.running = False
        self._stop_event.set()

    async def stop(self) -> None:
        """Stop the trading pipeline."""
        logger.info("Stopping trading pipeline", **self.machine.accountant.summary())
        self.running = False

        close = getattr(self.source, "close", None)
        if close is not None:
            await close()
        if self.storage is not None:
            await self.storage.close()


async def main() -> None:
    """Main entry point for the paper trading bot."""
    parser = argparse.ArgumentParser(description="DEX momentum paper trader")
    parser.add_argument(
        "--config", default="configs/paper.yaml", help="Configuration file path"
    )
    parser.add_argument(
        "--profile",
        default="paper",
        choices=["dev", "paper"],
        help="Configuration profile",
    )

    args = parser.parse_args()

    try:
        settings = load_settings(args.profile, args.config)
    except (FileNotFoundError, ValueError) as e:
        logger.error("Fatal error", error=str(e))
        sys.exit(1)

    configure_logging(settings.log_level, settings.json_logs)
    pipeline = TradingPipeline(settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, pipeline.request_stop)

    await pipeline.run_forever()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
