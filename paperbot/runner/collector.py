"""Snapshot collector: polls market data and bulk-stores raw pair snapshots."""

import argparse
import asyncio
import signal
import sys
import time

import structlog

from ..config.settings import AppSettings, configure_logging, load_settings
from ..core.interfaces import MarketDataSource
from ..core.types import MarketDataError
from ..persist.storage import SQLiteStorage

logger = structlog.get_logger(__name__)


class SnapshotCollector:
    """Stores every polled snapshot batch for later analysis."""

    def __init__(
        self,
        settings: AppSettings,
        storage: SQLiteStorage,
        source: MarketDataSource | None = None,
    ) -> None:
        self.settings = settings
        self.storage = storage
        self.source = source or settings.market_data_source()
        self.running = False
        self._stop_event = asyncio.Event()

    async def run_once(self) -> int:
        """Poll once and store the batch.

        Returns:
            Number of rows inserted (0 when the fetch failed or was empty)
        """
        try:
            snapshots = await asyncio.wait_for(
                self.source.poll(), timeout=self.settings.fetch_timeout_seconds
            )
        except (TimeoutError, MarketDataError) as e:
            logger.warning("Error fetching market data, skipping cycle", error=str(e))
            return 0

        if not snapshots:
            logger.info("No pairs returned this cycle")
            return 0

        inserted = await self.storage.insert_snapshot_batch(snapshots)
        logger.info("Stored snapshot batch", fetched=len(snapshots), inserted=inserted)
        return inserted

    async def run_forever(self) -> None:
        logger.info(
            "Collector started",
            poll_interval_seconds=self.settings.poll_interval_seconds,
            db_path=self.storage.db_path,
        )
        self.running = True
        await self.storage.initialize()

        try:
            while self.running:
                started = time.monotonic()
                try:
                    await self.run_once()
                except Exception as e:
                    logger.error("Error in collector cycle", error=str(e), exc_info=True)

                delay = max(
                    0.0, self.settings.poll_interval_seconds - (time.monotonic() - started)
                )
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                except TimeoutError:
                    pass
        except asyncio.CancelledError:
            logger.info("Collector cancelled")
        finally:
            close = getattr(self.source, "close", None)
            if close is not None:
                await close()
            await self.storage.close()

    def request_stop(self) -> None:
        self.running = False
        self._stop_event.set()


async def main() -> None:
    """Entry point for the snapshot collector."""
    parser = argparse.ArgumentParser(description="DexScreener snapshot collector")
    parser.add_argument(
        "--config", default="configs/paper.yaml", help="Configuration file path"
    )
    parser.add_argument(
        "--profile", default="paper", choices=["dev", "paper"], help="Configuration profile"
    )
    args = parser.parse_args()

    try:
        settings = load_settings(args.profile, args.config)
    except (FileNotFoundError, ValueError) as e:
        logger.error("Fatal error", error=str(e))
        sys.exit(1)

    if not settings.database_path:
        logger.error("Collector requires database_path to be set")
        sys.exit(1)

    configure_logging(settings.log_level, settings.json_logs)
    collector = SnapshotCollector(settings, SQLiteStorage(settings.database_path))

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, collector.request_stop)

    await collector.run_forever()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
