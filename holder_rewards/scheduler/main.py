"""
Main entry point for the distribution bot.
Wires the services together and runs cycles on a wall-clock aligned interval.
"""

import asyncio
import signal
import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from holder_rewards.core.config import Settings
from holder_rewards.services.distribution import DistributionEngine
from holder_rewards.services.holder_index import HolderIndexClient
from holder_rewards.services.holder_snapshot import HolderSnapshotter
from holder_rewards.services.swap_service import SwapService
from holder_rewards.services.transfers import RewardTransferExecutor
from holder_rewards.services.wallet_service import WalletService
from holder_rewards.storage import create_ledger_store
from holder_rewards.storage.base import LedgerStore

from .cycle import CycleOrchestrator, CycleReport


logger = structlog.get_logger(__name__)


@dataclass
class Runtime:
    """Live service graph for one process."""
    store: LedgerStore
    wallet: WalletService
    engine: DistributionEngine
    orchestrator: CycleOrchestrator

    async def close(self):
        await self.wallet.close()
        await self.store.close()


async def create_runtime(settings: Settings) -> Runtime:
    """Build and initialize every service from settings."""
    store = create_ledger_store(settings)
    await store.initialize()

    try:
        wallet = WalletService.from_settings(settings)
    except Exception:
        await store.close()
        raise
    engine = DistributionEngine(
        store,
        RewardTransferExecutor(wallet, settings.reward_mint),
        settings.distribution_policy()
    )
    orchestrator = CycleOrchestrator(
        store=store,
        wallet=wallet,
        swapper=SwapService.from_settings(settings, wallet),
        snapshotter=HolderSnapshotter(HolderIndexClient.from_settings(settings), settings.snapshot_policy()),
        engine=engine,
        swap_threshold=settings.swap_threshold_lamports,
    )

    logger.info(
        "Runtime initialized",
        network=settings.network,
        payer=str(wallet.pubkey),
        token_mint=settings.token_mint_address,
        reward_mint=settings.reward_mint,
        dry_run=settings.dry_run
    )
    return Runtime(store=store, wallet=wallet, engine=engine, orchestrator=orchestrator)


def next_boundary(now: float, interval: int) -> float:
    """First multiple of ``interval`` seconds strictly after ``now``."""
    return (int(now // interval) + 1) * interval


class DistributionScheduler:
    """
    Runs one cycle immediately, then one per interval boundary.

    Cycles never overlap. A stop request prevents new cycles and ends a
    distribution in flight after its current batch, leaving the rest pending.
    """

    def __init__(
        self,
        orchestrator: CycleOrchestrator,
        engine: DistributionEngine,
        interval_seconds: int = 900,
        resume_interrupted: bool = False,
        clock: Callable[[], float] = time.time
    ):
        self.orchestrator = orchestrator
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.resume_interrupted = resume_interrupted
        self._clock = clock
        self._stop = asyncio.Event()
        self.cycles_run = 0
        self.last_report: Optional[CycleReport] = None
        self.logger = logger.bind(service="scheduler")

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self):
        if not self._stop.is_set():
            self.logger.info("Stop requested, finishing current batch")
        self._stop.set()
        self.engine.request_stop()

    def install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except NotImplementedError:
                # no loop signal support on this platform
                signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(self.stop))

    async def recover_interrupted(self):
        """Report distributions a previous process left open, resuming them if configured."""
        interrupted = await self.engine.find_interrupted()
        for distribution in interrupted:
            self.logger.warning(
                "Found interrupted distribution",
                distribution_id=distribution.distribution_id,
                started_at=distribution.timestamp.isoformat(),
                total_amount=distribution.total_amount
            )
            if self.resume_interrupted and not self.stopping:
                result = await self.engine.retry_pending(distribution.distribution_id)
                self.logger.info(
                    "Resumed interrupted distribution",
                    distribution_id=distribution.distribution_id,
                    retry_distribution_id=result.distribution_id,
                    successful_transfers=result.successful_transfers,
                    failed_transfers=result.failed_transfers
                )

    async def run_once(self) -> CycleReport:
        report = await self.orchestrator.run_cycle()
        self.cycles_run += 1
        self.last_report = report
        return report

    async def run_forever(self):
        self.logger.info("Starting scheduler", interval_seconds=self.interval_seconds)

        try:
            await self.recover_interrupted()
        except Exception as e:
            self.logger.error("Interrupted distribution recovery failed", error=str(e), exc_info=True)

        while not self.stopping:
            await self.run_once()

            if self.stopping:
                break

            delay = max(next_boundary(self._clock(), self.interval_seconds) - self._clock(), 0)
            self.logger.info("Next cycle scheduled", in_seconds=round(delay, 1))

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        self.logger.info("Scheduler stopped", cycles_run=self.cycles_run)


async def main(settings: Settings, once: bool = False):
    """Run the bot until stopped, or a single cycle with ``once``."""
    runtime = await create_runtime(settings)
    try:
        scheduler = DistributionScheduler(
            runtime.orchestrator,
            runtime.engine,
            interval_seconds=settings.cycle_interval_seconds,
            resume_interrupted=settings.resume_interrupted_on_start,
        )

        if once:
            return await scheduler.run_once()

        scheduler.install_signal_handlers()
        await scheduler.run_forever()
        return scheduler.last_report
    finally:
        await runtime.close()
