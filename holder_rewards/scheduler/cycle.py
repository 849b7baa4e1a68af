"""
One distribution cycle: check balance, convert, snapshot holders, pay out.

Every stage persists its outcome before the next starts, so a cycle that
stops part way leaves the ledger truthful about what happened.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

import structlog

from holder_rewards.services.distribution import DistributionEngine, DistributionResult
from holder_rewards.services.holder_snapshot import HolderSnapshotter
from holder_rewards.services.swap_service import SwapResult
from holder_rewards.storage.base import LedgerStore


logger = structlog.get_logger(__name__)


class CycleOutcome(str, Enum):
    """How a cycle ended."""
    SKIPPED_LOW_BALANCE = "skipped_low_balance"
    SWAP_FAILED = "swap_failed"
    SNAPSHOT_FAILED = "snapshot_failed"
    NOTHING_TO_DISTRIBUTE = "nothing_to_distribute"
    NO_HOLDERS = "no_holders"
    DISTRIBUTED = "distributed"
    FAILED = "failed"


@dataclass
class CycleReport:
    outcome: CycleOutcome
    conversion_id: Optional[int] = None
    distribution: Optional[DistributionResult] = None
    error: Optional[str] = None


class BalanceSource(Protocol):
    async def get_distributable_balance(self) -> int:
        ...


class Swapper(Protocol):
    async def swap(self, amount: int) -> SwapResult:
        ...


class CycleOrchestrator:
    """Runs the convert-then-distribute pipeline once per call."""

    def __init__(
        self,
        store: LedgerStore,
        wallet: BalanceSource,
        swapper: Swapper,
        snapshotter: HolderSnapshotter,
        engine: DistributionEngine,
        swap_threshold: int
    ):
        self.store = store
        self.wallet = wallet
        self.swapper = swapper
        self.snapshotter = snapshotter
        self.engine = engine
        self.swap_threshold = swap_threshold
        self.logger = logger.bind(service="cycle")

    async def run_cycle(self) -> CycleReport:
        """Run a cycle. Never raises; unexpected errors are reported as ``failed``."""
        self.logger.info("Starting distribution cycle")
        try:
            report = await self._run()
        except Exception as e:
            self.logger.error("Distribution cycle failed", error=str(e), exc_info=True)
            return CycleReport(CycleOutcome.FAILED, error=str(e))

        self.logger.info(
            "Distribution cycle finished",
            outcome=report.outcome.value,
            conversion_id=report.conversion_id,
            distribution_id=report.distribution.distribution_id if report.distribution else None
        )
        return report

    async def _run(self) -> CycleReport:
        distributable = await self.wallet.get_distributable_balance()
        self.logger.info("Checking balance", distributable=distributable, threshold=self.swap_threshold)

        if distributable < self.swap_threshold:
            self.logger.info("Insufficient balance for swap, skipping cycle")
            return CycleReport(CycleOutcome.SKIPPED_LOW_BALANCE)

        conversion_id = await self.store.create_conversion(distributable)

        try:
            swap = await self.swapper.swap(distributable)
        except Exception as e:
            await self.store.fail_conversion(conversion_id, str(e))
            self.logger.error("Swap failed", conversion_id=conversion_id, error=str(e))
            return CycleReport(CycleOutcome.SWAP_FAILED, conversion_id=conversion_id, error=str(e))

        await self.store.resolve_conversion(conversion_id, swap.output_amount, swap.tx_reference)
        self.logger.info(
            "Swap successful",
            conversion_id=conversion_id,
            input_amount=swap.input_amount,
            output_amount=swap.output_amount,
            tx_reference=swap.tx_reference
        )

        if swap.output_amount <= 0:
            return CycleReport(CycleOutcome.NOTHING_TO_DISTRIBUTE, conversion_id=conversion_id)

        try:
            holder_set = await self.snapshotter.snapshot()
        except Exception as e:
            self.logger.error("Holder snapshot failed", error=str(e))
            return CycleReport(CycleOutcome.SNAPSHOT_FAILED, conversion_id=conversion_id, error=str(e))

        if holder_set.is_empty:
            self.logger.warning("No eligible holders found, skipping distribution")
            return CycleReport(CycleOutcome.NO_HOLDERS, conversion_id=conversion_id)

        result = await self.engine.distribute(swap.output_amount, holder_set.holders)
        outcome = CycleOutcome.FAILED if result.aborted else CycleOutcome.DISTRIBUTED
        return CycleReport(
            outcome,
            conversion_id=conversion_id,
            distribution=result,
            error="; ".join(result.errors) or None
        )
