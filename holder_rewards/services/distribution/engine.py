"""
Distribution engine.

Turns a payout amount and a holder snapshot into persisted allocations and
pays them in size-bounded batches:

1. Record the distribution as ``in_progress`` before anything else
2. Persist every non-zero allocation as ``pending``
3. Execute batches strictly in order, each with bounded retry and backoff
4. Close the distribution once every batch has been processed

A batch lands on-chain completely or not at all, so allocations within one
batch always share a status and a transaction reference. A stop request is
honoured between batches; whatever has not been attempted stays ``pending``
for ``retry_pending``.
"""

import asyncio
import uuid
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

import structlog

from holder_rewards.core.config import DistributionPolicy
from holder_rewards.core.exceptions import DistributionNotFoundError, InvalidDestinationError
from holder_rewards.models.records import AllocationRecord, DistributionRecord
from holder_rewards.models.status import AllocationStatus, DistributionStatus
from holder_rewards.services.holder_snapshot import Holder
from holder_rewards.storage.base import LedgerStore

from .allocation import chunked, compute_allocations
from .types import (
    DRY_RUN_REFERENCE,
    STOPPED_ERROR,
    BatchAttempt,
    DistributionResult,
    PlannedAllocation,
    TransferExecutor,
)


logger = structlog.get_logger(__name__)


class DistributionEngine:
    """Executes payouts against the ledger transfer primitive."""

    def __init__(
        self,
        store: LedgerStore,
        executor: TransferExecutor,
        policy: DistributionPolicy,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.store = store
        self.executor = executor
        self.policy = policy
        self._sleep = sleep
        self._stop_requested = False
        self.logger = logger.bind(service="distribution_engine")

    @property
    def stopping(self) -> bool:
        return self._stop_requested

    def request_stop(self):
        """Finish the batch in flight, then leave the rest pending."""
        self._stop_requested = True

    async def distribute(
        self,
        total_amount: int,
        holders: Sequence[Holder],
        distribution_id: Optional[str] = None
    ) -> DistributionResult:
        """Pay ``total_amount`` out to ``holders`` pro rata to their shares."""
        distribution_id = distribution_id or str(uuid.uuid4())
        allocations = compute_allocations(total_amount, holders)

        result = await self._open(distribution_id, total_amount, len(holders))
        if result.aborted:
            return result

        return await self._execute(result, lambda: self._persist_allocations(distribution_id, allocations))

    async def retry_pending(self, distribution_id: str) -> DistributionResult:
        """
        Re-run the allocations of a distribution that are still pending.

        The retry is recorded as a new distribution paying the exact pending
        amounts. Each pending row is copied into the new run before the
        original is closed as failed with a pointer to it, so an owed amount
        is always pending in exactly one place and can never be picked up by
        two retries.
        """
        original = await self.store.get_distribution(distribution_id)
        if original is None:
            raise DistributionNotFoundError(distribution_id)

        pending = await self.store.get_pending_allocations(distribution_id)
        if not pending:
            self.logger.info("No pending transfers to retry", distribution_id=distribution_id)
            return DistributionResult(distribution_id=distribution_id, total_amount=0)

        retry_id = str(uuid.uuid4())
        total_amount = sum(allocation.amount for allocation in pending)

        self.logger.info(
            "Retrying pending transfers",
            distribution_id=distribution_id,
            retry_distribution_id=retry_id,
            pending_count=len(pending),
            total_amount=total_amount
        )

        result = await self._open(retry_id, total_amount, len(pending))
        if result.aborted:
            return result

        return await self._execute(result, lambda: self._hand_over(original, retry_id, pending))

    async def find_interrupted(self) -> List[DistributionRecord]:
        """Distributions left ``in_progress`` by a run that never finished."""
        return await self.store.get_distributions_by_status(DistributionStatus.IN_PROGRESS)

    async def _open(self, distribution_id: str, total_amount: int, holder_count: int) -> DistributionResult:
        """Record the distribution ``in_progress``; an aborted result means nothing was written."""
        result = DistributionResult(distribution_id=distribution_id, total_amount=total_amount)

        self.logger.info(
            "Starting distribution",
            distribution_id=distribution_id,
            total_amount=total_amount,
            holder_count=holder_count,
            dry_run=self.policy.dry_run
        )

        try:
            await self.store.create_distribution(
                distribution_id,
                total_amount,
                holder_count,
                status=DistributionStatus.IN_PROGRESS
            )
        except Exception as e:
            self.logger.error("Could not record distribution, aborting", distribution_id=distribution_id, error=str(e))
            result.aborted = True
            result.errors.append(f"Failed to create distribution: {e}")

        return result

    async def _execute(
        self,
        result: DistributionResult,
        build_queue: Callable[[], Awaitable[List[PlannedAllocation]]]
    ) -> DistributionResult:
        distribution_id = result.distribution_id
        log = self.logger.bind(distribution_id=distribution_id)

        try:
            queue = await build_queue()
            result.planned_transfers = len(queue)
            log.info("Transfer queue created", queue_size=len(queue))

            batches = list(chunked(queue, self.policy.batch_size))
            for index, batch in enumerate(batches):
                await self._process_batch(index, batch, result)

                if index + 1 < len(batches):
                    if self.stopping:
                        return await self._close_stopped(result, batches[index + 1:])
                    await self._sleep(self.policy.batch_delay)

            await self.store.update_distribution_status(
                distribution_id,
                DistributionStatus.SUCCESS,
                "; ".join(result.errors) if result.errors else None
            )

            log.info(
                "Distribution completed",
                successful_transfers=result.successful_transfers,
                failed_transfers=result.failed_transfers,
                distributed_amount=result.distributed_amount,
                tx_count=len(result.tx_references)
            )

        except Exception as e:
            result.aborted = True
            result.errors.insert(0, str(e))

            log.error(
                "Distribution failed",
                error=str(e),
                successful_transfers=result.successful_transfers,
                left_pending=result.planned_transfers - result.successful_transfers - result.failed_transfers,
                exc_info=True
            )

            try:
                await self.store.update_distribution_status(
                    distribution_id,
                    DistributionStatus.FAILED,
                    "; ".join(result.errors)
                )
            except Exception as status_error:
                log.error("Failed to mark distribution as failed", error=str(status_error))

        return result

    async def _close_stopped(
        self,
        result: DistributionResult,
        unattempted: List[List[PlannedAllocation]]
    ) -> DistributionResult:
        result.aborted = True
        result.errors.insert(0, STOPPED_ERROR)

        self.logger.warning(
            "Distribution stopped before completion",
            distribution_id=result.distribution_id,
            successful_transfers=result.successful_transfers,
            left_pending=sum(len(batch) for batch in unattempted),
            batches_left=len(unattempted)
        )

        await self.store.update_distribution_status(
            result.distribution_id,
            DistributionStatus.FAILED,
            "; ".join(result.errors)
        )
        return result

    async def _persist_allocations(
        self,
        distribution_id: str,
        allocations: List[Tuple[str, int]]
    ) -> List[PlannedAllocation]:
        queue = []
        for destination, amount in allocations:
            allocation_id = await self.store.create_allocation(distribution_id, destination, amount)
            queue.append(PlannedAllocation(allocation_id, destination, amount))
        return queue

    async def _hand_over(
        self,
        original: DistributionRecord,
        retry_id: str,
        pending: List[AllocationRecord]
    ) -> List[PlannedAllocation]:
        """Move pending rows of ``original`` into the retry run, one row at a time."""
        superseded = f"superseded by distribution {retry_id}"
        queue = []

        for allocation in pending:
            allocation_id = await self.store.create_allocation(retry_id, allocation.destination, allocation.amount)
            try:
                await self.store.update_allocation_status(allocation.id, AllocationStatus.FAILED, error=superseded)
            except Exception:
                # the original row still owes this amount
                await self.store.update_allocation_status(
                    allocation_id,
                    AllocationStatus.FAILED,
                    error=f"allocation {allocation.id} of {original.distribution_id} is still pending"
                )
                raise
            queue.append(PlannedAllocation(allocation_id, allocation.destination, allocation.amount))

        if original.status == DistributionStatus.IN_PROGRESS:
            try:
                await self.store.update_distribution_status(
                    original.distribution_id,
                    DistributionStatus.FAILED,
                    f"interrupted; pending transfers resumed as {retry_id}"
                )
            except Exception as e:
                self.logger.warning(
                    "Could not close interrupted distribution",
                    distribution_id=original.distribution_id,
                    error=str(e)
                )

        return queue

    async def _process_batch(
        self,
        index: int,
        batch: List[PlannedAllocation],
        result: DistributionResult
    ) -> None:
        """Run one batch to a terminal state, retrying transient failures."""
        remaining = list(batch)
        last_error: Optional[str] = None

        for attempt in range(1, self.policy.max_attempts + 1):
            outcome = await self._attempt_batch(index, remaining, result)

            if outcome.ok:
                await self._settle(remaining, outcome.signature, result)
                return

            if not remaining:
                # every allocation failed preparation, nothing left to submit
                return

            last_error = outcome.error
            self.logger.warning(
                "Batch failed",
                batch=index,
                attempt=attempt,
                max_attempts=self.policy.max_attempts,
                error=last_error
            )

            if attempt < self.policy.max_attempts:
                await self._sleep(self.policy.retry_base_delay * attempt)

        for allocation in remaining:
            await self.store.update_allocation_status(
                allocation.allocation_id,
                AllocationStatus.FAILED,
                error=last_error
            )
        result.failed_transfers += len(remaining)
        result.errors.append(f"Batch {index} failed after {self.policy.max_attempts} attempts: {last_error}")

    async def _attempt_batch(
        self,
        index: int,
        remaining: List[PlannedAllocation],
        result: DistributionResult
    ) -> BatchAttempt:
        """
        Prepare and submit ``remaining`` once.

        Allocations with unusable destinations are failed on the spot and
        removed from ``remaining``; the rest of the batch carries on.
        """
        instructions: List[Any] = []

        for allocation in list(remaining):
            try:
                instructions.extend(
                    await self.executor.prepare_transfer(allocation.destination, allocation.amount)
                )
            except InvalidDestinationError as e:
                await self._fail_allocation(allocation, e.message, result)
                remaining.remove(allocation)
            except Exception as e:
                return BatchAttempt(error=str(e) or e.__class__.__name__)

        if not remaining:
            return BatchAttempt(error="no transferable allocations in batch")

        if self.policy.dry_run:
            self.logger.info("DRY RUN: skipping transfer batch", batch=index, transfer_count=len(remaining))
            return BatchAttempt(signature=DRY_RUN_REFERENCE)

        try:
            signature = await self.executor.submit(instructions)
        except Exception as e:
            return BatchAttempt(error=str(e) or e.__class__.__name__)

        self.logger.info("Batch executed", batch=index, transfer_count=len(remaining), signature=signature)
        return BatchAttempt(signature=signature)

    async def _settle(
        self,
        batch: List[PlannedAllocation],
        signature: str,
        result: DistributionResult
    ) -> None:
        result.tx_references.append(signature)
        for allocation in batch:
            try:
                await self.store.update_allocation_status(
                    allocation.allocation_id,
                    AllocationStatus.SUCCESS,
                    tx_reference=signature
                )
            except Exception:
                # Funds moved but the ledger does not say so; a blind retry would pay twice
                self.logger.critical(
                    "Transfer executed but could not be recorded",
                    allocation_id=allocation.allocation_id,
                    destination=allocation.destination,
                    amount=allocation.amount,
                    signature=signature
                )
                raise
            result.successful_transfers += 1
            result.distributed_amount += allocation.amount

    async def _fail_allocation(
        self,
        allocation: PlannedAllocation,
        error: str,
        result: DistributionResult
    ) -> None:
        await self.store.update_allocation_status(allocation.allocation_id, AllocationStatus.FAILED, error=error)
        result.failed_transfers += 1
        result.errors.append(f"Failed to prepare transfer for {allocation.destination}: {error}")
