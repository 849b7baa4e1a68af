"""
In-process ledger store.

Same contract as the SQL store, kept in dictionaries. Handy for dry runs
without a database file and for exercising the engine in tests.
"""

import asyncio
from dataclasses import replace
from itertools import count
from typing import Dict, List, Optional, Tuple

from holder_rewards.core.exceptions import DatabaseError, DistributionNotFoundError, NotFoundError
from holder_rewards.models.base import utcnow
from holder_rewards.models.records import AllocationRecord, ConversionRecord, DistributionRecord
from holder_rewards.models.status import AllocationStatus, ConversionStatus, DistributionStatus

from .base import LedgerStore, check_allocation_amount, check_transition


class MemoryLedgerStore(LedgerStore):
    """Ledger store held entirely in memory."""

    def __init__(self):
        self._conversions: Dict[int, ConversionRecord] = {}
        self._distributions: Dict[str, DistributionRecord] = {}
        self._allocations: Dict[int, AllocationRecord] = {}
        self._conversion_ids = count(1)
        self._allocation_ids = count(1)
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    # Conversions

    async def create_conversion(self, input_amount: int) -> int:
        async with self._lock:
            conversion_id = next(self._conversion_ids)
            self._conversions[conversion_id] = ConversionRecord(
                id=conversion_id,
                timestamp=utcnow(),
                input_amount=input_amount,
                output_amount=0,
                tx_reference=None,
                status=ConversionStatus.PENDING,
            )
            return conversion_id

    async def resolve_conversion(self, conversion_id: int, output_amount: int, tx_reference: str) -> None:
        await self._finish_conversion(
            conversion_id,
            ConversionStatus.SUCCESS,
            output_amount=output_amount,
            tx_reference=tx_reference,
            error=None,
        )

    async def fail_conversion(self, conversion_id: int, error: str) -> None:
        await self._finish_conversion(conversion_id, ConversionStatus.FAILED, error=error)

    async def _finish_conversion(self, conversion_id: int, status: ConversionStatus, **values) -> None:
        async with self._lock:
            current = self._conversions.get(conversion_id)
            if current is None:
                raise NotFoundError(f"Conversion not found: {conversion_id}", {"conversion_id": conversion_id})
            check_transition("conversion", conversion_id, current.status, status)
            self._conversions[conversion_id] = replace(current, status=status, **values)

    async def get_conversion(self, conversion_id: int) -> Optional[ConversionRecord]:
        return self._conversions.get(conversion_id)

    async def get_recent_conversions(self, limit: int = 50) -> List[ConversionRecord]:
        rows = sorted(self._conversions.values(), key=lambda r: (r.timestamp, r.id), reverse=True)
        return rows[:limit]

    async def get_conversion_totals(self) -> Tuple[int, int]:
        successful = [r for r in self._conversions.values() if r.status == ConversionStatus.SUCCESS]
        return sum(r.input_amount for r in successful), sum(r.output_amount for r in successful)

    # Distributions

    async def create_distribution(
        self,
        distribution_id: str,
        total_amount: int,
        holder_count: int,
        status: DistributionStatus = DistributionStatus.IN_PROGRESS
    ) -> DistributionRecord:
        async with self._lock:
            if distribution_id in self._distributions:
                raise DatabaseError(
                    f"Distribution already exists: {distribution_id}",
                    {"distribution_id": distribution_id}
                )
            record = DistributionRecord(
                distribution_id=distribution_id,
                timestamp=utcnow(),
                total_amount=total_amount,
                holder_count=holder_count,
                status=status,
            )
            self._distributions[distribution_id] = record
            return record

    async def update_distribution_status(
        self,
        distribution_id: str,
        status: DistributionStatus,
        error: Optional[str] = None
    ) -> None:
        async with self._lock:
            current = self._distributions.get(distribution_id)
            if current is None:
                raise DistributionNotFoundError(distribution_id)
            check_transition("distribution", distribution_id, current.status, status)
            self._distributions[distribution_id] = replace(
                current,
                status=status,
                error=error if error is not None else current.error
            )

    async def get_distribution(self, distribution_id: str) -> Optional[DistributionRecord]:
        return self._distributions.get(distribution_id)

    async def get_recent_distributions(self, limit: int = 50) -> List[DistributionRecord]:
        # dicts keep insertion order, which breaks timestamp ties
        rows = list(self._distributions.values())
        rows.reverse()
        rows.sort(key=lambda r: r.timestamp, reverse=True)
        return rows[:limit]

    async def get_last_distribution(self) -> Optional[DistributionRecord]:
        recent = await self.get_recent_distributions(limit=1)
        return recent[0] if recent else None

    async def get_distributions_by_status(self, status: DistributionStatus) -> List[DistributionRecord]:
        return [r for r in self._distributions.values() if r.status == status]

    async def get_distribution_totals(self) -> Tuple[int, int]:
        successful = [r for r in self._distributions.values() if r.status == DistributionStatus.SUCCESS]
        return sum(r.total_amount for r in successful), len(successful)

    # Allocations

    async def create_allocation(self, distribution_id: str, destination: str, amount: int) -> int:
        check_allocation_amount(destination, amount)

        async with self._lock:
            if distribution_id not in self._distributions:
                raise DistributionNotFoundError(distribution_id)
            allocation_id = next(self._allocation_ids)
            self._allocations[allocation_id] = AllocationRecord(
                id=allocation_id,
                distribution_id=distribution_id,
                destination=destination,
                amount=amount,
                tx_reference=None,
                status=AllocationStatus.PENDING,
            )
            return allocation_id

    async def update_allocation_status(
        self,
        allocation_id: int,
        status: AllocationStatus,
        tx_reference: Optional[str] = None,
        error: Optional[str] = None
    ) -> None:
        async with self._lock:
            current = self._allocations.get(allocation_id)
            if current is None:
                raise NotFoundError(f"Allocation not found: {allocation_id}", {"allocation_id": allocation_id})
            check_transition("allocation", allocation_id, current.status, status)
            self._allocations[allocation_id] = replace(
                current,
                status=status,
                tx_reference=tx_reference if tx_reference is not None else current.tx_reference,
                error=error,
            )

    async def get_allocation(self, allocation_id: int) -> Optional[AllocationRecord]:
        return self._allocations.get(allocation_id)

    async def get_allocations_by_distribution(self, distribution_id: str) -> List[AllocationRecord]:
        return [r for r in self._allocations.values() if r.distribution_id == distribution_id]

    async def get_pending_allocations(self, distribution_id: str) -> List[AllocationRecord]:
        return [
            r for r in self._allocations.values()
            if r.distribution_id == distribution_id and r.status == AllocationStatus.PENDING
        ]

    async def get_allocations_by_destination(
        self,
        address: str,
        successful_only: bool = True,
        limit: Optional[int] = None
    ) -> List[AllocationRecord]:
        rows = [
            r for r in reversed(list(self._allocations.values()))
            if r.destination == address and (not successful_only or r.status == AllocationStatus.SUCCESS)
        ]
        return rows if limit is None else rows[:limit]
