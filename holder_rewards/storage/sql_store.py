"""
SQLAlchemy-backed ledger store.

Works against any async driver SQLAlchemy supports; in practice a local
SQLite file (aiosqlite) or a remote Postgres (asyncpg). Every write is a
single statement keyed by primary identifier, in its own short session.
"""

from typing import List, Optional, Tuple

import structlog
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from holder_rewards.core.database import Database
from holder_rewards.core.exceptions import (
    DatabaseError,
    DistributionNotFoundError,
    InvalidStatusTransitionError,
    NotFoundError,
)
from holder_rewards.models.ledger import ConversionEvent, DistributionEvent, TransferAllocation
from holder_rewards.models.records import AllocationRecord, ConversionRecord, DistributionRecord
from holder_rewards.models.status import AllocationStatus, ConversionStatus, DistributionStatus

from .base import LedgerStore, check_allocation_amount


logger = structlog.get_logger(__name__)


def _sources_for(status_cls, target) -> List:
    """Statuses allowed to move to ``target``."""
    return [status for status in status_cls if status.can_transition_to(target)]


class SqlLedgerStore(LedgerStore):
    """Ledger store on top of a SQLAlchemy async engine."""

    def __init__(self, database: Database, create_schema: bool = True):
        self.database = database
        self.create_schema = create_schema
        self.logger = logger.bind(service="sql_ledger_store")

    async def initialize(self) -> None:
        await self.database.init()
        if self.create_schema:
            await self.database.create_tables()

    async def close(self) -> None:
        await self.database.close()

    # Conversions

    async def create_conversion(self, input_amount: int) -> int:
        try:
            async with self.database.session() as session:
                row = ConversionEvent(
                    input_amount=input_amount,
                    output_amount=0,
                    status=ConversionStatus.PENDING,
                )
                session.add(row)
                await session.flush()
                conversion_id = row.id
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to create conversion: {e}") from e

        self.logger.debug("Conversion recorded", conversion_id=conversion_id, input_amount=input_amount)
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
        stmt = (
            update(ConversionEvent)
            .where(
                ConversionEvent.id == conversion_id,
                ConversionEvent.status.in_(_sources_for(ConversionStatus, status)),
            )
            .values(status=status, **values)
        )
        rowcount = await self._execute_update(stmt, "conversion", conversion_id)
        if rowcount == 0:
            current = await self.get_conversion(conversion_id)
            if current is None:
                raise NotFoundError(f"Conversion not found: {conversion_id}", {"conversion_id": conversion_id})
            raise InvalidStatusTransitionError("conversion", conversion_id, current.status.value, status.value)

    async def get_conversion(self, conversion_id: int) -> Optional[ConversionRecord]:
        async with self.database.session() as session:
            row = await session.get(ConversionEvent, conversion_id)
            return row.to_record() if row else None

    async def get_recent_conversions(self, limit: int = 50) -> List[ConversionRecord]:
        async with self.database.session() as session:
            result = await session.execute(
                select(ConversionEvent)
                .order_by(ConversionEvent.timestamp.desc(), ConversionEvent.id.desc())
                .limit(limit)
            )
            return [row.to_record() for row in result.scalars().all()]

    async def get_conversion_totals(self) -> Tuple[int, int]:
        async with self.database.session() as session:
            result = await session.execute(
                select(
                    func.coalesce(func.sum(ConversionEvent.input_amount), 0),
                    func.coalesce(func.sum(ConversionEvent.output_amount), 0),
                ).where(ConversionEvent.status == ConversionStatus.SUCCESS)
            )
            total_input, total_output = result.one()
            return int(total_input), int(total_output)

    # Distributions

    async def create_distribution(
        self,
        distribution_id: str,
        total_amount: int,
        holder_count: int,
        status: DistributionStatus = DistributionStatus.IN_PROGRESS
    ) -> DistributionRecord:
        try:
            async with self.database.session() as session:
                row = DistributionEvent(
                    distribution_id=distribution_id,
                    total_amount=total_amount,
                    holder_count=holder_count,
                    status=status,
                )
                session.add(row)
                await session.flush()
                record = row.to_record()
        except IntegrityError as e:
            raise DatabaseError(
                f"Distribution already exists: {distribution_id}",
                {"distribution_id": distribution_id}
            ) from e
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to create distribution: {e}") from e

        return record

    async def update_distribution_status(
        self,
        distribution_id: str,
        status: DistributionStatus,
        error: Optional[str] = None
    ) -> None:
        values = {"status": status}
        if error is not None:
            values["error"] = error

        stmt = (
            update(DistributionEvent)
            .where(
                DistributionEvent.distribution_id == distribution_id,
                DistributionEvent.status.in_(_sources_for(DistributionStatus, status)),
            )
            .values(**values)
        )
        rowcount = await self._execute_update(stmt, "distribution", distribution_id)
        if rowcount == 0:
            current = await self.get_distribution(distribution_id)
            if current is None:
                raise DistributionNotFoundError(distribution_id)
            raise InvalidStatusTransitionError("distribution", distribution_id, current.status.value, status.value)

    async def get_distribution(self, distribution_id: str) -> Optional[DistributionRecord]:
        async with self.database.session() as session:
            row = await session.get(DistributionEvent, distribution_id)
            return row.to_record() if row else None

    async def get_recent_distributions(self, limit: int = 50) -> List[DistributionRecord]:
        async with self.database.session() as session:
            result = await session.execute(
                select(DistributionEvent)
                .order_by(DistributionEvent.timestamp.desc())
                .limit(limit)
            )
            return [row.to_record() for row in result.scalars().all()]

    async def get_last_distribution(self) -> Optional[DistributionRecord]:
        recent = await self.get_recent_distributions(limit=1)
        return recent[0] if recent else None

    async def get_distributions_by_status(self, status: DistributionStatus) -> List[DistributionRecord]:
        async with self.database.session() as session:
            result = await session.execute(
                select(DistributionEvent)
                .where(DistributionEvent.status == status)
                .order_by(DistributionEvent.timestamp)
            )
            return [row.to_record() for row in result.scalars().all()]

    async def get_distribution_totals(self) -> Tuple[int, int]:
        async with self.database.session() as session:
            result = await session.execute(
                select(
                    func.coalesce(func.sum(DistributionEvent.total_amount), 0),
                    func.count(DistributionEvent.distribution_id),
                ).where(DistributionEvent.status == DistributionStatus.SUCCESS)
            )
            total, count = result.one()
            return int(total), int(count)

    # Allocations

    async def create_allocation(self, distribution_id: str, destination: str, amount: int) -> int:
        check_allocation_amount(destination, amount)

        try:
            async with self.database.session() as session:
                if await session.get(DistributionEvent, distribution_id) is None:
                    raise DistributionNotFoundError(distribution_id)

                row = TransferAllocation(
                    distribution_id=distribution_id,
                    destination=destination,
                    amount=amount,
                    status=AllocationStatus.PENDING,
                )
                session.add(row)
                await session.flush()
                return row.id
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to create allocation: {e}") from e

    async def update_allocation_status(
        self,
        allocation_id: int,
        status: AllocationStatus,
        tx_reference: Optional[str] = None,
        error: Optional[str] = None
    ) -> None:
        values = {"status": status, "error": error}
        if tx_reference is not None:
            values["tx_reference"] = tx_reference

        stmt = (
            update(TransferAllocation)
            .where(
                TransferAllocation.id == allocation_id,
                TransferAllocation.status.in_(_sources_for(AllocationStatus, status)),
            )
            .values(**values)
        )
        rowcount = await self._execute_update(stmt, "allocation", allocation_id)
        if rowcount == 0:
            current = await self.get_allocation(allocation_id)
            if current is None:
                raise NotFoundError(f"Allocation not found: {allocation_id}", {"allocation_id": allocation_id})
            raise InvalidStatusTransitionError("allocation", allocation_id, current.status.value, status.value)

    async def get_allocation(self, allocation_id: int) -> Optional[AllocationRecord]:
        async with self.database.session() as session:
            row = await session.get(TransferAllocation, allocation_id)
            return row.to_record() if row else None

    async def get_allocations_by_distribution(self, distribution_id: str) -> List[AllocationRecord]:
        async with self.database.session() as session:
            result = await session.execute(
                select(TransferAllocation)
                .where(TransferAllocation.distribution_id == distribution_id)
                .order_by(TransferAllocation.id)
            )
            return [row.to_record() for row in result.scalars().all()]

    async def get_pending_allocations(self, distribution_id: str) -> List[AllocationRecord]:
        async with self.database.session() as session:
            result = await session.execute(
                select(TransferAllocation)
                .where(
                    TransferAllocation.distribution_id == distribution_id,
                    TransferAllocation.status == AllocationStatus.PENDING,
                )
                .order_by(TransferAllocation.id)
            )
            return [row.to_record() for row in result.scalars().all()]

    async def get_allocations_by_destination(
        self,
        address: str,
        successful_only: bool = True,
        limit: Optional[int] = None
    ) -> List[AllocationRecord]:
        stmt = select(TransferAllocation).where(TransferAllocation.destination == address)
        if successful_only:
            stmt = stmt.where(TransferAllocation.status == AllocationStatus.SUCCESS)
        stmt = stmt.order_by(TransferAllocation.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self.database.session() as session:
            result = await session.execute(stmt)
            return [row.to_record() for row in result.scalars().all()]

    async def _execute_update(self, stmt, entity: str, key) -> int:
        try:
            async with self.database.session() as session:
                result = await session.execute(stmt)
                return result.rowcount
        except SQLAlchemyError as e:
            self.logger.error("Ledger update failed", entity=entity, key=key, error=str(e))
            raise DatabaseError(f"Failed to update {entity} {key}: {e}") from e
