"""
Abstract ledger store.

The engine and orchestrator only talk to this interface; whether rows land
in a local SQLite file, a remote Postgres or process memory is decided when
the store is constructed.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple

from holder_rewards.core.exceptions import InvalidStatusTransitionError, ValidationError
from holder_rewards.models.records import AllocationRecord, ConversionRecord, DistributionRecord
from holder_rewards.models.status import AllocationStatus, DistributionStatus


class LedgerStore(ABC):
    """Durable record of conversions, distributions and transfer allocations."""

    # Lifecycle

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backend (create schema, open connections)."""

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""

    # Conversions

    @abstractmethod
    async def create_conversion(self, input_amount: int) -> int:
        """Insert a pending conversion and return its id."""

    @abstractmethod
    async def resolve_conversion(self, conversion_id: int, output_amount: int, tx_reference: str) -> None:
        """Mark a pending conversion successful."""

    @abstractmethod
    async def fail_conversion(self, conversion_id: int, error: str) -> None:
        """Mark a pending conversion failed."""

    @abstractmethod
    async def get_conversion(self, conversion_id: int) -> Optional[ConversionRecord]:
        ...

    @abstractmethod
    async def get_recent_conversions(self, limit: int = 50) -> List[ConversionRecord]:
        ...

    @abstractmethod
    async def get_conversion_totals(self) -> Tuple[int, int]:
        """Sum of (input, output) amounts over successful conversions."""

    # Distributions

    @abstractmethod
    async def create_distribution(
        self,
        distribution_id: str,
        total_amount: int,
        holder_count: int,
        status: DistributionStatus = DistributionStatus.IN_PROGRESS
    ) -> DistributionRecord:
        """Insert a distribution row; the id must not exist yet."""

    @abstractmethod
    async def update_distribution_status(
        self,
        distribution_id: str,
        status: DistributionStatus,
        error: Optional[str] = None
    ) -> None:
        """Move a distribution forward; the stored error is kept when none is given."""

    @abstractmethod
    async def get_distribution(self, distribution_id: str) -> Optional[DistributionRecord]:
        ...

    @abstractmethod
    async def get_recent_distributions(self, limit: int = 50) -> List[DistributionRecord]:
        ...

    @abstractmethod
    async def get_last_distribution(self) -> Optional[DistributionRecord]:
        ...

    @abstractmethod
    async def get_distributions_by_status(self, status: DistributionStatus) -> List[DistributionRecord]:
        ...

    @abstractmethod
    async def get_distribution_totals(self) -> Tuple[int, int]:
        """(total amount, count) over successful distributions."""

    # Allocations

    @abstractmethod
    async def create_allocation(self, distribution_id: str, destination: str, amount: int) -> int:
        """Insert a pending allocation and return its id."""

    @abstractmethod
    async def update_allocation_status(
        self,
        allocation_id: int,
        status: AllocationStatus,
        tx_reference: Optional[str] = None,
        error: Optional[str] = None
    ) -> None:
        """Move an allocation forward; the stored reference is kept when none is given."""

    @abstractmethod
    async def get_allocation(self, allocation_id: int) -> Optional[AllocationRecord]:
        ...

    @abstractmethod
    async def get_allocations_by_distribution(self, distribution_id: str) -> List[AllocationRecord]:
        ...

    @abstractmethod
    async def get_pending_allocations(self, distribution_id: str) -> List[AllocationRecord]:
        ...

    @abstractmethod
    async def get_allocations_by_destination(
        self,
        address: str,
        successful_only: bool = True,
        limit: Optional[int] = None
    ) -> List[AllocationRecord]:
        """Allocations paid (or owed) to one wallet, newest first."""

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def check_transition(entity: str, key: Any, current, target) -> None:
    """Raise if ``current`` may not move to ``target``."""
    if not current.can_transition_to(target):
        raise InvalidStatusTransitionError(entity, key, current.value, target.value)


def check_allocation_amount(destination: str, amount: int) -> None:
    if amount <= 0:
        raise ValidationError(
            f"Allocation amount must be positive, got {amount}",
            {"destination": destination, "amount": amount}
        )
