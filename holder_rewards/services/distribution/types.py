"""
Types for distribution processing.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence


# Reference recorded for allocations settled in dry-run mode
DRY_RUN_REFERENCE = "DRY_RUN"

# Error recorded on a distribution left unfinished by a stop request
STOPPED_ERROR = "stopped before completion"


class TransferExecutor(Protocol):
    """The ledger transfer primitive the engine pays through."""

    async def prepare_transfer(self, destination: str, amount: int) -> List[Any]:
        """
        Build the instructions paying ``amount`` to ``destination``.

        Raises ``InvalidDestinationError`` when the destination itself is
        unusable; any other exception is treated as transient.
        """
        ...

    async def submit(self, instructions: Sequence[Any]) -> str:
        """Execute instructions atomically and return the transaction reference."""
        ...


@dataclass
class PlannedAllocation:
    """A persisted allocation waiting for execution."""
    allocation_id: int
    destination: str
    amount: int


@dataclass
class BatchAttempt:
    """Outcome of one submission attempt for a batch."""
    signature: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.signature is not None


@dataclass
class DistributionResult:
    """Summary of a distribution run. Allocation rows remain the source of truth."""
    distribution_id: str
    total_amount: int
    planned_transfers: int = 0
    successful_transfers: int = 0
    failed_transfers: int = 0
    distributed_amount: int = 0
    tx_references: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    aborted: bool = False

    @property
    def success(self) -> bool:
        return not self.aborted and self.failed_transfers == 0
