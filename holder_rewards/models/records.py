"""
Immutable read models returned by the ledger stores.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .status import AllocationStatus, ConversionStatus, DistributionStatus


@dataclass(frozen=True)
class ConversionRecord:
    """One SOL -> reward asset swap attempt."""
    id: int
    timestamp: datetime
    input_amount: int
    output_amount: int
    tx_reference: Optional[str]
    status: ConversionStatus
    error: Optional[str] = None


@dataclass(frozen=True)
class DistributionRecord:
    """One payout run over a holder snapshot."""
    distribution_id: str
    timestamp: datetime
    total_amount: int
    holder_count: int
    status: DistributionStatus
    error: Optional[str] = None


@dataclass(frozen=True)
class AllocationRecord:
    """One planned transfer to one holder."""
    id: int
    distribution_id: str
    destination: str
    amount: int
    tx_reference: Optional[str]
    status: AllocationStatus
    error: Optional[str] = None
