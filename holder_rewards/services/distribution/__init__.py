"""
Distribution engine package.
"""

from .allocation import chunked, compute_allocations
from .engine import DistributionEngine
from .types import (
    DRY_RUN_REFERENCE,
    STOPPED_ERROR,
    BatchAttempt,
    DistributionResult,
    PlannedAllocation,
    TransferExecutor,
)

__all__ = [
    "DistributionEngine",
    "DistributionResult",
    "BatchAttempt",
    "PlannedAllocation",
    "TransferExecutor",
    "DRY_RUN_REFERENCE",
    "STOPPED_ERROR",
    "compute_allocations",
    "chunked",
]
