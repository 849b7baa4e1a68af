"""
Lifecycle states for ledger rows.

Every status is a closed enum with an explicit transition table. Rows only
ever move forward; the stores reject anything else.
"""

from enum import Enum
from typing import Dict, FrozenSet


class ConversionStatus(Enum):
    """Status of a SOL -> reward asset swap."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return not _CONVERSION_TRANSITIONS[self]

    def can_transition_to(self, target: "ConversionStatus") -> bool:
        return target in _CONVERSION_TRANSITIONS[self]


class DistributionStatus(Enum):
    """Status of a distribution run."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return not _DISTRIBUTION_TRANSITIONS[self]

    def can_transition_to(self, target: "DistributionStatus") -> bool:
        return target in _DISTRIBUTION_TRANSITIONS[self]


class AllocationStatus(Enum):
    """Status of a single holder transfer."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return not _ALLOCATION_TRANSITIONS[self]

    def can_transition_to(self, target: "AllocationStatus") -> bool:
        return target in _ALLOCATION_TRANSITIONS[self]


_CONVERSION_TRANSITIONS: Dict[ConversionStatus, FrozenSet[ConversionStatus]] = {
    ConversionStatus.PENDING: frozenset({ConversionStatus.SUCCESS, ConversionStatus.FAILED}),
    ConversionStatus.SUCCESS: frozenset(),
    ConversionStatus.FAILED: frozenset(),
}

_DISTRIBUTION_TRANSITIONS: Dict[DistributionStatus, FrozenSet[DistributionStatus]] = {
    DistributionStatus.PENDING: frozenset({
        DistributionStatus.IN_PROGRESS,
        DistributionStatus.FAILED,
    }),
    DistributionStatus.IN_PROGRESS: frozenset({
        DistributionStatus.SUCCESS,
        DistributionStatus.FAILED,
    }),
    DistributionStatus.SUCCESS: frozenset(),
    DistributionStatus.FAILED: frozenset(),
}

_ALLOCATION_TRANSITIONS: Dict[AllocationStatus, FrozenSet[AllocationStatus]] = {
    AllocationStatus.PENDING: frozenset({AllocationStatus.SUCCESS, AllocationStatus.FAILED}),
    AllocationStatus.SUCCESS: frozenset(),
    AllocationStatus.FAILED: frozenset(),
}
