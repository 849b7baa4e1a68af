"""
Ledger models for the holder rewards bot.

Contains the SQLAlchemy tables backing the durable ledger, their lifecycle
enums, and the immutable records handed out by the stores.
"""

from .base import Base, BaseModel, TimestampMixin
from .ledger import ConversionEvent, DistributionEvent, TransferAllocation
from .records import AllocationRecord, ConversionRecord, DistributionRecord
from .status import AllocationStatus, ConversionStatus, DistributionStatus

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "ConversionEvent",
    "DistributionEvent",
    "TransferAllocation",
    "AllocationRecord",
    "ConversionRecord",
    "DistributionRecord",
    "AllocationStatus",
    "ConversionStatus",
    "DistributionStatus",
]
