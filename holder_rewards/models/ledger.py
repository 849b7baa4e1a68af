"""
Ledger models - conversions, distributions and per-holder transfers.

Rows are append/update-only: nothing is ever deleted so every run stays
auditable after the fact.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String, Integer, BigInteger, ForeignKey, Index, Text, DateTime,
    Enum as SQLEnum
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin, utcnow
from .records import AllocationRecord, ConversionRecord, DistributionRecord
from .status import AllocationStatus, ConversionStatus, DistributionStatus


class ConversionEvent(BaseModel, TimestampMixin):
    """Audit record of a swap from SOL into the reward asset."""

    __tablename__ = "conversions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        comment="When the swap was attempted"
    )

    input_amount: Mapped[int] = mapped_column(
        BigInteger,
        comment="SOL swapped, in lamports"
    )

    output_amount: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        comment="Reward asset received, in smallest units"
    )

    tx_reference: Mapped[Optional[str]] = mapped_column(
        String(88),
        comment="Swap transaction signature"
    )

    status: Mapped[ConversionStatus] = mapped_column(
        SQLEnum(ConversionStatus),
        default=ConversionStatus.PENDING,
        comment="Swap status"
    )

    error: Mapped[Optional[str]] = mapped_column(
        Text,
        comment="Error message if the swap failed"
    )

    __table_args__ = (
        Index("idx_conversions_timestamp", "timestamp"),
        Index("idx_conversions_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<ConversionEvent(id={self.id}, input={self.input_amount}, status={self.status.value})>"

    def to_record(self) -> ConversionRecord:
        return ConversionRecord(
            id=self.id,
            timestamp=self.timestamp,
            input_amount=self.input_amount,
            output_amount=self.output_amount,
            tx_reference=self.tx_reference,
            status=self.status,
            error=self.error,
        )


class DistributionEvent(BaseModel, TimestampMixin):
    """One attempt to pay a total amount out to a holder snapshot."""

    __tablename__ = "distributions"

    distribution_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        comment="Globally unique distribution identifier"
    )

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        comment="When the run started"
    )

    total_amount: Mapped[int] = mapped_column(
        BigInteger,
        comment="Total payout in reward asset smallest units"
    )

    holder_count: Mapped[int] = mapped_column(
        Integer,
        comment="Holders in the snapshot"
    )

    status: Mapped[DistributionStatus] = mapped_column(
        SQLEnum(DistributionStatus),
        default=DistributionStatus.PENDING,
        comment="Run status"
    )

    error: Mapped[Optional[str]] = mapped_column(
        Text,
        comment="Aggregated errors for the run"
    )

    __table_args__ = (
        Index("idx_distributions_timestamp", "timestamp"),
        Index("idx_distributions_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<DistributionEvent(id={self.distribution_id}, total={self.total_amount}, status={self.status.value})>"

    def to_record(self) -> DistributionRecord:
        return DistributionRecord(
            distribution_id=self.distribution_id,
            timestamp=self.timestamp,
            total_amount=self.total_amount,
            holder_count=self.holder_count,
            status=self.status,
            error=self.error,
        )


class TransferAllocation(BaseModel, TimestampMixin):
    """A planned payment from the payer to one holder."""

    __tablename__ = "transfers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    distribution_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("distributions.distribution_id"),
        comment="Owning distribution"
    )

    destination: Mapped[str] = mapped_column(
        String(44),
        comment="Holder wallet address"
    )

    amount: Mapped[int] = mapped_column(
        BigInteger,
        comment="Allocated amount in reward asset smallest units"
    )

    tx_reference: Mapped[Optional[str]] = mapped_column(
        String(88),
        comment="Batch transaction signature"
    )

    status: Mapped[AllocationStatus] = mapped_column(
        SQLEnum(AllocationStatus),
        default=AllocationStatus.PENDING,
        comment="Transfer status"
    )

    error: Mapped[Optional[str]] = mapped_column(
        Text,
        comment="Error message if the transfer failed"
    )

    __table_args__ = (
        Index("idx_transfers_distribution", "distribution_id", "status"),
        Index("idx_transfers_destination", "destination"),
    )

    def __repr__(self) -> str:
        return f"<TransferAllocation(id={self.id}, to={self.destination}, amount={self.amount}, status={self.status.value})>"

    def to_record(self) -> AllocationRecord:
        return AllocationRecord(
            id=self.id,
            distribution_id=self.distribution_id,
            destination=self.destination,
            amount=self.amount,
            tx_reference=self.tx_reference,
            status=self.status,
            error=self.error,
        )
