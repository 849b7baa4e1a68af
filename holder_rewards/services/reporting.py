"""
Read-only ledger summaries for the CLI and dashboards.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from holder_rewards.models.records import AllocationRecord, ConversionRecord, DistributionRecord
from holder_rewards.storage.base import LedgerStore


@dataclass
class LedgerStats:
    total_converted_input: int
    total_converted_output: int
    total_distributed: int
    distribution_count: int
    last_distribution: Optional[DistributionRecord] = None

    @property
    def last_activity(self) -> Optional[datetime]:
        return self.last_distribution.timestamp if self.last_distribution else None


@dataclass
class WalletRewards:
    address: str
    total_received: int
    transfer_count: int
    recent: List[AllocationRecord] = field(default_factory=list)


class LedgerReporter:
    """Aggregates over the ledger store. Never writes."""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def stats(self) -> LedgerStats:
        converted_input, converted_output = await self.store.get_conversion_totals()
        distributed, count = await self.store.get_distribution_totals()
        return LedgerStats(
            total_converted_input=converted_input,
            total_converted_output=converted_output,
            total_distributed=distributed,
            distribution_count=count,
            last_distribution=await self.store.get_last_distribution(),
        )

    async def recent_conversions(self, limit: int = 10) -> List[ConversionRecord]:
        return await self.store.get_recent_conversions(limit)

    async def recent_distributions(self, limit: int = 10) -> List[DistributionRecord]:
        return await self.store.get_recent_distributions(limit)

    async def wallet_rewards(self, address: str, recent: int = 20) -> WalletRewards:
        """Successful payouts to ``address``; totals cover every transfer, not just the recent ones."""
        allocations = await self.store.get_allocations_by_destination(address, successful_only=True)
        return WalletRewards(
            address=address,
            total_received=sum(allocation.amount for allocation in allocations),
            transfer_count=len(allocations),
            recent=allocations[:recent],
        )
