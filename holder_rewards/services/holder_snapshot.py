"""
Holder snapshots - turns raw token accounts into eligible holders with
normalized payout shares.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Protocol

import structlog

from holder_rewards.core.config import SnapshotPolicy
from holder_rewards.schemas.holders import TokenAccount


logger = structlog.get_logger(__name__)


WEIGHTING_FUNCTIONS = {
    "linear": lambda balance: float(balance),
    "sqrt": lambda balance: math.sqrt(balance),
}


@dataclass
class Holder:
    """An eligible account and its proportional claim on a payout."""
    address: str
    balance: int
    effective_balance: int
    share: float = 0.0


@dataclass
class HolderSet:
    """Result of one snapshot."""
    timestamp: datetime
    total_weighted_balance: float
    holders: List[Holder] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.holders


class TokenAccountSource(Protocol):
    async def fetch_all(self) -> List[TokenAccount]:
        ...


def aggregate_by_owner(accounts: Iterable[TokenAccount]) -> Dict[str, int]:
    """Sum balances per owner, keeping first-seen order."""
    balances: Dict[str, int] = {}
    for account in accounts:
        balances[account.owner] = balances.get(account.owner, 0) + account.amount
    return balances


def weigh(balance: int, weighting: str) -> float:
    try:
        return WEIGHTING_FUNCTIONS[weighting](balance)
    except KeyError:
        raise ValueError(f"Unknown weighting mode: {weighting}")


def build_holder_set(balances: Dict[str, int], policy: SnapshotPolicy) -> HolderSet:
    """
    Apply eligibility, anti-whale cap and weighting to owner balances.

    The weight is derived from the capped balance in both passes so the
    normalisation total and the individual shares always agree.
    """
    holders: List[Holder] = []
    total_weighted = 0.0

    for owner, balance in balances.items():
        if owner in policy.excluded_holders:
            continue
        if balance <= 0 or balance < policy.min_holder_balance:
            continue

        effective = balance
        if policy.max_holder_balance is not None and balance > policy.max_holder_balance:
            effective = policy.max_holder_balance

        holders.append(Holder(address=owner, balance=balance, effective_balance=effective))
        total_weighted += weigh(effective, policy.weighting)

    if total_weighted > 0:
        for holder in holders:
            holder.share = weigh(holder.effective_balance, policy.weighting) / total_weighted
    else:
        holders = []

    return HolderSet(
        timestamp=datetime.now(timezone.utc),
        total_weighted_balance=total_weighted,
        holders=holders,
    )


class HolderSnapshotter:
    """Produces holder sets from the holder index."""

    def __init__(self, source: TokenAccountSource, policy: SnapshotPolicy):
        self.source = source
        self.policy = policy
        self.logger = logger.bind(service="holder_snapshotter")

    async def snapshot(self) -> HolderSet:
        """
        Take a snapshot of eligible holders.

        Index failures propagate unchanged; an empty holder set is a valid
        result meaning there is nobody to pay.
        """
        accounts = await self.source.fetch_all()
        balances = aggregate_by_owner(accounts)
        holder_set = build_holder_set(balances, self.policy)

        self.logger.info(
            "Holder snapshot complete",
            token_accounts=len(accounts),
            owners=len(balances),
            eligible_holders=len(holder_set.holders),
            total_weighted_balance=holder_set.total_weighted_balance,
            weighting=self.policy.weighting,
        )
        return holder_set
