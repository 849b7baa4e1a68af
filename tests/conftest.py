"""
Shared fixtures and fakes for the holder rewards tests.
"""

from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Set

import pytest

from holder_rewards.core.config import DistributionPolicy
from holder_rewards.core.exceptions import InvalidDestinationError
from holder_rewards.schemas.holders import TokenAccount
from holder_rewards.services.distribution import DistributionEngine
from holder_rewards.services.holder_snapshot import Holder
from holder_rewards.storage import MemoryLedgerStore


class FakeExecutor:
    """
    Transfer primitive that records submissions.

    ``failures`` is the number of submissions to fail before succeeding;
    ``fail_destinations`` fail every submission of a batch containing them.
    """

    def __init__(
        self,
        failures: int = 0,
        invalid: Optional[Set[str]] = None,
        fail_destinations: Optional[Set[str]] = None
    ):
        self.failures = failures
        self.invalid = invalid or set()
        self.fail_destinations = fail_destinations or set()
        self.prepared: List[str] = []
        self.submissions: List[List[str]] = []
        self.succeeded: List[List[str]] = []

    async def prepare_transfer(self, destination: str, amount: int) -> List[str]:
        if destination in self.invalid:
            raise InvalidDestinationError(destination, "not a valid public key")
        self.prepared.append(destination)
        return [f"{destination}:{amount}"]

    async def submit(self, instructions: Sequence[str]) -> str:
        destinations = [instruction.split(":")[0] for instruction in instructions]
        self.submissions.append(destinations)

        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("blockhash not found")
        if self.fail_destinations.intersection(destinations):
            raise RuntimeError("simulation failed")

        self.succeeded.append(destinations)
        return f"sig{len(self.submissions)}"


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)


class FakeTokenSource:
    def __init__(self, balances: Dict[str, int]):
        self.accounts = [
            TokenAccount(address=f"ata-{owner}", owner=owner, amount=amount)
            for owner, amount in balances.items()
        ]

    async def fetch_all(self) -> List[TokenAccount]:
        return list(self.accounts)


def make_holders(shares: Dict[str, float]) -> List[Holder]:
    return [
        Holder(address=address, balance=1, effective_balance=1, share=share)
        for address, share in shares.items()
    ]


@pytest.fixture
def store():
    return MemoryLedgerStore()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def policy():
    return DistributionPolicy(batch_size=5, max_attempts=3, retry_base_delay=2.0, batch_delay=0.5)


@pytest.fixture
def make_engine(store, sleep, policy):
    def _make(executor, **overrides) -> DistributionEngine:
        return DistributionEngine(store, executor, replace(policy, **overrides), sleep=sleep)

    return _make
