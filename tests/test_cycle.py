"""
Test the distribution cycle pipeline and its scheduler.
"""

import asyncio

import pytest

from holder_rewards.core.config import SnapshotPolicy
from holder_rewards.core.exceptions import HolderIndexError, SolanaRPCError, SwapError
from holder_rewards.models.status import AllocationStatus, ConversionStatus, DistributionStatus
from holder_rewards.scheduler.cycle import CycleOrchestrator, CycleOutcome, CycleReport
from holder_rewards.scheduler.main import DistributionScheduler, next_boundary
from holder_rewards.services.holder_snapshot import HolderSnapshotter
from holder_rewards.services.swap_service import SwapResult

from .conftest import FakeExecutor, FakeTokenSource, make_holders


class FakeWallet:
    def __init__(self, distributable=0, error=None):
        self.distributable = distributable
        self.error = error

    async def get_distributable_balance(self):
        if self.error:
            raise self.error
        return self.distributable


class FakeSwapper:
    def __init__(self, output=0, error=None):
        self.output = output
        self.error = error
        self.amounts = []

    async def swap(self, amount):
        self.amounts.append(amount)
        if self.error:
            raise self.error
        return SwapResult(input_amount=amount, output_amount=self.output, tx_reference="swap-sig")


class FailingSource:
    async def fetch_all(self):
        raise HolderIndexError("Holder index HTTP error: 503 Service Unavailable")


THRESHOLD = 100_000_000


@pytest.fixture
def build(store, make_engine):
    def _build(wallet, swapper, source=None, executor=None):
        source = source or FakeTokenSource({"alice": 300, "bob": 700})
        return CycleOrchestrator(
            store=store,
            wallet=wallet,
            swapper=swapper,
            snapshotter=HolderSnapshotter(source, SnapshotPolicy()),
            engine=make_engine(executor or FakeExecutor()),
            swap_threshold=THRESHOLD,
        )

    return _build


@pytest.mark.asyncio
async def test_low_balance_skips_cycle(store, build):
    swapper = FakeSwapper(output=1000)
    orchestrator = build(FakeWallet(THRESHOLD - 1), swapper)

    report = await orchestrator.run_cycle()

    assert report.outcome == CycleOutcome.SKIPPED_LOW_BALANCE
    assert swapper.amounts == []
    assert await store.get_recent_conversions() == []


@pytest.mark.asyncio
async def test_swap_failure_records_failed_conversion(store, build):
    orchestrator = build(FakeWallet(THRESHOLD), FakeSwapper(error=SwapError("No route found")))

    report = await orchestrator.run_cycle()

    assert report.outcome == CycleOutcome.SWAP_FAILED
    conversion = await store.get_conversion(report.conversion_id)
    assert conversion.status == ConversionStatus.FAILED
    assert conversion.error == "No route found"
    assert await store.get_recent_distributions() == []


@pytest.mark.asyncio
async def test_zero_output_has_nothing_to_distribute(store, build):
    orchestrator = build(FakeWallet(THRESHOLD), FakeSwapper(output=0))

    report = await orchestrator.run_cycle()

    assert report.outcome == CycleOutcome.NOTHING_TO_DISTRIBUTE
    conversion = await store.get_conversion(report.conversion_id)
    assert conversion.status == ConversionStatus.SUCCESS
    assert await store.get_recent_distributions() == []


@pytest.mark.asyncio
async def test_snapshot_failure_keeps_resolved_conversion(store, build):
    orchestrator = build(FakeWallet(THRESHOLD), FakeSwapper(output=1000), source=FailingSource())

    report = await orchestrator.run_cycle()

    assert report.outcome == CycleOutcome.SNAPSHOT_FAILED
    conversion = await store.get_conversion(report.conversion_id)
    assert conversion.status == ConversionStatus.SUCCESS
    assert conversion.output_amount == 1000
    assert await store.get_recent_distributions() == []


@pytest.mark.asyncio
async def test_no_eligible_holders(store, build):
    orchestrator = build(FakeWallet(THRESHOLD), FakeSwapper(output=1000), source=FakeTokenSource({}))

    report = await orchestrator.run_cycle()

    assert report.outcome == CycleOutcome.NO_HOLDERS
    assert await store.get_recent_distributions() == []


@pytest.mark.asyncio
async def test_full_cycle_distributes_swap_output(store, build):
    swapper = FakeSwapper(output=1000)
    orchestrator = build(FakeWallet(THRESHOLD * 2), swapper)

    report = await orchestrator.run_cycle()

    assert report.outcome == CycleOutcome.DISTRIBUTED
    assert swapper.amounts == [THRESHOLD * 2]
    assert report.distribution.success

    distribution = await store.get_distribution(report.distribution.distribution_id)
    assert distribution.status == DistributionStatus.SUCCESS
    assert distribution.total_amount == 1000

    allocations = await store.get_allocations_by_distribution(distribution.distribution_id)
    assert [(a.destination, a.amount, a.status) for a in allocations] == [
        ("alice", 300, AllocationStatus.SUCCESS),
        ("bob", 700, AllocationStatus.SUCCESS),
    ]


@pytest.mark.asyncio
async def test_unexpected_error_reports_failed(build):
    orchestrator = build(FakeWallet(error=SolanaRPCError("Failed to get balance: timeout")), FakeSwapper())

    report = await orchestrator.run_cycle()

    assert report.outcome == CycleOutcome.FAILED
    assert "timeout" in report.error


def test_next_boundary_aligns_to_wall_clock():
    assert next_boundary(0, 900) == 900
    assert next_boundary(899.5, 900) == 900
    assert next_boundary(900, 900) == 1800
    assert next_boundary(1000, 900) == 1800


class StubOrchestrator:
    def __init__(self, on_cycle=None):
        self.calls = 0
        self.on_cycle = on_cycle

    async def run_cycle(self):
        self.calls += 1
        if self.on_cycle:
            self.on_cycle()
        return CycleReport(CycleOutcome.SKIPPED_LOW_BALANCE)


@pytest.mark.asyncio
async def test_scheduler_stop_lets_current_cycle_finish(store, make_engine):
    orchestrator = StubOrchestrator()
    scheduler = DistributionScheduler(orchestrator, make_engine(FakeExecutor()), interval_seconds=900)
    orchestrator.on_cycle = scheduler.stop

    await asyncio.wait_for(scheduler.run_forever(), timeout=5)

    assert orchestrator.calls == 1
    assert scheduler.cycles_run == 1
    assert scheduler.last_report.outcome == CycleOutcome.SKIPPED_LOW_BALANCE


@pytest.mark.asyncio
async def test_scheduler_waits_for_next_boundary(store, make_engine):
    orchestrator = StubOrchestrator()
    scheduler = DistributionScheduler(
        orchestrator,
        make_engine(FakeExecutor()),
        interval_seconds=900,
        clock=lambda: 899.95,
    )

    def stop_after_two():
        if orchestrator.calls == 2:
            scheduler.stop()

    orchestrator.on_cycle = stop_after_two

    await asyncio.wait_for(scheduler.run_forever(), timeout=5)

    assert orchestrator.calls == 2


@pytest.mark.asyncio
async def test_scheduler_resumes_interrupted_distributions(store, make_engine):
    executor = FakeExecutor()
    await store.create_distribution("crashed", 50, 1)
    await store.create_allocation("crashed", "alice", 50)

    orchestrator = StubOrchestrator()
    scheduler = DistributionScheduler(orchestrator, make_engine(executor), resume_interrupted=True)
    orchestrator.on_cycle = scheduler.stop

    await asyncio.wait_for(scheduler.run_forever(), timeout=5)

    assert executor.submissions == [["alice"]]
    crashed = await store.get_distribution("crashed")
    assert crashed.status == DistributionStatus.FAILED
    assert await store.get_pending_allocations("crashed") == []


@pytest.mark.asyncio
async def test_scheduler_only_reports_interrupted_by_default(store, make_engine):
    executor = FakeExecutor()
    await store.create_distribution("crashed", 50, 1)
    await store.create_allocation("crashed", "alice", 50)

    orchestrator = StubOrchestrator()
    scheduler = DistributionScheduler(orchestrator, make_engine(executor))
    orchestrator.on_cycle = scheduler.stop

    await asyncio.wait_for(scheduler.run_forever(), timeout=5)

    assert executor.submissions == []
    assert (await store.get_distribution("crashed")).status == DistributionStatus.IN_PROGRESS


class StopOnSubmitExecutor(FakeExecutor):
    def __init__(self):
        super().__init__()
        self.on_submit = None

    async def submit(self, instructions):
        signature = await super().submit(instructions)
        self.on_submit()
        return signature


@pytest.mark.asyncio
async def test_scheduler_stop_ends_distribution_after_current_batch(store, make_engine):
    executor = StopOnSubmitExecutor()
    engine = make_engine(executor, batch_size=1)
    results = []

    class DistributingOrchestrator:
        async def run_cycle(self):
            results.append(await engine.distribute(100, make_holders({"alice": 0.5, "bob": 0.5})))
            return CycleReport(CycleOutcome.FAILED)

    scheduler = DistributionScheduler(DistributingOrchestrator(), engine)
    executor.on_submit = scheduler.stop

    await asyncio.wait_for(scheduler.run_forever(), timeout=5)

    assert scheduler.cycles_run == 1
    assert executor.submissions == [["alice"]]
    pending = await store.get_pending_allocations(results[0].distribution_id)
    assert [a.destination for a in pending] == ["bob"]
    assert (await store.get_distribution(results[0].distribution_id)).status == DistributionStatus.FAILED
