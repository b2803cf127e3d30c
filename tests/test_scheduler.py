import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import make_candidate
from core.exceptions import ExecutionError, FeedError
from models.candidate import SourceTag
from modules.exit_monitor import MonitorSettings
from modules.scheduler import CycleReport, CycleScheduler, SchedulerSettings
from modules.scorer import AdmissionScorer
from modules.source_aggregator import SourceAggregator
from utils.event_bus import CYCLE_COMPLETED

FAST = SchedulerSettings(cycle_interval=0, admission_pacing=0)
IDLE_MONITOR = MonitorSettings(initial_delay=60)

# a dex boost with a description scores exactly 60
ADMITTABLE = dict(boost_amount=5000, description="listing")


def source(name, candidates=(), error=None):
    src = MagicMock()
    src.name = name
    if error is not None:
        src.fetch = AsyncMock(side_effect=error)
    else:
        src.fetch = AsyncMock(return_value=list(candidates))
    src.normalize.side_effect = lambda c: c
    return src


def build(make_manager, registry, sources, *, max_positions=5, bus=None, settings=FAST):
    manager = make_manager(max_positions=max_positions, monitor_settings=IDLE_MONITOR)
    aggregator = SourceAggregator(sources, registry, is_open=manager.is_open)
    scorer = AdmissionScorer(threshold=60, max_positions=max_positions)
    return CycleScheduler(
        aggregator, scorer, manager, manager.ledger, settings=settings, bus=bus
    ), manager


# ------------------------- run_cycle ------------------------- #

@pytest.mark.asyncio
async def test_cycle_opens_admitted_candidates(make_manager, registry):
    good = make_candidate("GOOD", SourceTag.DEX, **ADMITTABLE)
    weak = make_candidate("WEAK", SourceTag.DEX, boost_amount=10)
    scheduler, manager = build(make_manager, registry, [source("dex", [good, weak])])

    report = await scheduler.run_cycle()

    assert isinstance(report, CycleReport)
    assert report.candidates == 2
    assert report.admitted == 1
    assert [p.identifier for p in report.opened] == ["GOOD"]
    assert manager.is_open("GOOD")
    assert not manager.is_open("WEAK")
    assert scheduler.aggregator.metrics["latencies"] == []
    await manager.shutdown()


@pytest.mark.asyncio
async def test_all_sources_failing_completes_cycle(make_manager, registry):
    bus = MagicMock()
    sources = [source("bitquery", error=FeedError("bitquery", "down")),
               source("dexscreener", error=asyncio.TimeoutError())]
    scheduler, manager = build(make_manager, registry, sources, bus=bus)

    first = await scheduler.run_cycle()
    second = await scheduler.run_cycle()

    assert (first.number, second.number) == (1, 2)
    assert first.admitted == 0 and first.opened == []
    assert sorted(first.failed_sources) == ["bitquery", "dexscreener"]
    topics = [c.args[0] for c in bus.publish.call_args_list]
    assert topics == [CYCLE_COMPLETED, CYCLE_COMPLETED]


@pytest.mark.asyncio
async def test_cycle_stops_at_capacity(make_manager, registry, venue):
    candidates = [make_candidate(f"C{i}", SourceTag.DEX, **ADMITTABLE) for i in range(5)]
    scheduler, manager = build(make_manager, registry, [source("dex", candidates)], max_positions=2)

    report = await scheduler.run_cycle()

    assert manager.open_count == 2
    assert report.capacity_reached
    assert report.scored == 2
    assert venue.buy.await_count == 2
    await manager.shutdown()


@pytest.mark.asyncio
async def test_traded_identifier_never_readmitted(make_manager, registry, venue):
    c = make_candidate("ONCE", SourceTag.DEX, **ADMITTABLE)
    scheduler, manager = build(make_manager, registry, [source("dex", [c])])

    await scheduler.run_cycle()
    manager.abandon("ONCE")
    report = await scheduler.run_cycle()

    assert report.candidates == 0
    assert venue.buy.await_count == 1
    await manager.shutdown()


@pytest.mark.asyncio
async def test_buy_failure_does_not_break_cycle(make_manager, registry, venue):
    venue.buy = AsyncMock(side_effect=ExecutionError("A", "buy", "rpc down"))
    cands = [make_candidate(i, SourceTag.DEX, **ADMITTABLE) for i in ("A", "B")]
    scheduler, manager = build(make_manager, registry, [source("dex", cands)])

    report = await scheduler.run_cycle()

    assert report.admitted == 2
    assert report.opened == []
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_pacing_after_each_admission(make_manager, registry):
    cands = [make_candidate(i, SourceTag.DEX, **ADMITTABLE) for i in ("A", "B")]
    weak = make_candidate("W", SourceTag.DEX)
    settings = SchedulerSettings(cycle_interval=0, admission_pacing=3)
    scheduler, manager = build(make_manager, registry, [source("dex", cands + [weak])], settings=settings)

    with patch("modules.scheduler.asyncio.sleep", new=AsyncMock()) as fake_sleep:
        await scheduler.run_cycle()

    assert [c.args[0] for c in fake_sleep.await_args_list] == [3, 3]
    await manager.shutdown()


# ------------------------- run / stop / preflight ------------------------- #

@pytest.mark.asyncio
async def test_run_survives_cycle_exception(make_manager, registry, caplog):
    scheduler, manager = build(make_manager, registry, [])
    calls = []

    async def flaky_cycle():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("aggregator exploded")
        if len(calls) == 3:
            scheduler.stop()
        return CycleReport(number=len(calls))

    scheduler.run_cycle = flaky_cycle
    with caplog.at_level(logging.INFO, logger="modules.scheduler"):
        await asyncio.wait_for(scheduler.run(), timeout=2)

    assert len(calls) == 3
    assert "Cycle" in caplog.text and "failed" in caplog.text
    assert "SNIPER PERFORMANCE" in caplog.text
    assert not scheduler.running


@pytest.mark.asyncio
async def test_stop_wakes_sleeping_scheduler(make_manager, registry):
    slow = SchedulerSettings(cycle_interval=3600, admission_pacing=0)
    scheduler, manager = build(make_manager, registry, [], settings=slow)

    task = asyncio.create_task(scheduler.run())
    await asyncio.sleep(0.05)
    scheduler.stop()
    await asyncio.wait_for(task, timeout=1)

    assert scheduler.cycles == 1


@pytest.mark.asyncio
async def test_stop_leaves_positions_open(make_manager, registry):
    c = make_candidate("KEEP", SourceTag.DEX, **ADMITTABLE)
    scheduler, manager = build(make_manager, registry, [source("dex", [c])])

    async def one_cycle():
        report = await CycleScheduler.run_cycle(scheduler)
        scheduler.stop()
        return report

    scheduler.run_cycle = one_cycle
    await asyncio.wait_for(scheduler.run(), timeout=1)

    assert manager.is_open("KEEP")
    assert manager.active_monitors == 1
    await manager.shutdown()


@pytest.mark.asyncio
async def test_preflight_requires_one_budget(make_manager, registry, venue):
    scheduler, _ = build(make_manager, registry, [])
    venue.get_balance = AsyncMock(return_value=0.01)
    with pytest.raises(ExecutionError):
        await scheduler.preflight()

    venue.get_balance = AsyncMock(return_value=0.5)
    assert await scheduler.preflight() == 0.5


@pytest.mark.asyncio
async def test_start_aborts_when_preflight_fails(make_manager, registry, venue):
    venue.get_balance = AsyncMock(return_value=0.0)
    scheduler, _ = build(make_manager, registry, [])
    scheduler.run = AsyncMock()

    with pytest.raises(ExecutionError):
        await scheduler.start()
    scheduler.run.assert_not_awaited()
