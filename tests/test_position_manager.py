import asyncio
from unittest.mock import AsyncMock

import aiohttp
import pytest

from conftest import admitted, make_candidate, wait_idle
from core.exceptions import (
    AdmissionRejected,
    CloseInProgress,
    ExecutionError,
    PositionInvariantError,
    PositionNotFound,
)
from models.candidate import ScoredCandidate, SourceTag
from models.position import ExecutionFailure, Fill, Position
from models.trade_outcome import ClosedTrade, CloseReason
from modules.exit_monitor import MonitorSettings
from modules.position_manager import BASELINE_PROFILE, DEFAULT_EXIT_PROFILES, ExitProfile
from utils.event_bus import EXECUTION_FAILURE, POSITION_CLOSED, POSITION_OPENED

# monitors that stay asleep for the whole test
IDLE_MONITOR = MonitorSettings(initial_delay=60)


def published(bus, topic):
    return [c.args[1] for c in bus.publish.call_args_list if c.args[0] == topic]


# ------------------------- Open ------------------------- #

@pytest.mark.asyncio
async def test_open_assigns_exit_profile_of_source(make_manager, registry, bus):
    manager = make_manager(exit_profiles=DEFAULT_EXIT_PROFILES, monitor_settings=IDLE_MONITOR)

    position = await manager.open(admitted(make_candidate("PUMP1", SourceTag.PUMP_EARLY), score=90))

    assert isinstance(position, Position)
    assert position.target_multiplier == 20.0
    assert position.stop_multiplier == 0.30
    assert position.entry_price == 1.0
    assert position.quantity == 0.03
    assert position.cost == 0.03
    assert position.score == 90
    assert manager.is_open("PUMP1")
    assert "PUMP1" in registry
    assert manager.active_monitors == 1
    assert published(bus, POSITION_OPENED) == [position]
    await manager.shutdown()


@pytest.mark.asyncio
async def test_dex_tags_use_dex_stop(make_manager):
    manager = make_manager(exit_profiles=DEFAULT_EXIT_PROFILES, monitor_settings=IDLE_MONITOR)

    fresh = await manager.open(admitted(make_candidate("A", SourceTag.DEX_FRESH)))
    dex = await manager.open(admitted(make_candidate("B", SourceTag.DEX)))

    assert (fresh.target_multiplier, fresh.stop_multiplier) == (4.0, 0.40)
    assert (dex.target_multiplier, dex.stop_multiplier) == (2.0, 0.40)
    await manager.shutdown()


def test_unknown_tag_falls_back_to_baseline(make_manager):
    manager = make_manager(exit_profiles={SourceTag.PUMP_EARLY: ExitProfile(20.0, 0.3)})
    assert manager.exit_profile_for(SourceTag.KING_OF_HILL) == BASELINE_PROFILE
    assert BASELINE_PROFILE == DEFAULT_EXIT_PROFILES[SourceTag.DEX]


@pytest.mark.asyncio
async def test_open_rejects_not_admitted(make_manager, venue):
    manager = make_manager()
    scored = ScoredCandidate(candidate=make_candidate(), score=10, admit=False)

    with pytest.raises(AdmissionRejected):
        await manager.open(scored)
    venue.buy.assert_not_awaited()


@pytest.mark.asyncio
async def test_open_rejects_identifier_already_traded(make_manager, registry, venue):
    registry.add("MINT1")
    manager = make_manager()

    with pytest.raises(AdmissionRejected):
        await manager.open(admitted(make_candidate("MINT1")))
    venue.buy.assert_not_awaited()


@pytest.mark.asyncio
async def test_open_twice_is_invariant_violation(make_manager):
    manager = make_manager(monitor_settings=IDLE_MONITOR)
    await manager.open(admitted(make_candidate("MINT1")))

    with pytest.raises(PositionInvariantError):
        await manager.open(admitted(make_candidate("MINT1")))
    assert manager.open_count == 1
    await manager.shutdown()


@pytest.mark.asyncio
async def test_capacity_is_never_exceeded(make_manager, venue):
    manager = make_manager(max_positions=2, monitor_settings=IDLE_MONITOR)
    await manager.open(admitted(make_candidate("A")))
    await manager.open(admitted(make_candidate("B")))

    with pytest.raises(AdmissionRejected):
        await manager.open(admitted(make_candidate("C")))
    assert manager.open_count == 2
    assert venue.buy.await_count == 2
    await manager.shutdown()


@pytest.mark.asyncio
async def test_in_flight_opens_count_against_capacity(make_manager, venue):
    release = asyncio.Event()

    async def slow_buy(identifier, budget):
        await release.wait()
        return Fill(price=1.0, quantity=budget)

    venue.buy = AsyncMock(side_effect=slow_buy)
    manager = make_manager(max_positions=2, monitor_settings=IDLE_MONITOR)

    first = asyncio.create_task(manager.open(admitted(make_candidate("A"))))
    second = asyncio.create_task(manager.open(admitted(make_candidate("B"))))
    await asyncio.sleep(0)

    assert not manager.has_capacity()
    with pytest.raises(AdmissionRejected):
        await manager.open(admitted(make_candidate("C")))

    release.set()
    await asyncio.gather(first, second)
    assert manager.open_count == 2
    await manager.shutdown()


@pytest.mark.asyncio
async def test_buy_failure_leaves_no_trace(make_manager, venue, registry, bus, ledger):
    venue.buy = AsyncMock(side_effect=ExecutionError("MINT1", "buy", "slippage exceeded"))
    manager = make_manager()

    result = await manager.open(admitted(make_candidate("MINT1", symbol="BAD")))

    assert result is None
    assert manager.open_count == 0
    assert "MINT1" not in registry
    assert manager.active_monitors == 0
    assert len(ledger) == 0
    failures = published(bus, EXECUTION_FAILURE)
    assert len(failures) == 1
    assert isinstance(failures[0], ExecutionFailure)
    assert failures[0].side == "buy"
    assert failures[0].symbol == "BAD"
    assert published(bus, POSITION_OPENED) == []


@pytest.mark.asyncio
async def test_buy_failure_can_be_retried_later(make_manager, venue):
    venue.buy = AsyncMock(side_effect=[ExecutionError("MINT1", "buy", "rpc"), Fill(1.0, 0.03)])
    manager = make_manager(monitor_settings=IDLE_MONITOR)

    assert await manager.open(admitted(make_candidate("MINT1"))) is None
    assert await manager.open(admitted(make_candidate("MINT1"))) is not None
    await manager.shutdown()


@pytest.mark.asyncio
async def test_buy_transport_error_is_execution_failure(make_manager, venue, bus):
    venue.buy = AsyncMock(side_effect=aiohttp.ClientConnectionError("reset by peer"))
    manager = make_manager()

    assert await manager.open(admitted(make_candidate("MINT1"))) is None
    (failure,) = published(bus, EXECUTION_FAILURE)
    assert failure.side == "buy"
    assert "ClientConnectionError" in failure.error
    assert manager.has_capacity()


@pytest.mark.asyncio
async def test_invalid_fill_is_treated_as_buy_failure(make_manager, venue, bus):
    venue.buy = AsyncMock(return_value=Fill(price=0.0, quantity=0.03))
    manager = make_manager()

    assert await manager.open(admitted(make_candidate())) is None
    assert len(published(bus, EXECUTION_FAILURE)) == 1


# ------------------------- Close ------------------------- #

@pytest.mark.asyncio
async def test_close_records_trade(make_manager, ledger, bus):
    manager = make_manager(monitor_settings=IDLE_MONITOR)
    await manager.open(admitted(make_candidate("MINT1", SourceTag.DEX_FRESH)))

    trade = await manager.close("MINT1", CloseReason.OPERATOR_STOP)

    assert isinstance(trade, ClosedTrade)
    assert trade.exit_price == 2.0
    assert trade.multiplier == pytest.approx(2.0)
    assert trade.profit == pytest.approx(0.03 * 2.0 - 0.03)
    assert trade.reason is CloseReason.OPERATOR_STOP
    assert trade.source is SourceTag.DEX_FRESH
    assert not manager.is_open("MINT1")
    assert ledger.snapshot() == (trade,)
    assert published(bus, POSITION_CLOSED) == [trade]
    await manager.shutdown()


@pytest.mark.asyncio
async def test_close_is_idempotent(make_manager, ledger):
    manager = make_manager(monitor_settings=IDLE_MONITOR)
    await manager.open(admitted(make_candidate("MINT1")))
    await manager.close("MINT1", CloseReason.OPERATOR_STOP)

    with pytest.raises(PositionNotFound):
        await manager.close("MINT1", CloseReason.OPERATOR_STOP)
    assert len(ledger) == 1
    await manager.shutdown()


@pytest.mark.asyncio
async def test_close_unknown_identifier(make_manager):
    with pytest.raises(PositionNotFound):
        await make_manager().close("NOPE", CloseReason.STOP_HIT)


@pytest.mark.asyncio
async def test_concurrent_close_is_rejected(make_manager, venue, ledger):
    release = asyncio.Event()

    async def slow_sell(identifier, quantity):
        await release.wait()
        return Fill(price=2.0, quantity=quantity)

    venue.sell = AsyncMock(side_effect=slow_sell)
    manager = make_manager(monitor_settings=IDLE_MONITOR)
    await manager.open(admitted(make_candidate("MINT1")))

    first = asyncio.create_task(manager.close("MINT1", CloseReason.TARGET_HIT))
    await asyncio.sleep(0)
    with pytest.raises(CloseInProgress):
        await manager.close("MINT1", CloseReason.OPERATOR_STOP)
    with pytest.raises(CloseInProgress):
        manager.abandon("MINT1")

    release.set()
    trade = await first
    assert trade.reason is CloseReason.TARGET_HIT
    assert len(ledger) == 1
    assert venue.sell.await_count == 1
    await manager.shutdown()


@pytest.mark.asyncio
async def test_sell_failure_keeps_position_open(make_manager, venue, bus, ledger):
    venue.sell = AsyncMock(side_effect=ExecutionError("MINT1", "sell", "no route"))
    manager = make_manager(monitor_settings=IDLE_MONITOR)
    await manager.open(admitted(make_candidate("MINT1")))

    with pytest.raises(ExecutionError):
        await manager.close("MINT1", CloseReason.STOP_HIT)
    with pytest.raises(ExecutionError):
        await manager.close("MINT1", CloseReason.STOP_HIT)

    assert manager.is_open("MINT1")
    assert len(ledger) == 0
    attempts = [f.attempt for f in published(bus, EXECUTION_FAILURE)]
    assert attempts == [1, 2]
    await manager.shutdown()


@pytest.mark.asyncio
async def test_sell_timeout_is_execution_error(make_manager, venue, bus):
    venue.sell = AsyncMock(side_effect=asyncio.TimeoutError())
    manager = make_manager(monitor_settings=IDLE_MONITOR)
    await manager.open(admitted(make_candidate("MINT1")))

    with pytest.raises(ExecutionError) as info:
        await manager.close("MINT1", CloseReason.STOP_HIT)

    assert info.value.side == "sell"
    assert isinstance(info.value.__cause__, asyncio.TimeoutError)
    assert manager.is_open("MINT1")
    assert [f.attempt for f in published(bus, EXECUTION_FAILURE)] == [1]
    await manager.shutdown()


@pytest.mark.asyncio
async def test_abandon_records_execution_failure(make_manager, ledger):
    manager = make_manager(monitor_settings=IDLE_MONITOR)
    await manager.open(admitted(make_candidate("MINT1")))

    trade = manager.abandon("MINT1")

    assert trade.reason is CloseReason.EXECUTION_FAILURE
    assert trade.profit == 0.0
    assert trade.multiplier is None
    assert trade.exit_price is None
    assert not manager.is_open("MINT1")
    assert len(ledger) == 1
    with pytest.raises(PositionNotFound):
        manager.abandon("MINT1")
    await manager.shutdown()


@pytest.mark.asyncio
async def test_every_removed_position_has_one_trade(make_manager, ledger):
    manager = make_manager()
    for ident in ("A", "B", "C"):
        await manager.open(admitted(make_candidate(ident)))
    await manager.close("A", CloseReason.OPERATOR_STOP)
    manager.abandon("B")

    # the oracle price never moves, so C stays open until shut down
    assert {t.identifier for t in ledger} == {"A", "B"}
    assert manager.open_count == 1
    await manager.shutdown()
    assert manager.active_monitors == 0


@pytest.mark.asyncio
async def test_wait_idle_returns_once_monitors_finish(make_manager, oracle, ledger):
    oracle.current_price = AsyncMock(return_value=2.0)
    manager = make_manager()
    await manager.open(admitted(make_candidate("A")))
    await manager.open(admitted(make_candidate("B")))

    await wait_idle(manager)

    assert manager.open_count == 0
    assert len(ledger) == 2
