import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from models.candidate import Candidate, ScoredCandidate, SourceTag
from models.position import Fill
from modules.dedup_registry import DedupRegistry
from modules.exit_monitor import MonitorSettings
from modules.position_manager import ExitProfile, PositionManager
from modules.trade_ledger import TradeLedger

# ------------------------- Helpers ------------------------- #

FAST_MONITOR = MonitorSettings(
    initial_delay=0, poll_interval=0, error_backoff=0, sell_retry_delay=0, max_sell_attempts=5
)

# entry 1.0 → target 2.0 / stop 0.5, the numbers used throughout the tests
SIMPLE_PROFILES = {tag: ExitProfile(target=2.0, stop=0.5) for tag in SourceTag}


def make_candidate(identifier="MINT1", source=SourceTag.DEX, symbol="TKN", metrics=None, **extra):
    # ``symbol`` is the display symbol; a raw symbol metric goes through ``metrics``
    return Candidate(
        identifier=identifier,
        symbol=symbol,
        name=f"{symbol} token",
        source=source,
        metrics={**(metrics or {}), **extra},
    )


def admitted(candidate, score=80):
    return ScoredCandidate(candidate=candidate, score=score, admit=True)


async def wait_idle(manager, timeout=2.0):
    await asyncio.wait_for(manager.wait_idle(), timeout=timeout)


# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def venue():
    v = MagicMock()
    v.buy = AsyncMock(return_value=Fill(price=1.0, quantity=0.03))
    v.sell = AsyncMock(return_value=Fill(price=2.0, quantity=0.03))
    v.get_balance = AsyncMock(return_value=1.0)
    return v


@pytest.fixture
def oracle():
    o = MagicMock()
    o.current_price = AsyncMock(return_value=1.0)
    o.close = AsyncMock()
    return o


@pytest.fixture
def ledger():
    return TradeLedger()


@pytest.fixture
def registry():
    return DedupRegistry()


@pytest.fixture
def bus():
    return MagicMock()


@pytest.fixture
def make_manager(venue, oracle, ledger, registry, bus):
    def _make(**kwargs):
        params = dict(
            budget=0.03,
            max_positions=5,
            exit_profiles=SIMPLE_PROFILES,
            monitor_settings=FAST_MONITOR,
            bus=bus,
        )
        params.update(kwargs)
        return PositionManager(venue, oracle, ledger, registry, **params)
    return _make
