from datetime import datetime, timedelta, timezone

import pytest

from conftest import admitted, make_candidate
from models.candidate import SourceTag
from models.trade_outcome import CloseReason
from modules.exit_monitor import MonitorSettings
from modules.reporting import build_snapshot, format_performance, format_positions, format_source_breakdown


@pytest.mark.asyncio
async def test_snapshot_and_performance_block(make_manager, ledger):
    manager = make_manager(max_positions=5, monitor_settings=MonitorSettings(initial_delay=60))
    await manager.open(admitted(make_candidate("A", SourceTag.PUMP_EARLY, symbol="AAA")))
    await manager.open(admitted(make_candidate("B")))
    await manager.close("B", CloseReason.OPERATOR_STOP)

    started = datetime.now(timezone.utc) - timedelta(hours=2)
    snapshot = build_snapshot(manager, ledger, started_at=started)
    block = format_performance(snapshot)

    assert snapshot.active == 1
    assert snapshot.stats.trade_count == 1
    assert [t.identifier for t in snapshot.recent] == ["B"]
    assert "P&L: +0.0300 SOL" in block
    assert "Trades: 1 | Win: 100.0%" in block
    assert "Best: 2.00x" in block
    assert "Active: 1/5" in block
    assert "Uptime: 2.0h" in block

    positions = format_positions(snapshot)
    assert "🚀 AAA" in positions
    assert "dex_fresh: 0" in format_source_breakdown(snapshot.stats)
    await manager.shutdown()


def test_empty_snapshot(make_manager, ledger):
    snapshot = build_snapshot(make_manager(), ledger)
    assert "Trades: 0 | Win: 0.0%" in format_performance(snapshot)
    assert "No active positions" in format_positions(snapshot)
