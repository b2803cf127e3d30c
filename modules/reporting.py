"""
reporting.py
------------
Read-only views over the position table and the trade ledger, plus the text
blocks the scheduler logs and the notifiers send.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from models.candidate import SourceTag
from models.position import Position
from models.trade_outcome import ClosedTrade
from modules.position_manager import PositionManager
from modules.trade_ledger import LedgerStats, TradeLedger


@dataclass(frozen=True)
class EngineSnapshot:
    open_positions: Tuple[Position, ...]
    stats: LedgerStats
    recent: List[ClosedTrade] = field(default_factory=list)
    max_positions: int = 0
    uptime_hours: float = 0.0

    @property
    def active(self) -> int:
        return len(self.open_positions)


def build_snapshot(
    manager: PositionManager,
    ledger: TradeLedger,
    *,
    started_at: Optional[datetime] = None,
    recent: int = 5,
    now: Optional[datetime] = None,
) -> EngineSnapshot:
    uptime = 0.0
    if started_at is not None:
        now = now or datetime.now(timezone.utc)
        uptime = max((now - started_at).total_seconds(), 0.0) / 3600.0
    return EngineSnapshot(
        open_positions=manager.snapshot(),
        stats=ledger.stats(),
        recent=ledger.recent(recent),
        max_positions=manager.max_positions,
        uptime_hours=uptime,
    )


def _signed(value: float) -> str:
    return f"{'+' if value > 0 else ''}{value:.4f}"


def format_performance(snapshot: EngineSnapshot, unit: str = "SOL") -> str:
    """Multi-line block logged after every cycle."""
    stats = snapshot.stats
    return "\n".join([
        "📊 === SNIPER PERFORMANCE ===",
        f"💰 P&L: {_signed(stats.total_profit)} {unit}",
        f"🎯 Trades: {stats.trade_count} | Win: {stats.win_rate * 100:.1f}%",
        f"🚀 Best: {stats.best_multiplier:.2f}x",
        f"📊 Active: {snapshot.active}/{snapshot.max_positions}",
        f"🔄 Uptime: {snapshot.uptime_hours:.1f}h",
        "=" * 28,
    ])


def format_source_breakdown(stats: LedgerStats) -> str:
    lines = ["📍 SOURCES:"]
    for tag in SourceTag:
        lines.append(f"{tag.emoji} {tag.value}: {stats.per_source.get(tag.value, 0)}")
    return "\n".join(lines)


def format_positions(snapshot: EngineSnapshot, now: Optional[datetime] = None) -> str:
    if not snapshot.open_positions:
        return "📊 ACTIVE POSITIONS\n\n💤 No active positions"
    blocks = ["📊 ACTIVE POSITIONS"]
    for p in snapshot.open_positions:
        blocks.append(
            f"{p.source.emoji} {p.symbol}\n"
            f"📍 {p.source.value}\n"
            f"⏰ {p.hold_minutes(now):.1f} min\n"
            f"🎯 {p.target_multiplier:g}x"
        )
    return "\n\n".join(blocks)
