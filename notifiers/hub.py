"""
notifiers/hub.py
----------------
Fan-out layer that owns the back-end notifiers, listens on the event bus and
turns engine events into human-readable alerts.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from models.candidate import SourceTag
from models.position import ExecutionFailure, Position
from models.trade_outcome import ClosedTrade
from notifiers.base import BaseNotifier
from notifiers.telegram import TelegramNotifier
from utils.event_bus import EXECUTION_FAILURE, POSITION_CLOSED, POSITION_OPENED, EventBus


class NotifierHub:
    """Collects active back-ends based on config and broadcasts messages."""

    def __init__(
        self,
        cfg: Dict,
        backends: Optional[List[BaseNotifier]] = None,
        unit: str = "SOL",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.unit = unit

        if backends is not None:
            self.backends = list(backends)
        else:
            self.backends = []
            tg_cfg = cfg.get("TELEGRAM", {})
            if tg_cfg.get("token") and tg_cfg.get("chat_id"):
                self.backends.append(
                    TelegramNotifier(token=tg_cfg["token"], chat_id=tg_cfg["chat_id"])
                )
            else:
                self.logger.info("TelegramNotifier disabled, token or chat id missing")

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def attach(self, bus: EventBus) -> None:
        bus.subscribe(POSITION_OPENED, self.on_position_opened)
        bus.subscribe(POSITION_CLOSED, self.on_position_closed)
        bus.subscribe(EXECUTION_FAILURE, self.on_execution_failure)

    async def broadcast(self, text: str) -> None:
        for b in self.backends:
            try:
                await b.send(text)
            except Exception:  # one failing back-end must not silence the rest
                self.logger.exception("[NotifierHub] back-end %s failed", b.__class__.__name__)

    async def on_position_opened(self, position: Position) -> None:
        await self.broadcast(format_opened(position, self.unit))

    async def on_position_closed(self, trade: ClosedTrade) -> None:
        await self.broadcast(format_closed(trade, self.unit))

    async def on_execution_failure(self, failure: ExecutionFailure) -> None:
        await self.broadcast(format_failure(failure))

    async def close(self) -> None:
        for b in self.backends:
            await b.close()


# ---------------------------------------------------------------------- #
# Formatting
# ---------------------------------------------------------------------- #
def format_startup(
    balance: float,
    budget: float,
    max_positions: int,
    targets: Mapping[SourceTag, float],
    unit: str = "SOL",
) -> str:
    lines = [
        "🎯 SNIPER STARTED",
        "",
        f"💰 Balance: {balance:.4f} {unit}",
        f"⚡ Per trade: {budget} {unit}",
        f"📊 Max positions: {max_positions}",
        "",
        "🔥 HUNTING SOURCES:",
    ]
    for tag, target in targets.items():
        lines.append(f"{tag.emoji} {tag.value} ({target:g}x target)")
    return "\n".join(lines)


def format_opened(position: Position, unit: str = "SOL") -> str:
    return (
        "✅ SNIPE SUCCESS!\n\n"
        f"{position.source.emoji} {position.symbol}\n"
        f"📍 {position.source.value}\n"
        f"📊 Score: {position.score}/100\n"
        f"⚡ {position.cost} {unit}\n"
        f"🎯 {position.target_multiplier:g}x target\n\n"
        "📊 Monitoring..."
    )


def format_closed(trade: ClosedTrade, unit: str = "SOL") -> str:
    head = "🚀" if trade.is_win else "📉"
    multiplier = f"{trade.multiplier:.2f}x" if trade.multiplier is not None else "n/a"
    sign = "+" if trade.profit > 0 else ""
    footer = "🎉 ALPHA SECURED!" if trade.is_win else "🛡️ LOSS CUT"
    return (
        f"{head} POSITION CLOSED!\n\n"
        f"{trade.source.emoji} {trade.symbol}\n"
        f"📍 {trade.source.value}\n"
        f"📊 {multiplier}\n"
        f"💰 {sign}{trade.profit:.4f} {unit}\n"
        f"⏰ {trade.hold_minutes:.1f} min\n"
        f"📝 {trade.reason.value}\n\n"
        f"{footer}"
    )


def format_failure(failure: ExecutionFailure) -> str:
    if failure.side == "buy":
        return f"❌ SNIPE FAILED: {failure.symbol}\n{failure.error}"
    return f"❌ SELL FAILED ({failure.attempt}): {failure.symbol}\n{failure.error}"
