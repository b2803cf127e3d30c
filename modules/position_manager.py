"""
position_manager.py
-------------------
Owns the table of open positions. Nothing else mutates it: positions enter
through ``open`` and leave through ``close`` / ``abandon``.

Every mutation of the table (and the ledger append that accompanies a
removal) happens without an ``await`` in between, so any task reading the
table on the same event loop sees it either before or after, never half-way.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional, Set, Tuple

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
from modules.dedup_registry import DedupRegistry
from modules.exit_monitor import ExitMonitor, MonitorSettings
from modules.price_oracle import BasePriceOracle
from modules.trade_ledger import TradeLedger
from modules.trader import ExecutionVenue
from utils.event_bus import EXECUTION_FAILURE, POSITION_CLOSED, POSITION_OPENED, EventBus


@dataclass(frozen=True)
class ExitProfile:
    target: float   # > 1.0
    stop: float     # < 1.0


DEFAULT_EXIT_PROFILES: Dict[SourceTag, ExitProfile] = {
    SourceTag.PUMP_EARLY: ExitProfile(target=20.0, stop=0.30),
    SourceTag.KING_OF_HILL: ExitProfile(target=8.0, stop=0.30),
    SourceTag.DEX_FRESH: ExitProfile(target=4.0, stop=0.40),
    SourceTag.DEX: ExitProfile(target=2.0, stop=0.40),
}
BASELINE_PROFILE = DEFAULT_EXIT_PROFILES[SourceTag.DEX]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PositionManager:
    def __init__(
        self,
        venue: ExecutionVenue,
        oracle: BasePriceOracle,
        ledger: TradeLedger,
        registry: DedupRegistry,
        *,
        budget: float = 0.03,
        max_positions: int = 5,
        exit_profiles: Optional[Mapping[SourceTag, ExitProfile]] = None,
        baseline_profile: ExitProfile = BASELINE_PROFILE,
        monitor_settings: Optional[MonitorSettings] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.venue = venue
        self.oracle = oracle
        self.ledger = ledger
        self.registry = registry
        self.budget = budget
        self.max_positions = max_positions
        self.exit_profiles = dict(exit_profiles or DEFAULT_EXIT_PROFILES)
        self.baseline_profile = baseline_profile
        self.monitor_settings = monitor_settings or MonitorSettings()
        self.bus = bus
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

        self._positions: Dict[str, Position] = {}
        self._opening: Set[str] = set()
        self._closing: Set[str] = set()
        self._sell_failures: Dict[str, int] = {}
        self._monitors: Dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------ #
    # Read side
    # ------------------------------------------------------------------ #
    def is_open(self, identifier: str) -> bool:
        return identifier in self._positions

    def get(self, identifier: str) -> Optional[Position]:
        return self._positions.get(identifier)

    @property
    def open_count(self) -> int:
        return len(self._positions)

    def has_capacity(self) -> bool:
        return len(self._positions) + len(self._opening) < self.max_positions

    def snapshot(self) -> Tuple[Position, ...]:
        return tuple(self._positions.values())

    def exit_profile_for(self, source: SourceTag) -> ExitProfile:
        return self.exit_profiles.get(source, self.baseline_profile)

    # ------------------------------------------------------------------ #
    # Open
    # ------------------------------------------------------------------ #
    async def open(self, scored: ScoredCandidate) -> Optional[Position]:
        """
        Buy into an admitted candidate.

        Returns the new Position, or None when the venue rejected the buy
        (nothing is recorded in that case, so the asset may be retried in a
        later cycle). Raises AdmissionRejected if a precondition fails.
        """
        candidate = scored.candidate
        ident = candidate.identifier

        if ident in self._positions or ident in self._opening:
            raise PositionInvariantError(f"{ident} is already open")
        if not scored.admit:
            raise AdmissionRejected(ident, f"score {scored.score} not admitted")
        if ident in self.registry:
            raise AdmissionRejected(ident, "already traded this run")
        if not self.has_capacity():
            raise AdmissionRejected(ident, f"at capacity ({self.max_positions})")

        profile = self.exit_profile_for(candidate.source)
        self.logger.info(
            "⚡ Sniping %s from %s | score %d | %.4f | target %.1fx",
            candidate.symbol, candidate.source.value, scored.score, self.budget, profile.target,
        )

        self._opening.add(ident)
        try:
            fill = await self._execute("buy", ident, self.budget)
            if fill.price <= 0 or fill.quantity <= 0:
                raise ExecutionError(ident, "buy", f"invalid fill {fill}")
        except ExecutionError as exc:
            self.logger.warning("❌ Snipe failed for %s: %s", candidate.symbol, exc)
            self._publish(
                EXECUTION_FAILURE,
                ExecutionFailure(identifier=ident, symbol=candidate.symbol, side="buy", error=str(exc)),
            )
            return None
        finally:
            self._opening.discard(ident)

        position = Position(
            identifier=ident,
            symbol=candidate.symbol,
            source=candidate.source,
            entry_price=fill.price,
            quantity=fill.quantity,
            cost=self.budget,
            opened_at=self._clock(),
            target_multiplier=profile.target,
            stop_multiplier=profile.stop,
            score=scored.score,
        )
        self._positions[ident] = position
        self.registry.add(ident)
        self._spawn_monitor(position)

        self.logger.info(
            "✅ Sniped %s from %s @ %.10f (qty %f)",
            position.symbol, position.source.value, position.entry_price, position.quantity,
        )
        self._publish(POSITION_OPENED, position)
        return position

    # ------------------------------------------------------------------ #
    # Close
    # ------------------------------------------------------------------ #
    async def close(self, identifier: str, reason: CloseReason) -> ClosedTrade:
        """
        Sell the full position and record the trade.

        Raises PositionNotFound if nothing is open under ``identifier``,
        CloseInProgress if another task is already selling it, and
        ExecutionError (after publishing it) if the venue rejects the sell;
        the position then stays open.
        """
        position = self._positions.get(identifier)
        if position is None:
            raise PositionNotFound(identifier)
        if identifier in self._closing:
            raise CloseInProgress(identifier)

        self.logger.info("💰 Selling %s (%s)", position.symbol, reason.value)
        self._closing.add(identifier)
        try:
            fill = await self._execute("sell", identifier, position.quantity)
            if fill.price <= 0:
                raise ExecutionError(identifier, "sell", f"invalid fill {fill}")
        except ExecutionError as exc:
            attempt = self._sell_failures.get(identifier, 0) + 1
            self._sell_failures[identifier] = attempt
            self.logger.warning("❌ Sell failed for %s (attempt %d): %s", position.symbol, attempt, exc)
            self._publish(
                EXECUTION_FAILURE,
                ExecutionFailure(
                    identifier=identifier, symbol=position.symbol, side="sell",
                    error=str(exc), attempt=attempt,
                ),
            )
            raise
        finally:
            self._closing.discard(identifier)

        return self._record_close(position, reason, fill.price)

    async def _execute(self, side: str, identifier: str, amount: float) -> Fill:
        """Place one venue order; transport errors surface as ExecutionError."""
        order = self.venue.buy if side == "buy" else self.venue.sell
        try:
            return await order(identifier, amount)
        except ExecutionError:
            raise
        except Exception as exc:
            raise ExecutionError(identifier, side, f"{type(exc).__name__}: {exc}") from exc

    def abandon(self, identifier: str) -> ClosedTrade:
        """Force-close after repeated sell failures; records zero profit."""
        position = self._positions.get(identifier)
        if position is None:
            raise PositionNotFound(identifier)
        if identifier in self._closing:
            raise CloseInProgress(identifier)
        return self._record_close(position, CloseReason.EXECUTION_FAILURE, None)

    def _record_close(
        self, position: Position, reason: CloseReason, exit_price: Optional[float]
    ) -> ClosedTrade:
        now = self._clock()
        if exit_price is None:
            multiplier = None
            profit = 0.0
        else:
            multiplier = exit_price / position.entry_price
            profit = position.quantity * exit_price - position.cost

        trade = ClosedTrade(
            identifier=position.identifier,
            symbol=position.symbol,
            source=position.source,
            entry_price=position.entry_price,
            exit_price=exit_price,
            multiplier=multiplier,
            profit=profit,
            reason=reason,
            hold_time=now - position.opened_at,
            closed_at=now,
        )
        # removal and ledger append form one step
        del self._positions[position.identifier]
        self.ledger.append(trade)
        self._sell_failures.pop(position.identifier, None)

        self.logger.info(
            "%s Closed %s | %s | %s | %+.4f | %.1f min",
            "🚀" if trade.is_win else "📉", trade.symbol, reason.value,
            f"{multiplier:.2f}x" if multiplier is not None else "n/a",
            profit, trade.hold_minutes,
        )
        self._publish(POSITION_CLOSED, trade)
        return trade

    # ------------------------------------------------------------------ #
    # Monitor tasks
    # ------------------------------------------------------------------ #
    def _spawn_monitor(self, position: Position) -> None:
        monitor = ExitMonitor(self, position, self.oracle, self.monitor_settings)
        task = asyncio.get_running_loop().create_task(
            monitor.run(), name=f"exit-monitor:{position.identifier}"
        )
        self._monitors[position.identifier] = task
        task.add_done_callback(functools.partial(self._on_monitor_done, position.identifier))

    def _on_monitor_done(self, identifier: str, task: asyncio.Task) -> None:
        if self._monitors.get(identifier) is task:
            del self._monitors[identifier]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error("Exit monitor for %s crashed", identifier, exc_info=exc)

    @property
    def active_monitors(self) -> int:
        return len(self._monitors)

    async def wait_idle(self) -> None:
        """Wait until every exit monitor has finished."""
        while self._monitors:
            await asyncio.gather(*list(self._monitors.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel the exit monitors; open positions are left as they are."""
        tasks = list(self._monitors.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _publish(self, topic: str, payload: object) -> None:
        if self.bus is not None:
            self.bus.publish(topic, payload)
