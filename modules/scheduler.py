"""
scheduler.py
------------
The periodic driver: collect candidates from every feed, score them, open
positions for the admitted ones, log performance, sleep, repeat.

Passes are strictly sequential. Exit monitors run on their own and are never
touched by the scheduler; ``stop`` only ends the loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from core.exceptions import AdmissionRejected, ExecutionError
from models.position import Position
from modules.position_manager import PositionManager
from modules.reporting import build_snapshot, format_performance
from modules.scorer import AdmissionScorer
from modules.source_aggregator import SourceAggregator
from modules.trade_ledger import TradeLedger
from modules.trader import ExecutionVenue
from utils.event_bus import CYCLE_COMPLETED, EventBus


@dataclass(frozen=True)
class SchedulerSettings:
    cycle_interval: float = 20.0
    admission_pacing: float = 3.0    # pause after each attempted admission


@dataclass
class CycleReport:
    number: int
    candidates: int = 0
    scored: int = 0
    admitted: int = 0
    opened: List[Position] = field(default_factory=list)
    failed_sources: List[str] = field(default_factory=list)
    capacity_reached: bool = False


class CycleScheduler:
    """Runs discovery → admission passes until stopped."""

    def __init__(
        self,
        aggregator: SourceAggregator,
        scorer: AdmissionScorer,
        manager: PositionManager,
        ledger: TradeLedger,
        venue: Optional[ExecutionVenue] = None,
        settings: Optional[SchedulerSettings] = None,
        bus: Optional[EventBus] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.aggregator = aggregator
        self.scorer = scorer
        self.manager = manager
        self.ledger = ledger
        self.venue = venue or manager.venue
        self.settings = settings or SchedulerSettings()
        self.bus = bus
        self.logger = logger or logging.getLogger(__name__)

        self.running = False
        self.cycles = 0
        self.started_at: Optional[datetime] = None
        self._wake: Optional[asyncio.Event] = None

    # -------------------------------------------------------------------- #
    async def run_cycle(self) -> CycleReport:
        """One pass: collect, score in aggregator order, open the admitted."""
        self.cycles += 1
        report = CycleReport(number=self.cycles)

        self.logger.info("🔍 Cycle %d: scanning sources…", self.cycles)
        result = await self.aggregator.collect()
        self.aggregator.log_metrics()
        report.candidates = len(result.candidates)
        report.failed_sources = list(result.failed_sources)

        for candidate in result.candidates:
            if not self.manager.has_capacity():
                report.capacity_reached = True
                self.logger.info("Position limit %d reached, ending pass", self.manager.max_positions)
                break

            scored = self.scorer.evaluate(candidate, self.manager.open_count)
            report.scored += 1
            if not scored.admit:
                continue

            report.admitted += 1
            try:
                position = await self.manager.open(scored)
            except AdmissionRejected as exc:
                self.logger.info("Skipped %s: %s", candidate.symbol, exc)
            else:
                if position is not None:
                    report.opened.append(position)
            await asyncio.sleep(self.settings.admission_pacing)

        if self.bus is not None:
            self.bus.publish(CYCLE_COMPLETED, report)
        return report

    def log_performance(self) -> None:
        snapshot = build_snapshot(self.manager, self.ledger, started_at=self.started_at)
        self.logger.info("\n%s", format_performance(snapshot))

    # -------------------------------------------------------------------- #
    async def preflight(self) -> float:
        """Make sure the venue can afford at least one entry."""
        balance = await self.venue.get_balance()
        self.logger.info("💰 Balance: %.4f | per trade: %.4f", balance, self.manager.budget)
        if balance < self.manager.budget:
            raise ExecutionError("*", "buy", f"balance {balance:.4f} below one entry {self.manager.budget:.4f}")
        return balance

    async def run(self) -> None:
        self.running = True
        self._wake = asyncio.Event()
        self.started_at = self.started_at or datetime.now(timezone.utc)
        self.logger.info(
            "🔥 Sniper live: %d sources, max %d positions, cycle %.0fs",
            len(self.aggregator.sources), self.manager.max_positions, self.settings.cycle_interval,
        )
        try:
            while self.running:
                try:
                    await self.run_cycle()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    self.logger.exception("Cycle %d failed", self.cycles)
                self.log_performance()
                if not self.running:
                    break
                await self._idle(self.settings.cycle_interval)
        except asyncio.CancelledError:
            self.logger.info("Scheduler cancelled, shutting down")
            raise
        finally:
            self.running = False
        self.logger.info("Scheduler stopped after %d cycles", self.cycles)

    async def start(self) -> None:
        self.logger.info("🚀 Starting sniper…")
        await self.preflight()
        await self.run()

    def stop(self) -> None:
        """End the loop after the current pass; open positions stay monitored."""
        self.running = False
        if self._wake is not None:
            self._wake.set()

    async def _idle(self, seconds: float) -> None:
        # wakes up early on stop()
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
