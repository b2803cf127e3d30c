"""
exit_monitor.py
---------------
One long-lived task per open position.

    WATCHING ──(target / stop crossed)──▶ CLOSING ──(sold)──▶ DONE
        ▲                                    │
        └──────────(sell failed)─────────────┘

The monitor never touches the position table itself: it only reads
``is_open`` and asks the PositionManager to ``close`` or ``abandon``.
Every action is preceded by a fresh ``is_open`` check, so a position closed
elsewhere (e.g. by an operator) ends its monitor on the next tick.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from core.exceptions import (
    CloseInProgress,
    ExecutionError,
    PositionNotFound,
    PriceUnavailable,
)
from models.position import Position
from models.trade_outcome import CloseReason
from modules.price_oracle import BasePriceOracle

if TYPE_CHECKING:
    from modules.position_manager import PositionManager


class MonitorState(str, Enum):
    WATCHING = "watching"
    CLOSING = "closing"
    DONE = "done"


@dataclass(frozen=True)
class MonitorSettings:
    initial_delay: float = 10.0      # let the entry settle on the venue
    poll_interval: float = 15.0
    error_backoff: float = 20.0      # after a failed price fetch
    sell_retry_delay: float = 30.0   # after a failed sell
    max_sell_attempts: int = 5


def evaluate_exit(position: Position, multiplier: float) -> Optional[CloseReason]:
    if multiplier >= position.target_multiplier:
        return CloseReason.TARGET_HIT
    if multiplier <= position.stop_multiplier:
        return CloseReason.STOP_HIT
    return None


class ExitMonitor:
    def __init__(
        self,
        manager: "PositionManager",
        position: Position,
        oracle: BasePriceOracle,
        settings: Optional[MonitorSettings] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.manager = manager
        self.position = position
        self.oracle = oracle
        self.settings = settings or MonitorSettings()
        self.logger = logger or logging.getLogger(__name__)

        self.state = MonitorState.WATCHING
        self.pending_reason: Optional[CloseReason] = None
        self.last_multiplier: Optional[float] = None
        self.sell_failures = 0

    @property
    def identifier(self) -> str:
        return self.position.identifier

    # -------------------------------------------------------------- #
    async def run(self) -> None:
        await asyncio.sleep(self.settings.initial_delay)
        while self.state is not MonitorState.DONE:
            if self.state is MonitorState.WATCHING:
                delay = await self._watch()
            else:
                delay = await self._close()
            if self.state is not MonitorState.DONE:
                await asyncio.sleep(delay)
        self.logger.debug("Monitor for %s finished", self.position.symbol)

    # -------------------------------------------------------------- #
    async def _watch(self) -> float:
        if not self.manager.is_open(self.identifier):
            self.logger.info("%s is no longer open, monitor exiting", self.position.symbol)
            self.state = MonitorState.DONE
            return 0.0

        try:
            price = await self.oracle.current_price(self.identifier)
        except PriceUnavailable as exc:
            self.logger.warning("Price unavailable for %s: %s", self.position.symbol, exc)
            return self.settings.error_backoff
        except Exception:
            self.logger.exception("Monitor error for %s", self.position.symbol)
            return self.settings.error_backoff

        multiplier = self.position.multiplier_at(price)
        self.last_multiplier = multiplier
        reason = evaluate_exit(self.position, multiplier)
        if reason is None:
            return self.settings.poll_interval

        # someone else may have closed it while we were fetching
        if not self.manager.is_open(self.identifier):
            self.state = MonitorState.DONE
            return 0.0

        self.logger.info(
            "🎯 %s at %.2fx (target %.2fx / stop %.2fx) → %s",
            self.position.symbol, multiplier, self.position.target_multiplier,
            self.position.stop_multiplier, reason.value,
        )
        self.pending_reason = reason
        self.state = MonitorState.CLOSING
        return 0.0

    async def _close(self) -> float:
        reason = self.pending_reason or CloseReason.STOP_HIT
        try:
            await self.manager.close(self.identifier, reason)
        except PositionNotFound:
            self.state = MonitorState.DONE
            return 0.0
        except CloseInProgress:
            self.state = MonitorState.WATCHING
            return self.settings.poll_interval
        except ExecutionError as exc:
            self.sell_failures += 1
            if self.sell_failures >= self.settings.max_sell_attempts:
                return self._give_up(exc)
            self.logger.warning(
                "Sell %d/%d for %s failed: %s",
                self.sell_failures, self.settings.max_sell_attempts, self.position.symbol, exc,
            )
            self.state = MonitorState.WATCHING
            return self.settings.sell_retry_delay

        self.state = MonitorState.DONE
        return 0.0

    def _give_up(self, exc: ExecutionError) -> float:
        self.logger.error(
            "Giving up on %s after %d failed sells (%s), force-closing",
            self.position.symbol, self.sell_failures, exc,
        )
        try:
            self.manager.abandon(self.identifier)
        except PositionNotFound:
            pass
        except CloseInProgress:
            self.state = MonitorState.WATCHING
            return self.settings.poll_interval
        self.state = MonitorState.DONE
        return 0.0
