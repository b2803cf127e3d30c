# --------------------------------------------------------------------
# models/trade_outcome.py
# One immutable record representing the *final* life-cycle step of a
# position. Shared by PositionManager, TradeLedger, NotifierHub, etc.
# --------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from models.candidate import SourceTag


class CloseReason(str, Enum):
    TARGET_HIT = "target-hit"
    STOP_HIT = "stop-hit"
    OPERATOR_STOP = "operator-stop"
    EXECUTION_FAILURE = "execution-failure"


@dataclass(frozen=True)
class ClosedTrade:
    identifier: str
    symbol: str
    source: SourceTag
    entry_price: float
    exit_price: Optional[float]          # None when force-closed
    multiplier: Optional[float]          # exit / entry, None when force-closed
    profit: float                        # settlement units, 0.0 when force-closed
    reason: CloseReason
    hold_time: timedelta
    closed_at: datetime

    @property
    def is_win(self) -> bool:
        return self.profit > 0

    @property
    def hold_minutes(self) -> float:
        return self.hold_time.total_seconds() / 60
