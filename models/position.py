"""
models/position.py
------------------
An open, owned stake. Created by the PositionManager after a successful buy
and removed from its table the moment a close is executed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

from models.candidate import SourceTag


@dataclass(frozen=True)
class Position:
    identifier: str
    symbol: str
    source: SourceTag
    entry_price: float
    quantity: float
    cost: float                  # settlement units spent on entry
    opened_at: datetime
    target_multiplier: float     # take profit when price / entry >= this
    stop_multiplier: float       # cut loss when price / entry <= this
    score: int = 0               # admission score at entry

    def multiplier_at(self, price: float) -> float:
        return price / self.entry_price

    def hold_minutes(self, now: datetime | None = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.opened_at).total_seconds() / 60


@dataclass(frozen=True)
class Fill:
    """What an execution venue reports back for a buy or a sell."""
    price: float
    quantity: float


@dataclass(frozen=True)
class ExecutionFailure:
    """Event payload published whenever a buy or sell is rejected."""
    identifier: str
    symbol: str
    side: Literal["buy", "sell"]
    error: str
    attempt: int = 1
