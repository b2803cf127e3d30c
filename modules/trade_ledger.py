"""
trade_ledger.py
---------------
Append-only record of closed trades, in close order.

Statistics are derived from the full ledger every time they are asked for;
nothing is maintained incrementally.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Tuple

import pandas as pd

from models.trade_outcome import ClosedTrade

logger = logging.getLogger(__name__)

COLUMNS: List[str] = [
    "identifier",
    "symbol",
    "source",
    "entry_price",
    "exit_price",
    "multiplier",
    "profit",
    "reason",
    "hold_minutes",
    "closed_at",
]


@dataclass(frozen=True)
class LedgerStats:
    trade_count: int = 0
    total_profit: float = 0.0
    win_rate: float = 0.0          # fraction of trades with profit > 0
    best_multiplier: float = 0.0
    per_source: Dict[str, int] = field(default_factory=dict)


class TradeLedger:
    def __init__(self) -> None:
        self._trades: List[ClosedTrade] = []

    def append(self, trade: ClosedTrade) -> None:
        self._trades.append(trade)
        logger.debug("[Ledger] %s %s %s profit=%.4f", trade.symbol, trade.source.value,
                     trade.reason.value, trade.profit)

    def __len__(self) -> int:
        return len(self._trades)

    def __iter__(self) -> Iterator[ClosedTrade]:
        return iter(tuple(self._trades))

    # ------------------------------------------------------------------ #
    # Read side
    # ------------------------------------------------------------------ #
    def snapshot(self) -> Tuple[ClosedTrade, ...]:
        return tuple(self._trades)

    def recent(self, n: int = 5) -> List[ClosedTrade]:
        """Last ``n`` trades, newest first."""
        if n <= 0:
            return []
        return list(reversed(self._trades[-n:]))

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {
                "identifier": t.identifier,
                "symbol": t.symbol,
                "source": t.source.value,
                "entry_price": t.entry_price,
                "exit_price": t.exit_price,
                "multiplier": t.multiplier,
                "profit": t.profit,
                "reason": t.reason.value,
                "hold_minutes": t.hold_minutes,
                "closed_at": t.closed_at,
            }
            for t in self._trades
        ]
        return pd.DataFrame(rows, columns=COLUMNS)

    def stats(self) -> LedgerStats:
        df = self.to_frame()
        if df.empty:
            return LedgerStats()

        profit = pd.to_numeric(df["profit"], errors="coerce").fillna(0.0)
        multipliers = pd.to_numeric(df["multiplier"], errors="coerce").dropna()
        per_source = df["source"].value_counts(sort=False)

        return LedgerStats(
            trade_count=len(df),
            total_profit=float(profit.sum()),
            win_rate=float((profit > 0).mean()),
            best_multiplier=float(multipliers.max()) if not multipliers.empty else 0.0,
            per_source={str(k): int(v) for k, v in per_source.items()},
        )
