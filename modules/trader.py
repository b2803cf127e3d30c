# modules/trader.py
"""
Execution venue contract and the paper venue used for dry runs.

The engine only ever sees ``buy`` / ``sell`` / ``get_balance``; a rejected
or errored execution is always reported as ``ExecutionError``.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from core.exceptions import ExecutionError, PriceUnavailable
from models.position import Fill
from modules.price_oracle import BasePriceOracle
from modules.slippage_model import apply_slippage

_DUST = 1e-12


class ExecutionVenue(ABC):
    @abstractmethod
    async def buy(self, identifier: str, budget: float) -> Fill:
        """Spend ``budget`` settlement units on ``identifier``."""
        raise NotImplementedError

    @abstractmethod
    async def sell(self, identifier: str, quantity: float) -> Fill:
        """Sell ``quantity`` units of ``identifier``."""
        raise NotImplementedError

    @abstractmethod
    async def get_balance(self) -> float:
        raise NotImplementedError


class PaperTrader(ExecutionVenue):
    """Fills at the oracle price shifted by slippage and keeps a paper balance."""

    def __init__(
        self,
        oracle: BasePriceOracle,
        balance: float = 1.0,
        slippage_pct: float = 0.01,
        logger: Optional[logging.Logger] = None,
    ):
        self.oracle = oracle
        self.balance = balance
        self.slippage_pct = slippage_pct
        self.logger = logger or logging.getLogger(__name__)
        self._holdings: Dict[str, float] = {}

    async def _reference_price(self, identifier: str, side: str) -> float:
        try:
            return await self.oracle.current_price(identifier)
        except PriceUnavailable as exc:
            raise ExecutionError(identifier, side, "no reference price") from exc

    async def buy(self, identifier: str, budget: float) -> Fill:
        if budget <= 0:
            raise ExecutionError(identifier, "buy", "budget must be positive")
        if budget > self.balance:
            raise ExecutionError(
                identifier, "buy", f"insufficient balance {self.balance:.4f} < {budget:.4f}"
            )

        price = apply_slippage(await self._reference_price(identifier, "buy"), "buy", self.slippage_pct)
        if budget > self.balance:  # another buy settled while we waited for the price
            raise ExecutionError(identifier, "buy", "insufficient balance")

        quantity = budget / price
        self.balance -= budget
        self._holdings[identifier] = self._holdings.get(identifier, 0.0) + quantity
        self.logger.debug("PAPER BUY %s qty=%f @ %.10f", identifier, quantity, price)
        return Fill(price=price, quantity=quantity)

    async def sell(self, identifier: str, quantity: float) -> Fill:
        held = self._holdings.get(identifier, 0.0)
        if quantity <= 0 or quantity > held + _DUST:
            raise ExecutionError(identifier, "sell", f"holding {held} < {quantity}")

        price = apply_slippage(await self._reference_price(identifier, "sell"), "sell", self.slippage_pct)

        remaining = self._holdings.get(identifier, 0.0) - quantity
        if remaining <= _DUST:
            self._holdings.pop(identifier, None)
        else:
            self._holdings[identifier] = remaining
        self.balance += quantity * price
        self.logger.debug("PAPER SELL %s qty=%f @ %.10f", identifier, quantity, price)
        return Fill(price=price, quantity=quantity)

    async def get_balance(self) -> float:
        return self.balance

    def holdings(self) -> Dict[str, float]:
        return dict(self._holdings)
