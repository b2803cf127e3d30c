"""
price_oracle.py
---------------
Current reference price for a held asset, quoted in the settlement unit.

``DexScreenerPriceOracle`` reads ``/latest/dex/tokens/{address}`` and uses
the native-unit price of the most liquid pair on the configured chain.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from core.exceptions import PriceUnavailable

logger = logging.getLogger(__name__)


class BasePriceOracle(ABC):
    @abstractmethod
    async def current_price(self, identifier: str) -> float:
        """Return a price > 0 or raise PriceUnavailable."""
        raise NotImplementedError

    async def close(self) -> None:
        return None


def _liquidity_usd(pair: Dict[str, Any]) -> float:
    try:
        return float((pair.get("liquidity") or {}).get("usd") or 0)
    except (TypeError, ValueError):
        return 0.0


class DexScreenerPriceOracle(BasePriceOracle):
    TOKENS_PATH = "/latest/dex/tokens/{address}"

    def __init__(
        self,
        base_url: str = "https://api.dexscreener.com",
        chain: str = "solana",
        price_field: str = "priceNative",
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 8.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.chain = chain
        self.price_field = price_field
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def current_price(self, identifier: str) -> float:
        url = self.base_url + self.TOKENS_PATH.format(address=identifier)
        try:
            session = await self._get_session()
            async with session.get(url, timeout=self.timeout) as resp:
                resp.raise_for_status()
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise PriceUnavailable(identifier, exc) from exc

        if not isinstance(data, dict):
            raise PriceUnavailable(identifier)
        pairs = [
            p for p in data.get("pairs") or []
            if isinstance(p, dict) and p.get("chainId") == self.chain
        ]
        if not pairs:
            raise PriceUnavailable(identifier)

        best = max(pairs, key=_liquidity_usd)
        try:
            price = float(best.get(self.price_field))
        except (TypeError, ValueError) as exc:
            raise PriceUnavailable(identifier, exc) from exc
        if price <= 0:
            raise PriceUnavailable(identifier)

        logger.debug("Price %s = %.10f (%s)", identifier, price, best.get("dexId"))
        return price
