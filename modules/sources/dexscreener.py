"""
sources/dexscreener.py
----------------------
Boosted-token feed from DexScreener (``/token-boosts/latest/v1``).

Boosts above ``big_boost`` are tagged ``dex``; smaller ones are fresher,
cheaper promotions and are tagged ``dex_fresh``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import ValidationError

from core.exceptions import FeedError
from models.candidate import Candidate, SourceTag
from models.raw_records import DexBoost
from modules.sources.base import BaseSource

logger = logging.getLogger(__name__)


def short_address(address: str) -> str:
    """Display form of a mint address, e.g. ``7xKX..sAsU``."""
    if len(address) <= 10:
        return address
    return f"{address[:4]}..{address[-4:]}"


class DexScreenerBoostSource(BaseSource):
    name = "dexscreener"
    BOOSTS_PATH = "/token-boosts/latest/v1"

    def __init__(
        self,
        base_url: str = "https://api.dexscreener.com",
        chain: str = "solana",
        big_boost: float = 1000,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 8.0,
    ) -> None:
        super().__init__(session=session, timeout=timeout)
        self.base_url = base_url.rstrip("/")
        self.chain = chain
        self.big_boost = big_boost

    async def fetch(self) -> List[Dict[str, Any]]:
        session = await self._get_session()
        url = f"{self.base_url}{self.BOOSTS_PATH}"
        async with session.get(url, timeout=self.timeout) as resp:
            resp.raise_for_status()
            data = await resp.json()

        if not isinstance(data, list):
            raise FeedError(self.name, f"expected a list, got {type(data).__name__}")
        return [
            boost for boost in data
            if isinstance(boost, dict) and boost.get("chainId") == self.chain
        ]

    def normalize(self, raw: Dict[str, Any]) -> Optional[Candidate]:
        try:
            boost = DexBoost.model_validate(raw)
        except ValidationError as ve:
            logger.warning("Skipping malformed DexScreener boost: %s", ve)
            return None

        source = SourceTag.DEX if boost.amount > self.big_boost else SourceTag.DEX_FRESH
        return Candidate(
            identifier=boost.token_address,
            symbol=short_address(boost.token_address),
            name=f"Boosted {short_address(boost.token_address)}",
            source=source,
            metrics={
                "chain": boost.chain_id,
                "boost_amount": boost.amount,
                "total_amount": boost.total_amount,
                "url": boost.url,
                "description": boost.description,
            },
        )
