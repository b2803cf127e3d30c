"""
sources/bitquery.py
-------------------
Early pump.fun launches, discovered through Bitquery's streaming GraphQL
API: every ``create`` instruction of the pump.fun program within the last
``lookback_minutes``, newest first.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import aiohttp
from pydantic import ValidationError

from core.exceptions import FeedError
from models.candidate import Candidate, SourceTag
from models.raw_records import PumpTokenCreation
from modules.sources.base import BaseSource

logger = logging.getLogger(__name__)

PUMP_FUN_PROGRAM = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"

_CREATIONS_QUERY = """
query {
  Solana {
    TokenSupplyUpdates(
      where: {
        Instruction: {
          Program: {
            Address: {is: "%(program)s"}
            Method: {is: "create"}
          }
        }
        Block: {Time: {since: "%(since)s"}}
      }
      limit: {count: %(limit)d}
      orderBy: {descending: Block_Time}
    ) {
      Block { Time }
      Transaction { Signer }
      TokenSupplyUpdate {
        Currency { Symbol Name MintAddress Uri }
        PostBalance
      }
    }
  }
}
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BitqueryPumpSource(BaseSource):
    name = "bitquery"

    def __init__(
        self,
        api_key: str = "",
        url: str = "https://streaming.bitquery.io/graphql",
        lookback_minutes: int = 30,
        limit: int = 10,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 8.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(session=session, timeout=timeout)
        self.api_key = api_key
        self.url = url
        self.lookback = timedelta(minutes=lookback_minutes)
        self.limit = limit
        self._clock = clock

    def build_query(self) -> str:
        since = (self._clock() - self.lookback).strftime("%Y-%m-%dT%H:%M:%SZ")
        return _CREATIONS_QUERY % {"program": PUMP_FUN_PROGRAM, "since": since, "limit": self.limit}

    async def fetch(self) -> List[Dict[str, Any]]:
        session = await self._get_session()
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        async with session.post(
            self.url, json={"query": self.build_query()}, headers=headers, timeout=self.timeout
        ) as resp:
            resp.raise_for_status()
            payload = await resp.json()

        if not isinstance(payload, dict):
            raise FeedError(self.name, "unexpected payload")
        if payload.get("errors"):
            raise FeedError(self.name, str(payload["errors"]))

        updates = ((payload.get("data") or {}).get("Solana") or {}).get("TokenSupplyUpdates")
        return list(updates or [])

    def normalize(self, raw: Dict[str, Any]) -> Optional[Candidate]:
        try:
            created = PumpTokenCreation.from_update(raw)
        except ValidationError as ve:
            logger.warning("Skipping malformed Bitquery update: %s", ve)
            return None

        age = (self._clock() - created.created_at).total_seconds()
        return Candidate(
            identifier=created.mint_address,
            symbol=created.symbol or "UNKNOWN",
            name=created.name or "Unknown",
            source=SourceTag.PUMP_EARLY,
            metrics={
                "symbol": created.symbol,
                "name": created.name,
                "supply": created.supply,
                "creator": created.creator,
                "uri": created.uri,
                "created_at": created.created_at.isoformat(),
                "age_seconds": max(age, 0.0),
            },
        )
