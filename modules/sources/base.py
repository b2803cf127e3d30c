"""
sources/base.py
---------------
Common interface for all discovery feed connectors.

A connector fetches a bounded batch of raw records from its feed and knows
how to turn one of its own raw records into a normalised Candidate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import aiohttp

from models.candidate import Candidate


class BaseSource(ABC):
    """Abstract feed connector with a lazily created aiohttp session."""

    name: str = "source"

    def __init__(
        self,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 8.0,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    @abstractmethod
    async def fetch(self) -> List[Dict[str, Any]]:
        """
        Return the feed's newest raw records, most recent first.

        May raise on any transport or payload problem; the aggregator turns
        a failure into an empty contribution for the cycle.
        """
        raise NotImplementedError

    @abstractmethod
    def normalize(self, raw: Dict[str, Any]) -> Optional[Candidate]:
        """Convert one raw record, or return None if it is unusable."""
        raise NotImplementedError

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
