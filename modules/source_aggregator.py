"""
source_aggregator.py
--------------------
Fans out to every discovery connector concurrently, normalises what they
return into Candidates, and drops anything already traded or held.

A failing connector never aborts the cycle; it simply contributes nothing
until the next one.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from models.candidate import Candidate
from modules.dedup_registry import DedupRegistry
from modules.sources.base import BaseSource


@dataclass
class AggregationResult:
    candidates: List[Candidate] = field(default_factory=list)
    raw_counts: Dict[str, int] = field(default_factory=dict)
    accepted_counts: Dict[str, int] = field(default_factory=dict)
    failed_sources: List[str] = field(default_factory=list)

    def summary(self) -> str:
        return " + ".join(
            f"{self.accepted_counts.get(name, 0)} {name}" for name in self.raw_counts
        ) or "no sources"


class SourceAggregator:
    """Concurrent fan-out over the configured feed connectors."""

    def __init__(
        self,
        sources: Sequence[BaseSource],
        registry: DedupRegistry,
        is_open: Optional[Callable[[str], bool]] = None,
        per_source_limit: int = 10,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.sources = list(sources)
        self.registry = registry
        self.is_open = is_open or (lambda _identifier: False)
        self.per_source_limit = per_source_limit
        self.logger = logger or logging.getLogger(__name__)

        self.metrics = {
            "fetches": 0,
            "errors": 0,
            "latencies": [],
        }

    # -------------------------------------------------------------------- #
    async def _fetch_source(self, source: BaseSource) -> Tuple[List[Dict[str, Any]], bool]:
        t0 = time.monotonic()
        self.metrics["fetches"] += 1
        try:
            records = await source.fetch()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.metrics["errors"] += 1
            self.logger.warning("%s fetch failed: %s", source.name, exc)
            return [], False
        self.metrics["latencies"].append(time.monotonic() - t0)
        return list(records or []), True

    async def collect(self) -> AggregationResult:
        """Run every connector once and return this cycle's fresh Candidates."""
        fetched = await asyncio.gather(*(self._fetch_source(s) for s in self.sources))

        result = AggregationResult()
        seen: Set[str] = set()

        for source, (records, ok) in zip(self.sources, fetched):
            result.raw_counts[source.name] = len(records)
            if not ok:
                result.failed_sources.append(source.name)

            accepted = 0
            for raw in records:
                if accepted >= self.per_source_limit:
                    break
                candidate = source.normalize(raw)
                if candidate is None:
                    continue
                ident = candidate.identifier
                if ident in seen or ident in self.registry or self.is_open(ident):
                    continue
                seen.add(ident)
                result.candidates.append(candidate)
                accepted += 1
            result.accepted_counts[source.name] = accepted

        self.logger.info("📊 Found %s candidates", result.summary())
        return result

    def log_metrics(self) -> None:
        """Log fetch counters and the mean latency since the last call."""
        latencies = self.metrics["latencies"]
        avg = statistics.mean(latencies) if latencies else 0
        self.logger.info(
            "📊 Fetches: %s | Errors: %s | Avg latency: %.3fs",
            self.metrics["fetches"],
            self.metrics["errors"],
            avg,
        )
        latencies.clear()
