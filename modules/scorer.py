"""
scorer.py
---------
Heuristic admission scoring.

Every source tag owns a rubric: a base score plus independent weighted
checks over the candidate's metrics bag. The score is the base plus the
weights of the checks that pass. A single deployment-wide threshold and the
remaining position capacity decide admission.

Scoring is pure: nothing here reads a clock, touches the network or
mutates state, so it can be exercised directly in tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from models.candidate import Candidate, ScoredCandidate, SourceTag

logger = logging.getLogger(__name__)

Metrics = Mapping[str, Any]


@dataclass(frozen=True)
class Check:
    name: str
    weight: int
    predicate: Callable[[Metrics], bool]


@dataclass(frozen=True)
class ScoringRubric:
    base: int
    checks: Tuple[Check, ...] = ()

    def score(self, metrics: Metrics) -> int:
        return self.base + sum(c.weight for c in self.checks if c.predicate(metrics))


# ------------------------------------------------------------------ #
# predicate builders
# ------------------------------------------------------------------ #
def _num(metrics: Metrics, key: str) -> Optional[float]:
    try:
        value = metrics.get(key)
        return None if value is None else float(value)
    except (TypeError, ValueError):
        return None


def has_all(*keys: str) -> Callable[[Metrics], bool]:
    return lambda m: all(m.get(k) not in (None, "") for k in keys)


def has_any(*keys: str) -> Callable[[Metrics], bool]:
    return lambda m: any(m.get(k) not in (None, "") for k in keys)


def between(key: str, low: float, high: float) -> Callable[[Metrics], bool]:
    def _check(m: Metrics) -> bool:
        value = _num(m, key)
        return value is not None and low <= value <= high
    return _check


def above(key: str, threshold: float) -> Callable[[Metrics], bool]:
    def _check(m: Metrics) -> bool:
        value = _num(m, key)
        return value is not None and value > threshold
    return _check


def at_most(key: str, threshold: float) -> Callable[[Metrics], bool]:
    def _check(m: Metrics) -> bool:
        value = _num(m, key)
        return value is not None and value <= threshold
    return _check


def _small_boost(m: Metrics) -> bool:
    value = _num(m, "boost_amount")
    return value is not None and 0 < value < 1000


DEFAULT_RUBRICS: Dict[SourceTag, ScoringRubric] = {
    SourceTag.PUMP_EARLY: ScoringRubric(
        base=50,
        checks=(
            Check("metadata", 30, has_all("name", "symbol")),
            Check("supply", 10, has_all("supply")),
            Check("fresh", 10, at_most("age_seconds", 5 * 60)),
        ),
    ),
    SourceTag.KING_OF_HILL: ScoringRubric(
        base=60,
        checks=(
            Check("market_cap_band", 30, between("market_cap", 30_000, 35_000)),
            Check("metadata", 10, has_all("name", "symbol")),
        ),
    ),
    SourceTag.DEX_FRESH: ScoringRubric(
        base=40,
        checks=(
            Check("small_boost", 20, _small_boost),
            Check("listing_info", 10, has_any("url", "description")),
        ),
    ),
    SourceTag.DEX: ScoringRubric(
        base=30,
        checks=(
            Check("large_boost", 20, above("boost_amount", 1000)),
            Check("listing_info", 10, has_any("url", "description")),
        ),
    ),
}


class AdmissionScorer:
    """Scores candidates and gates admission on threshold and capacity."""

    def __init__(
        self,
        threshold: int = 60,
        max_positions: int = 5,
        rubrics: Optional[Mapping[SourceTag, ScoringRubric]] = None,
    ) -> None:
        self.threshold = threshold
        self.max_positions = max_positions
        self.rubrics: Mapping[SourceTag, ScoringRubric] = rubrics or DEFAULT_RUBRICS

    def score(self, candidate: Candidate) -> int:
        rubric = self.rubrics.get(candidate.source)
        if rubric is None:
            return 0
        return rubric.score(candidate.metrics)

    def evaluate(self, candidate: Candidate, open_positions: int) -> ScoredCandidate:
        score = self.score(candidate)
        admit = score >= self.threshold and open_positions < self.max_positions
        logger.debug(
            "Scored %s (%s): %d/%d admit=%s",
            candidate.symbol, candidate.source.value, score, self.threshold, admit,
        )
        return ScoredCandidate(candidate=candidate, score=score, admit=admit)
