# --------------------------------------------------------------------
# models/candidate.py
# A discovered asset that is not owned yet, plus its per-cycle score.
# --------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class SourceTag(str, Enum):
    PUMP_EARLY = "pump_early"
    KING_OF_HILL = "king_of_hill"
    DEX_FRESH = "dex_fresh"
    DEX = "dex"

    @property
    def emoji(self) -> str:
        return _SOURCE_EMOJI.get(self, "🎯")


_SOURCE_EMOJI = {
    SourceTag.PUMP_EARLY: "🚀",
    SourceTag.KING_OF_HILL: "👑",
    SourceTag.DEX_FRESH: "💎",
    SourceTag.DEX: "📈",
}


@dataclass(frozen=True)
class Candidate:
    identifier: str
    symbol: str
    name: str
    source: SourceTag
    metrics: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # freeze the metrics bag as well, callers keep their own dict
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    score: int
    admit: bool

    @property
    def identifier(self) -> str:
        return self.candidate.identifier
