"""
dedup_registry.py
-----------------
Identifiers that have already been acted upon. Entries are never removed
during a run, so an asset that was traded once is never re-entered.
"""

from __future__ import annotations

from typing import Iterable, Set


class DedupRegistry:
    def __init__(self, seed: Iterable[str] = ()) -> None:
        self._seen: Set[str] = set(seed)

    def add(self, identifier: str) -> bool:
        """Insert; returns False if the identifier was already present."""
        if identifier in self._seen:
            return False
        self._seen.add(identifier)
        return True

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def snapshot(self) -> frozenset:
        return frozenset(self._seen)
