"""
notifiers/base.py
-----------------
A single-method interface every notifier must implement.
"""
from __future__ import annotations

from abc import ABC, abstractmethod


class BaseNotifier(ABC):
    """Every concrete notifier must implement send()."""

    @abstractmethod
    async def send(self, text: str) -> None:
        """Deliver a plain-text message."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release network resources, if any."""
