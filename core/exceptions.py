"""Shared exception types for the discovery / position-lifecycle engine."""

from typing import Optional


class SniperError(Exception):
    """Base class for every error raised by the engine."""


class FeedError(SniperError):
    """A discovery feed answered with something other than records."""

    def __init__(self, source: str, detail: str):
        super().__init__(f"{source}: {detail}")
        self.source = source
        self.detail = detail


class PriceUnavailable(SniperError):
    """Raised by a price oracle when no usable reference price exists."""

    def __init__(self, identifier: str, original: Optional[Exception] = None):
        super().__init__(f"price unavailable for {identifier}")
        self.identifier = identifier
        self.original = original


class ExecutionError(SniperError):
    """Raised by an execution venue when a buy/sell is rejected or errors."""

    def __init__(self, identifier: str, side: str, reason: str):
        super().__init__(f"{side} {identifier} failed: {reason}")
        self.identifier = identifier
        self.side = side
        self.reason = reason


class AdmissionRejected(SniperError):
    """A candidate did not meet the preconditions for opening a position."""

    def __init__(self, identifier: str, reason: str):
        super().__init__(f"{identifier} rejected: {reason}")
        self.identifier = identifier
        self.reason = reason


class PositionNotFound(SniperError):
    """No open position exists for the identifier."""

    def __init__(self, identifier: str):
        super().__init__(f"no open position for {identifier}")
        self.identifier = identifier


class CloseInProgress(SniperError):
    """Another task is already executing the close of this position."""

    def __init__(self, identifier: str):
        super().__init__(f"close already in progress for {identifier}")
        self.identifier = identifier


class PositionInvariantError(SniperError, RuntimeError):
    """Programming error: the open-position table would become inconsistent."""
