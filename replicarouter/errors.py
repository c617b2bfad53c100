"""Error taxonomy for per-profile routing failures."""

from __future__ import annotations


class RouterError(RuntimeError):
    """Base class for failures recorded on routing results."""


class NoProfilesConfigured(RouterError):
    """Raised internally when there is no profile to attempt."""


class ConnectionFailure(RouterError):
    """Raised when a profile cannot be reached or rejects the login."""


class QueryExecutionFailure(RouterError):
    """Raised when a statement or row mapping fails on a connected profile."""


class OperationCancelled(RouterError):
    """Recorded when the caller's cancellation signal interrupts an attempt."""


__all__ = [
    "ConnectionFailure",
    "NoProfilesConfigured",
    "OperationCancelled",
    "QueryExecutionFailure",
    "RouterError",
]
