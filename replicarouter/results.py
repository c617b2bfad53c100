"""Per-profile and aggregate result types returned by the router."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from .errors import ConnectionFailure, NoProfilesConfigured, OperationCancelled, QueryExecutionFailure

T = TypeVar("T")

NO_PROFILE = "None"
ALL_PROFILES = "All"
CANCELLED = "Cancelled"


class FailureKind(str, Enum):
    """Coarse classification of a failed attempt."""

    NO_PROFILES = "no_profiles"
    CONNECTION = "connection"
    QUERY = "query"
    CANCELLED = "cancelled"
    ALL_FAILED = "all_failed"


def _classify(error: BaseException | None) -> FailureKind:
    if isinstance(error, NoProfilesConfigured):
        return FailureKind.NO_PROFILES
    if isinstance(error, ConnectionFailure):
        return FailureKind.CONNECTION
    if isinstance(error, OperationCancelled):
        return FailureKind.CANCELLED
    if isinstance(error, QueryExecutionFailure):
        return FailureKind.QUERY
    return FailureKind.ALL_FAILED


@dataclass(frozen=True, slots=True)
class ProfileResult:
    """Outcome of one write or connection attempt against a single profile."""

    profile_name: str
    success: bool
    rows_affected: int = 0
    last_insert_id: int | None = None
    inserted: bool = False
    error_message: str | None = None
    error: BaseException | None = None
    elapsed_ms: int = 0

    @property
    def kind(self) -> FailureKind | None:
        """Failure classification, or None for successful attempts."""

        if self.success:
            return None
        return _classify(self.error)

    @classmethod
    def succeeded(
        cls,
        profile_name: str,
        *,
        rows_affected: int = 0,
        last_insert_id: int | None = None,
        inserted: bool = False,
        elapsed_ms: int = 0,
    ) -> ProfileResult:
        return cls(
            profile_name=profile_name,
            success=True,
            rows_affected=rows_affected,
            last_insert_id=last_insert_id,
            inserted=inserted,
            elapsed_ms=elapsed_ms,
        )

    @classmethod
    def failed(
        cls,
        profile_name: str,
        message: str,
        error: BaseException | None = None,
        *,
        elapsed_ms: int = 0,
    ) -> ProfileResult:
        return cls(
            profile_name=profile_name,
            success=False,
            error_message=message,
            error=error,
            elapsed_ms=elapsed_ms,
        )


@dataclass(frozen=True, slots=True)
class ReadResult(Generic[T]):
    """Winning read payload, or the aggregate failure when no profile answered.

    List reads carry a ``list`` payload. A successful read may still carry
    ``None`` when the query legitimately matched nothing.
    """

    profile_name: str
    success: bool
    data: T | None = None
    error_message: str | None = None
    error: BaseException | None = None
    elapsed_ms: int = 0

    @property
    def kind(self) -> FailureKind | None:
        if self.success:
            return None
        return _classify(self.error)

    @classmethod
    def succeeded(cls, profile_name: str, data: T | None, *, elapsed_ms: int = 0) -> ReadResult[T]:
        return cls(profile_name=profile_name, success=True, data=data, elapsed_ms=elapsed_ms)

    @classmethod
    def failed(
        cls,
        profile_name: str,
        message: str,
        error: BaseException | None = None,
        *,
        elapsed_ms: int = 0,
    ) -> ReadResult[T]:
        return cls(
            profile_name=profile_name,
            success=False,
            error_message=message,
            error=error,
            elapsed_ms=elapsed_ms,
        )


@dataclass(frozen=True, slots=True)
class FanOutResult:
    """Every per-profile outcome of one fan-out write, in profile order."""

    results: tuple[ProfileResult, ...] = ()

    @property
    def total_count(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for result in self.results if not result.success)

    @property
    def all_succeeded(self) -> bool:
        return self.failure_count == 0 and self.total_count > 0

    @property
    def any_succeeded(self) -> bool:
        return self.success_count > 0

    @property
    def all_failed(self) -> bool:
        return self.success_count == 0

    @property
    def failed_results(self) -> tuple[ProfileResult, ...]:
        return tuple(result for result in self.results if not result.success)

    @property
    def succeeded_results(self) -> tuple[ProfileResult, ...]:
        return tuple(result for result in self.results if result.success)

    @property
    def first_success(self) -> ProfileResult | None:
        """First successful entry in profile order."""

        for result in self.results:
            if result.success:
                return result
        return None

    def summary(self) -> str:
        """One-line status suitable for a UI warning."""

        if self.all_succeeded:
            return f"Success: All {self.total_count} servers updated"
        if self.all_failed:
            return f"Failed: All {self.total_count} servers failed"
        return f"Partial: {self.success_count}/{self.total_count} servers succeeded"


__all__ = [
    "ALL_PROFILES",
    "CANCELLED",
    "FailureKind",
    "FanOutResult",
    "NO_PROFILE",
    "ProfileResult",
    "ReadResult",
]
