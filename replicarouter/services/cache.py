"""Expiring in-memory cache shared by the table services."""

from __future__ import annotations

import time
from typing import Callable, Generic, Iterable, TypeVar

T = TypeVar("T")

CACHE_TTL_SECONDS = 300.0


class TtlCache(Generic[T]):
    """Holds the last successfully loaded rows for a table."""

    def __init__(self, ttl: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._items: tuple[T, ...] = ()
        self._loaded_at: float | None = None

    @property
    def items(self) -> tuple[T, ...]:
        return self._items

    def is_stale(self) -> bool:
        """Empty, never loaded, invalidated, or older than the TTL."""

        if self._loaded_at is None or not self._items:
            return True
        return self._clock() - self._loaded_at > self._ttl

    def store(self, items: Iterable[T]) -> tuple[T, ...]:
        self._items = tuple(items)
        self._loaded_at = self._clock()
        return self._items

    def invalidate(self) -> None:
        """Force the next read to reload; current items remain available."""

        self._loaded_at = None


__all__ = ["CACHE_TTL_SECONDS", "TtlCache"]
