"""Commercials table service; updates use the self-healing writer."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from ..models import Row
from ..results import FanOutResult
from ..router import DatabaseRouter
from ..rows import get_datetime, get_int, get_str, get_str_or_empty, parse_clock
from .cache import CACHE_TTL_SECONDS, TtlCache
from .channels import channel_database

LOG = logging.getLogger(__name__)

TABLE_NAME = "commercials"

_COLUMNS = "Code, Agency, Spot, Title, Duration, Otherinfo, Filename, User, LastUpdate"
_INSERT_SQL = (
    f"INSERT INTO {TABLE_NAME} ({_COLUMNS}) "
    "VALUES (%(Code)s, %(Agency)s, %(Spot)s, %(Title)s, %(Duration)s, %(Otherinfo)s, "
    "%(Filename)s, %(User)s, NOW())"
)
_UPDATE_SQL = (
    f"UPDATE {TABLE_NAME} SET Code = %(Code)s, Agency = %(Agency)s, Spot = %(Spot)s, "
    "Title = %(Title)s, Duration = %(Duration)s, Otherinfo = %(Otherinfo)s, "
    "Filename = %(Filename)s, User = %(User)s, LastUpdate = NOW() "
    "WHERE Spot = %(OriginalSpot)s"
)


class CommercialValidationError(ValueError):
    """Raised when commercial data cannot be written."""


@dataclass(frozen=True, slots=True)
class Commercial:
    """One row of the commercials table; ``code`` is the owning agency."""

    code: int
    spot: str
    filename: str
    agency: str | None = None
    title: str | None = None
    duration: str | None = None
    other_info: str | None = None
    user: str | None = None
    last_update: datetime | None = None

    @property
    def is_valid(self) -> bool:
        return self.code > 0 and bool(self.spot.strip()) and bool(self.filename.strip())

    @property
    def duration_delta(self) -> timedelta:
        return parse_clock(self.duration)

    def __str__(self) -> str:
        return f"{self.spot} - {self.title or ''}"


def commercial_from_row(row: Row) -> Commercial:
    return Commercial(
        code=get_int(row, "Code"),
        agency=get_str_or_empty(row, "Agency"),
        spot=get_str_or_empty(row, "Spot"),
        title=get_str_or_empty(row, "Title"),
        duration=get_str_or_empty(row, "Duration"),
        other_info=get_str(row, "Otherinfo"),
        filename=get_str_or_empty(row, "Filename"),
        user=get_str(row, "User"),
        last_update=get_datetime(row, "LastUpdate"),
    )


class CommercialService:
    """Loads, caches and edits the commercials of one channel database."""

    def __init__(
        self,
        router: DatabaseRouter,
        database: str,
        *,
        cache_ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._router = router
        self._database = database
        self._cache: TtlCache[Commercial] = TtlCache(cache_ttl, clock)

    @classmethod
    def for_channel(cls, router: DatabaseRouter, channel_name: str, **kwargs: object) -> CommercialService:
        return cls(router, channel_database(channel_name), **kwargs)  # type: ignore[arg-type]

    async def load_commercials(self, *, cancel: asyncio.Event | None = None) -> tuple[Commercial, ...]:
        sql = f"SELECT {_COLUMNS} FROM {TABLE_NAME} ORDER BY Spot"
        result = await self._router.read_many(self._database, sql, mapper=commercial_from_row, cancel=cancel)
        if result.success and result.data is not None:
            commercials = self._cache.store(result.data)
            LOG.info("Loaded %d commercials from %s", len(commercials), self._database)
            return commercials
        LOG.warning("Failed to load commercials: %s", result.error_message, extra={"database": self._database})
        return self._cache.items

    async def get_commercials(
        self,
        *,
        force_refresh: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> tuple[Commercial, ...]:
        if force_refresh or self._cache.is_stale():
            return await self.load_commercials(cancel=cancel)
        return self._cache.items

    async def get_by_spot(self, spot: str) -> Commercial | None:
        wanted = spot.casefold()
        for commercial in await self.get_commercials():
            if commercial.spot.casefold() == wanted:
                return commercial
        return None

    async def search_commercials(self, text: str) -> tuple[Commercial, ...]:
        """Match spot, title or agency, ordered by spot."""

        commercials = await self.get_commercials()
        if not text.strip():
            return commercials
        needle = text.lower()
        matches = [
            commercial
            for commercial in commercials
            if any(needle in (field or "").lower() for field in (commercial.spot, commercial.title, commercial.agency))
        ]
        matches.sort(key=lambda commercial: commercial.spot)
        return tuple(matches)

    async def add_commercial(
        self,
        commercial: Commercial,
        username: str | None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> FanOutResult:
        if not commercial.is_valid:
            raise CommercialValidationError("Commercial data is invalid (code, spot and filename are required)")
        result = await self._router.write_fan_out(
            self._database,
            _INSERT_SQL,
            _parameters(commercial, username),
            cancel=cancel,
        )
        if result.any_succeeded:
            self._cache.invalidate()
            LOG.info("Added commercial '%s' to %s", commercial.spot, self._database)
        return result

    async def update_commercial(
        self,
        commercial: Commercial,
        original_spot: str,
        username: str | None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> FanOutResult:
        """Rewrite the row keyed by ``original_spot``, inserting it where a server lacks it."""

        if not commercial.is_valid:
            raise CommercialValidationError("Commercial data is invalid")
        insert_parameters = _parameters(commercial, username)
        update_parameters = dict(insert_parameters, OriginalSpot=original_spot)
        result = await self._router.write_self_healing(
            self._database,
            _UPDATE_SQL,
            update_parameters,
            _INSERT_SQL,
            insert_parameters,
            cancel=cancel,
        )
        if result.any_succeeded:
            self._cache.invalidate()
            LOG.info("Updated commercial '%s' in %s", commercial.spot, self._database)
        return result

    async def delete_commercial(self, spot: str, *, cancel: asyncio.Event | None = None) -> FanOutResult:
        if not spot.strip():
            raise CommercialValidationError("Spot name is required")
        sql = f"DELETE FROM {TABLE_NAME} WHERE Spot = %(Spot)s"
        result = await self._router.write_fan_out(self._database, sql, {"Spot": spot}, cancel=cancel)
        if result.any_succeeded:
            self._cache.invalidate()
            LOG.info("Deleted commercial '%s' from %s", spot, self._database)
        return result

    def invalidate_cache(self) -> None:
        self._cache.invalidate()


def _parameters(commercial: Commercial, username: str | None) -> dict[str, object]:
    return {
        "Code": commercial.code,
        "Agency": commercial.agency,
        "Spot": commercial.spot,
        "Title": commercial.title,
        "Duration": commercial.duration,
        "Otherinfo": commercial.other_info,
        "Filename": commercial.filename,
        "User": username,
    }


__all__ = [
    "Commercial",
    "CommercialService",
    "CommercialValidationError",
    "commercial_from_row",
]
