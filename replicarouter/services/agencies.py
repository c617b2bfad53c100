"""Agency table service built on the multi-database router."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Callable

from ..models import Row
from ..results import FanOutResult
from ..router import DatabaseRouter
from ..rows import get_str, get_str_or_empty
from .cache import CACHE_TTL_SECONDS, TtlCache
from .channels import channel_database

LOG = logging.getLogger(__name__)

TABLE_NAME = "agency"


class AgencyValidationError(ValueError):
    """Raised when agency data cannot be written."""


class AgencyInUseError(ValueError):
    """Raised when deleting an agency that commercials still reference."""


@dataclass(frozen=True, slots=True)
class Agency:
    """One row of the agency table."""

    code: int
    name: str
    address: str | None = None
    pin: str | None = None
    phone: str | None = None
    email: str | None = None

    @property
    def is_valid(self) -> bool:
        return bool(self.name and self.name.strip())

    @property
    def search_text(self) -> str:
        return (self.name or "").lower()

    def __str__(self) -> str:
        return self.name


def agency_from_row(row: Row) -> Agency:
    # Code is stored as VARCHAR on older servers.
    code_text = get_str_or_empty(row, "Code").strip()
    try:
        code = int(code_text)
    except ValueError:
        code = 0
    return Agency(
        code=code,
        name=get_str_or_empty(row, "AgencyName"),
        address=get_str(row, "Address"),
        pin=get_str(row, "PIN"),
        phone=get_str(row, "Phone"),
        email=get_str(row, "Email"),
    )


class AgencyService:
    """Loads, caches and edits the agencies of one channel database."""

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
        self._cache: TtlCache[Agency] = TtlCache(cache_ttl, clock)

    @classmethod
    def for_channel(cls, router: DatabaseRouter, channel_name: str, **kwargs: object) -> AgencyService:
        return cls(router, channel_database(channel_name), **kwargs)  # type: ignore[arg-type]

    @property
    def database(self) -> str:
        return self._database

    async def load_agencies(self, *, cancel: asyncio.Event | None = None) -> tuple[Agency, ...]:
        """Reload from the first server to answer; keeps the cache when all are down."""

        sql = f"SELECT Code, AgencyName, Address, PIN, Phone, Email FROM {TABLE_NAME} ORDER BY AgencyName"
        result = await self._router.read_many(self._database, sql, mapper=agency_from_row, cancel=cancel)
        if result.success and result.data is not None:
            agencies = self._cache.store(result.data)
            LOG.info(
                "Loaded %d agencies from %s",
                len(agencies),
                self._database,
                extra={"profile": result.profile_name},
            )
            return agencies
        LOG.warning("Failed to load agencies: %s", result.error_message, extra={"database": self._database})
        return self._cache.items

    async def get_agencies(
        self,
        *,
        force_refresh: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> tuple[Agency, ...]:
        if force_refresh or self._cache.is_stale():
            return await self.load_agencies(cancel=cancel)
        return self._cache.items

    async def get_agency_by_code(self, code: int) -> Agency | None:
        for agency in await self.get_agencies():
            if agency.code == code:
                return agency
        return None

    async def search_agencies(self, text: str) -> tuple[Agency, ...]:
        """Case-insensitive substring search; names starting with ``text`` rank first."""

        agencies = await self.get_agencies()
        if not text.strip():
            return agencies
        needle = text.lower()
        matches = [agency for agency in agencies if needle in agency.search_text]
        matches.sort(key=lambda agency: (not agency.search_text.startswith(needle), agency.name))
        return tuple(matches)

    async def add_agency(
        self,
        agency: Agency,
        *,
        cancel: asyncio.Event | None = None,
    ) -> tuple[Agency | None, FanOutResult]:
        """Insert on every server; the stored copy takes the first server's new code."""

        if not agency.is_valid:
            raise AgencyValidationError("Agency name is required")
        sql = (
            f"INSERT INTO {TABLE_NAME} (AgencyName, Address, PIN, Phone, Email) "
            "VALUES (%(AgencyName)s, %(Address)s, %(PIN)s, %(Phone)s, %(Email)s)"
        )
        result = await self._router.write_fan_out(self._database, sql, _parameters(agency), cancel=cancel)
        if not result.any_succeeded:
            return None, result
        self._cache.invalidate()
        first = result.first_success
        stored = agency
        if first is not None and first.last_insert_id:
            stored = replace(agency, code=int(first.last_insert_id))
        LOG.info("Added agency '%s' to %s", agency.name, self._database)
        return stored, result

    async def update_agency(self, agency: Agency, *, cancel: asyncio.Event | None = None) -> FanOutResult:
        if agency.code <= 0:
            raise AgencyValidationError("Invalid agency code")
        if not agency.is_valid:
            raise AgencyValidationError("Agency name is required")
        sql = (
            f"UPDATE {TABLE_NAME} SET AgencyName = %(AgencyName)s, Address = %(Address)s, "
            "PIN = %(PIN)s, Phone = %(Phone)s, Email = %(Email)s WHERE Code = %(Code)s"
        )
        parameters = _parameters(agency)
        parameters["Code"] = agency.code
        result = await self._router.write_fan_out(self._database, sql, parameters, cancel=cancel)
        if result.any_succeeded:
            self._cache.invalidate()
            LOG.info("Updated agency '%s' (code %d) in %s", agency.name, agency.code, self._database)
        return result

    async def is_agency_referenced(self, code: int, *, cancel: asyncio.Event | None = None) -> bool:
        """True when commercials use the agency, or when no server could answer."""

        sql = "SELECT COUNT(*) FROM commercials WHERE Code = %(Code)s"
        result = await self._router.read_scalar(
            self._database,
            sql,
            {"Code": code},
            converter=int,
            cancel=cancel,
        )
        if not result.success:
            return True
        return bool(result.data)

    async def delete_agency(self, code: int, *, cancel: asyncio.Event | None = None) -> FanOutResult:
        if code <= 0:
            raise AgencyValidationError("Invalid agency code")
        if await self.is_agency_referenced(code, cancel=cancel):
            raise AgencyInUseError("Cannot delete agency: it is referenced by one or more commercials")
        sql = f"DELETE FROM {TABLE_NAME} WHERE Code = %(Code)s"
        result = await self._router.write_fan_out(self._database, sql, {"Code": code}, cancel=cancel)
        if result.any_succeeded:
            self._cache.invalidate()
            LOG.info("Deleted agency (code %d) from %s", code, self._database)
        return result

    def invalidate_cache(self) -> None:
        self._cache.invalidate()


def _parameters(agency: Agency) -> dict[str, object]:
    return {
        "AgencyName": agency.name,
        "Address": agency.address,
        "PIN": agency.pin,
        "Phone": agency.phone,
        "Email": agency.email,
    }


__all__ = [
    "Agency",
    "AgencyInUseError",
    "AgencyService",
    "AgencyValidationError",
    "agency_from_row",
]
