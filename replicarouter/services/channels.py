"""Channel list service and channel naming helpers."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

from ..models import Row
from ..router import DatabaseRouter
from ..rows import get_str_or_empty
from .cache import CACHE_TTL_SECONDS, TtlCache

LOG = logging.getLogger(__name__)

CHANNEL_DATABASE_PREFIX = "air_"
SHARED_DATABASE = "air_virtual_studio"
CHANNELS_TABLE = "setup_channels"


def channel_database(channel_name: str) -> str:
    """Database holding a channel's agencies, commercials and schedules."""

    name = channel_name.strip()
    if not name:
        raise ValueError("Channel name is required.")
    return f"{CHANNEL_DATABASE_PREFIX}{name}"


@dataclass(frozen=True, slots=True)
class Channel:
    """A broadcast channel and the playout roots configured for it locally."""

    name: str
    x_root_targets: tuple[str, ...] = ()
    is_from_config: bool = False

    @property
    def database_name(self) -> str:
        return channel_database(self.name)

    @property
    def is_usable(self) -> bool:
        """Only channels with at least one playout root can be scheduled."""

        return bool(self.x_root_targets)

    def __str__(self) -> str:
        return self.name


def _channel_name(row: Row) -> str:
    return get_str_or_empty(row, "Channel")


class ChannelService:
    """Loads the channel list from the shared database on the first server to answer.

    ``locations`` maps channel names to their playout roots. Loaded channels
    pick up their roots from it, and configured channels missing from the
    database are appended so they stay usable offline.
    """

    def __init__(
        self,
        router: DatabaseRouter,
        *,
        locations: Mapping[str, Sequence[str]] | None = None,
        database: str = SHARED_DATABASE,
        cache_ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._router = router
        self._database = database
        self._locations = {name: tuple(targets) for name, targets in (locations or {}).items()}
        self._cache: TtlCache[Channel] = TtlCache(cache_ttl, clock)

    async def load_channels(self, *, cancel: asyncio.Event | None = None) -> tuple[Channel, ...]:
        """Reload the channel list; keeps the cached list when every server fails."""

        sql = f"SELECT Channel FROM {CHANNELS_TABLE} ORDER BY Channel"
        result = await self._router.read_many(self._database, sql, mapper=_channel_name, cancel=cancel)
        if result.success and result.data is not None:
            names = [name for name in result.data if name.strip()]
            channels = self._cache.store(self._merge_locations(names))
            LOG.info(
                "Loaded %d channels from database",
                len(channels),
                extra={"profile": result.profile_name, "database": self._database},
            )
            return channels
        LOG.warning("Failed to load channels: %s", result.error_message, extra={"database": self._database})
        return self._cache.items

    async def get_channels(
        self,
        *,
        force_refresh: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> tuple[Channel, ...]:
        if force_refresh or self._cache.is_stale():
            return await self.load_channels(cancel=cancel)
        return self._cache.items

    async def get_channel(self, name: str, *, cancel: asyncio.Event | None = None) -> Channel | None:
        wanted = name.casefold()
        for channel in await self.get_channels(cancel=cancel):
            if channel.name.casefold() == wanted:
                return channel
        return None

    async def get_usable_channels(self, *, cancel: asyncio.Event | None = None) -> tuple[Channel, ...]:
        return tuple(channel for channel in await self.get_channels(cancel=cancel) if channel.is_usable)

    def invalidate_cache(self) -> None:
        self._cache.invalidate()

    def _merge_locations(self, names: Sequence[str]) -> list[Channel]:
        channels = [Channel(name=name, x_root_targets=self._targets_for(name)) for name in names]
        known = {name.casefold() for name in names}
        for name, targets in self._locations.items():
            if name.casefold() not in known:
                channels.append(Channel(name=name, x_root_targets=targets, is_from_config=True))
        return channels

    def _targets_for(self, name: str) -> tuple[str, ...]:
        wanted = name.casefold()
        for configured, targets in self._locations.items():
            if configured.casefold() == wanted:
                return targets
        return ()


__all__ = [
    "CHANNEL_DATABASE_PREFIX",
    "CHANNELS_TABLE",
    "Channel",
    "ChannelService",
    "SHARED_DATABASE",
    "channel_database",
]
