"""Domain services that consume the router."""

from __future__ import annotations

from .agencies import Agency, AgencyInUseError, AgencyService, AgencyValidationError, agency_from_row
from .cache import CACHE_TTL_SECONDS, TtlCache
from .channels import Channel, ChannelService, channel_database
from .commercials import Commercial, CommercialService, CommercialValidationError, commercial_from_row
from .playlist import PlaylistEntry, PlaylistService

__all__ = [
    "Agency",
    "AgencyInUseError",
    "AgencyService",
    "AgencyValidationError",
    "CACHE_TTL_SECONDS",
    "Channel",
    "ChannelService",
    "Commercial",
    "CommercialService",
    "CommercialValidationError",
    "PlaylistEntry",
    "PlaylistService",
    "TtlCache",
    "agency_from_row",
    "channel_database",
    "commercial_from_row",
]
