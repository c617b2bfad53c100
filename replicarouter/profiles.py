"""Profile sources consumed by the router at the start of every call."""

from __future__ import annotations

from typing import Callable, Iterable, Protocol, runtime_checkable

from .config import AppConfig, load_config
from .models import DatabaseProfile


@runtime_checkable
class ProfileSource(Protocol):
    """Supplies the ordered profile list; index 0 has the highest priority."""

    def profiles(self) -> tuple[DatabaseProfile, ...]:
        """Return the current profiles in priority order."""


class StaticProfileSource:
    """Fixed, caller-supplied profile list."""

    def __init__(self, profiles: Iterable[DatabaseProfile] = ()) -> None:
        self._profiles = tuple(profiles)

    def profiles(self) -> tuple[DatabaseProfile, ...]:
        return self._profiles

    def replace(self, profiles: Iterable[DatabaseProfile]) -> None:
        """Swap the list; calls already in flight keep the list they started with."""

        self._profiles = tuple(profiles)


class ConfigProfileSource:
    """Reads ordered profiles from the app configuration on every call."""

    def __init__(self, loader: Callable[[], AppConfig] = load_config) -> None:
        self._loader = loader

    def profiles(self) -> tuple[DatabaseProfile, ...]:
        return self._loader().ordered_profiles()


__all__ = ["ConfigProfileSource", "ProfileSource", "StaticProfileSource"]
