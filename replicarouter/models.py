"""Shared dataclasses used across the router, connection and config modules."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

Row = Mapping[str, Any]


class SslMode(str, Enum):
    """TLS negotiation modes understood by the MySQL connection factory."""

    NONE = "none"
    PREFERRED = "preferred"
    REQUIRED = "required"
    VERIFY_CA = "verify_ca"
    VERIFY_FULL = "verify_full"


@dataclass(frozen=True, slots=True)
class DatabaseProfile:
    """Runtime representation of one configured MySQL server."""

    name: str
    host: str = "localhost"
    port: int = 3306
    user: str = ""
    password: str = ""
    ssl_mode: SslMode = SslMode.NONE
    timeout_seconds: int = 30
    is_default: bool = False
    order: int = 0

    def __str__(self) -> str:
        return f"{self.name} ({self.host}:{self.port})"


__all__ = ["DatabaseProfile", "Row", "SslMode"]
