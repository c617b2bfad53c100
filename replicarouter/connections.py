"""Connection factories that open one MySQL connection per routing attempt."""

from __future__ import annotations

import asyncio
import ssl
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

import aiomysql
from pymysql.constants import CLIENT

from .errors import ConnectionFailure, QueryExecutionFailure
from .models import DatabaseProfile, Row, SslMode

Parameters = Mapping[str, object]


@dataclass(frozen=True, slots=True)
class WriteOutcome:
    """Driver counters reported after a non-query statement."""

    rows_affected: int
    last_insert_id: int | None = None


@runtime_checkable
class RouterConnection(Protocol):
    """One open connection owned by a single routing attempt."""

    async def fetch_one(self, sql: str, parameters: Parameters | None = None) -> Row | None: ...

    async def fetch_all(self, sql: str, parameters: Parameters | None = None) -> Sequence[Row]: ...

    async def fetch_scalar(self, sql: str, parameters: Parameters | None = None) -> object | None: ...

    async def execute(self, sql: str, parameters: Parameters | None = None) -> WriteOutcome: ...

    def close(self) -> None: ...


@runtime_checkable
class ConnectionFactory(Protocol):
    """Builds a fresh connection for a profile and target database."""

    async def connect(self, profile: DatabaseProfile, database: str | None = None) -> RouterConnection: ...


def bind_parameters(parameters: Parameters | None) -> dict[str, object] | None:
    """Normalise a named-parameter mapping for pyformat (``%(name)s``) binding.

    Keys may carry a leading ``@`` or ``:`` as written by legacy callers; the
    prefix is dropped. ``None`` is returned for an empty mapping so the driver
    skips ``%`` interpolation entirely.
    """

    if not parameters:
        return None
    bound: dict[str, object] = {}
    for key, value in parameters.items():
        name = str(key).lstrip("@:")
        if not name:
            raise ValueError("Parameter names cannot be empty.")
        if name in bound:
            raise ValueError(f"Parameter '{name}' supplied more than once.")
        bound[name] = value
    return bound


class AiomysqlConnection:
    """RouterConnection backed by an aiomysql connection."""

    def __init__(self, conn: Any, *, profile_name: str, timeout: float) -> None:
        self._conn = conn
        self._profile_name = profile_name
        self._timeout = timeout

    async def fetch_one(self, sql: str, parameters: Parameters | None = None) -> Row | None:
        async with self._conn.cursor(aiomysql.DictCursor) as cursor:
            await self._run(cursor, sql, parameters)
            return await cursor.fetchone()

    async def fetch_all(self, sql: str, parameters: Parameters | None = None) -> Sequence[Row]:
        async with self._conn.cursor(aiomysql.DictCursor) as cursor:
            await self._run(cursor, sql, parameters)
            rows = await cursor.fetchall()
        return list(rows or ())

    async def fetch_scalar(self, sql: str, parameters: Parameters | None = None) -> object | None:
        async with self._conn.cursor() as cursor:
            await self._run(cursor, sql, parameters)
            row = await cursor.fetchone()
        if not row:
            return None
        return row[0]

    async def execute(self, sql: str, parameters: Parameters | None = None) -> WriteOutcome:
        async with self._conn.cursor() as cursor:
            await self._run(cursor, sql, parameters)
            rows_affected = max(cursor.rowcount, 0)
            last_insert_id = cursor.lastrowid or None
        return WriteOutcome(rows_affected=rows_affected, last_insert_id=last_insert_id)

    def close(self) -> None:
        try:
            self._conn.close()
        except Exception:  # pragma: no cover - best effort cleanup
            pass

    async def _run(self, cursor: Any, sql: str, parameters: Parameters | None) -> None:
        statement = sql.strip()
        if not statement:
            raise QueryExecutionFailure("Provide SQL to execute.")
        try:
            args = bind_parameters(parameters)
            await asyncio.wait_for(cursor.execute(statement, args), timeout=self._timeout)
        except TimeoutError as exc:
            raise QueryExecutionFailure(
                f"Statement timed out after {self._timeout:g}s on '{self._profile_name}'"
            ) from exc
        except Exception as exc:
            raise QueryExecutionFailure(str(exc)) from exc


class AiomysqlConnectionFactory:
    """Opens MySQL connections via aiomysql."""

    def __init__(self, *, charset: str = "utf8mb4", autocommit: bool = True) -> None:
        self._charset = charset
        self._autocommit = autocommit

    async def connect(self, profile: DatabaseProfile, database: str | None = None) -> AiomysqlConnection:
        try:
            conn = await aiomysql.connect(**self._connect_kwargs(profile, database))
        except Exception as exc:
            raise ConnectionFailure(f"Failed to connect to profile '{profile.name}': {exc}") from exc
        return AiomysqlConnection(conn, profile_name=profile.name, timeout=float(profile.timeout_seconds))

    def _connect_kwargs(self, profile: DatabaseProfile, database: str | None) -> dict[str, object]:
        # FOUND_ROWS makes UPDATE report matched rows rather than changed rows.
        kwargs: dict[str, object] = {
            "host": profile.host or "localhost",
            "port": profile.port,
            "user": profile.user,
            "password": profile.password,
            "charset": self._charset,
            "autocommit": self._autocommit,
            "connect_timeout": profile.timeout_seconds,
            "client_flag": CLIENT.FOUND_ROWS,
        }
        if database:
            kwargs["db"] = database
        context = _ssl_context(profile.ssl_mode)
        if context is not None:
            kwargs["ssl"] = context
        return kwargs


def _ssl_context(mode: SslMode) -> ssl.SSLContext | None:
    if mode is SslMode.NONE:
        return None
    context = ssl.create_default_context()
    if mode in (SslMode.PREFERRED, SslMode.REQUIRED):
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    elif mode is SslMode.VERIFY_CA:
        context.check_hostname = False
    return context


__all__ = [
    "AiomysqlConnection",
    "AiomysqlConnectionFactory",
    "ConnectionFactory",
    "Parameters",
    "RouterConnection",
    "WriteOutcome",
    "bind_parameters",
]
