"""In-process stand-ins for MySQL connections used by the router tests."""

from __future__ import annotations

import asyncio
from typing import Mapping

from replicarouter.connections import WriteOutcome
from replicarouter.models import DatabaseProfile


class FakeConnection:
    """Scriptable RouterConnection.

    ``block`` parks every statement until the event is set, ``delay`` sleeps
    before answering, and ``error`` is raised for every statement (or only for
    statements containing ``fail_on`` when that is given).
    """

    def __init__(
        self,
        *,
        rows: list[dict[str, object]] | None = None,
        scalar: object | None = None,
        write_outcomes: list[WriteOutcome] | None = None,
        error: BaseException | None = None,
        fail_on: str | None = None,
        block: asyncio.Event | None = None,
        delay: float = 0.0,
    ) -> None:
        self.rows = list(rows or [])
        self.scalar = scalar
        self.write_outcomes = list(write_outcomes or [])
        self.error = error
        self.fail_on = fail_on
        self.block = block
        self.delay = delay
        self.statements: list[tuple[str, dict[str, object] | None]] = []
        self.closed = False
        self.cancelled = False

    async def fetch_one(self, sql: str, parameters: Mapping[str, object] | None = None):
        await self._run(sql, parameters)
        return self.rows[0] if self.rows else None

    async def fetch_all(self, sql: str, parameters: Mapping[str, object] | None = None):
        await self._run(sql, parameters)
        return list(self.rows)

    async def fetch_scalar(self, sql: str, parameters: Mapping[str, object] | None = None):
        await self._run(sql, parameters)
        return self.scalar

    async def execute(self, sql: str, parameters: Mapping[str, object] | None = None) -> WriteOutcome:
        await self._run(sql, parameters)
        if self.write_outcomes:
            return self.write_outcomes.pop(0)
        return WriteOutcome(rows_affected=1)

    def close(self) -> None:
        self.closed = True

    @property
    def sql(self) -> list[str]:
        return [statement for statement, _ in self.statements]

    async def _run(self, sql: str, parameters: Mapping[str, object] | None) -> None:
        self.statements.append((sql, dict(parameters) if parameters else None))
        try:
            if self.block is not None:
                await self.block.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None and (self.fail_on is None or self.fail_on in sql):
            raise self.error


class FakeConnectionFactory:
    """Hands out the scripted connection (or raises the scripted error) per profile name."""

    def __init__(self, connections: Mapping[str, FakeConnection | BaseException] | None = None) -> None:
        self.connections: dict[str, FakeConnection | BaseException] = dict(connections or {})
        self.attempts: list[str] = []
        self.databases: list[str | None] = []

    async def connect(self, profile: DatabaseProfile, database: str | None = None) -> FakeConnection:
        self.attempts.append(profile.name)
        self.databases.append(database)
        target = self.connections.get(profile.name)
        if target is None:
            target = FakeConnection()
            self.connections[profile.name] = target
        if isinstance(target, BaseException):
            raise target
        return target


def make_profiles(count: int) -> tuple[DatabaseProfile, ...]:
    return tuple(DatabaseProfile(name=f"db{index}", port=3306 + index, order=index) for index in range(count))


async def settle(delay: float = 0.05) -> None:
    """Give abandoned attempts time to run their cleanup."""

    await asyncio.sleep(delay)
