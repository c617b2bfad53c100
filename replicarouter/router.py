"""Multi-database router: parallel-first-success reads and fan-out writes."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Coroutine, Sequence, TypeVar

from .connections import AiomysqlConnectionFactory, ConnectionFactory, Parameters, RouterConnection, WriteOutcome
from .errors import (
    ConnectionFailure,
    NoProfilesConfigured,
    OperationCancelled,
    QueryExecutionFailure,
    RouterError,
)
from .models import DatabaseProfile, Row
from .profiles import ProfileSource, StaticProfileSource
from .results import ALL_PROFILES, CANCELLED, NO_PROFILE, FanOutResult, ProfileResult, ReadResult

LOG = logging.getLogger(__name__)

MAX_READ_CONCURRENCY = 3

T = TypeVar("T")
R = TypeVar("R")

RowMapper = Callable[[Row], T]
ReadOperation = Callable[[RouterConnection], Awaitable[Any]]
WriteOperation = Callable[[RouterConnection], Awaitable[tuple[WriteOutcome, bool]]]


class DatabaseRouter:
    """Routes reads and writes across every configured MySQL profile.

    Reads race the first ``max_read_concurrency`` profiles and return the
    earliest success. Writes go to every profile and report each outcome.
    Per-profile failures are always folded into the returned result; none of
    the public coroutines raise because a server misbehaved.

    Every public operation accepts an optional ``cancel`` event. Setting it
    aborts the call early: reads return a cancelled failure, and writes
    record a cancelled entry for each profile that had not finished yet.
    """

    def __init__(
        self,
        profiles: ProfileSource | Sequence[DatabaseProfile],
        *,
        connection_factory: ConnectionFactory | None = None,
        max_read_concurrency: int = MAX_READ_CONCURRENCY,
    ) -> None:
        if max_read_concurrency < 1:
            raise ValueError("max_read_concurrency must be at least 1.")
        if isinstance(profiles, ProfileSource):
            self._source: ProfileSource = profiles
        else:
            self._source = StaticProfileSource(profiles)
        self._factory = connection_factory or AiomysqlConnectionFactory()
        self._max_read_concurrency = max_read_concurrency
        self._abandoned: set[asyncio.Task[Any]] = set()

    @property
    def max_read_concurrency(self) -> int:
        return self._max_read_concurrency

    def profiles(self) -> tuple[DatabaseProfile, ...]:
        """Current profiles in priority order, as the next call will see them."""

        return tuple(self._source.profiles())

    # Reads

    async def read_one(
        self,
        database: str,
        sql: str,
        parameters: Parameters | None = None,
        mapper: RowMapper[T] | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> ReadResult[T]:
        """Map the first row of the first profile to answer.

        A query that matches nothing still succeeds, with ``data`` set to None.
        Without a mapper the row mapping itself is the payload.
        """

        async def _operation(conn: RouterConnection) -> Any:
            row = await conn.fetch_one(sql, parameters)
            if row is None:
                return None
            return mapper(row) if mapper is not None else row

        return await self._read_first_success("Read", database, _operation, cancel)

    async def read_many(
        self,
        database: str,
        sql: str,
        parameters: Parameters | None = None,
        mapper: RowMapper[T] | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> ReadResult[list[T]]:
        """Map every row returned by the first profile to answer."""

        async def _operation(conn: RouterConnection) -> list[Any]:
            rows = await conn.fetch_all(sql, parameters)
            if mapper is None:
                return list(rows)
            return [mapper(row) for row in rows]

        return await self._read_first_success("Read list", database, _operation, cancel)

    async def read_scalar(
        self,
        database: str,
        sql: str,
        parameters: Parameters | None = None,
        *,
        converter: Callable[[object], T] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ReadResult[T]:
        """Return the first column of the first row, coerced with ``converter``.

        NULL and empty results succeed with ``data`` set to None; a converter
        error counts as that profile's failure.
        """

        async def _operation(conn: RouterConnection) -> Any:
            value = await conn.fetch_scalar(sql, parameters)
            if value is None:
                return None
            return converter(value) if converter is not None else value

        return await self._read_first_success("Scalar read", database, _operation, cancel)

    # Writes

    async def write_fan_out(
        self,
        database: str,
        sql: str,
        parameters: Parameters | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> FanOutResult:
        """Execute the statement on every profile and collect each outcome."""

        async def _operation(conn: RouterConnection) -> tuple[WriteOutcome, bool]:
            return await conn.execute(sql, parameters), False

        return await self._fan_out("Fan-out write", database, _operation, cancel)

    async def write_self_healing(
        self,
        database: str,
        update_sql: str,
        update_parameters: Parameters | None,
        insert_sql: str,
        insert_parameters: Parameters | None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> FanOutResult:
        """UPDATE on every profile, falling back to INSERT where nothing matched.

        Each profile reconciles on its own connection, so generated identities
        may differ between servers.
        """

        async def _operation(conn: RouterConnection) -> tuple[WriteOutcome, bool]:
            updated = await conn.execute(update_sql, update_parameters)
            if updated.rows_affected > 0:
                return WriteOutcome(rows_affected=updated.rows_affected), False
            return await conn.execute(insert_sql, insert_parameters), True

        return await self._fan_out("Self-healing write", database, _operation, cancel)

    # Connection checks

    async def test_connection(self, profile: DatabaseProfile, database: str | None = None) -> ProfileResult:
        """Open and close one connection to ``profile``, timing the round trip."""

        started = time.perf_counter()
        try:
            conn = await self._connect(profile, database)
        except RouterError as exc:
            return ProfileResult.failed(profile.name, str(exc), exc, elapsed_ms=_elapsed_ms(started))
        conn.close()
        return ProfileResult.succeeded(profile.name, elapsed_ms=_elapsed_ms(started))

    async def test_all_connections(
        self,
        database: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> FanOutResult:
        """Check every configured profile concurrently."""

        async def _operation(conn: RouterConnection) -> tuple[WriteOutcome, bool]:
            return WriteOutcome(rows_affected=0), False

        return await self._fan_out("Connection check", database, _operation, cancel)

    # Internals

    async def _read_first_success(
        self,
        label: str,
        database: str,
        operation: ReadOperation,
        cancel: asyncio.Event | None,
    ) -> ReadResult[Any]:
        profiles = self.profiles()
        if not profiles:
            LOG.warning("No database profiles configured", extra={"database": database})
            return ReadResult.failed(
                NO_PROFILE,
                "No database profiles configured",
                NoProfilesConfigured("No database profiles configured"),
            )
        if cancel is not None and cancel.is_set():
            return _cancelled_read()

        sampled = profiles[: self._max_read_concurrency]
        signal = asyncio.Event()
        link = _link(cancel, signal)
        tasks = [
            asyncio.create_task(
                self._attempt(self._execute_read(profile, database, operation), signal),
                name=f"replicarouter-read-{profile.name}",
            )
            for profile in sampled
        ]
        try:
            pending: set[asyncio.Task[Any]] = set(tasks)
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    result = task.result()
                    if result is None:
                        continue
                    if result.success:
                        signal.set()
                        LOG.debug(
                            "%s succeeded from %s",
                            label,
                            result.profile_name,
                            extra={"profile": result.profile_name, "database": database},
                        )
                        return result
                    LOG.warning(
                        "%s failed from %s: %s",
                        label,
                        result.profile_name,
                        result.error_message,
                        extra={"profile": result.profile_name, "database": database},
                    )
        finally:
            signal.set()
            if link is not None:
                link.cancel()
            self._track_abandoned(tasks)

        if cancel is not None and cancel.is_set():
            LOG.info("%s cancelled by caller", label, extra={"database": database})
            return _cancelled_read()
        LOG.error(
            "All database %s attempts failed",
            label.lower(),
            extra={"database": database, "attempted": len(sampled)},
        )
        return ReadResult.failed(ALL_PROFILES, "All database servers failed")

    async def _fan_out(
        self,
        label: str,
        database: str | None,
        operation: WriteOperation,
        cancel: asyncio.Event | None,
    ) -> FanOutResult:
        profiles = self.profiles()
        if not profiles:
            LOG.warning("No database profiles configured", extra={"database": database})
            return FanOutResult(
                (
                    ProfileResult.failed(
                        NO_PROFILE,
                        "No database profiles configured",
                        NoProfilesConfigured("No database profiles configured"),
                    ),
                )
            )

        signal = asyncio.Event()
        link = _link(cancel, signal)
        try:
            outcomes = await asyncio.gather(
                *(self._attempt(self._execute_write(profile, database, operation), signal) for profile in profiles)
            )
        finally:
            if link is not None:
                link.cancel()

        entries: list[ProfileResult] = []
        for profile, outcome in zip(profiles, outcomes):
            if outcome is None:
                outcome = ProfileResult.failed(
                    profile.name,
                    "Operation cancelled",
                    OperationCancelled(f"{label} on '{profile.name}' was cancelled"),
                )
            entries.append(outcome)
        result = FanOutResult(tuple(entries))
        _log_fan_out(label, database, result)
        return result

    async def _attempt(self, work: Coroutine[Any, Any, R], signal: asyncio.Event) -> R | None:
        """Run one profile attempt until it finishes or ``signal`` fires.

        Returns None when the attempt was abandoned; abandonment is a normal
        exit, not a failure.
        """

        if signal.is_set():
            work.close()
            return None
        job = asyncio.ensure_future(work)
        stop = asyncio.ensure_future(signal.wait())
        try:
            await asyncio.wait({job, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
            if not job.done():
                job.cancel()
        if not job.done():
            # Let the abandoned attempt release its connection.
            await asyncio.wait({job})
        if job.cancelled():
            return None
        return job.result()

    async def _execute_read(self, profile: DatabaseProfile, database: str, operation: ReadOperation) -> ReadResult[Any]:
        started = time.perf_counter()
        try:
            data = await self._with_connection(profile, database, operation)
        except Exception as exc:
            error = _as_router_error(exc)
            return ReadResult.failed(profile.name, str(error), error, elapsed_ms=_elapsed_ms(started))
        return ReadResult.succeeded(profile.name, data, elapsed_ms=_elapsed_ms(started))

    async def _execute_write(
        self,
        profile: DatabaseProfile,
        database: str | None,
        operation: WriteOperation,
    ) -> ProfileResult:
        started = time.perf_counter()
        try:
            outcome, inserted = await self._with_connection(profile, database, operation)
        except Exception as exc:
            error = _as_router_error(exc)
            return ProfileResult.failed(profile.name, str(error), error, elapsed_ms=_elapsed_ms(started))
        if inserted:
            LOG.debug(
                "Self-healing INSERT on %s: %d row(s), id=%s",
                profile.name,
                outcome.rows_affected,
                outcome.last_insert_id,
                extra={"profile": profile.name, "database": database},
            )
        return ProfileResult.succeeded(
            profile.name,
            rows_affected=outcome.rows_affected,
            last_insert_id=outcome.last_insert_id,
            inserted=inserted,
            elapsed_ms=_elapsed_ms(started),
        )

    async def _with_connection(
        self,
        profile: DatabaseProfile,
        database: str | None,
        operation: Callable[[RouterConnection], Awaitable[R]],
    ) -> R:
        conn = await self._connect(profile, database)
        try:
            return await operation(conn)
        finally:
            conn.close()

    async def _connect(self, profile: DatabaseProfile, database: str | None) -> RouterConnection:
        try:
            return await self._factory.connect(profile, database)
        except ConnectionFailure:
            raise
        except Exception as exc:
            raise ConnectionFailure(f"Failed to connect to profile '{profile.name}': {exc}") from exc

    def _track_abandoned(self, tasks: Sequence[asyncio.Task[Any]]) -> None:
        # Losing attempts finish their cleanup after the winner is returned.
        for task in tasks:
            if task.done():
                continue
            self._abandoned.add(task)
            task.add_done_callback(self._abandoned.discard)


def _link(cancel: asyncio.Event | None, signal: asyncio.Event) -> asyncio.Task[None] | None:
    """Forward the caller's cancellation event onto the per-call signal."""

    if cancel is None:
        return None

    async def _forward() -> None:
        await cancel.wait()
        signal.set()

    return asyncio.create_task(_forward())


def _as_router_error(exc: Exception) -> RouterError:
    if isinstance(exc, RouterError):
        return exc
    error = QueryExecutionFailure(str(exc) or exc.__class__.__name__)
    error.__cause__ = exc
    return error


def _cancelled_read() -> ReadResult[Any]:
    return ReadResult.failed(CANCELLED, "Operation cancelled", OperationCancelled("Operation cancelled"))


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _log_fan_out(label: str, database: str | None, result: FanOutResult) -> None:
    extra = {"database": database, "succeeded": result.success_count, "total": result.total_count}
    if result.all_succeeded:
        LOG.info("%s succeeded on all %d servers", label, result.total_count, extra=extra)
    elif result.any_succeeded:
        LOG.warning(
            "%s partial: %d/%d succeeded",
            label,
            result.success_count,
            result.total_count,
            extra=extra,
        )
        for failed in result.failed_results:
            LOG.warning(
                "  Failed on %s: %s",
                failed.profile_name,
                failed.error_message,
                extra={"profile": failed.profile_name, "database": database},
            )
    else:
        LOG.error("%s failed on all %d servers", label, result.total_count, extra=extra)


__all__ = ["DatabaseRouter", "MAX_READ_CONCURRENCY", "RowMapper"]
