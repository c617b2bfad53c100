"""Tests for the aiomysql-backed connection factory."""

from __future__ import annotations

import asyncio
import ssl

import aiomysql
import pytest
from pymysql.constants import CLIENT

from replicarouter.connections import (
    AiomysqlConnection,
    AiomysqlConnectionFactory,
    ConnectionFactory,
    RouterConnection,
    bind_parameters,
)
from replicarouter.errors import ConnectionFailure, QueryExecutionFailure
from replicarouter.models import DatabaseProfile, SslMode


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _FakeCursor:
    def __init__(self, conn: "_FakeMySqlConnection") -> None:
        self._conn = conn
        self.rowcount = -1
        self.lastrowid = None

    async def __aenter__(self) -> "_FakeCursor":
        return self

    async def __aexit__(self, *exc_info) -> None:  # type: ignore[no-untyped-def]
        return None

    async def execute(self, sql: str, args=None) -> int:  # type: ignore[no-untyped-def]
        self._conn.executed.append((sql, args))
        if self._conn.delay:
            await asyncio.sleep(self._conn.delay)
        if self._conn.error is not None:
            raise self._conn.error
        self.rowcount = self._conn.rowcount
        self.lastrowid = self._conn.lastrowid
        return self.rowcount

    async def fetchone(self):  # type: ignore[no-untyped-def]
        return self._conn.rows[0] if self._conn.rows else None

    async def fetchall(self):  # type: ignore[no-untyped-def]
        return tuple(self._conn.rows)


class _FakeMySqlConnection:
    def __init__(self, rows=None, rowcount: int = 0, lastrowid: int = 0, error=None, delay: float = 0.0) -> None:  # type: ignore[no-untyped-def]
        self.rows = rows or []
        self.rowcount = rowcount
        self.lastrowid = lastrowid
        self.error = error
        self.delay = delay
        self.executed: list[tuple[str, object]] = []
        self.cursor_classes: list[object] = []
        self.closed = False

    def cursor(self, cursor_class=None) -> _FakeCursor:  # type: ignore[no-untyped-def]
        self.cursor_classes.append(cursor_class)
        return _FakeCursor(self)

    def close(self) -> None:
        self.closed = True


def test_bind_parameters_strips_legacy_prefixes() -> None:
    bound = bind_parameters({"@Code": 3, ":Spot": "X", "Title": None})

    assert bound == {"Code": 3, "Spot": "X", "Title": None}


def test_bind_parameters_returns_none_for_empty_mapping() -> None:
    assert bind_parameters(None) is None
    assert bind_parameters({}) is None


@pytest.mark.parametrize("parameters", [{"@": 1}, {"@Code": 1, "Code": 2}])
def test_bind_parameters_rejects_bad_names(parameters) -> None:  # type: ignore[no-untyped-def]
    with pytest.raises(ValueError):
        bind_parameters(parameters)


def test_adapters_satisfy_protocols() -> None:
    assert isinstance(AiomysqlConnectionFactory(), ConnectionFactory)
    assert isinstance(AiomysqlConnection(_FakeMySqlConnection(), profile_name="db", timeout=1), RouterConnection)


@pytest.mark.anyio
async def test_factory_passes_profile_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}
    raw = _FakeMySqlConnection()

    async def _connect(**kwargs):  # type: ignore[no-untyped-def]
        captured.update(kwargs)
        return raw

    monkeypatch.setattr("replicarouter.connections.aiomysql.connect", _connect)
    profile = DatabaseProfile(name="Primary", host="db1", port=3307, user="app", password="pw", timeout_seconds=7)

    conn = await AiomysqlConnectionFactory().connect(profile, "air_demo")
    conn.close()

    assert captured["host"] == "db1"
    assert captured["port"] == 3307
    assert captured["user"] == "app"
    assert captured["password"] == "pw"
    assert captured["db"] == "air_demo"
    assert captured["connect_timeout"] == 7
    assert captured["client_flag"] & CLIENT.FOUND_ROWS
    assert captured["autocommit"] is True
    assert "ssl" not in captured
    assert raw.closed is True


@pytest.mark.anyio
async def test_factory_omits_database_when_not_given(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    async def _connect(**kwargs):  # type: ignore[no-untyped-def]
        captured.update(kwargs)
        return _FakeMySqlConnection()

    monkeypatch.setattr("replicarouter.connections.aiomysql.connect", _connect)

    await AiomysqlConnectionFactory().connect(DatabaseProfile(name="Primary"))

    assert "db" not in captured


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("mode", "check_hostname", "verify_mode"),
    [
        (SslMode.REQUIRED, False, ssl.CERT_NONE),
        (SslMode.VERIFY_CA, False, ssl.CERT_REQUIRED),
        (SslMode.VERIFY_FULL, True, ssl.CERT_REQUIRED),
    ],
)
async def test_factory_builds_ssl_context(monkeypatch: pytest.MonkeyPatch, mode, check_hostname, verify_mode) -> None:  # type: ignore[no-untyped-def]
    captured: dict[str, object] = {}

    async def _connect(**kwargs):  # type: ignore[no-untyped-def]
        captured.update(kwargs)
        return _FakeMySqlConnection()

    monkeypatch.setattr("replicarouter.connections.aiomysql.connect", _connect)

    await AiomysqlConnectionFactory().connect(DatabaseProfile(name="Secure", ssl_mode=mode))

    context = captured["ssl"]
    assert isinstance(context, ssl.SSLContext)
    assert context.check_hostname is check_hostname
    assert context.verify_mode == verify_mode


@pytest.mark.anyio
async def test_factory_wraps_connect_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _connect(**kwargs):  # type: ignore[no-untyped-def]
        raise OSError("Can't connect to MySQL server")

    monkeypatch.setattr("replicarouter.connections.aiomysql.connect", _connect)

    with pytest.raises(ConnectionFailure) as excinfo:
        await AiomysqlConnectionFactory().connect(DatabaseProfile(name="Replica"))

    assert "Replica" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, OSError)


@pytest.mark.anyio
async def test_connection_reads_rows_with_dict_cursor() -> None:
    raw = _FakeMySqlConnection(rows=[{"Code": 1}, {"Code": 2}])
    conn = AiomysqlConnection(raw, profile_name="db", timeout=5)

    first = await conn.fetch_one("SELECT Code FROM agency WHERE Code > %(Code)s", {"@Code": 0})
    every = await conn.fetch_all("  SELECT Code FROM agency  ")

    assert first == {"Code": 1}
    assert every == [{"Code": 1}, {"Code": 2}]
    assert raw.cursor_classes == [aiomysql.DictCursor, aiomysql.DictCursor]
    assert raw.executed == [
        ("SELECT Code FROM agency WHERE Code > %(Code)s", {"Code": 0}),
        ("SELECT Code FROM agency", None),
    ]


@pytest.mark.anyio
async def test_connection_fetch_scalar_returns_first_column() -> None:
    conn = AiomysqlConnection(_FakeMySqlConnection(rows=[(12, "ignored")]), profile_name="db", timeout=5)
    empty = AiomysqlConnection(_FakeMySqlConnection(), profile_name="db", timeout=5)

    assert await conn.fetch_scalar("SELECT COUNT(*), 'x' FROM agency") == 12
    assert await empty.fetch_scalar("SELECT Code FROM agency WHERE 0") is None


@pytest.mark.anyio
async def test_connection_execute_reports_counters() -> None:
    inserted = AiomysqlConnection(_FakeMySqlConnection(rowcount=1, lastrowid=41), profile_name="db", timeout=5)
    updated = AiomysqlConnection(_FakeMySqlConnection(rowcount=3, lastrowid=0), profile_name="db", timeout=5)

    insert_outcome = await inserted.execute("INSERT INTO agency (AgencyName) VALUES ('A')")
    update_outcome = await updated.execute("UPDATE agency SET Phone = NULL")

    assert (insert_outcome.rows_affected, insert_outcome.last_insert_id) == (1, 41)
    assert (update_outcome.rows_affected, update_outcome.last_insert_id) == (3, None)


@pytest.mark.anyio
async def test_connection_rejects_empty_sql() -> None:
    raw = _FakeMySqlConnection()
    conn = AiomysqlConnection(raw, profile_name="db", timeout=5)

    with pytest.raises(QueryExecutionFailure):
        await conn.execute("   ")

    assert raw.executed == []


@pytest.mark.anyio
async def test_connection_wraps_driver_errors() -> None:
    conn = AiomysqlConnection(
        _FakeMySqlConnection(error=RuntimeError("Table 'air_demo.agency' doesn't exist")),
        profile_name="db",
        timeout=5,
    )

    with pytest.raises(QueryExecutionFailure, match="doesn't exist"):
        await conn.fetch_all("SELECT * FROM agency")


@pytest.mark.anyio
async def test_connection_enforces_statement_timeout() -> None:
    conn = AiomysqlConnection(_FakeMySqlConnection(delay=1.0), profile_name="slow", timeout=0.01)

    with pytest.raises(QueryExecutionFailure, match="timed out"):
        await conn.execute("UPDATE agency SET Phone = NULL")
