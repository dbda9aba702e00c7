"""Unit tests for the per-season settlement lock."""

import pytest

from boardrank.errors import ConcurrentSettlementError
from boardrank.tasks.locks import (
    advisory_lock_key,
    season_settlement_lock,
    settlement_lock_name,
)


class _Result:
    def __init__(self, value):
        self.value = value

    def scalar(self):
        return self.value


class _FakeConnection:
    def __init__(self, grant):
        self.grant = grant
        self.statements = []
        self.closed = False

    def execute(self, statement, params=None):
        sql = str(statement)
        self.statements.append(sql)
        if "pg_try_advisory_lock" in sql:
            return _Result(self.grant)
        return _Result(True)

    def close(self):
        self.closed = True


class _FakeDialect:
    name = "postgresql"


class _FakePostgresEngine:
    dialect = _FakeDialect()

    def __init__(self, grant):
        self.connection = _FakeConnection(grant)

    def connect(self):
        return self.connection


def test_advisory_lock_key_is_stable_64bit_int():
    key_a1 = advisory_lock_key(settlement_lock_name("season-1"))
    key_a2 = advisory_lock_key("boardrank:settlement:season-1")
    key_b = advisory_lock_key(settlement_lock_name("season-2"))

    assert isinstance(key_a1, int)
    assert key_a1 == key_a2
    assert key_a1 != key_b
    assert -(2 ** 63) <= key_a1 < 2 ** 63


def test_sqlite_runs_unlocked(test_engine):
    with season_settlement_lock(test_engine, "season-1") as locked:
        assert locked is False


def test_postgres_lock_acquired_and_released():
    engine = _FakePostgresEngine(grant=True)

    with season_settlement_lock(engine, "season-1") as locked:
        assert locked is True

    statements = engine.connection.statements
    assert any("pg_try_advisory_lock" in sql for sql in statements)
    assert any("pg_advisory_unlock" in sql for sql in statements)
    assert engine.connection.closed


def test_postgres_lock_held_elsewhere():
    engine = _FakePostgresEngine(grant=False)

    with pytest.raises(ConcurrentSettlementError) as exc_info:
        with season_settlement_lock(engine, "season-1"):
            pytest.fail("body must not run without the lock")

    assert exc_info.value.status_code == 409
    assert not any("pg_advisory_unlock" in sql for sql in engine.connection.statements)
    assert engine.connection.closed
