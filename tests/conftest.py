"""
Collector test fixtures.

Provides an in-memory stand-in for the SQLAlchemy engine/connection pair so
connect / fetch / close and the collection loop can run without PostgreSQL.
"""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from pgstat_collector.config import Settings

# (name, pg type oid) as psycopg2 reports them in cursor.description
DESCRIPTION_A = [("now", 1184), ("pid", 23), ("query", 25)]

T0 = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
T0_TEXT = "2024-05-01T12:00:00.123456Z"


class FakeResult:
    def __init__(self, description, rows):
        self.cursor = SimpleNamespace(description=description)
        self._rows = rows

    def fetchall(self):
        return list(self._rows)


class FakeConnection:
    def __init__(self, db):
        self.db = db
        self.closed = False
        self.invalidated = False
        self.statements = []

    def exec_driver_sql(self, sql):
        self.statements.append(sql)
        failure = self.db.statement_errors.get(sql.split()[0].upper())
        if failure is not None:
            raise failure
        if sql.startswith("EXECUTE"):
            outcome = self.db.outcomes.pop(0) if self.db.outcomes else self.db.default_rows
            if isinstance(outcome, BaseException):
                raise outcome
            return FakeResult(self.db.description, outcome)
        return FakeResult(None, [])

    def close(self):
        self.closed = True


class FakeEngine:
    def __init__(self, db, kwargs):
        self.db = db
        self.kwargs = kwargs
        self.disposed = False

    def connect(self):
        if self.db.connect_errors:
            raise self.db.connect_errors.pop(0)
        conn = FakeConnection(self.db)
        self.db.connections.append(conn)
        return conn

    def dispose(self):
        self.disposed = True


class FakeDatabase:
    """
    Scripted database.

    outcomes: consumed one per EXECUTE; a list of rows or an exception.
    connect_errors: consumed one per engine.connect().
    statement_errors: first SQL keyword (e.g. "DEALLOCATE") -> exception.
    """

    def __init__(self, description=None, outcomes=None, default_rows=None):
        self.description = DESCRIPTION_A if description is None else description
        self.outcomes = list(outcomes or [])
        self.default_rows = default_rows if default_rows is not None else []
        self.connect_errors = []
        self.statement_errors = {}
        self.engines = []
        self.connections = []

    def engine_factory(self, url, **kwargs):
        engine = FakeEngine(self, kwargs)
        self.engines.append(engine)
        return engine

    @property
    def executes(self):
        return sum(1 for c in self.connections for s in c.statements if s.startswith("EXECUTE"))


def db_error(message="server closed the connection unexpectedly"):
    from sqlalchemy.exc import OperationalError

    return OperationalError("EXECUTE pgstat_collector_activity", {}, Exception(message))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        conn_string="host=localhost user=postgres",
        poll_interval=0.01,
        max_uptime=3600.0,
        out_dir=str(tmp_path),
    )


@pytest.fixture
def fake_db():
    return FakeDatabase(default_rows=[(T0, 42, "select  1")])


@pytest.fixture
def manager(settings, fake_db):
    from pgstat_collector.connection import ConnectionManager

    return ConnectionManager(settings, engine_factory=fake_db.engine_factory)
