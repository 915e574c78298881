"""Tests for the connection manager and its single-retry policy."""

import logging

import pytest

from conftest import T0, db_error


@pytest.mark.mocked_deps
class TestConnect:
    def test_connect_sets_timeout_and_prepares(self, manager, fake_db):
        from pgstat_collector.connection import STAT_ACTIVITY_SQL, STATEMENT_NAME

        handle = manager.connect()

        assert fake_db.connections[0].statements == [
            "SET statement_timeout TO 5000",
            f"PREPARE {STATEMENT_NAME} AS {STAT_ACTIVITY_SQL}",
        ]
        assert handle.closed is False

    def test_engine_options(self, manager, fake_db):
        from sqlalchemy.pool import NullPool

        manager.connect()
        kwargs = fake_db.engines[0].kwargs

        assert kwargs["poolclass"] is NullPool
        assert kwargs["isolation_level"] == "AUTOCOMMIT"
        assert kwargs["creator"].keywords == {"sslmode": "require"}

    def test_sslmode_in_dsn_is_respected(self, settings, fake_db):
        from dataclasses import replace

        from pgstat_collector.connection import ConnectionManager

        settings = replace(settings, conn_string="host=db sslmode=verify-full")
        ConnectionManager(settings, engine_factory=fake_db.engine_factory).connect()

        creator = fake_db.engines[0].kwargs["creator"]
        assert creator.args == ("host=db sslmode=verify-full",)
        assert creator.keywords == {}

    def test_connect_failure(self, manager, fake_db):
        from pgstat_collector.exceptions import ConnectError

        fake_db.connect_errors.append(db_error("connection refused"))

        with pytest.raises(ConnectError, match="connecting to database"):
            manager.connect()
        assert fake_db.engines[0].disposed is True

    def test_prepare_failure_closes_connection(self, manager, fake_db):
        from pgstat_collector.exceptions import ConnectError

        fake_db.statement_errors["PREPARE"] = db_error("relation does not exist")

        with pytest.raises(ConnectError, match="preparing"):
            manager.connect()
        assert fake_db.connections[0].closed is True


class TestConnectionStrings:
    @pytest.mark.parametrize(
        "given, expected",
        [
            ("postgresql+psycopg2://u:p@db/x", "postgresql://u:p@db/x"),
            ("postgresql://u@db/x", "postgresql://u@db/x"),
            ("host=db user=u", "host=db user=u"),
        ],
    )
    def test_normalize(self, given, expected):
        from pgstat_collector.connection import normalize_conn_string

        assert normalize_conn_string(given) == expected

    def test_redact(self):
        from pgstat_collector.connection import redact_conn_string

        assert redact_conn_string("postgresql://u:hunter2@db/x") == "postgresql://u:***@db/x"
        assert redact_conn_string("host=db password=hunter2 user=u") == "host=db password=*** user=u"


@pytest.mark.mocked_deps
class TestFetchAndClose:
    def test_fetch_returns_schema_and_rows(self, manager):
        handle = manager.connect()

        schema, rows = manager.fetch(handle)

        assert [c.name for c in schema] == ["now", "pid", "query"]
        assert rows == [(T0, 42, "select  1")]
        assert handle.schema == schema

    def test_fetch_error(self, manager, fake_db):
        from pgstat_collector.exceptions import FetchError

        handle = manager.connect()
        fake_db.outcomes.append(db_error("canceling statement due to statement timeout"))

        with pytest.raises(FetchError, match="executing prepared query"):
            manager.fetch(handle)

    def test_close_releases_statement(self, manager, fake_db):
        from pgstat_collector.connection import STATEMENT_NAME

        handle = manager.connect()
        manager.close(handle)

        conn = fake_db.connections[0]
        assert conn.statements[-1] == f"DEALLOCATE {STATEMENT_NAME}"
        assert conn.closed is True
        assert fake_db.engines[0].disposed is True
        assert handle.closed is True

    def test_close_is_idempotent(self, manager, fake_db):
        handle = manager.connect()
        manager.close(handle)
        statements = list(fake_db.connections[0].statements)

        manager.close(handle)
        manager.close(None)

        assert fake_db.connections[0].statements == statements

    def test_close_noop_when_session_already_closed(self, manager, fake_db):
        handle = manager.connect()
        fake_db.connections[0].closed = True

        manager.close(handle)

        assert not any(s.startswith("DEALLOCATE") for s in fake_db.connections[0].statements)

    def test_close_error_is_logged_not_raised(self, manager, fake_db, caplog):
        handle = manager.connect()
        fake_db.statement_errors["DEALLOCATE"] = db_error("server closed the connection")

        with caplog.at_level(logging.WARNING, logger="pgstat_collector"):
            manager.close(handle)

        assert fake_db.connections[0].closed is True
        assert any("error releasing prepared statement" in r.getMessage() for r in caplog.records)

    def test_close_skips_deallocate_on_invalidated_connection(self, manager, fake_db):
        handle = manager.connect()
        fake_db.connections[0].invalidated = True

        manager.close(handle)

        assert not any(s.startswith("DEALLOCATE") for s in fake_db.connections[0].statements)
        assert fake_db.connections[0].closed is True


@pytest.mark.mocked_deps
class TestFetchWithRetry:
    def test_no_retry_on_success(self, manager, fake_db):
        handle = manager.connect()

        new_handle, schema, rows = manager.fetch_with_retry(handle)

        assert new_handle is handle
        assert len(fake_db.engines) == 1
        assert manager.reconnects == 0

    def test_single_retry_recovers(self, manager, fake_db, caplog):
        fake_db.outcomes.append(db_error())
        handle = manager.connect()

        with caplog.at_level(logging.WARNING, logger="pgstat_collector"):
            new_handle, schema, rows = manager.fetch_with_retry(handle)

        assert new_handle is not handle
        assert handle.closed is True
        assert rows == [(T0, 42, "select  1")]
        assert len(fake_db.engines) == 2
        assert fake_db.executes == 2
        retry_lines = [r for r in caplog.records if "retrying error" in r.getMessage()]
        assert len(retry_lines) == 1

    def test_second_failure_propagates_without_third_attempt(self, manager, fake_db):
        from pgstat_collector.exceptions import FetchError

        fake_db.outcomes.extend([db_error(), db_error("still down")])
        handle = manager.connect()

        with pytest.raises(FetchError, match="fetch after reconnection"):
            manager.fetch_with_retry(handle)

        assert len(fake_db.engines) == 2
        assert fake_db.executes == 2
        assert all(c.closed for c in fake_db.connections)

    def test_reconnect_failure_propagates(self, manager, fake_db):
        from pgstat_collector.exceptions import ConnectError

        handle = manager.connect()
        fake_db.outcomes.append(db_error())
        fake_db.connect_errors.append(db_error("connection refused"))

        with pytest.raises(ConnectError, match="reconnecting after fetch error"):
            manager.fetch_with_retry(handle)

        assert fake_db.executes == 1
        assert handle.closed is True

