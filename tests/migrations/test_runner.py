"""Tests for the apply engine."""

from __future__ import annotations

import pytest

from surql_migrate.core.errors import (
    ApplyError,
    ConflictError,
    ConnectivityError,
    MigrationNotFoundError,
    VersionOrderError,
)
from surql_migrate.migrations.ledger import MigrationLedger
from surql_migrate.migrations.runner import MigrationRunner, UnitState

FOUR_STATEMENTS = (
    "DEFINE TABLE customer;\n"
    "DEFINE FIELD name ON TABLE customer TYPE string;\n"
    "DEFINE FIELD age ON TABLE customer TYPE int;\n"
    "DEFINE FIELD email ON TABLE customer TYPE string;\n"
)


@pytest.fixture()
def runner(conn, project) -> MigrationRunner:
    return MigrationRunner(conn, project.settings.migrations_path)


class TestPending:
    def test_pending_ascending(self, runner, project):
        project.add_unit("20240102_000000", "DEFINE TABLE b;")
        project.add_unit("20240101_000000", "DEFINE TABLE a;")
        assert [u.version for u in runner.get_pending()] == ["20240101_000000", "20240102_000000"]

    def test_recorded_units_are_not_pending(self, runner, project, conn):
        project.add_unit("20240101_000000", "DEFINE TABLE a;")
        project.add_unit("20240102_000000", "DEFINE TABLE b;")
        MigrationLedger(conn).record("20240101_000000", runner.units[0].checksum)
        assert [u.version for u in runner.get_pending()] == ["20240102_000000"]

    def test_edited_unit_conflicts(self, runner, project, conn):
        project.add_unit("20240101_000000", "DEFINE TABLE a;")
        MigrationLedger(conn).record("20240101_000000", "stale-checksum")
        with pytest.raises(ConflictError) as info:
            runner.get_pending()
        assert info.value.context.version == "20240101_000000"

    def test_up_to(self, runner, project):
        for version in ("20240101_000000", "20240102_000000", "20240103_000000"):
            project.add_unit(version, f"DEFINE TABLE t{version[-6:]};")
        assert [u.version for u in runner.get_pending(up_to="20240102_000000")] == [
            "20240101_000000",
            "20240102_000000",
        ]

    def test_up_to_unknown_version(self, runner, project):
        project.add_unit("20240101_000000", "DEFINE TABLE a;")
        with pytest.raises(MigrationNotFoundError):
            runner.get_pending(up_to="20991231_000000")


class TestApply:
    def test_applies_in_order_and_records(self, runner, project, conn):
        project.add_unit("20240102_000000_fields", "DEFINE FIELD name ON TABLE customer TYPE string;")
        project.add_unit("20240101_000000_table", "DEFINE TABLE customer;")

        result = runner.apply_pending()

        assert result.applied == ["20240101_000000", "20240102_000000"]
        assert conn.schema_statements == [
            "DEFINE TABLE customer",
            "DEFINE FIELD name ON TABLE customer TYPE string",
        ]
        assert MigrationLedger(conn).list_applied() == ["20240101_000000", "20240102_000000"]
        assert runner.states == {
            "20240101_000000": UnitState.APPLIED,
            "20240102_000000": UnitState.APPLIED,
        }

    def test_second_run_is_noop(self, runner, project, conn):
        project.add_unit("20240101_000000", "DEFINE TABLE customer;")
        runner.apply_pending()
        executed = list(conn.executed)

        result = runner.apply_pending()
        assert result.applied == []
        assert result.in_sync
        assert result.skipped == ["20240101_000000"]
        assert conn.executed == executed

    def test_one_transaction_per_unit(self, runner, project, conn):
        project.add_unit("20240101_000000", "DEFINE TABLE a;")
        project.add_unit("20240102_000000", "DEFINE TABLE b;")
        runner.apply_pending()
        assert conn.calls == ["begin", "commit", "begin", "commit"]

    def test_failure_rolls_back_unit_and_stops(self, runner, project, conn):
        project.add_unit("20240101_000000", "DEFINE TABLE first;")
        project.add_unit("20240102_000000", FOUR_STATEMENTS)
        project.add_unit("20240103_000000", "DEFINE TABLE third;")
        conn.fail_on = "FIELD age"

        with pytest.raises(ApplyError) as info:
            runner.apply_pending()

        error = info.value
        assert error.version == "20240102_000000"
        assert error.statement_index == 2
        assert "rejected" in str(error)
        assert conn.schema_statements == ["DEFINE TABLE first"]
        assert MigrationLedger(conn).list_applied() == ["20240101_000000"]
        assert runner.states["20240102_000000"] is UnitState.FAILED
        assert runner.states["20240103_000000"] is UnitState.PENDING
        assert conn.calls[-1] == "rollback"

    def test_retry_after_failure_applies_once(self, runner, project, conn):
        project.add_unit("20240101_000000", FOUR_STATEMENTS)
        conn.fail_on = "FIELD age"
        with pytest.raises(ApplyError):
            runner.apply_pending()
        assert MigrationLedger(conn).list_applied() == []

        result = runner.apply_pending()

        assert result.applied == ["20240101_000000"]
        assert len(conn.ledger_rows()) == 1
        assert len(conn.schema_statements) == 4

    def test_connectivity_loss_is_not_an_apply_error(self, runner, project, conn):
        project.add_unit("20240101_000000", "DEFINE TABLE a;")
        conn.down = True
        with pytest.raises(ConnectivityError) as info:
            runner.apply_pending()
        assert not isinstance(info.value, ApplyError)
        assert info.value.retryable

    def test_dry_run_writes_nothing(self, runner, project, conn):
        project.add_unit("20240101_000000", "DEFINE TABLE a;")
        project.add_unit("20240102_000000", "DEFINE TABLE b;")

        result = runner.apply_pending(dry_run=True)

        assert result.dry_run
        assert result.planned == ["20240101_000000", "20240102_000000"]
        assert result.applied == []
        assert conn.executed == []
        assert conn.calls == []
        assert conn.ledger_rows() == []

    def test_validate_order_blocks_stale_units(self, runner, project, conn):
        project.add_unit("20240102_000000", "DEFINE TABLE b;")
        runner.apply_pending()
        project.add_unit("20240101_000000", "DEFINE TABLE a;")

        with pytest.raises(VersionOrderError, match="have not been applied: 20240101_000000"):
            runner.apply_pending(validate_order=True)
        assert MigrationLedger(conn).list_applied() == ["20240102_000000"]

        result = runner.apply_pending()
        assert result.applied == ["20240101_000000"]


class TestNonTransactionalLedger:
    def test_record_happens_after_commit(self, make_connection, project):
        conn = make_connection(transactional_ledger=False)
        project.add_unit("20240101_000000", "DEFINE TABLE a;")
        MigrationRunner(conn, project.settings.migrations_path).apply_pending()
        assert conn.calls == ["begin", "commit"]
        assert len(conn.ledger_rows()) == 1

    def test_gap_is_recovered_by_reapplying(self, make_connection, project):
        conn = make_connection(transactional_ledger=False)
        project.add_unit("20240101_000000", "DEFINE TABLE a;")
        runner = MigrationRunner(conn, project.settings.migrations_path)
        original_insert = conn.insert_row

        def lose_connection(table, row):
            conn.insert_row = original_insert
            raise ConnectivityError("connection reset")

        conn.insert_row = lose_connection
        with pytest.raises(ConnectivityError):
            runner.apply_pending()
        assert conn.schema_statements == ["DEFINE TABLE a"]
        assert conn.ledger_rows() == []

        runner.apply_pending()
        assert conn.schema_statements == ["DEFINE TABLE a", "DEFINE TABLE a"]
        assert len(conn.ledger_rows()) == 1


class TestStatus:
    def test_reports_every_state(self, runner, project, conn):
        project.add_unit("20240101_000000", "DEFINE TABLE a;")
        project.add_unit("20240102_000000", "DEFINE TABLE b;")
        project.add_unit("20240103_000000", "DEFINE TABLE c;")
        ledger = MigrationLedger(conn)
        ledger.record("20240101_000000", runner.units[0].checksum)
        ledger.record("20240102_000000", "edited-since")
        ledger.record("20231231_000000", "gone")

        report = runner.status()

        assert [(u.version, u.state) for u in report.units] == [
            ("20231231_000000", "missing"),
            ("20240101_000000", "applied"),
            ("20240102_000000", "conflict"),
            ("20240103_000000", "pending"),
        ]
        assert not report.healthy
        assert [u.version for u in report.pending] == ["20240103_000000"]
        assert report.applied[0].applied_at is not None

    def test_get_applied(self, runner, project):
        project.add_unit("20240101_000000", "DEFINE TABLE a;")
        runner.apply_pending()
        [entry] = runner.get_applied()
        assert entry.version == "20240101_000000"
        assert entry.checksum == runner.units[0].checksum
