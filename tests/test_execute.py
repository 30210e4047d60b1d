"""Tests for the blocking execution primitives against the fake driver."""

import pytest

from dbexec import execute as db
from dbexec.db.backend import CommandBehavior
from dbexec.params import SqlType
from dbexec.unit import new_command, new_command_for_transaction
from tests.fakes import DriverError, FakeConnection


class TestExecute:
    def test_executes_once_and_disposes(self, fake_conn):
        unit = new_command("DELETE FROM t", fake_conn)
        assert db.execute(unit) is None
        assert fake_conn.executions == [("DELETE FROM t", {})]
        assert fake_conn.log == ["open", "execute", "dispose"]
        assert unit.command.disposed is True

    def test_opens_connection_at_most_once(self, fake_conn):
        db.execute(new_command("SELECT 1", fake_conn))
        db.execute(new_command("SELECT 2", fake_conn))
        assert fake_conn.open_calls == 1

    def test_leaves_connection_open(self, fake_conn):
        db.execute(new_command("SELECT 1", fake_conn))
        assert fake_conn.is_open is True

    def test_open_failure_propagates(self):
        error = DriverError("cannot connect")
        conn = FakeConnection(open_error=error)
        with pytest.raises(DriverError) as exc_info:
            db.execute(new_command("SELECT 1", conn))
        assert exc_info.value is error
        assert conn.executions == []

    def test_failure_propagates_without_disposal(self):
        error = DriverError("constraint violated")
        conn = FakeConnection(fail_at=0, error=error)
        unit = new_command("INSERT INTO t VALUES (1)", conn)
        with pytest.raises(DriverError) as exc_info:
            db.execute(unit)
        assert exc_info.value is error
        assert unit.command.disposed is False
        assert unit.consumed is True


class TestExecuteMany:
    def test_runs_one_cycle_per_parameter_set_in_order(self, fake_conn):
        unit = new_command("INSERT INTO t(x) VALUES(@x)", fake_conn)
        db.execute_many(unit, [{"x": SqlType.int32(1)}, {"x": SqlType.int32(2)}, {"x": 3}])
        assert [bindings for _, bindings in fake_conn.executions] == [
            {"x": 1},
            {"x": 2},
            {"x": 3},
        ]
        assert len(fake_conn.commands) == 1
        assert fake_conn.log == ["open", "execute", "execute", "execute", "dispose"]

    def test_failure_stops_remaining_sets(self):
        error = DriverError("cycle 2 failed")
        conn = FakeConnection(fail_at=1, error=error)
        unit = new_command("INSERT INTO t(x) VALUES(@x)", conn)
        with pytest.raises(DriverError) as exc_info:
            db.execute_many(unit, [{"x": 1}, {"x": 2}, {"x": 3}])
        assert exc_info.value is error
        assert [bindings for _, bindings in conn.executions] == [{"x": 1}, {"x": 2}]

    def test_empty_parameter_sets(self, fake_conn):
        db.execute_many(new_command("INSERT INTO t(x) VALUES(@x)", fake_conn), [])
        assert fake_conn.executions == []
        assert fake_conn.log == ["open", "dispose"]

    def test_raw(self, fake_conn):
        unit = new_command("INSERT INTO t(x) VALUES(@x)", fake_conn)
        db.execute_many_raw(unit, [[("x", "a")], [("@x", "b")]])
        assert [bindings for _, bindings in fake_conn.executions] == [{"x": "a"}, {"x": "b"}]


class TestScalar:
    def test_converts_value(self):
        conn = FakeConnection(scalar_value="41")
        assert db.scalar(new_command("SELECT COUNT(*) FROM t", conn), lambda v: int(v) + 1) == 42
        assert conn.log == ["open", "execute", "dispose"]

    def test_conversion_failure_propagates(self):
        conn = FakeConnection(scalar_value="not a number")
        with pytest.raises(ValueError):
            db.scalar(new_command("SELECT 'x'", conn), int)


class TestRead:
    def test_applies_fn_and_closes_reader(self):
        conn = FakeConnection(rows=[(1,), (2,)])
        result = db.read(new_command("SELECT x FROM t", conn), lambda rd: rd.field_count)
        assert result == 1
        assert conn.readers[0].is_closed is True
        assert conn.log == ["open", "execute", "dispose"]

    def test_reader_closed_when_fn_raises(self):
        conn = FakeConnection(rows=[(1,)])

        def explode(reader):
            raise LookupError("mapping failed")

        with pytest.raises(LookupError):
            db.read(new_command("SELECT x FROM t", conn), explode)
        assert conn.readers[0].is_closed is True

    def test_passes_command_behavior(self, fake_conn):
        unit = new_command("SELECT x FROM t", fake_conn).set_command_behavior(
            CommandBehavior.SINGLE_ROW
        )
        db.read(unit, lambda rd: None)
        assert unit.command.behaviors == [CommandBehavior.SINGLE_ROW]


class TestQuery:
    def test_maps_every_row_in_order(self):
        conn = FakeConnection(columns=("x", "label"), rows=[(1, "a"), (2, "b"), (3, "c")])
        rows = db.query(new_command("SELECT x, label FROM t", conn), lambda rd: (rd["x"], rd[1]))
        assert rows == [(1, "a"), (2, "b"), (3, "c")]

    def test_empty_result(self, fake_conn):
        assert db.query(new_command("SELECT x FROM t", fake_conn), lambda rd: rd["x"]) == []


class TestQuerySingle:
    def test_returns_first_row(self):
        conn = FakeConnection(rows=[(10,), (20,)])
        assert db.query_single(new_command("SELECT x FROM t", conn), lambda rd: rd["x"]) == 10
        assert conn.readers[0].read_calls == 1

    def test_returns_none_for_no_rows(self, fake_conn):
        unit = new_command("SELECT x FROM t", fake_conn)
        assert db.query_single(unit, lambda rd: rd["x"]) is None
        assert fake_conn.readers[0].read_calls == 1


class TestBatch:
    def test_commits_and_returns_result(self, fake_conn):
        def work(transaction):
            db.execute(new_command_for_transaction("INSERT INTO t(x) VALUES(1)", transaction))
            return "done"

        assert db.batch(work, fake_conn) == "done"
        transaction = fake_conn.transactions[0]
        assert transaction.committed is True
        assert transaction.rolled_back is False
        assert transaction.closed is True
        assert fake_conn.log == [
            "open",
            "begin",
            "execute",
            "dispose",
            "commit",
            "close_transaction",
        ]

    def test_rolls_back_and_reraises_original(self):
        error = DriverError("unique constraint")
        conn = FakeConnection(fail_at=1, error=error)

        def work(transaction):
            db.execute(new_command_for_transaction("INSERT 1", transaction))
            db.execute(new_command_for_transaction("INSERT 2", transaction))

        with pytest.raises(DriverError) as exc_info:
            db.batch(work, conn)
        assert exc_info.value is error
        transaction = conn.transactions[0]
        assert transaction.committed is False
        assert transaction.rolled_back is True
        assert transaction.closed is True

    def test_non_driver_failures_also_roll_back(self, fake_conn):
        def work(transaction):
            raise KeyError("caller bug")

        with pytest.raises(KeyError):
            db.batch(work, fake_conn)
        assert fake_conn.transactions[0].rolled_back is True

    def test_commit_failure_rolls_back(self):
        error = DriverError("commit failed")
        conn = FakeConnection(commit_error=error)
        with pytest.raises(DriverError) as exc_info:
            db.batch(lambda transaction: None, conn)
        assert exc_info.value is error
        assert conn.log == ["open", "begin", "commit", "rollback", "close_transaction"]

    def test_rollback_failure_keeps_original_error(self, caplog):
        original = DriverError("work failed")
        conn = FakeConnection(rollback_error=DriverError("rollback failed"))

        def work(transaction):
            raise original

        with pytest.raises(DriverError) as exc_info:
            db.batch(work, conn)
        assert exc_info.value is original
        assert any("Rollback also failed" in note for note in exc_info.value.__notes__)
        assert "Rollback of" in caplog.text

    def test_opens_connection_if_needed(self, fake_conn):
        fake_conn.is_open = True
        db.batch(lambda transaction: None, fake_conn)
        assert fake_conn.open_calls == 0
