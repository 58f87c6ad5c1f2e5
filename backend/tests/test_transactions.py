import sqlite3

import pytest
from sqlalchemy.exc import OperationalError

from backend.services.errors import InsufficientStock, ServiceUnavailable
from backend.services.transactions import is_transient, run_in_transaction


class RecordingSession:
    """Ne garde que les commit / rollback demandés par run_in_transaction."""

    def __init__(self):
        self.calls = []

    def commit(self):
        self.calls.append("commit")

    def rollback(self):
        self.calls.append("rollback")


def _locked():
    return OperationalError("UPDATE products ...", {}, sqlite3.OperationalError("database is locked"))


def test_commit_on_success():
    db = RecordingSession()
    assert run_in_transaction(db, lambda s: 42, operation="test") == 42
    assert db.calls == ["commit"]


def test_domain_error_rolls_back_without_retry():
    db = RecordingSession()
    attempts = []

    def work(s):
        attempts.append(1)
        raise InsufficientStock(1, available=0, requested=1)

    with pytest.raises(InsufficientStock):
        run_in_transaction(db, work, operation="test", max_retries=3, backoff_seconds=0)

    assert len(attempts) == 1
    assert db.calls == ["rollback"]


def test_transient_error_is_retried_then_succeeds():
    db = RecordingSession()
    attempts = []

    def work(s):
        attempts.append(1)
        if len(attempts) < 3:
            raise _locked()
        return "ok"

    assert run_in_transaction(db, work, operation="test", max_retries=3, backoff_seconds=0) == "ok"
    assert db.calls == ["rollback", "rollback", "commit"]


def test_retries_exhausted_maps_to_service_unavailable():
    db = RecordingSession()
    attempts = []

    def work(s):
        attempts.append(1)
        raise _locked()

    with pytest.raises(ServiceUnavailable) as exc:
        run_in_transaction(db, work, operation="create_sale", max_retries=2, backoff_seconds=0)

    assert len(attempts) == 3
    assert exc.value.code == "SERVICE_UNAVAILABLE"
    assert exc.value.http_status == 503


def test_non_transient_operational_error_propagates():
    db = RecordingSession()
    err = OperationalError("SELECT 1", {}, sqlite3.OperationalError("no such table: sales"))

    def work(s):
        raise err

    with pytest.raises(OperationalError):
        run_in_transaction(db, work, operation="test", max_retries=3, backoff_seconds=0)
    assert db.calls == ["rollback"]


def test_is_transient_by_sqlstate():
    class PgError(Exception):
        sqlstate = "40P01"

    assert is_transient(OperationalError("UPDATE", {}, PgError("deadlock detected")))
    assert is_transient(_locked())
    assert not is_transient(OperationalError("SELECT", {}, sqlite3.OperationalError("disk I/O error")))
