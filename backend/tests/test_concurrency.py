"""
Transaction retry tests.

Stale version writes and lock errors are retried with exponential backoff;
anything else propagates on the first failure.
"""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from pharmaledger.extensions import db
from pharmaledger.models import Product
from pharmaledger.services import concurrency
from pharmaledger.services.concurrency import ConcurrencyConflictError, bulk_delete, run_with_retry
from pharmaledger.validation import ValidationError


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []
    monkeypatch.setattr(concurrency.time, "sleep", recorded.append)
    return recorded


def _bump_version(product_id: int) -> None:
    db.session.execute(
        text("UPDATE products SET version_id = version_id + 1 WHERE id = :id"),
        {"id": product_id},
    )


def test_stale_write_is_retried(product, sleeps):
    attempts = []

    def _op():
        attempts.append(1)
        row = db.session.query(Product).filter_by(id=product["id"]).one()
        if len(attempts) == 1:
            # Another writer got there first
            _bump_version(row.id)
        row.min_stock = 7
        db.session.commit()
        return row

    result = run_with_retry(_op, attempts=3, backoff_base=0.5)

    assert len(attempts) == 2
    assert sleeps == [0.5]
    assert result.min_stock == 7


def test_retries_exhausted(product, sleeps):
    def _op():
        row = db.session.query(Product).filter_by(id=product["id"]).one()
        _bump_version(row.id)
        row.min_stock = 9
        db.session.commit()

    with pytest.raises(ConcurrencyConflictError) as exc_info:
        run_with_retry(_op, attempts=3, backoff_base=0.1)

    assert exc_info.value.retryable is True
    assert exc_info.value.details == {"attempts": 3}
    assert sleeps == [0.1, 0.2]
    assert db.session.query(Product).filter_by(id=product["id"]).one().min_stock == 2


def test_lock_errors_are_retried(sleeps):
    calls = []

    def _op():
        calls.append(1)
        if len(calls) < 3:
            raise OperationalError("UPDATE ...", {}, Exception("database is locked"))
        return "done"

    assert run_with_retry(_op, attempts=3, backoff_base=0) == "done"
    assert len(calls) == 3


def test_other_errors_propagate_immediately(sleeps):
    calls = []

    def _op():
        calls.append(1)
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        run_with_retry(_op)
    assert calls == [1]
    assert sleeps == []


def test_bulk_delete_collects_failures():
    def delete_one(item_id):
        if item_id == 2:
            raise ValueError("not deletable")

    result = bulk_delete([1, 2, 3], delete_one, label="thing")

    assert result.succeeded == [1, 3]
    assert result.failed == [{"id": 2, "error": "not deletable"}]
    assert result.summary == "2 of 3 deleted"


def test_bulk_delete_needs_a_list():
    with pytest.raises(ValidationError):
        bulk_delete("1,2", lambda item_id: None, label="thing")
