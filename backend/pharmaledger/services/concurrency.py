# Overview: Transaction helpers shared by every mutating service operation.

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ValidationError


logger = logging.getLogger("pharmaledger.concurrency")


class ConcurrencyConflictError(Exception):
    """
    Raised when a transaction kept colliding with concurrent writers.

    The caller may simply try again; nothing was written.
    """
    retryable = True

    def __init__(self, message: str = "Concurrent update conflict, please retry", details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass
class BulkDeleteResult:
    """Per-item outcome of a bulk delete (each item is its own transaction)."""
    requested: int = 0
    succeeded: list[int] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    @property
    def summary(self) -> str:
        return f"{len(self.succeeded)} of {self.requested} deleted"

    def to_dict(self) -> dict:
        return {
            "succeeded": list(self.succeeded),
            "failed": list(self.failed),
            "summary": self.summary,
        }


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Version columns still catch lost updates there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation as one transaction, retrying on concurrency failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) with exponential backoff. Any other
    exception rolls the session back and propagates unchanged.

    Raises ConcurrencyConflictError once attempts are exhausted.
    """
    if attempts is None:
        attempts = current_app.config.get("TX_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TX_RETRY_BACKOFF_SECONDS", 0.1)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            logger.info("Transaction conflict (attempt %d/%d): %s", attempt + 1, attempts, exc)
            if attempt < attempts - 1:
                time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

    logger.warning("Giving up after %d attempts: %s", attempts, last_exc)
    raise ConcurrencyConflictError(details={"attempts": attempts}) from last_exc


def bulk_delete(ids, delete_one, *, label: str) -> BulkDeleteResult:
    """
    Run delete_one(id) for every id, each in its own transaction.

    One failing item never rolls back the others; failures are logged and
    reported per item.
    """
    if not isinstance(ids, (list, tuple)):
        raise ValidationError("ids must be a list")
    result = BulkDeleteResult(requested=len(ids))
    for item_id in ids:
        try:
            delete_one(item_id)
        except Exception as exc:
            logger.warning("Bulk delete of %s %s failed: %s", label, item_id, exc)
            result.failed.append({"id": item_id, "error": str(exc)})
        else:
            result.succeeded.append(item_id)
    logger.info("Bulk delete %s: %s", label, result.summary)
    return result
