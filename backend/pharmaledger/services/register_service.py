"""
Cash Register Ledger Service

WHY: Every branch counts its cash drawer per session. Sales, expenses and
nursing services move the running totals of the open session so that the
closing count can be compared against what the drawer should hold.

DESIGN PRINCIPLES:
- One open session per branch (checked in the transaction and backed by a
  partial unique index)
- expected_balance = opening_balance + total_income - total_expense, kept
  in the same transaction as the movement that changes it
- Entries are append-only; reversals are negative entries
- Sessions are immutable once closed
"""

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import DomainError
from ..models import Branch, CashRegisterSummary, CashRegisterEntry
from ..models.registers import (
    REGISTER_STATUS_OPEN,
    REGISTER_STATUS_CLOSED,
    ENTRY_TYPE_SALE,
    ENTRY_TYPE_EXPENSE,
    ENTRY_TYPE_INCOME,
    ENTRY_TYPE_INITIAL,
    ENTRY_TYPES,
)
from ..validation import validate_amount_cents
from pharmaledger.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .permission_service import Actor, require_capability, resolve_branch_id
from . import live_query_service


logger = logging.getLogger("pharmaledger.registers")

LEDGER_KIND_INCOME = "income"
LEDGER_KIND_EXPENSE = "expense"

OPENING_CONCEPT = "Apertura de caja"


class RegisterError(DomainError):
    """Raised for register operation errors."""
    pass


# =============================================================================
# LEDGER PRIMITIVES (run inside the caller's transaction)
# =============================================================================

def _open_summary_query(branch_id: int):
    return db.session.query(CashRegisterSummary).filter_by(
        branch_id=branch_id,
        status=REGISTER_STATUS_OPEN,
    )


def adjust_ledger(branch_id: int, delta_cents: int, kind: str) -> CashRegisterSummary | None:
    """
    Move the running totals of the branch's open session.

    kind="income": total_income += delta, expected += delta
    kind="expense": total_expense += delta, expected -= delta

    Negative deltas reverse earlier movements. Silent no-op (returns None)
    when the branch has no open session.
    """
    if kind not in (LEDGER_KIND_INCOME, LEDGER_KIND_EXPENSE):
        raise ValueError(f"Unknown ledger kind: {kind}")

    summary = lock_for_update(_open_summary_query(branch_id)).first()
    if summary is None:
        return None

    if kind == LEDGER_KIND_INCOME:
        summary.total_income_cents += delta_cents
        summary.expected_balance_cents += delta_cents
    else:
        summary.total_expense_cents += delta_cents
        summary.expected_balance_cents -= delta_cents

    return summary


def append_entry(
    branch_id: int,
    entry_type: str,
    amount_cents: int,
    concept: str,
    actor: Actor,
    *,
    summary: CashRegisterSummary | None = None,
    sale_id: int | None = None,
    expense_id: int | None = None,
    nursing_record_id: int | None = None,
) -> CashRegisterEntry:
    """Write one entry bound to `summary`, or to the branch's open session."""
    if entry_type not in ENTRY_TYPES:
        raise ValueError(f"Unknown entry type: {entry_type}")

    if summary is None:
        summary = _open_summary_query(branch_id).first()

    entry = CashRegisterEntry(
        branch_id=branch_id,
        summary_id=summary.id if summary else None,
        entry_type=entry_type,
        amount_cents=amount_cents,
        concept=concept,
        user_uid=actor.uid,
        user_name=actor.display_name,
        timestamp=utcnow(),
        sale_id=sale_id,
        expense_id=expense_id,
        nursing_record_id=nursing_record_id,
    )
    db.session.add(entry)
    return entry


def record_movement(
    branch_id: int,
    *,
    kind: str,
    entry_type: str,
    amount_cents: int,
    concept: str,
    actor: Actor,
    **links,
) -> CashRegisterEntry:
    """Ledger adjustment plus its entry, bound to the same session."""
    summary = adjust_ledger(branch_id, amount_cents, kind)
    return append_entry(
        branch_id,
        entry_type,
        amount_cents,
        concept,
        actor,
        summary=summary,
        **links,
    )


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

def open_register(opening_balance_cents: int, actor: Actor, branch_id: int | None = None) -> CashRegisterSummary:
    """
    Open a cash register session for a branch.

    Raises:
        RegisterError: branch missing, or a session is already open
    """
    opening = validate_amount_cents("opening_balance_cents", opening_balance_cents, allow_zero=True)
    branch_id = resolve_branch_id(actor, branch_id)
    require_capability(actor, "OPEN_REGISTER", branch_id)

    def _op():
        branch = db.session.query(Branch).filter_by(id=branch_id).first()
        if not branch:
            raise RegisterError("Branch not found", not_found=True)

        existing = _open_summary_query(branch_id).first()
        if existing:
            raise RegisterError(
                "Cash register is already open for this branch",
                details={"summary_id": existing.id},
            )

        summary = CashRegisterSummary(
            branch_id=branch_id,
            status=REGISTER_STATUS_OPEN,
            opening_balance_cents=opening,
            total_income_cents=0,
            total_expense_cents=0,
            expected_balance_cents=opening,
            opened_by_uid=actor.uid,
            opened_by_name=actor.display_name,
            opened_at=utcnow(),
        )
        db.session.add(summary)
        db.session.flush()

        append_entry(branch_id, ENTRY_TYPE_INITIAL, opening, OPENING_CONCEPT, actor, summary=summary)

        db.session.commit()
        return summary

    try:
        summary = run_with_retry(_op)
    except IntegrityError as exc:
        # Lost the race against a concurrent open on the same branch
        raise RegisterError("Cash register is already open for this branch") from exc

    logger.info("Register opened: summary=%s branch=%s by %s", summary.id, branch_id, actor.uid)
    return summary


def close_register(
    summary_id: int,
    actual_balance_cents: int,
    actor: Actor,
    branch_id: int | None = None,
    notes: str | None = None,
) -> CashRegisterSummary:
    """
    Close a session with the counted cash.

    difference = actual - expected (negative means the drawer is short).
    Closing a session opened by someone else needs CLOSE_ANY_REGISTER.
    """
    actual = validate_amount_cents("actual_balance_cents", actual_balance_cents, allow_zero=True)

    def _op():
        summary = lock_for_update(
            db.session.query(CashRegisterSummary).filter_by(id=summary_id)
        ).first()
        if not summary:
            raise RegisterError("Cash register session not found", not_found=True)

        if branch_id is not None and summary.branch_id != branch_id:
            raise RegisterError("Cash register session belongs to another branch")

        require_capability(actor, "CLOSE_REGISTER", summary.branch_id)
        if summary.opened_by_uid != actor.uid:
            require_capability(actor, "CLOSE_ANY_REGISTER", summary.branch_id)

        if summary.status != REGISTER_STATUS_OPEN:
            raise RegisterError("Cash register session is already closed")

        summary.actual_balance_cents = actual
        summary.difference_cents = actual - summary.expected_balance_cents
        summary.status = REGISTER_STATUS_CLOSED
        summary.closed_by_uid = actor.uid
        summary.closed_by_name = actor.display_name
        summary.closed_at = utcnow()
        if notes:
            summary.notes = notes.strip()

        db.session.commit()
        return summary

    summary = run_with_retry(_op)
    logger.info(
        "Register closed: summary=%s expected=%s actual=%s difference=%s",
        summary.id, summary.expected_balance_cents, summary.actual_balance_cents, summary.difference_cents,
    )
    return summary


# =============================================================================
# QUERIES
# =============================================================================

def get_open_summary(branch_id: int) -> CashRegisterSummary | None:
    return _open_summary_query(branch_id).first()


def get_summary(summary_id: int) -> CashRegisterSummary | None:
    return db.session.query(CashRegisterSummary).filter_by(id=summary_id).first()


def list_summaries(branch_id: int | None = None, status: str | None = None) -> list[CashRegisterSummary]:
    query = db.session.query(CashRegisterSummary)
    if branch_id is not None:
        query = query.filter_by(branch_id=branch_id)
    if status:
        query = query.filter_by(status=status.upper())
    return query.order_by(CashRegisterSummary.opened_at.desc(), CashRegisterSummary.id.desc()).all()


def _entries_query(session, summary_id: int):
    return session.query(CashRegisterEntry).filter_by(summary_id=summary_id).order_by(
        CashRegisterEntry.timestamp.desc(),
        CashRegisterEntry.id.desc(),
    )


def list_entries(summary_id: int) -> list[CashRegisterEntry]:
    """Entries of one session, newest first."""
    return _entries_query(db.session, summary_id).all()


def reconcile_summary(summary_id: int) -> dict:
    """
    Recompute a session's totals from its entry log.

    Returns both the stored and recomputed figures and whether they match.
    A mismatch means a movement bypassed the ledger primitives.
    """
    summary = get_summary(summary_id)
    if not summary:
        raise RegisterError("Cash register session not found", not_found=True)

    opening = 0
    income = 0
    expense = 0
    for entry in list_entries(summary_id):
        if entry.entry_type == ENTRY_TYPE_INITIAL:
            opening += entry.amount_cents
        elif entry.entry_type in (ENTRY_TYPE_SALE, ENTRY_TYPE_INCOME):
            income += entry.amount_cents
        elif entry.entry_type == ENTRY_TYPE_EXPENSE:
            expense += entry.amount_cents

    computed = {
        "opening_balance_cents": opening,
        "total_income_cents": income,
        "total_expense_cents": expense,
        "expected_balance_cents": opening + income - expense,
    }
    stored = {key: getattr(summary, key) for key in computed}

    result = {
        "summary_id": summary.id,
        "stored": stored,
        "computed": computed,
        "matches": stored == computed,
    }
    if not result["matches"]:
        logger.warning("Register summary %s does not match its entries: %s", summary.id, result)
    return result


# =============================================================================
# LIVE QUERIES
# =============================================================================

def on_current_cash_register_summary_update(callback, branch_id: int | None = None):
    """
    Live open session of a branch (or the most recently opened session of
    any branch when branch_id is None). Delivers a dict or None.
    """
    def _fetch(session):
        query = session.query(CashRegisterSummary).filter_by(status=REGISTER_STATUS_OPEN)
        if branch_id is not None:
            query = query.filter_by(branch_id=branch_id)
        summary = query.order_by(CashRegisterSummary.opened_at.desc(), CashRegisterSummary.id.desc()).first()
        return summary.to_dict() if summary else None

    return live_query_service.subscribe(("cash_register_summaries",), _fetch, callback)


def on_cash_register_entries_update(callback, branch_id: int | None = None):
    """
    Live entries of the branch's open session, newest first. With
    branch_id None, follows the most recently opened session of any branch.
    """
    def _fetch(session):
        query = session.query(CashRegisterSummary).filter_by(status=REGISTER_STATUS_OPEN)
        if branch_id is not None:
            query = query.filter_by(branch_id=branch_id)
        summary = query.order_by(CashRegisterSummary.opened_at.desc(), CashRegisterSummary.id.desc()).first()
        if not summary:
            return []
        return [e.to_dict() for e in _entries_query(session, summary.id).all()]

    return live_query_service.subscribe(
        ("cash_register_entries", "cash_register_summaries"),
        _fetch,
        callback,
    )
