"""
Expense Service

Each expense is paid out of the branch's cash drawer: creation writes an
"expense" entry and raises total_expense of the open session; deletion
writes the negative entry and lowers it again.

Expenses created by supplier purchases carry purchase_id and are managed
through the purchase (see supplier_service).
"""

import logging

from ..extensions import db
from ..errors import DomainError
from ..models import Branch, Expense
from ..models.registers import ENTRY_TYPE_EXPENSE
from ..validation import ModelValidationPolicy, require_text, validate_amount_cents, validate_payload
from pharmaledger.time_utils import utcnow
from .concurrency import bulk_delete, lock_for_update, run_with_retry
from .permission_service import Actor, require_capability, resolve_branch_id
from .register_service import LEDGER_KIND_EXPENSE, record_movement
from . import live_query_service


logger = logging.getLogger("pharmaledger.expenses")

EXPENSE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"concept", "amount_cents", "category"},
)


class ExpenseError(DomainError):
    """Raised for expense operation errors."""
    pass


def create_expense_in_transaction(
    *,
    branch_id: int,
    concept: str,
    amount_cents: int,
    category: str,
    actor: Actor,
    purchase_id: int | None = None,
    entry_concept: str | None = None,
) -> Expense:
    """
    Expense + ledger entry + adjustment inside the caller's transaction.

    Does not commit.
    """
    expense = Expense(
        branch_id=branch_id,
        concept=concept,
        amount_cents=amount_cents,
        category=category,
        purchase_id=purchase_id,
        user_uid=actor.uid,
        user_name=actor.display_name,
        date=utcnow(),
    )
    db.session.add(expense)
    db.session.flush()

    record_movement(
        branch_id,
        kind=LEDGER_KIND_EXPENSE,
        entry_type=ENTRY_TYPE_EXPENSE,
        amount_cents=amount_cents,
        concept=entry_concept or f"Gasto: {concept}",
        actor=actor,
        expense_id=expense.id,
    )
    return expense


def reverse_expense_in_transaction(expense: Expense, actor: Actor) -> None:
    """Negative entry, ledger reversal and row deletion. Does not commit."""
    record_movement(
        expense.branch_id,
        kind=LEDGER_KIND_EXPENSE,
        entry_type=ENTRY_TYPE_EXPENSE,
        amount_cents=-expense.amount_cents,
        concept=f"Anulación Gasto: {expense.concept}",
        actor=actor,
        expense_id=expense.id,
    )
    db.session.delete(expense)


def add_expense(branch_id: int | None, concept: str, amount_cents: int, category: str, actor: Actor) -> Expense:
    concept = require_text("concept", concept)
    category = require_text("category", category)
    amount = validate_amount_cents("amount_cents", amount_cents)
    branch_id = resolve_branch_id(actor, branch_id)
    require_capability(actor, "MANAGE_EXPENSES", branch_id)

    def _op():
        if not db.session.query(Branch).filter_by(id=branch_id).first():
            raise ExpenseError("Branch not found", not_found=True)

        expense = create_expense_in_transaction(
            branch_id=branch_id,
            concept=concept,
            amount_cents=amount,
            category=category,
            actor=actor,
        )
        db.session.commit()
        return expense

    expense = run_with_retry(_op)
    logger.info("Expense %s at branch %s: %s cents by %s", expense.id, branch_id, amount, actor.uid)
    return expense


def update_expense(expense_id: int, patch: dict, actor: Actor) -> Expense:
    """
    Edit concept, category or amount.

    An amount change books the difference on the ledger with an adjustment
    entry. The original date is kept.
    """
    clean = validate_payload(model=Expense, payload=patch, policy=EXPENSE_UPDATE_POLICY, partial=True)
    if "amount_cents" in clean:
        clean["amount_cents"] = validate_amount_cents("amount_cents", clean["amount_cents"])

    def _op():
        expense = lock_for_update(db.session.query(Expense).filter_by(id=expense_id)).first()
        if not expense:
            raise ExpenseError("Expense not found", not_found=True)

        require_capability(actor, "MANAGE_EXPENSES", expense.branch_id)

        new_amount = clean.get("amount_cents", expense.amount_cents)
        difference = new_amount - expense.amount_cents
        if difference and expense.purchase_id is not None:
            raise ExpenseError(
                "The amount of a purchase expense is managed by its purchase",
                details={"purchase_id": expense.purchase_id},
            )

        for key, value in clean.items():
            setattr(expense, key, value)

        if difference:
            record_movement(
                expense.branch_id,
                kind=LEDGER_KIND_EXPENSE,
                entry_type=ENTRY_TYPE_EXPENSE,
                amount_cents=difference,
                concept=f"Ajuste de gasto: {expense.concept}",
                actor=actor,
                expense_id=expense.id,
            )

        db.session.commit()
        return expense

    return run_with_retry(_op)


def delete_expense(expense_id: int, actor: Actor) -> None:
    """Delete and reverse. Purchase expenses are removed by deleting the purchase."""
    def _op():
        expense = lock_for_update(db.session.query(Expense).filter_by(id=expense_id)).first()
        if not expense:
            raise ExpenseError("Expense not found", not_found=True)

        require_capability(actor, "MANAGE_EXPENSES", expense.branch_id)

        if expense.purchase_id is not None:
            raise ExpenseError(
                "This expense belongs to a supplier purchase; delete the purchase instead",
                details={"purchase_id": expense.purchase_id},
            )

        reverse_expense_in_transaction(expense, actor)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Expense %s deleted by %s", expense_id, actor.uid)


def delete_expenses(expense_ids: list[int], actor: Actor):
    return bulk_delete(expense_ids, lambda expense_id: delete_expense(expense_id, actor), label="expense")


def _expenses_query(session, branch_id=None, start=None, end=None, category=None):
    query = session.query(Expense)
    if branch_id is not None:
        query = query.filter(Expense.branch_id == branch_id)
    if start is not None:
        query = query.filter(Expense.date >= start)
    if end is not None:
        query = query.filter(Expense.date <= end)
    if category:
        query = query.filter(Expense.category == category)
    return query.order_by(Expense.date.desc(), Expense.id.desc())


def list_expenses(branch_id=None, start=None, end=None, category=None) -> list[Expense]:
    return _expenses_query(db.session, branch_id, start, end, category).all()


def get_expense(expense_id: int) -> Expense | None:
    return db.session.query(Expense).filter_by(id=expense_id).first()


def on_expenses_update(callback, branch_id: int | None = None):
    def _fetch(session):
        return [e.to_dict() for e in _expenses_query(session, branch_id).all()]

    return live_query_service.subscribe(("expenses",), _fetch, callback)
