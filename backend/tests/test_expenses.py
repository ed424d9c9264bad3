"""
Expense and nursing service tests.

Both move the open register: expenses raise total_expense, nursing
services raise total_income. Deletion writes the negative entry.
"""

import pytest

from pharmaledger.extensions import db
from pharmaledger.models import CashRegisterEntry, Expense, NursingRecord
from pharmaledger.services import expense_service, nursing_service, register_service
from pharmaledger.services.expense_service import ExpenseError
from pharmaledger.services.nursing_service import NursingError
from pharmaledger.services.permission_service import PermissionDeniedError
from pharmaledger.validation import ValidationError


# =============================================================================
# EXPENSES
# =============================================================================

def test_expense_books_entry(cashier, branch):
    summary = register_service.open_register(5000, cashier)

    expense = expense_service.add_expense(None, "Papelería", 1500, "Insumos", cashier)

    assert expense.branch_id == branch.id
    entry = db.session.query(CashRegisterEntry).filter_by(expense_id=expense.id).one()
    assert entry.entry_type == "expense"
    assert entry.amount_cents == 1500
    assert entry.concept == "Gasto: Papelería"

    db.session.refresh(summary)
    assert summary.total_expense_cents == 1500
    assert summary.expected_balance_cents == 3500


@pytest.mark.parametrize("amount", [0, -100, "abc"])
def test_expense_amount_must_be_positive(cashier, branch, amount):
    with pytest.raises(ValidationError):
        expense_service.add_expense(branch.id, "Papelería", amount, "Insumos", cashier)
    assert db.session.query(Expense).count() == 0


def test_expense_amount_change_books_adjustment(cashier, branch):
    summary = register_service.open_register(5000, cashier)
    expense = expense_service.add_expense(branch.id, "Papelería", 1500, "Insumos", cashier)

    expense_service.update_expense(expense.id, {"amount_cents": 1000, "concept": "Papelería oficina"}, cashier)

    db.session.refresh(summary)
    assert summary.total_expense_cents == 1000
    assert summary.expected_balance_cents == 4000

    adjustment = (
        db.session.query(CashRegisterEntry)
        .filter_by(expense_id=expense.id)
        .order_by(CashRegisterEntry.id.desc())
        .first()
    )
    assert adjustment.amount_cents == -500
    assert adjustment.concept == "Ajuste de gasto: Papelería oficina"
    assert register_service.reconcile_summary(summary.id)["matches"] is True


def test_delete_expense_reverses(cashier, branch):
    summary = register_service.open_register(5000, cashier)
    expense = expense_service.add_expense(branch.id, "Agua", 700, "Servicios", cashier)

    expense_service.delete_expense(expense.id, cashier)

    assert expense_service.get_expense(expense.id) is None
    db.session.refresh(summary)
    assert summary.total_expense_cents == 0
    assert summary.expected_balance_cents == 5000

    concepts = [e.concept for e in register_service.list_entries(summary.id)]
    assert "Anulación Gasto: Agua" in concepts


def test_delete_missing_expense(cashier, branch):
    with pytest.raises(ExpenseError) as exc_info:
        expense_service.delete_expense(12345, cashier)
    assert exc_info.value.not_found is True


def test_warehouse_cannot_add_expense(warehouse, branch):
    with pytest.raises(PermissionDeniedError):
        expense_service.add_expense(branch.id, "Cajas", 100, "Insumos", warehouse)


def test_bulk_delete_expenses(cashier, branch):
    first = expense_service.add_expense(branch.id, "Agua", 100, "Servicios", cashier)
    second = expense_service.add_expense(branch.id, "Luz", 200, "Servicios", cashier)

    result = expense_service.delete_expenses([first.id, second.id], cashier)

    assert result.to_dict()["summary"] == "2 of 2 deleted"
    assert db.session.query(Expense).count() == 0


def test_list_expenses_by_category(cashier, branch):
    expense_service.add_expense(branch.id, "Agua", 100, "Servicios", cashier)
    expense_service.add_expense(branch.id, "Gasas", 200, "Insumos", cashier)

    assert [e.concept for e in expense_service.list_expenses(branch.id, category="Insumos")] == ["Gasas"]


# =============================================================================
# NURSING SERVICES
# =============================================================================

def test_nursing_record_books_income(cashier, branch):
    summary = register_service.open_register(0, cashier)

    record = nursing_service.create_nursing_record(None, "Inyectable", "María López", 8000, cashier)

    entry = db.session.query(CashRegisterEntry).filter_by(nursing_record_id=record.id).one()
    assert entry.entry_type == "income"
    assert entry.concept == "Servicio de enfermería: Inyectable - María López"

    db.session.refresh(summary)
    assert summary.total_income_cents == 8000
    assert summary.expected_balance_cents == 8000


def test_unknown_service_type_rejected(cashier, branch):
    with pytest.raises(ValidationError):
        nursing_service.create_nursing_record(branch.id, "Cirugía", "María López", 8000, cashier)


def test_nursing_cost_is_fixed(cashier, branch):
    record = nursing_service.create_nursing_record(branch.id, "Curación", "Juan Pérez", 5000, cashier)

    with pytest.raises(ValidationError):
        nursing_service.update_nursing_record(record.id, {"cost_cents": 100}, cashier)

    updated = nursing_service.update_nursing_record(record.id, {"notes": "Control en 3 días"}, cashier)
    assert updated.notes == "Control en 3 días"
    assert updated.cost_cents == 5000


def test_delete_nursing_record_needs_admin(cashier, admin, branch):
    summary = register_service.open_register(0, cashier)
    record = nursing_service.create_nursing_record(branch.id, "Suero", "Ana Ruiz", 12000, cashier)

    with pytest.raises(PermissionDeniedError):
        nursing_service.delete_nursing_record(record.id, cashier)

    nursing_service.delete_nursing_record(record.id, admin)

    assert db.session.query(NursingRecord).count() == 0
    db.session.refresh(summary)
    assert summary.total_income_cents == 0
    reversal = (
        db.session.query(CashRegisterEntry)
        .filter_by(nursing_record_id=record.id)
        .order_by(CashRegisterEntry.id.desc())
        .first()
    )
    assert reversal.amount_cents == -12000
    assert reversal.concept == "Anulación Servicio de enfermería: Suero - Ana Ruiz"


def test_delete_missing_nursing_record(admin, branch):
    with pytest.raises(NursingError):
        nursing_service.delete_nursing_record(999, admin)
