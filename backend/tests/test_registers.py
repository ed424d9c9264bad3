"""
Cash register ledger tests.

Verifies:
- Opening, movements and closing keep expected = opening + income - expense
- At most one open session per branch (service check and unique index)
- Movements without an open session write unbound entries only
- Closing someone else's session needs CLOSE_ANY_REGISTER
"""

import pytest
from sqlalchemy import false
from sqlalchemy.exc import IntegrityError

from pharmaledger.extensions import db
from pharmaledger.models import CashRegisterEntry, CashRegisterSummary
from pharmaledger.models.registers import ENTRY_TYPE_INITIAL, ENTRY_TYPE_SALE, REGISTER_STATUS_OPEN
from pharmaledger.services import expense_service, register_service, sales_service
from pharmaledger.services.permission_service import Actor, BranchSelectionRequired, PermissionDeniedError
from pharmaledger.services.register_service import LEDGER_KIND_EXPENSE, LEDGER_KIND_INCOME, RegisterError
from pharmaledger.permissions import ROLE_CASHIER
from pharmaledger.validation import ValidationError


def test_open_writes_initial_entry(cashier, branch):
    summary = register_service.open_register(10000, cashier)

    assert summary.status == REGISTER_STATUS_OPEN
    assert summary.branch_id == branch.id
    assert summary.expected_balance_cents == 10000

    entries = register_service.list_entries(summary.id)
    assert len(entries) == 1
    assert entries[0].entry_type == ENTRY_TYPE_INITIAL
    assert entries[0].amount_cents == 10000
    assert entries[0].concept == "Apertura de caja"


def test_full_session_arithmetic(cashier, branch, product):
    summary = register_service.open_register(10000, cashier)

    sales_service.create_sale(
        branch.id,
        [{"product_id": product["id"], "quantity": 2, "unit_price_cents": 2500}],
        cashier,
    )
    db.session.refresh(summary)
    assert summary.total_income_cents == 5000
    assert summary.expected_balance_cents == 15000

    expense_service.add_expense(branch.id, "Papelería", 3000, "Insumos", cashier)
    db.session.refresh(summary)
    assert summary.total_expense_cents == 3000
    assert summary.expected_balance_cents == 12000

    closed = register_service.close_register(summary.id, 11500, cashier, notes="  Faltante  ")
    assert closed.status == "CLOSED"
    assert closed.actual_balance_cents == 11500
    assert closed.difference_cents == -500
    assert closed.notes == "Faltante"
    assert closed.closed_by_uid == cashier.uid


def test_second_open_is_rejected(cashier):
    register_service.open_register(0, cashier)

    with pytest.raises(RegisterError, match="already open"):
        register_service.open_register(500, cashier)

    assert db.session.query(CashRegisterSummary).count() == 1


def test_unique_index_blocks_second_open_row(cashier, branch):
    register_service.open_register(0, cashier)

    db.session.add(CashRegisterSummary(
        branch_id=branch.id,
        status=REGISTER_STATUS_OPEN,
        opening_balance_cents=0,
        total_income_cents=0,
        total_expense_cents=0,
        expected_balance_cents=0,
        opened_by_uid="someone",
        opened_by_name="Someone",
    ))
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def test_lost_open_race_is_register_error(cashier, branch, monkeypatch):
    register_service.open_register(0, cashier)

    # The in-transaction check misses the session a concurrent open committed
    monkeypatch.setattr(
        register_service,
        "_open_summary_query",
        lambda branch_id: db.session.query(CashRegisterSummary).filter(false()),
    )

    with pytest.raises(RegisterError, match="already open"):
        register_service.open_register(500, cashier)

    assert db.session.query(CashRegisterSummary).count() == 1


def test_unassigned_cashier_is_refused(branch, other_branch):
    floating = Actor(uid="cashier-2", display_name="Cajero Dos", role=ROLE_CASHIER)

    for branch_id in (branch.id, other_branch.id):
        with pytest.raises(PermissionDeniedError):
            register_service.open_register(100, floating, branch_id=branch_id)

    assert db.session.query(CashRegisterSummary).count() == 0


def test_branches_open_independently(admin, branch, other_branch):
    first = register_service.open_register(100, admin, branch_id=branch.id)
    second = register_service.open_register(200, admin, branch_id=other_branch.id)

    assert first.id != second.id
    assert register_service.get_open_summary(other_branch.id).id == second.id


def test_reopen_after_close(cashier):
    first = register_service.open_register(1000, cashier)
    register_service.close_register(first.id, 1000, cashier)

    second = register_service.open_register(2000, cashier)
    assert second.id != first.id
    assert len(register_service.list_summaries(status="CLOSED")) == 1


def test_closed_session_cannot_close_again(cashier):
    summary = register_service.open_register(1000, cashier)
    register_service.close_register(summary.id, 1000, cashier)

    with pytest.raises(RegisterError, match="already closed"):
        register_service.close_register(summary.id, 1000, cashier)


def test_negative_opening_balance_rejected(cashier):
    with pytest.raises(ValidationError):
        register_service.open_register(-1, cashier)


def test_closing_other_users_session_needs_close_any(cashier, admin, branch):
    summary = register_service.open_register(1000, admin, branch_id=branch.id)

    with pytest.raises(PermissionDeniedError):
        register_service.close_register(summary.id, 1000, cashier)

    closed = register_service.close_register(summary.id, 900, admin)
    assert closed.difference_cents == -100


def test_cashier_cannot_open_at_unassigned_branch(cashier, other_branch):
    with pytest.raises(PermissionDeniedError):
        register_service.open_register(0, cashier, branch_id=other_branch.id)


def test_branch_selection_required_for_multi_branch_user(branch, other_branch):
    actor = Actor(
        uid="floater",
        display_name="Floater",
        role=ROLE_CASHIER,
        branch_roles={branch.id: ROLE_CASHIER, other_branch.id: ROLE_CASHIER},
    )
    with pytest.raises(BranchSelectionRequired):
        register_service.open_register(0, actor)


def test_movement_without_open_session_is_unbound(admin, branch):
    entry = register_service.record_movement(
        branch.id,
        kind=LEDGER_KIND_INCOME,
        entry_type=ENTRY_TYPE_SALE,
        amount_cents=700,
        concept="Venta #99",
        actor=admin,
    )
    db.session.commit()

    assert entry.summary_id is None
    assert register_service.adjust_ledger(branch.id, 700, LEDGER_KIND_INCOME) is None


def test_adjust_ledger_expense_kind_lowers_expected(admin, branch):
    summary = register_service.open_register(5000, admin, branch_id=branch.id)

    register_service.adjust_ledger(branch.id, 1200, LEDGER_KIND_EXPENSE)
    db.session.commit()
    db.session.refresh(summary)
    assert summary.total_expense_cents == 1200
    assert summary.expected_balance_cents == 3800

    register_service.adjust_ledger(branch.id, -1200, LEDGER_KIND_EXPENSE)
    db.session.commit()
    db.session.refresh(summary)
    assert summary.total_expense_cents == 0
    assert summary.expected_balance_cents == 5000


def test_unknown_ledger_kind(admin, branch):
    with pytest.raises(ValueError):
        register_service.adjust_ledger(branch.id, 1, "refund")


def test_reconcile_matches_entry_log(cashier, branch, product):
    summary = register_service.open_register(10000, cashier)
    sale = sales_service.create_sale(
        branch.id,
        [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500}],
        cashier,
    )
    expense_service.add_expense(branch.id, "Limpieza", 800, "Insumos", cashier)
    sales_service.delete_sale(sale.id, Actor(uid="admin-1", display_name="Admin", role="ADMIN"))

    result = register_service.reconcile_summary(summary.id)
    assert result["matches"] is True
    assert result["computed"]["expected_balance_cents"] == 10000 - 800


def test_reconcile_detects_tampering(cashier):
    summary = register_service.open_register(10000, cashier)
    summary.expected_balance_cents = 99999
    db.session.commit()

    result = register_service.reconcile_summary(summary.id)
    assert result["matches"] is False
    assert result["stored"]["expected_balance_cents"] == 99999
    assert result["computed"]["expected_balance_cents"] == 10000


def test_entries_listed_newest_first(cashier, branch):
    summary = register_service.open_register(0, cashier)
    expense_service.add_expense(branch.id, "Agua", 100, "Servicios", cashier)

    entries = register_service.list_entries(summary.id)
    assert [e.entry_type for e in entries] == ["expense", "initial"]
    assert db.session.query(CashRegisterEntry).count() == 2
