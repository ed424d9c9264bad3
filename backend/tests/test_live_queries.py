"""
Live query tests.

Callbacks fire once on subscribe and again after each commit that touched a
watched table; rolled-back work is never published.
"""

import pytest

from pharmaledger.services import expense_service, register_service, sales_service, supplier_service
from pharmaledger.services.live_query_service import hub
from pharmaledger.services.sales_service import InsufficientStockError


def test_register_summary_updates(cashier, branch):
    received = []
    unsubscribe = register_service.on_current_cash_register_summary_update(received.append, branch.id)

    assert received == [None]

    summary = register_service.open_register(1000, cashier)
    assert received[-1]["id"] == summary.id
    assert received[-1]["expected_balance_cents"] == 1000

    expense_service.add_expense(branch.id, "Agua", 400, "Servicios", cashier)
    assert received[-1]["expected_balance_cents"] == 600

    unsubscribe()
    count = len(received)
    register_service.close_register(summary.id, 600, cashier)
    assert len(received) == count


def test_entries_feed(cashier, branch):
    received = []
    register_service.on_cash_register_entries_update(received.append, branch.id)
    register_service.open_register(0, cashier)

    assert [e["concept"] for e in received[-1]] == ["Apertura de caja"]


def test_entries_feed_without_branch_follows_latest_session(admin, branch, other_branch):
    received = []
    register_service.on_cash_register_entries_update(received.append)
    assert received == [[]]

    register_service.open_register(100, admin, branch_id=branch.id)
    register_service.open_register(200, admin, branch_id=other_branch.id)

    assert [e["branch_id"] for e in received[-1]] == [other_branch.id]


def test_rolled_back_sale_is_not_published(cashier, branch, product):
    received = []
    sales_service.on_sales_update(received.append, branch.id)
    assert received == [[]]

    with pytest.raises(InsufficientStockError):
        sales_service.create_sale(
            branch.id,
            [{"product_id": product["id"], "quantity": 99, "unit_price_cents": 2500}],
            cashier,
        )
    assert received == [[]]

    sales_service.create_sale(
        branch.id,
        [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500}],
        cashier,
    )
    assert len(received) == 2
    assert received[-1][0]["final_total_cents"] == 2500


def test_unrelated_tables_do_not_trigger(cashier, branch):
    received = []
    supplier_service.on_supplier_purchases_update(received.append)

    expense_service.add_expense(branch.id, "Agua", 100, "Servicios", cashier)
    assert len(received) == 1


def test_failing_callback_does_not_break_commit(cashier, branch):
    calls = []

    def explode(result):
        calls.append(result)
        if len(calls) > 1:
            raise RuntimeError("screen gone")

    register_service.on_current_cash_register_summary_update(explode, branch.id)
    summary = register_service.open_register(0, cashier)

    assert len(calls) == 2
    assert register_service.get_summary(summary.id) is not None


def test_unsubscribe_removes_subscription(branch):
    unsubscribe = expense_service.on_expenses_update(lambda result: None)
    assert hub.subscription_count() == 1
    unsubscribe()
    unsubscribe()
    assert hub.subscription_count() == 0
