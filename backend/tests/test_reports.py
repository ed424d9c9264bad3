"""
Report tests. Reports are read-only and need VIEW_REPORTS.
"""

import pytest

from pharmaledger.services import expense_service, nursing_service, register_service, reporting_service, sales_service
from pharmaledger.services.permission_service import PermissionDeniedError
from pharmaledger.services.reporting_service import ReportError
from pharmaledger.time_utils import utcnow
from pharmaledger.validation import ValidationError


@pytest.fixture
def activity(cashier, branch, product):
    register_service.open_register(10000, cashier)
    sales_service.create_sale(
        branch.id,
        [{"product_id": product["id"], "quantity": 2, "unit_price_cents": 2500}],
        cashier,
    )
    expense_service.add_expense(branch.id, "Agua", 300, "Servicios", cashier)
    expense_service.add_expense(branch.id, "Gasas", 700, "Insumos", cashier)
    nursing_service.create_nursing_record(branch.id, "Curación", "Juan Pérez", 4000, cashier)


def test_sales_report(admin, branch, activity):
    report = reporting_service.get_report("sales", None, None, branch_id=branch.id, actor=admin)

    assert report["report_type"] == "sales"
    assert report["totals"] == {"count": 1, "final_total_cents": 5000, "total_discount_cents": 0}


def test_expenses_report_groups_by_category(admin, activity):
    report = reporting_service.get_report("expenses", None, None, actor=admin)
    assert report["totals"]["amount_cents"] == 1000
    assert report["totals"]["by_category"] == {"Servicios": 300, "Insumos": 700}


def test_nursing_report(admin, activity):
    report = reporting_service.get_report("nursing", None, None, actor=admin)
    assert report["totals"]["by_service_type"] == {"Curación": 4000}


def test_cash_register_report_merges_summaries_and_entries(admin, activity):
    report = reporting_service.get_report("cashRegister", None, None, actor=admin)

    kinds = [row["record_type"] for row in report["data"]]
    assert kinds.count("summary") == 1
    assert kinds.count("entry") == 5
    assert report["totals"]["sessions"] == 1


def test_inventory_report(admin, activity):
    report = reporting_service.get_report("inventory", None, None, actor=admin)
    assert report["totals"]["units"] == 8
    assert report["totals"]["stock_value_cents"] == 8 * 1200


def test_date_range_excludes_other_days(admin, activity):
    report = reporting_service.get_report("sales", "2000-01-01", "2000-01-31", actor=admin)
    assert report["data"] == []

    today = utcnow().date().isoformat()
    report = reporting_service.get_report("sales", today, today, actor=admin)
    assert report["totals"]["count"] == 1


def test_bad_dates(admin):
    with pytest.raises(ValidationError):
        reporting_service.get_report("sales", "yesterday", None, actor=admin)
    with pytest.raises(ValidationError):
        reporting_service.get_report("sales", "2024-02-01", "2024-01-01", actor=admin)


def test_unknown_report_type(admin):
    with pytest.raises(ReportError) as exc_info:
        reporting_service.get_report("profit", None, None, actor=admin)
    assert "sales" in exc_info.value.details["report_types"]


def test_cashier_cannot_view_reports(cashier, branch):
    with pytest.raises(PermissionDeniedError):
        reporting_service.get_report("sales", None, None, branch_id=branch.id, actor=cashier)
