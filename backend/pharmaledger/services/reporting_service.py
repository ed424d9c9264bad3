# Overview: Read-only report queries over sales, services, expenses, registers and stock.

from __future__ import annotations

from datetime import datetime

from pharmaledger.extensions import db
from pharmaledger.errors import DomainError
from pharmaledger.models import (
    CashRegisterEntry,
    CashRegisterSummary,
    Expense,
    NursingRecord,
    Product,
    Purchase,
    Sale,
    Supplier,
)
from pharmaledger.validation import ValidationError
from pharmaledger.time_utils import parse_report_bound, to_utc_z
from .permission_service import Actor, require_capability


REPORT_TYPES = ("sales", "nursing", "expenses", "cashRegister", "inventory", "suppliers", "purchases")


class ReportError(DomainError):
    """Raised when report generation fails."""
    pass


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    """Dates are whole days: the end day is included up to its last instant."""
    try:
        start_dt = parse_report_bound(start)
        end_dt = parse_report_bound(end, end_of_day=True)
    except ValueError:
        raise ValidationError("start and end must be YYYY-MM-DD dates or ISO-8601 datetimes")
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must be before end")
    return start_dt, end_dt


def _in_range(query, column, start_dt, end_dt):
    if start_dt:
        query = query.filter(column >= start_dt)
    if end_dt:
        query = query.filter(column <= end_dt)
    return query


def _dated_rows(model, date_column, start_dt, end_dt, branch_id):
    query = db.session.query(model)
    if branch_id is not None:
        query = query.filter(model.branch_id == branch_id)
    query = _in_range(query, date_column, start_dt, end_dt)
    return query.order_by(date_column.desc(), model.id.desc()).all()


def sales_report(start_dt, end_dt, branch_id) -> dict:
    sales = _dated_rows(Sale, Sale.date, start_dt, end_dt, branch_id)
    return {
        "data": [s.to_dict() for s in sales],
        "totals": {
            "count": len(sales),
            "final_total_cents": sum(s.final_total_cents for s in sales),
            "total_discount_cents": sum(s.total_discount_cents for s in sales),
        },
    }


def nursing_report(start_dt, end_dt, branch_id) -> dict:
    records = _dated_rows(NursingRecord, NursingRecord.date, start_dt, end_dt, branch_id)
    by_type: dict[str, int] = {}
    for r in records:
        by_type[r.service_type] = by_type.get(r.service_type, 0) + r.cost_cents
    return {
        "data": [r.to_dict() for r in records],
        "totals": {
            "count": len(records),
            "cost_cents": sum(r.cost_cents for r in records),
            "by_service_type": by_type,
        },
    }


def expenses_report(start_dt, end_dt, branch_id) -> dict:
    expenses = _dated_rows(Expense, Expense.date, start_dt, end_dt, branch_id)
    by_category: dict[str, int] = {}
    for e in expenses:
        by_category[e.category] = by_category.get(e.category, 0) + e.amount_cents
    return {
        "data": [e.to_dict() for e in expenses],
        "totals": {
            "count": len(expenses),
            "amount_cents": sum(e.amount_cents for e in expenses),
            "by_category": by_category,
        },
    }


def cash_register_report(start_dt, end_dt, branch_id) -> dict:
    """
    Sessions opened in range plus each session's entries, merged newest first.

    Rows carry record_type "summary" or "entry".
    """
    summaries = _dated_rows(CashRegisterSummary, CashRegisterSummary.opened_at, start_dt, end_dt, branch_id)

    rows: list[tuple[datetime, dict]] = []
    for summary in summaries:
        rows.append((summary.opened_at, {"record_type": "summary", **summary.to_dict()}))
        entries = db.session.query(CashRegisterEntry).filter_by(summary_id=summary.id).all()
        for entry in entries:
            rows.append((entry.timestamp, {"record_type": "entry", **entry.to_dict()}))

    rows.sort(key=lambda row: row[0], reverse=True)
    return {
        "data": [row for _, row in rows],
        "totals": {
            "sessions": len(summaries),
            "difference_cents": sum(s.difference_cents or 0 for s in summaries),
        },
    }


def inventory_report(branch_id) -> dict:
    query = db.session.query(Product)
    if branch_id is not None:
        query = query.filter(Product.branch_id == branch_id)
    products = query.order_by(Product.commercial_name.asc()).all()
    return {
        "data": [p.to_dict() for p in products],
        "totals": {
            "count": len(products),
            "units": sum(p.current_stock for p in products),
            "stock_value_cents": sum(p.current_stock * p.cost_price_cents for p in products),
            "low_stock": sum(1 for p in products if p.is_low_stock),
        },
    }


def suppliers_report() -> dict:
    suppliers = db.session.query(Supplier).order_by(Supplier.name.asc()).all()
    return {
        "data": [s.to_dict() for s in suppliers],
        "totals": {"count": len(suppliers)},
    }


def purchases_report(start_dt, end_dt, branch_id) -> dict:
    query = db.session.query(Purchase)
    if branch_id is not None:
        query = query.filter(Purchase.branch_id == branch_id)
    if start_dt:
        query = query.filter(Purchase.purchase_date >= start_dt.date())
    if end_dt:
        query = query.filter(Purchase.purchase_date <= end_dt.date())
    purchases = query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc()).all()
    return {
        "data": [p.to_dict() for p in purchases],
        "totals": {
            "count": len(purchases),
            "total_amount_cents": sum(p.total_amount_cents for p in purchases),
            "unpaid_cents": sum(p.total_amount_cents for p in purchases if not p.is_paid),
        },
    }


def get_report(
    report_type: str,
    start: str | None,
    end: str | None,
    branch_id: int | None = None,
    actor: Actor | None = None,
) -> dict:
    """
    Build one report. Read-only.

    Raises:
        ReportError: unknown report type
        ValidationError: malformed dates
    """
    require_capability(actor, "VIEW_REPORTS", branch_id)
    if report_type not in REPORT_TYPES:
        raise ReportError(
            f"Unknown report type: {report_type}",
            details={"report_types": list(REPORT_TYPES)},
        )

    start_dt, end_dt = _parse_range(start, end)

    if report_type == "sales":
        report = sales_report(start_dt, end_dt, branch_id)
    elif report_type == "nursing":
        report = nursing_report(start_dt, end_dt, branch_id)
    elif report_type == "expenses":
        report = expenses_report(start_dt, end_dt, branch_id)
    elif report_type == "cashRegister":
        report = cash_register_report(start_dt, end_dt, branch_id)
    elif report_type == "inventory":
        report = inventory_report(branch_id)
    elif report_type == "suppliers":
        report = suppliers_report()
    else:
        report = purchases_report(start_dt, end_dt, branch_id)

    return {
        "report_type": report_type,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "branch_id": branch_id,
        **report,
    }
