"""
Sales tests.

Verifies:
- Checkout decrements stock and books income on the open session
- Insufficient stock aborts the whole sale with per-item details
- Deleting a sale restores stock and books the reversal
- Online orders use catalog prices and carry a status
"""

import pytest

from pharmaledger.extensions import db
from pharmaledger.models import CashRegisterEntry, Product, Sale, SaleItem
from pharmaledger.services import products_service, register_service, sales_service
from pharmaledger.services.permission_service import PermissionDeniedError
from pharmaledger.services.sales_service import InsufficientStockError, SaleError
from pharmaledger.validation import ValidationError


def _stock(product_id: int) -> int:
    return db.session.query(Product).filter_by(id=product_id).first().current_stock


def test_sale_decrements_stock_and_books_income(cashier, branch, product):
    summary = register_service.open_register(0, cashier)

    sale = sales_service.create_sale(
        branch.id,
        [{"product_id": product["id"], "quantity": 3, "unit_price_cents": 2500, "discount_cents": 500}],
        cashier,
        total_discount_cents=1000,
        final_total_cents=6000,
    )

    assert sale.subtotal_cents == 7000
    assert sale.final_total_cents == 6000
    assert sale.items[0].product_name == "Paracetamol 500mg"
    assert _stock(product["id"]) == 7

    entry = db.session.query(CashRegisterEntry).filter_by(sale_id=sale.id).one()
    assert entry.entry_type == "sale"
    assert entry.amount_cents == 6000
    assert entry.concept == f"Venta #{sale.id}"
    assert entry.summary_id == summary.id

    db.session.refresh(summary)
    assert summary.total_income_cents == 6000


def test_selling_out_blocks_next_sale(cashier, branch, product):
    line = {"product_id": product["id"], "unit_price_cents": 2500}

    sales_service.create_sale(branch.id, [{**line, "quantity": 10}], cashier)
    assert _stock(product["id"]) == 0

    with pytest.raises(InsufficientStockError):
        sales_service.create_sale(branch.id, [{**line, "quantity": 1}], cashier)

    assert _stock(product["id"]) == 0
    assert db.session.query(Sale).count() == 1


def test_sale_without_open_register_still_recorded(cashier, branch, product):
    sale = sales_service.create_sale(
        branch.id,
        [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500}],
        cashier,
    )
    entry = db.session.query(CashRegisterEntry).filter_by(sale_id=sale.id).one()
    assert entry.summary_id is None


def test_insufficient_stock_writes_nothing(cashier, branch, product, second_product):
    register_service.open_register(0, cashier)

    with pytest.raises(InsufficientStockError) as exc_info:
        sales_service.create_sale(
            branch.id,
            [
                {"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500},
                {"product_id": second_product["id"], "quantity": 6, "unit_price_cents": 4000},
            ],
            cashier,
        )

    items = exc_info.value.details["items"]
    assert items == [{
        "product_id": second_product["id"],
        "product_name": "Ibuprofeno 400mg",
        "requested_quantity": 6,
        "available": 5,
    }]
    assert _stock(product["id"]) == 10
    assert _stock(second_product["id"]) == 5
    assert db.session.query(Sale).count() == 0
    assert db.session.query(SaleItem).count() == 0
    assert db.session.query(CashRegisterEntry).filter_by(entry_type="sale").count() == 0


def test_repeated_product_lines_are_checked_together(cashier, branch, second_product):
    with pytest.raises(InsufficientStockError):
        sales_service.create_sale(
            branch.id,
            [
                {"product_id": second_product["id"], "quantity": 3, "unit_price_cents": 4000},
                {"product_id": second_product["id"], "quantity": 3, "unit_price_cents": 4000},
            ],
            cashier,
        )
    assert _stock(second_product["id"]) == 5


def test_unknown_product(cashier, branch):
    with pytest.raises(SaleError) as exc_info:
        sales_service.create_sale(branch.id, [{"product_id": 999, "quantity": 1, "unit_price_cents": 100}], cashier)
    assert exc_info.value.details == {"product_ids": [999]}


@pytest.mark.parametrize(
    "items",
    [
        [],
        [{"product_id": 1, "quantity": 0, "unit_price_cents": 100}],
        [{"product_id": 1, "quantity": 1, "unit_price_cents": -5}],
        [{"quantity": 1, "unit_price_cents": 100}],
    ],
)
def test_invalid_lines_rejected(cashier, branch, items):
    with pytest.raises(ValidationError):
        sales_service.create_sale(branch.id, items, cashier)


def test_final_total_must_match(cashier, branch, product):
    with pytest.raises(ValidationError):
        sales_service.create_sale(
            branch.id,
            [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500}],
            cashier,
            final_total_cents=2000,
        )
    assert _stock(product["id"]) == 10


def test_delete_sale_restores_stock_and_reverses(cashier, admin, branch, product):
    summary = register_service.open_register(1000, cashier)
    sale = sales_service.create_sale(
        branch.id,
        [{"product_id": product["id"], "quantity": 4, "unit_price_cents": 2500}],
        cashier,
    )

    sales_service.delete_sale(sale.id, admin)

    assert _stock(product["id"]) == 10
    assert sales_service.get_sale(sale.id) is None
    assert db.session.query(SaleItem).count() == 0

    reversal = (
        db.session.query(CashRegisterEntry)
        .filter_by(sale_id=sale.id)
        .order_by(CashRegisterEntry.id.desc())
        .first()
    )
    assert reversal.amount_cents == -10000
    assert reversal.concept == f"Anulación Venta #{sale.id}"

    db.session.refresh(summary)
    assert summary.total_income_cents == 0
    assert summary.expected_balance_cents == 1000


def test_delete_sale_of_deleted_product_skips_restock(cashier, admin, branch, product):
    sale = sales_service.create_sale(
        branch.id,
        [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500}],
        cashier,
    )
    products_service.delete_product(product["id"], admin)

    sales_service.delete_sale(sale.id, admin)
    assert sales_service.get_sale(sale.id) is None


def test_cashier_cannot_delete_sale(cashier, branch, product):
    sale = sales_service.create_sale(
        branch.id,
        [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500}],
        cashier,
    )
    with pytest.raises(PermissionDeniedError):
        sales_service.delete_sale(sale.id, cashier)
    assert _stock(product["id"]) == 9


def test_bulk_delete_reports_each_item(cashier, admin, branch, product):
    sale = sales_service.create_sale(
        branch.id,
        [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500}],
        cashier,
    )

    result = sales_service.delete_sales([sale.id, 424242], admin)

    assert result.succeeded == [sale.id]
    assert [f["id"] for f in result.failed] == [424242]
    assert result.summary == "1 of 2 deleted"


def test_online_order_uses_catalog_prices(branch, product):
    order = sales_service.place_online_order(
        [{"product_id": product["id"], "quantity": 2, "unit_price_cents": 1}],
        customer_name="Luis Gómez",
        customer_phone="555-0100",
    )

    assert order.channel == "online"
    assert order.status == "pending"
    assert order.branch_id == branch.id
    assert order.final_total_cents == 5000
    assert _stock(product["id"]) == 8


def test_online_order_status_update(admin, branch, product):
    order = sales_service.place_online_order(
        [{"product_id": product["id"], "quantity": 1}],
        customer_name="Luis Gómez",
        customer_phone="555-0100",
    )

    updated = sales_service.update_sale_status(order.id, "completed", admin)
    assert updated.status == "completed"

    with pytest.raises(ValidationError):
        sales_service.update_sale_status(order.id, "teleported", admin)


def test_pos_sale_has_no_status(cashier, admin, branch, product):
    sale = sales_service.create_sale(
        branch.id,
        [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500}],
        cashier,
    )
    with pytest.raises(SaleError, match="online"):
        sales_service.update_sale_status(sale.id, "completed", admin)


def test_list_sales_filters_by_branch(cashier, admin, branch, other_branch, product):
    sales_service.create_sale(
        branch.id,
        [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500}],
        cashier,
    )
    sales_service.create_sale(
        other_branch.id,
        [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500}],
        admin,
    )

    assert len(sales_service.list_sales(branch_id=branch.id)) == 1
    assert len(sales_service.list_sales()) == 2
