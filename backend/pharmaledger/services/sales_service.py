"""
Sales Service - checkout with stock and cash ledger in one transaction

WHY: A sale must never leave stock decremented without the cash being
recorded, or the other way around. Creation and deletion each run as a
single transaction spanning products, the sale, its ledger entry and the
open register session.
"""

import logging

from ..extensions import db
from ..errors import DomainError
from ..models import Product, Sale, SaleItem
from ..models.registers import ENTRY_TYPE_SALE
from ..models.sales import PAYMENT_METHODS, SALE_CHANNELS, ONLINE_ORDER_STATUSES
from ..validation import ValidationError, coerce_int, require_text, validate_amount_cents
from pharmaledger.time_utils import utcnow
from .concurrency import bulk_delete, lock_for_update, run_with_retry
from .permission_service import Actor, require_capability, resolve_branch_id
from .products_service import aggregate_quantities
from .register_service import LEDGER_KIND_INCOME, record_movement
from . import live_query_service


logger = logging.getLogger("pharmaledger.sales")

ONLINE_CUSTOMER = Actor(uid="online-customer", display_name="Tienda en línea", role="CUSTOMER")


class SaleError(DomainError):
    """Raised for sale operation errors."""
    pass


class InsufficientStockError(SaleError):
    """Requested quantities exceed current stock; details list every short item."""
    pass


def _validate_lines(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Sale must contain at least one item")

    lines = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{i}] must be an object")
        if item.get("product_id") is None:
            raise ValidationError(f"items[{i}].product_id is required")
        product_id = coerce_int(f"items[{i}].product_id", item["product_id"])
        quantity = coerce_int(f"items[{i}].quantity", item.get("quantity"))
        if quantity <= 0:
            raise ValidationError(f"items[{i}].quantity must be > 0")
        unit_price = validate_amount_cents(f"items[{i}].unit_price_cents", item.get("unit_price_cents"), allow_zero=True)
        discount = validate_amount_cents(f"items[{i}].discount_cents", item.get("discount_cents", 0), allow_zero=True)

        total = unit_price * quantity - discount
        if total < 0:
            raise ValidationError(f"items[{i}].discount_cents exceeds the line amount")
        if item.get("total_price_cents") is not None:
            if coerce_int(f"items[{i}].total_price_cents", item["total_price_cents"]) != total:
                raise ValidationError(f"items[{i}].total_price_cents must equal unit price x quantity - discount")

        lines.append({
            "product_id": product_id,
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "discount_cents": discount,
            "total_price_cents": total,
        })
    return lines


def _validate_totals(lines: list[dict], total_discount_cents, subtotal_cents, final_total_cents) -> int:
    subtotal = sum(line["total_price_cents"] for line in lines)
    discount = validate_amount_cents("total_discount_cents", total_discount_cents or 0, allow_zero=True)
    if discount > subtotal:
        raise ValidationError("total_discount_cents cannot exceed the subtotal")

    if subtotal_cents is not None and coerce_int("subtotal_cents", subtotal_cents) != subtotal:
        raise ValidationError("subtotal_cents must equal the sum of item totals")

    final_total = subtotal - discount
    if final_total_cents is not None and coerce_int("final_total_cents", final_total_cents) != final_total:
        raise ValidationError("final_total_cents must equal subtotal - total_discount_cents")
    return discount


def _post_sale(
    *,
    branch_id: int,
    lines: list[dict],
    actor: Actor,
    total_discount_cents: int,
    payment_method: str,
    channel: str,
    status: str | None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    catalog_prices: bool = False,
) -> Sale:
    def _op():
        quantities: dict[int, int] = {}
        for line in lines:
            quantities[line["product_id"]] = quantities.get(line["product_id"], 0) + line["quantity"]

        products = lock_for_update(
            db.session.query(Product).filter(Product.id.in_(quantities.keys()))
        ).all()
        by_id = {p.id: p for p in products}

        missing = sorted(pid for pid in quantities if pid not in by_id)
        if missing:
            raise SaleError("Products not found", details={"product_ids": missing})

        insufficient = []
        for product_id, quantity in quantities.items():
            product = by_id[product_id]
            if product.current_stock - quantity < 0:
                insufficient.append({
                    "product_id": product_id,
                    "product_name": product.commercial_name,
                    "requested_quantity": quantity,
                    "available": product.current_stock,
                })
        if insufficient:
            raise InsufficientStockError(
                "Insufficient stock to complete the sale",
                details={"items": insufficient},
            )

        sale_items = []
        for line in lines:
            product = by_id[line["product_id"]]
            unit_price = product.selling_price_cents if catalog_prices else line["unit_price_cents"]
            discount = 0 if catalog_prices else line["discount_cents"]
            sale_items.append(SaleItem(
                product_id=product.id,
                product_name=product.commercial_name,
                quantity=line["quantity"],
                unit_price_cents=unit_price,
                discount_cents=discount,
                total_price_cents=unit_price * line["quantity"] - discount,
            ))

        subtotal = sum(item.total_price_cents for item in sale_items)
        final_total = subtotal - total_discount_cents

        for product_id, quantity in quantities.items():
            by_id[product_id].current_stock -= quantity

        sale = Sale(
            branch_id=branch_id,
            items=sale_items,
            subtotal_cents=subtotal,
            total_discount_cents=total_discount_cents,
            final_total_cents=final_total,
            payment_method=payment_method,
            channel=channel,
            status=status,
            customer_name=customer_name,
            customer_phone=customer_phone,
            user_uid=actor.uid,
            user_name=actor.display_name,
            date=utcnow(),
        )
        db.session.add(sale)
        db.session.flush()

        record_movement(
            branch_id,
            kind=LEDGER_KIND_INCOME,
            entry_type=ENTRY_TYPE_SALE,
            amount_cents=final_total,
            concept=f"Venta #{sale.id}",
            actor=actor,
            sale_id=sale.id,
        )

        db.session.commit()
        return sale

    return run_with_retry(_op)


def create_sale(
    branch_id: int | None,
    items: list[dict],
    actor: Actor,
    total_discount_cents: int = 0,
    final_total_cents: int | None = None,
    subtotal_cents: int | None = None,
    payment_method: str = "efectivo",
    channel: str = "pos",
    status: str | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
) -> Sale:
    """
    Record a checkout.

    Inputs are validated before the transaction (non-empty items,
    quantity > 0, prices >= 0, totals consistent). Inside it every product is
    read and checked first; only then is stock decremented and the sale,
    its "Venta #id" entry and the income adjustment written.

    Raises:
        ValidationError: malformed input
        InsufficientStockError: some product would go negative (nothing written)
    """
    lines = _validate_lines(items)
    discount = _validate_totals(lines, total_discount_cents, subtotal_cents, final_total_cents)

    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    if channel not in SALE_CHANNELS:
        raise ValidationError(f"channel must be one of: {', '.join(SALE_CHANNELS)}")
    if channel == "online":
        status = status or "pending"
        if status not in ONLINE_ORDER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ONLINE_ORDER_STATUSES)}")
    else:
        status = None

    branch_id = resolve_branch_id(actor, branch_id)
    require_capability(actor, "CREATE_SALE", branch_id)

    sale = _post_sale(
        branch_id=branch_id,
        lines=lines,
        actor=actor,
        total_discount_cents=discount,
        payment_method=payment_method,
        channel=channel,
        status=status,
        customer_name=customer_name,
        customer_phone=customer_phone,
    )
    logger.info("Sale %s created at branch %s: %s cents by %s", sale.id, branch_id, sale.final_total_cents, actor.uid)
    return sale


def place_online_order(items: list[dict], customer_name: str, customer_phone: str) -> Sale:
    """
    Storefront checkout.

    Prices come from the catalog, never from the client. The order is booked
    at the main branch as a pending online sale.
    """
    customer_name = require_text("customer_name", customer_name)
    customer_phone = require_text("customer_phone", customer_phone)
    quantities = aggregate_quantities(items)

    from .branch_service import get_main_branch
    main = get_main_branch()
    if not main:
        raise SaleError("The store is not available")

    lines = [
        {"product_id": pid, "quantity": qty, "unit_price_cents": 0, "discount_cents": 0}
        for pid, qty in quantities.items()
    ]
    sale = _post_sale(
        branch_id=main.id,
        lines=lines,
        actor=ONLINE_CUSTOMER,
        total_discount_cents=0,
        payment_method="online",
        channel="online",
        status="pending",
        customer_name=customer_name,
        customer_phone=customer_phone,
        catalog_prices=True,
    )
    logger.info("Online order %s placed: %s cents", sale.id, sale.final_total_cents)
    return sale


def delete_sale(sale_id: int, actor: Actor) -> None:
    """
    Delete a sale and reverse its effects.

    Items and total are read from storage. Stock is restored for products
    that still exist; a negative "sale" entry and a -final_total income
    adjustment are written to the branch's open session.
    """
    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise SaleError("Sale not found", not_found=True)

        require_capability(actor, "DELETE_SALE", sale.branch_id)

        quantities: dict[int, int] = {}
        for item in sale.items:
            quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

        products = lock_for_update(
            db.session.query(Product).filter(Product.id.in_(quantities.keys()))
        ).all()
        for product in products:
            product.current_stock += quantities[product.id]

        branch_id = sale.branch_id
        final_total = sale.final_total_cents
        db.session.delete(sale)

        record_movement(
            branch_id,
            kind=LEDGER_KIND_INCOME,
            entry_type=ENTRY_TYPE_SALE,
            amount_cents=-final_total,
            concept=f"Anulación Venta #{sale_id}",
            actor=actor,
            sale_id=sale_id,
        )

        db.session.commit()

    run_with_retry(_op)
    logger.info("Sale %s deleted by %s", sale_id, actor.uid)


def delete_sales(sale_ids: list[int], actor: Actor):
    """Delete several sales, each in its own transaction. Returns BulkDeleteResult."""
    return bulk_delete(sale_ids, lambda sale_id: delete_sale(sale_id, actor), label="sale")


def update_sale_status(sale_id: int, status: str, actor: Actor) -> Sale:
    """Change the processing status of an online order. Metadata only."""
    if status not in ONLINE_ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ONLINE_ORDER_STATUSES)}")

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise SaleError("Sale not found", not_found=True)
        if sale.channel != "online":
            raise SaleError("Only online orders have a status")

        require_capability(actor, "UPDATE_SALE_STATUS", sale.branch_id)
        sale.status = status
        db.session.commit()
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale | None:
    return db.session.query(Sale).filter_by(id=sale_id).first()


def _sales_query(session, branch_id=None, start=None, end=None, channel=None, status=None):
    query = session.query(Sale)
    if branch_id is not None:
        query = query.filter(Sale.branch_id == branch_id)
    if start is not None:
        query = query.filter(Sale.date >= start)
    if end is not None:
        query = query.filter(Sale.date <= end)
    if channel:
        query = query.filter(Sale.channel == channel)
    if status:
        query = query.filter(Sale.status == status)
    return query.order_by(Sale.date.desc(), Sale.id.desc())


def list_sales(branch_id=None, start=None, end=None, channel=None, status=None) -> list[Sale]:
    return _sales_query(db.session, branch_id, start, end, channel, status).all()


def on_sales_update(callback, branch_id: int | None = None):
    """Live sales list (newest first) as dicts."""
    def _fetch(session):
        return [s.to_dict() for s in _sales_query(session, branch_id).all()]

    return live_query_service.subscribe(("sales", "sale_items"), _fetch, callback)
