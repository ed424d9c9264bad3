"""
Suppliers and Purchases Service

PAYMENT TYPES:
- contado: paid on the spot. The purchase and its Expense ("Compra a
  Proveedor: name (Factura: n)") are written in one transaction.
- credito: due_date required. The Expense ("Pago a Proveedor: ...") is
  written when the purchase is marked as paid.

Expenses link back through Expense.purchase_id. Deleting a purchase deletes
every linked expense and reverses its ledger effect in the same transaction.
"""

import logging
from datetime import date

from flask import current_app

from ..extensions import db
from ..errors import DomainError
from ..models import Expense, Purchase, Supplier
from ..models.suppliers import PAYMENT_TYPE_CONTADO, PAYMENT_TYPE_CREDITO, PURCHASE_PAYMENT_TYPES
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    coerce_int,
    require_text,
    validate_amount_cents,
    validate_payload,
)
from pharmaledger.time_utils import parse_iso_date, utcnow
from .concurrency import lock_for_update, run_with_retry
from .expense_service import create_expense_in_transaction, reverse_expense_in_transaction
from .permission_service import Actor, require_capability, resolve_branch_id
from . import live_query_service


logger = logging.getLogger("pharmaledger.suppliers")

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact_person", "phone", "email", "ruc_nit", "address"},
    required_on_create={"name"},
)

PURCHASE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "invoice_number",
        "item_count",
        "total_amount_cents",
        "payment_type",
        "purchase_date",
        "due_date",
    },
)


class SupplierError(DomainError):
    """Raised for supplier errors."""
    pass


class PurchaseError(DomainError):
    """Raised for purchase errors."""
    pass


def _supplier_purchase_category() -> str:
    return current_app.config.get("EXPENSE_CATEGORY_SUPPLIER_PURCHASE", "Compra Proveedores")


def _as_date(key: str, value) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise ValidationError(f"{key} must be a YYYY-MM-DD date")


# =============================================================================
# SUPPLIERS
# =============================================================================

def add_supplier(patch: dict, actor: Actor) -> Supplier:
    require_capability(actor, "MANAGE_SUPPLIERS")
    clean = validate_payload(model=Supplier, payload=patch, policy=SUPPLIER_POLICY, partial=False)

    supplier = Supplier(**clean)
    db.session.add(supplier)
    db.session.commit()
    logger.info("Supplier created: id=%s name=%r", supplier.id, supplier.name)
    return supplier


def update_supplier(supplier_id: int, patch: dict, actor: Actor) -> Supplier:
    require_capability(actor, "MANAGE_SUPPLIERS")
    clean = validate_payload(model=Supplier, payload=patch, policy=SUPPLIER_POLICY, partial=True)

    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier:
        raise SupplierError("Supplier not found", not_found=True)

    for key, value in clean.items():
        setattr(supplier, key, value)
    db.session.commit()
    return supplier


def delete_supplier(supplier_id: int, actor: Actor) -> None:
    """Refused while the supplier has purchases."""
    require_capability(actor, "MANAGE_SUPPLIERS")

    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier:
        raise SupplierError("Supplier not found", not_found=True)

    count = db.session.query(Purchase).filter_by(supplier_id=supplier_id).count()
    if count:
        raise SupplierError(
            "Supplier has purchases; delete them first",
            details={"purchases": count},
        )

    db.session.delete(supplier)
    db.session.commit()


def get_supplier(supplier_id: int) -> Supplier | None:
    return db.session.query(Supplier).filter_by(id=supplier_id).first()


def list_suppliers() -> list[Supplier]:
    return db.session.query(Supplier).order_by(Supplier.name.asc(), Supplier.id.asc()).all()


# =============================================================================
# PURCHASES
# =============================================================================

def add_purchase(
    supplier_id: int,
    invoice_number: str,
    item_count: int,
    total_amount_cents: int,
    payment_type: str,
    actor: Actor,
    purchase_date=None,
    due_date=None,
    branch_id: int | None = None,
) -> Purchase:
    """
    Record a supplier invoice.

    contado: the linked Expense, its ledger entry and the expense adjustment
    are written in the same transaction; the purchase is paid.
    credito: due_date is required; nothing touches the cash ledger yet.

    Branch: explicit, active, single assignment, then main branch.
    """
    invoice_number = require_text("invoice_number", invoice_number)
    item_count = coerce_int("item_count", item_count if item_count is not None else 0)
    if item_count < 0:
        raise ValidationError("item_count must be >= 0")
    amount = validate_amount_cents("total_amount_cents", total_amount_cents)
    if payment_type not in PURCHASE_PAYMENT_TYPES:
        raise ValidationError(f"payment_type must be one of: {', '.join(PURCHASE_PAYMENT_TYPES)}")

    purchased_on = _as_date("purchase_date", purchase_date) or utcnow().date()
    due_on = _as_date("due_date", due_date)
    if payment_type == PAYMENT_TYPE_CREDITO:
        if due_on is None:
            raise ValidationError("due_date is required for credito purchases")
        if due_on < purchased_on:
            raise ValidationError("due_date cannot be before purchase_date")
    else:
        due_on = None

    branch_id = resolve_branch_id(actor, branch_id, fallback_to_main=True)
    require_capability(actor, "MANAGE_PURCHASES", branch_id)
    category = _supplier_purchase_category()

    def _op():
        supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
        if not supplier:
            raise PurchaseError("Supplier not found", not_found=True)

        is_contado = payment_type == PAYMENT_TYPE_CONTADO
        purchase = Purchase(
            supplier_id=supplier.id,
            branch_id=branch_id,
            invoice_number=invoice_number,
            item_count=item_count,
            total_amount_cents=amount,
            payment_type=payment_type,
            purchase_date=purchased_on,
            due_date=due_on,
            is_paid=is_contado,
            payment_date=utcnow() if is_contado else None,
            user_uid=actor.uid,
            user_name=actor.display_name,
            timestamp=utcnow(),
        )
        db.session.add(purchase)
        db.session.flush()

        if is_contado:
            create_expense_in_transaction(
                branch_id=branch_id,
                concept=f"Compra a Proveedor: {supplier.name} (Factura: {invoice_number})",
                amount_cents=amount,
                category=category,
                actor=actor,
                purchase_id=purchase.id,
            )

        db.session.commit()
        return purchase

    purchase = run_with_retry(_op)
    logger.info(
        "Purchase %s (%s) from supplier %s: %s cents",
        purchase.id, payment_type, supplier_id, amount,
    )
    return purchase


def mark_purchase_paid(purchase_id: int, actor: Actor, branch_id: int | None = None) -> Purchase:
    """
    Settle a credito purchase once; the payment Expense leaves the drawer of
    the branch the purchase was recorded at, unless a branch is given.
    """
    if branch_id is None:
        recorded = get_purchase(purchase_id)
        if not recorded:
            raise PurchaseError("Purchase not found", not_found=True)
        branch_id = recorded.branch_id
    branch_id = resolve_branch_id(actor, branch_id, fallback_to_main=True)
    require_capability(actor, "PAY_PURCHASES", branch_id)
    category = _supplier_purchase_category()

    def _op():
        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if not purchase:
            raise PurchaseError("Purchase not found", not_found=True)
        if purchase.payment_type != PAYMENT_TYPE_CREDITO:
            raise PurchaseError("Only credito purchases can be marked as paid")
        if purchase.is_paid:
            raise PurchaseError("Purchase is already paid")

        purchase.is_paid = True
        purchase.payment_date = utcnow()

        create_expense_in_transaction(
            branch_id=branch_id,
            concept=f"Pago a Proveedor: {purchase.supplier.name} (Factura: {purchase.invoice_number})",
            amount_cents=purchase.total_amount_cents,
            category=category,
            actor=actor,
            purchase_id=purchase.id,
        )

        db.session.commit()
        return purchase

    purchase = run_with_retry(_op)
    logger.info("Purchase %s paid from branch %s by %s", purchase_id, branch_id, actor.uid)
    return purchase


def update_purchase(purchase_id: int, patch: dict, actor: Actor) -> Purchase:
    """
    Edit purchase metadata.

    Amount and payment type are frozen once a linked expense exists.
    A purchase can only become contado by being paid; credito needs a due date.
    """
    clean = validate_payload(model=Purchase, payload=patch, policy=PURCHASE_UPDATE_POLICY, partial=True)
    if "total_amount_cents" in clean:
        clean["total_amount_cents"] = validate_amount_cents("total_amount_cents", clean["total_amount_cents"])
    if "item_count" in clean and clean["item_count"] is not None and clean["item_count"] < 0:
        raise ValidationError("item_count must be >= 0")
    if "payment_type" in clean and clean["payment_type"] not in PURCHASE_PAYMENT_TYPES:
        raise ValidationError(f"payment_type must be one of: {', '.join(PURCHASE_PAYMENT_TYPES)}")

    def _op():
        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if not purchase:
            raise PurchaseError("Purchase not found", not_found=True)

        require_capability(actor, "MANAGE_PURCHASES", purchase.branch_id)

        amount_changes = clean.get("total_amount_cents", purchase.total_amount_cents) != purchase.total_amount_cents
        type_changes = clean.get("payment_type", purchase.payment_type) != purchase.payment_type

        if amount_changes or type_changes:
            linked = db.session.query(Expense.id).filter_by(purchase_id=purchase.id).first()
            if linked is not None:
                raise PurchaseError("Amount and payment type cannot change once the purchase has been paid")
            if clean.get("payment_type") == PAYMENT_TYPE_CONTADO:
                raise PurchaseError("Mark the purchase as paid instead of switching it to contado")

        for key, value in clean.items():
            setattr(purchase, key, value)

        if purchase.payment_type == PAYMENT_TYPE_CREDITO:
            if purchase.due_date is None:
                raise ValidationError("due_date is required for credito purchases")
            if purchase.due_date < purchase.purchase_date:
                raise ValidationError("due_date cannot be before purchase_date")

        db.session.commit()
        return purchase

    return run_with_retry(_op)


def delete_purchase(purchase_id: int, actor: Actor) -> None:
    """Delete a purchase with every linked expense, reversing their ledger effect."""
    def _op():
        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if not purchase:
            raise PurchaseError("Purchase not found", not_found=True)

        require_capability(actor, "MANAGE_PURCHASES", purchase.branch_id)

        linked = db.session.query(Expense).filter_by(purchase_id=purchase.id).all()
        for expense in linked:
            reverse_expense_in_transaction(expense, actor)
        db.session.flush()

        db.session.delete(purchase)
        db.session.commit()
        return len(linked)

    removed = run_with_retry(_op)
    logger.info("Purchase %s deleted with %d linked expenses by %s", purchase_id, removed, actor.uid)


def get_purchase(purchase_id: int) -> Purchase | None:
    return db.session.query(Purchase).filter_by(id=purchase_id).first()


def _purchases_query(session, supplier_id=None):
    query = session.query(Purchase)
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    return query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc())


def list_purchases(supplier_id: int | None = None) -> list[Purchase]:
    return _purchases_query(db.session, supplier_id).all()


def get_due_purchases(as_of: date | None = None) -> list[Purchase]:
    """Unpaid credito purchases due on or before `as_of` (default: today)."""
    as_of = as_of or utcnow().date()
    return (
        db.session.query(Purchase)
        .filter(
            Purchase.payment_type == PAYMENT_TYPE_CREDITO,
            Purchase.is_paid.is_(False),
            Purchase.due_date <= as_of,
        )
        .order_by(Purchase.due_date.asc(), Purchase.id.asc())
        .all()
    )


def on_supplier_purchases_update(callback, supplier_id: int | None = None):
    def _fetch(session):
        return [p.to_dict() for p in _purchases_query(session, supplier_id).all()]

    return live_query_service.subscribe(("purchases", "suppliers"), _fetch, callback)
