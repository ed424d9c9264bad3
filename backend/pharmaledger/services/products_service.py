# backend/pharmaledger/services/products_service.py
"""
Product Catalog Service

STOCK: current_stock is set at creation and afterwards changes only through
sales (create/delete), stock transfers and restocks. A plain update that
tries to write it is rejected.

BARCODE: unique across the catalog. A pre-check gives a clean ConflictError;
the unique index catches the race between two concurrent inserts.
"""
from __future__ import annotations

import logging
from uuid import uuid4

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import DomainError
from ..models import Product
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    coerce_int,
    enforce_rules_product,
    validate_payload,
)
from .concurrency import lock_for_update, run_with_retry
from .permission_service import Actor, require_capability


logger = logging.getLogger("pharmaledger.products")

PRODUCT_FIELDS = {
    "barcode",
    "commercial_name",
    "generic_name",
    "category",
    "supplier",
    "laboratory",
    "presentation",
    "concentration",
    "selling_price_cents",
    "cost_price_cents",
    "current_stock",
    "min_stock",
    "branch_id",
    "expiration_date",
    "batch_number",
    "unit",
    "location",
}

CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS,
    required_on_create={"commercial_name", "category", "selling_price_cents"},
)

UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS - {"current_stock"},
)


class ProductError(DomainError):
    """Raised for product operation errors."""
    pass


def generate_barcode() -> str:
    return uuid4().hex[:12].upper()


def _barcode_taken(barcode: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Product.id).filter(Product.barcode == barcode)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def add_product(patch: dict, actor: Actor) -> dict:
    """
    Create a product.

    Missing barcode -> generated. Missing branch -> main branch.

    Raises:
        ValidationError: invalid fields
        ConflictError: barcode already in use
    """
    require_capability(actor, "MANAGE_PRODUCTS")
    clean = validate_payload(model=Product, payload=patch, policy=CREATE_POLICY, partial=False)
    enforce_rules_product(clean)

    if not clean.get("barcode"):
        clean["barcode"] = generate_barcode()
    clean.setdefault("current_stock", 0)
    clean.setdefault("min_stock", 0)
    clean.setdefault("cost_price_cents", 0)

    def _op():
        if _barcode_taken(clean["barcode"]):
            raise ConflictError(f"Barcode {clean['barcode']} already exists")

        if clean.get("branch_id") is None:
            from .branch_service import get_main_branch
            main = get_main_branch()
            clean["branch_id"] = main.id if main else None

        product = Product(**clean)
        db.session.add(product)
        db.session.commit()
        return product

    try:
        product = run_with_retry(_op)
    except IntegrityError as exc:
        raise ConflictError(f"Barcode {clean['barcode']} already exists") from exc

    logger.info("Product created: id=%s barcode=%s", product.id, product.barcode)
    return product.to_dict()


def update_product(product_id: int, patch: dict, actor: Actor) -> dict:
    """Update catalog fields. current_stock is not writable here."""
    require_capability(actor, "MANAGE_PRODUCTS")
    if isinstance(patch, dict) and "current_stock" in patch:
        raise ValidationError("current_stock changes only through sales, transfers and restocks")

    clean = validate_payload(model=Product, payload=patch, policy=UPDATE_POLICY, partial=True)
    enforce_rules_product(clean)
    if "barcode" in clean and not clean["barcode"]:
        raise ValidationError("barcode cannot be blank")

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise ProductError("Product not found", not_found=True)

        if "barcode" in clean and _barcode_taken(clean["barcode"], exclude_id=product_id):
            raise ConflictError(f"Barcode {clean['barcode']} already exists")

        for key, value in clean.items():
            setattr(product, key, value)

        db.session.commit()
        return product

    try:
        product = run_with_retry(_op)
    except IntegrityError as exc:
        raise ConflictError("Barcode already exists") from exc

    return product.to_dict()


def delete_product(product_id: int, actor: Actor) -> None:
    """
    Delete a product and its branch stock rows.

    Past sales keep their item snapshots; deleting one later restores stock
    only for products that still exist.
    """
    require_capability(actor, "MANAGE_PRODUCTS")

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise ProductError("Product not found", not_found=True)
        db.session.delete(product)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Product deleted: id=%s", product_id)


def get_product(product_id: int) -> dict | None:
    product = db.session.query(Product).filter_by(id=product_id).first()
    return product.to_dict() if product else None


def get_product_by_barcode(barcode: str) -> dict | None:
    """Point lookup used by the scanner input; None when unknown."""
    if not barcode or not barcode.strip():
        return None
    product = db.session.query(Product).filter_by(barcode=barcode.strip()).first()
    return product.to_dict() if product else None


def list_products(branch_id: int | None = None) -> list[dict]:
    query = db.session.query(Product)
    if branch_id is not None:
        query = query.filter_by(branch_id=branch_id)
    products = query.order_by(Product.commercial_name.asc(), Product.id.asc()).all()
    return [p.to_dict() for p in products]


def get_low_stock_products(branch_id: int | None = None) -> list[dict]:
    """
    Products at or below their minimum stock.

    Only products with a positive min_stock are candidates; the comparison
    between two columns is done here rather than in SQL.
    """
    query = db.session.query(Product).filter(Product.min_stock > 0)
    if branch_id is not None:
        query = query.filter_by(branch_id=branch_id)
    candidates = query.order_by(Product.commercial_name.asc()).all()
    return [p.to_dict() for p in candidates if p.current_stock <= p.min_stock]


def list_storefront_products() -> list[dict]:
    """Products shown in the public store: anything with central stock."""
    products = (
        db.session.query(Product)
        .filter(Product.current_stock > 0)
        .order_by(Product.commercial_name.asc(), Product.id.asc())
        .all()
    )
    return [
        {
            "id": p.id,
            "commercial_name": p.commercial_name,
            "generic_name": p.generic_name,
            "category": p.category,
            "presentation": p.presentation,
            "concentration": p.concentration,
            "selling_price_cents": p.selling_price_cents,
            "current_stock": p.current_stock,
        }
        for p in products
    ]


def aggregate_quantities(items, *, field: str = "quantity") -> dict[int, int]:
    """
    Validate [{product_id, quantity}] and sum quantities per product.

    Raises ValidationError for an empty list, missing ids or quantity <= 0.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    totals: dict[int, int] = {}
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{i}] must be an object")
        if item.get("product_id") is None:
            raise ValidationError(f"items[{i}].product_id is required")
        product_id = coerce_int(f"items[{i}].product_id", item.get("product_id"))
        if item.get(field) is None:
            raise ValidationError(f"items[{i}].{field} is required")
        quantity = coerce_int(f"items[{i}].{field}", item.get(field))
        if quantity <= 0:
            raise ValidationError(f"items[{i}].{field} must be > 0")
        totals[product_id] = totals.get(product_id, 0) + quantity
    return totals


def restock_products(items: list[dict], actor: Actor) -> list[dict]:
    """
    Atomically add received units to central stock.

    All-or-nothing: an unknown product aborts the whole restock.
    """
    require_capability(actor, "RESTOCK_PRODUCTS")
    quantities = aggregate_quantities(items)

    def _op():
        products = lock_for_update(
            db.session.query(Product).filter(Product.id.in_(quantities.keys()))
        ).all()
        by_id = {p.id: p for p in products}

        missing = sorted(pid for pid in quantities if pid not in by_id)
        if missing:
            raise ProductError("Products not found", details={"product_ids": missing})

        for product_id, quantity in quantities.items():
            by_id[product_id].current_stock += quantity

        db.session.commit()
        return [by_id[pid] for pid in quantities]

    updated = run_with_retry(_op)
    logger.info("Restocked %d products by %s", len(updated), actor.uid)
    return [p.to_dict() for p in updated]
