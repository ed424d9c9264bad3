# Overview: Flask API routes for suppliers and their purchase invoices.

"""
Supplier and Purchase API Routes

WHY: Supplier invoices drive cash out of the register. A contado purchase is
paid on the spot; a credito purchase is paid later against its due date.
Either way the payment is an expense booked on the branch's open session.

SECURITY:
- VIEW_SUPPLIERS to read suppliers and purchases
- MANAGE_SUPPLIERS for the supplier directory
- MANAGE_PURCHASES to record invoices; PAY_PURCHASES to settle credito ones
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import body_int, json_body, require_auth
from ..services import supplier_service
from ..services.permission_service import require_capability
from ..time_utils import parse_iso_date
from ..validation import ValidationError


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")
purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


# =============================================================================
# SUPPLIERS
# =============================================================================

@suppliers_bp.get("")
@suppliers_bp.get("/")
@require_auth
def list_suppliers_route():
    require_capability(g.actor, "VIEW_SUPPLIERS")
    return jsonify([s.to_dict() for s in supplier_service.list_suppliers()]), 200


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier_route(supplier_id: int):
    require_capability(g.actor, "VIEW_SUPPLIERS")
    supplier = supplier_service.get_supplier(supplier_id)
    if not supplier:
        return jsonify({"error": "Supplier not found"}), 404
    return jsonify(supplier.to_dict()), 200


@suppliers_bp.post("")
@suppliers_bp.post("/")
@require_auth
def create_supplier_route():
    supplier = supplier_service.add_supplier(json_body(), g.actor)
    return jsonify(supplier.to_dict()), 201


@suppliers_bp.patch("/<int:supplier_id>")
@require_auth
def update_supplier_route(supplier_id: int):
    supplier = supplier_service.update_supplier(supplier_id, json_body(), g.actor)
    return jsonify(supplier.to_dict()), 200


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
def delete_supplier_route(supplier_id: int):
    supplier_service.delete_supplier(supplier_id, g.actor)
    return jsonify({"message": "Supplier deleted"}), 200


@suppliers_bp.get("/<int:supplier_id>/purchases")
@require_auth
def list_supplier_purchases_route(supplier_id: int):
    require_capability(g.actor, "VIEW_SUPPLIERS")
    purchases = supplier_service.list_purchases(supplier_id)
    return jsonify([p.to_dict() for p in purchases]), 200


# =============================================================================
# PURCHASES
# =============================================================================

@purchases_bp.get("")
@purchases_bp.get("/")
@require_auth
def list_purchases_route():
    require_capability(g.actor, "VIEW_SUPPLIERS")
    purchases = supplier_service.list_purchases(request.args.get("supplier_id", type=int))
    return jsonify([p.to_dict() for p in purchases]), 200


@purchases_bp.get("/due")
@require_auth
def due_purchases_route():
    """Unpaid credito purchases due on or before ?as_of=YYYY-MM-DD (default today)."""
    require_capability(g.actor, "VIEW_SUPPLIERS")
    try:
        as_of_date = parse_iso_date(request.args.get("as_of"))
    except ValueError:
        raise ValidationError("as_of must be a YYYY-MM-DD date")
    purchases = supplier_service.get_due_purchases(as_of_date)
    return jsonify([p.to_dict() for p in purchases]), 200


@purchases_bp.get("/<int:purchase_id>")
@require_auth
def get_purchase_route(purchase_id: int):
    require_capability(g.actor, "VIEW_SUPPLIERS")
    purchase = supplier_service.get_purchase(purchase_id)
    if not purchase:
        return jsonify({"error": "Purchase not found"}), 404
    return jsonify(purchase.to_dict()), 200


@purchases_bp.post("")
@purchases_bp.post("/")
@require_auth
def create_purchase_route():
    """
    Request body:
    {
        "supplier_id": 1,
        "invoice_number": "F-1001",
        "item_count": 24,
        "total_amount_cents": 150000,
        "payment_type": "contado" | "credito",
        "purchase_date": "2024-05-01",  (optional; default today)
        "due_date": "2024-05-31",  (credito only)
        "branch_id": 1  (optional; branch whose register pays)
    }
    """
    data = json_body()
    purchase = supplier_service.add_purchase(
        supplier_id=body_int(data, "supplier_id"),
        invoice_number=data.get("invoice_number"),
        item_count=data.get("item_count"),
        total_amount_cents=data.get("total_amount_cents"),
        payment_type=data.get("payment_type"),
        actor=g.actor,
        purchase_date=data.get("purchase_date"),
        due_date=data.get("due_date"),
        branch_id=body_int(data, "branch_id"),
    )
    return jsonify({"purchase": purchase.to_dict()}), 201


@purchases_bp.post("/<int:purchase_id>/pay")
@require_auth
def pay_purchase_route(purchase_id: int):
    data = json_body(required=False)
    purchase = supplier_service.mark_purchase_paid(purchase_id, g.actor, branch_id=body_int(data, "branch_id"))
    return jsonify({"purchase": purchase.to_dict()}), 200


@purchases_bp.patch("/<int:purchase_id>")
@require_auth
def update_purchase_route(purchase_id: int):
    purchase = supplier_service.update_purchase(purchase_id, json_body(), g.actor)
    return jsonify({"purchase": purchase.to_dict()}), 200


@purchases_bp.delete("/<int:purchase_id>")
@require_auth
def delete_purchase_route(purchase_id: int):
    supplier_service.delete_purchase(purchase_id, g.actor)
    return jsonify({"message": "Purchase deleted"}), 200
