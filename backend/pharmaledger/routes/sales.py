# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales API Routes

DESIGN:
- POS checkout decrements branch stock and books the sale on the open
  register session in one transaction
- Deleting a sale restores stock and books the reversal
- Bulk delete runs one transaction per sale and reports per-item outcomes
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import body_int, json_body, query_branch_id, query_date_range, require_auth
from ..services import sales_service
from ..services.permission_service import require_capability, scoped_branch_id


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@sales_bp.post("/")
@require_auth
def create_sale_route():
    """
    Request body:
    {
        "branch_id": 1,  (optional; defaults to the active branch)
        "items": [{"product_id": 1, "quantity": 2, "unit_price_cents": 2500}],
        "total_discount_cents": 0,
        "final_total_cents": 5000,
        "payment_method": "efectivo"
    }
    """
    data = json_body()
    sale = sales_service.create_sale(
        branch_id=body_int(data, "branch_id"),
        items=data.get("items"),
        actor=g.actor,
        total_discount_cents=data.get("total_discount_cents", 0),
        final_total_cents=data.get("final_total_cents"),
        subtotal_cents=data.get("subtotal_cents"),
        payment_method=data.get("payment_method", "efectivo"),
        customer_name=data.get("customer_name"),
        customer_phone=data.get("customer_phone"),
    )
    return jsonify({"sale": sale.to_dict()}), 201


@sales_bp.get("")
@sales_bp.get("/")
@require_auth
def list_sales_route():
    branch_id = scoped_branch_id(g.actor, query_branch_id())
    require_capability(g.actor, "VIEW_SALES", branch_id)
    start, end = query_date_range()
    sales = sales_service.list_sales(
        branch_id=branch_id,
        start=start,
        end=end,
        channel=request.args.get("channel"),
        status=request.args.get("status"),
    )
    return jsonify([s.to_dict() for s in sales]), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    if not sale:
        return jsonify({"error": "Sale not found"}), 404
    require_capability(g.actor, "VIEW_SALES", sale.branch_id)
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.delete("/<int:sale_id>")
@require_auth
def delete_sale_route(sale_id: int):
    sales_service.delete_sale(sale_id, g.actor)
    return jsonify({"message": "Sale deleted"}), 200


@sales_bp.post("/bulk-delete")
@require_auth
def bulk_delete_sales_route():
    """Request body: {"ids": [1, 2, 3]}"""
    data = json_body()
    result = sales_service.delete_sales(data.get("ids") or [], g.actor)
    return jsonify(result.to_dict()), 200


@sales_bp.patch("/<int:sale_id>/status")
@require_auth
def update_sale_status_route(sale_id: int):
    """Online orders only: {"status": "processing"}"""
    data = json_body()
    sale = sales_service.update_sale_status(sale_id, data.get("status"), g.actor)
    return jsonify({"sale": sale.to_dict()}), 200
