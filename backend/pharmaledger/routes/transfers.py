# Overview: Flask API routes for stock transfers; parses input and returns JSON responses.

"""
Stock Transfer API Routes

WHY: Central stock (Product.current_stock) is moved to branch shelves
(BranchStock) in one all-or-nothing transaction, leaving an audit record.

SECURITY:
- TRANSFER_STOCK at the target branch (checked in transfer_service)
- VIEW_INVENTORY to read branch stock and transfer history
"""

from flask import Blueprint, g, jsonify

from ..decorators import body_int, json_body, query_branch_id, require_auth
from ..services import transfer_service
from ..services.permission_service import require_capability, scoped_branch_id


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.post("")
@transfers_bp.post("/")
@require_auth
def create_transfer():
    """
    Request body:
    {
        "target_branch_id": 2,
        "items": [{"product_id": 1, "quantity": 5}]
    }
    """
    data = json_body()
    transfer = transfer_service.transfer_stock(body_int(data, "target_branch_id"), data.get("items"), g.actor)
    return jsonify(transfer.to_dict()), 201


@transfers_bp.get("")
@transfers_bp.get("/")
@require_auth
def list_transfers():
    branch_id = scoped_branch_id(g.actor, query_branch_id())
    require_capability(g.actor, "VIEW_INVENTORY", branch_id)
    transfers = transfer_service.list_transfers(branch_id)
    return jsonify([t.to_dict() for t in transfers]), 200


@transfers_bp.get("/branches/<int:branch_id>/stock")
@require_auth
def branch_stock(branch_id: int):
    require_capability(g.actor, "VIEW_INVENTORY", branch_id)
    rows = transfer_service.get_branch_stock(branch_id)
    return jsonify([row.to_dict() for row in rows]), 200
