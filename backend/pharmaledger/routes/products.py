# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product API Routes

DESIGN:
- Reads need VIEW_INVENTORY at the branch being read
- Writes are checked inside products_service (MANAGE_PRODUCTS,
  RESTOCK_PRODUCTS)
- current_stock changes only through restock, sales, transfers and deletes
"""

from flask import Blueprint, g, jsonify

from ..decorators import json_body, query_branch_id, require_auth
from ..services import products_service, transfer_service
from ..services.permission_service import require_capability, scoped_branch_id


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@products_bp.get("/")
@require_auth
def list_products():
    branch_id = scoped_branch_id(g.actor, query_branch_id())
    require_capability(g.actor, "VIEW_INVENTORY", branch_id)
    return jsonify(products_service.list_products(branch_id)), 200


@products_bp.get("/low-stock")
@require_auth
def low_stock_products():
    branch_id = scoped_branch_id(g.actor, query_branch_id())
    require_capability(g.actor, "VIEW_INVENTORY", branch_id)
    return jsonify(products_service.get_low_stock_products(branch_id)), 200


@products_bp.get("/barcode/<string:barcode>")
@require_auth
def get_product_by_barcode(barcode: str):
    require_capability(g.actor, "VIEW_INVENTORY")
    product = products_service.get_product_by_barcode(barcode)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(product), 200


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    require_capability(g.actor, "VIEW_INVENTORY")
    product = products_service.get_product(product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(product), 200


@products_bp.get("/<int:product_id>/stock")
@require_auth
def get_product_stock(product_id: int):
    """Central stock plus every branch's stock and the total."""
    require_capability(g.actor, "VIEW_INVENTORY")
    return jsonify(transfer_service.get_total_stock(product_id)), 200


@products_bp.post("")
@products_bp.post("/")
@require_auth
def create_product():
    product = products_service.add_product(json_body(), g.actor)
    return jsonify(product), 201


@products_bp.patch("/<int:product_id>")
@require_auth
def update_product(product_id: int):
    product = products_service.update_product(product_id, json_body(), g.actor)
    return jsonify(product), 200


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product(product_id: int):
    products_service.delete_product(product_id, g.actor)
    return jsonify({"message": "Product deleted"}), 200


@products_bp.post("/restock")
@require_auth
def restock_products():
    """
    Add received units to central stock.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 12}]
    }
    """
    data = json_body()
    products = products_service.restock_products(data.get("items"), g.actor)
    return jsonify(products), 200
