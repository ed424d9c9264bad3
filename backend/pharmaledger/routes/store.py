# Overview: Public storefront routes; no session required.

"""
Storefront API Routes

WHY: Customers browse the catalog and place pickup orders online. Orders are
booked as pending online sales at the main branch; staff move them through
their status from the sales API.

SECURITY:
- Public endpoints: prices always come from the catalog, never the client
- Only products with stock are listed
"""

from flask import Blueprint, jsonify

from ..decorators import json_body
from ..services import products_service, sales_service


store_bp = Blueprint("store", __name__, url_prefix="/api/store")


@store_bp.get("/products")
def list_store_products():
    return jsonify(products_service.list_storefront_products()), 200


@store_bp.post("/orders")
def place_order():
    """
    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2}],
        "customer_name": "Luis Gómez",
        "customer_phone": "555-0100"
    }
    """
    data = json_body()
    sale = sales_service.place_online_order(
        items=data.get("items"),
        customer_name=data.get("customer_name"),
        customer_phone=data.get("customer_phone"),
    )
    return jsonify({"order": sale.to_dict()}), 201
