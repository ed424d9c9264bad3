# Overview: Flask API routes for product lookup values (categories, presentations, concentrations).

from flask import Blueprint, g, jsonify

from ..decorators import json_body, require_auth
from ..services import lookup_service


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.get("/<string:kind>")
@require_auth
def list_values(kind: str):
    return jsonify(lookup_service.list_values(kind)), 200


@catalog_bp.post("/<string:kind>")
@require_auth
def add_value(kind: str):
    data = json_body()
    return jsonify(lookup_service.add_value(kind, data.get("name"), g.actor)), 201


@catalog_bp.delete("/<string:kind>/<int:value_id>")
@require_auth
def delete_value(kind: str, value_id: int):
    lookup_service.delete_value(kind, value_id, g.actor)
    return jsonify({"message": "Deleted"}), 200
