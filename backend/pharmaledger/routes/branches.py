# Overview: Flask API routes for branches; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify

from ..decorators import json_body, require_auth
from ..services import branch_service


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


@branches_bp.get("")
@require_auth
def list_branches():
    branches = branch_service.list_branches()
    return jsonify([branch.to_dict() for branch in branches]), 200


@branches_bp.get("/main")
@require_auth
def get_main_branch():
    branch = branch_service.get_main_branch()
    if not branch:
        return jsonify({"error": "No branches exist"}), 404
    return jsonify(branch.to_dict()), 200


@branches_bp.get("/<int:branch_id>")
@require_auth
def get_branch(branch_id: int):
    branch = branch_service.get_branch(branch_id)
    if not branch:
        return jsonify({"error": "Branch not found"}), 404
    return jsonify(branch.to_dict()), 200


@branches_bp.post("")
@require_auth
def create_branch():
    data = json_body()
    branch = branch_service.create_branch(
        name=data.get("name"),
        address=data.get("address"),
        phone=data.get("phone"),
        actor=g.actor,
    )
    return jsonify(branch.to_dict()), 201


@branches_bp.patch("/<int:branch_id>")
@require_auth
def update_branch(branch_id: int):
    branch = branch_service.update_branch(branch_id, json_body(), g.actor)
    return jsonify(branch.to_dict()), 200


@branches_bp.post("/<int:branch_id>/promote")
@require_auth
def promote_branch(branch_id: int):
    branch = branch_service.promote_main_branch(branch_id, g.actor)
    return jsonify(branch.to_dict()), 200


@branches_bp.delete("/<int:branch_id>")
@require_auth
def delete_branch(branch_id: int):
    branch_service.delete_branch(branch_id, g.actor)
    return jsonify({"message": "Branch deleted"}), 200


@branches_bp.post("/assign-orphan-products")
@require_auth
def assign_orphan_products():
    count = branch_service.assign_orphan_products_to_main_branch(g.actor)
    return jsonify({"assigned": count}), 200
