# Overview: Flask API routes for user profiles and branch assignments.

from flask import Blueprint, g, jsonify

from ..decorators import json_body, require_auth
from ..services import user_service
from ..services.permission_service import require_capability


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@users_bp.get("/")
@require_auth
def list_users_route():
    require_capability(g.actor, "MANAGE_USERS")
    return jsonify([u.to_dict() for u in user_service.list_users()]), 200


@users_bp.get("/<string:uid>")
@require_auth
def get_user_route(uid: str):
    require_capability(g.actor, "MANAGE_USERS")
    user = user_service.get_user(uid)
    if not user:
        return jsonify({"error": "User not found"}), 404
    return jsonify(user.to_dict()), 200


@users_bp.post("")
@users_bp.post("/")
@require_auth
def create_user_route():
    """
    Register a profile for an identity-provider uid.

    Request body:
    {
        "uid": "firebase-uid",
        "display_name": "Ana Pérez",
        "role": "CASHIER",
        "email": "ana@example.com"  (optional)
    }
    """
    data = json_body()
    user = user_service.create_user(
        uid=data.get("uid"),
        display_name=data.get("display_name"),
        role=data.get("role"),
        email=data.get("email"),
        actor=g.actor,
    )
    return jsonify(user.to_dict()), 201


@users_bp.patch("/<string:uid>")
@require_auth
def update_user_route(uid: str):
    user = user_service.update_user(uid, json_body(), actor=g.actor)
    return jsonify(user.to_dict()), 200


@users_bp.put("/<string:uid>/branches/<int:branch_id>")
@require_auth
def assign_branch_route(uid: str, branch_id: int):
    """Request body: {"role": "CASHIER"}"""
    data = json_body()
    assignment = user_service.assign_branch(uid, branch_id, data.get("role"), actor=g.actor)
    return jsonify(assignment.to_dict()), 200


@users_bp.delete("/<string:uid>/branches/<int:branch_id>")
@require_auth
def unassign_branch_route(uid: str, branch_id: int):
    if not user_service.unassign_branch(uid, branch_id, actor=g.actor):
        return jsonify({"error": "Assignment not found"}), 404
    return jsonify({"message": "Assignment removed"}), 200
