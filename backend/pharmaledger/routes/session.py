# Overview: Flask API routes for bearer sessions; parses input and returns JSON responses.

"""
Session API Routes

WHY: The identity provider authenticates people outside this service. Its
bridge exchanges a verified uid for a bearer token here; the client then
picks the branch it works at for the rest of the session.

SECURITY:
- POST /api/session requires the X-Identity-Bridge-Secret header matching
  IDENTITY_BRIDGE_SECRET; with no secret configured the endpoint is off
- Only the token hash is stored; the plaintext is returned once
"""

import hmac

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import bearer_token, body_int, json_body, require_auth
from ..services import session_service
from ..services.permission_service import get_actor_capabilities
from ..services.session_service import SessionError
from ..time_utils import to_utc_z


session_bp = Blueprint("session", __name__, url_prefix="/api/session")


def _bridge_authorized() -> bool:
    secret = current_app.config.get("IDENTITY_BRIDGE_SECRET")
    if not secret:
        return False
    supplied = request.headers.get("X-Identity-Bridge-Secret", "")
    return hmac.compare_digest(supplied.encode("utf-8"), secret.encode("utf-8"))


def _session_payload(context_user, session, actor) -> dict:
    return {
        "user": context_user.to_dict(),
        "active_branch_id": session.active_branch_id,
        "expires_at": to_utc_z(session.expires_at),
        "capabilities": sorted(get_actor_capabilities(actor, session.active_branch_id)),
    }


@session_bp.post("")
@session_bp.post("/")
def create_session_route():
    """
    Issue a bearer token for a uid verified by the identity provider.

    Request body:
    {
        "uid": "firebase-uid",
        "branch_id": 1  (optional)
    }
    """
    if not _bridge_authorized():
        return jsonify({"error": "Identity bridge not authorized"}), 403

    data = json_body()
    try:
        session, token = session_service.create_session(data.get("uid"), body_int(data, "branch_id"))
    except SessionError as exc:
        return jsonify({"error": str(exc)}), 401

    current_app.logger.info("Session created via identity bridge for uid=%s", data.get("uid"))
    return jsonify({
        "token": token,
        "expires_at": to_utc_z(session.expires_at),
        "active_branch_id": session.active_branch_id,
    }), 201


@session_bp.get("")
@session_bp.get("/")
@require_auth
def current_session_route():
    context = g.session_context
    return jsonify(_session_payload(context.user, context.session, context.actor)), 200


@session_bp.put("/branch")
@require_auth
def select_branch_route():
    """Select the active branch; {"branch_id": null} clears it."""
    data = json_body()
    try:
        session = session_service.set_active_branch(bearer_token(), body_int(data, "branch_id"))
    except SessionError as exc:
        return jsonify({"error": str(exc)}), 400

    # Rebuild the actor with the new branch for the capability list
    context = session_service.validate_session(bearer_token())
    return jsonify(_session_payload(context.user, session, context.actor)), 200


@session_bp.delete("")
@session_bp.delete("/")
@require_auth
def logout_route():
    session_service.revoke_session(bearer_token())
    return jsonify({"message": "Logged out"}), 200
