# Overview: Flask API routes for cash register sessions; parses input and returns JSON responses.

# backend/pharmaledger/routes/registers.py
"""
Cash Register API Routes

WHY: A register session is the accounting period every money movement of a
branch is booked against. Opening and closing bracket the cashier's shift;
the entry log is the audit trail the totals are reconciled against.

DESIGN:
- Session lifecycle: open -> close (immutable once closed)
- At most one open session per branch
- Totals change only through ledger movements booked by sales, expenses,
  nursing records and supplier purchases

SECURITY:
- OPEN_REGISTER / CLOSE_REGISTER at the branch
- CLOSE_ANY_REGISTER to close a session someone else opened
- VIEW_REGISTER to read sessions and entries
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import body_int, json_body, query_branch_id, require_auth
from ..services import register_service
from ..services.permission_service import require_capability, resolve_branch_id, scoped_branch_id


registers_bp = Blueprint("registers", __name__, url_prefix="/api/registers")


def _summary_or_404(summary_id: int):
    summary = register_service.get_summary(summary_id)
    if not summary:
        return None, (jsonify({"error": "Cash register session not found"}), 404)
    require_capability(g.actor, "VIEW_REGISTER", summary.branch_id)
    return summary, None


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

@registers_bp.post("/open")
@require_auth
def open_register_route():
    """
    Open the branch's register.

    Request body:
    {
        "opening_balance_cents": 10000,
        "branch_id": 1  (optional; defaults to the session's active branch)
    }
    """
    data = json_body()
    summary = register_service.open_register(
        opening_balance_cents=data.get("opening_balance_cents"),
        actor=g.actor,
        branch_id=body_int(data, "branch_id"),
    )
    return jsonify({"summary": summary.to_dict()}), 201


@registers_bp.post("/<int:summary_id>/close")
@require_auth
def close_register_route(summary_id: int):
    """
    Close with the counted cash.

    Request body:
    {
        "actual_balance_cents": 11500,
        "notes": "Faltante revisado"  (optional)
    }
    """
    data = json_body()
    summary = register_service.close_register(
        summary_id=summary_id,
        actual_balance_cents=data.get("actual_balance_cents"),
        actor=g.actor,
        branch_id=body_int(data, "branch_id"),
        notes=data.get("notes"),
    )
    return jsonify({"summary": summary.to_dict()}), 200


# =============================================================================
# READS
# =============================================================================

@registers_bp.get("/current")
@require_auth
def current_summary_route():
    """The open session of a branch, or {"summary": null}."""
    branch_id = resolve_branch_id(g.actor, query_branch_id())
    require_capability(g.actor, "VIEW_REGISTER", branch_id)
    summary = register_service.get_open_summary(branch_id)
    return jsonify({"summary": summary.to_dict() if summary else None}), 200


@registers_bp.get("")
@registers_bp.get("/")
@require_auth
def list_summaries_route():
    branch_id = scoped_branch_id(g.actor, query_branch_id())
    require_capability(g.actor, "VIEW_REGISTER", branch_id)
    summaries = register_service.list_summaries(branch_id, request.args.get("status"))
    return jsonify([s.to_dict() for s in summaries]), 200


@registers_bp.get("/<int:summary_id>")
@require_auth
def get_summary_route(summary_id: int):
    summary, error = _summary_or_404(summary_id)
    if error:
        return error
    return jsonify({"summary": summary.to_dict()}), 200


@registers_bp.get("/<int:summary_id>/entries")
@require_auth
def list_entries_route(summary_id: int):
    summary, error = _summary_or_404(summary_id)
    if error:
        return error
    entries = register_service.list_entries(summary.id)
    return jsonify([e.to_dict() for e in entries]), 200


@registers_bp.get("/<int:summary_id>/reconcile")
@require_auth
def reconcile_route(summary_id: int):
    """Stored totals against totals recomputed from the entry log."""
    summary, error = _summary_or_404(summary_id)
    if error:
        return error
    return jsonify(register_service.reconcile_summary(summary.id)), 200
