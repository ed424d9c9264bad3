# Overview: Flask API routes for expenses operations; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import body_int, json_body, query_branch_id, query_date_range, require_auth
from ..services import expense_service
from ..services.permission_service import require_capability, scoped_branch_id


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.post("")
@expenses_bp.post("/")
@require_auth
def create_expense_route():
    """
    Request body:
    {
        "concept": "Papelería",
        "amount_cents": 3000,
        "category": "Insumos",
        "branch_id": 1  (optional)
    }
    """
    data = json_body()
    expense = expense_service.add_expense(
        branch_id=body_int(data, "branch_id"),
        concept=data.get("concept"),
        amount_cents=data.get("amount_cents"),
        category=data.get("category"),
        actor=g.actor,
    )
    return jsonify({"expense": expense.to_dict()}), 201


@expenses_bp.get("")
@expenses_bp.get("/")
@require_auth
def list_expenses_route():
    branch_id = scoped_branch_id(g.actor, query_branch_id())
    require_capability(g.actor, "VIEW_EXPENSES", branch_id)
    start, end = query_date_range()
    expenses = expense_service.list_expenses(branch_id, start, end, request.args.get("category"))
    return jsonify([e.to_dict() for e in expenses]), 200


@expenses_bp.get("/<int:expense_id>")
@require_auth
def get_expense_route(expense_id: int):
    expense = expense_service.get_expense(expense_id)
    if not expense:
        return jsonify({"error": "Expense not found"}), 404
    require_capability(g.actor, "VIEW_EXPENSES", expense.branch_id)
    return jsonify({"expense": expense.to_dict()}), 200


@expenses_bp.patch("/<int:expense_id>")
@require_auth
def update_expense_route(expense_id: int):
    expense = expense_service.update_expense(expense_id, json_body(), g.actor)
    return jsonify({"expense": expense.to_dict()}), 200


@expenses_bp.delete("/<int:expense_id>")
@require_auth
def delete_expense_route(expense_id: int):
    expense_service.delete_expense(expense_id, g.actor)
    return jsonify({"message": "Expense deleted"}), 200


@expenses_bp.post("/bulk-delete")
@require_auth
def bulk_delete_expenses_route():
    data = json_body()
    result = expense_service.delete_expenses(data.get("ids") or [], g.actor)
    return jsonify(result.to_dict()), 200
