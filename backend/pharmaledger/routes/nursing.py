# Overview: Flask API routes for nursing service records; parses input and returns JSON responses.

"""
Nursing Service API Routes

DESIGN:
- A nursing service is billed as register income at the branch
- The cost is fixed once recorded; corrections are delete + re-record
- Deleting reverses the income (DELETE_NURSING_RECORD, admin only)
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import body_int, json_body, query_branch_id, query_date_range, require_auth
from ..models.expenses import NURSING_SERVICE_TYPES
from ..services import nursing_service
from ..services.permission_service import require_capability, scoped_branch_id


nursing_bp = Blueprint("nursing", __name__, url_prefix="/api/nursing")


@nursing_bp.get("/service-types")
@require_auth
def service_types_route():
    return jsonify(list(NURSING_SERVICE_TYPES)), 200


@nursing_bp.post("")
@nursing_bp.post("/")
@require_auth
def create_record_route():
    """
    Request body:
    {
        "service_type": "Inyectable",
        "patient_name": "María López",
        "cost_cents": 8000,
        "notes": "...",  (optional)
        "branch_id": 1  (optional)
    }
    """
    data = json_body()
    record = nursing_service.create_nursing_record(
        branch_id=body_int(data, "branch_id"),
        service_type=data.get("service_type"),
        patient_name=data.get("patient_name"),
        cost_cents=data.get("cost_cents"),
        actor=g.actor,
        notes=data.get("notes"),
    )
    return jsonify({"record": record.to_dict()}), 201


@nursing_bp.get("")
@nursing_bp.get("/")
@require_auth
def list_records_route():
    branch_id = scoped_branch_id(g.actor, query_branch_id())
    require_capability(g.actor, "RECORD_NURSING_SERVICE", branch_id)
    start, end = query_date_range()
    records = nursing_service.list_nursing_records(branch_id, start, end, request.args.get("service_type"))
    return jsonify([r.to_dict() for r in records]), 200


@nursing_bp.patch("/<int:record_id>")
@require_auth
def update_record_route(record_id: int):
    record = nursing_service.update_nursing_record(record_id, json_body(), g.actor)
    return jsonify({"record": record.to_dict()}), 200


@nursing_bp.delete("/<int:record_id>")
@require_auth
def delete_record_route(record_id: int):
    nursing_service.delete_nursing_record(record_id, g.actor)
    return jsonify({"message": "Record deleted"}), 200


@nursing_bp.post("/bulk-delete")
@require_auth
def bulk_delete_records_route():
    data = json_body()
    result = nursing_service.delete_nursing_records(data.get("ids") or [], g.actor)
    return jsonify(result.to_dict()), 200
