# Overview: Flask API routes for reports; read-only queries rendered as JSON.

from flask import Blueprint, g, jsonify, request

from ..decorators import query_branch_id, require_auth
from ..services import reporting_service
from ..services.permission_service import scoped_branch_id


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("")
@reports_bp.get("/")
@require_auth
def list_report_types():
    return jsonify(list(reporting_service.REPORT_TYPES)), 200


@reports_bp.get("/<string:report_type>")
@require_auth
def get_report(report_type: str):
    """
    GET /api/reports/sales?start=2024-05-01&end=2024-05-31&branch_id=1

    Dates are whole days; the end day is included.
    """
    branch_id = scoped_branch_id(g.actor, query_branch_id())
    report = reporting_service.get_report(
        report_type,
        request.args.get("start"),
        request.args.get("end"),
        branch_id=branch_id,
        actor=g.actor,
    )
    return jsonify(report), 200
