# Overview: Request decorators and request-parsing helpers for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service
from .time_utils import parse_report_bound
from .validation import ValidationError, coerce_int


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def json_body(required: bool = True) -> dict:
    """Request JSON object; {} when optional and absent."""
    data = request.get_json(silent=True)
    if data is None and not required:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def query_branch_id() -> int | None:
    return request.args.get("branch_id", type=int)


def body_int(data: dict, key: str) -> int | None:
    """Optional integer id from a JSON body; numeric strings are accepted."""
    value = data.get(key)
    if value is None:
        return None
    return coerce_int(key, value)


def query_date_range():
    """(start, end) from ?start=&end=; whole days include the end day."""
    try:
        start = parse_report_bound(request.args.get("start"))
        end = parse_report_bound(request.args.get("end"), end_of_day=True)
    except ValueError:
        raise ValidationError("start and end must be YYYY-MM-DD dates or ISO-8601 datetimes")
    return start, end


def require_auth(f):
    """
    Require a valid bearer session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated UserProfile
    - g.actor: Actor passed to every service operation
    - g.session_context: The full SessionContext object

    Returns 401 if the header is missing, or the token is invalid, expired,
    revoked, or belongs to a deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.actor = context.actor
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function
