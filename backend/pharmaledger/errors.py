# Overview: Base class for service-level domain errors and their JSON rendering.

from __future__ import annotations

from flask import jsonify


class DomainError(Exception):
    """
    Invariant violation detected inside a service operation.

    The transaction is rolled back before this propagates. `details` carries
    structured context for clients (e.g. per-item stock shortfalls);
    `not_found` marks a missing target record.
    """
    def __init__(self, message: str, details: dict | None = None, *, not_found: bool = False):
        super().__init__(message)
        self.details = details or {}
        self.not_found = not_found


def domain_error_response(exc: DomainError):
    body = {"error": str(exc)}
    if exc.details:
        body["details"] = exc.details
    return jsonify(body), 404 if exc.not_found else 400
