"""
ConsultFlow
Blueprint registry and shared request helpers.

Every API blueprint calls ``register_error_handlers`` once so service
exceptions render the same JSON error shape everywhere:

    {"error": "<message>", "code": "<E.*>", "details": {...}}
"""

import logging

from flask import g, jsonify, request
from werkzeug.exceptions import HTTPException

from consultflow.core.exceptions import (
    ConflictError,
    ExecutionError,
    FunnelTransitionDenied,
    NotFoundError,
    PermissionDenied,
    PhaseAlreadyApproved,
    ValidationError,
)
from consultflow.integrations.object_storage import StorageError
from consultflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_tenant_id() -> int:
    """Tenant resolved by the tenant context middleware."""
    return g.tenant_id


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_error_handlers(bp) -> None:
    """Map service exceptions to HTTP responses for one blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @bp.errorhandler(FunnelTransitionDenied)
    def _handle_gate(error: FunnelTransitionDenied):
        return api_error(E.GATE_BLOCKED, str(error), details=error.details)

    @bp.errorhandler(PhaseAlreadyApproved)
    def _handle_already_approved(error: PhaseAlreadyApproved):
        return api_error(E.ALREADY_APPROVED, str(error), details=error.details)

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error),
                         details={"field": error.field, "value": error.value})

    @bp.errorhandler(PermissionDenied)
    def _handle_forbidden(error: PermissionDenied):
        return api_error(E.FORBIDDEN, str(error), details={"action": error.action})

    @bp.errorhandler(ExecutionError)
    def _handle_execution(error: ExecutionError):
        return api_error(E.EXECUTION_FAILED, str(error), details={
            "execution_id": error.execution_id,
            "upstream_status": error.status_code,
        })

    @bp.errorhandler(StorageError)
    def _handle_storage(error: StorageError):
        logger.warning("Storage error on %s: %s", request.path, error)
        return api_error(E.NOT_FOUND, "File not found")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description or error.name}), error.code
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
