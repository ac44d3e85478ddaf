"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from consultflow.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Lead", resource_id=42)
    raise ValidationError("phase_number must be between 1 and 7", details={"phase_number": 9})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-tenant access attempts,
    so a lookup outside the caller's tenant never confirms the row exists.

    Args:
        resource: Human-readable model/entity name (e.g. "Lead", "ProjectPhase").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    The data was well-formed but violated a business rule (denied funnel
    transition, missing agent binding, nothing to approve, ...).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured breakdown for API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PermissionDenied(Exception):
    """Raised when the acting user lacks the capability an operation requires.

    Maps to HTTP 403.
    """

    def __init__(self, user_id, action: str, reason: str | None = None) -> None:
        self.user_id = user_id
        self.action = action
        self.reason = reason
        msg = f"User {user_id} may not {action}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


# ── Domain-specific validation errors ────────────────────────────────────────


class FunnelTransitionDenied(ValidationError):
    """A forward funnel move is blocked by an incomplete phase checklist."""

    def __init__(self, lead_id, current_phase: str, target_phase: str,
                 blocking_phase: str | None, blocking_label: str | None,
                 pending_items: list[str], reason: str | None = None) -> None:
        self.lead_id = lead_id
        self.current_phase = current_phase
        self.target_phase = target_phase
        self.blocking_phase = blocking_phase
        self.pending_items = list(pending_items)
        if blocking_phase:
            message = f'Complete the "{blocking_label or blocking_phase}" checklist before advancing'
            if pending_items:
                message += f". Pending: {', '.join(pending_items)}"
        else:
            message = reason or f"Cannot move from '{current_phase}' to '{target_phase}'"
        super().__init__(message, details={
            "current_phase": current_phase,
            "target_phase": target_phase,
            "blocking_phase": blocking_phase,
            "pending_items": self.pending_items,
        })


class AgentNotBound(ValidationError):
    """Execution was requested for a phase with no agent assigned."""

    def __init__(self, project_id, phase_number: int) -> None:
        self.project_id = project_id
        self.phase_number = phase_number
        super().__init__(
            "Bind an agent to this phase before executing it",
            details={"project_id": project_id, "phase_number": phase_number},
        )


class PhaseAlreadyApproved(ValidationError):
    """Approval requested for a phase that already carries an approval."""

    def __init__(self, project_id, phase_number: int, approved_by, approved_at) -> None:
        self.project_id = project_id
        self.phase_number = phase_number
        super().__init__(
            f"Phase {phase_number} is already approved; re-approval is not permitted",
            details={
                "project_id": project_id,
                "phase_number": phase_number,
                "approved_by": approved_by,
                "approved_at": approved_at.isoformat() if approved_at else None,
            },
        )


class ExecutionError(Exception):
    """An execution run failed after its run record was created.

    The run has already been marked ``failed`` when this is raised.

    Args:
        execution_id: The PhaseExecution that failed.
        message: Descriptive reason (upstream status, transport error, empty body).
        status_code: Upstream HTTP status when the failure was a non-2xx reply.
    """

    def __init__(self, execution_id: int | None, message: str,
                 status_code: int | None = None) -> None:
        self.execution_id = execution_id
        self.status_code = status_code
        super().__init__(message)
