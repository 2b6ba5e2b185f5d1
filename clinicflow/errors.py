"""
Exception hierarchy for the automation core.

The HTTP layer maps each class to a status code and error code
(see clinicflow.main). Collaborator errors never reach the HTTP layer:
the step executor turns them into failed step outcomes.
"""
from typing import Any, Dict, List, Optional


class AutomationError(Exception):
    """Base error for the automation core."""

    code = "INTERNAL"
    status_code = 500

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundError(AutomationError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found", [{"path": entity, "msg": entity_id}])
        self.entity = entity
        self.entity_id = entity_id


class TenantAccessError(AutomationError):
    """Raised when an org tries to read or mutate another org's record."""

    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} belongs to another organization", [{"path": entity, "msg": entity_id}])
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransitionError(AutomationError):
    code = "CONFLICT"
    status_code = 409

    def __init__(self, enrollment_id: str, current: str, target: str):
        super().__init__(
            f"enrollment {enrollment_id} cannot move from {current} to {target}",
            [{"path": "current_status", "msg": f"{current} -> {target}"}],
        )
        self.current = current
        self.target = target


class WorkflowInactiveError(AutomationError):
    code = "CONFLICT"
    status_code = 409

    def __init__(self, workflow_id: str, status: str):
        super().__init__(f"workflow {workflow_id} is {status}; only active workflows accept enrollments")


class ScheduledActionConflictError(AutomationError):
    code = "CONFLICT"
    status_code = 409


class WorkflowValidationError(AutomationError):
    code = "VALIDATION"
    status_code = 422


class UnknownScheduledActionError(AutomationError):
    pass


# --- collaborator errors (become failed step outcomes) ---

class CollaboratorError(AutomationError):
    """A collaborator reported a failure for one step."""


class MessageDispatchError(CollaboratorError):
    pass


class ClientRecordError(CollaboratorError):
    pass


class CustomActionError(CollaboratorError):
    pass
