from typing import Optional

from fastapi import APIRouter, Depends

from ..automation import AutomationService
from ..deps import Principal, auth_bearer, get_service
from ..schemas import ExecutionLogPage

router = APIRouter()


@router.get("/execution-logs", response_model=ExecutionLogPage)
def query_execution_logs(workflow_id: Optional[str] = None, client_id: Optional[str] = None,
                         enrollment_id: Optional[str] = None, cursor: Optional[str] = None,
                         limit: Optional[int] = None, user: Principal = Depends(auth_bearer),
                         service: AutomationService = Depends(get_service)):
    """Newest first; pass ``next_cursor`` back as ``cursor`` for the next page."""
    return service.query_execution_logs(user.org_id, workflow_id, client_id, enrollment_id, cursor, limit)
