from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ..automation import AutomationService
from ..deps import Principal, auth_bearer, get_service
from ..models import ScheduledAction, ScheduledActionStatus
from ..schemas import ActionStats, ProcessReport, RescheduleDTO

router = APIRouter()


@router.get("/scheduled-actions", response_model=List[ScheduledAction])
def list_scheduled_actions(status_filter: Optional[ScheduledActionStatus] = Query(default=None, alias="status"),
                           limit: Optional[int] = None, user: Principal = Depends(auth_bearer),
                           service: AutomationService = Depends(get_service)):
    return service.list_scheduled_actions(user.org_id, status_filter, limit)


@router.get("/scheduled-actions/stats", response_model=ActionStats)
def scheduled_action_stats(user: Principal = Depends(auth_bearer),
                           service: AutomationService = Depends(get_service)):
    return service.scheduled_action_stats(user.org_id)


@router.post("/scheduled-actions:process", response_model=ProcessReport)
def process_due_actions(limit: Optional[int] = None, user: Principal = Depends(auth_bearer),
                        service: AutomationService = Depends(get_service)):
    # the worker processes every org; this endpoint only the caller's
    return service.process_pending_actions(limit, org_id=user.org_id)


@router.post("/scheduled-actions/{action_id}:reschedule", response_model=ScheduledAction)
def reschedule_action(action_id: str, body: RescheduleDTO, user: Principal = Depends(auth_bearer),
                      service: AutomationService = Depends(get_service)):
    return service.reschedule_action(user.org_id, action_id, body.scheduled_for)


@router.delete("/scheduled-actions/{action_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_scheduled_action(action_id: str, user: Principal = Depends(auth_bearer),
                            service: AutomationService = Depends(get_service)):
    service.cancel_scheduled_action(user.org_id, action_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
