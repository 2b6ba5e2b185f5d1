from typing import List, Optional

from fastapi import APIRouter, Depends, status

from ..automation import AutomationService
from ..deps import Principal, auth_bearer, get_service
from ..errors import NotFoundError
from ..models import ScheduledAction, TriggerEvent
from ..schemas import AppointmentCompletionDTO, PipelineResult, TriggerEventView, TriggerStats

router = APIRouter()


@router.post("/triggers/appointment-completions", response_model=PipelineResult)
def appointment_completed(body: AppointmentCompletionDTO, user: Principal = Depends(auth_bearer),
                          service: AutomationService = Depends(get_service)):
    return service.process_appointment_completion(
        user.org_id, body.appointment_id, body.client_id, body.appointment_title, body.appointment_end_time,
    )


@router.post("/triggers/appointment-completions:schedule", status_code=status.HTTP_202_ACCEPTED,
             response_model=ScheduledAction)
def schedule_appointment_completion(body: AppointmentCompletionDTO, scheduled_for: Optional[int] = None,
                                    user: Principal = Depends(auth_bearer),
                                    service: AutomationService = Depends(get_service)):
    return service.schedule_appointment_completion(user.org_id, body, scheduled_for)


@router.get("/triggers/recent", response_model=List[TriggerEventView])
def recent_triggers(limit: Optional[int] = None, user: Principal = Depends(auth_bearer),
                    service: AutomationService = Depends(get_service)):
    return service.get_recent_triggers(user.org_id, limit)


@router.get("/triggers/stats", response_model=TriggerStats)
def trigger_stats(user: Principal = Depends(auth_bearer), service: AutomationService = Depends(get_service)):
    return service.get_trigger_stats(user.org_id)


@router.get("/triggers/by-appointment/{appointment_id}", response_model=TriggerEvent)
def trigger_by_appointment(appointment_id: str, user: Principal = Depends(auth_bearer),
                           service: AutomationService = Depends(get_service)):
    trigger = service.get_trigger_by_appointment(user.org_id, appointment_id)
    if trigger is None:
        raise NotFoundError("trigger", appointment_id)
    return trigger
