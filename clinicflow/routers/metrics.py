from fastapi import APIRouter, Depends

from ..automation import AutomationService
from ..deps import Principal, auth_bearer, get_service

router = APIRouter()


@router.get("/automation/metrics")
def automation_metrics(user: Principal = Depends(auth_bearer), service: AutomationService = Depends(get_service)):
    # process-wide counters, not scoped to the caller's org
    return service.metrics()
