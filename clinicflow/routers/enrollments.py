from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from ..automation import AutomationService
from ..deps import Principal, auth_bearer, get_service
from ..models import Enrollment, EnrollmentStatus
from ..schemas import EnrollmentActionDTO, EnrollmentResult, ManualEnrollmentDTO, RunReport

router = APIRouter()


@router.post("/workflows/{workflow_id}/enrollments", status_code=status.HTTP_201_CREATED,
             response_model=EnrollmentResult)
def enroll_client(workflow_id: str, body: ManualEnrollmentDTO, user: Principal = Depends(auth_bearer),
                  service: AutomationService = Depends(get_service)):
    return service.enroll_client(user.org_id, workflow_id, body)


@router.get("/enrollments", response_model=List[Enrollment])
def list_enrollments(workflow_id: Optional[str] = None, client_id: Optional[str] = None,
                     status_filter: Optional[EnrollmentStatus] = Query(default=None, alias="status"),
                     limit: Optional[int] = None, user: Principal = Depends(auth_bearer),
                     service: AutomationService = Depends(get_service)):
    return service.list_enrollments(user.org_id, workflow_id, client_id, status_filter, limit)


@router.get("/enrollments/{enrollment_id}", response_model=Enrollment)
def get_enrollment(enrollment_id: str, user: Principal = Depends(auth_bearer),
                   service: AutomationService = Depends(get_service)):
    return service.get_enrollment(user.org_id, enrollment_id)


@router.post("/enrollments/{enrollment_id}:pause", response_model=Enrollment)
def pause_enrollment(enrollment_id: str, body: Optional[EnrollmentActionDTO] = Body(default=None),
                     user: Principal = Depends(auth_bearer), service: AutomationService = Depends(get_service)):
    return service.pause_enrollment(user.org_id, enrollment_id, body.reason if body else None)


@router.post("/enrollments/{enrollment_id}:resume", response_model=Enrollment)
def resume_enrollment(enrollment_id: str, user: Principal = Depends(auth_bearer),
                      service: AutomationService = Depends(get_service)):
    return service.resume_enrollment(user.org_id, enrollment_id)


@router.post("/enrollments/{enrollment_id}:cancel", response_model=Enrollment)
def cancel_enrollment(enrollment_id: str, body: Optional[EnrollmentActionDTO] = Body(default=None),
                      user: Principal = Depends(auth_bearer), service: AutomationService = Depends(get_service)):
    return service.cancel_enrollment(user.org_id, enrollment_id, body.reason if body else None)


@router.post("/enrollments/{enrollment_id}:run", response_model=RunReport)
def run_enrollment(enrollment_id: str, user: Principal = Depends(auth_bearer),
                   service: AutomationService = Depends(get_service)):
    return service.run_enrollment(user.org_id, enrollment_id)
