from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ..automation import AutomationService
from ..deps import Principal, auth_bearer, get_service
from ..models import WorkflowDefinition, WorkflowStatus
from ..models.steps import check_step_graph
from ..schemas import CreateWorkflowDTO, DryRunDTO, DryRunReport, UpdateWorkflowDTO, WorkflowStats

router = APIRouter()


@router.post("/workflows", status_code=status.HTTP_201_CREATED, response_model=WorkflowDefinition)
def create_workflow(body: CreateWorkflowDTO, user: Principal = Depends(auth_bearer),
                    service: AutomationService = Depends(get_service)):
    return service.create_workflow(user.org_id, body)


@router.get("/workflows")
def list_workflows(status_filter: Optional[WorkflowStatus] = Query(default=None, alias="status"),
                   user: Principal = Depends(auth_bearer),
                   service: AutomationService = Depends(get_service)):
    items = service.list_workflows(user.org_id, status_filter)
    return {"items": items, "total": len(items)}


@router.get("/workflows/{workflow_id}", response_model=WorkflowDefinition)
def get_workflow(workflow_id: str, user: Principal = Depends(auth_bearer),
                 service: AutomationService = Depends(get_service)):
    return service.get_workflow(user.org_id, workflow_id)


@router.put("/workflows/{workflow_id}", response_model=WorkflowDefinition)
def update_workflow(workflow_id: str, body: UpdateWorkflowDTO, user: Principal = Depends(auth_bearer),
                    service: AutomationService = Depends(get_service)):
    return service.update_workflow(user.org_id, workflow_id, body)


@router.post("/workflows/{workflow_id}:activate", response_model=WorkflowDefinition)
def activate_workflow(workflow_id: str, user: Principal = Depends(auth_bearer),
                      service: AutomationService = Depends(get_service)):
    return service.set_workflow_status(user.org_id, workflow_id, WorkflowStatus.active)


@router.post("/workflows/{workflow_id}:deactivate", response_model=WorkflowDefinition)
def deactivate_workflow(workflow_id: str, user: Principal = Depends(auth_bearer),
                        service: AutomationService = Depends(get_service)):
    return service.set_workflow_status(user.org_id, workflow_id, WorkflowStatus.inactive)


@router.post("/workflows/{workflow_id}:archive", response_model=WorkflowDefinition)
def archive_workflow(workflow_id: str, user: Principal = Depends(auth_bearer),
                     service: AutomationService = Depends(get_service)):
    return service.set_workflow_status(user.org_id, workflow_id, WorkflowStatus.archived)


@router.post("/workflows/{workflow_id}:validate")
def validate_workflow(workflow_id: str, user: Principal = Depends(auth_bearer),
                      service: AutomationService = Depends(get_service)):
    workflow = service.get_workflow(user.org_id, workflow_id)
    issues = [{**issue, "level": "error"} for issue in check_step_graph(workflow.step_specs())]
    return {"valid": not issues, "issues": issues}


@router.post("/workflows/{workflow_id}:test", response_model=DryRunReport)
def test_workflow(workflow_id: str, body: Optional[DryRunDTO] = None, user: Principal = Depends(auth_bearer),
                  service: AutomationService = Depends(get_service)):
    return service.test_workflow(user.org_id, workflow_id, body)


@router.get("/workflows/{workflow_id}/stats", response_model=WorkflowStats)
def workflow_stats(workflow_id: str, user: Principal = Depends(auth_bearer),
                   service: AutomationService = Depends(get_service)):
    return service.get_workflow_stats(user.org_id, workflow_id)
