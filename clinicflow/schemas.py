"""
API DTOs and typed results of the automation core.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .models import (
    Enrollment,
    EnrollmentStatus,
    ExecutionLogEntry,
    MessageStatus,
    StepSpec,
    TriggerEvent,
    WorkflowStatus,
)


# ============================================================================
# WORKFLOWS
# ============================================================================

class CreateWorkflowDTO(BaseModel):
    """Request to create a workflow"""
    name: str = Field(min_length=1)
    description: str = ""
    trigger_type: str = Field(min_length=1)
    status: WorkflowStatus = WorkflowStatus.draft
    steps: List[StepSpec] = Field(default_factory=list)
    prevent_duplicates: bool = True
    duplicate_prevention_days: Optional[int] = Field(default=30, ge=0)


class UpdateWorkflowDTO(BaseModel):
    """Request to update a workflow (last writer wins)"""
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    trigger_type: Optional[str] = Field(default=None, min_length=1)
    steps: Optional[List[StepSpec]] = None
    prevent_duplicates: Optional[bool] = None
    duplicate_prevention_days: Optional[int] = Field(default=None, ge=0)

    # omitted means unchanged; only duplicate_prevention_days may be cleared with null
    @model_validator(mode="after")
    def _no_null_for_required(self) -> "UpdateWorkflowDTO":
        nulled = sorted(
            name for name in self.model_fields_set
            if name != "duplicate_prevention_days" and getattr(self, name) is None
        )
        if nulled:
            raise ValueError(f"{', '.join(nulled)} cannot be null")
        return self


class WorkflowListItem(BaseModel):
    """Workflow summary with enrollment counts"""
    id: str
    name: str
    description: str
    trigger_type: str
    status: WorkflowStatus
    step_count: int
    active_enrollment_count: int
    total_enrollment_count: int


class DryRunDTO(BaseModel):
    """
    Dry run of a workflow against a real client or a stand-in.

    Without ``client_id`` a stand-in client is used; ``contact_email`` and
    ``contact_phone`` override the recipient either way.
    """
    client_id: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None


class DryRunClient(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class DryRunStepResult(BaseModel):
    step_id: str
    kind: str
    success: bool
    result: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class DryRunReport(BaseModel):
    workflow_id: str
    workflow_name: str
    client: DryRunClient
    results: List[DryRunStepResult]
    total_steps: int
    successful_steps: int


class WorkflowStats(BaseModel):
    total_enrollments: int
    active_enrollments: int
    completed_enrollments: int
    total_executions: int
    successful_executions: int
    failed_executions: int
    success_rate: float
    last_run_at: Optional[int] = None


# ============================================================================
# APPOINTMENT TRIGGERS
# ============================================================================

class AppointmentCompletionDTO(BaseModel):
    """Appointment completion as reported by the appointment source"""
    appointment_id: str
    client_id: str
    appointment_title: str
    appointment_end_time: int


class PipelineReason(str, Enum):
    no_trigger_match = "no_trigger_match"
    no_active_workflows = "no_active_workflows"
    all_suppressed = "all_suppressed"
    enrolled = "enrolled"
    already_processed = "already_processed"


class WorkflowOutcomeKind(str, Enum):
    enrolled = "enrolled"
    suppressed_duplicate = "suppressed_duplicate"


class WorkflowOutcome(BaseModel):
    workflow_id: str
    outcome: WorkflowOutcomeKind
    enrollment_id: Optional[str] = None


class PipelineResult(BaseModel):
    appointment_type: Optional[str] = None
    triggered_workflows: int = 0
    enrollments: int = 0
    reason: PipelineReason
    outcomes: List[WorkflowOutcome] = Field(default_factory=list)
    trigger_event_id: Optional[str] = None


class ClientSummary(BaseModel):
    id: str
    full_name: Optional[str] = None


class AppointmentSummary(BaseModel):
    id: str
    title: Optional[str] = None
    end_time: int


class WorkflowSummary(BaseModel):
    id: str
    name: str
    trigger_type: str


class TriggerEventView(BaseModel):
    """Trigger event enriched for display"""
    trigger: TriggerEvent
    client: ClientSummary
    appointment: AppointmentSummary
    workflows: List[WorkflowSummary]


class TriggerStats(BaseModel):
    total_triggers: int
    triggers_by_type: Dict[str, int]
    total_enrollments: int
    recent_triggers: int


# ============================================================================
# ENROLLMENTS
# ============================================================================

class ManualEnrollmentDTO(BaseModel):
    client_id: str
    enrollment_reason: str = "manual"
    metadata: Dict[str, Any] = Field(default_factory=dict)


class EnrollmentActionDTO(BaseModel):
    reason: Optional[str] = None


class EnrollmentResult(BaseModel):
    enrollment: Optional[Enrollment] = None
    suppressed: bool = False


class StepOutcomeStatus(str, Enum):
    executed = "executed"
    failed = "failed"
    waiting = "waiting"


class StepOutcome(BaseModel):
    status: StepOutcomeStatus
    message: str
    next_execution_at: Optional[int] = None
    # explicit continuation chosen by a condition step
    next_step_id: Optional[str] = None
    branch: Optional[str] = None
    result: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class RunHaltReason(str, Enum):
    not_active = "not_active"
    not_due = "not_due"
    waiting = "waiting"
    step_failed = "step_failed"
    completed = "completed"
    halted = "halted"


class RunReport(BaseModel):
    enrollment_id: str
    status: EnrollmentStatus
    steps_attempted: int = 0
    halted: RunHaltReason
    current_step_id: Optional[str] = None
    next_execution_at: Optional[int] = None


# ============================================================================
# EXECUTION LOGS
# ============================================================================

class ExecutionLogPage(BaseModel):
    items: List[ExecutionLogEntry]
    limit: int
    next_cursor: Optional[str] = None


# ============================================================================
# SCHEDULED ACTIONS
# ============================================================================

class RescheduleDTO(BaseModel):
    scheduled_for: int


class ProcessReport(BaseModel):
    processed: int = 0
    successful: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)


class ActionStats(BaseModel):
    total: int = 0
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    overdue: int = 0


# ============================================================================
# MESSAGES
# ============================================================================

class MessageStatusDTO(BaseModel):
    status: MessageStatus
    sent_at: Optional[int] = None
    external_id: Optional[str] = None
