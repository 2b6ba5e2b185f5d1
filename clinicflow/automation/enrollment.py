"""
Enrollment engine: creates enrollments and owns every status transition.

Each transition writes exactly one execution-log entry. Step pointers:
``current_step_id`` is the step that runs next; ``last_executed_step_id`` is the
last step that finished. Both ``None`` means the enrollment has not started;
``current_step_id is None`` with a ``last_executed_step_id`` means the step list
is exhausted.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlmodel import Session

from ..errors import InvalidTransitionError, WorkflowInactiveError
from ..models import (
    Enrollment,
    EnrollmentStatus,
    ExecutionLogEntry,
    LogStatus,
    StepSpec,
    WorkflowDefinition,
    WorkflowStatus,
)
from ..models.enrollment import TRANSITIONS
from ..util.clock import Clock, now_ms
from ..util.ids import new_id
from .events import AutomationEvent, EventType
from .queue import ActionQueue
from .repositories import EnrollmentRepository, ExecutionLogRepository

logger = logging.getLogger(__name__)

EventSink = Callable[[AutomationEvent], None]

# step id recorded on entries that are not tied to a workflow step
APPOINTMENT_TRIGGER_STEP = "appointment_trigger"
MANUAL_STEP = "manual_enrollment"
ENROLLMENT_STEP = "enrollment"


def first_step_id(steps: List[StepSpec]) -> Optional[str]:
    return steps[0].id if steps else None


def step_after(steps: List[StepSpec], step_id: Optional[str]) -> Optional[str]:
    """Id of the step following ``step_id`` by order, or None past the end."""
    if step_id is None:
        return first_step_id(steps)
    for i, step in enumerate(steps):
        if step.id == step_id:
            return steps[i + 1].id if i + 1 < len(steps) else None
    return None


def _discard(_: AutomationEvent) -> None:
    pass


class EnrollmentEngine:
    def __init__(self, session: Session, queue: ActionQueue, clock: Clock = now_ms,
                 emit: Optional[EventSink] = None):
        self.enrollments = EnrollmentRepository(session)
        self.logs = ExecutionLogRepository(session)
        self.queue = queue
        self.clock = clock
        self.emit = emit or _discard

    # ------------------------------------------------------------------
    # audit log
    # ------------------------------------------------------------------

    def log(self, enrollment: Enrollment, step_id: str, action: str, status: LogStatus,
            message: str = "", error: Optional[str] = None,
            metadata: Optional[Dict[str, Any]] = None) -> ExecutionLogEntry:
        entry = ExecutionLogEntry(
            id=new_id("log_"),
            org_id=enrollment.org_id,
            workflow_id=enrollment.workflow_id,
            enrollment_id=enrollment.id,
            client_id=enrollment.client_id,
            step_id=step_id,
            action=action,
            status=status,
            executed_at=self.clock(),
            message=message,
            error=error,
            meta=dict(metadata or {}),
        )
        return self.logs.append(entry)

    def _event(self, event_type: EventType, enrollment: Enrollment, **data: Any) -> None:
        self.emit(AutomationEvent(
            event_type=event_type,
            org_id=enrollment.org_id,
            timestamp=self.clock(),
            workflow_id=enrollment.workflow_id,
            enrollment_id=enrollment.id,
            data=data,
        ))

    # ------------------------------------------------------------------
    # creation
    # ------------------------------------------------------------------

    def enroll(self, org_id: str, workflow: WorkflowDefinition, client_id: str, reason: str,
               metadata: Optional[Dict[str, Any]] = None, *, action: str = "auto_enroll",
               step_id: str = APPOINTMENT_TRIGGER_STEP, message: Optional[str] = None) -> Enrollment:
        """
        Create an active enrollment and queue its first run.

        Steps never run inside this call; the ``continue_workflow`` action
        queued here (due now) starts the runner.

        Raises:
            WorkflowInactiveError: if the workflow is not active
        """
        if not workflow.is_active:
            raise WorkflowInactiveError(workflow.id, WorkflowStatus(workflow.status).value)

        now = self.clock()
        enrollment = Enrollment(
            id=new_id("enr_"),
            org_id=org_id,
            workflow_id=workflow.id,
            client_id=client_id,
            enrollment_reason=reason,
            enrolled_at=now,
            current_status=EnrollmentStatus.active,
            current_step_id=None,
            last_executed_step_id=None,
            next_execution_at=None,
            meta=dict(metadata or {}),
        )
        self.enrollments.add(enrollment)

        self.log(enrollment, step_id, action, LogStatus.executed,
                 message or f"Enrolled in workflow: {workflow.name}",
                 metadata={"enrollment_reason": reason, **(metadata or {})})
        self.queue.continue_workflow(org_id, enrollment.id, now)
        self._event(EventType.client_enrolled, enrollment, client_id=client_id, reason=reason)

        logger.info("Enrolled client %s in workflow %s (%s)", client_id, workflow.id, enrollment.id)
        return enrollment

    # ------------------------------------------------------------------
    # step pointer
    # ------------------------------------------------------------------

    def start(self, enrollment: Enrollment, steps: List[StepSpec]) -> Optional[str]:
        """Point a not-yet-started enrollment at its first step."""
        enrollment.current_step_id = first_step_id(steps)
        enrollment.touch()
        self.enrollments.add(enrollment)
        return enrollment.current_step_id

    def advance(self, enrollment: Enrollment, steps: List[StepSpec],
                branch_target: Optional[str] = None) -> Optional[str]:
        """
        Mark the current step executed and move to the next one.

        ``branch_target`` (chosen by a condition step) overrides the order.
        Returns the new ``current_step_id``; None once past the last step.
        """
        executed = enrollment.current_step_id
        if executed is not None:
            enrollment.last_executed_step_id = executed
        enrollment.current_step_id = branch_target if branch_target else step_after(steps, executed)
        enrollment.touch()
        self.enrollments.add(enrollment)
        return enrollment.current_step_id

    # ------------------------------------------------------------------
    # status transitions
    # ------------------------------------------------------------------

    def _transition(self, enrollment: Enrollment, target: EnrollmentStatus) -> EnrollmentStatus:
        current = EnrollmentStatus(enrollment.current_status)
        if target not in TRANSITIONS[current]:
            raise InvalidTransitionError(enrollment.id, current.value, target.value)
        enrollment.current_status = target
        enrollment.touch()
        self.enrollments.add(enrollment)
        self._event(EventType.enrollment_status_changed, enrollment, previous=current.value, status=target.value)
        return current

    def clear_halt(self, enrollment: Enrollment) -> None:
        """Forget a failed-step halt so the next run retries the step."""
        enrollment.halted_at = None
        enrollment.last_error = None
        enrollment.touch()
        self.enrollments.add(enrollment)

    def _step_ref(self, enrollment: Enrollment) -> str:
        return enrollment.current_step_id or enrollment.last_executed_step_id or ENROLLMENT_STEP

    def pause(self, enrollment: Enrollment, reason: Optional[str] = None) -> Enrollment:
        self._transition(enrollment, EnrollmentStatus.paused)
        enrollment.paused_at = self.clock()
        self.log(enrollment, self._step_ref(enrollment), "pause_enrollment", LogStatus.executed,
                 f"Enrollment paused{': ' + reason if reason else ''}")
        return enrollment

    def resume(self, enrollment: Enrollment) -> Enrollment:
        """
        Reactivate a paused enrollment.

        A pending wake-up time is pushed back by the time spent paused, and
        never earlier than now; the continuation is queued again. A step
        halt is cleared, so resuming also retries a failed step.
        """
        self._transition(enrollment, EnrollmentStatus.active)
        now = self.clock()
        if enrollment.next_execution_at is not None:
            shifted = enrollment.next_execution_at + (now - (enrollment.paused_at or now))
            enrollment.next_execution_at = max(shifted, now)
        enrollment.resumed_at = now
        if enrollment.halted_at is not None:
            self.clear_halt(enrollment)
        self.log(enrollment, self._step_ref(enrollment), "resume_enrollment", LogStatus.executed,
                 "Enrollment resumed", metadata={"next_execution_at": enrollment.next_execution_at})
        self.queue.continue_workflow(enrollment.org_id, enrollment.id, enrollment.next_execution_at or now)
        return enrollment

    def complete(self, enrollment: Enrollment, message: str = "Workflow completed") -> Enrollment:
        self._transition(enrollment, EnrollmentStatus.completed)
        enrollment.completed_at = self.clock()
        enrollment.current_step_id = None
        enrollment.next_execution_at = None
        self.log(enrollment, enrollment.last_executed_step_id or ENROLLMENT_STEP, "workflow_completed",
                 LogStatus.executed, message)
        self._event(EventType.enrollment_completed, enrollment)
        return enrollment

    def cancel(self, enrollment: Enrollment, reason: Optional[str] = None) -> Enrollment:
        """Stop the enrollment. Messages already handed off are not recalled."""
        self._transition(enrollment, EnrollmentStatus.cancelled)
        enrollment.cancelled_at = self.clock()
        enrollment.next_execution_at = None
        self.log(enrollment, self._step_ref(enrollment), "cancel_enrollment", LogStatus.cancelled,
                 f"Enrollment cancelled{': ' + reason if reason else ''}")
        return enrollment
