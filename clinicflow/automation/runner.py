"""
Workflow runner: drives one enrollment through its steps.

A run executes steps in order (following condition branches) until a delay
suspends the enrollment, a step fails, or the step list is exhausted. Every
step attempt is logged. A failed step halts the enrollment: it stays active
and its step pointer does not move, so no step is retried automatically.
"""
import logging
from typing import Dict

from sqlmodel import Session

from ..errors import NotFoundError
from ..models import EnrollmentStatus, LogStatus, StepSpec, WorkflowDefinition
from ..schemas import RunHaltReason, RunReport, StepOutcomeStatus
from ..util.clock import Clock, now_ms
from .enrollment import EnrollmentEngine
from .events import AutomationEvent, EventType
from .executor import StepExecutor, action_name

logger = logging.getLogger(__name__)


class WorkflowRunner:
    def __init__(self, session: Session, engine: EnrollmentEngine, executor: StepExecutor,
                 clock: Clock = now_ms):
        self.session = session
        self.engine = engine
        self.executor = executor
        self.clock = clock

    def _report(self, enrollment, halted: RunHaltReason, attempted: int) -> RunReport:
        return RunReport(
            enrollment_id=enrollment.id,
            status=EnrollmentStatus(enrollment.current_status),
            steps_attempted=attempted,
            halted=halted,
            current_step_id=enrollment.current_step_id,
            next_execution_at=enrollment.next_execution_at,
        )

    def _emit(self, event_type: EventType, enrollment, **data) -> None:
        self.engine.emit(AutomationEvent(
            event_type=event_type,
            org_id=enrollment.org_id,
            timestamp=self.clock(),
            workflow_id=enrollment.workflow_id,
            enrollment_id=enrollment.id,
            data=data,
        ))

    def _fail(self, enrollment, step_id: str, action: str, message: str, error: str, attempted: int) -> RunReport:
        enrollment.halted_at = self.clock()
        enrollment.last_error = error
        self.engine.enrollments.add(enrollment)
        self.engine.log(enrollment, step_id, action, LogStatus.failed, message, error=error)
        self._emit(EventType.step_failed, enrollment, step_id=step_id, error=error)
        return self._report(enrollment, RunHaltReason.step_failed, attempted)

    def run(self, enrollment_id: str, manual: bool = False) -> RunReport:
        """
        Run one enrollment as far as it can go.

        An enrollment halted by a failed step only runs again when ``manual`` is
        set (an explicit retry); queued continuations skip it.
        """
        enrollment = self.engine.enrollments.get_unscoped(enrollment_id)
        if enrollment is None:
            raise NotFoundError("enrollment", enrollment_id)

        if EnrollmentStatus(enrollment.current_status) != EnrollmentStatus.active:
            logger.info("Enrollment %s is %s; skipping", enrollment.id, enrollment.current_status)
            return self._report(enrollment, RunHaltReason.not_active, 0)

        if enrollment.halted_at is not None:
            if not manual:
                logger.info("Enrollment %s is halted at step %s; waiting for a manual run",
                            enrollment.id, enrollment.current_step_id)
                return self._report(enrollment, RunHaltReason.halted, 0)
            self.engine.clear_halt(enrollment)

        now = self.clock()
        if enrollment.next_execution_at is not None and enrollment.next_execution_at > now:
            return self._report(enrollment, RunHaltReason.not_due, 0)

        workflow = self.session.get(WorkflowDefinition, enrollment.workflow_id)
        if workflow is None:
            raise NotFoundError("workflow", enrollment.workflow_id)
        steps = workflow.step_specs()
        by_id: Dict[str, StepSpec] = {s.id: s for s in steps}

        enrollment.next_execution_at = None
        if enrollment.current_step_id is None and enrollment.last_executed_step_id is None:
            self.engine.start(enrollment, steps)

        attempted = 0
        while True:
            step_id = enrollment.current_step_id
            if step_id is None:
                self.engine.complete(enrollment, f"Workflow '{workflow.name}' completed")
                logger.info("Enrollment %s completed", enrollment.id)
                return self._report(enrollment, RunHaltReason.completed, attempted)

            step = by_id.get(step_id)
            if step is None:
                return self._fail(enrollment, step_id, "unknown_step", f"Step {step_id} not found",
                                  f"workflow {workflow.id} has no step {step_id!r}", attempted)
            if attempted > len(steps):
                return self._fail(enrollment, step_id, action_name(step), "Step loop detected",
                                  "step limit exceeded in a single run", attempted)

            outcome = self.executor.execute(enrollment, step)
            attempted += 1

            if outcome.status == StepOutcomeStatus.failed:
                return self._fail(enrollment, step.id, action_name(step), outcome.message,
                                  outcome.error or "step failed", attempted)

            if outcome.next_step_id is not None and outcome.next_step_id not in by_id:
                return self._fail(enrollment, step.id, action_name(step), outcome.message,
                                  f"branch target {outcome.next_step_id!r} does not exist", attempted)

            metadata = dict(outcome.result)
            if outcome.branch is not None:
                metadata["branch"] = outcome.branch
            if outcome.status == StepOutcomeStatus.waiting:
                metadata["next_execution_at"] = outcome.next_execution_at
            self.engine.log(enrollment, step.id, action_name(step), LogStatus(outcome.status.value),
                            outcome.message, metadata=metadata)
            self.engine.advance(enrollment, steps, outcome.next_step_id)

            if outcome.status == StepOutcomeStatus.waiting:
                enrollment.next_execution_at = outcome.next_execution_at
                self.engine.enrollments.add(enrollment)
                self.engine.queue.continue_workflow(enrollment.org_id, enrollment.id, outcome.next_execution_at)
                self._emit(EventType.step_waiting, enrollment, step_id=step.id,
                           next_execution_at=outcome.next_execution_at)
                return self._report(enrollment, RunHaltReason.waiting, attempted)

            self._emit(EventType.step_executed, enrollment, step_id=step.id, action=action_name(step))
