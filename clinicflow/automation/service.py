"""
AutomationService: the single entry point used by the HTTP routers and the worker.

Every public method runs one unit of work: a Session, the components bound to
it, a commit, and then the publication of the events the unit buffered.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel

from ..collaborators import CollaboratorsFactory, CustomActionRegistry, default_collaborators
from ..errors import WorkflowValidationError
from ..models import (
    Enrollment,
    EnrollmentStatus,
    LogStatus,
    ScheduledAction,
    ScheduledActionStatus,
    ScheduledActionType,
    TriggerEvent,
    WorkflowDefinition,
    WorkflowStatus,
)
from ..models.steps import StepSpec, check_step_graph, dump_steps
from ..schemas import (
    ActionStats,
    AppointmentCompletionDTO,
    CreateWorkflowDTO,
    DryRunDTO,
    DryRunReport,
    EnrollmentResult,
    ExecutionLogPage,
    ManualEnrollmentDTO,
    MessageStatusDTO,
    PipelineReason,
    PipelineResult,
    ProcessReport,
    RunReport,
    TriggerEventView,
    TriggerStats,
    UpdateWorkflowDTO,
    WorkflowListItem,
    WorkflowStats,
)
from ..util.clock import SECOND_MS, Clock, now_ms
from ..util.ids import new_id
from ..util.locks import KeyedLock
from ..util.pagination import clamp_limit
from .classifier import TriggerClassifier
from .enrollment import MANUAL_STEP
from .events import EventBus, LogObserver, MetricsObserver
from .scheduler import ScheduledActionProcessor
from .unit import EngineOptions, UnitOfWork

logger = logging.getLogger(__name__)


def _validate_steps(steps: List[StepSpec]) -> None:
    issues = check_step_graph(steps)
    if issues:
        raise WorkflowValidationError("invalid workflow steps", issues)


class AutomationService:
    def __init__(self, engine: Engine, clock: Clock = now_ms, classifier: Optional[TriggerClassifier] = None,
                 options: Optional[EngineOptions] = None, bus: Optional[EventBus] = None,
                 collaborators_factory: Optional[CollaboratorsFactory] = None,
                 custom_actions: Optional[CustomActionRegistry] = None,
                 batch_limit: int = 50):
        self.db = engine
        self.clock = clock
        self.classifier = classifier or TriggerClassifier()
        self.options = options or EngineOptions()
        self.batch_limit = batch_limit
        self.custom_actions = custom_actions or CustomActionRegistry()
        self.collaborators_factory = collaborators_factory or (
            lambda session, clock: default_collaborators(session, clock, self.custom_actions)
        )

        if bus is None:
            bus = EventBus()
            self.log_observer = LogObserver()
            self.metrics_observer = MetricsObserver()
            bus.attach(self.log_observer)
            bus.attach(self.metrics_observer)
        else:
            self.log_observer = None
            self.metrics_observer = None
        self.bus = bus

        self.locks = KeyedLock()
        self.processor = ScheduledActionProcessor(self._unit, clock, self.options.scheduled_action_retry_delay_ms,
                                                  self.locks)

    @classmethod
    def from_settings(cls, engine: Engine, settings, **kwargs) -> "AutomationService":
        options = EngineOptions(
            default_duplicate_prevention_days=settings.default_duplicate_prevention_days,
            recent_trigger_window_days=settings.recent_trigger_window_days,
            scheduled_action_max_attempts=settings.scheduled_action_max_attempts,
            scheduled_action_retry_delay_ms=settings.scheduled_action_retry_delay_seconds * SECOND_MS,
        )
        return cls(engine, options=options, batch_limit=settings.scheduler_batch_limit, **kwargs)

    def create_schema(self) -> None:
        """Create all database tables"""
        SQLModel.metadata.create_all(self.db)

    @contextmanager
    def _unit(self) -> Iterator[UnitOfWork]:
        with Session(self.db, expire_on_commit=False) as session:
            uow = UnitOfWork(session, self.clock, self.classifier, self.collaborators_factory, self.options)
            try:
                yield uow
                session.commit()
            except Exception:
                session.rollback()
                raise
        self.bus.publish_all(uow.events)

    # ========================================================================
    # WORKFLOWS
    # ========================================================================

    def create_workflow(self, org_id: str, data: CreateWorkflowDTO) -> WorkflowDefinition:
        steps = sorted(data.steps, key=lambda s: s.order)
        _validate_steps(steps)
        with self._unit() as uow:
            workflow = WorkflowDefinition(
                id=new_id("wf_"),
                org_id=org_id,
                name=data.name,
                description=data.description,
                trigger_type=data.trigger_type,
                status=data.status,
                steps=dump_steps(steps),
                prevent_duplicates=data.prevent_duplicates,
                duplicate_prevention_days=data.duplicate_prevention_days,
            )
            uow.workflows.add(workflow)
        logger.info("Created workflow %s (%s) for org %s", workflow.id, workflow.trigger_type, org_id)
        return workflow

    def get_workflow(self, org_id: str, workflow_id: str) -> WorkflowDefinition:
        with self._unit() as uow:
            return uow.workflows.get(org_id, workflow_id)

    def list_workflows(self, org_id: str, status: Optional[WorkflowStatus] = None) -> List[WorkflowListItem]:
        with self._unit() as uow:
            workflows = uow.workflows.list(org_id, status)
            counts = uow.workflows.enrollment_counts(org_id)
        return [
            WorkflowListItem(
                id=w.id,
                name=w.name,
                description=w.description,
                trigger_type=w.trigger_type,
                status=w.status,
                step_count=len(w.steps or []),
                active_enrollment_count=counts.get(w.id, {}).get("active", 0),
                total_enrollment_count=counts.get(w.id, {}).get("total", 0),
            )
            for w in workflows
        ]

    def update_workflow(self, org_id: str, workflow_id: str, data: UpdateWorkflowDTO) -> WorkflowDefinition:
        """Last writer wins; in-flight enrollments pick up the new steps on their next run."""
        steps = sorted(data.steps, key=lambda s: s.order) if data.steps is not None else None
        if steps is not None:
            _validate_steps(steps)
        with self._unit() as uow:
            workflow = uow.workflows.get(org_id, workflow_id)
            changes = data.model_dump(exclude_unset=True, exclude={"steps"})
            for key, value in changes.items():
                setattr(workflow, key, value)
            if steps is not None:
                workflow.steps = dump_steps(steps)
            workflow.touch()
            uow.workflows.add(workflow)
        return workflow

    def set_workflow_status(self, org_id: str, workflow_id: str, status: WorkflowStatus) -> WorkflowDefinition:
        """Status changes never touch enrollments already in flight."""
        with self._unit() as uow:
            workflow = uow.workflows.get(org_id, workflow_id)
            workflow.status = WorkflowStatus(status)
            workflow.touch()
            uow.workflows.add(workflow)
        logger.info("Workflow %s is now %s", workflow_id, workflow.status.value)
        return workflow

    def test_workflow(self, org_id: str, workflow_id: str, data: Optional[DryRunDTO] = None) -> DryRunReport:
        """
        Dry-run every step of a workflow, whatever its status.

        Messages are rendered but not queued and tags are left alone. The unit
        is rolled back afterwards so the run leaves no trace in storage.
        """
        with Session(self.db, expire_on_commit=False) as session:
            uow = UnitOfWork(session, self.clock, self.classifier, self.collaborators_factory, self.options)
            try:
                workflow = uow.workflows.get(org_id, workflow_id)
                return uow.dry_run.run(org_id, workflow, data or DryRunDTO())
            finally:
                session.rollback()

    def get_workflow_stats(self, org_id: str, workflow_id: str) -> WorkflowStats:
        with self._unit() as uow:
            uow.workflows.get(org_id, workflow_id)
            enrollments = uow.enrollments.count_by_status(org_id, workflow_id)
            logs = uow.logs.count_by_status(org_id, workflow_id)
            last_run_at = uow.logs.last_executed_at(org_id, workflow_id)

        total_logs = sum(logs.values())
        executed = logs.get(LogStatus.executed, 0)
        return WorkflowStats(
            total_enrollments=sum(enrollments.values()),
            active_enrollments=enrollments.get(EnrollmentStatus.active, 0),
            completed_enrollments=enrollments.get(EnrollmentStatus.completed, 0),
            total_executions=total_logs,
            successful_executions=executed,
            failed_executions=logs.get(LogStatus.failed, 0),
            success_rate=(executed / total_logs) * 100 if total_logs else 0.0,
            last_run_at=last_run_at,
        )

    # ========================================================================
    # APPOINTMENT TRIGGERS
    # ========================================================================

    def process_appointment_completion(self, org_id: str, appointment_id: str, client_id: str,
                                       appointment_title: Optional[str],
                                       appointment_end_time: int) -> PipelineResult:
        with self.locks.hold((org_id, client_id)):
            try:
                with self._unit() as uow:
                    result = uow.pipeline.process(org_id, appointment_id, client_id,
                                                  appointment_title, appointment_end_time)
            except IntegrityError:
                # another process recorded this appointment first
                logger.info("Appointment %s was processed concurrently", appointment_id)
                return PipelineResult(appointment_type=self.classifier.classify(appointment_title),
                                      reason=PipelineReason.already_processed)
        return result

    def schedule_appointment_completion(self, org_id: str, data: AppointmentCompletionDTO,
                                        at: Optional[int] = None) -> ScheduledAction:
        """Queue the pipeline for later instead of running it in the caller's request."""
        with self._unit() as uow:
            return uow.queue.schedule(org_id, ScheduledActionType.process_appointment_completion,
                                      data.model_dump(), at)

    def get_trigger_by_appointment(self, org_id: str, appointment_id: str) -> Optional[TriggerEvent]:
        with self._unit() as uow:
            return uow.pipeline.get_trigger_by_appointment(org_id, appointment_id)

    def get_recent_triggers(self, org_id: str, limit: Optional[int] = None) -> List[TriggerEventView]:
        with self._unit() as uow:
            return uow.pipeline.get_recent_triggers(org_id, clamp_limit(limit))

    def get_trigger_stats(self, org_id: str) -> TriggerStats:
        with self._unit() as uow:
            return uow.pipeline.get_trigger_stats(org_id)

    # ========================================================================
    # ENROLLMENTS
    # ========================================================================

    def enroll_client(self, org_id: str, workflow_id: str, data: ManualEnrollmentDTO) -> EnrollmentResult:
        with self.locks.hold((org_id, data.client_id)):
            with self._unit() as uow:
                workflow = uow.workflows.get(org_id, workflow_id)
                if uow.guard.recently_enrolled(org_id, data.client_id, workflow, self.clock()):
                    logger.info("Client %s was recently enrolled in %s; skipping", data.client_id, workflow_id)
                    return EnrollmentResult(suppressed=True)
                enrollment = uow.engine.enroll(
                    org_id, workflow, data.client_id, data.enrollment_reason, data.metadata,
                    action="enroll_client", step_id=MANUAL_STEP,
                    message=f"Manually enrolled in workflow: {workflow.name}",
                )
        return EnrollmentResult(enrollment=enrollment)

    def get_enrollment(self, org_id: str, enrollment_id: str) -> Enrollment:
        with self._unit() as uow:
            return uow.enrollments.get(org_id, enrollment_id)

    def list_enrollments(self, org_id: str, workflow_id: Optional[str] = None, client_id: Optional[str] = None,
                         status: Optional[EnrollmentStatus] = None, limit: Optional[int] = None) -> List[Enrollment]:
        with self._unit() as uow:
            return uow.enrollments.list(org_id, workflow_id, client_id, status, clamp_limit(limit))

    def pause_enrollment(self, org_id: str, enrollment_id: str, reason: Optional[str] = None) -> Enrollment:
        with self._unit() as uow:
            return uow.engine.pause(uow.enrollments.get(org_id, enrollment_id), reason)

    def resume_enrollment(self, org_id: str, enrollment_id: str) -> Enrollment:
        with self._unit() as uow:
            return uow.engine.resume(uow.enrollments.get(org_id, enrollment_id))

    def cancel_enrollment(self, org_id: str, enrollment_id: str, reason: Optional[str] = None) -> Enrollment:
        with self._unit() as uow:
            return uow.engine.cancel(uow.enrollments.get(org_id, enrollment_id), reason)

    def run_enrollment(self, org_id: str, enrollment_id: str) -> RunReport:
        """Run an enrollment now, e.g. to retry a step that failed."""
        with self._unit() as uow:
            uow.enrollments.get(org_id, enrollment_id)
            return uow.runner.run(enrollment_id, manual=True)

    # ========================================================================
    # EXECUTION LOGS
    # ========================================================================

    def query_execution_logs(self, org_id: str, workflow_id: Optional[str] = None,
                             client_id: Optional[str] = None, enrollment_id: Optional[str] = None,
                             cursor: Optional[str] = None, limit: Optional[int] = None) -> ExecutionLogPage:
        limit = clamp_limit(limit)
        with self._unit() as uow:
            # one extra row tells whether another page exists
            rows = uow.logs.query(org_id, workflow_id, client_id, enrollment_id, cursor, limit + 1)
        items = rows[:limit]
        next_cursor = items[-1].id if len(rows) > limit else None
        return ExecutionLogPage(items=items, limit=limit, next_cursor=next_cursor)

    # ========================================================================
    # SCHEDULED ACTIONS
    # ========================================================================

    def process_pending_actions(self, limit: Optional[int] = None, org_id: Optional[str] = None) -> ProcessReport:
        return self.processor.process_pending_actions(limit or self.batch_limit, org_id)

    def list_scheduled_actions(self, org_id: str, status: Optional[ScheduledActionStatus] = None,
                               limit: Optional[int] = None) -> List[ScheduledAction]:
        with self._unit() as uow:
            return uow.queue.list(org_id, status, clamp_limit(limit))

    def scheduled_action_stats(self, org_id: str) -> ActionStats:
        with self._unit() as uow:
            return uow.queue.stats(org_id)

    def cancel_scheduled_action(self, org_id: str, action_id: str) -> None:
        with self._unit() as uow:
            uow.queue.cancel(org_id, action_id)

    def reschedule_action(self, org_id: str, action_id: str, scheduled_for: int) -> ScheduledAction:
        with self._unit() as uow:
            return uow.queue.reschedule(org_id, action_id, scheduled_for)

    # ========================================================================
    # MESSAGES
    # ========================================================================

    def update_message_status(self, org_id: str, message_id: str, data: MessageStatusDTO) -> None:
        with self._unit() as uow:
            uow.collaborators.messenger.update_status(org_id, message_id, data.status.value,
                                                      data.sent_at, data.external_id)

    # ========================================================================
    # METRICS
    # ========================================================================

    def metrics(self) -> dict:
        if self.metrics_observer is None:
            return {}
        return self.metrics_observer.get_metrics()
