"""
Appointment-completion pipeline.

classify title -> active workflows for the trigger type -> duplicate guard ->
enroll -> record one TriggerEvent when at least one enrollment was created.
"""
import logging
from typing import List, Optional

from sqlmodel import Session

from ..models import Client, TriggerEvent, WorkflowDefinition
from ..schemas import (
    AppointmentSummary,
    ClientSummary,
    PipelineReason,
    PipelineResult,
    TriggerEventView,
    TriggerStats,
    WorkflowOutcome,
    WorkflowOutcomeKind,
    WorkflowSummary,
)
from ..util.clock import DAY_MS, Clock, now_ms
from ..util.ids import new_id
from .classifier import TriggerClassifier
from .enrollment import APPOINTMENT_TRIGGER_STEP, EnrollmentEngine
from .events import AutomationEvent, EventType
from .guard import DuplicateGuard
from .repositories import TriggerEventRepository, WorkflowRepository

logger = logging.getLogger(__name__)


class AppointmentTriggerPipeline:
    def __init__(self, session: Session, classifier: TriggerClassifier, engine: EnrollmentEngine,
                 guard: DuplicateGuard, clock: Clock = now_ms, recent_window_days: int = 7):
        self.session = session
        self.classifier = classifier
        self.engine = engine
        self.guard = guard
        self.clock = clock
        self.recent_window_days = recent_window_days
        self.workflows = WorkflowRepository(session)
        self.triggers = TriggerEventRepository(session)

    def _emit(self, event_type: EventType, org_id: str, workflow_id: str = "", **data) -> None:
        self.engine.emit(AutomationEvent(event_type=event_type, org_id=org_id, timestamp=self.clock(),
                                         workflow_id=workflow_id, data=data))

    def process(self, org_id: str, appointment_id: str, client_id: str,
                appointment_title: Optional[str], appointment_end_time: int) -> PipelineResult:
        appointment_type = self.classifier.classify(appointment_title)
        if appointment_type is None:
            logger.info("No trigger type for appointment %s (%r)", appointment_id, appointment_title)
            self._emit(EventType.trigger_unmatched, org_id, appointment_id=appointment_id,
                       appointment_title=appointment_title)
            return PipelineResult(reason=PipelineReason.no_trigger_match)

        existing = self.triggers.find_by_appointment(org_id, appointment_id, appointment_type)
        if existing is not None:
            logger.info("Appointment %s already processed as trigger %s", appointment_id, existing.id)
            return PipelineResult(appointment_type=appointment_type, reason=PipelineReason.already_processed,
                                  trigger_event_id=existing.id)

        workflows = self.workflows.find_active_by_trigger(org_id, appointment_type)
        if not workflows:
            logger.info("No active workflows for %s in org %s", appointment_type, org_id)
            self._emit(EventType.no_active_workflows, org_id, appointment_type=appointment_type)
            return PipelineResult(appointment_type=appointment_type, reason=PipelineReason.no_active_workflows)

        outcomes: List[WorkflowOutcome] = []
        triggered_workflows: List[str] = []
        enrollment_ids: List[str] = []

        for workflow in workflows:
            if self.guard.should_suppress(org_id, client_id, appointment_type, workflow, appointment_end_time):
                outcomes.append(WorkflowOutcome(workflow_id=workflow.id,
                                                outcome=WorkflowOutcomeKind.suppressed_duplicate))
                self._emit(EventType.workflow_suppressed, org_id, workflow.id,
                           client_id=client_id, appointment_type=appointment_type)
                continue

            enrollment = self.engine.enroll(
                org_id,
                workflow,
                client_id,
                reason=f"appointment_completed_{appointment_type}",
                metadata={
                    "appointment_id": appointment_id,
                    "appointment_title": appointment_title,
                    "appointment_end_time": appointment_end_time,
                    "appointment_type": appointment_type,
                    "last_appointment_date": appointment_end_time,
                },
                action="auto_enroll",
                step_id=APPOINTMENT_TRIGGER_STEP,
                message=f"Auto-enrolled from appointment: {appointment_title}",
            )
            outcomes.append(WorkflowOutcome(workflow_id=workflow.id, outcome=WorkflowOutcomeKind.enrolled,
                                            enrollment_id=enrollment.id))
            triggered_workflows.append(workflow.id)
            enrollment_ids.append(enrollment.id)

        if not enrollment_ids:
            return PipelineResult(appointment_type=appointment_type, reason=PipelineReason.all_suppressed,
                                  outcomes=outcomes)

        event = TriggerEvent(
            id=new_id("trg_"),
            org_id=org_id,
            appointment_id=appointment_id,
            client_id=client_id,
            appointment_type=appointment_type,
            triggered_workflows=triggered_workflows,
            enrollment_ids=enrollment_ids,
            triggered_at=self.clock(),
            appointment_end_time=appointment_end_time,
            meta={"appointment_title": appointment_title},
        )
        self.triggers.add(event)

        return PipelineResult(
            appointment_type=appointment_type,
            triggered_workflows=len(triggered_workflows),
            enrollments=len(enrollment_ids),
            reason=PipelineReason.enrolled,
            outcomes=outcomes,
            trigger_event_id=event.id,
        )

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    def get_trigger_by_appointment(self, org_id: str, appointment_id: str) -> Optional[TriggerEvent]:
        return self.triggers.find_by_appointment(org_id, appointment_id)

    def _view(self, trigger: TriggerEvent) -> TriggerEventView:
        client = self.session.get(Client, trigger.client_id)
        if client is not None and client.org_id != trigger.org_id:
            client = None
        workflows = []
        for workflow_id in trigger.triggered_workflows:
            workflow = self.session.get(WorkflowDefinition, workflow_id)
            if workflow is not None and workflow.org_id == trigger.org_id:
                workflows.append(WorkflowSummary(id=workflow.id, name=workflow.name,
                                                 trigger_type=workflow.trigger_type))
        return TriggerEventView(
            trigger=trigger,
            client=ClientSummary(id=trigger.client_id, full_name=client.full_name if client else None),
            appointment=AppointmentSummary(id=trigger.appointment_id,
                                           title=(trigger.meta or {}).get("appointment_title"),
                                           end_time=trigger.appointment_end_time),
            workflows=workflows,
        )

    def get_recent_triggers(self, org_id: str, limit: int = 50) -> List[TriggerEventView]:
        return [self._view(t) for t in self.triggers.recent(org_id, limit)]

    def get_trigger_stats(self, org_id: str) -> TriggerStats:
        since = self.clock() - self.recent_window_days * DAY_MS
        by_type = {}
        total_enrollments = 0
        recent = 0
        triggers = self.triggers.all_for_org(org_id)
        for trigger in triggers:
            by_type[trigger.appointment_type] = by_type.get(trigger.appointment_type, 0) + 1
            total_enrollments += len(trigger.enrollment_ids or [])
            if trigger.triggered_at > since:
                recent += 1
        return TriggerStats(
            total_triggers=len(triggers),
            triggers_by_type=by_type,
            total_enrollments=total_enrollments,
            recent_triggers=recent,
        )
