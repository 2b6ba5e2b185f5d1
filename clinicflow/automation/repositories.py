"""
Repository Layer
Handles database access for workflows, enrollments, trigger events,
execution logs and scheduled actions.

Repositories work inside the caller's Session so one unit of work can span
several of them; they never commit.
"""

from typing import Dict, List, Optional, Type, TypeVar

from sqlalchemy import func
from sqlmodel import Session, SQLModel, select

from ..errors import NotFoundError, TenantAccessError
from ..models import (
    Enrollment,
    EnrollmentStatus,
    ExecutionLogEntry,
    LogStatus,
    ScheduledAction,
    ScheduledActionStatus,
    TriggerEvent,
    WorkflowDefinition,
    WorkflowStatus,
)

T = TypeVar("T", bound=SQLModel)


def _get_owned(session: Session, model: Type[T], entity: str, org_id: str, entity_id: str) -> T:
    record = session.get(model, entity_id)
    if record is None:
        raise NotFoundError(entity, entity_id)
    if record.org_id != org_id:
        raise TenantAccessError(entity, entity_id)
    return record


class WorkflowRepository:
    """Repository for workflow definitions"""

    def __init__(self, session: Session):
        self.session = session

    def add(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        self.session.add(workflow)
        return workflow

    def get(self, org_id: str, workflow_id: str) -> WorkflowDefinition:
        return _get_owned(self.session, WorkflowDefinition, "workflow", org_id, workflow_id)

    def find_active_by_trigger(self, org_id: str, trigger_type: str) -> List[WorkflowDefinition]:
        """All active workflows of the org listening on ``trigger_type``; may be empty."""
        stmt = (
            select(WorkflowDefinition)
            .where(WorkflowDefinition.org_id == org_id)
            .where(WorkflowDefinition.trigger_type == trigger_type)
            .where(WorkflowDefinition.status == WorkflowStatus.active)
            .order_by(WorkflowDefinition.created_at, WorkflowDefinition.id)
        )
        return list(self.session.exec(stmt).all())

    def list(self, org_id: str, status: Optional[WorkflowStatus] = None) -> List[WorkflowDefinition]:
        stmt = select(WorkflowDefinition).where(WorkflowDefinition.org_id == org_id)
        if status is not None:
            stmt = stmt.where(WorkflowDefinition.status == status)
        stmt = stmt.order_by(WorkflowDefinition.created_at.desc(), WorkflowDefinition.id.desc())
        return list(self.session.exec(stmt).all())

    def enrollment_counts(self, org_id: str) -> Dict[str, Dict[str, int]]:
        """``{workflow_id: {"active": n, "total": m}}`` for the org."""
        stmt = (
            select(Enrollment.workflow_id, Enrollment.current_status, func.count())
            .where(Enrollment.org_id == org_id)
            .group_by(Enrollment.workflow_id, Enrollment.current_status)
        )
        counts: Dict[str, Dict[str, int]] = {}
        for workflow_id, status, n in self.session.exec(stmt).all():
            entry = counts.setdefault(workflow_id, {"active": 0, "total": 0})
            entry["total"] += n
            if EnrollmentStatus(status) == EnrollmentStatus.active:
                entry["active"] += n
        return counts


class EnrollmentRepository:
    """Repository for workflow enrollments"""

    def __init__(self, session: Session):
        self.session = session

    def add(self, enrollment: Enrollment) -> Enrollment:
        self.session.add(enrollment)
        return enrollment

    def get(self, org_id: str, enrollment_id: str) -> Enrollment:
        return _get_owned(self.session, Enrollment, "enrollment", org_id, enrollment_id)

    def get_unscoped(self, enrollment_id: str) -> Optional[Enrollment]:
        # scheduled actions carry the org in the action row itself
        return self.session.get(Enrollment, enrollment_id)

    def list(self, org_id: str, workflow_id: Optional[str] = None, client_id: Optional[str] = None,
             status: Optional[EnrollmentStatus] = None, limit: int = 50) -> List[Enrollment]:
        stmt = select(Enrollment).where(Enrollment.org_id == org_id)
        if workflow_id:
            stmt = stmt.where(Enrollment.workflow_id == workflow_id)
        if client_id:
            stmt = stmt.where(Enrollment.client_id == client_id)
        if status is not None:
            stmt = stmt.where(Enrollment.current_status == status)
        stmt = stmt.order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc()).limit(limit)
        return list(self.session.exec(stmt).all())

    def exists_since(self, org_id: str, workflow_id: str, client_id: str, since: int) -> bool:
        stmt = (
            select(Enrollment.id)
            .where(Enrollment.org_id == org_id)
            .where(Enrollment.workflow_id == workflow_id)
            .where(Enrollment.client_id == client_id)
            .where(Enrollment.enrolled_at > since)
            .limit(1)
        )
        return self.session.exec(stmt).first() is not None

    def count_by_status(self, org_id: str, workflow_id: str) -> Dict[EnrollmentStatus, int]:
        stmt = (
            select(Enrollment.current_status, func.count())
            .where(Enrollment.org_id == org_id)
            .where(Enrollment.workflow_id == workflow_id)
            .group_by(Enrollment.current_status)
        )
        return {EnrollmentStatus(status): n for status, n in self.session.exec(stmt).all()}


class TriggerEventRepository:
    """Repository for appointment trigger events (insert-only)"""

    def __init__(self, session: Session):
        self.session = session

    def add(self, event: TriggerEvent) -> TriggerEvent:
        self.session.add(event)
        return event

    def exists_since(self, org_id: str, client_id: str, appointment_type: str, cutoff: int) -> bool:
        stmt = (
            select(TriggerEvent.id)
            .where(TriggerEvent.org_id == org_id)
            .where(TriggerEvent.client_id == client_id)
            .where(TriggerEvent.appointment_type == appointment_type)
            .where(TriggerEvent.triggered_at > cutoff)
            .limit(1)
        )
        return self.session.exec(stmt).first() is not None

    def find_by_appointment(self, org_id: str, appointment_id: str,
                            appointment_type: Optional[str] = None) -> Optional[TriggerEvent]:
        stmt = (
            select(TriggerEvent)
            .where(TriggerEvent.org_id == org_id)
            .where(TriggerEvent.appointment_id == appointment_id)
        )
        if appointment_type is not None:
            stmt = stmt.where(TriggerEvent.appointment_type == appointment_type)
        stmt = stmt.order_by(TriggerEvent.triggered_at.desc())
        return self.session.exec(stmt).first()

    def recent(self, org_id: str, limit: int) -> List[TriggerEvent]:
        stmt = (
            select(TriggerEvent)
            .where(TriggerEvent.org_id == org_id)
            .order_by(TriggerEvent.triggered_at.desc(), TriggerEvent.id.desc())
            .limit(limit)
        )
        return list(self.session.exec(stmt).all())

    def all_for_org(self, org_id: str) -> List[TriggerEvent]:
        return list(self.session.exec(select(TriggerEvent).where(TriggerEvent.org_id == org_id)).all())


class ExecutionLogRepository:
    """Append-only audit log. There is deliberately no update method."""

    def __init__(self, session: Session):
        self.session = session

    def append(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        self.session.add(entry)
        return entry

    def query(self, org_id: str, workflow_id: Optional[str] = None, client_id: Optional[str] = None,
              enrollment_id: Optional[str] = None, cursor: Optional[str] = None,
              limit: int = 50) -> List[ExecutionLogEntry]:
        """Newest first. ``cursor`` is the id of the last entry of the previous page."""
        stmt = select(ExecutionLogEntry).where(ExecutionLogEntry.org_id == org_id)
        if workflow_id:
            stmt = stmt.where(ExecutionLogEntry.workflow_id == workflow_id)
        if client_id:
            stmt = stmt.where(ExecutionLogEntry.client_id == client_id)
        if enrollment_id:
            stmt = stmt.where(ExecutionLogEntry.enrollment_id == enrollment_id)
        if cursor:
            stmt = stmt.where(ExecutionLogEntry.id < cursor)
        stmt = stmt.order_by(ExecutionLogEntry.id.desc()).limit(limit)
        return list(self.session.exec(stmt).all())

    def count_by_status(self, org_id: str, workflow_id: str) -> Dict[LogStatus, int]:
        stmt = (
            select(ExecutionLogEntry.status, func.count())
            .where(ExecutionLogEntry.org_id == org_id)
            .where(ExecutionLogEntry.workflow_id == workflow_id)
            .group_by(ExecutionLogEntry.status)
        )
        return {LogStatus(status): n for status, n in self.session.exec(stmt).all()}

    def last_executed_at(self, org_id: str, workflow_id: str) -> Optional[int]:
        stmt = (
            select(func.max(ExecutionLogEntry.executed_at))
            .where(ExecutionLogEntry.org_id == org_id)
            .where(ExecutionLogEntry.workflow_id == workflow_id)
        )
        return self.session.exec(stmt).one()


class ScheduledActionRepository:
    """Repository for the scheduled-action queue"""

    def __init__(self, session: Session):
        self.session = session

    def add(self, action: ScheduledAction) -> ScheduledAction:
        self.session.add(action)
        return action

    def delete(self, action: ScheduledAction) -> None:
        self.session.delete(action)

    def get(self, org_id: str, action_id: str) -> ScheduledAction:
        return _get_owned(self.session, ScheduledAction, "scheduled_action", org_id, action_id)

    def get_unscoped(self, action_id: str) -> Optional[ScheduledAction]:
        return self.session.get(ScheduledAction, action_id)

    def due_ids(self, now: int, limit: int, org_id: Optional[str] = None) -> List[str]:
        stmt = (
            select(ScheduledAction.id)
            .where(ScheduledAction.status == ScheduledActionStatus.pending)
            .where(ScheduledAction.scheduled_for <= now)
        )
        if org_id:
            stmt = stmt.where(ScheduledAction.org_id == org_id)
        stmt = stmt.order_by(ScheduledAction.scheduled_for, ScheduledAction.id).limit(limit)
        return list(self.session.exec(stmt).all())

    def list(self, org_id: str, status: Optional[ScheduledActionStatus] = None,
             limit: int = 50) -> List[ScheduledAction]:
        stmt = select(ScheduledAction).where(ScheduledAction.org_id == org_id)
        if status is not None:
            stmt = stmt.where(ScheduledAction.status == status)
        stmt = stmt.order_by(ScheduledAction.scheduled_for, ScheduledAction.id).limit(limit)
        return list(self.session.exec(stmt).all())

    def all_for_org(self, org_id: str) -> List[ScheduledAction]:
        return list(self.session.exec(select(ScheduledAction).where(ScheduledAction.org_id == org_id)).all())
