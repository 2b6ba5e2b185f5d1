"""
Scheduled-action queue: persisted, due-time ordered work items.

Enqueueing happens inside the caller's unit of work, so an action only
becomes visible to the processor once the transaction that created it commits.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlmodel import Session

from ..errors import ScheduledActionConflictError
from ..models import ScheduledAction, ScheduledActionStatus, ScheduledActionType
from ..schemas import ActionStats
from ..util.clock import Clock, now_ms
from ..util.ids import new_id
from .repositories import ScheduledActionRepository

logger = logging.getLogger(__name__)


class ActionQueue:
    def __init__(self, session: Session, clock: Clock = now_ms, max_attempts: int = 3):
        self.repo = ScheduledActionRepository(session)
        self.clock = clock
        self.max_attempts = max_attempts

    def schedule(self, org_id: str, action: ScheduledActionType, args: Dict[str, Any],
                 scheduled_for: Optional[int] = None) -> ScheduledAction:
        record = ScheduledAction(
            id=new_id("act_"),
            org_id=org_id,
            action=action.value,
            args=dict(args),
            scheduled_for=self.clock() if scheduled_for is None else scheduled_for,
            status=ScheduledActionStatus.pending,
            attempts=0,
            max_attempts=self.max_attempts,
        )
        self.repo.add(record)
        logger.debug("Scheduled %s %s for %d", action.value, record.id, record.scheduled_for)
        return record

    def continue_workflow(self, org_id: str, enrollment_id: str, at: Optional[int] = None) -> ScheduledAction:
        return self.schedule(org_id, ScheduledActionType.continue_workflow,
                             {"enrollment_id": enrollment_id}, at)

    def list(self, org_id: str, status: Optional[ScheduledActionStatus] = None,
             limit: int = 50) -> List[ScheduledAction]:
        return self.repo.list(org_id, status, limit)

    def stats(self, org_id: str) -> ActionStats:
        now = self.clock()
        stats = ActionStats()
        for action in self.repo.all_for_org(org_id):
            stats.total += 1
            status = ScheduledActionStatus(action.status)
            setattr(stats, status.value, getattr(stats, status.value) + 1)
            if status == ScheduledActionStatus.pending and action.scheduled_for < now:
                stats.overdue += 1
        return stats

    def cancel(self, org_id: str, action_id: str) -> None:
        """Delete the action. A running action cannot be cancelled."""
        action = self.repo.get(org_id, action_id)
        if ScheduledActionStatus(action.status) == ScheduledActionStatus.running:
            raise ScheduledActionConflictError(f"scheduled action {action_id} is running")
        self.repo.delete(action)
        logger.info("Cancelled scheduled action %s", action_id)

    def reschedule(self, org_id: str, action_id: str, scheduled_for: int) -> ScheduledAction:
        action = self.repo.get(org_id, action_id)
        if ScheduledActionStatus(action.status) == ScheduledActionStatus.running:
            raise ScheduledActionConflictError(f"scheduled action {action_id} is running")
        action.scheduled_for = scheduled_for
        action.status = ScheduledActionStatus.pending
        action.attempts = 0
        action.error = None
        action.touch()
        self.repo.add(action)
        return action
