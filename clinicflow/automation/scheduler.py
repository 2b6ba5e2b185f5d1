"""
Scheduled-action processor.

Each due action is claimed in its own short transaction (pending -> running,
attempt counted) and then executed in a second one. A fault raised while
executing rolls that transaction back and re-queues the action after the
retry delay; once ``max_attempts`` is reached the action is marked failed.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, ContextManager, Dict, Iterator, Optional

from ..errors import UnknownScheduledActionError
from ..models import ScheduledActionStatus, ScheduledActionType
from ..schemas import ProcessReport
from ..util.clock import Clock, now_ms
from ..util.locks import KeyedLock
from .unit import UnitOfWork

logger = logging.getLogger(__name__)

UnitFactory = Callable[[], ContextManager[UnitOfWork]]


@dataclass
class ClaimedAction:
    id: str
    org_id: str
    action: str
    args: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 0


class ScheduledActionProcessor:
    def __init__(self, unit_factory: UnitFactory, clock: Clock = now_ms,
                 retry_delay_ms: int = 300_000, lock: Optional[KeyedLock] = None):
        self.unit_factory = unit_factory
        self.clock = clock
        self.retry_delay_ms = retry_delay_ms
        self.lock = lock or KeyedLock()

    def process_pending_actions(self, limit: int = 50, org_id: Optional[str] = None) -> ProcessReport:
        report = ProcessReport()
        with self.unit_factory() as uow:
            due = uow.queue.repo.due_ids(self.clock(), limit, org_id)

        for action_id in due:
            claimed = self._claim(action_id)
            if claimed is None:
                continue
            report.processed += 1
            try:
                with self._serialized(claimed):
                    with self.unit_factory() as uow:
                        self._execute(uow, claimed)
            except Exception as exc:
                logger.exception("Scheduled action %s (%s) failed", claimed.id, claimed.action)
                self.record_failure(claimed.id, str(exc) or exc.__class__.__name__)
                report.failed += 1
                report.errors.append(f"{claimed.id}: {exc}")
            else:
                report.successful += 1

        if report.processed:
            logger.info("Processed %d scheduled actions (%d ok, %d failed)",
                        report.processed, report.successful, report.failed)
        return report

    def _claim(self, action_id: str) -> Optional[ClaimedAction]:
        with self.unit_factory() as uow:
            action = uow.queue.repo.get_unscoped(action_id)
            # cancelled, or claimed by another worker since the due scan
            if action is None or ScheduledActionStatus(action.status) != ScheduledActionStatus.pending:
                return None
            action.status = ScheduledActionStatus.running
            action.attempts += 1
            action.last_attempt_at = self.clock()
            action.touch()
            uow.queue.repo.add(action)
            return ClaimedAction(id=action.id, org_id=action.org_id, action=action.action,
                                 args=dict(action.args or {}), attempts=action.attempts)

    @contextmanager
    def _serialized(self, claimed: ClaimedAction) -> Iterator[None]:
        client_id = claimed.args.get("client_id")
        if claimed.action == ScheduledActionType.process_appointment_completion.value and client_id:
            with self.lock.hold((claimed.org_id, client_id)):
                yield
        else:
            yield

    def _execute(self, uow: UnitOfWork, claimed: ClaimedAction) -> None:
        args = claimed.args
        if claimed.action == ScheduledActionType.continue_workflow.value:
            uow.runner.run(args["enrollment_id"])
        elif claimed.action == ScheduledActionType.process_appointment_completion.value:
            uow.pipeline.process(
                claimed.org_id,
                args["appointment_id"],
                args["client_id"],
                args.get("appointment_title"),
                int(args["appointment_end_time"]),
            )
        else:
            raise UnknownScheduledActionError(f"unknown scheduled action {claimed.action!r}")

        action = uow.queue.repo.get_unscoped(claimed.id)
        if action is not None:
            action.status = ScheduledActionStatus.completed
            action.error = None
            action.touch()
            uow.queue.repo.add(action)

    def record_failure(self, action_id: str, error: str) -> None:
        with self.unit_factory() as uow:
            action = uow.queue.repo.get_unscoped(action_id)
            if action is None:
                return
            action.error = error
            if action.attempts >= action.max_attempts:
                action.status = ScheduledActionStatus.failed
                logger.error("Scheduled action %s failed permanently after %d attempts: %s",
                             action_id, action.attempts, error)
            else:
                action.status = ScheduledActionStatus.pending
                action.scheduled_for = self.clock() + self.retry_delay_ms
            action.touch()
            uow.queue.repo.add(action)
