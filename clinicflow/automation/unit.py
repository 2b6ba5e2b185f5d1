from dataclasses import dataclass
from typing import List

from sqlmodel import Session

from ..collaborators import Collaborators, CollaboratorsFactory
from ..util.clock import Clock
from .classifier import TriggerClassifier
from .dry_run import WorkflowDryRun
from .enrollment import EnrollmentEngine
from .events import AutomationEvent
from .executor import StepExecutor
from .guard import DuplicateGuard
from .pipeline import AppointmentTriggerPipeline
from .queue import ActionQueue
from .repositories import (
    EnrollmentRepository,
    ExecutionLogRepository,
    TriggerEventRepository,
    WorkflowRepository,
)
from .runner import WorkflowRunner


@dataclass
class EngineOptions:
    default_duplicate_prevention_days: int = 30
    recent_trigger_window_days: int = 7
    scheduled_action_max_attempts: int = 3
    scheduled_action_retry_delay_ms: int = 300_000


class UnitOfWork:
    """
    Every automation component bound to one Session.

    Events emitted while the unit is open are buffered in ``events`` and are
    only published by the owner once the session has committed.
    """

    def __init__(self, session: Session, clock: Clock, classifier: TriggerClassifier,
                 collaborators_factory: CollaboratorsFactory, options: EngineOptions):
        self.session = session
        self.clock = clock
        self.events: List[AutomationEvent] = []

        self.workflows = WorkflowRepository(session)
        self.enrollments = EnrollmentRepository(session)
        self.triggers = TriggerEventRepository(session)
        self.logs = ExecutionLogRepository(session)

        self.queue = ActionQueue(session, clock, options.scheduled_action_max_attempts)
        self.engine = EnrollmentEngine(session, self.queue, clock, emit=self.events.append)
        self.guard = DuplicateGuard(self.triggers, self.enrollments, options.default_duplicate_prevention_days)

        self.collaborators: Collaborators = collaborators_factory(session, clock)
        self.executor = StepExecutor(self.collaborators, clock)
        self.runner = WorkflowRunner(session, self.engine, self.executor, clock)
        self.dry_run = WorkflowDryRun(session, self.collaborators, clock)
        self.pipeline = AppointmentTriggerPipeline(session, classifier, self.engine, self.guard, clock,
                                                   options.recent_trigger_window_days)
