import logging
from typing import Optional

from ..models import WorkflowDefinition
from ..util.clock import DAY_MS
from .repositories import EnrollmentRepository, TriggerEventRepository

logger = logging.getLogger(__name__)

DEFAULT_PREVENTION_DAYS = 30


class DuplicateGuard:
    """
    Cool-down against enrolling the same client twice for the same treatment.

    For appointment triggers the window is keyed by ``(client, appointment_type)``
    and measured back from the appointment end time, so a recent trigger of one
    workflow suppresses every workflow listening on that type.
    """

    def __init__(self, triggers: TriggerEventRepository, enrollments: EnrollmentRepository,
                 default_days: int = DEFAULT_PREVENTION_DAYS):
        self.triggers = triggers
        self.enrollments = enrollments
        self.default_days = default_days

    def window_ms(self, workflow: WorkflowDefinition) -> int:
        # 0 and None both mean the default window
        days = workflow.duplicate_prevention_days or self.default_days
        return days * DAY_MS

    def should_suppress(self, org_id: str, client_id: str, trigger_type: str,
                        workflow: WorkflowDefinition, appointment_end_time: int) -> bool:
        if not workflow.prevent_duplicates:
            return False
        cutoff = appointment_end_time - self.window_ms(workflow)
        suppressed = self.triggers.exists_since(org_id, client_id, trigger_type, cutoff)
        if suppressed:
            logger.info("Client %s already triggered %s since %d; skipping workflow %s",
                        client_id, trigger_type, cutoff, workflow.id)
        return suppressed

    def recently_enrolled(self, org_id: str, client_id: str, workflow: WorkflowDefinition,
                          now: int, window_days: Optional[int] = None) -> bool:
        """Per-workflow check used by manual enrollment."""
        if not workflow.prevent_duplicates:
            return False
        window = window_days * DAY_MS if window_days is not None else self.window_ms(workflow)
        return self.enrollments.exists_since(org_id, workflow.id, client_id, now - window)
