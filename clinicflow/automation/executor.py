import logging
from typing import Any, Dict, Optional

from ..collaborators import Collaborators, MessageRequest
from ..errors import CollaboratorError
from ..models import Enrollment, StepSpec
from ..models.steps import (
    AddTagStep,
    ConditionStep,
    CustomActionStep,
    DelayStep,
    RemoveTagStep,
    SendMessageStep,
    duration_ms,
)
from ..schemas import StepOutcome, StepOutcomeStatus
from ..util.clock import Clock, now_ms
from .conditions import evaluate_condition

logger = logging.getLogger(__name__)


def action_name(step: StepSpec) -> str:
    """Action recorded in the execution log for a step attempt."""
    if isinstance(step, SendMessageStep):
        return f"send_{step.config.channel}"
    return step.kind


class StepExecutor:
    """
    Interprets one step for one enrollment and reports a StepOutcome.

    Collaborator failures become failed outcomes; storage errors propagate.
    The executor never touches enrollment state: the runner applies the outcome.
    """

    def __init__(self, collaborators: Collaborators, clock: Clock = now_ms):
        self.collaborators = collaborators
        self.clock = clock

    def build_context(self, enrollment: Enrollment) -> Dict[str, Any]:
        """Appointment fields carried by the enrollment, overlaid with the client record."""
        client = self.collaborators.clients.get_context(enrollment.org_id, enrollment.client_id)
        return {
            **(enrollment.meta or {}),
            **client,
            "enrollment_id": enrollment.id,
            "workflow_id": enrollment.workflow_id,
        }

    def execute(self, enrollment: Enrollment, step: StepSpec,
                context: Optional[Dict[str, Any]] = None) -> StepOutcome:
        try:
            if isinstance(step, DelayStep):
                return self._delay(step)
            if context is None:
                context = self.build_context(enrollment)
            if isinstance(step, SendMessageStep):
                return self._send_message(enrollment, step, context)
            if isinstance(step, AddTagStep):
                return self._add_tag(enrollment, step)
            if isinstance(step, RemoveTagStep):
                return self._remove_tag(enrollment, step)
            if isinstance(step, ConditionStep):
                return self._condition(step, context)
            if isinstance(step, CustomActionStep):
                return self._custom_action(enrollment, step)
        except CollaboratorError as exc:
            logger.warning("Step %s (%s) failed for enrollment %s: %s",
                           step.id, step.kind, enrollment.id, exc.message)
            return StepOutcome(
                status=StepOutcomeStatus.failed,
                message=f"Step {step.id} failed",
                error=exc.message,
            )
        raise TypeError(f"unsupported step kind {step.kind!r}")

    # --- step kinds ---

    def _delay(self, step: DelayStep) -> StepOutcome:
        amount, unit = step.config.amount, step.config.unit
        wait_ms = duration_ms(amount, unit)
        amount_text = int(amount) if float(amount).is_integer() else amount
        return StepOutcome(
            status=StepOutcomeStatus.waiting,
            message=f"Waiting {amount_text} {unit.value}",
            next_execution_at=self.clock() + wait_ms,
            result={"action": "delay_scheduled", "delay_ms": wait_ms, "unit": unit.value},
        )

    def _send_message(self, enrollment: Enrollment, step: SendMessageStep, context: Dict[str, Any]) -> StepOutcome:
        cfg = step.config
        result = self.collaborators.messenger.send(MessageRequest(
            org_id=enrollment.org_id,
            client_id=enrollment.client_id,
            channel=cfg.channel,
            template_ref=cfg.template_ref,
            subject=cfg.subject,
            body=cfg.body,
            enrollment_id=enrollment.id,
            variables=context,
        ))
        label = "SMS" if cfg.channel == "sms" else "Email"
        return StepOutcome(
            status=StepOutcomeStatus.executed,
            message=f"{label} sent to {result.recipient}",
            result={"message_id": result.message_id, "recipient": result.recipient, "channel": result.channel},
        )

    def _add_tag(self, enrollment: Enrollment, step: AddTagStep) -> StepOutcome:
        result = self.collaborators.clients.add_tag(enrollment.org_id, enrollment.client_id, step.config.tag)
        return StepOutcome(
            status=StepOutcomeStatus.executed,
            message=f"Tag '{step.config.tag}' added",
            result=result,
        )

    def _remove_tag(self, enrollment: Enrollment, step: RemoveTagStep) -> StepOutcome:
        cfg = step.config
        result = self.collaborators.clients.remove_tag(enrollment.org_id, enrollment.client_id, cfg.tag, cfg.remove_all)
        return StepOutcome(
            status=StepOutcomeStatus.executed,
            message="All tags removed" if cfg.remove_all else f"Tag '{cfg.tag}' removed",
            result=result,
        )

    def _condition(self, step: ConditionStep, context: Dict[str, Any]) -> StepOutcome:
        cfg = step.config
        met = evaluate_condition(cfg, context, self.clock())
        branch = "true" if met else "false"
        return StepOutcome(
            status=StepOutcomeStatus.executed,
            message=f"Condition {cfg.field} {cfg.operator.value} -> {branch}",
            branch=branch,
            next_step_id=cfg.true_step_id if met else cfg.false_step_id,
            result={"field": cfg.field, "operator": cfg.operator.value,
                    "value": cfg.comparison_value, "condition_met": met},
        )

    def _custom_action(self, enrollment: Enrollment, step: CustomActionStep) -> StepOutcome:
        cfg = step.config
        result = self.collaborators.custom_actions.run(enrollment.org_id, enrollment.client_id, cfg.action, cfg.params)
        return StepOutcome(
            status=StepOutcomeStatus.executed,
            message=f"Custom action '{cfg.action}' executed",
            result=result,
        )
