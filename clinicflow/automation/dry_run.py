"""
Workflow dry run: walks every step against a real or stand-in client and
reports what each step would do.

Nothing is written: no outbox message, no tag change, no enrollment, no log.
"""
import logging
from typing import Any, Dict, Optional

from sqlmodel import Session

from ..collaborators import Collaborators, render_template, resolve_content
from ..errors import CollaboratorError, MessageDispatchError, NotFoundError, TenantAccessError
from ..models import Client, MessageChannel, StepSpec, WorkflowDefinition
from ..models.steps import (
    AddTagStep,
    ConditionStep,
    CustomActionStep,
    DelayStep,
    RemoveTagStep,
    SendMessageStep,
    duration_ms,
)
from ..schemas import DryRunClient, DryRunDTO, DryRunReport, DryRunStepResult
from ..util.clock import Clock, now_ms
from .conditions import evaluate_condition

logger = logging.getLogger(__name__)

STAND_IN_CLIENT = {
    "client_id": None,
    "client_name": "Test Client",
    "first_name": "Test",
    "last_name": "Client",
    "tags": ["test_client"],
    "client_status": "active",
}


class WorkflowDryRun:

    def __init__(self, session: Session, collaborators: Collaborators, clock: Clock = now_ms):
        self.session = session
        self.collaborators = collaborators
        self.clock = clock

    def _client_context(self, org_id: str, data: DryRunDTO) -> Dict[str, Any]:
        if data.client_id:
            client = self.session.get(Client, data.client_id)
            if client is None:
                raise NotFoundError("client", data.client_id)
            if client.org_id != org_id:
                raise TenantAccessError("client", data.client_id)
            context = self.collaborators.clients.get_context(org_id, data.client_id)
        else:
            context = {**STAND_IN_CLIENT, "email": None, "phone": None, "phones": []}

        if data.contact_email:
            context["email"] = data.contact_email
        if data.contact_phone:
            context["phone"] = data.contact_phone
            context["phones"] = [data.contact_phone, *[p for p in context["phones"] if p != data.contact_phone]]
        return context

    def run(self, org_id: str, workflow: WorkflowDefinition, data: DryRunDTO) -> DryRunReport:
        now = self.clock()
        context = {
            "appointment_id": "test_appointment",
            "appointment_title": f"Test {workflow.trigger_type} appointment",
            "appointment_end_time": now,
            "appointment_type": workflow.trigger_type,
            "last_appointment_date": now,
            **self._client_context(org_id, data),
            "workflow_id": workflow.id,
        }

        results = []
        for step in workflow.step_specs():
            try:
                result = self._step(org_id, step, context, now)
                results.append(DryRunStepResult(step_id=step.id, kind=step.kind, success=True, result=result))
            except CollaboratorError as exc:
                results.append(DryRunStepResult(step_id=step.id, kind=step.kind, success=False, error=exc.message))

        successful = sum(1 for r in results if r.success)
        logger.info("Dry run of workflow %s: %s/%s steps ok", workflow.id, successful, len(results))
        return DryRunReport(
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            client=DryRunClient(
                id=context.get("client_id"),
                name=context.get("client_name"),
                email=context.get("email"),
                phone=context.get("phone"),
            ),
            results=results,
            total_steps=len(results),
            successful_steps=successful,
        )

    def _step(self, org_id: str, step: StepSpec, context: Dict[str, Any], now: int) -> Dict[str, Any]:
        if isinstance(step, SendMessageStep):
            return self._message(org_id, step, context)
        if isinstance(step, DelayStep):
            return {"action": "delay", "delay_ms": duration_ms(step.config.amount, step.config.unit),
                    "simulated": True}
        if isinstance(step, AddTagStep):
            return {"action": "add_tag", "tag": step.config.tag, "simulated": True}
        if isinstance(step, RemoveTagStep):
            return {"action": "remove_tag", "tag": step.config.tag,
                    "remove_all": step.config.remove_all, "simulated": True}
        if isinstance(step, ConditionStep):
            cfg = step.config
            met = evaluate_condition(cfg, context, now)
            return {"action": "condition", "condition_met": met, "branch": "true" if met else "false",
                    "next_step_id": cfg.true_step_id if met else cfg.false_step_id}
        if isinstance(step, CustomActionStep):
            action = step.config.action
            return {"action": action, "handled": action in self.collaborators.custom_actions.known_actions(),
                    "simulated": True}
        raise TypeError(f"unsupported step kind {step.kind!r}")

    def _message(self, org_id: str, step: SendMessageStep, context: Dict[str, Any]) -> Dict[str, Any]:
        cfg = step.config
        channel = MessageChannel(cfg.channel)
        subject, body = resolve_content(self.session, org_id, channel, cfg.template_ref, cfg.subject, cfg.body)

        recipient: Optional[str] = context.get("phone") if channel == MessageChannel.sms else context.get("email")
        if not recipient:
            raise MessageDispatchError(
                "client has no phone number for SMS" if channel == MessageChannel.sms else "client has no email address"
            )
        return {
            "channel": channel.value,
            "recipient": recipient,
            "subject": render_template(subject, context) if subject else None,
            "content": render_template(body, context),
            "sent": False,
        }
