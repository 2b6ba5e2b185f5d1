"""
Workflow step specifications.

A workflow is a strictly ordered list of steps. The only branching construct is
the condition step, whose ``true_step_id`` / ``false_step_id`` jump forward to a
later step; an unset target continues with the next step by order.
"""
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, model_validator

from ..util.clock import DAY_MS, HOUR_MS, MINUTE_MS, SECOND_MS, WEEK_MS


class StepKind(str, Enum):
    delay = "delay"
    send_message = "send_message"
    add_tag = "add_tag"
    remove_tag = "remove_tag"
    condition = "condition"
    custom_action = "custom_action"


class DelayUnit(str, Enum):
    seconds = "seconds"
    minutes = "minutes"
    hours = "hours"
    days = "days"
    weeks = "weeks"
    months = "months"


UNIT_MS = {
    DelayUnit.seconds: SECOND_MS,
    DelayUnit.minutes: MINUTE_MS,
    DelayUnit.hours: HOUR_MS,
    DelayUnit.days: DAY_MS,
    DelayUnit.weeks: WEEK_MS,
    DelayUnit.months: 30 * DAY_MS,  # approximate month
}


def duration_ms(amount: float, unit: DelayUnit) -> int:
    return int(round(amount * UNIT_MS[unit]))


class ConditionOperator(str, Enum):
    equals = "equals"
    not_equals = "not_equals"
    contains = "contains"
    not_contains = "not_contains"
    greater_than = "greater_than"
    less_than = "less_than"
    has_tag = "has_tag"
    not_has_tag = "not_has_tag"
    is_empty = "is_empty"
    is_not_empty = "is_not_empty"


# --- per-kind configs ---

class DelayConfig(BaseModel):
    amount: float = Field(ge=0, validation_alias=AliasChoices("amount", "value"))
    unit: DelayUnit = DelayUnit.days


class SendMessageConfig(BaseModel):
    channel: Literal["sms", "email"]
    template_ref: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = Field(default=None, validation_alias=AliasChoices("body", "message"))

    @model_validator(mode="after")
    def _needs_content(self) -> "SendMessageConfig":
        if not self.template_ref and not self.body:
            raise ValueError("send_message needs either template_ref or body")
        return self


class AddTagConfig(BaseModel):
    tag: str = Field(min_length=1)


class RemoveTagConfig(BaseModel):
    tag: Optional[str] = None
    remove_all: bool = False

    @model_validator(mode="after")
    def _needs_tag(self) -> "RemoveTagConfig":
        if not self.remove_all and not self.tag:
            raise ValueError("remove_tag needs a tag unless remove_all is set")
        return self


class ConditionConfig(BaseModel):
    field: str = Field(min_length=1)
    operator: ConditionOperator
    comparison_value: Any = Field(default=None, validation_alias=AliasChoices("comparison_value", "value"))
    true_step_id: Optional[str] = None
    false_step_id: Optional[str] = None


class CustomActionConfig(BaseModel):
    action: str = Field(min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)


# --- steps ---

class _StepBase(BaseModel):
    id: str = Field(min_length=1)
    order: int
    label: Optional[str] = None


class DelayStep(_StepBase):
    kind: Literal["delay"] = "delay"
    config: DelayConfig


class SendMessageStep(_StepBase):
    kind: Literal["send_message"] = "send_message"
    config: SendMessageConfig


class AddTagStep(_StepBase):
    kind: Literal["add_tag"] = "add_tag"
    config: AddTagConfig


class RemoveTagStep(_StepBase):
    kind: Literal["remove_tag"] = "remove_tag"
    config: RemoveTagConfig


class ConditionStep(_StepBase):
    kind: Literal["condition"] = "condition"
    config: ConditionConfig


class CustomActionStep(_StepBase):
    kind: Literal["custom_action"] = "custom_action"
    config: CustomActionConfig


StepSpec = Annotated[
    Union[DelayStep, SendMessageStep, AddTagStep, RemoveTagStep, ConditionStep, CustomActionStep],
    Field(discriminator="kind"),
]

_STEP_LIST = TypeAdapter(List[StepSpec])


def parse_steps(raw: List[Dict[str, Any]]) -> List[StepSpec]:
    """Validate stored step payloads and return them sorted by ``order``."""
    return sorted(_STEP_LIST.validate_python(raw or []), key=lambda s: s.order)


def dump_steps(steps: List[StepSpec]) -> List[Dict[str, Any]]:
    return [s.model_dump(mode="json") for s in sorted(steps, key=lambda s: s.order)]


def check_step_graph(steps: List[StepSpec]) -> List[Dict[str, str]]:
    """
    Structural issues of an ordered step list.

    Ids and orders must be unique; condition targets must name a later step.
    Returns ``[{"path", "msg"}]``, empty when valid.
    """
    issues: List[Dict[str, str]] = []
    by_id: Dict[str, StepSpec] = {}
    seen_orders = set()

    for i, step in enumerate(steps):
        if step.id in by_id:
            issues.append({"path": f"steps[{i}].id", "msg": f"duplicate step id {step.id!r}"})
        by_id[step.id] = step
        if step.order in seen_orders:
            issues.append({"path": f"steps[{i}].order", "msg": f"duplicate order {step.order}"})
        seen_orders.add(step.order)

    for i, step in enumerate(steps):
        if not isinstance(step, ConditionStep):
            continue
        for branch in ("true_step_id", "false_step_id"):
            target_id = getattr(step.config, branch)
            if target_id is None:
                continue
            target = by_id.get(target_id)
            if target is None:
                issues.append({"path": f"steps[{i}].config.{branch}", "msg": f"unknown step {target_id!r}"})
            elif target.order <= step.order:
                issues.append({"path": f"steps[{i}].config.{branch}", "msg": "branch must jump forward"})

    return issues
