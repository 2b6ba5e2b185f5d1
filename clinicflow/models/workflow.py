from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, JSON
from sqlmodel import Field

from .base import Timestamped
from .steps import StepSpec, parse_steps


class TriggerType(str, Enum):
    # treatment types produced by the appointment classifier
    morpheus8 = "morpheus8"
    toxins = "toxins"
    filler = "filler"
    consultation = "consultation"
    # lifecycle triggers
    new_client = "new_client"
    appointment_completed = "appointment_completed"
    appointment_scheduled = "appointment_scheduled"
    manual = "manual"


class WorkflowStatus(str, Enum):
    draft = "draft"
    active = "active"
    inactive = "inactive"
    archived = "archived"


class WorkflowDefinition(Timestamped, table=True):
    __tablename__ = "workflows"

    id: str = Field(primary_key=True, index=True)
    org_id: str = Field(index=True)
    name: str
    description: str = ""
    # plain string so custom classifier rules can introduce new trigger types
    trigger_type: str = Field(index=True)
    status: WorkflowStatus = Field(default=WorkflowStatus.draft, index=True)

    # ordered StepSpec payloads, stored as JSON (see models.steps)
    steps: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    prevent_duplicates: bool = True
    duplicate_prevention_days: Optional[int] = 30

    def step_specs(self) -> List[StepSpec]:
        """Steps as typed specs, sorted by ``order``."""
        return parse_steps(self.steps)

    @property
    def is_active(self) -> bool:
        return self.status == WorkflowStatus.active
