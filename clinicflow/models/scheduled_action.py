from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, Column, JSON
from sqlmodel import Field

from .base import Timestamped


class ScheduledActionType(str, Enum):
    continue_workflow = "continue_workflow"
    process_appointment_completion = "process_appointment_completion"


class ScheduledActionStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


class ScheduledAction(Timestamped, table=True):
    __tablename__ = "scheduled_actions"

    id: str = Field(primary_key=True, index=True)
    org_id: str = Field(index=True)
    action: str = Field(index=True)
    args: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    scheduled_for: int = Field(sa_type=BigInteger, index=True)
    status: ScheduledActionStatus = Field(default=ScheduledActionStatus.pending, index=True)
    attempts: int = 0
    max_attempts: int = 3
    last_attempt_at: Optional[int] = Field(default=None, sa_type=BigInteger)
    error: Optional[str] = None
