from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, Column, JSON
from sqlmodel import Field

from .base import Timestamped


class EnrollmentStatus(str, Enum):
    active = "active"
    paused = "paused"
    completed = "completed"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset({EnrollmentStatus.completed, EnrollmentStatus.cancelled})

# allowed current_status transitions; completed/cancelled are terminal
TRANSITIONS = {
    EnrollmentStatus.active: frozenset({EnrollmentStatus.paused, EnrollmentStatus.completed, EnrollmentStatus.cancelled}),
    EnrollmentStatus.paused: frozenset({EnrollmentStatus.active}),
    EnrollmentStatus.completed: frozenset(),
    EnrollmentStatus.cancelled: frozenset(),
}


class Enrollment(Timestamped, table=True):
    __tablename__ = "workflow_enrollments"

    id: str = Field(primary_key=True, index=True)
    org_id: str = Field(index=True)
    workflow_id: str = Field(foreign_key="workflows.id", index=True)
    client_id: str = Field(index=True)

    enrollment_reason: str
    enrolled_at: int = Field(sa_type=BigInteger, index=True)
    current_status: EnrollmentStatus = Field(default=EnrollmentStatus.active, index=True)

    # step waiting to run; None before the first dispatch and after the last step
    current_step_id: Optional[str] = None
    last_executed_step_id: Optional[str] = None
    next_execution_at: Optional[int] = Field(default=None, sa_type=BigInteger, index=True)

    paused_at: Optional[int] = Field(default=None, sa_type=BigInteger)
    resumed_at: Optional[int] = Field(default=None, sa_type=BigInteger)
    completed_at: Optional[int] = Field(default=None, sa_type=BigInteger)
    cancelled_at: Optional[int] = Field(default=None, sa_type=BigInteger)

    # set when a step fails; scheduled continuations leave a halted enrollment alone
    halted_at: Optional[int] = Field(default=None, sa_type=BigInteger)
    last_error: Optional[str] = None

    meta: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON, nullable=False))
