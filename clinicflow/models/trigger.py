from typing import Any, Dict, List

from sqlalchemy import BigInteger, Column, JSON, UniqueConstraint
from sqlmodel import SQLModel, Field


class TriggerEvent(SQLModel, table=True):
    """
    One appointment-completion event that enrolled at least one client.

    Immutable once written. ``triggered_workflows[i]`` produced ``enrollment_ids[i]``.
    The unique key makes re-processing the same appointment a no-op.
    """
    __tablename__ = "appointment_triggers"
    __table_args__ = (
        UniqueConstraint("org_id", "appointment_id", "appointment_type", name="uq_trigger_appointment"),
    )

    id: str = Field(primary_key=True, index=True)
    org_id: str = Field(index=True)
    appointment_id: str = Field(index=True)
    client_id: str = Field(index=True)
    appointment_type: str = Field(index=True)

    triggered_workflows: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    enrollment_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    triggered_at: int = Field(sa_type=BigInteger, index=True)
    appointment_end_time: int = Field(sa_type=BigInteger)
    meta: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON, nullable=False))
