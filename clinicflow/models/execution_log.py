from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, Column, JSON
from sqlmodel import SQLModel, Field


class LogStatus(str, Enum):
    executed = "executed"
    failed = "failed"
    waiting = "waiting"
    cancelled = "cancelled"


class ExecutionLogEntry(SQLModel, table=True):
    """Append-only audit record of one step attempt or enrollment transition."""
    __tablename__ = "execution_logs"

    id: str = Field(primary_key=True, index=True)
    org_id: str = Field(index=True)
    workflow_id: str = Field(index=True)
    enrollment_id: str = Field(index=True)
    client_id: str = Field(index=True)

    step_id: str
    action: str = Field(index=True)
    status: LogStatus = Field(index=True)
    executed_at: int = Field(sa_type=BigInteger, index=True)
    message: str = ""
    error: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON, nullable=False))
