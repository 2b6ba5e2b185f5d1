from enum import Enum
from typing import List, Optional

from sqlalchemy import Column, JSON
from sqlmodel import Field

from .base import Timestamped


class ClientPortalStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    pending = "pending"


class Client(Timestamped, table=True):
    """Client record read and tagged by the default client collaborator."""
    __tablename__ = "clients"

    id: str = Field(primary_key=True, index=True)
    org_id: str = Field(index=True)
    full_name: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phones: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    client_portal_status: ClientPortalStatus = ClientPortalStatus.active
