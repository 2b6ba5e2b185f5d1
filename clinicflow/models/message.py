from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger
from sqlmodel import Field

from .base import Timestamped


class MessageChannel(str, Enum):
    sms = "sms"
    email = "email"


class MessageStatus(str, Enum):
    pending = "pending"
    sent = "sent"
    delivered = "delivered"
    failed = "failed"


class MessageTemplate(Timestamped, table=True):
    __tablename__ = "message_templates"

    id: str = Field(primary_key=True, index=True)
    org_id: str = Field(index=True)
    name: str
    channel: MessageChannel
    subject: Optional[str] = None  # email only
    content: str


class Message(Timestamped, table=True):
    """Outbox row; delivery status is updated asynchronously by the transport."""
    __tablename__ = "messages"

    id: str = Field(primary_key=True, index=True)
    org_id: str = Field(index=True)
    client_id: str = Field(index=True)
    enrollment_id: Optional[str] = Field(default=None, index=True)
    channel: MessageChannel
    recipient: str
    subject: Optional[str] = None
    content: str
    status: MessageStatus = Field(default=MessageStatus.pending, index=True)
    external_id: Optional[str] = None
    sent_at: Optional[int] = Field(default=None, sa_type=BigInteger)
