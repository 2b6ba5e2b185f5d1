from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class MessageRequest:
    org_id: str
    client_id: str
    channel: str  # "sms" | "email"
    template_ref: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    enrollment_id: Optional[str] = None
    # appointment fields carried by the enrollment, for variable substitution
    variables: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DispatchResult:
    message_id: str
    recipient: str
    channel: str
    content: str


class Messenger(ABC):
    """Renders and hands off SMS/email messages. Delivery is reported later."""

    @abstractmethod
    def send(self, request: MessageRequest) -> DispatchResult:
        """
        Hand the message off for delivery.

        Raises:
            MessageDispatchError: when the message cannot be dispatched
        """

    @abstractmethod
    def update_status(self, org_id: str, message_id: str, status: str,
                      sent_at: Optional[int] = None, external_id: Optional[str] = None) -> None:
        """Record an asynchronous delivery status update."""


class ClientDirectory(ABC):
    """Client-record access used by tag steps and condition evaluation."""

    @abstractmethod
    def add_tag(self, org_id: str, client_id: str, tag: str) -> Dict[str, Any]:
        """Append a tag; adding an existing tag is a no-op."""

    @abstractmethod
    def remove_tag(self, org_id: str, client_id: str, tag: Optional[str], remove_all: bool = False) -> Dict[str, Any]:
        """Remove one tag, or all tags."""

    @abstractmethod
    def get_context(self, org_id: str, client_id: str) -> Dict[str, Any]:
        """Client fields available to condition steps and message templates."""


class CustomActionHandler(ABC):
    """Tenant-defined actions. Succeeds unless it raises CustomActionError."""

    @abstractmethod
    def run(self, org_id: str, client_id: str, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def known_actions(self) -> List[str]:
        return []


@dataclass
class Collaborators:
    messenger: Messenger
    clients: ClientDirectory
    custom_actions: CustomActionHandler
