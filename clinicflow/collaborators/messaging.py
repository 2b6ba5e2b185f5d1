import logging
import re
from typing import Any, Dict, Optional, Tuple

from sqlmodel import Session

from ..errors import MessageDispatchError, NotFoundError, TenantAccessError
from ..models import Message, MessageChannel, MessageStatus, MessageTemplate
from ..util.clock import Clock, now_ms
from ..util.ids import new_id
from .base import ClientDirectory, DispatchResult, MessageRequest, Messenger

logger = logging.getLogger(__name__)

_VARIABLE = re.compile(r"\{\{\s*([a-z_]+)\s*\}\}")

# fallbacks used when the client record lacks a value
_FALLBACKS = {
    "first_name": "there",
    "client_name": "there",
    "last_name": "",
    "phone": "your phone",
    "email": "your email",
    "appointment_type": "appointment",
    "business_name": "our clinic",
}


def render_template(text: Optional[str], variables: Dict[str, Any]) -> str:
    """
    Substitute ``{{name}}`` placeholders.

    Unknown placeholders are left untouched so a typo is visible in the sent text.
    """
    if not text:
        return ""

    def _sub(match: "re.Match[str]") -> str:
        key = match.group(1)
        value = variables.get(key)
        if value is None or value == "":
            if key in _FALLBACKS:
                return _FALLBACKS[key]
            return match.group(0)
        return str(value)

    return _VARIABLE.sub(_sub, text)


def resolve_content(session: Session, org_id: str, channel: MessageChannel, template_ref: Optional[str],
                    subject: Optional[str], body: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Unrendered ``(subject, body)`` of a message step.

    Inline subject/body win over the template's. The template must belong to
    the org and be written for the same channel.
    """
    if not template_ref:
        return subject, body
    template = session.get(MessageTemplate, template_ref)
    if template is None or template.org_id != org_id:
        raise MessageDispatchError(f"message template {template_ref} not found")
    if MessageChannel(template.channel) != channel:
        raise MessageDispatchError(
            f"template {template.id} is for {MessageChannel(template.channel).value}, not {channel.value}"
        )
    return subject or template.subject, body or template.content


class OutboxMessenger(Messenger):
    """
    Renders the message and writes it to the ``messages`` outbox as pending.

    A transport outside this service delivers outbox rows and reports back
    through ``update_status``.
    """

    def __init__(self, session: Session, clients: ClientDirectory, clock: Clock = now_ms):
        self.session = session
        self.clients = clients
        self.clock = clock

    def send(self, request: MessageRequest) -> DispatchResult:
        channel = MessageChannel(request.channel)
        context = self.clients.get_context(request.org_id, request.client_id)
        variables = {**request.variables, **context}

        subject, body = resolve_content(self.session, request.org_id, channel, request.template_ref,
                                        request.subject, request.body)

        if channel == MessageChannel.sms:
            recipient = context.get("phone")
            if not recipient:
                raise MessageDispatchError("client has no phone number for SMS")
        else:
            recipient = context.get("email")
            if not recipient:
                raise MessageDispatchError("client has no email address")

        content = render_template(body, variables)
        rendered_subject = render_template(subject, variables) if subject else None

        message = Message(
            id=new_id("msg_"),
            org_id=request.org_id,
            client_id=request.client_id,
            enrollment_id=request.enrollment_id,
            channel=channel,
            recipient=recipient,
            subject=rendered_subject,
            content=content,
            status=MessageStatus.pending,
        )
        self.session.add(message)
        logger.info("Queued %s %s for client %s", channel.value, message.id, request.client_id)

        return DispatchResult(message_id=message.id, recipient=recipient, channel=channel.value, content=content)

    def update_status(self, org_id: str, message_id: str, status: str,
                      sent_at: Optional[int] = None, external_id: Optional[str] = None) -> None:
        message = self.session.get(Message, message_id)
        if message is None:
            raise NotFoundError("message", message_id)
        if message.org_id != org_id:
            raise TenantAccessError("message", message_id)

        message.status = MessageStatus(status)
        if message.status in (MessageStatus.sent, MessageStatus.delivered) and message.sent_at is None:
            message.sent_at = sent_at if sent_at is not None else self.clock()
        elif sent_at is not None:
            message.sent_at = sent_at
        if external_id:
            message.external_id = external_id
        message.touch()
        self.session.add(message)
