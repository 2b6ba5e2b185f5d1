import pytest
from sqlmodel import Session, select

from clinicflow.collaborators import MessageRequest, OutboxMessenger, SqlClientDirectory, render_template
from clinicflow.errors import ClientRecordError, MessageDispatchError, NotFoundError, TenantAccessError
from clinicflow.models import Message, MessageChannel, MessageStatus
from clinicflow.schemas import MessageStatusDTO

from conftest import ORG, OTHER_ORG, T0


def test_render_template_fallbacks_and_unknowns():
    text = "Hi {{first_name}}, thanks for your {{ appointment_type }} at {{business_name}}. {{coupon}}"
    assert render_template(text, {"appointment_type": "Botox"}) == \
        "Hi there, thanks for your Botox at our clinic. {{coupon}}"


def test_outbox_message_from_template(engine, make_client, make_template):
    jane = make_client(full_name="Jane Doe")
    template = make_template(channel=MessageChannel.email, subject="For {{first_name}}",
                             content="Dear {{client_name}}, your {{appointment_title}} went well.")
    with Session(engine, expire_on_commit=False) as session:
        clients = SqlClientDirectory(session)
        messenger = OutboxMessenger(session, clients, clock=lambda: T0)
        result = messenger.send(MessageRequest(org_id=ORG, client_id=jane.id, channel="email",
                                               template_ref=template.id,
                                               variables={"appointment_title": "Morpheus8"}))
        session.commit()

    assert result.recipient == "jane@example.com"
    assert result.content == "Dear Jane Doe, your Morpheus8 went well."
    with Session(engine) as session:
        message = session.get(Message, result.message_id)
        assert message.subject == "For Jane"
        assert message.status == MessageStatus.pending


def test_template_channel_must_match(engine, make_client, make_template):
    jane = make_client()
    template = make_template(channel=MessageChannel.sms)
    with Session(engine) as session:
        messenger = OutboxMessenger(session, SqlClientDirectory(session))
        with pytest.raises(MessageDispatchError):
            messenger.send(MessageRequest(org_id=ORG, client_id=jane.id, channel="email", template_ref=template.id))


def test_other_orgs_client_is_not_found(engine, make_client):
    theirs = make_client(org_id=OTHER_ORG)
    with Session(engine) as session:
        with pytest.raises(ClientRecordError):
            SqlClientDirectory(session).get_context(ORG, theirs.id)


def test_add_tag_is_idempotent(engine, make_client):
    jane = make_client(tags=["vip"])
    with Session(engine) as session:
        clients = SqlClientDirectory(session)
        assert clients.add_tag(ORG, jane.id, "vip")["action"] == "tag_already_exists"
        assert clients.add_tag(ORG, jane.id, "new")["new_tags"] == ["vip", "new"]
        assert clients.remove_tag(ORG, jane.id, None, remove_all=True)["new_tags"] == []


def test_delivery_status_update(service, engine, make_client, drain, make_workflow):
    jane = make_client()
    make_workflow("morpheus8", [{"id": "sms", "order": 1, "kind": "send_message",
                                 "config": {"channel": "sms", "body": "hi"}}])
    service.process_appointment_completion(ORG, "apt_1", jane.id, "Morpheus8", T0)
    drain()
    with Session(engine) as session:
        message_id = session.exec(select(Message.id)).one()

    service.update_message_status(ORG, message_id, MessageStatusDTO(status="delivered", external_id="tw_1"))
    with Session(engine) as session:
        message = session.get(Message, message_id)
        assert message.status == MessageStatus.delivered
        assert message.sent_at == T0
        assert message.external_id == "tw_1"

    with pytest.raises(TenantAccessError):
        service.update_message_status(OTHER_ORG, message_id, MessageStatusDTO(status="failed"))
    with pytest.raises(NotFoundError):
        service.update_message_status(ORG, "msg_missing", MessageStatusDTO(status="failed"))
