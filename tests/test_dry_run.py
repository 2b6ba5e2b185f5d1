import pytest
from sqlmodel import Session, select

from clinicflow.errors import NotFoundError, TenantAccessError
from clinicflow.models import Client, Enrollment, ExecutionLogEntry, Message, MessageChannel, ScheduledAction
from clinicflow.schemas import DryRunDTO
from clinicflow.util.clock import DAY_MS

from conftest import ORG, OTHER_ORG

STEPS = [
    {"id": "sms", "order": 1, "kind": "send_message",
     "config": {"channel": "sms", "body": "Hi {{first_name}}, how was your {{appointment_type}}?"}},
    {"id": "wait", "order": 2, "kind": "delay", "config": {"amount": 2, "unit": "days"}},
    {"id": "check", "order": 3, "kind": "condition",
     "config": {"field": "tags", "operator": "has_tag", "value": "vip", "true_step_id": "vip"}},
    {"id": "vip", "order": 4, "kind": "add_tag", "config": {"tag": "vip-followup"}},
    {"id": "email", "order": 5, "kind": "send_message",
     "config": {"channel": "email", "subject": "Thanks {{first_name}}", "body": "See you soon"}},
    {"id": "crm", "order": 6, "kind": "custom_action", "config": {"action": "notify_crm"}},
]


def _rows(engine, model):
    with Session(engine) as session:
        return session.exec(select(model)).all()


def test_dry_run_with_real_client_writes_nothing(service, engine, make_client, make_workflow):
    jane = make_client(tags=["vip"])
    wf = make_workflow("morpheus8", STEPS)

    report = service.test_workflow(ORG, wf.id, DryRunDTO(client_id=jane.id))

    assert report.client.id == jane.id and report.client.phone == "+15550100"
    assert report.total_steps == 6 and report.successful_steps == 6
    by_step = {r.step_id: r for r in report.results}
    assert by_step["sms"].result["content"] == "Hi Jane, how was your morpheus8?"
    assert by_step["sms"].result["recipient"] == "+15550100"
    assert by_step["wait"].result["delay_ms"] == 2 * DAY_MS
    assert by_step["check"].result["branch"] == "true"
    assert by_step["vip"].result["simulated"] is True
    assert by_step["email"].result["subject"] == "Thanks Jane"
    assert by_step["crm"].result["handled"] is False

    assert _rows(engine, Message) == []
    assert _rows(engine, Enrollment) == []
    assert _rows(engine, ExecutionLogEntry) == []
    assert _rows(engine, ScheduledAction) == []
    with Session(engine) as session:
        assert session.get(Client, jane.id).tags == ["vip"]


def test_stand_in_client_without_contact_fails_message_steps(service, make_workflow):
    wf = make_workflow("morpheus8", STEPS, status="draft")

    report = service.test_workflow(ORG, wf.id)

    assert report.client.name == "Test Client" and report.client.id is None
    failed = {r.step_id: r.error for r in report.results if not r.success}
    assert failed == {"sms": "client has no phone number for SMS", "email": "client has no email address"}
    assert report.successful_steps == 4
    check = next(r for r in report.results if r.step_id == "check")
    assert check.result["branch"] == "false"


def test_contact_overrides_pick_the_recipient(service, make_client, make_workflow):
    jane = make_client()
    wf = make_workflow("morpheus8", STEPS)
    service.custom_actions.register("notify_crm", lambda org, client, params: {"ok": True})

    report = service.test_workflow(ORG, wf.id, DryRunDTO(client_id=jane.id, contact_phone="+15550199",
                                                         contact_email="qa@example.com"))

    by_step = {r.step_id: r for r in report.results}
    assert by_step["sms"].result["recipient"] == "+15550199"
    assert by_step["email"].result["recipient"] == "qa@example.com"
    assert by_step["crm"].result["handled"] is True
    assert report.client.email == "qa@example.com"


def test_template_problems_fail_only_their_step(service, make_template, make_workflow):
    email_tpl = make_template(channel=MessageChannel.email, subject="Hello", content="Body")
    wf = make_workflow("morpheus8", [
        {"id": "sms", "order": 1, "kind": "send_message", "config": {"channel": "sms", "template_ref": email_tpl.id}},
        {"id": "tag", "order": 2, "kind": "add_tag", "config": {"tag": "x"}},
    ])

    report = service.test_workflow(ORG, wf.id, DryRunDTO(contact_phone="+15550199"))

    assert [r.success for r in report.results] == [False, True]
    assert "not sms" in report.results[0].error


def test_dry_run_is_tenant_scoped(service, make_client, make_workflow):
    wf = make_workflow("morpheus8", STEPS)
    stranger = make_client(org_id=OTHER_ORG)

    with pytest.raises(TenantAccessError):
        service.test_workflow(OTHER_ORG, wf.id)
    with pytest.raises(TenantAccessError):
        service.test_workflow(ORG, wf.id, DryRunDTO(client_id=stranger.id))
    with pytest.raises(NotFoundError):
        service.test_workflow(ORG, wf.id, DryRunDTO(client_id="cli_missing"))
