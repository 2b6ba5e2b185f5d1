from clinicflow.schemas import ManualEnrollmentDTO

from conftest import ORG, OTHER_ORG

TAGS = [{"id": f"t{i}", "order": i, "kind": "add_tag", "config": {"tag": f"tag-{i}"}} for i in range(1, 6)]


def test_pages_newest_first_with_cursor(service, drain, make_client, make_workflow):
    jane = make_client()
    wf = make_workflow("manual", TAGS)
    enrollment = service.enroll_client(ORG, wf.id, ManualEnrollmentDTO(client_id=jane.id)).enrollment
    drain()

    # enroll + five tags + completion
    first = service.query_execution_logs(ORG, enrollment_id=enrollment.id, limit=4)
    assert len(first.items) == 4
    assert first.items[0].action == "workflow_completed"
    assert first.next_cursor == first.items[-1].id

    second = service.query_execution_logs(ORG, enrollment_id=enrollment.id, cursor=first.next_cursor, limit=4)
    assert len(second.items) == 3
    assert second.next_cursor is None
    assert second.items[-1].action == "enroll_client"

    ids = [e.id for e in first.items + second.items]
    assert ids == sorted(ids, reverse=True)


def test_filters_and_tenant_scope(service, drain, make_client, make_workflow):
    jane = make_client()
    bob = make_client(full_name="Bob Roe")
    wf = make_workflow("manual", TAGS[:1])
    service.enroll_client(ORG, wf.id, ManualEnrollmentDTO(client_id=jane.id))
    service.enroll_client(ORG, wf.id, ManualEnrollmentDTO(client_id=bob.id))
    drain()

    assert {e.client_id for e in service.query_execution_logs(ORG, client_id=bob.id).items} == {bob.id}
    assert len(service.query_execution_logs(ORG, workflow_id=wf.id).items) == 6
    assert service.query_execution_logs(OTHER_ORG).items == []


def test_workflow_stats(service, drain, make_client, make_workflow, clock):
    jane = make_client()
    bob = make_client(phones=[])
    wf = make_workflow("manual", [
        {"id": "sms", "order": 1, "kind": "send_message", "config": {"channel": "sms", "body": "hi"}},
    ])
    service.enroll_client(ORG, wf.id, ManualEnrollmentDTO(client_id=jane.id))
    service.enroll_client(ORG, wf.id, ManualEnrollmentDTO(client_id=bob.id))
    drain()

    stats = service.get_workflow_stats(ORG, wf.id)
    assert stats.total_enrollments == 2
    assert stats.active_enrollments == 1
    assert stats.completed_enrollments == 1
    # 2 enroll + jane's sms + completion + bob's failed sms
    assert stats.total_executions == 5
    assert stats.failed_executions == 1
    assert stats.successful_executions == 4
    assert stats.success_rate == 80.0
    assert stats.last_run_at == clock.now
