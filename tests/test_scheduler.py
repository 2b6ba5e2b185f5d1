import pytest
from sqlmodel import Session, select

from clinicflow.errors import ScheduledActionConflictError, TenantAccessError
from clinicflow.models import ScheduledAction, ScheduledActionStatus, ScheduledActionType
from clinicflow.schemas import AppointmentCompletionDTO
from clinicflow.util.clock import MINUTE_MS
from clinicflow.util.ids import new_id

from conftest import ORG, OTHER_ORG, T0


def _insert_action(engine, action: str, args: dict, scheduled_for: int = T0, org_id: str = ORG,
                   status: ScheduledActionStatus = ScheduledActionStatus.pending) -> str:
    record = ScheduledAction(id=new_id("act_"), org_id=org_id, action=action, args=args,
                             scheduled_for=scheduled_for, status=status, attempts=0, max_attempts=3)
    with Session(engine, expire_on_commit=False) as session:
        session.add(record)
        session.commit()
    return record.id


def _get(engine, action_id) -> ScheduledAction:
    with Session(engine) as session:
        return session.get(ScheduledAction, action_id)


def test_fault_requeues_after_five_minutes_then_fails(service, engine, clock):
    # enrollment does not exist, so every attempt raises
    action_id = _insert_action(engine, "continue_workflow", {"enrollment_id": "enr_gone"})

    report = service.process_pending_actions()
    assert (report.processed, report.failed) == (1, 1)
    action = _get(engine, action_id)
    assert action.status == ScheduledActionStatus.pending
    assert action.attempts == 1
    assert action.scheduled_for == T0 + 5 * MINUTE_MS
    assert "enrollment" in action.error

    assert service.process_pending_actions().processed == 0

    clock.advance(5 * MINUTE_MS)
    service.process_pending_actions()
    clock.advance(5 * MINUTE_MS)
    service.process_pending_actions()

    action = _get(engine, action_id)
    assert action.attempts == 3
    assert action.status == ScheduledActionStatus.failed


def test_unknown_action_type_is_a_fault(service, engine):
    action_id = _insert_action(engine, "send_newsletter", {})
    report = service.process_pending_actions()
    assert report.failed == 1
    assert "send_newsletter" in _get(engine, action_id).error


def test_future_actions_wait(service, engine):
    _insert_action(engine, "continue_workflow", {"enrollment_id": "x"}, scheduled_for=T0 + 1)
    assert service.process_pending_actions().processed == 0


def test_process_can_be_scoped_to_one_org(service, engine):
    mine = _insert_action(engine, "send_newsletter", {})
    theirs = _insert_action(engine, "send_newsletter", {}, org_id=OTHER_ORG)

    service.process_pending_actions(org_id=ORG)

    assert _get(engine, mine).attempts == 1
    assert _get(engine, theirs).attempts == 0


def test_deferred_appointment_completion(service, engine, drain, make_client, make_workflow):
    jane = make_client()
    make_workflow("toxins")
    action = service.schedule_appointment_completion(ORG, AppointmentCompletionDTO(
        appointment_id="apt_1", client_id=jane.id, appointment_title="Botox", appointment_end_time=T0,
    ))
    assert action.action == ScheduledActionType.process_appointment_completion.value

    drain()

    assert _get(engine, action.id).status == ScheduledActionStatus.completed
    trigger = service.get_trigger_by_appointment(ORG, "apt_1")
    assert trigger is not None and trigger.appointment_type == "toxins"


def test_stats_cancel_and_reschedule(service, engine, clock):
    due = _insert_action(engine, "continue_workflow", {"enrollment_id": "x"}, scheduled_for=T0 - 1)
    later = _insert_action(engine, "continue_workflow", {"enrollment_id": "y"}, scheduled_for=T0 + MINUTE_MS)
    running = _insert_action(engine, "continue_workflow", {"enrollment_id": "z"},
                             status=ScheduledActionStatus.running)

    stats = service.scheduled_action_stats(ORG)
    assert (stats.total, stats.pending, stats.running, stats.overdue) == (3, 2, 1, 1)

    with pytest.raises(ScheduledActionConflictError):
        service.cancel_scheduled_action(ORG, running)
    with pytest.raises(TenantAccessError):
        service.cancel_scheduled_action(OTHER_ORG, later)

    service.cancel_scheduled_action(ORG, later)
    assert _get(engine, later) is None

    rescheduled = service.reschedule_action(ORG, due, T0 + 10 * MINUTE_MS)
    assert rescheduled.scheduled_for == T0 + 10 * MINUTE_MS
    assert rescheduled.attempts == 0

    pending = service.list_scheduled_actions(ORG, ScheduledActionStatus.pending)
    assert [a.id for a in pending] == [due]


def test_reschedule_resets_failed_action(service, engine, clock):
    action_id = _insert_action(engine, "continue_workflow", {"enrollment_id": "x"},
                               status=ScheduledActionStatus.failed)
    with Session(engine) as session:
        record = session.get(ScheduledAction, action_id)
        record.attempts = 3
        record.error = "boom"
        session.add(record)
        session.commit()

    action = service.reschedule_action(ORG, action_id, T0)
    assert action.status == ScheduledActionStatus.pending
    assert (action.attempts, action.error) == (0, None)


def test_all_actions_listed_in_due_order(service, engine):
    b = _insert_action(engine, "continue_workflow", {"enrollment_id": "b"}, scheduled_for=T0 + 2)
    a = _insert_action(engine, "continue_workflow", {"enrollment_id": "a"}, scheduled_for=T0 + 1)
    with Session(engine) as session:
        ids = [r.id for r in session.exec(select(ScheduledAction).order_by(ScheduledAction.scheduled_for)).all()]
    assert [x.id for x in service.list_scheduled_actions(ORG)] == ids == [a, b]
