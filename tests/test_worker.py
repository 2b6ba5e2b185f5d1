from clinicflow.worker import run_once

from conftest import ORG, T0


def test_run_once_drains_in_batches(service, make_client, make_workflow):
    make_workflow("toxins", [{"id": "t", "order": 1, "kind": "add_tag", "config": {"tag": "botox"}}])
    clients = [make_client(full_name=f"Client {i}") for i in range(3)]
    for i, c in enumerate(clients):
        service.process_appointment_completion(ORG, f"apt_{i}", c.id, "Botox touch-up", T0)

    # a full batch of 2, then a short batch of 1
    assert run_once(service, limit=2) == 3
    assert run_once(service, limit=2) == 0
    assert all(e.current_status == "completed" for e in service.list_enrollments(ORG))
