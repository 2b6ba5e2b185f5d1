from conftest import T0

STEPS = [
    {"id": "wait", "order": 1, "kind": "delay", "config": {"amount": 1, "unit": "days"}},
    {"id": "sms", "order": 2, "kind": "send_message", "config": {"channel": "sms", "body": "Hi {{first_name}}"}},
]


def _completion(client_id, appointment_id="apt_1", title="Morpheus8 - Full Face"):
    return {
        "appointment_id": appointment_id,
        "client_id": client_id,
        "appointment_title": title,
        "appointment_end_time": T0,
    }


def test_appointment_completion_enrolls(client, auth_headers, make_client, make_workflow):
    jane = make_client()
    wf = make_workflow("morpheus8", STEPS)

    r = client.post("/api/v0/triggers/appointment-completions", json=_completion(jane.id), headers=auth_headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["appointment_type"] == "morpheus8"
    assert body["reason"] == "enrolled"
    assert body["enrollments"] == 1
    assert body["outcomes"][0]["workflow_id"] == wf.id

    again = client.post("/api/v0/triggers/appointment-completions", json=_completion(jane.id),
                        headers=auth_headers).json()
    assert again["reason"] == "already_processed"
    assert again["trigger_event_id"] == body["trigger_event_id"]


def test_unmatched_title(client, auth_headers, make_client):
    jane = make_client()
    r = client.post("/api/v0/triggers/appointment-completions",
                    json=_completion(jane.id, title="Chemical Peel"), headers=auth_headers)
    assert r.json() == {
        "appointment_type": None,
        "triggered_workflows": 0,
        "enrollments": 0,
        "reason": "no_trigger_match",
        "outcomes": [],
        "trigger_event_id": None,
    }


def test_missing_fields_are_rejected(client, auth_headers):
    r = client.post("/api/v0/triggers/appointment-completions", json={"appointment_id": "apt_1"},
                    headers=auth_headers)
    assert r.status_code == 422
    paths = {d["path"] for d in r.json()["error"]["details"]}
    assert "body.client_id" in paths


def test_recent_stats_and_lookup(client, auth_headers, other_org_headers, make_client, make_workflow):
    jane = make_client()
    wf = make_workflow("morpheus8", STEPS, name="M8 aftercare")
    client.post("/api/v0/triggers/appointment-completions", json=_completion(jane.id), headers=auth_headers)

    recent = client.get("/api/v0/triggers/recent", headers=auth_headers).json()
    assert len(recent) == 1
    assert recent[0]["client"]["full_name"] == "Jane Doe"
    assert recent[0]["appointment"] == {"id": "apt_1", "title": "Morpheus8 - Full Face", "end_time": T0}
    assert recent[0]["workflows"] == [{"id": wf.id, "name": "M8 aftercare", "trigger_type": "morpheus8"}]

    stats = client.get("/api/v0/triggers/stats", headers=auth_headers).json()
    assert stats == {"total_triggers": 1, "triggers_by_type": {"morpheus8": 1},
                     "total_enrollments": 1, "recent_triggers": 1}

    found = client.get("/api/v0/triggers/by-appointment/apt_1", headers=auth_headers)
    assert found.status_code == 200 and found.json()["appointment_type"] == "morpheus8"

    assert client.get("/api/v0/triggers/by-appointment/apt_1", headers=other_org_headers).status_code == 404
    assert client.get("/api/v0/triggers/recent", headers=other_org_headers).json() == []


def test_scheduled_completion_is_accepted(client, auth_headers, make_client, make_workflow):
    jane = make_client()
    make_workflow("morpheus8", STEPS)
    r = client.post("/api/v0/triggers/appointment-completions:schedule", json=_completion(jane.id),
                    headers=auth_headers)
    assert r.status_code == 202, r.text
    assert r.json()["action"] == "process_appointment_completion"
    assert r.json()["status"] == "pending"

    report = client.post("/api/v0/scheduled-actions:process", headers=auth_headers).json()
    assert report["successful"] >= 1
    assert client.get("/api/v0/triggers/by-appointment/apt_1", headers=auth_headers).status_code == 200
