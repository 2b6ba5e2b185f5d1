WF = {
    "name": "Morpheus8 aftercare",
    "trigger_type": "morpheus8",
    "status": "active",
    "steps": [
        {"id": "wait", "order": 1, "kind": "delay", "config": {"amount": 1, "unit": "days"}},
        {"id": "sms", "order": 2, "kind": "send_message",
         "config": {"channel": "sms", "body": "Hi {{first_name}}, how are you feeling?"}},
    ],
}


def test_healthz_and_request_id(client):
    r = client.get("/api/v0/healthz", headers={"X-Request-Id": "req_fixed"})
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Request-Id"] == "req_fixed"
    assert client.get("/api/v0/healthz").headers["X-Request-Id"].startswith("req_")


def test_requires_bearer_token(client):
    r = client.get("/api/v0/workflows")
    assert r.status_code == 401, r.text
    assert r.json()["error"]["code"] == "UNAUTHORIZED"

    r = client.get("/api/v0/workflows", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401


def test_create_get_list_workflow(client, auth_headers):
    r = client.post("/api/v0/workflows", json=WF, headers=auth_headers)
    assert r.status_code == 201, r.text
    wf = r.json()
    assert wf["id"].startswith("wf_") and wf["status"] == "active"
    assert [s["id"] for s in wf["steps"]] == ["wait", "sms"]

    got = client.get(f"/api/v0/workflows/{wf['id']}", headers=auth_headers)
    assert got.status_code == 200 and got.json()["name"] == WF["name"]

    listing = client.get("/api/v0/workflows", params={"status": "active"}, headers=auth_headers).json()
    assert listing["total"] == 1
    assert listing["items"][0]["step_count"] == 2
    assert listing["items"][0]["active_enrollment_count"] == 0

    assert client.get("/api/v0/workflows", params={"status": "draft"}, headers=auth_headers).json()["total"] == 0


def test_backward_branch_is_a_validation_error(client, auth_headers):
    payload = {**WF, "steps": [
        {"id": "a", "order": 1, "kind": "add_tag", "config": {"tag": "x"}},
        {"id": "b", "order": 2, "kind": "condition",
         "config": {"field": "tags", "operator": "has_tag", "value": "x", "false_step_id": "a"}},
    ]}
    r = client.post("/api/v0/workflows", json=payload, headers=auth_headers)
    assert r.status_code == 422, r.text
    error = r.json()["error"]
    assert error["code"] == "VALIDATION"
    assert error["details"][0]["path"] == "steps[1].config.false_step_id"


def test_unknown_step_kind_rejected_by_schema(client, auth_headers):
    payload = {**WF, "steps": [{"id": "x", "order": 1, "kind": "send_fax", "config": {}}]}
    r = client.post("/api/v0/workflows", json=payload, headers=auth_headers)
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "VALIDATION"


def test_status_actions_and_update(client, auth_headers):
    wid = client.post("/api/v0/workflows", json={**WF, "status": "draft"}, headers=auth_headers).json()["id"]

    r = client.post(f"/api/v0/workflows/{wid}:activate", headers=auth_headers)
    assert r.status_code == 200 and r.json()["status"] == "active"
    r = client.post(f"/api/v0/workflows/{wid}:deactivate", headers=auth_headers)
    assert r.json()["status"] == "inactive"

    r = client.put(f"/api/v0/workflows/{wid}", json={"name": "Renamed", "duplicate_prevention_days": 10},
                   headers=auth_headers)
    assert r.status_code == 200, r.text
    assert r.json()["name"] == "Renamed" and r.json()["duplicate_prevention_days"] == 10

    r = client.post(f"/api/v0/workflows/{wid}:archive", headers=auth_headers)
    assert r.json()["status"] == "archived"

    r = client.post(f"/api/v0/workflows/{wid}:validate", headers=auth_headers)
    assert r.json() == {"valid": True, "issues": []}


def test_update_rejects_null_for_required_fields(client, auth_headers):
    wid = client.post("/api/v0/workflows", json=WF, headers=auth_headers).json()["id"]

    for field in ("name", "trigger_type", "steps", "prevent_duplicates"):
        r = client.put(f"/api/v0/workflows/{wid}", json={field: None}, headers=auth_headers)
        assert r.status_code == 422, r.text
        assert r.json()["error"]["code"] == "VALIDATION"
    assert client.get(f"/api/v0/workflows/{wid}", headers=auth_headers).json()["name"] == WF["name"]

    # clearing the window falls back to the default
    r = client.put(f"/api/v0/workflows/{wid}", json={"duplicate_prevention_days": None}, headers=auth_headers)
    assert r.status_code == 200, r.text
    assert r.json()["duplicate_prevention_days"] is None


def test_other_org_gets_forbidden(client, auth_headers, other_org_headers):
    wid = client.post("/api/v0/workflows", json=WF, headers=auth_headers).json()["id"]

    r = client.get(f"/api/v0/workflows/{wid}", headers=other_org_headers)
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "FORBIDDEN"
    assert client.get("/api/v0/workflows", headers=other_org_headers).json()["total"] == 0

    r = client.get("/api/v0/workflows/wf_missing", headers=auth_headers)
    assert r.status_code == 404 and r.json()["error"]["code"] == "NOT_FOUND"


def test_workflow_stats_endpoint(client, auth_headers):
    wid = client.post("/api/v0/workflows", json=WF, headers=auth_headers).json()["id"]
    stats = client.get(f"/api/v0/workflows/{wid}/stats", headers=auth_headers).json()
    assert stats["total_enrollments"] == 0
    assert stats["success_rate"] == 0
    assert stats["last_run_at"] is None


def test_dry_run_endpoint(client, auth_headers, other_org_headers, make_client):
    jane = make_client()
    wid = client.post("/api/v0/workflows", json={**WF, "status": "draft"}, headers=auth_headers).json()["id"]

    r = client.post(f"/api/v0/workflows/{wid}:test", json={"client_id": jane.id}, headers=auth_headers)
    assert r.status_code == 200, r.text
    report = r.json()
    assert report["workflow_name"] == WF["name"]
    assert report["total_steps"] == 2 and report["successful_steps"] == 2
    assert report["results"][1]["result"]["content"] == "Hi Jane, how are you feeling?"
    assert report["results"][1]["result"]["sent"] is False

    r = client.post(f"/api/v0/workflows/{wid}:test", headers=auth_headers)
    assert r.status_code == 200, r.text
    assert r.json()["successful_steps"] == 1
    assert r.json()["results"][1]["error"] == "client has no phone number for SMS"

    assert client.post(f"/api/v0/workflows/{wid}:test", headers=other_org_headers).status_code == 403
    assert client.get("/api/v0/scheduled-actions", headers=auth_headers).json() == []
