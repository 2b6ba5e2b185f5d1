# tests/conftest.py
"""
Shared fixtures: an in-memory SQLite engine per test, a controllable clock,
the AutomationService wired to both, and a TestClient over the same service.
"""
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from clinicflow.automation import AutomationService
from clinicflow.main import create_app
from clinicflow.models import Client, MessageChannel, MessageTemplate, WorkflowStatus
from clinicflow.schemas import CreateWorkflowDTO
from clinicflow.util.ids import new_id

ORG = "org_a"
OTHER_ORG = "org_b"

# 2025-10-09T08:53:20Z
T0 = 1_760_000_000_000


class FakeClock:
    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture()
def engine():
    # "sqlite://" with StaticPool keeps ONE connection alive, shared with TestClient threads
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def service(engine, clock):
    svc = AutomationService(engine, clock=clock)
    svc.create_schema()
    return svc


@pytest.fixture()
def client(service):
    """Synchronous HTTP test client bound to the app."""
    return TestClient(create_app(service=service))


@pytest.fixture()
def auth_headers():
    return {"Authorization": f"Bearer mock-{ORG}"}


@pytest.fixture()
def other_org_headers():
    return {"Authorization": f"Bearer mock-{OTHER_ORG}"}


@pytest.fixture()
def make_client(engine, service):
    def _make(org_id: str = ORG, full_name: str = "Jane Doe", phones: Optional[List[str]] = None,
              email: Optional[str] = "jane@example.com", tags: Optional[List[str]] = None,
              **fields: Any) -> Client:
        record = Client(
            id=new_id("cli_"),
            org_id=org_id,
            full_name=full_name,
            email=email,
            phones=["+15550100"] if phones is None else phones,
            tags=list(tags or []),
            **fields,
        )
        with Session(engine, expire_on_commit=False) as session:
            session.add(record)
            session.commit()
        return record

    return _make


@pytest.fixture()
def make_template(engine, service):
    def _make(org_id: str = ORG, channel: MessageChannel = MessageChannel.sms,
              content: str = "Hi {{first_name}}!", subject: Optional[str] = None) -> MessageTemplate:
        record = MessageTemplate(id=new_id("tpl_"), org_id=org_id, name="template", channel=channel,
                                 subject=subject, content=content)
        with Session(engine, expire_on_commit=False) as session:
            session.add(record)
            session.commit()
        return record

    return _make


@pytest.fixture()
def make_workflow(service):
    def _make(trigger_type: str = "morpheus8", steps: Optional[List[Dict[str, Any]]] = None,
              org_id: str = ORG, status: WorkflowStatus = WorkflowStatus.active, **fields: Any):
        data = CreateWorkflowDTO(
            name=fields.pop("name", f"{trigger_type} follow-up"),
            trigger_type=trigger_type,
            status=status,
            steps=steps or [],
            **fields,
        )
        return service.create_workflow(org_id, data)

    return _make


@pytest.fixture()
def drain(service):
    """Process due scheduled actions until none are left."""
    def _drain(rounds: int = 10) -> int:
        total = 0
        for _ in range(rounds):
            report = service.process_pending_actions()
            total += report.processed
            if report.processed == 0:
                break
        return total

    return _drain
