"""
Shared fixtures: an in-memory SQLite store, seeded workspace/contact rows
and fake transports, provider backends and trigger dispatchers.
"""

import os

# Must be set before database.database builds its engine
os.environ.pop("POSTGRES_URI", None)
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime
from typing import Any, Dict, List, Tuple

import pytest

import database.models  # noqa: F401 - registers models on Base.metadata
from database.database import Base, SessionLocal, engine
from database.models import Contact, Sequence, SequenceStep, Workflow, WorkflowConnection, WorkflowNode, Workspace
from automation_service.errors import ProviderError
from automation_service.models import AIProvider, AIResult, NodeType
from automation_service.runtime.context import NodeExecutionRequest
from automation_service.runtime.publisher import InMemoryStatusPublisher
from automation_service.runtime.step_runner import MemoizedStepRunner


@pytest.fixture(autouse=True)
def reset_store():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def session_factory():
    return SessionLocal


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Seed Data
# =============================================================================


@pytest.fixture
def workspace(db):
    ws = Workspace(
        name="Sunset Dental",
        phone="+15550001111",
        feedback_slug="sunset-dental",
        google_review_url="https://g.page/r/sunset-dental/review",
        from_email="hello@sunsetdental.com",
        from_email_name="Sunset Dental Team",
        sms_phone_number="+15550002222",
        brand_tone="warm and friendly",
        brand_industry="dentistry",
    )
    db.add(ws)
    db.commit()
    db.refresh(ws)
    return ws


@pytest.fixture
def other_workspace(db):
    ws = Workspace(name="Other Clinic", phone="+15559990000")
    db.add(ws)
    db.commit()
    db.refresh(ws)
    return ws


@pytest.fixture
def contact(db, workspace):
    c = Contact(
        workspace_id=workspace.id,
        first_name="Max",
        last_name="Power",
        email="max@example.com",
        phone="+15553334444",
        stage="lead",
        source="manual",
    )
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


def make_sequence(db, workspace_id: str, steps: int = 2, **fields) -> Sequence:
    fields.setdefault("status", "active")
    sequence = Sequence(workspace_id=workspace_id, name=fields.pop("name", "Welcome drip"), **fields)
    db.add(sequence)
    db.flush()
    for order in range(1, steps + 1):
        db.add(SequenceStep(
            sequence_id=sequence.id,
            order=order,
            channel="sms",
            delay_minutes=60 * order,
            body=f"Step {order} for {{first_name}}",
        ))
    db.commit()
    db.refresh(sequence)
    return sequence


def make_contact(db, workspace_id: str, **fields) -> Contact:
    fields.setdefault("first_name", "Guest")
    c = Contact(workspace_id=workspace_id, **fields)
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


def build_workflow(db, workspace_id: str, nodes, edges, active: bool = True):
    """Workflow from (key, node_type, data) nodes and (from_key, to_key) edges."""
    workflow = Workflow(workspace_id=workspace_id, name="Lead follow-up", active=active)
    db.add(workflow)
    db.flush()
    ids = {}
    for key, node_type, data in nodes:
        node = WorkflowNode(workflow_id=workflow.id, type=node_type, name=key, data=data)
        db.add(node)
        db.flush()
        ids[key] = node.id
    for from_key, to_key in edges:
        db.add(WorkflowConnection(workflow_id=workflow.id, from_node_id=ids[from_key], to_node_id=ids[to_key]))
    db.commit()
    return workflow.id, ids


def contact_context(workspace, contact) -> Dict[str, Any]:
    """Execution context as the workflow runner hydrates it."""
    from automation_service.services.contact_loader import contact_snapshot, workspace_snapshot

    ws = workspace_snapshot(workspace)
    return {
        "workspaceId": workspace.id,
        "workspace": ws,
        "location_name": ws["name"],
        "location_phone": ws["phone"],
        "contactId": contact.id,
        "contact": contact_snapshot(contact),
    }


def make_request(node_id: str, data: Dict[str, Any], context: Dict[str, Any], step=None, publisher=None, meta=None):
    return NodeExecutionRequest(
        node_id=node_id,
        data=data,
        context=context,
        step=step or MemoizedStepRunner("exec-test"),
        publisher=publisher or InMemoryStatusPublisher(),
        meta=meta or {},
    )


# =============================================================================
# Fakes
# =============================================================================


class FakeSmsTransport:
    def __init__(self, fail: bool = False):
        self.sent: List[Dict[str, str]] = []
        self.fail = fail

    async def send_sms(self, to: str, from_number: str, body: str) -> str:
        if self.fail:
            raise ProviderError("twilio", "carrier rejected message")
        self.sent.append({"to": to, "from": from_number, "body": body})
        return f"SM{len(self.sent):04d}"


class FakeEmailTransport:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send_email(self, to_email, from_email, from_name, subject, html_content, text_content=None) -> str:
        self.sent.append({
            "to": to_email,
            "from": from_email,
            "from_name": from_name,
            "subject": subject,
            "html": html_content,
            "text": text_content,
        })
        return f"msg-{len(self.sent)}"


class FakeProviderBackend:
    def __init__(self, provider: AIProvider = AIProvider.ANTHROPIC, text: str = "Thanks for visiting!"):
        self.provider = provider
        self.text = text
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, system_prompt: str, user_prompt: str, model: str, max_tokens: int) -> AIResult:
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "model": model,
            "max_tokens": max_tokens,
        })
        return AIResult(text=self.text, input_tokens=120, output_tokens=40, model=model, provider=self.provider)


class FakeDispatcher:
    def __init__(self):
        self.fired: List[Tuple[NodeType, Dict[str, Any], int]] = []

    async def fire(self, trigger_type: NodeType, payload: Dict[str, Any], trigger_depth: int = 0) -> int:
        self.fired.append((trigger_type, payload, trigger_depth))
        return 1


@pytest.fixture
def sms_transport():
    return FakeSmsTransport()


@pytest.fixture
def email_transport():
    return FakeEmailTransport()


@pytest.fixture
def provider_backend():
    return FakeProviderBackend()


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def publisher():
    return InMemoryStatusPublisher()


def utcnow() -> datetime:
    return datetime.utcnow()
