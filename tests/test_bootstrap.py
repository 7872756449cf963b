"""
Tests for the production wiring of the workflow runtime.
"""

import logging

import pytest

from conftest import FakeEmailTransport, FakeSmsTransport, build_workflow
from database.models import Contact, Task
from automation_service.bootstrap import AutomationRuntime, build_status_publisher
from automation_service.clients import ProviderRegistry
from automation_service.clients.ai_providers import GoogleBackend
from automation_service.clients.email_transport import SendGridEmailClient
from automation_service.clients.sms_transport import TwilioSmsClient
from automation_service.config import get_automation_settings
from automation_service.models import AIProvider, NodeType
from automation_service.runtime.background import drain_background_tasks
from automation_service.runtime.publisher import InMemoryStatusPublisher, RedisStatusPublisher


@pytest.fixture
def runtime(session_factory, publisher):
    return AutomationRuntime(
        sms_transport=FakeSmsTransport(),
        email_transport=FakeEmailTransport(),
        providers=ProviderRegistry(),
        publisher=publisher,
        session_factory=session_factory,
    )


@pytest.mark.asyncio
async def test_stage_change_chains_into_triggered_workflow(db, runtime, workspace, contact):
    workflow_id, _ = build_workflow(
        db,
        workspace.id,
        [
            ("trigger", "MANUAL_TRIGGER", {}),
            ("stage", "UPDATE_CONTACT", {"action": "update_stage", "stage": "customer"}),
        ],
        [("trigger", "stage")],
    )
    build_workflow(
        db,
        workspace.id,
        [
            ("trigger", "STAGE_CHANGED", {"stage": "customer"}),
            ("task", "CREATE_TASK", {"titleTemplate": "Onboard {first_name}"}),
        ],
        [("trigger", "task")],
    )

    execution_id = await runtime.start_execution(workflow_id, {"contactId": contact.id})
    await drain_background_tasks()

    assert execution_id
    db.expire_all()
    assert db.query(Contact).filter(Contact.id == contact.id).one().stage == "customer"
    task = db.query(Task).one()
    assert task.name == "Onboard Max"
    assert task.contact_id == contact.id


@pytest.mark.asyncio
async def test_failed_background_run_is_contained(db, runtime, workspace):
    workflow_id, _ = build_workflow(
        db,
        workspace.id,
        [("trigger", "MANUAL_TRIGGER", {}), ("sms", "SEND_SMS", {"messageBody": "Hi"})],
        [("trigger", "sms")],
    )

    await runtime.start_execution(workflow_id, {})
    await drain_background_tasks()

    assert runtime.sms_transport.sent == []


@pytest.mark.asyncio
async def test_defaults_come_from_settings(monkeypatch, caplog):
    settings = get_automation_settings()
    monkeypatch.setattr(settings, "twilio_account_sid", None)
    monkeypatch.setattr(settings, "twilio_auth_token", None)
    monkeypatch.setattr(settings, "sendgrid_api_key", None)

    with caplog.at_level(logging.WARNING):
        runtime = AutomationRuntime(publisher=InMemoryStatusPublisher())

    assert isinstance(runtime.sms_transport, TwilioSmsClient)
    assert isinstance(runtime.email_transport, SendGridEmailClient)
    assert isinstance(runtime.orchestrator.providers.get(AIProvider.GOOGLE), GoogleBackend)
    assert runtime.dispatcher.max_depth == settings.max_trigger_depth
    assert "SMS sending disabled" in caplog.text
    assert "Email sending disabled" in caplog.text
    await runtime.close()


@pytest.mark.asyncio
async def test_status_publisher_selection(monkeypatch):
    settings = get_automation_settings()

    monkeypatch.setattr(settings, "redis_url", "redis://localhost:6379/0")
    publisher = build_status_publisher()
    assert isinstance(publisher, RedisStatusPublisher)
    assert publisher.channel_for(NodeType.SEND_SMS) == f"{settings.status_channel_prefix}:SEND_SMS"
    await publisher.close()

    monkeypatch.setattr(settings, "redis_url", "")
    assert isinstance(build_status_publisher(), InMemoryStatusPublisher)
