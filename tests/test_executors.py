"""
Tests for node executors: status protocol, context threading and each
node type's side effects.
"""

from typing import Any, Dict

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from conftest import FakeProviderBackend, FakeSmsTransport, contact_context, make_request
from database.database import SessionLocal, engine
from database.models import (
    ActivityLog,
    Category,
    ChatRoom,
    Contact,
    ContactCategory,
    EmailSend,
    SmsMessage,
    Task,
    TaskColumn,
)
from automation_service.ai import AIOrchestrator
from automation_service.clients import ProviderRegistry
from automation_service.errors import ConfigurationError, OptedOutError, ProviderError
from automation_service.executors import (
    AINodeExecutor,
    CreateTaskExecutor,
    NodeExecutor,
    SendEmailExecutor,
    SendSmsExecutor,
    UpdateContactExecutor,
    build_executor_registry,
    get_executor,
)
from automation_service.executors.create_task import is_lost_race
from automation_service.executors.send_email import html_to_text
from automation_service.models import NodeStatus, NodeType
from automation_service.runtime.background import drain_background_tasks
from automation_service.runtime.step_runner import MemoizedStepRunner


# =============================================================================
# Status Protocol
# =============================================================================


class LeakyExecutor(NodeExecutor):
    node_type = NodeType.CREATE_TASK
    step_name = "leaky"
    writes = ("_declared",)

    async def perform(self, request) -> Dict[str, Any]:
        return {"_declared": 1, "_undeclared": 2}


@pytest.mark.asyncio
async def test_success_publishes_loading_then_success(session_factory, workspace, contact, publisher):
    executor = CreateTaskExecutor(session_factory)
    context = contact_context(workspace, contact)

    result = await executor.execute(make_request("n1", {"titleTemplate": "Call {first_name}"}, context, publisher=publisher))
    await drain_background_tasks()

    assert publisher.statuses("n1") == [NodeStatus.LOADING, NodeStatus.SUCCESS]
    assert all(e.node_type == NodeType.CREATE_TASK for e in publisher.events)
    assert result["_lastTaskName"] == "Call Max"
    # Previous keys survive
    assert result["contact"] == context["contact"]
    assert "_lastTaskName" not in context


@pytest.mark.asyncio
async def test_failure_publishes_exactly_one_error(session_factory, workspace, contact, publisher):
    executor = SendSmsExecutor(FakeSmsTransport(fail=True), session_factory)

    with pytest.raises(ProviderError):
        await executor.execute(make_request(
            "n1", {"messageBody": "Hi"}, contact_context(workspace, contact), publisher=publisher
        ))
    await drain_background_tasks()

    assert publisher.statuses("n1") == [NodeStatus.LOADING, NodeStatus.ERROR]


@pytest.mark.asyncio
async def test_missing_read_key_is_configuration_error(session_factory, publisher):
    executor = CreateTaskExecutor(session_factory)

    with pytest.raises(ConfigurationError, match="workspaceId"):
        await executor.execute(make_request("n1", {}, {}, publisher=publisher))
    await drain_background_tasks()

    assert publisher.statuses() == [NodeStatus.LOADING, NodeStatus.ERROR]


@pytest.mark.asyncio
async def test_undeclared_write_is_rejected(session_factory, publisher):
    with pytest.raises(ConfigurationError, match="_undeclared"):
        await LeakyExecutor(session_factory).execute(make_request("n1", {}, {}, publisher=publisher))
    await drain_background_tasks()

    assert publisher.statuses() == [NodeStatus.LOADING, NodeStatus.ERROR]


@pytest.mark.asyncio
async def test_retried_execution_skips_committed_step(session_factory, workspace, contact, sms_transport):
    executor = SendSmsExecutor(sms_transport, session_factory)
    step = MemoizedStepRunner("exec-1")
    context = contact_context(workspace, contact)

    first = await executor.execute(make_request("n1", {"messageBody": "Hi"}, context, step=step))
    second = await executor.execute(make_request("n1", {"messageBody": "Hi"}, context, step=step))
    await drain_background_tasks()

    assert len(sms_transport.sent) == 1
    assert step.calls == {"send-sms:n1": 1}
    assert first == second


def test_registry_covers_every_node_type(session_factory, sms_transport, email_transport, dispatcher):
    orchestrator = AIOrchestrator(ProviderRegistry(), session_factory=session_factory)
    registry = build_executor_registry(sms_transport, email_transport, orchestrator, dispatcher, session_factory)

    assert set(registry) == set(NodeType)
    assert isinstance(get_executor(registry, "SEND_SMS"), SendSmsExecutor)
    with pytest.raises(ConfigurationError):
        get_executor(registry, "HTTP_REQUEST")


# =============================================================================
# Create Task
# =============================================================================


@pytest.mark.asyncio
async def test_create_task_defaults(db, session_factory, workspace, contact):
    executor = CreateTaskExecutor(session_factory)
    context = contact_context(workspace, contact)

    first = await executor.execute(make_request("n1", {"priority": "high", "dueDateOffset": 24}, context))
    second = await executor.execute(make_request("n2", {}, context))
    await drain_background_tasks()

    tasks = db.query(Task).order_by(Task.task_number).all()
    assert [t.task_number for t in tasks] == [1, 2]
    assert tasks[0].name == "Workflow Task"
    assert tasks[0].priority == "high"
    assert tasks[0].due_date is not None
    assert tasks[0].contact_id == contact.id
    assert first["_lastTaskId"] == tasks[0].id
    assert second["_lastTaskId"] == tasks[1].id

    column = db.query(TaskColumn).one()
    assert column.is_default is True
    assert {t.column_id for t in tasks} == {column.id}


class RacingCreateTaskExecutor(CreateTaskExecutor):
    """Another transaction commits the default column between our read and our commit."""
    winner_id = None

    def _find_column(self, db, workspace_id):
        if self.winner_id is None:
            other = self.session_factory()
            try:
                winner = TaskColumn(workspace_id=workspace_id, name="Board", position=0, is_default=True)
                other.add(winner)
                other.commit()
                self.winner_id = winner.id
            finally:
                other.close()
            return None
        return super()._find_column(db, workspace_id)


class SerializationFailure(Exception):
    pgcode = "40001"


class SerializationFailureSession(Session):
    """Commit of a new column loses to a concurrent one and fails with SQLSTATE 40001."""
    winner_id = None

    def commit(self):
        pending = [obj for obj in self.new if isinstance(obj, TaskColumn)]
        if not pending:
            return super().commit()

        workspace_id = pending[0].workspace_id
        self.rollback()
        other = SessionLocal()
        try:
            winner = TaskColumn(workspace_id=workspace_id, name="Board", position=0, is_default=True)
            other.add(winner)
            other.commit()
            SerializationFailureSession.winner_id = winner.id
        finally:
            other.close()
        raise OperationalError("COMMIT", {}, SerializationFailure("could not serialize access"))


def test_default_column_race_loser_reads_winner(db, session_factory, workspace):
    executor = RacingCreateTaskExecutor(session_factory)

    column_id = executor.find_or_create_default_column(workspace.id)

    assert column_id == executor.winner_id
    assert db.query(TaskColumn).filter(TaskColumn.workspace_id == workspace.id).count() == 1


def test_default_column_serialization_failure_reads_winner(db, workspace):
    factory = sessionmaker(bind=engine, autoflush=False, class_=SerializationFailureSession)

    column_id = CreateTaskExecutor(factory).find_or_create_default_column(workspace.id)

    assert column_id == SerializationFailureSession.winner_id
    assert db.query(TaskColumn).filter(TaskColumn.workspace_id == workspace.id).count() == 1


def test_lost_race_detection():
    assert is_lost_race(IntegrityError("INSERT", {}, Exception("unique")))
    assert is_lost_race(OperationalError("COMMIT", {}, SerializationFailure()))
    assert not is_lost_race(OperationalError("COMMIT", {}, Exception("connection reset")))


@pytest.mark.asyncio
async def test_create_task_uses_existing_column(db, session_factory, workspace):
    column = TaskColumn(workspace_id=workspace.id, name="Inbox", position=0, is_default=False)
    db.add(column)
    db.commit()

    await CreateTaskExecutor(session_factory).execute(make_request("n1", {}, {"workspaceId": workspace.id}))
    await drain_background_tasks()

    assert db.query(TaskColumn).count() == 1
    assert db.query(Task).one().column_id == column.id


# =============================================================================
# Send SMS
# =============================================================================


@pytest.mark.asyncio
async def test_send_sms_records_message(db, session_factory, workspace, contact, sms_transport):
    executor = SendSmsExecutor(sms_transport, session_factory)

    result = await executor.execute(make_request(
        "n1", {"messageBody": "Hi {first_name}, thanks for visiting {location_name}!"},
        contact_context(workspace, contact),
    ))
    await drain_background_tasks()

    assert sms_transport.sent == [{
        "to": "+15553334444",
        "from": "+15550002222",
        "body": "Hi Max, thanks for visiting Sunset Dental!",
    }]
    assert result["_lastSmsTo"] == "+15553334444"

    room = db.query(ChatRoom).one()
    assert room.channel == "sms"
    message = db.query(SmsMessage).one()
    assert message.chat_room_id == room.id
    assert message.direction == "outbound"
    assert message.provider_sid == "SM0001"
    db.expire_all()
    assert db.query(Contact).filter(Contact.id == contact.id).one().last_contacted_at is not None


@pytest.mark.asyncio
async def test_send_sms_contact_data_stays_literal(db, session_factory, workspace, contact, sms_transport):
    context = contact_context(workspace, contact)
    context["contact"]["firstName"] = "{{ workspace.fromEmail }}"

    await SendSmsExecutor(sms_transport, session_factory).execute(
        make_request("n1", {"messageBody": "Hi {first_name}, from {{ location_name }}"}, context)
    )
    await drain_background_tasks()

    assert sms_transport.sent[0]["body"] == "Hi {{ workspace.fromEmail }}, from Sunset Dental"


@pytest.mark.asyncio
async def test_send_sms_reuses_chat_room(db, session_factory, workspace, contact, sms_transport):
    executor = SendSmsExecutor(sms_transport, session_factory)
    context = contact_context(workspace, contact)

    await executor.execute(make_request("n1", {"messageBody": "One"}, context))
    await executor.execute(make_request("n2", {"messageBody": "Two"}, context))
    await drain_background_tasks()

    assert db.query(ChatRoom).count() == 1
    assert db.query(SmsMessage).count() == 2


@pytest.mark.asyncio
async def test_send_sms_rechecks_opt_out_at_send_time(db, session_factory, workspace, contact, sms_transport, publisher):
    context = contact_context(workspace, contact)
    contact.opted_out = True
    db.commit()

    with pytest.raises(OptedOutError):
        await SendSmsExecutor(sms_transport, session_factory).execute(
            make_request("n1", {"messageBody": "Hi"}, context, publisher=publisher)
        )
    await drain_background_tasks()

    assert sms_transport.sent == []
    assert publisher.statuses("n1").count(NodeStatus.ERROR) == 1


@pytest.mark.asyncio
async def test_send_sms_configuration_errors(db, session_factory, workspace, contact, sms_transport):
    executor = SendSmsExecutor(sms_transport, session_factory)
    context = contact_context(workspace, contact)

    no_phone = {**context, "contact": {**context["contact"], "phone": None}}
    with pytest.raises(ConfigurationError, match="phone"):
        await executor.execute(make_request("n1", {"messageBody": "Hi"}, no_phone))

    with pytest.raises(ConfigurationError, match="empty"):
        await executor.execute(make_request("n2", {"messageBody": "{{contact.nickname}}"}, context))

    no_number = {**context, "workspace": {**context["workspace"], "smsPhoneNumber": None}}
    with pytest.raises(ConfigurationError, match="SMS phone number"):
        await executor.execute(make_request("n3", {"messageBody": "Hi"}, no_number))
    await drain_background_tasks()

    assert sms_transport.sent == []


# =============================================================================
# Send Email
# =============================================================================


@pytest.mark.asyncio
async def test_send_email(db, session_factory, workspace, contact, email_transport):
    executor = SendEmailExecutor(email_transport, session_factory)

    result = await executor.execute(make_request(
        "n1",
        {"subject": "Thanks {first_name}", "htmlBody": "<p>See you at {{workspace.name}}</p>"},
        contact_context(workspace, contact),
    ))
    await drain_background_tasks()

    sent = email_transport.sent[0]
    assert sent["to"] == "max@example.com"
    assert sent["from"] == "hello@sunsetdental.com"
    assert sent["from_name"] == "Sunset Dental Team"
    assert sent["subject"] == "Thanks Max"
    assert sent["html"] == "<p>See you at Sunset Dental</p>"
    assert sent["text"] == "See you at Sunset Dental"
    assert result["_lastEmailTo"] == "max@example.com"

    record = db.query(EmailSend).one()
    assert record.provider_id == "msg-1"
    assert record.status == "sent"


@pytest.mark.asyncio
async def test_send_email_contact_data_stays_literal(db, session_factory, workspace, contact, email_transport):
    contact.first_name = "{% for i in range(3) %}Hey{% endfor %}"
    db.commit()

    await SendEmailExecutor(email_transport, session_factory).execute(make_request(
        "n1",
        {"subject": "Thanks {first_name} from {{ workspace.name }}", "htmlBody": "<p>Hi {first_name}</p>"},
        contact_context(workspace, contact),
    ))
    await drain_background_tasks()

    sent = email_transport.sent[0]
    assert sent["subject"] == "Thanks {% for i in range(3) %}Hey{% endfor %} from Sunset Dental"
    assert "HeyHey" not in sent["html"]


def test_html_to_text_drops_markup_and_decodes_entities():
    html = "<style>p { color: red; }</style><p>Tom &amp; Jerry&#39;s</p><script>track()</script>"
    assert html_to_text(html) == "Tom & Jerry's"


@pytest.mark.asyncio
async def test_send_email_requires_sender(db, session_factory, workspace, contact, email_transport):
    workspace.from_email = None
    db.commit()

    with pytest.raises(ConfigurationError, match="from email"):
        await SendEmailExecutor(email_transport, session_factory).execute(
            make_request("n1", {"subject": "Hi", "htmlBody": "Body"}, contact_context(workspace, contact))
        )
    await drain_background_tasks()

    assert email_transport.sent == []


@pytest.mark.asyncio
async def test_send_email_ignores_contact_from_other_workspace(db, session_factory, workspace, other_workspace, email_transport):
    outsider = Contact(workspace_id=other_workspace.id, first_name="Eve", email="eve@example.com")
    db.add(outsider)
    db.commit()

    with pytest.raises(ConfigurationError, match="No contact"):
        await SendEmailExecutor(email_transport, session_factory).execute(
            make_request("n1", {"subject": "Hi", "htmlBody": "Body"}, {"workspaceId": workspace.id, "contactId": outsider.id})
        )
    await drain_background_tasks()


# =============================================================================
# Update Contact
# =============================================================================


@pytest.mark.asyncio
async def test_update_stage_fires_chained_trigger(db, session_factory, workspace, contact, dispatcher):
    context = {**contact_context(workspace, contact), "_trigger": {"type": "CONTACT_CREATED", "depth": 1}}

    result = await UpdateContactExecutor(dispatcher, session_factory).execute(
        make_request("n1", {"action": "update_stage", "stage": "customer"}, context)
    )
    await drain_background_tasks()

    db.expire_all()
    assert db.query(Contact).filter(Contact.id == contact.id).one().stage == "customer"
    activity = db.query(ActivityLog).one()
    assert activity.type == "stage_changed"
    assert activity.description == "Stage changed from lead to customer (workflow)"
    assert result["_lastStage"] == "customer"

    trigger_type, payload, depth = dispatcher.fired[0]
    assert trigger_type == NodeType.STAGE_CHANGED
    assert payload["previousStage"] == "lead"
    assert payload["newStage"] == "customer"
    assert depth == 1


@pytest.mark.asyncio
async def test_add_category_is_idempotent(db, session_factory, workspace, contact, dispatcher):
    executor = UpdateContactExecutor(dispatcher, session_factory)
    context = contact_context(workspace, contact)
    data = {"action": "add_category", "categoryName": "vip"}

    await executor.execute(make_request("n1", data, context))
    await executor.execute(make_request("n2", data, context))
    await drain_background_tasks()

    category = db.query(Category).one()
    assert category.name == "vip"
    assert db.query(ContactCategory).count() == 1
    assert [f[0] for f in dispatcher.fired] == [NodeType.CATEGORY_ADDED, NodeType.CATEGORY_ADDED]
    assert dispatcher.fired[0][1]["categoryId"] == category.id
    assert dispatcher.fired[0][2] == 0


@pytest.mark.asyncio
async def test_remove_category(db, session_factory, workspace, contact, dispatcher):
    executor = UpdateContactExecutor(dispatcher, session_factory)
    context = contact_context(workspace, contact)

    await executor.execute(make_request("n1", {"action": "add_category", "categoryName": "vip"}, context))
    await executor.execute(make_request("n2", {"action": "remove_category", "categoryName": "vip"}, context))
    await executor.execute(make_request("n3", {"action": "remove_category", "categoryName": "unknown"}, context))
    await drain_background_tasks()

    assert db.query(ContactCategory).count() == 0


@pytest.mark.asyncio
async def test_log_note_and_assign(db, session_factory, workspace, contact, dispatcher):
    executor = UpdateContactExecutor(dispatcher, session_factory)
    context = contact_context(workspace, contact)

    note = await executor.execute(make_request("n1", {"action": "log_note", "noteTemplate": "Called {first_name}"}, context))
    assigned = await executor.execute(make_request("n2", {"action": "assign_contact", "assigneeId": "user-7"}, context))
    await drain_background_tasks()

    activities = db.query(ActivityLog).order_by(ActivityLog.id).all()
    assert [(a.type, a.description) for a in activities] == [
        ("note_added", "Called Max"),
        ("contact_updated", "Contact assigned to team member (workflow)"),
    ]
    assert activities[0].details == {"source": "workflow", "nodeId": "n1"}
    assert note == context
    assert assigned["_lastAssignee"] == "user-7"
    db.expire_all()
    assert db.query(Contact).filter(Contact.id == contact.id).one().assigned_to_id == "user-7"
    assert dispatcher.fired == []


@pytest.mark.asyncio
async def test_unknown_contact_action(session_factory, workspace, contact, dispatcher):
    with pytest.raises(ConfigurationError):
        await UpdateContactExecutor(dispatcher, session_factory).execute(
            make_request("n1", {"action": "merge_contacts"}, contact_context(workspace, contact))
        )
    await drain_background_tasks()


# =============================================================================
# AI Node
# =============================================================================


@pytest.mark.asyncio
async def test_ai_node_writes_variable_and_meta(session_factory, workspace, contact):
    backend = FakeProviderBackend(text="Thanks, Max!")
    orchestrator = AIOrchestrator(ProviderRegistry({backend.provider: backend}), session_factory=session_factory)
    executor = AINodeExecutor(orchestrator, session_factory)

    result = await executor.execute(make_request(
        "n1",
        {"presetId": "thank_you", "variableName": "thankYouText"},
        contact_context(workspace, contact),
        meta={"workflowId": "wf1", "executionId": "ex1"},
    ))
    await drain_background_tasks()

    assert result["thankYouText"] == "Thanks, Max!"
    assert result["_aiMeta"] == {
        "provider": "anthropic",
        "model": "claude-sonnet-4-20250514",
        "inputTokens": 120,
        "outputTokens": 40,
    }
    assert "aiOutput" not in result


@pytest.mark.asyncio
async def test_ai_node_default_variable(session_factory, workspace, contact):
    backend = FakeProviderBackend(text="Summary")
    orchestrator = AIOrchestrator(ProviderRegistry({backend.provider: backend}), session_factory=session_factory)

    result = await AINodeExecutor(orchestrator, session_factory).execute(make_request(
        "n1", {"mode": "summarize", "userPrompt": "Summarize {{contact.firstName}}"}, contact_context(workspace, contact)
    ))
    await drain_background_tasks()

    assert result["aiOutput"] == "Summary"
