"""
Database models for the workflow automation core
"""
import uuid
from sqlalchemy import (
    Column, String, Integer, DateTime, Boolean, Text, ForeignKey, JSON, Float,
    Index, UniqueConstraint, text,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Workspace & Contacts
# =============================================================================


class Workspace(Base):
    """
    A business location. Owns contacts, sequences, workflows and the
    brand profile used for AI personalization.
    """
    __tablename__ = "workspaces"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, nullable=True)  # Owner (account-level user ID)

    name = Column(String(200), nullable=False)
    phone = Column(String(20))
    feedback_slug = Column(String(100), unique=True)
    google_review_url = Column(String(500))

    # Outbound senders
    from_email = Column(String(255))
    from_email_name = Column(String(200))
    sms_phone_number = Column(String(20))  # Workspace-assigned outbound number (E.164)

    # Brand profile (read-only input to AI prompts)
    brand_tone = Column(String(200))
    brand_industry = Column(String(200))
    brand_services = Column(Text)
    brand_usps = Column(Text)
    brand_instructions = Column(Text)

    # AI budget (null = unlimited)
    ai_monthly_budget_cents = Column(Float, nullable=True)
    ai_daily_call_limit = Column(Integer, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    contacts = relationship("Contact", back_populates="workspace", cascade="all, delete-orphan")
    sequences = relationship("Sequence", back_populates="workspace", cascade="all, delete-orphan")


class Contact(Base):
    """
    CRM contact - the subject of workflow actions and sequence enrollments.
    """
    __tablename__ = "contacts"

    id = Column(String, primary_key=True, default=_uuid)
    workspace_id = Column(String, ForeignKey("workspaces.id"), nullable=False, index=True)

    first_name = Column(String(100))
    last_name = Column(String(100))
    email = Column(String(255))
    phone = Column(String(20), index=True)  # E.164 format (+1234567890)

    stage = Column(String(50), default="lead")  # lead, prospect, customer, ...
    source = Column(String(50), default="manual")  # manual, keyword, webhook, import
    opted_out = Column(Boolean, default=False, nullable=False)
    assigned_to_id = Column(String, nullable=True)

    last_contacted_at = Column(DateTime)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    workspace = relationship("Workspace", back_populates="contacts")
    categories = relationship("ContactCategory", back_populates="contact", cascade="all, delete-orphan")
    enrollments = relationship("SequenceEnrollment", back_populates="contact", cascade="all, delete-orphan")


class Category(Base):
    """
    Workspace-scoped contact category (e.g. "no-show", "vip").
    """
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("workspace_id", "name", name="uq_category_workspace_name"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    workspace_id = Column(String, ForeignKey("workspaces.id"), nullable=False)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class ContactCategory(Base):
    """
    Link between a contact and a category.
    """
    __tablename__ = "contact_categories"
    __table_args__ = (
        UniqueConstraint("contact_id", "category_id", name="uq_contact_category"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact_id = Column(String, ForeignKey("contacts.id"), nullable=False)
    category_id = Column(String, ForeignKey("categories.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    contact = relationship("Contact", back_populates="categories")
    category = relationship("Category")


class ActivityLog(Base):
    """
    Contact timeline entry (stage changes, notes, assignments).
    """
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact_id = Column(String, ForeignKey("contacts.id"), nullable=False, index=True)
    workspace_id = Column(String, ForeignKey("workspaces.id"), nullable=False)

    type = Column(String(50), nullable=False)  # stage_changed, note_added, contact_updated
    description = Column(Text)
    details = Column(JSON)

    created_at = Column(DateTime, default=datetime.utcnow)


# =============================================================================
# Tasks
# =============================================================================


class TaskColumn(Base):
    """
    Kanban column for workspace tasks. At most one default column per workspace.
    """
    __tablename__ = "task_columns"
    __table_args__ = (
        Index(
            "uq_task_column_default",
            "workspace_id",
            unique=True,
            sqlite_where=text("is_default = 1"),
            postgresql_where=text("is_default = true"),
        ),
    )

    id = Column(String, primary_key=True, default=_uuid)
    workspace_id = Column(String, ForeignKey("workspaces.id"), nullable=False)
    name = Column(String(100), nullable=False)
    position = Column(Integer, default=0)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Task(Base):
    """
    Workspace task, optionally linked to the contact that triggered it.
    """
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=_uuid)
    workspace_id = Column(String, ForeignKey("workspaces.id"), nullable=False, index=True)
    column_id = Column(String, ForeignKey("task_columns.id"), nullable=False)

    # Per-workspace sequential number (read max + 1, not retry-safe)
    task_number = Column(Integer, nullable=False)

    name = Column(String(300), nullable=False)
    description = Column(Text)
    assignee_id = Column(String, nullable=True)
    contact_id = Column(String, ForeignKey("contacts.id"), nullable=True)
    due_date = Column(DateTime, nullable=True)
    priority = Column(String(20), nullable=True)  # low, medium, high, urgent
    position = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)


# =============================================================================
# Messaging
# =============================================================================


class EmailSend(Base):
    """
    Record of an outbound email.
    """
    __tablename__ = "email_sends"

    id = Column(String, primary_key=True, default=_uuid)
    workspace_id = Column(String, ForeignKey("workspaces.id"), nullable=False)
    contact_id = Column(String, ForeignKey("contacts.id"), nullable=True)

    to_email = Column(String(255), nullable=False)
    from_email = Column(String(255), nullable=False)
    from_name = Column(String(200))
    subject = Column(String(500))
    provider_id = Column(String(200))  # Transport message ID
    status = Column(String(20), default="sent")  # sent, delivered, bounced, failed
    click_count = Column(Integer, default=0)

    sent_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)


class ChatRoom(Base):
    """
    Conversation thread between a workspace and a contact on one channel.
    """
    __tablename__ = "chat_rooms"
    __table_args__ = (
        UniqueConstraint("workspace_id", "contact_id", "channel", name="uq_chat_room_channel"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    workspace_id = Column(String, ForeignKey("workspaces.id"), nullable=False)
    contact_id = Column(String, ForeignKey("contacts.id"), nullable=False)
    channel = Column(String(20), nullable=False)  # sms

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SmsMessage(Base):
    """
    Individual SMS message (inbound or outbound).
    """
    __tablename__ = "sms_messages"

    id = Column(String, primary_key=True, default=_uuid)
    workspace_id = Column(String, ForeignKey("workspaces.id"), nullable=False)
    chat_room_id = Column(String, ForeignKey("chat_rooms.id"), nullable=False)

    direction = Column(String(10), nullable=False)  # inbound, outbound
    from_number = Column(String(20), nullable=False)
    to_number = Column(String(20), nullable=False)
    body = Column(Text, nullable=False)
    provider_sid = Column(String(100))
    status = Column(String(20), default="SENT")

    created_at = Column(DateTime, default=datetime.utcnow)


class CampaignRecipient(Base):
    """
    A contact's receipt of a campaign message. Used for bulk frequency capping.
    """
    __tablename__ = "campaign_recipients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_id = Column(String, nullable=True)
    contact_id = Column(String, ForeignKey("contacts.id"), nullable=False, index=True)
    status = Column(String(20), default="pending")  # pending, sent, delivered, replied, failed
    sent_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)


# =============================================================================
# Drip Sequences
# =============================================================================


class Sequence(Base):
    """
    Multi-step drip campaign definition.
    """
    __tablename__ = "sequences"

    id = Column(String, primary_key=True, default=_uuid)
    workspace_id = Column(String, ForeignKey("workspaces.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    status = Column(String(20), default="draft")  # draft, active, paused, archived

    # Audience filter
    audience_type = Column(String(20), default="all")  # all, stage, category, inactive
    audience_stage = Column(String(50))
    audience_category_id = Column(String, ForeignKey("categories.id"), nullable=True)
    audience_inactive_days = Column(Integer)

    frequency_cap_days = Column(Integer)

    # Auto-enroll trigger
    trigger_type = Column(String(30), default="manual")  # manual, contact_created, keyword_join, stage_change
    trigger_value = Column(String(100))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    workspace = relationship("Workspace", back_populates="sequences")
    steps = relationship(
        "SequenceStep",
        back_populates="sequence",
        order_by="SequenceStep.order",
        cascade="all, delete-orphan",
    )
    enrollments = relationship("SequenceEnrollment", back_populates="sequence", cascade="all, delete-orphan")


class SequenceStep(Base):
    """
    One message in a sequence, sent delay_minutes after the previous step.
    """
    __tablename__ = "sequence_steps"

    id = Column(String, primary_key=True, default=_uuid)
    sequence_id = Column(String, ForeignKey("sequences.id"), nullable=False)

    order = Column(Integer, nullable=False)  # 1-based
    channel = Column(String(10), nullable=False)  # sms, email
    delay_minutes = Column(Integer, default=0, nullable=False)
    condition_type = Column(String(20))  # replied, clicked, no_reply, opted_out
    condition_action = Column(String(20), default="continue")  # continue, skip, stop
    subject = Column(String(500))
    body = Column(Text, nullable=False)

    # Relationships
    sequence = relationship("Sequence", back_populates="steps")


class SequenceEnrollment(Base):
    """
    A contact's participation in a sequence.

    Only one active enrollment may exist per (sequence, contact); completed,
    stopped and opted-out enrollments are terminal and kept for history.
    """
    __tablename__ = "sequence_enrollments"
    # Partial so a contact can re-enter after completing or stopping;
    # frequency_cap_days bounds how soon that can happen
    __table_args__ = (
        Index(
            "uq_active_enrollment",
            "sequence_id",
            "contact_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id = Column(String, primary_key=True, default=_uuid)
    sequence_id = Column(String, ForeignKey("sequences.id"), nullable=False, index=True)
    contact_id = Column(String, ForeignKey("contacts.id"), nullable=False, index=True)

    status = Column(String(20), default="active", nullable=False)  # active, completed, stopped, opted_out
    current_step = Column(Integer, default=1, nullable=False)
    next_step_at = Column(DateTime, nullable=True)

    enrolled_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime)
    stopped_at = Column(DateTime)
    stopped_reason = Column(String(255))

    # Relationships
    sequence = relationship("Sequence", back_populates="enrollments")
    contact = relationship("Contact", back_populates="enrollments")


# =============================================================================
# AI Usage
# =============================================================================


class AIUsageLog(Base):
    """
    One AI provider call, with token counts and estimated cost in cents.
    """
    __tablename__ = "ai_usage_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String, ForeignKey("workspaces.id"), nullable=False, index=True)
    node_id = Column(String)
    workflow_id = Column(String)
    execution_id = Column(String)

    provider = Column(String(20), nullable=False)
    model = Column(String(100), nullable=False)
    input_tokens = Column(Integer, default=0)
    output_tokens = Column(Integer, default=0)
    estimated_cost = Column(Float, default=0.0)  # cents
    purpose = Column(String(100))  # "<mode>:<preset or custom>"

    created_at = Column(DateTime, default=datetime.utcnow, index=True)


# =============================================================================
# Workflows
# =============================================================================


class Workflow(Base):
    """
    A node graph owned by a workspace.
    """
    __tablename__ = "workflows"

    id = Column(String, primary_key=True, default=_uuid)
    workspace_id = Column(String, ForeignKey("workspaces.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    active = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    nodes = relationship("WorkflowNode", back_populates="workflow", cascade="all, delete-orphan")
    connections = relationship("WorkflowConnection", back_populates="workflow", cascade="all, delete-orphan")


class WorkflowNode(Base):
    """
    Node in a workflow graph. `data` holds the per-type configuration.
    """
    __tablename__ = "workflow_nodes"

    id = Column(String, primary_key=True, default=_uuid)
    workflow_id = Column(String, ForeignKey("workflows.id"), nullable=False, index=True)
    type = Column(String(40), nullable=False)  # NodeType value
    name = Column(String(200))
    data = Column(JSON, default=dict)

    # Relationships
    workflow = relationship("Workflow", back_populates="nodes")


class WorkflowConnection(Base):
    """
    Directed edge between two workflow nodes.
    """
    __tablename__ = "workflow_connections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    workflow_id = Column(String, ForeignKey("workflows.id"), nullable=False)
    from_node_id = Column(String, ForeignKey("workflow_nodes.id"), nullable=False)
    to_node_id = Column(String, ForeignKey("workflow_nodes.id"), nullable=False)
    from_output = Column(String(40), default="main")

    # Relationships
    workflow = relationship("Workflow", back_populates="connections")


class ExecutionStep(Base):
    """
    Memoized output of a named step within one workflow execution.
    Lets a retried execution skip steps that already committed.
    """
    __tablename__ = "execution_steps"
    __table_args__ = (
        UniqueConstraint("execution_id", "step_name", name="uq_execution_step"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    execution_id = Column(String, nullable=False, index=True)
    step_name = Column(String(200), nullable=False)
    output = Column(JSON)

    created_at = Column(DateTime, default=datetime.utcnow)
