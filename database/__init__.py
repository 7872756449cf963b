from .models import (
    Workspace,
    Contact,
    Category,
    ContactCategory,
    ActivityLog,
    TaskColumn,
    Task,
    EmailSend,
    ChatRoom,
    SmsMessage,
    CampaignRecipient,
    Sequence,
    SequenceStep,
    SequenceEnrollment,
    AIUsageLog,
    Workflow,
    WorkflowNode,
    WorkflowConnection,
    ExecutionStep,
)
from .database import get_db, init_db, build_engine, SessionLocal, Base

__all__ = [
    "Workspace",
    "Contact",
    "Category",
    "ContactCategory",
    "ActivityLog",
    "TaskColumn",
    "Task",
    "EmailSend",
    "ChatRoom",
    "SmsMessage",
    "CampaignRecipient",
    "Sequence",
    "SequenceStep",
    "SequenceEnrollment",
    "AIUsageLog",
    "Workflow",
    "WorkflowNode",
    "WorkflowConnection",
    "ExecutionStep",
    "get_db",
    "init_db",
    "build_engine",
    "SessionLocal",
    "Base",
]
