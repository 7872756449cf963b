"""
Node type -> executor registry.
"""

from typing import Dict, Optional

from sqlalchemy.orm import sessionmaker

from ..ai.orchestrator import AIOrchestrator
from ..clients.email_transport import EmailTransport
from ..clients.sms_transport import SmsTransport
from ..errors import ConfigurationError
from ..models import TRIGGER_NODE_TYPES, NodeType
from ..runtime.triggers import TriggerDispatcher
from .ai_node import AINodeExecutor
from .base import NodeExecutor, TriggerPassthroughExecutor
from .create_task import CreateTaskExecutor
from .send_email import SendEmailExecutor
from .send_sms import SendSmsExecutor
from .update_contact import UpdateContactExecutor

ExecutorRegistry = Dict[NodeType, NodeExecutor]


def build_executor_registry(
    sms_transport: SmsTransport,
    email_transport: EmailTransport,
    orchestrator: AIOrchestrator,
    dispatcher: Optional[TriggerDispatcher] = None,
    session_factory: Optional[sessionmaker] = None,
) -> ExecutorRegistry:
    """Wire one executor per node type with the given collaborators."""
    registry: ExecutorRegistry = {
        node_type: TriggerPassthroughExecutor(node_type, session_factory)
        for node_type in TRIGGER_NODE_TYPES
    }
    registry[NodeType.CREATE_TASK] = CreateTaskExecutor(session_factory)
    registry[NodeType.SEND_EMAIL] = SendEmailExecutor(email_transport, session_factory)
    registry[NodeType.SEND_SMS] = SendSmsExecutor(sms_transport, session_factory)
    registry[NodeType.UPDATE_CONTACT] = UpdateContactExecutor(dispatcher, session_factory)
    registry[NodeType.AI_NODE] = AINodeExecutor(orchestrator, session_factory)
    return registry


def get_executor(registry: ExecutorRegistry, node_type: str) -> NodeExecutor:
    try:
        return registry[NodeType(node_type)]
    except (KeyError, ValueError):
        raise ConfigurationError(f"No executor for node type '{node_type}'")
