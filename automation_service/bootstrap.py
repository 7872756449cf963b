"""
Automation Runtime - wires the production collaborators together.

Transports, AI providers and the status publisher come from settings; the
trigger dispatcher hands chained executions back to the same workflow
runner as detached tasks.
"""

import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.orm import sessionmaker

from database.database import SessionLocal
from .ai.orchestrator import AIOrchestrator
from .clients.ai_providers import ProviderRegistry
from .clients.email_transport import EmailTransport, SendGridEmailClient
from .clients.sms_transport import SmsTransport, TwilioSmsClient
from .config import get_automation_settings, is_email_configured, is_sms_configured
from .executors.registry import build_executor_registry
from .runtime.background import spawn_detached
from .runtime.publisher import InMemoryStatusPublisher, RedisStatusPublisher, StatusPublisher
from .runtime.triggers import WorkflowTriggerDispatcher
from .runtime.workflow_runner import WorkflowRunner

logger = logging.getLogger(__name__)


def build_sms_transport() -> TwilioSmsClient:
    if not is_sms_configured():
        logger.warning("SMS sending disabled - Twilio credentials not set")
    return TwilioSmsClient()


def build_email_transport() -> SendGridEmailClient:
    if not is_email_configured():
        logger.warning("Email sending disabled - SENDGRID_API_KEY not set")
    return SendGridEmailClient()


def build_status_publisher() -> StatusPublisher:
    """Redis pub/sub when a Redis URL is configured, in-memory otherwise."""
    redis_url = get_automation_settings().redis_url
    if redis_url:
        return RedisStatusPublisher(redis_url)
    logger.warning("REDIS_URL not set - node status events stay in process")
    return InMemoryStatusPublisher()


class AutomationRuntime:
    """
    Composition root for workflow execution.

    Every collaborator can be overridden; anything left out is built from
    settings.
    """

    def __init__(
        self,
        sms_transport: Optional[SmsTransport] = None,
        email_transport: Optional[EmailTransport] = None,
        providers: Optional[ProviderRegistry] = None,
        publisher: Optional[StatusPublisher] = None,
        session_factory: Optional[sessionmaker] = None,
    ):
        settings = get_automation_settings()
        self.session_factory = session_factory or SessionLocal
        self.sms_transport = sms_transport or build_sms_transport()
        self.email_transport = email_transport or build_email_transport()
        self.publisher = publisher or build_status_publisher()
        self.orchestrator = AIOrchestrator(
            providers or ProviderRegistry.from_settings(),
            session_factory=self.session_factory,
        )
        self.dispatcher = WorkflowTriggerDispatcher(
            self.start_execution,
            self.session_factory,
            max_depth=settings.max_trigger_depth,
        )
        self.registry = build_executor_registry(
            self.sms_transport,
            self.email_transport,
            self.orchestrator,
            self.dispatcher,
            self.session_factory,
        )
        self.runner = WorkflowRunner(self.registry, self.publisher, self.session_factory)

    async def start_execution(self, workflow_id: str, initial_data: Dict[str, Any]) -> str:
        """Run a workflow in the background and return its execution id."""
        execution_id = str(uuid.uuid4())
        spawn_detached(
            self.runner.run(workflow_id, initial_data, execution_id=execution_id),
            label=f"workflow {workflow_id} ({execution_id})",
        )
        logger.info(f"Started workflow {workflow_id} (execution {execution_id})")
        return execution_id

    async def close(self):
        """Release HTTP and Redis connections."""
        for resource in (self.sms_transport, self.publisher):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()
