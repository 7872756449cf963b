"""
Send-email node: emails the workflow's contact from the workspace sender.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup

from database.models import Contact, EmailSend
from ..clients.email_transport import EmailTransport
from ..errors import ConfigurationError
from ..models import NodeType, SendEmailData
from ..runtime.context import NodeExecutionRequest, get_contact_id
from ..services.contact_loader import load_contact, load_workspace
from ..templates.resolver import resolve_template
from .base import NodeExecutor, parse_node_data

logger = logging.getLogger(__name__)


def html_to_text(html: str) -> str:
    """Plain-text part for an HTML body: visible text only, entities decoded."""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()
    return soup.get_text(separator=" ", strip=True)


class SendEmailExecutor(NodeExecutor):
    node_type = NodeType.SEND_EMAIL
    step_name = "send-email"
    reads = ("workspaceId",)
    writes = ("_lastEmailTo",)

    def __init__(self, transport: EmailTransport, session_factory=None):
        super().__init__(session_factory)
        self.transport = transport

    async def perform(self, request: NodeExecutionRequest) -> Dict[str, Any]:
        data = parse_node_data(SendEmailData, request.data, self.node_type)
        context = request.context
        workspace_id = context["workspaceId"]

        db = self.session_factory()
        try:
            contact_id: Optional[str] = get_contact_id(context)
            contact = load_contact(db, contact_id, workspace_id) if contact_id else None
            workspace = load_workspace(db, workspace_id)
        finally:
            db.close()

        if not contact:
            raise ConfigurationError("No contact in workflow context")
        if not contact["email"]:
            raise ConfigurationError("Contact has no email address")
        if not workspace or not workspace["fromEmail"]:
            raise ConfigurationError("Workspace has no from email configured")

        template_ctx = {
            **context,
            "contact": contact,
            "location_name": workspace["name"],
            "location_phone": workspace["phone"],
        }
        subject = resolve_template(data.subject, template_ctx, contact=contact, workspace=workspace)
        html_body = resolve_template(data.html_body, template_ctx, contact=contact, workspace=workspace)

        if not subject.strip():
            raise ConfigurationError("Email subject is empty")
        if not html_body.strip():
            raise ConfigurationError("Email body is empty")

        from_name = workspace["fromEmailName"] or workspace["name"]
        provider_id = await self.transport.send_email(
            to_email=contact["email"],
            from_email=workspace["fromEmail"],
            from_name=from_name,
            subject=subject,
            html_content=html_body,
            text_content=html_to_text(html_body),
        )

        now = datetime.utcnow()
        db = self.session_factory()
        try:
            db.add(EmailSend(
                workspace_id=workspace_id,
                contact_id=contact["id"],
                to_email=contact["email"],
                from_email=workspace["fromEmail"],
                from_name=from_name,
                subject=subject,
                provider_id=provider_id or None,
                status="sent",
                sent_at=now,
            ))
            db.query(Contact).filter(Contact.id == contact["id"]).update({Contact.last_contacted_at: now})
            db.commit()
        finally:
            db.close()

        return {"_lastEmailTo": contact["email"]}
