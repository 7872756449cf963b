"""
Send-SMS node: texts the workflow's contact from the workspace number.

Opt-out is checked twice: on the context snapshot, and again against the
store right before sending, since the contact may have opted out between
scheduling and execution.
"""

import logging
from datetime import datetime
from typing import Any, Dict

from database.models import ChatRoom, Contact, SmsMessage
from ..clients.sms_transport import SmsTransport
from ..errors import ConfigurationError, OptedOutError
from ..models import NodeType, SendSmsData
from ..runtime.context import NodeExecutionRequest
from ..services.contact_loader import load_workspace
from ..templates.resolver import resolve_template
from .base import NodeExecutor, parse_node_data

logger = logging.getLogger(__name__)

SMS_CHANNEL = "sms"


class SendSmsExecutor(NodeExecutor):
    node_type = NodeType.SEND_SMS
    step_name = "send-sms"
    reads = ("workspaceId", "contact")
    writes = ("_lastSmsTo",)

    def __init__(self, transport: SmsTransport, session_factory=None):
        super().__init__(session_factory)
        self.transport = transport

    def _is_opted_out(self, contact_id: str) -> bool:
        db = self.session_factory()
        try:
            row = db.query(Contact.opted_out).filter(Contact.id == contact_id).first()
            return bool(row and row.opted_out)
        finally:
            db.close()

    def _load_workspace(self, context: Dict[str, Any], workspace_id: str):
        workspace = context.get("workspace")
        if isinstance(workspace, dict) and workspace.get("name"):
            return workspace

        db = self.session_factory()
        try:
            return load_workspace(db, workspace_id)
        finally:
            db.close()

    async def perform(self, request: NodeExecutionRequest) -> Dict[str, Any]:
        data = parse_node_data(SendSmsData, request.data, self.node_type)
        context = request.context
        workspace_id = context["workspaceId"]
        contact = context["contact"]

        if not isinstance(contact, dict) or not contact.get("id"):
            raise ConfigurationError("No contact in workflow context")
        if not contact.get("phone"):
            raise ConfigurationError("Contact has no phone number")
        if contact.get("optedOut"):
            raise OptedOutError("Contact has opted out")

        if self._is_opted_out(contact["id"]):
            raise OptedOutError("Contact has opted out of SMS")

        workspace = self._load_workspace(context, workspace_id)
        if not workspace:
            raise ConfigurationError("Workspace not found")
        from_phone = workspace.get("smsPhoneNumber")
        if not from_phone:
            raise ConfigurationError("Workspace has no SMS phone number")

        template_ctx = {
            **context,
            "contact": contact,
            "location_name": workspace.get("name"),
            "location_phone": workspace.get("phone"),
        }
        body = resolve_template(data.message_body, template_ctx, contact=contact, workspace=workspace)
        if not body.strip():
            raise ConfigurationError("SMS body is empty after template resolution")

        sid = await self.transport.send_sms(to=contact["phone"], from_number=from_phone, body=body)

        now = datetime.utcnow()
        db = self.session_factory()
        try:
            room = (
                db.query(ChatRoom)
                .filter(
                    ChatRoom.workspace_id == workspace_id,
                    ChatRoom.contact_id == contact["id"],
                    ChatRoom.channel == SMS_CHANNEL,
                )
                .first()
            )
            if room:
                room.updated_at = now
            else:
                room = ChatRoom(workspace_id=workspace_id, contact_id=contact["id"], channel=SMS_CHANNEL)
                db.add(room)
                db.flush()

            db.add(SmsMessage(
                workspace_id=workspace_id,
                chat_room_id=room.id,
                direction="outbound",
                from_number=from_phone,
                to_number=contact["phone"],
                body=body,
                provider_sid=sid or None,
                status="SENT",
            ))
            db.query(Contact).filter(Contact.id == contact["id"]).update({Contact.last_contacted_at: now})
            db.commit()
        finally:
            db.close()

        logger.info(f"SMS sent to contact {contact['id']} from {from_phone}")
        return {"_lastSmsTo": contact["phone"]}
