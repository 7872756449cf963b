"""
Update-contact node: stage changes, categories, notes and assignment.

Stage changes and category additions fire chained workflow triggers,
carrying the current trigger depth so recursive chains stay bounded.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.models import Category, Contact, ContactCategory
from ..errors import ConfigurationError
from ..models import ContactAction, NodeType, UpdateContactData
from ..runtime.background import spawn_detached
from ..runtime.context import NodeExecutionRequest, get_contact_id, get_trigger_depth
from ..runtime.triggers import TriggerDispatcher
from ..services.activity_service import log_activity
from ..templates.resolver import resolve_template
from .base import NodeExecutor, parse_node_data

logger = logging.getLogger(__name__)


class UpdateContactExecutor(NodeExecutor):
    node_type = NodeType.UPDATE_CONTACT
    step_name = "update-contact"
    reads = ("workspaceId",)
    writes = ("_lastStage", "_lastCategory", "_lastAssignee")

    def __init__(self, dispatcher: Optional[TriggerDispatcher] = None, session_factory=None):
        super().__init__(session_factory)
        self.dispatcher = dispatcher

    def _fire(self, trigger_type: NodeType, payload: Dict[str, Any], depth: int) -> None:
        if self.dispatcher is None:
            logger.debug(f"No trigger dispatcher configured, not firing {trigger_type.value}")
            return
        spawn_detached(
            self.dispatcher.fire(trigger_type, payload, trigger_depth=depth),
            label=f"fire {trigger_type.value}",
        )

    async def perform(self, request: NodeExecutionRequest) -> Dict[str, Any]:
        data = parse_node_data(UpdateContactData, request.data, self.node_type)
        context = request.context
        workspace_id = context["workspaceId"]
        depth = get_trigger_depth(context)

        contact_id = get_contact_id(context)
        if not contact_id:
            raise ConfigurationError("No contact in workflow context")

        db = self.session_factory()
        try:
            contact = (
                db.query(Contact)
                .filter(Contact.id == contact_id, Contact.workspace_id == workspace_id)
                .first()
            )
            if not contact:
                raise ConfigurationError("No contact in workflow context")

            if data.action == ContactAction.UPDATE_STAGE:
                return self._update_stage(db, contact, data, depth)
            if data.action == ContactAction.ADD_CATEGORY:
                return self._add_category(db, contact, data, depth)
            if data.action == ContactAction.REMOVE_CATEGORY:
                return self._remove_category(db, contact, data)
            if data.action == ContactAction.LOG_NOTE:
                return self._log_note(db, contact, data, context, request.node_id)
            if data.action == ContactAction.ASSIGN_CONTACT:
                return self._assign(db, contact, data)

            raise ConfigurationError(f"Unknown contact action: {data.action}")

        finally:
            db.close()

    # =========================================================================
    # Actions
    # =========================================================================

    def _update_stage(self, db: Session, contact: Contact, data: UpdateContactData, depth: int) -> Dict[str, Any]:
        new_stage = (data.stage or "").strip()
        if not new_stage:
            raise ConfigurationError("No target stage configured")

        previous_stage = contact.stage
        contact.stage = new_stage
        log_activity(
            db,
            contact_id=contact.id,
            workspace_id=contact.workspace_id,
            activity_type="stage_changed",
            description=f"Stage changed from {previous_stage} to {new_stage} (workflow)",
        )
        db.commit()

        self._fire(
            NodeType.STAGE_CHANGED,
            {
                "workspaceId": contact.workspace_id,
                "contactId": contact.id,
                "previousStage": previous_stage,
                "newStage": new_stage,
            },
            depth,
        )
        return {"_lastStage": new_stage}

    def _get_or_create_category(self, db: Session, workspace_id: str, name: str) -> Category:
        category = (
            db.query(Category)
            .filter(Category.workspace_id == workspace_id, Category.name == name)
            .first()
        )
        if category:
            return category

        category = Category(workspace_id=workspace_id, name=name)
        db.add(category)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            category = (
                db.query(Category)
                .filter(Category.workspace_id == workspace_id, Category.name == name)
                .one()
            )
        return category

    def _add_category(self, db: Session, contact: Contact, data: UpdateContactData, depth: int) -> Dict[str, Any]:
        category_name = (data.category_name or "").strip()
        if not category_name:
            raise ConfigurationError("No category name configured")

        contact_id = contact.id
        workspace_id = contact.workspace_id
        category = self._get_or_create_category(db, workspace_id, category_name)

        linked = (
            db.query(ContactCategory.id)
            .filter(ContactCategory.contact_id == contact_id, ContactCategory.category_id == category.id)
            .first()
        )
        if not linked:
            db.add(ContactCategory(contact_id=contact_id, category_id=category.id))
            try:
                db.commit()
            except IntegrityError:
                # Linked concurrently; the upsert outcome is the same
                db.rollback()

        self._fire(
            NodeType.CATEGORY_ADDED,
            {
                "workspaceId": workspace_id,
                "contactId": contact_id,
                "categoryId": category.id,
                "categoryName": category.name,
            },
            depth,
        )
        return {"_lastCategory": category_name}

    def _remove_category(self, db: Session, contact: Contact, data: UpdateContactData) -> Dict[str, Any]:
        category_name = (data.category_name or "").strip()
        if not category_name:
            raise ConfigurationError("No category name configured")

        category = (
            db.query(Category)
            .filter(Category.workspace_id == contact.workspace_id, Category.name == category_name)
            .first()
        )
        if category:
            db.query(ContactCategory).filter(
                ContactCategory.contact_id == contact.id,
                ContactCategory.category_id == category.id,
            ).delete(synchronize_session=False)
            db.commit()

        return {"_lastCategory": category_name}

    def _log_note(
        self,
        db: Session,
        contact: Contact,
        data: UpdateContactData,
        context: Dict[str, Any],
        node_id: str,
    ) -> Dict[str, Any]:
        note = resolve_template(data.note_template or "Workflow note", context)
        log_activity(
            db,
            contact_id=contact.id,
            workspace_id=contact.workspace_id,
            activity_type="note_added",
            description=note,
            details={"source": "workflow", "nodeId": node_id},
        )
        db.commit()
        return {}

    def _assign(self, db: Session, contact: Contact, data: UpdateContactData) -> Dict[str, Any]:
        assignee_id = (data.assignee_id or "").strip()
        if not assignee_id:
            raise ConfigurationError("No assignee configured")

        contact.assigned_to_id = assignee_id
        log_activity(
            db,
            contact_id=contact.id,
            workspace_id=contact.workspace_id,
            activity_type="contact_updated",
            description="Contact assigned to team member (workflow)",
        )
        db.commit()
        return {"_lastAssignee": assignee_id}
