"""
Contact / workspace snapshot loading.

Executors and the workflow runner only need a narrow projection of each
record; snapshots are plain camelCase dicts so they can be threaded through
the execution context and memoized by step runners.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from database.models import Contact, Workspace

logger = logging.getLogger(__name__)


def contact_snapshot(contact: Contact) -> Dict[str, Any]:
    return {
        "id": contact.id,
        "firstName": contact.first_name,
        "lastName": contact.last_name,
        "email": contact.email,
        "phone": contact.phone,
        "stage": contact.stage,
        "source": contact.source,
        "optedOut": bool(contact.opted_out),
        "workspaceId": contact.workspace_id,
        "assignedToId": contact.assigned_to_id,
    }


def workspace_snapshot(workspace: Workspace) -> Dict[str, Any]:
    return {
        "id": workspace.id,
        "userId": workspace.user_id,
        "name": workspace.name,
        "phone": workspace.phone,
        "feedbackSlug": workspace.feedback_slug,
        "googleReviewUrl": workspace.google_review_url,
        "fromEmail": workspace.from_email,
        "fromEmailName": workspace.from_email_name,
        "smsPhoneNumber": workspace.sms_phone_number,
        "brandTone": workspace.brand_tone,
        "brandIndustry": workspace.brand_industry,
        "brandServices": workspace.brand_services,
        "brandUsps": workspace.brand_usps,
        "brandInstructions": workspace.brand_instructions,
    }


def load_contact(db: Session, contact_id: str, workspace_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Load a contact snapshot.

    Returns None if the contact doesn't exist, or belongs to another
    workspace when workspace_id is given.
    """
    contact = db.query(Contact).filter(Contact.id == contact_id).first()
    if not contact:
        return None
    if workspace_id and contact.workspace_id != workspace_id:
        logger.warning(f"Contact {contact_id} does not belong to workspace {workspace_id}")
        return None
    return contact_snapshot(contact)


def load_workspace(db: Session, workspace_id: str) -> Optional[Dict[str, Any]]:
    workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
    if not workspace:
        return None
    return workspace_snapshot(workspace)
