"""
Contact activity timeline writes.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from database.models import ActivityLog

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    contact_id: str,
    workspace_id: str,
    activity_type: str,
    description: str,
    details: Optional[Dict[str, Any]] = None,
) -> ActivityLog:
    """
    Add an activity entry to the session. The caller commits.

    Args:
        activity_type: stage_changed, note_added, contact_updated
    """
    entry = ActivityLog(
        contact_id=contact_id,
        workspace_id=workspace_id,
        type=activity_type,
        description=description,
        details=details,
    )
    db.add(entry)
    logger.debug(f"Activity {activity_type} queued for contact {contact_id}")
    return entry
