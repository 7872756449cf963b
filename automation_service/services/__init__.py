"""
Automation services - enrollment engine and store helpers
"""

from .activity_service import log_activity
from .auto_enroll import (
    auto_enroll_by_trigger,
    auto_enroll_on_contact_created,
    auto_enroll_on_keyword_join,
    auto_enroll_on_stage_change,
)
from .contact_loader import contact_snapshot, load_contact, load_workspace, workspace_snapshot
from .enrollment_service import SequenceEnrollmentService

__all__ = [
    "log_activity",
    "auto_enroll_by_trigger",
    "auto_enroll_on_contact_created",
    "auto_enroll_on_keyword_join",
    "auto_enroll_on_stage_change",
    "contact_snapshot",
    "load_contact",
    "load_workspace",
    "workspace_snapshot",
    "SequenceEnrollmentService",
]
