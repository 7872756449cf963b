"""
Auto-enroll contacts into sequences when business events happen
(contact created, keyword joined, stage changed).

Safe to call from any event handler: failures are caught and reported in
the result, never raised.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from database.database import SessionLocal
from database.models import Sequence
from ..models import AutoEnrollDetail, AutoEnrollResult, SequenceStatus, SequenceTriggerType
from .enrollment_service import SequenceEnrollmentService

logger = logging.getLogger(__name__)

# Trigger types whose trigger_value narrows the match
VALUE_MATCHED_TRIGGERS = (SequenceTriggerType.KEYWORD_JOIN, SequenceTriggerType.STAGE_CHANGE)


def auto_enroll_by_trigger(
    workspace_id: str,
    contact_id: str,
    trigger_type: SequenceTriggerType,
    trigger_value: Optional[str] = None,
    db: Optional[Session] = None,
    enrollment_service: Optional[SequenceEnrollmentService] = None,
) -> AutoEnrollResult:
    """
    Enroll a contact into every active sequence in the workspace whose
    trigger matches. A failure in one sequence doesn't affect the others.
    """
    result = AutoEnrollResult()
    service = enrollment_service or SequenceEnrollmentService(db)

    owns_session = db is None
    session = db or SessionLocal()
    try:
        query = session.query(Sequence.id, Sequence.name).filter(
            Sequence.workspace_id == workspace_id,
            Sequence.status == SequenceStatus.ACTIVE.value,
            Sequence.trigger_type == trigger_type.value,
        )
        if trigger_type in VALUE_MATCHED_TRIGGERS and trigger_value:
            query = query.filter(Sequence.trigger_value == trigger_value)

        sequences = query.order_by(Sequence.created_at.asc()).all()
    except Exception as e:
        logger.error(f"Auto-enroll lookup error [workspace={workspace_id}, trigger={trigger_type.value}]: {e}")
        return result
    finally:
        if owns_session:
            session.close()

    result.sequences_checked = len(sequences)

    for sequence in sequences:
        try:
            enroll_result = service.enroll_contact(sequence.id, contact_id)
            result.details.append(AutoEnrollDetail(
                sequence_id=sequence.id,
                sequence_name=sequence.name,
                enrolled=enroll_result.enrolled,
                reason=enroll_result.skipped_reason,
            ))
            if enroll_result.enrolled:
                result.enrolled += 1
            else:
                result.skipped += 1

        except Exception as e:
            logger.error(f"Auto-enroll error [sequence={sequence.id}, contact={contact_id}]: {e}")
            if db is not None:
                db.rollback()
            result.skipped += 1
            result.details.append(AutoEnrollDetail(
                sequence_id=sequence.id,
                sequence_name=sequence.name,
                enrolled=False,
                reason=f"error: {(str(e) or 'unknown')[:200]}",
            ))

    if result.enrolled:
        logger.info(
            f"Auto-enrolled contact {contact_id} into {result.enrolled}/{result.sequences_checked} "
            f"sequence(s) on {trigger_type.value}"
        )
    return result


def auto_enroll_on_contact_created(workspace_id: str, contact_id: str, **kwargs) -> AutoEnrollResult:
    return auto_enroll_by_trigger(workspace_id, contact_id, SequenceTriggerType.CONTACT_CREATED, **kwargs)


def auto_enroll_on_keyword_join(workspace_id: str, contact_id: str, keyword: str, **kwargs) -> AutoEnrollResult:
    return auto_enroll_by_trigger(workspace_id, contact_id, SequenceTriggerType.KEYWORD_JOIN, keyword, **kwargs)


def auto_enroll_on_stage_change(workspace_id: str, contact_id: str, new_stage: str, **kwargs) -> AutoEnrollResult:
    return auto_enroll_by_trigger(workspace_id, contact_id, SequenceTriggerType.STAGE_CHANGE, new_stage, **kwargs)
