"""
Sequence Enrollment Service - drip sequence enrollment and lifecycle

Handles:
- Single-contact enrollment with audience filters and frequency caps
- Bulk enrollment (explicit contact list or the sequence's audience)
- Enrollment state transitions (complete, stop, opt-out, advance)

Skips are structured results, not errors. Only infrastructure failures
and misconfigured bulk requests raise.
"""

import logging
from typing import Optional, List
from datetime import datetime, timedelta
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.database import SessionLocal
from database.models import (
    Contact,
    ContactCategory,
    CampaignRecipient,
    Sequence,
    SequenceStep,
    SequenceEnrollment,
)
from ..errors import ConfigurationError, InvalidTransitionError, NotFoundError
from ..models import (
    AudienceType,
    EnrollContactsResult,
    EnrollmentStatus,
    EnrollResult,
    SequenceStatus,
    SkipReason,
    TERMINAL_ENROLLMENT_STATUSES,
)

logger = logging.getLogger(__name__)

# Campaign recipient statuses that count as "recently messaged"
MESSAGED_STATUSES = ("sent", "delivered", "replied")


def _skip(reason: SkipReason) -> EnrollResult:
    return EnrollResult(enrolled=False, skipped_reason=reason.value)


class SequenceEnrollmentService:
    """
    Service for enrolling contacts into drip sequences.
    """

    def __init__(self, db: Optional[Session] = None):
        """
        Initialize enrollment service.

        Args:
            db: Optional database session. If not provided, will create new sessions.
        """
        self._db = db

    def _get_db(self) -> Session:
        """Get or create database session."""
        if self._db:
            return self._db
        return SessionLocal()

    def _close_db(self, db: Session):
        """Close database session if we created it."""
        if not self._db:
            db.close()

    # =========================================================================
    # Enrollment
    # =========================================================================

    def enroll_contact(self, sequence_id: str, contact_id: str) -> EnrollResult:
        """
        Enroll one contact into a sequence.

        Guards run in a fixed order and the first failing guard's reason is
        returned. The partial unique index on active enrollments is the
        authoritative duplicate check; the read-side guard only saves a write.

        Returns:
            EnrollResult with enrollment_id on success, skipped_reason otherwise
        """
        db = self._get_db()
        try:
            sequence = db.query(Sequence).filter(Sequence.id == sequence_id).first()
            if not sequence:
                return _skip(SkipReason.SEQUENCE_NOT_FOUND)

            if sequence.status != SequenceStatus.ACTIVE.value:
                return _skip(SkipReason.SEQUENCE_NOT_ACTIVE)

            first_step = (
                db.query(SequenceStep)
                .filter(SequenceStep.sequence_id == sequence_id)
                .order_by(SequenceStep.order.asc())
                .first()
            )
            if not first_step:
                return _skip(SkipReason.NO_STEPS)

            contact = db.query(Contact).filter(Contact.id == contact_id).first()
            if not contact:
                return _skip(SkipReason.CONTACT_NOT_FOUND)

            if contact.workspace_id != sequence.workspace_id:
                return _skip(SkipReason.WRONG_WORKSPACE)

            if contact.opted_out:
                return _skip(SkipReason.OPTED_OUT)

            reason = self._check_audience(db, sequence, contact)
            if reason:
                return _skip(reason)

            now = datetime.utcnow()

            if sequence.frequency_cap_days:
                cap_cutoff = now - timedelta(days=sequence.frequency_cap_days)
                recent = (
                    db.query(SequenceEnrollment.id)
                    .filter(
                        SequenceEnrollment.sequence_id == sequence_id,
                        SequenceEnrollment.contact_id == contact_id,
                        SequenceEnrollment.enrolled_at >= cap_cutoff,
                    )
                    .first()
                )
                if recent:
                    return _skip(SkipReason.FREQUENCY_CAP)

            # Only active enrollments block re-entry; repeats of finished runs
            # inside the window are the frequency cap's job
            existing = (
                db.query(SequenceEnrollment.id)
                .filter(
                    SequenceEnrollment.sequence_id == sequence_id,
                    SequenceEnrollment.contact_id == contact_id,
                    SequenceEnrollment.status == EnrollmentStatus.ACTIVE.value,
                )
                .first()
            )
            if existing:
                return _skip(SkipReason.ALREADY_ENROLLED)

            enrollment = SequenceEnrollment(
                sequence_id=sequence_id,
                contact_id=contact_id,
                status=EnrollmentStatus.ACTIVE.value,
                current_step=1,
                next_step_at=now + timedelta(minutes=first_step.delay_minutes or 0),
                enrolled_at=now,
            )
            db.add(enrollment)
            try:
                db.commit()
            except IntegrityError:
                # A concurrent enrollment won the unique index
                db.rollback()
                logger.info(f"Contact {contact_id} already enrolled in sequence {sequence_id} (index conflict)")
                return _skip(SkipReason.ALREADY_ENROLLED)

            logger.info(f"Enrolled contact {contact_id} in sequence {sequence_id} (enrollment {enrollment.id})")
            return EnrollResult(enrolled=True, enrollment_id=enrollment.id)

        except Exception:
            # Leave a shared session usable for the caller's next enrollment
            db.rollback()
            raise

        finally:
            self._close_db(db)

    def _check_audience(self, db: Session, sequence: Sequence, contact: Contact) -> Optional[SkipReason]:
        """Apply the sequence's audience filter to one contact."""
        audience_type = sequence.audience_type or AudienceType.ALL.value

        if audience_type == AudienceType.STAGE.value and sequence.audience_stage:
            if contact.stage != sequence.audience_stage:
                return SkipReason.AUDIENCE_FILTER_STAGE

        elif audience_type == AudienceType.CATEGORY.value and sequence.audience_category_id:
            has_category = (
                db.query(ContactCategory.id)
                .filter(
                    ContactCategory.contact_id == contact.id,
                    ContactCategory.category_id == sequence.audience_category_id,
                )
                .first()
            )
            if not has_category:
                return SkipReason.AUDIENCE_FILTER_CATEGORY

        elif audience_type == AudienceType.INACTIVE.value and sequence.audience_inactive_days:
            cutoff = datetime.utcnow() - timedelta(days=sequence.audience_inactive_days)
            if contact.last_contacted_at and contact.last_contacted_at > cutoff:
                return SkipReason.AUDIENCE_FILTER_INACTIVE

        return None

    def enroll_contacts(self, sequence_id: str, contact_ids: List[str]) -> EnrollContactsResult:
        """
        Enroll contacts one at a time and aggregate the outcomes.
        """
        results = [self.enroll_contact(sequence_id, contact_id) for contact_id in contact_ids]
        enrolled = sum(1 for r in results if r.enrolled)

        return EnrollContactsResult(
            enrolled=enrolled,
            skipped=len(results) - enrolled,
            results=results,
        )

    def enroll_by_audience(self, sequence_id: str) -> EnrollContactsResult:
        """
        Enroll every contact matching the sequence's audience.

        Contacts that received a campaign message inside the frequency-cap
        window are excluded up front; everyone else runs through the
        single-contact guards.

        Raises:
            NotFoundError: Sequence doesn't exist
            ConfigurationError: Sequence is not active or has no steps
        """
        db = self._get_db()
        try:
            sequence = db.query(Sequence).filter(Sequence.id == sequence_id).first()
            if not sequence:
                raise NotFoundError(f"Sequence {sequence_id} not found")

            if sequence.status != SequenceStatus.ACTIVE.value:
                raise ConfigurationError("Sequence must be active to enroll contacts")

            step_count = db.query(SequenceStep).filter(SequenceStep.sequence_id == sequence_id).count()
            if step_count == 0:
                raise ConfigurationError("Sequence has no steps")

            query = db.query(Contact.id).filter(
                Contact.workspace_id == sequence.workspace_id,
                Contact.opted_out.is_(False),
            )

            audience_type = sequence.audience_type or AudienceType.ALL.value
            if audience_type == AudienceType.STAGE.value and sequence.audience_stage:
                query = query.filter(Contact.stage == sequence.audience_stage)
            elif audience_type == AudienceType.CATEGORY.value and sequence.audience_category_id:
                query = query.join(ContactCategory, ContactCategory.contact_id == Contact.id).filter(
                    ContactCategory.category_id == sequence.audience_category_id
                )
            elif audience_type == AudienceType.INACTIVE.value and sequence.audience_inactive_days:
                cutoff = datetime.utcnow() - timedelta(days=sequence.audience_inactive_days)
                query = query.filter(
                    or_(Contact.last_contacted_at < cutoff, Contact.last_contacted_at.is_(None))
                )

            if sequence.frequency_cap_days:
                cap_cutoff = datetime.utcnow() - timedelta(days=sequence.frequency_cap_days)
                recently_messaged = (
                    db.query(CampaignRecipient.contact_id)
                    .join(Contact, Contact.id == CampaignRecipient.contact_id)
                    .filter(
                        Contact.workspace_id == sequence.workspace_id,
                        CampaignRecipient.sent_at >= cap_cutoff,
                        CampaignRecipient.status.in_(MESSAGED_STATUSES),
                    )
                    .distinct()
                )
                query = query.filter(Contact.id.notin_(recently_messaged))

            contact_ids = [row.id for row in query.all()]

        finally:
            self._close_db(db)

        if not contact_ids:
            return EnrollContactsResult()

        logger.info(f"Enrolling {len(contact_ids)} audience contacts into sequence {sequence_id}")
        return self.enroll_contacts(sequence_id, contact_ids)

    # =========================================================================
    # State Transitions
    # =========================================================================

    def _get_active_enrollment(self, db: Session, enrollment_id: str) -> SequenceEnrollment:
        enrollment = db.query(SequenceEnrollment).filter(SequenceEnrollment.id == enrollment_id).first()
        if not enrollment:
            raise NotFoundError(f"Enrollment {enrollment_id} not found")

        if EnrollmentStatus(enrollment.status) in TERMINAL_ENROLLMENT_STATUSES:
            raise InvalidTransitionError(
                f"Enrollment {enrollment_id} is {enrollment.status}; terminal enrollments cannot change"
            )
        return enrollment

    def complete_enrollment(self, enrollment_id: str) -> SequenceEnrollment:
        """active -> completed"""
        db = self._get_db()
        try:
            enrollment = self._get_active_enrollment(db, enrollment_id)
            enrollment.status = EnrollmentStatus.COMPLETED.value
            enrollment.completed_at = datetime.utcnow()
            enrollment.next_step_at = None
            db.commit()
            db.refresh(enrollment)

            logger.info(f"Completed enrollment {enrollment_id}")
            return enrollment

        finally:
            self._close_db(db)

    def stop_enrollment(self, enrollment_id: str, reason: Optional[str] = None) -> SequenceEnrollment:
        """active -> stopped (manual stop, stop condition, repeated step failure)"""
        db = self._get_db()
        try:
            enrollment = self._get_active_enrollment(db, enrollment_id)
            enrollment.status = EnrollmentStatus.STOPPED.value
            enrollment.stopped_at = datetime.utcnow()
            enrollment.stopped_reason = reason or "manual"
            enrollment.next_step_at = None
            db.commit()
            db.refresh(enrollment)

            logger.info(f"Stopped enrollment {enrollment_id}: {enrollment.stopped_reason}")
            return enrollment

        finally:
            self._close_db(db)

    def mark_opted_out(self, enrollment_id: str) -> SequenceEnrollment:
        """active -> opted_out (contact opted out mid-sequence)"""
        db = self._get_db()
        try:
            enrollment = self._get_active_enrollment(db, enrollment_id)
            enrollment.status = EnrollmentStatus.OPTED_OUT.value
            enrollment.stopped_at = datetime.utcnow()
            enrollment.stopped_reason = "contact_opted_out"
            enrollment.next_step_at = None
            db.commit()
            db.refresh(enrollment)

            logger.info(f"Enrollment {enrollment_id} opted out")
            return enrollment

        finally:
            self._close_db(db)

    def advance_enrollment(self, enrollment_id: str) -> SequenceEnrollment:
        """
        Move to the step after current_step, or complete the enrollment
        when the current step was the last one.
        """
        db = self._get_db()
        try:
            enrollment = self._get_active_enrollment(db, enrollment_id)
            next_step = (
                db.query(SequenceStep)
                .filter(
                    SequenceStep.sequence_id == enrollment.sequence_id,
                    SequenceStep.order > enrollment.current_step,
                )
                .order_by(SequenceStep.order.asc())
                .first()
            )

            now = datetime.utcnow()
            if next_step:
                enrollment.current_step = next_step.order
                enrollment.next_step_at = now + timedelta(minutes=next_step.delay_minutes or 0)
            else:
                enrollment.status = EnrollmentStatus.COMPLETED.value
                enrollment.completed_at = now
                enrollment.next_step_at = None

            db.commit()
            db.refresh(enrollment)
            return enrollment

        finally:
            self._close_db(db)
