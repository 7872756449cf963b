"""
Automation Service API Routes

FastAPI routes for:
- Sequence enrollment (single contact, audience)
- Enrollment lifecycle (manual stop)
- Manual workflow runs
- Editor catalogs (template tokens, AI presets)
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from database.database import get_db
from database.models import Sequence, SequenceEnrollment, Workflow
from .ai.presets import AI_PRESETS, get_presets_by_mode
from .bootstrap import AutomationRuntime
from .errors import AutomationError, ConfigurationError, InvalidTransitionError, NotFoundError
from .models import (
    AIMode,
    AIPresetResponse,
    BulkEnrollResponse,
    EnrollContactRequest,
    EnrollmentResponse,
    EnrollResult,
    ExecuteWorkflowRequest,
    ExecuteWorkflowResponse,
    StopEnrollmentRequest,
    TokenResponse,
)
from .services.enrollment_service import SequenceEnrollmentService
from .templates.tokens import list_tokens

logger = logging.getLogger(__name__)

# Create router
automation_router = APIRouter(prefix="/api/automation", tags=["Automation"])


# =============================================================================
# Dependencies
# =============================================================================


def get_workspace_id(request: Request) -> str:
    """Extract workspace ID from request headers."""
    workspace_id = request.headers.get("x-workspace-id")
    if not workspace_id:
        raise HTTPException(status_code=401, detail="Workspace ID required")
    return workspace_id


def get_automation_runtime(request: Request) -> AutomationRuntime:
    """Workflow runtime built at startup."""
    runtime = getattr(request.app.state, "automation_runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Workflow runtime not started")
    return runtime


def to_http_error(e: AutomationError) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (ConfigurationError, InvalidTransitionError)):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _require_sequence(db: Session, sequence_id: str, workspace_id: str) -> Sequence:
    sequence = (
        db.query(Sequence)
        .filter(Sequence.id == sequence_id, Sequence.workspace_id == workspace_id)
        .first()
    )
    if not sequence:
        raise HTTPException(status_code=404, detail="Sequence not found")
    return sequence


# =============================================================================
# Enrollment Routes
# =============================================================================


@automation_router.post("/sequences/{sequence_id}/enroll", response_model=EnrollResult)
async def enroll_contact(
    sequence_id: str,
    body: EnrollContactRequest,
    workspace_id: str = Depends(get_workspace_id),
    db: Session = Depends(get_db),
):
    """Enroll one contact. Skips come back as enrolled=false with a reason."""
    _require_sequence(db, sequence_id, workspace_id)

    try:
        return SequenceEnrollmentService(db).enroll_contact(sequence_id, body.contact_id)
    except AutomationError as e:
        raise to_http_error(e)


@automation_router.post("/sequences/{sequence_id}/enroll-by-audience", response_model=BulkEnrollResponse)
async def enroll_by_audience(
    sequence_id: str,
    workspace_id: str = Depends(get_workspace_id),
    db: Session = Depends(get_db),
):
    """Enroll every contact matching the sequence's audience."""
    _require_sequence(db, sequence_id, workspace_id)

    try:
        result = SequenceEnrollmentService(db).enroll_by_audience(sequence_id)
    except AutomationError as e:
        raise to_http_error(e)

    return BulkEnrollResponse(enrolled=result.enrolled, skipped=result.skipped)


@automation_router.post("/enrollments/{enrollment_id}/stop", response_model=EnrollmentResponse)
async def stop_enrollment(
    enrollment_id: str,
    body: Optional[StopEnrollmentRequest] = None,
    workspace_id: str = Depends(get_workspace_id),
    db: Session = Depends(get_db),
):
    """Manually stop an active enrollment."""
    owned = (
        db.query(SequenceEnrollment.id)
        .join(Sequence, Sequence.id == SequenceEnrollment.sequence_id)
        .filter(SequenceEnrollment.id == enrollment_id, Sequence.workspace_id == workspace_id)
        .first()
    )
    if not owned:
        raise HTTPException(status_code=404, detail="Enrollment not found")

    try:
        enrollment = SequenceEnrollmentService(db).stop_enrollment(
            enrollment_id, reason=body.reason if body else None
        )
    except AutomationError as e:
        raise to_http_error(e)

    return EnrollmentResponse.model_validate(enrollment)


# =============================================================================
# Workflow Routes
# =============================================================================


@automation_router.post("/workflows/{workflow_id}/execute", response_model=ExecuteWorkflowResponse)
async def execute_workflow(
    workflow_id: str,
    body: Optional[ExecuteWorkflowRequest] = None,
    workspace_id: str = Depends(get_workspace_id),
    db: Session = Depends(get_db),
    runtime: AutomationRuntime = Depends(get_automation_runtime),
):
    """Start a workflow run in the background and return its execution id."""
    workflow = (
        db.query(Workflow.id)
        .filter(Workflow.id == workflow_id, Workflow.workspace_id == workspace_id)
        .first()
    )
    if not workflow:
        raise HTTPException(status_code=404, detail="Workflow not found")

    initial_data = {"contactId": body.contact_id} if body and body.contact_id else {}
    execution_id = await runtime.start_execution(workflow_id, initial_data)
    return ExecuteWorkflowResponse(execution_id=execution_id)


# =============================================================================
# Catalog Routes
# =============================================================================


@automation_router.get("/tokens", response_model=List[TokenResponse])
async def get_tokens():
    """Template tokens available in message editors."""
    return [TokenResponse(token=t.token, label=t.label, category=t.category) for t in list_tokens()]


@automation_router.get("/ai/presets", response_model=List[AIPresetResponse])
async def get_ai_presets(mode: Optional[AIMode] = None):
    """AI presets, optionally filtered by mode."""
    presets = get_presets_by_mode(mode) if mode else list(AI_PRESETS)
    return [
        AIPresetResponse(id=p.id, label=p.label, mode=p.mode, description=p.description)
        for p in presets
    ]
