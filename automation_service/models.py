"""
Pydantic models for the automation core: node configuration, AI calls,
enrollment results and API responses.

Node configuration arrives as camelCase JSON from the workflow editor,
so config models accept both the alias and the field name.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from enum import Enum


# =============================================================================
# Enums
# =============================================================================


class NodeType(str, Enum):
    """Closed set of workflow node types."""
    # Triggers
    MANUAL_TRIGGER = "MANUAL_TRIGGER"
    CONTACT_CREATED = "CONTACT_CREATED"
    STAGE_CHANGED = "STAGE_CHANGED"
    CATEGORY_ADDED = "CATEGORY_ADDED"
    KEYWORD_JOINED = "KEYWORD_JOINED"
    REVIEW_RECEIVED = "REVIEW_RECEIVED"
    SCHEDULE = "SCHEDULE"
    # Actions
    CREATE_TASK = "CREATE_TASK"
    SEND_EMAIL = "SEND_EMAIL"
    SEND_SMS = "SEND_SMS"
    UPDATE_CONTACT = "UPDATE_CONTACT"
    AI_NODE = "AI_NODE"


TRIGGER_NODE_TYPES = frozenset({
    NodeType.MANUAL_TRIGGER,
    NodeType.CONTACT_CREATED,
    NodeType.STAGE_CHANGED,
    NodeType.CATEGORY_ADDED,
    NodeType.KEYWORD_JOINED,
    NodeType.REVIEW_RECEIVED,
    NodeType.SCHEDULE,
})


class NodeStatus(str, Enum):
    """Realtime node status shown in the editor."""
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class ContactAction(str, Enum):
    """Update-contact node variants."""
    UPDATE_STAGE = "update_stage"
    ADD_CATEGORY = "add_category"
    REMOVE_CATEGORY = "remove_category"
    LOG_NOTE = "log_note"
    ASSIGN_CONTACT = "assign_contact"


class AIProvider(str, Enum):
    """Interchangeable model providers."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"
    XAI = "xai"


class AIMode(str, Enum):
    """AI node modes (presets are grouped by these)."""
    GENERATE = "generate"
    ANALYZE = "analyze"
    SUMMARIZE = "summarize"


class SequenceStatus(str, Enum):
    """Sequence lifecycle."""
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class EnrollmentStatus(str, Enum):
    """Enrollment states. Only ACTIVE has outgoing transitions."""
    ACTIVE = "active"
    COMPLETED = "completed"
    STOPPED = "stopped"
    OPTED_OUT = "opted_out"


TERMINAL_ENROLLMENT_STATUSES = frozenset({
    EnrollmentStatus.COMPLETED,
    EnrollmentStatus.STOPPED,
    EnrollmentStatus.OPTED_OUT,
})


class AudienceType(str, Enum):
    """Sequence audience filter."""
    ALL = "all"
    STAGE = "stage"
    CATEGORY = "category"
    INACTIVE = "inactive"


class SequenceTriggerType(str, Enum):
    """Business events that auto-enroll contacts into sequences."""
    MANUAL = "manual"
    CONTACT_CREATED = "contact_created"
    KEYWORD_JOIN = "keyword_join"
    STAGE_CHANGE = "stage_change"


class SkipReason(str, Enum):
    """Why enroll_contact did not enroll, in guard order."""
    SEQUENCE_NOT_FOUND = "sequence_not_found"
    SEQUENCE_NOT_ACTIVE = "sequence_not_active"
    NO_STEPS = "no_steps"
    CONTACT_NOT_FOUND = "contact_not_found"
    WRONG_WORKSPACE = "wrong_workspace"
    OPTED_OUT = "opted_out"
    AUDIENCE_FILTER_STAGE = "audience_filter_stage"
    AUDIENCE_FILTER_CATEGORY = "audience_filter_category"
    AUDIENCE_FILTER_INACTIVE = "audience_filter_inactive"
    FREQUENCY_CAP = "frequency_cap"
    ALREADY_ENROLLED = "already_enrolled"


# =============================================================================
# Node Configuration
# =============================================================================


class NodeConfig(BaseModel):
    """Base for per-type node configuration."""

    class Config:
        populate_by_name = True
        extra = "ignore"


class CreateTaskData(NodeConfig):
    """Create-task node configuration."""
    title_template: Optional[str] = Field(None, alias="titleTemplate")
    description_template: Optional[str] = Field(None, alias="descriptionTemplate")
    assignee_id: Optional[str] = Field(None, alias="assigneeId")
    priority: Optional[Literal["low", "medium", "high", "urgent"]] = None
    due_date_offset: Optional[float] = Field(None, alias="dueDateOffset", description="Hours from now")
    column_id: Optional[str] = Field(None, alias="columnId")


class SendEmailData(NodeConfig):
    """Send-email node configuration."""
    subject: Optional[str] = None
    html_body: Optional[str] = Field(None, alias="htmlBody")


class SendSmsData(NodeConfig):
    """Send-SMS node configuration."""
    message_body: Optional[str] = Field(None, alias="messageBody")


class UpdateContactData(NodeConfig):
    """Update-contact node configuration, discriminated by action."""
    action: ContactAction
    stage: Optional[str] = None
    category_name: Optional[str] = Field(None, alias="categoryName")
    note_template: Optional[str] = Field(None, alias="noteTemplate")
    assignee_id: Optional[str] = Field(None, alias="assigneeId")


class AICallConfig(NodeConfig):
    """AI node configuration / AI orchestrator input."""
    mode: AIMode = AIMode.GENERATE
    provider: AIProvider = AIProvider.ANTHROPIC
    model: Optional[str] = None
    preset_id: Optional[str] = Field(None, alias="presetId")
    system_prompt: Optional[str] = Field(None, alias="systemPrompt")
    user_prompt: Optional[str] = Field(None, alias="userPrompt")
    variable_name: Optional[str] = Field(None, alias="variableName")


# =============================================================================
# AI Results
# =============================================================================


class AIResult(BaseModel):
    """Uniform provider result, regardless of backend."""
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str
    provider: AIProvider


class AIPresetResponse(BaseModel):
    """AI preset catalog entry."""
    id: str
    label: str
    mode: AIMode
    description: str


# =============================================================================
# Realtime Status
# =============================================================================


class NodeStatusEvent(BaseModel):
    """Published to the UI channel for a node type."""
    node_id: str
    node_type: NodeType
    status: NodeStatus


# =============================================================================
# Enrollment Results
# =============================================================================


class EnrollResult(BaseModel):
    """Outcome of a single enrollment attempt."""
    enrolled: bool
    enrollment_id: Optional[str] = None
    skipped_reason: Optional[str] = None


class EnrollContactsResult(BaseModel):
    """Aggregate outcome of enrolling many contacts."""
    enrolled: int = 0
    skipped: int = 0
    results: List[EnrollResult] = []


class AutoEnrollDetail(BaseModel):
    """Per-sequence outcome of a trigger-based auto-enroll."""
    sequence_id: str
    sequence_name: str
    enrolled: bool
    reason: Optional[str] = None


class AutoEnrollResult(BaseModel):
    """Aggregate outcome of a trigger-based auto-enroll."""
    sequences_checked: int = 0
    enrolled: int = 0
    skipped: int = 0
    details: List[AutoEnrollDetail] = []


# =============================================================================
# API Requests / Responses
# =============================================================================


class EnrollContactRequest(BaseModel):
    """Enroll one contact into a sequence."""
    contact_id: str


class BulkEnrollResponse(BaseModel):
    """Enroll-by-audience response."""
    enrolled: int
    skipped: int


class ExecuteWorkflowRequest(BaseModel):
    """Manually run a workflow, optionally for one contact."""
    contact_id: Optional[str] = None


class ExecuteWorkflowResponse(BaseModel):
    execution_id: str


class StopEnrollmentRequest(BaseModel):
    """Manually stop an enrollment."""
    reason: Optional[str] = Field(None, max_length=200)


class EnrollmentResponse(BaseModel):
    """Enrollment state."""
    id: str
    sequence_id: str
    contact_id: str
    status: EnrollmentStatus
    current_step: int
    stopped_reason: Optional[str] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """Template token catalog entry."""
    token: str
    label: str
    category: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
