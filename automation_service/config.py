"""
Automation Service Configuration

Settings for outbound transports (SMS, email), AI providers,
realtime status publishing and workflow trigger limits.
"""

from pydantic_settings import BaseSettings
from typing import Optional


# =============================================================================
# Settings Class
# =============================================================================


class AutomationSettings(BaseSettings):
    """Settings for the workflow automation core."""

    # ==========================================================================
    # Persistence & Realtime
    # ==========================================================================

    database_url: Optional[str] = None

    # Redis URL for node status pub/sub
    redis_url: str = "redis://localhost:6379"

    # Channel prefix; the node type is appended (node-status:SEND_SMS)
    status_channel_prefix: str = "node-status"

    # Base URL for generated links ({feedback_link})
    app_base_url: str = "https://app.surfbloom.com"

    # ==========================================================================
    # SMS (Twilio)
    # ==========================================================================

    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_api_base: str = "https://api.twilio.com/2010-04-01"

    # ==========================================================================
    # Email (SendGrid)
    # ==========================================================================

    sendgrid_api_key: Optional[str] = None
    sendgrid_api_base: str = "https://api.sendgrid.com/v3"

    # ==========================================================================
    # AI Providers
    # ==========================================================================

    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    xai_api_key: Optional[str] = None
    xai_base_url: str = "https://api.x.ai/v1"

    # Output cap for every AI node call
    ai_max_output_tokens: int = 1024

    # ==========================================================================
    # Workflow Triggers & Sequences
    # ==========================================================================

    # Chained triggers at or beyond this depth are dropped
    max_trigger_depth: int = 3

    # Title used when a create-task node has no title template
    default_task_title: str = "Workflow Task"

    # Name of the column created when a workspace has none
    default_task_column_name: str = "To Do"

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        extra = "ignore"


# Singleton instance
_settings: Optional[AutomationSettings] = None


def get_automation_settings() -> AutomationSettings:
    """Get the automation settings singleton."""
    global _settings
    if _settings is None:
        _settings = AutomationSettings()
    return _settings


# =============================================================================
# Helper Functions
# =============================================================================


def is_sms_configured() -> bool:
    """Check if Twilio credentials are configured."""
    settings = get_automation_settings()
    return bool(settings.twilio_account_sid and settings.twilio_auth_token)


def is_email_configured() -> bool:
    """Check if SendGrid is configured."""
    settings = get_automation_settings()
    return bool(settings.sendgrid_api_key)
