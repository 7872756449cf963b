"""
Automation Service - workflow automation core

This package provides:
- Node executors for workflow actions (tasks, email, SMS, contact updates, AI)
- Two-pass template resolution with a closed token registry
- AI orchestration with presets, brand context, budgets and usage logging
- Drip sequence enrollment with audience filters and frequency caps
- Chained workflow triggers with bounded depth

Architecture:
- executors/: One executor per node type, plus the registry
- runtime/: Context, step runners, status publishing, triggers, workflow runner
- ai/: Presets, brand profile, budget gate, orchestrator
- clients/: Twilio, SendGrid and AI provider backends
- services/: Enrollment engine and store helpers
- templates/: Token registry and resolver
- routes.py: FastAPI endpoints
- config.py: Settings
"""

from .config import get_automation_settings, AutomationSettings

__all__ = ["get_automation_settings", "AutomationSettings"]
