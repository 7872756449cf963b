"""
AI usage logging, cost estimation and the pre-flight budget gate.
"""

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import sessionmaker

from database.database import SessionLocal
from database.models import AIUsageLog, Workspace
from ..errors import NotFoundError
from ..runtime.background import spawn_detached

logger = logging.getLogger(__name__)


# Per 1M tokens, in cents. Rough estimates, updated as pricing changes.
PRICING: Dict[str, Dict[str, float]] = {
    "claude-sonnet-4-20250514": {"input": 300, "output": 1500},
    "claude-haiku-4-5-20251001": {"input": 80, "output": 400},
    "gpt-4o": {"input": 250, "output": 1000},
    "gpt-4o-mini": {"input": 15, "output": 60},
    "gemini-2.0-flash": {"input": 10, "output": 40},
    "grok-3-mini": {"input": 30, "output": 50},
}

FALLBACK_PRICING = {"input": 100, "output": 500}


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimated cost in cents."""
    rates = PRICING.get(model, FALLBACK_PRICING)
    return (input_tokens / 1_000_000) * rates["input"] + (output_tokens / 1_000_000) * rates["output"]


@dataclass
class UsageRecord:
    workspace_id: str
    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    estimated_cost: float
    purpose: Optional[str] = None
    node_id: Optional[str] = None
    workflow_id: Optional[str] = None
    execution_id: Optional[str] = None


class AIUsageLogger:
    """
    Writes AIUsageLog rows. Never raises: a failed usage write must not
    fail the node that made the call.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory or SessionLocal

    def write(self, record: UsageRecord) -> None:
        db = self.session_factory()
        try:
            db.add(AIUsageLog(
                workspace_id=record.workspace_id,
                node_id=record.node_id,
                workflow_id=record.workflow_id,
                execution_id=record.execution_id,
                provider=record.provider,
                model=record.model,
                input_tokens=record.input_tokens,
                output_tokens=record.output_tokens,
                estimated_cost=record.estimated_cost,
                purpose=record.purpose,
            ))
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to log AI usage for workspace {record.workspace_id}: {e}")
        finally:
            db.close()

    async def _write_async(self, record: UsageRecord) -> None:
        # Blocking store write runs in the default thread pool, off the event loop
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, partial(self.write, record))

    def log_detached(self, record: UsageRecord) -> None:
        """Schedule the write without awaiting it."""
        spawn_detached(self._write_async(record), label=f"ai usage {record.workspace_id}")


class AIBudgetGate:
    """
    Pre-flight spend check against the workspace's AI limits.

    Limits left unset (None) are unlimited.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory or SessionLocal

    def is_allowed(self, workspace_id: str) -> bool:
        """
        Check this month's estimated spend and today's call count.

        Raises:
            NotFoundError: Workspace doesn't exist
        """
        db = self.session_factory()
        try:
            workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
            if not workspace:
                raise NotFoundError(f"Workspace {workspace_id} not found")

            now = datetime.utcnow()

            if workspace.ai_monthly_budget_cents is not None:
                month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
                spent = (
                    db.query(func.coalesce(func.sum(AIUsageLog.estimated_cost), 0.0))
                    .filter(
                        AIUsageLog.workspace_id == workspace_id,
                        AIUsageLog.created_at >= month_start,
                    )
                    .scalar()
                )
                if spent >= workspace.ai_monthly_budget_cents:
                    logger.warning(
                        f"AI monthly budget reached for workspace {workspace_id}: "
                        f"{spent:.2f}/{workspace.ai_monthly_budget_cents} cents"
                    )
                    return False

            if workspace.ai_daily_call_limit is not None:
                day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
                calls = (
                    db.query(func.count(AIUsageLog.id))
                    .filter(
                        AIUsageLog.workspace_id == workspace_id,
                        AIUsageLog.created_at >= day_start,
                    )
                    .scalar()
                )
                if calls >= workspace.ai_daily_call_limit:
                    logger.warning(
                        f"AI daily call limit reached for workspace {workspace_id}: "
                        f"{calls}/{workspace.ai_daily_call_limit}"
                    )
                    return False

            return True

        finally:
            db.close()
