"""
Trigger Dispatcher - central event bus for chained workflow triggers.

1. Finds workflows in the workspace that have a node of the trigger type
2. Applies the trigger node's filter config (category, rating, stage, ...)
3. Hands each match to the execution sender with depth + 1

Depth is bounded so automation cannot loop forever
(update_stage -> STAGE_CHANGED -> update_stage -> ...).
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, runtime_checkable

from sqlalchemy.orm import sessionmaker

from database.database import SessionLocal
from database.models import Workflow, WorkflowNode
from ..config import get_automation_settings
from ..models import NodeType

logger = logging.getLogger(__name__)

# (workflow_id, initial_data) -> enqueue a workflow execution
ExecutionSender = Callable[[str, Dict[str, Any]], Awaitable[Any]]


@runtime_checkable
class TriggerDispatcher(Protocol):
    """Accepts {triggerType, payload, triggerDepth}; never raises."""

    async def fire(self, trigger_type: NodeType, payload: Dict[str, Any], trigger_depth: int = 0) -> int: ...


def matches_trigger_filter(trigger_type: NodeType, node_data: Dict[str, Any], payload: Dict[str, Any]) -> bool:
    """
    Check if the trigger node's optional filters match the payload.

    No filter configured = always fire.
    """
    if trigger_type == NodeType.CATEGORY_ADDED:
        wanted = node_data.get("categoryName")
        return not wanted or payload.get("categoryName") == wanted

    if trigger_type == NodeType.REVIEW_RECEIVED:
        min_rating = node_data.get("minRating")
        max_rating = node_data.get("maxRating")
        rating = payload.get("rating")
        if (min_rating is not None or max_rating is not None) and rating is None:
            return False
        if rating is not None and min_rating is not None and rating < min_rating:
            return False
        if rating is not None and max_rating is not None and rating > max_rating:
            return False
        return True

    if trigger_type == NodeType.CONTACT_CREATED:
        wanted = node_data.get("source")
        return not wanted or payload.get("source") == wanted

    if trigger_type == NodeType.STAGE_CHANGED:
        wanted = node_data.get("stage")
        return not wanted or payload.get("newStage") == wanted

    if trigger_type == NodeType.KEYWORD_JOINED:
        wanted = node_data.get("keyword")
        return not wanted or payload.get("keyword") == wanted

    return True


class WorkflowTriggerDispatcher:
    """
    Dispatches business events to matching workflows in the workspace.
    """

    def __init__(
        self,
        send_execution: ExecutionSender,
        session_factory: Optional[sessionmaker] = None,
        max_depth: Optional[int] = None,
    ):
        self.send_execution = send_execution
        self.session_factory = session_factory or SessionLocal
        self.max_depth = max_depth if max_depth is not None else get_automation_settings().max_trigger_depth

    def _find_trigger_nodes(self, trigger_type: NodeType, workspace_id: str):
        """
        Trigger nodes in active workflows; when none are active, fall back to
        every workflow in the workspace so wiring works before activation.
        """
        db = self.session_factory()
        try:
            query = (
                db.query(WorkflowNode.workflow_id, WorkflowNode.data)
                .join(Workflow, Workflow.id == WorkflowNode.workflow_id)
                .filter(
                    WorkflowNode.type == trigger_type.value,
                    Workflow.workspace_id == workspace_id,
                )
            )
            rows = query.filter(Workflow.active.is_(True)).all()
            if not rows:
                rows = query.all()
                if rows:
                    logger.warning(
                        f"No active workflows matched {trigger_type.value} in workspace "
                        f"{workspace_id}; falling back to all workflows"
                    )
            return [(row.workflow_id, row.data or {}) for row in rows]
        finally:
            db.close()

    async def fire(self, trigger_type: NodeType, payload: Dict[str, Any], trigger_depth: int = 0) -> int:
        """
        Fire a trigger. Returns the number of workflow executions sent.

        Errors are logged, never raised: the calling handler must not fail
        because of downstream automation.
        """
        if trigger_depth >= self.max_depth:
            logger.warning(
                f"Skipping {trigger_type.value} - trigger depth {trigger_depth} >= {self.max_depth}"
            )
            return 0

        workspace_id = payload.get("workspaceId")
        if not workspace_id:
            logger.warning(f"Skipping {trigger_type.value} - payload has no workspaceId")
            return 0

        try:
            nodes = self._find_trigger_nodes(trigger_type, workspace_id)
        except Exception as e:
            logger.error(f"Error finding workflows for {trigger_type.value}: {e}")
            return 0

        sent = 0
        seen = set()
        for workflow_id, node_data in nodes:
            if workflow_id in seen:
                continue
            seen.add(workflow_id)

            if not matches_trigger_filter(trigger_type, node_data, payload):
                continue

            initial_data = {
                **payload,
                "_trigger": {
                    "type": trigger_type.value,
                    "depth": trigger_depth + 1,
                    "firedAt": datetime.utcnow().isoformat(),
                },
            }
            try:
                await self.send_execution(workflow_id, initial_data)
                sent += 1
            except Exception as e:
                logger.error(f"Failed to fire workflow {workflow_id} for {trigger_type.value}: {e}")

        if sent:
            logger.info(f"Fired {trigger_type.value} into {sent} workflow(s) at depth {trigger_depth + 1}")
        return sent
