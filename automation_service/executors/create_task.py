"""
Create-task node: adds a task to the workspace board, linked to the
contact that triggered the workflow when there is one.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from database.models import Task, TaskColumn
from ..config import get_automation_settings
from ..models import CreateTaskData, NodeType
from ..runtime.context import NodeExecutionRequest, get_contact_id
from ..templates.resolver import resolve_template
from .base import NodeExecutor, parse_node_data

logger = logging.getLogger(__name__)

# Postgres reports a unique violation found after a SERIALIZABLE read as 40001
SERIALIZATION_FAILURE = "40001"


def is_lost_race(error: DBAPIError) -> bool:
    """True when a failed insert means a concurrent transaction got there first."""
    if isinstance(error, IntegrityError):
        return True
    return getattr(error.orig, "pgcode", None) == SERIALIZATION_FAILURE


class CreateTaskExecutor(NodeExecutor):
    node_type = NodeType.CREATE_TASK
    step_name = "create-task"
    reads = ("workspaceId",)
    writes = ("_lastTaskName", "_lastTaskId")

    def find_or_create_default_column(self, workspace_id: str) -> str:
        """
        Column for tasks created without an explicit column.

        Uses the workspace's default column, else its first column. When the
        workspace has no columns, creates the default one in a SERIALIZABLE
        transaction. The partial unique index on default columns decides
        concurrent first runs: the loser (unique violation or serialization
        failure) rolls back and reads the winner's row.
        """
        db = self.session_factory()
        try:
            db.connection(execution_options={"isolation_level": "SERIALIZABLE"})

            column = self._find_column(db, workspace_id)
            if column:
                db.commit()
                return column.id

            column = TaskColumn(
                workspace_id=workspace_id,
                name=get_automation_settings().default_task_column_name,
                position=0,
                is_default=True,
            )
            db.add(column)
            try:
                db.commit()
                logger.info(f"Created default task column {column.id} for workspace {workspace_id}")
                return column.id
            except DBAPIError as e:
                if not is_lost_race(e):
                    raise
                db.rollback()
                existing = self._find_column(db, workspace_id)
                if existing is None:
                    raise
                return existing.id
        finally:
            db.close()

    @staticmethod
    def _find_column(db: Session, workspace_id: str):
        return (
            db.query(TaskColumn)
            .filter(TaskColumn.workspace_id == workspace_id)
            .order_by(TaskColumn.is_default.desc(), TaskColumn.position.asc())
            .first()
        )

    async def perform(self, request: NodeExecutionRequest) -> Dict[str, Any]:
        data = parse_node_data(CreateTaskData, request.data, self.node_type)
        context = request.context
        workspace_id = context["workspaceId"]

        title = resolve_template(
            data.title_template or get_automation_settings().default_task_title,
            context,
        )
        description = resolve_template(data.description_template, context) if data.description_template else None

        column_id = data.column_id or self.find_or_create_default_column(workspace_id)

        due_date = None
        if data.due_date_offset:
            due_date = datetime.utcnow() + timedelta(hours=data.due_date_offset)

        db = self.session_factory()
        try:
            # Read-then-increment; concurrent creates can share a number
            last_number = (
                db.query(func.max(Task.task_number))
                .filter(Task.workspace_id == workspace_id)
                .scalar()
            )

            task = Task(
                workspace_id=workspace_id,
                column_id=column_id,
                task_number=(last_number or 0) + 1,
                name=title,
                description=description,
                assignee_id=data.assignee_id or None,
                contact_id=get_contact_id(context),
                due_date=due_date,
                priority=data.priority,
                position=0,  # top of column
            )
            db.add(task)
            db.commit()

            logger.info(f"Created task #{task.task_number} '{title}' in workspace {workspace_id}")
            return {"_lastTaskName": title, "_lastTaskId": task.id}

        finally:
            db.close()
