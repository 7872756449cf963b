"""
Node executor base class.

Protocol for every node:
1. Publish "loading"
2. Run the business work as one named step (memoized per execution)
3. Publish "success" and return context + deltas

On any failure, "error" is published exactly once and the exception
propagates. Executors never retry internally; the step runner owns retries.
"""

import logging
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import sessionmaker

from database.database import SessionLocal
from ..errors import ConfigurationError
from ..models import NodeStatus, NodeType
from ..runtime.context import (
    ExecutionContext,
    NodeExecutionRequest,
    check_writes,
    merge_context,
    require_keys,
)
from ..runtime.publisher import StatusReporter

logger = logging.getLogger(__name__)

ConfigT = TypeVar("ConfigT", bound=BaseModel)


class NodeExecutor:
    """
    Base class for node executors.

    Subclasses set node_type, step_name, the context keys they read and
    write, and implement perform().
    """

    node_type: NodeType
    step_name: str = "execute"

    # Context keys that must be present before the node runs
    reads: Tuple[str, ...] = ()

    # Context keys the node may add
    writes: Tuple[str, ...] = ()

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory or SessionLocal

    def step_key(self, node_id: str) -> str:
        return f"{self.step_name}:{node_id}"

    async def execute(self, request: NodeExecutionRequest) -> ExecutionContext:
        reporter = StatusReporter(request.publisher, self.node_type)
        reporter.report(request.node_id, NodeStatus.LOADING)

        try:
            require_keys(request.context, self.reads, self.node_type.value)
            deltas = await request.step.run(
                self.step_key(request.node_id),
                lambda: self.perform(request),
            )
            deltas = deltas or {}
            check_writes(deltas, self.allowed_writes(request), self.node_type.value)
        except Exception as e:
            logger.error(f"{self.node_type.value} node {request.node_id} failed: {e}")
            reporter.report(request.node_id, NodeStatus.ERROR)
            raise

        reporter.report(request.node_id, NodeStatus.SUCCESS)
        return merge_context(request.context, deltas)

    def allowed_writes(self, request: NodeExecutionRequest) -> Tuple[str, ...]:
        return self.writes

    async def perform(self, request: NodeExecutionRequest) -> Dict[str, Any]:
        """Do the node's work. Returns the context deltas (JSON-serializable)."""
        raise NotImplementedError


class TriggerPassthroughExecutor(NodeExecutor):
    """
    Trigger nodes start a chain; the trigger payload is already the initial
    context, so the node only reports status.
    """

    step_name = "trigger"

    def __init__(self, node_type: NodeType, session_factory: Optional[sessionmaker] = None):
        super().__init__(session_factory)
        self.node_type = node_type

    async def perform(self, request: NodeExecutionRequest) -> Dict[str, Any]:
        return {}


def parse_node_data(model: Type[ConfigT], data: Dict[str, Any], node_type: NodeType) -> ConfigT:
    """Validate node configuration, surfacing bad config as ConfigurationError."""
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        raise ConfigurationError(f"{node_type.value}: invalid node configuration: {e}") from e
