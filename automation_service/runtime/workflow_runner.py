"""
Workflow Runner - executes one workflow for one trigger payload.

1. Load the node graph and order it (Kahn's algorithm, cycles rejected)
2. Hydrate workspace and contact snapshots into the context
3. Walk the nodes reachable from the entry node in topological order,
   threading the context through each executor
"""

import logging
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import sessionmaker

from database.database import SessionLocal
from database.models import Workflow, WorkflowConnection, WorkflowNode
from ..errors import ConfigurationError, NotFoundError
from ..executors.registry import ExecutorRegistry, get_executor
from ..models import TRIGGER_NODE_TYPES
from ..services.contact_loader import load_contact, load_workspace
from .context import ExecutionContext, NodeExecutionRequest, get_contact_id
from .publisher import StatusPublisher
from .step_runner import MemoizedStepRunner, StepRunner

logger = logging.getLogger(__name__)

MAX_NODES_PER_EXECUTION = 50

Edge = Tuple[str, str]
StepFactory = Callable[[str], StepRunner]


@dataclass
class GraphNode:
    id: str
    type: str
    name: Optional[str]
    data: Dict[str, Any]


# =============================================================================
# Graph Helpers
# =============================================================================


def topological_sort(node_ids: Sequence[str], edges: Iterable[Edge]) -> List[str]:
    """
    Order node ids so every node comes after all of its predecessors.

    Raises:
        ConfigurationError: The graph contains a cycle
    """
    in_degree = {node_id: 0 for node_id in node_ids}
    forward: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}

    for from_id, to_id in edges:
        if from_id not in forward or to_id not in in_degree:
            continue
        forward[from_id].append(to_id)
        in_degree[to_id] += 1

    queue = deque(node_id for node_id in node_ids if in_degree[node_id] == 0)
    ordered: List[str] = []
    while queue:
        node_id = queue.popleft()
        ordered.append(node_id)
        for next_id in forward[node_id]:
            in_degree[next_id] -= 1
            if in_degree[next_id] == 0:
                queue.append(next_id)

    if len(ordered) != len(in_degree):
        remaining = [node_id for node_id in node_ids if node_id not in set(ordered)]
        raise ConfigurationError(f"Workflow contains a cycle involving nodes: {', '.join(remaining)}")

    return ordered


def find_entry_node(nodes: Sequence[GraphNode], edges: Iterable[Edge]) -> Optional[GraphNode]:
    """Node with no incoming edges, preferring trigger types."""
    if not nodes:
        return None

    has_incoming = {to_id for _, to_id in edges}
    entries = [node for node in nodes if node.id not in has_incoming]
    if not entries:
        return nodes[0]

    for node in entries:
        if node.type in {t.value for t in TRIGGER_NODE_TYPES}:
            return node
    return entries[0]


# =============================================================================
# Runner
# =============================================================================


class WorkflowRunner:
    """
    Runs workflows against an executor registry.

    The step factory builds a step runner per execution id, so a retried
    execution with the same id skips committed steps.
    """

    def __init__(
        self,
        registry: ExecutorRegistry,
        publisher: StatusPublisher,
        session_factory: Optional[sessionmaker] = None,
        step_factory: Optional[StepFactory] = None,
    ):
        self.registry = registry
        self.publisher = publisher
        self.session_factory = session_factory or SessionLocal
        self.step_factory = step_factory or MemoizedStepRunner

    def _load_graph(self, workflow_id: str) -> Tuple[str, List[GraphNode], List[Edge]]:
        db = self.session_factory()
        try:
            workflow = db.query(Workflow).filter(Workflow.id == workflow_id).first()
            if not workflow:
                raise NotFoundError(f"Workflow {workflow_id} not found")

            nodes = [
                GraphNode(id=n.id, type=n.type, name=n.name, data=dict(n.data or {}))
                for n in db.query(WorkflowNode).filter(WorkflowNode.workflow_id == workflow_id).all()
            ]
            edges = [
                (c.from_node_id, c.to_node_id)
                for c in db.query(WorkflowConnection).filter(WorkflowConnection.workflow_id == workflow_id).all()
            ]
            return workflow.workspace_id, nodes, edges
        finally:
            db.close()

    def _hydrate(self, workspace_id: str, initial_data: Dict[str, Any]) -> ExecutionContext:
        db = self.session_factory()
        try:
            workspace = load_workspace(db, workspace_id)
            if not workspace:
                raise NotFoundError(f"Workspace {workspace_id} not found")

            context: ExecutionContext = {
                **initial_data,
                "workspaceId": workspace_id,
                "workspace": workspace,
                "location_name": workspace["name"],
                "location_phone": workspace["phone"],
            }

            contact_id = get_contact_id(context)
            contact = load_contact(db, contact_id, workspace_id) if contact_id else None
        finally:
            db.close()

        if contact:
            context["contactId"] = contact["id"]
            context["contact"] = contact
        elif contact_id:
            # Never carry an unverified contact across workspaces
            logger.warning(f"Dropping contact {contact_id}: not found in workspace {workspace_id}")
            context.pop("contactId", None)
            context.pop("contact", None)

        return context

    async def run(
        self,
        workflow_id: str,
        initial_data: Optional[Dict[str, Any]] = None,
        execution_id: Optional[str] = None,
    ) -> ExecutionContext:
        """
        Execute a workflow and return the final context.

        Raises:
            NotFoundError: Workflow or workspace not found
            ConfigurationError: Cycle, empty graph, or unknown node type
            Exception: Whatever the failing executor raised
        """
        execution_id = execution_id or str(uuid.uuid4())
        workspace_id, nodes, edges = self._load_graph(workflow_id)

        entry = find_entry_node(nodes, edges)
        if entry is None:
            raise ConfigurationError(f"Workflow {workflow_id} has no entry node")
        order = topological_sort([n.id for n in nodes], edges)

        context = self._hydrate(workspace_id, initial_data or {})
        step = self.step_factory(execution_id)
        lookup = {n.id: n for n in nodes}
        successors: Dict[str, List[str]] = {}
        for from_id, to_id in edges:
            successors.setdefault(from_id, []).append(to_id)

        logger.info(f"Running workflow {workflow_id} (execution {execution_id}, {len(nodes)} nodes)")

        active = {entry.id}
        executed = 0
        for node_id in order:
            if node_id not in active:
                continue

            executed += 1
            if executed > MAX_NODES_PER_EXECUTION:
                raise ConfigurationError(
                    f"Execution exceeded max nodes ({MAX_NODES_PER_EXECUTION})"
                )

            node = lookup[node_id]
            executor = get_executor(self.registry, node.type)
            context = await executor.execute(NodeExecutionRequest(
                node_id=node.id,
                data=node.data,
                context=context,
                step=step,
                publisher=self.publisher,
                meta={"workflowId": workflow_id, "executionId": execution_id},
            ))
            active.update(successors.get(node_id, []))

        logger.info(f"Workflow {workflow_id} completed ({executed} nodes)")
        return context
