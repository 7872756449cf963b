"""
AI node: runs one AI call through the orchestrator and stores the text
under the node's output variable.
"""

import logging
from typing import Any, Dict, Tuple

from ..ai.orchestrator import AICallMeta, AIOrchestrator
from ..models import AICallConfig, NodeType
from ..runtime.context import NodeExecutionRequest
from .base import NodeExecutor, parse_node_data

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_VARIABLE = "aiOutput"
AI_META_KEY = "_aiMeta"


def output_variable(data: Dict[str, Any]) -> str:
    name = (data or {}).get("variableName") or (data or {}).get("variable_name")
    return str(name).strip() if name and str(name).strip() else DEFAULT_OUTPUT_VARIABLE


class AINodeExecutor(NodeExecutor):
    node_type = NodeType.AI_NODE
    step_name = "ai-node"
    reads = ("workspaceId",)

    def __init__(self, orchestrator: AIOrchestrator, session_factory=None):
        super().__init__(session_factory)
        self.orchestrator = orchestrator

    def allowed_writes(self, request: NodeExecutionRequest) -> Tuple[str, ...]:
        return (output_variable(request.data), AI_META_KEY)

    async def perform(self, request: NodeExecutionRequest) -> Dict[str, Any]:
        config = parse_node_data(AICallConfig, request.data, self.node_type)
        meta = AICallMeta(
            workspace_id=request.context["workspaceId"],
            node_id=request.node_id,
            workflow_id=request.meta.get("workflowId"),
            execution_id=request.meta.get("executionId"),
        )

        result = await self.orchestrator.execute(config, request.context, meta)

        return {
            output_variable(request.data): result.text,
            AI_META_KEY: {
                "provider": result.provider.value,
                "model": result.model,
                "inputTokens": result.input_tokens,
                "outputTokens": result.output_tokens,
            },
        }
