"""
Execution context helpers.

The context is an open mapping threaded through a node chain. Executors
never replace it: each returns previous keys plus its own deltas.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

from ..errors import ConfigurationError
from .publisher import StatusPublisher
from .step_runner import StepRunner

ExecutionContext = Dict[str, Any]


@dataclass
class NodeExecutionRequest:
    """The sole input to a node executor."""
    node_id: str
    data: Dict[str, Any]
    context: ExecutionContext
    step: StepRunner
    publisher: StatusPublisher
    meta: Dict[str, Any] = field(default_factory=dict)  # workflowId / executionId for telemetry


def merge_context(context: Mapping[str, Any], deltas: Mapping[str, Any]) -> ExecutionContext:
    """Return context ∪ deltas without mutating either."""
    merged = dict(context)
    merged.update(deltas)
    return merged


def require_keys(context: Mapping[str, Any], keys: Iterable[str], node_type: str) -> None:
    """Raise ConfigurationError if any declared read key is absent or empty."""
    missing = [key for key in keys if not context.get(key)]
    if missing:
        raise ConfigurationError(f"{node_type}: missing {', '.join(missing)} in workflow context")


def check_writes(deltas: Mapping[str, Any], allowed: Iterable[str], node_type: str) -> None:
    """Raise ConfigurationError if an executor returns undeclared keys."""
    undeclared = set(deltas) - set(allowed)
    if undeclared:
        raise ConfigurationError(
            f"{node_type}: wrote undeclared context keys {sorted(undeclared)}"
        )


def get_contact_id(context: Mapping[str, Any]) -> Optional[str]:
    """contactId from the trigger payload, or the id of a loaded contact snapshot."""
    contact_id = context.get("contactId")
    if contact_id:
        return str(contact_id)
    contact = context.get("contact")
    if isinstance(contact, dict) and contact.get("id"):
        return str(contact["id"])
    return None


def get_trigger_depth(context: Mapping[str, Any]) -> int:
    """Depth of the trigger chain that started this execution (0 for direct)."""
    trigger = context.get("_trigger")
    if isinstance(trigger, dict):
        try:
            return int(trigger.get("depth") or 0)
        except (TypeError, ValueError):
            return 0
    return 0
