"""
Execution runtime: context threading, step memoization, status publishing
and chained trigger dispatch.

The workflow runner lives in runtime.workflow_runner and is imported from
there directly, since it depends on the executor registry.
"""

from .background import drain_background_tasks, spawn_detached
from .context import (
    ExecutionContext,
    NodeExecutionRequest,
    get_contact_id,
    get_trigger_depth,
    merge_context,
)
from .publisher import InMemoryStatusPublisher, RedisStatusPublisher, StatusPublisher, StatusReporter
from .step_runner import DatabaseStepRunner, MemoizedStepRunner, StepRunner
from .triggers import TriggerDispatcher, WorkflowTriggerDispatcher, matches_trigger_filter

__all__ = [
    "drain_background_tasks",
    "spawn_detached",
    "ExecutionContext",
    "NodeExecutionRequest",
    "get_contact_id",
    "get_trigger_depth",
    "merge_context",
    "InMemoryStatusPublisher",
    "RedisStatusPublisher",
    "StatusPublisher",
    "StatusReporter",
    "DatabaseStepRunner",
    "MemoizedStepRunner",
    "StepRunner",
    "TriggerDispatcher",
    "WorkflowTriggerDispatcher",
    "matches_trigger_filter",
]
