"""
Realtime node status publishing.

Executors report loading/success/error for a node; the editor subscribes
to one channel per node type. Publication is best-effort: it runs as a
detached task and a publish failure never touches business logic.
"""

import logging
from typing import List, Optional, Protocol, runtime_checkable

import redis.asyncio as aioredis

from ..config import get_automation_settings
from ..models import NodeStatus, NodeStatusEvent, NodeType
from .background import spawn_detached

logger = logging.getLogger(__name__)


@runtime_checkable
class StatusPublisher(Protocol):
    """Transport for node status events."""

    async def publish(self, event: NodeStatusEvent) -> None: ...


class RedisStatusPublisher:
    """
    Publishes status events over Redis pub/sub.

    Channel: "<prefix>:<NODE_TYPE>", payload: event JSON.
    """

    def __init__(self, redis_url: Optional[str] = None, channel_prefix: Optional[str] = None):
        settings = get_automation_settings()
        self.redis = aioredis.from_url(redis_url or settings.redis_url, decode_responses=True)
        self.channel_prefix = channel_prefix or settings.status_channel_prefix

    def channel_for(self, node_type: NodeType) -> str:
        return f"{self.channel_prefix}:{node_type.value}"

    async def publish(self, event: NodeStatusEvent) -> None:
        await self.redis.publish(self.channel_for(event.node_type), event.model_dump_json())

    async def close(self):
        await self.redis.aclose()


class InMemoryStatusPublisher:
    """Collects events in order. Used by tests and local runs."""

    def __init__(self):
        self.events: List[NodeStatusEvent] = []

    async def publish(self, event: NodeStatusEvent) -> None:
        self.events.append(event)

    def statuses(self, node_id: Optional[str] = None) -> List[NodeStatus]:
        return [e.status for e in self.events if node_id is None or e.node_id == node_id]


class StatusReporter:
    """
    Executor-facing wrapper that reports a node's status without blocking.
    """

    def __init__(self, publisher: StatusPublisher, node_type: NodeType):
        self.publisher = publisher
        self.node_type = node_type

    def report(self, node_id: str, status: NodeStatus) -> None:
        event = NodeStatusEvent(node_id=node_id, node_type=self.node_type, status=status)
        spawn_detached(
            self.publisher.publish(event),
            label=f"publish {self.node_type.value}:{node_id}:{status.value}",
        )
