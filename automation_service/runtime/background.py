"""
Detached background tasks for fire-and-forget work (status publishing,
usage logging). The critical path never awaits these; failures are
logged and discarded.
"""

import asyncio
import logging
from typing import Awaitable, Set

logger = logging.getLogger(__name__)

# Strong references so pending tasks are not garbage collected mid-flight
_pending: Set["asyncio.Task[None]"] = set()


async def _guarded(awaitable: Awaitable[object], label: str) -> None:
    try:
        await awaitable
    except Exception as e:
        logger.error(f"Background task '{label}' failed: {e}")


def spawn_detached(awaitable: Awaitable[object], label: str = "background") -> "asyncio.Task[None]":
    """
    Schedule an awaitable on the running loop without awaiting it.

    Args:
        awaitable: Coroutine to run
        label: Name used in failure logs

    Returns:
        The task (callers normally ignore it)
    """
    task = asyncio.get_running_loop().create_task(_guarded(awaitable, label))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain_background_tasks() -> None:
    """Wait for every detached task spawned so far (shutdown and tests)."""
    while _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)
