"""
Durable step runners.

A step runner executes a named unit of work at least once and memoizes
its result per step name within one execution, so a retried execution
skips steps that already committed. Step outputs must be JSON-serializable.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union, runtime_checkable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from database.models import ExecutionStep

logger = logging.getLogger(__name__)

StepFn = Callable[[], Union[Any, Awaitable[Any]]]


@runtime_checkable
class StepRunner(Protocol):
    """run(step_name, fn) -> result, memoized per step name."""

    async def run(self, step_name: str, fn: StepFn) -> Any: ...


async def _call(fn: StepFn) -> Any:
    result = fn()
    if inspect.isawaitable(result):
        result = await result
    return result


class MemoizedStepRunner:
    """
    In-process step runner. Memoizes successful results by name; a failed
    step is not memoized and runs again on the next attempt.
    """

    def __init__(self, execution_id: Optional[str] = None):
        self.execution_id = execution_id
        self._results: Dict[str, Any] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self.calls: Dict[str, int] = {}

    async def run(self, step_name: str, fn: StepFn) -> Any:
        lock = self._locks.setdefault(step_name, asyncio.Lock())
        async with lock:
            if step_name in self._results:
                logger.debug(f"Step '{step_name}' already completed, returning memoized result")
                return self._results[step_name]

            self.calls[step_name] = self.calls.get(step_name, 0) + 1
            result = await _call(fn)
            self._results[step_name] = result
            return result


class DatabaseStepRunner:
    """
    Step runner that persists step outputs in the execution_steps table,
    so memoization survives process restarts.
    """

    def __init__(self, execution_id: str, session_factory: sessionmaker):
        self.execution_id = execution_id
        self.session_factory = session_factory

    def _load(self, db: Session, step_name: str) -> Optional[ExecutionStep]:
        return (
            db.query(ExecutionStep)
            .filter(
                ExecutionStep.execution_id == self.execution_id,
                ExecutionStep.step_name == step_name,
            )
            .first()
        )

    async def run(self, step_name: str, fn: StepFn) -> Any:
        db = self.session_factory()
        try:
            existing = self._load(db, step_name)
            if existing:
                logger.debug(f"Step '{step_name}' memoized for execution {self.execution_id}")
                return existing.output
        finally:
            db.close()

        result = await _call(fn)

        db = self.session_factory()
        try:
            db.add(ExecutionStep(execution_id=self.execution_id, step_name=step_name, output=result))
            db.commit()
        except IntegrityError:
            # A concurrent attempt committed first; its output wins
            db.rollback()
            existing = self._load(db, step_name)
            if existing:
                return existing.output
            raise
        finally:
            db.close()

        return result
