from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Sequence

from app.core.errors import IngestError
from app.core.logging import get_logger

logger = get_logger(component="orchestrator")


@dataclass(slots=True)
class SubTask:
    name: str
    run: Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class SubTaskOutcome:
    values: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)


def failure_warning(name: str, exc: BaseException) -> str:
    message = exc.message if isinstance(exc, IngestError) else (str(exc) or type(exc).__name__)
    return f"{name}_failed: {message}"


async def _invoke(task: SubTask) -> Any:
    return await task.run()


async def run_subtasks(tasks: Sequence[SubTask]) -> SubTaskOutcome:
    """Run every sub-task concurrently and settle all of them.

    A failing sub-task contributes one warning and no value; siblings keep
    running. Values are keyed by sub-task name in submission order. Only
    cancellation of the caller propagates.
    """
    outcome = SubTaskOutcome()
    if not tasks:
        return outcome

    results = await asyncio.gather(*(_invoke(task) for task in tasks), return_exceptions=True)
    for task, result in zip(tasks, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.warning("subtask_failed", subtask=task.name, error=str(result), error_type=type(result).__name__)
            outcome.warnings.append(failure_warning(task.name, result))
            continue
        outcome.values[task.name] = result
    return outcome


__all__ = ["SubTask", "SubTaskOutcome", "failure_warning", "run_subtasks"]
