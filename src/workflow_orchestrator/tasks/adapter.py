"""Reshape one task's output into the input cardinality the next task type expects.

Collection stages (clean, merge, analyze) operate over a list of records, while
aggregate stages (validate, report) operate over a single record. Passing a bare
record to a collection stage makes the backend crash, and passing a one-element
list to an aggregate stage makes it silently process nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from workflow_orchestrator.storage.models import TaskType

logger = logging.getLogger(__name__)

ShapeTransform = Callable[[Any], Any]


def as_collection(value: Any) -> Any:
    if _is_sequence(value):
        return value
    return [value]


def as_aggregate(value: Any) -> Any:
    if _is_sequence(value) and len(value) == 1:
        return value[0]
    return value


SHAPE_BY_TASK_TYPE: dict[TaskType, ShapeTransform] = {
    TaskType.CLEAN: as_collection,
    TaskType.MERGE: as_collection,
    TaskType.ANALYZE: as_collection,
    TaskType.VALIDATE: as_aggregate,
    TaskType.REPORT: as_aggregate,
}

_missing = set(TaskType) - set(SHAPE_BY_TASK_TYPE)
if _missing:  # pragma: no cover
    raise RuntimeError(f"No input shape registered for task types: {sorted(_missing)}")


def adapt(
    previous_output: Any,
    next_task_type: TaskType | str,
    *,
    is_first_task: bool,
    initial_input: Any,
) -> Any:
    """Return the payload to send to a task of ``next_task_type``."""
    if is_first_task:
        return initial_input

    task_type = _coerce_task_type(next_task_type)
    if task_type is None:
        logger.warning(
            "input_adapter event=unknown_task_type task_type=%s action=pass_through",
            next_task_type,
        )
        return previous_output
    return SHAPE_BY_TASK_TYPE[task_type](previous_output)


def _coerce_task_type(value: TaskType | str) -> TaskType | None:
    if isinstance(value, TaskType):
        return value
    try:
        return TaskType(str(value).strip().lower())
    except ValueError:
        return None


def _is_sequence(value: Any) -> bool:
    # Text payloads count as single records.
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))
