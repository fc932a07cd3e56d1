"""Typed state contract for the workflow run graph."""

from typing import Any, TypedDict


class RunState(TypedDict, total=False):
    workflow_id: str
    task_order: list[str]
    cursor: int
    current_task_id: str | None
    initial_input: list[dict[str, Any]]
    data: Any
    halted: bool
    failed_task_id: str | None
    executed_task_ids: list[str]
    outcome: str


def initial_run_state(
    workflow_id: str,
    task_order: list[str],
    file_ids: list[str],
) -> RunState:
    initial_input = [{"ref": file_id} for file_id in file_ids]
    return {
        "workflow_id": workflow_id,
        "task_order": list(task_order),
        "cursor": 0,
        "current_task_id": None,
        "initial_input": initial_input,
        "data": initial_input,
        "halted": False,
        "failed_task_id": None,
        "executed_task_ids": [],
        "outcome": "running",
    }
