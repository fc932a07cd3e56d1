"""Select node: find the next task that still needs to run."""

from __future__ import annotations

import logging

from langchain_core.runnables import RunnableConfig

from workflow_orchestrator.graph.context import get_run_context
from workflow_orchestrator.graph.state import RunState
from workflow_orchestrator.storage.models import TERMINAL_TASK_STATUSES

logger = logging.getLogger(__name__)


def run(state: RunState, config: RunnableConfig) -> RunState:
    context = get_run_context(config)
    order = state.get("task_order", [])
    cursor = int(state.get("cursor", 0))
    data = state.get("data")

    while cursor < len(order):
        task = context.board.task(order[cursor])
        if task.status not in TERMINAL_TASK_STATUSES:
            return {"cursor": cursor, "current_task_id": task.id, "data": data}

        logger.info(
            "workflow_run event=task_skipped workflow_id=%s task_id=%s status=%s",
            context.workflow_id,
            task.id,
            task.status,
        )
        if task.status == "completed" and context.latest_outputs.get(task.id) is not None:
            data = context.latest_outputs[task.id]
        cursor += 1

    return {"cursor": cursor, "current_task_id": None, "data": data}


def route(state: RunState) -> str:
    return "execute" if state.get("current_task_id") else "finalize"
