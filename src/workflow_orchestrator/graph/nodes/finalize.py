"""Finalize node: resolve the overall workflow status inline when possible."""

from __future__ import annotations

import logging

from langchain_core.runnables import RunnableConfig

from workflow_orchestrator.graph.context import get_run_context
from workflow_orchestrator.graph.state import RunState

logger = logging.getLogger(__name__)


def run(state: RunState, config: RunnableConfig) -> RunState:
    context = get_run_context(config)
    try:
        workflow = context.finalize()
    except Exception:  # noqa: BLE001
        # The poller observes the same store and settles the status on its own.
        logger.exception(
            "workflow_run event=finalize_deferred workflow_id=%s", context.workflow_id
        )
        return {"outcome": "running"}

    logger.info(
        "workflow_run event=loop_done workflow_id=%s status=%s halted=%s executed=%d",
        context.workflow_id,
        workflow.status,
        bool(state.get("halted")),
        len(state.get("executed_task_ids", [])),
    )
    return {"outcome": workflow.status}
