"""Workflow runner: sequential task execution over the run graph."""

from __future__ import annotations

import logging
from typing import Any

from workflow_orchestrator.graph import (
    CONTEXT_KEY,
    RunContext,
    build_run_graph,
    initial_run_state,
    recursion_limit_for,
)
from workflow_orchestrator.orchestration.board import TaskBoard
from workflow_orchestrator.orchestration.events import WorkflowEvents
from workflow_orchestrator.orchestration.lifecycle import finalize_workflow
from workflow_orchestrator.orchestration.progress import ProgressTicker
from workflow_orchestrator.storage.base import WorkflowStore
from workflow_orchestrator.storage.models import Workflow
from workflow_orchestrator.tasks.gateway import TaskExecutorClient

logger = logging.getLogger(__name__)


class WorkflowRunner:
    """Drive one workflow's task list from start to a settled state.

    The caller marks the workflow ``running`` and starts its poller before
    handing it to :meth:`run`. Tasks execute strictly in declared order; the
    first failure halts the loop and later tasks stay ``pending``.
    """

    def __init__(
        self,
        *,
        store: WorkflowStore,
        client: TaskExecutorClient,
        events: WorkflowEvents,
        progress_interval_s: float = 0.5,
    ) -> None:
        self.store = store
        self.client = client
        self.events = events
        self.progress_interval_s = progress_interval_s
        self._graph = build_run_graph()

    def run(self, workflow: Workflow) -> dict[str, Any]:
        board = TaskBoard(store=self.store, workflow=workflow, events=self.events)
        context = RunContext(
            workflow_id=workflow.id,
            store=self.store,
            board=board,
            client=self.client,
            progress_for=lambda task_id: ProgressTicker(
                interval_s=self.progress_interval_s,
                on_tick=lambda progress: board.advance(task_id, progress),
            ),
            finalize=lambda: finalize_workflow(self.store, workflow.id),
            latest_outputs=_latest_outputs(workflow),
        )
        state = initial_run_state(workflow.id, board.task_ids, workflow.file_ids)
        logger.info(
            "workflow_run event=start workflow_id=%s tasks=%d files=%d",
            workflow.id,
            len(workflow.tasks),
            len(workflow.file_ids),
        )

        try:
            return self._graph.invoke(
                state,
                config={
                    "configurable": {CONTEXT_KEY: context},
                    "recursion_limit": recursion_limit_for(len(workflow.tasks)),
                },
            )
        except Exception:  # noqa: BLE001
            logger.exception("workflow_run event=aborted workflow_id=%s", workflow.id)
            self._abort(board)
            return {**state, "halted": True, "outcome": "failed"}

    def _abort(self, board: TaskBoard) -> None:
        try:
            for task_id in board.running_task_ids():
                board.fail_task(task_id)
            self.store.update_workflow(board.workflow_id, status="failed")
        except Exception:  # noqa: BLE001
            logger.exception(
                "workflow_run event=abort_not_recorded workflow_id=%s", board.workflow_id
            )


def _latest_outputs(workflow: Workflow) -> dict[str, Any]:
    outputs: dict[str, Any] = {}
    for result in workflow.results:
        if result.status == "completed" and result.output is not None:
            outputs[result.task_id] = result.output
    return outputs
