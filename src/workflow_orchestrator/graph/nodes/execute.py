"""Execute node: run one task and record its outcome."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from langchain_core.runnables import RunnableConfig

from workflow_orchestrator.graph.context import RunContext, get_run_context
from workflow_orchestrator.graph.state import RunState
from workflow_orchestrator.storage.models import TaskStatus, WorkflowResult
from workflow_orchestrator.tasks.adapter import adapt

logger = logging.getLogger(__name__)


def run(state: RunState, config: RunnableConfig) -> RunState:
    context = get_run_context(config)
    task_id = state.get("current_task_id")
    if not task_id:
        raise RuntimeError("Execute node reached without a selected task")

    cursor = int(state.get("cursor", 0))
    executed = [*state.get("executed_task_ids", []), task_id]
    started_at = datetime.now(UTC)

    try:
        task = context.board.task(task_id)
        logger.info(
            "workflow_run event=task_start workflow_id=%s task_id=%s task_type=%s",
            context.workflow_id,
            task.id,
            task.type.value,
        )
        context.board.start_task(task.id)
        with context.progress_for(task.id):
            payload = adapt(
                state.get("data"),
                task.type,
                is_first_task=cursor == 0,
                initial_input=state.get("initial_input", []),
            )
            result = context.client.execute(task, payload, context.workflow_id)

        metrics = result.metrics.to_result_metrics() if result.metrics else {}
        if result.status == "failed":
            context.board.fail_task(task.id)
            _record_result(
                context,
                task_id=task.id,
                status="failed",
                output=None,
                error=result.error,
                metrics=metrics,
                started_at=started_at,
            )
            logger.warning(
                "workflow_run event=task_failed workflow_id=%s task_id=%s reason=%s",
                context.workflow_id,
                task.id,
                result.error,
            )
            return _halt(cursor, task.id, executed)

        context.board.complete_task(task.id)
        _record_result(
            context,
            task_id=task.id,
            status="completed",
            output=result.output,
            error=None,
            metrics=metrics,
            started_at=started_at,
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception(
            "workflow_run event=task_error workflow_id=%s task_id=%s",
            context.workflow_id,
            task_id,
        )
        _fail_after_error(context, task_id, str(exc) or type(exc).__name__, started_at)
        return _halt(cursor, task_id, executed)

    data = state.get("data")
    if result.output is None:
        logger.warning(
            "workflow_run event=missing_output workflow_id=%s task_id=%s "
            "action=reuse_previous_input",
            context.workflow_id,
            task_id,
        )
    else:
        data = result.output

    return {
        "cursor": cursor + 1,
        "current_task_id": None,
        "data": data,
        "executed_task_ids": executed,
    }


def route(state: RunState) -> str:
    return "finalize" if state.get("halted") else "select"


def _halt(cursor: int, task_id: str, executed: list[str]) -> RunState:
    return {
        "cursor": cursor + 1,
        "current_task_id": None,
        "halted": True,
        "failed_task_id": task_id,
        "executed_task_ids": executed,
    }


def _fail_after_error(
    context: RunContext, task_id: str, message: str, started_at: datetime
) -> None:
    try:
        context.board.fail_task(task_id)
        _record_result(
            context,
            task_id=task_id,
            status="failed",
            output=None,
            error=message,
            metrics={},
            started_at=started_at,
        )
    except Exception:  # noqa: BLE001
        logger.exception(
            "workflow_run event=failure_not_recorded workflow_id=%s task_id=%s",
            context.workflow_id,
            task_id,
        )


def _record_result(
    context: RunContext,
    *,
    task_id: str,
    status: TaskStatus,
    output: Any,
    error: str | None,
    metrics: dict[str, Any],
    started_at: datetime,
) -> None:
    now = datetime.now(UTC)
    context.store.add_result(
        WorkflowResult(
            id=str(uuid4()),
            workflow_id=context.workflow_id,
            task_id=task_id,
            status=status,
            output=output,
            error=error,
            metrics=metrics,
            started_at=started_at,
            completed_at=now,
            created_at=now,
        )
    )
