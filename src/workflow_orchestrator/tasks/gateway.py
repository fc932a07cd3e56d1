"""Task executor client: one remote task call with timeout and failure capture."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError
from typing import Any

from pydantic import ValidationError

from workflow_orchestrator.errors import TaskBackendError
from workflow_orchestrator.storage.models import Task
from workflow_orchestrator.tasks.backend import TaskBackend
from workflow_orchestrator.tasks.schemas import (
    BackendResponse,
    TaskExecutionConfig,
    TaskExecutionRequest,
    TaskExecutionResult,
    TaskMetrics,
)

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Unknown error during task execution"


class TaskExecutorClient:
    """Invoke a single task on the backend; never raises to the caller.

    The client is stateless and does not retry. A call that exceeds
    ``task_timeout_s`` is reported as a failed result.
    """

    def __init__(self, *, backend: TaskBackend, task_timeout_s: float = 30.0) -> None:
        self.backend = backend
        self.task_timeout_s = task_timeout_s

    def execute(self, task: Task, payload: Any, workflow_id: str) -> TaskExecutionResult:
        started_at = time.perf_counter()
        try:
            response, raw_errors = self._execute_once(task, payload, workflow_id)
            metrics = TaskMetrics(
                processing_time_ms=_duration_ms(started_at),
                records_processed=max(response.records_processed, 0),
                errors_found=response.errors_found,
                error_count=max(response.resolved_error_count(raw_errors), 0),
            )
        except Exception as exc:  # noqa: BLE001
            message = _failure_message(exc)
            logger.warning(
                "task_execute event=failed workflow_id=%s task_id=%s task_type=%s reason=%s",
                workflow_id,
                task.id,
                task.type.value,
                message,
            )
            return TaskExecutionResult(
                task_id=task.id,
                status="failed",
                error=message,
                metrics=TaskMetrics(processing_time_ms=_duration_ms(started_at)),
            )

        logger.info(
            "task_execute event=completed workflow_id=%s task_id=%s task_type=%s "
            "records=%d duration_ms=%.2f",
            workflow_id,
            task.id,
            task.type.value,
            metrics.records_processed,
            metrics.processing_time_ms,
        )
        return TaskExecutionResult(
            task_id=task.id,
            status="completed",
            output=response.output,
            metrics=metrics,
        )

    def _execute_once(
        self, task: Task, payload: Any, workflow_id: str
    ) -> tuple[BackendResponse, Any]:
        request_model = TaskExecutionRequest(
            task_type=task.type,
            input_data=payload,
            config=TaskExecutionConfig(agent=task.agent, description=task.description),
        )
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="task-exec")
        try:
            future = pool.submit(
                self.backend.execute,
                workflow_id=workflow_id,
                task_id=task.id,
                payload=request_model,
                timeout_s=self.task_timeout_s,
            )
            try:
                raw = future.result(timeout=self.task_timeout_s)
            except TimeoutError as exc:
                raise TimeoutError(
                    f"Task '{task.type.value}' timed out after {self.task_timeout_s:.2f}s"
                ) from exc
        finally:
            # Do not block on a call that overran its deadline.
            pool.shutdown(wait=False, cancel_futures=True)

        if not isinstance(raw, dict):
            raise TaskBackendError("Task backend response must be a JSON object")
        return BackendResponse.model_validate(raw), raw.get("errorsFound")


def _failure_message(exc: BaseException) -> str:
    if isinstance(exc, TaskBackendError) and exc.message:
        return exc.message
    if isinstance(exc, ValidationError):
        return f"Task backend returned an invalid response: {exc.error_count()} error(s)"
    text = str(exc).strip()
    if text:
        return text
    if isinstance(exc, TimeoutError):
        return "Task execution timed out"
    return GENERIC_FAILURE_MESSAGE


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
