from __future__ import annotations

import threading
from typing import Any

from conftest import ScriptedBackend

from workflow_orchestrator.errors import TaskBackendError
from workflow_orchestrator.storage.models import Task, TaskType
from workflow_orchestrator.tasks.gateway import GENERIC_FAILURE_MESSAGE, TaskExecutorClient
from workflow_orchestrator.tasks.schemas import TaskExecutionRequest


def _task(task_type: TaskType = TaskType.CLEAN) -> Task:
    return Task(id="task-1", name="Stage", type=task_type, agent="CleaningAgent", description="d")


def test_success_returns_output_and_metrics() -> None:
    backend = ScriptedBackend(
        {"clean": {"output": [{"id": 1}], "recordsProcessed": 5, "errorsFound": ["bad row"]}}
    )
    client = TaskExecutorClient(backend=backend, task_timeout_s=1.0)

    result = client.execute(_task(), [{"ref": "f1"}], "wf-1")

    assert result.status == "completed"
    assert result.task_id == "task-1"
    assert result.output == [{"id": 1}]
    assert result.error is None
    assert result.metrics is not None
    assert result.metrics.records_processed == 5
    assert result.metrics.errors_found == ["bad row"]
    assert result.metrics.error_count == 1
    assert result.metrics.processing_time_ms >= 0


def test_request_carries_type_input_and_config_on_the_wire() -> None:
    backend = ScriptedBackend()
    client = TaskExecutorClient(backend=backend, task_timeout_s=1.0)

    client.execute(_task(), [{"ref": "f1"}], "wf-1")

    call = backend.calls[0]
    assert call["workflow_id"] == "wf-1"
    assert call["task_id"] == "task-1"
    assert call["wire"] == {
        "taskType": "clean",
        "inputData": [{"ref": "f1"}],
        "config": {"agent": "CleaningAgent", "description": "d"},
    }


def test_missing_counts_default_to_zero() -> None:
    backend = ScriptedBackend({"clean": {"output": {"ok": True}, "recordsProcessed": None}})
    result = TaskExecutorClient(backend=backend).execute(_task(), [], "wf-1")

    assert result.status == "completed"
    assert result.metrics is not None
    assert result.metrics.records_processed == 0
    assert result.metrics.error_count == 0
    assert result.metrics.to_result_metrics()["recordsProcessed"] == 0


def test_integer_errors_found_becomes_error_count() -> None:
    backend = ScriptedBackend({"clean": {"output": [], "errorsFound": 3}})
    result = TaskExecutorClient(backend=backend).execute(_task(), [], "wf-1")

    assert result.metrics is not None
    assert result.metrics.errors_found == []
    assert result.metrics.error_count == 3


def test_remote_error_message_is_preserved() -> None:
    backend = ScriptedBackend(
        {"clean": TaskBackendError("Dataset schema mismatch", status_code=422)}
    )
    result = TaskExecutorClient(backend=backend).execute(_task(), [], "wf-1")

    assert result.status == "failed"
    assert result.error == "Dataset schema mismatch"
    assert result.output is None
    assert result.metrics is not None
    assert result.metrics.processing_time_ms >= 0


def test_local_exception_message_is_used() -> None:
    backend = ScriptedBackend({"clean": ConnectionError("connection refused")})
    result = TaskExecutorClient(backend=backend).execute(_task(), [], "wf-1")

    assert result.status == "failed"
    assert result.error == "connection refused"


def test_exception_without_message_gets_generic_text() -> None:
    backend = ScriptedBackend({"clean": RuntimeError()})
    result = TaskExecutorClient(backend=backend).execute(_task(), [], "wf-1")

    assert result.status == "failed"
    assert result.error == GENERIC_FAILURE_MESSAGE


def test_non_object_response_is_a_failure() -> None:
    def returns_list(_: TaskExecutionRequest) -> Any:
        return ["not", "an", "object"]

    backend = ScriptedBackend({"clean": returns_list})
    result = TaskExecutorClient(backend=backend).execute(_task(), [], "wf-1")

    assert result.status == "failed"
    assert result.error == "Task backend response must be a JSON object"


def test_slow_backend_times_out_as_failed_result() -> None:
    release = threading.Event()

    def hangs(_: TaskExecutionRequest) -> dict[str, Any]:
        release.wait(5.0)
        return {"output": "late"}

    backend = ScriptedBackend({"merge": hangs})
    client = TaskExecutorClient(backend=backend, task_timeout_s=0.05)
    try:
        result = client.execute(_task(TaskType.MERGE), [], "wf-1")
    finally:
        release.set()

    assert result.status == "failed"
    assert result.error == "Task 'merge' timed out after 0.05s"
    assert result.output is None
