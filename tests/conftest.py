from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from workflow_orchestrator.orchestration.service import WorkflowService
from workflow_orchestrator.storage.memory import InMemoryWorkflowStore
from workflow_orchestrator.tasks.gateway import TaskExecutorClient
from workflow_orchestrator.tasks.schemas import TaskExecutionRequest

ScriptStep = dict[str, Any] | BaseException | Callable[[TaskExecutionRequest], dict[str, Any]]


class ScriptedBackend:
    """Test double for the remote task backend.

    Responses are scripted per task type. A scripted exception is raised, a
    callable is invoked with the request, and a dict is returned as the JSON
    body. Unscripted task types echo their input back as ``output``.
    """

    def __init__(self, script: dict[str, ScriptStep] | None = None, *, delay_s: float = 0.0) -> None:
        self.script: dict[str, ScriptStep] = dict(script or {})
        self.delay_s = delay_s
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def execute(
        self,
        *,
        workflow_id: str,
        task_id: str,
        payload: TaskExecutionRequest,
        timeout_s: float,
    ) -> dict[str, Any]:
        _ = timeout_s
        with self._lock:
            self.calls.append(
                {
                    "workflow_id": workflow_id,
                    "task_id": task_id,
                    "task_type": payload.task_type.value,
                    "input": payload.input_data,
                    "wire": payload.to_wire(),
                }
            )
        if self.delay_s:
            time.sleep(self.delay_s)

        step = self.script.get(payload.task_type.value)
        if step is None:
            return {"output": payload.input_data, "recordsProcessed": 1}
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return step(payload)
        return dict(step)

    @property
    def task_types(self) -> list[str]:
        return [call["task_type"] for call in self.calls]


@pytest.fixture
def store() -> InMemoryWorkflowStore:
    return InMemoryWorkflowStore()


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def client(backend: ScriptedBackend) -> TaskExecutorClient:
    return TaskExecutorClient(backend=backend, task_timeout_s=2.0)


@pytest.fixture
def service(store: InMemoryWorkflowStore, client: TaskExecutorClient) -> Iterator[WorkflowService]:
    # Long poll interval: tests drive poller ticks explicitly.
    svc = WorkflowService(
        store=store,
        client=client,
        poll_interval_s=60.0,
        progress_interval_s=0.01,
        max_concurrent_runs=2,
    )
    yield svc
    svc.shutdown(wait=True)


def task_defs(*task_types: str) -> list[dict[str, str]]:
    return [
        {"name": f"{task_type.title()} step {index}", "type": task_type}
        for index, task_type in enumerate(task_types)
    ]
