"""Per-run view of a workflow's tasks that persists every status change."""

from __future__ import annotations

import logging
import threading

from workflow_orchestrator.orchestration.events import WorkflowEvents
from workflow_orchestrator.storage.base import WorkflowStore
from workflow_orchestrator.storage.models import Task, TaskStatus, Workflow

logger = logging.getLogger(__name__)


class TaskBoard:
    """Owns the runner's copy of the task list.

    The runner thread and the progress ticker both write through the board;
    the lock keeps the stored task list consistent between them.
    """

    def __init__(self, *, store: WorkflowStore, workflow: Workflow, events: WorkflowEvents) -> None:
        self.workflow_id = workflow.id
        self._store = store
        self._events = events
        self._lock = threading.Lock()
        self._tasks: list[Task] = [task.model_copy(deep=True) for task in workflow.tasks]

    @property
    def task_ids(self) -> list[str]:
        with self._lock:
            return [task.id for task in self._tasks]

    def task(self, task_id: str) -> Task:
        with self._lock:
            return self._find(task_id).model_copy(deep=True)

    def snapshot(self) -> list[Task]:
        with self._lock:
            return [task.model_copy(deep=True) for task in self._tasks]

    def start_task(self, task_id: str) -> None:
        self._transition(task_id, status="running", progress=0)

    def advance(self, task_id: str, progress: int) -> bool:
        """Raise the progress of a running task; lower or stale values are ignored."""
        with self._lock:
            task = self._find(task_id)
            if task.status != "running" or progress <= task.progress:
                return False
            task.progress = min(progress, 99)
            self._persist()
            reported = task.progress
        self._events.emit_progress(task_id, reported)
        return True

    def complete_task(self, task_id: str) -> None:
        self._transition(task_id, status="completed", progress=100)

    def fail_task(self, task_id: str) -> None:
        self._transition(task_id, status="failed", progress=0)

    def running_task_ids(self) -> list[str]:
        with self._lock:
            return [task.id for task in self._tasks if task.status == "running"]

    def _transition(self, task_id: str, *, status: TaskStatus, progress: int) -> None:
        with self._lock:
            task = self._find(task_id)
            task.status = status
            task.progress = progress
            self._persist()
        logger.info(
            "task_board event=transition workflow_id=%s task_id=%s status=%s progress=%d",
            self.workflow_id,
            task_id,
            status,
            progress,
        )
        self._events.emit_progress(task_id, progress)

    def _find(self, task_id: str) -> Task:
        for task in self._tasks:
            if task.id == task_id:
                return task
        raise KeyError(f"Task {task_id} is not part of workflow {self.workflow_id}")

    def _persist(self) -> None:
        self._store.update_workflow(
            self.workflow_id,
            tasks=[task.model_copy(deep=True) for task in self._tasks],
        )
