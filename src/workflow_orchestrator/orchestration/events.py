"""Observer callbacks for progress, completion, and failure notifications."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from workflow_orchestrator.storage.models import Workflow

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]
CompletedCallback = Callable[[Workflow], None]
FailedCallback = Callable[[str, str], None]


class WorkflowEvents:
    """Fan-out of orchestration notifications to registered listeners.

    A listener that raises is logged and skipped so one bad observer cannot
    break a run or a poller.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._progress: list[ProgressCallback] = []
        self._completed: list[CompletedCallback] = []
        self._failed: list[FailedCallback] = []

    def on_progress(self, callback: ProgressCallback) -> None:
        with self._lock:
            self._progress.append(callback)

    def on_completed(self, callback: CompletedCallback) -> None:
        with self._lock:
            self._completed.append(callback)

    def on_failed(self, callback: FailedCallback) -> None:
        with self._lock:
            self._failed.append(callback)

    def emit_progress(self, task_id: str, percentage: int) -> None:
        with self._lock:
            listeners = list(self._progress)
        for callback in listeners:
            try:
                callback(task_id, percentage)
            except Exception:  # noqa: BLE001
                logger.exception("workflow_events event=progress_listener_error task_id=%s", task_id)

    def emit_completed(self, workflow: Workflow) -> None:
        with self._lock:
            listeners = list(self._completed)
        for callback in listeners:
            try:
                callback(workflow)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "workflow_events event=completed_listener_error workflow_id=%s", workflow.id
                )

    def emit_failed(self, workflow_id: str, message: str) -> None:
        with self._lock:
            listeners = list(self._failed)
        for callback in listeners:
            try:
                callback(workflow_id, message)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "workflow_events event=failed_listener_error workflow_id=%s", workflow_id
                )
