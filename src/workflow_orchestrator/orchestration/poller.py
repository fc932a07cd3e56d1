"""Background reconciliation of in-flight workflows against the store."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Literal

from workflow_orchestrator.errors import WorkflowNotFoundError
from workflow_orchestrator.orchestration.lifecycle import (
    derive_workflow_status,
    is_settled,
    is_terminal,
)
from workflow_orchestrator.storage.base import WorkflowStore
from workflow_orchestrator.storage.models import Workflow

logger = logging.getLogger(__name__)

PollerState = Literal["active", "stopped"]


class WorkflowPoller:
    """Periodically fetch one workflow and settle its overall status.

    The first fetch failure is terminal: the cached view is forced to
    ``failed`` and the poller stops without retrying.
    """

    def __init__(
        self,
        workflow_id: str,
        *,
        store: WorkflowStore,
        interval_s: float,
        on_update: Callable[[Workflow], None] | None = None,
        on_completed: Callable[[Workflow], None] | None = None,
        on_failed: Callable[[str, str], None] | None = None,
        on_stopped: Callable[[WorkflowPoller], None] | None = None,
        join_timeout_s: float = 5.0,
    ) -> None:
        self.workflow_id = workflow_id
        self.interval_s = interval_s
        self.snapshot: Workflow | None = None
        self.fetch_count = 0
        self._store = store
        self._on_update = on_update
        self._on_completed = on_completed
        self._on_failed = on_failed
        self._on_stopped = on_stopped
        self._join_timeout_s = join_timeout_s
        self._state: PollerState = "active"
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state == "active"

    def start(self) -> None:
        if self._thread is not None or not self.active:
            return
        self._thread = threading.Thread(
            target=self._loop,
            name=f"poller-{self.workflow_id[:8]}",
            daemon=True,
        )
        self._thread.start()
        logger.info("workflow_poll event=start workflow_id=%s", self.workflow_id)

    def stop(self) -> bool:
        """Stop polling; returns False when the poller was already stopped.

        The join is bounded by ``join_timeout_s``. A fetch still in flight when
        the join gives up is discarded by ``tick`` once it returns.
        """
        if not self._mark_stopped():
            return False
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._join_timeout_s)
        logger.info("workflow_poll event=stopped workflow_id=%s", self.workflow_id)
        return True

    def tick(self) -> Workflow | None:
        """Run one reconciliation step; returns the fetched view if any."""
        if not self.active:
            return None

        try:
            workflow = self._fetch()
        except Exception as exc:  # noqa: BLE001
            self._fail(f"Polling failed for workflow {self.workflow_id}: {exc}")
            return None
        if not self.active:
            return None
        self._replace_view(workflow)

        if not is_terminal(workflow) and not is_settled(workflow.tasks):
            logger.debug(
                "workflow_poll event=update workflow_id=%s status=%s progress=%s",
                self.workflow_id,
                workflow.status,
                [task.progress for task in workflow.tasks],
            )
            return workflow

        if not is_terminal(workflow):
            new_status = derive_workflow_status(workflow.tasks)
            if not self.active:
                return workflow
            try:
                self._store.update_workflow(self.workflow_id, status=new_status)
                workflow = self._fetch()
            except Exception as exc:  # noqa: BLE001
                self._fail(f"Finalizing workflow {self.workflow_id} failed: {exc}")
                return None
            self._replace_view(workflow)
            logger.info(
                "workflow_poll event=finalized workflow_id=%s status=%s",
                self.workflow_id,
                workflow.status,
            )

        if self._mark_stopped():
            self._notify_stopped()
            if self._on_completed is not None:
                self._on_completed(workflow)
        return workflow

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval_s):
            self.tick()
            if not self.active:
                break

    def _fetch(self) -> Workflow:
        self.fetch_count += 1
        workflow = self._store.get_workflow(self.workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(self.workflow_id)
        return workflow

    def _replace_view(self, workflow: Workflow) -> None:
        self.snapshot = workflow
        if self._on_update is not None:
            self._on_update(workflow)

    def _fail(self, message: str) -> None:
        if not self.active:
            return
        logger.warning("workflow_poll event=failed workflow_id=%s reason=%s", self.workflow_id, message)
        if self.snapshot is not None:
            self._replace_view(self.snapshot.model_copy(update={"status": "failed"}))
        if self._mark_stopped():
            self._notify_stopped()
            if self._on_failed is not None:
                self._on_failed(self.workflow_id, message)

    def _mark_stopped(self) -> bool:
        with self._state_lock:
            if self._state == "stopped":
                return False
            self._state = "stopped"
            self._stop_event.set()
            return True

    def _notify_stopped(self) -> None:
        if self._on_stopped is not None:
            self._on_stopped(self)


class PollerRegistry:
    """Owns at most one active poller per workflow id."""

    def __init__(
        self,
        *,
        store: WorkflowStore,
        interval_s: float,
        on_update: Callable[[Workflow], None] | None = None,
        on_completed: Callable[[Workflow], None] | None = None,
        on_failed: Callable[[str, str], None] | None = None,
    ) -> None:
        self.store = store
        self.interval_s = interval_s
        self._on_update = on_update
        self._on_completed = on_completed
        self._on_failed = on_failed
        self._lock = threading.Lock()
        self._pollers: dict[str, WorkflowPoller] = {}

    def start(self, workflow_id: str, *, autostart: bool = True) -> WorkflowPoller:
        poller = WorkflowPoller(
            workflow_id,
            store=self.store,
            interval_s=self.interval_s,
            on_update=self._on_update,
            on_completed=self._on_completed,
            on_failed=self._on_failed,
            on_stopped=self._discard,
        )
        with self._lock:
            previous = self._pollers.get(workflow_id)
            self._pollers[workflow_id] = poller
        if previous is not None:
            logger.info("workflow_poll event=replaced workflow_id=%s", workflow_id)
            previous.stop()
        if autostart:
            poller.start()
        return poller

    def stop(self, workflow_id: str) -> bool:
        with self._lock:
            poller = self._pollers.pop(workflow_id, None)
        if poller is None:
            return False
        poller.stop()
        return True

    def stop_all(self) -> None:
        with self._lock:
            pollers = list(self._pollers.values())
            self._pollers.clear()
        for poller in pollers:
            poller.stop()

    def get(self, workflow_id: str) -> WorkflowPoller | None:
        with self._lock:
            return self._pollers.get(workflow_id)

    def active_ids(self) -> list[str]:
        with self._lock:
            return sorted(
                workflow_id for workflow_id, poller in self._pollers.items() if poller.active
            )

    def __len__(self) -> int:
        return len(self.active_ids())

    def _discard(self, poller: WorkflowPoller) -> None:
        with self._lock:
            if self._pollers.get(poller.workflow_id) is poller:
                del self._pollers[poller.workflow_id]
