"""Workflow service: the entry point surrounding code calls into.

Lifecycle per workflow::

    draft --run--> running --(all tasks settled)--> completed | failed
                      ^                                   |
                      +-------------- rerun --------------+

``run_workflow`` marks the workflow running, starts its poller, and submits the
runner to a worker pool. The poller settles the final status and reports
completion; ``delete_workflow`` stops the poller before removing the record.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any
from uuid import uuid4

from workflow_orchestrator.config.settings import Settings
from workflow_orchestrator.errors import (
    TemplateNotFoundError,
    WorkflowNotFoundError,
    WorkflowStateError,
)
from workflow_orchestrator.orchestration.events import (
    CompletedCallback,
    FailedCallback,
    ProgressCallback,
    WorkflowEvents,
)
from workflow_orchestrator.orchestration.lifecycle import (
    finalize_workflow,
    is_settled,
    is_terminal,
    reset_tasks,
)
from workflow_orchestrator.orchestration.poller import PollerRegistry
from workflow_orchestrator.orchestration.runner import WorkflowRunner
from workflow_orchestrator.orchestration.templates import BUILTIN_TEMPLATES, builtin_template
from workflow_orchestrator.storage.base import WorkflowStore
from workflow_orchestrator.storage.models import (
    Task,
    TaskDefinition,
    Workflow,
    WorkflowResult,
    WorkflowTemplate,
)
from workflow_orchestrator.tasks.backend import HttpTaskBackend, TaskBackend
from workflow_orchestrator.tasks.gateway import TaskExecutorClient

logger = logging.getLogger(__name__)

TaskDefinitionInput = TaskDefinition | Mapping[str, Any]


class WorkflowService:
    def __init__(
        self,
        *,
        store: WorkflowStore,
        client: TaskExecutorClient,
        events: WorkflowEvents | None = None,
        poll_interval_s: float = 3.0,
        progress_interval_s: float = 0.5,
        max_concurrent_runs: int = 4,
    ) -> None:
        self.store = store
        self.client = client
        self.events = events or WorkflowEvents()
        self.pollers = PollerRegistry(
            store=store,
            interval_s=poll_interval_s,
            on_update=self._remember,
            on_completed=self._handle_completed,
            on_failed=self._handle_poll_failure,
        )
        self.runner = WorkflowRunner(
            store=store,
            client=client,
            events=self.events,
            progress_interval_s=progress_interval_s,
        )
        self._pool = ThreadPoolExecutor(
            max_workers=max_concurrent_runs, thread_name_prefix="workflow-run"
        )
        self._views: dict[str, Workflow] = {}
        self._views_lock = threading.Lock()
        self._runs: dict[str, Future[Workflow | None]] = {}
        self._runs_lock = threading.Lock()
        self._outcomes: Counter[str] = Counter()
        self._outcomes_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: WorkflowStore,
        backend: TaskBackend | None = None,
    ) -> WorkflowService:
        task_backend = backend or HttpTaskBackend(
            base_url=settings.backend_base_url,
            api_token=settings.backend_api_token,
        )
        return cls(
            store=store,
            client=TaskExecutorClient(backend=task_backend, task_timeout_s=settings.task_timeout_s),
            poll_interval_s=settings.poll_interval_s,
            progress_interval_s=settings.progress_interval_s,
            max_concurrent_runs=settings.max_concurrent_runs,
        )

    # Observation

    def on_progress(self, callback: ProgressCallback) -> None:
        self.events.on_progress(callback)

    def on_completed(self, callback: CompletedCallback) -> None:
        self.events.on_completed(callback)

    def on_failed(self, callback: FailedCallback) -> None:
        self.events.on_failed(callback)

    def cached_workflow(self, workflow_id: str) -> Workflow | None:
        with self._views_lock:
            view = self._views.get(workflow_id)
            return view.model_copy(deep=True) if view else None

    def completion_counts(self) -> dict[str, int]:
        with self._outcomes_lock:
            return dict(self._outcomes)

    def is_running(self, workflow_id: str) -> bool:
        with self._runs_lock:
            future = self._runs.get(workflow_id)
        return future is not None and not future.done()

    # Workflow records

    def create_workflow(
        self,
        name: str,
        description: str,
        task_definitions: Sequence[TaskDefinitionInput],
        file_ids: Iterable[str] = (),
    ) -> Workflow:
        if not name.strip():
            raise ValueError("Workflow name must not be empty")
        workflow = self.store.create_workflow(
            name=name,
            description=description,
            tasks=_new_tasks(task_definitions),
            file_ids=_unique(file_ids),
        )
        self._remember(workflow)
        logger.info(
            "workflow event=created workflow_id=%s tasks=%d files=%d",
            workflow.id,
            len(workflow.tasks),
            len(workflow.file_ids),
        )
        return workflow

    def get_workflow(self, workflow_id: str) -> Workflow:
        workflow = self.store.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        self._remember(workflow)
        return workflow

    def list_workflows(self) -> list[Workflow]:
        workflows = self.store.list_workflows()
        for workflow in workflows:
            self._remember(workflow)
        return workflows

    def get_workflow_results(self, workflow_id: str) -> list[WorkflowResult]:
        if self.store.get_workflow(workflow_id) is None:
            raise WorkflowNotFoundError(workflow_id)
        return self.store.get_workflow_results(workflow_id)

    def add_files_to_workflow(self, workflow_id: str, file_ids: Iterable[str]) -> Workflow:
        workflow = self.get_workflow(workflow_id)
        merged = _unique([*workflow.file_ids, *file_ids])
        if merged == workflow.file_ids:
            return workflow
        updated = self.store.update_workflow(workflow_id, file_ids=merged)
        self._remember(updated)
        logger.info(
            "workflow event=files_added workflow_id=%s files=%d",
            workflow_id,
            len(updated.file_ids),
        )
        return updated

    def update_workflow(
        self,
        workflow_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        task_definitions: Sequence[TaskDefinitionInput] | None = None,
        file_ids: Iterable[str] | None = None,
    ) -> Workflow:
        """Edit a workflow that is not running.

        New task definitions replace the task list with fresh pending tasks
        and send the workflow back to ``draft``.
        """
        if name is not None and not name.strip():
            raise ValueError("Workflow name must not be empty")
        workflow = self.get_workflow(workflow_id)
        if workflow.status == "running" or self.is_running(workflow_id):
            raise WorkflowStateError(f"Workflow {workflow_id} is running and cannot be edited")

        tasks = None if task_definitions is None else _new_tasks(task_definitions)
        updated = self.store.update_workflow(
            workflow_id,
            name=name,
            description=description,
            status="draft" if tasks is not None else None,
            tasks=tasks,
            file_ids=None if file_ids is None else _unique(file_ids),
        )
        self._remember(updated)
        logger.info(
            "workflow event=updated workflow_id=%s status=%s tasks=%d",
            workflow_id,
            updated.status,
            len(updated.tasks),
        )
        return updated

    def delete_workflow(self, workflow_id: str) -> None:
        self.pollers.stop(workflow_id)
        with self._runs_lock:
            future = self._runs.pop(workflow_id, None)
        if future is not None:
            future.cancel()
        with self._views_lock:
            self._views.pop(workflow_id, None)
        if not self.store.delete_workflow(workflow_id):
            raise WorkflowNotFoundError(workflow_id)
        logger.info("workflow event=deleted workflow_id=%s", workflow_id)

    # Execution

    def run_workflow(self, workflow_id: str, *, rerun: bool = False) -> Future[Workflow | None]:
        """Start (or resume) a workflow run in the background.

        Raises ``WorkflowStateError`` when the workflow is already running in
        this process, or when it is terminal and ``rerun`` is not set.
        """
        future: Future[Workflow | None] | None
        with self._runs_lock:
            active = self._runs.get(workflow_id)
            if active is not None and not active.done():
                raise WorkflowStateError(f"Workflow {workflow_id} is already running")

            workflow = self.get_workflow(workflow_id)
            tasks = workflow.tasks
            if rerun:
                tasks = reset_tasks(workflow.tasks)
            elif is_terminal(workflow):
                raise WorkflowStateError(
                    f"Workflow {workflow_id} is {workflow.status}; use rerun to start it again"
                )
            elif workflow.status == "running" and is_settled(workflow.tasks):
                logger.info("workflow event=resume_settled workflow_id=%s", workflow_id)
                final = finalize_workflow(self.store, workflow_id)
                future = None
            else:
                if workflow.status == "running":
                    logger.info("workflow event=resume workflow_id=%s", workflow_id)
                running = self.store.update_workflow(workflow_id, status="running", tasks=tasks)
                self._remember(running)
                self.pollers.start(workflow_id)
                future = self._pool.submit(self._execute_run, running)
                self._runs[workflow_id] = future

        if future is None:
            # Listeners run outside the runs lock.
            self._remember(final)
            if is_terminal(final):
                self._handle_completed(final)
            settled: Future[Workflow | None] = Future()
            settled.set_result(final)
            return settled

        future.add_done_callback(lambda done: self._forget_run(workflow_id, done))
        logger.info(
            "workflow event=run_submitted workflow_id=%s rerun=%s", workflow_id, rerun
        )
        return future

    def shutdown(self, *, wait: bool = True) -> None:
        self.pollers.stop_all()
        self._pool.shutdown(wait=wait, cancel_futures=True)

    # Templates

    def list_templates(self) -> list[WorkflowTemplate]:
        builtins = [template.model_copy(deep=True) for template in BUILTIN_TEMPLATES]
        return [*builtins, *self.store.list_templates()]

    def get_template(self, template_id: str) -> WorkflowTemplate:
        template = builtin_template(template_id) or self.store.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def save_as_template(
        self,
        workflow_id: str,
        *,
        name: str,
        description: str = "",
        category: str | None = None,
        is_public: bool = False,
    ) -> WorkflowTemplate:
        workflow = self.get_workflow(workflow_id)
        return self.store.create_template(
            name=name,
            description=description,
            tasks=[task.definition() for task in workflow.tasks],
            category=category,
            is_public=is_public,
        )

    def create_workflow_from_template(
        self,
        template_id: str,
        file_ids: Iterable[str] = (),
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> Workflow:
        template = self.get_template(template_id)
        return self.create_workflow(
            name or template.name,
            template.description if description is None else description,
            template.tasks,
            file_ids,
        )

    # Internals

    def _execute_run(self, workflow: Workflow) -> Workflow | None:
        self.runner.run(workflow)
        final = self.store.get_workflow(workflow.id)
        if final is not None:
            self._remember(final)
        return final

    def _forget_run(self, workflow_id: str, future: Future[Workflow | None]) -> None:
        with self._runs_lock:
            if self._runs.get(workflow_id) is future:
                del self._runs[workflow_id]

    def _remember(self, workflow: Workflow) -> None:
        with self._views_lock:
            self._views[workflow.id] = workflow.model_copy(deep=True)

    def _handle_completed(self, workflow: Workflow) -> None:
        with self._outcomes_lock:
            self._outcomes[workflow.status] += 1
        logger.info(
            "workflow event=finished workflow_id=%s status=%s", workflow.id, workflow.status
        )
        self.events.emit_completed(workflow)

    def _handle_poll_failure(self, workflow_id: str, message: str) -> None:
        with self._views_lock:
            view = self._views.get(workflow_id)
            if view is not None and view.status != "failed":
                self._views[workflow_id] = view.model_copy(update={"status": "failed"})
        with self._outcomes_lock:
            self._outcomes["poll_failed"] += 1
        self.events.emit_failed(workflow_id, message)


def _as_definition(item: TaskDefinitionInput) -> TaskDefinition:
    if isinstance(item, TaskDefinition):
        return item
    return TaskDefinition.model_validate(dict(item))


def _new_tasks(task_definitions: Iterable[TaskDefinitionInput]) -> list[Task]:
    return [
        Task(id=str(uuid4()), status="pending", progress=0, **definition.model_dump())
        for definition in (_as_definition(item) for item in task_definitions)
    ]


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered
