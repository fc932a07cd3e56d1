"""In-memory storage backend for tests and local runs."""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from uuid import uuid4

from workflow_orchestrator.errors import WorkflowNotFoundError
from workflow_orchestrator.storage.models import (
    Task,
    TaskDefinition,
    Workflow,
    WorkflowResult,
    WorkflowStatus,
    WorkflowTemplate,
)


class InMemoryWorkflowStore:
    """Thread-safe dictionary store that hands out deep copies."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._workflows: dict[str, Workflow] = {}
        self._results: list[WorkflowResult] = []
        self._templates: dict[str, WorkflowTemplate] = {}

    def migrate(self) -> None:
        return None

    def create_workflow(
        self,
        *,
        name: str,
        description: str,
        tasks: list[Task],
        file_ids: list[str],
    ) -> Workflow:
        now = datetime.now(UTC)
        record = Workflow(
            id=str(uuid4()),
            name=name,
            description=description,
            tasks=[task.model_copy(deep=True) for task in tasks],
            file_ids=list(file_ids),
            status="draft",
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._workflows[record.id] = record
        return record.model_copy(deep=True)

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        with self._lock:
            current = self._workflows.get(workflow_id)
            if current is None:
                return None
            return self._with_results(current)

    def list_workflows(self) -> list[Workflow]:
        with self._lock:
            ordered = sorted(
                self._workflows.values(), key=lambda item: item.created_at, reverse=True
            )
            return [self._with_results(item) for item in ordered]

    def update_workflow(
        self,
        workflow_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        status: WorkflowStatus | None = None,
        tasks: list[Task] | None = None,
        file_ids: list[str] | None = None,
    ) -> Workflow:
        with self._lock:
            current = self._workflows.get(workflow_id)
            if current is None:
                raise WorkflowNotFoundError(workflow_id)
            updated = current.model_copy(deep=True)
            if name is not None:
                updated.name = name
            if description is not None:
                updated.description = description
            if status is not None:
                updated.status = status
            if tasks is not None:
                updated.tasks = [task.model_copy(deep=True) for task in tasks]
            if file_ids is not None:
                updated.file_ids = list(file_ids)
            updated.updated_at = datetime.now(UTC)
            self._workflows[workflow_id] = updated
            return self._with_results(updated)

    def delete_workflow(self, workflow_id: str) -> bool:
        with self._lock:
            removed = self._workflows.pop(workflow_id, None)
            self._results = [item for item in self._results if item.workflow_id != workflow_id]
        return removed is not None

    def add_result(self, result: WorkflowResult) -> WorkflowResult:
        with self._lock:
            if result.workflow_id not in self._workflows:
                raise WorkflowNotFoundError(result.workflow_id)
            self._results.append(result.model_copy(deep=True))
        return result

    def get_workflow_results(self, workflow_id: str) -> list[WorkflowResult]:
        with self._lock:
            return self._results_for(workflow_id)

    def create_template(
        self,
        *,
        name: str,
        description: str,
        tasks: list[TaskDefinition],
        category: str | None,
        is_public: bool,
    ) -> WorkflowTemplate:
        template = WorkflowTemplate(
            id=str(uuid4()),
            name=name,
            description=description,
            tasks=[task.model_copy(deep=True) for task in tasks],
            category=category,
            is_public=is_public,
            created_at=datetime.now(UTC),
        )
        with self._lock:
            self._templates[template.id] = template
        return template.model_copy(deep=True)

    def get_template(self, template_id: str) -> WorkflowTemplate | None:
        with self._lock:
            template = self._templates.get(template_id)
            return template.model_copy(deep=True) if template else None

    def list_templates(self) -> list[WorkflowTemplate]:
        with self._lock:
            ordered = sorted(self._templates.values(), key=lambda item: item.created_at)
            return [item.model_copy(deep=True) for item in ordered]

    def _results_for(self, workflow_id: str) -> list[WorkflowResult]:
        return [
            item.model_copy(deep=True) for item in self._results if item.workflow_id == workflow_id
        ]

    def _with_results(self, workflow: Workflow) -> Workflow:
        snapshot = workflow.model_copy(deep=True)
        snapshot.results = self._results_for(workflow.id)
        return snapshot
