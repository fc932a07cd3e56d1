"""Storage interface for workflow, task, and result records."""

from __future__ import annotations

from typing import Protocol

from workflow_orchestrator.storage.models import (
    Task,
    TaskDefinition,
    Workflow,
    WorkflowResult,
    WorkflowStatus,
    WorkflowTemplate,
)


class WorkflowStore(Protocol):
    def migrate(self) -> None: ...

    def create_workflow(
        self,
        *,
        name: str,
        description: str,
        tasks: list[Task],
        file_ids: list[str],
    ) -> Workflow: ...

    def get_workflow(self, workflow_id: str) -> Workflow | None: ...

    def list_workflows(self) -> list[Workflow]: ...

    def update_workflow(
        self,
        workflow_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        status: WorkflowStatus | None = None,
        tasks: list[Task] | None = None,
        file_ids: list[str] | None = None,
    ) -> Workflow: ...

    def delete_workflow(self, workflow_id: str) -> bool: ...

    def add_result(self, result: WorkflowResult) -> WorkflowResult: ...

    def get_workflow_results(self, workflow_id: str) -> list[WorkflowResult]: ...

    def create_template(
        self,
        *,
        name: str,
        description: str,
        tasks: list[TaskDefinition],
        category: str | None,
        is_public: bool,
    ) -> WorkflowTemplate: ...

    def get_template(self, template_id: str) -> WorkflowTemplate | None: ...

    def list_templates(self) -> list[WorkflowTemplate]: ...
