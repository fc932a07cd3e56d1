"""Exception types shared by storage, orchestration, and API layers."""

from __future__ import annotations


class OrchestratorError(Exception):
    """Base error for workflow orchestration failures."""


class WorkflowNotFoundError(OrchestratorError, KeyError):
    def __init__(self, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} does not exist")

    def __str__(self) -> str:
        return str(self.args[0])


class TemplateNotFoundError(OrchestratorError, KeyError):
    def __init__(self, template_id: str) -> None:
        self.template_id = template_id
        super().__init__(f"Template {template_id} does not exist")

    def __str__(self) -> str:
        return str(self.args[0])


class WorkflowStateError(OrchestratorError):
    """Requested lifecycle transition is not allowed from the current status."""


class StoreError(OrchestratorError):
    """Persistence read or write failed."""


class TaskBackendError(OrchestratorError):
    """Remote task backend rejected or failed a task execution call."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)
