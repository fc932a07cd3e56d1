"""Per-run collaborators handed to graph nodes through the runnable config."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from langchain_core.runnables import RunnableConfig

if TYPE_CHECKING:
    from workflow_orchestrator.orchestration.board import TaskBoard
    from workflow_orchestrator.storage.base import WorkflowStore
    from workflow_orchestrator.storage.models import Workflow
    from workflow_orchestrator.tasks.gateway import TaskExecutorClient

CONTEXT_KEY = "run_context"


@dataclass
class RunContext:
    workflow_id: str
    store: WorkflowStore
    board: TaskBoard
    client: TaskExecutorClient
    progress_for: Callable[[str], AbstractContextManager[Any]]
    finalize: Callable[[], Workflow]
    # Output of the latest completed result per task id, used when resuming.
    latest_outputs: dict[str, Any] = field(default_factory=dict)


def get_run_context(config: RunnableConfig) -> RunContext:
    configurable = config.get("configurable") or {}
    context = configurable.get(CONTEXT_KEY)
    if not isinstance(context, RunContext):
        raise RuntimeError("Run graph invoked without a run context")
    return context
