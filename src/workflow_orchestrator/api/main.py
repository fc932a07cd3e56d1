"""FastAPI application wiring for the workflow orchestrator.

Runtime objects live on ``app.state``:
- ``settings``: resolved :class:`Settings`.
- ``store``: the workflow store (Postgres unless one is injected).
- ``service``: the :class:`WorkflowService` that runs and polls workflows.

Serve with ``uvicorn workflow_orchestrator.api.main:create_app --factory``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import asynccontextmanager, contextmanager

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from workflow_orchestrator.config import Settings, configure_logging, get_settings
from workflow_orchestrator.errors import (
    StoreError,
    TemplateNotFoundError,
    WorkflowNotFoundError,
    WorkflowStateError,
)
from workflow_orchestrator.orchestration.service import WorkflowService
from workflow_orchestrator.storage.base import WorkflowStore
from workflow_orchestrator.storage.models import (
    TaskDefinition,
    Workflow,
    WorkflowResult,
    WorkflowTemplate,
)
from workflow_orchestrator.storage.postgres import PostgresWorkflowStore
from workflow_orchestrator.tasks.backend import TaskBackend

logger = logging.getLogger(__name__)


class CreateWorkflowRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    tasks: list[TaskDefinition] = Field(default_factory=list)
    file_ids: list[str] = Field(default_factory=list)


class UpdateWorkflowRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    tasks: list[TaskDefinition] | None = None
    file_ids: list[str] | None = None


class AddFilesRequest(BaseModel):
    file_ids: list[str] = Field(min_length=1)


class SaveTemplateRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    category: str | None = None
    is_public: bool = False


class CreateFromTemplateRequest(BaseModel):
    file_ids: list[str] = Field(default_factory=list)
    name: str | None = None
    description: str | None = None


class RunAccepted(BaseModel):
    workflow_id: str
    status: str
    rerun: bool


def create_app(
    *,
    store: WorkflowStore | None = None,
    backend: TaskBackend | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    """Application factory.

    Tests pass an in-memory ``store`` and a fake ``backend``; in deployment
    both come from settings.
    """
    settings = settings_override or get_settings()
    configure_logging(settings.log_level)
    logger.info("app event=startup app_name=%s app_env=%s", settings.app_name, settings.app_env)

    if store is None:
        database_url = settings.resolved_database_url().strip()
        if not database_url:
            raise RuntimeError("WORKFLOW_ORCHESTRATOR_DATABASE_URL is required.")
        store = PostgresWorkflowStore(database_url=database_url)
    store.migrate()

    service = WorkflowService.from_settings(settings, store=store, backend=backend)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        logger.info("app event=shutdown active_pollers=%d", len(service.pollers))
        service.shutdown(wait=False)

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.service = service

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/workflows", response_model=Workflow, status_code=201)
    def create_workflow(payload: CreateWorkflowRequest) -> Workflow:
        with _translate_errors():
            return app.state.service.create_workflow(
                payload.name, payload.description, payload.tasks, payload.file_ids
            )

    @app.get("/workflows", response_model=list[Workflow])
    def list_workflows() -> list[Workflow]:
        with _translate_errors():
            return app.state.service.list_workflows()

    @app.get("/workflows/{workflow_id}", response_model=Workflow)
    def get_workflow(workflow_id: str) -> Workflow:
        with _translate_errors():
            return app.state.service.get_workflow(workflow_id)

    @app.patch("/workflows/{workflow_id}", response_model=Workflow)
    def update_workflow(workflow_id: str, payload: UpdateWorkflowRequest) -> Workflow:
        with _translate_errors():
            return app.state.service.update_workflow(
                workflow_id,
                name=payload.name,
                description=payload.description,
                task_definitions=payload.tasks,
                file_ids=payload.file_ids,
            )

    @app.delete("/workflows/{workflow_id}", status_code=204)
    def delete_workflow(workflow_id: str) -> None:
        with _translate_errors():
            app.state.service.delete_workflow(workflow_id)

    @app.post("/workflows/{workflow_id}/files", response_model=Workflow)
    def add_files(workflow_id: str, payload: AddFilesRequest) -> Workflow:
        with _translate_errors():
            return app.state.service.add_files_to_workflow(workflow_id, payload.file_ids)

    @app.post("/workflows/{workflow_id}/run", response_model=RunAccepted, status_code=202)
    def run_workflow(workflow_id: str, rerun: bool = Query(default=False)) -> RunAccepted:
        with _translate_errors():
            app.state.service.run_workflow(workflow_id, rerun=rerun)
            view = app.state.service.cached_workflow(workflow_id)
        status = view.status if view is not None else "running"
        logger.info(
            "workflow_api event=run_accepted workflow_id=%s rerun=%s status=%s",
            workflow_id,
            rerun,
            status,
        )
        return RunAccepted(workflow_id=workflow_id, status=status, rerun=rerun)

    @app.get("/workflows/{workflow_id}/results", response_model=list[WorkflowResult])
    def get_results(workflow_id: str) -> list[WorkflowResult]:
        with _translate_errors():
            return app.state.service.get_workflow_results(workflow_id)

    @app.get("/templates", response_model=list[WorkflowTemplate])
    def list_templates() -> list[WorkflowTemplate]:
        with _translate_errors():
            return app.state.service.list_templates()

    @app.post(
        "/workflows/{workflow_id}/templates", response_model=WorkflowTemplate, status_code=201
    )
    def save_template(workflow_id: str, payload: SaveTemplateRequest) -> WorkflowTemplate:
        with _translate_errors():
            return app.state.service.save_as_template(
                workflow_id,
                name=payload.name,
                description=payload.description,
                category=payload.category,
                is_public=payload.is_public,
            )

    @app.post("/templates/{template_id}/workflows", response_model=Workflow, status_code=201)
    def create_from_template(
        template_id: str, payload: CreateFromTemplateRequest | None = None
    ) -> Workflow:
        request = payload or CreateFromTemplateRequest()
        with _translate_errors():
            return app.state.service.create_workflow_from_template(
                template_id,
                request.file_ids,
                name=request.name,
                description=request.description,
            )

    return app


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Map domain errors raised inside a route onto HTTP responses."""
    try:
        yield
    except (WorkflowNotFoundError, TemplateNotFoundError) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except WorkflowStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except StoreError as exc:
        logger.warning("workflow_api event=store_error detail=%s", exc)
        raise HTTPException(status_code=503, detail="Workflow store unavailable") from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
