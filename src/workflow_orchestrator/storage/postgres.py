"""PostgreSQL-backed storage with automatic table migration."""

from __future__ import annotations

import json
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from workflow_orchestrator.errors import StoreError, WorkflowNotFoundError
from workflow_orchestrator.storage.models import (
    Task,
    TaskDefinition,
    Workflow,
    WorkflowResult,
    WorkflowStatus,
    WorkflowTemplate,
)


class PostgresWorkflowStore:
    """Persist workflows, per-task results, and templates in PostgreSQL."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("WORKFLOW_ORCHESTRATOR_DATABASE_URL is required")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        with self._session() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS workflows (
                    id UUID PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    tasks_json JSONB NOT NULL DEFAULT '[]'::jsonb,
                    file_ids_json JSONB NOT NULL DEFAULT '[]'::jsonb,
                    status TEXT NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_workflows_status
                ON workflows(status)
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_workflows_created_at
                ON workflows(created_at DESC)
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS workflow_results (
                    id UUID PRIMARY KEY,
                    workflow_id UUID NOT NULL REFERENCES workflows(id) ON DELETE CASCADE,
                    task_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    output_json JSONB,
                    error TEXT,
                    metrics_json JSONB NOT NULL DEFAULT '{}'::jsonb,
                    started_at TIMESTAMPTZ,
                    completed_at TIMESTAMPTZ,
                    created_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_workflow_results_workflow_id
                ON workflow_results(workflow_id, created_at)
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS workflow_templates (
                    id UUID PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    tasks_json JSONB NOT NULL DEFAULT '[]'::jsonb,
                    category TEXT,
                    is_public BOOLEAN NOT NULL DEFAULT FALSE,
                    created_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.commit()

    def create_workflow(
        self,
        *,
        name: str,
        description: str,
        tasks: list[Task],
        file_ids: list[str],
    ) -> Workflow:
        workflow_id = uuid.uuid4()
        now = datetime.now(tz=UTC)
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO workflows (
                    id,
                    name,
                    description,
                    tasks_json,
                    file_ids_json,
                    status,
                    created_at,
                    updated_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    workflow_id,
                    name,
                    description,
                    self._json_wrapper(_dump_tasks(tasks)),
                    self._json_wrapper(list(file_ids)),
                    "draft",
                    now,
                    now,
                ),
            )
            conn.commit()
        created = self.get_workflow(str(workflow_id))
        if created is None:
            raise StoreError("Failed to load created workflow")
        return created

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM workflows WHERE id::text = %s",
                (workflow_id,),
            ).fetchone()
            if row is None:
                return None
            result_rows = self._fetch_result_rows(conn, workflow_id)
        return self._row_to_workflow(row, result_rows)

    def list_workflows(self) -> list[Workflow]:
        with self._session() as conn:
            rows = conn.execute("SELECT * FROM workflows ORDER BY created_at DESC").fetchall()
            return [
                self._row_to_workflow(row, self._fetch_result_rows(conn, str(row["id"])))
                for row in rows
            ]

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
        assignments: list[str] = []
        params: list[Any] = []
        if name is not None:
            assignments.append("name = %s")
            params.append(name)
        if description is not None:
            assignments.append("description = %s")
            params.append(description)
        if status is not None:
            assignments.append("status = %s")
            params.append(status)
        if tasks is not None:
            assignments.append("tasks_json = %s")
            params.append(self._json_wrapper(_dump_tasks(tasks)))
        if file_ids is not None:
            assignments.append("file_ids_json = %s")
            params.append(self._json_wrapper(list(file_ids)))
        assignments.append("updated_at = %s")
        params.append(datetime.now(tz=UTC))
        params.append(workflow_id)

        with self._session() as conn:
            cursor = conn.execute(
                f"UPDATE workflows SET {', '.join(assignments)} WHERE id::text = %s",
                tuple(params),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise WorkflowNotFoundError(workflow_id)
        refreshed = self.get_workflow(workflow_id)
        if refreshed is None:
            raise WorkflowNotFoundError(workflow_id)
        return refreshed

    def delete_workflow(self, workflow_id: str) -> bool:
        with self._session() as conn:
            cursor = conn.execute(
                "DELETE FROM workflows WHERE id::text = %s",
                (workflow_id,),
            )
            conn.commit()
        return cursor.rowcount > 0

    def add_result(self, result: WorkflowResult) -> WorkflowResult:
        with self._session() as conn:
            exists = conn.execute(
                "SELECT 1 FROM workflows WHERE id::text = %s",
                (result.workflow_id,),
            ).fetchone()
            if exists is None:
                raise WorkflowNotFoundError(result.workflow_id)
            conn.execute(
                """
                INSERT INTO workflow_results (
                    id,
                    workflow_id,
                    task_id,
                    status,
                    output_json,
                    error,
                    metrics_json,
                    started_at,
                    completed_at,
                    created_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    result.id,
                    result.workflow_id,
                    result.task_id,
                    result.status,
                    self._json_wrapper(result.output) if result.output is not None else None,
                    result.error,
                    self._json_wrapper(result.metrics),
                    result.started_at,
                    result.completed_at,
                    result.created_at,
                ),
            )
            conn.commit()
        return result

    def get_workflow_results(self, workflow_id: str) -> list[WorkflowResult]:
        with self._session() as conn:
            rows = self._fetch_result_rows(conn, workflow_id)
        return [self._row_to_result(row) for row in rows]

    def create_template(
        self,
        *,
        name: str,
        description: str,
        tasks: list[TaskDefinition],
        category: str | None,
        is_public: bool,
    ) -> WorkflowTemplate:
        template_id = uuid.uuid4()
        now = datetime.now(tz=UTC)
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO workflow_templates (
                    id,
                    name,
                    description,
                    tasks_json,
                    category,
                    is_public,
                    created_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    template_id,
                    name,
                    description,
                    self._json_wrapper([task.model_dump(mode="json") for task in tasks]),
                    category,
                    is_public,
                    now,
                ),
            )
            conn.commit()
        created = self.get_template(str(template_id))
        if created is None:
            raise StoreError("Failed to load created template")
        return created

    def get_template(self, template_id: str) -> WorkflowTemplate | None:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM workflow_templates WHERE id::text = %s",
                (template_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_template(row)

    def list_templates(self) -> list[WorkflowTemplate]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM workflow_templates ORDER BY created_at ASC"
            ).fetchall()
        return [self._row_to_template(row) for row in rows]

    @contextmanager
    def _session(self) -> Iterator[Any]:
        try:
            with self._lock, self._connect() as conn:
                yield conn
        except self._psycopg.Error as exc:
            raise StoreError(f"PostgreSQL operation failed: {exc}") from exc

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _fetch_result_rows(conn: Any, workflow_id: str) -> list[Any]:
        return conn.execute(
            """
            SELECT *
            FROM workflow_results
            WHERE workflow_id::text = %s
            ORDER BY created_at ASC
            """,
            (workflow_id,),
        ).fetchall()

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json(raw: Any) -> Any:
        if isinstance(raw, str):
            return json.loads(raw)
        return raw

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _parse_datetime_optional(cls, raw: Any) -> datetime | None:
        if raw is None:
            return None
        return cls._parse_datetime(raw)

    @classmethod
    def _row_to_workflow(cls, row: Any, result_rows: list[Any]) -> Workflow:
        tasks = cls._parse_json(row.get("tasks_json")) or []
        file_ids = cls._parse_json(row.get("file_ids_json")) or []
        return Workflow(
            id=str(row["id"]),
            name=row["name"],
            description=row.get("description") or "",
            tasks=[Task.model_validate(item) for item in tasks if isinstance(item, dict)],
            file_ids=[str(item) for item in file_ids],
            status=row["status"],
            created_at=cls._parse_datetime(row["created_at"]),
            updated_at=cls._parse_datetime(row["updated_at"]),
            results=[cls._row_to_result(item) for item in result_rows],
        )

    @classmethod
    def _row_to_result(cls, row: Any) -> WorkflowResult:
        metrics = cls._parse_json(row.get("metrics_json"))
        return WorkflowResult(
            id=str(row["id"]),
            workflow_id=str(row["workflow_id"]),
            task_id=str(row["task_id"]),
            status=row["status"],
            output=row.get("output_json"),
            error=row.get("error"),
            metrics=metrics if isinstance(metrics, dict) else {},
            started_at=cls._parse_datetime_optional(row.get("started_at")),
            completed_at=cls._parse_datetime_optional(row.get("completed_at")),
            created_at=cls._parse_datetime(row["created_at"]),
        )

    @classmethod
    def _row_to_template(cls, row: Any) -> WorkflowTemplate:
        tasks = cls._parse_json(row.get("tasks_json")) or []
        return WorkflowTemplate(
            id=str(row["id"]),
            name=row["name"],
            description=row.get("description") or "",
            tasks=[TaskDefinition.model_validate(item) for item in tasks if isinstance(item, dict)],
            category=row.get("category"),
            is_public=bool(row.get("is_public")),
            created_at=cls._parse_datetime(row["created_at"]),
        )


def _dump_tasks(tasks: list[Task]) -> list[dict[str, Any]]:
    return [task.model_dump(mode="json") for task in tasks]
