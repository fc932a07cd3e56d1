"""Pydantic schemas for the remote task backend contract."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from workflow_orchestrator.storage.models import TaskType


class StrictModel(BaseModel):
    """Base model for strict schema validation."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class TaskExecutionConfig(StrictModel):
    agent: str | None = None
    description: str = ""


class TaskExecutionRequest(StrictModel):
    task_type: TaskType = Field(alias="taskType")
    input_data: Any = Field(default=None, alias="inputData")
    config: TaskExecutionConfig = Field(default_factory=TaskExecutionConfig)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class BackendResponse(BaseModel):
    """Envelope returned by the backend; ``output`` itself stays opaque."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    output: Any = None
    records_processed: int = Field(default=0, alias="recordsProcessed")
    errors_found: list[str] = Field(default_factory=list, alias="errorsFound")
    error_count: int = Field(default=0, alias="errorCount")

    @field_validator("records_processed", mode="before")
    @classmethod
    def _records_default(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("errors_found", mode="before")
    @classmethod
    def _errors_as_list(cls, value: Any) -> Any:
        if value is None or isinstance(value, (int, float)):
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, list):
            return [item if isinstance(item, str) else str(item) for item in value]
        return value

    def resolved_error_count(self, raw_errors_found: Any) -> int:
        # Older backends report errorsFound as a bare count.
        if isinstance(raw_errors_found, int) and not isinstance(raw_errors_found, bool):
            return raw_errors_found
        return max(self.error_count, len(self.errors_found))


class TaskMetrics(BaseModel):
    processing_time_ms: float = Field(ge=0.0)
    records_processed: int = Field(default=0, ge=0)
    errors_found: list[str] = Field(default_factory=list)
    error_count: int = Field(default=0, ge=0)

    def to_result_metrics(self) -> dict[str, Any]:
        return {
            "processingTimeMs": self.processing_time_ms,
            "recordsProcessed": self.records_processed,
            "errorsFound": list(self.errors_found),
            "errorCount": self.error_count,
        }


class TaskExecutionResult(BaseModel):
    task_id: str
    status: Literal["completed", "failed"]
    output: Any = None
    metrics: TaskMetrics | None = None
    error: str | None = None
