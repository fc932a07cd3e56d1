"""Built-in workflow templates."""

from __future__ import annotations

from datetime import UTC, datetime

from workflow_orchestrator.storage.models import TaskDefinition, TaskType, WorkflowTemplate

_BUILTIN_CREATED_AT = datetime(2024, 1, 1, tzinfo=UTC)

BUILTIN_TEMPLATES: tuple[WorkflowTemplate, ...] = (
    WorkflowTemplate(
        id="template-clean-analyze",
        name="Clean & Analyze Data",
        description="A standard workflow to clean raw data and generate initial analysis.",
        tasks=[
            TaskDefinition(name="Data Cleaning", type=TaskType.CLEAN, agent="CleaningAgent"),
            TaskDefinition(name="Schema Analysis", type=TaskType.ANALYZE, agent="SchemaAgent"),
            TaskDefinition(name="Generate Report", type=TaskType.REPORT, agent="ReportAgent"),
        ],
        category="Data Preparation",
        is_public=True,
        builtin=True,
        created_at=_BUILTIN_CREATED_AT,
    ),
    WorkflowTemplate(
        id="template-merge-validate",
        name="Merge & Validate Datasets",
        description="Combines multiple datasets and performs data validation checks.",
        tasks=[
            TaskDefinition(name="Data Merging", type=TaskType.MERGE, agent="MergeAgent"),
            TaskDefinition(name="Data Validation", type=TaskType.VALIDATE, agent="ValidationAgent"),
        ],
        category="Data Integration",
        is_public=True,
        builtin=True,
        created_at=_BUILTIN_CREATED_AT,
    ),
)


def builtin_template(template_id: str) -> WorkflowTemplate | None:
    for template in BUILTIN_TEMPLATES:
        if template.id == template_id:
            return template.model_copy(deep=True)
    return None
