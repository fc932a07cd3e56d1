"""HTTP surface for the workflow orchestrator."""

from workflow_orchestrator.api.main import create_app

__all__ = ["create_app"]
