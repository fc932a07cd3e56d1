"""Run graph assembly."""

from workflow_orchestrator.graph.context import CONTEXT_KEY, RunContext
from workflow_orchestrator.graph.state import RunState, initial_run_state
from workflow_orchestrator.graph.workflow import build_run_graph, recursion_limit_for

__all__ = [
    "CONTEXT_KEY",
    "RunContext",
    "RunState",
    "build_run_graph",
    "initial_run_state",
    "recursion_limit_for",
]
