"""LangGraph state machine that walks a workflow's tasks in order."""

from langgraph.graph import END, StateGraph

from workflow_orchestrator.graph.nodes import execute, finalize, select
from workflow_orchestrator.graph.state import RunState


def build_run_graph():
    graph = StateGraph(RunState)

    graph.add_node("select", select.run)
    graph.add_node("execute", execute.run)
    graph.add_node("finalize", finalize.run)

    graph.set_entry_point("select")
    graph.add_conditional_edges(
        "select", select.route, {"execute": "execute", "finalize": "finalize"}
    )
    graph.add_conditional_edges(
        "execute", execute.route, {"select": "select", "finalize": "finalize"}
    )
    graph.add_edge("finalize", END)

    return graph.compile()


def recursion_limit_for(task_count: int) -> int:
    # select + execute per task, then select + finalize, with headroom.
    return 2 * task_count + 10
