"""LangGraph StateGraph — compile the matchmaking turn graph."""

from __future__ import annotations

from langgraph.graph import END, START, StateGraph

from mabar.agent.logic import LogicAgent
from mabar.agent.nodes import make_nodes, should_execute
from mabar.agent.presenter import PresenterAgent
from mabar.agent.state import TurnState


def create_graph(logic: LogicAgent, presenter: PresenterAgent):
    """
    Build and compile the turn graph.

    Graph flow:
        START → analyze_input → reason ─┬→ ask → END
                                        └→ execute_toolbox → negotiate → present → END
    """
    nodes = make_nodes(logic, presenter)

    graph = StateGraph(TurnState)

    for name, fn in nodes.items():
        graph.add_node(name, fn)

    graph.add_edge(START, "analyze_input")
    graph.add_edge("analyze_input", "reason")
    graph.add_conditional_edges("reason", should_execute, ["ask", "execute_toolbox"])
    graph.add_edge("ask", END)
    graph.add_edge("execute_toolbox", "negotiate")
    graph.add_edge("negotiate", "present")
    graph.add_edge("present", END)
    return graph.compile()
