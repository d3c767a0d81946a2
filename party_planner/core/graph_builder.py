from typing import Any, Dict, MutableMapping, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langgraph.checkpoint.memory import InMemorySaver
from langgraph.graph import END, START, StateGraph

from party_planner.core.nodes import (
    make_dev_command_node,
    make_extraction_node,
    make_finalize_node,
    make_gathering_node,
    make_planning_node,
    make_standby_node,
    route_after_dev_commands,
    route_by_phase,
)
from party_planner.core.schemas import TurnContext, TurnState
from party_planner.core.selection import LLMServiceSelector, ServiceSelector
from party_planner.services.catalog import ServiceCatalog


def build_planner_graph(
    *,
    llm: BaseChatModel,
    catalog: ServiceCatalog,
    selector: Optional[ServiceSelector] = None,
    snapshots: Optional[MutableMapping[str, Dict[str, Any]]] = None,
    memory: Optional[InMemorySaver] = None,
) -> Any:
    """Wire the per-turn nodes into a compiled LangGraph state machine."""

    selector = selector or LLMServiceSelector(llm)

    graph_builder = StateGraph(state_schema=TurnState, context_schema=TurnContext)

    graph_builder.add_node("dev_commands", make_dev_command_node(snapshots if snapshots is not None else {}))
    graph_builder.add_node("extract", make_extraction_node(llm))
    graph_builder.add_node("gathering", make_gathering_node())
    graph_builder.add_node("planning", make_planning_node(llm, selector, catalog))
    graph_builder.add_node("standby", make_standby_node(llm, selector))
    graph_builder.add_node("finalize", make_finalize_node())

    graph_builder.add_edge(START, "dev_commands")
    graph_builder.add_conditional_edges(
        "dev_commands",
        route_after_dev_commands,
        {"finalize": "finalize", "planning": "planning", "extract": "extract"},
    )

    # One branch per conversation phase
    graph_builder.add_conditional_edges(
        "extract",
        route_by_phase,
        {"gathering": "gathering", "planning": "planning", "standby": "standby"},
    )
    graph_builder.add_edge("gathering", "finalize")
    graph_builder.add_edge("planning", "finalize")
    graph_builder.add_edge("standby", "finalize")
    graph_builder.add_edge("finalize", END)

    # Conversation state lives in the service, so no checkpointer by default
    return graph_builder.compile(checkpointer=memory)
