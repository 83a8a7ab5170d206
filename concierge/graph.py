"""
Agent Graph Setup
=================

Configures and compiles the LangGraph concierge workflow:

    classify -> one handler per category -> END

The modification sub-path is the one loop, and it runs across turns:
ask-field -> ask-value -> confirm -> ask-field | reservation-snapshot. Each
handler ends the turn after writing ``meta.mod_stage``, and ``classify``
reads it on the next message to pick the following step.

Nodes receive their ports through closures, so a graph is built per
``Ports`` bundle and tests can compile one over fakes.
"""

from typing import Callable, Optional

from langgraph.checkpoint.memory import MemorySaver
from langgraph.graph import END, StateGraph

from .classifier import decide
from .config import Settings, get_settings
from .handlers import amenities_node, billing_node, cancel_reservation_node, retrieval_node, support_node
from .langfuse_tracking import track_agent
from .modification_agent import ask_field_node, ask_value_node, confirm_modification_node
from .ports import Ports
from .reservation_agent import reservation_node
from .snapshot_agent import reservation_snapshot_node, reservation_verify_node
from .state import Category, ConciergeState
from logger_config import get_logger

logger = get_logger(__name__)

HANDLERS = {
    Category.RESERVATION: reservation_node,
    Category.RESERVATION_SNAPSHOT: reservation_snapshot_node,
    Category.RESERVATION_VERIFY: reservation_verify_node,
    Category.CANCEL_RESERVATION: cancel_reservation_node,
    Category.AMENITIES: amenities_node,
    Category.BILLING: billing_node,
    Category.SUPPORT: support_node,
    Category.RETRIEVAL_BASED: retrieval_node,
    Category.MODIFY_RESERVATION_FIELD: ask_field_node,
    Category.MODIFY_RESERVATION_VALUE: ask_value_node,
    Category.MODIFY_RESERVATION_CONFIRM: confirm_modification_node,
}


def route_from_classify(state: ConciergeState) -> str:
    """Dispatch to the node named after the decided category."""
    category = Category.parse(state.get("category"))
    if category is None:
        logger.warning("Unknown category after classify", category=state.get("category"))
        return Category.RETRIEVAL_BASED.value
    return category.value


def _bind(name: str, handler: Callable, ports: Ports) -> Callable:
    @track_agent(name)
    async def node(state: ConciergeState) -> dict:
        return await handler(state, ports)

    node.__name__ = name
    return node


def build_agent_graph(ports: Ports, settings: Optional[Settings] = None, checkpointer=None):
    settings = settings or get_settings()

    @track_agent("classify")
    async def classify_node(state: ConciergeState) -> dict:
        return await decide(
            state,
            ports,
            llm_threshold=settings.llm_fallback_threshold,
            sticky_lookback=settings.sticky_lookback,
        )

    graph = StateGraph(ConciergeState)

    graph.add_node("classify", classify_node)
    for category, handler in HANDLERS.items():
        graph.add_node(category.value, _bind(category.value, handler, ports))

    graph.set_entry_point("classify")

    graph.add_conditional_edges(
        "classify",
        route_from_classify,
        {category.value: category.value for category in HANDLERS},
    )

    # Every handler finishes the turn; the next message re-enters at classify.
    for category in HANDLERS:
        graph.add_edge(category.value, END)

    compiled = graph.compile(checkpointer=checkpointer or MemorySaver())
    logger.info("LangGraph concierge graph compiled.", nodes=len(HANDLERS) + 1)
    return compiled
