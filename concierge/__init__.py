"""
Hotel Concierge Package
"""

from .state import Category, ConciergeState, ConversationState, ReservationSlots, StatePatch
from .ports import Ports
from .graph import build_agent_graph, route_from_classify
from .service import ChatService, ChatServiceResponse
from .state_store import InMemoryConversationStore
from .prompt_loader import get_prompts, PromptLoader

__all__ = [
    "Category",
    "ConciergeState",
    "ConversationState",
    "ReservationSlots",
    "StatePatch",
    "Ports",
    "build_agent_graph",
    "route_from_classify",
    "ChatService",
    "ChatServiceResponse",
    "InMemoryConversationStore",
    "get_prompts",
    "PromptLoader",
]
