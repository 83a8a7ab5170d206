"""
Turn helpers shared by the graph nodes: reading the graph state, choosing
the reply language and persisting the outcome of a turn.
"""

from typing import Any, Dict, Optional

from .i18n import resolve_reply_language
from .ports import Ports
from .state import (
    Category,
    ConciergeState,
    LastProposal,
    LastReservation,
    ReservationSlots,
    StatePatch,
)
from logger_config import get_logger

logger = get_logger(__name__)


def reply_language(state: ConciergeState) -> str:
    return resolve_reply_language(state.get("detected_language"), state.get("hotel_language"))


def slots_of(state: ConciergeState) -> ReservationSlots:
    return ReservationSlots(**(state.get("reservation_slots") or {}))


def last_reservation_of(state: ConciergeState) -> Optional[LastReservation]:
    data = state.get("last_reservation")
    return LastReservation(**data) if data else None


def last_proposal_of(state: ConciergeState) -> Optional[LastProposal]:
    data = state.get("last_proposal")
    return LastProposal(**data) if data else None


def has_active_reservation(state: ConciergeState) -> bool:
    reservation = last_reservation_of(state)
    return bool(reservation and reservation.status == "created")


def is_quoting(state: ConciergeState) -> bool:
    """A quote is waiting for the guest's confirmation and nothing rules it out."""
    if state.get("sales_stage") != "quote":
        return False
    proposal = last_proposal_of(state)
    return proposal is None or proposal.available


def routing_fields(state: ConciergeState) -> Dict[str, Any]:
    return {
        "category": Category.parse(state.get("category")),
        "prompt_key": state.get("prompt_key"),
        "desired_action": state.get("desired_action") or "none",
        "intent_confidence": state.get("intent_confidence", 0.0),
        "intent_source": state.get("intent_source") or "heuristic",
        "normalized_message": state.get("normalized_message") or "",
        "detected_language": state.get("detected_language") or "es",
    }


async def save_turn(ports: Ports, state: ConciergeState, patch: Optional[StatePatch] = None) -> None:
    """
    Persist the routing outcome of this turn plus the node's own ``patch``.

    Fields set explicitly on ``patch`` win over the routing fields. A failing
    store is logged and never breaks the reply.
    """
    data = routing_fields(state)
    if patch is not None:
        data.update(patch.model_dump(exclude_unset=True))
    try:
        await ports.store.upsert(state["hotel_id"], state["conversation_id"], StatePatch(**data))
    except Exception as e:
        logger.error(
            "Failed to persist conversation state",
            error=str(e),
            hotel_id=state.get("hotel_id"),
            conversation_id=state.get("conversation_id"),
        )


def respond(text: str, lang: str, **updates: Any) -> Dict[str, Any]:
    """Graph-state update carrying the reply and anything the node changed."""
    return {
        "response": text,
        "response_language": lang,
        "messages": [{"role": "assistant", "content": text}],
        **updates,
    }
