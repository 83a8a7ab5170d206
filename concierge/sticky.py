"""
Sticky-Context Resolver
=======================

Keeps a guest inside the reservation flow while slots are being collected,
so short answers like "Marcelo Martinez" or "15/11" are not misrouted.
Time questions and hard topic switches escape the flow.
"""

from typing import Dict, List, Optional

from .rules import (
    DATE_HINT_RE,
    RESERVATION_QUESTION_RE,
    ROOM_HINT_RE,
    RouteDecision,
    is_check_time_question,
    is_greeting,
    is_hard_switch,
    rule_named,
)
from .slots import looks_like_name
from .state import Category, ReservationSlots
from logger_config import get_logger

logger = get_logger(__name__)

STICKY_CONFIDENCE = 0.95


def recent_reservation_question(messages: List[Dict[str, str]], lookback: int = 3) -> bool:
    """True if one of the last ``lookback`` assistant turns asked about the booking."""
    assistant = [m.get("content") or "" for m in (messages or []) if m.get("role") == "assistant"]
    for content in assistant[-lookback:] if lookback > 0 else []:
        if "?" in content and RESERVATION_QUESTION_RE.search(content):
            return True
    return False


def resolve(
    slots: Optional[ReservationSlots],
    normalized_text: str,
    messages: List[Dict[str, str]],
    lookback: int = 3,
) -> Optional[RouteDecision]:
    slots = slots or ReservationSlots()
    text = normalized_text or ""
    # The guest count is asked last and still counts as part of the form.
    if not slots.missing_fields() or not text.strip() or is_greeting(text):
        return None

    if is_check_time_question(text):
        return RouteDecision(
            category=Category.RETRIEVAL_BASED,
            confidence=0.98,
            prompt_key="room_info",
            reason="check_time_question",
        )
    if is_hard_switch(text):
        return None

    has_date_or_room = bool(DATE_HINT_RE.search(text) or ROOM_HINT_RE.search(text))
    if recent_reservation_question(messages, lookback):
        reason = "assistant_asked"
    elif looks_like_name(text):
        reason = "bare_name"
    elif has_date_or_room or rule_named("reserve").matches(text):
        reason = "reservation_hint"
    else:
        return None

    logger.info("Sticky reservation context", reason=reason)
    return RouteDecision(
        category=Category.RESERVATION,
        confidence=STICKY_CONFIDENCE,
        prompt_key="reservation_flow",
        desired_action="create",
        sales_stage="quote" if has_date_or_room else "qualify",
        reason=reason,
    )
