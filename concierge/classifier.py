"""
Classify Node
=============

Entry node of the concierge graph. Decides the category, sub-key and
desired action of the current message, trying cheap deterministic stages
first and the LLM only as a last resort:

1. pending multi-turn flows (modification, cancel confirmation, code request)
2. keyword router
3. "I have a booking, can you check it?" intent
4. close-stage routing once a booking exists
5. short confirmations while a booking is in progress
6. greetings
7. sticky reservation context
8. heuristic, with the LLM fallback below the confidence threshold
"""

from typing import Any, Dict, Optional

from . import heuristic, keyword_router, sticky
from .llm_classifier import classify_with_model
from .modification_agent import detect_modification_field
from .ports import Ports
from .rules import (
    AFFIRMATIVE_RE,
    ANOTHER_CHANGE_RE,
    CANCEL_CONFIRM_RE,
    CLOSE_CANCEL_RE,
    CLOSE_MODIFY_RE,
    CLOSE_VIEW_RE,
    DONE_RE,
    NEGATIVE_RE,
    RESERVATION_WORD_RE,
    RouteDecision,
    extract_reservation_code,
    is_check_time_question,
    is_confirm_intent,
    is_greeting,
    is_hard_switch,
    is_verify_intent,
    looks_room_info,
    rule_named,
)
from .state import Category, ConciergeState, PROMPT_KEYS, StatePatch, valid_prompt_key
from .turn import has_active_reservation, is_quoting, last_reservation_of, slots_of
from logger_config import get_logger

logger = get_logger(__name__)

DEFAULT_LLM_THRESHOLD = 0.75
DEFAULT_STICKY_LOOKBACK = 3


def pick_prompt_key(category: Category, desired_action: str, text: str) -> Optional[str]:
    """Sub-key for a category when no stage supplied one."""
    if category == Category.RESERVATION:
        return "modify_reservation" if desired_action == "modify" else "reservation_flow"
    if category == Category.CANCEL_RESERVATION:
        return "modify_reservation"
    if category == Category.RETRIEVAL_BASED:
        return "room_info" if looks_room_info(text) else "ambiguity_policy"
    keys = PROMPT_KEYS.get(category, ())
    return keys[0] if keys else None


def _decision(category: Category, confidence: float, prompt_key: Optional[str] = None,
              desired_action: str = "none", reason: str = "") -> RouteDecision:
    return RouteDecision(
        category=category,
        confidence=confidence,
        prompt_key=prompt_key,
        desired_action=desired_action,
        reason=reason,
    )


# ======================================================
# PENDING FLOWS
# ======================================================

PENDING_META_CLEAR = {"mod_stage": None, "mod_field": None, "cancel_pending": None, "awaiting_reservation_code": None}


def switches_topic(text: str, meta: Dict[str, Any]) -> bool:
    """Whether the message drops the pending flow for another topic."""
    if keyword_router.matches(text) or is_check_time_question(text):
        return True
    # While a cancellation awaits confirmation, cancel words are the confirmation.
    return not meta.get("cancel_pending") and is_hard_switch(text)


def route_pending(text: str, meta: Dict[str, Any]) -> tuple:
    """
    Continue a multi-turn flow started on a previous turn.

    Returns ``(decision, meta_update)``; ``decision`` is None when the flow
    was abandoned and the rest of the pipeline should decide.
    """
    if any(meta.get(key) for key in PENDING_META_CLEAR) and switches_topic(text, meta):
        logger.info("Guest changed topic, leaving pending flow")
        return None, dict(PENDING_META_CLEAR)

    mod_stage = meta.get("mod_stage")
    if mod_stage == "ask_field":
        field = detect_modification_field(text)
        if field:
            return _decision(Category.MODIFY_RESERVATION_VALUE, 0.99, "ask_value", "modify", "mod_ask_field"), {
                "mod_field": field,
            }
        logger.info("No modifiable field detected, leaving modification flow")
        return None, {"mod_stage": None, "mod_field": None}

    if mod_stage == "ask_value":
        return _decision(Category.MODIFY_RESERVATION_CONFIRM, 0.99, "confirm", "modify", "mod_ask_value"), {}

    if mod_stage == "confirm":
        if ANOTHER_CHANGE_RE.search(text):
            return _decision(Category.MODIFY_RESERVATION_FIELD, 0.99, "ask_field", "modify", "mod_another"), {}
        if DONE_RE.search(text):
            return _decision(Category.RESERVATION_SNAPSHOT, 0.99, "reservation_snapshot", reason="mod_done"), {}
        if AFFIRMATIVE_RE.search(text):
            return _decision(Category.MODIFY_RESERVATION_FIELD, 0.99, "ask_field", "modify", "mod_another"), {}
        return _decision(Category.RESERVATION_SNAPSHOT, 0.99, "reservation_snapshot", reason="mod_done"), {}

    if meta.get("cancel_pending"):
        if NEGATIVE_RE.search(text) or CANCEL_CONFIRM_RE.search(text):
            return _decision(Category.CANCEL_RESERVATION, 0.99, "cancel_reservation", "cancel", "cancel_pending"), {}
        return None, {"cancel_pending": None}

    if meta.get("awaiting_reservation_code"):
        if extract_reservation_code(text):
            return _decision(Category.RESERVATION_VERIFY, 0.99, "reservation_verify", reason="code_given"), {}
        return None, {"awaiting_reservation_code": None}

    return None, {}


# ======================================================
# CLOSE STAGE
# ======================================================

def route_close_stage(text: str) -> tuple:
    """Routing once the booking is closed; returns ``(decision, new_arc)``."""
    if CLOSE_CANCEL_RE.search(text):
        return _decision(Category.CANCEL_RESERVATION, 0.95, "cancel_reservation", "cancel", "close_cancel"), False
    if CLOSE_MODIFY_RE.search(text):
        return _decision(Category.MODIFY_RESERVATION_FIELD, 0.95, "ask_field", "modify", "close_modify"), False
    if is_check_time_question(text):
        return _decision(Category.RETRIEVAL_BASED, 0.98, "room_info", reason="close_time_question"), False
    if CLOSE_VIEW_RE.search(text) and RESERVATION_WORD_RE.search(text):
        return _decision(Category.RESERVATION_SNAPSHOT, 0.99, "reservation_snapshot", reason="close_view"), False
    if rule_named("reserve").matches(text):
        return _decision(Category.RESERVATION, 0.9, "reservation_flow", "create", "close_new_arc"), True
    prompt_key = "room_info" if looks_room_info(text) else "ambiguity_policy"
    return _decision(Category.RETRIEVAL_BASED, 0.9, prompt_key, reason="close_other"), False


# ======================================================
# NODE
# ======================================================

async def _persist_meta(ports: Ports, state: ConciergeState, meta_update: Dict[str, Any]) -> None:
    """Flow bookkeeping decided here must survive even if the handler fails."""
    try:
        await ports.store.upsert(state["hotel_id"], state["conversation_id"], StatePatch(meta=meta_update))
    except Exception as e:
        logger.error("Failed to persist routing meta", error=str(e))


async def decide(
    state: ConciergeState,
    ports: Ports,
    llm_threshold: float = DEFAULT_LLM_THRESHOLD,
    sticky_lookback: int = DEFAULT_STICKY_LOOKBACK,
) -> dict:
    text = (state.get("normalized_message") or "").strip()
    lowered = text.lower()
    meta = state.get("meta") or {}
    slots = slots_of(state)
    updates: Dict[str, Any] = {}
    meta_update: Dict[str, Any] = {}
    source = "heuristic"

    decision, meta_update = route_pending(lowered, meta)

    if decision is None:
        decision = keyword_router.route(lowered)

    if decision is None and is_verify_intent(lowered):
        if last_reservation_of(state) or slots.has_any():
            decision = _decision(Category.RESERVATION_SNAPSHOT, 0.95, "reservation_snapshot", reason="verify_known")
        else:
            decision = _decision(Category.RESERVATION_VERIFY, 0.95, "reservation_verify", reason="verify_unknown")

    if decision is None and state.get("sales_stage") == "close":
        decision, new_arc = route_close_stage(lowered)
        if new_arc:
            logger.info("Starting a new booking after close")
            updates.update(reservation_slots={}, last_proposal=None, sales_stage="qualify")
            meta_update["expected_slot"] = None

    if decision is None and is_confirm_intent(lowered):
        if is_quoting(state):
            decision = _decision(Category.RESERVATION, 0.99, "reservation_flow", "create", "confirm_light")

    if decision is None and is_greeting(lowered):
        decision = _decision(Category.RETRIEVAL_BASED, 0.95, "ambiguity_policy", reason="greeting")

    if decision is None:
        # Once an arc ends with an empty form, earlier booking questions are no longer open.
        arc_closed = state.get("sales_stage") == "followup" and not slots.has_any()
        lookback = 0 if arc_closed else sticky_lookback
        decision = sticky.resolve(slots, lowered, state.get("messages") or [], lookback)

    if decision is None:
        decision = heuristic.classify(lowered)
        if decision.confidence < llm_threshold:
            model = await classify_with_model(text, ports.generation)
            if model is not None:
                category, prompt_key = model
                desired_action = decision.desired_action if decision.category == category else (
                    "create" if category == Category.RESERVATION
                    else "cancel" if category == Category.CANCEL_RESERVATION
                    else "none"
                )
                decision = RouteDecision(
                    category=category,
                    confidence=max(decision.confidence, 0.9),
                    prompt_key=prompt_key,
                    desired_action=desired_action,
                    source="llm",
                    reason="llm_fallback",
                )
                source = "llm"

    # A modify intent on a live booking enters the modification sub-path.
    if (
        decision.category == Category.RESERVATION
        and decision.desired_action == "modify"
        and has_active_reservation(state)
    ):
        decision = _decision(Category.MODIFY_RESERVATION_FIELD, decision.confidence, "ask_field", "modify", "modify_live")

    prompt_key = valid_prompt_key(decision.category, decision.prompt_key)
    if prompt_key is None and decision.source != "llm":
        prompt_key = pick_prompt_key(decision.category, decision.desired_action, lowered)

    logger.info(
        "Routing decided",
        category=decision.category.value,
        prompt_key=prompt_key,
        confidence=decision.confidence,
        source=source,
        reason=decision.reason,
    )
    updates.update(
        category=decision.category.value,
        prompt_key=prompt_key,
        desired_action=decision.desired_action,
        intent_confidence=decision.confidence,
        intent_source=source,
    )
    if decision.sales_stage and "sales_stage" not in updates:
        updates["sales_stage"] = decision.sales_stage
    if meta_update:
        updates["meta"] = meta_update
        await _persist_meta(ports, state, meta_update)
    return updates
