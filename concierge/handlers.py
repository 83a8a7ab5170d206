"""
Knowledge Handlers
==================

Retrieval-augmented answers for the informational categories (amenities,
billing, support, general retrieval) and the cancellation flow.

All informational nodes share one template: search the hotel knowledge
base, answer from the passages with the generation model, ask a short
clarifying question when nothing is found and fall back to a localized
text on any failure.
"""

import re
from typing import Callable, Optional

from .i18n import reply
from .ports import Ports
from .prompt_loader import get_prompts
from .rules import NEGATIVE_RE
from .state import Category, ConciergeState, LastReservation, StatePatch
from .turn import (
    has_active_reservation,
    last_reservation_of,
    reply_language,
    respond,
    save_turn,
    slots_of,
)
from logger_config import get_logger

logger = get_logger(__name__)

POLICY_RE = re.compile(r"\b(pol[ií]tica|policy|pol[ií]ticas|policies|condiciones|conditions|condi[cç][õo]es)\b", re.I)


async def answer_from_knowledge(
    ports: Ports,
    state: ConciergeState,
    category: str,
    prompt_key: Optional[str],
) -> str:
    lang = reply_language(state)
    query = state.get("normalized_message") or ""
    hotel_id = state["hotel_id"]
    filters = {"category": category, "prompt_key": prompt_key}

    logger.info("Knowledge lookup", category=category, prompt_key=prompt_key, lang=lang)
    try:
        passages = await ports.retrieval.search(query, hotel_id, filters, lang)
        retrieved = "\n\n".join(p for p in passages or [] if p)
        if not retrieved:
            logger.info("No passages found, asking for clarification", category=category)
            return reply(f"clarify_{category}", lang)

        prompts = get_prompts()
        template = f"handlers.{prompt_key}" if prompt_key and prompts.has(f"handlers.{prompt_key}") else "handlers.default"
        system_prompt = prompts.format(template, retrieved=retrieved, query=query, language=lang)
        text = (await ports.generation.generate(system_prompt, query) or "").strip()
        return text or reply(f"fallback_{category}", lang)
    except Exception as e:
        logger.warning("Knowledge answer failed", category=category, error=str(e))
        return reply(f"fallback_{category}", lang)


def make_knowledge_node(category: Category) -> Callable:
    """Graph node answering ``category`` questions from the knowledge base."""

    async def knowledge_node(state: ConciergeState, ports: Ports) -> dict:
        text = await answer_from_knowledge(ports, state, category.value, state.get("prompt_key"))
        await save_turn(ports, state)
        return respond(text, reply_language(state))

    knowledge_node.__name__ = f"{category.value}_node"
    return knowledge_node


amenities_node = make_knowledge_node(Category.AMENITIES)
billing_node = make_knowledge_node(Category.BILLING)
support_node = make_knowledge_node(Category.SUPPORT)
retrieval_node = make_knowledge_node(Category.RETRIEVAL_BASED)


# ======================================================
# CANCELLATION
# ======================================================

async def _finish_pending_cancel(state: ConciergeState, ports: Ports, reservation: LastReservation, lang: str) -> dict:
    text = state.get("normalized_message") or ""
    meta = {"cancel_pending": None}

    if NEGATIVE_RE.search(text):
        await save_turn(ports, state, StatePatch(desired_action="none", meta=meta))
        return respond(reply("cancel_kept", lang, code=reservation.reservation_id), lang, meta=meta)

    try:
        cancelled = await ports.reservations.cancel(state["hotel_id"], reservation.reservation_id)
    except Exception as e:
        logger.error("Cancellation raised", error=str(e), reservation_id=reservation.reservation_id)
        cancelled = False

    if not cancelled:
        await save_turn(ports, state, StatePatch(sales_stage="followup", meta=meta))
        return respond(
            reply("cancel_failed", lang, code=reservation.reservation_id),
            lang,
            sales_stage="followup",
            meta=meta,
        )

    updated = reservation.model_copy(update={"status": "cancelled"})
    # The cancelled booking's form must not be confirmable again.
    cleared = {key: None for key in slots_of(state).model_dump()}
    meta["expected_slot"] = None
    logger.info("Reservation cancelled", reservation_id=reservation.reservation_id)
    await save_turn(ports, state, StatePatch(
        last_reservation=updated,
        reservation_slots=cleared,
        sales_stage="followup",
        meta=meta,
    ))
    return respond(
        reply("cancel_done", lang, code=reservation.reservation_id),
        lang,
        last_reservation=updated.model_dump(),
        reservation_slots=cleared,
        last_proposal=None,
        sales_stage="followup",
        meta=meta,
    )


async def cancel_reservation_node(state: ConciergeState, ports: Ports) -> dict:
    lang = reply_language(state)
    meta = state.get("meta") or {}
    text = state.get("normalized_message") or ""
    reservation = last_reservation_of(state)
    asks_policy = bool(POLICY_RE.search(text))

    if has_active_reservation(state) and meta.get("cancel_pending"):
        return await _finish_pending_cancel(state, ports, reservation, lang)

    if has_active_reservation(state) and not asks_policy:
        pending = {"cancel_pending": True, "mod_stage": None, "mod_field": None}
        await save_turn(ports, state, StatePatch(desired_action="cancel", meta=pending))
        return respond(
            reply("cancel_ask_confirm", lang, code=reservation.reservation_id),
            lang,
            desired_action="cancel",
            meta=pending,
        )

    policy = await answer_from_knowledge(ports, state, Category.CANCEL_RESERVATION.value, "cancellation_policy")
    slots = slots_of(state)
    if slots.has_any() and not asks_policy:
        logger.info("Discarding reservation draft")
        cleared = {key: None for key in slots.model_dump()}
        meta_update = {"expected_slot": None, "cancel_pending": None}
        await save_turn(ports, state, StatePatch(
            prompt_key="cancellation_policy",
            reservation_slots=cleared,
            sales_stage="qualify",
            meta=meta_update,
        ))
        return respond(
            f"{reply('draft_discarded', lang)}\n\n{policy}",
            lang,
            prompt_key="cancellation_policy",
            reservation_slots=cleared,
            sales_stage="qualify",
            meta=meta_update,
        )

    await save_turn(ports, state, StatePatch(prompt_key="cancellation_policy"))
    return respond(policy, lang, prompt_key="cancellation_policy")
