"""
Reservation Modification
========================

Three-step sub-path for changing a booking across turns:

    ask_field -> ask_value -> confirm -> (ask_field | snapshot)

Changes are applied to the stored slots and recorded in
``meta.pending_modification`` for the front desk to apply in the PMS.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .i18n import reply
from .ports import Ports
from .slots import (
    clamp_guests,
    dates_are_valid,
    extract_slots,
    is_safe_guest_name,
    normalize_name_case,
)
from .snapshot_agent import snapshot_for_state
from .state import ConciergeState, StatePatch
from .turn import last_reservation_of, reply_language, respond, save_turn, slots_of
from logger_config import get_logger

logger = get_logger(__name__)

MODIFIABLE_FIELDS = {
    "dates": re.compile(r"\b(fechas?|dates?|datas?|d[ií]as?|days?|check-?in|check-?out|noches?|nights?)\b", re.I),
    "guest_name": re.compile(r"\b(nombre|name|nome|titular)\b", re.I),
    "room_type": re.compile(r"\b(habitaci[oó]n|room|quarto|tipo)\b", re.I),
    "num_guests": re.compile(r"\b(hu[eé]spedes|h[oó]spedes|guests?|personas|pessoas|people|pax|cantidad)\b", re.I),
}

# Slot the extractor should treat as "being answered" for each field.
_FIELD_EXPECTED_SLOT = {
    "dates": "check_in",
    "guest_name": "guest_name",
    "room_type": "room_type",
    "num_guests": "num_guests",
}
_FIELD_SLOTS = {
    "dates": ("check_in", "check_out"),
    "guest_name": ("guest_name",),
    "room_type": ("room_type",),
    "num_guests": ("num_guests",),
}


def detect_modification_field(text: str) -> Optional[str]:
    for field, pattern in MODIFIABLE_FIELDS.items():
        if pattern.search(text or ""):
            return field
    return None


def parse_new_value(field: str, text: str, state: ConciergeState) -> Dict[str, Any]:
    """Slot values the guest gave for ``field``; empty when nothing usable was found."""
    current = slots_of(state)
    extracted = extract_slots(text, _FIELD_EXPECTED_SLOT[field], current, desired_action="modify")
    values = {k: getattr(extracted, k) for k in _FIELD_SLOTS[field] if extracted.has(k)}

    if field == "guest_name" and not values:
        candidate = (text or "").strip()
        if is_safe_guest_name(candidate) and len(candidate.split()) <= 4:
            values["guest_name"] = normalize_name_case(candidate)

    if field == "num_guests" and values:
        room_type = current.room_type
        values["num_guests"] = clamp_guests(values["num_guests"], room_type)

    if field == "dates" and values:
        check_in = values.get("check_in", current.check_in)
        check_out = values.get("check_out", current.check_out)
        if not dates_are_valid(check_in, check_out):
            logger.info("Rejected modified dates", check_in=check_in, check_out=check_out)
            return {}
    return values


def _field_label(field: Optional[str], lang: str) -> str:
    return reply(f"field_{field}", lang) if field else "-"


async def ask_field_node(state: ConciergeState, ports: Ports) -> dict:
    lang = reply_language(state)
    meta = {"mod_stage": "ask_field", "mod_field": None, "cancel_pending": None}
    await save_turn(ports, state, StatePatch(desired_action="modify", meta=meta))
    return respond(reply("ask_field", lang), lang, desired_action="modify", meta=meta)


async def ask_value_node(state: ConciergeState, ports: Ports) -> dict:
    lang = reply_language(state)
    field = (state.get("meta") or {}).get("mod_field")
    meta = {"mod_stage": "ask_value", "mod_field": field}
    await save_turn(ports, state, StatePatch(desired_action="modify", meta=meta))
    return respond(reply("ask_value", lang, field=_field_label(field, lang)), lang, desired_action="modify", meta=meta)


async def confirm_modification_node(state: ConciergeState, ports: Ports) -> dict:
    lang = reply_language(state)
    field = (state.get("meta") or {}).get("mod_field")
    text = state.get("normalized_message") or ""

    values = parse_new_value(field, text, state) if field in _FIELD_SLOTS else {}
    if not values:
        meta = {"mod_stage": "ask_value", "mod_field": field}
        await save_turn(ports, state, StatePatch(desired_action="modify", meta=meta))
        return respond(
            reply("invalid_value", lang, field=_field_label(field, lang)),
            lang,
            desired_action="modify",
            meta=meta,
        )

    slots = slots_of(state).model_copy(update=values)
    reservation = last_reservation_of(state)
    pending = {
        "field": field,
        "values": values,
        "reservation_id": reservation.reservation_id if reservation else None,
        "requested_at": datetime.now(timezone.utc).isoformat(),
    }
    logger.info("Modification recorded", field=field, reservation_id=pending["reservation_id"])

    meta = {"mod_stage": "confirm", "mod_field": None, "pending_modification": pending}
    await save_turn(ports, state, StatePatch(
        desired_action="modify",
        reservation_slots=slots.model_dump(),
        meta=meta,
    ))

    updated_state = {**state, "reservation_slots": slots.model_dump()}
    snapshot = snapshot_for_state(updated_state, lang, add_confirm_hint=False)
    return respond(
        f"{snapshot}\n{reply('modify_another', lang)}",
        lang,
        desired_action="modify",
        reservation_slots=slots.model_dump(),
        meta=meta,
    )
