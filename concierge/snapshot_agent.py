"""
Reservation Snapshot and Verification
=====================================

Shows the guest what the concierge knows about their booking: the confirmed
reservation with its code, or the request still in progress. When nothing is
known the guest is asked for a booking code, which the front desk verifies.
"""

from typing import Optional

from .i18n import reply
from .ports import Ports
from .rules import extract_reservation_code
from .slots import iso_to_display, localize_room_type
from .state import ConciergeState, ReservationSlots, StatePatch
from .turn import last_reservation_of, reply_language, respond, save_turn, slots_of
from logger_config import get_logger

logger = get_logger(__name__)

# Modification sub-path keys cleared whenever a snapshot closes it.
MODIFICATION_META_CLEAR = {"mod_stage": None, "mod_field": None}


def format_reservation_snapshot(
    slots: ReservationSlots,
    lang: str,
    code: Optional[str] = None,
    confirmed: bool = False,
    cancelled: bool = False,
    add_confirm_hint: bool = False,
) -> str:
    """
    Render a booking as a short list.

    Confirmed bookings use lowercase labels and include the code; requests in
    progress say so and may end with the "CONFIRMAR" hint once room type and
    dates are known.
    """
    name = slots.guest_name or "-"
    room = localize_room_type(slots.room_type, lang)
    check_in = iso_to_display(slots.check_in)
    check_out = iso_to_display(slots.check_out)
    guests = str(slots.num_guests) if slots.num_guests else "-"

    labels = {key: reply(f"label_{key}", lang) for key in ("name", "room", "dates", "guests", "code")}

    if confirmed or cancelled:
        header = reply("snapshot_cancelled_header" if cancelled else "snapshot_confirmed_header", lang)
        return (
            f"{header}\n\n"
            f"- {labels['name']}: {name}\n"
            f"- {labels['room']}: {room}\n"
            f"- {labels['dates']}: {check_in} → {check_out}\n"
            f"- {labels['guests']}: {guests}\n"
            f"- {labels['code']}: {code or '-'}"
        )

    text = (
        f"{reply('snapshot_draft_header', lang)}\n\n"
        f"- {labels['name'].capitalize()}: {name}\n"
        f"- {labels['room'].capitalize()}: {room}\n"
        f"- {labels['dates'].capitalize()}: {check_in} → {check_out}\n"
        f"- {labels['guests'].capitalize()}: {guests}"
    )
    has_core = slots.has("room_type") and slots.has("check_in") and slots.has("check_out")
    if add_confirm_hint and has_core:
        text += f"\n\n{reply('snapshot_confirm_hint', lang)}"
    return text


def snapshot_for_state(state: ConciergeState, lang: str, add_confirm_hint: bool = True) -> Optional[str]:
    """Snapshot of the stored booking or draft, or None when there is neither."""
    slots = slots_of(state)
    reservation = last_reservation_of(state)
    if reservation:
        return format_reservation_snapshot(
            slots,
            lang,
            code=reservation.reservation_id,
            confirmed=reservation.status == "created",
            cancelled=reservation.status == "cancelled",
        )
    if slots.has_any():
        return format_reservation_snapshot(slots, lang, add_confirm_hint=add_confirm_hint)
    return None


async def _ask_for_code(ports: Ports, state: ConciergeState, lang: str) -> dict:
    meta = {"awaiting_reservation_code": True, **MODIFICATION_META_CLEAR}
    await save_turn(ports, state, StatePatch(meta=meta))
    return respond(reply("verify_ask_code", lang), lang, meta=meta)


async def reservation_snapshot_node(state: ConciergeState, ports: Ports) -> dict:
    lang = reply_language(state)
    text = snapshot_for_state(state, lang)
    if text is None:
        logger.info("No booking to show, asking for a code")
        return await _ask_for_code(ports, state, lang)

    await save_turn(ports, state, StatePatch(meta=dict(MODIFICATION_META_CLEAR)))
    return respond(text, lang, meta=dict(MODIFICATION_META_CLEAR))


async def reservation_verify_node(state: ConciergeState, ports: Ports) -> dict:
    lang = reply_language(state)
    code = extract_reservation_code(state.get("normalized_message") or "")
    if not code:
        return await _ask_for_code(ports, state, lang)

    reservation = last_reservation_of(state)
    if reservation and reservation.reservation_id.upper() == code.upper():
        text = snapshot_for_state(state, lang)
    else:
        text = reply("verify_ack_code", lang, code=code)

    # Staff pick up reported codes from meta.
    meta = {"awaiting_reservation_code": None, "reported_reservation_code": code}
    logger.info("Reservation code reported", code=code)
    await save_turn(ports, state, StatePatch(meta=meta))
    return respond(text, lang, meta=meta)
