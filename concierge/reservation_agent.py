"""
Reservation Agent
=================

Slot-filling engine for new bookings:

1. collecting: extract slots from the message and ask for the first missing one
2. quoting: check availability and present a proposal (or alternatives)
3. confirming: on "CONFIRMAR" with complete slots, create the booking

Every turn persists the merged slots so the next message continues the form.
"""

import json
import re
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .i18n import reply
from .ports import AvailabilityRequest, AvailabilityResult, Ports
from .prompt_loader import get_prompts
from .questions import build_single_slot_question, ensure_safe_question, question_mentions_slot
from .rules import is_confirm_intent, is_greeting
from .slots import (
    canonical_room_type,
    clamp_guests,
    dates_are_valid,
    extract_slots,
    first_name_of,
    infer_expected_slot,
    iso_to_display,
    is_safe_guest_name,
    localize_room_type,
    nights_between,
    normalize_name_case,
)
from .state import (
    ConciergeState,
    LastProposal,
    LastReservation,
    ProposalOption,
    ReservationSlots,
    StatePatch,
    ToolCall,
    coerce_guest_count,
)
from .turn import is_quoting, reply_language, respond, save_turn, slots_of
from logger_config import get_logger

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ======================================================
# MODEL-ASSISTED EXTRACTION
# ======================================================

def _is_trivial(text: str) -> bool:
    t = (text or "").strip()
    return len(t) < 3 or is_confirm_intent(t) or is_greeting(t)


def _clean_model_slots(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only well-formed values from the model's slot JSON."""
    out: Dict[str, Any] = {}
    name = raw.get("guest_name")
    if isinstance(name, str) and is_safe_guest_name(name):
        out["guest_name"] = normalize_name_case(name)
    room = raw.get("room_type")
    if isinstance(room, str):
        canonical = canonical_room_type(room)
        if canonical:
            out["room_type"] = canonical
    for key in ("check_in", "check_out"):
        value = raw.get(key)
        if isinstance(value, str) and _ISO_DATE_RE.match(value.strip()):
            try:
                out[key] = date.fromisoformat(value.strip()).isoformat()
            except ValueError:
                continue
    guests = coerce_guest_count(raw.get("num_guests"))
    if guests:
        out["num_guests"] = guests
    return out


async def model_assisted_extraction(
    ports: Ports,
    text: str,
    expected_slot: Optional[str],
    current: ReservationSlots,
    lang: str,
    allow_overwrite: bool = False,
) -> Tuple[ReservationSlots, Optional[str]]:
    """Ask the generation model for slots and a follow-up question; failures are ignored."""
    system = get_prompts().format(
        "slot_extraction.system",
        today=date.today().isoformat(),
        current=json.dumps(current.present_values(), ensure_ascii=False),
        expected=expected_slot or "none",
        language=lang,
    )
    try:
        raw = await ports.generation.generate(system, text)
        match = _OBJECT_RE.search(_FENCE_RE.sub("", (raw or "").strip()))
        data = json.loads(match.group(0)) if match else {}
    except Exception as e:
        logger.warning("Model-assisted slot extraction failed", error=str(e))
        return ReservationSlots(), None
    if not isinstance(data, dict):
        return ReservationSlots(), None

    slots = _clean_model_slots(data.get("slots") or {}) if isinstance(data.get("slots"), dict) else {}
    if not allow_overwrite:
        slots = {
            k: v for k, v in slots.items()
            if not current.has(k) or k == expected_slot or getattr(current, k) == v
        }
    question = data.get("question") if isinstance(data.get("question"), str) else None
    logger.info("Model-assisted extraction", slots=list(slots), has_question=bool(question))
    return ReservationSlots(**slots), question


# ======================================================
# RENDERING
# ======================================================

def _fmt_amount(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


def render_proposal(result: AvailabilityResult, slots: ReservationSlots, lang: str) -> str:
    """First option with nightly rate and total, or the port's own text."""
    option = result.options[0] if result.options else None
    room_type = (option.room_type if option and option.room_type else None) or slots.room_type
    room = localize_room_type(room_type, lang)
    if option and option.price_per_night is not None:
        nights = nights_between(slots.check_in, slots.check_out)
        return reply(
            "proposal_priced",
            lang,
            room=room,
            price=_fmt_amount(option.price_per_night),
            currency=(option.currency or "").upper(),
            nights=nights,
            total=_fmt_amount(option.price_per_night * nights),
        )
    if result.proposal_text:
        return result.proposal_text
    return reply(
        "proposal_plain",
        lang,
        room=room,
        check_in=iso_to_display(slots.check_in),
        check_out=iso_to_display(slots.check_out),
    )


def render_alternatives(options: List[ProposalOption], slots: ReservationSlots, lang: str) -> str:
    lines = [reply("alternatives_header", lang)]
    for option in options:
        line = reply(
            "alternative_line",
            lang,
            room=localize_room_type(option.room_type or slots.room_type, lang),
            check_in=iso_to_display(option.check_in or slots.check_in),
            check_out=iso_to_display(option.check_out or slots.check_out),
        )
        if option.price_per_night is not None:
            line += reply(
                "price_suffix",
                lang,
                price=_fmt_amount(option.price_per_night),
                currency=(option.currency or "").upper(),
            )
        lines.append(line)
    return "\n".join(lines)


# ======================================================
# STAGES
# ======================================================

def _slots_patch(slots: ReservationSlots) -> Dict[str, Any]:
    # Full dump: absent slots are written as None so stale values are unset.
    return slots.model_dump()


async def ask_missing_slot(
    ports: Ports,
    state: ConciergeState,
    slots: ReservationSlots,
    lang: str,
    model_question: Optional[str] = None,
) -> dict:
    missing = slots.missing_fields()[0]
    question = model_question if question_mentions_slot(model_question, missing) else None
    question = ensure_safe_question(question or build_single_slot_question(missing, lang), missing, lang)

    meta = {"expected_slot": missing}
    await save_turn(ports, state, StatePatch(
        reservation_slots=_slots_patch(slots),
        sales_stage="qualify",
        meta=meta,
    ))
    return respond(question, lang, reservation_slots=slots.model_dump(), sales_stage="qualify", meta=meta)


async def _probe_adjacent_dates(
    ports: Ports,
    hotel_id: str,
    request: AvailabilityRequest,
) -> Optional[ProposalOption]:
    """Try the same stay one day earlier and one day later."""
    for shift in (-1, 1):
        try:
            check_in = date.fromisoformat(request.check_in) + timedelta(days=shift)
            check_out = date.fromisoformat(request.check_out) + timedelta(days=shift)
        except ValueError:
            return None
        if check_in < date.today():
            continue
        probe = AvailabilityRequest(
            room_type=request.room_type,
            check_in=check_in.isoformat(),
            check_out=check_out.isoformat(),
            num_guests=request.num_guests,
            locale=request.locale,
        )
        try:
            result = await ports.availability.check_availability(hotel_id, probe)
        except Exception as e:
            logger.warning("Adjacent-date probe failed", shift=shift, error=str(e))
            continue
        if result.ok and result.available:
            first = result.options[0] if result.options else ProposalOption()
            return ProposalOption(
                room_type=first.room_type or request.room_type,
                price_per_night=first.price_per_night,
                currency=first.currency,
                check_in=probe.check_in,
                check_out=probe.check_out,
            )
    return None


async def quote(ports: Ports, state: ConciergeState, slots: ReservationSlots, lang: str) -> dict:
    """Check availability for complete slots and persist the proposal."""
    hotel_id = state["hotel_id"]

    if slots.num_guests:
        clamped = clamp_guests(slots.num_guests, slots.room_type)
        if clamped != slots.num_guests:
            logger.info("Clamping guests to room capacity", requested=slots.num_guests, clamped=clamped)
            slots = slots.model_copy(update={"num_guests": clamped})
    guests = clamp_guests(slots.num_guests, slots.room_type)

    request = AvailabilityRequest(
        room_type=slots.room_type,
        check_in=slots.check_in,
        check_out=slots.check_out,
        num_guests=guests,
        locale=lang,
    )
    try:
        result = await ports.availability.check_availability(hotel_id, request)
    except Exception as e:
        logger.error("Availability check failed", error=str(e), hotel_id=hotel_id)
        result = AvailabilityResult(ok=False)

    if not result.ok:
        meta = {"expected_slot": None}
        await save_turn(ports, state, StatePatch(
            reservation_slots=_slots_patch(slots),
            sales_stage="followup",
            meta=meta,
        ))
        return respond(
            reply("availability_error", lang),
            lang,
            reservation_slots=slots.model_dump(),
            sales_stage="followup",
            meta=meta,
        )

    options = list(result.options)
    if result.available:
        text = render_proposal(result, slots, lang)
        if not slots.num_guests:
            text += f"\n\n{build_single_slot_question('num_guests', lang)}"
            meta = {"expected_slot": "num_guests"}
        else:
            text += f"\n\n{reply('confirm_cta', lang)}"
            meta = {"expected_slot": None}
    else:
        meta = {"expected_slot": None}
        text = result.proposal_text or reply("unavailable", lang)
        if options:
            text += f"\n\n{render_alternatives(options, slots, lang)}"
        else:
            alternative = await _probe_adjacent_dates(ports, hotel_id, request)
            if alternative:
                options = [alternative]
                text += "\n\n" + reply(
                    "probe_found",
                    lang,
                    check_in=iso_to_display(alternative.check_in),
                    check_out=iso_to_display(alternative.check_out),
                )
            else:
                text += f"\n\n{reply('probe_none', lang)}"
        text += f"\n\n{reply('handoff', lang)}"

    proposal = LastProposal(
        text=text,
        available=result.available,
        options=options,
        tool_call=ToolCall(
            input={"hotel_id": hotel_id, **request.as_dict()},
            output_summary="available:true" if result.available else "available:false",
        ),
    )
    logger.info("Proposal built", available=result.available, options=len(options))
    await save_turn(ports, state, StatePatch(
        reservation_slots=_slots_patch(slots),
        last_proposal=proposal,
        sales_stage="quote",
        meta=meta,
    ))
    return respond(
        text,
        lang,
        reservation_slots=slots.model_dump(),
        last_proposal=proposal.model_dump(),
        sales_stage="quote",
        meta=meta,
    )


async def confirm(ports: Ports, state: ConciergeState, slots: ReservationSlots, lang: str) -> dict:
    """Create the booking and close the sale."""
    hotel_id = state["hotel_id"]
    if not slots.num_guests:
        slots = slots.model_copy(update={"num_guests": clamp_guests(None, slots.room_type)})

    try:
        result = await ports.reservations.confirm_and_create(hotel_id, slots)
    except Exception as e:
        logger.error("Reservation creation raised", error=str(e), hotel_id=hotel_id)
        result = None

    if result is None or not result.ok or not result.reservation_id:
        logger.warning(
            "Reservation not created",
            message=getattr(result, "message", None),
            hotel_id=hotel_id,
        )
        await save_turn(ports, state, StatePatch(reservation_slots=_slots_patch(slots), sales_stage="followup"))
        return respond(
            reply("reservation_failed", lang),
            lang,
            reservation_slots=slots.model_dump(),
            sales_stage="followup",
        )

    reservation = LastReservation(
        reservation_id=result.reservation_id,
        status="created",
        channel=state.get("channel") or "web",
    )
    text = reply(
        "reservation_confirmed",
        lang,
        code=reservation.reservation_id,
        room=localize_room_type(slots.room_type, lang),
        check_in=iso_to_display(slots.check_in),
        check_out=iso_to_display(slots.check_out),
        guests=slots.num_guests,
        first_name=first_name_of(slots.guest_name),
    )
    meta = {"expected_slot": None}
    logger.info("Reservation created", reservation_id=reservation.reservation_id, hotel_id=hotel_id)
    await save_turn(ports, state, StatePatch(
        reservation_slots=_slots_patch(slots),
        last_reservation=reservation,
        sales_stage="close",
        meta=meta,
    ))
    return respond(
        text,
        lang,
        reservation_slots=slots.model_dump(),
        last_reservation=reservation.model_dump(),
        sales_stage="close",
        meta=meta,
    )


# ======================================================
# NODE
# ======================================================

async def reservation_node(state: ConciergeState, ports: Ports) -> dict:
    lang = reply_language(state)
    text = state.get("normalized_message") or ""
    meta = state.get("meta") or {}
    desired_action = state.get("desired_action") or "create"

    current = slots_of(state)
    expected = infer_expected_slot(meta, state.get("messages") or [])
    extracted = extract_slots(text, expected, current, desired_action)

    model_question = None
    if not extracted.has_any() and not _is_trivial(text):
        extracted, model_question = await model_assisted_extraction(
            ports, text, expected, current, lang, allow_overwrite=desired_action == "modify",
        )

    slots = current.merged(extracted)
    changed = slots.present_values() != current.present_values()
    if not slots.locale:
        slots = slots.model_copy(update={"locale": lang})

    if not dates_are_valid(slots.check_in, slots.check_out):
        logger.info("Invalid date range, asking again", check_in=slots.check_in, check_out=slots.check_out)
        slots = slots.model_copy(update={"check_in": None, "check_out": None})
        meta_update = {"expected_slot": "check_in"}
        await save_turn(ports, state, StatePatch(
            reservation_slots=_slots_patch(slots),
            sales_stage="qualify",
            meta=meta_update,
        ))
        return respond(
            reply("invalid_dates", lang),
            lang,
            reservation_slots=slots.model_dump(),
            sales_stage="qualify",
            meta=meta_update,
        )

    if slots.is_complete() and is_confirm_intent(text) and not changed:
        if is_quoting(state):
            return await confirm(ports, state, slots, lang)
        logger.info("No live quote to confirm, quoting again", sales_stage=state.get("sales_stage"))

    if slots.is_complete():
        return await quote(ports, state, slots, lang)

    return await ask_missing_slot(ports, state, slots, lang, model_question)
