"""
End-to-end conversation tests: ChatService driving the compiled LangGraph
graph over fake ports, turn after turn.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from concierge.graph import HANDLERS, route_from_classify
from concierge.i18n import reply
from concierge.service import ChatService, thread_id_for
from concierge.state import Category, LastReservation, StatePatch
from conftest import CONVERSATION_ID, HOTEL_ID


async def send(chat_service, message, **kwargs):
    return await chat_service.process_message(message, HOTEL_ID, CONVERSATION_ID, **kwargs)


async def seed(ports, **fields):
    await ports.store.upsert(HOTEL_ID, CONVERSATION_ID, StatePatch(**fields))


# ======================================================
# GRAPH
# ======================================================

def test_every_category_has_a_handler():
    assert set(HANDLERS) == set(Category)


def test_route_from_classify():
    assert route_from_classify({"category": "billing"}) == "billing"
    assert route_from_classify({"category": "nonsense"}) == "retrieval_based"


def test_graph_has_classify_and_handler_nodes(agent_graph):
    nodes = set(agent_graph.get_graph().nodes)
    assert "classify" in nodes
    assert {category.value for category in Category} <= nodes


# ======================================================
# RESERVATION CONVERSATION
# ======================================================

@pytest.mark.asyncio
async def test_full_booking_conversation(chat_service, ports):
    res = await send(chat_service, "Marcelo Martinez")
    assert res.category == "reservation"
    assert "tipo de habitación" in res.response

    res = await send(chat_service, "una doble")
    assert res.category == "reservation"
    assert "check-in" in res.response

    res = await send(chat_service, "del 10/03/2030 al 12/03/2030")
    assert res.category == "reservation"
    assert "Tarifa por noche" in res.response
    assert "huéspedes" in res.response

    res = await send(chat_service, "2")
    assert "CONFIRMAR" in res.response

    res = await send(chat_service, "CONFIRMAR")
    assert "R-ABC123" in res.response
    assert "Marcelo" in res.response

    state = await chat_service.get_state(HOTEL_ID, CONVERSATION_ID)
    assert state.sales_stage == "close"
    assert state.last_reservation.reservation_id == "R-ABC123"
    assert state.reservation_slots.num_guests == 2
    assert ports.reservations.created[0].check_in == "2030-03-10"


@pytest.mark.asyncio
async def test_confirm_with_complete_slots(chat_service, ports, complete_slots):
    await seed(ports, category=Category.RESERVATION, reservation_slots=complete_slots, sales_stage="quote")
    res = await send(chat_service, "CONFIRMAR")
    assert res.category == "reservation"
    assert "R-ABC123" in res.response
    assert "Marcelo" in res.response


@pytest.mark.asyncio
async def test_parking_question_in_the_middle_of_a_booking(chat_service, ports):
    await send(chat_service, "Marcelo Martinez")
    res = await send(chat_service, "¿tienen estacionamiento?")
    assert res.category == "amenities"
    assert res.prompt_key == "parking"

    # The booking form survives the detour.
    state = await chat_service.get_state(HOTEL_ID, CONVERSATION_ID)
    assert state.reservation_slots.guest_name == "Marcelo Martinez"


@pytest.mark.asyncio
async def test_time_question_escapes_the_booking(chat_service):
    await send(chat_service, "Marcelo Martinez")
    res = await send(chat_service, "¿a qué hora es el check-in?")
    assert res.category == "retrieval_based"
    assert res.prompt_key == "room_info"


# ======================================================
# AFTER THE BOOKING
# ======================================================

@pytest.fixture
def booked(ports, complete_slots):
    async def _seed():
        await seed(
            ports,
            category=Category.RESERVATION,
            reservation_slots=dict(complete_slots, num_guests=2),
            last_reservation=LastReservation(reservation_id="R-ABC123"),
            sales_stage="close",
        )
    return _seed


@pytest.mark.asyncio
async def test_modification_sub_path(chat_service, ports, booked):
    await booked()

    res = await send(chat_service, "quiero modificar mi reserva")
    assert res.category == "modify_reservation_field"

    res = await send(chat_service, "las fechas")
    assert res.category == "modify_reservation_value"
    assert "fechas" in res.response

    res = await send(chat_service, "del 2030-04-01 al 2030-04-04")
    assert res.category == "modify_reservation_confirm"
    assert "01/04/2030 → 04/04/2030" in res.response

    res = await send(chat_service, "no, eso es todo")
    assert res.category == "reservation_snapshot"
    assert "R-ABC123" in res.response

    state = await chat_service.get_state(HOTEL_ID, CONVERSATION_ID)
    assert "mod_stage" not in state.meta
    assert state.meta["pending_modification"]["values"] == {"check_in": "2030-04-01", "check_out": "2030-04-04"}


@pytest.mark.asyncio
async def test_another_change_loops_back_to_field(chat_service, ports, booked):
    await booked()
    await send(chat_service, "quiero modificar mi reserva")
    await send(chat_service, "el nombre")
    await send(chat_service, "Ana Gomez")
    res = await send(chat_service, "sí, otro dato")
    assert res.category == "modify_reservation_field"


@pytest.mark.asyncio
async def test_cancellation_conversation(chat_service, ports, booked):
    await booked()

    res = await send(chat_service, "quiero cancelar mi reserva")
    assert res.category == "cancel_reservation"
    assert "CANCELAR" in res.response

    res = await send(chat_service, "sí, cancelar")
    assert res.category == "cancel_reservation"
    assert ports.reservations.cancelled == ["R-ABC123"]

    state = await chat_service.get_state(HOTEL_ID, CONVERSATION_ID)
    assert state.last_reservation.status == "cancelled"

    res = await send(chat_service, "ok gracias")
    assert res.category != "reservation"
    assert ports.reservations.created == []
    state = await chat_service.get_state(HOTEL_ID, CONVERSATION_ID)
    assert state.last_reservation.status == "cancelled"


@pytest.mark.asyncio
async def test_guest_can_leave_a_modification_midway(chat_service, ports, booked):
    await booked()
    await send(chat_service, "quiero modificar mi reserva")
    await send(chat_service, "las fechas")

    res = await send(chat_service, "¿tienen estacionamiento?")
    assert res.category == "amenities"
    assert res.prompt_key == "parking"

    res = await send(chat_service, "quiero cancelar mi reserva")
    assert res.category == "cancel_reservation"
    assert "CANCELAR" in res.response


@pytest.mark.asyncio
async def test_view_booking_after_close(chat_service, booked):
    await booked()
    res = await send(chat_service, "quiero ver mi reserva")
    assert res.category == "reservation_snapshot"
    assert "reserva confirmada:" in res.response


@pytest.mark.asyncio
async def test_new_booking_after_close_starts_empty(chat_service, booked):
    await booked()
    res = await send(chat_service, "quiero reservar otra habitación")
    assert res.category == "reservation"
    assert res.response == reply("ask_guest_name", "es")
    state = await chat_service.get_state(HOTEL_ID, CONVERSATION_ID)
    assert state.reservation_slots.guest_name is None
    assert state.last_reservation.reservation_id == "R-ABC123"


@pytest.mark.asyncio
async def test_code_verification_conversation(chat_service):
    res = await send(chat_service, "tengo una reserva, ¿podés verificar el estado?")
    assert res.category == "reservation_verify"
    assert "código de reserva" in res.response

    res = await send(chat_service, "es BK2025X")
    assert res.category == "reservation_verify"
    assert "BK2025X" in res.response


# ======================================================
# LANGUAGE
# ======================================================

@pytest.mark.asyncio
async def test_supported_guest_language_is_answered_directly(chat_service, ports):
    ports.translation.language = "en"
    ports.translation.translations = {"do you have parking?": "¿tienen estacionamiento?"}
    res = await send(chat_service, "do you have parking?")

    assert res.language == "en"
    assert res.category == "amenities"
    assert ports.translation.calls == [("do you have parking?", "en", "es")]
    assert ports.retrieval.calls[0]["lang"] == "en"


@pytest.mark.asyncio
async def test_unsupported_guest_language_is_translated_back(chat_service, ports):
    ports.translation.language = "fr"
    ports.translation.translations = {
        "avez-vous un parking?": "¿tienen estacionamiento?",
        ports.generation.answer: "Oui, nous avons un parking couvert.",
    }
    res = await send(chat_service, "avez-vous un parking?")

    assert res.language == "fr"
    assert res.response == "Oui, nous avons un parking couvert."
    assert ports.translation.calls[-1] == (ports.generation.answer, "es", "fr")


@pytest.mark.asyncio
async def test_language_hint_skips_detection(chat_service, ports):
    ports.translation.error = RuntimeError("should not be called")
    res = await send(chat_service, "hola", language="es")
    assert res.language == "es"


# ======================================================
# FAILURES AND RESET
# ======================================================

@pytest.mark.asyncio
async def test_graph_failure_returns_apology(ports, settings):
    broken = MagicMock()
    broken.ainvoke = AsyncMock(side_effect=RuntimeError("boom"))
    service = ChatService(ports, settings=settings, agent_graph=broken)

    res = await service.process_message("hola", HOTEL_ID, CONVERSATION_ID)
    assert res.response == reply("apology", "es")


@pytest.mark.asyncio
async def test_store_failure_does_not_break_the_reply(chat_service, ports):
    ports.store.upsert = AsyncMock(side_effect=RuntimeError("store down"))
    res = await send(chat_service, "Marcelo Martinez")
    assert "tipo de habitación" in res.response


@pytest.mark.asyncio
async def test_reset_forgets_the_conversation(chat_service):
    await send(chat_service, "Marcelo Martinez")
    assert await chat_service.get_state(HOTEL_ID, CONVERSATION_ID) is not None

    await chat_service.reset(HOTEL_ID, CONVERSATION_ID)
    assert await chat_service.get_state(HOTEL_ID, CONVERSATION_ID) is None

    config = {"configurable": {"thread_id": thread_id_for(HOTEL_ID, CONVERSATION_ID)}}
    snapshot = await chat_service.agent_graph.aget_state(config)
    assert not snapshot.values.get("messages")
