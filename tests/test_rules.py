"""
Tests for the shared rule table: keyword router, heuristic classifier and
the auxiliary predicates used by the classify stages.
"""

import pytest

from concierge import heuristic, keyword_router
from concierge.rules import (
    RULES,
    extract_reservation_code,
    is_check_time_question,
    is_confirm_intent,
    is_greeting,
    is_hard_switch,
    is_verify_intent,
    rules_for,
)
from concierge.state import PROMPT_KEYS, Category


# ======================================================
# RULE TABLE
# ======================================================

def test_router_rules_keep_their_order():
    names = [rule.name for rule in rules_for("router")]
    assert names == [
        "transport", "billing", "support", "breakfast",
        "parking", "pool_gym_spa", "amenities_list", "general_info",
    ]


def test_every_rule_prompt_key_is_whitelisted():
    for rule in RULES:
        if rule.prompt_key:
            assert rule.prompt_key in PROMPT_KEYS[rule.category], rule.name


# ======================================================
# KEYWORD ROUTER
# ======================================================

@pytest.mark.parametrize("text,category,prompt_key", [
    ("¿tienen estacionamiento?", Category.AMENITIES, "parking"),
    ("¿hay traslado desde el aeropuerto?", Category.AMENITIES, "arrivals_transport"),
    ("¿puedo pagar con tarjeta de crédito?", Category.BILLING, "payments_and_billing"),
    ("¿tienen whatsapp?", Category.SUPPORT, "contact_support"),
    ("¿a qué hora es el desayuno?", Category.AMENITIES, "breakfast_bar"),
    ("¿tienen piscina climatizada?", Category.AMENITIES, "pool_gym_spa"),
    ("¿qué servicios tiene el hotel?", Category.AMENITIES, "amenities_list"),
    ("¿aceptan mascotas?", Category.RETRIEVAL_BASED, "kb_general"),
    ("what is the hotel address?", Category.RETRIEVAL_BASED, "kb_general"),
])
def test_router_matches_topic(text, category, prompt_key):
    decision = keyword_router.route(text.lower())
    assert decision is not None
    assert decision.category == category
    assert decision.prompt_key == prompt_key


def test_router_first_match_wins():
    decision = keyword_router.route("¿cuánto sale el taxi y puedo pagar con tarjeta?")
    assert decision.prompt_key == "arrivals_transport"


def test_router_matches_whole_words_only():
    assert keyword_router.route("busco una habitación doble") is None


def test_router_returns_none_without_topic_words():
    assert keyword_router.route("quiero reservar una suite") is None


# ======================================================
# HEURISTIC CLASSIFIER
# ======================================================

def test_cancel_outranks_reservation_mention():
    result = heuristic.classify("quiero cancelar la reserva")
    assert result.category == Category.CANCEL_RESERVATION
    assert result.desired_action == "cancel"
    assert result.confidence == 0.9


def test_modify_outranks_reservation_mention():
    result = heuristic.classify("quiero cambiar la fecha de mi reserva")
    assert result.category == Category.RESERVATION
    assert result.desired_action == "modify"
    assert result.confidence == 0.8


def test_reservation_intent():
    result = heuristic.classify("quiero reservar para el finde")
    assert result.category == Category.RESERVATION
    assert result.desired_action == "create"
    assert result.confidence == 0.75


def test_bare_room_type_is_a_reservation():
    result = heuristic.classify("una suite")
    assert result.category == Category.RESERVATION
    assert result.confidence == 0.76


def test_default_is_low_confidence_retrieval():
    result = heuristic.classify("foo bar")
    assert result.category == Category.RETRIEVAL_BASED
    assert result.confidence == 0.5
    assert result.source == "heuristic"


# ======================================================
# PREDICATES
# ======================================================

@pytest.mark.parametrize("text,expected", [
    ("¡Hola!", True),
    ("Buenos días", True),
    ("oi", True),
    ("hola, quiero reservar", False),
])
def test_is_greeting(text, expected):
    assert is_greeting(text) is expected


@pytest.mark.parametrize("text,expected", [
    ("CONFIRMAR", True),
    ("sí, dale", True),
    ("ok", True),
    ("sí quiero saber si el desayuno está incluido en la tarifa", False),
    ("", False),
    ("si", True),
    ("Si, confirmo", True),
    ("no quiero confirmar todavía", False),
    ("todavía no, ok?", False),
    ("don't confirm yet", False),
    ("si tienen lugar", False),
])
def test_is_confirm_intent(text, expected):
    assert is_confirm_intent(text) is expected


@pytest.mark.parametrize("text,expected", [
    ("¿a qué hora es el check-in?", True),
    ("what time is check out?", True),
    ("check-in el 15/11", False),
    ("¿a qué hora abre la piscina?", False),
])
def test_is_check_time_question(text, expected):
    assert is_check_time_question(text) is expected


def test_hard_switch_words():
    assert is_hard_switch("quiero cancelar")
    assert is_hard_switch("necesito ayuda")
    assert is_hard_switch("¿tienen estacionamiento?")
    assert not is_hard_switch("15/11")


def test_verify_intent_needs_ownership_and_action():
    assert is_verify_intent("tengo una reserva, ¿podés verificar el estado?")
    assert not is_verify_intent("tengo una reserva")
    assert not is_verify_intent("quiero ver habitaciones")


@pytest.mark.parametrize("text,expected", [
    ("mi código es R-ABC123", "R-ABC123"),
    ("bk2025x", "BK2025X"),
    ("reserva 884213", "884213"),
    ("la reserva del 12", None),
    ("hola", None),
])
def test_extract_reservation_code(text, expected):
    assert extract_reservation_code(text) == expected
