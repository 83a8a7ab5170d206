"""Tests for reservation slot extraction and the slot model."""

from datetime import date

import pytest

from concierge.slots import (
    canonical_room_type,
    clamp_guests,
    dates_are_valid,
    extract_date_range,
    extract_dates,
    extract_guests,
    extract_slots,
    first_name_of,
    infer_expected_slot,
    iso_to_display,
    looks_like_name,
    nights_between,
    normalize_name_case,
)
from concierge.state import ReservationSlots, coerce_guest_count

TODAY = date(2030, 1, 15)


# ======================================================
# SLOT MODEL
# ======================================================

@pytest.mark.parametrize("value,expected", [
    (3, 3),
    ("3 personas", 3),
    (2.0, 2),
    (0, None),
    (-1, None),
    ("abc", None),
    (True, None),
    (float("nan"), None),
    (None, None),
])
def test_coerce_guest_count(value, expected):
    assert coerce_guest_count(value) == expected


def test_slots_coerce_on_assignment():
    slots = ReservationSlots(num_guests="2 huéspedes", guest_name="  ")
    assert slots.num_guests == 2
    assert slots.guest_name is None
    slots.num_guests = "cuatro"
    assert slots.num_guests is None


def test_completeness_and_missing_order():
    slots = ReservationSlots(guest_name="Ana Gomez", check_in="2030-03-10")
    assert not slots.is_complete()
    assert slots.missing_fields() == ["room_type", "check_out", "num_guests"]
    complete = slots.merged(ReservationSlots(room_type="double", check_out="2030-03-12"))
    assert complete.is_complete()
    assert complete.missing_fields() == ["num_guests"]


def test_merge_never_erases_and_is_idempotent():
    current = ReservationSlots(guest_name="Ana Gomez", room_type="double")
    partial = ReservationSlots(room_type="suite")
    once = current.merged(partial)
    assert once.guest_name == "Ana Gomez"
    assert once.room_type == "suite"
    assert once.merged(partial) == once


# ======================================================
# DATES
# ======================================================

def test_day_month_without_year_rolls_forward():
    assert extract_dates("15/11", TODAY) == ["2030-11-15"]
    assert extract_dates("10/01", TODAY) == ["2031-01-10"]


def test_iso_and_explicit_year():
    assert extract_dates("del 2030-03-10 al 12/03/2030", TODAY) == ["2030-03-10", "2030-03-12"]


def test_range_is_ordered():
    assert extract_date_range("salgo el 12/03 y llego el 10/03", TODAY) == {
        "check_in": "2030-03-10",
        "check_out": "2030-03-12",
    }


def test_date_helpers():
    assert iso_to_display("2030-03-10") == "10/03/2030"
    assert iso_to_display(None) == "-"
    assert nights_between("2030-03-10", "2030-03-13") == 3
    assert dates_are_valid("2030-03-10", "2030-03-12")
    assert not dates_are_valid("2030-03-12", "2030-03-12")
    assert dates_are_valid("2030-03-10", None)


# ======================================================
# NAMES, ROOMS AND GUESTS
# ======================================================

@pytest.mark.parametrize("text,expected", [
    ("Marcelo Martinez", True),
    ("maría josé vega", True),
    ("hola que tal", False),
    ("Marcelo", False),
    ("suite doble", False),
    ("Ana 2", False),
    ("João dos Santos", True),
    ("Maria de la Cruz", True),
    ("dos noches", False),
    ("Santos de", False),
])
def test_looks_like_name(text, expected):
    assert looks_like_name(text) is expected


def test_name_helpers():
    assert normalize_name_case("marcelo de la vega") == "Marcelo de la Vega"
    assert first_name_of("María José Pérez") == "María José"
    assert first_name_of("Sr. Marcelo Martinez") == "Marcelo"
    assert first_name_of(None) == ""


def test_room_types_and_capacity():
    assert canonical_room_type("una matrimonial") == "double"
    assert canonical_room_type("Suite familiar") == "suite"
    assert canonical_room_type("lo que haya") is None
    assert clamp_guests(5, "double") == 2
    assert clamp_guests(None, "single") == 1
    assert clamp_guests(None, "suite") == 2


def test_guest_counts():
    assert extract_guests("somos 3") == 3
    assert extract_guests("para dos personas") == 2
    assert extract_guests("2") is None
    assert extract_guests("2", allow_bare=True) == 2


# ======================================================
# EXTRACTION
# ======================================================

def test_extract_full_request():
    slots = extract_slots(
        "Quiero una doble del 10/03 al 12/03 para 2 personas a nombre de Ana Gomez",
        today=TODAY,
    )
    assert slots.room_type == "double"
    assert slots.check_in == "2030-03-10"
    assert slots.check_out == "2030-03-12"
    assert slots.num_guests == 2


def test_explicit_name():
    assert extract_slots("me llamo ana gomez", today=TODAY).guest_name == "Ana Gomez"


def test_bare_date_goes_to_expected_slot():
    current = ReservationSlots(check_in="2030-03-10")
    slots = extract_slots("12/03", expected_slot="check_out", current=current, today=TODAY)
    assert slots.check_out == "2030-03-12"
    assert slots.check_in is None


def test_bare_number_only_when_guests_expected():
    assert extract_slots("2", expected_slot="num_guests", today=TODAY).num_guests == 2
    assert not extract_slots("2", expected_slot="check_in", today=TODAY).has_any()


def test_present_slot_is_kept_without_correction():
    current = ReservationSlots(room_type="double")
    assert extract_slots("suite", current=current, today=TODAY).room_type is None
    assert extract_slots("no, mejor suite", current=current, today=TODAY).room_type == "suite"
    assert extract_slots("suite", expected_slot="room_type", current=current, today=TODAY).room_type == "suite"


def test_infer_expected_slot():
    assert infer_expected_slot({"expected_slot": "num_guests"}, []) == "num_guests"
    messages = [
        {"role": "assistant", "content": "¿Cuál es la fecha de check-out? (dd/mm/aaaa)"},
        {"role": "user", "content": "el 12"},
    ]
    assert infer_expected_slot({}, messages) == "check_out"
    assert infer_expected_slot({}, [{"role": "assistant", "content": "¡Hola!"}]) is None
