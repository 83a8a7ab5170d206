"""
Tests for language handling: detection, normalization, reply language,
localized texts and the question safeguard.
"""

import pytest

from concierge.i18n import reply, resolve_reply_language
from concierge.language import LanguageNormalizer
from concierge.prompt_loader import PromptLoader, get_prompts
from concierge.questions import (
    build_single_slot_question,
    ensure_safe_question,
    is_unsafe_question,
    question_mentions_slot,
)
from conftest import FakeTranslation


# ======================================================
# NORMALIZER
# ======================================================

@pytest.mark.asyncio
async def test_same_language_skips_the_port():
    translation = FakeTranslation()
    normalizer = LanguageNormalizer(translation)
    assert await normalizer.normalize("hola", "es", "es") == "hola"
    assert await normalizer.normalize("", "en", "es") == ""
    assert translation.calls == []


@pytest.mark.asyncio
async def test_normalize_and_denormalize_translate():
    translation = FakeTranslation(translations={"I need a room": "necesito una habitación", "Listo": "Done"})
    normalizer = LanguageNormalizer(translation)
    assert await normalizer.normalize("I need a room", "en", "es") == "necesito una habitación"
    assert await normalizer.denormalize("Listo", "es", "en") == "Done"
    assert translation.calls == [("I need a room", "en", "es"), ("Listo", "es", "en")]


@pytest.mark.asyncio
async def test_translation_failure_keeps_original():
    translation = FakeTranslation()
    translation.error = RuntimeError("timeout")
    normalizer = LanguageNormalizer(translation)
    assert await normalizer.normalize("I need a room", "en", "es") == "I need a room"


@pytest.mark.asyncio
async def test_empty_translation_keeps_original():
    translation = FakeTranslation(translations={"I need a room": "   "})
    normalizer = LanguageNormalizer(translation)
    assert await normalizer.normalize("I need a room", "en", "es") == "I need a room"


@pytest.mark.asyncio
async def test_detect_normalizes_code():
    normalizer = LanguageNormalizer(FakeTranslation(language="PT."))
    assert await normalizer.detect("olá, tudo bem?", fallback="es") == "pt"


@pytest.mark.asyncio
async def test_detect_falls_back_to_hotel_language():
    translation = FakeTranslation()
    translation.error = RuntimeError("down")
    normalizer = LanguageNormalizer(translation)
    assert await normalizer.detect("hello", fallback="es") == "es"
    assert await LanguageNormalizer(FakeTranslation(language="???")).detect("hello", fallback="en") == "en"
    assert await LanguageNormalizer(FakeTranslation(language="fr")).detect("  ", fallback="es") == "es"


# ======================================================
# REPLY LANGUAGE AND TEXTS
# ======================================================

@pytest.mark.parametrize("guest,hotel,expected", [
    ("en", "es", "en"),
    ("pt-BR", "es", "pt"),
    ("fr", "pt", "pt"),
    ("fr", "de", "es"),
    (None, None, "es"),
])
def test_resolve_reply_language(guest, hotel, expected):
    assert resolve_reply_language(guest, hotel) == expected


def test_reply_is_localized():
    assert reply("ask_guest_name", "es") != reply("ask_guest_name", "en")
    assert reply("ask_guest_name", "pt") != reply("ask_guest_name", "es")


def test_reply_unknown_language_falls_back_to_spanish():
    assert reply("ask_field", "fr") == reply("ask_field", "es")


def test_reply_formats_placeholders():
    assert "R-ABC123" in reply("cancel_done", "en", code="R-ABC123")


def test_every_language_has_the_spanish_keys():
    prompts = get_prompts()
    spanish = prompts._prompts["replies"]["es"]
    for lang in ("en", "pt"):
        missing = [key for key in spanish if not prompts.has(f"replies.{lang}.{key}")]
        assert missing == [], lang


def test_prompt_loader_missing_values(tmp_path):
    path = tmp_path / "prompts.yaml"
    path.write_text("greeting:\n  text: 'Hola {name}'\n", encoding="utf-8")
    loader = PromptLoader(str(path))
    assert loader.has("greeting.text")
    assert not loader.has("greeting.missing")
    assert loader.get("greeting.missing") == ""
    assert loader.format("greeting.text", name="Ana") == "Hola Ana"
    assert loader.format("greeting.text") == "Hola {name}"


def test_prompt_loader_missing_file(tmp_path):
    loader = PromptLoader(str(tmp_path / "nope.yaml"))
    assert loader.get("classifier.system") == ""


# ======================================================
# QUESTION SAFEGUARD
# ======================================================

@pytest.mark.parametrize("question", [None, "", "   ", "undefined", "¿Cuál es tu undefined?"])
def test_unsafe_questions_are_replaced(question):
    assert is_unsafe_question(question)
    assert ensure_safe_question(question, "room_type", "es") == build_single_slot_question("room_type", "es")


def test_safe_question_is_kept():
    assert ensure_safe_question(" ¿Qué habitación te gustaría? ", "room_type", "es") == "¿Qué habitación te gustaría?"


def test_question_mentions_slot():
    assert question_mentions_slot("¿A nombre de quién sería la reserva?", "guest_name")
    assert not question_mentions_slot("¿Algo más?", "check_in")
    assert not question_mentions_slot(None, "check_in")
