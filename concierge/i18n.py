"""Localized reply texts and reply-language resolution."""

from typing import Optional

from .prompt_loader import get_prompts

SUPPORTED_LANGUAGES = ("es", "en", "pt")
DEFAULT_LANGUAGE = "es"


def lang2(value: Optional[str]) -> str:
    return (value or "").strip()[:2].lower()


def resolve_reply_language(guest_language: Optional[str], hotel_language: Optional[str]) -> str:
    """Guest language when supported, else the hotel's, else Spanish."""
    guest = lang2(guest_language)
    if guest in SUPPORTED_LANGUAGES:
        return guest
    hotel = lang2(hotel_language)
    if hotel in SUPPORTED_LANGUAGES:
        return hotel
    return DEFAULT_LANGUAGE


def reply(key: str, lang: str, **kwargs) -> str:
    """Localized reply ``key``; unknown languages fall back to Spanish."""
    prompts = get_prompts()
    code = lang2(lang)
    if code not in SUPPORTED_LANGUAGES:
        code = DEFAULT_LANGUAGE
    path = f"replies.{code}.{key}"
    if not prompts.has(path):
        path = f"replies.{DEFAULT_LANGUAGE}.{key}"
    if kwargs:
        return prompts.format(path, **kwargs)
    return prompts.get(path)
