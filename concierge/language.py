"""
Language Normalizer
===================

Translates guest text into the hotel's working language before routing and
translates the reply back. Every failure falls back to the untranslated text.
"""

import re

from .ports import TranslationPort
from logger_config import get_logger

logger = get_logger(__name__)

_LANG_CODE_RE = re.compile(r"\b([a-z]{2})\b")


class LanguageNormalizer:
    def __init__(self, translation: TranslationPort):
        self.translation = translation

    async def detect(self, text: str, fallback: str) -> str:
        """Two-letter code of ``text``; ``fallback`` when detection is unusable."""
        if not (text or "").strip():
            return fallback
        try:
            raw = await self.translation.detect_language(text)
        except Exception as e:
            logger.warning("Language detection failed", error=str(e))
            return fallback
        match = _LANG_CODE_RE.search((raw or "").strip().lower())
        if not match:
            logger.warning("Unusable language code", raw=raw)
            return fallback
        return match.group(1)

    async def normalize(self, raw_text: str, guest_language: str, hotel_language: str) -> str:
        return await self._translate(raw_text, guest_language, hotel_language)

    async def denormalize(self, response_text: str, hotel_language: str, guest_language: str) -> str:
        return await self._translate(response_text, hotel_language, guest_language)

    async def _translate(self, text: str, source: str, target: str) -> str:
        if not text or not source or not target or source[:2].lower() == target[:2].lower():
            return text
        try:
            translated = await self.translation.translate(text, source, target)
        except Exception as e:
            logger.warning("Translation failed, keeping original text", source=source, target=target, error=str(e))
            return text
        return translated.strip() if translated and translated.strip() else text
