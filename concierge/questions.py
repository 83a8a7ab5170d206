"""
Slot Questions
==============

Builds the single question asked for a missing reservation slot and guards
every outgoing question against empty or "undefined" text.
"""

from typing import Optional

from .i18n import reply
from .slots import SLOT_LABEL_PATTERNS
from logger_config import get_logger

logger = get_logger(__name__)

_SLOT_PATTERNS = dict(SLOT_LABEL_PATTERNS)


def build_single_slot_question(slot: str, lang: str) -> str:
    return reply(f"ask_{slot}", lang)


def question_mentions_slot(question: Optional[str], slot: str) -> bool:
    pattern = _SLOT_PATTERNS.get(slot)
    return bool(question and pattern and pattern.search(question))


def is_unsafe_question(question: Optional[str]) -> bool:
    text = (question or "").strip()
    return not text or "undefined" in text.lower()


def ensure_safe_question(question: Optional[str], slot: str, lang: str) -> str:
    """Replace empty or "undefined" questions with the canonical one for ``slot``."""
    if is_unsafe_question(question):
        logger.warning("Replacing unsafe question", slot=slot, question=question)
        return build_single_slot_question(slot, lang)
    return question.strip()
