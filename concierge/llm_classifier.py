"""
LLM Fallback Classifier
=======================

Asks the generation model for a category when the heuristic is unsure.
The answer is coerced into the closed category set: anything unknown
becomes ``retrieval_based`` and unknown sub-keys are dropped.
"""

import json
import re
from typing import Optional, Tuple

from .ports import GenerationPort
from .prompt_loader import get_prompts
from .state import Category, valid_prompt_key
from logger_config import get_logger

logger = get_logger(__name__)

# Modification sub-states are reached only through the transition table.
MODEL_CATEGORIES = frozenset({
    Category.RESERVATION,
    Category.RESERVATION_SNAPSHOT,
    Category.RESERVATION_VERIFY,
    Category.CANCEL_RESERVATION,
    Category.AMENITIES,
    Category.BILLING,
    Category.SUPPORT,
    Category.RETRIEVAL_BASED,
})

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def parse_classification(raw: str) -> Tuple[Category, Optional[str]]:
    """Parse the model's JSON answer into ``(category, prompt_key)``."""
    text = _FENCE_RE.sub("", (raw or "").strip())
    match = _OBJECT_RE.search(text)
    try:
        data = json.loads(match.group(0)) if match else {}
    except json.JSONDecodeError:
        logger.warning("Unparsable classifier output", raw=raw)
        data = {}
    if not isinstance(data, dict):
        data = {}

    category = Category.parse(data.get("category"))
    if category not in MODEL_CATEGORIES:
        if data:
            logger.warning("Classifier returned unknown category", category=data.get("category"))
        return Category.RETRIEVAL_BASED, None

    prompt_key = data.get("promptKey", data.get("prompt_key"))
    if not isinstance(prompt_key, str):
        prompt_key = None
    return category, valid_prompt_key(category, prompt_key)


async def classify_with_model(
    normalized_text: str,
    generation: GenerationPort,
) -> Optional[Tuple[Category, Optional[str]]]:
    """Model classification, or None when the generation port fails."""
    system_prompt = get_prompts().get("classifier.system")
    try:
        raw = await generation.generate(system_prompt, normalized_text)
    except Exception as e:
        logger.warning("LLM classifier failed, keeping heuristic result", error=str(e))
        return None
    category, prompt_key = parse_classification(raw)
    logger.info("LLM classification", category=category.value, prompt_key=prompt_key)
    return category, prompt_key
