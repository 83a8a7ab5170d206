"""
Keyword Router
==============

Deterministic first stage of classification: unambiguous topic words
(transport, billing, support, breakfast, general info) short-circuit the
rest of the pipeline.
"""

from typing import Optional

from .rules import RouteDecision, first_match, rules_for
from logger_config import get_logger

logger = get_logger(__name__)


def route(normalized_text: str) -> Optional[RouteDecision]:
    """Return the decision of the first matching router rule, or None."""
    rule = first_match(rules_for("router"), normalized_text)
    if rule is None:
        return None
    logger.info("Keyword route matched", rule=rule.name, category=rule.category.value)
    return rule.decision()


def matches(normalized_text: str) -> bool:
    return first_match(rules_for("router"), normalized_text) is not None
