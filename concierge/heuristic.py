"""
Heuristic Classifier
====================

Fast, local, confidence-scored classification over keyword families.
Cancel and modify intents are evaluated before the generic reservation
mention so that an explicit intent always wins.
"""

from .rules import DEFAULT_RULE, RouteDecision, first_match, rules_for


def classify(normalized_text: str) -> RouteDecision:
    rule = first_match(rules_for("heuristic"), normalized_text) or DEFAULT_RULE
    return rule.decision(source="heuristic")
