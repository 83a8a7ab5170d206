"""
Routing Rule Table
==================

Single ordered table of keyword rules shared by the keyword router and the
heuristic classifier, plus the auxiliary patterns the classify stages use
(greetings, confirmations, check-in/out time questions, hard switches).

Order inside each stage is significant: the first matching rule wins.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Pattern, Tuple

from .state import Category, DesiredAction

Stage = Literal["router", "heuristic"]


def _rx(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


@dataclass(frozen=True)
class Rule:
    name: str
    stage: Stage
    pattern: Pattern[str]
    category: Category
    confidence: float
    prompt_key: Optional[str] = None
    desired_action: DesiredAction = "none"

    def matches(self, text: str) -> bool:
        return bool(self.pattern.search(text or ""))

    def decision(self, source: str = "heuristic") -> "RouteDecision":
        return RouteDecision(
            category=self.category,
            prompt_key=self.prompt_key,
            desired_action=self.desired_action,
            confidence=self.confidence,
            source=source,
            reason=self.name,
        )


@dataclass(frozen=True)
class RouteDecision:
    """Outcome of one classify stage."""

    category: Category
    confidence: float
    prompt_key: Optional[str] = None
    desired_action: DesiredAction = "none"
    source: str = "heuristic"
    sales_stage: Optional[str] = None
    reason: str = ""


RULES: Tuple[Rule, ...] = (
    # --- Keyword router: unambiguous topics, never shadowed by stickiness ---
    Rule(
        "transport", "router",
        _rx(r"\b(aeroporto|aeropuerto|airport|traslados?|transfers?|taxis?|remis|bus|[óo]mnibus|ônibus|colectivo|metro|subte)\b"),
        Category.AMENITIES, 0.97, "arrivals_transport",
    ),
    Rule(
        "billing", "router",
        _rx(r"\b(pagos?|pagar|pagamento|meios? de pagamento|medios? de pago|tarjetas?|cart[ãa]o|cart[õo]es"
            r"|d[eé]bito|cr[eé]dito|facturaci[oó]n|factura|fatura|invoice|billing|cobro|cobrar)\b"),
        Category.BILLING, 0.98, "payments_and_billing",
    ),
    Rule(
        "support", "router",
        _rx(r"\b(whats?app|contacto|cont[aá]ctar|contato|tel[eé]fono|telefone|llamar|ligar|e-?mail|correo"
            r"|soporte|suporte|support)\b"),
        Category.SUPPORT, 0.98, "contact_support",
    ),
    Rule(
        "breakfast", "router",
        _rx(r"\b(desayuno|desayunar|breakfast|caf[ée] da manh[ãa])\b"),
        Category.AMENITIES, 0.97, "breakfast_bar",
    ),
    Rule(
        "parking", "router",
        _rx(r"\b(parking|estacionamientos?|estacionamento|cocheras?|garaje|garage)\b"),
        Category.AMENITIES, 0.97, "parking",
    ),
    Rule(
        "pool_gym_spa", "router",
        _rx(r"\b(piscinas?|pool|spa|gym|gimnasio|gin[aá]sio)\b"),
        Category.AMENITIES, 0.97, "pool_gym_spa",
    ),
    Rule(
        "amenities_list", "router",
        _rx(r"\b(amenities|servicios(\s+principales)?|servi[cç]os?|services)\b"),
        Category.AMENITIES, 0.96, "amenities_list",
    ),
    Rule(
        "general_info", "router",
        _rx(r"\b(mascotas?|pets?|animal(es)?|animais|ubicaci[oó]n|direcci[oó]n|address|ubicados?|location"
            r"|localiza[cç][aã]o|endere[cç]o)\b"),
        Category.RETRIEVAL_BASED, 0.96, "kb_general",
    ),
    # --- Heuristic classifier: explicit intents outrank generic mentions ---
    Rule(
        "cancel", "heuristic",
        _rx(r"\b(cancel(ar|la|ación|acion|o)?|anular|delete|remove|void)\b"),
        Category.CANCEL_RESERVATION, 0.9, desired_action="cancel",
    ),
    Rule(
        "modify", "heuristic",
        _rx(r"\b(modific(ar|arla|ación|acion)|change|cambiar|editar|move|mover|alterar)\b"),
        Category.RESERVATION, 0.8, desired_action="modify",
    ),
    Rule(
        "reserve", "heuristic",
        _rx(r"\b(reserv(ar|a|o|ation)|book|booking|quiero reservar|quero reservar)\b"),
        Category.RESERVATION, 0.75, desired_action="create",
    ),
    Rule(
        "amenities", "heuristic",
        _rx(r"\b(piscina|pool|spa|gym|gimnasio|estacionamiento|parking|amenities|desayuno|breakfast)\b"),
        Category.AMENITIES, 0.7,
    ),
    Rule(
        "billing_mention", "heuristic",
        _rx(r"\b(factura|invoice|cobro|charge|billing|recibo)\b"),
        Category.BILLING, 0.7,
    ),
    Rule(
        "support_mention", "heuristic",
        _rx(r"\b(ayuda|help|soporte|support|problema|issue)\b"),
        Category.SUPPORT, 0.65,
    ),
    Rule(
        "room_type_mention", "heuristic",
        _rx(r"\b(single|individual|simple|double|doble|matrimonial|twin|queen|king|triple|suite|familiar)\b"),
        Category.RESERVATION, 0.76, desired_action="create",
    ),
)

DEFAULT_RULE = Rule("default", "heuristic", _rx(r""), Category.RETRIEVAL_BASED, 0.5)

# Heuristic families that also act as hard switches out of a sticky reservation.
HARD_SWITCH_RULES = ("cancel", "amenities", "billing_mention", "support_mention")


def rules_for(stage: Stage) -> Tuple[Rule, ...]:
    return tuple(rule for rule in RULES if rule.stage == stage)


def first_match(rules: Iterable[Rule], text: str) -> Optional[Rule]:
    for rule in rules:
        if rule.matches(text):
            return rule
    return None


def rule_named(name: str) -> Rule:
    for rule in RULES:
        if rule.name == name:
            return rule
    raise KeyError(name)


# ======================================================
# AUXILIARY PATTERNS
# ======================================================

GREETING_RE = _rx(
    r"^(hola|hello|hi|hey|buenas|buen d[ií]a|buenos d[ií]as|buenas tardes|buenas noches|ol[aá]|oi|bom dia|boa tarde|boa noite)$"
)
CONFIRM_RE = _rx(r"\b(confirmar|confirmo|confirm|sí|ok|dale|de acuerdo|yes|okay|okey)\b")
# Unaccented "si" doubles as "if"; it confirms only alone or set off by punctuation.
BARE_SI_RE = _rx(r"^\s*[¡!]*\s*si\s*([,.!]|$)")
NEGATED_CONFIRM_RE = _rx(
    r"(^(no|n[aã]o|nope)\b|\b(no quiero|no voy|n[aã]o quero|todav[ií]a no|a[uú]n no|ainda n[aã]o"
    r"|not yet|don ?t|do not)\b)"
)
ROOM_INFO_RE = _rx(r"\b(check[- ]?in|check[- ]?out|ingreso|salida|horario|horas?)\b")
ASKS_TIME_RE = _rx(r"(\bhorario\b|\bhora\b|a qu[eé] hora|what time|time is|which time|que horas|qual hor[aá]rio)")
MENTIONS_CHECKIN_RE = _rx(r"(check\s*-?\s*in|\bentrada\b|\bingreso\b)")
MENTIONS_CHECKOUT_RE = _rx(r"(check\s*-?\s*out|\bsalida\b|\begreso\b|\bsa[ií]da\b)")
RESERVATION_QUESTION_RE = _rx(
    r"(reserva|reservation|book|habitaci[oó]n|room|quarto|check-?in|check-?out|hu[eé]sped|h[oó]spede|guests?"
    r"|nombre|name|nome)"
)
DATE_HINT_RE = _rx(r"\b(\d{4}-\d{2}-\d{2}|\d{1,2}[/.\-]\d{1,2}([/.\-]\d{2,4})?)\b")
ROOM_HINT_RE = _rx(r"\b(suite|matrimonial|doble|triple|individual|single|double|twin|queen|king|deluxe|standard|familiar)\b")

# Guest asserts they already hold a booking and wants it checked.
OWNS_RESERVATION_RE = _rx(
    r"\b(tengo|ten[ií]a|hice|hicimos|tenho|fiz|i have|i made|my|mi|minha|nuestra)\s+"
    r"(una\s+|uma\s+|a\s+)?(reserva|booking|reservation)\b"
)
VERIFY_ACTION_RE = _rx(
    r"\b(corroborar|corrobora|verificar|verifica|verify|comprobar|chequear|check|confirmada|confirmed"
    r"|estado|status|ver|see|show|mostrar|consultar|detalles|details|detalhes)\b"
)
RESERVATION_WORD_RE = _rx(r"\b(reserva|booking|reservation)\b")
CLOSE_VIEW_RE = _rx(
    r"\b(ver|mostrar|consultar|verificar|tengo|confirmar|confirmada|detalhes|detalles|see|show|check|confirm|details)\b"
)
CLOSE_CANCEL_RE = _rx(r"\b(cancelar|cancela|cancel|anular)\b")
CLOSE_MODIFY_RE = _rx(r"\b(modificar|modifico|cambiar|cambio|modification|modify|change|alterar)\b")
CANCEL_CONFIRM_RE = _rx(r"\b(cancelar|cancel|confirmo|confirmar|s[ií]|yes|sim|ok|dale)\b")
CORRECTION_RE = _rx(
    r"(^no\b|\bno,|\b(no es|mejor|corrijo|correcci[oó]n|cambiar|cambio|en realidad|actually|instead|i meant"
    r"|quiero cambiar|na verdade|corrigir)\b)"
)
ANOTHER_CHANGE_RE = _rx(r"\b(otro|otra|otros|otras|another|other|outro|outra)\b")
DONE_RE = _rx(r"\b(no|finalizar|terminar|listo|nada m[aá]s|done|finish|that'?s all|n[aã]o|pronto|es todo|eso es todo)\b")
AFFIRMATIVE_RE = _rx(r"\b(s[ií]|yes|sim|ok|dale|claro|cambiar|modificar|change|modify|alterar)\b")


def _clean(text: str) -> str:
    return re.sub(r"[¡!¿?.,;:…\"'`~]+", " ", text or "").strip().lower()


def is_greeting(text: str) -> bool:
    return bool(GREETING_RE.match(" ".join(_clean(text).split())))


def is_confirm_intent(text: str, max_words: int = 5) -> bool:
    """Short affirmative such as "CONFIRMAR", "sí" or "ok dale"."""
    cleaned = _clean(text)
    if not cleaned or len(cleaned.split()) > max_words:
        return False
    if NEGATED_CONFIRM_RE.search(cleaned):
        return False
    return bool(CONFIRM_RE.search(cleaned) or BARE_SI_RE.search(text.strip()))


def looks_room_info(text: str) -> bool:
    return bool(ROOM_INFO_RE.search(text or ""))


def is_check_time_question(text: str) -> bool:
    """Asks for the check-in or check-out *time* rather than giving a date."""
    t = (text or "").lower()
    if not ASKS_TIME_RE.search(t):
        return False
    return bool(MENTIONS_CHECKIN_RE.search(t) or MENTIONS_CHECKOUT_RE.search(t))


def is_hard_switch(text: str) -> bool:
    if first_match(rules_for("router"), text):
        return True
    return any(rule_named(name).matches(text) for name in HARD_SWITCH_RULES)


def is_verify_intent(text: str) -> bool:
    return bool(OWNS_RESERVATION_RE.search(text or "") and VERIFY_ACTION_RE.search(text or ""))


_CODE_TOKEN_RE = re.compile(r"[A-Za-z0-9]+(?:-[A-Za-z0-9]+)*")
NEGATIVE_RE = _rx(r"^\s*(no|n[aã]o|nope|mejor no|dej[aá]lo|mantener|mantenerla|keep it)\b")


def extract_reservation_code(text: str) -> Optional[str]:
    """Booking-code-like token ("R-ABC123", "BK2025X", "884213"), or None."""
    for token in _CODE_TOKEN_RE.findall(text or ""):
        has_digit = any(c.isdigit() for c in token)
        has_alpha = any(c.isalpha() for c in token)
        if has_digit and has_alpha and len(token) >= 5:
            return token.upper()
        if token.isdigit() and len(token) >= 6:
            return token
    return None
