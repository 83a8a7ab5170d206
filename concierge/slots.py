"""
Reservation Slot Extraction
===========================

Pulls reservation fields out of free text and prepares them for merging:
dates, guest counts, room types and guest names, plus the helpers that
format them back for the guest.
"""

import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from dateutil import parser as date_parser

from .rules import CORRECTION_RE, ROOM_HINT_RE
from .state import SLOT_ORDER, ReservationSlots
from logger_config import get_logger

logger = get_logger(__name__)


# ======================================================
# ROOM TYPES
# ======================================================

# Ordered so that the more specific words are tried first.
ROOM_TYPE_ALIASES = (
    (r"suite", "suite"),
    (r"familiar|family|fam[ií]lia", "family"),
    (r"triple|tripla", "triple"),
    (r"twin", "twin"),
    (r"queen", "queen"),
    (r"king", "king"),
    (r"doble|double|matrimonial|duplo|casal", "double"),
    (r"single|individual|simple|sencilla|solteiro", "single"),
    (r"deluxe|de luxo", "deluxe"),
    (r"standard|est[aá]ndar|padr[ãa]o", "standard"),
)

ROOM_CAPACITY = {
    "single": 1,
    "double": 2,
    "twin": 2,
    "queen": 2,
    "king": 2,
    "triple": 3,
    "suite": 4,
    "family": 4,
}
DEFAULT_CAPACITY = 4

ROOM_LABELS = {
    "es": {
        "single": "individual", "double": "doble", "twin": "twin", "queen": "queen", "king": "king",
        "triple": "triple", "suite": "suite", "family": "familiar", "deluxe": "deluxe", "standard": "estándar",
    },
    "pt": {
        "single": "individual", "double": "duplo", "twin": "twin", "queen": "queen", "king": "king",
        "triple": "triplo", "suite": "suíte", "family": "família", "deluxe": "luxo", "standard": "padrão",
    },
    "en": {
        "single": "single", "double": "double", "twin": "twin", "queen": "queen", "king": "king",
        "triple": "triple", "suite": "suite", "family": "family", "deluxe": "deluxe", "standard": "standard",
    },
}


def canonical_room_type(text: str) -> Optional[str]:
    t = (text or "").lower()
    for pattern, key in ROOM_TYPE_ALIASES:
        if re.search(rf"\b({pattern})\b", t):
            return key
    return None


def localize_room_type(room_type: Optional[str], lang: str) -> str:
    if not room_type:
        return "-"
    return ROOM_LABELS.get(lang, ROOM_LABELS["en"]).get(room_type, room_type)


def max_guests_for(room_type: Optional[str]) -> int:
    return ROOM_CAPACITY.get((room_type or "").lower(), DEFAULT_CAPACITY)


def clamp_guests(num_guests: Optional[int], room_type: Optional[str]) -> int:
    """Fit the guest count into the room; missing counts default to min(2, capacity)."""
    capacity = max_guests_for(room_type)
    if not num_guests:
        return min(2, capacity)
    return max(1, min(int(num_guests), capacity))


# ======================================================
# NAMES
# ======================================================

NAME_STOPWORDS = {
    "hola", "buenas", "hello", "hi", "hey", "olá", "ola", "oi", "que", "qué", "cuando", "cuándo",
    "donde", "dónde", "como", "cómo", "hora", "precio", "policy", "política", "check", "in", "out",
    "reserva", "reservo", "quiero", "quero", "tiene", "tienen", "hay", "gracias", "thanks", "ok",
    "si", "sí", "no", "yes", "confirmar", "confirmo", "dale", "listo", "perfecto", "habitación",
    "room", "para", "por", "favor", "the", "and", "una", "uno", "tres",
}
NAME_PARTICLES = {"de", "del", "da", "das", "do", "dos", "la", "las", "los", "y", "e", "van", "von"}
HONORIFIC_RE = re.compile(
    r"^(sr|sra|srta|señor|señora|senor|senora|mr|mrs|ms|miss|dr|dra|prof|ing|lic|don|doña|dona)\.?\s+",
    re.IGNORECASE,
)
# Compound first names: first token from P1 followed by a token from P2.
COMPOUND_P1 = {"maría", "maria", "josé", "jose", "juan", "ana", "luis", "miguel", "jean", "juana", "rosa"}
COMPOUND_P2 = {
    "josé", "jose", "luisa", "pablo", "carlos", "maría", "maria", "fernanda", "eugenia", "laura", "paula",
    "isabel", "ignacio", "manuel", "antonio", "cruz", "elena", "sofía", "sofia", "emilia", "victoria",
    "ángel", "angel", "pedro", "belén", "belen", "pierre", "paul",
}
_NAME_TOKEN_RE = re.compile(r"^[A-Za-zÀ-ÖØ-öø-ÿ][A-Za-zÀ-ÖØ-öø-ÿ.'\-]*$")
_EXPLICIT_NAME_RE = re.compile(
    r"\b(me llamo|mi nombre es|a nombre de|reserva a nombre de|my name is|name is|under the name|"
    r"meu nome é|meu nome e|me chamo|em nome de)\s+(?P<name>[^\d,.;:!?¿¡@\n]{2,60})",
    re.IGNORECASE,
)


def looks_like_name(text: str) -> bool:
    """Bare personal name: 2-4 alphabetic tokens with no digits, punctuation or stopwords."""
    t = (text or "").strip()
    if len(t) < 2 or len(t) > 60:
        return False
    if re.search(r"[0-9?!,:;@¿¡/]", t):
        return False
    tokens = t.split()
    if not 2 <= len(tokens) <= 4:
        return False
    lowered = [tok.lower() for tok in tokens]
    if any(tok in NAME_STOPWORDS for tok in lowered):
        return False
    # Particles only sit between name tokens ("João dos Santos", not "dos noches").
    if lowered[0] in NAME_PARTICLES or lowered[-1] in NAME_PARTICLES:
        return False
    if ROOM_HINT_RE.search(t):
        return False
    return all(_NAME_TOKEN_RE.match(tok) for tok in tokens)


def _case_token(token: str) -> str:
    parts = re.split(r"([\-'])", token)
    return "".join(p[:1].upper() + p[1:].lower() if p not in ("-", "'") else p for p in parts)


def normalize_name_case(name: str) -> str:
    tokens = (name or "").split()
    out = []
    for i, tok in enumerate(tokens):
        if i > 0 and tok.lower() in NAME_PARTICLES:
            out.append(tok.lower())
        else:
            out.append(_case_token(tok))
    return " ".join(out)


def first_name_of(full_name: Optional[str]) -> str:
    """First name without honorifics, keeping compound names like "María José"."""
    name = HONORIFIC_RE.sub("", (full_name or "").strip())
    tokens = name.split()
    if not tokens:
        return ""
    lowered = [t.lower() for t in tokens]
    if len(tokens) >= 3 and lowered[1] in ("del", "de") and lowered[0] in COMPOUND_P1:
        return normalize_name_case(" ".join(tokens[:3]))
    if len(tokens) >= 2 and lowered[0] in COMPOUND_P1 and lowered[1] in COMPOUND_P2:
        return normalize_name_case(" ".join(tokens[:2]))
    return normalize_name_case(tokens[0])


def is_safe_guest_name(name: Optional[str]) -> bool:
    if not name:
        return False
    n = name.strip()
    if not 2 <= len(n) <= 60 or "undefined" in n.lower():
        return False
    if re.search(r"\d", n):
        return False
    return any(tok.lower() not in NAME_STOPWORDS for tok in n.split())


def extract_name(text: str, expected_slot: Optional[str]) -> Optional[str]:
    match = _EXPLICIT_NAME_RE.search(text or "")
    if match:
        candidate = " ".join(match.group("name").split()[:4])
        candidate = re.split(r"\s+(y|and|e|para|for)\s+", candidate)[0]
        if is_safe_guest_name(candidate):
            return normalize_name_case(candidate)
    if expected_slot in (None, "guest_name") and looks_like_name(text):
        return normalize_name_case(text.strip())
    return None


# ======================================================
# DATES
# ======================================================

_ISO_RE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
_DMY_RE = re.compile(r"\b(\d{1,2})[/.\-](\d{1,2})(?:[/.\-](\d{2,4}))?\b")
_CHECKIN_SIDE_RE = re.compile(r"(check\s*-?in\b|ingreso\b|entrada\b|llegada\b|arribo\b|arrival\b|chegada\b)", re.I)
_CHECKOUT_SIDE_RE = re.compile(r"(check\s*-?out\b|salida\b|egreso\b|partida\b|sa[ií]da\b|departure\b)", re.I)
_DATE_FILLER_RE = re.compile(
    r"\b(al|a|to|hasta|del|de|desde|from|until|till|y|and|e|at[eé]|el|la|the|check-?in|check-?out)\b|[-–→,]",
    re.I,
)


def _to_iso(token: str, has_year: bool, today: Optional[date] = None) -> Optional[str]:
    today = today or date.today()
    try:
        parsed = date_parser.parse(token, dayfirst=True, default=datetime(today.year, 1, 1))
    except (ValueError, OverflowError) as e:
        logger.warning("Failed to parse date", date_str=token, error=str(e))
        return None
    result = parsed.date()
    # Dates without a year that already passed refer to next year.
    if not has_year and result < today:
        result = result.replace(year=result.year + 1)
    return result.isoformat()


def extract_dates(text: str, today: Optional[date] = None) -> List[str]:
    """All dates in the text, in order of appearance, as ISO strings."""
    t = text or ""
    found: List[tuple] = []
    for m in _ISO_RE.finditer(t):
        iso = _to_iso(m.group(0), True, today)
        if iso:
            found.append((m.start(), iso))
    stripped = _ISO_RE.sub(lambda m: " " * len(m.group(0)), t)
    for m in _DMY_RE.finditer(stripped):
        day, month, year = m.group(1), m.group(2), m.group(3)
        if not (1 <= int(day) <= 31 and 1 <= int(month) <= 12):
            continue
        token = f"{day}/{month}/{year}" if year else f"{day}/{month}"
        iso = _to_iso(token, bool(year), today)
        if iso:
            found.append((m.start(), iso))
    return [iso for _, iso in sorted(found)]


def extract_date_range(text: str, today: Optional[date] = None) -> Dict[str, str]:
    dates = extract_dates(text, today)
    if len(dates) >= 2:
        first, second = dates[0], dates[1]
        if second < first:
            first, second = second, first
        return {"check_in": first, "check_out": second}
    if len(dates) == 1:
        return {"check_in": dates[0]}
    return {}


def detect_date_side(text: str) -> Optional[str]:
    t = text or ""
    mentions_in = bool(_CHECKIN_SIDE_RE.search(t))
    mentions_out = bool(_CHECKOUT_SIDE_RE.search(t))
    if mentions_in and not mentions_out:
        return "check_in"
    if mentions_out and not mentions_in:
        return "check_out"
    return None


def looks_like_date_only(text: str) -> bool:
    t = _ISO_RE.sub(" ", text or "")
    t = _DMY_RE.sub(" ", t)
    t = _DATE_FILLER_RE.sub(" ", t)
    return not re.search(r"\w", t)


def iso_to_display(value: Optional[str]) -> str:
    """ISO date to dd/mm/yyyy; anything else is returned unchanged."""
    if not value:
        return "-"
    m = re.match(r"^(\d{4})-(\d{2})-(\d{2})", value)
    if m:
        return f"{m.group(3)}/{m.group(2)}/{m.group(1)}"
    return value


def nights_between(check_in: str, check_out: str) -> int:
    try:
        delta = date.fromisoformat(check_out) - date.fromisoformat(check_in)
    except ValueError:
        return 1
    return max(1, delta.days)


def dates_are_valid(check_in: Optional[str], check_out: Optional[str]) -> bool:
    """Check-in must be strictly before check-out."""
    if not check_in or not check_out:
        return True
    try:
        return date.fromisoformat(check_in) < date.fromisoformat(check_out)
    except ValueError:
        return False


# ======================================================
# GUESTS
# ======================================================

NUMBER_WORDS = {
    "uno": 1, "una": 1, "one": 1, "um": 1, "uma": 1,
    "dos": 2, "two": 2, "dois": 2, "duas": 2,
    "tres": 3, "três": 3, "three": 3,
    "cuatro": 4, "quatro": 4, "four": 4,
    "cinco": 5, "five": 5,
    "seis": 6, "six": 6,
}
_GUEST_NOUNS = r"(personas?|hu[eé]spedes|hu[eé]sped|pessoas?|h[oó]spedes|h[oó]spede|guests?|people|persons?|adult[oe]?s?|pax)"
_GUESTS_DIGIT_RE = re.compile(rf"\b(\d{{1,2}})\s*{_GUEST_NOUNS}\b", re.I)
_GUESTS_WORD_RE = re.compile(rf"\b({'|'.join(NUMBER_WORDS)})\s+{_GUEST_NOUNS}\b", re.I)
_GUESTS_SOMOS_RE = re.compile(r"\b(somos|seremos|we are|we're|somos em)\s+(\d{1,2})\b", re.I)
_BARE_NUMBER_RE = re.compile(r"^\s*(\d{1,2})\s*$")


def extract_guests(text: str, allow_bare: bool = False) -> Optional[int]:
    t = text or ""
    m = _GUESTS_DIGIT_RE.search(t) or _GUESTS_SOMOS_RE.search(t)
    if m:
        digits = m.group(1) if m.re is _GUESTS_DIGIT_RE else m.group(2)
        return int(digits) or None
    m = _GUESTS_WORD_RE.search(t)
    if m:
        return NUMBER_WORDS.get(m.group(1).lower())
    if allow_bare:
        m = _BARE_NUMBER_RE.match(t)
        if m:
            return int(m.group(1)) or None
        word = t.strip().lower()
        if word in NUMBER_WORDS:
            return NUMBER_WORDS[word]
    return None


# ======================================================
# SLOT EXTRACTION
# ======================================================

def extract_slots(
    text: str,
    expected_slot: Optional[str] = None,
    current: Optional[ReservationSlots] = None,
    desired_action: str = "none",
    today: Optional[date] = None,
) -> ReservationSlots:
    """
    Extract the slots mentioned in ``text``.

    ``expected_slot`` (the slot the assistant asked for last) decides where a
    bare date or a bare number goes. Values that would overwrite a present
    slot are dropped unless the guest is correcting themselves, answering
    that very slot, or explicitly modifying.
    """
    current = current or ReservationSlots()
    partial: Dict[str, Any] = {}

    dates = extract_dates(text, today)
    if len(dates) >= 2:
        partial.update(extract_date_range(text, today))
    elif len(dates) == 1:
        side = detect_date_side(text)
        if side is None and expected_slot in ("check_in", "check_out"):
            side = expected_slot
        if side is None:
            side = "check_out" if current.has("check_in") and not current.has("check_out") else "check_in"
        partial[side] = dates[0]

    date_only = bool(dates) and looks_like_date_only(text)
    if not date_only:
        allow_bare = expected_slot == "num_guests" or (expected_slot is None and not dates)
        guests = extract_guests(text, allow_bare=allow_bare)
        if guests:
            partial["num_guests"] = guests

    room = canonical_room_type(text)
    if room:
        partial["room_type"] = room

    if not dates and "num_guests" not in partial:
        name = extract_name(text, expected_slot)
        if name:
            partial["guest_name"] = name

    allow_overwrite = bool(CORRECTION_RE.search(text or "")) or desired_action == "modify"
    sanitized: Dict[str, Any] = {}
    for key, value in partial.items():
        if current.has(key) and getattr(current, key) != value:
            if not (allow_overwrite or key == expected_slot):
                logger.info("Keeping present slot", slot=key)
                continue
        sanitized[key] = value
    return ReservationSlots(**sanitized)


# Slot labels as they appear in assistant questions, checked in this order.
SLOT_LABEL_PATTERNS = (
    ("check_out", re.compile(r"check-?out|salida|sa[ií]da", re.I)),
    ("check_in", re.compile(r"check-?in|ingreso|llegada|chegada|arrival", re.I)),
    ("num_guests", re.compile(r"hu[eé]spedes|h[oó]spedes|guests|cu[aá]ntas personas|how many|quantos", re.I)),
    ("room_type", re.compile(r"tipo de habitaci[oó]n|tipo de quarto|room type|habitaci[oó]n|quarto", re.I)),
    ("guest_name", re.compile(r"nombre|name|nome", re.I)),
)


def infer_expected_slot(meta: Optional[Dict[str, Any]], messages: Sequence[Dict[str, str]]) -> Optional[str]:
    """Slot the assistant asked for last, from meta or from the last assistant turn."""
    expected = (meta or {}).get("expected_slot")
    if expected in SLOT_ORDER:
        return expected
    for msg in reversed(list(messages or [])):
        if msg.get("role") != "assistant":
            continue
        content = msg.get("content") or ""
        for slot, pattern in SLOT_LABEL_PATTERNS:
            if pattern.search(content):
                return slot
        return None
    return None
