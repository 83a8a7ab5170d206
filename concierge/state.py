"""
State Definition
================

Conversation state contract shared by the router, the slot-filling engine
and the conversation store.

Two shapes live here:

- ``ConversationState`` is the persisted, validated record (pydantic).
- ``ConciergeState`` is the TypedDict that flows through the LangGraph graph
  during a single turn. Nested records are carried as plain dicts so the
  checkpointer can serialize them.
"""

import math
import operator
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Category(str, Enum):
    """Closed set of business topics a turn can resolve to."""

    RESERVATION = "reservation"
    RESERVATION_SNAPSHOT = "reservation_snapshot"
    RESERVATION_VERIFY = "reservation_verify"
    CANCEL_RESERVATION = "cancel_reservation"
    AMENITIES = "amenities"
    BILLING = "billing"
    SUPPORT = "support"
    RETRIEVAL_BASED = "retrieval_based"
    MODIFY_RESERVATION_FIELD = "modify_reservation_field"
    MODIFY_RESERVATION_VALUE = "modify_reservation_value"
    MODIFY_RESERVATION_CONFIRM = "modify_reservation_confirm"

    @classmethod
    def parse(cls, value: Any) -> Optional["Category"]:
        """Return the matching category or None for anything outside the set."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


DesiredAction = Literal["create", "modify", "cancel", "none"]
IntentSource = Literal["heuristic", "llm", "embedding"]
SalesStage = Literal["qualify", "quote", "close", "followup"]
Channel = Literal["web", "whatsapp", "email"]

# Sub-keys each category may carry; anything else is discarded.
PROMPT_KEYS: Dict[Category, Tuple[str, ...]] = {
    Category.RETRIEVAL_BASED: ("room_info", "room_info_img", "ambiguity_policy", "kb_general"),
    Category.RESERVATION: ("reservation_flow", "modify_reservation"),
    Category.RESERVATION_SNAPSHOT: ("reservation_snapshot",),
    Category.RESERVATION_VERIFY: ("reservation_verify",),
    Category.CANCEL_RESERVATION: ("cancel_reservation", "cancellation_policy", "modify_reservation"),
    Category.AMENITIES: ("amenities_list", "pool_gym_spa", "breakfast_bar", "parking", "arrivals_transport"),
    Category.BILLING: ("payments_and_billing", "invoice_receipts"),
    Category.SUPPORT: ("contact_support",),
    Category.MODIFY_RESERVATION_FIELD: ("ask_field",),
    Category.MODIFY_RESERVATION_VALUE: ("ask_value",),
    Category.MODIFY_RESERVATION_CONFIRM: ("confirm",),
}


def valid_prompt_key(category: Category, prompt_key: Optional[str]) -> Optional[str]:
    """Keep ``prompt_key`` only if it is whitelisted for ``category``."""
    if not prompt_key:
        return None
    return prompt_key if prompt_key in PROMPT_KEYS.get(category, ()) else None


# ======================================================
# RESERVATION SLOTS
# ======================================================

SLOT_ORDER: Tuple[str, ...] = ("guest_name", "room_type", "check_in", "check_out", "num_guests")
REQUIRED_SLOTS: Tuple[str, ...] = ("guest_name", "room_type", "check_in", "check_out")


def coerce_guest_count(value: Any) -> Optional[int]:
    """Normalize a guest count to a positive int, or None when it cannot be read."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        if not math.isfinite(value) or value <= 0:
            return None
        return int(value)
    match = re.search(r"\d+", str(value))
    if not match:
        return None
    count = int(match.group(0))
    return count if count > 0 else None


class ReservationSlots(BaseModel):
    """Reservation form collected across turns."""

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    guest_name: Optional[str] = None
    room_type: Optional[str] = None
    check_in: Optional[str] = None
    check_out: Optional[str] = None
    num_guests: Optional[int] = None
    locale: Optional[str] = None

    @field_validator("guest_name", "room_type", "check_in", "check_out", "locale", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("num_guests", mode="before")
    @classmethod
    def coerce_num_guests(cls, v: Any) -> Optional[int]:
        return coerce_guest_count(v)

    def has(self, slot: str) -> bool:
        return getattr(self, slot, None) not in (None, "")

    def is_complete(self) -> bool:
        """Complete once name, room type and both dates are present."""
        return all(self.has(slot) for slot in REQUIRED_SLOTS)

    def missing_fields(self) -> List[str]:
        """Missing slots in asking order (num_guests last, best-effort)."""
        return [slot for slot in SLOT_ORDER if not self.has(slot)]

    def has_any(self) -> bool:
        return any(self.has(slot) for slot in SLOT_ORDER)

    def merged(self, partial: "ReservationSlots") -> "ReservationSlots":
        """New present values win; absent values never erase existing ones."""
        data = self.model_dump()
        for key, value in partial.model_dump().items():
            if value not in (None, ""):
                data[key] = value
        return ReservationSlots(**data)

    def present_values(self) -> Dict[str, Any]:
        return {k: v for k, v in self.model_dump().items() if v not in (None, "")}


# ======================================================
# PROPOSALS AND RESERVATIONS
# ======================================================

class ProposalOption(BaseModel):
    room_type: Optional[str] = None
    price_per_night: Optional[float] = None
    currency: Optional[str] = None
    check_in: Optional[str] = None
    check_out: Optional[str] = None


class ToolCall(BaseModel):
    """Audit record of the availability query behind a proposal."""

    name: str = "check_availability"
    input: Dict[str, Any] = Field(default_factory=dict)
    output_summary: str = ""
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LastProposal(BaseModel):
    text: str
    available: bool
    options: List[ProposalOption] = Field(default_factory=list)
    tool_call: Optional[ToolCall] = None


class LastReservation(BaseModel):
    reservation_id: str = Field(..., min_length=1)
    status: Literal["created", "cancelled"] = "created"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    channel: str = "web"


# ======================================================
# PERSISTED CONVERSATION STATE
# ======================================================

class ConversationState(BaseModel):
    """The record loaded at the start of a turn and persisted at its end."""

    category: Optional[Category] = None
    desired_action: DesiredAction = "none"
    intent_confidence: float = Field(0.0, ge=0.0, le=1.0)
    intent_source: IntentSource = "heuristic"
    prompt_key: Optional[str] = None
    normalized_message: str = ""
    detected_language: str = "es"
    sales_stage: SalesStage = "qualify"
    reservation_slots: ReservationSlots = Field(default_factory=ReservationSlots)
    last_proposal: Optional[LastProposal] = None
    last_reservation: Optional[LastReservation] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
    updated_at: Optional[datetime] = None
    updated_by: Literal["ai", "human"] = "ai"


class StatePatch(BaseModel):
    """
    Partial update for a ConversationState.

    Only the fields explicitly set on the patch are applied. The store decides
    how each one merges:

    - reservation_slots: per-slot merge, ``None`` or ``""`` unsets that slot
    - meta: shallow union, ``None`` values drop the key
    - last_proposal: replaced whole, never removed
    - last_reservation: a new id replaces it, the same id may only change status
    - everything else: replaced
    """

    category: Optional[Category] = None
    desired_action: Optional[DesiredAction] = None
    intent_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    intent_source: Optional[IntentSource] = None
    prompt_key: Optional[str] = None
    normalized_message: Optional[str] = None
    detected_language: Optional[str] = None
    sales_stage: Optional[SalesStage] = None
    reservation_slots: Optional[Dict[str, Any]] = None
    last_proposal: Optional[LastProposal] = None
    last_reservation: Optional[LastReservation] = None
    meta: Optional[Dict[str, Any]] = None
    updated_by: Optional[Literal["ai", "human"]] = None


# ======================================================
# GRAPH STATE
# ======================================================

def merge_meta(left: Optional[Dict[str, Any]], right: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Shallow union of meta dicts; a ``None`` value removes the key."""
    merged = dict(left or {})
    for key, value in (right or {}).items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


class ConciergeState(TypedDict, total=False):
    """State for one turn through the concierge graph."""

    messages: Annotated[List[Dict[str, str]], operator.add]   # {"role", "content"}, hotel language
    hotel_id: str
    conversation_id: str
    channel: str
    hotel_language: str
    detected_language: str
    normalized_message: str

    # Routing outcome
    category: str
    prompt_key: Optional[str]
    desired_action: str
    intent_confidence: float
    intent_source: str

    # Reservation flow
    sales_stage: str
    reservation_slots: Dict[str, Any]
    last_proposal: Optional[Dict[str, Any]]
    last_reservation: Optional[Dict[str, Any]]
    meta: Annotated[Dict[str, Any], merge_meta]

    # Reply produced by the handler and the language it was written in
    response: str
    response_language: str
