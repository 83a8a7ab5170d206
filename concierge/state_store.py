"""
Conversation State Store
========================

In-memory ConversationStore. The merge rules of a StatePatch live here, on
the write path, so callers never hand-merge nested state.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from .ports import ConversationStore
from .state import ConversationState, ReservationSlots, StatePatch, merge_meta
from logger_config import get_logger

logger = get_logger(__name__)


def state_key(hotel_id: str, conversation_id: str) -> str:
    return f"{hotel_id}:{conversation_id}"


def apply_patch(current: Optional[ConversationState], patch: StatePatch) -> ConversationState:
    """Return a new state with ``patch`` merged into ``current``."""
    base = current.model_copy(deep=True) if current else ConversationState()
    data = base.model_dump()
    fields = patch.model_fields_set

    for name in fields:
        value = getattr(patch, name)

        if name == "reservation_slots":
            slots = dict(data["reservation_slots"])
            for slot, slot_value in (value or {}).items():
                if slot_value is None or (isinstance(slot_value, str) and not slot_value.strip()):
                    slots[slot] = None
                else:
                    slots[slot] = slot_value
            data["reservation_slots"] = ReservationSlots(**slots).model_dump()

        elif name == "meta":
            data["meta"] = merge_meta(data["meta"], value)

        elif name == "last_proposal":
            if value is not None:
                data["last_proposal"] = value.model_dump()

        elif name == "last_reservation":
            if value is None:
                continue
            existing = base.last_reservation
            if existing and existing.reservation_id == value.reservation_id:
                if value.model_dump(exclude={"status"}) != existing.model_dump(exclude={"status"}):
                    logger.warning(
                        "Ignoring changes to an existing reservation other than its status",
                        reservation_id=existing.reservation_id,
                    )
                data["last_reservation"] = existing.model_copy(update={"status": value.status}).model_dump()
            else:
                data["last_reservation"] = value.model_dump()

        elif value is not None or name == "prompt_key":
            data[name] = value

    data["updated_at"] = datetime.now(timezone.utc)
    return ConversationState.model_validate(data)


class InMemoryConversationStore(ConversationStore):
    """Process-local store; suitable for a single worker and for tests."""

    def __init__(self):
        self._states: Dict[str, ConversationState] = {}

    async def get(self, hotel_id: str, conversation_id: str) -> Optional[ConversationState]:
        state = self._states.get(state_key(hotel_id, conversation_id))
        return state.model_copy(deep=True) if state else None

    async def upsert(self, hotel_id: str, conversation_id: str, patch: StatePatch) -> ConversationState:
        key = state_key(hotel_id, conversation_id)
        updated = apply_patch(self._states.get(key), patch)
        self._states[key] = updated
        logger.info(
            "Conversation state saved",
            key=key,
            category=updated.category.value if updated.category else None,
            sales_stage=updated.sales_stage,
        )
        return updated.model_copy(deep=True)

    async def clear(self, hotel_id: str, conversation_id: str) -> None:
        self._states.pop(state_key(hotel_id, conversation_id), None)
        logger.info("Conversation state cleared", key=state_key(hotel_id, conversation_id))
