"""
Ports
=====

Interfaces of the external collaborators the concierge depends on. Graph
nodes receive a ``Ports`` bundle instead of importing shared clients, so
tests can plug in fakes and deployments can swap adapters.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .state import ConversationState, ProposalOption, ReservationSlots, StatePatch


# ======================================================
# RESULT TYPES
# ======================================================

@dataclass
class AvailabilityRequest:
    room_type: str
    check_in: str
    check_out: str
    num_guests: int
    locale: str = "es"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "room_type": self.room_type,
            "check_in": self.check_in,
            "check_out": self.check_out,
            "num_guests": self.num_guests,
            "locale": self.locale,
        }


@dataclass
class AvailabilityResult:
    ok: bool
    available: bool = False
    proposal_text: Optional[str] = None
    options: List[ProposalOption] = field(default_factory=list)


@dataclass
class CreationResult:
    ok: bool
    reservation_id: Optional[str] = None
    message: Optional[str] = None


# ======================================================
# PORTS
# ======================================================

class TranslationPort(ABC):
    @abstractmethod
    async def detect_language(self, text: str) -> str:
        """Return an ISO-639-1 code for ``text``."""

    @abstractmethod
    async def translate(self, text: str, source: str, target: str) -> str:
        """Translate ``text``; identity when ``source == target``."""


class RetrievalPort(ABC):
    @abstractmethod
    async def search(
        self,
        query: str,
        hotel_id: str,
        filters: Dict[str, Optional[str]],
        lang: str,
    ) -> List[str]:
        """Ordered passages; an empty list means nothing relevant was found."""


class GenerationPort(ABC):
    @abstractmethod
    async def generate(self, system_prompt: str, user_text: str) -> str:
        ...


class AvailabilityPort(ABC):
    @abstractmethod
    async def check_availability(self, hotel_id: str, request: AvailabilityRequest) -> AvailabilityResult:
        ...


class ReservationPort(ABC):
    @abstractmethod
    async def confirm_and_create(self, hotel_id: str, slots: ReservationSlots) -> CreationResult:
        ...

    @abstractmethod
    async def cancel(self, hotel_id: str, reservation_id: str) -> bool:
        ...


class ConversationStore(ABC):
    """
    Persistence of ConversationState keyed by (hotel_id, conversation_id).

    Reads and writes are not atomic together: callers must serialize turns
    of the same conversation.
    """

    @abstractmethod
    async def get(self, hotel_id: str, conversation_id: str) -> Optional[ConversationState]:
        ...

    @abstractmethod
    async def upsert(self, hotel_id: str, conversation_id: str, patch: StatePatch) -> ConversationState:
        ...

    @abstractmethod
    async def clear(self, hotel_id: str, conversation_id: str) -> None:
        ...


@dataclass
class Ports:
    """Everything a graph node may talk to."""

    translation: TranslationPort
    retrieval: RetrievalPort
    generation: GenerationPort
    availability: AvailabilityPort
    reservations: ReservationPort
    store: ConversationStore
