"""
Shared fixtures for the concierge test suite.

Every external collaborator is replaced by an in-process fake so the graph,
the handlers and the HTTP layer run without OpenAI, Pinecone or a channel
manager.
"""

import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

os.environ["OPENAI_API_KEY"] = os.getenv("OPENAI_API_KEY", "sk-test-key")
os.environ["PINECONE_API_KEY"] = os.getenv("PINECONE_API_KEY", "pcsk-test-key")
os.environ["KNOWLEDGE_INDEX_NAME"] = os.getenv("KNOWLEDGE_INDEX_NAME", "test-knowledge")
os.environ["CHANNEL_MANAGER_URL"] = os.getenv("CHANNEL_MANAGER_URL", "http://channel-manager.test")
os.environ["LANGFUSE_TRACING_ENABLED"] = "false"

from typing import Callable, Dict, List, Optional

import pytest

from concierge.config import Settings
from concierge.graph import build_agent_graph
from concierge.ports import (
    AvailabilityPort,
    AvailabilityRequest,
    AvailabilityResult,
    CreationResult,
    GenerationPort,
    Ports,
    ReservationPort,
    RetrievalPort,
    TranslationPort,
)
from concierge.service import ChatService
from concierge.state import ProposalOption, ReservationSlots
from concierge.state_store import InMemoryConversationStore

HOTEL_ID = "hotel_1"
CONVERSATION_ID = "conv_1"

CLASSIFIER_MARKER = "You classify a single hotel-guest message"
EXTRACTION_MARKER = "You help a hotel receptionist collect a booking"


# ======================================================
# FAKE PORTS
# ======================================================

class FakeTranslation(TranslationPort):
    def __init__(self, language: str = "es", translations: Optional[Dict[str, str]] = None):
        self.language = language
        self.translations = translations or {}
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None

    async def detect_language(self, text: str) -> str:
        if self.error:
            raise self.error
        return self.language

    async def translate(self, text: str, source: str, target: str) -> str:
        self.calls.append((text, source, target))
        if self.error:
            raise self.error
        return self.translations.get(text, text)


class FakeRetrieval(RetrievalPort):
    def __init__(self, passages: Optional[List[str]] = None):
        self.passages = ["El hotel cuenta con cochera cubierta sin cargo."] if passages is None else passages
        self.calls: List[dict] = []

    async def search(self, query, hotel_id, filters, lang):
        self.calls.append({"query": query, "hotel_id": hotel_id, "filters": dict(filters), "lang": lang})
        return list(self.passages)


class FakeGeneration(GenerationPort):
    """Answers by prompt kind: classifier, slot extraction or knowledge answer."""

    def __init__(self):
        self.classifier_reply = '{"category": "retrieval_based", "promptKey": "ambiguity_policy"}'
        self.extraction_reply = '{"slots": {}, "question": ""}'
        self.answer = "Respuesta generada desde la base de conocimiento."
        self.error: Optional[Exception] = None
        self.calls: List[tuple] = []

    def kinds(self) -> List[str]:
        return [self._kind(system) for system, _ in self.calls]

    @staticmethod
    def _kind(system_prompt: str) -> str:
        if CLASSIFIER_MARKER in system_prompt:
            return "classifier"
        if EXTRACTION_MARKER in system_prompt:
            return "extraction"
        return "answer"

    async def generate(self, system_prompt: str, user_text: str) -> str:
        self.calls.append((system_prompt, user_text))
        if self.error:
            raise self.error
        kind = self._kind(system_prompt)
        if kind == "classifier":
            return self.classifier_reply
        if kind == "extraction":
            return self.extraction_reply
        return self.answer


class FakeAvailability(AvailabilityPort):
    """Available by default; ``responder`` overrides the result per request."""

    def __init__(self, responder: Optional[Callable[[AvailabilityRequest], AvailabilityResult]] = None):
        self.responder = responder or (lambda request: AvailabilityResult(
            ok=True,
            available=True,
            options=[ProposalOption(room_type=request.room_type, price_per_night=100.0, currency="usd")],
        ))
        self.requests: List[AvailabilityRequest] = []

    async def check_availability(self, hotel_id: str, request: AvailabilityRequest) -> AvailabilityResult:
        self.requests.append(request)
        return self.responder(request)


class FakeReservations(ReservationPort):
    def __init__(self, reservation_id: str = "R-ABC123"):
        self.reservation_id = reservation_id
        self.fail_create = False
        self.fail_cancel = False
        self.created: List[ReservationSlots] = []
        self.cancelled: List[str] = []

    async def confirm_and_create(self, hotel_id: str, slots: ReservationSlots) -> CreationResult:
        self.created.append(slots)
        if self.fail_create:
            return CreationResult(ok=False, message="channel manager rejected the booking")
        return CreationResult(ok=True, reservation_id=self.reservation_id)

    async def cancel(self, hotel_id: str, reservation_id: str) -> bool:
        self.cancelled.append(reservation_id)
        return not self.fail_cancel


# ======================================================
# FIXTURES
# ======================================================

@pytest.fixture
def settings():
    return Settings(openai_api_key="sk-test-key", hotel_default_language="es")


@pytest.fixture
def ports():
    return Ports(
        translation=FakeTranslation(),
        retrieval=FakeRetrieval(),
        generation=FakeGeneration(),
        availability=FakeAvailability(),
        reservations=FakeReservations(),
        store=InMemoryConversationStore(),
    )


@pytest.fixture
def agent_graph(ports, settings):
    return build_agent_graph(ports, settings)


@pytest.fixture
def chat_service(ports, settings, agent_graph):
    return ChatService(ports, settings=settings, agent_graph=agent_graph)


@pytest.fixture
def complete_slots():
    return {
        "guest_name": "Marcelo Martinez",
        "room_type": "double",
        "check_in": "2030-03-10",
        "check_out": "2030-03-12",
    }


def make_state(message: str = "", **overrides) -> dict:
    """Graph state for calling a node directly."""
    state = {
        "messages": [{"role": "user", "content": message}],
        "hotel_id": HOTEL_ID,
        "conversation_id": CONVERSATION_ID,
        "channel": "web",
        "hotel_language": "es",
        "detected_language": "es",
        "normalized_message": message,
        "category": "",
        "sales_stage": "qualify",
        "reservation_slots": {},
        "last_proposal": None,
        "last_reservation": None,
        "meta": {},
    }
    state.update(overrides)
    return state
