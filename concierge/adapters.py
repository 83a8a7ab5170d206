"""
Port Adapters
=============

Production implementations of the concierge ports:

- OpenAI (via langchain-openai) for generation, language detection and translation
- Pinecone for the hotel knowledge base
- an HTTP channel manager (httpx) for availability, booking and cancellation
- the in-memory conversation store
"""

import asyncio
import os
from typing import Any, Dict, List, Optional

import httpx
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI, OpenAIEmbeddings
from pinecone import Pinecone

from .config import Settings, build_llm, get_settings
from .ports import (
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
from .prompt_loader import get_prompts
from .state import ProposalOption, ReservationSlots
from .state_store import InMemoryConversationStore
from logger_config import get_logger

logger = get_logger(__name__)


# ======================================================
# OPENAI
# ======================================================

class OpenAIGeneration(GenerationPort):
    def __init__(self, llm: ChatOpenAI):
        self.llm = llm

    async def generate(self, system_prompt: str, user_text: str) -> str:
        out = await self.llm.ainvoke([
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_text),
        ])
        content = out.content
        return content.strip() if isinstance(content, str) else str(content)


class OpenAITranslation(TranslationPort):
    """Detection and translation through the same chat model."""

    def __init__(self, generation: GenerationPort):
        self.generation = generation

    async def detect_language(self, text: str) -> str:
        return await self.generation.generate(get_prompts().get("language.detect"), text)

    async def translate(self, text: str, source: str, target: str) -> str:
        if source[:2].lower() == target[:2].lower():
            return text
        system = get_prompts().format("language.translate", source=source, target=target)
        return await self.generation.generate(system, text)


# ======================================================
# PINECONE
# ======================================================

class PineconeRetrieval(RetrievalPort):
    """Knowledge-base search over a Pinecone index filtered by hotel and topic."""

    def __init__(self, api_key: str, index_name: str, top_k: int = 4):
        if not api_key:
            raise ValueError("PINECONE_API_KEY environment variable not set")
        self.index = Pinecone(api_key=api_key).Index(index_name)
        self.embeddings = OpenAIEmbeddings(
            model="text-embedding-3-large",  # 3072 dimensions
            openai_api_key=os.getenv("OPENAI_API_KEY"),
        )
        self.top_k = top_k

    async def search(
        self,
        query: str,
        hotel_id: str,
        filters: Dict[str, Optional[str]],
        lang: str,
    ) -> List[str]:
        metadata_filter: Dict[str, Any] = {"hotel_id": {"$eq": hotel_id}}
        if filters.get("category"):
            metadata_filter["category"] = {"$eq": filters["category"]}
        if filters.get("prompt_key"):
            metadata_filter["prompt_key"] = {"$eq": filters["prompt_key"]}
        if lang:
            metadata_filter["lang"] = {"$eq": lang}

        try:
            vector = await self.embeddings.aembed_query(query)
            results = await asyncio.to_thread(
                self.index.query,
                vector=vector,
                top_k=self.top_k,
                include_metadata=True,
                filter=metadata_filter,
            )
        except Exception as e:
            logger.error("Error retrieving passages from Pinecone", error=str(e), hotel_id=hotel_id)
            return []

        passages = [
            (match.metadata or {}).get("text", "")
            for match in results.matches
        ]
        passages = [p for p in passages if p]
        logger.info("Retrieved passages from Pinecone", count=len(passages), hotel_id=hotel_id)
        return passages


# ======================================================
# CHANNEL MANAGER (HTTP)
# ======================================================

class ChannelManagerClient(AvailabilityPort, ReservationPort):
    """Availability, booking and cancellation against the hotel's channel manager."""

    def __init__(self, base_url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self):
        await self.client.aclose()

    async def check_availability(self, hotel_id: str, request: AvailabilityRequest) -> AvailabilityResult:
        try:
            response = await self.client.post(
                f"{self.base_url}/hotels/{hotel_id}/availability",
                json=request.as_dict(),
            )
            response.raise_for_status()
            data = response.json() or {}
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Availability request failed", error=str(e), hotel_id=hotel_id)
            return AvailabilityResult(ok=False)

        options = [
            ProposalOption(
                room_type=item.get("room_type"),
                price_per_night=item.get("price_per_night"),
                currency=item.get("currency"),
                check_in=item.get("check_in"),
                check_out=item.get("check_out"),
            )
            for item in data.get("options") or []
            if isinstance(item, dict)
        ]
        return AvailabilityResult(
            ok=True,
            available=bool(data.get("available")),
            proposal_text=data.get("proposal"),
            options=options,
        )

    async def confirm_and_create(self, hotel_id: str, slots: ReservationSlots) -> CreationResult:
        try:
            response = await self.client.post(
                f"{self.base_url}/hotels/{hotel_id}/reservations",
                json=slots.present_values(),
            )
            response.raise_for_status()
            data = response.json() or {}
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Reservation creation failed", error=str(e), hotel_id=hotel_id)
            return CreationResult(ok=False, message=str(e))

        reservation_id = data.get("reservation_id")
        if not reservation_id:
            return CreationResult(ok=False, message=data.get("message") or "missing reservation_id")
        return CreationResult(ok=True, reservation_id=str(reservation_id), message=data.get("message"))

    async def cancel(self, hotel_id: str, reservation_id: str) -> bool:
        try:
            response = await self.client.post(
                f"{self.base_url}/hotels/{hotel_id}/reservations/{reservation_id}/cancel",
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Reservation cancellation failed", error=str(e), reservation_id=reservation_id)
            return False
        return True


def build_default_ports(settings: Settings = None) -> Ports:
    """Wire the production adapters from environment settings."""
    settings = settings or get_settings()
    generation = OpenAIGeneration(build_llm(settings))
    channel_manager = ChannelManagerClient(settings.channel_manager_url, settings.channel_manager_timeout)
    return Ports(
        translation=OpenAITranslation(generation),
        retrieval=PineconeRetrieval(settings.pinecone_api_key, settings.knowledge_index_name),
        generation=generation,
        availability=channel_manager,
        reservations=channel_manager,
        store=InMemoryConversationStore(),
    )
