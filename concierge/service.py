"""
Chat Service
============

Runs one guest turn end to end: load the conversation state, detect and
normalize the guest's language, run the concierge graph and translate the
reply back.
"""

from dataclasses import dataclass
from typing import Optional

from .config import Settings, get_settings
from .graph import build_agent_graph
from .i18n import lang2, reply, resolve_reply_language
from .language import LanguageNormalizer
from .ports import Ports
from .state import ConciergeState, ConversationState
from logger_config import get_logger

logger = get_logger(__name__)


@dataclass
class ChatServiceResponse:
    """Response from the chat service."""
    response: str
    conversation_id: str
    category: Optional[str]
    prompt_key: Optional[str]
    language: str


def thread_id_for(hotel_id: str, conversation_id: str) -> str:
    return f"{hotel_id}:{conversation_id}"


class ChatService:
    """Service for processing guest messages through the concierge graph."""

    def __init__(self, ports: Ports, settings: Optional[Settings] = None, agent_graph=None):
        self.ports = ports
        self.settings = settings or get_settings()
        self.agent_graph = agent_graph or build_agent_graph(ports, self.settings)
        self.normalizer = LanguageNormalizer(ports.translation)

    async def load_state(self, hotel_id: str, conversation_id: str) -> Optional[ConversationState]:
        try:
            return await self.ports.store.get(hotel_id, conversation_id)
        except Exception as e:
            logger.warning("Could not load conversation state, starting fresh", error=str(e))
            return None

    async def process_message(
        self,
        message: str,
        hotel_id: str,
        conversation_id: str,
        channel: str = "web",
        language: Optional[str] = None,
    ) -> ChatServiceResponse:
        """
        Process a guest message through the concierge graph.

        Args:
            message: Guest's message (already sanitized)
            hotel_id: Hotel the conversation belongs to
            conversation_id: Conversation identifier, unique per hotel
            channel: web, whatsapp or email
            language: Optional language hint; detected when absent

        Returns:
            ChatServiceResponse with the reply in the guest's language
        """
        hotel_language = self.settings.hotel_language(hotel_id)
        previous = await self.load_state(hotel_id, conversation_id)

        hint = lang2(language)
        guest_language = hint if hint else await self.normalizer.detect(message, fallback=hotel_language)
        normalized = await self.normalizer.normalize(message, guest_language, hotel_language)

        init_state: ConciergeState = {
            "messages": [{"role": "user", "content": normalized}],
            "hotel_id": hotel_id,
            "conversation_id": conversation_id,
            "channel": channel,
            "hotel_language": hotel_language,
            "detected_language": guest_language,
            "normalized_message": normalized,
            "response": "",
        }
        if previous is not None:
            init_state.update(
                category=previous.category.value if previous.category else "",
                sales_stage=previous.sales_stage,
                reservation_slots=previous.reservation_slots.model_dump(),
                last_proposal=previous.last_proposal.model_dump() if previous.last_proposal else None,
                last_reservation=previous.last_reservation.model_dump() if previous.last_reservation else None,
                meta=dict(previous.meta),
            )
        else:
            init_state.update(
                category="",
                sales_stage="qualify",
                reservation_slots={},
                last_proposal=None,
                last_reservation=None,
            )

        config = {"configurable": {"thread_id": thread_id_for(hotel_id, conversation_id)}}
        try:
            result: ConciergeState = await self.agent_graph.ainvoke(init_state, config=config)
            text = result.get("response") or ""
            reply_lang = result.get("response_language") or resolve_reply_language(guest_language, hotel_language)
            category = result.get("category")
            prompt_key = result.get("prompt_key")
        except Exception as e:
            logger.exception("Concierge graph failed", error=str(e))
            reply_lang = resolve_reply_language(guest_language, hotel_language)
            text = reply("apology", reply_lang)
            category = previous.category.value if previous and previous.category else None
            prompt_key = previous.prompt_key if previous else None

        if not text.strip():
            text = reply("apology", reply_lang)

        # Replies are composed in a supported language; translate only when the guest uses another.
        if guest_language != reply_lang:
            text = await self.normalizer.denormalize(text, reply_lang, guest_language)

        logger.info("Turn completed", category=category, prompt_key=prompt_key, language=guest_language)
        return ChatServiceResponse(
            response=text,
            conversation_id=conversation_id,
            category=category or None,
            prompt_key=prompt_key,
            language=guest_language,
        )

    async def get_state(self, hotel_id: str, conversation_id: str) -> Optional[ConversationState]:
        return await self.ports.store.get(hotel_id, conversation_id)

    async def reset(self, hotel_id: str, conversation_id: str) -> None:
        """Forget the conversation: persisted state and graph checkpoint."""
        await self.ports.store.clear(hotel_id, conversation_id)
        checkpointer = getattr(self.agent_graph, "checkpointer", None)
        if checkpointer is None:
            return
        try:
            await checkpointer.adelete_thread(thread_id_for(hotel_id, conversation_id))
        except NotImplementedError:
            logger.warning("Checkpointer cannot delete threads", hotel_id=hotel_id)
