"""
Configuration
"""

import json
import os
from dataclasses import dataclass, field
from typing import Dict

from langchain_openai import ChatOpenAI
from logger_config import get_logger

logger = get_logger(__name__)

# .env is loaded in main.py; here we only read from environment


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        logger.warning("Invalid float setting, using default", name=name, default=default)
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        logger.warning("Invalid int setting, using default", name=name, default=default)
        return default


def _hotel_languages() -> Dict[str, str]:
    raw = os.getenv("HOTEL_LANGUAGES", "")
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("HOTEL_LANGUAGES is not valid JSON", error=str(e))
        return {}
    return {str(k): str(v)[:2].lower() for k, v in data.items()} if isinstance(data, dict) else {}


@dataclass
class Settings:
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    pinecone_api_key: str = ""
    knowledge_index_name: str = ""
    channel_manager_url: str = ""
    channel_manager_timeout: float = 10.0
    hotel_default_language: str = "es"
    hotel_languages: Dict[str, str] = field(default_factory=dict)
    sticky_lookback: int = 3
    llm_fallback_threshold: float = 0.75

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            pinecone_api_key=os.getenv("PINECONE_API_KEY", ""),
            knowledge_index_name=os.getenv("KNOWLEDGE_INDEX_NAME", ""),
            channel_manager_url=os.getenv("CHANNEL_MANAGER_URL", ""),
            channel_manager_timeout=_env_float("CHANNEL_MANAGER_TIMEOUT", 10.0),
            hotel_default_language=os.getenv("HOTEL_DEFAULT_LANGUAGE", "es")[:2].lower(),
            hotel_languages=_hotel_languages(),
            sticky_lookback=_env_int("STICKY_LOOKBACK", 3),
            llm_fallback_threshold=_env_float("LLM_FALLBACK_THRESHOLD", 0.75),
        )

    def hotel_language(self, hotel_id: str) -> str:
        return self.hotel_languages.get(hotel_id, self.hotel_default_language)


_settings = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


# --- LLM configuration ---

def build_llm(settings: Settings = None) -> ChatOpenAI:
    """ChatOpenAI client traced through langfuse."""
    settings = settings or get_settings()
    if not settings.openai_api_key:
        raise ValueError(
            "OPENAI_API_KEY not found in environment. "
            "Ensure your .env is in the project root and load_dotenv() is called in main.py."
        )

    from langfuse.langchain import CallbackHandler

    langfuse_handler = CallbackHandler()

    llm = ChatOpenAI(
        model=settings.openai_model,
        temperature=0.0,
        openai_api_key=settings.openai_api_key,
        callbacks=[langfuse_handler],
    )
    logger.info("LLM configured.", model=settings.openai_model)
    return llm
