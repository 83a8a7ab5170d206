import logging
import os
import sys

import structlog


def _resolve_level() -> int:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def configure_logger():
    """
    Configure structlog and standard logging.

    LOG_LEVEL selects the threshold (default INFO) and LOG_FORMAT=json switches
    the console renderer for the JSON one used in deployed environments.
    """
    level = _resolve_level()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    if os.getenv("LOG_FORMAT", "console").lower() == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_conversation(hotel_id: str, conversation_id: str, channel: str = "web"):
    """Attach the conversation identity to every log line emitted during a turn."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        hotel_id=hotel_id,
        conversation_id=conversation_id,
        channel=channel,
    )


def get_logger(name=None):
    return structlog.get_logger(name)
