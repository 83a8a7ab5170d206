"""
Langfuse tracing for the concierge graph nodes.

Each node runs inside its own span; the span carries the routing outcome of
the turn (category, sub-key, sales stage) and the trace is grouped per
conversation so a guest's whole exchange reads as one session.
"""

import inspect
import os
from functools import wraps
from typing import Any, Dict, Optional

from langfuse import Langfuse, observe

from logger_config import get_logger

logger = get_logger(__name__)

_langfuse = None

SPAN_FIELDS = ("category", "prompt_key", "sales_stage", "intent_source", "response_language")


def get_langfuse() -> Langfuse:
    """Langfuse client, created on first use."""
    global _langfuse
    if _langfuse is None:
        _langfuse = Langfuse(
            secret_key=os.getenv("LANGFUSE_SECRET_KEY"),
            public_key=os.getenv("LANGFUSE_PUBLIC_KEY"),
            host=os.getenv("LANGFUSE_HOST"),
        )
    return _langfuse


def span_metadata(state: Optional[Dict[str, Any]], result: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Routing fields of a node run; values the node returned win over the incoming state."""
    state = state if isinstance(state, dict) else {}
    result = result if isinstance(result, dict) else {}
    metadata = {"hotel_id": state.get("hotel_id"), "channel": state.get("channel")}
    for key in SPAN_FIELDS:
        value = result.get(key, state.get(key))
        if value:
            metadata[key] = value
    return {k: v for k, v in metadata.items() if v is not None}


def annotate_span(state: Optional[Dict[str, Any]], result: Optional[Dict[str, Any]]) -> None:
    if not isinstance(state, dict):
        return
    try:
        client = get_langfuse()
        client.update_current_span(metadata=span_metadata(state, result))
        if state.get("hotel_id") and state.get("conversation_id"):
            client.update_current_trace(session_id=f"{state['hotel_id']}:{state['conversation_id']}")
    except Exception as e:
        # Tracing never breaks a turn.
        logger.debug("Could not annotate langfuse span", error=str(e))


def track_agent(agent_name: str):
    """
    Decorator to trace a graph node as a langfuse span.

    The node's first argument is the graph state; its returned updates are
    attached to the span as metadata.

    Args:
        agent_name: Name of the node (e.g., 'classify', 'reservation')
    """
    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @observe(name=agent_name)
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                result = await func(*args, **kwargs)
                annotate_span(args[0] if args else kwargs.get("state"), result)
                return result
            return async_wrapper
        else:
            @observe(name=agent_name)
            @wraps(func)
            def sync_wrapper(*args, **kwargs):
                result = func(*args, **kwargs)
                annotate_span(args[0] if args else kwargs.get("state"), result)
                return result
            return sync_wrapper
    return decorator


def flush_langfuse():
    """Flush all pending Langfuse events"""
    get_langfuse().flush()
