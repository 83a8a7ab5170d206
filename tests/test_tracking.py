"""Tests for the langfuse node tracing."""

import pytest
from unittest.mock import MagicMock, patch

from concierge import langfuse_tracking
from concierge.langfuse_tracking import span_metadata, track_agent
from conftest import CONVERSATION_ID, HOTEL_ID, make_state


def test_span_metadata_prefers_node_updates():
    state = make_state("hola", category="reservation", sales_stage="qualify")
    metadata = span_metadata(state, {"category": "amenities", "prompt_key": "parking"})
    assert metadata == {
        "hotel_id": HOTEL_ID,
        "channel": "web",
        "category": "amenities",
        "prompt_key": "parking",
        "sales_stage": "qualify",
    }


@pytest.mark.asyncio
async def test_tracked_node_annotates_span_and_session():
    client = MagicMock()

    @track_agent("amenities")
    async def node(state):
        return {"category": "amenities", "prompt_key": "parking", "response": "Sí."}

    with patch.object(langfuse_tracking, "get_langfuse", return_value=client):
        result = await node(make_state("¿tienen estacionamiento?"))

    assert result["response"] == "Sí."
    metadata = client.update_current_span.call_args.kwargs["metadata"]
    assert metadata["prompt_key"] == "parking"
    client.update_current_trace.assert_called_once_with(session_id=f"{HOTEL_ID}:{CONVERSATION_ID}")


@pytest.mark.asyncio
async def test_tracing_failure_does_not_break_the_node():
    client = MagicMock()
    client.update_current_span.side_effect = RuntimeError("langfuse down")

    @track_agent("classify")
    async def node(state):
        return {"category": "billing"}

    with patch.object(langfuse_tracking, "get_langfuse", return_value=client):
        result = await node(make_state("factura"))
    assert result == {"category": "billing"}
