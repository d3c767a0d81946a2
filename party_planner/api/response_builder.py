from typing import Any, Dict, Mapping, Optional

from party_planner.api.schemas import ChatResponse
from party_planner.core.itinerary import format_itinerary_for_frontend
from party_planner.core.schemas import Conversation, InteractiveDirective


def _interactive(raw: Any) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    if isinstance(raw, InteractiveDirective):
        return raw.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(raw, Mapping):
        return dict(raw)
    return None


def _conversation(result: Mapping[str, Any]) -> Conversation:
    conversation = result.get("conversation")
    if isinstance(conversation, Conversation):
        return conversation
    if isinstance(conversation, Mapping):
        return Conversation.model_validate(conversation)
    raise RuntimeError("Turn result did not include the conversation state.")


def build_chat_response(result: Mapping[str, Any]) -> ChatResponse:
    """Convert the graph output of one turn into the API response."""

    conversation = _conversation(result)
    return ChatResponse(
        conversation_id=conversation.id,
        response=result.get("reply") or "",
        phase=conversation.phase.value,
        facts=conversation.facts.model_dump(mode="json", by_alias=True),
        assumptions=list(result.get("assumptions") or []),
        itinerary=format_itinerary_for_frontend(conversation),
        snapshot=conversation.export_snapshot(),
        interactive=_interactive(result.get("interactive")),
    )
