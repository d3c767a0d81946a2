from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(_ApiModel):
    """Payload for one conversation turn."""

    conversation_id: Optional[str] = Field(
        default=None,
        description="Client-chosen conversation id; a new conversation is created on first use.",
    )
    message: Optional[str] = Field(default=None, description="Free-text user message.")
    snapshot: Optional[Any] = Field(
        default=None,
        description="Full conversation snapshot previously returned by this API.",
    )
    structured_input: Optional[Dict[str, Any]] = Field(
        default=None,
        description='Selector answers keyed by fact name, e.g. {"wildnessLevel": 4}.',
    )
    user_id: Optional[str] = None


class ChatResponse(_ApiModel):
    """Reply and state after one conversation turn."""

    conversation_id: str
    response: str
    phase: str
    facts: Dict[str, Any]
    assumptions: List[str] = Field(default_factory=list)
    itinerary: Optional[Dict[str, Any]] = None
    snapshot: Dict[str, Any]
    interactive: Optional[Dict[str, Any]] = None


class CleanupResponse(_ApiModel):
    removed: int
    active_conversations: int
