import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Mapping, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_openai import ChatOpenAI
from langchain_xai import ChatXAI
from pydantic import ValidationError

from party_planner.api.response_builder import build_chat_response
from party_planner.api.schemas import ChatResponse
from party_planner.core.config import ApiSettings
from party_planner.core.extraction import absorb_opening_message, parse_wildness
from party_planner.core.graph_builder import build_planner_graph
from party_planner.core.schemas import WILDNESS_QUESTION, Conversation, TurnContext, TurnState
from party_planner.core.selection import LLMServiceSelector, ServiceSelector
from party_planner.services import ServiceCatalog, create_catalog

logger = logging.getLogger(__name__)


def build_llm(settings: ApiSettings) -> BaseChatModel:
    """Chat model for the configured provider."""

    if settings.llm_provider == "xai":
        return ChatXAI(
            model=settings.xai_model,
            temperature=0,
            api_key=settings.ensure("xai_api_key"),
        )
    return ChatOpenAI(
        model=settings.openai_model,
        temperature=0,
        api_key=settings.ensure("openai_api_key"),
    )


class ChatService:
    """Owns the turn graph, its collaborators and the in-memory conversations.

    One turn per conversation id is expected at a time; the host serialises
    requests for the same id.

    Attributes:
        settings: runtime configuration
        llm: chat model used by every node
        catalog: service catalog collaborator
        graph: compiled LangGraph turn graph
        _conversations: conversation state keyed by id
        _last_seen: last turn time per conversation, used for cleanup
    """

    def __init__(
        self,
        settings: ApiSettings,
        *,
        llm: Optional[BaseChatModel] = None,
        catalog: Optional[ServiceCatalog] = None,
        selector: Optional[ServiceSelector] = None,
    ) -> None:
        self.settings = settings
        if llm is None:
            settings.apply_langsmith_tracing()
            llm = build_llm(settings)
        self.llm = llm
        self.catalog = catalog if catalog is not None else create_catalog(settings)
        self.selector = selector or LLMServiceSelector(self.llm)
        self._snapshots: Dict[str, Dict[str, Any]] = {}
        self.graph = build_planner_graph(
            llm=self.llm,
            catalog=self.catalog,
            selector=self.selector,
            snapshots=self._snapshots,
        )
        self._conversations: Dict[str, Conversation] = {}
        self._last_seen: Dict[str, datetime] = {}

    def __repr__(self) -> str:
        llm_name = getattr(self.llm, "model_name", None) or getattr(self.llm, "model", None) or type(self.llm).__name__
        return (
            f"ChatService(llm='{llm_name}', catalog={type(self.catalog).__name__}, "
            f"active_conversations={len(self._conversations)})"
        )

    async def close(self) -> None:
        await self.catalog.aclose()

    def _context(self) -> TurnContext:
        return TurnContext(
            today=date.today(),
            dev_commands=self.settings.enable_dev_commands,
            wildness_first=self.settings.wildness_first,
        )

    def _load(
        self, conversation_id: str, snapshot: Any, user_id: Optional[str]
    ) -> tuple[Conversation, bool]:
        conversation = self._conversations.get(conversation_id)
        if snapshot is not None:
            if not isinstance(snapshot, Mapping):
                raise ValueError("snapshot must be a JSON object")
            try:
                conversation = Conversation.from_snapshot(dict(snapshot))
                conversation.id = conversation_id
            except ValidationError as exc:
                logger.warning("Ignoring invalid snapshot for %s: %s", conversation_id, exc)
        if conversation is not None:
            return conversation, False
        logger.info("Creating conversation %s", conversation_id)
        created = Conversation.create(
            conversation_id, user_id=user_id, wildness_first=self.settings.wildness_first
        )
        return created, True

    async def handle_message(
        self,
        conversation_id: Optional[str],
        message: Optional[str],
        *,
        snapshot: Any = None,
        structured_input: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> ChatResponse:
        """Run one conversation turn and return the reply with the updated state.

        Raises:
            ValueError: when the id or the message is missing, or the snapshot
                is not an object
        """

        if not conversation_id or not conversation_id.strip():
            raise ValueError("conversationId is required")
        if not (message and message.strip()) and not structured_input:
            raise ValueError("message is required")

        conversation, created = self._load(conversation_id, snapshot, user_id)
        self._last_seen[conversation_id] = datetime.now()

        opening = message or ""
        if created and self.settings.wildness_first and not structured_input and parse_wildness(opening) is None:
            # keep what the opener told us, then ask the question already logged by create()
            conversation.log("user", opening)
            absorb_opening_message(conversation, opening, date.today())
            self._conversations[conversation_id] = conversation
            return build_chat_response({"conversation": conversation, "reply": WILDNESS_QUESTION})

        state = TurnState(conversation=conversation, message=message or "", structured_input=structured_input)
        result = await self.graph.ainvoke(state, context=self._context())
        updated = result["conversation"]
        self._conversations[conversation_id] = updated
        logger.info("Turn done for %s in phase %s", conversation_id, updated.phase.value)
        return build_chat_response(result)

    def get_snapshot(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        conversation = self._conversations.get(conversation_id)
        return conversation.export_snapshot() if conversation else None

    def cleanup_old_conversations(self, max_age_minutes: Optional[int] = None) -> int:
        """Remove conversations idle for longer than ``max_age_minutes``."""

        max_age = max_age_minutes if max_age_minutes is not None else self.settings.conversation_max_age_minutes
        cutoff = datetime.now() - timedelta(minutes=max_age)
        stale = [cid for cid, seen in self._last_seen.items() if seen < cutoff]
        for conversation_id in stale:
            self._conversations.pop(conversation_id, None)
            self._last_seen.pop(conversation_id, None)
        logger.info("Cleaned up %s conversations", len(stale))
        return len(stale)

    @property
    def active_conversations(self) -> int:
        return len(self._conversations)

    def workflow_info(self) -> Dict[str, Any]:
        return {
            "llm_model": getattr(self.llm, "model_name", None) or getattr(self.llm, "model", None) or type(self.llm).__name__,
            "llm_provider": self.settings.llm_provider,
            "catalog": type(self.catalog).__name__,
            "active_conversations": len(self._conversations),
            "dev_commands": self.settings.enable_dev_commands,
            "wildness_first": self.settings.wildness_first,
            "nodes": sorted(name for name in self.graph.get_graph().nodes if not name.startswith("__")),
        }
