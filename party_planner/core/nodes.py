"""LangGraph nodes for one conversation turn."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, MutableMapping

from langchain_core.language_models.chat_models import BaseChatModel
from langgraph.runtime import Runtime

from party_planner.core.dev_commands import handle_dev_command
from party_planner.core.extraction import apply_turn_extraction, reduce_state
from party_planner.core.narration import gathering_reply, interactive_for
from party_planner.core.phases import missing_essentials, next_phase
from party_planner.core.planning import begin_planning, handle_planning_turn, handle_standby_turn
from party_planner.core.schemas import GatheringStep, Phase, TurnContext, TurnState
from party_planner.core.selection import ServiceSelector
from party_planner.services.catalog import ServiceCatalog

logger = logging.getLogger(__name__)


def make_dev_command_node(snapshots: MutableMapping[str, Dict[str, Any]]):
    """Return the node that handles slash commands when they are enabled."""

    async def node(state: TurnState, runtime: Runtime[TurnContext]) -> Dict[str, Any]:
        if not runtime.context.dev_commands:
            return {}
        result = handle_dev_command(
            state.conversation,
            state.message,
            snapshots,
            wildness_first=runtime.context.wildness_first,
            today=runtime.context.today,
        )
        if result is None:
            return {}
        logger.info("Dev command %r for conversation %s", state.message.split(" ")[0], result.conversation.id)
        if result.seeded:
            return {"conversation": result.conversation, "seeded": True, "phase_changed": True}
        return {"conversation": result.conversation, "reply": result.reply, "handled": True}

    return node


def route_after_dev_commands(state: TurnState) -> str:
    if state.handled:
        return "finalize"
    if state.seeded:
        return "planning"
    return "extract"


def make_extraction_node(llm: BaseChatModel):
    """Return the node that merges fact proposals and re-evaluates the phase."""

    async def node(state: TurnState, runtime: Runtime[TurnContext]) -> Dict[str, Any]:
        conversation = state.conversation
        today = runtime.context.today
        previous = conversation.phase
        awaiting_wildness = conversation.gathering_step is GatheringStep.AWAITING_WILDNESS

        reduction = None
        if not awaiting_wildness and previous is not Phase.STANDBY and state.message.strip():
            reduction = await reduce_state(llm, conversation, state.message, today)

        outcome = apply_turn_extraction(
            conversation,
            state.message,
            reduction=reduction,
            structured_input=state.structured_input,
            today=today,
        )
        phase = next_phase(conversation, outcome, reduction=reduction, message=state.message, today=today)
        reverted = previous is not Phase.GATHERING and conversation.phase is Phase.GATHERING
        if phase is not conversation.phase:
            logger.info("Conversation %s: %s -> %s", conversation.id, conversation.phase.value, phase.value)
        conversation.phase = phase

        return {
            "conversation": conversation,
            "reduction": reduction,
            "assumptions": list(reduction.assumptions) if reduction else [],
            "phase_changed": previous is Phase.GATHERING and phase is Phase.PLANNING,
            "reverted": reverted,
            "wildness_answered": awaiting_wildness,
            "ambiguous": [update.name for update in outcome.ambiguous],
            "clarify": list(outcome.clarify),
        }

    return node


def route_by_phase(state: TurnState) -> str:
    return state.conversation.phase.value


def make_gathering_node():
    """Return the node that writes the GATHERING reply."""

    async def node(state: TurnState, runtime: Runtime[TurnContext]) -> Dict[str, Any]:
        conversation = state.conversation
        missing = missing_essentials(conversation)
        reply = gathering_reply(
            conversation,
            state.reduction,
            missing=missing,
            ambiguous=state.ambiguous,
            clarify=state.clarify,
            reverted=state.reverted,
            wildness_answered=state.wildness_answered,
        )
        return {"reply": reply, "interactive": interactive_for(conversation, state.reduction, missing)}

    return node


def make_planning_node(llm: BaseChatModel, selector: ServiceSelector, catalog: ServiceCatalog):
    """Return the node that builds and edits the itinerary day by day."""

    async def node(state: TurnState, runtime: Runtime[TurnContext]) -> Dict[str, Any]:
        conversation = state.conversation
        today = runtime.context.today
        if state.phase_changed:
            reply = await begin_planning(llm, selector, catalog, conversation, state.message, today)
        else:
            reply = await handle_planning_turn(
                llm, selector, catalog, conversation, state.message, state.reduction, today
            )
        return {"conversation": conversation, "reply": reply}

    return node


def make_standby_node(llm: BaseChatModel, selector: ServiceSelector):
    """Return the node that answers questions and edits after planning is done."""

    async def node(state: TurnState, runtime: Runtime[TurnContext]) -> Dict[str, Any]:
        conversation = state.conversation
        reply = await handle_standby_turn(llm, selector, conversation, state.message, runtime.context.today)
        return {"conversation": conversation, "reply": reply}

    return node


def make_finalize_node():
    """Return the node that appends the turn to the message log."""

    async def node(state: TurnState, runtime: Runtime[TurnContext]) -> Dict[str, Any]:
        conversation = state.conversation
        if not state.handled:
            user_text = state.message or json.dumps(state.structured_input or {}, default=str)
            conversation.log("user", user_text)
            conversation.log("assistant", state.reply)
        return {"conversation": conversation}

    return node
