"""Slash commands that shortcut the conversation during development."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, MutableMapping, Optional

from pydantic import ValidationError

from party_planner.core.extraction import merge_updates, parse_budget, structured_updates
from party_planner.core.phases import revert_to_gathering
from party_planner.core.schemas import Conversation, Phase

logger = logging.getLogger(__name__)

DEV_PROVENANCE = "dev"
SEED_USAGE = (
    "Usage: /seed <json> or /seed <city> <groupSize> <YYYY-MM-DD>[..YYYY-MM-DD] [wild=1-5] [budget=...]\n"
    "Example: /seed Austin 7 2025-09-05..2025-09-07 wild=5 budget=flexible"
)
UNKNOWN_COMMAND = "Unknown dev command {command}. Try /seed, /phase, /facts, /snapshot, /reset."

_RANGE_TOKEN = re.compile(r"^(\d{4}-\d{2}-\d{2})(?:\.\.(\d{4}-\d{2}-\d{2}))?$")


@dataclass
class DevResult:
    reply: str
    conversation: Conversation
    seeded: bool = False


def parse_seed(args: str) -> Dict[str, Any]:
    """Read ``/seed`` arguments, either a JSON object or the compact form."""

    args = args.strip()
    if args.startswith("{"):
        payload = json.loads(args)
        if not isinstance(payload, dict):
            raise ValueError("seed JSON must be an object")
        return payload

    payload: Dict[str, Any] = {}
    city_words = []
    for token in args.split():
        key, sep, value = token.partition("=")
        if sep:
            key = key.lower()
            if key in ("wild", "wildness"):
                payload["wildnessLevel"] = int(value)
            elif key == "budget":
                parsed = (int(value), None) if value.isdigit() else (parse_budget(value) or (value, None))
                payload["budget"] = parsed[0]
                if parsed[1]:
                    payload["budgetType"] = parsed[1]
            elif key in ("type", "budgettype"):
                payload["budgetType"] = value
            continue
        dates = _RANGE_TOKEN.match(token)
        if dates:
            payload["startDate"] = dates.group(1)
            payload["endDate"] = dates.group(2) or dates.group(1)
        elif token.isdigit() and "groupSize" not in payload:
            payload["groupSize"] = int(token)
        else:
            city_words.append(token)
    if city_words:
        payload["destination"] = " ".join(city_words)
    if "startDate" in payload and "endDate" not in payload:
        payload["endDate"] = payload["startDate"]
    return payload


def _seed(conversation: Conversation, args: str, today: Optional[date]) -> DevResult:
    if not args.strip():
        return DevResult(SEED_USAGE, conversation)
    try:
        payload = parse_seed(args)
    except ValueError as exc:
        return DevResult(f"(dev) Could not parse seed: {exc}\n{SEED_USAGE}", conversation)
    if not payload.get("destination") or not payload.get("startDate"):
        return DevResult(SEED_USAGE, conversation)

    if payload.get("endDate") is None:
        payload["endDate"] = payload["startDate"]
    revert_to_gathering(conversation)
    updates, unparsed = structured_updates(payload, today)
    updates = [u.model_copy(update={"provenance": DEV_PROVENANCE}) for u in updates]
    outcome = merge_updates(conversation.facts, updates, correction=True)
    if unparsed or outcome.clarify:
        names = ", ".join(unparsed + outcome.clarify)
        return DevResult(f"(dev) Could not apply: {names}\n{SEED_USAGE}", conversation)
    conversation.phase = Phase.PLANNING
    logger.info("Seeded conversation %s: %s", conversation.id, payload)
    return DevResult("", conversation, seeded=True)


def _facts(conversation: Conversation, args: str, today: Optional[date]) -> DevResult:
    try:
        payload = json.loads(args or "{}")
    except json.JSONDecodeError as exc:
        return DevResult(f"(dev) Invalid facts JSON: {exc}", conversation)
    if not isinstance(payload, dict):
        return DevResult("(dev) Facts must be a JSON object.", conversation)
    updates, _ = structured_updates(payload, today)
    merge_updates(
        conversation.facts,
        [u.model_copy(update={"provenance": DEV_PROVENANCE}) for u in updates],
        correction=True,
    )
    return DevResult("(dev) Facts updated.", conversation)


def _phase(conversation: Conversation, args: str) -> DevResult:
    name = args.strip().lower()
    try:
        conversation.phase = Phase(name)
    except ValueError:
        return DevResult(f"Unknown phase {name!r}. Use gathering, planning or standby.", conversation)
    return DevResult(f"(dev) Phase forced to {conversation.phase.value}", conversation)


def _snapshot(conversation: Conversation, args: str, store: MutableMapping[str, Dict[str, Any]]) -> DevResult:
    parts = args.split()
    action = parts[0].lower() if parts else "print"
    name = parts[1] if len(parts) > 1 else "default"
    if action == "save":
        store[name] = conversation.export_snapshot()
        return DevResult(f"(dev) Snapshot **{name}** saved.", conversation)
    if action == "load":
        snapshot = store.get(name)
        if snapshot is None:
            return DevResult(f"(dev) No snapshot named **{name}**.", conversation)
        try:
            restored = Conversation.from_snapshot(snapshot)
        except ValidationError as exc:
            logger.warning("Snapshot %s failed validation: %s", name, exc)
            return DevResult(f"(dev) Snapshot **{name}** is invalid.", conversation)
        restored.id = conversation.id
        return DevResult(f"(dev) Snapshot **{name}** loaded.", restored)
    if action == "print":
        snapshot = store.get(name) if name in store else conversation.export_snapshot()
        return DevResult("(dev) Snapshot:\n" + json.dumps(snapshot, indent=2, default=str), conversation)
    return DevResult("Usage: /snapshot save|load|print NAME", conversation)


def handle_dev_command(
    conversation: Conversation,
    message: str,
    store: MutableMapping[str, Dict[str, Any]],
    *,
    wildness_first: bool = False,
    today: Optional[date] = None,
) -> Optional[DevResult]:
    """Run a slash command, or return None when ``message`` is not one."""

    text = (message or "").strip()
    if not text.startswith("/"):
        return None
    command, _, args = text.partition(" ")
    command = command.lower()

    if command == "/seed":
        return _seed(conversation, args, today)
    if command == "/phase":
        return _phase(conversation, args)
    if command == "/facts":
        return _facts(conversation, args, today)
    if command == "/snapshot":
        return _snapshot(conversation, args, store)
    if command == "/reset":
        fresh = Conversation.create(conversation.id, user_id=conversation.user_id, wildness_first=wildness_first)
        return DevResult("(dev) Conversation reset.", fresh)
    return DevResult(UNKNOWN_COMMAND.format(command=command), conversation)
