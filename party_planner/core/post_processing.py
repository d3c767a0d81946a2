import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from langchain_core.messages import BaseMessage
from pydantic import BaseModel, ValidationError

from party_planner.core.schemas import (
    DEFAULT_DAY_THEME,
    AlternativeOption,
    DaySelection,
    ServiceSelection,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
_CODE_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)

_SELECTION_ALIASES = {
    "id": "serviceId",
    "service_id": "serviceId",
    "name": "serviceName",
    "service_name": "serviceName",
    "time_slot": "timeSlot",
    "time": "timeSlot",
    "slot": "timeSlot",
    "estimated_duration": "estimatedDuration",
    "group_suitability": "groupSuitability",
}


def message_text(message: Any) -> Optional[str]:
    """Flatten a chat model response into plain text."""

    content = message.content if isinstance(message, BaseMessage) else message
    if content is None:
        return None
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        try:
            return json.dumps(content)
        except (TypeError, ValueError):
            return str(content)
    if isinstance(content, list):
        chunks: List[str] = []
        for chunk in content:
            if isinstance(chunk, dict) and chunk.get("type") == "text":
                chunks.append(chunk.get("text", ""))
            elif isinstance(chunk, str):
                chunks.append(chunk)
        return "\n".join(chunks) if chunks else None
    return str(content)


def extract_json(raw_output: Optional[str]) -> Optional[Any]:
    """Extract JSON from raw LLM output with tolerant parsing of extra wrappers."""

    if not raw_output:
        return None

    candidates: List[str] = []
    stripped = raw_output.strip()
    if stripped:
        candidates.append(stripped)

    for match in _CODE_BLOCK_PATTERN.finditer(raw_output):
        block = match.group(1).strip()
        if block:
            candidates.append(block)

    # first JSON object/array within surrounding prose
    start_positions = [idx for idx in (stripped.find("{"), stripped.find("[")) if idx != -1]
    if start_positions:
        start_idx = min(start_positions)
        closing_char = "}" if stripped[start_idx] == "{" else "]"
        end_idx = stripped.rfind(closing_char)
        if end_idx != -1 and end_idx >= start_idx:
            candidates.append(stripped[start_idx : end_idx + 1].strip())

    last_error: Optional[json.JSONDecodeError] = None
    for candidate in dict.fromkeys(candidates):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as exc:
            last_error = exc
            continue

    if last_error:
        logger.warning("Failed to parse raw LLM output as JSON: %s", last_error)
    return None


def normalise_collection(json_data: Any, key: Optional[Union[str, Sequence[str]]]) -> Sequence[Any]:
    candidate_keys: Tuple[str, ...] = ()
    if isinstance(key, str):
        candidate_keys = (key,)
    elif key:
        candidate_keys = tuple(key)

    if isinstance(json_data, dict):
        for candidate_key in candidate_keys:
            if candidate_key in json_data:
                value = json_data[candidate_key]
                if isinstance(value, (list, tuple)):
                    return value
                if value is None:
                    return []
                return [value]
        return []
    if isinstance(json_data, (list, tuple)):
        return json_data
    return []


def build_items(
    entries: Sequence[Any],
    model: Type[ModelT],
    *,
    item_transform: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
) -> List[ModelT]:
    """Validate each entry, skipping the ones that fail."""

    items: List[ModelT] = []
    for idx, item in enumerate(entries):
        if not isinstance(item, dict):
            logger.debug(
                "Skipping %s at position %s; expected dict-like structure, got %s",
                model.__name__,
                idx,
                type(item).__name__,
            )
            continue
        data = item_transform(dict(item)) if item_transform else dict(item)
        try:
            items.append(model.model_validate(data))
        except ValidationError as exc:
            logger.warning("Skipping %s at position %s due to validation error: %s", model.__name__, idx, exc)
    return items


def _selection_keys(item: Dict[str, Any]) -> Dict[str, Any]:
    mutated = dict(item)
    for source, target in _SELECTION_ALIASES.items():
        if source in mutated and target not in mutated:
            mutated[target] = mutated.pop(source)
    mutated.setdefault("serviceName", "")
    mutated.setdefault("timeSlot", "")
    return mutated


def repair_day_selection(raw_output: Optional[str]) -> Optional[DaySelection]:
    """Rebuild a ``DaySelection`` from free-form model text.

    Code fences and prose are stripped, invalid items are skipped and the
    optional fields fall back to their defaults.
    """

    json_data = extract_json(raw_output)
    if json_data is None:
        return None

    selected = build_items(
        normalise_collection(json_data, ("selectedServices", "selected_services", "services")),
        ServiceSelection,
        item_transform=_selection_keys,
    )
    alternatives = build_items(
        normalise_collection(json_data, ("alternativeOptions", "alternative_options", "alternatives"))
        if isinstance(json_data, dict)
        else [],
        AlternativeOption,
        item_transform=_selection_keys,
    )
    meta = json_data if isinstance(json_data, dict) else {}
    return DaySelection(
        selected_services=selected,
        alternative_options=alternatives,
        day_theme=meta.get("dayTheme") or meta.get("day_theme") or DEFAULT_DAY_THEME,
        logistics_notes=meta.get("logisticsNotes") or meta.get("logistics_notes") or "",
    )


def repair_model(raw_output: Optional[str], model: Type[ModelT]) -> Optional[ModelT]:
    """Parse a whole model out of raw text, or return None."""

    json_data = extract_json(raw_output)
    if not isinstance(json_data, dict):
        return None
    try:
        return model.model_validate(json_data)
    except ValidationError as exc:
        logger.warning("Failed to convert raw output to %s: %s", model.__name__, exc)
        return None
