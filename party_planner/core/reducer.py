from typing import Hashable, Iterable, List, Optional, Sequence, TypeVar
import logging

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def _item_key(item: BaseModel) -> Hashable:
    item_id = getattr(item, "id", None) or getattr(item, "service_id", None)
    if item_id:
        return ("id", str(item_id))
    return ("fallback", getattr(item, "name", None), getattr(item, "type", None))


def reducer(existing: Optional[Sequence[T]], new: Optional[Sequence[T]]) -> List[T]:
    """Merge two collections of models, keeping the first occurrence of each id."""

    if not new:
        return list(existing or [])
    if not existing:
        logger.info("Reducer: No existing items, using %s new items", len(new))
        return dedupe(new)

    merged = list(existing)
    seen = {_item_key(item) for item in merged}
    added = 0
    for item in new:
        key = _item_key(item)
        if key in seen:
            continue
        seen.add(key)
        merged.append(item)
        added += 1

    logger.info("Reducer: Added %s new items, total: %s", added, len(merged))
    return merged


def dedupe(items: Iterable[T]) -> List[T]:
    """Drop repeated ids while keeping the original order."""

    seen = set()
    unique: List[T] = []
    for item in items:
        key = _item_key(item)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique
