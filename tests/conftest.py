"""Pytest configuration and shared doubles for the party planner tests."""
from __future__ import annotations

import sys
from collections import deque
from datetime import date
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Tuple, Type

import pytest
from langchain_core.messages import AIMessage

# Ensure the project root is on sys.path so that import party_planner works under pytest.
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from party_planner.core.schemas import Conversation, ServiceRecord  # noqa: E402
from party_planner.services.catalog import InMemoryCatalog  # noqa: E402

TODAY = date(2025, 8, 1)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class StructuredResponder:
    """Mimics the object returned by `llm.with_structured_output`."""

    def __init__(self, parent: "StubLLM", model_cls: Type[Any]):
        self._parent = parent
        self._model_cls = model_cls

    async def ainvoke(self, prompt: str) -> Any:
        self._parent.calls.append((self._model_cls, prompt))
        return self._parent.next_structured(self._model_cls, prompt)


class StubLLM:
    """Captures prompts and yields preconfigured responses.

    Structured responses are keyed by model class: a fixed value is returned on
    every call, queued values are consumed one per call. Anything that is not
    stubbed raises, which exercises the fallback paths of the planner.
    """

    model_name = "stub-llm"

    def __init__(self) -> None:
        self.responses: Dict[Type[Any], Any] = {}
        self.queues: Dict[Type[Any], Deque[Any]] = {}
        self.texts: Deque[str] = deque()
        self.calls: List[Tuple[Optional[Type[Any]], str]] = []

    def set_response(self, model_cls: Type[Any], value: Any) -> None:
        self.responses[model_cls] = value

    def queue(self, model_cls: Type[Any], *values: Any) -> None:
        self.queues.setdefault(model_cls, deque()).extend(values)

    def queue_text(self, *texts: str) -> None:
        self.texts.extend(texts)

    def next_structured(self, model_cls: Type[Any], prompt: str) -> Any:
        pending = self.queues.get(model_cls)
        if pending:
            value = pending.popleft()
        elif model_cls in self.responses:
            value = self.responses[model_cls]
        else:
            raise RuntimeError(f"No stubbed response for {model_cls.__name__}")
        if isinstance(value, Exception):
            raise value
        return value(prompt) if callable(value) and not isinstance(value, type) else value

    def with_structured_output(self, model_cls: Type[Any]) -> StructuredResponder:
        return StructuredResponder(self, model_cls)

    async def ainvoke(self, prompt: str) -> AIMessage:
        self.calls.append((None, prompt))
        if self.texts:
            return AIMessage(content=self.texts.popleft())
        raise RuntimeError("No stubbed text response")

    def prompts_for(self, model_cls: Optional[Type[Any]]) -> List[str]:
        return [prompt for cls, prompt in self.calls if cls is model_cls]


def make_service(
    service_id: str,
    name: str,
    service_type: str,
    price: float,
    *,
    description: str = "",
    duration: Optional[float] = 2,
    city: str = "Austin",
    category: Optional[str] = None,
) -> ServiceRecord:
    return ServiceRecord(
        id=service_id,
        name=name,
        type=service_type,
        category=category,
        description=description,
        price_cad=price,
        duration_hours=duration,
        city=city,
    )


AUSTIN_SERVICES = [
    make_service("r1", "Terry Black's BBQ", "Restaurant", 60, description="Legendary Texas barbecue for big groups"),
    make_service("r2", "Jeffrey's Steakhouse", "Restaurant", 120, description="Classic steakhouse dinner in a private room"),
    make_service("n1", "Summit Rooftop", "Night Club", 40, description="Rooftop club with bottle service", duration=4),
    make_service("n2", "Lit Lounge", "Night Club", 35, description="Downtown dance club", duration=4),
    make_service("b1", "Rainey Street Bar Crawl", "Bar", 25, description="Guided crawl through Rainey Street bars", duration=3),
    make_service("s1", "Perfect 10 Gentlemen's Club", "Strip Club", 80, description="Upscale gentlemen's club with VIP section", duration=3),
    make_service("d1", "Lake Travis Boat Party", "Daytime", 150, description="Private boat on Lake Travis with captain", duration=4),
    make_service("t1", "Party Sprinter Van", "Transportation", 45, description="Sprinter van with driver for the night", duration=5),
    make_service("x1", "Deep Ellum Brewery", "Bar", 30, description="Craft beer hall", city="Dallas"),
]


def with_categories(services: List[ServiceRecord]) -> List[ServiceRecord]:
    """Catalog slice as the planner stores it, with categories filled in."""

    return [
        s.model_copy(update={"category": "_".join((s.type or "").lower().split())})
        for s in services
        if s.city == "Austin"
    ]


@pytest.fixture
def llm() -> StubLLM:
    return StubLLM()


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog(AUSTIN_SERVICES, cities=["Austin", "Dallas"])


@pytest.fixture
def austin_services() -> List[ServiceRecord]:
    return with_categories(AUSTIN_SERVICES)


@pytest.fixture
def conversation() -> Conversation:
    return Conversation.create("conv-1")
