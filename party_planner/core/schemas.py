"""Pydantic data models for the bachelor party planner.

This module contains every data model the planner passes around: the fact
record gathered from the user, the conversation state that is round-tripped
as a snapshot, catalog service records, the selection contract shared with
the language model, trip structures and the LangGraph turn state.

Key model categories:
- Fact / TripFacts: closed record of trip attributes with status and confidence
- Conversation: phase, planning cursor, used services and message log
- ServiceRecord: one bookable catalog entry
- DaySelection / DayPlan: selector output and saved day plans
- TripStructure: discriminated union of trip shapes
- Reduction / EditDirectives / OptionIntent: structured LLM contracts
- TurnState / TurnContext: LangGraph state and runtime context for one turn
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Generic, List, Literal, Optional, TypeVar, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from party_planner.core.types import (
    BudgetType,
    Confidence,
    GroupSize,
    NonNegMoney,
    TripType,
    Wildness,
)

T = TypeVar("T")

WELCOME_MESSAGE = "Welcome to Connected. Where are you planning to have your bachelor party?"
WILDNESS_QUESTION = (
    "Welcome to Connected. Before anything else: how crazy do you want this to get? "
    "Scale of 1-5 where 1 is a classy dinner and 5 is absolutely debaucherous."
)


class Phase(str, Enum):
    GATHERING = "gathering"
    PLANNING = "planning"
    STANDBY = "standby"


class FactStatus(str, Enum):
    UNKNOWN = "unknown"
    SUGGESTED = "suggested"
    ASSUMED = "assumed"
    SET = "set"
    CORRECTED = "corrected"


class FactPriority(str, Enum):
    ESSENTIAL = "essential"
    HELPFUL = "helpful"
    OPTIONAL = "optional"


class GatheringStep(str, Enum):
    """Sub-state of GATHERING; AWAITING_WILDNESS consumes exactly one user turn."""

    OPEN = "open"
    AWAITING_WILDNESS = "awaiting_wildness"


class IntentType(str, Enum):
    EDIT_ITINERARY = "edit_itinerary"
    GENERAL_QUESTION = "general_question"
    APPROVAL_NEXT = "approval_next"
    SHOW_DAY = "show_day"
    SUBSTITUTION = "substitution"
    ADDITION = "addition"
    REMOVAL = "removal"


CONFIRMED_STATUSES = frozenset({FactStatus.SET, FactStatus.CORRECTED})


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Facts
# ---------------------------------------------------------------------------


class Fact(CamelModel, Generic[T]):
    """One structured attribute of the trip request."""

    value: Optional[T] = None
    status: FactStatus = FactStatus.UNKNOWN
    confidence: Confidence = 0.0
    provenance: Optional[str] = None
    priority: FactPriority = FactPriority.HELPFUL

    @model_validator(mode="after")
    def _unknown_has_no_value(self) -> "Fact[T]":
        if self.status is FactStatus.UNKNOWN:
            self.value = None
            self.confidence = 0.0
        elif self.status in CONFIRMED_STATUSES:
            self.confidence = 1.0
        return self

    @property
    def is_known(self) -> bool:
        return self.status is not FactStatus.UNKNOWN

    @property
    def is_confirmed(self) -> bool:
        return self.status in CONFIRMED_STATUSES


FACT_PRIORITIES: Dict[str, FactPriority] = {
    "destination": FactPriority.ESSENTIAL,
    "group_size": FactPriority.ESSENTIAL,
    "start_date": FactPriority.ESSENTIAL,
    "end_date": FactPriority.ESSENTIAL,
    "wildness_level": FactPriority.HELPFUL,
    "relationship": FactPriority.HELPFUL,
    "interested_activities": FactPriority.HELPFUL,
    "age_range": FactPriority.HELPFUL,
    "budget": FactPriority.HELPFUL,
    "budget_type": FactPriority.OPTIONAL,
    "single_event": FactPriority.OPTIONAL,
}

ESSENTIAL_FACTS = tuple(name for name, p in FACT_PRIORITIES.items() if p is FactPriority.ESSENTIAL)
HELPFUL_FACTS = tuple(name for name, p in FACT_PRIORITIES.items() if p is FactPriority.HELPFUL)


def _fact(kind: Any, priority: FactPriority):
    return lambda: Fact[kind](priority=priority)


class TripFacts(CamelModel):
    """Closed record holding one ``Fact`` per known trip attribute."""

    destination: Fact[str] = Field(default_factory=_fact(str, FactPriority.ESSENTIAL))
    group_size: Fact[GroupSize] = Field(default_factory=_fact(GroupSize, FactPriority.ESSENTIAL))
    start_date: Fact[date] = Field(default_factory=_fact(date, FactPriority.ESSENTIAL))
    end_date: Fact[date] = Field(default_factory=_fact(date, FactPriority.ESSENTIAL))
    wildness_level: Fact[Wildness] = Field(default_factory=_fact(Wildness, FactPriority.HELPFUL))
    relationship: Fact[str] = Field(default_factory=_fact(str, FactPriority.HELPFUL))
    interested_activities: Fact[List[str]] = Field(default_factory=_fact(List[str], FactPriority.HELPFUL))
    age_range: Fact[str] = Field(default_factory=_fact(str, FactPriority.HELPFUL))
    budget: Fact[Union[int, float, str]] = Field(default_factory=_fact(Union[int, float, str], FactPriority.HELPFUL))
    budget_type: Fact[BudgetType] = Field(default_factory=_fact(BudgetType, FactPriority.OPTIONAL))
    single_event: Fact[bool] = Field(default_factory=_fact(bool, FactPriority.OPTIONAL))

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="after")
    def _pin_priorities(self) -> "TripFacts":
        for name, priority in FACT_PRIORITIES.items():
            getattr(self, name).priority = priority
        return self

    @classmethod
    def fact_type(cls, name: str) -> type:
        """Return the parametrised ``Fact`` class declared for ``name``."""

        try:
            return cls.model_fields[name].annotation  # type: ignore[return-value]
        except KeyError as exc:
            raise KeyError(f"Unknown fact '{name}'") from exc

    @classmethod
    def resolve_name(cls, name: str) -> Optional[str]:
        """Accept either the python field name or its camelCase alias."""

        if name in cls.model_fields:
            return name
        for field_name, info in cls.model_fields.items():
            if info.alias == name:
                return field_name
        return None

    def get(self, name: str) -> Fact[Any]:
        return getattr(self, name)

    def items(self):
        for name in FACT_PRIORITIES:
            yield name, getattr(self, name)

    @property
    def activities(self) -> List[str]:
        return list(self.interested_activities.value or [])

    @property
    def special_requests(self) -> str:
        return ", ".join(self.activities)


# ---------------------------------------------------------------------------
# Catalog services
# ---------------------------------------------------------------------------


class ServiceRecord(BaseModel):
    """Bookable catalog entry as returned by the catalog collaborator."""

    id: str
    name: str
    type: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    itinerary_name: Optional[str] = None
    itinerary_description: Optional[str] = None
    price_cad: Optional[NonNegMoney] = None
    price_usd: Optional[NonNegMoney] = None
    duration_hours: Optional[float] = None
    city: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return str(value)

    @property
    def display_name(self) -> str:
        return self.itinerary_name or self.name

    @property
    def category_key(self) -> str:
        if self.category:
            return self.category
        if self.type:
            return "_".join(self.type.lower().split())
        return "other"

    @property
    def price(self) -> float:
        return self.price_cad or self.price_usd or 0.0


# ---------------------------------------------------------------------------
# Selection contract and day plans
# ---------------------------------------------------------------------------


class ServiceSelection(CamelModel):
    """One service placed into a time slot of a day."""

    service_id: str
    service_name: str
    time_slot: str
    reason: str = ""
    estimated_duration: Optional[str] = None
    group_suitability: Optional[str] = None
    category: Optional[str] = None
    price_cad: Optional[float] = Field(default=None, alias="price_cad")
    price_usd: Optional[float] = Field(default=None, alias="price_usd")

    @field_validator("service_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return str(value)


class AlternativeOption(CamelModel):
    service_id: str
    service_name: str
    reason: str = ""

    @field_validator("service_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return str(value)


DEFAULT_DAY_THEME = "Epic bachelor party day"


class DaySelection(CamelModel):
    """Structured response expected back from the service selector."""

    selected_services: List[ServiceSelection] = Field(default_factory=list)
    alternative_options: List[AlternativeOption] = Field(default_factory=list)
    day_theme: str = DEFAULT_DAY_THEME
    logistics_notes: str = ""

    @field_validator("day_theme", mode="before")
    @classmethod
    def _default_theme(cls, value: Any) -> str:
        return value or DEFAULT_DAY_THEME

    @field_validator("logistics_notes", mode="before")
    @classmethod
    def _default_notes(cls, value: Any) -> str:
        return value or ""


class DayPlan(CamelModel):
    """Selections for a single day of the itinerary."""

    day_number: int = Field(ge=1)
    time_slots: List[str] = Field(default_factory=list)
    selected_services: List[ServiceSelection] = Field(default_factory=list)
    alternative_options: List[AlternativeOption] = Field(default_factory=list)
    day_theme: str = ""
    logistics_notes: str = ""

    @classmethod
    def from_selection(cls, selection: DaySelection, day: "DayInfo") -> "DayPlan":
        return cls(
            day_number=day.day_number,
            time_slots=list(day.time_slots),
            selected_services=[item.model_copy() for item in selection.selected_services],
            alternative_options=[item.model_copy() for item in selection.alternative_options],
            day_theme=selection.day_theme,
            logistics_notes=selection.logistics_notes,
        )

    def service_ids(self) -> List[str]:
        return [item.service_id for item in self.selected_services]


class DayInfo(CamelModel):
    """Context about the day being planned that is handed to the selector."""

    day_number: int = Field(ge=1)
    total_days: int = Field(ge=1)
    time_slots: List[str]
    is_first_day: bool = False
    is_last_day: bool = False
    day_date: Optional[date] = None

    @computed_field(return_type=str)
    @property
    def day_type(self) -> str:
        if self.day_number == 1:
            return "Arrival day"
        if self.day_number == self.total_days:
            return "Final day"
        return "Main party day"


# ---------------------------------------------------------------------------
# Trip structure
# ---------------------------------------------------------------------------


class DayDescriptor(CamelModel):
    day_number: int = Field(ge=1)
    day_date: Optional[date] = None
    weekday: Optional[str] = None
    time_slots: List[str]


class _MultiDayTrip(CamelModel):
    days: List[DayDescriptor]

    @model_validator(mode="after")
    def _days_match_total(self):
        if len(self.days) != self.total_days:  # type: ignore[attr-defined]
            raise ValueError("days must contain one descriptor per trip day")
        return self


class SingleEventTrip(CamelModel):
    trip_type: Literal["single_event"] = "single_event"
    total_days: Literal[0] = 0
    days: List[DayDescriptor] = Field(default_factory=list, max_length=0)
    options: List[str] = Field(default_factory=list)
    event_date: Optional[date] = None


class SingleNightTrip(_MultiDayTrip):
    trip_type: Literal["single_night"] = "single_night"
    total_days: Literal[1] = 1


class WeekendTrip(_MultiDayTrip):
    trip_type: Literal["weekend"] = "weekend"
    total_days: int = Field(ge=2, le=3)


class ExtendedTrip(_MultiDayTrip):
    trip_type: Literal["extended"] = "extended"
    total_days: int = Field(ge=1)


TripStructure = Annotated[
    Union[SingleEventTrip, SingleNightTrip, WeekendTrip, ExtendedTrip],
    Field(discriminator="trip_type"),
]


# ---------------------------------------------------------------------------
# Conversation state
# ---------------------------------------------------------------------------


class DayByDayPlanning(CamelModel):
    current_day: int = Field(default=0, ge=0)
    total_days: int = Field(default=0, ge=0)
    completed_days: List[Optional[DayPlan]] = Field(default_factory=list)
    used_services: set[str] = Field(default_factory=set)
    is_complete: bool = False
    current_day_plan: Optional[DayPlan] = None
    drafts: Dict[int, DayPlan] = Field(default_factory=dict)
    trip_type: Optional[TripType] = None

    @field_validator("used_services", mode="before")
    @classmethod
    def _coerce_used(cls, value: Any) -> Any:
        if value is None:
            return set()
        if isinstance(value, dict):
            return {str(item) for item in value.values()}
        if isinstance(value, (list, tuple, set, frozenset)):
            return {str(item) for item in value}
        return value

    @field_serializer("used_services")
    def _serialise_used(self, value: set[str]) -> List[str]:
        return sorted(value)


class StandbyState(CamelModel):
    nudges_sent: int = Field(default=0, ge=0)
    last_template: Optional[int] = None


class ChatMessage(CamelModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Conversation(CamelModel):
    """Complete state of one conversation, round-tripped as the snapshot."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: Optional[str] = None
    phase: Phase = Phase.GATHERING
    gathering_step: GatheringStep = GatheringStep.OPEN
    asked_facts: set[str] = Field(default_factory=set)
    facts: TripFacts = Field(default_factory=TripFacts)
    day_by_day_planning: DayByDayPlanning = Field(default_factory=DayByDayPlanning)
    standby: StandbyState = Field(default_factory=StandbyState)
    messages: List[ChatMessage] = Field(default_factory=list)
    available_services: List[ServiceRecord] = Field(default_factory=list)
    selected_services: List[Optional[DayPlan]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(extra="ignore")

    @field_serializer("asked_facts")
    def _serialise_asked(self, value: set[str]) -> List[str]:
        return sorted(value)

    @classmethod
    def create(
        cls,
        conversation_id: Optional[str] = None,
        *,
        user_id: Optional[str] = None,
        wildness_first: bool = False,
    ) -> "Conversation":
        """Start a new conversation in the GATHERING phase."""

        conversation = cls(user_id=user_id)
        if conversation_id:
            conversation.id = conversation_id
        if wildness_first:
            conversation.gathering_step = GatheringStep.AWAITING_WILDNESS
            conversation.asked_facts.add("wildness_level")
            conversation.log("assistant", WILDNESS_QUESTION)
        else:
            conversation.log("assistant", WELCOME_MESSAGE)
        return conversation

    def log(self, role: Literal["user", "assistant"], content: str) -> None:
        self.messages.append(ChatMessage(role=role, content=content))

    def recent_messages(self, limit: int = 6) -> str:
        return "\n".join(f"{m.role}: {m.content}" for m in self.messages[-limit:])

    def export_snapshot(self) -> Dict[str, Any]:
        """Serialise to plain JSON-compatible data (sets become sorted lists)."""

        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> "Conversation":
        return cls.model_validate(snapshot)

    def service_by_id(self, service_id: str) -> Optional[ServiceRecord]:
        for service in self.available_services:
            if service.id == str(service_id):
                return service
        return None

    def saved_days(self) -> List[DayPlan]:
        return [day for day in self.selected_services if day is not None]


# ---------------------------------------------------------------------------
# Structured LLM contracts
# ---------------------------------------------------------------------------


class FactProposal(CamelModel):
    value: Any = None
    status: FactStatus = FactStatus.SET
    confidence: Confidence = 0.9
    provenance: Optional[str] = None


class FactUpdates(CamelModel):
    """Per-fact updates proposed by the reducer call."""

    destination: Optional[FactProposal] = None
    group_size: Optional[FactProposal] = None
    start_date: Optional[FactProposal] = None
    end_date: Optional[FactProposal] = None
    wildness_level: Optional[FactProposal] = None
    relationship: Optional[FactProposal] = None
    interested_activities: Optional[FactProposal] = None
    age_range: Optional[FactProposal] = None
    budget: Optional[FactProposal] = None
    budget_type: Optional[FactProposal] = None
    single_event: Optional[FactProposal] = None


class SubstitutionDetails(BaseModel):
    what_changed: Optional[str] = None
    changed_from: Optional[str] = None
    changed_to: Optional[str] = None


FALLBACK_REPLY = (
    "Tell me more about what you're looking for and I'll help you plan an amazing bachelor party!"
)


class Reduction(BaseModel):
    """Output of the ``reduce_state`` call: fact updates plus the reply."""

    facts: FactUpdates = Field(default_factory=FactUpdates)
    assumptions: List[str] = Field(default_factory=list)
    blocking_questions: List[str] = Field(default_factory=list)
    asked_about: List[str] = Field(
        default_factory=list,
        description="Fact names (camelCase) that the reply asks the user about.",
    )
    safe_transition: bool = False
    reply: str = FALLBACK_REPLY
    intent_type: IntentType = IntentType.GENERAL_QUESTION
    target_day_index: Optional[int] = None
    substitution_details: Optional[SubstitutionDetails] = None

    @classmethod
    def fallback(cls) -> "Reduction":
        return cls(blocking_questions=["I need more information to help plan your trip"])


class StandbyClassification(BaseModel):
    intent_type: Literal["edit_itinerary", "general_question", "approval_next"] = "general_question"
    assumptions: List[str] = Field(default_factory=list)
    reply: str = ""


EditOpName = Literal[
    "add_activity",
    "replace_activity",
    "remove_activity",
    "substitute_service",
    "reorder",
    "adjust_time",
    "set_constraint",
]


class EditOp(BaseModel):
    op: EditOpName
    target_time: Optional[str] = None
    target_name: Optional[str] = None
    target_category: Optional[str] = None
    target_service_id: Optional[str] = None
    keywords: Optional[List[str]] = None
    category_hint: Optional[str] = None
    new_time: Optional[str] = None
    new_service_name: Optional[str] = None
    new_service_id: Optional[str] = None
    sequence: Optional[List[str]] = None
    constraints: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None

    @field_validator("target_service_id", "new_service_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        return None if value is None else str(value)


class EditDirectives(BaseModel):
    ops: List[EditOp] = Field(default_factory=list)
    confidence: Optional[float] = None


OptionCategory = Literal[
    "strip_club",
    "night_club",
    "restaurant",
    "bar",
    "daytime",
    "transportation",
    "package",
    "accommodation",
    "catering",
]


class OptionIntent(BaseModel):
    category: OptionCategory
    keywords: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# LangGraph turn state
# ---------------------------------------------------------------------------


class InteractiveDirective(CamelModel):
    """Hint for the client to render a structured selector."""

    type: Literal["wildness_scale", "date_picker", "budget_selector", "group_size"]
    fact: str
    min_value: Optional[int] = None
    max_value: Optional[int] = None
    options: List[str] = Field(default_factory=list)


class TurnState(BaseModel):
    """State that flows between the nodes of one conversation turn."""

    conversation: Conversation
    message: str = ""
    structured_input: Optional[Dict[str, Any]] = None
    reduction: Optional[Reduction] = None
    reply: str = ""
    assumptions: List[str] = Field(default_factory=list)
    interactive: Optional[InteractiveDirective] = None
    phase_changed: bool = False
    reverted: bool = False
    handled: bool = False
    seeded: bool = False
    wildness_answered: bool = False
    ambiguous: List[str] = Field(default_factory=list)
    clarify: List[str] = Field(default_factory=list)


@dataclass
class TurnContext:
    """Runtime context handed to every node of a turn."""

    today: date = field(default_factory=date.today)
    dev_commands: bool = False
    wildness_first: bool = False
