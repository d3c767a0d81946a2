"""Shared type aliases used across the planner modules."""
from __future__ import annotations

from typing import Annotated, Literal

from pydantic import Field, StringConstraints

NonNegMoney = Annotated[float, Field(ge=0)]
Confidence = Annotated[float, Field(ge=0, le=1)]
GroupSize = Annotated[int, Field(ge=1)]
Wildness = Annotated[int, Field(ge=1, le=5)]
ServiceId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

TimeSlot = Literal["morning", "afternoon", "evening", "night", "late_night"]
BudgetType = Literal["total", "per_person"]
TripType = Literal["single_event", "single_night", "weekend", "extended"]

TIME_SLOTS: tuple[str, ...] = ("morning", "afternoon", "evening", "night", "late_night")
FULL_DAY_SLOTS: list[str] = ["afternoon", "evening", "night", "late_night"]
