"""Trip shape detection and per-day time slot allocation."""
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import List, Optional, Tuple, Union

from party_planner.core.dates import (
    WEEKDAYS,
    calculate_duration,
    parse_user_date,
    resolve_weekend_range,
    to_local_date,
    weekday_index,
)
from party_planner.core.errors import PlannerInvariantError
from party_planner.core.schemas import (
    DayDescriptor,
    DayInfo,
    ExtendedTrip,
    SingleEventTrip,
    SingleNightTrip,
    TripFacts,
    TripStructure,
    WeekendTrip,
)
from party_planner.core.types import FULL_DAY_SLOTS, TripType

logger = logging.getLogger(__name__)

DateInput = Union[date, str, None]

ARRIVAL_SLOTS = ["evening", "night"]
DEPARTURE_SLOTS = ["morning"]
SINGLE_EVENT_OPTIONS = [
    "Dinner and nightlife crawl",
    "Daytime activity into a big dinner",
    "All-in-one party package",
]

_WEEKEND_START = {WEEKDAYS.index("thursday"), WEEKDAYS.index("friday")}
_WEEKEND_END = {WEEKDAYS.index("saturday"), WEEKDAYS.index("sunday")}


def _resolve_dates(
    start: DateInput, end: DateInput, today: date
) -> Tuple[Optional[date], Optional[date], Optional[Tuple[int, int]]]:
    """Turn raw start/end inputs into dates, or first and last weekday indices for a weekday-only span."""

    if isinstance(start, str):
        weekend = resolve_weekend_range(start, today)
        if weekend:
            return weekend[0], end and parse_user_date(end, today) or weekend[1], None

        start_wd = weekday_index(start)
        end_wd = weekday_index(end) if isinstance(end, str) else None
        if start_wd is not None and end_wd is not None:
            return None, None, (start_wd, end_wd)
        if start_wd is not None and end is None:
            return None, None, (start_wd, start_wd)

    start_date = start if isinstance(start, date) else parse_user_date(start, today)
    end_date = end if isinstance(end, date) else parse_user_date(end, today)
    return to_local_date(start_date), to_local_date(end_date), None


def compute_total_days(
    start: DateInput,
    end: DateInput,
    *,
    single_event: bool = False,
    today: Optional[date] = None,
) -> int:
    """Inclusive day count of the trip; 0 means a single event."""

    if single_event:
        return 0
    start_date, end_date, weekdays = _resolve_dates(start, end, today or date.today())
    if weekdays is not None:
        return (weekdays[1] - weekdays[0]) % 7 + 1
    if start is not None and start_date is None:
        logger.debug("Unparseable start date %r, treating as one day", start)
        return 1
    return calculate_duration(start_date, end_date)


def classify_trip(
    total_days: int,
    start: Optional[date],
    end: Optional[date],
    weekdays: Optional[Tuple[int, int]] = None,
) -> TripType:
    """``weekdays`` carries the first and last weekday (0=Monday) when only names were given."""

    if total_days == 0:
        return "single_event"
    if total_days == 1:
        return "single_night"
    if 2 <= total_days <= 3:
        if start is not None:
            last = end or start + timedelta(days=total_days - 1)
            weekdays = (start.weekday(), last.weekday())
        if weekdays is not None and weekdays[0] in _WEEKEND_START and weekdays[1] in _WEEKEND_END:
            return "weekend"
    return "extended"


def slots_for_day(trip_type: TripType, day_number: int, total_days: int) -> List[str]:
    """Time slots to fill for ``day_number`` (1-based)."""

    if trip_type in ("single_event", "single_night") or total_days <= 1:
        return list(FULL_DAY_SLOTS)
    if day_number == 1:
        return list(ARRIVAL_SLOTS)
    if day_number == total_days:
        return list(DEPARTURE_SLOTS)
    return list(FULL_DAY_SLOTS)


def _descriptors(trip_type: TripType, total_days: int, start: Optional[date]) -> List[DayDescriptor]:
    days: List[DayDescriptor] = []
    for index in range(total_days):
        day_date = start + timedelta(days=index) if start else None
        days.append(
            DayDescriptor(
                day_number=index + 1,
                day_date=day_date,
                weekday=day_date.strftime("%A") if day_date else None,
                time_slots=slots_for_day(trip_type, index + 1, total_days),
            )
        )
    return days


def detect_trip_structure(
    start: DateInput,
    end: DateInput = None,
    *,
    single_event: bool = False,
    activities: Optional[List[str]] = None,
    today: Optional[date] = None,
) -> TripStructure:
    """Classify the requested trip and lay out its day skeleton.

    A free-text weekend phrase ("first weekend of September") expands to
    Friday through Sunday. A single named weekday never does.
    """

    today = today or date.today()
    total_days = compute_total_days(start, end, single_event=single_event, today=today)
    start_date, end_date, weekdays = _resolve_dates(start, end, today)
    trip_type = classify_trip(total_days, start_date, end_date, weekdays)
    logger.info("Detected %s trip with %s day(s)", trip_type, total_days)

    match trip_type:
        case "single_event":
            options = [f"{item} focused night" for item in activities or []] or list(SINGLE_EVENT_OPTIONS)
            return SingleEventTrip(options=options, event_date=start_date)
        case "single_night":
            return SingleNightTrip(days=_descriptors(trip_type, 1, start_date))
        case "weekend":
            return WeekendTrip(total_days=total_days, days=_descriptors(trip_type, total_days, start_date))
        case _:
            return ExtendedTrip(total_days=total_days, days=_descriptors(trip_type, total_days, start_date))


def structure_from_facts(facts: TripFacts, today: Optional[date] = None) -> TripStructure:
    return detect_trip_structure(
        facts.start_date.value,
        facts.end_date.value,
        single_event=bool(facts.single_event.value),
        activities=facts.activities,
        today=today,
    )


def planning_day_count(structure: TripStructure) -> int:
    """Number of planning units; a single event is planned as one unit."""

    match structure:
        case SingleEventTrip():
            return 1
        case _:
            if structure.total_days < 1:
                raise PlannerInvariantError(
                    f"{structure.trip_type} trip must have at least one day, got {structure.total_days}"
                )
            return structure.total_days


def build_day_info(structure: TripStructure, day_index: int) -> DayInfo:
    """Selector context for the zero-based ``day_index``."""

    total = planning_day_count(structure)
    if not 0 <= day_index < total:
        raise PlannerInvariantError(f"Day index {day_index} outside trip of {total} day(s)")

    match structure:
        case SingleEventTrip(event_date=event_date):
            return DayInfo(
                day_number=1,
                total_days=1,
                time_slots=list(FULL_DAY_SLOTS),
                is_first_day=True,
                is_last_day=True,
                day_date=event_date,
            )
        case _:
            descriptor = structure.days[day_index]
            return DayInfo(
                day_number=descriptor.day_number,
                total_days=total,
                time_slots=list(descriptor.time_slots),
                is_first_day=day_index == 0,
                is_last_day=day_index == total - 1,
                day_date=descriptor.day_date,
            )
