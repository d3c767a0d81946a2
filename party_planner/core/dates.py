"""Free-text date parsing helpers used by fact extraction and trip detection."""
from __future__ import annotations

import calendar
import logging
import re
from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

DateLike = Union[date, str, None]

MONTHS = {
    "january": 1, "jan": 1, "february": 2, "feb": 2, "march": 3, "mar": 3,
    "april": 4, "apr": 4, "may": 5, "june": 6, "jun": 6, "july": 7, "jul": 7,
    "august": 8, "aug": 8, "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10, "november": 11, "nov": 11, "december": 12, "dec": 12,
}
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
NTH = {"first": 1, "1st": 1, "second": 2, "2nd": 2, "third": 3, "3rd": 3, "fourth": 4, "4th": 4, "last": -1}
WORD_NUMBERS = {
    "one": 1, "first": 1, "two": 2, "second": 2, "three": 3, "third": 3,
    "four": 4, "fourth": 4, "five": 5, "fifth": 5, "six": 6, "sixth": 6,
    "seven": 7, "seventh": 7, "eight": 8, "eighth": 8, "nine": 9, "ninth": 9,
    "ten": 10, "tenth": 10, "eleven": 11, "twelve": 12,
}

_MONTH_RE = (
    r"(january|february|march|april|may|june|july|august|september|october|november|december"
    r"|jan|feb|mar|apr|jun|jul|aug|sept|sep|oct|nov|dec)"
)
_WEEKDAY_RE = r"(monday|tuesday|wednesday|thursday|friday|saturday|sunday)"
_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ORDINAL_RE = re.compile(r"(\d+)(st|nd|rd|th)\b")
_NTH_WEEKDAY_RE = re.compile(
    rf"\b(first|1st|second|2nd|third|3rd|fourth|4th|last)\s+{_WEEKDAY_RE}\s+(?:of|in)\s+(?:the\s+)?{_MONTH_RE}\b"
)
_NTH_WEEKEND_RE = re.compile(
    rf"\b(first|1st|second|2nd|third|3rd|fourth|4th|last)\s+weekend\s+(?:of|in)\s+(?:the\s+)?{_MONTH_RE}\b"
)
_MONTH_DAY_RE = re.compile(rf"\b{_MONTH_RE}\s+(\d{{1,2}})\b")
_MONTH_ONLY_RE = re.compile(rf"\b{_MONTH_RE}\b")
_RANGE_RE = re.compile(
    rf"\b{_MONTH_RE}\s+(\d{{1,2}})\s*(?:-|–|to|through|thru|until|till)\s*(?:{_MONTH_RE}\s+)?(\d{{1,2}})\b"
)
_SLASH_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b")
_YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")
_MONTH_RE_COMPILED = re.compile(rf"\b{_MONTH_RE}\b")


def _normalise(text: str) -> str:
    lowered = _ORDINAL_RE.sub(r"\1", text.lower())
    return re.sub(r"\s+", " ", lowered).strip()


def _resolve_year(text: str, today: date) -> int:
    explicit = _YEAR_RE.search(text)
    if explicit:
        return int(explicit.group(0))
    if re.search(r"\bnext year\b", text):
        return today.year + 1
    return today.year


def nth_weekday_of_month(year: int, month: int, weekday: int, occurrence: int) -> Optional[date]:
    """Return the ``occurrence``-th ``weekday`` (0=Monday) of a month; -1 means last."""

    if occurrence > 0:
        first = date(year, month, 1)
        offset = (weekday - first.weekday()) % 7
        day = 1 + offset + (occurrence - 1) * 7
        if day > calendar.monthrange(year, month)[1]:
            return None
        return date(year, month, day)
    last_day = date(year, month, calendar.monthrange(year, month)[1])
    offset = (last_day.weekday() - weekday) % 7
    return last_day - timedelta(days=offset)


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _parse_fragment(fragment: str, year: int) -> Optional[date]:
    """Parse "september 6", "9/6/25" or "october" with dateutil; missing parts come from Jan 1 of ``year``."""

    try:
        return date_parser.parse(fragment, default=datetime(year, 1, 1)).date()
    except (ValueError, OverflowError) as exc:
        logger.debug("dateutil could not parse %r: %s", fragment, exc)
        return None


def to_local_date(value: DateLike) -> Optional[date]:
    """Coerce an ISO string or date into a ``date``; other strings return None."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if _ISO_RE.match(raw):
        return _safe_date(int(raw[:4]), int(raw[5:7]), int(raw[8:10]))
    return None


def parse_user_date(value: DateLike, today: Optional[date] = None) -> Optional[date]:
    """Parse a free-text date phrase into a calendar date.

    Handles ISO passthrough, ordinals ("5th"), explicit or relative years
    ("next year"), the nth or last weekday of a month ("first Saturday of
    September"), and hands "Month D", M/D/Y and a bare month (resolved to
    the 1st) to ``dateutil``. Returns None when nothing usable is found.
    """

    if value is None or value == "":
        return None
    if isinstance(value, date):
        return to_local_date(value)

    today = today or date.today()
    raw = str(value).strip()
    if _ISO_RE.match(raw):
        return to_local_date(raw)

    text = _normalise(raw)
    year = _resolve_year(text, today)

    nth = _NTH_WEEKDAY_RE.search(text)
    if nth:
        occurrence = NTH[nth.group(1)]
        weekday = WEEKDAYS.index(nth.group(2))
        month = MONTHS[nth.group(3)]
        return nth_weekday_of_month(year, month, weekday, occurrence)

    month_day = _MONTH_DAY_RE.search(text)
    if month_day:
        return _parse_fragment(month_day.group(0), year)

    slash = _SLASH_RE.search(text)
    if slash:
        return _parse_fragment(slash.group(0), year)

    month_only = _MONTH_ONLY_RE.search(text)
    if month_only:
        return _parse_fragment(month_only.group(1), year)

    logger.debug("Could not parse date phrase %r", raw)
    return None


def resolve_weekend_range(text: str, today: Optional[date] = None) -> Optional[Tuple[date, date]]:
    """Resolve "first weekend of September" style phrases into Friday..Sunday.

    Only an explicit "weekend" phrase expands; "first Saturday of September"
    returns None. The nth weekend is the one containing the nth Saturday.
    """

    if not text:
        return None
    today = today or date.today()
    normalised = _normalise(str(text))
    match = _NTH_WEEKEND_RE.search(normalised)
    if not match:
        return None
    year = _resolve_year(normalised, today)
    saturday = nth_weekday_of_month(year, MONTHS[match.group(2)], WEEKDAYS.index("saturday"), NTH[match.group(1)])
    if saturday is None:
        return None
    return saturday - timedelta(days=1), saturday + timedelta(days=1)


def parse_date_range(text: str, today: Optional[date] = None) -> Optional[Tuple[date, Optional[date]]]:
    """Pull a start (and optional end) date out of a whole utterance."""

    if not text:
        return None
    today = today or date.today()
    weekend = resolve_weekend_range(text, today)
    if weekend:
        return weekend

    normalised = _normalise(text)
    isos = re.findall(r"\b\d{4}-\d{2}-\d{2}\b", normalised)
    if isos:
        start = to_local_date(isos[0])
        end = to_local_date(isos[1]) if len(isos) > 1 else None
        return (start, end) if start else None

    ranged = _RANGE_RE.search(normalised)
    if ranged:
        year = _resolve_year(normalised, today)
        end_fragment = f"{ranged.group(3) or ranged.group(1)} {ranged.group(4)}"
        start = _parse_fragment(f"{ranged.group(1)} {ranged.group(2)}", year)
        end = _parse_fragment(end_fragment, year)
        if start and end and end < start:
            end = _parse_fragment(end_fragment, year + 1)
        return (start, end) if start else None

    if _NTH_WEEKDAY_RE.search(normalised) or _MONTH_DAY_RE.search(normalised) or _SLASH_RE.search(normalised):
        single = parse_user_date(normalised, today)
        return (single, None) if single else None
    return None


def parse_explicit_date(text: str, today: Optional[date] = None) -> Optional[date]:
    """Find a concrete calendar date (ISO, M/D or "Month D") inside free text."""

    if not text:
        return None
    today = today or date.today()
    normalised = _normalise(text)
    iso = re.search(r"\b(\d{4})-(\d{2})-(\d{2})\b", normalised)
    if iso:
        return _safe_date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
    if _SLASH_RE.search(normalised) or _MONTH_DAY_RE.search(normalised):
        return parse_user_date(normalised, today)
    return None


def weekday_name(value: DateLike) -> Optional[str]:
    parsed = to_local_date(value)
    return WEEKDAYS[parsed.weekday()] if parsed else None


def weekday_index(text: str) -> Optional[int]:
    """Return 0..6 when ``text`` is just a weekday phrase such as "friday night"."""

    if not text:
        return None
    match = re.search(rf"\b{_WEEKDAY_RE}\b", str(text).lower())
    if not match or _MONTH_RE_COMPILED.search(str(text).lower()):
        return None
    return WEEKDAYS.index(match.group(1))


def calculate_duration(start: DateLike, end: DateLike) -> int:
    """Inclusive number of days between two dates.

    No dates default to 3 days, a start without an end is a single day, and
    the result is never less than 1.
    """

    start_date = to_local_date(start)
    end_date = to_local_date(end)
    if start is None and end is None:
        return 3
    if start is not None and end is None:
        return 1
    if start is None:
        return 3
    if start_date is None or end_date is None:
        return 1
    return max(1, (end_date - start_date).days + 1)


def format_day_label(start: DateLike, day_index: int) -> str:
    """Label a trip day as "Friday (Day 1)", or "Day 1" when no start date is known."""

    start_date = to_local_date(start)
    if start_date is None:
        return f"Day {day_index + 1}"
    current = start_date + timedelta(days=day_index)
    return f"{current.strftime('%A')} (Day {day_index + 1})"


def format_short(value: DateLike, today: Optional[date] = None) -> Optional[str]:
    """Short display date such as "Fri, Sep 5"; the year is added when it is in the future."""

    parsed = to_local_date(value)
    if parsed is None:
        return None
    today = today or date.today()
    label = f"{parsed.strftime('%a')}, {parsed.strftime('%b')} {parsed.day}"
    if parsed.year > today.year:
        label = f"{label}, {parsed.year}"
    return label
