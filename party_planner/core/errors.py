"""Exceptions raised by the planner core."""
from __future__ import annotations


class PlannerInvariantError(RuntimeError):
    """Raised when planner state breaks one of its own contracts.

    Examples are a planning cursor that moves backwards, a day index outside
    the trip, or a zero-day structure that is not a single event. These are
    programming errors and are never converted into a user-facing reply.
    """
