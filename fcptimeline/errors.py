"""Exceptions raised by timeline placement operations."""

from typing import Optional

from .models import RationalTime


class TimelineError(Exception):
    """Base class for recoverable timeline editing failures."""


class NoAvailableLaneError(TimelineError):
    """A clip cannot be placed without overlapping another clip on its lane.

    The timeline is left unchanged; ``offset`` and ``duration`` describe the
    rejected placement.
    """

    def __init__(self, offset: RationalTime, duration: RationalTime, lane: Optional[int] = None):
        self.offset = offset
        self.duration = duration
        self.lane = lane
        where = f" on lane {lane}" if lane is not None else ""
        super().__init__(
            f"No available lane found for clip insertion at {offset.seconds:g}s"
            f"{where} (duration: {duration.seconds:g}s)"
        )


class LaneSearchExhaustedError(RuntimeError):
    """Automatic lane assignment ran past its search bound.

    Only pathologically dense input gets here; it is a data or programming
    error rather than a placement conflict to recover from.
    """

    def __init__(self, offset: RationalTime, duration: RationalTime,
                 preferred_lane: int, max_search_steps: int):
        self.offset = offset
        self.duration = duration
        self.preferred_lane = preferred_lane
        self.max_search_steps = max_search_steps
        super().__init__(
            f"Lane search from lane {preferred_lane} exhausted {max_search_steps} steps "
            f"at {offset.seconds:g}s (duration: {duration.seconds:g}s)"
        )
