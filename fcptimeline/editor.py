"""
Timeline placement engine - ripple insert and automatic lane assignment.

Every operation takes a Timeline and returns a new one together with a
structured result describing what moved. ``TimelineEditor`` wraps the
same operations for callers who prefer to keep one local timeline binding
and rebind it after each edit.
"""

import logging
from typing import List, Optional, Tuple

from .errors import LaneSearchExhaustedError, NoAvailableLaneError
from .models import (
    ClipPlacement,
    ClipShift,
    RationalTime,
    RippleInsertResult,
    RippleScope,
    Timeline,
    TimelineClip,
)

logger = logging.getLogger(__name__)

# How many lanes either side of the preferred lane automatic assignment tries
DEFAULT_MAX_LANE_SEARCH_STEPS = 1000


def _check_search_steps(max_search_steps: int) -> None:
    if isinstance(max_search_steps, bool) or not isinstance(max_search_steps, int):
        raise TypeError(f"max_search_steps must be an int, got {type(max_search_steps).__name__}")
    if max_search_steps < 0:
        raise ValueError(f"max_search_steps cannot be negative: {max_search_steps}")


def find_available_lane(
    timeline: Timeline,
    offset: RationalTime,
    duration: RationalTime,
    starting_from: int = 0,
    max_search_steps: int = DEFAULT_MAX_LANE_SEARCH_STEPS,
) -> Optional[int]:
    """
    Find the nearest lane where ``[offset, offset + duration)`` is free.

    Tries ``starting_from`` first, then searches outward one step at a time,
    checking the lane above before the lane below at each distance.

    Returns:
        The lane number, or None if nothing is free within ``max_search_steps``.
    """
    _check_search_steps(max_search_steps)
    if not timeline.has_overlap(offset, duration, starting_from):
        return starting_from

    for step in range(1, max_search_steps + 1):
        for lane in (starting_from + step, starting_from - step):
            if not timeline.has_overlap(offset, duration, lane):
                logger.debug("Lane %d busy at %s; using lane %d", starting_from, offset, lane)
                return lane
    return None


def insert_with_ripple(
    timeline: Timeline,
    clip: TimelineClip,
    offset: RationalTime,
    lane: int = 0,
    ripple_scope: RippleScope = RippleScope.ALL,
) -> Tuple[Timeline, RippleInsertResult]:
    """
    Insert ``clip`` at ``offset`` on ``lane``, pushing later clips downstream.

    Every existing clip that starts at or after ``offset`` on a lane inside
    ``ripple_scope`` moves forward by the inserted clip's duration. A clip
    starting exactly at ``offset`` moves too. Zero-length clips shift nothing.

    The inserted clip is appended, so existing clips keep their indices in
    ``Timeline.clips`` and the result's ``clip_index`` values refer to both
    the old and the new timeline.

    Raises:
        NoAvailableLaneError: The inserted clip would overlap a clip left in
            place on its lane (one straddling ``offset``, or one on a lane
            outside ``ripple_scope``). The timeline is unchanged.
    """
    shift = clip.duration
    clips: List[TimelineClip] = []
    shifts: List[ClipShift] = []

    for index, existing in enumerate(timeline.clips):
        if shift.is_positive and existing.offset >= offset and ripple_scope.includes(existing.lane):
            moved = existing.with_placement(existing.offset + shift)
            shifts.append(ClipShift(index, existing.offset, moved.offset))
            clips.append(moved)
        else:
            clips.append(existing)

    rippled = Timeline(timeline.name, timeline.format, tuple(clips))
    if rippled.has_overlap(offset, clip.duration, lane):
        raise NoAvailableLaneError(offset, clip.duration, lane)

    placed = clip.with_placement(offset, lane)
    new_timeline = Timeline(timeline.name, timeline.format, rippled.clips + (placed,))
    placement = ClipPlacement(len(rippled.clips), offset, clip.duration, lane)

    logger.debug("Ripple insert at %s on lane %d shifted %d clip(s)", offset, lane, len(shifts))
    return new_timeline, RippleInsertResult(inserted_clip=placement, shifted_clips=shifts)


def insert_auto_lane(
    timeline: Timeline,
    clip: TimelineClip,
    offset: RationalTime,
    preferred_lane: int = 0,
    auto_assign: bool = True,
    max_search_steps: int = DEFAULT_MAX_LANE_SEARCH_STEPS,
) -> Tuple[Timeline, ClipPlacement]:
    """
    Insert ``clip`` at ``offset`` without moving any other clip.

    Uses ``preferred_lane`` when it is free over the clip's span. Otherwise,
    with ``auto_assign`` the nearest free lane is chosen (see
    ``find_available_lane``); without it the insert fails.

    Raises:
        NoAvailableLaneError: ``preferred_lane`` is occupied and
            ``auto_assign`` is False. The timeline is unchanged.
        LaneSearchExhaustedError: No free lane within ``max_search_steps``.
    """
    _check_search_steps(max_search_steps)

    if not timeline.has_overlap(offset, clip.duration, preferred_lane):
        lane = preferred_lane
    elif not auto_assign:
        raise NoAvailableLaneError(offset, clip.duration, preferred_lane)
    else:
        lane = find_available_lane(timeline, offset, clip.duration, preferred_lane, max_search_steps)
        if lane is None:
            logger.warning(
                "Lane search exhausted %d steps from lane %d at %s",
                max_search_steps, preferred_lane, offset,
            )
            raise LaneSearchExhaustedError(offset, clip.duration, preferred_lane, max_search_steps)

    placed = clip.with_placement(offset, lane)
    new_timeline = Timeline(timeline.name, timeline.format, timeline.clips + (placed,))
    return new_timeline, ClipPlacement(len(timeline.clips), offset, clip.duration, lane)


# ============================================================================
# CONVENIENCE WRAPPER
# ============================================================================

class TimelineEditor:
    """Keeps a local Timeline binding and rebinds it after each edit.

    The wrapped Timeline values are immutable; ``editor.timeline`` always
    returns the latest one. A failed insert leaves the binding untouched.

    Example:
        editor = TimelineEditor(Timeline("Edit"))
        editor.insert_with_ripple(clip, RationalTime(5, 1))
        final = editor.timeline
    """

    def __init__(self, timeline: Timeline,
                 max_search_steps: int = DEFAULT_MAX_LANE_SEARCH_STEPS):
        _check_search_steps(max_search_steps)
        self._timeline = timeline
        self.max_search_steps = max_search_steps

    @property
    def timeline(self) -> Timeline:
        return self._timeline

    def insert_with_ripple(self, clip: TimelineClip, offset: RationalTime, lane: int = 0,
                           ripple_scope: RippleScope = RippleScope.ALL) -> RippleInsertResult:
        self._timeline, result = insert_with_ripple(self._timeline, clip, offset, lane, ripple_scope)
        return result

    def insert_auto_lane(self, clip: TimelineClip, offset: RationalTime,
                         preferred_lane: int = 0, auto_assign: bool = True) -> ClipPlacement:
        self._timeline, placement = insert_auto_lane(
            self._timeline, clip, offset, preferred_lane, auto_assign, self.max_search_steps,
        )
        return placement

    def find_available_lane(self, offset: RationalTime, duration: RationalTime,
                            starting_from: int = 0) -> Optional[int]:
        return find_available_lane(self._timeline, offset, duration, starting_from,
                                   self.max_search_steps)
