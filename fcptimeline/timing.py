"""
FCPXML time text, frame conforming, and SMPTE timecode conversion.

Everything here is a pure function over RationalTime values. Malformed
input never raises: FCPXML written by third-party tools routinely carries
missing or garbled timing, so bad values degrade to zero and are logged at
DEBUG level.
"""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from fractions import Fraction
from math import floor
from typing import Optional

from .models import (
    MAX_TIMESCALE,
    MAX_VALUE,
    MIN_VALUE,
    RationalTime,
    TimecodeComponents,
)

logger = logging.getLogger(__name__)

# Timescale for bare "<seconds>s" input. 600 divides evenly by 24, 25, 30,
# 50 and 60, and their 1000/1001 variants land within one tick.
DEFAULT_TIMESCALE = 600

_RATIONAL_TEXT = re.compile(r'^(-?\d+)/(\d+)s$')
_SECONDS_TEXT = re.compile(r'^(-?(?:\d+(?:\.\d*)?|\.\d+))s$')

# Legacy NTSC frame durations counted non-drop-frame against their nominal rate
_LEGACY_NDF_DURATIONS = (
    RationalTime(1001, 24000),
    RationalTime(1001, 30000),
    RationalTime(1001, 60000),
)
_FILM_NTSC_DURATION = RationalTime(1001, 24000)


# ============================================================================
# TIME TEXT
# ============================================================================

def _in_range(numerator: int, timescale: int) -> bool:
    return MIN_VALUE <= numerator <= MAX_VALUE and 0 < timescale <= MAX_TIMESCALE


def parse_time_text(text: Optional[str]) -> RationalTime:
    """Parse FCPXML time text into an exact RationalTime.

    Accepted forms:
    - "0s" - zero
    - "7200/2400s" - exact fraction, kept unreduced
    - "5s", "1.5s" - legacy seconds, stored at DEFAULT_TIMESCALE

    Anything else (including a zero timescale) yields zero.
    """
    if not isinstance(text, str):
        logger.debug("Non-string time value %r treated as zero", text)
        return RationalTime.zero()
    if text == "0s":
        return RationalTime.zero()

    match = _RATIONAL_TEXT.match(text)
    if match:
        numerator, timescale = int(match.group(1)), int(match.group(2))
        if not _in_range(numerator, timescale):
            logger.debug("Out-of-range time text %r treated as zero", text)
            return RationalTime.zero()
        return RationalTime(numerator, timescale)

    match = _SECONDS_TEXT.match(text)
    if match:
        try:
            seconds = Decimal(match.group(1))
        except InvalidOperation:
            logger.debug("Malformed time text %r treated as zero", text)
            return RationalTime.zero()
        ticks = int((seconds * DEFAULT_TIMESCALE).to_integral_value(rounding=ROUND_HALF_UP))
        if not _in_range(ticks, DEFAULT_TIMESCALE):
            logger.debug("Out-of-range time text %r treated as zero", text)
            return RationalTime.zero()
        return RationalTime(ticks, DEFAULT_TIMESCALE)

    logger.debug("Malformed time text %r treated as zero", text)
    return RationalTime.zero()


def format_time_text(time: RationalTime) -> str:
    """Format a RationalTime as FCPXML time text.

    Zero is always "0s"; everything else is "numerator/timescales" exactly
    as stored, so ``parse_time_text(format_time_text(t))`` round-trips.
    """
    if not isinstance(time, RationalTime):
        raise TypeError(f"Expected RationalTime, got {type(time).__name__}")
    if time.is_zero:
        return "0s"
    return f"{time.numerator}/{time.timescale}s"


# ============================================================================
# FRAME CONFORMING
# ============================================================================

def _frame_ratio(time, frame_duration):
    """(time ticks, frame ticks) over a shared denominator, or None when unusable."""
    if not isinstance(time, RationalTime) or not isinstance(frame_duration, RationalTime):
        return None
    if not frame_duration.is_positive:
        return None
    return (
        time.numerator * frame_duration.timescale,
        frame_duration.numerator * time.timescale,
    )


def frame_count(time: RationalTime, frame_duration: RationalTime) -> int:
    """Whole frames of ``frame_duration`` at or before ``time`` (floored)."""
    ratio = _frame_ratio(time, frame_duration)
    if ratio is None:
        return 0
    return ratio[0] // ratio[1]


def conform(time: RationalTime, frame_duration: RationalTime) -> RationalTime:
    """Snap ``time`` to the latest frame boundary at or before it.

    Flooring keeps a cut from ever landing later than requested. The result
    is expressed in ``frame_duration``'s timescale. Unusable input (a
    non-positive frame duration or a non-time value) yields zero.
    """
    ratio = _frame_ratio(time, frame_duration)
    if ratio is None:
        logger.debug("Cannot conform %r to frame duration %r", time, frame_duration)
        return RationalTime.zero()
    return frame_duration * (ratio[0] // ratio[1])


def round_to_frame(time: RationalTime, frame_duration: RationalTime) -> RationalTime:
    """Snap ``time`` to the nearest frame boundary (halves round up)."""
    ratio = _frame_ratio(time, frame_duration)
    if ratio is None:
        return RationalTime.zero()
    ticks, frame = ratio
    return frame_duration * ((2 * ticks + frame) // (2 * frame))


def ceil_to_frame(time: RationalTime, frame_duration: RationalTime) -> RationalTime:
    """Snap ``time`` to the earliest frame boundary at or after it."""
    ratio = _frame_ratio(time, frame_duration)
    if ratio is None:
        return RationalTime.zero()
    ticks, frame = ratio
    return frame_duration * -(-ticks // frame)


# ============================================================================
# TIMECODE
# ============================================================================

def counting_rate(frame_duration: RationalTime) -> Fraction:
    """Frames per second used to count timecode frames.

    23.976 (1001/24000) counts as 24, the broadcast convention; every other
    rate is the exact reciprocal of the frame duration.
    """
    if frame_duration == _FILM_NTSC_DURATION:
        return Fraction(24)
    return Fraction(frame_duration.timescale, frame_duration.numerator)


def _round_half_up(value: Fraction) -> int:
    return floor(value + Fraction(1, 2))


def to_timecode(time: RationalTime, frame_duration: RationalTime,
                drop_frame: bool = False) -> TimecodeComponents:
    """Convert a RationalTime to timecode components at ``frame_duration``.

    The legacy NTSC rates (23.98/29.97/59.94) counted non-drop-frame divide
    elapsed time by a frame length built from the rate truncated to
    hundredths (100/2400s, 100/2997s, 100/5994s), which keeps whole
    seconds on a zero frame count. ``drop_frame`` only switches
    the separator; frame numbers are never skipped.

    Negative times and unusable frame durations yield 00:00:00:00.
    """
    if (not isinstance(time, RationalTime) or not isinstance(frame_duration, RationalTime)
            or not frame_duration.is_positive):
        logger.debug("Cannot build timecode for %r at %r", time, frame_duration)
        return TimecodeComponents(drop_frame=drop_frame)
    if time.is_negative:
        logger.debug("Negative time %r has no timecode; using zero", time)
        return TimecodeComponents(drop_frame=drop_frame)

    rate = counting_rate(frame_duration)
    elapsed = Fraction(time.numerator, time.timescale)

    if not drop_frame and frame_duration in _LEGACY_NDF_DURATIONS:
        # 100 ticks over the rate in hundredths: 100/2997s at 29.97
        frame_length = Fraction(100, floor(rate * 100))
        exact_frames = elapsed / frame_length
    else:
        exact_frames = elapsed * frame_duration.timescale / frame_duration.numerator

    frames = _round_half_up(exact_frames)

    hours = floor(frames / (3600 * rate))
    minutes = floor((frames / (60 * rate)) % 60)
    seconds = floor((frames / rate) % 60)
    sub_frames = floor(frames % rate)

    return TimecodeComponents(hours, minutes, seconds, sub_frames, drop_frame)


def from_timecode(hours: int, minutes: int, seconds: int, frames: int,
                  frame_duration: RationalTime) -> RationalTime:
    """Convert timecode components back to an exact RationalTime.

    Whole seconds and ``frames * frame_duration`` are summed exactly; the
    result uses the frame duration's timescale. An unusable frame duration
    yields zero.
    """
    if not isinstance(frame_duration, RationalTime) or not frame_duration.is_positive:
        logger.debug("Cannot convert timecode at frame duration %r", frame_duration)
        return RationalTime.zero()
    whole = RationalTime(hours * 3600 + minutes * 60 + seconds, 1)
    return whole + frame_duration * frames


def timecode_to_time(components: TimecodeComponents,
                     frame_duration: RationalTime) -> RationalTime:
    """``from_timecode`` for a TimecodeComponents value."""
    return from_timecode(components.hours, components.minutes, components.seconds,
                         components.frames, frame_duration)
