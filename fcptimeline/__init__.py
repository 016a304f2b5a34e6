"""
fcptimeline - Exact time and timeline layout for Final Cut Pro XML.

This package provides tools to:
- Represent FCPXML times as exact rational values and round-trip their text form
- Conform times to frame boundaries
- Convert between rational time and SMPTE timecode (including 23.98/29.97/59.94 NDF)
- Build timelines with ripple inserts and automatic lane assignment
"""

from .editor import (
    DEFAULT_MAX_LANE_SEARCH_STEPS,
    TimelineEditor,
    find_available_lane,
    insert_auto_lane,
    insert_with_ripple,
)
from .errors import LaneSearchExhaustedError, NoAvailableLaneError, TimelineError
from .models import (
    ClipPlacement,
    ClipShift,
    # Enums
    ColorSpace,
    CounterComponents,
    RationalTime,
    RippleInsertResult,
    RippleScope,
    TimecodeComponents,
    Timeline,
    TimelineClip,
    TimelineFormat,
)
from .timing import (
    DEFAULT_TIMESCALE,
    ceil_to_frame,
    conform,
    counting_rate,
    format_time_text,
    frame_count,
    from_timecode,
    parse_time_text,
    round_to_frame,
    timecode_to_time,
    to_timecode,
)

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",

    # Enums
    "ColorSpace",

    # Time
    "RationalTime",
    "TimecodeComponents",
    "CounterComponents",
    "DEFAULT_TIMESCALE",
    "parse_time_text",
    "format_time_text",
    "conform",
    "round_to_frame",
    "ceil_to_frame",
    "frame_count",
    "counting_rate",
    "to_timecode",
    "from_timecode",
    "timecode_to_time",

    # Models
    "TimelineFormat",
    "TimelineClip",
    "Timeline",
    "ClipPlacement",
    "ClipShift",
    "RippleInsertResult",
    "RippleScope",

    # Editing
    "DEFAULT_MAX_LANE_SEARCH_STEPS",
    "TimelineEditor",
    "find_available_lane",
    "insert_with_ripple",
    "insert_auto_lane",

    # Errors
    "TimelineError",
    "NoAvailableLaneError",
    "LaneSearchExhaustedError",
]
