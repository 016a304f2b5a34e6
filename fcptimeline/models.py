"""
Data models for FCPXML timing and timeline layout.

Provides exact rational time, timecode components, timeline clips and
formats, and the structured results reported by the placement engine.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from math import gcd
from typing import Any, Dict, Iterable, List, Optional, Tuple

# ============================================================================
# LIMITS
# ============================================================================

# FCPXML time values are 64-bit signed numerators over 32-bit timescales
MAX_VALUE = 2 ** 63 - 1
MIN_VALUE = -(2 ** 63)
MAX_TIMESCALE = 2 ** 31 - 1


# ============================================================================
# ENUMS
# ============================================================================

class ColorSpace(Enum):
    """Video color space carried by a timeline format."""
    REC709 = "rec709"
    REC2020 = "rec2020"
    REC2020_HLG = "rec2020hlg"
    REC2020_PQ = "rec2020pq"
    SRGB = "srgb"

    @property
    def fcpxml_value(self) -> str:
        """Return the FCPXML ``colorSpace`` attribute value."""
        return {
            ColorSpace.REC709: "1-1-1 (Rec. 709)",
            ColorSpace.REC2020: "9-18-9 (Rec. 2020)",
            ColorSpace.REC2020_HLG: "9-18-9 (Rec. 2020 HLG)",
            ColorSpace.REC2020_PQ: "9-18-9 (Rec. 2020 PQ)",
            ColorSpace.SRGB: "sRGB IEC61966-2.1",
        }[self]

    @property
    def is_hdr(self) -> bool:
        return self in (ColorSpace.REC2020_HLG, ColorSpace.REC2020_PQ)

    @property
    def is_wide_gamut(self) -> bool:
        return self in (ColorSpace.REC2020, ColorSpace.REC2020_HLG, ColorSpace.REC2020_PQ)

    @classmethod
    def from_string(cls, value: str) -> 'ColorSpace':
        """Convert a string to ColorSpace, accepting both enum names and values.

        Examples:
            ColorSpace.from_string("rec709")   -> ColorSpace.REC709
            ColorSpace.from_string("REC2020")  -> ColorSpace.REC2020
        """
        if not isinstance(value, str):
            raise TypeError(f"Expected str, got {type(value).__name__}")
        lowered = value.strip().lower().replace("_", "")
        for member in cls:
            if member.value == lowered:
                return member
        raise ValueError(
            f"Invalid color space: '{value}'. "
            f"Valid color spaces: {', '.join(m.value for m in cls)}"
        )


# ============================================================================
# RATIONAL TIME - Exact Time Representation
# ============================================================================

def _lcm(a: int, b: int) -> int:
    return a // gcd(a, b) * b


def _require_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")


@dataclass(frozen=True, eq=False)
class RationalTime:
    """
    Exact time value as ``numerator / timescale`` seconds.

    FCPXML expresses every offset, duration and trim as a fraction of a
    second (e.g. "7200/2400s"). Values are never reduced implicitly, so a
    parsed value formats back to the same text. Equality, ordering and
    hashing compare the fractions exactly: ``RationalTime(1, 1) ==
    RationalTime(24, 24)``.

    Values stay inside FCPXML limits (64-bit value, 32-bit timescale).
    Arithmetic reduces a result only when that is needed to fit; anything
    still out of range raises OverflowError.

    Examples:
        RationalTime(1001, 30000)   # one frame at 29.97fps
        RationalTime(7200, 2400)    # 3 seconds
        RationalTime.zero()
    """
    numerator: int = 0
    timescale: int = 1

    def __post_init__(self):
        _require_int("numerator", self.numerator)
        _require_int("timescale", self.timescale)
        if self.timescale <= 0:
            raise ValueError(f"Timescale must be positive, got {self.timescale}")
        if self.timescale > MAX_TIMESCALE or not MIN_VALUE <= self.numerator <= MAX_VALUE:
            raise OverflowError(
                f"Time {self.numerator}/{self.timescale}s exceeds FCPXML limits "
                f"(64-bit value, timescale up to {MAX_TIMESCALE})"
            )

    @classmethod
    def zero(cls) -> 'RationalTime':
        """Return zero time value."""
        return cls(0, 1)

    @classmethod
    def from_seconds(cls, seconds: float, timescale: int = 600) -> 'RationalTime':
        """Create a RationalTime from decimal seconds, truncating to the timescale.

        Non-finite input yields zero.
        """
        try:
            return cls(int(seconds * timescale), timescale)
        except (OverflowError, ValueError, TypeError):
            return cls.zero()

    @classmethod
    def from_frames(cls, frames: int, frame_duration: 'RationalTime') -> 'RationalTime':
        """Create a RationalTime spanning ``frames`` frames of ``frame_duration``."""
        return frame_duration * frames

    @classmethod
    def from_fcpxml(cls, text: str) -> 'RationalTime':
        """Parse FCPXML time text (e.g. "7200/2400s"). Malformed text yields zero."""
        from .timing import parse_time_text  # avoid circular import
        return parse_time_text(text)

    def to_fcpxml(self) -> str:
        """Convert to FCPXML time text (e.g. "7200/2400s" or "0s")."""
        from .timing import format_time_text  # avoid circular import
        return format_time_text(self)

    @property
    def seconds(self) -> float:
        """Decimal seconds. Display only; never store or compare through this."""
        return self.numerator / self.timescale

    @property
    def is_zero(self) -> bool:
        return self.numerator == 0

    @property
    def is_positive(self) -> bool:
        return self.numerator > 0

    @property
    def is_negative(self) -> bool:
        return self.numerator < 0

    def reduced(self) -> 'RationalTime':
        """Return an equal value in lowest terms."""
        if self.numerator == 0:
            return RationalTime(0, 1)
        divisor = gcd(abs(self.numerator), self.timescale)
        return RationalTime(self.numerator // divisor, self.timescale // divisor)

    def rescaled(self, timescale: int) -> Optional['RationalTime']:
        """Express this value over ``timescale`` if that is exact, else None."""
        if not 0 < timescale <= MAX_TIMESCALE or (self.numerator * timescale) % self.timescale:
            return None
        return RationalTime(self.numerator * timescale // self.timescale, timescale)

    def counter(self) -> 'CounterComponents':
        """Wall-clock counter (hours, minutes, seconds, milliseconds)."""
        millis_total = (abs(self.numerator) * 1000 * 2 + self.timescale) // (2 * self.timescale)
        total_secs, millis = divmod(millis_total, 1000)
        total_mins, secs = divmod(total_secs, 60)
        hours, mins = divmod(total_mins, 60)
        return CounterComponents(hours, mins, secs, millis)

    # -- arithmetic ---------------------------------------------------------

    @staticmethod
    def _normalized(numerator: int, timescale: int) -> 'RationalTime':
        """Build an arithmetic result, reducing only when it is out of range."""
        if timescale > MAX_TIMESCALE or not MIN_VALUE <= numerator <= MAX_VALUE:
            divisor = gcd(abs(numerator), timescale)
            numerator, timescale = numerator // divisor, timescale // divisor
        return RationalTime(numerator, timescale)

    def _aligned(self, other: 'RationalTime') -> Tuple[int, int, int]:
        """Both numerators over a shared timescale (kept when already equal)."""
        if self.timescale == other.timescale:
            return self.numerator, other.numerator, self.timescale
        common = _lcm(self.timescale, other.timescale)
        return (
            self.numerator * (common // self.timescale),
            other.numerator * (common // other.timescale),
            common,
        )

    def __add__(self, other: 'RationalTime') -> 'RationalTime':
        if not isinstance(other, RationalTime):
            return NotImplemented
        a, b, timescale = self._aligned(other)
        return self._normalized(a + b, timescale)

    def __sub__(self, other: 'RationalTime') -> 'RationalTime':
        if not isinstance(other, RationalTime):
            return NotImplemented
        a, b, timescale = self._aligned(other)
        return self._normalized(a - b, timescale)

    def __mul__(self, multiplier: int) -> 'RationalTime':
        if isinstance(multiplier, bool) or not isinstance(multiplier, int):
            return NotImplemented
        return RationalTime(self.numerator * multiplier, self.timescale)

    __rmul__ = __mul__

    def __neg__(self) -> 'RationalTime':
        return RationalTime(-self.numerator, self.timescale)

    def __abs__(self) -> 'RationalTime':
        return RationalTime(abs(self.numerator), self.timescale)

    # -- comparison ---------------------------------------------------------

    def _compare(self, other: 'RationalTime') -> int:
        lhs = self.numerator * other.timescale
        rhs = other.numerator * self.timescale
        return (lhs > rhs) - (lhs < rhs)

    def __lt__(self, other: 'RationalTime') -> bool:
        if not isinstance(other, RationalTime):
            return NotImplemented
        return self._compare(other) < 0

    def __le__(self, other: 'RationalTime') -> bool:
        if not isinstance(other, RationalTime):
            return NotImplemented
        return self._compare(other) <= 0

    def __gt__(self, other: 'RationalTime') -> bool:
        if not isinstance(other, RationalTime):
            return NotImplemented
        return self._compare(other) > 0

    def __ge__(self, other: 'RationalTime') -> bool:
        if not isinstance(other, RationalTime):
            return NotImplemented
        return self._compare(other) >= 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RationalTime):
            return False
        return self._compare(other) == 0

    def __hash__(self) -> int:
        r = self.reduced()
        return hash((r.numerator, r.timescale))

    def __repr__(self) -> str:
        return f"RationalTime({self.numerator}/{self.timescale}s = {self.seconds:.3f}s)"

    def __str__(self) -> str:
        return self.to_fcpxml()


# ============================================================================
# TIMECODE COMPONENTS
# ============================================================================

_TIMECODE_PATTERN = re.compile(r'^(\d+)[:;](\d{1,2})[:;](\d{1,2})[:;](\d+)$')


@dataclass(frozen=True)
class TimecodeComponents:
    """SMPTE-style timecode counter (HH:MM:SS:FF, or HH:MM:SS;FF for drop frame)."""
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    frames: int = 0
    drop_frame: bool = False

    def to_smpte(self) -> str:
        """Convert to SMPTE timecode string."""
        separator = ";" if self.drop_frame else ":"
        return f"{self.hours:02d}:{self.minutes:02d}:{self.seconds:02d}{separator}{self.frames:02d}"

    def __str__(self) -> str:
        return self.to_smpte()

    @classmethod
    def parse(cls, text: str) -> 'TimecodeComponents':
        """Parse "HH:MM:SS:FF" or "HH:MM:SS;FF". A semicolon anywhere marks drop frame."""
        if not isinstance(text, str):
            raise TypeError(f"Expected str, got {type(text).__name__}")
        match = _TIMECODE_PATTERN.match(text.strip())
        if not match:
            raise ValueError(f"Invalid timecode format: {text}")
        h, m, s, f = (int(g) for g in match.groups())
        if m > 59 or s > 59:
            raise ValueError(f"Invalid timecode format: {text}")
        return cls(h, m, s, f, drop_frame=';' in text)


@dataclass(frozen=True)
class CounterComponents:
    """Wall-clock counter, as shown in subtitle-style displays."""
    hours: int
    minutes: int
    seconds: int
    milliseconds: int

    @property
    def counter_string(self) -> str:
        return f"{self.hours:02d}:{self.minutes:02d}:{self.seconds:02d},{self.milliseconds:03d}"


# ============================================================================
# FORMAT
# ============================================================================

@dataclass(frozen=True)
class TimelineFormat:
    """Video format descriptor. Only ``frame_duration`` is read by timing logic."""
    width: int
    height: int
    frame_duration: RationalTime
    color_space: ColorSpace = ColorSpace.REC709

    @classmethod
    def hd1080p(cls, frame_duration: RationalTime,
                color_space: ColorSpace = ColorSpace.REC709) -> 'TimelineFormat':
        """1920x1080 progressive."""
        return cls(1920, 1080, frame_duration, color_space)

    @classmethod
    def uhd4k(cls, frame_duration: RationalTime,
              color_space: ColorSpace = ColorSpace.REC2020) -> 'TimelineFormat':
        """3840x2160 (4K UHD)."""
        return cls(3840, 2160, frame_duration, color_space)

    @property
    def frame_rate(self) -> float:
        if not self.frame_duration.is_positive:
            return 0.0
        return 1 / self.frame_duration.seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "frameDuration": self.frame_duration.to_fcpxml(),
            "colorSpace": self.color_space.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TimelineFormat':
        return cls(
            width=int(data.get("width", 1920)),
            height=int(data.get("height", 1080)),
            frame_duration=RationalTime.from_fcpxml(data.get("frameDuration", "")),
            color_space=ColorSpace.from_string(data.get("colorSpace", "rec709")),
        )


# ============================================================================
# CLIPS
# ============================================================================

def _spans_overlap(start_a: RationalTime, end_a: RationalTime,
                   start_b: RationalTime, end_b: RationalTime) -> bool:
    """Half-open interval overlap. Touching endpoints do not overlap."""
    return start_a < end_b and start_b < end_a


@dataclass(frozen=True)
class TimelineClip:
    """A clip placed on a timeline.

    ``asset_ref`` is an opaque resource ID (e.g. "r2") owned by whoever
    assembles the document; it is never resolved here. Lane 0 is the
    primary storyline, positive lanes sit above it and negative lanes below.
    """
    asset_ref: str
    offset: RationalTime
    duration: RationalTime
    start: RationalTime = field(default_factory=RationalTime.zero)
    lane: int = 0
    name: Optional[str] = None
    is_video_disabled: bool = False

    def __post_init__(self):
        for attr in ("offset", "duration", "start"):
            if not isinstance(getattr(self, attr), RationalTime):
                raise TypeError(f"TimelineClip.{attr} must be a RationalTime")
        _require_int("lane", self.lane)
        if self.duration.is_negative:
            raise ValueError(f"Clip duration cannot be negative: {self.duration.to_fcpxml()}")

    @property
    def end(self) -> RationalTime:
        """End time on the timeline (offset + duration)."""
        return self.offset + self.duration

    @property
    def duration_seconds(self) -> float:
        return self.duration.seconds

    def overlaps(self, start: RationalTime, end: RationalTime) -> bool:
        """True when the clip intersects the half-open range ``[start, end)``."""
        return self.offset < end and self.end > start

    def with_placement(self, offset: RationalTime, lane: Optional[int] = None) -> 'TimelineClip':
        """Return a copy moved to ``offset`` (and ``lane`` when given)."""
        return replace(self, offset=offset, lane=self.lane if lane is None else lane)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "ref": self.asset_ref,
            "offset": self.offset.to_fcpxml(),
            "duration": self.duration.to_fcpxml(),
            "start": self.start.to_fcpxml(),
            "lane": self.lane,
        }
        if self.name is not None:
            data["name"] = self.name
        if self.is_video_disabled:
            data["videoDisabled"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TimelineClip':
        if "ref" not in data:
            raise ValueError("Clip is missing its asset reference ('ref')")
        return cls(
            asset_ref=str(data["ref"]),
            offset=RationalTime.from_fcpxml(data.get("offset", "0s")),
            duration=RationalTime.from_fcpxml(data.get("duration", "0s")),
            start=RationalTime.from_fcpxml(data.get("start", "0s")),
            lane=int(data.get("lane", 0)),
            name=data.get("name"),
            is_video_disabled=bool(data.get("videoDisabled", False)),
        )


# ============================================================================
# PLACEMENT RESULTS
# ============================================================================

@dataclass(frozen=True)
class ClipPlacement:
    """Where a clip sits in a timeline. ``clip_index`` indexes ``Timeline.clips``."""
    clip_index: int
    offset: RationalTime
    duration: RationalTime
    lane: int

    @property
    def end(self) -> RationalTime:
        return self.offset + self.duration


@dataclass(frozen=True)
class ClipShift:
    """One clip moved downstream by a ripple insert."""
    clip_index: int
    original_offset: RationalTime
    new_offset: RationalTime

    @property
    def shift_amount(self) -> RationalTime:
        return self.new_offset - self.original_offset


@dataclass(frozen=True)
class RippleInsertResult:
    """Placement of the inserted clip plus every shift the ripple applied.

    Callers replay ``shifted_clips`` against anything they keep in parallel
    with the timeline (markers, captions, sync points).
    """
    inserted_clip: ClipPlacement
    shifted_clips: List[ClipShift] = field(default_factory=list)


@dataclass(frozen=True)
class RippleScope:
    """Which lanes a ripple insert shifts: all, one lane, or an inclusive range.

    Use the ``ALL`` and ``PRIMARY_ONLY`` constants or the ``single`` and
    ``lane_range`` constructors.
    """
    low: Optional[int] = None
    high: Optional[int] = None

    def __post_init__(self):
        if (self.low is None) != (self.high is None):
            raise ValueError("RippleScope needs both lane bounds or neither")
        if self.low is not None and self.low > self.high:
            raise ValueError(f"Invalid lane range: {self.low} > {self.high}")

    @classmethod
    def single(cls, lane: int) -> 'RippleScope':
        return cls(lane, lane)

    @classmethod
    def lane_range(cls, low: int, high: int) -> 'RippleScope':
        return cls(low, high)

    def includes(self, lane: int) -> bool:
        if self.low is None:
            return True
        return self.low <= lane <= self.high


RippleScope.ALL = RippleScope()
RippleScope.PRIMARY_ONLY = RippleScope(0, 0)


# ============================================================================
# TIMELINE
# ============================================================================

@dataclass(frozen=True)
class Timeline:
    """In-memory timeline: a name, an optional format and an unordered set of clips.

    Timelines are values. Editing operations in ``fcptimeline.editor``
    return a new Timeline and leave this one untouched.
    Construction rejects two positive-length clips that overlap on one lane.
    """
    name: str
    format: Optional[TimelineFormat] = None
    clips: Tuple[TimelineClip, ...] = ()

    def __post_init__(self):
        if not isinstance(self.clips, tuple):
            object.__setattr__(self, "clips", tuple(self.clips))
        self._check_no_overlaps()

    def _check_no_overlaps(self) -> None:
        """Raise ValueError if two positive-length clips share a lane and intersect."""
        by_lane: Dict[int, List[TimelineClip]] = {}
        for c in self.clips:
            if c.duration.is_positive:
                by_lane.setdefault(c.lane, []).append(c)
        for lane, lane_clips in by_lane.items():
            lane_clips.sort(key=lambda c: c.offset)
            for prev, current in zip(lane_clips, lane_clips[1:]):
                if _spans_overlap(prev.offset, prev.end, current.offset, current.end):
                    raise ValueError(
                        f"Clips '{prev.asset_ref}' and '{current.asset_ref}' overlap on lane {lane} "
                        f"at {current.offset.to_fcpxml()}"
                    )

    @property
    def duration(self) -> RationalTime:
        """Max end time over primary-storyline (lane 0) clips; zero if none."""
        ends = [c.end for c in self.clips if c.lane == 0]
        return max(ends) if ends else RationalTime.zero()

    @property
    def sorted_clips(self) -> List[TimelineClip]:
        """Clips sorted by offset, then lane."""
        return sorted(self.clips, key=lambda c: (c.offset, c.lane))

    @property
    def is_empty(self) -> bool:
        return not self.clips

    @property
    def clip_count(self) -> int:
        return len(self.clips)

    @property
    def lanes(self) -> List[int]:
        """Distinct lanes in use, ascending."""
        return sorted({c.lane for c in self.clips})

    @property
    def lane_range(self) -> Optional[Tuple[int, int]]:
        """(lowest, highest) lane in use, or None for an empty timeline."""
        if not self.clips:
            return None
        lanes = [c.lane for c in self.clips]
        return min(lanes), max(lanes)

    # -- clip queries -------------------------------------------------------

    def clips_on_lane(self, lane: int) -> List[TimelineClip]:
        """Clips on ``lane`` sorted by offset."""
        return sorted((c for c in self.clips if c.lane == lane), key=lambda c: c.offset)

    def clips_in_range(self, start: RationalTime, end: RationalTime) -> List[TimelineClip]:
        """Clips intersecting the half-open range ``[start, end)``."""
        return [c for c in self.clips if c.overlaps(start, end)]

    def clips_with_asset_ref(self, asset_ref: str) -> List[TimelineClip]:
        """Clips referencing ``asset_ref`` sorted by offset."""
        return sorted((c for c in self.clips if c.asset_ref == asset_ref), key=lambda c: c.offset)

    def has_overlap(self, offset: RationalTime, duration: RationalTime, lane: int) -> bool:
        """True when ``[offset, offset + duration)`` collides with a clip on ``lane``.

        An empty span occupies nothing and never collides.
        """
        if not duration.is_positive:
            return False
        end = offset + duration
        return any(
            _spans_overlap(offset, end, c.offset, c.end)
            for c in self.clips
            if c.lane == lane and c.duration.is_positive
        )

    # -- placement queries --------------------------------------------------

    def _placements(self, indexed: Iterable[Tuple[int, TimelineClip]]) -> List[ClipPlacement]:
        placements = [ClipPlacement(i, c.offset, c.duration, c.lane) for i, c in indexed]
        placements.sort(key=lambda p: (p.offset, p.lane))
        return placements

    def all_placements(self) -> List[ClipPlacement]:
        """Every clip's placement, sorted by (offset, lane)."""
        return self._placements(enumerate(self.clips))

    def placements_on_lane(self, lane: int) -> List[ClipPlacement]:
        return self._placements((i, c) for i, c in enumerate(self.clips) if c.lane == lane)

    def placements_in_range(self, start: RationalTime, end: RationalTime) -> List[ClipPlacement]:
        return self._placements(
            (i, c) for i, c in enumerate(self.clips) if c.overlaps(start, end)
        )

    # -- serialization ------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "clips": [c.to_dict() for c in self.clips],
        }
        if self.format is not None:
            data["format"] = self.format.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Timeline':
        fmt = data.get("format")
        return cls(
            name=str(data.get("name", "Untitled")),
            format=TimelineFormat.from_dict(fmt) if fmt else None,
            clips=tuple(TimelineClip.from_dict(c) for c in data.get("clips", [])),
        )
