"""Tests for the placement engine: ripple insert, automatic lane assignment, and TimelineEditor."""

import random

import pytest

from fcptimeline.editor import (
    TimelineEditor,
    find_available_lane,
    insert_auto_lane,
    insert_with_ripple,
)
from fcptimeline.errors import LaneSearchExhaustedError, NoAvailableLaneError, TimelineError
from fcptimeline.models import MAX_VALUE, RationalTime, RippleScope, Timeline, TimelineClip


def s(n, ts=1):
    return RationalTime(n, ts)


def clip(ref, offset, duration, lane=0):
    return TimelineClip(ref, s(offset), s(duration), lane=lane)


def assert_no_overlaps(timeline):
    """No two positive-length clips on the same lane intersect."""
    for lane in timeline.lanes:
        spans = sorted((c.offset, c.end) for c in timeline.clips_on_lane(lane) if c.duration.is_positive)
        for (_, prev_end), (start, _) in zip(spans, spans[1:]):
            assert prev_end <= start, f"overlap on lane {lane}"


@pytest.fixture
def abc_timeline():
    """Three back-to-back 5s clips on the primary storyline."""
    return Timeline("ABC", clips=[clip("A", 0, 5), clip("B", 5, 5), clip("C", 10, 5)])


@pytest.fixture
def layered_timeline():
    """Primary clips plus a connected title above and music below."""
    return Timeline("Layered", clips=[
        clip("A", 0, 5),
        clip("B", 5, 5),
        clip("title", 6, 2, lane=1),
        clip("music", 7, 2, lane=-1),
    ])


class TestRippleInsert:
    """Ripple insert pushes downstream clips by the inserted duration."""

    def test_pushes_downstream_clips(self, abc_timeline):
        new, result = insert_with_ripple(abc_timeline, clip("X", 0, 3), s(5))
        offsets = {c.asset_ref: c.offset for c in new.clips}
        assert offsets == {"A": s(0), "B": s(8), "C": s(13), "X": s(5)}

    def test_reports_shifts(self, abc_timeline):
        _, result = insert_with_ripple(abc_timeline, clip("X", 0, 3), s(5))
        assert [sh.clip_index for sh in result.shifted_clips] == [1, 2]
        assert [sh.original_offset for sh in result.shifted_clips] == [s(5), s(10)]
        assert [sh.new_offset for sh in result.shifted_clips] == [s(8), s(13)]
        assert all(sh.shift_amount == s(3) for sh in result.shifted_clips)

    def test_reports_inserted_placement(self, abc_timeline):
        new, result = insert_with_ripple(abc_timeline, clip("X", 0, 3), s(5))
        placed = result.inserted_clip
        assert placed.clip_index == 3
        assert (placed.offset, placed.duration, placed.lane) == (s(5), s(3), 0)
        assert new.clips[placed.clip_index].asset_ref == "X"

    def test_duration_grows(self, abc_timeline):
        new, _ = insert_with_ripple(abc_timeline, clip("X", 0, 3), s(5))
        assert new.duration == s(18)

    def test_input_timeline_unchanged(self, abc_timeline):
        before = abc_timeline.to_dict()
        insert_with_ripple(abc_timeline, clip("X", 0, 3), s(5))
        assert abc_timeline.to_dict() == before

    def test_clip_ending_at_insert_point_stays(self, abc_timeline):
        new, result = insert_with_ripple(abc_timeline, clip("X", 0, 3), s(5))
        assert new.clips[0].offset == s(0)
        assert 0 not in [sh.clip_index for sh in result.shifted_clips]

    def test_insert_at_end(self, abc_timeline):
        new, result = insert_with_ripple(abc_timeline, clip("X", 0, 3), s(15))
        assert result.shifted_clips == []
        assert new.duration == s(18)

    def test_insert_into_empty_timeline(self):
        new, result = insert_with_ripple(Timeline("Empty"), clip("X", 0, 3), s(2))
        assert result.inserted_clip.clip_index == 0
        assert new.clips[0].offset == s(2)

    def test_zero_duration_shifts_nothing(self, abc_timeline):
        new, result = insert_with_ripple(abc_timeline, clip("marker", 0, 0), s(5))
        assert result.shifted_clips == []
        assert [c.offset for c in new.clips[:3]] == [s(0), s(5), s(10)]

    def test_exact_fractions(self):
        frame = RationalTime(1001, 30000)
        timeline = Timeline("NTSC", clips=[TimelineClip("A", frame * 10, frame * 5)])
        new, result = insert_with_ripple(timeline, TimelineClip("X", s(0), frame * 3), frame * 10)
        assert new.clips[0].offset == frame * 13
        assert result.shifted_clips[0].shift_amount == frame * 3

    def test_straddling_clip_conflicts(self):
        timeline = Timeline("Long", clips=[clip("A", 0, 10)])
        with pytest.raises(NoAvailableLaneError) as exc_info:
            insert_with_ripple(timeline, clip("X", 0, 3), s(5))
        assert exc_info.value.offset == s(5)
        assert exc_info.value.duration == s(3)
        assert exc_info.value.lane == 0

    def test_conflict_is_a_timeline_error(self):
        timeline = Timeline("Long", clips=[clip("A", 0, 10)])
        with pytest.raises(TimelineError):
            insert_with_ripple(timeline, clip("X", 0, 3), s(5))

    def test_inserted_clip_keeps_metadata(self, abc_timeline):
        x = TimelineClip("X", s(0), s(3), start=s(20), name="Cutaway", is_video_disabled=True)
        new, result = insert_with_ripple(abc_timeline, x, s(5), lane=2)
        placed = new.clips[result.inserted_clip.clip_index]
        assert (placed.start, placed.name, placed.is_video_disabled) == (s(20), "Cutaway", True)
        assert placed.lane == 2


class TestRippleScope:
    """Ripple scope limits which lanes move."""

    def test_all_lanes_by_default(self, layered_timeline):
        new, result = insert_with_ripple(layered_timeline, clip("X", 0, 2), s(5))
        assert [c.offset for c in new.clips[:4]] == [s(0), s(7), s(8), s(9)]
        assert len(result.shifted_clips) == 3

    def test_primary_only(self, layered_timeline):
        new, _ = insert_with_ripple(layered_timeline, clip("X", 0, 2), s(5),
                                    ripple_scope=RippleScope.PRIMARY_ONLY)
        assert [c.offset for c in new.clips[:4]] == [s(0), s(7), s(6), s(7)]

    def test_lane_range(self, layered_timeline):
        new, _ = insert_with_ripple(layered_timeline, clip("X", 0, 2), s(5),
                                    ripple_scope=RippleScope.lane_range(0, 1))
        assert [c.offset for c in new.clips[:4]] == [s(0), s(7), s(8), s(7)]

    def test_single_lane(self, layered_timeline):
        new, result = insert_with_ripple(layered_timeline, clip("X", 0, 1), s(6), lane=1,
                                         ripple_scope=RippleScope.single(1))
        assert [c.offset for c in new.clips[:4]] == [s(0), s(5), s(7), s(7)]
        assert [sh.clip_index for sh in result.shifted_clips] == [2]

    def test_unshifted_lane_conflict(self, layered_timeline):
        with pytest.raises(NoAvailableLaneError):
            insert_with_ripple(layered_timeline, clip("X", 0, 1), s(6), lane=1,
                               ripple_scope=RippleScope.PRIMARY_ONLY)


class TestFindAvailableLane:
    def test_preferred_when_free(self, abc_timeline):
        assert find_available_lane(abc_timeline, s(20), s(5), 0) == 0

    def test_above_before_below(self, abc_timeline):
        assert find_available_lane(abc_timeline, s(2), s(1), 0) == 1

    def test_below_when_above_busy(self, abc_timeline):
        timeline = Timeline("Busy", clips=abc_timeline.clips + (clip("T", 0, 20, lane=1),))
        assert find_available_lane(timeline, s(2), s(1), 0) == -1

    def test_searches_from_starting_lane(self, abc_timeline):
        timeline = Timeline("Busy", clips=abc_timeline.clips + (clip("T", 0, 20, lane=3),))
        assert find_available_lane(timeline, s(2), s(1), 3) == 4

    def test_exhausted_is_none(self, abc_timeline):
        assert find_available_lane(abc_timeline, s(2), s(1), 0, max_search_steps=0) is None

    def test_negative_steps_raise(self, abc_timeline):
        with pytest.raises(ValueError):
            find_available_lane(abc_timeline, s(2), s(1), 0, max_search_steps=-1)


class TestAutoLaneInsert:
    """Auto-lane insert never moves existing clips."""

    def test_preferred_lane_when_free(self, abc_timeline):
        new, placement = insert_auto_lane(abc_timeline, clip("X", 0, 3), s(15))
        assert placement.lane == 0
        assert placement.clip_index == 3
        assert new.clips[3].offset == s(15)

    def test_conflict_goes_up_first(self, abc_timeline):
        new, placement = insert_auto_lane(abc_timeline, clip("X", 0, 3), s(2))
        assert placement.lane == 1
        assert new.clips[3].lane == 1

    def test_then_down(self, abc_timeline):
        timeline, _ = insert_auto_lane(abc_timeline, clip("X", 0, 3), s(2))
        _, placement = insert_auto_lane(timeline, clip("Y", 0, 3), s(3))
        assert placement.lane == -1

    def test_other_clips_untouched(self, abc_timeline):
        new, _ = insert_auto_lane(abc_timeline, clip("X", 0, 3), s(2))
        assert new.clips[:3] == abc_timeline.clips

    def test_auto_assign_disabled(self, abc_timeline):
        with pytest.raises(NoAvailableLaneError) as exc_info:
            insert_auto_lane(abc_timeline, clip("X", 0, 3), s(2), auto_assign=False)
        assert exc_info.value.offset == s(2)
        assert exc_info.value.duration == s(3)
        assert "No available lane" in str(exc_info.value)

    def test_auto_assign_disabled_free_lane(self, abc_timeline):
        _, placement = insert_auto_lane(abc_timeline, clip("X", 0, 3), s(2),
                                        preferred_lane=2, auto_assign=False)
        assert placement.lane == 2

    def test_zero_duration_stays_on_preferred_lane(self, abc_timeline):
        _, placement = insert_auto_lane(abc_timeline, clip("X", 0, 0), s(2))
        assert placement.lane == 0

    def test_search_exhausted(self, abc_timeline):
        with pytest.raises(LaneSearchExhaustedError) as exc_info:
            insert_auto_lane(abc_timeline, clip("X", 0, 3), s(2), max_search_steps=0)
        assert exc_info.value.max_search_steps == 0
        assert not isinstance(exc_info.value, TimelineError)

    def test_search_exhausted_within_bound(self):
        timeline = Timeline("Stack", clips=[clip(f"c{lane}", 0, 10, lane) for lane in (-1, 0, 1)])
        with pytest.raises(LaneSearchExhaustedError):
            insert_auto_lane(timeline, clip("X", 0, 1), s(5), max_search_steps=1)
        _, placement = insert_auto_lane(timeline, clip("X", 0, 1), s(5), max_search_steps=2)
        assert placement.lane == 2

    def test_random_inserts_never_overlap(self):
        rng = random.Random(7)
        timeline = Timeline("Random")
        for i in range(300):
            offset = RationalTime(rng.randint(0, 2400), 24)
            duration = RationalTime(rng.randint(0, 240), 24)
            timeline, placement = insert_auto_lane(
                timeline, TimelineClip(f"r{i}", s(0), duration), offset,
                preferred_lane=rng.randint(-2, 2),
            )
            assert timeline.clips[placement.clip_index].lane == placement.lane
        assert timeline.clip_count == 300
        assert_no_overlaps(timeline)


class TestRangeQueries:
    def test_matches_brute_force(self):
        rng = random.Random(99)
        # one clip per lane so random spans never collide
        clips = [
            clip(f"r{i}", rng.randint(0, 100), rng.randint(0, 20), i - 75)
            for i in range(150)
        ]
        timeline = Timeline("Query", clips=clips)
        for _ in range(50):
            start = s(rng.randint(0, 120))
            end = start + s(rng.randint(0, 30))
            expected = {i for i, c in enumerate(clips) if c.offset < end and c.end > start}
            assert {p.clip_index for p in timeline.placements_in_range(start, end)} == expected


class TestTimelineEditor:
    def test_rebinds_after_each_edit(self, abc_timeline):
        editor = TimelineEditor(abc_timeline)
        editor.insert_with_ripple(clip("X", 0, 3), s(5))
        placement = editor.insert_auto_lane(clip("Y", 0, 2), s(6))
        assert editor.timeline.clip_count == 5
        assert placement.lane == 1
        assert abc_timeline.clip_count == 3

    def test_failed_insert_keeps_binding(self):
        editor = TimelineEditor(Timeline("Long", clips=[clip("A", 0, 10)]))
        before = editor.timeline
        with pytest.raises(NoAvailableLaneError):
            editor.insert_with_ripple(clip("X", 0, 3), s(5))
        assert editor.timeline is before

    def test_uses_configured_search_bound(self, abc_timeline):
        editor = TimelineEditor(abc_timeline, max_search_steps=0)
        assert editor.find_available_lane(s(2), s(1)) is None
        with pytest.raises(LaneSearchExhaustedError):
            editor.insert_auto_lane(clip("X", 0, 3), s(2))

    def test_invalid_search_bound(self, abc_timeline):
        with pytest.raises(TypeError):
            TimelineEditor(abc_timeline, max_search_steps=1.5)


class TestInsertLimits:
    def test_ripple_past_value_limit_raises(self):
        timeline = Timeline("Edge", clips=[TimelineClip("A", s(MAX_VALUE - 10), s(5))])
        with pytest.raises(OverflowError):
            insert_with_ripple(timeline, clip("X", 0, 20), s(0))
        assert timeline.clips[0].offset == s(MAX_VALUE - 10)

    def test_mixed_timescales_stay_readable(self):
        timeline = Timeline("Mixed", clips=[TimelineClip("A", s(1, 24), s(1001, 30000))])
        new, result = insert_with_ripple(timeline, TimelineClip("X", s(0), s(1, 25)), s(0))
        moved = new.clips[result.shifted_clips[0].clip_index]
        assert moved.offset == s(49, 600)
        assert RationalTime.from_fcpxml(moved.end.to_fcpxml()) == moved.end

    def test_unrepresentable_end_raises(self):
        timeline = Timeline("Mixed", clips=[TimelineClip("A", s(1, 44100), s(100, 2997))])
        with pytest.raises(OverflowError):
            insert_with_ripple(timeline, TimelineClip("X", s(0), s(1, 48000)), s(0))
