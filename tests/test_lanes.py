"""Tests for lane assignment policies."""

import pytest

from midi_to_rpe.lanes import (
    LanePolicy,
    PitchLanePolicy,
    SpreadLanePolicy,
    assign_lanes,
    baseline_lane,
    lane_count_from_template,
    make_lane_policy,
)
from midi_to_rpe.notes import NoteEvent


def _n(start, pitch, end=None, track=0, channel=0):
    return NoteEvent(start, end if end is not None else start + 120, pitch, channel, track, 64)


def _lanes(assigned):
    return [lane for _, lane in assigned]


class TestBaseline:
    def test_pitch_mod_lane_count(self):
        assert baseline_lane(_n(0, 60), 4) == 0
        assert baseline_lane(_n(0, 61), 4) == 1
        assert baseline_lane(_n(0, 67), 7) == 4

    def test_make_lane_policy(self):
        assert isinstance(make_lane_policy(0.0), PitchLanePolicy)
        assert isinstance(make_lane_policy(0.3), SpreadLanePolicy)


class TestPitchPolicy:
    def test_same_pitch_same_tick_different_tracks_share_lane(self):
        notes = [_n(0, 60, track=0), _n(0, 60, track=1)]
        assigned, stats = assign_lanes(notes, 4, 0.0)
        assert _lanes(assigned) == [0, 0]
        assert stats == {"contested": 0, "moved": 0}

    def test_same_pitch_class_always_same_lane(self):
        notes = [_n(i * 240, 60 + 12 * (i % 3)) for i in range(12)]
        assigned, _ = assign_lanes(notes, 6, 0.0)
        assert set(_lanes(assigned)) == {0}


class TestSpreadPolicy:
    def test_full_rate_moves_stacked_note_to_next_lane(self):
        assigned, stats = assign_lanes([_n(0, 60), _n(0, 64)], 4, 1.0)
        assert [(n.note, lane) for n, lane in assigned] == [(60, 0), (64, 1)]
        assert stats == {"contested": 1, "moved": 1}

    def test_half_rate_moves_every_other_contested_note(self):
        notes = [_n(0, 60), _n(0, 64), _n(0, 68), _n(0, 72)]
        assigned, stats = assign_lanes(notes, 4, 0.5)
        assert _lanes(assigned) == [0, 0, 1, 0]
        assert stats == {"contested": 3, "moved": 1}

    def test_searches_both_directions(self):
        notes = [_n(0, 63), _n(0, 67), _n(0, 71)]
        assigned, _ = assign_lanes(notes, 4, 1.0)
        # Baseline 3; +1 wraps to lane 0, then -1 gives lane 2.
        assert _lanes(assigned) == [3, 0, 2]

    def test_stays_on_baseline_when_all_lanes_taken(self):
        notes = [_n(0, 60), _n(0, 62), _n(0, 64)]
        assigned, stats = assign_lanes(notes, 2, 1.0)
        assert _lanes(assigned) == [0, 1, 0]
        assert stats["moved"] == 1

    def test_uncontested_notes_keep_baseline(self):
        notes = [_n(0, 60), _n(480, 64), _n(960, 68)]
        assigned, stats = assign_lanes(notes, 4, 1.0)
        assert _lanes(assigned) == [0, 0, 0]
        assert stats["contested"] == 0

    def test_hold_keeps_lane_busy(self):
        notes = [_n(0, 60, end=1920), _n(960, 64)]
        assigned, _ = assign_lanes(notes, 4, 1.0, hold_ticks=480)
        assert _lanes(assigned) == [0, 1]

    def test_short_note_does_not_block_lane(self):
        notes = [_n(0, 60, end=240), _n(120, 64)]
        assigned, _ = assign_lanes(notes, 4, 1.0, hold_ticks=480)
        assert _lanes(assigned) == [0, 0]

    def test_without_hold_ticks_only_same_tick_counts(self):
        notes = [_n(0, 60, end=1920), _n(960, 64)]
        assigned, _ = assign_lanes(notes, 4, 1.0)
        assert _lanes(assigned) == [0, 0]


class TestDeterminism:
    def test_repeated_runs_match(self):
        notes = [_n(t, p, track=t % 3) for t in range(0, 4800, 240) for p in (60, 64, 67, 72)]
        first, _ = assign_lanes(notes, 4, 0.7, hold_ticks=480)
        for _ in range(3):
            again, _ = assign_lanes(notes, 4, 0.7, hold_ticks=480)
            assert again == first

    def test_input_order_does_not_matter(self):
        notes = [_n(t, p, track=t % 2) for t in range(0, 2400, 120) for p in (48, 52, 55, 60)]
        forward, _ = assign_lanes(notes, 3, 0.6)
        backward, _ = assign_lanes(list(reversed(notes)), 3, 0.6)
        assert forward == backward


class TestCustomPolicy:
    def test_policy_interface(self):
        class LastLane(LanePolicy):
            def choose_lane(self, note, context):
                return context.lane_count - 1

        assigned, _ = assign_lanes([_n(0, 60), _n(10, 61)], 5, policy=LastLane())
        assert _lanes(assigned) == [4, 4]

    def test_out_of_range_lane_rejected(self):
        class Broken(LanePolicy):
            def choose_lane(self, note, context):
                return context.lane_count

        with pytest.raises(ValueError):
            assign_lanes([_n(0, 60)], 4, policy=Broken())

    def test_base_policy_is_abstract(self):
        with pytest.raises(NotImplementedError):
            assign_lanes([_n(0, 60)], 4, policy=LanePolicy())

    def test_lane_count_must_be_positive(self):
        with pytest.raises(ValueError):
            assign_lanes([_n(0, 60)], 0)


class TestTemplate:
    def test_lane_count_from_template(self):
        assert lane_count_from_template({"judgeLineList": [{}, {}, {}]}) == 3

    @pytest.mark.parametrize("doc", [{}, [], {"judgeLineList": []}, {"judgeLineList": "x"}])
    def test_bad_template(self, doc):
        with pytest.raises(ValueError):
            lane_count_from_template(doc)
