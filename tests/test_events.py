#!/usr/bin/env python3
"""
Tests for event reconstruction: raw BORIS tuples to intervals.
"""

import numpy as np
import pandas as pd
import pytest

from pakke.config import STATE_EVENT, POINT_EVENT
from pakke.importers.project import ProjectLoadError, RawObservation
from pakke.importers.events import (
    INTERVAL_COLUMNS,
    build_behavior_lookup,
    parse_event,
    extract_events,
    construct_events_table,
    extract_all_events,
    pair_state_events,
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def behaviors_df():
    """Sway (state) and Ear flap (point)."""
    return pd.DataFrame({
        "id": [1, 2],
        "code": ["Sway", "Ear flap"],
        "type": [STATE_EVENT, POINT_EVENT],
        "description": ["", ""],
        "category_id": pd.array([1, 1], dtype="Int64"),
    })


@pytest.fixture
def lookup(behaviors_df):
    return build_behavior_lookup(behaviors_df)


def raw_obs(obs_id, events):
    return RawObservation(obs_id=obs_id, date=None, time_interval=(0.0, 600.0), events=events)


# =============================================================================
# PARSING
# =============================================================================

class TestParseEvent:
    """Tests for single-tuple parsing."""

    def test_valid_event(self, lookup):
        result = parse_event("o1", [12.5, "Bahadur", "Sway", "", ""], lookup)

        assert result.obs_id == "o1"
        assert result.behavior_id == 1
        assert result.time == 12.5
        assert result.type == STATE_EVENT

    def test_two_element_tuple_dropped(self, lookup):
        assert parse_event("o1", [12.5, "Bahadur"], lookup) is None

    def test_three_elements_is_enough(self, lookup):
        assert parse_event("o1", [1, "Bahadur", "Ear flap"], lookup) is not None

    def test_numeric_string_time_accepted(self, lookup):
        assert parse_event("o1", ["7.25", "Bahadur", "Sway"], lookup).time == 7.25

    @pytest.mark.parametrize("bad_time", ["abc", None, True, float("nan"), float("inf")])
    def test_unparseable_time_dropped(self, lookup, bad_time):
        assert parse_event("o1", [bad_time, "Bahadur", "Sway"], lookup) is None

    def test_unknown_code_dropped(self, lookup):
        assert parse_event("o1", [1, "Bahadur", "Dance"], lookup) is None

    def test_non_sequence_dropped(self, lookup):
        assert parse_event("o1", "1,Bahadur,Sway", lookup) is None


# =============================================================================
# RAW EVENT TABLE
# =============================================================================

class TestExtractEvents:
    """Tests for building the raw event table."""

    def test_malformed_event_does_not_abort_observation(self, behaviors_df):
        """A 2-element tuple is dropped; the rest of the observation survives."""
        observations = {"o1": raw_obs("o1", [
            [1, "Bahadur", "Sway"],
            [2, "Bahadur"],
            [3, "Bahadur", "Sway"],
        ])}

        events = extract_events(observations, behaviors_df)

        assert events["time"].tolist() == [1.0, 3.0]

    def test_unknown_behavior_code_is_not_fatal(self, behaviors_df):
        observations = {"o1": raw_obs("o1", [
            [1, "Bahadur", "Dance"],
            [2, "Bahadur", "Ear flap"],
        ])}

        events = extract_events(observations, behaviors_df)

        assert events["behavior_id"].tolist() == [2]

    def test_skips_logged_per_observation(self, behaviors_df, caplog):
        observations = {"o1": raw_obs("o1", [[1, "Bahadur", "Dance"], [2, "Bahadur"]])}

        with caplog.at_level("WARNING", logger="pakke.importers.events"):
            extract_events(observations, behaviors_df)

        assert "o1: skipped 2 of 2 events" in caplog.text

    def test_sorted_by_obs_behavior_time(self, behaviors_df):
        observations = {
            "o2": raw_obs("o2", [[5, "V", "Sway"], [1, "V", "Ear flap"]]),
            "o1": raw_obs("o1", [[9, "B", "Ear flap"], [4, "B", "Sway"], [2, "B", "Sway"]]),
        }

        events = extract_events(observations, behaviors_df)

        assert list(zip(events["obs_id"], events["behavior_id"], events["time"])) == [
            ("o1", 1, 2.0), ("o1", 1, 4.0), ("o1", 2, 9.0),
            ("o2", 1, 5.0), ("o2", 2, 1.0),
        ]

    def test_missing_observations_fatal(self, behaviors_df):
        with pytest.raises(ProjectLoadError, match="No observations"):
            extract_events(None, behaviors_df)

    def test_no_events_gives_empty_table(self, behaviors_df):
        events = extract_events({"o1": raw_obs("o1", [])}, behaviors_df)

        assert events.empty
        assert list(events.columns) == ["obs_id", "behavior_id", "time", "type"]


# =============================================================================
# INTERVAL RECONSTRUCTION
# =============================================================================

class TestConstructEventsTable:
    """Tests for positional pairing of state events."""

    def test_odd_state_count_leaves_last_start_open(self, behaviors_df):
        """State events at 1, 3, 7 -> (1, 3) and an open interval at 7."""
        observations = {"o1": raw_obs("o1", [
            [7, "B", "Sway"], [1, "B", "Sway"], [3, "B", "Sway"],
        ])}

        intervals = extract_all_events(observations, behaviors_df, workers=1)

        assert intervals["start"].tolist() == [1.0, 7.0]
        assert intervals["stop"].iloc[0] == 3.0
        assert np.isnan(intervals["stop"].iloc[1])

    def test_point_events_have_no_stop(self, behaviors_df):
        observations = {"o1": raw_obs("o1", [[1, "B", "Ear flap"], [2, "B", "Ear flap"]])}

        intervals = extract_all_events(observations, behaviors_df, workers=1)

        assert intervals["start"].tolist() == [1.0, 2.0]
        assert intervals["stop"].isna().all()

    def test_pairing_scoped_per_behavior(self, behaviors_df):
        """Interleaved point events do not shift state pairing."""
        observations = {"o1": raw_obs("o1", [
            [0, "B", "Sway"], [1, "B", "Ear flap"], [5, "B", "Sway"],
            [6, "B", "Ear flap"], [8, "B", "Sway"], [9, "B", "Sway"],
        ])}

        intervals = extract_all_events(observations, behaviors_df, workers=1)
        states = intervals[intervals["behavior_id"] == 1]

        assert list(zip(states["start"], states["stop"])) == [(0.0, 5.0), (8.0, 9.0)]

    def test_output_sorted_by_obs_and_start(self, behaviors_df):
        observations = {
            "o2": raw_obs("o2", [[0, "V", "Sway"], [4, "V", "Sway"]]),
            "o1": raw_obs("o1", [[3, "B", "Ear flap"], [1, "B", "Sway"], [2, "B", "Sway"]]),
        }

        intervals = extract_all_events(observations, behaviors_df, workers=1)

        assert list(intervals.columns) == INTERVAL_COLUMNS
        assert list(zip(intervals["obs_id"], intervals["start"])) == [
            ("o1", 1.0), ("o1", 3.0), ("o2", 0.0),
        ]

    def test_threaded_matches_sequential(self, behaviors_df):
        observations = {
            f"o{i}": raw_obs(f"o{i}", [[t, "B", "Sway"] for t in range(i + 3)] + [[0.5, "B", "Ear flap"]])
            for i in range(8)
        }

        sequential = extract_all_events(observations, behaviors_df, workers=1)
        threaded = extract_all_events(observations, behaviors_df, workers=4)

        pd.testing.assert_frame_equal(sequential, threaded)

    def test_empty_events_give_empty_intervals(self):
        raw = pd.DataFrame(columns=["obs_id", "behavior_id", "time", "type"])

        intervals = construct_events_table(raw)

        assert intervals.empty
        assert list(intervals.columns) == INTERVAL_COLUMNS

    def test_pair_state_events_even_count(self):
        group = pd.DataFrame({"obs_id": ["o1"] * 4, "behavior_id": [1] * 4, "time": [9.0, 1.0, 2.0, 5.0]})

        paired = pair_state_events(group)

        assert list(zip(paired["start"], paired["stop"])) == [(1.0, 2.0), (5.0, 9.0)]
