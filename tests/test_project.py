#!/usr/bin/env python3
"""
Tests for project file validation and entity extraction.
"""

import copy

import pandas as pd
import pytest

from pakke.importers.project import (
    ProjectLoadError,
    RawObservation,
    parse_project,
    read_project_file,
    extract_subjects,
    extract_categories,
    extract_behaviors,
    extract_observations,
    assign_sessions,
    find_subject_marker,
    parse_number,
)


def load_observations(prj):
    project = parse_project(prj)
    return extract_observations(project, extract_subjects(project))


# =============================================================================
# VALIDATION
# =============================================================================

class TestParseProject:
    """Tests for schema validation at the load boundary."""

    def test_valid_project(self, project_dict):
        project = parse_project(project_dict)

        assert [s.name for s in project.subjects] == ["Bahadur", "Vijaya"]
        assert project.categories == ["Avoidance", "Displacement", "Social"]
        assert len(project.behaviors) == 6
        assert set(project.observations) == {"B1", "B2", "B3", "V1", "V2"}

    def test_missing_observations_fatal(self, project_dict):
        del project_dict["observations"]

        with pytest.raises(ProjectLoadError, match="No observations found in project"):
            parse_project(project_dict)

    @pytest.mark.parametrize("section", ["subjects_conf", "behavioral_categories", "behaviors_conf"])
    def test_missing_section_named_in_error(self, project_dict, section):
        del project_dict[section]

        with pytest.raises(ProjectLoadError, match=section):
            parse_project(project_dict)

    def test_unsupported_behavior_type_fatal(self, project_dict):
        project_dict["behaviors_conf"]["0"]["type"] = "Interval event"

        with pytest.raises(ProjectLoadError, match="unsupported type"):
            parse_project(project_dict)

    def test_invalid_json_file(self, tmp_path):
        path = tmp_path / "broken.boris"
        path.write_text("{not json")

        with pytest.raises(ProjectLoadError, match="not valid JSON"):
            read_project_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ProjectLoadError, match="Cannot read project file"):
            read_project_file(tmp_path / "absent.boris")

    def test_read_project_file(self, project_file):
        assert len(read_project_file(project_file).observations) == 5


class TestParseNumber:
    """Tests for parse_number."""

    @pytest.mark.parametrize("value,expected", [(3, 3.0), (2.5, 2.5), (" 4.5 ", 4.5), ("0", 0.0)])
    def test_numbers(self, value, expected):
        assert parse_number(value) == expected

    @pytest.mark.parametrize("value", ["x", "", None, False, float("nan"), float("-inf"), [1]])
    def test_not_numbers(self, value):
        assert parse_number(value) is None


# =============================================================================
# ENTITY TABLES
# =============================================================================

class TestEntityTables:
    """Tests for subject, category and behavior tables."""

    def test_subject_ids_follow_numeric_key_order(self, project_dict):
        project_dict["subjects_conf"] = {
            "1": {"name": "B"}, "10": {"name": "K"}, "0": {"name": "A"}, "2": {"name": "C"},
        }

        subjects = extract_subjects(parse_project(project_dict))

        assert subjects["name"].tolist() == ["A", "B", "C", "K"]
        assert subjects["id"].tolist() == [1, 2, 3, 4]
        assert subjects["description"].tolist() == ["", "", "", ""]

    def test_categories(self, project_dict):
        categories = extract_categories(parse_project(project_dict))

        assert categories.values.tolist() == [[1, "Avoidance"], [2, "Displacement"], [3, "Social"]]

    def test_behavior_category_resolved(self, project_dict):
        project = parse_project(project_dict)

        behaviors = extract_behaviors(project, extract_categories(project))

        assert behaviors["code"].tolist()[:3] == ["Sway", "Head bob", "Walk away"]
        assert behaviors["category_id"].tolist() == [2, 2, 1, 3, 1, 2]

    def test_unknown_or_empty_category_is_missing(self, project_dict):
        project_dict["behaviors_conf"]["0"]["category"] = "Play"
        project_dict["behaviors_conf"]["1"]["category"] = ""
        project = parse_project(project_dict)

        behaviors = extract_behaviors(project, extract_categories(project))

        assert behaviors["category_id"].isna().tolist()[:3] == [True, True, False]


# =============================================================================
# OBSERVATIONS
# =============================================================================

class TestObservations:
    """Tests for observation extraction and session numbering."""

    def test_sessions_follow_date_order(self, project_dict):
        """Dated 01-05, 01-01, 01-10 -> sessions 2, 1, 3."""
        observations = load_observations(project_dict).set_index("obs_id")

        assert observations.loc["B2", "session"] == 1
        assert observations.loc["B1", "session"] == 2
        assert observations.loc["B3", "session"] == 3

    def test_sessions_contiguous_per_subject(self, project_dict):
        observations = load_observations(project_dict)

        for _, group in observations.groupby("subject_id"):
            assert sorted(group["session"]) == list(range(1, len(group) + 1))

    def test_columns_and_duration(self, project_dict):
        observations = load_observations(project_dict)

        assert list(observations.columns) == [
            "obs_id", "date", "subject_id", "obs_start", "obs_end", "duration", "session",
        ]
        assert (observations["duration"] == 600.0).all()
        assert observations.set_index("obs_id").loc["V1", "subject_id"] == 2

    def test_undated_observation_sorts_last(self):
        df = pd.DataFrame({
            "obs_id": ["x", "y", "z"],
            "date": pd.to_datetime([None, "2023-01-02", "2023-01-01"]),
            "subject_id": [1, 1, 1],
            "duration": [1.0, 1.0, 1.0],
        })

        sessions = assign_sessions(df).set_index("obs_id")["session"]

        assert sessions.to_dict() == {"z": 1, "y": 2, "x": 3}

    def test_same_date_ties_broken_by_obs_id(self):
        df = pd.DataFrame({
            "obs_id": ["b", "a"],
            "date": pd.to_datetime(["2023-01-01 10:00", "2023-01-01 10:00"]),
            "subject_id": [1, 1],
            "duration": [1.0, 1.0],
        })

        assert assign_sessions(df)[["obs_id", "session"]].values.tolist() == [["a", 1], ["b", 2]]

    def test_unparseable_date_left_empty(self, project_dict):
        project_dict["observations"]["B3"]["date"] = "sometime"

        observations = load_observations(project_dict).set_index("obs_id")

        assert pd.isna(observations.loc["B3", "date"])
        assert observations.loc["B3", "session"] == 3

    def test_duration_falls_back_to_media_length(self, project_dict):
        obs = project_dict["observations"]["B1"]
        obs["observation time interval"] = [0, 0]
        obs["media_info"] = {"length": {"a.mp4": 300, "b.mp4": 120.5}}

        observations = load_observations(project_dict).set_index("obs_id")

        assert observations.loc["B1", "duration"] == 420.5
        assert observations.loc["B1", "obs_start"] == 0.0
        assert observations.loc["B1", "obs_end"] == 420.5

    def test_duration_from_interval(self):
        obs = RawObservation(obs_id="o", date=None, time_interval=(30.0, 630.0), media_lengths=[5.0])

        assert obs.duration == 600.0
        assert (obs.start, obs.end) == (30.0, 630.0)

    def test_offset_interval_kept_as_window(self, project_dict):
        project_dict["observations"]["B1"]["observation time interval"] = [50, 150]

        observations = load_observations(project_dict).set_index("obs_id")

        assert observations.loc["B1", ["obs_start", "obs_end", "duration"]].tolist() == [50.0, 150.0, 100.0]

    def test_non_positive_duration_fatal(self, project_dict):
        obs = project_dict["observations"]["B1"]
        obs["observation time interval"] = [0, 0]
        obs["media_info"] = {}

        with pytest.raises(ProjectLoadError, match="B1"):
            load_observations(project_dict)

    def test_first_event_without_subject_fatal(self, project_dict):
        project_dict["observations"]["V1"]["events"][0][1] = ""

        with pytest.raises(ProjectLoadError, match="Not all events have subjects in V1"):
            load_observations(project_dict)

    def test_empty_subject_table_fatal(self, project_dict):
        project = parse_project(project_dict)
        empty = extract_subjects(project).iloc[0:0]

        with pytest.raises(ProjectLoadError, match="Subjects incorrectly specified"):
            extract_observations(project, empty)

    def test_find_subject_marker(self):
        names = {"Bahadur", "Vijaya"}

        assert find_subject_marker([1, "Vijaya", "Sway"], names) == "Vijaya"
        assert find_subject_marker([1, "", "Sway"], names) is None
        assert find_subject_marker(None, names) is None

    def test_input_not_mutated(self, project_dict):
        original = copy.deepcopy(project_dict)

        load_observations(project_dict)

        assert project_dict == original
