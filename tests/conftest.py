"""
Shared fixtures: a small two-subject BORIS project and its milestone file.

Every observation lasts 600 s (10 min), so a state interval of 60 s is a
time budget of 0.1 and one point event is a frequency of 0.1 /min.

Subjects:   1 Bahadur, 2 Vijaya
Categories: 1 Avoidance, 2 Displacement, 3 Social
Behaviors:  1 Sway (S, Displacement)   2 Head bob (S, Displacement)
            3 Walk away (S, Avoidance) 4 Trunk touch (P, Social)
            5 Ear flap (P, Avoidance)  6 Leg held (S, Displacement)

Observations (obs_id: date -> session):
    B2: 2023-01-01 10:00 -> Bahadur 1     V1: 2023-01-01 14:00 -> Vijaya 1
    B1: 2023-01-05 10:00 -> Bahadur 2     V2: 2023-01-05 10:00 -> Vijaya 2
    B3: 2023-01-10 14:00 -> Bahadur 3
"""

import json

import matplotlib
matplotlib.use("Agg")

import pytest

from pakke.config import STATE_EVENT, POINT_EVENT


def event(time, subject, code):
    return [time, subject, code, "", ""]


def observation(date, events, interval=(0, 600)):
    return {
        "date": date,
        "observation time interval": list(interval),
        "media_info": {"length": {"video.mp4": 600}},
        "events": events,
    }


@pytest.fixture
def project_dict():
    """Decoded BORIS project."""
    return {
        "subjects_conf": {
            "0": {"name": "Bahadur", "description": "adult male"},
            "1": {"name": "Vijaya", "description": "adult female"},
        },
        "behavioral_categories": ["Avoidance", "Displacement", "Social"],
        "behaviors_conf": {
            "0": {"code": "Sway", "type": STATE_EVENT, "description": "", "category": "Displacement"},
            "1": {"code": "Head bob", "type": STATE_EVENT, "description": "", "category": "Displacement"},
            "2": {"code": "Walk away", "type": STATE_EVENT, "description": "", "category": "Avoidance"},
            "3": {"code": "Trunk touch", "type": POINT_EVENT, "description": "", "category": "Social"},
            "4": {"code": "Ear flap", "type": POINT_EVENT, "description": "", "category": "Avoidance"},
            "5": {"code": "Leg held", "type": STATE_EVENT, "description": "", "category": "Displacement"},
        },
        "observations": {
            "B1": observation("2023-01-05T10:00:00", [
                event(0, "Bahadur", "Leg held"),
                event(10, "Bahadur", "Sway"),
                event(40, "Bahadur", "Sway"),
                event(50, "Bahadur", "Ear flap"),
                event(70, "Bahadur", "Trunk touch"),
                event(100, "Bahadur", "Walk away"),
                event(160, "Bahadur", "Walk away"),
                event(600, "Bahadur", "Leg held"),
            ]),
            "B2": observation("2023-01-01T10:00:00", [
                event(0, "Bahadur", "Sway"),
                event(30, "Bahadur", "Head bob"),
                event(60, "Bahadur", "Sway"),
                event(90, "Bahadur", "Head bob"),
                event(100, "Bahadur", "Ear flap"),
                event(200, "Bahadur", "Ear flap"),
            ]),
            "B3": observation("2023-01-10T14:00:00", [
                event(10, "Bahadur", "Ear flap"),
                event(20, "Bahadur", "Ear flap"),
                event(30, "Bahadur", "Ear flap"),
                event(500, "Bahadur", "Sway"),
            ]),
            "V1": observation("2023-01-01T14:00:00", [
                event(0, "Vijaya", "Sway"),
                event(5, "Vijaya", "Trunk touch"),
                event(120, "Vijaya", "Sway"),
            ]),
            "V2": observation("2023-01-05T10:00:00", [
                event(0, "Vijaya", "Walk away"),
                [1, "Vijaya"],
                event(1, "Vijaya", "Ear flap"),
                event(2, "Vijaya", "Dance"),
                event(10, "Vijaya", "Sway"),
                event(70, "Vijaya", "Sway"),
                event(300, "Vijaya", "Walk away"),
            ]),
        },
    }


@pytest.fixture
def project_file(tmp_path, project_dict):
    """Project written as a .boris file."""
    path = tmp_path / "elephants.boris"
    path.write_text(json.dumps(project_dict))
    return path


MILESTONES_CSV = (
    "Event,Subject,Date,Session\n"
    "New trainer,Bahadur ,2023-01-05,1\n"
    "Vet visit,Bahadur,2023-01-05,1\n"
    "Vet visit,Vijaya,2023-01-01,2\n"
    "Storm,Bahadur,2023-01-10,2\n"
    "Musth,Vijaya,2023-02-01,1\n"
)


@pytest.fixture
def milestones_file(tmp_path):
    """Milestones: 1 New trainer, 2 Vet visit, 3 Storm, 4 Musth (unmatched)."""
    path = tmp_path / "milestones.csv"
    path.write_text(MILESTONES_CSV)
    return path


@pytest.fixture
def project_data(project_file, milestones_file):
    """Fully loaded ProjectData."""
    from pakke.importers import read_boris_project
    return read_boris_project(project_file, milestones_file, workers=1)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the user's ~/.pakke/config.json and PAKKE_* variables out of tests."""
    import pakke.config
    monkeypatch.setattr(pakke.config, "_config_file", lambda: tmp_path / "home_config.json")
    for var in ("PAKKE_PROJECT_PATH", "PAKKE_MILESTONES_PATH", "PAKKE_OUTPUT_DIR"):
        monkeypatch.delenv(var, raising=False)
