"""
BORIS project file loading and entity extraction.

The project file is JSON with four required sections:

    subjects_conf          {"0": {"name": ..., "description": ...}, ...}
    behavioral_categories  ["Avoidance", "Displacement", ...]
    behaviors_conf         {"0": {"code": ..., "type": ..., "description": ...,
                                  "category": ...}, ...}
    observations           {obs_id: {"date": ..., "observation time interval": [a, b],
                                     "media_info": {"length": {file: seconds}},
                                     "events": [[time, subject, code, ...], ...]}}

parse_project() validates that structure and converts it to typed records,
so nothing downstream touches the raw JSON. The extract_* functions turn
those records into the Subject, Category, Behavior and Observation tables.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from pakke.config import BEHAVIOR_TYPES

logger = logging.getLogger(__name__)

REQUIRED_SECTIONS = ("subjects_conf", "behavioral_categories", "behaviors_conf", "observations")

SUBJECT_COLUMNS = ["id", "name", "description"]
CATEGORY_COLUMNS = ["id", "category"]
BEHAVIOR_COLUMNS = ["id", "code", "type", "description", "category_id"]
OBSERVATION_COLUMNS = ["obs_id", "date", "subject_id", "obs_start", "obs_end", "duration", "session"]


class ProjectLoadError(Exception):
    """Raised when the project cannot be turned into a complete table set."""
    pass


# =============================================================================
# TYPED RECORDS
# =============================================================================

@dataclass(frozen=True)
class SubjectConfig:
    name: str
    description: str = ""


@dataclass(frozen=True)
class BehaviorConfig:
    code: str
    type: str
    description: str = ""
    category: Optional[str] = None


@dataclass
class RawObservation:
    """One observation as recorded in the project file."""

    obs_id: str
    date: Optional[str]
    time_interval: Tuple[float, float]
    media_lengths: List[float] = field(default_factory=list)
    events: List[Sequence] = field(default_factory=list)

    @property
    def start(self) -> float:
        """Observation start in event (media) time."""
        start, end = self.time_interval
        return float(start) if end != 0 else 0.0

    @property
    def end(self) -> float:
        """Observation end in event (media) time.

        Uses the observation time interval; when its end is 0 (BORIS writes
        that for "whole media") falls back to the summed media lengths.
        """
        end = self.time_interval[1]
        if end != 0:
            return float(end)
        return float(sum(self.media_lengths))

    @property
    def duration(self) -> float:
        """Observed span in seconds."""
        return self.end - self.start


@dataclass
class ProjectFile:
    subjects: List[SubjectConfig]
    categories: List[str]
    behaviors: List[BehaviorConfig]
    observations: Dict[str, RawObservation]


# =============================================================================
# PARSING / VALIDATION
# =============================================================================

def _ordered_rows(section: dict) -> List[dict]:
    """Rows of a BORIS config mapping in key order ("0", "1", ..., "10")."""
    keys = list(section.keys())
    if all(str(k).isdigit() for k in keys):
        keys = sorted(keys, key=lambda k: int(k))
    return [section[k] for k in keys]


def _require_mapping(value, what: str) -> dict:
    if not isinstance(value, dict):
        raise ProjectLoadError(f"{what} must be a mapping, got {type(value).__name__}")
    return value


def parse_number(value) -> Optional[float]:
    """Finite float from a JSON number or numeric string, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return result if math.isfinite(result) else None


def _parse_subjects(section) -> List[SubjectConfig]:
    subjects = []
    for row in _ordered_rows(_require_mapping(section, "subjects_conf")):
        if not isinstance(row, dict) or not row.get("name"):
            raise ProjectLoadError(f"Subject entry without a name in subjects_conf: {row!r}")
        subjects.append(SubjectConfig(
            name=str(row["name"]),
            description=str(row.get("description") or ""),
        ))
    return subjects


def _parse_categories(section) -> List[str]:
    if not isinstance(section, list):
        raise ProjectLoadError("behavioral_categories must be a list of category names")
    return [str(c) for c in section]


def _parse_behaviors(section) -> List[BehaviorConfig]:
    behaviors = []
    for row in _ordered_rows(_require_mapping(section, "behaviors_conf")):
        if not isinstance(row, dict) or not row.get("code"):
            raise ProjectLoadError(f"Behavior entry without a code in behaviors_conf: {row!r}")
        behavior_type = row.get("type")
        if behavior_type not in BEHAVIOR_TYPES:
            raise ProjectLoadError(
                f"Behavior '{row['code']}' has unsupported type {behavior_type!r} "
                f"(expected one of {', '.join(BEHAVIOR_TYPES)})"
            )
        behaviors.append(BehaviorConfig(
            code=str(row["code"]),
            type=behavior_type,
            description=str(row.get("description") or ""),
            category=row.get("category") or None,
        ))
    return behaviors


def _parse_observation(obs_id: str, obs) -> RawObservation:
    obs = _require_mapping(obs, f"Observation {obs_id}")

    interval = obs.get("observation time interval") or [0, 0]
    if not isinstance(interval, (list, tuple)) or len(interval) != 2:
        raise ProjectLoadError(f"Invalid 'observation time interval' in {obs_id}: {interval!r}")
    bounds = tuple(parse_number(v) for v in interval)
    if None in bounds:
        raise ProjectLoadError(f"Invalid 'observation time interval' in {obs_id}: {interval!r}")

    media_lengths = []
    lengths = (obs.get("media_info") or {}).get("length") or {}
    if isinstance(lengths, dict):
        media_lengths = [v for v in (parse_number(x) for x in lengths.values()) if v is not None]

    events = obs.get("events") or []
    if not isinstance(events, list):
        raise ProjectLoadError(f"Events of {obs_id} must be a list")

    date = obs.get("date")
    return RawObservation(
        obs_id=str(obs_id),
        date=str(date) if date else None,
        time_interval=bounds,
        media_lengths=media_lengths,
        events=events,
    )


def parse_project(prj_dict: dict) -> ProjectFile:
    """Validate a decoded project file and convert it to typed records.

    Raises:
        ProjectLoadError: a required section is missing or malformed
    """
    if not isinstance(prj_dict, dict):
        raise ProjectLoadError("Project file does not contain a JSON object")

    missing = [s for s in REQUIRED_SECTIONS if s not in prj_dict]
    if "observations" in missing:
        raise ProjectLoadError("No observations found in project")
    if missing:
        raise ProjectLoadError(f"Project file is missing required section(s): {', '.join(missing)}")

    observations = {
        str(obs_id): _parse_observation(str(obs_id), obs)
        for obs_id, obs in _require_mapping(prj_dict["observations"], "observations").items()
    }

    return ProjectFile(
        subjects=_parse_subjects(prj_dict["subjects_conf"]),
        categories=_parse_categories(prj_dict["behavioral_categories"]),
        behaviors=_parse_behaviors(prj_dict["behaviors_conf"]),
        observations=observations,
    )


def read_project_file(path: Path) -> ProjectFile:
    """Read and validate a BORIS project (.boris) file."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            prj_dict = json.load(f)
    except OSError as e:
        raise ProjectLoadError(f"Cannot read project file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ProjectLoadError(f"Project file {path} is not valid JSON: {e}") from e

    return parse_project(prj_dict)


# =============================================================================
# ENTITY TABLES
# =============================================================================

def extract_subjects(project: ProjectFile) -> pd.DataFrame:
    """Subject table, ids assigned by row order in subjects_conf."""
    return pd.DataFrame({
        "id": range(1, len(project.subjects) + 1),
        "name": [s.name for s in project.subjects],
        "description": [s.description for s in project.subjects],
    }, columns=SUBJECT_COLUMNS)


def extract_categories(project: ProjectFile) -> pd.DataFrame:
    return pd.DataFrame({
        "id": range(1, len(project.categories) + 1),
        "category": project.categories,
    }, columns=CATEGORY_COLUMNS)


def extract_behaviors(project: ProjectFile, categories_df: pd.DataFrame) -> pd.DataFrame:
    """Behavior table; category names are resolved to category ids (None if unknown)."""
    category_map = dict(zip(categories_df["category"], categories_df["id"]))

    behaviors_df = pd.DataFrame({
        "id": range(1, len(project.behaviors) + 1),
        "code": [b.code for b in project.behaviors],
        "type": [b.type for b in project.behaviors],
        "description": [b.description for b in project.behaviors],
        "category_id": pd.array(
            [category_map.get(b.category) for b in project.behaviors], dtype="Int64"
        ),
    }, columns=BEHAVIOR_COLUMNS)

    unknown = [b.code for b in project.behaviors if b.category and b.category not in category_map]
    if unknown:
        logger.warning(f"Behaviors with unknown category (left uncategorised): {', '.join(unknown)}")

    return behaviors_df


def find_subject_marker(event: Sequence, subject_names: set) -> Optional[str]:
    """Return the first element of an event that names a known subject."""
    if not isinstance(event, (list, tuple)):
        return None
    for item in event:
        if isinstance(item, str) and item in subject_names:
            return item
    return None


def parse_observation_date(date_str: Optional[str]) -> Optional[pd.Timestamp]:
    """ISO-8601 date string to a naive Timestamp, or None if absent/unparseable."""
    if not date_str:
        return None
    ts = pd.to_datetime(date_str, errors="coerce")
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_localize(None)
    return ts


def assign_sessions(observations_df: pd.DataFrame) -> pd.DataFrame:
    """Number each subject's observations 1..N in ascending date order.

    Observations without a date sort last; ties are broken by obs_id so the
    numbering is deterministic. Must be re-run whenever the set of
    observations for a subject changes.
    """
    df = observations_df.sort_values(
        ["date", "obs_id"], na_position="last", kind="mergesort"
    ).reset_index(drop=True)
    df["session"] = df.groupby("subject_id").cumcount() + 1
    return df


def extract_observations(project: ProjectFile, subjects_df: pd.DataFrame) -> pd.DataFrame:
    """Observation table with derived duration and per-subject session number.

    Raises:
        ProjectLoadError: empty subject table, an observation whose first
            event names no subject, or an observation without a positive
            duration
    """
    if subjects_df.empty:
        raise ProjectLoadError("Subjects incorrectly specified: subject table is empty")

    subject_map = dict(zip(subjects_df["name"], subjects_df["id"]))
    subject_names = set(subject_map)

    rows = []
    for obs_id, obs in project.observations.items():
        first_event = obs.events[0] if obs.events else None
        subject_name = find_subject_marker(first_event, subject_names)
        if subject_name is None:
            raise ProjectLoadError(f"Not all events have subjects in {obs_id}")

        duration = obs.duration
        if not duration > 0:
            raise ProjectLoadError(
                f"Observation {obs_id} has no positive duration "
                f"(interval {obs.time_interval}, media lengths {obs.media_lengths})"
            )

        date = parse_observation_date(obs.date)
        if obs.date and date is None:
            logger.debug(f"Unparseable date {obs.date!r} in {obs_id}, left empty")

        rows.append({
            "obs_id": obs_id,
            "date": date,
            "subject_id": subject_map[subject_name],
            "obs_start": obs.start,
            "obs_end": obs.end,
            "duration": float(duration),
        })

    interim_df = pd.DataFrame(rows, columns=["obs_id", "date", "subject_id", "obs_start", "obs_end", "duration"])
    interim_df["date"] = pd.to_datetime(interim_df["date"])
    interim_df["subject_id"] = interim_df["subject_id"].astype(int)

    return assign_sessions(interim_df)[OBSERVATION_COLUMNS]
