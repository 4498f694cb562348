"""
Milestone import and alignment to observation sessions.

The milestone file is kept outside BORIS, one row per calendar event:

    Event,Subject,Date,Session
    New trainer,Bahadur ,2023-01-05,1

Rows are keyed by calendar date, subject name and intra-day slot
("Session" 1 or 2), while observations are numbered by sequential
per-subject session. Alignment derives each observation's slot from the
hour of its timestamp (10h -> slot 1, any other hour -> slot 2) and joins
on (date, subject_id, slot). That hour rule is a fixed part of the
matching key, not a general time-of-day classifier.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pandas as pd

from pakke.config import SLOT_ONE_HOUR
from .project import ProjectLoadError

logger = logging.getLogger(__name__)

MILESTONE_FILE_COLUMNS = ["Event", "Subject", "Date", "Session"]
MILESTONE_COLUMNS = ["id", "milestone"]
VALID_SLOTS = (1, 2)


class MilestoneLoadError(ProjectLoadError):
    """Raised when the milestone file cannot be read or resolved."""
    pass


@dataclass
class MilestoneAlignment:
    """Result of aligning milestone rows to observations."""

    observations: pd.DataFrame  # observation table + milestone_ids column
    unmatched: pd.DataFrame     # milestone rows no observation matched

    @property
    def n_matched_observations(self) -> int:
        return int(self.observations["milestone_ids"].notna().sum())


def read_milestones_file(path: Path, date_format: Optional[str] = None) -> pd.DataFrame:
    """
    Read and validate the milestone CSV.

    Args:
        path: CSV with columns Event, Subject, Date, Session
        date_format: strptime format for the Date column (default: inferred)

    Returns:
        DataFrame[Event, Subject, Date, Session] with Date as datetime.date
        and Session as int, in file order

    Raises:
        MilestoneLoadError: file unreadable, columns missing, or a row
            cannot be parsed
    """
    path = Path(path)
    try:
        raw = pd.read_csv(path)
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise MilestoneLoadError(f"Cannot parse milestone file {path}: {e}") from e

    raw.columns = raw.columns.str.strip()
    missing = [c for c in MILESTONE_FILE_COLUMNS if c not in raw.columns]
    if missing:
        raise MilestoneLoadError(
            f"Milestone file {path} is missing column(s): {', '.join(missing)}"
        )

    raw = raw[MILESTONE_FILE_COLUMNS].copy()

    blank = raw["Event"].isna() | raw["Subject"].isna()
    if blank.any():
        rows = ", ".join(str(i + 2) for i in raw.index[blank])  # header is line 1
        raise MilestoneLoadError(f"Milestone file {path} has rows without Event/Subject (lines {rows})")

    try:
        dates = pd.to_datetime(raw["Date"], format=date_format)
    except (ValueError, TypeError) as e:
        raise MilestoneLoadError(f"Unparseable Date in milestone file {path}: {e}") from e
    if dates.isna().any():
        raise MilestoneLoadError(f"Milestone file {path} has rows without a Date")
    raw["Date"] = dates.dt.date

    slots = pd.to_numeric(raw["Session"], errors="coerce")
    bad_slots = ~slots.isin(VALID_SLOTS)
    if bad_slots.any():
        bad = raw.loc[bad_slots, "Session"].tolist()
        raise MilestoneLoadError(
            f"Session must be 1 or 2 in milestone file {path}, got {bad}"
        )
    raw["Session"] = slots.astype(int)
    raw["Event"] = raw["Event"].astype(str)
    raw["Subject"] = raw["Subject"].astype(str)

    return raw.reset_index(drop=True)


def build_milestones_table(raw_milestones: pd.DataFrame) -> pd.DataFrame:
    """Deduplicate event labels (first appearance order) into id/milestone."""
    unique_milestones = pd.unique(raw_milestones["Event"])
    return pd.DataFrame({
        "id": range(1, len(unique_milestones) + 1),
        "milestone": unique_milestones,
    }, columns=MILESTONE_COLUMNS)


def resolve_subject_ids(raw_milestones: pd.DataFrame, subjects_df: pd.DataFrame) -> List[int]:
    """
    Subject name -> subject id for every milestone row.

    Names are matched exactly after trimming surrounding whitespace.

    Raises:
        MilestoneLoadError: a name has no subject
    """
    subjects_map = dict(zip(subjects_df["name"], subjects_df["id"]))
    subject_ids = []
    for name in raw_milestones["Subject"]:
        subject_id = subjects_map.get(name.strip())
        if subject_id is None:
            raise MilestoneLoadError(f"Milestone subject '{name.strip()}' is not a project subject")
        subject_ids.append(int(subject_id))
    return subject_ids


def session_slot(timestamp) -> Optional[int]:
    """Intra-day slot of an observation timestamp (None when undated)."""
    if timestamp is None or pd.isna(timestamp):
        return None
    return 1 if timestamp.hour == SLOT_ONE_HOUR else 2


def map_milestones_to_sessions(
    milestone_rows: pd.DataFrame,
    observations_df: pd.DataFrame
) -> MilestoneAlignment:
    """
    Attach milestone ids to the observations they happened in.

    Args:
        milestone_rows: DataFrame[milestone_id, subject_id, date, slot] in
            milestone-file order
        observations_df: Observation table

    Returns:
        MilestoneAlignment; observations gain a 'milestone_ids' column
        holding a list of ids in file order, or None when nothing matched
    """
    rows = milestone_rows.reset_index(drop=True).copy()
    rows["row_order"] = range(len(rows))

    dated = observations_df[observations_df["date"].notna()]
    obs_keys = pd.DataFrame({
        "obs_id": dated["obs_id"].to_numpy(),
        "date": dated["date"].dt.date.to_numpy(),
        "subject_id": dated["subject_id"].to_numpy(dtype="int64"),
        "slot": [session_slot(ts) for ts in dated["date"]],
    })
    obs_keys["slot"] = obs_keys["slot"].astype("int64")
    rows["subject_id"] = rows["subject_id"].astype("int64")
    rows["slot"] = rows["slot"].astype("int64")

    matched = rows.merge(obs_keys, on=["date", "subject_id", "slot"], how="inner")
    matched = matched.sort_values("row_order", kind="mergesort")

    milestone_ids: Dict[str, List[int]] = {}
    for obs_id, milestone_id in zip(matched["obs_id"], matched["milestone_id"]):
        milestone_ids.setdefault(obs_id, []).append(int(milestone_id))

    observations = observations_df.copy()
    observations["milestone_ids"] = pd.Series(
        [milestone_ids.get(obs_id) for obs_id in observations["obs_id"]],
        index=observations.index,
        dtype=object,
    )
    observations = observations.sort_values(
        ["date", "obs_id"], na_position="last", kind="mergesort"
    ).reset_index(drop=True)

    unmatched = rows[~rows["row_order"].isin(matched["row_order"])].drop(columns="row_order")
    if not unmatched.empty:
        logger.warning(
            f"{len(unmatched)} milestone row(s) matched no observation and were dropped: "
            + "; ".join(
                f"milestone {r.milestone_id} subject {r.subject_id} {r.date} slot {r.slot}"
                for r in unmatched.itertuples(index=False)
            )
        )

    return MilestoneAlignment(observations=observations, unmatched=unmatched.reset_index(drop=True))


def import_milestones(
    filepath: Path,
    subjects_df: pd.DataFrame,
    observations_df: pd.DataFrame
) -> Tuple[pd.DataFrame, MilestoneAlignment]:
    """
    Read the milestone file and align it to the observations.

    Returns:
        (milestones table, MilestoneAlignment)

    Raises:
        MilestoneLoadError: unparseable file or unknown subject name
    """
    raw_milestones = read_milestones_file(filepath)
    milestones_df = build_milestones_table(raw_milestones)
    milestones_map = dict(zip(milestones_df["milestone"], milestones_df["id"]))

    milestone_rows = pd.DataFrame({
        "milestone_id": [milestones_map[event] for event in raw_milestones["Event"]],
        "subject_id": resolve_subject_ids(raw_milestones, subjects_df),
        "date": raw_milestones["Date"].to_numpy(),
        "slot": raw_milestones["Session"].to_numpy(),
    })

    return milestones_df, map_milestones_to_sessions(milestone_rows, observations_df)
