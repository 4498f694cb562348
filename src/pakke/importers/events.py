"""
Event reconstruction - raw BORIS event tuples to behavioral intervals.

BORIS stores each observation's events as tuples of
[time, subject, behavior code, modifier, comment, ...]. A state behavior
is coded twice (start, then stop) with nothing marking which is which, so
intervals are recovered positionally:

    1. Every valid tuple becomes one raw event row
       (obs_id, behavior_id, time, type).
    2. Raw events are sorted by (obs_id, behavior_id, time).
    3. Point events become intervals with start = time and no stop.
    4. State events are paired per (obs_id, behavior_id): 1st, 3rd, 5th ...
       are starts, 2nd, 4th, 6th ... the matching stops. An odd count
       leaves the last start without a stop (recording ended mid-state).

Step 4 fans out over independent groups on a thread pool; results are
concatenated and re-sorted, so completion order never matters.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from pakke.config import POINT_EVENT, STATE_EVENT, DEFAULT_WORKERS
from .project import ProjectLoadError, RawObservation, parse_number

logger = logging.getLogger(__name__)

RAW_EVENT_COLUMNS = ["obs_id", "behavior_id", "time", "type"]
INTERVAL_COLUMNS = ["obs_id", "behavior_id", "start", "stop"]

# time, subject, code
MIN_EVENT_FIELDS = 3


@dataclass(frozen=True)
class RawEvent:
    obs_id: str
    behavior_id: int
    time: float
    type: str


@dataclass(frozen=True)
class BehaviorRef:
    id: int
    type: str


def build_behavior_lookup(behaviors_df: pd.DataFrame) -> Dict[str, BehaviorRef]:
    """Map behavior code to (id, type)."""
    return {
        row.code: BehaviorRef(id=int(row.id), type=row.type)
        for row in behaviors_df.itertuples(index=False)
    }


def parse_event(
    obs_id: str,
    event: Sequence,
    behavior_lookup: Mapping[str, BehaviorRef]
) -> Optional[RawEvent]:
    """
    Convert one raw event tuple to a RawEvent.

    Returns None (the event is skipped) when the tuple has fewer than three
    fields, its time is not a finite number, or its behavior code is not in
    the behavior table.
    """
    if not isinstance(event, (list, tuple)) or len(event) < MIN_EVENT_FIELDS:
        return None

    time = parse_number(event[0])
    if time is None:
        return None

    code = event[2]
    behavior = behavior_lookup.get(code) if isinstance(code, str) else None
    if behavior is None:
        return None

    return RawEvent(obs_id=obs_id, behavior_id=behavior.id, time=time, type=behavior.type)


def _empty_raw_events() -> pd.DataFrame:
    return pd.DataFrame({
        "obs_id": pd.Series(dtype=object),
        "behavior_id": pd.Series(dtype="int64"),
        "time": pd.Series(dtype="float64"),
        "type": pd.Series(dtype=object),
    })


def _empty_intervals() -> pd.DataFrame:
    return pd.DataFrame({
        "obs_id": pd.Series(dtype=object),
        "behavior_id": pd.Series(dtype="int64"),
        "start": pd.Series(dtype="float64"),
        "stop": pd.Series(dtype="float64"),
    })


def extract_events(
    observations: Optional[Mapping[str, RawObservation]],
    behaviors_df: pd.DataFrame
) -> pd.DataFrame:
    """
    Build the raw event table for every observation.

    Args:
        observations: obs_id -> RawObservation from the project file
        behaviors_df: Behavior table

    Returns:
        DataFrame[obs_id, behavior_id, time, type] sorted by
        (obs_id, behavior_id, time)

    Raises:
        ProjectLoadError: the observation collection is missing
    """
    if observations is None:
        raise ProjectLoadError("No observations found in project")

    behavior_lookup = build_behavior_lookup(behaviors_df)
    all_events: List[RawEvent] = []

    for obs_id, obs in observations.items():
        if not obs.events:
            continue

        parsed = [parse_event(obs_id, event, behavior_lookup) for event in obs.events]
        valid = [e for e in parsed if e is not None]

        for event, result in zip(obs.events, parsed):
            if result is None:
                logger.debug(f"{obs_id}: skipped event {event!r}")

        n_skipped = len(parsed) - len(valid)
        if n_skipped:
            logger.warning(f"{obs_id}: skipped {n_skipped} of {len(parsed)} events "
                           f"(malformed, bad time, or unknown behavior code)")
        all_events.extend(valid)

    if not all_events:
        return _empty_raw_events()

    events_df = pd.DataFrame(
        [(e.obs_id, e.behavior_id, e.time, e.type) for e in all_events],
        columns=RAW_EVENT_COLUMNS
    )
    return events_df.sort_values(
        ["obs_id", "behavior_id", "time"], kind="mergesort"
    ).reset_index(drop=True)


def pair_state_events(group: pd.DataFrame) -> pd.DataFrame:
    """
    Pair the state events of one (obs_id, behavior_id) group into intervals.

    Odd positions (1st, 3rd, ...) after sorting by time are starts, even
    positions the matching stops. A trailing unmatched start gets stop NaN.
    """
    times = np.sort(group["time"].to_numpy(dtype=float))
    starts = times[0::2]
    stops = np.full(len(starts), np.nan)
    paired_stops = times[1::2]
    stops[:len(paired_stops)] = paired_stops

    return pd.DataFrame({
        "obs_id": [group["obs_id"].iloc[0]] * len(starts),
        "behavior_id": np.full(len(starts), int(group["behavior_id"].iloc[0]), dtype="int64"),
        "start": starts,
        "stop": stops,
    }, columns=INTERVAL_COLUMNS)


def construct_events_table(events_df: pd.DataFrame, workers: int = DEFAULT_WORKERS) -> pd.DataFrame:
    """
    Turn raw events into the interval table.

    Args:
        events_df: Output of extract_events()
        workers: Threads used to pair state-event groups (1 = sequential)

    Returns:
        DataFrame[obs_id, behavior_id, start, stop] sorted by (obs_id, start);
        stop is NaN for point events and unterminated states
    """
    if events_df.empty:
        return _empty_intervals()

    point_events = events_df[events_df["type"] == POINT_EVENT]
    state_events = events_df[events_df["type"] == STATE_EVENT]

    points = pd.DataFrame({
        "obs_id": point_events["obs_id"].to_numpy(),
        "behavior_id": point_events["behavior_id"].to_numpy(dtype="int64"),
        "start": point_events["time"].to_numpy(dtype=float),
        "stop": np.nan,
    }, columns=INTERVAL_COLUMNS)

    pieces = [points]
    if not state_events.empty:
        groups = [group for _, group in state_events.groupby(["obs_id", "behavior_id"], sort=False)]
        if workers > 1 and len(groups) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                pieces.extend(pool.map(pair_state_events, groups))
        else:
            pieces.extend(pair_state_events(group) for group in groups)

    pieces = [p for p in pieces if not p.empty]
    if not pieces:
        return _empty_intervals()

    result = pd.concat(pieces, ignore_index=True)
    result["behavior_id"] = result["behavior_id"].astype("int64")
    result["start"] = result["start"].astype(float)
    result["stop"] = result["stop"].astype(float)

    return result.sort_values(
        ["obs_id", "start", "behavior_id"], kind="mergesort"
    ).reset_index(drop=True)


def extract_all_events(
    observations: Optional[Mapping[str, RawObservation]],
    behaviors_df: pd.DataFrame,
    workers: int = DEFAULT_WORKERS
) -> pd.DataFrame:
    """Raw events -> interval table in one call."""
    events_df = extract_events(observations, behaviors_df)
    logger.debug(f"Parsed {len(events_df)} raw events")
    return construct_events_table(events_df, workers=workers)
