"""
Interval merging - covered time with overlaps counted once.

Behaviors in the same category can overlap (an animal can sway and
head-bob at once), so a category's time budget is the length of the
union of its intervals, not the sum of their lengths.

Intervals must have a concrete stop before they get here. Unterminated
state intervals are closed at the observation end by close_open_intervals();
point events carry no duration and never take part in a merge.
"""

from typing import List, Tuple

import numpy as np
import pandas as pd

MERGED_COLUMNS = ["obs_id", "category_id", "start", "stop"]


def merge_intervals(df: pd.DataFrame) -> pd.DataFrame:
    """
    Merge overlapping or touching intervals.

    Args:
        df: DataFrame with 'start' and 'stop' columns (one grouping key)

    Returns:
        DataFrame[start, stop] of disjoint intervals in ascending order

    Raises:
        ValueError: an interval has no stop
    """
    if df.empty:
        return pd.DataFrame({"start": pd.Series(dtype=float), "stop": pd.Series(dtype=float)})

    if df["stop"].isna().any():
        raise ValueError(
            "Interval without stop reached merge_intervals; "
            "close open intervals before merging"
        )

    sorted_df = df.sort_values(["start", "stop"], kind="mergesort")
    starts = sorted_df["start"].to_numpy(dtype=float)
    stops = sorted_df["stop"].to_numpy(dtype=float)

    merged: List[Tuple[float, float]] = []
    current_start, current_stop = starts[0], stops[0]

    for start, stop in zip(starts[1:], stops[1:]):
        if start <= current_stop:
            current_stop = max(current_stop, stop)
        else:
            merged.append((current_start, current_stop))
            current_start, current_stop = start, stop

    merged.append((current_start, current_stop))
    return pd.DataFrame(merged, columns=["start", "stop"])


def total_merged_time(df: pd.DataFrame) -> float:
    """Wall-clock time covered by a group of intervals (0 for none)."""
    merged = merge_intervals(df)
    return float((merged["stop"] - merged["start"]).sum())


def close_open_intervals(intervals: pd.DataFrame, observations_df: pd.DataFrame) -> pd.DataFrame:
    """
    Clip intervals to their observation window, closing unterminated ones.

    Event times are media times, so the window is [obs_start, obs_end] of
    the observation, not [0, duration]. A state still running when
    recording ended is counted up to obs_end; every interval is clipped to
    the window and intervals lying entirely outside it are dropped, so
    start <= stop holds for every returned row.

    Args:
        intervals: DataFrame with obs_id, start, stop (stop may be NaN)
        observations_df: Observation table (obs_id, obs_start, obs_end)

    Returns:
        Copy of the intervals inside their window, with concrete stops
    """
    windows = observations_df.set_index("obs_id")
    obs_start = intervals["obs_id"].map(windows["obs_start"])
    obs_end = intervals["obs_id"].map(windows["obs_end"])

    closed = intervals.copy()
    closed["start"] = np.fmax(closed["start"], obs_start)
    closed["stop"] = np.fmin(closed["stop"].fillna(obs_end), obs_end)
    return closed[closed["stop"] >= closed["start"]]


def merge_intervals_by_group(
    intervals: pd.DataFrame,
    keys: List[str] = None
) -> pd.DataFrame:
    """
    Merge intervals independently per group (default: obs_id x category_id).

    Returns:
        DataFrame[*keys, start, stop] of merged intervals
    """
    keys = list(keys or MERGED_COLUMNS[:2])
    pieces = []
    for key_values, group in intervals.groupby(keys, sort=True):
        merged = merge_intervals(group)
        for position, (col, value) in enumerate(zip(keys, key_values)):
            merged.insert(position, col, value)
        pieces.append(merged)

    if not pieces:
        return pd.DataFrame(columns=keys + ["start", "stop"])
    return pd.concat(pieces, ignore_index=True)
