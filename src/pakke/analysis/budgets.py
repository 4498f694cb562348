"""
Time budgets and point-behavior counts.

All functions take the clean entity tables (intervals, behaviors,
observations) and return one row per observation and behavior/category:

- Time budget: proportion of the observation spent in a state behavior
  (or, merged, in any state behavior of a category)
- Counts: number of point events, and frequency per minute
- Session means: the above averaged across subjects per session number
"""

from typing import Iterable, Optional

import pandas as pd

from pakke.config import POINT_EVENT, STATE_EVENT, DEFAULT_EXCLUDED_BEHAVIOR_CODES
from .intervals import MERGED_COLUMNS, close_open_intervals, merge_intervals_by_group


def _join_behaviors(events_df: pd.DataFrame, behaviors_df: pd.DataFrame) -> pd.DataFrame:
    behaviors = behaviors_df[["id", "code", "type", "category_id"]].rename(columns={"id": "behavior_id"})
    return events_df.merge(behaviors, on="behavior_id", how="inner")


def _join_durations(df: pd.DataFrame, observations_df: pd.DataFrame) -> pd.DataFrame:
    return df.merge(observations_df[["obs_id", "duration"]], on="obs_id", how="inner")


def state_intervals(
    events_df: pd.DataFrame,
    behaviors_df: pd.DataFrame,
    observations_df: pd.DataFrame
) -> pd.DataFrame:
    """State-behavior intervals clipped to the observation window, open stops closed at its end."""
    joined = _join_behaviors(events_df, behaviors_df)
    states = joined[joined["type"] == STATE_EVENT]
    states = close_open_intervals(states, observations_df)
    return _join_durations(states, observations_df)


def calc_time_budgets(
    events_df: pd.DataFrame,
    behaviors_df: pd.DataFrame,
    observations_df: pd.DataFrame
) -> pd.DataFrame:
    """
    Proportion of each observation spent in each state behavior.

    Returns:
        DataFrame[obs_id, behavior_id, prop_time_spent]
    """
    states = state_intervals(events_df, behaviors_df, observations_df)
    states = states.assign(time_spent=states["stop"] - states["start"])

    budgets = states.groupby(["obs_id", "behavior_id"], as_index=False).agg(
        time_spent=("time_spent", "sum"),
        duration=("duration", "first"),
    )
    budgets["prop_time_spent"] = budgets["time_spent"] / budgets["duration"]
    return budgets[["obs_id", "behavior_id", "prop_time_spent"]]


def calc_time_budgets_by_cat(
    events_df: pd.DataFrame,
    behaviors_df: pd.DataFrame,
    observations_df: pd.DataFrame,
    excluded_codes: Optional[Iterable[str]] = None
) -> pd.DataFrame:
    """
    Proportion of each observation spent in each behavior category.

    Overlapping intervals of different behaviors in one category are
    merged first, so simultaneous behaviors are not double counted.

    Args:
        excluded_codes: Behavior codes left out of the category totals

    Returns:
        DataFrame[obs_id, category_id, prop_time_spent]
    """
    if excluded_codes is None:
        excluded_codes = DEFAULT_EXCLUDED_BEHAVIOR_CODES

    states = state_intervals(events_df, behaviors_df, observations_df)
    states = states[~states["code"].isin(list(excluded_codes)) & states["category_id"].notna()]
    states = states.assign(category_id=states["category_id"].astype(int))

    merged = merge_intervals_by_group(states[MERGED_COLUMNS])
    merged = merged.assign(time_spent=merged["stop"] - merged["start"])

    budgets = _join_durations(
        merged.groupby(["obs_id", "category_id"], as_index=False)["time_spent"].sum(),
        observations_df,
    )
    budgets["prop_time_spent"] = budgets["time_spent"] / budgets["duration"]
    return budgets[["obs_id", "category_id", "prop_time_spent"]]


def _point_counts(
    events_df: pd.DataFrame,
    behaviors_df: pd.DataFrame,
    observations_df: pd.DataFrame,
    key: str
) -> pd.DataFrame:
    joined = _join_behaviors(events_df, behaviors_df)
    points = _join_durations(joined[joined["type"] == POINT_EVENT], observations_df)
    points = points[points[key].notna()]

    counts = points.groupby(["obs_id", key], as_index=False).agg(
        count=("start", "size"),
        duration=("duration", "first"),
    )
    counts[key] = counts[key].astype(int)
    counts["frequency"] = counts["count"] / (counts["duration"] / 60)
    return counts[["obs_id", key, "count", "frequency"]]


def calc_point_behavior_counts(
    events_df: pd.DataFrame,
    behaviors_df: pd.DataFrame,
    observations_df: pd.DataFrame
) -> pd.DataFrame:
    """
    Count and per-minute frequency of each point behavior per observation.

    Returns:
        DataFrame[obs_id, behavior_id, count, frequency]
    """
    return _point_counts(events_df, behaviors_df, observations_df, "behavior_id")


def calc_point_category_counts(
    events_df: pd.DataFrame,
    behaviors_df: pd.DataFrame,
    observations_df: pd.DataFrame
) -> pd.DataFrame:
    """
    Count and per-minute frequency of point behaviors per category.

    Returns:
        DataFrame[obs_id, category_id, count, frequency]
    """
    return _point_counts(events_df, behaviors_df, observations_df, "category_id")


def average_time_budgets(
    events_df: pd.DataFrame,
    behaviors_df: pd.DataFrame,
    observations_df: pd.DataFrame,
    categories: bool = False,
    excluded_codes: Optional[Iterable[str]] = None
) -> pd.DataFrame:
    """
    Mean time budget per session number across subjects.

    Returns:
        DataFrame[session, behavior_id | category_id, mean_time_spent, n_observations]
    """
    if categories:
        budgets = calc_time_budgets_by_cat(events_df, behaviors_df, observations_df, excluded_codes)
        key = "category_id"
    else:
        budgets = calc_time_budgets(events_df, behaviors_df, observations_df)
        key = "behavior_id"

    budgets = budgets.merge(observations_df[["obs_id", "session"]], on="obs_id", how="inner")
    return (
        budgets.groupby(["session", key], as_index=False)
        .agg(
            mean_time_spent=("prop_time_spent", "mean"),
            n_observations=("prop_time_spent", "size"),
        )
        .sort_values(["session", key])
        .reset_index(drop=True)
    )


def average_point_behavior_counts(
    events_df: pd.DataFrame,
    behaviors_df: pd.DataFrame,
    observations_df: pd.DataFrame,
    categories: bool = False
) -> pd.DataFrame:
    """
    Mean point-behavior count and frequency per session number.

    Returns:
        DataFrame[session, behavior_id | category_id, n_observations,
                  mean_count, mean_frequency], ordered by session
    """
    if categories:
        counts = calc_point_category_counts(events_df, behaviors_df, observations_df)
        key = "category_id"
    else:
        counts = calc_point_behavior_counts(events_df, behaviors_df, observations_df)
        key = "behavior_id"

    counts = counts.merge(observations_df[["obs_id", "session"]], on="obs_id", how="inner")
    return (
        counts.groupby(["session", key], as_index=False)
        .agg(
            n_observations=("count", "size"),
            mean_count=("count", "mean"),
            mean_frequency=("frequency", "mean"),
        )
        .sort_values(["session", key])
        .reset_index(drop=True)
    )
