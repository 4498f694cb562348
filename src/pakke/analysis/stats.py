"""
Trend statistics for time budgets and point-behavior frequencies.

Includes:
- Spearman rank correlation against session number, with the t statistic
  and two-sided p-value from Student's t (n - 2 df)
- Per-subject and across-subject correlation tables
"""

import numpy as np
import pandas as pd
from dataclasses import dataclass, asdict
from typing import List, Union
from scipy import stats


@dataclass
class SpearmanResult:
    """Spearman trend test of a metric against session number."""

    correlation: float
    p_value: float
    t_stat: float
    n: int

    def __repr__(self):
        sig = "***" if self.p_value < 0.001 else "**" if self.p_value < 0.01 else "*" if self.p_value < 0.05 else ""
        return f"rho={self.correlation:.3f} t={self.t_stat:.2f} p={self.p_value:.4f}{sig} (n={self.n})"

    def to_dict(self) -> dict:
        return asdict(self)


def spearman_test(
    v1: Union[np.ndarray, pd.Series, List[float]],
    v2: Union[np.ndarray, pd.Series, List[float]]
) -> SpearmanResult:
    """
    Spearman correlation with a t-approximation significance test.

    t = rho * sqrt((n - 2) / (1 - rho^2)), p = 2 * (1 - T_{n-2}(|t|)).
    Fewer than three pairs, or a constant input, give NaN results.
    """
    x = np.asarray(v1, dtype=float)
    y = np.asarray(v2, dtype=float)
    n = len(x)

    if n < 3 or np.all(x == x[0]) or np.all(y == y[0]):
        return SpearmanResult(correlation=np.nan, p_value=np.nan, t_stat=np.nan, n=n)

    rho = float(stats.spearmanr(x, y)[0])

    if np.isclose(abs(rho), 1.0):
        t_stat = np.copysign(np.inf, rho)
        p_value = 0.0
    else:
        t_stat = rho * np.sqrt((n - 2) / (1 - rho ** 2))
        p_value = float(2 * (1 - stats.t.cdf(abs(t_stat), n - 2)))

    return SpearmanResult(correlation=rho, p_value=p_value, t_stat=float(t_stat), n=n)


def correlate_with_session(
    df: pd.DataFrame,
    value_col: str,
    group_cols: List[str],
    session_col: str = 'session'
) -> pd.DataFrame:
    """
    Spearman trend test of value_col against session for every group.

    Args:
        df: Long table with group columns, value column and session column
        value_col: Metric to test (e.g. 'prop_time_spent', 'frequency')
        group_cols: Columns identifying a group (e.g. ['name', 'category'])

    Returns:
        DataFrame[*group_cols, correlation, p_value, t_stat]
    """
    results = []
    for key, group in df.groupby(group_cols, sort=True):
        key = key if isinstance(key, tuple) else (key,)
        test = spearman_test(group[value_col], group[session_col])
        row = dict(zip(group_cols, key))
        row.update({
            'correlation': test.correlation,
            'p_value': test.p_value,
            't_stat': test.t_stat,
        })
        results.append(row)

    return pd.DataFrame(results, columns=group_cols + ['correlation', 'p_value', 't_stat'])


def subject_category_correlations(
    per_observation: pd.DataFrame,
    value_col: str,
    observations_df: pd.DataFrame,
    subjects_df: pd.DataFrame,
    categories_df: pd.DataFrame
) -> pd.DataFrame:
    """
    Trend test per (subject name, category) of a per-observation category metric.

    Args:
        per_observation: DataFrame[obs_id, category_id, value_col]
    """
    joined = (
        per_observation
        .merge(observations_df[['obs_id', 'subject_id', 'session']], on='obs_id')
        .merge(subjects_df[['id', 'name']].rename(columns={'id': 'subject_id'}), on='subject_id')
        .merge(categories_df.rename(columns={'id': 'category_id'}), on='category_id')
    )
    return correlate_with_session(joined, value_col, ['name', 'category'])


def category_mean_correlations(
    session_means: pd.DataFrame,
    value_col: str,
    categories_df: pd.DataFrame
) -> pd.DataFrame:
    """
    Trend test per category of a session-mean metric.

    Args:
        session_means: DataFrame[session, category_id, value_col]
    """
    joined = session_means.merge(categories_df.rename(columns={'id': 'category_id'}), on='category_id')
    return correlate_with_session(joined, value_col, ['category'])
