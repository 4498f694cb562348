"""
Publication-ready plotting functions for Pakke analysis.

All plots use matplotlib (with seaborn for palettes and heatmaps) and
return Figures. Per-subject and per-observation collections are returned
as dicts of zero-argument callables so figures are only built when the
exporter writes them.
"""

import math
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from pakke.config import DEFAULT_FOCUS_CATEGORIES, POINT_EVENT

# Publication-ready style settings
PUBLICATION_STYLE = {
    'font.family': 'sans-serif',
    'font.sans-serif': ['Arial', 'DejaVu Sans'],
    'font.size': 10,
    'axes.titlesize': 11,
    'axes.labelsize': 10,
    'xtick.labelsize': 9,
    'ytick.labelsize': 9,
    'legend.fontsize': 9,
    'figure.dpi': 100,
    'savefig.dpi': 300,
    'axes.linewidth': 1,
    'axes.spines.top': False,
    'axes.spines.right': False,
}

COLOR_STATE = '#2ca02c'
COLOR_POINT = '#1f77b4'
COLOR_MILESTONE = '#d62728'

PALETTE_SERIES = sns.color_palette('tab10', 10)

LazyFigure = Callable[[], plt.Figure]


def apply_publication_style():
    """Apply publication-ready matplotlib style."""
    plt.rcParams.update(PUBLICATION_STYLE)


def _new_axes(ax: Optional[plt.Axes], figsize: Tuple[float, float]):
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure
    return fig, ax


def _milestone_sessions(df: pd.DataFrame) -> List[int]:
    with_milestones = df[df['milestone_ids'].notna()]
    return sorted(with_milestones['session'].unique().tolist())


def _facet_grid(n_panels: int, max_cols: int = 3):
    ncols = max(1, min(max_cols, n_panels))
    nrows = max(1, math.ceil(n_panels / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(4 * ncols, 3 * nrows), squeeze=False)
    flat_axes = [ax for row in axes for ax in row]
    for ax in flat_axes[n_panels:]:
        ax.set_visible(False)
    return fig, flat_axes


# =============================================================================
# EVENT TIMELINES
# =============================================================================

def plot_events(
    events_df: pd.DataFrame,
    behaviors_df: pd.DataFrame,
    obs_id: Optional[str] = None,
    obs_end: Optional[float] = None,
    figsize: Tuple[float, float] = (8, 4),
    ax: Optional[plt.Axes] = None
) -> plt.Figure:
    """
    Timeline of one observation's events.

    State intervals are drawn as horizontal bars and point events as
    markers, one row per behavior. A state without a stop runs to the
    observation end (or to the last event time when the end is unknown).

    Args:
        events_df: Interval rows of a single observation
        behaviors_df: Behavior table (id, code, type)
        obs_id: Title label (default: taken from events_df)
        obs_end: Observation end in event time

    Returns:
        matplotlib Figure
    """
    apply_publication_style()
    fig, ax = _new_axes(ax, figsize)

    if obs_id is None and not events_df.empty:
        obs_id = events_df['obs_id'].iloc[0]

    ax.set_xlabel('Time (s)')
    ax.set_ylabel('Behavior')

    if events_df.empty:
        ax.set_title(f'No events found for observation {obs_id}')
        return fig

    ax.set_title(f'Event Timeline for Observation {obs_id}')

    behaviors = behaviors_df.set_index('id')
    behavior_ids = sorted(events_df['behavior_id'].unique())
    behavior_y = {behavior_id: i for i, behavior_id in enumerate(behavior_ids, start=1)}

    if obs_end is None:
        obs_end = float(np.nanmax(events_df[['start', 'stop']].to_numpy(dtype=float)))

    for row in events_df.itertuples(index=False):
        y = behavior_y[row.behavior_id]
        if behaviors.at[row.behavior_id, 'type'] == POINT_EVENT:
            ax.scatter([row.start], [y], s=36, color=COLOR_POINT, marker='o', zorder=3)
        else:
            stop = obs_end if pd.isna(row.stop) else row.stop
            ax.hlines(y, row.start, stop, linewidth=6, color=COLOR_STATE)

    ax.set_yticks(list(behavior_y.values()))
    ax.set_yticklabels([behaviors.at[b, 'code'] for b in behavior_ids])
    ax.set_ylim(0.5, len(behavior_ids) + 0.5)

    return fig


def plot_events_all_sessions(
    events_df: pd.DataFrame,
    observations_df: pd.DataFrame,
    subjects_df: pd.DataFrame,
    behaviors_df: pd.DataFrame
) -> Dict[str, Dict[str, LazyFigure]]:
    """
    Event timelines for every observation with events.

    Returns:
        {date 'YYYY-MM-DD': {'<subject name><session>': lazy figure}}
    """
    joined = (
        events_df
        .merge(observations_df[['obs_id', 'date', 'subject_id', 'session', 'obs_end']], on='obs_id')
        .merge(subjects_df[['id', 'name']].rename(columns={'id': 'subject_id'}), on='subject_id')
    )

    timelines: Dict[str, Dict[str, LazyFigure]] = {}
    for obs_id, group in joined.groupby('obs_id', sort=True):
        first = group.iloc[0]
        date_string = pd.Timestamp(first['date']).strftime('%Y-%m-%d') if pd.notna(first['date']) else 'undated'
        sub_session = f"{first['name']}{first['session']}"
        timelines.setdefault(date_string, {})[sub_session] = partial(
            plot_events,
            group[events_df.columns],
            behaviors_df,
            obs_id=obs_id,
            obs_end=float(first['obs_end']),
        )

    return timelines


# =============================================================================
# PER-SUBJECT SERIES
# =============================================================================

def create_stat_matrix(df: pd.DataFrame, column: str, row_col: Optional[str] = None) -> pd.DataFrame:
    """
    Pivot a per-session table into a (behavior or category) x session matrix.

    Rows keep first-appearance order, sessions are ascending, and cells
    without an observation are 0.
    """
    if row_col is None:
        row_col = 'code' if 'code' in df.columns else 'category'

    rows = pd.unique(df[row_col])
    sessions = sorted(df['session'].unique())
    matrix = df.pivot_table(index=row_col, columns='session', values=column, aggfunc='first')
    return matrix.reindex(index=rows, columns=sessions).fillna(0.0)


def add_milestone_markers(ax: plt.Axes, subject_df: pd.DataFrame):
    """Dotted vertical line at every session with a milestone."""
    for session in _milestone_sessions(subject_df):
        ax.axvline(session, linestyle=':', linewidth=2, color=COLOR_MILESTONE, alpha=0.8)


def add_milestone_markers_heatmap(ax: plt.Axes, subject_df: pd.DataFrame, matrix: pd.DataFrame):
    """Diamonds above and below each heatmap column with a milestone."""
    session_index = {session: i for i, session in enumerate(matrix.columns)}
    n_rows = len(matrix.index)
    for session in _milestone_sessions(subject_df):
        x = session_index[session] + 0.5
        ax.scatter([x, x], [0, n_rows], marker='D', s=40, color=COLOR_MILESTONE, clip_on=False, zorder=3)


def plot_for_subject(
    df: pd.DataFrame,
    subject: str,
    group_col: str,
    column: str,
    create_heatmap: bool,
    axes_labels: Tuple[str, str],
    figsize: Tuple[float, float] = (8, 4),
    ax: Optional[plt.Axes] = None
) -> plt.Figure:
    """
    Plot one subject's metric across sessions.

    Args:
        df: Joined table with name, session, group_col, column, milestone_ids
        group_col: 'code' (behaviors) or 'category'
        create_heatmap: Heatmap of group x session instead of line series
        axes_labels: (y label, x label)

    Returns:
        matplotlib Figure
    """
    apply_publication_style()
    fig, ax = _new_axes(ax, figsize)
    subject_df = df[df['name'] == subject]

    if create_heatmap:
        matrix = create_stat_matrix(subject_df, column, group_col)
        sns.heatmap(matrix, ax=ax, cmap='viridis', cbar_kws={'label': column})
        ax.set_title(f'{column} for {subject}')
        add_milestone_markers_heatmap(ax, subject_df, matrix)
    else:
        groups = sorted(subject_df[group_col].unique())
        for i, group in enumerate(groups):
            color = PALETTE_SERIES[i % len(PALETTE_SERIES)]
            series = subject_df[subject_df[group_col] == group].sort_values('session')
            ax.plot(series['session'], series[column], color=color, linewidth=2.5, label=group)
            ax.axhline(
                series[column].mean(), linestyle=':', linewidth=2,
                color=color, alpha=0.8, label=f'Mean {group}'
            )
        add_milestone_markers(ax, subject_df)
        ax.set_title(subject)
        if groups:
            ax.legend(loc='center left', bbox_to_anchor=(1.02, 0.5))

    ax.set_ylabel(axes_labels[0])
    ax.set_xlabel(axes_labels[1])
    return fig


def _join_for_series(
    per_observation: pd.DataFrame,
    observations_df: pd.DataFrame,
    subjects_df: pd.DataFrame
) -> pd.DataFrame:
    obs = observations_df[['obs_id', 'date', 'subject_id', 'session', 'milestone_ids']]
    return (
        per_observation
        .merge(obs, on='obs_id')
        .merge(subjects_df[['id', 'name']].rename(columns={'id': 'subject_id'}), on='subject_id')
    )


def plot_series(
    per_observation: pd.DataFrame,
    observations_df: pd.DataFrame,
    behaviors_df: pd.DataFrame,
    subjects_df: pd.DataFrame,
    column: str,
    suffix: str,
    axes_labels: Tuple[str, str]
) -> Dict[str, LazyFigure]:
    """
    Per-subject behavior x session heatmaps of a per-behavior metric.

    Args:
        per_observation: DataFrame[obs_id, behavior_id, column]

    Returns:
        {'<subject name><suffix>': lazy figure}
    """
    joined = (
        _join_for_series(per_observation, observations_df, subjects_df)
        .merge(behaviors_df[['id', 'code']].rename(columns={'id': 'behavior_id'}), on='behavior_id')
        .sort_values(['date', 'session'], kind='mergesort')
    )
    return {
        f'{subject}{suffix}': partial(plot_for_subject, joined, subject, 'code', column, True, axes_labels)
        for subject in pd.unique(joined['name'])
    }


def plot_category_series(
    per_observation: pd.DataFrame,
    observations_df: pd.DataFrame,
    categories_df: pd.DataFrame,
    subjects_df: pd.DataFrame,
    column: str,
    suffix: str,
    axes_labels: Tuple[str, str],
    focus_categories: Optional[Iterable[str]] = None
) -> Dict[str, LazyFigure]:
    """
    Per-subject line series of a per-category metric, focus categories only.

    Args:
        per_observation: DataFrame[obs_id, category_id, column]

    Returns:
        {'<subject name><suffix>': lazy figure}
    """
    if focus_categories is None:
        focus_categories = DEFAULT_FOCUS_CATEGORIES

    joined = (
        _join_for_series(per_observation, observations_df, subjects_df)
        .merge(categories_df.rename(columns={'id': 'category_id'}), on='category_id')
        .sort_values(['date', 'session'], kind='mergesort')
    )
    joined = joined[joined['category'].isin(list(focus_categories))]
    return {
        f'{subject}{suffix}': partial(plot_for_subject, joined, subject, 'category', column, False, axes_labels)
        for subject in pd.unique(joined['name'])
    }


# =============================================================================
# SESSION MEANS
# =============================================================================

def _plot_facets(df: pd.DataFrame, column: str, ylabel: str, ylim: Optional[Tuple[float, float]] = None) -> plt.Figure:
    behaviors = pd.unique(df['code'])
    fig, axes = _facet_grid(len(behaviors))

    if len(behaviors) == 0:
        axes[0].set_visible(True)
        axes[0].set_title('No data')
        return fig

    for ax, behavior in zip(axes, behaviors):
        behavior_data = df[df['code'] == behavior].sort_values('session')
        ax.plot(behavior_data['session'], behavior_data[column], 'o-', linewidth=2, markersize=4)
        ax.set_title(behavior)
        ax.set_xlabel('Session')
        ax.set_ylabel(ylabel)
        if ylim is not None:
            ax.set_ylim(*ylim)

    fig.tight_layout()
    return fig


def plot_mean_budgets_facets(mean_budgets: pd.DataFrame, behaviors_df: pd.DataFrame) -> plt.Figure:
    """One panel per behavior: mean proportion of time by session."""
    apply_publication_style()
    joined = mean_budgets.merge(behaviors_df[['id', 'code']].rename(columns={'id': 'behavior_id'}), on='behavior_id')
    return _plot_facets(joined, 'mean_time_spent', 'Proportion Time', ylim=(0, 1))


def plot_mean_behavior_counts_facets(
    mean_counts: pd.DataFrame,
    behaviors_df: pd.DataFrame
) -> Tuple[plt.Figure, plt.Figure]:
    """Per-behavior panels of mean count and of mean frequency by session."""
    apply_publication_style()
    joined = mean_counts.merge(behaviors_df[['id', 'code']].rename(columns={'id': 'behavior_id'}), on='behavior_id')
    return (
        _plot_facets(joined, 'mean_count', 'Count'),
        _plot_facets(joined, 'mean_frequency', 'Frequency'),
    )


def _plot_category_means(
    session_means: pd.DataFrame,
    categories_df: pd.DataFrame,
    column: str,
    ylabel: str,
    focus_categories: Optional[Iterable[str]],
    ax: Optional[plt.Axes]
) -> plt.Figure:
    apply_publication_style()
    fig, ax = _new_axes(ax, (6, 4))

    if focus_categories is None:
        focus_categories = DEFAULT_FOCUS_CATEGORIES

    joined = session_means.merge(categories_df.rename(columns={'id': 'category_id'}), on='category_id')
    joined = joined[joined['category'].isin(list(focus_categories))]

    for i, (category, group) in enumerate(joined.groupby('category', sort=True)):
        group = group.sort_values('session')
        ax.plot(
            group['session'], group[column],
            color=PALETTE_SERIES[i % len(PALETTE_SERIES)], linewidth=2.5, label=category
        )

    ax.set_xlabel('Session Number')
    ax.set_ylabel(ylabel)
    if not joined.empty:
        ax.legend(loc='upper right')
    return fig


def plot_mean_budgets_categories(
    mean_budgets: pd.DataFrame,
    categories_df: pd.DataFrame,
    focus_categories: Optional[Iterable[str]] = None,
    ax: Optional[plt.Axes] = None
) -> plt.Figure:
    """Mean proportion of time in each focus category by session."""
    return _plot_category_means(
        mean_budgets, categories_df, 'mean_time_spent', 'Proportion of Time', focus_categories, ax
    )


def plot_mean_behavior_categories_counts(
    mean_counts: pd.DataFrame,
    categories_df: pd.DataFrame,
    focus_categories: Optional[Iterable[str]] = None,
    ax: Optional[plt.Axes] = None
) -> plt.Figure:
    """Mean point-behavior frequency of each focus category by session."""
    return _plot_category_means(
        mean_counts, categories_df, 'mean_frequency', 'Frequency (/min)', focus_categories, ax
    )


def create_figure_panel(
    plots: List[Tuple[callable, dict]],
    nrows: int,
    ncols: int,
    figsize: Optional[Tuple[float, float]] = None,
    titles: Optional[List[str]] = None
) -> plt.Figure:
    """
    Create multi-panel figure for publication.

    Args:
        plots: List of (plot_function, kwargs) tuples; each function takes ax=
        nrows, ncols: Grid layout
        figsize: Figure size (default: auto-calculated)
        titles: Optional panel titles

    Returns:
        matplotlib Figure
    """
    apply_publication_style()

    if figsize is None:
        figsize = (4 * ncols, 3.5 * nrows)

    fig, axes = plt.subplots(nrows, ncols, figsize=figsize, squeeze=False)
    flat_axes = [ax for row in axes for ax in row]

    for i, (plot_func, kwargs) in enumerate(plots[:len(flat_axes)]):
        plot_func(**dict(kwargs, ax=flat_axes[i]))
        if titles and i < len(titles):
            flat_axes[i].set_title(titles[i], fontweight='bold')

    # Panel labels (a), (b), ...
    for i, ax in enumerate(flat_axes[:len(plots)]):
        ax.text(-0.1, 1.1, f'({chr(97 + i)})', transform=ax.transAxes, fontsize=12, fontweight='bold', va='top')

    fig.tight_layout()
    return fig


def plot_means_panel(
    mean_budgets_categories: pd.DataFrame,
    mean_counts_categories: pd.DataFrame,
    categories_df: pd.DataFrame,
    focus_categories: Optional[Iterable[str]] = None
) -> plt.Figure:
    """Two-panel figure: (a) focus-category time budgets, (b) frequencies."""
    return create_figure_panel(
        [
            (plot_mean_budgets_categories, {
                'mean_budgets': mean_budgets_categories,
                'categories_df': categories_df,
                'focus_categories': focus_categories,
            }),
            (plot_mean_behavior_categories_counts, {
                'mean_counts': mean_counts_categories,
                'categories_df': categories_df,
                'focus_categories': focus_categories,
            }),
        ],
        nrows=1,
        ncols=2,
        figsize=(12, 5),
    )
