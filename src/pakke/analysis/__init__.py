"""
Pakke Analysis Module

Interval merging, time budgets, point-behavior counts, trend statistics,
session stress classification and publication-ready figures built from
the entity tables produced by pakke.importers.

Usage:
    from pakke.analysis import calc_time_budgets_by_cat, spearman_test
"""

from .intervals import (
    merge_intervals,
    merge_intervals_by_group,
    total_merged_time,
    close_open_intervals,
)
from .budgets import (
    state_intervals,
    calc_time_budgets,
    calc_time_budgets_by_cat,
    calc_point_behavior_counts,
    calc_point_category_counts,
    average_time_budgets,
    average_point_behavior_counts,
)
from .stats import (
    SpearmanResult,
    spearman_test,
    correlate_with_session,
    subject_category_correlations,
    category_mean_correlations,
)
from .stress import (
    were_sessions_stressy,
    common_stressors,
    fit_stress_models,
    stress_models_table,
)
from .plots import (
    plot_events,
    plot_events_all_sessions,
    plot_series,
    plot_category_series,
    plot_mean_budgets_facets,
    plot_mean_budgets_categories,
    plot_mean_behavior_counts_facets,
    plot_mean_behavior_categories_counts,
    plot_means_panel,
)

__all__ = [
    # Intervals
    'merge_intervals',
    'merge_intervals_by_group',
    'total_merged_time',
    'close_open_intervals',
    # Budgets and counts
    'state_intervals',
    'calc_time_budgets',
    'calc_time_budgets_by_cat',
    'calc_point_behavior_counts',
    'calc_point_category_counts',
    'average_time_budgets',
    'average_point_behavior_counts',
    # Statistics
    'SpearmanResult',
    'spearman_test',
    'correlate_with_session',
    'subject_category_correlations',
    'category_mean_correlations',
    # Stress
    'were_sessions_stressy',
    'common_stressors',
    'fit_stress_models',
    'stress_models_table',
    # Plotting
    'plot_events',
    'plot_events_all_sessions',
    'plot_series',
    'plot_category_series',
    'plot_mean_budgets_facets',
    'plot_mean_budgets_categories',
    'plot_mean_behavior_counts_facets',
    'plot_mean_behavior_categories_counts',
    'plot_means_panel',
]
