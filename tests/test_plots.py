#!/usr/bin/env python3
"""
Tests for the plotting helpers.

Figures are only checked for structure (type, axes, titles); rendering
is left to matplotlib.
"""

import matplotlib.pyplot as plt
import pandas as pd
import pytest

from pakke.analysis.budgets import (
    calc_time_budgets,
    calc_time_budgets_by_cat,
    average_time_budgets,
    average_point_behavior_counts,
)
from pakke.analysis.plots import (
    create_stat_matrix,
    plot_events,
    plot_events_all_sessions,
    plot_for_subject,
    plot_series,
    plot_category_series,
    plot_mean_budgets_facets,
    plot_mean_behavior_counts_facets,
    plot_means_panel,
)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')


def tables(project_data):
    return project_data.events, project_data.behaviors, project_data.observations


# =============================================================================
# MATRICES
# =============================================================================

class TestCreateStatMatrix:
    """Tests for create_stat_matrix."""

    def test_rows_in_appearance_order_and_sessions_sorted(self):
        df = pd.DataFrame({
            'code': ['Sway', 'Head bob', 'Sway', 'Walk away'],
            'session': [2, 2, 1, 3],
            'prop_time_spent': [0.2, 0.1, 0.4, 0.3],
        })

        matrix = create_stat_matrix(df, 'prop_time_spent')

        assert matrix.index.tolist() == ['Sway', 'Head bob', 'Walk away']
        assert matrix.columns.tolist() == [1, 2, 3]
        assert matrix.loc['Sway'].tolist() == [0.4, 0.2, 0.0]
        assert matrix.loc['Walk away', 3] == 0.3

    def test_category_rows(self):
        df = pd.DataFrame({'category': ['Avoidance'], 'session': [1], 'frequency': [0.5]})

        matrix = create_stat_matrix(df, 'frequency')

        assert matrix.index.tolist() == ['Avoidance']


# =============================================================================
# TIMELINES
# =============================================================================

class TestTimelines:
    """Tests for event timeline plots."""

    def test_plot_events(self, project_data):
        events = project_data.events[project_data.events['obs_id'] == 'B3']

        fig = plot_events(events, project_data.behaviors, obs_end=600.0)

        ax = fig.axes[0]
        assert isinstance(fig, plt.Figure)
        assert ax.get_title() == 'Event Timeline for Observation B3'
        assert [t.get_text() for t in ax.get_yticklabels()] == ['Sway', 'Ear flap']

    def test_plot_events_empty(self, project_data):
        empty = project_data.events.iloc[0:0]

        fig = plot_events(empty, project_data.behaviors, obs_id='X1')

        assert fig.axes[0].get_title() == 'No events found for observation X1'

    def test_timelines_keyed_by_date_and_session(self, project_data):
        timelines = plot_events_all_sessions(
            project_data.events, project_data.observations, project_data.subjects, project_data.behaviors
        )

        assert set(timelines) == {'2023-01-01', '2023-01-05', '2023-01-10'}
        assert set(timelines['2023-01-01']) == {'Bahadur1', 'Vijaya1'}
        assert set(timelines['2023-01-05']) == {'Bahadur2', 'Vijaya2'}
        assert isinstance(timelines['2023-01-10']['Bahadur3'](), plt.Figure)


# =============================================================================
# PER-SUBJECT SERIES
# =============================================================================

class TestSeries:
    """Tests for per-subject series plots."""

    def test_plot_series_keys_and_lazy(self, project_data):
        figures = plot_series(
            calc_time_budgets(*tables(project_data)),
            project_data.observations, project_data.behaviors, project_data.subjects,
            'prop_time_spent', '_behaviors', ('Proportion of Time', 'Session'),
        )

        assert set(figures) == {'Bahadur_behaviors', 'Vijaya_behaviors'}
        fig = figures['Bahadur_behaviors']()
        assert fig.axes[0].get_title() == 'prop_time_spent for Bahadur'

    def test_plot_category_series_focus_only(self, project_data):
        per_category = calc_time_budgets_by_cat(*tables(project_data))

        figures = plot_category_series(
            per_category, project_data.observations, project_data.categories, project_data.subjects,
            'prop_time_spent', '_categories', ('Proportion of Time', 'Session'),
        )
        fig = figures['Bahadur_categories']()

        labels = fig.axes[0].get_legend_handles_labels()[1]
        assert 'Displacement' in labels
        assert 'Social' not in labels

    def test_plot_for_subject_line_series(self):
        df = pd.DataFrame({
            'name': ['A', 'A', 'A'],
            'session': [1, 2, 3],
            'category': ['Avoidance'] * 3,
            'frequency': [0.1, 0.3, 0.2],
            'milestone_ids': [None, [1], None],
        })

        fig = plot_for_subject(df, 'A', 'category', 'frequency', False, ('Frequency', 'Session'))

        ax = fig.axes[0]
        assert ax.get_ylabel() == 'Frequency'
        assert ax.get_xlabel() == 'Session'
        # series, mean line, milestone line
        assert len(ax.get_lines()) == 3


# =============================================================================
# SESSION MEANS
# =============================================================================

class TestMeans:
    """Tests for session mean figures."""

    def test_budget_facets_one_panel_per_behavior(self, project_data):
        means = average_time_budgets(*tables(project_data))

        fig = plot_mean_budgets_facets(means, project_data.behaviors)

        titles = {ax.get_title() for ax in fig.axes if ax.get_visible()}
        assert titles == {'Sway', 'Head bob', 'Walk away', 'Leg held'}

    def test_count_facets_returns_two_figures(self, project_data):
        means = average_point_behavior_counts(*tables(project_data))

        counts_fig, freq_fig = plot_mean_behavior_counts_facets(means, project_data.behaviors)

        assert counts_fig.axes[0].get_ylabel() == 'Count'
        assert freq_fig.axes[0].get_ylabel() == 'Frequency'

    def test_means_panel_labels(self, project_data):
        budgets = average_time_budgets(*tables(project_data), categories=True)
        counts = average_point_behavior_counts(*tables(project_data), categories=True)

        fig = plot_means_panel(budgets, counts, project_data.categories)

        assert len(fig.axes) == 2
        panel_labels = [t.get_text() for ax in fig.axes for t in ax.texts]
        assert panel_labels == ['(a)', '(b)']
