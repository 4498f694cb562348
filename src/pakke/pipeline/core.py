"""
Pipeline Core - Orchestration of one batch analysis run.

Flow:
1. Load the BORIS project and milestone file into entity tables
2. Time budgets, point counts and their session means
3. Trend correlations (per subject and over session means)
4. Session stress classification, common stressors, stress models
5. Figures (lazy, written by the exporter)

Every table is written under <output_dir>/data/, figures under <output_dir>/.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pandas as pd

from pakke.config import PipelineConfig
from pakke.importers import ProjectData, read_boris_project
from pakke.analysis import (
    calc_time_budgets,
    calc_time_budgets_by_cat,
    calc_point_behavior_counts,
    calc_point_category_counts,
    average_time_budgets,
    average_point_behavior_counts,
    subject_category_correlations,
    category_mean_correlations,
    were_sessions_stressy,
    common_stressors,
    fit_stress_models,
    stress_models_table,
)
from pakke.analysis import plots
from pakke.export import save_csv, save_figure, save_figs_in_dict, export_to_excel, save_run_config

logger = logging.getLogger(__name__)

WORKBOOK_NAME = "pakke_results.xlsx"


@dataclass
class PipelineResult:
    """Summary of a pipeline run."""
    project_summary: Dict[str, int] = field(default_factory=dict)

    # Tables by output name (without .csv)
    tables: Dict[str, pd.DataFrame] = field(default_factory=dict)

    n_stressy_sessions: int = 0
    n_sessions: int = 0
    n_stressors: int = 0
    n_non_stressors: int = 0
    n_models: int = 0

    written_files: List[Path] = field(default_factory=list)

    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    def summary_lines(self) -> List[str]:
        """Human-readable summary for CLI output."""
        lines = [f"  {name}: {count}" for name, count in self.project_summary.items()]
        lines.append(f"  stressy sessions: {self.n_stressy_sessions}/{self.n_sessions}")
        lines.append(f"  common stressors: {self.n_stressors}, non-stressors: {self.n_non_stressors}")
        lines.append(f"  stress models fitted: {self.n_models}")
        lines.append(f"  files written: {len(self.written_files)}")
        return lines


class AnalysisPipeline:
    """
    Runs every analysis stage over one project and writes the outputs.

    Stages share the loaded ProjectData and record their tables on the
    PipelineResult so later stages and the workbook export can reuse them.
    """

    def __init__(
        self,
        config: PipelineConfig,
        progress_callback: Optional[Callable[[str], None]] = None
    ):
        """
        Args:
            config: Run configuration
            progress_callback: Called with a message at the start of each stage
        """
        self.config = config
        self.progress_callback = progress_callback or (lambda *args: None)
        self.output_dir = Path(config.output_dir)
        self.data_dir = config.get_data_dir()
        self.data: Optional[ProjectData] = None

    def _stage(self, message: str):
        logger.info(message)
        self.progress_callback(message)

    def _write_table(self, results: PipelineResult, name: str, df: pd.DataFrame):
        results.tables[name] = df
        results.written_files.append(save_csv(df, self.data_dir / f"{name}.csv"))

    def run(self) -> PipelineResult:
        """Run the whole pipeline."""
        results = PipelineResult()
        results.started_at = datetime.now().isoformat()

        project_path = self.config.require_project_path()
        milestones_path = self.config.require_milestones_path()

        self._stage("Reading and processing BORIS project file")
        self.data = read_boris_project(project_path, milestones_path, workers=self.config.workers)
        results.project_summary = self.data.summary()
        for name, count in results.project_summary.items():
            logger.info(f"  Number of {name}: {count}")

        if not self.data.unmatched_milestones.empty:
            self._write_table(results, "unmatched_milestones", self.data.unmatched_milestones)

        budgets = self._run_budgets(results)
        self._run_correlations(results, budgets)
        self._run_stress(results, budgets)

        if self.config.make_plots:
            self._run_plots(results, budgets)

        if self.config.excel_workbook:
            self._stage("Writing results workbook")
            results.written_files.append(export_to_excel(results.tables, self.data_dir / WORKBOOK_NAME))

        results.written_files.append(save_run_config(self.config.to_dict(), self.output_dir))
        results.completed_at = datetime.now().isoformat()
        return results

    # =========================================================================
    # STAGES
    # =========================================================================

    def _run_budgets(self, results: PipelineResult) -> Dict[str, pd.DataFrame]:
        data = self.data
        excluded = self.config.excluded_behavior_codes
        tables = (data.events, data.behaviors, data.observations)

        self._stage("Computing time budgets for individual behaviors")
        budgets = {'time_budgets': calc_time_budgets(*tables)}

        self._stage("Computing time budgets for individual categories")
        budgets['time_budgets_by_category'] = calc_time_budgets_by_cat(*tables, excluded_codes=excluded)

        self._stage("Computing point behavior and category counts per session")
        budgets['point_behavior_counts'] = calc_point_behavior_counts(*tables)
        budgets['point_category_counts'] = calc_point_category_counts(*tables)

        self._stage("Computing mean time budgets and counts")
        budgets['mean_time_budgets'] = average_time_budgets(*tables)
        budgets['mean_time_budgets_categories'] = average_time_budgets(
            *tables, categories=True, excluded_codes=excluded
        )
        budgets['mean_point_behavior_counts'] = average_point_behavior_counts(*tables)
        budgets['mean_point_behavior_category_counts'] = average_point_behavior_counts(*tables, categories=True)

        for name, df in budgets.items():
            self._write_table(results, name, df)
        return budgets

    def _run_correlations(self, results: PipelineResult, budgets: Dict[str, pd.DataFrame]):
        data = self.data

        self._stage("Writing trend correlations")
        self._write_table(results, "state_behaviors_correlations_by_subject", subject_category_correlations(
            budgets['time_budgets_by_category'], 'prop_time_spent',
            data.observations, data.subjects, data.categories,
        ))
        self._write_table(results, "point_behaviors_correlations_by_subject", subject_category_correlations(
            budgets['point_category_counts'], 'frequency',
            data.observations, data.subjects, data.categories,
        ))
        self._write_table(results, "state_behaviors_correlations", category_mean_correlations(
            budgets['mean_time_budgets_categories'], 'mean_time_spent', data.categories,
        ))
        self._write_table(results, "point_behaviors_correlations", category_mean_correlations(
            budgets['mean_point_behavior_category_counts'], 'mean_frequency', data.categories,
        ))

    def _run_stress(self, results: PipelineResult, budgets: Dict[str, pd.DataFrame]):
        data = self.data

        self._stage("Dealing with stress in sessions")
        all_sessions_stress = were_sessions_stressy(
            budgets['time_budgets_by_category'],
            budgets['point_category_counts'],
            data.observations,
            data.categories,
            data.subjects,
            focus_categories=self.config.focus_categories,
        )
        results.n_sessions = len(all_sessions_stress)
        results.n_stressy_sessions = int(all_sessions_stress['was_stressy'].sum())

        milestones_stress = all_sessions_stress[all_sessions_stress['milestone_ids'].notna()]
        self._write_table(results, "milestones_stress", milestones_stress.reset_index(drop=True))

        self._stage("Common stressors/non-stressors")
        stressors = common_stressors(milestones_stress, data.milestones)
        results.n_stressors = int(stressors['stressed'].sum())
        results.n_non_stressors = len(stressors) - results.n_stressors
        logger.info(f"Stressors: {results.n_stressors}, non-stressors: {results.n_non_stressors}")
        self._write_table(results, "common_stressors", stressors)

        self._stage("Fitting stress models")
        models = fit_stress_models(all_sessions_stress)
        results.n_models = len(models)
        self._write_table(results, "stress_models", stress_models_table(models))

    def _run_plots(self, results: PipelineResult, budgets: Dict[str, pd.DataFrame]):
        data = self.data
        fmt = self.config.figure_format
        focus = self.config.focus_categories
        out = self.output_dir

        self._stage("Generating event timelines")
        figure_sets = [plots.plot_events_all_sessions(data.events, data.observations, data.subjects, data.behaviors)]

        self._stage("Generating per-subject series")
        series_specs = [
            (budgets['time_budgets'], 'prop_time_spent', '_behaviors', ('Behaviors', 'Session number')),
            (budgets['point_behavior_counts'], 'count', '_point_behaviors_counts',
             ('Raw count', 'Session number')),
            (budgets['point_behavior_counts'], 'frequency', '_point_behaviors_frequencies',
             ('Behavior frequency (per minute)', 'Session number')),
        ]
        for per_observation, column, suffix, labels in series_specs:
            figure_sets.append(plots.plot_series(
                per_observation, data.observations, data.behaviors, data.subjects, column, suffix, labels
            ))

        category_specs = [
            (budgets['time_budgets_by_category'], 'prop_time_spent', '_categories',
             ('Proportion of time spent', 'Session number')),
            (budgets['point_category_counts'], 'count', '_point_behaviors_category_counts',
             ('Raw count', 'Session number')),
            (budgets['point_category_counts'], 'frequency', '_point_behaviors_category_frequencies',
             ('Frequency (per minute)', 'Session number')),
        ]
        for per_observation, column, suffix, labels in category_specs:
            figure_sets.append(plots.plot_category_series(
                per_observation, data.observations, data.categories, data.subjects,
                column, suffix, labels, focus_categories=focus,
            ))

        self._stage("Saving figures")
        for figures in figure_sets:
            results.written_files.extend(save_figs_in_dict(figures, out, fmt))

        self._stage("Saving means")
        count_facets, frequency_facets = plots.plot_mean_behavior_counts_facets(
            budgets['mean_point_behavior_counts'], data.behaviors
        )
        mean_figures = {
            'mean_time_budgets': plots.plot_mean_budgets_facets(budgets['mean_time_budgets'], data.behaviors),
            'mean_time_budgets_categories': plots.plot_mean_budgets_categories(
                budgets['mean_time_budgets_categories'], data.categories, focus_categories=focus
            ),
            'mean_point_behavior_counts': count_facets,
            'mean_point_behavior_frequencies': frequency_facets,
            'mean_point_behavior_category_frequencies': plots.plot_mean_behavior_categories_counts(
                budgets['mean_point_behavior_category_counts'], data.categories, focus_categories=focus
            ),
            'figure_1_means': plots.plot_means_panel(
                budgets['mean_time_budgets_categories'],
                budgets['mean_point_behavior_category_counts'],
                data.categories,
                focus_categories=focus,
            ),
        }
        for name, fig in mean_figures.items():
            results.written_files.append(save_figure(fig, out / name, fmt))


def run_pipeline(
    config: PipelineConfig,
    progress_callback: Optional[Callable[[str], None]] = None
) -> PipelineResult:
    """
    Run one complete analysis.

    Raises:
        ConfigurationError: project or milestone path not configured
        ProjectLoadError: the inputs cannot be loaded
    """
    return AnalysisPipeline(config, progress_callback).run()
