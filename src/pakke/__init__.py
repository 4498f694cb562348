"""
Pakke - Behavioral observation analysis for BORIS projects
==========================================================

Turns a BORIS project and a milestone calendar into per-session time
budgets, point-behavior frequencies, trend statistics and stress analysis.

Pipeline Steps:
    1. importers - Entity tables, event intervals, milestone alignment
    2. analysis  - Interval merging, budgets, correlations, stress, figures
    3. export    - CSV tables, results workbook, figures
    4. pipeline  - run_pipeline(config) for a complete batch run

Usage:
    from pakke import PipelineConfig
    from pakke.pipeline import run_pipeline
    result = run_pipeline(PipelineConfig.load({'project_path': ..., 'milestones_path': ...}))
"""

__version__ = "1.0.0"

# Convenience imports for common entry points
from pakke.config import PipelineConfig, ConfigurationError
from pakke.importers import ProjectData, ProjectLoadError, read_boris_project
