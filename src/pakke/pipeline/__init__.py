"""
Pakke Pipeline
==============

Single entry point for a complete batch run:
- Load the BORIS project and milestones
- Budgets, counts, correlations and stress analysis
- CSV tables, results workbook and figures under the output directory
"""

from pakke.pipeline.core import (
    AnalysisPipeline,
    PipelineResult,
    run_pipeline,
)

__all__ = [
    'AnalysisPipeline',
    'PipelineResult',
    'run_pipeline',
]
