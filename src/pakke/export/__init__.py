"""
Pakke Export

CSV, figure and workbook writers used by the pipeline.
"""

from .exporter import (
    save_csv,
    save_figure,
    flatten_dict,
    save_figs_in_dict,
    export_to_excel,
    save_run_config,
)

__all__ = [
    'save_csv',
    'save_figure',
    'flatten_dict',
    'save_figs_in_dict',
    'export_to_excel',
    'save_run_config',
]
