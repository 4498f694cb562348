#!/usr/bin/env python3
"""
Data export - Write Pakke tables and figures to disk
"""

import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, Union

import matplotlib.pyplot as plt
import pandas as pd

logger = logging.getLogger(__name__)

# Excel limits sheet names to 31 characters
MAX_SHEET_NAME = 31


def save_csv(df: pd.DataFrame, path: Path) -> Path:
    """Write a table to CSV, creating parent directories.

    List-valued cells (milestone ids) are written comma-joined.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    _join_list_cells(df).to_csv(path, index=False)
    logger.debug(f"Saved: {path}")
    return path


def save_figure(fig: plt.Figure, path: Union[str, Path], fmt: str = 'png') -> Path:
    """
    Save a figure and release it.

    Args:
        fig: matplotlib Figure
        path: Output path; '.fmt' is appended unless already present
        fmt: 'png', 'svg' or 'pdf'
    """
    path = Path(path)
    if path.suffix != f'.{fmt}':
        path = path.parent / f'{path.name}.{fmt}'
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, format=fmt, bbox_inches='tight')
    plt.close(fig)
    logger.debug(f"Saved: {path}")
    return path


def flatten_dict(nested: dict, parent_key: str = '', delimiter: str = '/') -> Dict[str, object]:
    """Flatten nested dicts into {'a/b/c': leaf}."""
    items = {}
    for key, value in nested.items():
        new_key = f"{parent_key}{delimiter}{key}" if parent_key else str(key)
        if isinstance(value, dict):
            items.update(flatten_dict(value, new_key, delimiter))
        else:
            items[new_key] = value
    return items


def save_figs_in_dict(
    figures: Dict[str, Union[plt.Figure, Callable[[], plt.Figure], dict]],
    output_dir: Path,
    fmt: str = 'png'
) -> List[Path]:
    """
    Write every figure of a nested dict under output_dir.

    Leaves may be Figures or zero-argument callables returning one; keys
    become path components.
    """
    written = []
    for key, value in flatten_dict(figures, str(output_dir)).items():
        fig = value() if callable(value) else value
        written.append(save_figure(fig, Path(key), fmt))
    return written


def _join_list_cells(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    for col in out.columns:
        if out[col].dtype == object:
            out[col] = out[col].map(
                lambda v: ','.join(str(x) for x in v) if isinstance(v, (list, tuple)) else v
            )
    return out


def export_to_excel(tables: Dict[str, pd.DataFrame], output_path: Path) -> Path:
    """
    Export tables to one Excel workbook, one sheet per table.

    List-valued cells (milestone ids) are written comma-joined.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
        for name, df in tables.items():
            _join_list_cells(df).to_excel(writer, sheet_name=name[:MAX_SHEET_NAME], index=False)

    logger.info(f"Exported {len(tables)} tables to {output_path}")
    return output_path


def save_run_config(config_dict: dict, output_dir: Path) -> Path:
    """Write the run configuration next to the outputs."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / 'run_config.json'
    with open(path, 'w') as f:
        json.dump(config_dict, f, indent=2)
    return path
