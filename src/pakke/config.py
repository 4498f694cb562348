#!/usr/bin/env python3
"""
Pakke Pipeline Configuration

Run configuration for one batch analysis of a BORIS project.
Values are resolved from explicit arguments, ~/.pakke/config.json
(section "pipeline"), or environment variables, in that order.

There are no module-level paths: build a PipelineConfig and hand it to
pakke.pipeline.run_pipeline().
"""

import os
import json
import logging
from pathlib import Path
from typing import Optional, List

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(Exception):
    """Raised when required configuration is missing."""
    pass


# =============================================================================
# FIXED RULES
# =============================================================================

# Behavior types as written by BORIS in behaviors_conf
STATE_EVENT = "State event"
POINT_EVENT = "Point event"
BEHAVIOR_TYPES = (STATE_EVENT, POINT_EVENT)

# Intra-day slot rule for milestone matching. A subject is observed at most
# twice per day: the session starting at 10h is slot 1, any other is slot 2.
SLOT_ONE_HOUR = 10

# Defaults
DEFAULT_OUTPUT_DIR = Path("output")
DEFAULT_WORKERS = 4
DEFAULT_EXCLUDED_BEHAVIOR_CODES = ["Leg held"]
DEFAULT_FOCUS_CATEGORIES = ["Avoidance", "Displacement"]
DEFAULT_FIGURE_FORMAT = "png"
FIGURE_FORMATS = ("png", "svg", "pdf")


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================

def _config_file() -> Path:
    return Path.home() / ".pakke" / "config.json"


def _load_config() -> dict:
    """Load configuration from JSON file."""
    config_file = _config_file()
    if config_file.exists():
        try:
            with open(config_file, "r") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable config file {config_file}: {e}")
    return {}


def _as_path(value) -> Optional[Path]:
    return Path(value) if value else None


class PipelineConfig:
    """Configuration for one pipeline run.

    Every field has a default except the two input files, which must be
    given explicitly, in ~/.pakke/config.json, or through
    PAKKE_PROJECT_PATH / PAKKE_MILESTONES_PATH.
    """

    def __init__(self, config_dict: dict = None):
        cfg = config_dict or {}
        self.project_path: Optional[Path] = _as_path(
            cfg.get('project_path') or os.getenv("PAKKE_PROJECT_PATH")
        )
        self.milestones_path: Optional[Path] = _as_path(
            cfg.get('milestones_path') or os.getenv("PAKKE_MILESTONES_PATH")
        )
        self.output_dir: Path = (
            _as_path(cfg.get('output_dir') or os.getenv("PAKKE_OUTPUT_DIR"))
            or DEFAULT_OUTPUT_DIR
        )
        self.log_dir: Optional[Path] = _as_path(cfg.get('log_dir'))
        self.workers: int = int(cfg.get('workers', DEFAULT_WORKERS))
        self.excluded_behavior_codes: List[str] = list(
            cfg.get('excluded_behavior_codes', DEFAULT_EXCLUDED_BEHAVIOR_CODES)
        )
        self.focus_categories: List[str] = list(
            cfg.get('focus_categories', DEFAULT_FOCUS_CATEGORIES)
        )
        self.make_plots: bool = cfg.get('make_plots', True)
        self.figure_format: str = cfg.get('figure_format', DEFAULT_FIGURE_FORMAT)
        self.excel_workbook: bool = cfg.get('excel_workbook', True)

    @classmethod
    def load(cls, overrides: dict = None) -> 'PipelineConfig':
        """Load pipeline config from ~/.pakke/config.json, then apply overrides.

        Override values that are None are ignored, so argparse namespaces
        can be passed straight through.
        """
        merged = dict(_load_config().get('pipeline', {}))
        for key, value in (overrides or {}).items():
            if value is not None:
                merged[key] = value
        return cls(merged)

    def to_dict(self) -> dict:
        """Serialize to dict (written next to the outputs for provenance)."""
        d = {
            'output_dir': str(self.output_dir),
            'workers': self.workers,
            'excluded_behavior_codes': list(self.excluded_behavior_codes),
            'focus_categories': list(self.focus_categories),
            'make_plots': self.make_plots,
            'figure_format': self.figure_format,
            'excel_workbook': self.excel_workbook,
        }
        if self.project_path:
            d['project_path'] = str(self.project_path)
        if self.milestones_path:
            d['milestones_path'] = str(self.milestones_path)
        if self.log_dir:
            d['log_dir'] = str(self.log_dir)
        return d

    def validate(self) -> List[str]:
        """Check the config. Returns list of problems (empty = OK)."""
        problems = []

        if self.project_path is None:
            problems.append("project_path not configured")
        elif not self.project_path.exists():
            problems.append(f"project_path does not exist: {self.project_path}")

        if self.milestones_path is None:
            problems.append("milestones_path not configured")
        elif not self.milestones_path.exists():
            problems.append(f"milestones_path does not exist: {self.milestones_path}")

        if self.workers < 1:
            problems.append(f"workers must be at least 1, got {self.workers}")

        if self.figure_format not in FIGURE_FORMATS:
            problems.append(
                f"figure_format must be one of {', '.join(FIGURE_FORMATS)}, got {self.figure_format}"
            )

        return problems

    def require_project_path(self) -> Path:
        """Get project_path, raising helpful error if not configured."""
        if self.project_path is None:
            raise ConfigurationError(
                "No BORIS project file configured.\n\n"
                "Pass --project, set PAKKE_PROJECT_PATH, or add "
                "'project_path' to the 'pipeline' section of ~/.pakke/config.json."
            )
        return self.project_path

    def require_milestones_path(self) -> Path:
        """Get milestones_path, raising helpful error if not configured."""
        if self.milestones_path is None:
            raise ConfigurationError(
                "No milestones file configured.\n\n"
                "Pass --milestones, set PAKKE_MILESTONES_PATH, or add "
                "'milestones_path' to the 'pipeline' section of ~/.pakke/config.json."
            )
        return self.milestones_path

    def get_data_dir(self) -> Path:
        """Directory for CSV tables."""
        return self.output_dir / "data"

    def get_log_dir(self) -> Path:
        """Get log directory, defaulting to output_dir/logs."""
        if self.log_dir:
            return self.log_dir
        return self.output_dir / "logs"
