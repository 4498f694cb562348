"""
read_boris_project - build the complete table set for one run.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from pakke.config import DEFAULT_WORKERS
from .project import (
    read_project_file,
    extract_subjects,
    extract_categories,
    extract_behaviors,
    extract_observations,
)
from .events import extract_all_events
from .milestones import import_milestones

logger = logging.getLogger(__name__)


@dataclass
class ProjectData:
    """The entity tables every analysis and plot works from."""

    subjects: pd.DataFrame
    categories: pd.DataFrame
    behaviors: pd.DataFrame
    observations: pd.DataFrame   # includes milestone_ids
    events: pd.DataFrame         # intervals: obs_id, behavior_id, start, stop
    milestones: pd.DataFrame
    unmatched_milestones: pd.DataFrame

    def summary(self) -> dict:
        return {
            'subjects': len(self.subjects),
            'observations': len(self.observations),
            'behaviors': len(self.behaviors),
            'events': len(self.events),
            'milestones': len(self.milestones),
            'unmatched_milestone_rows': len(self.unmatched_milestones),
        }


def read_boris_project(
    prj_filepath: Path,
    milestones_filepath: Path,
    workers: int = DEFAULT_WORKERS
) -> ProjectData:
    """
    Load a BORIS project and its milestone file into entity tables.

    Args:
        prj_filepath: BORIS project (.boris JSON) file
        milestones_filepath: Milestone CSV
        workers: Threads for state-event pairing

    Raises:
        ProjectLoadError: on the first fatal load problem
    """
    logger.info(f"Reading project file {prj_filepath}")
    project = read_project_file(prj_filepath)

    logger.info("Extracting subjects")
    subjects_df = extract_subjects(project)
    logger.info("Extracting categories")
    categories_df = extract_categories(project)

    logger.info("Processing and populating behaviors")
    behaviors_df = extract_behaviors(project, categories_df)
    logger.info("Processing and populating observations")
    observations_df = extract_observations(project, subjects_df)

    logger.info("Building events")
    events_df = extract_all_events(project.observations, behaviors_df, workers=workers)

    logger.info(f"Importing milestones from {milestones_filepath}")
    milestones_df, alignment = import_milestones(milestones_filepath, subjects_df, observations_df)

    logger.info("Finished building data frames")
    return ProjectData(
        subjects=subjects_df,
        categories=categories_df,
        behaviors=behaviors_df,
        observations=alignment.observations,
        events=events_df,
        milestones=milestones_df,
        unmatched_milestones=alignment.unmatched,
    )
