"""
Pakke Importers

Turns a BORIS project file and a milestone CSV into the entity tables
(subjects, categories, behaviors, observations, intervals, milestones).

Usage:
    from pakke.importers import read_boris_project
    data = read_boris_project("Elephants PRT.boris", "milestones.csv")
"""

from .project import (
    ProjectLoadError,
    ProjectFile,
    RawObservation,
    parse_project,
    read_project_file,
    extract_subjects,
    extract_categories,
    extract_behaviors,
    extract_observations,
    assign_sessions,
)
from .events import (
    extract_events,
    construct_events_table,
    extract_all_events,
    pair_state_events,
)
from .milestones import (
    MilestoneLoadError,
    MilestoneAlignment,
    import_milestones,
    map_milestones_to_sessions,
    session_slot,
)
from .loader import ProjectData, read_boris_project

__all__ = [
    'ProjectLoadError',
    'MilestoneLoadError',
    'ProjectFile',
    'RawObservation',
    'ProjectData',
    'parse_project',
    'read_project_file',
    'read_boris_project',
    'extract_subjects',
    'extract_categories',
    'extract_behaviors',
    'extract_observations',
    'assign_sessions',
    'extract_events',
    'construct_events_table',
    'extract_all_events',
    'pair_state_events',
    'MilestoneAlignment',
    'import_milestones',
    'map_milestones_to_sessions',
    'session_slot',
]
