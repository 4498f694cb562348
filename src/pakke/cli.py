"""
CLI entry points for Pakke.

Commands:
    pakke-run        Run the complete analysis and write tables and figures
    pakke-summary    Load a project and print what it contains
"""

import sys
import argparse
import logging
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import List, Optional

logger = logging.getLogger(__name__)

CONSOLE_HANDLER_NAME = "pakke-console"
FILE_HANDLER_NAME = "pakke-file"


# =============================================================================
# LOGGING SETUP
# =============================================================================

def setup_logging(log_dir: Path, verbose: bool = False, quiet: bool = False):
    """
    Setup logging to console and rotating file.

    Args:
        log_dir: Directory for log files
        verbose: Enable debug logging
        quiet: Suppress info logging (errors only)
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "pakke.log"

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.INFO

    formatter = logging.Formatter('%(asctime)s %(levelname)-8s %(name)s - %(message)s')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)

    # Rotating, 10MB max, keep 5 backups
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)  # Always log DEBUG to file

    console_handler.set_name(CONSOLE_HANDLER_NAME)
    file_handler.set_name(FILE_HANDLER_NAME)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Replace handlers from an earlier call in this process
    for handler in list(root_logger.handlers):
        if handler.get_name() in (CONSOLE_HANDLER_NAME, FILE_HANDLER_NAME):
            root_logger.removeHandler(handler)
            handler.close()

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    # matplotlib font lookup is noisy at DEBUG
    logging.getLogger('matplotlib').setLevel(logging.WARNING)

    return log_file


def _add_input_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('-p', '--project', type=Path, help="BORIS project file (.boris)")
    parser.add_argument('-m', '--milestones', type=Path, help="Milestone CSV (Event,Subject,Date,Session)")


# =============================================================================
# RUN COMMAND
# =============================================================================

def main_run(argv: Optional[List[str]] = None):
    """Run the complete analysis."""
    parser = argparse.ArgumentParser(description="Analyze a BORIS project against its milestones")
    _add_input_arguments(parser)
    parser.add_argument('-o', '--output', type=Path, help="Output directory (default: ./output)")
    parser.add_argument('--workers', type=int, help="Threads for event reconstruction")
    parser.add_argument('--no-plots', action='store_true', help="Skip figure generation")
    parser.add_argument('--no-excel', action='store_true', help="Skip the results workbook")
    parser.add_argument('--format', choices=['png', 'svg', 'pdf'], help="Figure format")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('--verbose', action='store_true', help="Debug logging on the console")
    verbosity.add_argument('--quiet', action='store_true', help="Errors only on the console")
    args = parser.parse_args(argv)

    # Headless rendering; set before pyplot is imported
    import matplotlib
    matplotlib.use('Agg')

    from pakke.config import PipelineConfig, ConfigurationError
    from pakke.importers import ProjectLoadError
    from pakke.pipeline import run_pipeline

    config = PipelineConfig.load({
        'project_path': args.project,
        'milestones_path': args.milestones,
        'output_dir': args.output,
        'workers': args.workers,
        'make_plots': False if args.no_plots else None,
        'excel_workbook': False if args.no_excel else None,
        'figure_format': args.format,
    })

    problems = config.validate()
    if problems:
        print("ERROR: Invalid configuration:", file=sys.stderr)
        for problem in problems:
            print(f"  - {problem}", file=sys.stderr)
        sys.exit(1)

    try:
        log_file = setup_logging(config.get_log_dir(), verbose=args.verbose, quiet=args.quiet)
        logger.info(f"Logging to {log_file}")
    except OSError as e:
        print(f"ERROR: Failed to setup logging: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        result = run_pipeline(config)
    except (ConfigurationError, ProjectLoadError) as e:
        logger.error(str(e))
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    print()
    print("Pakke run complete")
    print("=" * 40)
    for line in result.summary_lines():
        print(line)
    print(f"\nOutputs in: {config.output_dir}")


# =============================================================================
# SUMMARY COMMAND
# =============================================================================

def main_summary(argv: Optional[List[str]] = None):
    """Load a project and print its summary."""
    parser = argparse.ArgumentParser(description="Summarize a BORIS project and its milestones")
    _add_input_arguments(parser)
    args = parser.parse_args(argv)

    from pakke.config import PipelineConfig, ConfigurationError
    from pakke.importers import ProjectLoadError, read_boris_project

    config = PipelineConfig.load({'project_path': args.project, 'milestones_path': args.milestones})

    try:
        data = read_boris_project(
            config.require_project_path(),
            config.require_milestones_path(),
            workers=config.workers,
        )
    except (ConfigurationError, ProjectLoadError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    print("\nProject summary")
    print(f"{'='*40}")
    for name, count in data.summary().items():
        print(f"  Number of {name.replace('_', ' ')}: {count}")

    if not data.unmatched_milestones.empty:
        print("\nUnmatched milestone rows:")
        print(data.unmatched_milestones.to_string(index=False))


if __name__ == "__main__":
    main_run()
