#!/usr/bin/env python3
"""
Review Workflow - Main Entry Point

Scans a codebase for structural issues, triages the findings into ordered
batches and resolves them one batch per invocation, with a verification
gate around every batch.

Usage:
    review-workflow review [PATH]
    review-workflow triage [RUN_DIR] [--force]
    review-workflow resolve [RUN_DIR]
    review-workflow complete [RUN_DIR]
    review-workflow status [RUN_DIR] [--rebuild]
"""

import argparse
import logging
import sys

from .config import WorkflowConfig
from .errors import WorkflowError
from .orchestrator.workflow import ReviewWorkflow
from .utils import setup_logging, get_logger


def _workflow(args) -> ReviewWorkflow:
    setup_logging(level=logging.DEBUG if args.debug else logging.INFO)
    return ReviewWorkflow(config=WorkflowConfig.from_env())


def _finish(outcome) -> None:
    print(f"\n{outcome.message}")
    sys.exit(0)


def cmd_review(args):
    """Handle 'review' subcommand."""
    workflow = _workflow(args)
    logger = get_logger()
    try:
        _finish(workflow.review(args.path))
    except WorkflowError as e:
        logger.error(str(e))
        sys.exit(1)


def cmd_triage(args):
    """Handle 'triage' subcommand."""
    workflow = _workflow(args)
    logger = get_logger()
    try:
        _finish(workflow.triage(args.run_dir, force=args.force))
    except WorkflowError as e:
        logger.error(str(e))
        sys.exit(1)


def cmd_resolve(args):
    """Handle 'resolve' subcommand."""
    workflow = _workflow(args)
    logger = get_logger()
    try:
        _finish(workflow.resolve(args.run_dir))
    except WorkflowError as e:
        logger.error(str(e))
        sys.exit(1)


def cmd_complete(args):
    """Handle 'complete' subcommand."""
    workflow = _workflow(args)
    logger = get_logger()
    try:
        _finish(workflow.complete(args.run_dir))
    except WorkflowError as e:
        logger.error(str(e))
        sys.exit(1)


def cmd_status(args):
    """Handle 'status' subcommand."""
    workflow = _workflow(args)
    logger = get_logger()
    try:
        if args.rebuild:
            workflow.rebuild(args.run_dir)
        print(workflow.status(args.run_dir))
        sys.exit(0)
    except WorkflowError as e:
        logger.error(str(e))
        sys.exit(1)


def _add_debug(parser):
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )


def _add_run_dir(parser):
    parser.add_argument(
        "run_dir",
        nargs="?",
        help="Run directory (default: the latest run)"
    )


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Codebase review and remediation workflow"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # review command
    review_parser = subparsers.add_parser("review", help="Analyze a codebase and write report.md")
    review_parser.add_argument(
        "path",
        nargs="?",
        help="File or directory to review (prompted for when omitted)"
    )
    _add_debug(review_parser)

    # triage command
    triage_parser = subparsers.add_parser("triage", help="Batch the findings into an approved plan")
    _add_run_dir(triage_parser)
    triage_parser.add_argument(
        "--force",
        action="store_true",
        help="Deliberately re-triage over an existing plan.md"
    )
    _add_debug(triage_parser)

    # resolve command
    resolve_parser = subparsers.add_parser("resolve", help="Resolve the next batch, or finish the run")
    _add_run_dir(resolve_parser)
    _add_debug(resolve_parser)

    # complete command
    complete_parser = subparsers.add_parser("complete", help="Close out the run now")
    _add_run_dir(complete_parser)
    _add_debug(complete_parser)

    # status command
    status_parser = subparsers.add_parser("status", help="Show progress and the next step")
    _add_run_dir(status_parser)
    status_parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Regenerate progress.md from plan.md and the batch logs first"
    )
    _add_debug(status_parser)

    args = parser.parse_args()

    # Route to subcommand
    if args.command == "review":
        cmd_review(args)
    elif args.command == "triage":
        cmd_triage(args)
    elif args.command == "resolve":
        cmd_resolve(args)
    elif args.command == "complete":
        cmd_complete(args)
    elif args.command == "status":
        cmd_status(args)
    else:
        # No subcommand - show help
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
