"""Core application runner for checknode.

This module ties together argument parsing, bootstrap and the orchestrator,
and maps the outcome onto the process exit code.
"""

from __future__ import annotations

import sys

from checknode.bootstrap import bootstrap, create_checknode_from_context
from checknode.cli import parse_args
from checknode.logging import get_logger
from checknode.main import EXIT_FAILURE

logger = get_logger(__name__)


def main(args: list[str] | None = None) -> int:
    """Main entry point for the application.

    This is the primary entry point that:
    1. Parses command-line arguments
    2. Bootstraps dependencies
    3. Runs one health-check pass

    Args:
        args: Optional list of command-line arguments.

    Returns:
        Exit code for the application.
    """
    parsed = parse_args(args)

    context = bootstrap(parsed)
    if context is None:
        # Bootstrap failed (logged internally)
        return EXIT_FAILURE

    checknode = create_checknode_from_context(context)
    return checknode.run()


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


__all__ = [
    "main",
    "run",
]
