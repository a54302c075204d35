"""Command-line interface argument parsing for checknode.

This module provides the CLI argument parser that handles:
- Mode flags (boot, check-only, local-only, force-undrain)
- Narration and dry-run switches
- Probe directory, timeout and slurm.conf overrides
- Config file and log level overrides
"""

from __future__ import annotations

import argparse
from pathlib import Path


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Optional list of arguments to parse. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace with the following attributes:
        - boot_mode, check_only, local_only, force_undrain: Mode flags
        - verbose, dryrun: Narration and dry-run switches
        - testdir: Probe directory override
        - timeout: Per-probe timeout override in seconds
        - slurm: slurm.conf override
        - config: Config file or directory
        - log_level, log_json: Logging overrides
    """
    parser = argparse.ArgumentParser(
        prog="checknode",
        description="checknode - node health checks with scheduler drain/undrain",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-b",
        "--boot-mode",
        action="store_true",
        help="Invoked from the boot sequence; skip the boot-completion check",
    )

    parser.add_argument(
        "-c",
        "--check-only",
        action="store_true",
        help="Report health without changing scheduler state",
    )

    parser.add_argument(
        "-l",
        "--local-only",
        action="store_true",
        help="Never contact the scheduler or its daemon",
    )

    parser.add_argument(
        "-u",
        "--force-undrain",
        action="store_true",
        help="Return a healthy node to service even over a foreign drain reason",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Narrate the run (overrides VERBOSE)",
    )

    parser.add_argument(
        "--dryrun",
        action="store_true",
        help="Announce probes without running them (overrides DRYRUN)",
    )

    parser.add_argument(
        "--testdir",
        type=Path,
        default=None,
        help="Probe directory (overrides TESTDIR)",
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-probe timeout in seconds (overrides TIMEOUT)",
    )

    parser.add_argument(
        "--slurm",
        type=Path,
        default=None,
        help="Path to slurm.conf (overrides SLURM_CONF)",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config file, or directory holding checknode.conf",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (overrides LOG_LEVEL and --verbose)",
    )

    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit log records as JSON lines",
    )

    return parser.parse_args(args)


__all__ = ["parse_args"]
