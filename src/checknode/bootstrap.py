"""Bootstrap and dependency wiring for checknode.

This module provides the startup logic for a checknode run:
- Configuration loading with CLI overrides
- Logging setup
- Scheduler client and daemon controller creation
- CheckNode instance assembly

The bootstrap module acts as the composition root, wiring together all
dependencies before the run starts.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from typing import TYPE_CHECKING

from checknode.config import Config, load_config
from checknode.exceptions import ConfigurationError
from checknode.logging import get_logger, resolve_log_level, setup_logging
from checknode.scheduler import (
    DaemonController,
    SchedulerClient,
    SlurmClient,
    SystemdDaemonController,
)

if TYPE_CHECKING:
    from checknode.main import CheckNode

logger = get_logger(__name__)


class BootstrapContext:
    """Container for all bootstrapped dependencies.

    This class holds the initialized components needed to create a
    CheckNode instance.
    """

    def __init__(
        self,
        config: Config,
        scheduler: SchedulerClient,
        daemon: DaemonController,
    ) -> None:
        """Initialize the bootstrap context.

        Args:
            config: Application configuration.
            scheduler: Scheduler client for node state and drain/undrain.
            daemon: Controller for the local scheduler daemon.
        """
        self.config = config
        self.scheduler = scheduler
        self.daemon = daemon


def apply_cli_overrides(config: Config, parsed: argparse.Namespace) -> Config:
    """Apply CLI argument overrides to the configuration.

    Flags only ever switch a setting on or replace a value; an absent flag
    leaves the configured value alone.

    Args:
        config: Base configuration loaded from the config file.
        parsed: Parsed command-line arguments.

    Returns:
        New Config instance with CLI overrides applied.
    """
    paths = config.paths
    if parsed.testdir:
        paths = replace(paths, probe_dir=parsed.testdir)
    if parsed.slurm:
        paths = replace(paths, slurm_conf=parsed.slurm)

    probes = config.probes
    if parsed.timeout is not None:
        if parsed.timeout > 0:
            probes = replace(probes, timeout=parsed.timeout)
        else:
            logger.warning(
                "Ignoring --timeout %s: not positive, using %s",
                parsed.timeout,
                probes.timeout,
            )

    modes = replace(
        config.modes,
        boot_mode=config.modes.boot_mode or parsed.boot_mode,
        check_only=config.modes.check_only or parsed.check_only,
        local_only=config.modes.local_only or parsed.local_only,
        force_undrain=config.modes.force_undrain or parsed.force_undrain,
        dry_run=config.modes.dry_run or parsed.dryrun,
    )

    logging_config = replace(
        config.logging_config,
        level=parsed.log_level or config.logging_config.level,
        json=config.logging_config.json or parsed.log_json,
        verbose=config.logging_config.verbose or parsed.verbose,
    )

    return replace(
        config,
        paths=paths,
        probes=probes,
        modes=modes,
        logging_config=logging_config,
    )


def configure_logging(config: Config) -> str:
    """Set up logging for a loaded configuration.

    A dry run is always narrated, since announcing the probes is its whole
    output.

    Returns:
        The effective log level.
    """
    level = resolve_log_level(
        config.logging_config.verbose or config.modes.dry_run,
        config.logging_config.level,
    )
    setup_logging(level, json_format=config.logging_config.json)
    return level


def create_scheduler_clients(config: Config) -> tuple[SchedulerClient, DaemonController]:
    """Create the scheduler client and daemon controller.

    Args:
        config: Application configuration.

    Returns:
        Tuple of (scheduler_client, daemon_controller).
    """
    scheduler = SlurmClient(
        node_name=config.scheduler.node_name,
        slurm_conf=config.paths.slurm_conf,
        timeout=config.scheduler.timeout,
    )
    daemon = SystemdDaemonController(
        service=config.scheduler.daemon_service,
        timeout=config.scheduler.timeout,
    )
    return scheduler, daemon


def bootstrap(parsed: argparse.Namespace) -> BootstrapContext | None:
    """Load configuration and wire up the run's dependencies.

    Args:
        parsed: Parsed command-line arguments.

    Returns:
        BootstrapContext, or None if the configuration is unusable (the
        error has been logged).
    """
    try:
        config = load_config(parsed.config)
    except ConfigurationError as e:
        # No config yet; log with what the command line asked for.
        setup_logging(
            resolve_log_level(parsed.verbose, parsed.log_level),
            json_format=parsed.log_json,
        )
        logger.error("Configuration error: %s", e)
        return None

    config = apply_cli_overrides(config, parsed)
    level = configure_logging(config)

    logger.info("Loaded configuration from %s", config.source)
    logger.debug(
        "Effective log level %s, probe directory %s, run directory %s",
        level,
        config.paths.probe_dir,
        config.paths.run_dir,
    )

    scheduler, daemon = create_scheduler_clients(config)
    if config.scheduler_enabled:
        logger.info("Scheduler node name %s", config.scheduler.node_name)
    else:
        logger.info("Local-only mode, scheduler will not be contacted")

    return BootstrapContext(config=config, scheduler=scheduler, daemon=daemon)


def create_checknode_from_context(context: BootstrapContext) -> CheckNode:
    """Create a CheckNode instance from a bootstrap context.

    Args:
        context: Bootstrap context with all initialized dependencies.

    Returns:
        Configured CheckNode instance.
    """
    from checknode.main import CheckNode

    return CheckNode(
        config=context.config,
        scheduler=context.scheduler,
        daemon=context.daemon,
    )


__all__ = [
    "BootstrapContext",
    "apply_cli_overrides",
    "bootstrap",
    "configure_logging",
    "create_checknode_from_context",
    "create_scheduler_clients",
]
