"""Configuration discovery and loading.

Configuration comes from a key/value file (``KEY=VALUE`` lines, ``#``
comments) located by a fixed precedence order:

1. an explicit path (``--config``),
2. the ``CHECKNODE_CONFIG`` environment variable (a file, or a directory
   holding ``checknode.conf``),
3. ``/etc/checknode.conf``,
4. ``$HOME/.config/checknode.conf``,
5. ``./checknode.conf``.

Every key may be overridden by a ``CHECKNODE_<KEY>`` environment variable.
Command-line flags are applied on top by :mod:`checknode.bootstrap`.

Mandatory keys::

    TESTDIR             path to the probe directory

Optional keys::

    SLURM_CONF             path to slurm.conf (exported to scheduler commands)
    RUNDIR                 run directory holding the lock and state files
    VERBOSE                1/true/yes enables narration
    DRYRUN                 1/true/yes announces probes without running them
    TIMEOUT                per-probe timeout in seconds (default 10)
    SCHEDULER_TIMEOUT      timeout for scheduler commands in seconds (default 5)
    NODENAME               scheduler node name (default: short hostname)
    SLURMD_SERVICE         systemd unit of the scheduler daemon (default slurmd)
    LOG_LEVEL              DEBUG, INFO, WARNING, ERROR or CRITICAL
    LOG_JSON               1/true/yes emits JSON log lines
    MANAGED_REASON_PREFIX  prefix marking drain reasons written by checknode
    OVERRIDABLE_REASONS    comma-separated scheduler reasons safe to replace
    REBOOT_REASON          reason the scheduler sets after an unexpected reboot
    DAEMON_STOP_PATTERNS   comma-separated substrings that stop the daemon on failure
    REASON_DELIMITER       separator between per-probe failure tags
    LEAVE_ALONE_STATES     comma-separated states a healthy node is never undrained from
"""

from __future__ import annotations

import logging
import os
import socket
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values

from checknode.exceptions import ConfigurationError

CONFIG_FILENAME = "checknode.conf"
CONFIG_ENV_VAR = "CHECKNODE_CONFIG"
ENV_PREFIX = "CHECKNODE_"

# Valid log levels
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

DEFAULT_RUN_DIR = Path("/run/checknode")
DEFAULT_SLURM_CONF = Path("/etc/slurm/slurm.conf")
DEFAULT_PROBE_TIMEOUT = 10.0
DEFAULT_SCHEDULER_TIMEOUT = 5.0
DEFAULT_SLURMD_SERVICE = "slurmd"

DEFAULT_MANAGED_PREFIX = "checknode:"
DEFAULT_OVERRIDABLE_REASONS: tuple[str, ...] = (
    "Kill task failed",
    "Not responding",
    "Reboot ASAP",
    "Batch job complete failure",
)
DEFAULT_REBOOT_REASON = "Node unexpectedly rebooted"
DEFAULT_DAEMON_STOP_PATTERNS: tuple[str, ...] = ("hsn", "fabric")
DEFAULT_REASON_DELIMITER = ";"
DEFAULT_LEAVE_ALONE_STATES: tuple[str, ...] = ("idle", "planned", "maintenance", "reserved")


def _short_hostname() -> str:
    return socket.gethostname().split(".")[0]


@dataclass(frozen=True)
class PathsConfig:
    """Filesystem locations used by a run."""

    probe_dir: Path = Path("/etc/checknode/tests")
    run_dir: Path = DEFAULT_RUN_DIR
    slurm_conf: Path = DEFAULT_SLURM_CONF


@dataclass(frozen=True)
class ProbeConfig:
    """Probe execution settings."""

    timeout: float = DEFAULT_PROBE_TIMEOUT  # seconds, per probe


@dataclass(frozen=True)
class SchedulerConfig:
    """Scheduler integration settings."""

    node_name: str = field(default_factory=_short_hostname)
    timeout: float = DEFAULT_SCHEDULER_TIMEOUT  # seconds, per scheduler command
    daemon_service: str = DEFAULT_SLURMD_SERVICE


@dataclass(frozen=True)
class ModeConfig:
    """Mode flags selected for this invocation.

    Attributes:
        boot_mode: Skip the boot-completion check (invoked from boot).
        check_only: Report health but never mutate scheduler state.
        local_only: Never contact the scheduler or its daemon.
        force_undrain: Undrain even over a reason checknode did not set.
        dry_run: Announce probes without running them.
    """

    boot_mode: bool = False
    check_only: bool = False
    local_only: bool = False
    force_undrain: bool = False
    dry_run: bool = False


@dataclass(frozen=True)
class ReasonPolicy:
    """Site policy over scheduler drain reasons.

    Attributes:
        managed_prefix: Prefix of reasons written by checknode itself.
        overridable_reasons: Scheduler-generated reasons checknode may replace.
            Matched exactly or as a prefix.
        reboot_reason: Reason the scheduler sets after an unexpected reboot.
        daemon_stop_patterns: Substrings of a failure reason that mean the
            scheduler daemon must be stopped rather than started.
        delimiter: Separator between per-probe failure tags.
        leave_alone_states: Scheduler states a healthy node is never
            undrained from.
    """

    managed_prefix: str = DEFAULT_MANAGED_PREFIX
    overridable_reasons: tuple[str, ...] = DEFAULT_OVERRIDABLE_REASONS
    reboot_reason: str = DEFAULT_REBOOT_REASON
    daemon_stop_patterns: tuple[str, ...] = DEFAULT_DAEMON_STOP_PATTERNS
    delimiter: str = DEFAULT_REASON_DELIMITER
    leave_alone_states: tuple[str, ...] = DEFAULT_LEAVE_ALONE_STATES


@dataclass(frozen=True)
class LoggingConfig:
    """Logging settings.

    ``level`` is empty unless set explicitly; the effective level is then
    derived from ``verbose``.
    """

    level: str = ""
    json: bool = False
    verbose: bool = False


@dataclass(frozen=True)
class Config:
    """Application configuration.

    This dataclass is frozen (immutable) so that one record built at startup
    can be handed to every component without shared mutable state.
    """

    paths: PathsConfig = field(default_factory=PathsConfig)
    probes: ProbeConfig = field(default_factory=ProbeConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    modes: ModeConfig = field(default_factory=ModeConfig)
    reasons: ReasonPolicy = field(default_factory=ReasonPolicy)
    logging_config: LoggingConfig = field(default_factory=LoggingConfig)
    source: Path | None = None  # config file the values were read from

    @property
    def scheduler_enabled(self) -> bool:
        """Whether the scheduler may be contacted at all."""
        return not self.modes.local_only


def _parse_bool(value: str) -> bool:
    """Parse a string as a boolean.

    Args:
        value: The string value to parse.

    Returns:
        True if value is "true", "1", or "yes" (case-insensitive), False otherwise.
    """
    return value.strip().lower() in ("true", "1", "yes")


def _parse_positive_float(value: str, name: str, default: float) -> float:
    """Parse a string as a positive float with validation.

    Args:
        value: The string value to parse.
        name: The name of the setting (for error messages).
        default: The default value to use if parsing fails.

    Returns:
        The parsed positive float, or the default if invalid.

    Logs a warning if the value is invalid.
    """
    try:
        parsed = float(value)
        if parsed <= 0:
            logging.warning(
                "Invalid %s: %s is not positive, using default %s",
                name,
                value,
                default,
            )
            return default
        return parsed
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid number, using default %s",
            name,
            value,
            default,
        )
        return default


def _validate_log_level(value: str, default: str = "") -> str:
    """Validate and normalize a log level string.

    Args:
        value: The log level string to validate. Empty means "not set".
        default: The default value to use if invalid.

    Returns:
        The validated log level (uppercase), or the default if invalid.

    Logs a warning if the value is invalid.
    """
    if not value.strip():
        return default
    normalized = value.strip().upper()
    if normalized not in VALID_LOG_LEVELS:
        logging.warning(
            "Invalid LOG_LEVEL: '%s' is not valid, using default. Valid values: %s",
            value,
            ", ".join(sorted(VALID_LOG_LEVELS)),
        )
        return default
    return normalized


def _parse_list(value: str) -> tuple[str, ...]:
    """Parse a comma-separated list, dropping blanks and surrounding whitespace."""
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _resolve_candidate(path: Path) -> Path:
    """Map a directory to the config file inside it."""
    if path.is_dir():
        return path / CONFIG_FILENAME
    return path


def default_search_paths() -> list[Path]:
    """Well-known config locations, in precedence order."""
    return [
        Path("/etc") / CONFIG_FILENAME,
        Path.home() / ".config" / CONFIG_FILENAME,
        Path.cwd() / CONFIG_FILENAME,
    ]


def find_config_file(
    explicit: Path | None = None,
    search_paths: Sequence[Path] | None = None,
) -> Path:
    """Locate the configuration file.

    Args:
        explicit: Path given on the command line, if any. A directory is
            taken to contain ``checknode.conf``.
        search_paths: Override for the well-known locations (tests).

    Returns:
        Path of the first config file found.

    Raises:
        ConfigurationError: If an explicitly named file does not exist, or no
            candidate location holds a config file.
    """
    if explicit is not None:
        candidate = _resolve_candidate(explicit)
        if not candidate.is_file():
            raise ConfigurationError(f"Config file {candidate} does not exist")
        return candidate

    env_value = os.environ.get(CONFIG_ENV_VAR, "")
    if env_value:
        candidate = _resolve_candidate(Path(env_value))
        if not candidate.is_file():
            raise ConfigurationError(
                f"{CONFIG_ENV_VAR} points to {candidate}, which does not exist"
            )
        return candidate

    paths = default_search_paths() if search_paths is None else search_paths
    for candidate in paths:
        if candidate.is_file():
            return candidate

    raise ConfigurationError(f"Unable to find {CONFIG_FILENAME}")


def _setting(values: Mapping[str, str | None], key: str, default: str = "") -> str:
    """Look up a key, letting ``CHECKNODE_<KEY>`` override the file value."""
    env_value = os.environ.get(f"{ENV_PREFIX}{key}")
    if env_value is not None:
        return env_value
    file_value = values.get(key)
    if file_value is None:
        return default
    return file_value


def config_from_values(values: Mapping[str, str | None], source: Path | None = None) -> Config:
    """Build a Config from parsed key/value pairs.

    Args:
        values: Key/value pairs, typically from a config file.
        source: Where the values came from, recorded on the Config.

    Returns:
        Config object with validated values.

    Raises:
        ConfigurationError: If TESTDIR is missing.
    """
    probe_dir = _setting(values, "TESTDIR").strip()
    if not probe_dir:
        raise ConfigurationError(
            f"Mandatory key TESTDIR is not set in {source or 'configuration'}"
        )

    run_dir = _setting(values, "RUNDIR").strip()
    slurm_conf = _setting(values, "SLURM_CONF").strip()
    node_name = _setting(values, "NODENAME").strip()

    paths = PathsConfig(
        probe_dir=Path(probe_dir),
        run_dir=Path(run_dir) if run_dir else DEFAULT_RUN_DIR,
        slurm_conf=Path(slurm_conf) if slurm_conf else DEFAULT_SLURM_CONF,
    )

    probes = ProbeConfig(
        timeout=_parse_positive_float(
            _setting(values, "TIMEOUT", str(DEFAULT_PROBE_TIMEOUT)),
            "TIMEOUT",
            DEFAULT_PROBE_TIMEOUT,
        ),
    )

    scheduler = SchedulerConfig(
        node_name=node_name or _short_hostname(),
        timeout=_parse_positive_float(
            _setting(values, "SCHEDULER_TIMEOUT", str(DEFAULT_SCHEDULER_TIMEOUT)),
            "SCHEDULER_TIMEOUT",
            DEFAULT_SCHEDULER_TIMEOUT,
        ),
        daemon_service=_setting(values, "SLURMD_SERVICE").strip() or DEFAULT_SLURMD_SERVICE,
    )

    modes = ModeConfig(dry_run=_parse_bool(_setting(values, "DRYRUN")))

    overridable = _setting(values, "OVERRIDABLE_REASONS")
    stop_patterns = _setting(values, "DAEMON_STOP_PATTERNS")
    leave_alone = _setting(values, "LEAVE_ALONE_STATES")
    reasons = ReasonPolicy(
        managed_prefix=_setting(values, "MANAGED_REASON_PREFIX").strip()
        or DEFAULT_MANAGED_PREFIX,
        overridable_reasons=_parse_list(overridable)
        if overridable.strip()
        else DEFAULT_OVERRIDABLE_REASONS,
        reboot_reason=_setting(values, "REBOOT_REASON").strip() or DEFAULT_REBOOT_REASON,
        daemon_stop_patterns=_parse_list(stop_patterns)
        if stop_patterns.strip()
        else DEFAULT_DAEMON_STOP_PATTERNS,
        delimiter=_setting(values, "REASON_DELIMITER") or DEFAULT_REASON_DELIMITER,
        leave_alone_states=tuple(state.lower() for state in _parse_list(leave_alone))
        if leave_alone.strip()
        else DEFAULT_LEAVE_ALONE_STATES,
    )

    logging_config = LoggingConfig(
        level=_validate_log_level(_setting(values, "LOG_LEVEL")),
        json=_parse_bool(_setting(values, "LOG_JSON")),
        verbose=_parse_bool(_setting(values, "VERBOSE")),
    )

    return Config(
        paths=paths,
        probes=probes,
        scheduler=scheduler,
        modes=modes,
        reasons=reasons,
        logging_config=logging_config,
        source=source,
    )


def load_config(
    config_file: Path | None = None,
    search_paths: Sequence[Path] | None = None,
) -> Config:
    """Locate, read and validate the configuration file.

    Args:
        config_file: Explicit config file (or directory) from the command line.
        search_paths: Override for the well-known locations (tests).

    Returns:
        Config object with loaded values.

    Raises:
        ConfigurationError: If no config file is found or TESTDIR is missing.
    """
    path = find_config_file(config_file, search_paths)
    try:
        values = dotenv_values(path)
    except OSError as e:
        raise ConfigurationError(f"Unable to read {path}: {e}") from e
    return config_from_values(values, source=path)


__all__ = [
    "CONFIG_ENV_VAR",
    "CONFIG_FILENAME",
    "Config",
    "LoggingConfig",
    "ModeConfig",
    "PathsConfig",
    "ProbeConfig",
    "ReasonPolicy",
    "SchedulerConfig",
    "config_from_values",
    "default_search_paths",
    "find_config_file",
    "load_config",
]
