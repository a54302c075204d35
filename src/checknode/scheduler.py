"""Scheduler integration: node state, drain/undrain, and daemon control.

The scheduler is reached through its command-line tools only:

- ``sinfo -h -N -n <node> -o %T|%E`` reads the node state and drain reason,
- ``scontrol update nodename=<node> state=drain reason=<reason>`` drains,
- ``scontrol update nodename=<node> state=idle`` undrains,
- ``systemctl start|stop <unit>`` controls the local scheduler daemon.

Every command is bounded by a short timeout. Failures surface as
:class:`~checknode.exceptions.SchedulerError`; callers treat them as best
effort.
"""

from __future__ import annotations

import os
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from checknode.config import DEFAULT_SCHEDULER_TIMEOUT, DEFAULT_SLURMD_SERVICE
from checknode.exceptions import SchedulerError
from checknode.logging import get_logger

logger = get_logger(__name__)

# Characters sinfo appends to a state to flag conditions (e.g. "idle*").
STATE_FLAG_CHARS = "*~#!%$@^-+"

# sinfo's long state names, normalized.
STATE_ALIASES = {
    "maint": "maintenance",
    "resv": "reserved",
    "drng": "draining",
    "drain": "drained",
}


@dataclass(frozen=True)
class ExternalNodeState:
    """Scheduler-visible state of the local node, read fresh per run.

    Attributes:
        current_state: Normalized state name (idle, drained, maintenance, ...).
        current_reason: Drain reason as reported; may be empty or "none".
    """

    current_state: str
    current_reason: str = ""


def normalize_state(raw: str) -> str:
    """Normalize a scheduler state string.

    Args:
        raw: State as printed by sinfo, e.g. ``"IDLE*"`` or ``"drained"``.

    Returns:
        Lower-case state name without flag characters, with short forms
        expanded.
    """
    state = raw.strip().lower().rstrip(STATE_FLAG_CHARS)
    return STATE_ALIASES.get(state, state)


def parse_sinfo_line(line: str) -> ExternalNodeState:
    """Parse one ``%T|%E`` line from sinfo.

    Args:
        line: Output line, e.g. ``"drained|checknode: 1 error(s): gpu_check"``.

    Returns:
        ExternalNodeState for the line.

    Raises:
        SchedulerError: If the line does not have the expected shape.
    """
    state, sep, reason = line.partition("|")
    if not sep or not state.strip():
        raise SchedulerError(f"Unexpected sinfo output: {line!r}")
    return ExternalNodeState(current_state=normalize_state(state), current_reason=reason.strip())


def run_command(
    cmd: list[str],
    timeout: float,
    env: dict[str, str] | None = None,
) -> str:
    """Run a scheduler command and return its stdout.

    Args:
        cmd: Command and arguments.
        timeout: Timeout in seconds.
        env: Environment for the command; inherits ours when None.

    Returns:
        The command's standard output.

    Raises:
        SchedulerError: On timeout, launch failure or non-zero exit.
    """
    logger.debug("Running command: %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            check=True,
        )
    except subprocess.TimeoutExpired:
        raise SchedulerError(f"{cmd[0]} timed out after {timeout}s", cmd) from None
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or "").strip() or f"exit code {e.returncode}"
        raise SchedulerError(f"{cmd[0]} failed: {detail}", cmd) from e
    except OSError as e:
        raise SchedulerError(f"Unable to run {cmd[0]}: {e}", cmd) from e
    return result.stdout


class SchedulerClient(ABC):
    """Abstract interface to the scheduler's view of the local node."""

    @abstractmethod
    def read_node_state(self) -> ExternalNodeState:
        """Read the node's current state and drain reason."""
        pass

    @abstractmethod
    def drain(self, reason: str) -> None:
        """Set the node to drained with the given reason."""
        pass

    @abstractmethod
    def undrain(self) -> None:
        """Return the node to idle."""
        pass


class DaemonController(ABC):
    """Abstract interface to the local scheduler daemon."""

    @abstractmethod
    def start(self) -> None:
        """Ensure the daemon is running. Idempotent."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop the daemon."""
        pass


class SlurmClient(SchedulerClient):
    """Slurm implementation driven through sinfo and scontrol."""

    def __init__(
        self,
        node_name: str,
        slurm_conf: Path | None = None,
        timeout: float = DEFAULT_SCHEDULER_TIMEOUT,
    ) -> None:
        """Initialize the Slurm client.

        Args:
            node_name: Slurm node name of this host.
            slurm_conf: slurm.conf to export as SLURM_CONF, if any.
            timeout: Timeout in seconds for each command.
        """
        self.node_name = node_name
        self.slurm_conf = slurm_conf
        self.timeout = timeout

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.slurm_conf is not None:
            env["SLURM_CONF"] = str(self.slurm_conf)
        return env

    def read_node_state(self) -> ExternalNodeState:
        """Read the node's state and reason with sinfo.

        Returns:
            ExternalNodeState from the first matching line.

        Raises:
            SchedulerError: If sinfo fails or does not know the node.
        """
        output = run_command(
            ["sinfo", "-h", "-N", "-n", self.node_name, "-o", "%T|%E"],
            self.timeout,
            env=self._env(),
        )
        for line in output.splitlines():
            if line.strip():
                state = parse_sinfo_line(line)
                logger.debug(
                    "Scheduler reports state=%s reason=%r",
                    state.current_state,
                    state.current_reason,
                )
                return state
        raise SchedulerError(f"Node {self.node_name} not found in sinfo output")

    def drain(self, reason: str) -> None:
        run_command(
            [
                "scontrol",
                "update",
                f"nodename={self.node_name}",
                "state=drain",
                f"reason={reason}",
            ],
            self.timeout,
            env=self._env(),
        )
        logger.info("Drained %s: %s", self.node_name, reason)

    def undrain(self) -> None:
        run_command(
            ["scontrol", "update", f"nodename={self.node_name}", "state=idle"],
            self.timeout,
            env=self._env(),
        )
        logger.info("Returned %s to idle", self.node_name)


class SystemdDaemonController(DaemonController):
    """Controls the scheduler daemon's systemd unit."""

    def __init__(
        self,
        service: str = DEFAULT_SLURMD_SERVICE,
        timeout: float = DEFAULT_SCHEDULER_TIMEOUT,
    ) -> None:
        self.service = service
        self.timeout = timeout

    def start(self) -> None:
        run_command(["systemctl", "start", self.service], self.timeout)
        logger.info("Ensured %s is running", self.service)

    def stop(self) -> None:
        run_command(["systemctl", "stop", self.service], self.timeout)
        logger.info("Stopped %s", self.service)


__all__ = [
    "DaemonController",
    "ExternalNodeState",
    "SchedulerClient",
    "SlurmClient",
    "SystemdDaemonController",
    "normalize_state",
    "parse_sinfo_line",
    "run_command",
]
