"""Bounded-time execution of a single probe.

A probe is any executable in the probe directory: exit code 0 means healthy,
anything else unhealthy. The runner never raises on probe failure. Launch
errors and timeouts are folded into the returned :class:`ProbeResult`.

Each probe runs in its own session (process group) with stdin closed, so a
timeout kills the probe together with anything it spawned, and the pipes
are released promptly.
"""

from __future__ import annotations

import contextlib
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from checknode.config import DEFAULT_PROBE_TIMEOUT
from checknode.logging import get_logger
from checknode.types import ProbeOutcome

logger = get_logger(__name__)

# Seconds to wait for output to drain after a timed-out probe is killed.
KILL_GRACE_SECONDS = 2.0


@dataclass(frozen=True)
class ProbeResult:
    """Result of one probe invocation.

    Attributes:
        name: Probe identifier (the executable's file name).
        exit_code: Process exit code; None when the probe could not be
            launched or was killed at the timeout bound.
        stdout: Captured standard output, in full.
        stderr: Captured standard error, in full.
        duration: Elapsed wall-clock time in seconds.
        timed_out: Whether the probe was killed at the timeout bound.
    """

    name: str
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    timed_out: bool = False

    @property
    def outcome(self) -> ProbeOutcome:
        if self.timed_out:
            return ProbeOutcome.TIMED_OUT
        if self.exit_code is None:
            return ProbeOutcome.LAUNCH_FAILED
        if self.exit_code != 0:
            return ProbeOutcome.FAILED
        return ProbeOutcome.PASSED

    @property
    def failed(self) -> bool:
        """True for a non-zero exit, a launch failure or a timeout."""
        return self.outcome is not ProbeOutcome.PASSED


class ProbeRunner:
    """Runs one probe at a time under a hard wall-clock bound."""

    def __init__(
        self,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        kill_grace: float = KILL_GRACE_SECONDS,
    ) -> None:
        """Initialize the probe runner.

        Args:
            timeout: Default per-probe timeout in seconds.
            kill_grace: Seconds to wait for pipes to drain after a kill.
        """
        self.timeout = timeout
        self.kill_grace = kill_grace

    def run(self, probe_path: Path, timeout: float | None = None) -> ProbeResult:
        """Execute a probe and capture its result.

        Args:
            probe_path: Path of the probe executable.
            timeout: Per-call timeout override in seconds.

        Returns:
            ProbeResult describing the invocation. Never raises for probe
            failures; RunAborted and other BaseExceptions still propagate
            after the child has been killed.
        """
        name = probe_path.name
        effective_timeout = timeout if timeout is not None else self.timeout
        start = time.monotonic()

        try:
            process = subprocess.Popen(
                [str(probe_path)],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                start_new_session=True,
            )
        except OSError as e:
            logger.warning(
                "Unable to launch probe %s: %s", probe_path, e, extra={"probe": name}
            )
            return ProbeResult(
                name=name,
                exit_code=None,
                duration=time.monotonic() - start,
            )

        try:
            stdout, stderr = process.communicate(timeout=effective_timeout)
        except subprocess.TimeoutExpired:
            self._kill(process)
            stdout, stderr = self._collect_after_kill(process, name)
            duration = time.monotonic() - start
            logger.warning(
                "Probe %s timed out after %.1fs", name, effective_timeout, extra={"probe": name}
            )
            return ProbeResult(
                name=name,
                exit_code=None,
                stdout=stdout,
                stderr=stderr,
                duration=duration,
                timed_out=True,
            )
        except BaseException:
            self._kill(process)
            with contextlib.suppress(subprocess.TimeoutExpired):
                process.wait(timeout=self.kill_grace)
            raise

        return ProbeResult(
            name=name,
            exit_code=process.returncode,
            stdout=stdout,
            stderr=stderr,
            duration=time.monotonic() - start,
        )

    def _kill(self, process: subprocess.Popen[str]) -> None:
        """Kill the probe's whole process group."""
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            with contextlib.suppress(ProcessLookupError):
                process.kill()

    def _collect_after_kill(
        self, process: subprocess.Popen[str], name: str
    ) -> tuple[str, str]:
        """Gather the output a killed probe produced before its deadline."""
        try:
            return process.communicate(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            # A descendant escaped the process group and still holds a pipe.
            logger.warning(
                "Probe %s left a descendant holding its output open", name,
                extra={"probe": name},
            )
            for stream in (process.stdout, process.stderr):
                if stream is not None:
                    stream.close()
            with contextlib.suppress(subprocess.TimeoutExpired):
                process.wait(timeout=self.kill_grace)
            return "", ""


__all__ = [
    "KILL_GRACE_SECONDS",
    "ProbeResult",
    "ProbeRunner",
]
