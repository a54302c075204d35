"""Boot-completion gate.

A run started by hand or from cron must not judge a node that is still
booting, so outside boot mode the systemd job queue has to be empty before
any probe runs. A run started from the boot sequence itself (boot mode)
skips the check. Either way a ``booted`` marker is written once the run may
proceed.
"""

from __future__ import annotations

import re
import subprocess

from checknode.config import DEFAULT_SCHEDULER_TIMEOUT
from checknode.logging import get_logger
from checknode.run_directory import RunDirectory

logger = get_logger(__name__)

IDLE_JOB_QUEUE = re.compile(r"No jobs running")


class BootGate:
    """Decides whether the node has finished booting."""

    def __init__(
        self,
        run_directory: RunDirectory,
        boot_mode: bool = False,
        timeout: float = DEFAULT_SCHEDULER_TIMEOUT,
    ) -> None:
        self.run_directory = run_directory
        self.boot_mode = boot_mode
        self.timeout = timeout

    def jobs_pending(self) -> bool:
        """Whether systemd still has jobs queued.

        An unanswerable query counts as pending.
        """
        try:
            result = subprocess.run(
                ["systemctl", "list-jobs"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("Unable to query systemd jobs: %s", e)
            return True
        return IDLE_JOB_QUEUE.match(result.stdout.strip()) is None

    def check(self) -> bool:
        """Check that the run may proceed.

        Returns:
            True in boot mode or when systemd has no jobs queued, after
            writing the booted marker; False while the node is still booting.
        """
        if self.boot_mode:
            logger.info("Boot mode, skipping boot-completion check")
            self.run_directory.mark_booted()
            return True
        if self.jobs_pending():
            logger.warning("Node is still booting, not running checks")
            return False
        self.run_directory.mark_booted()
        return True


__all__ = [
    "BootGate",
    "IDLE_JOB_QUEUE",
]
