"""Probe discovery and serial execution.

Probes are discovered by listing the probe directory and sorting the
entries by name. That order is an external contract: results are logged,
aggregated and rendered into the drain reason in exactly that order.
Probes run strictly one after another. A failing or timed-out probe never
stops the suite.
"""

from __future__ import annotations

import os
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from checknode.exceptions import InitializationError
from checknode.logging import get_logger
from checknode.probe_runner import ProbeResult, ProbeRunner

logger = get_logger(__name__)


@dataclass
class RunReport:
    """Ordered results of one suite run, one entry per discovered probe."""

    results: list[ProbeResult] = field(default_factory=list)
    duration: float = 0.0

    def __iter__(self) -> Iterator[ProbeResult]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    def add(self, result: ProbeResult) -> None:
        self.results.append(result)

    @property
    def failures(self) -> list[ProbeResult]:
        """Failing results, in run order."""
        return [result for result in self.results if result.failed]


class SuiteDriver:
    """Discovers the probes in a directory and runs them in name order."""

    def __init__(
        self,
        probe_dir: Path,
        runner: ProbeRunner,
        timeout: float | None = None,
        dry_run: bool = False,
    ) -> None:
        """Initialize the suite driver.

        Args:
            probe_dir: Directory whose entries are the probes.
            runner: Runner used for each probe.
            timeout: Per-probe timeout override; defaults to the runner's.
            dry_run: Announce probes without running them.
        """
        self.probe_dir = probe_dir
        self.runner = runner
        self.timeout = timeout
        self.dry_run = dry_run

    def discover(self) -> list[Path]:
        """List the probes in deterministic order.

        Returns:
            Probe paths sorted by file name.

        Raises:
            InitializationError: If the probe directory cannot be listed.
        """
        try:
            names = os.listdir(self.probe_dir)
        except OSError as e:
            raise InitializationError(
                f"Unable to list probe directory {self.probe_dir}: {e}"
            ) from e
        return [self.probe_dir / name for name in sorted(names)]

    def run(self) -> RunReport:
        """Run every probe serially.

        In dry-run mode the probes are only announced and the report is empty.

        Returns:
            RunReport with one result per probe, in sorted-name order.

        Raises:
            InitializationError: If the probe directory cannot be listed.
        """
        probes = self.discover()
        report = RunReport()
        logger.info("Discovered %d probe(s) in %s", len(probes), self.probe_dir)

        start = time.monotonic()
        for probe_path in probes:
            name = probe_path.name
            probe_logger = logger.with_context(probe=name)
            if self.dry_run:
                probe_logger.info("Dry run, not running %s", probe_path)
                continue

            probe_logger.info("Beginning run of %s", probe_path)
            result = self.runner.run(probe_path, timeout=self.timeout)
            report.add(result)
            self._log_result(result)

        report.duration = time.monotonic() - start
        return report

    def _log_result(self, result: ProbeResult) -> None:
        probe_logger = logger.with_context(probe=result.name)
        probe_logger.info(
            "End of run %s: %s, exit code %s, %.3fs",
            result.name,
            result.outcome,
            result.exit_code,
            result.duration,
        )
        if result.stdout:
            probe_logger.debug("stdout:\n%s", result.stdout.rstrip())
        if result.stderr:
            probe_logger.debug("stderr:\n%s", result.stderr.rstrip())


__all__ = [
    "RunReport",
    "SuiteDriver",
]
