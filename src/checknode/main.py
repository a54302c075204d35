"""checknode orchestrator.

One pass of the orchestrator:

1. arm the signal classifier,
2. take the run lock (a held lock ends the run untouched),
3. record the ``running`` state,
4. pass the boot-completion gate,
5. run the probe suite in name order,
6. aggregate the results into a verdict,
7. reconcile the verdict with the scheduler and record ``pass``/``fail``,
8. release the lock, on every exit path.

Only step 7 rewrites the run state. A pass that ends before it (boot gate,
probe directory error, dry run, terminal signal) leaves ``running`` behind
with no lock, which readers treat as "last run did not finish".
"""

from __future__ import annotations

import signal

from checknode.aggregator import HealthVerdict, aggregate
from checknode.boot import BootGate
from checknode.config import Config
from checknode.exceptions import InitializationError, RunAborted
from checknode.logging import get_logger
from checknode.probe_runner import ProbeRunner
from checknode.reconciler import Reconciler
from checknode.run_directory import RunDirectory
from checknode.scheduler import DaemonController, SchedulerClient
from checknode.shutdown import SignalClassifier
from checknode.suite import SuiteDriver
from checknode.types import RunState

logger = get_logger(__name__)

EXIT_HEALTHY = 0
EXIT_FAILURE = 1


class CheckNode:
    """Runs one health-check pass on the local node."""

    def __init__(
        self,
        config: Config,
        scheduler: SchedulerClient,
        daemon: DaemonController,
        run_directory: RunDirectory | None = None,
        runner: ProbeRunner | None = None,
        boot_gate: BootGate | None = None,
        signals: SignalClassifier | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Application configuration.
            scheduler: Scheduler client.
            daemon: Scheduler-daemon controller.
            run_directory: Run directory; built from config when omitted.
            runner: Probe runner; built from config when omitted.
            boot_gate: Boot-completion gate; built from config when omitted.
            signals: Signal classifier; a fresh one when omitted.
        """
        self.config = config
        self.run_directory = run_directory or RunDirectory(config.paths.run_dir)
        self.runner = runner or ProbeRunner(timeout=config.probes.timeout)
        self.boot_gate = boot_gate or BootGate(
            self.run_directory,
            boot_mode=config.modes.boot_mode,
            timeout=config.scheduler.timeout,
        )
        self.signals = signals or SignalClassifier()
        self.suite = SuiteDriver(
            config.paths.probe_dir,
            self.runner,
            dry_run=config.modes.dry_run,
        )
        self.reconciler = Reconciler(
            self.run_directory,
            scheduler,
            daemon,
            config.modes,
            config.reasons,
        )

    def run(self) -> int:
        """Run one pass and return the process exit code.

        Returns:
            0 when the node is healthy (or the run was a dry run), 1 when it is
            unhealthy, another run holds the lock, initialization failed or a
            terminal signal aborted the run.
        """
        self.signals.install_signal_handlers()
        try:
            if not self.run_directory.acquire():
                logger.error("Unable to acquire lock in %s, not running", self.config.paths.run_dir)
                return EXIT_FAILURE
            return self._run_locked()
        except RunAborted:
            return EXIT_FAILURE
        finally:
            self.signals.enter_cleanup()
            if self.run_directory.held:
                self.run_directory.release()
            self.signals.restore_signal_handlers()
            if self.signals.shutdown_requested:
                self._log_abort()

    def _log_abort(self) -> None:
        signum = self.signals.received_signal
        name = signal.Signals(signum).name if signum is not None else "unknown signal"
        logger.error(
            "Run aborted by %s, lock released; run state left as %s",
            name,
            self.run_directory.get_state() or "unset",
            extra={"signal": name},
        )

    def _run_locked(self) -> int:
        if not self.run_directory.set_state(RunState.RUNNING):
            logger.error("Unable to record run state in %s", self.config.paths.run_dir)
            return EXIT_FAILURE

        if not self.boot_gate.check():
            return EXIT_FAILURE

        try:
            report = self.suite.run()
        except InitializationError as e:
            logger.error("%s", e)
            return EXIT_FAILURE

        if self.config.modes.dry_run:
            logger.info("Dry run complete, scheduler state not examined")
            return EXIT_HEALTHY

        verdict = aggregate(report, delimiter=self.config.reasons.delimiter)
        self._log_verdict(verdict, len(report))
        decision = self.reconciler.reconcile(verdict)
        return decision.exit_code

    def _log_verdict(self, verdict: HealthVerdict, probe_count: int) -> None:
        if verdict.passed:
            logger.info("All %d probe(s) passed", probe_count)
        else:
            logger.info(
                "%d of %d probe(s) failed: %s",
                verdict.error_count,
                probe_count,
                verdict.error_reason,
            )


__all__ = [
    "CheckNode",
    "EXIT_FAILURE",
    "EXIT_HEALTHY",
]
