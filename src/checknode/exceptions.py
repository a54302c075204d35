"""Exception types shared across checknode.

The taxonomy mirrors how failures are handled:
- Configuration errors (ConfigurationError): no config source, mandatory key missing
- Initialization errors (InitializationError): run directory, state file or
  probe directory unusable
- Scheduler errors (SchedulerError): the scheduler CLI could not be run or
  returned a failure; always handled as best effort
- Run aborts (RunAborted): a terminal signal arrived mid-run

Probe failures are deliberately absent: they are folded into ProbeResult
values and never raised.
"""

from __future__ import annotations


class ConfigurationError(Exception):
    """Raised when configuration cannot be located or is incomplete.

    Example:
        >>> raise ConfigurationError("Unable to find checknode.conf")
    """

    pass


class InitializationError(Exception):
    """Raised when the host cannot be prepared for an orchestration pass.

    Example:
        >>> raise InitializationError("Unable to create /run/checknode")
    """

    pass


class SchedulerError(Exception):
    """Raised when a scheduler CLI call fails.

    Attributes:
        command: The command line that failed, for logging.
    """

    def __init__(self, message: str, command: list[str] | None = None) -> None:
        super().__init__(message)
        self.command = command or []


class RunAborted(BaseException):
    """Raised from a terminal signal handler to unwind the current run.

    Derives from BaseException (like KeyboardInterrupt) so that broad
    ``except Exception`` clauses in collaborators cannot swallow it.

    Attributes:
        signum: The signal number that triggered the abort.
    """

    def __init__(self, signum: int) -> None:
        super().__init__(f"terminal signal {signum} received")
        self.signum = signum


__all__ = [
    "ConfigurationError",
    "InitializationError",
    "RunAborted",
    "SchedulerError",
]
